"""Async HTTP client for the command relay.

Lets a Python-side script (or a test harness) act as a relay client: it
registers itself, sends commands and polls for the ones addressed to it.

Example usage::

    async with RelayClient(
        base_url="http://localhost:3000",
        script_id="s1",
        sender_id="A",
        sender_name="Admin1",
    ) as client:
        await client.register(is_authorized=True)
        await client.send("bring", target="Alt2")

        async for command in client.listen(interval=1.0):
            print(command["command"], command["args"])
"""

from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict
from typing import Any, AsyncIterator

import httpx

from scriptrelay.relay.models import REGISTER_COMMAND, now_ms

logger = logging.getLogger(__name__)

# Command ids remembered by listen() to drop repeats across polls
_SEEN_LIMIT = 500


class RelayClientError(Exception):
    """Raised when a relay request fails."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class RelayClient:
    """Talks to a relay server on behalf of one script client."""

    def __init__(
        self,
        base_url: str = "http://localhost:3000",
        script_id: str = "default",
        sender_id: str = "",
        sender_name: str = "",
        api_key: str | None = None,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._script_id = script_id
        self._sender_id = sender_id
        self._sender_name = sender_name
        self._api_key = api_key
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    async def connect(self) -> None:
        """Create the HTTP client and verify the server is reachable."""
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout,
            transport=self._transport,
        )
        try:
            resp = await self._client.get("/api/status")
            resp.raise_for_status()
            logger.info("Connected to relay at %s", self._base_url)
        except Exception as e:
            await self._client.aclose()
            self._client = None
            raise RelayClientError(f"Failed to connect to relay: {e}") from e

    async def disconnect(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.info("Disconnected from relay")

    async def register(self, is_authorized: bool = False) -> str:
        """Register this client. Returns the role the server recorded."""
        data = await self._submit(REGISTER_COMMAND, {"isAuthorized": is_authorized})
        return data.get("role", "")

    async def send(
        self,
        command: str,
        args: dict[str, Any] | None = None,
        target: str | None = None,
        timestamp: int | None = None,
    ) -> str:
        """Send a command. Returns the id the server assigned to it."""
        payload_args = dict(args or {})
        payload_args.setdefault("command", command)
        if target is not None:
            payload_args["target"] = target
        data = await self._submit(command, payload_args, timestamp)
        logger.debug("Sent command %s (%s)", command, data.get("commandId"))
        return data.get("commandId", "")

    async def poll(self) -> list[dict[str, Any]]:
        """Fetch the commands currently visible to this client."""
        params = {"scriptId": self._script_id, "senderId": self._sender_id}
        if self._api_key:
            params["apiKey"] = self._api_key
        data = await self._request("GET", "/api/commands", params=params)
        return data.get("commands", [])

    async def listen(self, interval: float = 1.0) -> AsyncIterator[dict[str, Any]]:
        """Poll forever, yielding each command once.

        The server returns a command on every poll inside its visibility
        window; ids already yielded are skipped.
        """
        seen: OrderedDict[str, None] = OrderedDict()
        while True:
            for command in await self.poll():
                command_id = command.get("id")
                if command_id in seen:
                    continue
                seen[command_id] = None
                if len(seen) > _SEEN_LIMIT:
                    seen.popitem(last=False)
                yield command
            await asyncio.sleep(interval)

    async def status(self) -> dict[str, Any]:
        return await self._request("GET", "/api/status")

    async def users(self) -> dict[str, Any]:
        params = {"apiKey": self._api_key} if self._api_key else None
        return await self._request("GET", "/api/users", params=params)

    async def _submit(
        self, command: str, args: dict[str, Any], timestamp: int | None = None
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "scriptId": self._script_id,
            "senderId": self._sender_id,
            "senderName": self._sender_name,
            "command": command,
            "args": args,
            "timestamp": timestamp if timestamp is not None else now_ms(),
        }
        if self._api_key:
            payload["apiKey"] = self._api_key
        return await self._request("POST", "/api/command", json=payload)

    async def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        """Send a request and return the decoded JSON body."""
        if self._client is None:
            raise RelayClientError("Not connected to relay")
        try:
            resp = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise RelayClientError(f"HTTP request to {path} failed: {e}") from e
        if resp.is_error:
            try:
                message = resp.json().get("error", resp.text)
            except ValueError:
                message = resp.text
            raise RelayClientError(
                f"{method} {path} failed ({resp.status_code}): {message}",
                status_code=resp.status_code,
            )
        return resp.json()

    async def __aenter__(self) -> RelayClient:
        await self.connect()
        return self

    async def __aexit__(self, exc_type: type | None, exc_val: Exception | None, exc_tb: object) -> None:
        await self.disconnect()
