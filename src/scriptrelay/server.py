"""REST API server for the command relay.

Script clients post commands here and poll for the commands addressed to
them. All relay state lives in the :class:`CommandRelay` held on
``app.state.relay``; this module only authenticates, validates and
serializes.

    GET  /                -> capability listing
    GET  /api/status      -> {"status": "online", "commandsCount": ...}
    POST /api/command     <- {"scriptId", "senderId", "senderName", "command", "args", "timestamp"}
    GET  /api/commands    ?scriptId=...&senderId=...
    GET  /api/users       -> registered users (auth if configured)

A shared secret (``apiKey`` in the body or query string) is checked only
when one is configured and ``require_api_key`` is set.
"""

from __future__ import annotations

import asyncio
import hmac
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator

import uvicorn
from fastapi import FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from scriptrelay import __version__
from scriptrelay.config.settings import AuthConfig
from scriptrelay.errors import (
    AuthenticationError,
    InternalError,
    RelayError,
    ValidationError,
)
from scriptrelay.relay.filters import create_filter
from scriptrelay.relay.log import CommandLog
from scriptrelay.relay.models import CommandSubmission, FilterMode
from scriptrelay.relay.service import (
    DEFAULT_PRUNE_INTERVAL,
    CommandRelay,
    prune_periodically,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Request / response models
# ---------------------------------------------------------------------------

class CommandRequest(BaseModel):
    """Body of ``POST /api/command``.

    Every field is optional here so that missing ones are reported as a
    relay validation error rather than a schema error.
    """

    model_config = ConfigDict(coerce_numbers_to_str=True)

    script_id: str | None = Field(default=None, alias="scriptId")
    sender_id: str | None = Field(
        default=None, validation_alias=AliasChoices("senderId", "playerId")
    )
    sender_name: str | None = Field(
        default=None, validation_alias=AliasChoices("senderName", "playerName")
    )
    command: str | None = None
    args: Any = None
    timestamp: float | None = Field(default=None, allow_inf_nan=False)
    api_key: str | None = Field(default=None, alias="apiKey")


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class StatusResponse(_CamelModel):
    status: str = "online"
    timestamp: datetime
    commands_count: int
    registered_users: int
    authorized_users: int
    filter_mode: FilterMode


class UserEntry(_CamelModel):
    sender_id: str
    sender_name: str | None
    script_id: str
    role: str
    registered_at: datetime


class UsersResponse(_CamelModel):
    success: bool = True
    users: list[UserEntry]
    count: int
    authorized_count: int


ROOT_INFO: dict[str, Any] = {
    "message": "Script Command Relay Server",
    "version": __version__,
    "features": {
        "Role-aware Commands": "Admins broadcast to alts, alts report back to admins",
        "Targeted Commands": "Send commands to a specific alt or to all alts",
        "User Registration": "Clients announce themselves with a register command",
        "Polling Delivery": "Commands stay pollable for 30 seconds",
    },
    "endpoints": {
        "POST /api/command": "Send a command to the server",
        "GET /api/commands": "Retrieve commands for script users",
        "GET /api/status": "Server health check",
        "GET /api/users": "List registered users",
    },
    "supportedCommands": [
        "register", "bring", "follow", "say", "attack", "freeze", "unfreeze",
        "kill", "reset", "speed", "jump", "sit", "unsit",
        "invisible", "visible", "stop", "godmode",
    ],
}


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------

def create_app(
    relay: CommandRelay | None = None,
    filter_mode: FilterMode | str = FilterMode.ROLE,
    capacity: int = 100,
    poll_window_ms: int = 30_000,
    max_age_ms: int = 300_000,
    prune_interval: float = DEFAULT_PRUNE_INTERVAL,
    api_key: str | None = None,
    require_api_key: bool = False,
    cors_origins: list[str] | None = None,
    enable_pruner: bool = True,
) -> FastAPI:
    """Create the relay REST API application.

    Args:
        relay: Optional pre-built CommandRelay (for testing). When omitted
            one is built from the remaining relay arguments.
        filter_mode: "role" for admin/alt targeting, "flat" for the legacy
            coordinated-command targeting.
        capacity: Maximum number of records kept in the log.
        poll_window_ms: How long a command stays pollable.
        max_age_ms: Age past which a prune drops a command.
        prune_interval: Seconds between background prunes.
        api_key: Shared secret clients must supply.
        require_api_key: Whether the shared secret is enforced.
        cors_origins: Allowed CORS origins (default: any).
        enable_pruner: Whether to run the background prune task.
    """
    if relay is None:
        relay = CommandRelay(
            log=CommandLog(capacity=capacity, max_age_ms=max_age_ms),
            visibility=create_filter(filter_mode, poll_window_ms=poll_window_ms),
        )
    auth = AuthConfig(api_key=api_key or "", require_api_key=require_api_key)
    secret = auth.api_key.get_secret_value()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        prune_task = None
        if enable_pruner:
            prune_task = asyncio.create_task(
                prune_periodically(app.state.relay, prune_interval)
            )
        if auth.enforced:
            logger.info("API key required")
        else:
            logger.info("API key disabled (no authentication required)")
        logger.info(
            "Relay server started (filter=%s, capacity=%d, window=%dms, max_age=%dms)",
            app.state.relay.filter_mode.value,
            app.state.relay.log.capacity,
            app.state.relay.poll_window_ms,
            app.state.relay.log.max_age_ms,
        )
        yield
        if prune_task is not None:
            prune_task.cancel()
            try:
                await prune_task
            except asyncio.CancelledError:
                pass
        logger.info("Relay server stopped")

    app = FastAPI(
        title="scriptrelay",
        description="Polling command relay for game-script clients",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.relay = relay

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins or ["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RelayError)
    async def handle_relay_error(request: Request, exc: RelayError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"error": exc.message})

    @app.exception_handler(RequestValidationError)
    async def handle_bad_request(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        logger.debug("Rejected malformed request: %s", exc.errors())
        return JSONResponse(status_code=400, content={"error": "Invalid request"})

    def _check_api_key(supplied: str | None) -> None:
        if not auth.enforced:
            return
        if supplied is None or not hmac.compare_digest(supplied, secret):
            raise AuthenticationError("Invalid API key")

    # -------------------------------------------------------------------
    # Relay endpoints
    # -------------------------------------------------------------------

    @app.post("/api/command")
    async def submit_command(
        request: CommandRequest,
        api_key_param: str | None = Query(default=None, alias="apiKey"),
    ) -> dict[str, Any]:
        _check_api_key(request.api_key or api_key_param)
        if not request.script_id or not request.sender_id or not request.command:
            raise ValidationError("Missing required fields")

        r: CommandRelay = app.state.relay
        try:
            outcome = r.submit(
                CommandSubmission(
                    script_id=request.script_id,
                    sender_id=request.sender_id,
                    sender_name=request.sender_name,
                    command=request.command,
                    args=request.args,
                    timestamp=int(request.timestamp) if request.timestamp is not None else None,
                )
            )
        except RelayError:
            raise
        except Exception as e:
            logger.exception("Error processing command")
            raise InternalError("Internal server error") from e

        if outcome.user is not None:
            return {"success": True, "message": outcome.message, "role": outcome.user.role.value}
        return {"success": True, "message": outcome.message, "commandId": outcome.record.id}

    @app.get("/api/commands")
    async def poll_commands(
        script_id: str | None = Query(default=None, alias="scriptId"),
        sender_id: str | None = Query(default=None, alias="senderId"),
        player_id: str | None = Query(default=None, alias="playerId"),
        api_key_param: str | None = Query(default=None, alias="apiKey"),
    ) -> dict[str, Any]:
        _check_api_key(api_key_param)
        poller_id = sender_id or player_id
        if not script_id or not poller_id:
            raise ValidationError("Missing required fields")

        r: CommandRelay = app.state.relay
        try:
            commands = [record.to_wire() for record in r.poll(script_id, poller_id)]
        except Exception as e:
            logger.exception("Error retrieving commands")
            raise InternalError("Internal server error") from e
        return {"success": True, "commands": commands, "count": len(commands)}

    @app.get("/api/status")
    async def status() -> StatusResponse:
        r: CommandRelay = app.state.relay
        return StatusResponse(
            timestamp=datetime.now(timezone.utc),
            commands_count=len(r.log),
            registered_users=r.registry.registered_count,
            authorized_users=r.registry.authorized_count,
            filter_mode=r.filter_mode,
        )

    @app.get("/api/users")
    async def list_users(
        api_key_param: str | None = Query(default=None, alias="apiKey"),
    ) -> UsersResponse:
        _check_api_key(api_key_param)
        r: CommandRelay = app.state.relay
        users = [
            UserEntry(
                sender_id=u.sender_id,
                sender_name=u.sender_name,
                script_id=u.script_id,
                role=u.role.value,
                registered_at=datetime.fromtimestamp(u.timestamp / 1000, tz=timezone.utc),
            )
            for u in r.users()
        ]
        return UsersResponse(
            users=users,
            count=len(users),
            authorized_count=r.registry.authorized_count,
        )

    @app.get("/")
    async def root() -> dict[str, Any]:
        return ROOT_INFO

    return app


# ---------------------------------------------------------------------------
# Standalone entry point
# ---------------------------------------------------------------------------

def main(host: str = "0.0.0.0", port: int = 3000) -> None:
    """Run the relay server with default settings."""
    app = create_app()
    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    main()
