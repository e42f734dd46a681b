"""The relay: one command log, one user registry, one visibility filter.

:class:`CommandRelay` is the state container the HTTP layer talks to. It is
built once at startup and handed to the application; nothing here is global.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable

from scriptrelay.relay.filters import RoleAwareFilter, VisibilityFilter
from scriptrelay.relay.log import CommandLog
from scriptrelay.relay.models import (
    REGISTER_COMMAND,
    CommandRecord,
    CommandSubmission,
    FilterMode,
    RegisteredUser,
    SubmitOutcome,
    now_ms,
)
from scriptrelay.relay.registry import UserRegistry

logger = logging.getLogger(__name__)

DEFAULT_PRUNE_INTERVAL = 300.0  # seconds

_TRUE_STRINGS = ("true", "1", "yes")


def _as_flag(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_STRINGS
    return value is True or value == 1


class CommandRelay:
    """Accepts command submissions and answers polls.

    Write path: a ``register`` submission updates the registry and never
    reaches the log; any other submission becomes a record (built by the
    visibility filter), is appended and the log is trimmed to capacity.

    Read path: the poller is resolved through the registry and the log is
    scanned through the visibility filter. Reads never consume records, so
    a poller sees a record on every poll while it is inside the window.
    """

    def __init__(
        self,
        log: CommandLog | None = None,
        registry: UserRegistry | None = None,
        visibility: VisibilityFilter | None = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._log = log if log is not None else CommandLog()
        self._registry = registry if registry is not None else UserRegistry()
        self._visibility = visibility if visibility is not None else RoleAwareFilter()
        self._clock = clock

    @property
    def log(self) -> CommandLog:
        return self._log

    @property
    def registry(self) -> UserRegistry:
        return self._registry

    @property
    def filter_mode(self) -> FilterMode:
        return self._visibility.mode

    @property
    def poll_window_ms(self) -> int:
        return self._visibility.poll_window_ms

    def submit(self, submission: CommandSubmission) -> SubmitOutcome:
        """Handle one inbound command."""
        now = self._clock()
        timestamp = submission.timestamp if submission.timestamp is not None else now

        if submission.command == REGISTER_COMMAND:
            args = submission.args if isinstance(submission.args, dict) else {}
            user = self._registry.register(
                sender_id=submission.sender_id,
                script_id=submission.script_id,
                sender_name=submission.sender_name,
                is_authorized=_as_flag(args.get("isAuthorized")),
                timestamp=now,
            )
            return SubmitOutcome(message="User registered", user=user)

        record = self._visibility.build_record(submission, self._registry, timestamp)
        self._log.append(record)
        evicted = self._log.trim_to_capacity()
        if evicted:
            logger.debug("Evicted %d oldest command(s) over capacity", evicted)

        logger.info(
            "Command received: %s from %s (%s) admin=%s target=%s",
            record.command,
            record.sender_name,
            record.sender_id,
            record.is_admin_command,
            record.target_alts or "-",
        )
        return SubmitOutcome(message="Command received", record=record)

    def poll(self, script_id: str, poller_id: str) -> list[CommandRecord]:
        """Return the records currently visible to ``poller_id``."""
        poller = self._visibility.resolve_poller(poller_id, self._registry)
        return self._visibility.select(
            self._log.snapshot(), script_id, poller, self._clock()
        )

    def prune(self, now: int | None = None) -> int:
        """Drop records past the log's maximum age. Returns the count removed."""
        removed = self._log.prune_by_age(self._clock() if now is None else now)
        logger.info("Cleaned up old commands. Removed: %d, remaining: %d", removed, len(self._log))
        return removed

    def users(self) -> list[RegisteredUser]:
        return self._registry.users()


async def prune_periodically(
    relay: CommandRelay, interval: float = DEFAULT_PRUNE_INTERVAL
) -> None:
    """Prune ``relay`` every ``interval`` seconds until cancelled."""
    while True:
        try:
            await asyncio.sleep(interval)
            relay.prune()
        except asyncio.CancelledError:
            break
        except Exception as e:
            logger.error("Prune failed: %s", e)
