"""Shared test fixtures for the scriptrelay test suite.

Provides a controllable clock, relays in both filter modes and a factory
for command submissions.
"""

from __future__ import annotations

from typing import Any, Callable

import pytest

from scriptrelay.relay.filters import FlatFilter, RoleAwareFilter
from scriptrelay.relay.models import CommandSubmission
from scriptrelay.relay.service import CommandRelay

T0 = 1_700_000_000_000


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, now: int = T0) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


# ---------------------------------------------------------------------------
# Relay Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def relay(clock: FakeClock) -> CommandRelay:
    """A role-aware relay driven by the fake clock."""
    return CommandRelay(visibility=RoleAwareFilter(), clock=clock)


@pytest.fixture
def flat_relay(clock: FakeClock) -> CommandRelay:
    """A relay using the legacy flat targeting."""
    return CommandRelay(visibility=FlatFilter(), clock=clock)


@pytest.fixture
def make_submission(clock: FakeClock) -> Callable[..., CommandSubmission]:
    """Factory for submissions stamped with the fake clock's current time."""

    def _make(
        command: str = "bring",
        sender_id: str = "A",
        sender_name: str | None = "Admin1",
        script_id: str = "s1",
        args: Any = None,
        timestamp: int | None = None,
    ) -> CommandSubmission:
        return CommandSubmission(
            script_id=script_id,
            sender_id=sender_id,
            sender_name=sender_name,
            command=command,
            args=args,
            timestamp=clock.now if timestamp is None else timestamp,
        )

    return _make
