"""Visibility filters deciding which clients see which commands.

A filter owns both sides of command distribution: on the write path it
turns a submission into an immutable :class:`CommandRecord` with its
targeting metadata baked in, and on the read path it selects the records a
given poller is entitled to see.

Two filters are provided:

- :class:`RoleAwareFilter` -- admins broadcast to alts, alts report back to
  admins. Admin status comes from the :class:`UserRegistry`.
- :class:`FlatFilter` -- the legacy single-tier scheme where only
  ``coordinated`` commands carry a ``targetAlts`` restriction and roles are
  ignored.

Both share the same recency window and never echo a command back to its
own sender.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Iterable

from scriptrelay.errors import ValidationError
from scriptrelay.relay.models import (
    COORDINATED_COMMAND,
    TARGET_ALL,
    CommandRecord,
    CommandSubmission,
    FilterMode,
    Poller,
    sanitize_args,
)
from scriptrelay.relay.registry import UserRegistry

logger = logging.getLogger(__name__)

DEFAULT_POLL_WINDOW_MS = 30_000


class VisibilityFilter(ABC):
    """Abstract targeting policy shared by the write and read paths."""

    mode: FilterMode

    def __init__(self, poll_window_ms: int = DEFAULT_POLL_WINDOW_MS) -> None:
        self._poll_window_ms = poll_window_ms

    @property
    def poll_window_ms(self) -> int:
        return self._poll_window_ms

    @abstractmethod
    def build_record(
        self, submission: CommandSubmission, registry: UserRegistry, timestamp: int
    ) -> CommandRecord:
        """Construct the log record for a (non-register) submission.

        Args:
            submission: The parsed submission.
            registry: Registry used to resolve the sender's admin status.
            timestamp: Effective send time of the command (ms).

        Raises:
            ValidationError: If the submission cannot become a record.
        """
        ...

    @abstractmethod
    def allows(self, record: CommandRecord, poller: Poller) -> bool:
        """Targeting rule applied after the common checks pass."""
        ...

    def resolve_poller(self, poller_id: str, registry: UserRegistry) -> Poller:
        user = registry.get(poller_id)
        if user is None:
            return Poller(sender_id=poller_id)
        return Poller(sender_id=poller_id, display_name=user.sender_name, role=user.role)

    def select(
        self,
        records: Iterable[CommandRecord],
        script_id: str,
        poller: Poller,
        now: int,
    ) -> list[CommandRecord]:
        """Return the records visible to ``poller``, in insertion order."""
        cutoff = now - self._poll_window_ms
        visible = []
        for record in records:
            if record.script_id != script_id:
                continue
            if record.sender_id == poller.sender_id:
                continue
            if record.timestamp < cutoff:
                continue
            if self.allows(record, poller):
                visible.append(record)
        return visible


class RoleAwareFilter(VisibilityFilter):
    """Admin commands go to alts; alt commands go to admins."""

    mode = FilterMode.ROLE

    def build_record(
        self, submission: CommandSubmission, registry: UserRegistry, timestamp: int
    ) -> CommandRecord:
        is_admin = registry.lookup_by_name(submission.sender_name)
        args = sanitize_args(submission.args)
        target = args.get("target") or args.get("targetAlts")
        if target is not None:
            target = str(target)
        elif is_admin:
            target = TARGET_ALL
        return CommandRecord(
            script_id=submission.script_id,
            sender_id=submission.sender_id,
            sender_name=submission.sender_name,
            command=submission.command,
            args=args,
            timestamp=timestamp,
            is_admin_command=is_admin,
            is_coordinated=is_admin,
            target_alts=target,
        )

    def allows(self, record: CommandRecord, poller: Poller) -> bool:
        if record.is_admin_command:
            # Admins never receive admin broadcasts
            if poller.is_admin:
                return False
            if record.has_explicit_target:
                return record.target_alts in (poller.display_name, poller.sender_id)
            return True
        return poller.is_admin


class FlatFilter(VisibilityFilter):
    """Legacy targeting: everyone but the sender, unless a coordinated
    command names a single alt."""

    mode = FilterMode.FLAT

    def build_record(
        self, submission: CommandSubmission, registry: UserRegistry, timestamp: int
    ) -> CommandRecord:
        args = sanitize_args(submission.args)
        coordinated = submission.command == COORDINATED_COMMAND
        target = None
        if coordinated:
            if not args.get("command"):
                raise ValidationError("Invalid coordinated command data")
            target = str(args.get("targetAlts") or TARGET_ALL)
        return CommandRecord(
            script_id=submission.script_id,
            sender_id=submission.sender_id,
            sender_name=submission.sender_name,
            command=submission.command,
            args=args,
            timestamp=timestamp,
            is_coordinated=coordinated,
            target_alts=target,
        )

    def allows(self, record: CommandRecord, poller: Poller) -> bool:
        if record.is_coordinated and record.has_explicit_target:
            return record.target_alts == poller.sender_id
        return True


def create_filter(
    mode: FilterMode | str, poll_window_ms: int = DEFAULT_POLL_WINDOW_MS
) -> VisibilityFilter:
    """Build the visibility filter for ``mode``."""
    mode = FilterMode(mode)
    if mode is FilterMode.FLAT:
        return FlatFilter(poll_window_ms=poll_window_ms)
    return RoleAwareFilter(poll_window_ms=poll_window_ms)
