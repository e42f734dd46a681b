"""Registry of script clients and the names authorized as admins."""

from __future__ import annotations

import logging
import threading

from scriptrelay.relay.models import RegisteredUser, Role

logger = logging.getLogger(__name__)


class UserRegistry:
    """Maps sender ids to their registration and tracks admin names.

    Admin status used when a command is written is keyed by display name,
    not by id: any sender whose name was once registered as authorized is
    an admin for write purposes. The authorized-name set only grows.
    """

    def __init__(self) -> None:
        self._users: dict[str, RegisteredUser] = {}
        self._authorized_names: set[str] = set()
        self._lock = threading.Lock()

    def register(
        self,
        sender_id: str,
        script_id: str,
        sender_name: str | None,
        is_authorized: bool,
        timestamp: int,
    ) -> RegisteredUser:
        """Insert or overwrite the registration for ``sender_id``."""
        user = RegisteredUser(
            sender_id=sender_id,
            script_id=script_id,
            sender_name=sender_name,
            is_authorized=is_authorized,
            timestamp=timestamp,
        )
        with self._lock:
            self._users[sender_id] = user
            if is_authorized and sender_name:
                self._authorized_names.add(sender_name)
        logger.info(
            "Registered %s (%s) as %s", sender_name, sender_id, user.role.value
        )
        return user

    def get(self, sender_id: str) -> RegisteredUser | None:
        with self._lock:
            return self._users.get(sender_id)

    def role_of(self, sender_id: str) -> Role:
        user = self.get(sender_id)
        if user is None:
            return Role.UNKNOWN
        return user.role

    def display_name_of(self, sender_id: str) -> str | None:
        user = self.get(sender_id)
        return user.sender_name if user else None

    def lookup_by_name(self, name: str | None) -> bool:
        """Whether ``name`` is in the authorized-name set."""
        if not name:
            return False
        with self._lock:
            return name in self._authorized_names

    def users(self) -> list[RegisteredUser]:
        with self._lock:
            return list(self._users.values())

    @property
    def registered_count(self) -> int:
        with self._lock:
            return len(self._users)

    @property
    def authorized_count(self) -> int:
        with self._lock:
            return len(self._authorized_names)
