"""Core data models for the command relay.

These models represent what flows through the relay: the parsed command
submissions handed in by the transport, the immutable records kept in the
command log, and the users known to the registry. All models use Pydantic v2
and serialize with the camelCase keys script clients expect.
"""

from __future__ import annotations

import enum
import time
import uuid
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# Receiver-side command that updates the registry instead of entering the log
REGISTER_COMMAND = "register"

# Flat-mode command carrying targeting metadata in its args
COORDINATED_COMMAND = "coordinated"

# Broadcast target
TARGET_ALL = "all"

# Keys kept from a command's args; anything else is dropped before storage
ALLOWED_ARG_KEYS = (
    "command",
    "args",
    "targetAlts",
    "target",
    "mainUser",
    "commandId",
    "timestamp",
)


def now_ms() -> int:
    """Current wall-clock time in milliseconds since the epoch."""
    return int(time.time() * 1000)


def new_record_id() -> str:
    return uuid.uuid4().hex


def sanitize_args(data: Any) -> dict[str, Any]:
    """Return only the allow-listed keys of a command's args."""
    if not isinstance(data, dict):
        return {}
    return {key: data[key] for key in ALLOWED_ARG_KEYS if data.get(key) is not None}


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class Role(str, enum.Enum):
    """Role of a script client as known to the registry."""

    ADMIN = "admin"
    ALT = "alt"
    UNKNOWN = "unknown"  # Never registered; treated as an alt

    @property
    def is_admin(self) -> bool:
        return self is Role.ADMIN


class FilterMode(str, enum.Enum):
    """Which targeting layer decides command visibility."""

    ROLE = "role"  # Admin/alt aware, registry backed
    FLAT = "flat"  # Legacy coordinated-command targeting only


# ---------------------------------------------------------------------------
# Relay Models
# ---------------------------------------------------------------------------


class CommandSubmission(BaseModel):
    """A parsed command submission as delivered by the transport."""

    model_config = ConfigDict(frozen=True)

    script_id: str
    sender_id: str
    sender_name: str | None = None
    command: str
    args: Any = None
    timestamp: int | None = Field(
        default=None, description="Client send time (ms since epoch)"
    )


class CommandRecord(BaseModel):
    """A command stored in the log. Never mutated once appended."""

    model_config = ConfigDict(
        frozen=True, alias_generator=to_camel, populate_by_name=True
    )

    id: str = Field(default_factory=new_record_id)
    script_id: str
    sender_id: str
    sender_name: str | None = None
    command: str
    args: dict[str, Any] = Field(default_factory=dict)
    timestamp: int = Field(description="Client send time used for recency (ms)")
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Server receipt time",
    )
    is_admin_command: bool = False
    is_coordinated: bool = False
    target_alts: str | None = Field(
        default=None, description="'all', a recipient id or display name, or None"
    )

    @property
    def has_explicit_target(self) -> bool:
        return self.target_alts is not None and self.target_alts != TARGET_ALL

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class RegisteredUser(BaseModel):
    """A script client that announced itself with a register command."""

    model_config = ConfigDict(
        frozen=True, alias_generator=to_camel, populate_by_name=True
    )

    sender_id: str
    script_id: str
    sender_name: str | None = None
    is_authorized: bool = False
    timestamp: int = Field(description="Registration time (ms since epoch)")

    @property
    def role(self) -> Role:
        return Role.ADMIN if self.is_authorized else Role.ALT


class Poller(BaseModel):
    """The identity and role of a client polling for commands."""

    model_config = ConfigDict(frozen=True)

    sender_id: str
    display_name: str | None = None
    role: Role = Role.UNKNOWN

    @property
    def is_admin(self) -> bool:
        return self.role.is_admin


class SubmitOutcome(BaseModel):
    """Result of handing a submission to the relay."""

    message: str
    record: CommandRecord | None = None
    user: RegisteredUser | None = None

    @property
    def is_registration(self) -> bool:
        return self.user is not None
