"""Command relay core: the command log, user registry and visibility filters."""

from scriptrelay.relay.filters import (
    FlatFilter,
    RoleAwareFilter,
    VisibilityFilter,
    create_filter,
)
from scriptrelay.relay.log import CommandLog
from scriptrelay.relay.models import (
    CommandRecord,
    CommandSubmission,
    FilterMode,
    RegisteredUser,
    Role,
)
from scriptrelay.relay.registry import UserRegistry
from scriptrelay.relay.service import CommandRelay

__all__ = [
    "CommandLog",
    "CommandRecord",
    "CommandRelay",
    "CommandSubmission",
    "FilterMode",
    "FlatFilter",
    "RegisteredUser",
    "Role",
    "RoleAwareFilter",
    "UserRegistry",
    "VisibilityFilter",
    "create_filter",
]
