"""Error types raised at the relay's request boundary.

The relay core itself never fails; these errors are raised while a request
is being authenticated or validated, or when something unexpected breaks
while it is being handled. Each carries the HTTP status it maps to.
"""

from __future__ import annotations


class RelayError(Exception):
    """Base class for errors reported back to a relay caller."""

    status_code: int = 500

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class AuthenticationError(RelayError):
    """Raised when a shared secret is required and missing or wrong."""

    status_code = 401


class ValidationError(RelayError):
    """Raised when a request lacks a required field or is malformed."""

    status_code = 400


class InternalError(RelayError):
    """Raised when request handling fails unexpectedly."""

    status_code = 500
