"""
Error taxonomy for the pmi-prep core.

- ConfigurationError: backend capability unavailable, fail fast
- NotFoundError: first-use state (no profile, enrollment, progress yet)
- ValidationError: bad input or forbidden transition, nothing written
- ConflictError: a document with that id already exists
- TransientRemoteError: network/backend failure
- AuthorizationError: admin capability required
"""

from __future__ import annotations

from datetime import datetime


class PrepError(Exception):
    """Base class for all pmi-prep errors."""


class ConfigurationError(PrepError):
    """Raised when a required backend capability is not configured."""


class NotFoundError(PrepError):
    """Raised when a document does not exist yet."""

    def __init__(self, message: str, collection: str | None = None, key: str | None = None):
        super().__init__(message)
        self.collection = collection
        self.key = key


class ValidationError(PrepError):
    """Raised when input or a state transition is rejected."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field


class ConflictError(ValidationError):
    """Raised when creating a document whose id is already taken."""

    def __init__(self, message: str, collection: str | None = None, key: str | None = None):
        super().__init__(message, field="$id")
        self.collection = collection
        self.key = key


class CooldownActiveError(ValidationError):
    """Re-enrollment attempted while an unenrollment cooldown is running."""

    def __init__(self, certification: str, remaining_days: int, cooldown_ends_at: datetime):
        super().__init__(
            f"Re-enrollment in {certification} is blocked for {remaining_days} more day(s)",
            field="certification",
        )
        self.certification = certification
        self.remaining_days = remaining_days
        self.cooldown_ends_at = cooldown_ends_at


class TransientRemoteError(PrepError):
    """Raised when the remote backend fails (network, 5xx, timeouts)."""

    def __init__(self, message: str, operation: str | None = None, status_code: int | None = None):
        super().__init__(message)
        self.operation = operation
        self.status_code = status_code


class AuthorizationError(PrepError):
    """Raised when a caller lacks the capability for an operation."""
