"""Domain models, error taxonomy and catalog configuration."""

from pmiprep.core.errors import (
    AuthorizationError,
    ConfigurationError,
    CooldownActiveError,
    NotFoundError,
    PrepError,
    TransientRemoteError,
    ValidationError,
)

__all__ = [
    "AuthorizationError",
    "ConfigurationError",
    "CooldownActiveError",
    "NotFoundError",
    "PrepError",
    "TransientRemoteError",
    "ValidationError",
]
