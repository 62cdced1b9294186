"""Core module for Medilocker.

Error taxonomy and database plumbing shared by every service.
"""

from medilocker.core.exceptions import (
    AuthenticationError,
    AuthorizationError,
    ConfigurationError,
    ConflictError,
    MedilockerError,
    NotFoundError,
    StateError,
    TransientCollaboratorError,
    ValidationError,
)

__all__ = [
    "AuthenticationError",
    "AuthorizationError",
    "ConfigurationError",
    "ConflictError",
    "MedilockerError",
    "NotFoundError",
    "StateError",
    "TransientCollaboratorError",
    "ValidationError",
]
