"""Core Exceptions Module.

This module defines the error taxonomy shared by every Medilocker component.
Callers branch on the exception class; ``code`` is a stable machine-readable
tag for the surrounding service layer.
"""

from typing import Optional


class MedilockerError(Exception):
    """Base exception for all Medilocker errors."""

    default_code = "MEDILOCKER_ERROR"

    def __init__(self, message: str, code: Optional[str] = None):
        """Initialize exception.

        Args:
            message: Error message
            code: Optional error code, defaults to the class code
        """
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code


class ValidationError(MedilockerError):
    """Raised when input is malformed or incomplete."""

    default_code = "VALIDATION_ERROR"


class NotFoundError(MedilockerError):
    """Raised when a record, version, request or profile does not exist."""

    default_code = "NOT_FOUND"


class ConflictError(MedilockerError):
    """Raised when an operation collides with concurrent or existing state."""

    default_code = "CONFLICT"


class AuthenticationError(MedilockerError):
    """Raised when a credential cannot be verified."""

    default_code = "AUTHENTICATION_FAILED"


class AuthorizationError(MedilockerError):
    """Raised when the caller may not perform the operation."""

    default_code = "ACCESS_DENIED"


class StateError(MedilockerError):
    """Raised when the current state forbids a transition."""

    default_code = "INVALID_STATE"


class ConfigurationError(MedilockerError):
    """Raised when configuration is invalid or missing."""

    default_code = "CONFIGURATION_ERROR"


class TransientCollaboratorError(MedilockerError):
    """Raised when a collaborator (store, blob) times out or is unavailable."""

    default_code = "COLLABORATOR_UNAVAILABLE"


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
