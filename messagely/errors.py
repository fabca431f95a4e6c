"""Error kinds raised by the credential, message and session layers."""
from __future__ import annotations


class MessagelyError(Exception):
    """Base class for errors that map onto an HTTP status code."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(MessagelyError):
    """A required field was missing or empty."""

    status_code = 400


class AuthError(MessagelyError):
    """Missing, invalid or unauthorised credentials."""

    status_code = 401


class InvalidCredentialsError(AuthError):
    """Username/password pair rejected at login.

    Rendered as a bad request so that unknown users and wrong passwords look
    the same to the client.
    """

    status_code = 400


class NotFoundError(MessagelyError):
    status_code = 404


class ConflictError(MessagelyError):
    status_code = 409


class StorageError(MessagelyError):
    """Unclassified failure reported by the database driver."""

    status_code = 500


class ConfigurationError(RuntimeError):
    """Raised when the service settings are missing or malformed."""


__all__ = [
    "AuthError",
    "ConfigurationError",
    "ConflictError",
    "InvalidCredentialsError",
    "MessagelyError",
    "NotFoundError",
    "StorageError",
    "ValidationError",
]
