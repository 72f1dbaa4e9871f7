"""Domain errors raised by Powerbag services."""

from __future__ import annotations


class PowerbagError(RuntimeError):
    """Base error for content management flows."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(PowerbagError):
    """Raised when a required field is missing or malformed."""

    status_code = 400


class Forbidden(PowerbagError):
    """Raised when the principal lacks ownership or role."""

    status_code = 403


class NotFound(PowerbagError):
    """Raised when a referenced entity cannot be located."""

    status_code = 404


class Conflict(PowerbagError):
    """Raised when a name or title is already taken."""

    status_code = 409


class StorageFailure(PowerbagError):
    """Raised when the blob store rejects a put or delete."""

    status_code = 500
