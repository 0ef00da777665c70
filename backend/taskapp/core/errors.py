"""Application error taxonomy. Each error maps to one HTTP status and a client-safe message."""

from __future__ import annotations


class AppError(Exception):
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(AppError):
    status_code = 400
    default_message = "Validation failed"

    def __init__(self, message: str | None = None, field: str | None = None) -> None:
        self.field = field
        super().__init__(message)


class AuthError(AppError):
    status_code = 401
    default_message = "Not authenticated"


class NotFoundError(AppError):
    status_code = 404
    default_message = "Not found"


class ConflictError(AppError):
    status_code = 409
    default_message = "Conflict"


class InternalError(AppError):
    status_code = 500


class InvalidTokenError(Exception):
    """Token is malformed, mis-signed, expired, or of the wrong type."""


class RefreshTokenNotFound(Exception):
    """Refresh token record is missing, expired, revoked, or already consumed."""


class RefreshTokenOwnerMissing(RefreshTokenNotFound):
    """Refresh token was live but its user no longer exists."""
