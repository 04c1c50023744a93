"""
Error taxonomy for the notes API.

Every failure the service reports on purpose is an AppError carrying the
HTTP status code and the message that is safe to show the client. The
application installs one exception handler for AppError (see main.py), so
services raise these and routes do not build error responses by hand.
"""

from fastapi import status


class AppError(Exception):
    """Base class for errors rendered as ``{"message": ...}`` responses."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    message = "internal server error"

    def __init__(self, message: str | None = None):
        if message is not None:
            self.message = message
        super().__init__(self.message)


# =============================================================================
# Request / account errors
# =============================================================================

class ValidationError(AppError):
    """A required request field is missing, empty or malformed."""

    status_code = status.HTTP_400_BAD_REQUEST

    @classmethod
    def missing(cls, field: str) -> "ValidationError":
        return cls(f"{field} must be provided")


class DuplicateEmail(AppError):
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, email: str):
        super().__init__(f"email '{email}' already exists")


class AuthMismatch(AppError):
    """
    Login failed.

    Unknown email and wrong password share this one message so the response
    does not reveal which accounts exist.
    """

    status_code = status.HTTP_400_BAD_REQUEST
    message = "password and email do not match"


class NotFound(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    message = "user not found"


# =============================================================================
# Session errors
# =============================================================================

class Unauthorized(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    message = "authentication required"


class InvalidSessionToken(Unauthorized):
    message = "invalid or expired session"


# =============================================================================
# Spotify linking errors
# =============================================================================

class CallbackFailed(AppError):
    """The provider redirected back without an authorization code."""

    message = "User did not grant access"


class InvalidOAuthState(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    message = "invalid oauth state"


class NotLinked(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    message = "spotify account is not linked"


class UpstreamProviderError(AppError):
    """
    Spotify answered with a non-success status.

    ``provider_status`` and ``provider_body`` are kept for logging only; the
    client always sees the generic message.
    """

    def __init__(self, operation: str, provider_status: int | None = None, provider_body: str = ""):
        self.operation = operation
        self.provider_status = provider_status
        self.provider_body = provider_body
        super().__init__()


class RefreshTokenRevoked(UpstreamProviderError):
    """Spotify rejected the stored refresh token (``invalid_grant``)."""


__all__ = [
    "AppError",
    "ValidationError",
    "DuplicateEmail",
    "AuthMismatch",
    "NotFound",
    "Unauthorized",
    "InvalidSessionToken",
    "CallbackFailed",
    "InvalidOAuthState",
    "NotLinked",
    "UpstreamProviderError",
    "RefreshTokenRevoked",
]
