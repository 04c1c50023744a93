"""
Data Models Module

Pydantic models for request/response validation and for the Spotify token
payload.

Models are organized by functional area:
- Account models (registration, login, profile)
- Spotify models (token responses, linking responses)
- Error models
"""

from typing import Optional

from pydantic import BaseModel, Field

from .errors import ValidationError


# ============================================================================
# Account Models
# ============================================================================

class _RequiredFieldsModel(BaseModel):
    """
    Request body whose fields are all required and non-empty.

    Fields are declared Optional so a missing field reaches the handler and is
    reported as ``"<field> must be provided"`` (400) instead of FastAPI's
    generic 422.
    """

    def require(self) -> None:
        """
        Raises:
            ValidationError: For the first missing or empty field, in declaration order
        """
        for name in type(self).model_fields:
            value = getattr(self, name)
            if value is None or value == "":
                raise ValidationError.missing(name)


class RegisterRequest(_RequiredFieldsModel):
    """Request model for creating an account."""
    email: Optional[str] = Field(None, description="Login email (stored as given)")
    password: Optional[str] = Field(None, description="Plain-text password, hashed before storage")
    firstName: Optional[str] = Field(None, description="Given name")
    lastName: Optional[str] = Field(None, description="Family name")


class LoginRequest(_RequiredFieldsModel):
    """Request model for logging in."""
    email: Optional[str] = Field(None, description="Login email")
    password: Optional[str] = Field(None, description="Plain-text password")


class CreatedUser(BaseModel):
    id: str = Field(..., description="Identifier of the new account")


class CreatedUserResponse(BaseModel):
    data: CreatedUser


class UserProfile(BaseModel):
    """Profile returned by GET /users/me."""
    id: str = Field(..., description="Unique user identifier")
    firstName: str = Field(..., description="Given name")
    lastName: str = Field(..., description="Family name")
    email: str = Field(..., description="Login email")
    spotifyEnabled: bool = Field(..., description="Whether a Spotify account is linked")


class UserProfileResponse(BaseModel):
    data: UserProfile


# ============================================================================
# Spotify Models
# ============================================================================

class SpotifyTokens(BaseModel):
    """Token endpoint response from accounts.spotify.com."""
    access_token: str = Field(..., min_length=1, description="Bearer token for the Web API")
    token_type: str = Field(default="Bearer", description="Token type")
    expires_in: int = Field(default=3600, description="Access token lifetime in seconds")
    refresh_token: Optional[str] = Field(None, description="Refresh token (may be omitted on refresh)")
    scope: Optional[str] = Field(None, description="Granted scopes")


class ConnectSpotifyResponse(BaseModel):
    redirectTo: str = Field(..., description="Spotify authorization URL the browser should open")


class ListeningToResponse(BaseModel):
    data: str = Field(..., description="'<track> by <artists>' or an empty string")


# ============================================================================
# Error Models
# ============================================================================

class ErrorResponse(BaseModel):
    """Error body returned for every handled failure."""
    message: str = Field(..., description="Human-readable error message")
