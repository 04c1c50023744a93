"""
Configuration module for the notes API.

This module uses Pydantic Settings to load and validate environment variables
for Spotify OAuth, session JWT management, persistence and CORS settings.

Environment variables are loaded from .env file or system environment. The
resulting Settings instance is frozen: it is built once at startup and passed
explicitly to the session service, the OAuth controller and the Spotify client.
"""

from functools import lru_cache
from typing import List, Optional
from urllib.parse import urlparse

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All configuration for Spotify OAuth, session JWTs, the credential store
    and the HTTP server is defined here.
    """

    # =========================================================================
    # Spotify OAuth Configuration
    # =========================================================================

    SPOTIFY_CLIENT_ID: str = Field(
        ...,
        description="Spotify application client ID",
        min_length=1,
    )

    SPOTIFY_CLIENT_SECRET: str = Field(
        ...,
        description="Spotify application client secret",
        min_length=1,
    )

    SPOTIFY_HTTP_TIMEOUT_SECONDS: float = Field(
        default=10.0,
        description="Timeout for outbound calls to Spotify, in seconds",
        gt=0,
        le=120,
    )

    OAUTH_STATE_EXPIRY_MINUTES: int = Field(
        default=10,
        description="Lifetime of the signed OAuth state parameter in minutes",
        ge=1,
        le=60,
    )

    # =========================================================================
    # Public URLs
    # =========================================================================

    PUBLIC_BASE_URL: str = Field(
        default="http://localhost:8080",
        description="Externally reachable base URL of this service (used to build the Spotify callback URL)",
        min_length=1,
    )

    API_PREFIX: str = Field(
        default="/api",
        description="Path prefix under which the API routers are mounted",
    )

    HOME_REDIRECT_URL: str = Field(
        default="http://localhost:3000",
        description="Front-end URL the browser is sent to after linking Spotify",
        min_length=1,
    )

    # =========================================================================
    # Session JWT Configuration
    # =========================================================================

    SESSION_JWT_SECRET: str = Field(
        ...,
        description="Secret key for signing session JWTs (must be cryptographically secure)",
        min_length=32,
    )

    SESSION_JWT_ALGORITHM: str = Field(
        default="HS256",
        description="JWT signing algorithm (HS256, HS384, or HS512)",
    )

    SESSION_JWT_EXPIRY_MINUTES: int = Field(
        default=1440,
        description="Session JWT expiry time in minutes",
        ge=5,
        le=10080,  # Max 7 days
    )

    SESSION_JWT_ISSUER: str = Field(
        default="noteapp",
        description="Issuer claim written into and required on session JWTs",
    )

    SESSION_COOKIE_NAME: str = Field(
        default="token",
        description="Name of the cookie that carries the session JWT",
        min_length=1,
    )

    SESSION_COOKIE_SECURE: bool = Field(
        default=False,
        description="Mark the session cookie Secure (enable behind HTTPS)",
    )

    # =========================================================================
    # Credential Store Configuration
    # =========================================================================

    DATABASE_URL: str = Field(
        default="sqlite:///./noteapp.db",
        description="SQLAlchemy database URL for the credential store",
    )

    BCRYPT_ROUNDS: int = Field(
        default=12,
        description="bcrypt cost factor for password hashing",
        ge=4,
        le=16,
    )

    # =========================================================================
    # Server Configuration
    # =========================================================================

    HOST: str = Field(
        default="0.0.0.0",
        description="Host to bind the API server",
    )

    PORT: int = Field(
        default=8080,
        description="Port to bind the API server",
        ge=1,
        le=65535,
    )

    ALLOWED_ORIGINS: Optional[str] = Field(
        None,
        description="Comma-separated list of allowed CORS origins (leave empty for no CORS)",
    )

    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
        frozen=True,
    )

    # =========================================================================
    # Computed Properties
    # =========================================================================

    @property
    def allowed_origins_list(self) -> List[str]:
        """
        Parse and return ALLOWED_ORIGINS as a list.

        Returns:
            List of allowed origin URLs, or empty list if not configured.
        """
        if not self.ALLOWED_ORIGINS:
            return []

        return [
            origin.strip()
            for origin in self.ALLOWED_ORIGINS.split(",")
            if origin.strip()
        ]

    @property
    def spotify_redirect_uri(self) -> str:
        """
        The callback URL registered with Spotify.

        Both the authorization redirect and the code exchange must send this
        exact value.
        """
        base = self.PUBLIC_BASE_URL.rstrip("/")
        return f"{base}{self.API_PREFIX}/users/spotify-auth-callback"

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("SESSION_JWT_ALGORITHM")
    @classmethod
    def validate_jwt_algorithm(cls, v: str) -> str:
        """
        Validate JWT algorithm is one of the supported HMAC algorithms.

        Raises:
            ValueError: If algorithm is not supported
        """
        allowed_algorithms = ["HS256", "HS384", "HS512"]

        if v not in allowed_algorithms:
            raise ValueError(
                f"JWT algorithm must be one of {allowed_algorithms}, got: {v}"
            )

        return v

    @field_validator("API_PREFIX")
    @classmethod
    def normalize_api_prefix(cls, v: str) -> str:
        v = v.strip().rstrip("/")
        if v and not v.startswith("/"):
            v = "/" + v
        return v

    @field_validator("PUBLIC_BASE_URL", "HOME_REDIRECT_URL")
    @classmethod
    def validate_http_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"Expected an http(s) URL, got: {v}")
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        v = v.upper()
        if v not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Invalid log level: {v}")
        return v


# A 32+ character secret built from fewer symbols than this is almost
# certainly a placeholder.
MIN_SECRET_DISTINCT_CHARS = 8

LOOPBACK_HOSTS = ("localhost", "127.0.0.1", "::1")


# =============================================================================
# Settings Singleton
# =============================================================================

@lru_cache()
def get_settings() -> Settings:
    """
    Get or create a singleton Settings instance.

    Cached so that settings are loaded and validated only once during the
    application lifecycle.

    Raises:
        ValidationError: If required environment variables are missing
                        or invalid.
    """
    return Settings()


def validate_configuration(settings: Settings) -> dict:
    """
    Validate critical configuration settings and return a status report.

    Called during application startup; errors and warnings are logged.

    Example:
        >>> status = validate_configuration(get_settings())
        >>> if not status["valid"]:
        ...     print(status["errors"])
    """
    errors = []
    warnings = []

    redirect = urlparse(settings.spotify_redirect_uri)
    if redirect.scheme != "https" and redirect.hostname not in LOOPBACK_HOSTS:
        errors.append("Spotify only accepts plain http redirect URIs on loopback hosts; PUBLIC_BASE_URL must use https")

    if len(set(settings.SESSION_JWT_SECRET)) < MIN_SECRET_DISTINCT_CHARS:
        warnings.append("SESSION_JWT_SECRET has very few distinct characters (low entropy)")

    if settings.PUBLIC_BASE_URL.startswith("https://") and not settings.SESSION_COOKIE_SECURE:
        warnings.append("Service is served over HTTPS but SESSION_COOKIE_SECURE is off")

    if settings.DATABASE_URL.startswith("sqlite"):
        warnings.append("Credential store uses SQLite (not suitable for multiple workers)")

    if settings.BCRYPT_ROUNDS < 10:
        warnings.append("BCRYPT_ROUNDS is below 10 (only suitable for tests)")

    return {
        "valid": len(errors) == 0,
        "errors": errors,
        "warnings": warnings,
        "spotify_redirect_uri": settings.spotify_redirect_uri,
        "jwt_expiry_minutes": settings.SESSION_JWT_EXPIRY_MINUTES,
    }
