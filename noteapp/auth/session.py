"""
JWT Session Management Module
==============================

Handles creation and verification of the session JWT issued at login and
carried by the browser in the session cookie.

Tokens are HMAC-signed (HS256 by default) with SESSION_JWT_SECRET, so any
process holding the secret can verify them without a database round trip.
Every token carries an ``exp`` claim and expired tokens are rejected.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict

import jwt
from jwt.exceptions import ExpiredSignatureError, InvalidTokenError

from ..config import Settings
from ..errors import InvalidSessionToken

logger = logging.getLogger(__name__)

# Audience of session tokens. Other tokens signed with the same secret (the
# Spotify link state) carry a different one and never pass as a session.
SESSION_AUDIENCE = "noteapp-session"


# =============================================================================
# Token Creation
# =============================================================================

def create_session_jwt(user_id: str, settings: Settings) -> str:
    """
    Create a session JWT bound to ``user_id``.

    Args:
        user_id: Identity of the user that just logged in
        settings: Application settings (secret, algorithm, expiry, issuer)

    Returns:
        Encoded JWT string

    Example:
        >>> token = create_session_jwt("3f0c...", settings)
    """
    if not user_id:
        raise ValueError("user_id is required to issue a session token")

    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "iat": now,
        "exp": now + timedelta(minutes=settings.SESSION_JWT_EXPIRY_MINUTES),
        "iss": settings.SESSION_JWT_ISSUER,
        "aud": SESSION_AUDIENCE,
    }

    token = jwt.encode(
        payload,
        settings.SESSION_JWT_SECRET,
        algorithm=settings.SESSION_JWT_ALGORITHM,
    )

    logger.debug(
        "Created session JWT",
        extra={
            "user_id": user_id,
            "expires_in_minutes": settings.SESSION_JWT_EXPIRY_MINUTES,
        },
    )
    return token


# =============================================================================
# Token Verification
# =============================================================================

def decode_session_jwt(token: str, settings: Settings) -> Dict[str, Any]:
    """
    Verify a session JWT and return its claims.

    Raises:
        InvalidSessionToken: If the token is empty, malformed, mis-signed,
            expired, from another issuer or audience, or has no subject
    """
    if not token:
        logger.warning("Empty token provided for verification")
        raise InvalidSessionToken("No authentication token provided")

    try:
        decoded = jwt.decode(
            token,
            settings.SESSION_JWT_SECRET,
            algorithms=[settings.SESSION_JWT_ALGORITHM],
            issuer=settings.SESSION_JWT_ISSUER,
            audience=SESSION_AUDIENCE,
            options={
                "verify_signature": True,
                "verify_exp": True,
                "verify_iat": True,
                "require": ["exp", "iat", "iss", "aud", "sub"],
            },
        )
    except ExpiredSignatureError:
        logger.info("Session JWT expired")
        raise InvalidSessionToken("Session has expired")
    except InvalidTokenError as e:
        logger.warning(f"Invalid session JWT: {e}")
        raise InvalidSessionToken()

    if not decoded.get("sub"):
        raise InvalidSessionToken()

    return decoded


def verify_session_jwt(token: str, settings: Settings) -> str:
    """
    Verify a session JWT.

    Returns:
        The user id the token was issued for

    Raises:
        InvalidSessionToken: See decode_session_jwt
    """
    claims = decode_session_jwt(token, settings)
    logger.debug("Session JWT verified", extra={"user_id": claims["sub"]})
    return claims["sub"]


__all__ = [
    "SESSION_AUDIENCE",
    "create_session_jwt",
    "decode_session_jwt",
    "verify_session_jwt",
]
