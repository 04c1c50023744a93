"""
Spotify OAuth flow.

This module implements the OAuth 2.0 authorization code flow that links a
logged-in user's account to Spotify:

1. ``authorization_url``: build the accounts.spotify.com/authorize URL
   (the browser performs the redirect)
2. callback: Spotify sends the browser back with ``code`` and ``state``
3. ``exchange_code``: server-to-server POST to the token endpoint
4. ``link_account``: persist access/refresh tokens on the user

The ``state`` parameter is a short-lived JWT signed with the session secret
and bound to the user that started the flow, so a callback can only complete
a link the same user initiated.
"""

import base64
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional
from urllib.parse import urlencode

import httpx
import jwt
from jwt.exceptions import InvalidTokenError
from starlette.concurrency import run_in_threadpool

from ..config import Settings
from ..db import UserRecord
from ..errors import (
    CallbackFailed,
    InvalidOAuthState,
    RefreshTokenRevoked,
    UpstreamProviderError,
)
from ..models import SpotifyTokens
from ..users.store import CredentialStore

logger = logging.getLogger(__name__)

AUTHORIZE_URL = "https://accounts.spotify.com/authorize"
TOKEN_URL = "https://accounts.spotify.com/api/token"

# Read-only access to the listening history; the only scope the app requests.
SCOPE = "user-read-recently-played"

STATE_PURPOSE = "spotify-link"


class SpotifyOAuth:
    """
    Authorization-code flow against accounts.spotify.com.

    Args:
        settings: Application settings (client credentials, redirect URI, secret)
        store: Credential store the linked tokens are written to
        http_client: Shared async HTTP client
    """

    def __init__(self, settings: Settings, store: CredentialStore, http_client: httpx.AsyncClient):
        self._settings = settings
        self._store = store
        self._http = http_client

    # =========================================================================
    # Step 1: authorization redirect
    # =========================================================================

    def authorization_url(self, user_id: str) -> str:
        """
        Build the Spotify authorization URL for ``user_id``.

        Returns the URL only; the caller (a browser) performs the redirect.
        """
        params = {
            "client_id": self._settings.SPOTIFY_CLIENT_ID,
            "response_type": "code",
            "redirect_uri": self._settings.spotify_redirect_uri,
            "scope": SCOPE,
            "state": self.issue_state(user_id),
        }
        return f"{AUTHORIZE_URL}?{urlencode(params)}"

    def issue_state(self, user_id: str) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "sub": user_id,
            "purpose": STATE_PURPOSE,
            "nonce": secrets.token_urlsafe(16),
            "iat": now,
            "exp": now + timedelta(minutes=self._settings.OAUTH_STATE_EXPIRY_MINUTES),
            "iss": self._settings.SESSION_JWT_ISSUER,
            "aud": STATE_PURPOSE,
        }
        return jwt.encode(
            payload,
            self._settings.SESSION_JWT_SECRET,
            algorithm=self._settings.SESSION_JWT_ALGORITHM,
        )

    def verify_state(self, state: Optional[str], user_id: str) -> None:
        """
        Check that ``state`` was issued by this service for ``user_id``.

        Raises:
            InvalidOAuthState: If missing, expired, mis-signed, or issued for
                another user
        """
        if not state:
            raise InvalidOAuthState()

        try:
            claims = jwt.decode(
                state,
                self._settings.SESSION_JWT_SECRET,
                algorithms=[self._settings.SESSION_JWT_ALGORITHM],
                issuer=self._settings.SESSION_JWT_ISSUER,
                audience=STATE_PURPOSE,
                options={"require": ["exp", "iat", "iss", "aud", "sub", "purpose"]},
            )
        except InvalidTokenError as e:
            logger.warning(f"Rejected OAuth state: {e}", extra={"user_id": user_id})
            raise InvalidOAuthState()

        if claims.get("purpose") != STATE_PURPOSE:
            raise InvalidOAuthState()
        if not secrets.compare_digest(str(claims.get("sub")), str(user_id)):
            logger.warning("OAuth state issued for a different user", extra={"user_id": user_id})
            raise InvalidOAuthState()

    # =========================================================================
    # Steps 2-4: callback, exchange, persist
    # =========================================================================

    async def link_account(
        self,
        user_id: str,
        code: Optional[str],
        state: Optional[str],
        error: Optional[str] = None,
    ) -> UserRecord:
        """
        Complete the flow for the authenticated ``user_id``.

        Tokens are written only after a successful exchange, so every failure
        leaves the user's stored tokens untouched.

        Raises:
            CallbackFailed: Spotify returned an error or no code (user declined)
            InvalidOAuthState: State check failed
            UpstreamProviderError: Token exchange failed
        """
        if error or not code:
            logger.info(
                "Spotify callback without authorization code",
                extra={"user_id": user_id, "provider_error": error},
            )
            raise CallbackFailed()

        self.verify_state(state, user_id)

        tokens = await self.exchange_code(code)
        user = await run_in_threadpool(
            self._store.set_third_party_tokens,
            user_id,
            tokens.access_token,
            tokens.refresh_token,
            tokens.expires_in,
        )
        logger.info("Linked Spotify account", extra={"user_id": user_id})
        return user

    async def exchange_code(self, code: str) -> SpotifyTokens:
        """
        Exchange an authorization code for an access/refresh token pair.

        Raises:
            UpstreamProviderError: Non-2xx response, network failure, an
                unusable body, or a body without refresh_token or expires_in
        """
        payload = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self._settings.spotify_redirect_uri,
        }
        tokens = await self._request_tokens("authorization_code", payload)

        # A first grant must carry the full set; only refreshes may omit fields.
        missing = [
            name for name in ("refresh_token", "expires_in")
            if name not in tokens.model_fields_set or not getattr(tokens, name)
        ]
        if missing:
            logger.error(
                f"Spotify code exchange response is missing {', '.join(missing)}",
                extra={"grant_type": "authorization_code"},
            )
            raise UpstreamProviderError("token:authorization_code", 200)
        return tokens

    async def refresh_access_token(self, refresh_token: str) -> SpotifyTokens:
        """
        Obtain a new access token with a stored refresh token.

        Raises:
            RefreshTokenRevoked: Spotify answered ``invalid_grant``
            UpstreamProviderError: Any other failure
        """
        payload = {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
        }
        return await self._request_tokens("refresh_token", payload)

    # =========================================================================
    # Token endpoint
    # =========================================================================

    def _basic_auth_header(self) -> str:
        credentials = f"{self._settings.SPOTIFY_CLIENT_ID}:{self._settings.SPOTIFY_CLIENT_SECRET}"
        return "Basic " + base64.b64encode(credentials.encode()).decode()

    async def _request_tokens(self, grant_type: str, payload: dict) -> SpotifyTokens:
        headers = {
            "Authorization": self._basic_auth_header(),
            "Content-Type": "application/x-www-form-urlencoded",
        }

        try:
            response = await self._http.post(
                TOKEN_URL,
                data=payload,
                headers=headers,
                timeout=self._settings.SPOTIFY_HTTP_TIMEOUT_SECONDS,
            )
        except httpx.HTTPError as e:
            logger.error(
                f"Spotify token request failed: {e}",
                extra={"grant_type": grant_type},
            )
            raise UpstreamProviderError(f"token:{grant_type}") from e

        if not response.is_success:
            logger.error(
                f"Spotify token endpoint returned {response.status_code}: {response.text}",
                extra={"grant_type": grant_type, "status_code": response.status_code},
            )
            if grant_type == "refresh_token" and _is_invalid_grant(response):
                raise RefreshTokenRevoked(f"token:{grant_type}", response.status_code, response.text)
            raise UpstreamProviderError(f"token:{grant_type}", response.status_code, response.text)

        try:
            return SpotifyTokens.model_validate(response.json())
        except ValueError as e:
            logger.error(
                f"Unusable Spotify token response: {e}",
                extra={"grant_type": grant_type},
            )
            raise UpstreamProviderError(f"token:{grant_type}", response.status_code) from e


def _is_invalid_grant(response: httpx.Response) -> bool:
    if response.status_code != 400:
        return False
    try:
        body = response.json()
    except ValueError:
        return False
    return isinstance(body, dict) and body.get("error") == "invalid_grant"
