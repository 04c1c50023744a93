"""
Spotify Web API client.

Reads the user's stored access token and calls api.spotify.com on their
behalf. An expired access token (401) is renewed once with the stored refresh
token and the request retried once; no other retries are made.
"""

import logging
from typing import Any, Dict, Optional

import httpx
from starlette.concurrency import run_in_threadpool

from ..config import Settings
from ..errors import NotLinked, RefreshTokenRevoked, UpstreamProviderError
from ..users.store import CredentialStore
from .oauth import SpotifyOAuth

logger = logging.getLogger(__name__)

API_BASE = "https://api.spotify.com/v1"
RECENTLY_PLAYED_PATH = "me/player/recently-played"


def _to_url(path_or_url: str) -> str:
    return path_or_url if path_or_url.startswith("http") else f"{API_BASE}/{path_or_url.lstrip('/')}"


def format_recent_activity(payload: Dict[str, Any]) -> str:
    """
    Map a recently-played response to ``"<track> by <artist1>, <artist2>"``.

    Returns an empty string when there are no items.
    """
    items = payload.get("items") or []
    if not items:
        return ""

    track = items[0].get("track") or {}
    artists = ", ".join(a.get("name", "") for a in track.get("artists") or [])
    return f"{track.get('name', '')} by {artists}"


class SpotifyClient:
    """
    Downstream gateway to the Spotify Web API.

    Args:
        settings: Application settings (request timeout)
        store: Credential store holding the user's tokens
        oauth: OAuth flow, used to renew an expired access token
        http_client: Shared async HTTP client
    """

    def __init__(
        self,
        settings: Settings,
        store: CredentialStore,
        oauth: SpotifyOAuth,
        http_client: httpx.AsyncClient,
    ):
        self._settings = settings
        self._store = store
        self._oauth = oauth
        self._http = http_client

    async def fetch_recent_activity(self, user_id: str) -> str:
        """
        The track the user most recently listened to, as a display string.

        Raises:
            NotLinked: No Spotify token is stored (no network call is made),
                or Spotify rejected the stored refresh token
            UpstreamProviderError: Spotify answered with a non-success status
        """
        token = await run_in_threadpool(self._store.get_third_party_access_token, user_id)
        if not token:
            raise NotLinked()

        params = {"limit": 1}
        response = await self._get(token, RECENTLY_PLAYED_PATH, params=params)
        if response.status_code == 401:
            logger.info("Spotify access token rejected, refreshing", extra={"user_id": user_id})
            token = await self._renew_access_token(user_id)
            response = await self._get(token, RECENTLY_PLAYED_PATH, params=params)

        if not response.is_success:
            logger.error(
                f"Spotify recently-played returned {response.status_code}: {response.text}",
                extra={"user_id": user_id, "status_code": response.status_code},
            )
            raise UpstreamProviderError("recently-played", response.status_code, response.text)

        try:
            payload = response.json()
        except ValueError as e:
            logger.error("Spotify recently-played returned invalid JSON", extra={"user_id": user_id})
            raise UpstreamProviderError("recently-played", response.status_code) from e

        return format_recent_activity(payload)

    async def _get(self, access_token: str, path_or_url: str, *, params: Optional[dict] = None) -> httpx.Response:
        try:
            return await self._http.get(
                _to_url(path_or_url),
                headers={"Authorization": f"Bearer {access_token}"},
                params=params or {},
                timeout=self._settings.SPOTIFY_HTTP_TIMEOUT_SECONDS,
            )
        except httpx.HTTPError as e:
            logger.error(f"Spotify API request failed: {e}", extra={"path": path_or_url})
            raise UpstreamProviderError(path_or_url) from e

    async def _renew_access_token(self, user_id: str) -> str:
        refresh_token = await run_in_threadpool(self._store.get_third_party_refresh_token, user_id)
        if not refresh_token:
            raise UpstreamProviderError("refresh_token", 401, "no refresh token stored")

        try:
            tokens = await self._oauth.refresh_access_token(refresh_token)
        except RefreshTokenRevoked:
            logger.warning("Spotify refresh token revoked, unlinking", extra={"user_id": user_id})
            await run_in_threadpool(self._store.clear_third_party_tokens, user_id)
            raise NotLinked()

        await run_in_threadpool(
            self._store.set_third_party_tokens,
            user_id,
            tokens.access_token,
            tokens.refresh_token,
            tokens.expires_in,
        )
        return tokens.access_token
