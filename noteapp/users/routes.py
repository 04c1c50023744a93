"""
User routes.

Two routers share the ``/users`` prefix:

- ``public_router``: registration and login, no session required
- ``protected_router``: every route requires a valid session cookie; the
  ``require_session`` gate is attached to the router itself so a handler
  added here cannot skip it

Endpoints:
----------
- POST /users                        : create an account
- POST /users/login                  : verify credentials, set session cookie
- GET  /users/me                     : profile of the logged-in user
- GET  /users/connect-spotify        : Spotify authorization URL
- GET  /users/spotify-auth-callback  : Spotify redirect target, links the account
- GET  /users/listening-to           : most recently played track
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from fastapi.responses import RedirectResponse
from starlette.concurrency import run_in_threadpool

from ..auth.dependencies import current_user_id, require_session
from ..auth.session import create_session_jwt
from ..config import Settings
from ..dependencies import get_app_settings, get_spotify_client, get_spotify_oauth, get_store
from ..errors import AuthMismatch
from ..models import (
    ConnectSpotifyResponse,
    CreatedUserResponse,
    ErrorResponse,
    ListeningToResponse,
    LoginRequest,
    RegisterRequest,
    UserProfileResponse,
)
from ..spotify.client import SpotifyClient
from ..spotify.oauth import SpotifyOAuth
from .store import CredentialStore

logger = logging.getLogger(__name__)

public_router = APIRouter(
    prefix="/users",
    tags=["users"],
    responses={400: {"model": ErrorResponse}},
)

protected_router = APIRouter(
    prefix="/users",
    tags=["users"],
    dependencies=[Depends(require_session)],
    responses={401: {"model": ErrorResponse}},
)


# ============================================================================
# Public Endpoints
# ============================================================================

@public_router.post("", response_model=CreatedUserResponse)
async def create_user(
    body: Optional[RegisterRequest] = None,
    store: CredentialStore = Depends(get_store),
):
    """
    Register a new account.

    Returns:
        ``{"data": {"id": ...}}``

    Raises:
        ValidationError: A field is missing or empty (400)
        DuplicateEmail: The email is already registered (400)
    """
    body = body or RegisterRequest()
    body.require()

    user = await run_in_threadpool(
        store.create_account,
        body.email,
        body.password,
        body.firstName,
        body.lastName,
    )
    return {"data": {"id": user.id}}


@public_router.post("/login")
async def login(
    response: Response,
    body: Optional[LoginRequest] = None,
    store: CredentialStore = Depends(get_store),
    settings: Settings = Depends(get_app_settings),
):
    """
    Verify email and password and set the session cookie.

    Unknown email and wrong password produce the same 400 response.
    """
    body = body or LoginRequest()
    body.require()

    user = await run_in_threadpool(store.find_by_email, body.email)
    matched = await run_in_threadpool(store.verify_credential, user, body.password)
    if not matched:
        logger.info("Failed login attempt")
        raise AuthMismatch()

    token = create_session_jwt(user.id, settings)
    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=token,
        max_age=settings.SESSION_JWT_EXPIRY_MINUTES * 60,
        httponly=True,
        samesite="lax",
        secure=settings.SESSION_COOKIE_SECURE,
    )
    logger.info("User logged in", extra={"user_id": user.id})
    return {}


# ============================================================================
# Protected Endpoints
# ============================================================================

@protected_router.get("/me", response_model=UserProfileResponse)
async def me(
    user_id: str = Depends(current_user_id),
    store: CredentialStore = Depends(get_store),
):
    user = await run_in_threadpool(store.find_by_id, user_id)
    return {
        "data": {
            "id": user.id,
            "firstName": user.first_name,
            "lastName": user.last_name,
            "email": user.email,
            "spotifyEnabled": user.spotify_enabled,
        }
    }


@protected_router.get("/connect-spotify", response_model=ConnectSpotifyResponse)
async def connect_spotify(
    user_id: str = Depends(current_user_id),
    oauth: SpotifyOAuth = Depends(get_spotify_oauth),
):
    """
    Return the Spotify authorization URL.

    The front end navigates the browser there; Spotify later redirects back
    to /users/spotify-auth-callback.
    """
    return {"redirectTo": oauth.authorization_url(user_id)}


@protected_router.get("/spotify-auth-callback")
async def spotify_auth_callback(
    code: Optional[str] = Query(None, description="Authorization code from Spotify"),
    state: Optional[str] = Query(None, description="State parameter issued by /connect-spotify"),
    error: Optional[str] = Query(None, description="Error code if the user declined"),
    user_id: str = Depends(current_user_id),
    oauth: SpotifyOAuth = Depends(get_spotify_oauth),
    settings: Settings = Depends(get_app_settings),
):
    """
    Spotify redirect target.

    Exchanges the code, stores the tokens on the logged-in user, then sends
    the browser back to the front end.
    """
    await oauth.link_account(user_id, code=code, state=state, error=error)
    return RedirectResponse(url=settings.HOME_REDIRECT_URL, status_code=302)


@protected_router.get("/listening-to", response_model=ListeningToResponse)
async def listening_to(
    user_id: str = Depends(current_user_id),
    spotify: SpotifyClient = Depends(get_spotify_client),
):
    """The track the user most recently played on Spotify."""
    return {"data": await spotify.fetch_recent_activity(user_id)}
