from fastapi import Request

from .config import Settings
from .spotify.client import SpotifyClient
from .spotify.oauth import SpotifyOAuth
from .users.store import CredentialStore


def get_app_settings(request: Request) -> Settings:
    """Settings the running application was built with (see create_app)."""
    return request.app.state.settings


def get_store(request: Request) -> CredentialStore:
    return request.app.state.store


def get_spotify_oauth(request: Request) -> SpotifyOAuth:
    return request.app.state.spotify_oauth


def get_spotify_client(request: Request) -> SpotifyClient:
    return request.app.state.spotify_client
