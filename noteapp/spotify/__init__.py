"""
Spotify Package

Modules:
- oauth: Authorization-code flow (authorization URL, state, code exchange, refresh)
- client: Web API gateway used for the "listening to" lookup
"""

from .client import SpotifyClient
from .oauth import SpotifyOAuth

__all__ = ["SpotifyClient", "SpotifyOAuth"]
