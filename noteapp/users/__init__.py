"""
Users Package

Account registration, login, profile, and the Spotify linking endpoints.

Modules:
- store: Credential store (accounts, password verification, Spotify tokens)
- routes: /users endpoints, split into a public and a session-protected router

The routers are imported from ``noteapp.users.routes`` directly; importing them
here would make the Spotify package (which needs the store) circular.
"""

from .store import CredentialStore

__all__ = ["CredentialStore"]
