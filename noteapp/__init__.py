"""
noteapp: account, session and Spotify-linking API for the notes application.

Packages:
- auth: Session JWTs and the protected-route gate
- users: Credential store and /users routes
- spotify: OAuth linking flow and Web API client
"""

__version__ = "1.0.0"
