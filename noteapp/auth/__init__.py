"""
Authentication Package

Session handling for the notes API.

Modules:
- session: Session JWT creation and validation
- dependencies: The ``require_session`` gate used by every protected router

The session flow:
1. Client logs in via POST /users/login
2. The service issues a session JWT in the ``token`` cookie
3. Protected routes verify the cookie before any handler runs
"""

from .dependencies import current_user_id, require_session
from .session import create_session_jwt, verify_session_jwt

__all__ = [
    "create_session_jwt",
    "current_user_id",
    "require_session",
    "verify_session_jwt",
]
