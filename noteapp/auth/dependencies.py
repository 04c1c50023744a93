"""
Session gate for protected routes.

``require_session`` is attached as a router-level dependency, so it runs for
every route on the protected router before any handler code (or body parsing)
happens. Handlers read the resolved identity with ``current_user_id``.
"""

import logging

from fastapi import Depends, Request

from ..errors import Unauthorized
from .session import verify_session_jwt

logger = logging.getLogger(__name__)


async def require_session(request: Request) -> str:
    """
    Verify the session cookie and attach the user id to the request.

    Returns:
        The authenticated user id (also stored on ``request.state.user_id``)

    Raises:
        Unauthorized: If the cookie is missing or the token does not verify
    """
    settings = request.app.state.settings
    token = request.cookies.get(settings.SESSION_COOKIE_NAME)
    if not token:
        logger.info(
            "Rejected request without session cookie",
            extra={"path": request.url.path},
        )
        raise Unauthorized()

    user_id = verify_session_jwt(token, settings)
    request.state.user_id = user_id
    return user_id


async def current_user_id(user_id: str = Depends(require_session)) -> str:
    """
    Identity resolved by ``require_session``.

    FastAPI caches dependencies per request, so on the protected router this
    reuses the router-level check instead of verifying the cookie twice.

    Usage in protected routes:
        @protected_router.get("/me")
        async def me(user_id: str = Depends(current_user_id)):
            ...
    """
    return user_id
