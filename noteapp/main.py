"""
FastAPI Application Factory
===========================

Entry point for the notes API: accounts, session cookies, and Spotify
linking for the "what was I listening to" note field.

Routers:
    - {API_PREFIX}/users/*  : registration, login, profile, Spotify linking
    - /health               : Health check endpoint

Environment Variables Required:
    - SPOTIFY_CLIENT_ID: Spotify application client ID
    - SPOTIFY_CLIENT_SECRET: Spotify application client secret
    - SESSION_JWT_SECRET: Secret for signing session JWTs (32+ characters)
    - PUBLIC_BASE_URL: Base URL Spotify redirects back to (default: http://localhost:8080)
    - HOME_REDIRECT_URL: Front-end URL after linking (default: http://localhost:3000)
    - DATABASE_URL: SQLAlchemy URL (default: sqlite:///./noteapp.db)
    - LOG_LEVEL: Logging level (default: INFO)

Running the Service:
    Development:
        uvicorn noteapp.main:create_app --factory --reload --host 0.0.0.0 --port 8080

    Production:
        uvicorn noteapp.main:create_app --factory --host 0.0.0.0 --port 8080 --workers 4
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Dict, Optional

import httpx
import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .config import Settings, get_settings, validate_configuration
from .db import init_db, make_engine, make_session_factory
from .errors import AppError, UpstreamProviderError
from .spotify.client import SpotifyClient
from .spotify.oauth import SpotifyOAuth
from .users.routes import protected_router, public_router
from .users.store import CredentialStore

logger = logging.getLogger("noteapp.main")


def setup_logging(log_level: str = "INFO") -> None:
    """
    Configure structured logging for the application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format='{"timestamp": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", "message": "%(message)s", "module": "%(module)s", "function": "%(funcName)s"}',
        handlers=[logging.StreamHandler(sys.stdout)],
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Startup tasks:
        - Validate configuration and log warnings
        - Create missing database tables

    Shutdown tasks:
        - Close the shared HTTP client (when the app created it)
        - Dispose of the database engine
    """
    settings: Settings = app.state.settings

    status_report = validate_configuration(settings)
    for error in status_report["errors"]:
        logger.error(f"Configuration error: {error}")
    for warning in status_report["warnings"]:
        logger.warning(f"Configuration warning: {warning}")

    init_db(app.state.engine)

    logger.info(
        "Notes API started",
        extra={
            "version": __version__,
            "spotify_redirect_uri": settings.spotify_redirect_uri,
        },
    )

    yield

    logger.info("Shutting down notes API")
    if app.state.owns_http_client:
        await app.state.http_client.aclose()
    app.state.engine.dispose()
    logger.info("Notes API shutdown complete")


def create_app(
    settings: Optional[Settings] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> FastAPI:
    """
    Application factory function.

    Builds the credential store, Spotify OAuth controller and Spotify client
    from one Settings instance and exposes them on ``app.state``.

    Args:
        settings: Settings to use; defaults to get_settings()
        http_client: Client for outbound Spotify calls; the app creates (and
            later closes) its own when omitted

    Returns:
        FastAPI: Configured application instance
    """
    settings = settings or get_settings()
    setup_logging(settings.LOG_LEVEL)

    app = FastAPI(
        title="Notes API",
        description="Accounts, sessions and Spotify linking for the notes app",
        version=__version__,
        lifespan=lifespan,
    )

    engine = make_engine(settings.DATABASE_URL)
    store = CredentialStore(make_session_factory(engine), bcrypt_rounds=settings.BCRYPT_ROUNDS)

    owns_http_client = http_client is None
    if http_client is None:
        http_client = httpx.AsyncClient(timeout=settings.SPOTIFY_HTTP_TIMEOUT_SECONDS)

    spotify_oauth = SpotifyOAuth(settings, store, http_client)

    app.state.settings = settings
    app.state.engine = engine
    app.state.store = store
    app.state.http_client = http_client
    app.state.owns_http_client = owns_http_client
    app.state.spotify_oauth = spotify_oauth
    app.state.spotify_client = SpotifyClient(settings, store, spotify_oauth, http_client)

    if settings.allowed_origins_list:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.allowed_origins_list,
            allow_credentials=True,
            allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
            allow_headers=["*"],
        )

    app.include_router(public_router, prefix=settings.API_PREFIX)
    app.include_router(protected_router, prefix=settings.API_PREFIX)

    @app.get("/health", tags=["System"])
    async def health_check() -> Dict[str, str]:
        return {
            "status": "ok",
            "service": "noteapp",
            "version": __version__,
        }

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
        if isinstance(exc, UpstreamProviderError):
            # Provider detail stays in the log; the client gets the generic message.
            logger.error(
                f"Spotify {exc.operation} failed with status {exc.provider_status}",
                extra={
                    "path": request.url.path,
                    "provider_status": exc.provider_status,
                },
            )
        return JSONResponse(status_code=exc.status_code, content={"message": exc.message})

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        logger.info("Rejected malformed request body", extra={"path": request.url.path})
        return JSONResponse(status_code=400, content={"message": "invalid request body"})

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error(
            f"Unhandled exception: {str(exc)}",
            extra={
                "path": request.url.path,
                "method": request.method,
                "exception_type": type(exc).__name__,
            },
            exc_info=True,
        )
        return JSONResponse(status_code=500, content={"message": "internal server error"})

    return app


if __name__ == "__main__":
    settings = get_settings()

    uvicorn.run(
        "noteapp.main:create_app",
        factory=True,
        host=settings.HOST,
        port=settings.PORT,
        log_level=settings.LOG_LEVEL.lower(),
    )
