"""
Shared fixtures for the notes API tests.

Spotify is replaced by ``FakeSpotify``, an httpx MockTransport handler that
records every outbound request and answers from queued responses, so no test
touches the network.
"""

from typing import List

import httpx
import pytest
from fastapi.testclient import TestClient

from noteapp.auth.session import create_session_jwt
from noteapp.config import Settings
from noteapp.db import init_db, make_engine, make_session_factory
from noteapp.main import create_app
from noteapp.users.store import CredentialStore

TEST_SESSION_SECRET = "test-session-secret-0123456789abcdef"


class FakeSpotify:
    """Records requests to Spotify and replies with queued responses."""

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.token_responses: List[httpx.Response] = []
        self.api_responses: List[httpx.Response] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.host == "accounts.spotify.com":
            queue = self.token_responses
        else:
            queue = self.api_responses
        if not queue:
            raise AssertionError(f"Unexpected Spotify request: {request.method} {request.url}")
        return queue.pop(0)

    @property
    def token_requests(self) -> List[httpx.Request]:
        return [r for r in self.requests if r.url.host == "accounts.spotify.com"]

    @property
    def api_requests(self) -> List[httpx.Request]:
        return [r for r in self.requests if r.url.host == "api.spotify.com"]


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def settings():
    """Settings for tests: in-memory SQLite and a cheap bcrypt cost."""
    return Settings(
        _env_file=None,
        SPOTIFY_CLIENT_ID="test-client-id",
        SPOTIFY_CLIENT_SECRET="test-client-secret",
        SESSION_JWT_SECRET=TEST_SESSION_SECRET,
        DATABASE_URL="sqlite://",
        BCRYPT_ROUNDS=4,
        PUBLIC_BASE_URL="http://localhost:8080",
        HOME_REDIRECT_URL="http://localhost:3000",
    )


@pytest.fixture
def store(settings):
    engine = make_engine(settings.DATABASE_URL)
    init_db(engine)
    yield CredentialStore(make_session_factory(engine), bcrypt_rounds=settings.BCRYPT_ROUNDS)
    engine.dispose()


@pytest.fixture
def fake_spotify():
    return FakeSpotify()


@pytest.fixture
def http_client(fake_spotify):
    return httpx.AsyncClient(transport=httpx.MockTransport(fake_spotify))


@pytest.fixture
def app(settings, http_client):
    return create_app(settings, http_client=http_client)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def registered_user(client):
    """Create an account through the API and return its id and credentials."""
    body = {
        "email": "ada@example.com",
        "password": "correct horse battery staple",
        "firstName": "Ada",
        "lastName": "Lovelace",
    }
    response = client.post("/api/users", json=body)
    assert response.status_code == 200
    return {"id": response.json()["data"]["id"], **body}


@pytest.fixture
def logged_in(client, settings, registered_user):
    """Client carrying a valid session cookie for ``registered_user``."""
    client.cookies.set(
        settings.SESSION_COOKIE_NAME,
        create_session_jwt(registered_user["id"], settings),
    )
    return registered_user
