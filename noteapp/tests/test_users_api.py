"""
User Route Tests

Registration, login and the session gate in front of the protected routes.
"""

from urllib.parse import parse_qs, urlparse

import pytest
from fastapi import status

PROTECTED_PATHS = [
    "/api/users/me",
    "/api/users/connect-spotify",
    "/api/users/spotify-auth-callback?code=abc&state=xyz",
    "/api/users/listening-to",
]


# ============================================================================
# Registration
# ============================================================================

class TestRegistration:

    def test_register_returns_id(self, client):
        response = client.post(
            "/api/users",
            json={"email": "ada@example.com", "password": "pw", "firstName": "Ada", "lastName": "Lovelace"},
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["data"]["id"]

    @pytest.mark.parametrize("missing", ["email", "password", "firstName", "lastName"])
    def test_missing_field_is_reported_by_name(self, client, missing):
        body = {"email": "ada@example.com", "password": "pw", "firstName": "Ada", "lastName": "Lovelace"}
        del body[missing]

        response = client.post("/api/users", json=body)

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json() == {"message": f"{missing} must be provided"}

    def test_empty_field_counts_as_missing(self, client):
        response = client.post(
            "/api/users",
            json={"email": "", "password": "pw", "firstName": "Ada", "lastName": "Lovelace"},
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["message"] == "email must be provided"

    def test_duplicate_email_is_rejected(self, client, registered_user):
        response = client.post(
            "/api/users",
            json={"email": registered_user["email"], "password": "other", "firstName": "X", "lastName": "Y"},
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert "already exists" in response.json()["message"]

    def test_malformed_body_is_a_bad_request(self, client):
        response = client.post(
            "/api/users",
            content="not json",
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST


# ============================================================================
# Login
# ============================================================================

class TestLogin:

    def test_login_sets_session_cookie(self, client, settings, registered_user):
        response = client.post(
            "/api/users/login",
            json={"email": registered_user["email"], "password": registered_user["password"]},
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {}
        assert response.cookies.get(settings.SESSION_COOKIE_NAME)
        assert "httponly" in response.headers["set-cookie"].lower()

    def test_session_cookie_from_login_opens_protected_routes(self, client, settings, registered_user):
        login = client.post(
            "/api/users/login",
            json={"email": registered_user["email"], "password": registered_user["password"]},
        )
        client.cookies.set(settings.SESSION_COOKIE_NAME, login.cookies.get(settings.SESSION_COOKIE_NAME))

        response = client.get("/api/users/me")

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["data"]["id"] == registered_user["id"]

    def test_wrong_password_and_unknown_email_look_identical(self, client, registered_user):
        wrong_password = client.post(
            "/api/users/login",
            json={"email": registered_user["email"], "password": "not-the-password"},
        )
        unknown_email = client.post(
            "/api/users/login",
            json={"email": "nobody@example.com", "password": registered_user["password"]},
        )

        assert wrong_password.status_code == status.HTTP_400_BAD_REQUEST
        assert unknown_email.status_code == status.HTTP_400_BAD_REQUEST
        assert wrong_password.json() == unknown_email.json()
        assert "set-cookie" not in wrong_password.headers

    @pytest.mark.parametrize("missing", ["email", "password"])
    def test_missing_login_field(self, client, missing):
        body = {"email": "ada@example.com", "password": "pw"}
        del body[missing]

        response = client.post("/api/users/login", json=body)

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json() == {"message": f"{missing} must be provided"}


# ============================================================================
# Session gate
# ============================================================================

class TestSessionGate:

    @pytest.mark.parametrize("path", PROTECTED_PATHS)
    def test_protected_routes_reject_missing_cookie(self, client, fake_spotify, path):
        response = client.get(path, follow_redirects=False)

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert fake_spotify.requests == []

    @pytest.mark.parametrize("path", PROTECTED_PATHS)
    def test_protected_routes_reject_invalid_cookie(self, client, settings, fake_spotify, path):
        client.cookies.set(settings.SESSION_COOKIE_NAME, "forged.session.token")

        response = client.get(path, follow_redirects=False)

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert fake_spotify.requests == []

    def test_spotify_link_state_does_not_open_protected_routes(self, client, settings, logged_in):
        redirect_to = client.get("/api/users/connect-spotify").json()["redirectTo"]
        state = parse_qs(urlparse(redirect_to).query)["state"][0]
        client.cookies.clear()
        client.cookies.set(settings.SESSION_COOKIE_NAME, state)

        response = client.get("/api/users/me")

        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_rejected_callback_writes_nothing(self, client, app, registered_user, fake_spotify):
        response = client.get("/api/users/spotify-auth-callback?code=abc", follow_redirects=False)

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert app.state.store.get_third_party_access_token(registered_user["id"]) is None

    def test_protected_router_carries_session_dependency(self):
        from noteapp.auth.dependencies import require_session
        from noteapp.users.routes import protected_router

        assert any(dep.dependency is require_session for dep in protected_router.dependencies)


# ============================================================================
# Profile
# ============================================================================

class TestProfile:

    def test_me_returns_profile(self, client, logged_in):
        response = client.get("/api/users/me")

        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {
            "data": {
                "id": logged_in["id"],
                "firstName": "Ada",
                "lastName": "Lovelace",
                "email": "ada@example.com",
                "spotifyEnabled": False,
            }
        }

    def test_me_reports_linked_spotify(self, client, app, logged_in):
        app.state.store.set_third_party_tokens(logged_in["id"], "A", "R", 3600)

        response = client.get("/api/users/me")

        assert response.json()["data"]["spotifyEnabled"] is True

    def test_me_for_deleted_account_is_not_found(self, client, settings):
        from noteapp.auth.session import create_session_jwt

        client.cookies.set(settings.SESSION_COOKIE_NAME, create_session_jwt("ghost", settings))

        response = client.get("/api/users/me")

        assert response.status_code == status.HTTP_404_NOT_FOUND


def test_health(client):
    response = client.get("/health")

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["status"] == "ok"
