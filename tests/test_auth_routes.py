"""Tests for registration, login and the session cookie."""

import json
import logging

from conftest import DEFAULT_PASSWORD, make_user

from companion.core.config import settings
from companion.core.logging import JsonFormatter
from companion.core.security import create_access_token


def _register(client, **overrides):
    body = {
        "email": "Marie.Martin@Cabinet.fr",
        "password": DEFAULT_PASSWORD,
        "name": "Marie Martin",
        "organization": "  Cabinet Martin ",
    }
    body.update(overrides)
    return client.post("/v1/auth/register", json=body)


class TestRegister:
    def test_creates_freemium_account(self, client) -> None:
        response = _register(client)

        assert response.status_code == 201
        data = response.json()
        assert data["email"] == "marie.martin@cabinet.fr"
        assert data["plan"] == "FREEMIUM"
        assert data["organization"] == "Cabinet Martin"
        assert "password" not in data
        assert "password_hash" not in data

    def test_duplicate_email_conflicts(self, client) -> None:
        _register(client)

        response = _register(client, email="marie.martin@cabinet.fr")

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "email_already_registered"

    def test_weak_password(self, client) -> None:
        response = _register(client, password="court")

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "weak_password"

    def test_short_name(self, client) -> None:
        response = _register(client, name=" M ")

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "invalid_name"

    def test_invalid_email_is_422(self, client) -> None:
        assert _register(client, email="not-an-email").status_code == 422


class TestLogin:
    def test_sets_cookie_and_returns_token(self, client, db_session) -> None:
        user = make_user(db_session)

        response = client.post(
            "/v1/auth/login",
            json={"email": "AVOCAT@cabinet-dupont.fr", "password": DEFAULT_PASSWORD},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["token_type"] == "bearer"
        assert data["user"]["id"] == user.id
        assert response.cookies.get(settings.auth.cookie_name) == data["access_token"]
        set_cookie = response.headers["set-cookie"].lower()
        assert "httponly" in set_cookie
        assert "samesite=lax" in set_cookie

        db_session.refresh(user)
        assert user.last_login_at is not None

    def test_wrong_password_and_unknown_email_look_the_same(self, client, db_session) -> None:
        make_user(db_session)

        wrong = client.post(
            "/v1/auth/login",
            json={"email": "avocat@cabinet-dupont.fr", "password": "mauvais-mot"},
        )
        unknown = client.post(
            "/v1/auth/login",
            json={"email": "inconnu@cabinet-dupont.fr", "password": "mauvais-mot"},
        )

        assert wrong.status_code == unknown.status_code == 401
        assert wrong.json()["error"]["code"] == unknown.json()["error"]["code"] == "invalid_credentials"
        assert wrong.json()["error"]["message"] == unknown.json()["error"]["message"]

    def test_failed_login_logs_a_masked_email(self, client, caplog) -> None:
        with caplog.at_level(logging.WARNING, logger="companion.services.auth_service"):
            client.post(
                "/v1/auth/login",
                json={"email": "Inconnu@Cabinet-Dupont.fr", "password": "mauvais-mot"},
            )

        record = next(r for r in caplog.records if r.getMessage() == "auth.login_failed")
        line = json.loads(JsonFormatter().format(record))
        assert line["email"] == "i***@cabinet-dupont.fr"
        assert line["user_found"] is False


class TestSession:
    def test_me_with_bearer(self, client, user, headers) -> None:
        response = client.get("/v1/auth/me", headers=headers)

        assert response.status_code == 200
        assert response.json()["email"] == user.email

    def test_me_with_cookie(self, client, user) -> None:
        client.post(
            "/v1/auth/login",
            json={"email": user.email, "password": DEFAULT_PASSWORD},
        )

        response = client.get("/v1/auth/me")

        assert response.status_code == 200
        assert response.json()["id"] == user.id

    def test_me_without_session(self, client) -> None:
        response = client.get("/v1/auth/me")

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "unauthorized"

    def test_me_with_garbage_token(self, client) -> None:
        response = client.get("/v1/auth/me", headers={"Authorization": "Bearer garbage"})

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "invalid_token"

    def test_token_for_deleted_user(self, client) -> None:
        token = create_access_token("missing-user", "ghost@cabinet.fr")

        response = client.get("/v1/auth/me", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "invalid_token"

    def test_logout_clears_cookie(self, client, user) -> None:
        client.post(
            "/v1/auth/login",
            json={"email": user.email, "password": DEFAULT_PASSWORD},
        )

        response = client.post("/v1/auth/logout")

        assert response.status_code == 200
        assert response.json() == {"message": "Logged out"}
        assert client.get("/v1/auth/me").status_code == 401
