"""Tests for invite-only sign-up: admin routes and /me."""

from urllib.parse import parse_qs, urlparse
from uuid import uuid4

import pytest
from sqlalchemy import select

from socialbro.config import clear_settings_cache
from socialbro.db.models import User
from tests.helpers import auth_headers, create_user

ADMIN_SECRET = "operator-secret-123"


@pytest.fixture
def admin_headers(monkeypatch) -> dict[str, str]:
    monkeypatch.setenv("ADMIN_SECRET", ADMIN_SECRET)
    monkeypatch.setenv("PUBLIC_BASE_URL", "https://app.example.com/")
    clear_settings_cache()
    return {"Authorization": f"Bearer {ADMIN_SECRET}"}


class TestInvite:
    def test_invite_creates_pending_user(self, client, db_session, admin_headers):
        response = client.post(
            "/admin/invite",
            json={"email": "  New.User@Example.com ", "name": " New User "},
            headers=admin_headers,
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["email"] == "new.user@example.com"

        url = urlparse(data["invite_url"])
        assert f"{url.scheme}://{url.netloc}{url.path}" == "https://app.example.com/set-password"
        token = parse_qs(url.query)["token"][0]
        assert len(token) == 64

        user = db_session.scalars(select(User).where(User.email == "new.user@example.com")).one()
        assert user.invite_token == token
        assert user.name == "New User"
        assert user.activated_at is None

    def test_duplicate_email(self, client, user, admin_headers):
        response = client.post(
            "/admin/invite", json={"email": "ALICE@example.com"}, headers=admin_headers
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "E_USER_EXISTS"

    def test_invalid_email(self, client, admin_headers):
        response = client.post("/admin/invite", json={"email": "not-an-email"}, headers=admin_headers)

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "E_INVALID_REQUEST"

    def test_list_reports_status(self, client, db_session, user, admin_headers):
        create_user(db_session, email="pending@example.com")
        # First authenticated request activates alice
        client.get("/me", headers=auth_headers(user.id))

        response = client.get("/admin/invite", headers=admin_headers)

        statuses = {u["email"]: u["status"] for u in response.json()["data"]["users"]}
        assert statuses == {"alice@example.com": "active", "pending@example.com": "pending"}


class TestAdminAuth:
    def test_wrong_secret(self, client, admin_headers):
        response = client.get("/admin/invite", headers={"Authorization": "Bearer wrong"})

        assert response.status_code == 401
        assert response.json()["error"]["message"] == "Unauthorized"

    def test_missing_secret(self, client, admin_headers):
        response = client.get("/admin/invite")

        assert response.status_code == 401

    def test_unconfigured_secret_refuses_everything(self, client, monkeypatch):
        monkeypatch.delenv("ADMIN_SECRET", raising=False)
        clear_settings_cache()

        response = client.get("/admin/invite", headers={"Authorization": "Bearer anything"})

        assert response.status_code == 401

    def test_session_token_is_not_admin(self, client, user, admin_headers):
        response = client.get("/admin/invite", headers=auth_headers(user.id))

        assert response.status_code == 401


class TestMe:
    def test_me_activates_user(self, client, db_session, user):
        response = client.get("/me", headers=auth_headers(user.id))

        assert response.status_code == 200
        assert response.json()["data"] == {
            "user_id": str(user.id),
            "email": "alice@example.com",
            "name": "Alice",
        }
        db_session.expire_all()
        assert db_session.get(User, user.id).activated_at is not None

    def test_me_for_unknown_user(self, client):
        response = client.get("/me", headers=auth_headers(uuid4()))

        assert response.status_code == 401
        assert response.json()["error"]["message"] == (
            "Session invalid. Please log out and log in again."
        )
