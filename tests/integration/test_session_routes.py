"""Integration tests for the /api/v1/sessions routes and session dependencies."""

from datetime import timedelta

import pytest
from fastapi import APIRouter, Depends

from smartcommerce.api.shared.auth import (
    require_email_verified,
    require_fresh_session,
    require_phone_verified,
    require_security_level,
)
from smartcommerce.db.models import UserRole
from smartcommerce.services.sessions import SESSION_PREFIX, SessionData

pytestmark = pytest.mark.integration


@pytest.fixture
def logged_in(client, create_user, login):
    """Login response body of an active customer; the cookie stays in the client."""
    create_user()
    return login().json()


def bearer(data):
    return {"Authorization": f"Bearer {data['token']}"}


# =============================================================================
# Validate, refresh, status
# =============================================================================


class TestValidate:
    def test_cookie_session(self, client, logged_in):
        response = client.get("/api/v1/sessions/validate")

        assert response.status_code == 200
        assert response.json()["session"]["session_id"] == logged_in["session_id"]

    def test_query_parameter(self, client, logged_in):
        client.cookies.clear()
        response = client.get("/api/v1/sessions/validate", params={"session_id": logged_in["session_id"]})
        assert response.status_code == 200

    def test_bearer_token_is_not_a_session(self, client, logged_in):
        client.cookies.clear()

        response = client.get("/api/v1/sessions/validate", headers=bearer(logged_in))

        assert response.status_code == 401
        assert response.json()["error_code"] == "ERR_SESSION_002"

    def test_unknown_session(self, client):
        response = client.get("/api/v1/sessions/validate", headers={"X-Session-ID": "f" * 64})

        assert response.status_code == 401
        data = response.json()
        assert data["error_code"] == "ERR_SESSION_001"
        assert data["reason"] == "Session not found"

    def test_other_network_is_rejected(self, client, logged_in):
        response = client.get("/api/v1/sessions/validate", headers={"X-Forwarded-For": "198.51.100.7"})
        assert response.json()["reason"] == "IP address mismatch"

    def test_same_network_is_accepted(self, client, logged_in):
        response = client.get("/api/v1/sessions/validate", headers={"X-Forwarded-For": "103.4.200.1"})
        assert response.status_code == 200

    def test_other_browser_is_rejected(self, client, logged_in):
        response = client.get("/api/v1/sessions/validate", headers={"User-Agent": "Mozilla/5.0 (Other)"})
        assert response.json()["reason"] == "User agent mismatch"


class TestRefresh:
    def test_extends_current_session(self, client, logged_in):
        response = client.post("/api/v1/sessions/refresh", json={"max_age": 3600})

        assert response.status_code == 200
        data = response.json()
        assert data["max_age"] == 3600
        assert response.headers["X-Session-Max-Age"] == "3600"
        assert response.cookies["sessionId"] == logged_in["session_id"]

    def test_max_age_bounds(self, client, logged_in):
        assert client.post("/api/v1/sessions/refresh", json={"max_age": 60}).status_code == 422

    def test_without_session(self, client):
        response = client.post("/api/v1/sessions/refresh")
        assert response.json()["error_code"] == "ERR_SESSION_002"


class TestStatus:
    def test_anonymous(self, client):
        assert client.get("/api/v1/sessions/status").json() == {"has_session": False, "session_id": None}

    def test_with_session(self, client, logged_in):
        data = client.get("/api/v1/sessions/status").json()
        assert data["has_session"] is True
        assert data["user_id"] == logged_in["user"]["id"]


# =============================================================================
# Listing and destroying
# =============================================================================


class TestUserSessions:
    def test_lists_sessions_and_flags_current(self, client, create_user, login):
        create_user()
        first = login().json()
        client.cookies.clear()
        second = login().json()

        response = client.get("/api/v1/sessions/user", headers=bearer(second))

        data = response.json()
        assert data["total_sessions"] == 2
        assert data["active_sessions"] == 2
        current = {s["session_id"]: s["is_current"] for s in data["sessions"]}
        assert current == {first["session_id"]: False, second["session_id"]: True}

    def test_requires_token(self, client, logged_in):
        assert client.get("/api/v1/sessions/user").status_code == 401


class TestDestroy:
    def test_destroy_current(self, client, logged_in):
        response = client.post("/api/v1/sessions/destroy", headers=bearer(logged_in))

        assert response.status_code == 200
        assert response.json()["session_id"] == logged_in["session_id"]
        assert "sessionId" not in client.cookies

    def test_destroy_all(self, client, create_user, login):
        create_user()
        login()
        client.cookies.clear()
        data = login().json()

        response = client.post("/api/v1/sessions/destroy", json={"all_sessions": True}, headers=bearer(data))

        assert response.json()["destroyed_count"] == 2

    def test_cannot_destroy_another_users_session(self, client, create_user, login, auth_headers):
        create_user()
        victim = login().json()
        client.cookies.clear()
        attacker = create_user(email="karim@example.com")

        response = client.post(
            "/api/v1/sessions/destroy",
            json={"session_id": victim["session_id"]},
            headers=auth_headers(attacker),
        )

        assert response.status_code == 404
        status = client.get("/api/v1/sessions/status", headers={"X-Session-ID": victim["session_id"]})
        assert status.json()["valid"] is True


# =============================================================================
# Admin endpoints
# =============================================================================


class TestAdminSessionEndpoints:
    def test_stats(self, client, logged_in, admin_headers):
        response = client.get("/api/v1/sessions/stats", headers=admin_headers)

        stats = response.json()["stats"]
        assert stats["total"] == 1
        assert stats["active"] == 1
        assert stats["redis_available"] is True

    def test_stats_forbidden_for_customers(self, client, logged_in):
        response = client.get("/api/v1/sessions/stats", headers=bearer(logged_in))
        assert response.status_code == 403
        assert response.json()["error_code"] == "ERR_AUTH_008"

    def test_cleanup(self, client, logged_in, admin_headers, api_redis):
        # Session payload gone but still listed in the user's index
        client.portal.call(api_redis.delete, f"{SESSION_PREFIX}{logged_in['session_id']}")

        response = client.post("/api/v1/sessions/cleanup", headers=admin_headers)

        assert response.status_code == 200
        assert response.json()["cleaned_count"] == 1


# =============================================================================
# Session and account dependencies
# =============================================================================


@pytest.fixture
def guarded_app(app):
    router = APIRouter(prefix="/guarded")

    @router.get("/fresh")
    async def fresh(session: SessionData = Depends(require_fresh_session(max_idle=600))):
        return {"session_id": session.session_id}

    @router.get("/high")
    async def high(session: SessionData = Depends(require_security_level("high"))):
        return {"level": session.security_level}

    @router.get("/standard")
    async def standard(session: SessionData = Depends(require_security_level("standard"))):
        return {"level": session.security_level}

    @router.get("/email-verified", dependencies=[Depends(require_email_verified)])
    async def email_verified():
        return {"ok": True}

    @router.get("/phone-verified", dependencies=[Depends(require_phone_verified)])
    async def phone_verified():
        return {"ok": True}

    app.include_router(router)
    return app


class TestSessionDependencies:
    def test_fresh_session(self, guarded_app, client, logged_in):
        assert client.get("/guarded/fresh").status_code == 200

    def test_stale_session(self, guarded_app, client, logged_in, api_redis):
        key = f"{SESSION_PREFIX}{logged_in['session_id']}"

        async def age_session():
            session = SessionData.from_json(await api_redis.get(key))
            session.created_at -= timedelta(hours=1)
            await api_redis.set(key, session.to_json(), keepttl=True)

        client.portal.call(age_session)

        response = client.get("/guarded/fresh")

        assert response.status_code == 401
        data = response.json()
        assert data["error_code"] == "ERR_SESSION_003"
        assert data["max_age"] == 600

    def test_security_level(self, guarded_app, client, logged_in):
        assert client.get("/guarded/standard").json() == {"level": "standard"}

        response = client.get("/guarded/high")

        assert response.status_code == 403
        assert response.json()["required_level"] == "high"

    def test_unknown_level_is_a_programming_error(self):
        with pytest.raises(ValueError):
            require_security_level("maximum")

    def test_verification_flags(self, guarded_app, client, create_user, auth_headers):
        user = create_user(email_verified=True, phone="+8801812345678", phone_verified=False)
        headers = auth_headers(user)

        assert client.get("/guarded/email-verified", headers=headers).status_code == 200
        response = client.get("/guarded/phone-verified", headers=headers)
        assert response.status_code == 403
        assert response.json()["error_code"] == "ERR_AUTH_010"

    def test_admin_role(self, client, create_user, auth_headers):
        staff = create_user(email="ops@example.com", role=UserRole.ADMIN)
        response = client.post("/api/v1/sessions/cleanup", headers=auth_headers(staff))
        assert response.status_code == 200
