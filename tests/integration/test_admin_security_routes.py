"""Integration tests for the /api/v1/admin/security routes."""

import pytest

pytestmark = pytest.mark.integration

CLIENT_IP = "103.4.145.10"
OTHER_IP = "198.51.100.7"


@pytest.fixture
def lock_rahim(client, login_security):
    def _lock():
        for _ in range(5):
            client.portal.call(login_security.record_failed_attempt, "rahim@example.com", OTHER_IP, "")

    return _lock


class TestAccess:
    def test_requires_token(self, client):
        assert client.get("/api/v1/admin/security/login-attempts").status_code == 401

    def test_customers_are_forbidden(self, client, create_user, auth_headers):
        headers = auth_headers(create_user())
        response = client.post("/api/v1/admin/security/cleanup", headers=headers)
        assert response.status_code == 403


class TestLoginAttempts:
    def test_stats_for_identifier_and_ip(self, client, admin_headers, lock_rahim):
        lock_rahim()

        response = client.get(
            "/api/v1/admin/security/login-attempts",
            params={"identifier": "Rahim@Example.com", "ip": OTHER_IP},
            headers=admin_headers,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["identifier"] == "rahim@example.com"
        assert data["stats"]["user_attempts"] == 5
        assert data["stats"]["ip_attempts"] == 5
        assert data["stats"]["is_user_locked"] is True
        assert data["stats"]["is_ip_blocked"] is False

    def test_phone_identifier_is_normalized(self, client, admin_headers):
        response = client.get(
            "/api/v1/admin/security/login-attempts",
            params={"identifier": "01712345678"},
            headers=admin_headers,
        )
        assert response.json()["identifier"] == "+8801712345678"


class TestUnlockAndUnblock:
    def test_unlock_user(self, client, admin_headers, create_user, login, lock_rahim):
        create_user()
        lock_rahim()
        assert login().status_code == 423

        response = client.post(
            "/api/v1/admin/security/unlock-user",
            json={"identifier": "rahim@example.com"},
            headers=admin_headers,
        )

        assert response.json()["unlocked"] is True
        assert login().status_code == 200

    def test_unlock_user_not_locked(self, client, admin_headers):
        response = client.post(
            "/api/v1/admin/security/unlock-user",
            json={"identifier": "nobody@example.com"},
            headers=admin_headers,
        )
        assert response.json() == {
            "message": "User was not locked",
            "identifier": "nobody@example.com",
            "unlocked": False,
        }

    def test_unblock_ip(self, client, admin_headers, create_user, login, login_security):
        create_user()
        for i in range(20):
            client.portal.call(login_security.record_failed_attempt, f"guess{i}@example.com", CLIENT_IP, "")

        blocked = login()
        assert blocked.status_code == 429
        assert blocked.json()["error_code"] == "ERR_LOGIN_001"

        response = client.post("/api/v1/admin/security/unblock-ip", json={"ip": CLIENT_IP}, headers=admin_headers)

        assert response.json()["unblocked"] is True
        assert login().status_code == 200


class TestCleanup:
    def test_gives_orphan_keys_a_ttl(self, client, admin_headers, api_redis):
        client.portal.call(api_redis.zadd, f"ip_attempts:{OTHER_IP}", {"1": 1})

        response = client.post("/api/v1/admin/security/cleanup", headers=admin_headers)

        assert response.json()["cleaned_count"] == 1
        assert 0 < client.portal.call(api_redis.ttl, f"ip_attempts:{OTHER_IP}") <= 86400
