"""Unit tests for login brute-force protection."""

import pytest

from smartcommerce.cache import FallbackRedis
from smartcommerce.config import LoginSecurityConfig
from smartcommerce.services.login_security import LoginSecurityService

IP = "103.4.145.10"
EMAIL = "rahim@example.com"


@pytest.fixture
def security(fallback):
    return LoginSecurityService(fallback, LoginSecurityConfig())


class TestProgressiveDelay:
    @pytest.mark.parametrize(
        "failures,delay",
        [(0, 0), (1, 1000), (2, 2000), (3, 4000), (4, 8000), (5, 10000), (12, 10000)],
    )
    def test_doubles_and_caps(self, security, failures, delay):
        assert security.calculate_progressive_delay(failures) == delay


class TestCheckLoginAllowed:
    async def test_clean_identifier_is_allowed(self, security):
        check = await security.check_login_allowed(EMAIL, IP, "Mozilla/5.0")
        assert check.allowed
        assert check.reason is None
        assert check.delay_ms == 0

    async def test_delay_after_failure(self, security):
        await security.record_failed_attempt(EMAIL, IP)

        check = await security.check_login_allowed(EMAIL, IP)

        assert not check.allowed
        assert check.reason == "delay_required"
        assert check.delay_ms == 1000
        assert check.retry_after == 1

    async def test_lockout_after_max_attempts(self, security):
        results = [await security.record_failed_attempt(EMAIL, IP) for _ in range(5)]

        assert [r["locked"] for r in results] == [False, False, False, False, True]
        check = await security.check_login_allowed(EMAIL, IP)
        assert check.reason == "account_locked"
        assert 1790 <= check.retry_after <= 1800
        assert check.lockout.attempts == 5

    async def test_ip_block_spans_identifiers(self, fallback):
        security = LoginSecurityService(fallback, LoginSecurityConfig(max_attempts=100, ip_max_attempts=3))
        for n in range(3):
            result = await security.record_failed_attempt(f"user{n}@example.com", IP)
        assert result["blocked"] is True

        check = await security.check_login_allowed("someone-else@example.com", IP)

        assert check.reason == "ip_blocked"
        assert check.ip_block.attempts == 3
        assert (await security.check_login_allowed(EMAIL, "45.120.1.1")).allowed

    async def test_ip_only_failures_share_the_ip_window(self, fallback):
        security = LoginSecurityService(fallback, LoginSecurityConfig(max_attempts=100, ip_max_attempts=3))
        await security.record_failed_ip_attempt(IP)
        await security.record_failed_attempt(EMAIL, IP)

        result = await security.record_failed_ip_attempt(IP)

        assert result == {"ip_attempts": 3, "blocked": True}
        assert (await security.check_login_allowed(EMAIL, IP)).reason == "ip_blocked"
        assert (await security.get_login_attempt_stats(EMAIL, IP))["user_attempts"] == 1

    async def test_captcha_when_enabled(self, fallback):
        security = LoginSecurityService(
            fallback, LoginSecurityConfig(captcha_enabled=True, captcha_threshold=2)
        )
        await security.record_failed_attempt(EMAIL, IP)
        await security.record_failed_attempt(EMAIL, IP)

        check = await security.check_login_allowed(EMAIL, IP)

        assert check.reason == "captcha_required"
        assert check.captcha_required is True

    async def test_success_clears_attempts(self, security):
        await security.record_failed_attempt(EMAIL, IP)
        await security.record_successful_login(EMAIL, IP, user_id="u1")

        assert (await security.check_login_allowed(EMAIL, IP)).allowed

    async def test_works_without_redis(self, down_gateway):
        security = LoginSecurityService(FallbackRedis(down_gateway), LoginSecurityConfig())
        await security.record_failed_attempt(EMAIL, IP)
        assert (await security.check_login_allowed(EMAIL, IP)).reason == "delay_required"


class TestSuspiciousPatterns:
    async def test_scanner_user_agent(self, security):
        report = await security.check_suspicious_patterns(IP, "sqlmap/1.7")
        assert report.is_suspicious
        assert report.reasons == ["malicious_user_agent"]
        assert report.risk_score == 5

    async def test_plain_automation_alone_is_not_suspicious(self, security):
        report = await security.check_suspicious_patterns(IP, "python-requests/2.31")
        assert not report.is_suspicious
        assert report.risk_score == 0

    async def test_volume_and_tooling(self, security, fake_redis):
        await fake_redis.hset(f"suspicious_activity:{IP}", "count", 11)

        report = await security.check_suspicious_patterns(IP, "curl/8.0")

        assert report.reasons == ["high_attempt_volume", "rapid_attempts", "automated_tool"]
        assert report.risk_score == 7
        assert report.is_suspicious


class TestAdministration:
    async def test_stats(self, security):
        await security.record_failed_attempt(EMAIL, IP)
        await security.record_failed_attempt(EMAIL, IP)

        stats = await security.get_login_attempt_stats(identifier=EMAIL, ip=IP)

        assert stats["user_attempts"] == 2
        assert stats["ip_attempts"] == 2
        assert stats["is_user_locked"] is False
        assert stats["progressive_delay_ms"] == 2000
        assert stats["lockout"] is None

    async def test_unlock_user(self, security):
        for _ in range(5):
            await security.record_failed_attempt(EMAIL, IP)

        assert await security.unlock_user(EMAIL) is True
        assert await security.is_user_locked_out(EMAIL) is None
        assert await security.unlock_user(EMAIL) is False

    async def test_unblock_ip(self, fallback):
        security = LoginSecurityService(fallback, LoginSecurityConfig(ip_max_attempts=1))
        await security.record_failed_attempt(EMAIL, IP)
        assert await security.is_ip_blocked(IP)

        assert await security.unblock_ip(IP) is True
        assert await security.is_ip_blocked(IP) is None

    async def test_cleanup_restores_missing_ttls(self, security, fake_redis):
        await fake_redis.zadd("login_attempts:ghost@example.com", {"x": 1})
        await fake_redis.setex("ip_block:1.1.1.1", 60, "{}")

        assert await security.cleanup_expired_data() == 1
        assert await fake_redis.ttl("login_attempts:ghost@example.com") > 0
