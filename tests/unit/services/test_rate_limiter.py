"""Unit tests for the sliding window rate limiter."""

import time

import pytest

from smartcommerce.cache import FallbackRedis
from smartcommerce.services.rate_limiter import SlidingWindowRateLimiter, rate_limit_key


@pytest.fixture
def limiter(fallback):
    return SlidingWindowRateLimiter(fallback)


class TestRateLimitKey:
    def test_ip_only(self):
        assert rate_limit_key("1.2.3.4") == "rate_limit:1.2.3.4"

    def test_user_and_scope(self):
        assert rate_limit_key("1.2.3.4", user_id="u1", scope="auth") == "rate_limit:1.2.3.4:user:u1:auth"


class TestSlidingWindow:
    async def test_allows_up_to_limit(self, limiter):
        decisions = [await limiter.hit("rate_limit:test", limit=3, window_seconds=60) for _ in range(3)]

        assert all(d.allowed for d in decisions)
        assert [d.remaining for d in decisions] == [2, 1, 0]
        assert decisions[0].reset >= int(time.time()) + 59

    async def test_rejects_beyond_limit(self, limiter):
        for _ in range(3):
            await limiter.hit("rate_limit:test", limit=3, window_seconds=60)

        decision = await limiter.hit("rate_limit:test", limit=3, window_seconds=60)

        assert not decision.allowed
        assert decision.remaining == 0
        assert 1 <= decision.retry_after <= 60

    async def test_old_requests_leave_the_window(self, limiter, fake_redis):
        stale_ms = int(time.time() * 1000) - 120_000
        await fake_redis.zadd("rate_limit:test", {f"{stale_ms}-a": stale_ms, f"{stale_ms}-b": stale_ms})

        decision = await limiter.hit("rate_limit:test", limit=2, window_seconds=60)

        assert decision.allowed
        assert await fake_redis.zcard("rate_limit:test") == 1

    async def test_keys_are_independent(self, limiter):
        await limiter.hit("rate_limit:a", limit=1, window_seconds=60)
        assert (await limiter.hit("rate_limit:b", limit=1, window_seconds=60)).allowed

    async def test_reset(self, limiter):
        await limiter.hit("rate_limit:test", limit=1, window_seconds=60)
        await limiter.reset("rate_limit:test")
        assert (await limiter.hit("rate_limit:test", limit=1, window_seconds=60)).allowed

    async def test_counts_in_memory_without_redis(self, down_gateway):
        limiter = SlidingWindowRateLimiter(FallbackRedis(down_gateway))
        await limiter.hit("rate_limit:test", limit=1, window_seconds=60)
        assert not (await limiter.hit("rate_limit:test", limit=1, window_seconds=60)).allowed
