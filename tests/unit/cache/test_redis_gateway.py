"""Unit tests for the Redis gateway, the in-memory store and the fallback.

Uses fakeredis for testing without a real Redis server.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from smartcommerce.cache import FallbackRedis, MemoryStore, RedisGateway, RedisUnavailableError
from smartcommerce.services.circuit_breaker import CircuitBreaker, CircuitState


# =============================================================================
# RedisGateway
# =============================================================================


class TestRedisGateway:
    """Tests for the timeout-raced gateway."""

    async def test_commands_pass_through(self, gateway):
        await gateway.setex("greeting", 60, "salam")
        assert await gateway.get("greeting") == "salam"
        assert await gateway.exists("greeting") == 1
        assert 0 < await gateway.ttl("greeting") <= 60

    async def test_sorted_set_commands(self, gateway):
        await gateway.zadd("z", {"a": 1, "b": 2, "c": 3})
        assert await gateway.zcard("z") == 3
        assert await gateway.zrange("z", 0, -1) == ["a", "b", "c"]
        await gateway.zremrangebyscore("z", "-inf", 1)
        assert await gateway.zrange("z", 0, -1) == ["b", "c"]

    async def test_scan_keys(self, gateway):
        await gateway.set("session:1", "x")
        await gateway.set("session:2", "y")
        await gateway.set("other", "z")
        assert sorted(await gateway.scan_keys("session:*")) == ["session:1", "session:2"]

    async def test_missing_client_is_unavailable(self, down_gateway):
        assert down_gateway.configured is False
        with pytest.raises(RedisUnavailableError) as exc_info:
            await down_gateway.get("anything")
        assert exc_info.value.reason == "client not configured"

    async def test_timeout_is_unavailable(self):
        async def slow_get(name):
            await asyncio.sleep(1)

        client = MagicMock()
        client.get = slow_get
        gateway = RedisGateway(client, command_timeout=0.01, breaker=CircuitBreaker("t", failure_threshold=5))

        with pytest.raises(RedisUnavailableError) as exc_info:
            await gateway.get("k")
        assert exc_info.value.reason == "timeout"
        assert gateway.breaker.failure_count == 1

    async def test_connection_errors_open_the_circuit(self):
        client = MagicMock()
        client.get = AsyncMock(side_effect=RedisConnectionError("refused"))
        breaker = CircuitBreaker("t", failure_threshold=2, recovery_timeout=60)
        gateway = RedisGateway(client, breaker=breaker)

        for _ in range(2):
            with pytest.raises(RedisUnavailableError):
                await gateway.get("k")
        assert breaker.state == CircuitState.OPEN
        assert gateway.available is False

        with pytest.raises(RedisUnavailableError) as exc_info:
            await gateway.get("k")
        assert "Circuit breaker open" in exc_info.value.reason


# =============================================================================
# MemoryStore
# =============================================================================


class TestMemoryStore:
    """Tests for the in-process Redis stand-in."""

    async def test_set_nx(self):
        store = MemoryStore()
        assert await store.set("k", "1", nx=True) is True
        assert await store.set("k", "2", nx=True) is None
        assert await store.get("k") == "1"

    async def test_expired_keys_disappear(self):
        store = MemoryStore()
        await store.setex("k", 60, "v")
        store._expires["k"] = 0
        assert await store.get("k") is None
        assert await store.exists("k") == 0
        assert await store.ttl("k") == -2

    async def test_ttl_without_expiry(self):
        store = MemoryStore()
        await store.set("k", "v")
        assert await store.ttl("k") == -1

    async def test_sorted_set_window(self):
        store = MemoryStore()
        await store.zadd("z", {"old": 100, "mid": 200, "new": 300})
        assert await store.zremrangebyscore("z", "-inf", 150) == 1
        assert await store.zcard("z") == 2
        assert await store.zrange("z", -1, -1, withscores=True) == [("new", 300.0)]

    async def test_exclusive_score_bounds(self):
        store = MemoryStore()
        await store.zadd("z", {"a": 100, "b": 200, "c": 300})

        assert await store.zrangebyscore("z", "(100", 300) == ["b", "c"]
        assert await store.zrangebyscore("z", 100, "(300") == ["a", "b"]
        assert await store.zrangebyscore("z", "(100", "(300") == ["b"]
        assert await store.zremrangebyscore("z", "-inf", "(200") == 1
        assert await store.zrangebyscore("z", "-inf", "+inf") == ["b", "c"]

    async def test_hash_counter(self):
        store = MemoryStore()
        assert await store.hincrby("h", "count", 1) == 1
        assert await store.hincrby("h", "count", 2) == 3
        assert await store.hgetall("h") == {"count": "3"}

    async def test_scan_keys_glob(self):
        store = MemoryStore()
        await store.set("ip_block:1.2.3.4", "x")
        await store.set("user_lockout:a@b.com", "y")
        assert await store.scan_keys("ip_block:*") == ["ip_block:1.2.3.4"]


# =============================================================================
# FallbackRedis
# =============================================================================


class TestFallbackRedis:
    """Tests for transparent in-memory fallback."""

    async def test_uses_redis_when_available(self, gateway, fake_redis):
        fallback = FallbackRedis(gateway)
        await fallback.set("k", "v")
        assert await fake_redis.get("k") == "v"
        assert fallback.redis_available is True

    async def test_falls_back_to_memory(self, down_gateway):
        fallback = FallbackRedis(down_gateway)
        await fallback.setex("k", 60, "v")
        assert await fallback.get("k") == "v"
        assert fallback.redis_available is False
        assert await fallback.memory.get("k") == "v"

    async def test_returns_to_redis_after_recovery(self, fake_redis):
        gateway = RedisGateway(None, breaker=CircuitBreaker("t"))
        fallback = FallbackRedis(gateway)
        await fallback.set("k", "memory")
        assert fallback._using_memory is True

        gateway.client = fake_redis
        await fallback.set("k", "redis")
        assert fallback._using_memory is False
        assert await fake_redis.get("k") == "redis"
