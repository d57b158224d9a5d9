"""Redis access layer for SmartCommerce.

This module provides:
- get_redis_client: shared ``redis.asyncio`` client (lazy, no eager ping)
- RedisGateway: per-command timeout race + circuit breaker
- FallbackRedis: gateway with in-memory fallback for loss-tolerant data
- MemoryStore: the in-process store behind the fallback

Setting ``REDIS_URL=memory://`` disables Redis entirely; sessions then use
the database and counters use process memory.

FastAPI Dependency Injection:
    ```python
    from smartcommerce.cache import get_fallback_redis

    @router.get("/limits")
    async def limits(redis: FallbackRedis = Depends(get_fallback_redis)):
        ...
    ```
"""

from __future__ import annotations

import asyncio
import threading
from typing import TYPE_CHECKING, Optional

import redis.asyncio as aioredis

from smartcommerce.cache.commands import RedisCommands
from smartcommerce.cache.fallback import FallbackRedis
from smartcommerce.cache.gateway import RedisGateway, RedisUnavailableError
from smartcommerce.cache.memory import MemoryStore
from smartcommerce.config import get_config
from smartcommerce.logging_config import get_logger
from smartcommerce.services.circuit_breaker import get_circuit_breaker

if TYPE_CHECKING:
    from redis.asyncio import Redis

logger = get_logger(__name__)

__all__ = [
    "RedisCommands",
    "RedisGateway",
    "RedisUnavailableError",
    "FallbackRedis",
    "MemoryStore",
    "get_redis_client",
    "close_redis_client",
    "get_redis_gateway",
    "get_fallback_redis",
    "reset_redis_singletons",
]


_redis_client: Optional["Redis"] = None
_gateway: Optional[RedisGateway] = None
_fallback: Optional[FallbackRedis] = None
# asyncio.Lock is created lazily; the threading lock guards its creation
_redis_lock: Optional[asyncio.Lock] = None
_redis_init_lock = threading.Lock()


def _get_redis_lock() -> asyncio.Lock:
    """Get or create the Redis client async lock safely."""
    global _redis_lock
    if _redis_lock is not None:
        return _redis_lock

    with _redis_init_lock:
        if _redis_lock is None:
            _redis_lock = asyncio.Lock()
    return _redis_lock


async def get_redis_client() -> Optional["Redis"]:
    """Get or create the shared Redis client.

    The client connects on first command; failures are handled by the
    gateway, so this never pings.

    Returns:
        Redis client, or None when Redis is disabled (``memory://``)
    """
    global _redis_client

    if _redis_client is not None:
        return _redis_client

    redis_config = get_config().redis
    if not redis_config.url or redis_config.url == "memory://":
        logger.debug("Redis disabled, using database and in-memory fallbacks")
        return None

    async with _get_redis_lock():
        if _redis_client is not None:
            return _redis_client

        _redis_client = aioredis.from_url(
            redis_config.url,
            encoding="utf-8",
            decode_responses=True,
            socket_timeout=redis_config.command_timeout,
            socket_connect_timeout=redis_config.connect_timeout,
        )
        logger.info("Redis client created")
        return _redis_client


async def get_redis_gateway() -> RedisGateway:
    """FastAPI dependency: shared timeout-raced gateway."""
    global _gateway
    if _gateway is None:
        redis_config = get_config().redis
        client = await get_redis_client()
        _gateway = RedisGateway(
            client,
            command_timeout=redis_config.command_timeout,
            breaker=get_circuit_breaker(
                "redis",
                failure_threshold=redis_config.failure_threshold,
                recovery_timeout=redis_config.recovery_timeout,
            ),
        )
    return _gateway


async def get_fallback_redis() -> FallbackRedis:
    """FastAPI dependency: shared gateway with in-memory fallback."""
    global _fallback
    if _fallback is None:
        _fallback = FallbackRedis(await get_redis_gateway())
    return _fallback


async def close_redis_client() -> None:
    """Close the shared Redis client and forget the wrappers."""
    global _redis_client

    if _redis_client is not None:
        try:
            await _redis_client.aclose()
        except Exception as e:
            logger.warning(f"Error closing Redis client: {e}")
        _redis_client = None
        logger.debug("Redis client closed")
    reset_redis_singletons()


def reset_redis_singletons() -> None:
    """Drop cached gateway/fallback instances (used by tests)."""
    global _gateway, _fallback
    _gateway = None
    _fallback = None
