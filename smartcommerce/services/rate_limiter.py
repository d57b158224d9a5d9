"""Sliding window request limiter on Redis sorted sets.

Each request adds a member scored with its millisecond timestamp to
``rate_limit:{ip}`` (or ``rate_limit:{ip}:user:{id}`` for authenticated
clients). Members older than the window are pruned before counting.
"""

import secrets
import time
from dataclasses import dataclass
from typing import Optional

from smartcommerce.cache.commands import RedisCommands
from smartcommerce.logging_config import get_logger

logger = get_logger(__name__)

KEY_PREFIX = "rate_limit:"


@dataclass
class RateLimitDecision:
    """Result of counting one request against a window.

    Attributes:
        allowed: Whether the request is within the limit
        limit: Requests allowed per window
        remaining: Requests left in the current window
        reset: Unix timestamp (seconds) when the oldest request leaves the window
        retry_after: Seconds to wait when not allowed
    """

    allowed: bool
    limit: int
    remaining: int
    reset: int
    retry_after: int = 0


def rate_limit_key(ip: str, user_id: Optional[str] = None, scope: Optional[str] = None) -> str:
    key = f"{KEY_PREFIX}{ip}"
    if user_id:
        key = f"{key}:user:{user_id}"
    if scope:
        key = f"{key}:{scope}"
    return key


class SlidingWindowRateLimiter:
    def __init__(self, redis: RedisCommands):
        self.redis = redis

    async def hit(self, key: str, limit: int, window_seconds: int) -> RateLimitDecision:
        """Record a request under ``key`` and decide whether it is allowed.

        The request is counted even when it is rejected, so a client that
        keeps retrying stays limited.
        """
        now_ms = int(time.time() * 1000)
        window_ms = window_seconds * 1000

        await self.redis.zremrangebyscore(key, 0, now_ms - window_ms)
        await self.redis.zadd(key, {f"{now_ms}-{secrets.token_hex(4)}": now_ms})
        await self.redis.expire(key, window_seconds)
        count = await self.redis.zcard(key)

        oldest = await self.redis.zrange(key, 0, 0, withscores=True)
        oldest_ms = int(oldest[0][1]) if oldest else now_ms
        reset = (oldest_ms + window_ms + 999) // 1000

        if count > limit:
            retry_after = max(1, reset - int(time.time()))
            logger.warning(
                "Rate limit exceeded",
                extra={"rate_limit_key": key, "count": count, "limit": limit},
            )
            return RateLimitDecision(
                allowed=False, limit=limit, remaining=0, reset=reset, retry_after=retry_after
            )
        return RateLimitDecision(allowed=True, limit=limit, remaining=limit - count, reset=reset)

    async def reset(self, key: str) -> None:
        await self.redis.delete(key)
