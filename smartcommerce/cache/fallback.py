"""Redis with transparent in-memory fallback.

Used for data that may be lost without harm (rate-limit windows, login
attempt counters, token blacklist entries). Commands go to Redis first;
when the gateway reports ``RedisUnavailableError`` the same command is
served from a process-local ``MemoryStore``.
"""

from typing import Any, Optional

from smartcommerce.cache.commands import RedisCommands
from smartcommerce.cache.gateway import RedisGateway, RedisUnavailableError
from smartcommerce.cache.memory import MemoryStore
from smartcommerce.logging_config import get_logger

logger = get_logger(__name__)


class FallbackRedis(RedisCommands):
    """Routes commands to Redis, or to memory while Redis is down."""

    def __init__(self, gateway: RedisGateway, memory: Optional[MemoryStore] = None):
        self.gateway = gateway
        self.memory = memory or MemoryStore()
        self._using_memory = False

    @property
    def redis_available(self) -> bool:
        """Whether the last command was served by Redis."""
        return self.gateway.configured and not self._using_memory

    async def _call(self, command: str, *args: Any, **kwargs: Any) -> Any:
        try:
            result = await self.gateway._call(command, *args, **kwargs)
        except RedisUnavailableError as e:
            if not self._using_memory:
                logger.warning(
                    f"Falling back to in-memory store: {e.reason}",
                    extra={"command": command},
                )
            self._using_memory = True
            return await self.memory._call(command, *args, **kwargs)

        if self._using_memory:
            logger.info("Redis available again, leaving in-memory fallback")
            self._using_memory = False
        return result
