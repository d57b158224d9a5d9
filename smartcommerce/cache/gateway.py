"""Redis access with a per-command timeout race and circuit breaker.

Every command is raced against ``command_timeout`` seconds. A timeout,
connection error or open circuit surfaces as ``RedisUnavailableError`` so
callers can switch to their fallback (the database for sessions, process
memory for counters) instead of hanging on a dead server.
"""

import asyncio
from typing import TYPE_CHECKING, Any, List, Optional

from redis.exceptions import RedisError

from smartcommerce.cache.commands import RedisCommands
from smartcommerce.logging_config import get_logger
from smartcommerce.services.circuit_breaker import CircuitBreaker, CircuitOpenError

if TYPE_CHECKING:
    from redis.asyncio import Redis

logger = get_logger(__name__)


class RedisUnavailableError(Exception):
    """Redis did not answer (missing client, timeout, error or open circuit)."""

    def __init__(self, command: str, reason: str):
        self.command = command
        self.reason = reason
        super().__init__(f"Redis unavailable for {command}: {reason}")


class RedisGateway(RedisCommands):
    """Timeout-raced, breaker-protected wrapper around an async Redis client."""

    def __init__(
        self,
        client: Optional["Redis"],
        command_timeout: float = 2.0,
        breaker: Optional[CircuitBreaker] = None,
    ):
        self.client = client
        self.command_timeout = command_timeout
        self.breaker = breaker or CircuitBreaker("redis", failure_threshold=3, recovery_timeout=30.0)

    @property
    def configured(self) -> bool:
        return self.client is not None

    @property
    def available(self) -> bool:
        """Best guess without a round trip: configured and circuit not open."""
        return self.client is not None and not self.breaker.is_open

    async def _scan_keys(self, match: str) -> List[str]:
        return [key async for key in self.client.scan_iter(match=match, count=500)]

    async def _call(self, command: str, *args: Any, **kwargs: Any) -> Any:
        if self.client is None:
            raise RedisUnavailableError(command, "client not configured")

        if command == "scan_keys":
            operation = self._scan_keys(*args)
        else:
            operation = getattr(self.client, command)(*args, **kwargs)

        try:
            async with self.breaker:
                return await asyncio.wait_for(operation, timeout=self.command_timeout)
        except CircuitOpenError as e:
            if asyncio.iscoroutine(operation):
                operation.close()
            raise RedisUnavailableError(command, str(e)) from e
        except asyncio.TimeoutError as e:
            logger.warning(
                f"Redis {command} timed out after {self.command_timeout}s",
                extra={"command": command},
            )
            raise RedisUnavailableError(command, "timeout") from e
        except (RedisError, OSError) as e:
            logger.warning(f"Redis {command} failed: {e}", extra={"command": command})
            raise RedisUnavailableError(command, str(e)) from e
