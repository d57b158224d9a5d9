"""Circuit breaker for Redis and the SMS gateway.

A breaker stops hammering a dependency that keeps failing. After
``failure_threshold`` consecutive failures calls are rejected immediately
with ``CircuitOpenError`` until ``recovery_timeout`` has passed; the next
call is then let through as a trial call (HALF_OPEN) and enough successes close
the circuit again.

Usage:
    breaker = CircuitBreaker("redis", failure_threshold=3, recovery_timeout=30)
    try:
        async with breaker:
            value = await client.get(key)
    except CircuitOpenError:
        ...  # serve from the fallback
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional

from smartcommerce.logging_config import get_logger

logger = get_logger(__name__)


class CircuitState(Enum):
    """Circuit breaker states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitOpenError(Exception):
    """Raised when a call is rejected because the circuit is open."""

    def __init__(self, service_name: str, retry_after: float):
        self.service_name = service_name
        self.retry_after = retry_after
        super().__init__(
            f"Circuit breaker open for {service_name}. Retry after {retry_after:.1f}s"
        )


@dataclass
class CircuitBreaker:
    """Failure-counting breaker guarding one dependency.

    Attributes:
        name: Dependency name used in logs
        failure_threshold: Consecutive failures before opening
        recovery_timeout: Seconds to stay open before probing
        success_threshold: Trial-call successes needed to close again
    """
    name: str
    failure_threshold: int = 5
    recovery_timeout: float = 30.0
    success_threshold: int = 1

    _state: CircuitState = field(default=CircuitState.CLOSED, init=False)
    _failure_count: int = field(default=0, init=False)
    _success_count: int = field(default=0, init=False)
    _opened_at: Optional[float] = field(default=None, init=False)

    @property
    def state(self) -> CircuitState:
        """Current state; an expired OPEN circuit reports HALF_OPEN."""
        if self._state == CircuitState.OPEN and self._opened_at is not None:
            if time.monotonic() - self._opened_at >= self.recovery_timeout:
                self._state = CircuitState.HALF_OPEN
                self._success_count = 0
                logger.info(
                    f"Circuit breaker {self.name} probing recovery",
                    extra={"service": self.name},
                )
        return self._state

    @property
    def is_open(self) -> bool:
        return self.state == CircuitState.OPEN

    @property
    def failure_count(self) -> int:
        return self._failure_count

    @property
    def time_until_retry(self) -> float:
        """Seconds until an open circuit lets a trial call through."""
        if self._state != CircuitState.OPEN or self._opened_at is None:
            return 0.0
        return max(0.0, self.recovery_timeout - (time.monotonic() - self._opened_at))

    async def __aenter__(self) -> "CircuitBreaker":
        if self.is_open:
            raise CircuitOpenError(self.name, self.time_until_retry)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> bool:
        if exc_type is None:
            self.record_success()
        elif exc_type is not CircuitOpenError:
            self.record_failure(exc_val)
        return False

    def record_success(self) -> None:
        if self._state == CircuitState.HALF_OPEN:
            self._success_count += 1
            if self._success_count >= self.success_threshold:
                self._state = CircuitState.CLOSED
                self._failure_count = 0
                logger.info(f"Circuit breaker {self.name} closed", extra={"service": self.name})
        else:
            self._failure_count = 0

    def record_failure(self, error: Optional[BaseException] = None) -> None:
        self._failure_count += 1

        if self._state == CircuitState.HALF_OPEN or self._failure_count >= self.failure_threshold:
            was_open = self._state == CircuitState.OPEN
            self._state = CircuitState.OPEN
            self._opened_at = time.monotonic()
            if not was_open:
                logger.warning(
                    f"Circuit breaker {self.name} opened after {self._failure_count} failures",
                    extra={
                        "service": self.name,
                        "failure_count": self._failure_count,
                        "error": str(error) if error else None,
                    },
                )

    def reset(self) -> None:
        """Force the circuit closed."""
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._opened_at = None


_circuit_breakers: Dict[str, CircuitBreaker] = {}


def get_circuit_breaker(
    name: str,
    failure_threshold: int = 5,
    recovery_timeout: float = 30.0,
) -> CircuitBreaker:
    """Get or create the shared breaker for ``name``."""
    breaker = _circuit_breakers.get(name)
    if breaker is None:
        breaker = CircuitBreaker(
            name=name,
            failure_threshold=failure_threshold,
            recovery_timeout=recovery_timeout,
        )
        _circuit_breakers[name] = breaker
    return breaker


def get_all_circuit_breakers() -> Dict[str, CircuitBreaker]:
    """Snapshot of registered breakers, for the readiness check."""
    return dict(_circuit_breakers)
