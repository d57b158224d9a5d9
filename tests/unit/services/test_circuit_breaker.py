"""Unit tests for the circuit breaker."""

import pytest

from smartcommerce.services.circuit_breaker import (
    CircuitBreaker,
    CircuitOpenError,
    CircuitState,
    get_all_circuit_breakers,
    get_circuit_breaker,
)


class TestCircuitBreaker:
    async def test_opens_after_threshold(self):
        breaker = CircuitBreaker("sms-test", failure_threshold=2, recovery_timeout=60)

        for _ in range(2):
            with pytest.raises(RuntimeError):
                async with breaker:
                    raise RuntimeError("gateway down")

        assert breaker.state == CircuitState.OPEN
        with pytest.raises(CircuitOpenError) as exc_info:
            async with breaker:
                pass
        assert exc_info.value.service_name == "sms-test"
        assert 0 < exc_info.value.retry_after <= 60

    async def test_success_resets_failures(self):
        breaker = CircuitBreaker("t", failure_threshold=3)
        breaker.record_failure()
        breaker.record_failure()
        async with breaker:
            pass
        assert breaker.failure_count == 0

    def test_half_open_after_recovery_timeout(self):
        breaker = CircuitBreaker("t", failure_threshold=1, recovery_timeout=0)
        breaker.record_failure()

        assert breaker.state == CircuitState.HALF_OPEN
        breaker.record_success()
        assert breaker.state == CircuitState.CLOSED

    def test_failed_trial_call_reopens(self):
        breaker = CircuitBreaker("t", failure_threshold=1, recovery_timeout=0)
        breaker.record_failure()
        assert breaker.state == CircuitState.HALF_OPEN

        breaker.recovery_timeout = 60
        breaker.record_failure()
        assert breaker.state == CircuitState.OPEN

    def test_reset(self):
        breaker = CircuitBreaker("t", failure_threshold=1)
        breaker.record_failure()
        breaker.reset()
        assert breaker.state == CircuitState.CLOSED
        assert breaker.time_until_retry == 0.0


class TestRegistry:
    def test_shared_by_name(self):
        first = get_circuit_breaker("registry-test")
        assert get_circuit_breaker("registry-test") is first
        assert get_all_circuit_breakers()["registry-test"] is first
