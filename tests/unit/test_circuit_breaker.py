"""
Unit tests for the circuit breaker and its registry.
"""

import pytest

from taskhub.clock import ManualClock
from taskhub.constants import CircuitState
from taskhub.errors import CircuitOpenError, NotFoundError
from taskhub.observability.metrics import MetricsCollector
from taskhub.resilience.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerOptions,
    CircuitBreakerRegistry,
)


class Boom(Exception):
    pass


async def succeed() -> str:
    return "ok"


async def fail() -> str:
    raise Boom("downstream failed")


class TestCircuitBreaker:
    """Tests for the CLOSED/OPEN/HALF_OPEN state machine."""

    @pytest.fixture
    def breaker(self, clock: ManualClock) -> CircuitBreaker:
        return CircuitBreaker(
            "downstream",
            CircuitBreakerOptions(failure_threshold=2, reset_timeout_ms=1000, success_threshold=1),
            clock=clock,
        )

    async def trip(self, breaker: CircuitBreaker, times: int) -> None:
        for _ in range(times):
            with pytest.raises(Boom):
                await breaker.execute(fail)

    async def test_starts_closed(self, breaker: CircuitBreaker):
        assert breaker.state == CircuitState.CLOSED
        assert await breaker.execute(succeed) == "ok"

    async def test_opens_at_failure_threshold(self, breaker: CircuitBreaker):
        await self.trip(breaker, 1)
        assert breaker.state == CircuitState.CLOSED

        await self.trip(breaker, 1)
        assert breaker.state == CircuitState.OPEN

    async def test_success_resets_consecutive_failures(self, breaker: CircuitBreaker):
        await self.trip(breaker, 1)
        await breaker.execute(succeed)
        await self.trip(breaker, 1)

        assert breaker.state == CircuitState.CLOSED
        assert breaker.get_stats().failures == 1

    async def test_open_rejects_without_calling(self, breaker: CircuitBreaker, clock: ManualClock):
        await self.trip(breaker, 2)
        calls = []

        async def tracked() -> str:
            calls.append(1)
            return "ok"

        clock.advance(0.25)
        with pytest.raises(CircuitOpenError) as exc_info:
            await breaker.execute(tracked)

        assert calls == []
        assert exc_info.value.service_name == "downstream"
        assert exc_info.value.remaining_ms == 750
        assert exc_info.value.retry_after_seconds == 1

    async def test_half_open_success_closes(self, breaker: CircuitBreaker, clock: ManualClock):
        await self.trip(breaker, 2)

        clock.advance(1.5)
        assert await breaker.execute(succeed) == "ok"

        stats = breaker.get_stats()
        assert stats.state == CircuitState.CLOSED
        assert stats.failures == 0
        assert stats.successes == 0

    async def test_half_open_failure_reopens(self, breaker: CircuitBreaker, clock: ManualClock):
        await self.trip(breaker, 2)

        clock.advance(1.5)
        await self.trip(breaker, 1)

        assert breaker.state == CircuitState.OPEN
        with pytest.raises(CircuitOpenError):
            await breaker.execute(succeed)

    async def test_success_threshold_needs_consecutive_successes(self, clock: ManualClock):
        breaker = CircuitBreaker(
            "downstream",
            CircuitBreakerOptions(failure_threshold=1, reset_timeout_ms=100, success_threshold=2),
            clock=clock,
        )
        with pytest.raises(Boom):
            await breaker.execute(fail)

        clock.advance(0.2)
        await breaker.execute(succeed)
        assert breaker.state == CircuitState.HALF_OPEN
        assert breaker.get_stats().successes == 1

        await breaker.execute(succeed)
        assert breaker.state == CircuitState.CLOSED

    async def test_totals_count_rejections(self, breaker: CircuitBreaker):
        await self.trip(breaker, 2)
        with pytest.raises(CircuitOpenError):
            await breaker.execute(succeed)

        stats = breaker.get_stats()
        assert stats.total_requests == 3
        assert stats.total_failures == 2
        assert stats.last_failure_time is not None

    async def test_reset(self, breaker: CircuitBreaker):
        await self.trip(breaker, 2)

        breaker.reset()

        stats = breaker.get_stats()
        assert stats.state == CircuitState.CLOSED
        assert stats.failures == 0
        assert stats.last_failure_time is None
        assert stats.total_requests == 2
        assert stats.total_failures == 2
        assert await breaker.execute(succeed) == "ok"

    async def test_defaults(self, clock: ManualClock):
        breaker = CircuitBreaker("svc", clock=clock)

        for _ in range(4):
            with pytest.raises(Boom):
                await breaker.execute(fail)
        assert breaker.state == CircuitState.CLOSED

        with pytest.raises(Boom):
            await breaker.execute(fail)
        assert breaker.state == CircuitState.OPEN

        clock.advance(29.9)
        with pytest.raises(CircuitOpenError):
            await breaker.execute(succeed)

    async def test_state_gauge(self, clock: ManualClock, metrics: MetricsCollector):
        breaker = CircuitBreaker(
            "svc",
            CircuitBreakerOptions(failure_threshold=1),
            clock=clock,
            metrics=metrics,
        )
        gauge = metrics.circuit_state.labels(name="svc")
        assert gauge._value.get() == 0

        with pytest.raises(Boom):
            await breaker.execute(fail)

        assert gauge._value.get() == 2


class TestCircuitBreakerRegistry:
    """Tests for the per-dependency registry."""

    async def test_get_returns_same_breaker(self, breakers: CircuitBreakerRegistry):
        assert breakers.get("a") is breakers.get("a")
        assert breakers.get("a") is not breakers.get("b")

    async def test_execute_and_stats(self, breakers: CircuitBreakerRegistry):
        await breakers.execute("svc", succeed)
        with pytest.raises(Boom):
            await breakers.execute("svc", fail)

        stats = breakers.stats()

        assert list(stats) == ["svc"]
        assert stats["svc"].total_requests == 2
        assert stats["svc"].total_failures == 1

    async def test_reset_by_name(self, breakers: CircuitBreakerRegistry):
        breaker = breakers.get("svc", CircuitBreakerOptions(failure_threshold=1))
        with pytest.raises(Boom):
            await breaker.execute(fail)

        stats = breakers.reset("svc")

        assert stats.state == CircuitState.CLOSED

    def test_reset_unknown(self, breakers: CircuitBreakerRegistry):
        with pytest.raises(NotFoundError):
            breakers.reset("missing")
