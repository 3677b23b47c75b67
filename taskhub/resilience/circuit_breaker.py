"""
Circuit breaker for outbound calls.

States: CLOSED (normal) -> OPEN (rejecting) -> HALF_OPEN (probing).

State is process-local and never persisted: it does not survive a restart
and each replica tracks dependency health on its own.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass
from typing import TypeVar

from taskhub.clock import Clock, SystemClock, to_ms
from taskhub.config import Settings, get_settings
from taskhub.constants import CircuitState
from taskhub.errors import CircuitOpenError, NotFoundError
from taskhub.observability.metrics import MetricsCollector

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class CircuitBreakerOptions:
    failure_threshold: int = 5
    reset_timeout_ms: int = 30_000
    success_threshold: int = 2

    @classmethod
    def from_settings(cls, settings: Settings) -> "CircuitBreakerOptions":
        return cls(
            failure_threshold=settings.circuit_failure_threshold,
            reset_timeout_ms=settings.circuit_reset_timeout_ms,
            success_threshold=settings.circuit_success_threshold,
        )


@dataclass(frozen=True)
class CircuitBreakerStats:
    state: CircuitState
    failures: int
    successes: int
    last_failure_time: int | None
    total_requests: int
    total_failures: int

    def to_dict(self) -> dict:
        return asdict(self)


class CircuitBreaker:
    """
    Three-state breaker around one named dependency.

    Counters:
    - failures: consecutive failures (reset by a CLOSED success)
    - successes: consecutive HALF_OPEN successes
    - total_requests / total_failures: lifetime totals, rejected calls included
    """

    def __init__(
        self,
        name: str,
        options: CircuitBreakerOptions | None = None,
        clock: Clock | None = None,
        metrics: MetricsCollector | None = None,
    ):
        self.name = name
        self.options = options or CircuitBreakerOptions()
        self._clock = clock or SystemClock()
        self._metrics = metrics

        self._state = CircuitState.CLOSED
        self._failures = 0
        self._successes = 0
        self._last_failure_time: int | None = None
        self._total_requests = 0
        self._total_failures = 0

        if self._metrics:
            self._metrics.record_circuit_state(self.name, self._state)

    @property
    def state(self) -> CircuitState:
        return self._state

    async def execute(self, fn: Callable[[], Awaitable[T]]) -> T:
        """
        Run fn through the breaker.

        Args:
            fn: Zero-argument callable returning an awaitable.

        Returns:
            Whatever fn returns.

        Raises:
            CircuitOpenError: If the circuit is OPEN and still cooling down;
                fn is not invoked.
            Exception: Anything fn raises, after it is counted as a failure.
        """
        self._total_requests += 1

        if self._state == CircuitState.OPEN:
            if self._should_attempt_reset():
                self._transition_to(CircuitState.HALF_OPEN)
            else:
                if self._metrics:
                    self._metrics.record_circuit_rejection(self.name)
                raise CircuitOpenError(self.name, self._remaining_timeout_ms())

        try:
            result = await fn()
        except Exception:
            self._on_failure()
            raise

        self._on_success()
        return result

    def get_stats(self) -> CircuitBreakerStats:
        return CircuitBreakerStats(
            state=self._state,
            failures=self._failures,
            successes=self._successes,
            last_failure_time=self._last_failure_time,
            total_requests=self._total_requests,
            total_failures=self._total_failures,
        )

    def reset(self) -> None:
        """
        Force CLOSED with zeroed failure and success counters.

        total_requests and total_failures are lifetime totals and survive a reset.
        """
        self._transition_to(CircuitState.CLOSED)
        self._failures = 0
        self._successes = 0
        self._last_failure_time = None

    def _on_success(self) -> None:
        if self._state == CircuitState.HALF_OPEN:
            self._successes += 1
            if self._successes >= self.options.success_threshold:
                self._transition_to(CircuitState.CLOSED)
                self._failures = 0
                self._successes = 0
        else:
            self._failures = 0

    def _on_failure(self) -> None:
        self._failures += 1
        self._total_failures += 1
        self._last_failure_time = to_ms(self._clock)

        if self._state == CircuitState.HALF_OPEN:
            self._transition_to(CircuitState.OPEN)
            self._successes = 0
        elif self._failures >= self.options.failure_threshold:
            self._transition_to(CircuitState.OPEN)

    def _should_attempt_reset(self) -> bool:
        if self._last_failure_time is None:
            return True
        return to_ms(self._clock) - self._last_failure_time >= self.options.reset_timeout_ms

    def _remaining_timeout_ms(self) -> int:
        if self._last_failure_time is None:
            return 0
        elapsed = to_ms(self._clock) - self._last_failure_time
        return max(0, self.options.reset_timeout_ms - elapsed)

    def _transition_to(self, new_state: CircuitState) -> None:
        if self._state == new_state:
            return

        log = logger.warning if new_state == CircuitState.OPEN else logger.info
        log(
            f"Circuit {self.name}: {self._state} -> {new_state}",
            extra={
                "circuit": self.name,
                "failures": self._failures,
                "successes": self._successes,
            },
        )
        self._state = new_state
        if self._metrics:
            self._metrics.record_circuit_state(self.name, new_state)


class CircuitBreakerRegistry:
    """
    One breaker per named dependency, held for the registry's lifetime.

    Construct one per process (or per test) and inject it where needed.
    """

    def __init__(
        self,
        defaults: CircuitBreakerOptions | None = None,
        clock: Clock | None = None,
        metrics: MetricsCollector | None = None,
    ):
        self._defaults = defaults or CircuitBreakerOptions()
        self._clock = clock or SystemClock()
        self._metrics = metrics
        self._breakers: dict[str, CircuitBreaker] = {}

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        clock: Clock | None = None,
        metrics: MetricsCollector | None = None,
    ) -> "CircuitBreakerRegistry":
        settings = settings or get_settings()
        return cls(CircuitBreakerOptions.from_settings(settings), clock=clock, metrics=metrics)

    def get(self, name: str, options: CircuitBreakerOptions | None = None) -> CircuitBreaker:
        """
        Get the breaker for a dependency, creating it on first use.

        Options only apply when the breaker is created.
        """
        breaker = self._breakers.get(name)
        if breaker is None:
            breaker = CircuitBreaker(
                name,
                options=options or self._defaults,
                clock=self._clock,
                metrics=self._metrics,
            )
            self._breakers[name] = breaker
        return breaker

    async def execute(self, name: str, fn: Callable[[], Awaitable[T]]) -> T:
        """Run fn through the named dependency's breaker."""
        return await self.get(name).execute(fn)

    def stats(self) -> dict[str, CircuitBreakerStats]:
        return {name: breaker.get_stats() for name, breaker in sorted(self._breakers.items())}

    def reset(self, name: str) -> CircuitBreakerStats:
        """
        Reset one breaker to CLOSED.

        Raises:
            NotFoundError: If no breaker with that name exists.
        """
        breaker = self._breakers.get(name)
        if breaker is None:
            raise NotFoundError("Circuit", name)
        breaker.reset()
        return breaker.get_stats()

    def __contains__(self, name: str) -> bool:
        return name in self._breakers
