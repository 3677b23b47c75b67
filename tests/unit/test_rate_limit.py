"""
Unit tests for sliding-window rate limiting.
"""

import pytest
from pydantic import ValidationError

from taskhub.clock import ManualClock, to_ms
from taskhub.config import Settings
from taskhub.errors import StoreUnavailableError
from taskhub.observability.metrics import MetricsCollector
from taskhub.resilience.rate_limit import (
    InMemorySlidingWindow,
    RateLimitConfig,
    RateLimitDecision,
    SlidingWindowRateLimiter,
    rate_limit_key,
)
from taskhub.store.memory import InMemoryStore


class FailingStore(InMemoryStore):
    """Store whose every operation fails."""

    async def get(self, key: str) -> str | None:
        raise StoreUnavailableError("get", key)

    async def put(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        raise StoreUnavailableError("put", key)


class WriteFailingStore(InMemoryStore):
    """Store that reads fine but fails on write."""

    async def put(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        raise ConnectionError("write refused")


class BrokenStore(InMemoryStore):
    """Store with a programming error rather than an outage."""

    async def get(self, key: str) -> str | None:
        raise RuntimeError("bug in store code")


class TestRateLimitDecision:
    """Tests for RateLimitDecision headers."""

    def test_allowed_headers(self):
        decision = RateLimitDecision(allowed=True, remaining=4, reset_at=1_700_000_060_500)

        assert decision.headers() == {
            "X-RateLimit-Remaining": "4",
            "X-RateLimit-Reset": "1700000061",
        }

    def test_denied_headers(self):
        decision = RateLimitDecision(
            allowed=False, remaining=0, reset_at=1_700_000_060_000, retry_after=12
        )

        assert decision.headers()["Retry-After"] == "12"


class TestSlidingWindowRateLimiter:
    """Tests for the store-backed limiter."""

    @pytest.fixture
    def limiter(self, store: InMemoryStore, clock: ManualClock) -> SlidingWindowRateLimiter:
        return SlidingWindowRateLimiter(
            store,
            channels={"test": RateLimitConfig(window_ms=1000, max_requests=3)},
            clock=clock,
        )

    async def test_allows_up_to_limit(self, limiter: SlidingWindowRateLimiter):
        decisions = [await limiter.check("test", "u1") for _ in range(3)]

        assert [d.allowed for d in decisions] == [True, True, True]
        assert [d.remaining for d in decisions] == [2, 1, 0]

    async def test_denies_over_limit(self, limiter: SlidingWindowRateLimiter, clock: ManualClock):
        start_ms = to_ms(clock)
        for _ in range(3):
            await limiter.check("test", "u1")

        denied = await limiter.check("test", "u1")

        assert denied.allowed is False
        assert denied.remaining == 0
        assert denied.reset_at == start_ms + 1000
        assert denied.retry_after == 1

    async def test_denied_request_is_not_recorded(
        self, limiter: SlidingWindowRateLimiter, store: InMemoryStore
    ):
        for _ in range(5):
            await limiter.check("test", "u1")

        stored = await store.get_json(rate_limit_key("test", "u1"))
        assert len(stored["requests"]) == 3

    async def test_window_slides(self, limiter: SlidingWindowRateLimiter, clock: ManualClock):
        """Requests older than the window stop counting."""
        await limiter.check("test", "u1")
        clock.advance(0.5)
        await limiter.check("test", "u1")
        await limiter.check("test", "u1")
        assert (await limiter.check("test", "u1")).allowed is False

        # At exactly +1000 ms the first request still counts
        clock.advance(0.5)
        assert (await limiter.check("test", "u1")).allowed is False

        clock.advance(0.0625)
        decision = await limiter.check("test", "u1")

        assert decision.allowed is True
        assert decision.remaining == 0
        assert decision.reset_at == to_ms(clock) + 1000

    async def test_denied_at_exactly_reset_at(self, store: InMemoryStore, clock: ManualClock):
        limiter = SlidingWindowRateLimiter(
            store,
            channels={"single": RateLimitConfig(window_ms=1000, max_requests=1)},
            clock=clock,
        )
        first = await limiter.check("single", "u1")

        clock.advance(1.0)
        assert to_ms(clock) == first.reset_at
        second = await limiter.check("single", "u1")

        assert second.allowed is False
        assert second.reset_at == first.reset_at
        assert second.retry_after == 1

        clock.advance(0.0625)
        assert (await limiter.check("single", "u1")).allowed is True

    async def test_zero_limit_blocks_channel(
        self, store: InMemoryStore, clock: ManualClock, metrics: MetricsCollector
    ):
        limiter = SlidingWindowRateLimiter(
            store,
            channels={"blocked": RateLimitConfig(window_ms=1000, max_requests=0)},
            clock=clock,
            metrics=metrics,
        )

        decision = await limiter.check("blocked", "u1")

        assert decision.allowed is False
        assert decision.remaining == 0
        assert decision.reset_at == to_ms(clock) + 1000
        assert decision.retry_after == 1
        assert await store.get(rate_limit_key("blocked", "u1")) is None
        assert metrics.rate_limit_fallbacks.labels(channel="blocked")._value.get() == 0

    async def test_identifiers_are_independent(self, limiter: SlidingWindowRateLimiter):
        for _ in range(3):
            await limiter.check("test", "u1")

        assert (await limiter.check("test", "u1")).allowed is False
        assert (await limiter.check("test", "u2")).allowed is True

    async def test_stored_with_double_window_ttl(
        self, limiter: SlidingWindowRateLimiter, store: InMemoryStore, clock: ManualClock
    ):
        await limiter.check("test", "u1")

        clock.advance(1.9)
        assert await store.get(rate_limit_key("test", "u1")) is not None
        clock.advance(0.2)
        assert await store.get(rate_limit_key("test", "u1")) is None

    async def test_retry_after_rounds_up(self, store: InMemoryStore, clock: ManualClock):
        limiter = SlidingWindowRateLimiter(
            store,
            channels={"slow": RateLimitConfig(window_ms=60_000, max_requests=1)},
            clock=clock,
        )
        await limiter.check("slow", "u1")
        clock.advance(10.2)

        denied = await limiter.check("slow", "u1")

        assert denied.retry_after == 50

    async def test_unknown_channel_uses_default(self, store: InMemoryStore, clock: ManualClock):
        limiter = SlidingWindowRateLimiter(
            store,
            default=RateLimitConfig(window_ms=60_000, max_requests=2),
            clock=clock,
        )

        results = [(await limiter.check("other", "u1")).allowed for _ in range(3)]

        assert results == [True, True, False]

    async def test_reset_clears_window(self, limiter: SlidingWindowRateLimiter):
        for _ in range(3):
            await limiter.check("test", "u1")

        await limiter.reset("test", "u1")

        assert (await limiter.check("test", "u1")).allowed is True

    async def test_ignores_malformed_timestamps(
        self, limiter: SlidingWindowRateLimiter, store: InMemoryStore
    ):
        await store.put_json(rate_limit_key("test", "u1"), {"requests": ["x", None, True]})

        decision = await limiter.check("test", "u1")

        assert decision.allowed is True
        assert decision.remaining == 2


class TestChannelDefaults:
    """Tests for limits built from settings."""

    def test_invalid_configs_rejected(self):
        with pytest.raises(ValueError):
            RateLimitConfig(window_ms=0, max_requests=5)
        with pytest.raises(ValueError):
            RateLimitConfig(window_ms=1000, max_requests=-1)

    def test_settings_validate_limits(self, store: InMemoryStore, clock: ManualClock):
        with pytest.raises(ValidationError):
            Settings(rate_limit_channels={"admin": -1})
        with pytest.raises(ValidationError):
            Settings(rate_limit_window_ms=0)

        settings = Settings(rate_limit_channels={"admin": 0})
        limiter = SlidingWindowRateLimiter.from_settings(store, settings=settings, clock=clock)

        assert limiter.config_for("admin").max_requests == 0

    def test_channel_limits(self, rate_limiter: SlidingWindowRateLimiter):
        assert rate_limiter.config_for("slack").max_requests == 100
        assert rate_limiter.config_for("admin").max_requests == 10
        assert rate_limiter.config_for("queue").max_requests == 120
        assert rate_limiter.config_for("limitless_webhook_public").max_requests == 10
        assert rate_limiter.config_for("limitless_webhook_auth").max_requests == 60
        assert rate_limiter.config_for("anything-else").max_requests == 30
        assert rate_limiter.config_for("slack").window_ms == 60_000

    def test_channel_override(self, store: InMemoryStore, clock: ManualClock):
        settings = Settings(rate_limit_channels={"slack": 5}, rate_limit_window_ms=10_000)

        limiter = SlidingWindowRateLimiter.from_settings(store, settings=settings, clock=clock)

        assert limiter.config_for("slack") == RateLimitConfig(window_ms=10_000, max_requests=5)
        assert limiter.config_for("admin").max_requests == 30


class TestFallback:
    """The limiter keeps deciding when the store fails."""

    async def test_store_failure_falls_back(self, clock: ManualClock, metrics: MetricsCollector):
        limiter = SlidingWindowRateLimiter(
            FailingStore(clock=clock),
            channels={"test": RateLimitConfig(window_ms=1000, max_requests=2)},
            clock=clock,
            metrics=metrics,
        )

        decisions = [await limiter.check("test", "u1") for _ in range(3)]

        assert [d.allowed for d in decisions] == [True, True, False]
        assert decisions[2].retry_after == 1
        assert metrics.rate_limit_fallbacks.labels(channel="test")._value.get() == 3

    async def test_write_failure_falls_back(self, clock: ManualClock):
        limiter = SlidingWindowRateLimiter(
            WriteFailingStore(clock=clock),
            channels={"test": RateLimitConfig(window_ms=1000, max_requests=1)},
            clock=clock,
        )

        first = await limiter.check("test", "u1")
        second = await limiter.check("test", "u1")

        assert first.allowed is True
        assert second.allowed is False


    async def test_unexpected_errors_propagate(self, clock: ManualClock, metrics: MetricsCollector):
        limiter = SlidingWindowRateLimiter(BrokenStore(clock=clock), clock=clock, metrics=metrics)

        with pytest.raises(RuntimeError):
            await limiter.check("test", "u1")

        assert metrics.rate_limit_fallbacks.labels(channel="test")._value.get() == 0


class TestInMemorySlidingWindow:
    """Tests for the in-process fallback window."""

    def test_zero_limit_denies(self):
        window = InMemorySlidingWindow()

        decision = window.check("k", RateLimitConfig(window_ms=1000, max_requests=0), 500)

        assert decision.allowed is False
        assert decision.reset_at == 1500

    def test_same_decisions_as_store(self):
        window = InMemorySlidingWindow()
        config = RateLimitConfig(window_ms=1000, max_requests=2)

        assert window.check("k", config, 0).allowed is True
        assert window.check("k", config, 100).allowed is True
        denied = window.check("k", config, 200)
        assert denied.allowed is False
        assert denied.reset_at == 1000
        assert window.check("k", config, 1000).allowed is False
        assert window.check("k", config, 1001).allowed is True

    def test_sweep_drops_idle_keys(self):
        window = InMemorySlidingWindow(sweep_every=3)
        config = RateLimitConfig(window_ms=1000, max_requests=5)

        window.check("a", config, 0)
        window.check("b", config, 0)
        assert len(window) == 2

        # Third check triggers a sweep before recording "c"
        window.check("c", config, 5000)

        assert len(window) == 1

    def test_reset(self):
        window = InMemorySlidingWindow()
        config = RateLimitConfig(window_ms=1000, max_requests=1)
        window.check("k", config, 0)

        window.reset("k")

        assert window.check("k", config, 1).allowed is True
