"""
Sliding-window rate limiting.

Request timestamps for each (channel, identifier) pair live in the shared
store. When the store fails, checks fall back to a per-process window so
the limiter degrades instead of failing; it is best-effort and never a
hard security boundary.
"""

import logging
import math
from dataclasses import dataclass, field

from taskhub.clock import Clock, SystemClock, to_ms
from taskhub.config import Settings, get_settings
from taskhub.constants import RATE_LIMIT_KEY_PREFIX
from taskhub.errors import InvalidRecordError, StoreUnavailableError
from taskhub.observability.metrics import MetricsCollector
from taskhub.store.base import KeyValueStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitConfig:
    """
    Limit for one channel.

    A max_requests of 0 blocks the channel outright.
    """

    window_ms: int
    max_requests: int

    def __post_init__(self) -> None:
        if self.window_ms < 1:
            raise ValueError(f"window_ms must be positive, got {self.window_ms}")
        if self.max_requests < 0:
            raise ValueError(f"max_requests must not be negative, got {self.max_requests}")


@dataclass
class RateLimitDecision:
    """
    Admission decision.

    reset_at is epoch milliseconds; retry_after is whole seconds and only
    set on denials.
    """

    allowed: bool
    remaining: int
    reset_at: int
    retry_after: int | None = None

    def headers(self) -> dict[str, str]:
        """Standard rate limit response headers."""
        headers = {
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(math.ceil(self.reset_at / 1000)),
        }
        if not self.allowed:
            headers["Retry-After"] = str(self.retry_after or 60)
        return headers


def rate_limit_key(channel: str, identifier: str) -> str:
    return f"{RATE_LIMIT_KEY_PREFIX}{channel}:{identifier}"


def _decide(
    recent: list[int],
    config: RateLimitConfig,
    now_ms: int,
) -> tuple[RateLimitDecision, list[int] | None]:
    """
    Apply the window to already-filtered timestamps.

    A timestamp stays in the window until it is strictly older than
    now - window_ms, so a call at exactly reset_at is still denied.

    Returns:
        Tuple of (decision, timestamps to persist). Nothing is persisted
        for a denial.
    """
    if len(recent) >= config.max_requests:
        # A blocked channel has no recorded requests to age out
        reset_at = (min(recent) if recent else now_ms) + config.window_ms
        retry_after = max(1, math.ceil((reset_at - now_ms) / 1000))
        return RateLimitDecision(False, 0, reset_at, retry_after), None

    updated = [*recent, now_ms]
    decision = RateLimitDecision(
        allowed=True,
        remaining=config.max_requests - len(updated),
        reset_at=now_ms + config.window_ms,
    )
    return decision, updated


@dataclass
class _LocalWindow:
    window_ms: int
    requests: list[int] = field(default_factory=list)


class InMemorySlidingWindow:
    """
    Per-process sliding window used when the store is unavailable.

    Keys whose timestamps have all aged out are swept every
    ``sweep_every`` checks.
    """

    def __init__(self, sweep_every: int = 100):
        self._windows: dict[str, _LocalWindow] = {}
        self._sweep_every = max(1, sweep_every)
        self._checks = 0

    def check(self, key: str, config: RateLimitConfig, now_ms: int) -> RateLimitDecision:
        self._checks += 1
        if self._checks % self._sweep_every == 0:
            self.sweep(now_ms)

        window = self._windows.setdefault(key, _LocalWindow(config.window_ms))
        window.window_ms = config.window_ms
        cutoff = now_ms - config.window_ms
        recent = [ts for ts in window.requests if ts >= cutoff]

        decision, updated = _decide(recent, config, now_ms)
        window.requests = updated if updated is not None else recent
        return decision

    def sweep(self, now_ms: int) -> int:
        """Drop keys with no timestamps inside their window."""
        stale = [
            key
            for key, window in self._windows.items()
            if not any(ts >= now_ms - window.window_ms for ts in window.requests)
        ]
        for key in stale:
            del self._windows[key]
        return len(stale)

    def reset(self, key: str) -> None:
        self._windows.pop(key, None)

    def __len__(self) -> int:
        return len(self._windows)


class SlidingWindowRateLimiter:
    """
    Store-backed sliding-window rate limiter with an in-memory fallback.

    A denied request never consumes a slot. The stored window gets a TTL of
    twice the window length, which bounds memory; correctness comes from
    filtering timestamps on read.
    """

    def __init__(
        self,
        store: KeyValueStore,
        channels: dict[str, RateLimitConfig] | None = None,
        default: RateLimitConfig | None = None,
        clock: Clock | None = None,
        fallback: InMemorySlidingWindow | None = None,
        metrics: MetricsCollector | None = None,
    ):
        """
        Initialize the rate limiter.

        Args:
            store: Shared store holding request windows.
            channels: Per-channel limits.
            default: Limit for channels without their own entry.
            clock: Time source.
            fallback: In-memory window used when the store fails.
            metrics: Optional metrics collector.
        """
        self._store = store
        self._channels = dict(channels or {})
        self._default = default or RateLimitConfig(window_ms=60_000, max_requests=30)
        self._clock = clock or SystemClock()
        self._fallback = fallback or InMemorySlidingWindow()
        self._metrics = metrics

    @classmethod
    def from_settings(
        cls,
        store: KeyValueStore,
        settings: Settings | None = None,
        clock: Clock | None = None,
        metrics: MetricsCollector | None = None,
    ) -> "SlidingWindowRateLimiter":
        """Build a limiter from the rate limit settings."""
        settings = settings or get_settings()
        window_ms = settings.rate_limit_window_ms
        return cls(
            store,
            channels={
                channel: RateLimitConfig(window_ms=window_ms, max_requests=limit)
                for channel, limit in settings.rate_limit_channels.items()
            },
            default=RateLimitConfig(
                window_ms=window_ms,
                max_requests=settings.rate_limit_default_max_requests,
            ),
            clock=clock,
            fallback=InMemorySlidingWindow(sweep_every=settings.rate_limit_sweep_every),
            metrics=metrics,
        )

    def config_for(self, channel: str) -> RateLimitConfig:
        return self._channels.get(channel, self._default)

    async def check(self, channel: str, identifier: str) -> RateLimitDecision:
        """
        Decide whether one more request is admitted.

        Never raises for store failures: store errors, undecodable windows
        and connection errors downgrade this call to the in-memory window.

        Args:
            channel: Limit channel (selects the config).
            identifier: Client identity within the channel.

        Returns:
            RateLimitDecision.
        """
        config = self.config_for(channel)
        key = rate_limit_key(channel, identifier)
        now_ms = to_ms(self._clock)

        try:
            decision = await self._check_store(key, config, now_ms)
        except (StoreUnavailableError, InvalidRecordError, OSError):
            logger.warning(
                "Rate limit store unavailable, using in-memory window",
                extra={"channel": channel},
                exc_info=True,
            )
            if self._metrics:
                self._metrics.record_rate_limit_fallback(channel)
            decision = self._fallback.check(key, config, now_ms)

        if not decision.allowed:
            logger.warning(
                "Rate limit exceeded",
                extra={
                    "channel": channel,
                    "max_requests": config.max_requests,
                    "retry_after": decision.retry_after,
                },
            )
        if self._metrics:
            self._metrics.record_rate_limit_decision(channel, decision.allowed)

        return decision

    async def reset(self, channel: str, identifier: str) -> None:
        """Forget all recorded requests for a key."""
        key = rate_limit_key(channel, identifier)
        self._fallback.reset(key)
        await self._store.delete(key)

    async def _check_store(
        self,
        key: str,
        config: RateLimitConfig,
        now_ms: int,
    ) -> RateLimitDecision:
        stored = await self._store.get_json(key)
        requests = stored.get("requests", []) if isinstance(stored, dict) else []
        cutoff = now_ms - config.window_ms
        recent = [
            ts for ts in requests
            if isinstance(ts, (int, float)) and not isinstance(ts, bool) and ts >= cutoff
        ]

        decision, updated = _decide(recent, config, now_ms)
        if updated is not None:
            await self._store.put_json(
                key,
                {"requests": updated},
                ttl_seconds=math.ceil(2 * config.window_ms / 1000),
            )
        return decision
