"""
Resilience primitives: rate limiting and circuit breaking.
"""

from taskhub.resilience.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerOptions,
    CircuitBreakerRegistry,
    CircuitBreakerStats,
)
from taskhub.resilience.rate_limit import (
    InMemorySlidingWindow,
    RateLimitConfig,
    RateLimitDecision,
    SlidingWindowRateLimiter,
)

__all__ = [
    "CircuitBreaker",
    "CircuitBreakerOptions",
    "CircuitBreakerRegistry",
    "CircuitBreakerStats",
    "InMemorySlidingWindow",
    "RateLimitConfig",
    "RateLimitDecision",
    "SlidingWindowRateLimiter",
]
