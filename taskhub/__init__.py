"""
Task Hub

Lease-based task queue, sliding-window rate limiter and circuit breaker for a
webhook-driven orchestration hub, built on a weakly consistent key-value store.
"""

__version__ = "1.0.0"
