"""
Process-wide service wiring.

Builds the store, queue, rate limiter and breaker registry once per process
so the API, the worker and tests share the same construction path.
"""

import logging
from dataclasses import dataclass

from taskhub.clock import Clock, SystemClock
from taskhub.config import Settings, get_settings
from taskhub.observability.metrics import MetricsCollector, get_metrics
from taskhub.queue.task_queue import TaskQueue
from taskhub.resilience.circuit_breaker import CircuitBreakerRegistry
from taskhub.resilience.rate_limit import SlidingWindowRateLimiter
from taskhub.store import KeyValueStore, build_store

logger = logging.getLogger(__name__)


@dataclass
class HubServices:
    settings: Settings
    store: KeyValueStore
    clock: Clock
    task_queue: TaskQueue
    rate_limiter: SlidingWindowRateLimiter
    breakers: CircuitBreakerRegistry
    metrics: MetricsCollector

    async def close(self) -> None:
        await self.store.close()
        logger.info("Services closed", extra={"backend": self.store.name})


def build_services(
    settings: Settings | None = None,
    store: KeyValueStore | None = None,
    clock: Clock | None = None,
    metrics: MetricsCollector | None = None,
) -> HubServices:
    """
    Build the service graph.

    Args:
        settings: Settings to build from. Defaults to the cached settings.
        store: Store to use instead of the configured backend.
        clock: Time source shared by every component.
        metrics: Metrics collector. Defaults to the process-wide one.

    Returns:
        HubServices ready for use.
    """
    settings = settings or get_settings()
    clock = clock or SystemClock()
    metrics = metrics or get_metrics()
    store = store or build_store(settings, clock=clock)

    services = HubServices(
        settings=settings,
        store=store,
        clock=clock,
        task_queue=TaskQueue(store, clock=clock, settings=settings, metrics=metrics),
        rate_limiter=SlidingWindowRateLimiter.from_settings(
            store, settings=settings, clock=clock, metrics=metrics
        ),
        breakers=CircuitBreakerRegistry.from_settings(settings, clock=clock, metrics=metrics),
        metrics=metrics,
    )

    logger.info(
        "Services built",
        extra={"backend": store.name, "lease_strategy": settings.lease_acquire_strategy},
    )
    return services
