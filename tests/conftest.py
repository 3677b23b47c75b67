"""
Pytest configuration and shared fixtures.
"""

import asyncio
from collections.abc import AsyncGenerator
from typing import Any
from uuid import uuid4

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from prometheus_client import CollectorRegistry

from taskhub.api.main import create_app
from taskhub.clock import ManualClock
from taskhub.config import Settings
from taskhub.observability.metrics import MetricsCollector
from taskhub.queue.task_queue import TaskQueue
from taskhub.resilience.circuit_breaker import CircuitBreakerRegistry
from taskhub.resilience.rate_limit import SlidingWindowRateLimiter
from taskhub.services import HubServices, build_services
from taskhub.store.memory import InMemoryStore

# Fixed start time so lease timestamps are reproducible
START_TIME = 1_700_000_000.0


class YieldingStore(InMemoryStore):
    """
    In-memory store that yields to the event loop on every call.

    Lets concurrently gathered coroutines interleave between store
    operations the way they would against a networked backend.
    """

    async def get(self, key: str) -> str | None:
        await asyncio.sleep(0)
        return await super().get(key)

    async def put(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        await asyncio.sleep(0)
        await super().put(key, value, ttl_seconds=ttl_seconds)

    async def put_if_absent(self, key: str, value: str, ttl_seconds: int | None = None) -> bool:
        await asyncio.sleep(0)
        return await super().put_if_absent(key, value, ttl_seconds=ttl_seconds)

    async def delete(self, key: str) -> None:
        await asyncio.sleep(0)
        await super().delete(key)

    async def list_keys(self, prefix: str) -> list[str]:
        await asyncio.sleep(0)
        return await super().list_keys(prefix)


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings."""
    return Settings(
        store_backend="memory",
        log_level="DEBUG",
        log_format="console",
        worker_lease_duration_seconds=5,
        worker_poll_interval_seconds=0.01,
        worker_heartbeat_interval_seconds=0.01,
        janitor_interval_seconds=1,
    )


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(start=START_TIME)


@pytest.fixture
def store(clock: ManualClock) -> InMemoryStore:
    return InMemoryStore(clock=clock)


@pytest.fixture
def yielding_store(clock: ManualClock) -> YieldingStore:
    return YieldingStore(clock=clock)


@pytest.fixture
def metrics() -> MetricsCollector:
    """Metrics collector on a private registry."""
    return MetricsCollector(registry=CollectorRegistry())


@pytest.fixture
def task_queue(
    store: InMemoryStore,
    clock: ManualClock,
    test_settings: Settings,
    metrics: MetricsCollector,
) -> TaskQueue:
    return TaskQueue(store, clock=clock, settings=test_settings, metrics=metrics)


@pytest.fixture
def rate_limiter(
    store: InMemoryStore,
    clock: ManualClock,
    test_settings: Settings,
    metrics: MetricsCollector,
) -> SlidingWindowRateLimiter:
    return SlidingWindowRateLimiter.from_settings(
        store, settings=test_settings, clock=clock, metrics=metrics
    )


@pytest.fixture
def breakers(clock: ManualClock, metrics: MetricsCollector) -> CircuitBreakerRegistry:
    return CircuitBreakerRegistry(clock=clock, metrics=metrics)


@pytest.fixture
def services(
    test_settings: Settings,
    store: InMemoryStore,
    clock: ManualClock,
    metrics: MetricsCollector,
) -> HubServices:
    return build_services(test_settings, store=store, clock=clock, metrics=metrics)


@pytest_asyncio.fixture
async def app(services: HubServices) -> AsyncGenerator[FastAPI]:
    """Create a FastAPI app bound to the in-memory services."""
    app = create_app(services)
    yield app
    await services.close()


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient]:
    """Create an async HTTP client for testing."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def worker_id() -> str:
    return f"test-worker-{uuid4().hex[:8]}"


@pytest.fixture
def sample_task_payload() -> dict[str, Any]:
    """Create a sample task payload."""
    return {
        "task_type": "echo",
        "data": {"message": "Hello, World!"},
    }
