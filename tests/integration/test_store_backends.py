"""
Integration tests for the Redis and PostgreSQL store backends.

These need live services and are skipped unless TEST_REDIS_URL or
TEST_DATABASE_URL points at one.
"""

import os
from collections.abc import AsyncGenerator
from uuid import uuid4

import pytest
import pytest_asyncio

from taskhub.clock import ManualClock
from taskhub.queue.task_queue import TaskQueue
from taskhub.store.base import KeyValueStore
from taskhub.types.task import TaskResult

TEST_REDIS_URL = os.getenv("TEST_REDIS_URL")
TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL")

BACKENDS = [
    pytest.param(
        "redis",
        marks=pytest.mark.skipif(not TEST_REDIS_URL, reason="TEST_REDIS_URL not set"),
    ),
    pytest.param(
        "sql",
        marks=pytest.mark.skipif(not TEST_DATABASE_URL, reason="TEST_DATABASE_URL not set"),
    ),
]


@pytest_asyncio.fixture(params=BACKENDS)
async def backend(request, clock: ManualClock) -> AsyncGenerator[KeyValueStore]:
    """A live store of each configured kind."""
    if request.param == "redis":
        from taskhub.store.redis import RedisStore

        store = RedisStore.from_url(TEST_REDIS_URL)
    else:
        from taskhub.db.connection import create_tables, create_test_engine
        from taskhub.store.sql import SqlStore

        engine = create_test_engine(TEST_DATABASE_URL)
        await create_tables(engine)
        store = SqlStore(engine, clock=clock)

    yield store
    await store.close()


@pytest.fixture
def prefix() -> str:
    """A key prefix unique to the test, so shared services stay clean."""
    return f"test-{uuid4().hex[:12]}:"


class TestStoreBackends:
    """Contract tests run against every live backend."""

    async def test_get_put_delete(self, backend: KeyValueStore, prefix: str):
        key = f"{prefix}k"

        assert await backend.get(key) is None
        await backend.put(key, "v", ttl_seconds=60)
        assert await backend.get(key) == "v"

        await backend.put(key, "w", ttl_seconds=60)
        assert await backend.get(key) == "w"

        await backend.delete(key)
        assert await backend.get(key) is None

    async def test_put_if_absent(self, backend: KeyValueStore, prefix: str):
        key = f"{prefix}k"

        assert await backend.put_if_absent(key, "first", ttl_seconds=60) is True
        assert await backend.put_if_absent(key, "second", ttl_seconds=60) is False
        assert await backend.get(key) == "first"

        await backend.delete(key)

    async def test_list_keys_matches_literal_prefix(self, backend: KeyValueStore, prefix: str):
        await backend.put(f"{prefix}a_b:1", "1", ttl_seconds=60)
        await backend.put(f"{prefix}a_b:2", "1", ttl_seconds=60)
        await backend.put(f"{prefix}axb:3", "1", ttl_seconds=60)

        keys = await backend.list_keys(f"{prefix}a_b:")

        assert sorted(keys) == [f"{prefix}a_b:1", f"{prefix}a_b:2"]
        for key in (f"{prefix}a_b:1", f"{prefix}a_b:2", f"{prefix}axb:3"):
            await backend.delete(key)

    async def test_ping(self, backend: KeyValueStore):
        assert await backend.ping() is True

    async def test_claim_round_trip(self, backend: KeyValueStore, clock: ManualClock, prefix: str):
        queue = TaskQueue(backend, clock=clock)
        task_id = f"{prefix.rstrip(':')}-task"

        await queue.enqueue({"task_type": "echo"}, task_id=task_id)
        claim = await queue.claim(worker_id="w1", lease_duration_seconds=30)

        # Other tests may share the service, so only check our own task
        if claim.task_id == task_id:
            lease = await queue.get_lease(task_id)
            assert lease.claim_nonce == claim.lease.claim_nonce

        await queue.complete(task_id, TaskResult(success=True))
        assert (await queue.get_result(task_id)).success is True
