"""
Key-value store backends.
"""

from taskhub.clock import Clock
from taskhub.config import Settings
from taskhub.store.base import KeyValueStore
from taskhub.store.memory import InMemoryStore


def build_store(settings: Settings, clock: Clock | None = None) -> KeyValueStore:
    """
    Create the store selected by settings.store_backend.

    Backends with heavier dependencies are imported lazily.
    """
    if settings.store_backend == "redis":
        from taskhub.store.redis import RedisStore

        return RedisStore.from_url(settings.redis_url)

    if settings.store_backend == "sql":
        from taskhub.store.sql import SqlStore

        return SqlStore.from_settings(settings, clock=clock)

    return InMemoryStore(clock=clock)


__all__ = ["KeyValueStore", "InMemoryStore", "build_store"]
