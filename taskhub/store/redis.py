"""
Redis-backed key-value store.

Uses native key expiry, so leases and rate windows disappear without any
janitor involvement.
"""

import logging
import re

from redis.asyncio import Redis
from redis.exceptions import RedisError

from taskhub.errors import StoreUnavailableError
from taskhub.store.base import KeyValueStore

logger = logging.getLogger(__name__)

_GLOB_SPECIAL = re.compile(r"([*?\[\]\\])")


class RedisStore(KeyValueStore):
    """Store implementation over redis.asyncio."""

    name = "redis"

    def __init__(self, client: Redis):
        """
        Initialize the store with a connected client.

        Args:
            client: A redis.asyncio client created with decode_responses=True.
        """
        self._client = client

    @classmethod
    def from_url(cls, url: str) -> "RedisStore":
        """Create a store from a redis:// URL."""
        return cls(Redis.from_url(url, decode_responses=True))

    async def get(self, key: str) -> str | None:
        try:
            return await self._client.get(key)
        except RedisError as e:
            raise StoreUnavailableError("get", key, e) from e

    async def put(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        try:
            await self._client.set(key, value, ex=ttl_seconds)
        except RedisError as e:
            raise StoreUnavailableError("put", key, e) from e

    async def put_if_absent(self, key: str, value: str, ttl_seconds: int | None = None) -> bool:
        try:
            written = await self._client.set(key, value, ex=ttl_seconds, nx=True)
        except RedisError as e:
            raise StoreUnavailableError("put_if_absent", key, e) from e
        return bool(written)

    async def delete(self, key: str) -> None:
        try:
            await self._client.delete(key)
        except RedisError as e:
            raise StoreUnavailableError("delete", key, e) from e

    async def list_keys(self, prefix: str) -> list[str]:
        pattern = _GLOB_SPECIAL.sub(r"\\\1", prefix) + "*"
        try:
            return [key async for key in self._client.scan_iter(match=pattern)]
        except RedisError as e:
            raise StoreUnavailableError("list", prefix, e) from e

    async def ping(self) -> bool:
        try:
            return bool(await self._client.ping())
        except RedisError:
            logger.warning("Redis ping failed", exc_info=True)
            return False

    async def close(self) -> None:
        await self._client.aclose()
        logger.info("Redis connection closed")
