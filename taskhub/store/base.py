"""
Key-value store contract.

Every queue, lease and rate-limit record lives behind this interface. The
contract is deliberately weak: single-key get/put/delete with an optional
TTL, prefix listing, no transactions and no compare-and-swap.
"""

import json
import logging
from abc import ABC, abstractmethod
from typing import Any

from taskhub.errors import InvalidRecordError

logger = logging.getLogger(__name__)


class KeyValueStore(ABC):
    """Abstract async key-value store."""

    name: str = "abstract"

    @abstractmethod
    async def get(self, key: str) -> str | None:
        """Return the raw value for a key, or None if absent or expired."""

    async def get_json(self, key: str) -> Any | None:
        """
        Return the parsed JSON value for a key.

        Raises:
            InvalidRecordError: If the stored value is not valid JSON.
        """
        raw = await self.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            raise InvalidRecordError(key, f"not JSON ({e.msg})") from e

    @abstractmethod
    async def put(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        """Store a value, replacing any existing one. ttl_seconds=None never expires."""

    async def put_json(self, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        """Serialize a value to JSON and store it."""
        await self.put(key, json.dumps(value), ttl_seconds=ttl_seconds)

    @abstractmethod
    async def put_if_absent(self, key: str, value: str, ttl_seconds: int | None = None) -> bool:
        """
        Store a value only when the key holds no live value.

        Returns:
            True if the value was written.
        """

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Delete a key. Deleting a missing key is not an error."""

    @abstractmethod
    async def list_keys(self, prefix: str) -> list[str]:
        """List live keys starting with prefix."""

    async def ping(self) -> bool:
        """Check the backend is reachable."""
        return True

    async def purge_expired(self) -> int:
        """
        Physically remove expired entries.

        Backends with native expiry have nothing to do.

        Returns:
            Number of removed entries.
        """
        return 0

    async def close(self) -> None:
        """Release backend resources."""
