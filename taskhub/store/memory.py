from dataclasses import dataclass

from taskhub.clock import Clock, SystemClock
from taskhub.store.base import KeyValueStore


@dataclass
class _Entry:
    value: str
    expires_at: float | None

    def is_live(self, now: float) -> bool:
        return self.expires_at is None or self.expires_at > now


class InMemoryStore(KeyValueStore):
    """
    Process-local store with clock-driven expiry.

    Expired entries are dropped lazily when read or listed, so a ManualClock
    can expire leases without any real waiting.
    """

    name = "memory"

    def __init__(self, clock: Clock | None = None):
        self._clock = clock or SystemClock()
        # key -> entry
        self._entries: dict[str, _Entry] = {}

    def _expiry(self, ttl_seconds: int | None) -> float | None:
        if ttl_seconds is None:
            return None
        return self._clock.time() + ttl_seconds

    def _live_entry(self, key: str) -> _Entry | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if not entry.is_live(self._clock.time()):
            # Lazy cleanup
            del self._entries[key]
            return None
        return entry

    async def get(self, key: str) -> str | None:
        entry = self._live_entry(key)
        return entry.value if entry else None

    async def put(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        self._entries[key] = _Entry(value=value, expires_at=self._expiry(ttl_seconds))

    async def put_if_absent(self, key: str, value: str, ttl_seconds: int | None = None) -> bool:
        if self._live_entry(key) is not None:
            return False
        self._entries[key] = _Entry(value=value, expires_at=self._expiry(ttl_seconds))
        return True

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    async def list_keys(self, prefix: str) -> list[str]:
        now = self._clock.time()
        return [
            key
            for key, entry in list(self._entries.items())
            if key.startswith(prefix) and entry.is_live(now)
        ]

    async def purge_expired(self) -> int:
        now = self._clock.time()
        expired = [key for key, entry in self._entries.items() if not entry.is_live(now)]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)
