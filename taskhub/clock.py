"""
Time sources.

Lease expiry, rate windows and circuit cooldowns all read time through a
Clock so tests can move time forward without sleeping.
"""

import time
from datetime import datetime, timezone
from typing import Protocol


class Clock(Protocol):
    """Source of the current time."""

    def time(self) -> float:
        """Seconds since the epoch."""
        ...

    def now(self) -> datetime:
        """Current time as an aware UTC datetime."""
        ...


class SystemClock:
    """Wall clock."""

    def time(self) -> float:
        return time.time()

    def now(self) -> datetime:
        return datetime.fromtimestamp(self.time(), tz=timezone.utc)


class ManualClock(SystemClock):
    """
    Clock that only moves when told to.

    Args:
        start: Initial epoch seconds. Defaults to the current wall time.
    """

    def __init__(self, start: float | None = None):
        self._now = start if start is not None else time.time()

    def time(self) -> float:
        return self._now

    def advance(self, seconds: float) -> None:
        """Move the clock forward."""
        self._now += seconds

    def set(self, epoch_seconds: float) -> None:
        self._now = epoch_seconds


def to_ms(clock: Clock) -> int:
    """Current epoch milliseconds for any clock."""
    return int(clock.time() * 1000)
