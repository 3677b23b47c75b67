"""
Janitor for stores without native expiry.

Leases, tasks and rate limit windows all expire by TTL. Redis evicts expired
keys itself; the SQL store only hides expired rows, so the janitor deletes
them periodically to keep the table bounded.
"""

import asyncio
import logging
import signal

from taskhub.config import get_settings
from taskhub.observability.logging import setup_logging
from taskhub.store import build_store
from taskhub.store.base import KeyValueStore

logger = logging.getLogger(__name__)


class Janitor:
    """
    Periodically purges expired store entries.

    Safe to run as several replicas: purging an already purged row is a no-op.
    """

    def __init__(self, store: KeyValueStore, interval_seconds: int | None = None):
        """
        Initialize the janitor.

        Args:
            store: The store to purge.
            interval_seconds: Seconds between purge runs.
        """
        settings = get_settings()
        self.interval = interval_seconds or settings.janitor_interval_seconds
        self._store = store
        self._running = False

    async def start(self) -> None:
        """Start the janitor loop."""
        logger.info(
            f"Janitor starting with interval {self.interval}s",
            extra={"backend": self._store.name},
        )
        self._running = True

        while self._running:
            try:
                await self.run_once()
            except Exception as e:
                logger.exception(f"Error in janitor loop: {e}")

            await asyncio.sleep(self.interval)

        logger.info("Janitor stopped")

    async def stop(self) -> None:
        """Stop the janitor."""
        logger.info("Janitor stopping")
        self._running = False

    async def run_once(self) -> int:
        """
        Run one purge (for testing or cron-style execution).

        Returns:
            Number of entries removed.
        """
        purged = await self._store.purge_expired()
        if purged > 0:
            logger.info(f"Purged {purged} expired entries", extra={"backend": self._store.name})
        return purged


async def run_async() -> None:
    """Run the janitor asynchronously."""
    setup_logging()

    store = build_store(get_settings())
    janitor = Janitor(store)

    # Handle shutdown signals
    loop = asyncio.get_running_loop()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(
            sig,
            lambda: asyncio.create_task(janitor.stop()),
        )

    try:
        await janitor.start()
    finally:
        await store.close()


def run() -> None:
    """Run the janitor."""
    asyncio.run(run_async())


if __name__ == "__main__":
    run()
