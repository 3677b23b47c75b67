"""
Lease acquisition strategies.

A store without compare-and-swap can still detect a lost claim race: each
claimant writes its lease with a fresh nonce and reads the key back. A loser
always reads someone else's nonce; a winner reads its own. Stores with an
atomic put-if-absent can use the conditional strategy instead, with the same
outcome visible to TaskQueue.claim.
"""

import logging
from abc import ABC, abstractmethod

from taskhub.errors import RaceLostError
from taskhub.store.base import KeyValueStore
from taskhub.types.task import Lease

logger = logging.getLogger(__name__)


class LeaseAcquirer(ABC):
    """Writes a lease and decides whether the caller owns it."""

    def __init__(self, store: KeyValueStore):
        self._store = store

    @abstractmethod
    async def acquire(self, key: str, lease: Lease, ttl_seconds: int) -> Lease:
        """
        Try to take ownership of a lease key.

        Args:
            key: The lease key.
            lease: The lease to write, carrying a fresh claim nonce.
            ttl_seconds: Store TTL for the lease record.

        Returns:
            The lease as written.

        Raises:
            RaceLostError: If another claimant owns the key.
        """


class NonceVerifiedAcquirer(LeaseAcquirer):
    """Write-then-read-back nonce verification."""

    async def acquire(self, key: str, lease: Lease, ttl_seconds: int) -> Lease:
        await self._store.put(key, lease.model_dump_json(), ttl_seconds=ttl_seconds)

        stored = await self._store.get_json(key)
        if not isinstance(stored, dict) or stored.get("claim_nonce") != lease.claim_nonce:
            raise RaceLostError(key)

        return lease


class ConditionalPutAcquirer(LeaseAcquirer):
    """Single atomic put-if-absent, for stores that support one."""

    async def acquire(self, key: str, lease: Lease, ttl_seconds: int) -> Lease:
        written = await self._store.put_if_absent(
            key, lease.model_dump_json(), ttl_seconds=ttl_seconds
        )
        if not written:
            raise RaceLostError(key)
        return lease


def build_acquirer(strategy: str, store: KeyValueStore) -> LeaseAcquirer:
    """
    Create the acquirer for a configured strategy name.

    Args:
        strategy: "nonce" or "conditional".
        store: The store leases are written to.
    """
    if strategy == "conditional":
        return ConditionalPutAcquirer(store)
    if strategy != "nonce":
        raise ValueError(f"Unknown lease acquire strategy: {strategy}")
    return NonceVerifiedAcquirer(store)
