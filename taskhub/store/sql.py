"""
PostgreSQL-backed key-value store.

Rows carry an explicit expires_at; reads and listings ignore expired rows
and the janitor deletes them periodically.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import datetime, timedelta

from sqlalchemy import and_, delete, func, or_, select, text
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from taskhub.clock import Clock, SystemClock
from taskhub.config import Settings
from taskhub.db.connection import create_engine, create_session_factory
from taskhub.db.models import KVEntry
from taskhub.errors import StoreUnavailableError
from taskhub.store.base import KeyValueStore

logger = logging.getLogger(__name__)


class SqlStore(KeyValueStore):
    """Store implementation over an async SQLAlchemy engine."""

    name = "sql"

    def __init__(self, engine: AsyncEngine, clock: Clock | None = None):
        """
        Initialize the store.

        Args:
            engine: The async engine; the store disposes it on close().
            clock: Time source for expiry comparisons.
        """
        self._engine = engine
        self._session_factory = create_session_factory(engine)
        self._clock = clock or SystemClock()

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    @classmethod
    def from_settings(cls, settings: Settings, clock: Clock | None = None) -> "SqlStore":
        """Create a store with an engine built from settings."""
        return cls(create_engine(settings), clock=clock)

    @asynccontextmanager
    async def _session(self, operation: str, key: str | None = None) -> AsyncGenerator[AsyncSession]:
        try:
            async with self._session_factory() as session:
                yield session
                await session.commit()
        except (SQLAlchemyError, OSError) as e:
            raise StoreUnavailableError(operation, key, e) from e

    def _expiry(self, ttl_seconds: int | None) -> datetime | None:
        if ttl_seconds is None:
            return None
        return self._clock.now() + timedelta(seconds=ttl_seconds)

    def _live(self, now: datetime):
        return or_(KVEntry.expires_at.is_(None), KVEntry.expires_at > now)

    async def get(self, key: str) -> str | None:
        stmt = select(KVEntry.value).where(
            and_(KVEntry.key == key, self._live(self._clock.now()))
        )
        async with self._session("get", key) as session:
            result = await session.execute(stmt)
            return result.scalar_one_or_none()

    async def put(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        expires_at = self._expiry(ttl_seconds)
        stmt = insert(KVEntry).values(
            key=key,
            value=value,
            expires_at=expires_at,
        ).on_conflict_do_update(
            index_elements=[KVEntry.key],
            set_={"value": value, "expires_at": expires_at, "updated_at": func.now()},
        )
        async with self._session("put", key) as session:
            await session.execute(stmt)

    async def put_if_absent(self, key: str, value: str, ttl_seconds: int | None = None) -> bool:
        now = self._clock.now()
        expires_at = self._expiry(ttl_seconds)
        # Overwrite only rows that have already expired but not been purged
        stmt = insert(KVEntry).values(
            key=key,
            value=value,
            expires_at=expires_at,
        ).on_conflict_do_update(
            index_elements=[KVEntry.key],
            set_={"value": value, "expires_at": expires_at, "updated_at": func.now()},
            where=and_(KVEntry.expires_at.is_not(None), KVEntry.expires_at <= now),
        ).returning(KVEntry.key)
        async with self._session("put_if_absent", key) as session:
            result = await session.execute(stmt)
            return result.scalar_one_or_none() is not None

    async def delete(self, key: str) -> None:
        async with self._session("delete", key) as session:
            await session.execute(delete(KVEntry).where(KVEntry.key == key))

    async def list_keys(self, prefix: str) -> list[str]:
        stmt = (
            select(KVEntry.key)
            .where(
                and_(
                    KVEntry.key.startswith(prefix, autoescape=True),
                    self._live(self._clock.now()),
                )
            )
            .order_by(KVEntry.key)
        )
        async with self._session("list", prefix) as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def ping(self) -> bool:
        try:
            async with self._session("ping") as session:
                await session.execute(text("SELECT 1"))
            return True
        except StoreUnavailableError:
            logger.warning("Database ping failed", exc_info=True)
            return False

    async def purge_expired(self) -> int:
        stmt = delete(KVEntry).where(
            and_(KVEntry.expires_at.is_not(None), KVEntry.expires_at <= self._clock.now())
        )
        async with self._session("purge") as session:
            result = await session.execute(stmt)
            count = result.rowcount or 0

        return count

    async def close(self) -> None:
        await self._engine.dispose()
        logger.info("Database connection closed")
