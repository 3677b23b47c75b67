"""
SQLAlchemy database models.
Defines the key-value table backing the SQL store.
"""

from datetime import datetime

from sqlalchemy import DateTime, Index, String, Text, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class KVEntry(Base):
    """
    One key-value record.

    Expiry is explicit: rows whose expires_at has passed are invisible to
    reads and listings, and are physically removed by the janitor.
    """

    __tablename__ = "kv_entries"

    key: Mapped[str] = mapped_column(
        String(512),
        primary_key=True,
    )
    value: Mapped[str] = mapped_column(
        Text,
        nullable=False,
    )
    expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    __table_args__ = (
        # Janitor purge scan
        Index("ix_kv_entries_expires_at", "expires_at"),
        # LIKE 'prefix%' listings regardless of the database collation
        Index(
            "ix_kv_entries_key_prefix",
            "key",
            postgresql_ops={"key": "text_pattern_ops"},
        ),
    )

    def __repr__(self) -> str:
        return f"KVEntry(key={self.key}, expires_at={self.expires_at})"
