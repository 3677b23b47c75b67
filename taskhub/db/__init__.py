"""
Database module.
Contains the engine/session helpers and the model backing the SQL store.
"""

from taskhub.db.connection import (
    create_engine,
    create_session_factory,
    create_tables,
    create_test_engine,
)
from taskhub.db.models import Base, KVEntry

__all__ = [
    "create_engine",
    "create_test_engine",
    "create_session_factory",
    "create_tables",
    "KVEntry",
    "Base",
]
