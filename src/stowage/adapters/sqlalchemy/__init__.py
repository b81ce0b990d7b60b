"""SQLAlchemy adapter package for stowage."""

from __future__ import annotations

from .mappings import create_all_tables, entity_table, id_allocation_table, metadata
from .querying import InvalidCursorError
from .transport import (
    SqlAlchemyTransport,
    StartupError,
    UnknownTransactionError,
    configured_engine,
    is_started,
    shutdown,
    startup,
)

__all__ = [
    "InvalidCursorError",
    "SqlAlchemyTransport",
    "StartupError",
    "UnknownTransactionError",
    "configured_engine",
    "create_all_tables",
    "entity_table",
    "id_allocation_table",
    "is_started",
    "metadata",
    "shutdown",
    "startup",
]
