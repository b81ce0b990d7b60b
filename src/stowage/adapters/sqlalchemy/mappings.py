"""SQLAlchemy table metadata for the local entity store."""

from __future__ import annotations

import json
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, cast

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Dialect,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    TypeDecorator,
    UniqueConstraint,
)

from stowage.domain.model import Entity, Key

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine, Row


class UTCDateTime(TypeDecorator[datetime]):
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    def process_result_value(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        return value if value.tzinfo else value.replace(tzinfo=UTC)


metadata = MetaData(
    naming_convention={
        "ix": "ix_%(column_0_label)s",
        "uq": "uq_%(table_name)s_%(column_0_label)s",
        "ck": "ck_%(table_name)s_%(constraint_name)s",
        "fk": "fk_%(table_name)s_%(column_0_label)s_%(referred_table_name)s",
        "pk": "pk_%(table_name)s",
    }
)

entity_table = Table(
    "stowage_entity",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("namespace", String, nullable=False, default=""),
    Column("kind", String, nullable=False),
    Column("path", String, nullable=False),
    Column("properties", JSON, nullable=False),
    Column("updated_at", UTCDateTime, nullable=False),
    UniqueConstraint("namespace", "path"),
    Index("ix_stowage_entity_namespace_kind", "namespace", "kind"),
)

# Single id source for generated-id inserts and allocate_ids; rows are never deleted.
id_allocation_table = Table(
    "stowage_id_allocation",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("kind", String, nullable=False),
    Column("allocated_at", UTCDateTime, nullable=False),
    sqlite_autoincrement=True,
)


def create_all_tables(engine: Engine) -> None:
    metadata.create_all(engine, checkfirst=True)


def serialize_path(key: Key) -> str:
    """Return the canonical string stored in ``entity_table.c.path`` for ``key``."""
    return json.dumps(key.to_wire()["path"], sort_keys=True, separators=(",", ":"))


def namespace_of(key: Key) -> str:
    return key.namespace or ""


def entity_from_row(row: Row[Any]) -> Entity:
    key_payload: dict[str, Any] = {"path": json.loads(row.path)}
    if row.namespace:
        key_payload["partitionId"] = {"namespaceId": row.namespace}
    properties = cast("dict[str, Any]", row.properties)
    return Entity.from_wire({"key": key_payload, "properties": properties})


def entity_values(entity: Entity, key: Key) -> dict[str, Any]:
    """Column values for storing ``entity`` under ``key``."""
    return {
        "namespace": namespace_of(key),
        "kind": key.kind,
        "path": serialize_path(key),
        "properties": entity.to_wire()["properties"],
        "updated_at": datetime.now(tz=UTC),
    }
