"""Transport backed by a relational database through SQLAlchemy Core."""

from __future__ import annotations

import uuid
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from logging import getLogger
from typing import TYPE_CHECKING, cast

from sqlalchemy import create_engine, delete, select, update
from sqlalchemy.exc import SQLAlchemyError

from stowage.adapters.sqlalchemy.mappings import (
    create_all_tables,
    entity_from_row,
    entity_table,
    entity_values,
    id_allocation_table,
    namespace_of,
    serialize_path,
)
from stowage.adapters.sqlalchemy.querying import encode_cursor, evaluate
from stowage.config import get_database_config
from stowage.domain.errors import TransportError
from stowage.domain.ports import CommitResult, QueryBatch

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence, Set

    from sqlalchemy.engine import Connection, Engine

    from stowage.domain.model import Entity, Key, Query
    from stowage.domain.mutation import MutationBatch

log = getLogger(__name__)


class StartupError(TransportError):
    """Raised when the SQLAlchemy transport is used before initialisation."""


class UnknownTransactionError(TransportError):
    """Raised for a transaction handle that is not open on this transport."""


@dataclass(slots=True)
class _AdapterState:
    engine: Engine | None = None


_STATE = _AdapterState()


def startup(
    *,
    engine: Engine | None = None,
    database_uri: str | None = None,
    force: bool = False,
) -> Engine:
    """Initialise the SQLAlchemy engine and create the store tables."""

    if _STATE.engine is not None and not force:
        raise StartupError(
            "SQLAlchemy transport already initialised. Pass force=True to reconfigure."
        )

    resolved_engine = engine or create_engine(
        database_uri or get_database_config().uri, future=True
    )
    create_all_tables(resolved_engine)
    _STATE.engine = resolved_engine
    log.debug("SQLAlchemy transport started on %s", resolved_engine.url)
    return resolved_engine


def configured_engine() -> Engine | None:
    """Return the engine currently managed by the adapter (if any)."""

    return _STATE.engine


def is_started() -> bool:
    """Return whether the adapter has been initialised."""

    return _STATE.engine is not None


def shutdown() -> None:
    """Dispose the managed engine and reset state (primarily for tests)."""

    if _STATE.engine is not None:
        _STATE.engine.dispose()
    _STATE.engine = None


class SqlAlchemyTransport:
    """Local store. Transactions map to database transactions on a dedicated connection."""

    def __init__(self, engine: Engine | None = None) -> None:
        resolved = engine or _STATE.engine
        if resolved is None:
            raise StartupError(
                "SQLAlchemy transport not initialised. Call stowage.adapters.sqlalchemy."
                "startup() or pass an engine."
            )
        self.engine = resolved
        self._transactions: dict[str, Connection] = {}

    def begin_transaction(self) -> str:
        handle = uuid.uuid4().hex
        with _translate_errors():
            connection = self.engine.connect()
            connection.begin()
        self._transactions[handle] = connection
        return handle

    def rollback(self, transaction: str) -> None:
        connection = self._take(transaction)
        try:
            with _translate_errors():
                connection.rollback()
        finally:
            connection.close()

    def commit(self, batch: MutationBatch, *, transaction: str | None = None) -> CommitResult:
        if transaction is None:
            with _translate_errors(), self.engine.begin() as connection:
                return self._apply(connection, batch)

        connection = self._get(transaction)
        try:
            with _translate_errors():
                result = self._apply(connection, batch)
                connection.commit()
        except TransportError:
            # The handle stays registered until the caller rolls it back.
            connection.rollback()
            raise
        self._take(transaction).close()
        return result

    def lookup(self, keys: Sequence[Key], *, transaction: str | None = None) -> list[Entity]:
        paths_by_namespace: defaultdict[str, list[str]] = defaultdict(list)
        for key in keys:
            paths_by_namespace[namespace_of(key)].append(serialize_path(key))

        found: list[Entity] = []
        with self._reading(transaction) as connection:
            for namespace, paths in paths_by_namespace.items():
                stmt = (
                    select(entity_table)
                    .where(entity_table.c.namespace == namespace)
                    .where(entity_table.c.path.in_(paths))
                )
                found.extend(entity_from_row(row) for row in connection.execute(stmt))
        return found

    def allocate_ids(self, template: Key, count: int) -> list[Key]:
        with _translate_errors(), self.engine.begin() as connection:
            keys = [self._free_key(connection, template) for _ in range(count)]
        log.debug("Allocated %s ids for kind %s", count, template.kind)
        return keys

    def run_query(self, query: Query, *, transaction: str | None = None) -> QueryBatch:
        stmt = select(entity_table).where(entity_table.c.namespace == (query.namespace or ""))
        if query.kind is not None:
            stmt = stmt.where(entity_table.c.kind == query.kind)
        with self._reading(transaction) as connection:
            entities = [entity_from_row(row) for row in connection.execute(stmt)]
        page = evaluate(query, entities)
        return QueryBatch(
            entities=page.entities,
            end_cursor=encode_cursor(page.end_position),
            more_results=page.more_results,
        )

    def _apply(self, connection: Connection, batch: MutationBatch) -> CommitResult:
        generated: list[int] = []
        upserted = {_location(entity.key) for entity in batch.upserts}
        for entity in batch.inserts_with_generated_id:
            key = self._free_key(connection, entity.key, reserved=upserted)
            connection.execute(entity_table.insert().values(**entity_values(entity, key)))
            generated.append(cast("int", key.id))

        for entity in batch.upserts:
            self._upsert(connection, entity)

        for key in batch.deletes:
            connection.execute(
                delete(entity_table)
                .where(entity_table.c.namespace == namespace_of(key))
                .where(entity_table.c.path == serialize_path(key))
            )

        log.debug(
            "Applied %s inserts, %s upserts, %s deletes",
            len(batch.inserts_with_generated_id),
            len(batch.upserts),
            len(batch.deletes),
        )
        return CommitResult(generated_ids=tuple(generated), index_updates=len(batch))

    def _upsert(self, connection: Connection, entity: Entity) -> None:
        values = entity_values(entity, entity.key)
        updated = connection.execute(
            update(entity_table)
            .where(entity_table.c.namespace == values["namespace"])
            .where(entity_table.c.path == values["path"])
            .values(properties=values["properties"], updated_at=values["updated_at"])
        )
        if updated.rowcount == 0:
            connection.execute(entity_table.insert().values(**values))

    @staticmethod
    def _next_id(connection: Connection, kind: str) -> int:
        result = connection.execute(
            id_allocation_table.insert().values(kind=kind, allocated_at=datetime.now(tz=UTC))
        )
        primary_key = result.inserted_primary_key
        if primary_key is None:
            raise TransportError("database did not return an allocated id")
        return int(primary_key[0])

    def _free_key(
        self,
        connection: Connection,
        template: Key,
        *,
        reserved: Set[tuple[str, str]] = frozenset(),
    ) -> Key:
        """Complete ``template`` with the next id whose key is not stored or reserved.

        Ids come from one counter, but callers may also save keys with explicit
        numeric ids, so a drawn id can already be in use for this kind.
        """
        while True:
            key = template.with_identifier(self._next_id(connection, template.kind))
            namespace, path = _location(key)
            if (namespace, path) in reserved:
                continue
            taken = connection.execute(
                select(entity_table.c.id)
                .where(entity_table.c.namespace == namespace)
                .where(entity_table.c.path == path)
            ).first()
            if taken is None:
                return key
            log.debug("Skipping id %s for kind %s; key already stored", key.id, key.kind)

    def _get(self, transaction: str) -> Connection:
        connection = self._transactions.get(transaction)
        if connection is None:
            raise UnknownTransactionError(f"Unknown transaction: {transaction}")
        return connection

    def _take(self, transaction: str) -> Connection:
        connection = self._get(transaction)
        del self._transactions[transaction]
        return connection

    @contextmanager
    def _reading(self, transaction: str | None) -> Iterator[Connection]:
        if transaction is not None:
            connection = self._get(transaction)
            with _translate_errors():
                yield connection
            return
        with _translate_errors(), self.engine.connect() as connection:
            yield connection


def _location(key: Key) -> tuple[str, str]:
    return namespace_of(key), serialize_path(key)


@contextmanager
def _translate_errors() -> Iterator[None]:
    try:
        yield
    except SQLAlchemyError as exc:
        log.exception("Database error in SQLAlchemy transport")
        raise TransportError(str(exc)) from exc


if TYPE_CHECKING:
    from stowage.domain.ports import Transport

    _transport_check: Transport = SqlAlchemyTransport()
