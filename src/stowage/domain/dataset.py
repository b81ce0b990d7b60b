"""Caller-facing client: save, delete, find, query and transact against a transport."""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING, overload

from stowage.domain.errors import UsageError
from stowage.domain.model import Entity, QueryResults
from stowage.domain.mutation import MutationBatch
from stowage.domain.transaction import Transaction, coerce_key, order_by_keys

if TYPE_CHECKING:
    from collections.abc import Callable

    from stowage.domain.model import Identifier, Key, Query
    from stowage.domain.ports import Transport

log = getLogger(__name__)


class Dataset:
    """Entry point for reading and writing entities.

    ``save`` mutates the caller's entities: every entity submitted with an
    incomplete key has its ``key`` replaced by the completed key the store
    generated for it. The same entity objects are returned.
    """

    def __init__(self, transport: Transport) -> None:
        self.transport = transport

    def save(self, *entities: Entity) -> list[Entity]:
        batch = MutationBatch()
        batch.save(*entities)
        if batch.is_empty:
            return list(entities)
        result = self.transport.commit(batch)
        log.debug(
            "Saved %s entities (%s with generated ids)",
            len(batch.entities),
            len(batch.inserts_with_generated_id),
        )
        batch.tracker.reconcile(result.generated_ids)
        return list(entities)

    def delete(self, *entities_or_keys: Entity | Key) -> bool:
        batch = MutationBatch()
        batch.delete(*(item.key if isinstance(item, Entity) else item for item in entities_or_keys))
        if not batch.is_empty:
            self.transport.commit(batch)
            log.debug("Deleted %s keys", len(batch.deletes))
        return True

    def find(self, key_or_kind: Key | str, id_or_name: Identifier | None = None) -> Entity | None:
        """Return the entity for a key, or for a kind plus id/name; ``None`` if missing."""
        found = self.find_all(coerce_key(key_or_kind, id_or_name))
        return found[0] if found else None

    get = find

    def find_all(self, *keys: Key) -> list[Entity]:
        """Return the stored entities for ``keys`` in request order, skipping missing ones."""
        if not keys:
            return []
        return order_by_keys(keys, self.transport.lookup(keys))

    lookup = find_all

    def run(self, query: Query) -> QueryResults:
        batch = self.transport.run_query(query)
        return QueryResults(batch.entities, batch.end_cursor, batch.more_results)

    run_query = run

    @overload
    def transaction(self) -> Transaction: ...

    @overload
    def transaction[T](self, fn: Callable[[Transaction], T]) -> T: ...

    def transaction[T](self, fn: Callable[[Transaction], T] | None = None) -> Transaction | T:
        """Start a transaction.

        Without ``fn`` the open transaction is returned for manual ``commit`` /
        ``rollback`` (or use it as a context manager). With ``fn`` the transaction
        commits when ``fn`` returns and rolls back, raising ``TransactionError``,
        when it raises.
        """
        tx = Transaction(self.transport)
        if fn is None:
            return tx
        with tx:
            return fn(tx)

    def allocate_ids(self, incomplete_key: Key, count: int = 1) -> list[Key]:
        """Reserve ``count`` ids for ``incomplete_key`` without saving anything."""
        if incomplete_key.is_complete:
            raise UsageError("An incomplete key must be provided.")
        if count < 1:
            raise UsageError(f"count must be at least 1, got {count}")
        return self.transport.allocate_ids(incomplete_key, count)
