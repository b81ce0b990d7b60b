"""Transaction coordinator: stage mutations, then commit or roll back exactly once."""

from __future__ import annotations

from enum import StrEnum
from logging import getLogger
from typing import TYPE_CHECKING, Literal, NoReturn

from stowage.domain.errors import TransactionError, UsageError
from stowage.domain.model import Entity, Key, QueryResults
from stowage.domain.mutation import MutationBatch

if TYPE_CHECKING:
    from types import TracebackType

    from stowage.domain.model import Identifier, Query
    from stowage.domain.ports import Transport

log = getLogger(__name__)


class TransactionState(StrEnum):
    OPEN = "open"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


class Transaction:
    """All-or-nothing scope over one transport transaction.

    Reads go straight to the transport and do not see staged writes. Writes are
    staged into a batch owned by this transaction and sent on ``commit``. Not
    thread-safe: keep one transaction on one thread of control.
    """

    def __init__(self, transport: Transport) -> None:
        self._transport = transport
        self._batch = MutationBatch()
        self._state = TransactionState.OPEN
        self.id = transport.begin_transaction()
        log.debug("Began transaction %s", self.id)

    @property
    def state(self) -> TransactionState:
        return self._state

    @property
    def batch(self) -> MutationBatch:
        return self._batch

    def find(self, key_or_kind: Key | str, id_or_name: Identifier | None = None) -> Entity | None:
        self._require_open("find")
        key = coerce_key(key_or_kind, id_or_name)
        found = self._transport.lookup([key], transaction=self.id)
        return next((entity for entity in found if entity.key == key), None)

    get = find

    def find_all(self, *keys: Key) -> list[Entity]:
        self._require_open("find_all")
        if not keys:
            return []
        return order_by_keys(keys, self._transport.lookup(keys, transaction=self.id))

    lookup = find_all

    def run(self, query: Query) -> QueryResults:
        self._require_open("run")
        batch = self._transport.run_query(query, transaction=self.id)
        return QueryResults(batch.entities, batch.end_cursor, batch.more_results)

    run_query = run

    def save(self, *entities: Entity) -> list[Entity]:
        self._require_open("save")
        self._batch.save(*entities)
        return list(entities)

    def delete(self, *entities_or_keys: Entity | Key) -> bool:
        self._require_open("delete")
        self._batch.delete(*(_key_of(item) for item in entities_or_keys))
        return True

    def commit(self) -> list[Entity]:
        """Send the staged batch and resolve generated ids onto saved entities."""
        self._require_open("commit")
        batch = self._batch
        result = self._transport.commit(batch, transaction=self.id)
        self._state = TransactionState.COMMITTED
        self._batch = MutationBatch()
        log.debug("Committed transaction %s with %s mutations", self.id, len(batch))
        batch.tracker.reconcile(result.generated_ids)
        return batch.entities

    def rollback(self) -> None:
        self._require_open("rollback")
        try:
            self._transport.rollback(self.id)
        finally:
            self._state = TransactionState.ROLLED_BACK
            self._batch = MutationBatch()
        log.debug("Rolled back transaction %s", self.id)

    def __enter__(self) -> Transaction:
        self._require_open("enter")
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> Literal[False]:
        if self._state is not TransactionState.OPEN:
            return False
        if exc_value is None:
            try:
                self.commit()
            except Exception as exc:
                if self._state is not TransactionState.OPEN:
                    raise
                self._fail(exc)
            return False
        if isinstance(exc_value, Exception):
            self._fail(exc_value)
        # KeyboardInterrupt and friends: release the transaction, keep the interrupt.
        try:
            self.rollback()
        except Exception as err:  # noqa: BLE001
            log.warning("Rollback of transaction %s failed: %r", self.id, err)
        return False  # don't swallow exceptions

    def _fail(self, exc: Exception) -> NoReturn:
        """Roll back after ``exc`` and raise ``TransactionError`` chained from it."""
        rollback_error: Exception | None = None
        try:
            self.rollback()
        except Exception as err:  # noqa: BLE001
            log.warning("Rollback of transaction %s failed: %r", self.id, err)
            rollback_error = err
        raise TransactionError(
            "Transaction failed to commit.", cause=exc, rollback_error=rollback_error
        ) from exc

    def _require_open(self, operation: str) -> None:
        if self._state is not TransactionState.OPEN:
            raise UsageError(f"cannot {operation}: transaction {self.id} is {self._state}")


def coerce_key(key_or_kind: Key | str, id_or_name: Identifier | None) -> Key:
    if isinstance(key_or_kind, Key):
        if id_or_name is not None:
            raise UsageError("pass either a Key or a kind with an id or name, not both")
        return key_or_kind
    if id_or_name is None:
        raise UsageError("finding by kind needs an id or name")
    return Key(key_or_kind, id_or_name)


def _key_of(item: Entity | Key) -> Key:
    return item.key if isinstance(item, Entity) else item


def order_by_keys(keys: tuple[Key, ...] | list[Key], entities: list[Entity]) -> list[Entity]:
    """Return ``entities`` in the order of ``keys``, dropping keys that were not found."""
    by_key = {entity.key: entity for entity in entities}
    return [by_key[key] for key in keys if key in by_key]
