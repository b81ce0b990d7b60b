"""Port for the remote store that commits mutations and serves reads."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Sequence

    from stowage.domain.model import Entity, Identifier, Key, Query
    from stowage.domain.mutation import MutationBatch


@dataclass(frozen=True, slots=True)
class CommitResult:
    """Outcome of a commit: generated identifiers in insert order."""

    generated_ids: tuple[Identifier, ...] = ()
    index_updates: int = 0


@dataclass(slots=True)
class QueryBatch:
    """One batch of query results as returned by a transport."""

    entities: list[Entity] = field(default_factory=list["Entity"])
    end_cursor: str | None = None
    more_results: bool = False


@runtime_checkable
class Transport(Protocol):
    """Blocking calls against the backing store.

    Every method takes and returns domain values; wire encoding stays inside the
    implementation. Failures are raised as ``TransportError`` subclasses.
    """

    def begin_transaction(self) -> str: ...

    def rollback(self, transaction: str) -> None: ...

    def commit(self, batch: MutationBatch, *, transaction: str | None = None) -> CommitResult: ...

    def lookup(self, keys: Sequence[Key], *, transaction: str | None = None) -> list[Entity]: ...

    def allocate_ids(self, template: Key, count: int) -> list[Key]: ...

    def run_query(self, query: Query, *, transaction: str | None = None) -> QueryBatch: ...
