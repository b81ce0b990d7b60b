"""
Mutation batching:
partition saved entities into generated-id inserts and upserts, and write the
generated ids back onto the entities that asked for them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING

from stowage.domain.errors import ProtocolConsistencyError, UsageError
from stowage.domain.model import Entity

if TYPE_CHECKING:
    from collections.abc import Sequence

    from stowage.domain.model import Identifier, Key

log = getLogger(__name__)


@dataclass(slots=True)
class AutoIdTracker:
    """Entities awaiting a generated id, in registration order.

    One tracker serves exactly one commit. Position ``i`` of the commit's
    generated ids belongs to ``pending[i]``.
    """

    pending: list[Entity] = field(default_factory=list[Entity])
    _consumed: bool = field(default=False, init=False)

    @property
    def consumed(self) -> bool:
        return self._consumed

    def register(self, entity: Entity) -> None:
        if self._consumed:
            raise UsageError("auto-id tracker already reconciled; start a new batch")
        self.pending.append(entity)

    def reconcile(self, generated_ids: Sequence[Identifier]) -> list[Entity]:
        """Assign ``generated_ids`` positionally and return the resolved entities.

        On a count mismatch the overlapping prefix is still applied before
        ``ProtocolConsistencyError`` is raised.
        """
        if self._consumed:
            raise UsageError("auto-id tracker already reconciled; start a new batch")

        pending = self.pending
        self.pending = []
        self._consumed = True

        resolved: list[Entity] = []
        for entity, identifier in zip(pending, generated_ids, strict=False):
            entity.key = entity.key.with_identifier(identifier)
            resolved.append(entity)

        if len(generated_ids) != len(pending):
            unresolved = pending[len(resolved) :]
            log.error(
                "Commit returned %s generated ids for %s auto-id entities",
                len(generated_ids),
                len(pending),
            )
            raise ProtocolConsistencyError(
                f"expected {len(pending)} generated ids, received {len(generated_ids)}",
                expected=len(pending),
                received=len(generated_ids),
                unresolved=unresolved,
            )
        return resolved

    def __len__(self) -> int:
        return len(self.pending)


@dataclass(slots=True)
class MutationBatch:
    """Mutations for a single commit. Build a fresh batch for every operation."""

    inserts_with_generated_id: list[Entity] = field(default_factory=list[Entity])
    upserts: list[Entity] = field(default_factory=list[Entity])
    deletes: list[Key] = field(default_factory=list["Key"])
    tracker: AutoIdTracker = field(default_factory=AutoIdTracker)

    def save(self, *entities: Entity) -> None:
        """Stage entities, registering incomplete-key entities for id assignment."""
        for entity in entities:
            if self._is_staged(entity):
                continue
            if entity.key.is_complete:
                self.upserts.append(entity)
            else:
                self.inserts_with_generated_id.append(entity)
                self.tracker.register(entity)

    def delete(self, *keys: Key) -> None:
        self.deletes.extend(keys)

    @property
    def is_empty(self) -> bool:
        return not (self.inserts_with_generated_id or self.upserts or self.deletes)

    @property
    def entities(self) -> list[Entity]:
        return [*self.inserts_with_generated_id, *self.upserts]

    def _is_staged(self, entity: Entity) -> bool:
        return any(
            staged is entity for staged in (*self.inserts_with_generated_id, *self.upserts)
        )

    def __len__(self) -> int:
        return len(self.inserts_with_generated_id) + len(self.upserts) + len(self.deletes)
