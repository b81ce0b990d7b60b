"""Minimal Pydantic models for Datastore v1 REST responses.

Entity and key bodies are kept as plain mappings and decoded by the domain
model's ``from_wire``.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

MoreResults = Literal[
    "MORE_RESULTS_TYPE_UNSPECIFIED",
    "NOT_FINISHED",
    "MORE_RESULTS_AFTER_LIMIT",
    "MORE_RESULTS_AFTER_CURSOR",
    "NO_MORE_RESULTS",
]


class DatastoreBaseModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class ErrorDetail(DatastoreBaseModel):
    code: int | None = None
    message: str = ""
    status: str | None = None


class ErrorResponse(DatastoreBaseModel):
    error: ErrorDetail


class BeginTransactionResponse(DatastoreBaseModel):
    transaction: str


class MutationResult(DatastoreBaseModel):
    key: dict[str, Any] | None = None
    version: str | None = None
    conflict_detected: bool = Field(default=False, alias="conflictDetected")


class CommitResponse(DatastoreBaseModel):
    mutation_results: list[MutationResult] = Field(
        default_factory=list["MutationResult"], alias="mutationResults"
    )
    index_updates: int = Field(default=0, alias="indexUpdates")


class EntityResult(DatastoreBaseModel):
    entity: dict[str, Any]
    version: str | None = None
    cursor: str | None = None


class LookupResponse(DatastoreBaseModel):
    found: list[EntityResult] = Field(default_factory=list["EntityResult"])
    missing: list[EntityResult] = Field(default_factory=list["EntityResult"])
    deferred: list[dict[str, Any]] = Field(default_factory=list[dict[str, Any]])


class AllocateIdsResponse(DatastoreBaseModel):
    keys: list[dict[str, Any]] = Field(default_factory=list[dict[str, Any]])


class QueryResultBatch(DatastoreBaseModel):
    entity_results: list[EntityResult] = Field(
        default_factory=list["EntityResult"], alias="entityResults"
    )
    end_cursor: str | None = Field(default=None, alias="endCursor")
    more_results: MoreResults = Field(
        default="MORE_RESULTS_TYPE_UNSPECIFIED", alias="moreResults"
    )

    @property
    def has_more(self) -> bool:
        return self.more_results in (
            "NOT_FINISHED",
            "MORE_RESULTS_AFTER_LIMIT",
            "MORE_RESULTS_AFTER_CURSOR",
        )


class RunQueryResponse(DatastoreBaseModel):
    batch: QueryResultBatch = Field(default_factory=QueryResultBatch)
