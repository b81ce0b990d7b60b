"""HTTP transport for Datastore v1 compatible REST endpoints."""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING, Any

import httpx
from pydantic import ValidationError

from stowage.domain.errors import TransportError
from stowage.domain.model import Entity, Key
from stowage.domain.ports import CommitResult, QueryBatch

from .schema import (
    AllocateIdsResponse,
    BeginTransactionResponse,
    CommitResponse,
    ErrorResponse,
    LookupResponse,
    RunQueryResponse,
)

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import TracebackType

    from stowage.config import HttpConfig
    from stowage.domain.model import Identifier, Query
    from stowage.domain.mutation import MutationBatch

log = getLogger(__name__)


class HttpTransportError(TransportError):
    """Raised when the REST endpoint returns an error or cannot be reached."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        status: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.status = status


class HttpTransport:
    """Blocking JSON client. One request per transport call; no retries."""

    def __init__(self, config: HttpConfig, *, client: httpx.Client | None = None) -> None:
        self.config = config
        self._client = client or httpx.Client(
            base_url=config.base_url,
            timeout=config.timeout_seconds,
            headers=dict(config.default_headers),
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> HttpTransport:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.close()

    def begin_transaction(self) -> str:
        response = BeginTransactionResponse.model_validate(self._post("beginTransaction", {}))
        return response.transaction

    def rollback(self, transaction: str) -> None:
        self._post("rollback", {"transaction": transaction})

    def commit(self, batch: MutationBatch, *, transaction: str | None = None) -> CommitResult:
        project = self.config.project
        mutations: list[dict[str, Any]] = [
            {"insert": entity.to_wire(project)} for entity in batch.inserts_with_generated_id
        ]
        mutations.extend({"upsert": entity.to_wire(project)} for entity in batch.upserts)
        mutations.extend({"delete": key.to_wire(project)} for key in batch.deletes)

        payload: dict[str, Any] = {"mutations": mutations}
        if transaction is None:
            payload["mode"] = "NON_TRANSACTIONAL"
        else:
            payload["mode"] = "TRANSACTIONAL"
            payload["transaction"] = transaction

        response = CommitResponse.model_validate(self._post("commit", payload))
        insert_results = response.mutation_results[: len(batch.inserts_with_generated_id)]
        generated = tuple(
            identifier
            for result in insert_results
            if result.key is not None
            and (identifier := _leaf_identifier(result.key)) is not None
        )
        return CommitResult(generated_ids=generated, index_updates=response.index_updates)

    def lookup(self, keys: Sequence[Key], *, transaction: str | None = None) -> list[Entity]:
        pending = [key.to_wire(self.config.project) for key in keys]
        found: list[Entity] = []
        while pending:
            payload: dict[str, Any] = {"keys": pending}
            if transaction is not None:
                payload["readOptions"] = {"transaction": transaction}
            response = LookupResponse.model_validate(self._post("lookup", payload))
            found.extend(Entity.from_wire(result.entity) for result in response.found)
            if response.deferred:
                log.debug("Lookup deferred %s keys; requesting again", len(response.deferred))
            pending = response.deferred
        return found

    def allocate_ids(self, template: Key, count: int) -> list[Key]:
        payload = {"keys": [template.to_wire(self.config.project) for _ in range(count)]}
        response = AllocateIdsResponse.model_validate(self._post("allocateIds", payload))
        return [Key.from_wire(key) for key in response.keys]

    def run_query(self, query: Query, *, transaction: str | None = None) -> QueryBatch:
        partition: dict[str, str] = {"projectId": self.config.project}
        if query.namespace:
            partition["namespaceId"] = query.namespace
        payload: dict[str, Any] = {
            "partitionId": partition,
            "query": query.to_wire(self.config.project),
        }
        if transaction is not None:
            payload["readOptions"] = {"transaction": transaction}

        batch = RunQueryResponse.model_validate(self._post("runQuery", payload)).batch
        return QueryBatch(
            entities=[Entity.from_wire(result.entity) for result in batch.entity_results],
            end_cursor=batch.end_cursor,
            more_results=batch.has_more,
        )

    def _post(self, method: str, payload: dict[str, Any]) -> dict[str, Any]:
        url = f"projects/{self.config.project}:{method}"
        try:
            response = self._client.post(url, json=payload)
        except httpx.HTTPError as exc:
            log.error("Request to %s failed: %s", method, exc)
            raise HttpTransportError(f"{method} request failed: {exc}") from exc

        if response.is_error:
            raise _error_from_response(method, response)

        try:
            body = response.json()
        except ValueError as exc:
            raise HttpTransportError(
                f"{method} returned a non-JSON body", status_code=response.status_code
            ) from exc
        if not isinstance(body, dict):
            raise HttpTransportError(
                f"{method} returned an unexpected payload", status_code=response.status_code
            )
        return body


def _error_from_response(method: str, response: httpx.Response) -> HttpTransportError:
    message = response.reason_phrase
    status: str | None = None
    try:
        detail = ErrorResponse.model_validate(response.json()).error
    except (ValueError, ValidationError):
        detail = None
    if detail is not None:
        message = detail.message or message
        status = detail.status
    log.error(
        "Datastore API error on %s (%s %s): %s", method, response.status_code, status, message
    )
    return HttpTransportError(message, status_code=response.status_code, status=status)


def _leaf_identifier(key_payload: dict[str, Any]) -> Identifier | None:
    path = key_payload.get("path") or []
    if not path:
        return None
    leaf = path[-1]
    if leaf.get("id") is not None:
        return int(leaf["id"])
    if leaf.get("name") is not None:
        return str(leaf["name"])
    return None


if TYPE_CHECKING:
    from stowage.domain.ports import Transport

    _transport_check: Transport = HttpTransport(HttpConfig(project="check"))
