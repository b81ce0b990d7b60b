"""In-process query evaluation over decoded entities.

Values compare only within the same type class (an integer filter never matches
a double), list properties match when any element matches, and entities that
lack a filtered or ordered property are left out, as the Datastore indexes do.
"""

from __future__ import annotations

import base64
import binascii
import json
import operator
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, Final, cast

from stowage.domain.errors import TransportError
from stowage.domain.model import Entity, Key, Operator

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from stowage.domain.model import PropertyFilter, Query

type SortValue = tuple[int, Any]

_MISSING: Final = object()

_COMPARATORS: Final[dict[Operator, Callable[[Any, Any], bool]]] = {
    Operator.EQUAL: operator.eq,
    Operator.NOT_EQUAL: operator.ne,
    Operator.LESS_THAN: operator.lt,
    Operator.LESS_THAN_OR_EQUAL: operator.le,
    Operator.GREATER_THAN: operator.gt,
    Operator.GREATER_THAN_OR_EQUAL: operator.ge,
}


class InvalidCursorError(TransportError):
    """Raised when a query cursor was not produced by this store."""


@dataclass(frozen=True, slots=True)
class QueryPage:
    entities: list[Entity]
    end_position: int
    more_results: bool


def sort_value(value: object) -> SortValue:
    """Rank by type class first, then by value within the class."""
    if value is None:
        return (0, 0)
    if isinstance(value, bool):
        return (3, value)
    if isinstance(value, int):
        return (1, value)
    if isinstance(value, datetime):
        # naive timestamps are taken as UTC, the way they are stored
        return (2, value.replace(tzinfo=UTC) if value.tzinfo is None else value)
    if isinstance(value, bytes):
        return (4, value)
    if isinstance(value, str):
        return (5, value)
    if isinstance(value, float):
        return (6, value)
    if isinstance(value, Key):
        return (7, key_sort_value(value))
    return (8, json.dumps(value, sort_keys=True, default=str))


def key_sort_value(key: Key) -> tuple[object, ...]:
    return (
        key.namespace or "",
        tuple(
            (kind, (0, identifier) if isinstance(identifier, int) else (1, identifier or ""))
            for kind, identifier in key.path
        ),
    )


def _candidates(entity: Entity, name: str) -> list[object]:
    value = entity.properties.get(name, _MISSING)
    if value is _MISSING:
        return []
    if isinstance(value, list):
        return cast("list[object]", value)
    return [value]


def matches(entity: Entity, condition: PropertyFilter) -> bool:
    candidates = _candidates(entity, condition.property)
    if condition.operator in (Operator.IN, Operator.NOT_IN):
        choices = {sort_value(item) for item in cast("Sequence[object]", condition.value)}
        wanted = condition.operator is Operator.IN
        return any((sort_value(item) in choices) is wanted for item in candidates)

    expected = sort_value(condition.value)
    compare = _COMPARATORS[condition.operator]
    for item in candidates:
        actual = sort_value(item)
        if condition.operator is Operator.NOT_EQUAL:
            if actual != expected:
                return True
            continue
        if actual[0] == expected[0] and compare(actual, expected):
            return True
    return False


def _order_value(entity: Entity, name: str, *, descending: bool) -> SortValue | None:
    candidates = [sort_value(item) for item in _candidates(entity, name)]
    if not candidates:
        return None
    return max(candidates) if descending else min(candidates)


def evaluate(query: Query, entities: Sequence[Entity]) -> QueryPage:
    selected = [
        entity
        for entity in entities
        if (query.kind is None or entity.key.kind == query.kind)
        and (query.ancestor_key is None or query.ancestor_key.is_ancestor_of(entity.key))
        and all(matches(entity, condition) for condition in query.filters)
        and all(
            _order_value(entity, order.property, descending=order.descending) is not None
            for order in query.orders
        )
    ]

    selected.sort(key=lambda entity: key_sort_value(entity.key))
    for order in reversed(query.orders):
        selected.sort(
            key=lambda entity, order=order: cast(
                "SortValue",
                _order_value(entity, order.property, descending=order.descending),
            ),
            reverse=order.descending,
        )

    start = decode_cursor(query.start_cursor) if query.start_cursor else 0
    skip = min(start + query.offset_count, len(selected))
    end = len(selected) if query.limit_count is None else skip + query.limit_count
    page = selected[skip:end]
    end_position = skip + len(page)
    return QueryPage(page, end_position, end_position < len(selected))


def encode_cursor(position: int) -> str:
    return base64.urlsafe_b64encode(f"pos:{position}".encode()).decode("ascii")


def decode_cursor(cursor: str) -> int:
    try:
        raw = base64.urlsafe_b64decode(cursor.encode("ascii")).decode("ascii")
        prefix, _, number = raw.partition(":")
        position = int(number)
    except (binascii.Error, UnicodeError, ValueError):
        raise InvalidCursorError(f"Invalid query cursor: {cursor!r}") from None
    if prefix != "pos" or position < 0:
        raise InvalidCursorError(f"Invalid query cursor: {cursor!r}")
    return position
