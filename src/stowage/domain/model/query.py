"""Immutable query description and result containers."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field, replace
from enum import StrEnum
from typing import TYPE_CHECKING, Any, Final, overload

from stowage.domain.model.values import encode_value

if TYPE_CHECKING:
    from collections.abc import Iterator

    from stowage.domain.model.entity import Entity
    from stowage.domain.model.key import Key
    from stowage.domain.model.values import Value


class Operator(StrEnum):
    EQUAL = "="
    NOT_EQUAL = "!="
    LESS_THAN = "<"
    LESS_THAN_OR_EQUAL = "<="
    GREATER_THAN = ">"
    GREATER_THAN_OR_EQUAL = ">="
    IN = "in"
    NOT_IN = "not in"


_WIRE_OPERATORS: Final[dict[Operator, str]] = {
    Operator.EQUAL: "EQUAL",
    Operator.NOT_EQUAL: "NOT_EQUAL",
    Operator.LESS_THAN: "LESS_THAN",
    Operator.LESS_THAN_OR_EQUAL: "LESS_THAN_OR_EQUAL",
    Operator.GREATER_THAN: "GREATER_THAN",
    Operator.GREATER_THAN_OR_EQUAL: "GREATER_THAN_OR_EQUAL",
    Operator.IN: "IN",
    Operator.NOT_IN: "NOT_IN",
}

_ALIASES: Final[dict[str, Operator]] = {"==": Operator.EQUAL, "<>": Operator.NOT_EQUAL}


def parse_operator(value: str | Operator) -> Operator:
    if isinstance(value, Operator):
        return value
    normalized = " ".join(value.strip().lower().split())
    if normalized in _ALIASES:
        return _ALIASES[normalized]
    try:
        return Operator(normalized)
    except ValueError:
        raise ValueError(f"Unsupported filter operator: {value!r}") from None


@dataclass(frozen=True, slots=True)
class PropertyFilter:
    property: str
    operator: Operator
    value: Value

    def __post_init__(self) -> None:
        if self.operator in (Operator.IN, Operator.NOT_IN) and not isinstance(
            self.value, (list, tuple)
        ):
            raise ValueError(f"'{self.operator}' filters need a list value")

    def to_wire(self) -> dict[str, Any]:
        return {
            "propertyFilter": {
                "property": {"name": self.property},
                "op": _WIRE_OPERATORS[self.operator],
                "value": encode_value(self.value),
            }
        }


@dataclass(frozen=True, slots=True)
class PropertyOrder:
    property: str
    descending: bool = False

    def to_wire(self) -> dict[str, Any]:
        return {
            "property": {"name": self.property},
            "direction": "DESCENDING" if self.descending else "ASCENDING",
        }


@dataclass(frozen=True, slots=True)
class Query:
    """A kind query. Builder methods return new queries and leave the receiver intact.

    ``Query("Task").where("done", "=", False).order("-priority").limit(10)``
    """

    kind: str | None = None
    filters: tuple[PropertyFilter, ...] = ()
    orders: tuple[PropertyOrder, ...] = ()
    ancestor_key: Key | None = None
    limit_count: int | None = None
    offset_count: int = 0
    start_cursor: str | None = None
    namespace: str | None = None

    def where(self, property_name: str, operator: str | Operator, value: Value) -> Query:
        condition = PropertyFilter(property_name, parse_operator(operator), value)
        return replace(self, filters=(*self.filters, condition))

    def order(self, property_name: str, *, descending: bool = False) -> Query:
        if property_name.startswith("-"):
            property_name = property_name[1:]
            descending = True
        if not property_name:
            raise ValueError("order needs a property name")
        return replace(self, orders=(*self.orders, PropertyOrder(property_name, descending)))

    def ancestor(self, key: Key) -> Query:
        if not key.is_complete:
            raise ValueError("ancestor key must be complete")
        return replace(self, ancestor_key=key)

    def limit(self, count: int) -> Query:
        if count < 0:
            raise ValueError("limit must be non-negative")
        return replace(self, limit_count=count)

    def offset(self, count: int) -> Query:
        if count < 0:
            raise ValueError("offset must be non-negative")
        return replace(self, offset_count=count)

    def start(self, cursor: str | None) -> Query:
        return replace(self, start_cursor=cursor)

    def to_wire(self, project: str | None = None) -> dict[str, Any]:
        payload: dict[str, Any] = {}
        if self.kind is not None:
            payload["kind"] = [{"name": self.kind}]

        filters = [condition.to_wire() for condition in self.filters]
        if self.ancestor_key is not None:
            filters.append(
                {
                    "propertyFilter": {
                        "property": {"name": "__key__"},
                        "op": "HAS_ANCESTOR",
                        "value": {"keyValue": self.ancestor_key.to_wire(project)},
                    }
                }
            )
        if len(filters) == 1:
            payload["filter"] = filters[0]
        elif filters:
            payload["filter"] = {"compositeFilter": {"op": "AND", "filters": filters}}

        if self.orders:
            payload["order"] = [order.to_wire() for order in self.orders]
        if self.limit_count is not None:
            payload["limit"] = self.limit_count
        if self.offset_count:
            payload["offset"] = self.offset_count
        if self.start_cursor:
            payload["startCursor"] = self.start_cursor
        return payload


@dataclass(slots=True)
class QueryResults(Sequence["Entity"]):
    """Entities returned by a query run plus the cursor to resume after them."""

    results: list[Entity] = field(default_factory=list["Entity"])
    cursor: str | None = None
    more_results: bool = False

    @overload
    def __getitem__(self, index: int) -> Entity: ...

    @overload
    def __getitem__(self, index: slice) -> list[Entity]: ...

    def __getitem__(self, index: int | slice) -> Entity | list[Entity]:
        return self.results[index]

    def __len__(self) -> int:
        return len(self.results)

    def __iter__(self) -> Iterator[Entity]:
        return iter(self.results)
