"""Entities: a key plus an ordered mapping of named property values."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, cast

from stowage.domain.model.key import Key
from stowage.domain.model.values import decode_value, encode_properties, is_excluded

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator, Mapping

    from stowage.domain.model.values import Value


@dataclass(eq=False)
class Entity:
    """Mutable record owned by the caller.

    Entities compare by identity: a pending commit holds the caller's object by
    reference and replaces ``key`` once the store has generated an id for it.
    """

    key: Key
    properties: dict[str, Value] = field(default_factory=dict[str, "Value"])
    exclude_from_indexes: set[str] = field(default_factory=set[str])

    def __post_init__(self) -> None:
        if not isinstance(self.key, Key):
            raise TypeError(f"entity key must be a Key, got {type(self.key).__name__}")
        self.properties = dict(self.properties)
        self.exclude_from_indexes = set(self.exclude_from_indexes)

    def __getitem__(self, name: str) -> Value:
        return self.properties[name]

    def __setitem__(self, name: str, value: Value) -> None:
        self.properties[name] = value

    def __delitem__(self, name: str) -> None:
        del self.properties[name]
        self.exclude_from_indexes.discard(name)

    def __contains__(self, name: object) -> bool:
        return name in self.properties

    def __iter__(self) -> Iterator[str]:
        return iter(self.properties)

    def __len__(self) -> int:
        return len(self.properties)

    def get(self, name: str, default: Value = None) -> Value:
        return self.properties.get(name, default)

    def update(self, values: Mapping[str, Value] | Iterable[tuple[str, Value]]) -> None:
        self.properties.update(values)

    def to_wire(self, project: str | None = None) -> dict[str, Any]:
        return {
            "key": self.key.to_wire(project),
            "properties": encode_properties(self.properties, self.exclude_from_indexes),
        }

    @classmethod
    def from_wire(cls, payload: Mapping[str, Any]) -> Entity:
        raw_properties = cast("Mapping[str, Mapping[str, Any]]", payload.get("properties") or {})
        properties: dict[str, Value] = {}
        excluded: set[str] = set()
        for name, value_payload in raw_properties.items():
            properties[name] = decode_value(value_payload)
            if is_excluded(value_payload):
                excluded.add(name)
        return cls(Key.from_wire(payload["key"]), properties, excluded)

    def __repr__(self) -> str:
        return f"Entity({self.key!r}, {self.properties!r})"
