"""
Keys identify stored entities:
a kind, an optional numeric id or name, and an optional parent path.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, cast

from stowage.domain.errors import UsageError

if TYPE_CHECKING:
    from collections.abc import Mapping

type Identifier = int | str
"""Numeric id (``int``) or name (``str``) of a key."""


def validate_identifier(identifier: object) -> Identifier:
    """Return ``identifier`` if it is a usable numeric id or name."""

    if isinstance(identifier, bool):
        raise ValueError("identifier must be an int id or a str name, not bool")
    if isinstance(identifier, int):
        if identifier <= 0:
            raise ValueError(f"numeric id must be positive, got {identifier}")
        return identifier
    if isinstance(identifier, str):
        if not identifier:
            raise ValueError("name must be a non-empty string")
        return identifier
    raise ValueError(f"identifier must be an int id or a str name, got {identifier!r}")


@dataclass(frozen=True, slots=True)
class Key:
    """Value-typed key. Compared and hashed by kind, identifier, namespace and parent chain."""

    kind: str
    identifier: Identifier | None = None
    parent: Key | None = None
    namespace: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.kind, str) or not self.kind:
            raise ValueError("kind must be a non-empty string")
        if self.identifier is not None:
            validate_identifier(self.identifier)
        if self.namespace == "":
            # the default namespace is spelled None everywhere
            object.__setattr__(self, "namespace", None)
        if self.parent is not None:
            if not self.parent.is_complete:
                raise ValueError("parent key must be complete")
            if self.parent.namespace != self.namespace:
                raise ValueError("parent key must share the child's namespace")

    @property
    def is_complete(self) -> bool:
        return self.identifier is not None

    @property
    def id(self) -> int | None:
        return self.identifier if isinstance(self.identifier, int) else None

    @property
    def name(self) -> str | None:
        return self.identifier if isinstance(self.identifier, str) else None

    @property
    def path(self) -> tuple[tuple[str, Identifier | None], ...]:
        """Return ``(kind, identifier)`` pairs from the root ancestor to this key."""
        prefix = self.parent.path if self.parent is not None else ()
        return (*prefix, (self.kind, self.identifier))

    def with_identifier(self, identifier: Identifier) -> Key:
        """Return a complete copy of this key; the receiver is left untouched."""
        if self.is_complete:
            raise UsageError(f"key {self!r} is already complete")
        return Key(
            self.kind,
            validate_identifier(identifier),
            parent=self.parent,
            namespace=self.namespace,
        )

    def is_ancestor_of(self, other: Key) -> bool:
        """Return whether this key is ``other`` or one of its ancestors."""
        if self.namespace != other.namespace:
            return False
        path = self.path
        return other.path[: len(path)] == path

    def to_wire(self, project: str | None = None) -> dict[str, Any]:
        path: list[dict[str, str]] = []
        for kind, identifier in self.path:
            element = {"kind": kind}
            if isinstance(identifier, int):
                element["id"] = str(identifier)
            elif isinstance(identifier, str):
                element["name"] = identifier
            path.append(element)
        payload: dict[str, Any] = {"path": path}
        partition: dict[str, str] = {}
        if project is not None:
            partition["projectId"] = project
        if self.namespace:
            partition["namespaceId"] = self.namespace
        if partition:
            payload["partitionId"] = partition
        return payload

    @classmethod
    def from_wire(cls, payload: Mapping[str, Any]) -> Key:
        partition = cast("Mapping[str, Any]", payload.get("partitionId") or {})
        namespace = partition.get("namespaceId") or None
        elements = cast("list[Mapping[str, Any]]", payload.get("path") or [])
        if not elements:
            raise ValueError("key payload has an empty path")

        key: Key | None = None
        for element in elements:
            identifier: Identifier | None = None
            if element.get("id") is not None:
                identifier = int(element["id"])
            elif element.get("name") is not None:
                identifier = str(element["name"])
            key = cls(str(element["kind"]), identifier, parent=key, namespace=namespace)
        return cast("Key", key)

    def __repr__(self) -> str:
        parts = ", ".join(f"{kind}:{identifier!r}" for kind, identifier in self.path)
        suffix = f", namespace={self.namespace!r}" if self.namespace else ""
        return f"Key({parts}{suffix})"
