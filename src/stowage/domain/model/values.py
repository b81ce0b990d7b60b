"""Encoding of property values to and from the Datastore v1 JSON value shape."""

from __future__ import annotations

import base64
import re
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any, cast

from stowage.domain.model.key import Key

type Value = (
    None | bool | int | float | str | bytes | datetime | Key | dict[str, Value] | list[Value]
)

_FRACTION = re.compile(r"\.(\d+)")


def _format_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat(timespec="microseconds").replace("+00:00", "Z")


def _parse_timestamp(value: str) -> datetime:
    normalized = value.strip()
    if normalized.endswith("Z"):
        normalized = normalized[:-1] + "+00:00"
    # RFC 3339 allows nanoseconds; datetime keeps microseconds.
    normalized = _FRACTION.sub(lambda match: "." + match.group(1)[:6].ljust(6, "0"), normalized)
    parsed = datetime.fromisoformat(normalized)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def encode_properties(
    properties: Mapping[str, object],
    exclude_from_indexes: set[str] | frozenset[str] = frozenset(),
) -> dict[str, dict[str, Any]]:
    return {
        name: encode_value(value, exclude_from_indexes=name in exclude_from_indexes)
        for name, value in properties.items()
    }


def encode_value(value: object, *, exclude_from_indexes: bool = False) -> dict[str, Any]:
    """Return the wire payload for a single property value."""

    payload: dict[str, Any]
    if value is None:
        payload = {"nullValue": None}
    elif isinstance(value, bool):
        payload = {"booleanValue": value}
    elif isinstance(value, int):
        payload = {"integerValue": str(value)}
    elif isinstance(value, float):
        payload = {"doubleValue": value}
    elif isinstance(value, str):
        payload = {"stringValue": value}
    elif isinstance(value, bytes):
        payload = {"blobValue": base64.b64encode(value).decode("ascii")}
    elif isinstance(value, datetime):
        payload = {"timestampValue": _format_timestamp(value)}
    elif isinstance(value, Key):
        payload = {"keyValue": value.to_wire()}
    elif isinstance(value, Mapping):
        embedded = cast("Mapping[str, object]", value)
        payload = {"entityValue": {"properties": encode_properties(embedded)}}
    elif isinstance(value, (list, tuple)):
        items = cast("list[object] | tuple[object, ...]", value)
        # Datastore rejects excludeFromIndexes on the array itself; it goes on the items.
        return {
            "arrayValue": {
                "values": [
                    encode_value(item, exclude_from_indexes=exclude_from_indexes)
                    for item in items
                ]
            }
        }
    else:
        raise TypeError(f"Unsupported property value type: {type(value).__name__}")

    if exclude_from_indexes:
        payload["excludeFromIndexes"] = True
    return payload


def decode_value(payload: Mapping[str, Any]) -> Value:
    """Return the Python value for a wire value payload."""

    if "nullValue" in payload:
        return None
    if "booleanValue" in payload:
        return bool(payload["booleanValue"])
    if "integerValue" in payload:
        return int(payload["integerValue"])
    if "doubleValue" in payload:
        return float(payload["doubleValue"])
    if "stringValue" in payload:
        return str(payload["stringValue"])
    if "blobValue" in payload:
        return base64.b64decode(payload["blobValue"])
    if "timestampValue" in payload:
        return _parse_timestamp(str(payload["timestampValue"]))
    if "keyValue" in payload:
        return Key.from_wire(payload["keyValue"])
    if "entityValue" in payload:
        embedded = cast("Mapping[str, Any]", payload["entityValue"] or {})
        properties = cast("Mapping[str, Mapping[str, Any]]", embedded.get("properties") or {})
        return {name: decode_value(item) for name, item in properties.items()}
    if "arrayValue" in payload:
        array = cast("Mapping[str, Any]", payload["arrayValue"] or {})
        return [decode_value(item) for item in array.get("values", [])]
    raise ValueError(f"Unrecognised value payload: {sorted(payload)}")


def is_excluded(payload: Mapping[str, Any]) -> bool:
    """Return whether a wire value is marked as excluded from indexes."""

    if payload.get("excludeFromIndexes"):
        return True
    array = payload.get("arrayValue")
    if isinstance(array, Mapping):
        values = cast("list[Mapping[str, Any]]", cast("Mapping[str, Any]", array).get("values") or [])
        return bool(values) and all(item.get("excludeFromIndexes") for item in values)
    return False
