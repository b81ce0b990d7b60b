"""Domain model: keys, entities, property values and queries."""

from __future__ import annotations

from .entity import Entity
from .key import Identifier, Key, validate_identifier
from .query import Operator, PropertyFilter, PropertyOrder, Query, QueryResults, parse_operator
from .values import Value, decode_value, encode_properties, encode_value

__all__ = [
    "Entity",
    "Identifier",
    "Key",
    "Operator",
    "PropertyFilter",
    "PropertyOrder",
    "Query",
    "QueryResults",
    "Value",
    "decode_value",
    "encode_properties",
    "encode_value",
    "parse_operator",
    "validate_identifier",
]
