"""Client for entity stores: keys, entities, queries and transactional batches."""

from __future__ import annotations

from importlib import metadata

from stowage.domain.dataset import Dataset
from stowage.domain.errors import (
    ProtocolConsistencyError,
    StowageError,
    TransactionError,
    TransportError,
    UsageError,
)
from stowage.domain.model import Entity, Key, Query, QueryResults
from stowage.domain.transaction import Transaction, TransactionState

try:
    __version__ = metadata.version("stowage")
except metadata.PackageNotFoundError:
    __version__ = "0.0.0+local"

__all__ = [
    "Dataset",
    "Entity",
    "Key",
    "ProtocolConsistencyError",
    "Query",
    "QueryResults",
    "StowageError",
    "Transaction",
    "TransactionError",
    "TransactionState",
    "TransportError",
    "UsageError",
    "__version__",
]
