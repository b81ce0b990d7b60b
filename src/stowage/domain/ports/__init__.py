"""Domain port definitions for adapters."""

from __future__ import annotations

from .transport import CommitResult, QueryBatch, Transport

__all__ = [
    "CommitResult",
    "QueryBatch",
    "Transport",
]
