"""Public interface for the HTTP adapter."""

from __future__ import annotations

from .client import HttpTransport, HttpTransportError
from .schema import CommitResponse, ErrorResponse, LookupResponse, RunQueryResponse

__all__ = [
    "CommitResponse",
    "ErrorResponse",
    "HttpTransport",
    "HttpTransportError",
    "LookupResponse",
    "RunQueryResponse",
]
