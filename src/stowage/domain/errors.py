"""Error types raised by the stowage client."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

    from stowage.domain.model import Entity


class StowageError(Exception):
    """Base class for every error raised by stowage."""


class UsageError(StowageError):
    """Raised when the client API is used against its contract."""


class TransportError(StowageError):
    """Raised by transports when the backing store rejects or fails a call."""


class ProtocolConsistencyError(StowageError):
    """Raised when a commit returns a different number of generated ids than requested.

    The overlapping prefix has already been applied; ``unresolved`` lists the
    entities whose keys are still incomplete.
    """

    def __init__(
        self,
        message: str,
        *,
        expected: int,
        received: int,
        unresolved: Sequence[Entity] = (),
    ) -> None:
        super().__init__(message)
        self.expected = expected
        self.received = received
        self.unresolved = tuple(unresolved)


class TransactionError(StowageError):
    """Raised when a transactional block fails and the transaction is rolled back."""

    def __init__(
        self,
        message: str,
        *,
        cause: BaseException,
        rollback_error: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.cause = cause
        self.rollback_error = rollback_error
        if rollback_error is not None:
            self.add_note(f"Rollback also failed: {rollback_error!r}")
