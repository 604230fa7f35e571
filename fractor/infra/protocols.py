"""Infrastructure protocol definitions.

Escrow code depends on these abstractions; adapters implement them.
Infrastructure failures are values (Err[PersistenceError]), never exceptions.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, final, runtime_checkable

from fractor.core.errors import FractorError
from fractor.core.result import Err, Ok


@final
@dataclass(frozen=True, slots=True)
class PersistenceError(FractorError):
    """Event transport or storage operation failed."""

    operation: str

    def to_dict(self) -> dict[str, object]:
        return {**FractorError.to_dict(self), "operation": self.operation}


@runtime_checkable
class EventBus(Protocol):
    """Append-only event transport.

    Messages are keyed by the emitting escrow address for deterministic
    partitioning. Values are canonical JSON bytes.
    """

    def publish(
        self, topic: str, key: str, value: bytes,
    ) -> Ok[None] | Err[PersistenceError]: ...
