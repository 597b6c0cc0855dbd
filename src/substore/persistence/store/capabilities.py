"""Concurrency capabilities a store backend reports to its callers."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class LockGranularity(Enum):
    """What a locked read actually locks."""

    # Each matching row is locked until the transaction ends
    ROW = "row"
    # The whole database is write-locked for the duration of the transaction
    DATABASE = "database"


@dataclass(frozen=True)
class StoreCapabilities:
    """
    Concurrency guarantee in force for a store.

    Backends without row locks serialize writers on the whole database
    instead. Callers that care (for example, to decide how many engine
    instances may run side by side) check ``supports_row_locking``.

    Attributes:
        backend: "sqlite" or "postgresql"
        lock_granularity: Scope of the locks taken by a locked read
    """

    backend: str
    lock_granularity: LockGranularity

    @property
    def supports_row_locking(self) -> bool:
        return self.lock_granularity == LockGranularity.ROW
