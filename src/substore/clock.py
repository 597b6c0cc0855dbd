"""
Time sources for stamping last_saved_at.

The store never asks the database for the current time. It calls the
injected clock, which keeps save timestamps deterministic in tests.
"""

from __future__ import annotations

import threading
from datetime import UTC, datetime, timedelta
from typing import Protocol


class Clock(Protocol):
    """Protocol for time sources."""

    def now(self) -> datetime: ...


class SystemClock:
    """Wall clock in UTC."""

    def now(self) -> datetime:
        return datetime.now(UTC)


class FrozenClock:
    """Clock that only moves when told to."""

    def __init__(self, current: datetime | None = None) -> None:
        if current is None:
            current = datetime(2025, 1, 1, tzinfo=UTC)
        elif current.tzinfo is None:
            current = current.replace(tzinfo=UTC)
        self._current = current
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            return self._current

    def set(self, current: datetime) -> None:
        if current.tzinfo is None:
            current = current.replace(tzinfo=UTC)
        with self._lock:
            self._current = current

    def advance(self, delta: timedelta | None = None, **kwargs: float) -> datetime:
        """Move the clock forward and return the new time.

        Accepts either a timedelta or timedelta keyword arguments.
        """
        step = delta if delta is not None else timedelta(**kwargs)
        with self._lock:
            self._current = self._current + step
            return self._current
