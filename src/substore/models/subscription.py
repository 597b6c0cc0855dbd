"""
Subscription model.

A subscription is one consumer of the ordered event stream. The engine
owns its lifecycle; the store persists how far it got (position), what
state it is in (status) and what last went wrong (error).
"""

from __future__ import annotations

import dataclasses
import traceback
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from substore.models.status import SubscriptionStatus


@dataclass(frozen=True, order=True)
class SubscriptionId:
    """Identifier of a subscription, unique and immutable."""

    MAX_LENGTH = 150

    value: str

    def __post_init__(self) -> None:
        if not isinstance(self.value, str):
            raise ValueError(f"Subscription id must be a string, got {type(self.value).__name__}")
        if not self.value:
            raise ValueError("Subscription id must not be empty")
        if len(self.value) > self.MAX_LENGTH:
            raise ValueError(f"Subscription id must not exceed {self.MAX_LENGTH} characters, got {len(self.value)}")

    @classmethod
    def from_string(cls, value: str) -> SubscriptionId:
        return cls(value)

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True, order=True)
class Position:
    """Progress of a subscription within the event stream."""

    value: int

    def __post_init__(self) -> None:
        # bool is an int subclass but never a valid position
        if not isinstance(self.value, int) or isinstance(self.value, bool):
            raise ValueError(f"Position must be an integer, got {type(self.value).__name__}")
        if self.value < 0:
            raise ValueError(f"Position must not be negative, got {self.value}")

    @classmethod
    def none(cls) -> Position:
        """Position of a subscription that has not processed anything."""
        return cls(0)

    @classmethod
    def from_integer(cls, value: int) -> Position:
        return cls(value)

    def next(self) -> Position:
        return Position(self.value + 1)

    def __int__(self) -> int:
        return self.value


@dataclass(frozen=True)
class SubscriptionError:
    """
    The failure recorded for a subscription.

    All three parts are always present together. The store flattens them
    into three nullable columns and rejects rows where only some are set.

    Attributes:
        error_message: Human-readable description of the failure
        previous_status: Status the subscription had before it failed
        error_trace: Diagnostic trace (usually a formatted traceback)
    """

    error_message: str
    previous_status: SubscriptionStatus
    error_trace: str

    @classmethod
    def from_exception(
        cls,
        previous_status: SubscriptionStatus,
        error: BaseException,
    ) -> SubscriptionError:
        """Build an error record from a caught exception."""
        trace = "".join(traceback.format_exception(type(error), error, error.__traceback__))
        return cls(
            error_message=str(error) or type(error).__name__,
            previous_status=previous_status,
            error_trace=trace,
        )


@dataclass(frozen=True)
class Subscription:
    """
    Persisted state of one subscriber.

    Attributes:
        id: Unique identifier
        status: Lifecycle status
        position: Last processed position in the event stream
        error: Failure details, None unless the subscription failed
        last_saved_at: UTC time of the last successful add/update. Assigned
            by the store from its clock; any value set by callers is
            ignored on write.
    """

    id: SubscriptionId
    status: SubscriptionStatus
    position: Position
    error: SubscriptionError | None = None
    last_saved_at: datetime | None = None

    @classmethod
    def create(
        cls,
        subscription_id: str | SubscriptionId,
        status: SubscriptionStatus = SubscriptionStatus.NEW,
        position: int | Position = 0,
        error: SubscriptionError | None = None,
    ) -> Subscription:
        """Factory accepting plain values for id and position."""
        if not isinstance(subscription_id, SubscriptionId):
            subscription_id = SubscriptionId(subscription_id)
        if not isinstance(position, Position):
            position = Position(position)
        return cls(id=subscription_id, status=status, position=position, error=error)

    @property
    def has_error(self) -> bool:
        return self.error is not None

    def with_changes(self, **changes: Any) -> Subscription:
        """Return a copy with the given fields replaced."""
        if "position" in changes and not isinstance(changes["position"], Position):
            changes["position"] = Position(changes["position"])
        return dataclasses.replace(self, **changes)
