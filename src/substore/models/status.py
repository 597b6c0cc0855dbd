"""
SubscriptionStatus enum.

Lifecycle states a subscription moves through while the engine boots,
catches it up and runs it. The store treats the value as an opaque short
token; the member value is what gets persisted.
"""

from enum import Enum


class SubscriptionStatus(str, Enum):
    """Subscription lifecycle status."""

    # Registered but never run
    NEW = "NEW"

    # Catching up on historic events
    BOOTING = "BOOTING"

    # Up to date and receiving new events
    ACTIVE = "ACTIVE"

    # Temporarily skipped by the engine
    PAUSED = "PAUSED"

    # The subscriber is no longer registered with the engine
    DETACHED = "DETACHED"

    # Processing failed; see the subscription's error
    ERROR = "ERROR"

    @property
    def is_failure(self) -> bool:
        """Check if this status represents a failed subscription."""
        return self in _FAILURE_STATUSES

    @classmethod
    def from_token(cls, token: str) -> "SubscriptionStatus":
        """Look up a status by its persisted token.

        Raises:
            ValueError: If the token is not a known status
        """
        return cls(token)

    def __str__(self) -> str:
        return self.value

    def __repr__(self) -> str:
        return f"SubscriptionStatus.{self.name}"


_FAILURE_STATUSES: frozenset[SubscriptionStatus] = frozenset({SubscriptionStatus.ERROR})

# Statuses the engine considers while catching up
CATCH_UP_STATUSES: frozenset[SubscriptionStatus] = frozenset(
    {
        SubscriptionStatus.BOOTING,
        SubscriptionStatus.ACTIVE,
    }
)
