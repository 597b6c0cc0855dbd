"""Subscription domain models."""

from substore.models.status import CATCH_UP_STATUSES, SubscriptionStatus
from substore.models.subscription import (
    Position,
    Subscription,
    SubscriptionError,
    SubscriptionId,
)

__all__ = [
    "CATCH_UP_STATUSES",
    "Position",
    "Subscription",
    "SubscriptionError",
    "SubscriptionId",
    "SubscriptionStatus",
]
