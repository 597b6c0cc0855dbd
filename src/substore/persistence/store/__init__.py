"""SubscriptionStore interface package."""

from substore.persistence.store.capabilities import LockGranularity, StoreCapabilities
from substore.persistence.store.criteria import (
    Predicate,
    SubscriptionCriteria,
    build_predicate,
    criteria_from,
)
from substore.persistence.store.interface import SubscriptionStore

__all__ = [
    "SubscriptionStore",
    "SubscriptionCriteria",
    "Predicate",
    "build_predicate",
    "criteria_from",
    "StoreCapabilities",
    "LockGranularity",
]
