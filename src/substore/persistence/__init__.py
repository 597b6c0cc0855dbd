"""Persistence layer for subscriptions."""

from substore.persistence.converters import row_to_subscription, subscription_to_row
from substore.persistence.factory import create_subscription_store, detect_backend
from substore.persistence.postgres import PostgresSubscriptionStore
from substore.persistence.schema import SchemaProvisioner, desired_table_shape, diff_table_shape
from substore.persistence.sqlite import SqliteSubscriptionStore
from substore.persistence.store import (
    LockGranularity,
    StoreCapabilities,
    SubscriptionCriteria,
    SubscriptionStore,
)

__all__ = [
    # Abstract interface
    "SubscriptionStore",
    "SubscriptionCriteria",
    "StoreCapabilities",
    "LockGranularity",
    # Implementations
    "PostgresSubscriptionStore",
    "SqliteSubscriptionStore",
    # Schema and rows
    "SchemaProvisioner",
    "desired_table_shape",
    "diff_table_shape",
    "row_to_subscription",
    "subscription_to_row",
    # Factory functions
    "create_subscription_store",
    "detect_backend",
]
