"""
Substore - subscription registry persistence for event-stream engines.

Stores one row per subscriber (position, status, last error) and lets
several engine instances coordinate through locked reads:
- SQLite (database-level locking) and PostgreSQL (row-level locking)
- Idempotent schema provisioning that reconciles an existing table
- Explicit transactions with deterministic lock ordering
- Injected clock for last_saved_at
"""

__version__ = "0.1.0"

from substore.clock import Clock, FrozenClock, SystemClock
from substore.config import SqliteConfig, StoreConfig, get_store_config, reset_store_config
from substore.error_codes import ErrorCode, classify_error

# Errors
from substore.errors import (
    ConfigurationError,
    DuplicateIdError,
    InvalidTransactionStateError,
    LockContentionError,
    MalformedRowError,
    NotFoundError,
    PermanentError,
    SchemaProvisioningError,
    StoreError,
    SubstoreBaseException,
    SubstoreError,
    TimestampParseError,
    TransientError,
)
from substore.models import (
    Position,
    Subscription,
    SubscriptionError,
    SubscriptionId,
    SubscriptionStatus,
)

# Persistence
from substore.persistence import (
    LockGranularity,
    PostgresSubscriptionStore,
    SqliteSubscriptionStore,
    StoreCapabilities,
    SubscriptionCriteria,
    SubscriptionStore,
    create_subscription_store,
    detect_backend,
)

__all__ = [
    "__version__",
    # Models
    "Position",
    "Subscription",
    "SubscriptionError",
    "SubscriptionId",
    "SubscriptionStatus",
    # Stores
    "SubscriptionStore",
    "SubscriptionCriteria",
    "StoreCapabilities",
    "LockGranularity",
    "SqliteSubscriptionStore",
    "PostgresSubscriptionStore",
    "create_subscription_store",
    "detect_backend",
    # Clock and config
    "Clock",
    "SystemClock",
    "FrozenClock",
    "StoreConfig",
    "SqliteConfig",
    "get_store_config",
    "reset_store_config",
    # Errors
    "SubstoreBaseException",
    "SubstoreError",
    "TransientError",
    "PermanentError",
    "ConfigurationError",
    "StoreError",
    "LockContentionError",
    "SchemaProvisioningError",
    "MalformedRowError",
    "TimestampParseError",
    "DuplicateIdError",
    "NotFoundError",
    "InvalidTransactionStateError",
    "ErrorCode",
    "classify_error",
]
