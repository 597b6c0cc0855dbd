"""substore error hierarchy.

All error classes are re-exported here. Import from ``substore.errors``.
"""

from substore.errors.base import SubstoreBaseException, SubstoreError
from substore.errors.permanent import ConfigurationError, PermanentError
from substore.errors.store import (
    DuplicateIdError,
    InvalidTransactionStateError,
    LockContentionError,
    MalformedRowError,
    NotFoundError,
    SchemaProvisioningError,
    StoreError,
    TimestampParseError,
)
from substore.errors.transient import TransientError
from substore.errors.utils import is_lock_contention, is_transient, is_unique_violation

__all__ = [
    "ConfigurationError",
    "DuplicateIdError",
    "InvalidTransactionStateError",
    "LockContentionError",
    "MalformedRowError",
    "NotFoundError",
    "PermanentError",
    "SchemaProvisioningError",
    "StoreError",
    "SubstoreBaseException",
    "SubstoreError",
    "TimestampParseError",
    "TransientError",
    "is_lock_contention",
    "is_transient",
    "is_unique_violation",
]
