"""Subscription store errors."""

from __future__ import annotations

from substore.error_codes import ErrorCode
from substore.errors.base import SubstoreError
from substore.errors.permanent import PermanentError
from substore.errors.transient import TransientError


class StoreError(SubstoreError):
    """A backend operation failed.

    Wraps the driver exception with the operation that was attempted and
    the table it targeted, so driver errors never leak out unannotated.
    """

    code: int = 200
    default_error_code = ErrorCode.STORAGE_ERROR


class LockContentionError(StoreError, TransientError):
    """Waiting for a lock failed.

    Raised for lock wait timeouts, deadlock victims and SQLite's
    "database is locked". The transaction is unusable afterwards and
    must be rolled back by the caller.
    """

    code: int = 201
    default_error_code = ErrorCode.LOCK_CONTENTION


class SchemaProvisioningError(PermanentError):
    """Setting up or reconciling the subscriptions table failed.

    Schema statements are applied one by one and most engines cannot roll
    DDL back, so the table may be partially migrated when this is raised.
    Running ``ensure_schema()`` again recomputes the difference from the
    current state and finishes the job.

    Attributes:
        statement: The statement that failed, if one was being applied
        applied: Number of statements applied before the failure
    """

    code: int = 210
    default_error_code = ErrorCode.SCHEMA_PROVISIONING_FAILED

    def __init__(
        self,
        message: str,
        *,
        cause: BaseException | None = None,
        table_name: str | None = None,
        statement: str | None = None,
        applied: int = 0,
    ) -> None:
        super().__init__(message, cause=cause, table_name=table_name, operation="ensure_schema")
        self.statement = statement
        self.applied = applied


class MalformedRowError(PermanentError):
    """A persisted row does not decode into a valid Subscription.

    Always a data integrity bug. A single malformed row fails the whole
    read rather than producing a partial batch.
    """

    code: int = 220
    default_error_code = ErrorCode.MALFORMED_ROW

    def __init__(
        self,
        message: str,
        *,
        cause: BaseException | None = None,
        column: str | None = None,
        subscription_id: str | None = None,
    ) -> None:
        super().__init__(message, cause=cause)
        self.column = column
        self.subscription_id = subscription_id


class TimestampParseError(MalformedRowError):
    """The last_saved_at column does not match the timestamp format."""

    code: int = 221


class DuplicateIdError(PermanentError):
    """A subscription with the same id already exists."""

    code: int = 230
    default_error_code = ErrorCode.DUPLICATE_ID

    def __init__(
        self,
        subscription_id: str,
        *,
        cause: BaseException | None = None,
        table_name: str | None = None,
    ) -> None:
        super().__init__(
            f"Subscription already exists: {subscription_id}",
            cause=cause,
            table_name=table_name,
            operation="add",
        )
        self.subscription_id = subscription_id


class NotFoundError(PermanentError):
    """No subscription with the given id exists."""

    code: int = 231
    default_error_code = ErrorCode.NOT_FOUND

    def __init__(self, subscription_id: str, *, table_name: str | None = None) -> None:
        super().__init__(
            f"Subscription not found: {subscription_id}",
            table_name=table_name,
            operation="update",
        )
        self.subscription_id = subscription_id


class InvalidTransactionStateError(PermanentError):
    """Transaction boundaries were used incorrectly.

    Raised for nested begin_transaction(), commit()/rollback() without an
    open transaction, and locked reads outside a transaction.
    """

    code: int = 240
    default_error_code = ErrorCode.INVALID_TRANSACTION_STATE
