"""
SubscriptionStore interface.

The store persists subscriptions in a single table and hands out locks on
them, so that several engine instances can coordinate who catches up
which subscriptions. The base class holds everything that does not
depend on the backend: the transaction state machine, the SQL for the
locked read and the writes, clock stamping and error wrapping. Backends
supply the connection handling.

Typical use by the engine:

    with store.transaction():
        for subscription in store.find_by_criteria_for_update(
            SubscriptionCriteria.with_statuses(SubscriptionStatus.ACTIVE)
        ):
            store.update(subscription.with_changes(position=...))
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from collections.abc import Iterator, Mapping, Sequence
from contextlib import AbstractContextManager, contextmanager
from datetime import UTC, datetime
from typing import Any

from substore.clock import Clock, SystemClock
from substore.config import validate_table_name
from substore.errors import (
    DuplicateIdError,
    InvalidTransactionStateError,
    LockContentionError,
    NotFoundError,
    SchemaProvisioningError,
    StoreError,
)
from substore.errors.utils import is_lock_contention, is_unique_violation
from substore.models import Subscription
from substore.persistence.converters import (
    COLUMNS,
    row_to_subscription,
    subscription_to_row,
    to_storage_time,
)
from substore.persistence.schema import SchemaProvisioner
from substore.persistence.store.capabilities import StoreCapabilities
from substore.persistence.store.criteria import SubscriptionCriteria, build_predicate

logger = logging.getLogger(__name__)

_UPDATE_COLUMNS = tuple(column for column in COLUMNS if column != "id")


class SubscriptionStore(ABC):
    """
    Abstract subscription store.

    Transaction state is tracked per thread, so one store instance may be
    shared by several threads, each running its own transaction.

    Subclasses set ``placeholder`` to their driver's paramstyle marker and
    ``driver_errors`` to the exceptions their driver raises; those are
    wrapped in StoreError (or LockContentionError) before leaving the store.
    """

    placeholder: str = "?"
    driver_errors: tuple[type[BaseException], ...] = ()
    provisioner: SchemaProvisioner

    def __init__(self, table_name: str, clock: Clock | None = None) -> None:
        self.table_name = validate_table_name(table_name)
        self.clock: Clock = clock or SystemClock()
        self._local = threading.local()

    # ========== Backend hooks ==========

    @property
    @abstractmethod
    def capabilities(self) -> StoreCapabilities:
        """Concurrency guarantee of this backend."""
        pass

    @abstractmethod
    def _begin(self) -> None:
        """Start a transaction on the calling thread's connection."""
        pass

    @abstractmethod
    def _commit(self) -> None:
        pass

    @abstractmethod
    def _rollback(self) -> None:
        pass

    @abstractmethod
    def _fetch(self, sql: str, params: Sequence[Any]) -> list[Mapping[str, Any]]:
        """Run a query inside the open transaction and return all rows."""
        pass

    @abstractmethod
    def _write(self, sql: str, params: Sequence[Any]) -> int:
        """Run a single-row write and return the affected row count.

        Inside a transaction the write joins it; outside it is committed
        on its own.
        """
        pass

    @abstractmethod
    def _storage_timestamp(self, value: datetime) -> Any:
        """Convert a clock reading into the driver's last_saved_at parameter."""
        pass

    @abstractmethod
    def _schema_connection(self) -> AbstractContextManager[Any]:
        """Connection for schema work, outside any application transaction."""
        pass

    @abstractmethod
    def close(self) -> None:
        """Release the connections held for this store."""
        pass

    # ========== Schema ==========

    def ensure_schema(self) -> list[str]:
        """Create the subscriptions table or reconcile it with the desired shape.

        Safe to call repeatedly; a second call on a matching table applies
        nothing. Not transactional across statements: after a failure the
        table may be partially migrated and calling again completes it.

        Returns:
            The schema statements that were applied

        Raises:
            InvalidTransactionStateError: If a transaction is open
            SchemaProvisioningError: If inspecting or altering the table fails
        """
        if self.in_transaction:
            raise InvalidTransactionStateError(
                "ensure_schema cannot run inside a transaction",
                table_name=self.table_name,
                operation="ensure_schema",
            )
        try:
            with self._schema_connection() as conn:
                return self.provisioner.ensure_schema(conn)
        except self.driver_errors as e:
            raise self._schema_error(e) from e

    def required_schema_statements(self) -> list[str]:
        """Statements ensure_schema() would apply right now, without applying them.

        Raises:
            SchemaProvisioningError: If the table cannot be inspected
        """
        try:
            with self._schema_connection() as conn:
                return self.provisioner.required_statements(conn)
        except self.driver_errors as e:
            raise self._schema_error(e) from e

    def setup(self) -> list[str]:
        """Alias of ensure_schema()."""
        return self.ensure_schema()

    # ========== Transactions ==========

    @property
    def in_transaction(self) -> bool:
        """Whether the calling thread has an open transaction on this store."""
        return getattr(self._local, "active", False)

    def begin_transaction(self) -> None:
        """Open a transaction. Nesting is not supported.

        On SQLite this takes the database write lock and may block until
        another writer finishes.

        Raises:
            InvalidTransactionStateError: If a transaction is already open
            LockContentionError: If the backend lock could not be acquired
            StoreError: On any other backend failure
        """
        if self.in_transaction:
            raise InvalidTransactionStateError(
                f"Transaction already open on {self.table_name}, nested transactions are not supported",
                table_name=self.table_name,
                operation="begin_transaction",
            )
        try:
            self._begin()
        except self.driver_errors as e:
            raise self._wrap_error("begin_transaction", e) from e
        self._local.active = True
        logger.debug("Began transaction on %s", self.table_name)

    def commit(self) -> None:
        """Commit the open transaction and release its locks.

        Raises:
            InvalidTransactionStateError: If no transaction is open
            StoreError: If the commit fails; the transaction is rolled back
        """
        self._require_transaction("commit")
        try:
            self._commit()
        except self.driver_errors as e:
            self._discard_transaction()
            raise self._wrap_error("commit", e) from e
        finally:
            self._local.active = False
        logger.debug("Committed transaction on %s", self.table_name)

    def rollback(self) -> None:
        """Abandon the open transaction and release its locks.

        Raises:
            InvalidTransactionStateError: If no transaction is open
            StoreError: If the rollback fails
        """
        self._require_transaction("rollback")
        try:
            self._rollback()
        except self.driver_errors as e:
            raise self._wrap_error("rollback", e) from e
        finally:
            self._local.active = False
        logger.debug("Rolled back transaction on %s", self.table_name)

    @contextmanager
    def transaction(self) -> Iterator[SubscriptionStore]:
        """Run a block in a transaction.

        Commits when the block finishes, rolls back and re-raises when it
        raises.
        """
        self.begin_transaction()
        try:
            yield self
        except BaseException:
            if self.in_transaction:
                self.rollback()
            raise
        else:
            self.commit()

    # ========== Reads and writes ==========

    def find_by_criteria_for_update(self, criteria: SubscriptionCriteria | None = None) -> list[Subscription]:
        """Read matching subscriptions and lock them until the transaction ends.

        Rows come back in ascending id order, which is also the order in
        which row locks are taken. May block while another transaction
        holds the locks. With no criteria, or criteria without filters,
        the whole table is read and locked.

        On backends without row locks the read relies on the database
        write lock taken by begin_transaction(); see ``capabilities``.

        Raises:
            InvalidTransactionStateError: If no transaction is open
            MalformedRowError: If any matching row does not decode; no
                partial result is returned
            LockContentionError: If the lock wait timed out or deadlocked
            StoreError: On any other backend failure
        """
        if not self.in_transaction:
            raise InvalidTransactionStateError(
                f"find_by_criteria_for_update on {self.table_name} requires an open transaction",
                table_name=self.table_name,
                operation="find_by_criteria_for_update",
            )
        criteria = criteria or SubscriptionCriteria.all()
        predicate = build_predicate(criteria, self.placeholder)

        sql = f"SELECT {', '.join(COLUMNS)} FROM {self.table_name}{predicate.where_clause()} ORDER BY id ASC"
        if self.capabilities.supports_row_locking:
            sql += " FOR UPDATE"

        try:
            rows = self._fetch(sql, predicate.params)
        except self.driver_errors as e:
            raise self._wrap_error("find_by_criteria_for_update", e) from e

        subscriptions = [row_to_subscription(row) for row in rows]
        logger.debug(
            "Locked %d subscriptions in %s (ids=%s, statuses=%s)",
            len(subscriptions),
            self.table_name,
            criteria.id_values(),
            criteria.status_values(),
        )
        return subscriptions

    def add(self, subscription: Subscription) -> Subscription:
        """Insert a new subscription.

        last_saved_at is always taken from the store's clock.

        Returns:
            The subscription as stored, with last_saved_at set

        Raises:
            DuplicateIdError: If the id already exists
            StoreError: On any other backend failure
        """
        saved_at = self.clock.now()
        row = subscription_to_row(subscription)
        row["id"] = subscription.id.value
        row["last_saved_at"] = self._storage_timestamp(saved_at)

        sql = (
            f"INSERT INTO {self.table_name} ({', '.join(COLUMNS)}) "
            f"VALUES ({', '.join([self.placeholder] * len(COLUMNS))})"
        )
        try:
            self._write(sql, [row[column] for column in COLUMNS])
        except self.driver_errors as e:
            if is_unique_violation(e):
                raise DuplicateIdError(subscription.id.value, cause=e, table_name=self.table_name) from e
            raise self._wrap_error("add", e) from e

        logger.debug("Added subscription %s to %s", subscription.id, self.table_name)
        return self._saved(subscription, saved_at)

    def update(self, subscription: Subscription) -> Subscription:
        """Replace the stored row of an existing subscription.

        Every column is overwritten; last_saved_at comes from the store's
        clock, not from the passed subscription.

        Returns:
            The subscription as stored, with last_saved_at set

        Raises:
            NotFoundError: If no subscription has this id
            StoreError: On any backend failure
        """
        saved_at = self.clock.now()
        row = subscription_to_row(subscription)
        row["last_saved_at"] = self._storage_timestamp(saved_at)

        assignments = ", ".join(f"{column} = {self.placeholder}" for column in _UPDATE_COLUMNS)
        sql = f"UPDATE {self.table_name} SET {assignments} WHERE id = {self.placeholder}"
        try:
            affected = self._write(sql, [*(row[column] for column in _UPDATE_COLUMNS), subscription.id.value])
        except self.driver_errors as e:
            raise self._wrap_error("update", e) from e

        if affected == 0:
            raise NotFoundError(subscription.id.value, table_name=self.table_name)
        logger.debug("Updated subscription %s in %s", subscription.id, self.table_name)
        return self._saved(subscription, saved_at)

    # ========== Helpers ==========

    def _require_transaction(self, operation: str) -> None:
        if not self.in_transaction:
            raise InvalidTransactionStateError(
                f"{operation} called on {self.table_name} without an open transaction",
                table_name=self.table_name,
                operation=operation,
            )

    def _discard_transaction(self) -> None:
        try:
            self._rollback()
        except self.driver_errors as e:
            logger.warning("Rollback after failed commit on %s also failed: %s", self.table_name, e)

    def _schema_error(self, error: BaseException) -> SchemaProvisioningError:
        logger.warning("Provisioning %s failed: %s", self.table_name, error)
        return SchemaProvisioningError(
            f"Failed to setup subscription store {self.table_name}: {error}",
            table_name=self.table_name,
            cause=error,
        )

    def _wrap_error(self, operation: str, error: BaseException) -> StoreError:
        error_class = LockContentionError if is_lock_contention(error) else StoreError
        logger.warning(
            "%s failed on %s: %s: %s",
            operation,
            self.table_name,
            type(error).__name__,
            error,
        )
        return error_class(
            f"Failed to {operation} on {self.table_name}: {error}",
            cause=error,
            operation=operation,
            table_name=self.table_name,
        )

    @staticmethod
    def _saved(subscription: Subscription, saved_at: datetime) -> Subscription:
        return subscription.with_changes(last_saved_at=to_storage_time(saved_at).replace(tzinfo=UTC))
