"""
PostgreSQL subscription store.

Production backend built on psycopg 3 and psycopg_pool. Locked reads use
``SELECT ... FOR UPDATE`` ordered by id, so concurrent engines lock
overlapping subscriptions in the same order and wait for each other
instead of deadlocking.

A transaction checks a connection out of the shared pool in
``begin_transaction()`` and returns it on ``commit()`` or ``rollback()``.
Writes outside a transaction borrow a connection for one statement.
Writes inside a transaction run in a savepoint: a failed write (duplicate
id, say) leaves the transaction and its earlier writes usable.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from contextlib import AbstractContextManager
from datetime import datetime
from typing import Any

import psycopg
from psycopg import errors as pg_errors
from psycopg.pq import TransactionStatus

from substore.clock import Clock
from substore.config import DEFAULT_LOCK_TIMEOUT_MS, DEFAULT_TABLE_NAME
from substore.persistence.connection import get_connection_manager
from substore.persistence.converters import to_storage_time
from substore.persistence.postgres.schema import PostgresSchemaDialect
from substore.persistence.schema import SchemaProvisioner
from substore.persistence.store import LockGranularity, StoreCapabilities, SubscriptionStore


class PostgresSubscriptionStore(SubscriptionStore):
    """
    PostgreSQL implementation of SubscriptionStore.

    The lock wait limit is applied per transaction with
    ``SET LOCAL lock_timeout``; when it expires the locked read fails
    with LockContentionError and the caller must roll back.
    """

    placeholder = "%s"
    driver_errors = (psycopg.Error,)

    def __init__(
        self,
        connection_string: str,
        table_name: str = DEFAULT_TABLE_NAME,
        clock: Clock | None = None,
        lock_timeout_ms: int = DEFAULT_LOCK_TIMEOUT_MS,
        pool_min_size: int = 1,
        pool_max_size: int = 10,
    ) -> None:
        """
        Initialize the store.

        Args:
            connection_string: PostgreSQL connection string
            table_name: Name of the subscriptions table
            clock: Time source for last_saved_at (default: system clock)
            lock_timeout_ms: Row lock wait limit, 0 waits forever
            pool_min_size: Minimum pool size, used when the pool is created
            pool_max_size: Maximum pool size, used when the pool is created
        """
        super().__init__(table_name, clock)
        self.connection_string = connection_string
        self.lock_timeout_ms = lock_timeout_ms
        self.provisioner = SchemaProvisioner(self.table_name, PostgresSchemaDialect())
        self._manager = get_connection_manager()
        self._pool = self._manager.get_postgres_pool(
            connection_string,
            min_size=pool_min_size,
            max_size=pool_max_size,
        )

    @property
    def capabilities(self) -> StoreCapabilities:
        return StoreCapabilities(backend="postgresql", lock_granularity=LockGranularity.ROW)

    def close(self) -> None:
        """Close the connection pool, rolling back the calling thread's open transaction."""
        if self.in_transaction:
            self.rollback()
        self._manager.close_postgres_pool(self.connection_string)

    def _schema_connection(self) -> AbstractContextManager[psycopg.Connection[Any]]:
        return self._pool.connection()

    def _begin(self) -> None:
        conn = self._pool.getconn()
        try:
            with conn.cursor() as cur:
                # SET does not take bind parameters; the value is an int
                cur.execute(f"SET LOCAL lock_timeout = {int(self.lock_timeout_ms)}")  # type: ignore[arg-type]
        except psycopg.Error:
            conn.rollback()
            self._pool.putconn(conn)
            raise
        self._local.conn = conn

    def _commit(self) -> None:
        conn = self._local.conn
        # COMMIT on an aborted transaction silently rolls back
        if conn.info.transaction_status == TransactionStatus.INERROR:
            raise pg_errors.InFailedSqlTransaction(
                "transaction was aborted by an earlier failed statement, roll back instead"
            )
        conn.commit()
        self._release()

    def _rollback(self) -> None:
        conn = getattr(self._local, "conn", None)
        if conn is None:
            return
        try:
            conn.rollback()
        finally:
            self._release()

    def _release(self) -> None:
        conn = self._local.conn
        self._local.conn = None
        self._pool.putconn(conn)

    def _fetch(self, sql: str, params: Sequence[Any]) -> list[Mapping[str, Any]]:
        with self._local.conn.cursor() as cur:
            cur.execute(sql, tuple(params))
            return cur.fetchall()

    def _write(self, sql: str, params: Sequence[Any]) -> int:
        conn = getattr(self._local, "conn", None)
        if conn is not None:
            # Savepoint, so a failed write does not abort the caller's transaction
            with conn.transaction(), conn.cursor() as cur:
                cur.execute(sql, tuple(params))
                return cur.rowcount

        with self._pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(sql, tuple(params))
                return cur.rowcount

    def _storage_timestamp(self, value: datetime) -> datetime:
        return to_storage_time(value)
