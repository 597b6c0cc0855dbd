"""
SQLite subscription store.

Lightweight persistence for development, tests and single-node
deployments. SQLite has no row locks, so this store runs in degraded
mode: ``begin_transaction()`` issues ``BEGIN IMMEDIATE``, which takes the
database write lock up front. A second writer blocks (up to the busy
timeout) until the first commits or rolls back, which serializes engines
on the whole database instead of on the rows they read.

Connections come from the singleton ConnectionManager, one per thread.
Stores on the same thread pointed at the same file share that connection
and therefore cannot hold separate transactions at the same time.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from datetime import datetime
from typing import Any

from substore.clock import Clock
from substore.config import DEFAULT_TABLE_NAME, SqliteConfig
from substore.persistence.connection import get_connection_manager
from substore.persistence.converters import format_timestamp
from substore.persistence.schema import SchemaProvisioner
from substore.persistence.sqlite.schema import SqliteSchemaDialect
from substore.persistence.store import LockGranularity, StoreCapabilities, SubscriptionStore


class SqliteSubscriptionStore(SubscriptionStore):
    """
    SQLite implementation of SubscriptionStore.

    Features:
    - WAL journal so readers outside a transaction are not blocked
    - Busy timeout as the lock wait limit
    - last_saved_at stored as "YYYY-MM-DD HH:MM:SS" text in UTC
    """

    placeholder = "?"
    driver_errors = (sqlite3.Error,)

    def __init__(
        self,
        connection_string: str,
        table_name: str = DEFAULT_TABLE_NAME,
        clock: Clock | None = None,
        config: SqliteConfig | None = None,
    ) -> None:
        """
        Initialize the store.

        Args:
            connection_string: sqlite:///path/to/db or sqlite:///:memory:
            table_name: Name of the subscriptions table
            clock: Time source for last_saved_at (default: system clock)
            config: Connection pragmas (default: SqliteConfig())
        """
        super().__init__(table_name, clock)
        self.connection_string = connection_string
        self.config = config or SqliteConfig()
        self.provisioner = SchemaProvisioner(self.table_name, SqliteSchemaDialect())
        self._manager = get_connection_manager()

    def _get_connection(self) -> sqlite3.Connection:
        return self._manager.get_sqlite_connection(self.connection_string, self.config)

    @property
    def capabilities(self) -> StoreCapabilities:
        return StoreCapabilities(backend="sqlite", lock_granularity=LockGranularity.DATABASE)

    def close(self) -> None:
        """Close the calling thread's connection, rolling back an open transaction."""
        if self.in_transaction:
            self.rollback()
        self._manager.close_sqlite_connection(self.connection_string)

    @contextmanager
    def _schema_connection(self) -> Iterator[sqlite3.Connection]:
        yield self._get_connection()

    def _begin(self) -> None:
        self._get_connection().execute("BEGIN IMMEDIATE")

    def _commit(self) -> None:
        self._get_connection().execute("COMMIT")

    def _rollback(self) -> None:
        conn = self._get_connection()
        if conn.in_transaction:
            conn.execute("ROLLBACK")

    def _fetch(self, sql: str, params: Sequence[Any]) -> list[Mapping[str, Any]]:
        return self._get_connection().execute(sql, tuple(params)).fetchall()

    def _write(self, sql: str, params: Sequence[Any]) -> int:
        cursor = self._get_connection().execute(sql, tuple(params))
        return cursor.rowcount

    def _storage_timestamp(self, value: datetime) -> str:
        return format_timestamp(value)
