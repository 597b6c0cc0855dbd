"""
Singleton connection manager for database connections.

Hands out shared PostgreSQL pools and thread-local SQLite connections so
that every store pointed at the same database reuses them.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from typing import TYPE_CHECKING, Any

from substore.config import SqliteConfig

if TYPE_CHECKING:
    from psycopg_pool import ConnectionPool

logger = logging.getLogger(__name__)

MEMORY_PATH = ":memory:"


class SingletonMeta(type):
    """Thread-safe metaclass for singleton pattern."""

    _instances: dict[type, Any] = {}
    _lock: threading.Lock = threading.Lock()

    def __call__(cls, *args: Any, **kwargs: Any) -> Any:
        if cls not in cls._instances:
            with cls._lock:
                if cls not in cls._instances:
                    cls._instances[cls] = super().__call__(*args, **kwargs)
        return cls._instances[cls]

    @classmethod
    def reset(mcs, cls: type) -> None:
        """Drop the singleton instance, closing what it holds (for testing)."""
        with mcs._lock:
            if cls in mcs._instances:
                instance = mcs._instances.pop(cls)
                if hasattr(instance, "close_all"):
                    instance.close_all()


def parse_sqlite_path(connection_string: str) -> str:
    """Extract the database path from a sqlite:// connection string."""
    if connection_string.startswith("sqlite:///"):
        return connection_string[10:]
    if connection_string.startswith("sqlite://"):
        return connection_string[9:]
    return connection_string


class ConnectionManager(metaclass=SingletonMeta):
    """
    Process-wide owner of database connections.

    - PostgreSQL: one psycopg_pool ConnectionPool per connection string,
      rows returned as dicts
    - SQLite: one connection per thread per database path, in autocommit
      mode (isolation_level=None) so that transactions are only ever
      opened explicitly by the store

    Usage:
        manager = ConnectionManager()
        pool = manager.get_postgres_pool("postgresql://...")
        conn = manager.get_sqlite_connection("sqlite:///./subscriptions.db")
    """

    def __init__(self) -> None:
        self._postgres_pools: dict[str, ConnectionPool] = {}
        self._postgres_lock = threading.Lock()

        self._sqlite_local = threading.local()
        self._sqlite_lock = threading.Lock()
        # Every thread-local connection ever opened, so close_all() reaches other threads' too
        self._sqlite_connections: list[sqlite3.Connection] = []

    def get_postgres_pool(
        self,
        connection_string: str,
        min_size: int = 1,
        max_size: int = 10,
    ) -> ConnectionPool:
        """Get or create the shared pool for a connection string."""
        if connection_string not in self._postgres_pools:
            with self._postgres_lock:
                if connection_string not in self._postgres_pools:
                    from psycopg.rows import dict_row
                    from psycopg_pool import ConnectionPool

                    pool = ConnectionPool(
                        connection_string,
                        min_size=min_size,
                        max_size=max_size,
                        open=True,
                        kwargs={"row_factory": dict_row},
                    )
                    self._postgres_pools[connection_string] = pool
                    logger.debug("Opened PostgreSQL pool (min=%d, max=%d)", min_size, max_size)
        return self._postgres_pools[connection_string]

    def get_sqlite_connection(
        self,
        connection_string: str,
        config: SqliteConfig | None = None,
    ) -> sqlite3.Connection:
        """Get or create the calling thread's connection to a SQLite database.

        The configuration only applies when the connection is first opened.
        """
        db_path = parse_sqlite_path(connection_string)

        if not hasattr(self._sqlite_local, "connections"):
            self._sqlite_local.connections = {}
        connections: dict[str, sqlite3.Connection | None] = self._sqlite_local.connections

        conn = connections.get(db_path)
        if conn is None:
            config = config or SqliteConfig()
            conn = sqlite3.connect(
                db_path,
                timeout=config.busy_timeout_ms / 1000,
                isolation_level=None,
                check_same_thread=False,
            )
            conn.row_factory = sqlite3.Row
            for pragma in config.get_pragma_statements(in_memory=db_path == MEMORY_PATH):
                conn.execute(pragma)
            connections[db_path] = conn
            with self._sqlite_lock:
                self._sqlite_connections.append(conn)
            logger.debug("Opened SQLite connection to %s", db_path)

        return conn

    def close_postgres_pool(self, connection_string: str) -> None:
        """Close a specific PostgreSQL pool."""
        with self._postgres_lock:
            pool = self._postgres_pools.pop(connection_string, None)
        if pool is not None:
            pool.close()

    def close_sqlite_connection(self, connection_string: str) -> None:
        """Close the calling thread's connection to a SQLite database."""
        db_path = parse_sqlite_path(connection_string)
        connections: dict[str, sqlite3.Connection | None] = getattr(self._sqlite_local, "connections", {})
        conn = connections.pop(db_path, None)
        if conn is not None:
            with self._sqlite_lock:
                if conn in self._sqlite_connections:
                    self._sqlite_connections.remove(conn)
            conn.close()

    def close_all(self) -> None:
        """Close all pools and SQLite connections (for shutdown/testing)."""
        with self._postgres_lock:
            pools = list(self._postgres_pools.values())
            self._postgres_pools.clear()
        for pool in pools:
            pool.close()

        with self._sqlite_lock:
            sqlite_connections = list(self._sqlite_connections)
            self._sqlite_connections.clear()
        for conn in sqlite_connections:
            conn.close()
        if hasattr(self._sqlite_local, "connections"):
            self._sqlite_local.connections.clear()


def get_connection_manager() -> ConnectionManager:
    """Get the singleton ConnectionManager instance."""
    return ConnectionManager()
