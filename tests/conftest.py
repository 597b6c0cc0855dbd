"""Shared pytest fixtures for parameterized backend testing."""

from __future__ import annotations

import sqlite3
import uuid
from collections.abc import Callable, Generator
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import psycopg
import pytest
from psycopg.rows import dict_row
from testcontainers.postgres import PostgresContainer  # type: ignore[import-untyped]

from substore.clock import FrozenClock
from substore.config import SqliteConfig, reset_store_config, sqlite_busy_timeout
from substore.persistence.connection import ConnectionManager, SingletonMeta, parse_sqlite_path
from substore.persistence.postgres import PostgresSubscriptionStore
from substore.persistence.sqlite import SqliteSubscriptionStore
from substore.persistence.store import SubscriptionStore

StoreFactory = Callable[..., SubscriptionStore]


@pytest.fixture(autouse=True)
def reset_singletons() -> Generator[None, None, None]:
    """Reset singleton ConnectionManager and config between tests for isolation."""
    yield
    SingletonMeta.reset(ConnectionManager)
    reset_store_config()


# =============================================================================
# PostgreSQL Container (Session-Scoped)
# =============================================================================


@pytest.fixture(scope="session")
def postgres_url() -> Generator[str, None, None]:
    """Start PostgreSQL once per test session, skip when Docker is unavailable."""
    try:
        container = PostgresContainer("postgres:15")
        container.start()
    except Exception as e:  # docker client errors vary by platform
        pytest.skip(f"PostgreSQL container unavailable: {e}")

    # testcontainers returns psycopg2 style URL, convert to psycopg3
    url = container.get_connection_url().replace("+psycopg2", "")
    yield url
    container.stop()


# =============================================================================
# Parameterized Backend Fixtures
# =============================================================================


@pytest.fixture(params=["sqlite", "postgres"])
def backend(request: pytest.FixtureRequest) -> str:
    """Parameterized backend - runs tests on both SQLite and PostgreSQL."""
    return str(request.param)


@pytest.fixture
def database_url(backend: str, request: pytest.FixtureRequest, tmp_path: Path) -> str:
    """Connection string for the current backend.

    SQLite uses a file so that several threads see the same database.
    """
    if backend == "sqlite":
        return f"sqlite:///{tmp_path / 'subscriptions.db'}"
    return str(request.getfixturevalue("postgres_url"))


@pytest.fixture
def table_name() -> str:
    """Fresh table per test, so PostgreSQL tests never see each other's rows."""
    return f"subs_{uuid.uuid4().hex[:12]}"


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(datetime(2025, 3, 14, 9, 26, 53, tzinfo=UTC))


@pytest.fixture
def store_factory(
    backend: str,
    database_url: str,
    table_name: str,
    clock: FrozenClock,
) -> StoreFactory:
    """Build additional stores on the same database and table."""

    def make_store(lock_timeout_ms: int = 30000) -> SubscriptionStore:
        if backend == "sqlite":
            return SqliteSubscriptionStore(
                database_url,
                table_name=table_name,
                clock=clock,
                config=SqliteConfig(busy_timeout_ms=sqlite_busy_timeout(lock_timeout_ms)),
            )
        return PostgresSubscriptionStore(
            database_url,
            table_name=table_name,
            clock=clock,
            lock_timeout_ms=lock_timeout_ms,
        )

    return make_store


@pytest.fixture
def unprovisioned_store(store_factory: StoreFactory) -> Generator[SubscriptionStore, None, None]:
    """Store whose table has not been created yet."""
    store = store_factory()
    yield store
    if store.in_transaction:
        store.rollback()


@pytest.fixture
def store(unprovisioned_store: SubscriptionStore) -> SubscriptionStore:
    """Store with its table provisioned."""
    unprovisioned_store.ensure_schema()
    return unprovisioned_store


@pytest.fixture
def raw_sql(backend: str, database_url: str) -> Callable[..., list[dict[str, Any]]]:
    """Run a statement on its own autocommitted connection, bypassing the store."""

    def run(sql: str, params: tuple[Any, ...] = ()) -> list[dict[str, Any]]:
        if backend == "sqlite":
            conn = sqlite3.connect(parse_sqlite_path(database_url), isolation_level=None)
            conn.row_factory = sqlite3.Row
            try:
                return [dict(row) for row in conn.execute(sql, params).fetchall()]
            finally:
                conn.close()

        with psycopg.connect(database_url, autocommit=True, row_factory=dict_row) as conn:
            cur = conn.execute(sql, params)  # type: ignore[arg-type]
            return cur.fetchall() if cur.description else []

    return run
