"""Schema provisioning against real SQLite and PostgreSQL databases."""

from __future__ import annotations

import dataclasses
import sqlite3
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from substore.errors import InvalidTransactionStateError, SchemaProvisioningError
from substore.models import Position, Subscription, SubscriptionStatus
from substore.persistence.schema import ColumnShape, ColumnType, TableShape, desired_table_shape
from substore.persistence.sqlite import SqliteSubscriptionStore
from substore.persistence.store import SubscriptionCriteria, SubscriptionStore

RawSql = Callable[..., list[dict[str, Any]]]

LEGACY_ROW = (
    "INSERT INTO {table} (id, position, status, last_saved_at) "
    "VALUES ('sub-a', 5, 'ACTIVE', '2025-03-14 09:26:53')"
)


def create_table(store: SubscriptionStore, raw_sql: RawSql, shape: TableShape) -> None:
    """Create a table of the given shape without its indexes."""
    create_table_sql = store.provisioner.dialect.create_table_statements(shape)[0]
    raw_sql(create_table_sql)


def legacy_shape(table_name: str, **replacements: ColumnShape | None) -> TableShape:
    """Desired shape with some columns swapped out (or dropped when None) and no indexes."""
    columns = []
    for column in desired_table_shape(table_name).columns:
        if column.name in replacements:
            replacement = replacements[column.name]
            if replacement is not None:
                columns.append(replacement)
        else:
            columns.append(column)
    return dataclasses.replace(desired_table_shape(table_name), columns=tuple(columns), indexes=())


def read_all(store: SubscriptionStore) -> list[Subscription]:
    with store.transaction():
        return store.find_by_criteria_for_update(SubscriptionCriteria.all())


class TestCreateTable:
    def test_creates_table_and_index(self, unprovisioned_store: SubscriptionStore) -> None:
        applied = unprovisioned_store.ensure_schema()

        assert len(applied) == 2
        assert "CREATE TABLE" in applied[0]
        assert "CREATE INDEX" in applied[1]
        assert read_all(unprovisioned_store) == []

    def test_second_run_is_noop(self, unprovisioned_store: SubscriptionStore) -> None:
        unprovisioned_store.ensure_schema()
        assert unprovisioned_store.ensure_schema() == []
        assert unprovisioned_store.setup() == []

    def test_refused_inside_transaction(self, store: SubscriptionStore) -> None:
        store.begin_transaction()
        with pytest.raises(InvalidTransactionStateError):
            store.ensure_schema()
        store.rollback()

    def test_required_statements_are_a_dry_run(self, unprovisioned_store: SubscriptionStore) -> None:
        planned = unprovisioned_store.required_schema_statements()

        assert "CREATE TABLE" in planned[0]
        assert unprovisioned_store.required_schema_statements() == planned
        assert unprovisioned_store.ensure_schema() == planned
        assert unprovisioned_store.required_schema_statements() == []

    def test_unopenable_database_is_provisioning_error(self, tmp_path: Path) -> None:
        store = SqliteSubscriptionStore(f"sqlite:///{tmp_path / 'missing_dir' / 'subs.db'}", table_name="subs")

        with pytest.raises(SchemaProvisioningError) as exc:
            store.ensure_schema()

        assert isinstance(exc.value.cause, sqlite3.OperationalError)
        assert exc.value.table_name == "subs"
        assert exc.value.operation == "ensure_schema"
        with pytest.raises(SchemaProvisioningError):
            store.required_schema_statements()


class TestReconcile:
    def test_missing_index_is_added_without_touching_rows(
        self,
        unprovisioned_store: SubscriptionStore,
        raw_sql: RawSql,
    ) -> None:
        store = unprovisioned_store
        create_table(store, raw_sql, legacy_shape(store.table_name))
        store.add(Subscription.create("sub-a", SubscriptionStatus.ACTIVE, 7))

        applied = store.ensure_schema()

        assert len(applied) == 1
        assert applied[0].startswith("CREATE INDEX")
        [subscription] = read_all(store)
        assert subscription.position == Position(7)
        assert store.ensure_schema() == []

    def test_missing_nullable_column_is_added(
        self,
        unprovisioned_store: SubscriptionStore,
        raw_sql: RawSql,
    ) -> None:
        store = unprovisioned_store
        create_table(store, raw_sql, legacy_shape(store.table_name, error_trace=None))
        raw_sql(LEGACY_ROW.format(table=store.table_name))

        applied = store.ensure_schema()

        assert any("error_trace" in statement for statement in applied)
        [subscription] = read_all(store)
        assert subscription.position == Position(5)
        assert subscription.status == SubscriptionStatus.ACTIVE
        assert subscription.error is None
        assert store.ensure_schema() == []

    def test_changed_and_extra_columns_converge(
        self,
        unprovisioned_store: SubscriptionStore,
        raw_sql: RawSql,
    ) -> None:
        store = unprovisioned_store
        shape = legacy_shape(
            store.table_name,
            status=ColumnShape("status", ColumnType.STRING, length=16),
        )
        shape = dataclasses.replace(
            shape,
            columns=(*shape.columns, ColumnShape("legacy_note", ColumnType.TEXT, nullable=True)),
        )
        create_table(store, raw_sql, shape)
        raw_sql(LEGACY_ROW.format(table=store.table_name))

        assert store.ensure_schema() != []
        assert store.ensure_schema() == []

        [subscription] = read_all(store)
        assert subscription.id.value == "sub-a"
        assert subscription.position == Position(5)

        # Wider status column now accepts the full 32 characters
        raw_sql(f"UPDATE {store.table_name} SET status = '{'X' * 32}' WHERE id = 'sub-a'")

    def test_failure_surfaces_and_rerun_completes(
        self,
        unprovisioned_store: SubscriptionStore,
        raw_sql: RawSql,
    ) -> None:
        store = unprovisioned_store
        create_table(
            store,
            raw_sql,
            legacy_shape(
                store.table_name,
                status=ColumnShape("status", ColumnType.STRING, nullable=True, length=32),
            ),
        )
        raw_sql(
            f"INSERT INTO {store.table_name} (id, position, status, last_saved_at) "
            "VALUES ('sub-a', 5, NULL, '2025-03-14 09:26:53')"
        )

        # status cannot become NOT NULL while a row has no status
        with pytest.raises(SchemaProvisioningError, match="Failed to setup subscription store") as exc:
            store.ensure_schema()
        assert exc.value.statement is not None
        assert exc.value.table_name == store.table_name
        assert exc.value.cause is not None

        raw_sql(f"UPDATE {store.table_name} SET status = 'NEW' WHERE id = 'sub-a'")
        assert store.ensure_schema() != []
        assert store.ensure_schema() == []

        [subscription] = read_all(store)
        assert subscription.status == SubscriptionStatus.NEW
