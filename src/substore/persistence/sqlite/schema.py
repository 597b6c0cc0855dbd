"""SQLite catalog introspection and DDL for the subscriptions table."""

from __future__ import annotations

import re
import sqlite3

from substore.persistence.schema import (
    ColumnShape,
    ColumnType,
    IndexShape,
    ShapeDiff,
    TableShape,
)

_STRING_TYPE = re.compile(r"^(?:N?VARCHAR|CHARACTER VARYING|N?CHAR|VARYING CHARACTER)\s*\(\s*(\d+)\s*\)$")

TEMP_TABLE_PREFIX = "__temp__"


def parse_declared_type(declared: str) -> tuple[ColumnType, int | None]:
    """Map a declared SQLite column type onto a logical column type."""
    normalized = " ".join(declared.upper().split())
    match = _STRING_TYPE.match(normalized)
    if match:
        return ColumnType.STRING, int(match.group(1))
    if normalized in ("INTEGER", "INT", "BIGINT", "SMALLINT"):
        return ColumnType.INTEGER, None
    if normalized in ("TEXT", "CLOB"):
        return ColumnType.TEXT, None
    if normalized in ("DATETIME", "TIMESTAMP"):
        return ColumnType.DATETIME, None
    return ColumnType.OTHER, None


def render_type(column: ColumnShape) -> str:
    if column.type == ColumnType.STRING:
        return f"VARCHAR({column.length})"
    if column.type == ColumnType.INTEGER:
        return "INTEGER"
    if column.type == ColumnType.TEXT:
        return "TEXT"
    if column.type == ColumnType.DATETIME:
        return "DATETIME"
    raise ValueError(f"Cannot render column type {column.type} for {column.name}")


def render_column(column: ColumnShape) -> str:
    null_sql = "DEFAULT NULL" if column.nullable else "NOT NULL"
    return f"{column.name} {render_type(column)} {null_sql}"


class SqliteSchemaDialect:
    """
    SQLite flavor of schema provisioning.

    SQLite can add nullable columns and indexes in place but cannot change
    or drop column definitions or the primary key. Those differences are
    applied by rebuilding the table inside one transaction: create the
    desired shape under a temporary name, copy the shared columns, drop
    the old table and rename the new one.
    """

    driver_errors: tuple[type[BaseException], ...] = (sqlite3.Error,)

    def table_exists(self, conn: sqlite3.Connection, table_name: str) -> bool:
        row = conn.execute(
            "SELECT name FROM sqlite_master WHERE type = 'table' AND name = ?",
            (table_name,),
        ).fetchone()
        return row is not None

    def introspect_table(self, conn: sqlite3.Connection, table_name: str) -> TableShape:
        columns: list[ColumnShape] = []
        primary_key: list[tuple[int, str]] = []
        for row in conn.execute(f'PRAGMA table_info("{table_name}")'):
            declared = row["type"] or ""
            column_type, length = parse_declared_type(declared)
            columns.append(
                ColumnShape(
                    name=row["name"],
                    type=column_type,
                    nullable=not row["notnull"],
                    length=length,
                    declared_type=declared,
                )
            )
            if row["pk"]:
                primary_key.append((row["pk"], row["name"]))

        indexes: list[IndexShape] = []
        for index_row in conn.execute(f'PRAGMA index_list("{table_name}")'):
            # Only explicitly created indexes; "pk" and "u" are implied by constraints
            if index_row["origin"] != "c":
                continue
            index_name = index_row["name"]
            index_columns = tuple(info["name"] for info in conn.execute(f'PRAGMA index_info("{index_name}")'))
            indexes.append(IndexShape(name=index_name, columns=index_columns, unique=bool(index_row["unique"])))

        return TableShape(
            name=table_name,
            columns=tuple(columns),
            primary_key=tuple(name for _, name in sorted(primary_key)),
            indexes=tuple(indexes),
        )

    def create_table_statements(self, desired: TableShape) -> list[str]:
        return [self._create_table_sql(desired.name, desired), *self._create_index_sql(desired.name, desired.indexes)]

    def alter_table_statements(self, actual: TableShape, desired: TableShape, diff: ShapeDiff) -> list[str]:
        if self._needs_rebuild(diff):
            return self._rebuild_statements(actual, desired)

        statements: list[str] = []
        for index in diff.removed_indexes:
            statements.append(f'DROP INDEX "{index.name}"')
        for column in diff.added_columns:
            statements.append(f"ALTER TABLE {desired.name} ADD COLUMN {render_column(column)}")
        statements.extend(self._create_index_sql(desired.name, diff.added_indexes))
        return statements

    def execute(self, conn: sqlite3.Connection, statement: str) -> None:
        conn.execute(statement)

    def abort(self, conn: sqlite3.Connection) -> None:
        if conn.in_transaction:
            conn.rollback()

    @staticmethod
    def _needs_rebuild(diff: ShapeDiff) -> bool:
        return bool(
            diff.changed_columns
            or diff.removed_columns
            or diff.primary_key_changed
            or any(not column.nullable for column in diff.added_columns)
        )

    def _rebuild_statements(self, actual: TableShape, desired: TableShape) -> list[str]:
        temp_name = f"{TEMP_TABLE_PREFIX}{desired.name}"
        shared = [name for name in desired.column_names if actual.column(name) is not None]
        column_list = ", ".join(shared)
        return [
            "BEGIN IMMEDIATE",
            f'DROP TABLE IF EXISTS "{temp_name}"',
            self._create_table_sql(temp_name, desired),
            f'INSERT INTO "{temp_name}" ({column_list}) SELECT {column_list} FROM {desired.name}',
            f"DROP TABLE {desired.name}",
            f'ALTER TABLE "{temp_name}" RENAME TO {desired.name}',
            *self._create_index_sql(desired.name, desired.indexes),
            "COMMIT",
        ]

    @staticmethod
    def _create_table_sql(name: str, shape: TableShape) -> str:
        definitions = [render_column(column) for column in shape.columns]
        if shape.primary_key:
            definitions.append(f"PRIMARY KEY ({', '.join(shape.primary_key)})")
        return f'CREATE TABLE "{name}" ({", ".join(definitions)})'

    @staticmethod
    def _create_index_sql(table_name: str, indexes: tuple[IndexShape, ...]) -> list[str]:
        statements = []
        for index in indexes:
            unique = "UNIQUE " if index.unique else ""
            statements.append(f'CREATE {unique}INDEX "{index.name}" ON {table_name} ({", ".join(index.columns)})')
        return statements
