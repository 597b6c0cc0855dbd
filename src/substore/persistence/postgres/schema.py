"""PostgreSQL catalog introspection and DDL for the subscriptions table."""

from __future__ import annotations

from typing import Any

import psycopg
from psycopg.rows import dict_row

from substore.persistence.schema import (
    ColumnShape,
    ColumnType,
    IndexShape,
    ShapeDiff,
    TableShape,
)

_COLUMNS_SQL = """
    SELECT column_name, data_type, character_maximum_length, is_nullable
    FROM information_schema.columns
    WHERE table_schema = current_schema() AND table_name = %s
    ORDER BY ordinal_position
"""

_PRIMARY_KEY_SQL = """
    SELECT c.conname AS constraint_name,
           array_agg(a.attname::text ORDER BY k.ord) AS columns
    FROM pg_constraint c
    JOIN LATERAL unnest(c.conkey) WITH ORDINALITY AS k(attnum, ord) ON TRUE
    JOIN pg_attribute a ON a.attrelid = c.conrelid AND a.attnum = k.attnum
    WHERE c.conrelid = to_regclass(%s::text) AND c.contype = 'p'
    GROUP BY c.conname
"""

_INDEXES_SQL = """
    SELECT i.relname::text AS index_name,
           ix.indisunique AS is_unique,
           array_agg(a.attname::text ORDER BY k.ord) AS columns
    FROM pg_index ix
    JOIN pg_class i ON i.oid = ix.indexrelid
    JOIN LATERAL unnest(ix.indkey::int2[]) WITH ORDINALITY AS k(attnum, ord) ON TRUE
    JOIN pg_attribute a ON a.attrelid = ix.indrelid AND a.attnum = k.attnum
    WHERE ix.indrelid = to_regclass(%s::text) AND NOT ix.indisprimary
    GROUP BY i.relname, ix.indisunique
    ORDER BY i.relname
"""


def parse_data_type(data_type: str) -> ColumnType:
    """Map an information_schema data_type onto a logical column type."""
    if data_type == "character varying":
        return ColumnType.STRING
    if data_type == "integer":
        return ColumnType.INTEGER
    if data_type == "text":
        return ColumnType.TEXT
    if data_type == "timestamp without time zone":
        return ColumnType.DATETIME
    return ColumnType.OTHER


def render_type(column: ColumnShape) -> str:
    if column.type == ColumnType.STRING:
        return f"VARCHAR({column.length})"
    if column.type == ColumnType.INTEGER:
        return "INT"
    if column.type == ColumnType.TEXT:
        return "TEXT"
    if column.type == ColumnType.DATETIME:
        return "TIMESTAMP(0) WITHOUT TIME ZONE"
    raise ValueError(f"Cannot render column type {column.type} for {column.name}")


def render_column(column: ColumnShape) -> str:
    null_sql = "DEFAULT NULL" if column.nullable else "NOT NULL"
    return f"{column.name} {render_type(column)} {null_sql}"


class PostgresSchemaDialect:
    """
    PostgreSQL flavor of schema provisioning.

    Every difference can be applied with ALTER statements, so the table is
    never rebuilt. Each statement is committed on its own.
    """

    driver_errors: tuple[type[BaseException], ...] = (psycopg.Error,)

    def table_exists(self, conn: psycopg.Connection[Any], table_name: str) -> bool:
        with conn.cursor(row_factory=dict_row) as cur:
            cur.execute("SELECT to_regclass(%s::text) IS NOT NULL AS present", (table_name,))
            row = cur.fetchone()
        conn.commit()
        return bool(row and row["present"])

    def introspect_table(self, conn: psycopg.Connection[Any], table_name: str) -> TableShape:
        with conn.cursor(row_factory=dict_row) as cur:
            cur.execute(_COLUMNS_SQL, (table_name,))
            columns = tuple(
                ColumnShape(
                    name=row["column_name"],
                    type=parse_data_type(row["data_type"]),
                    nullable=row["is_nullable"] == "YES",
                    length=row["character_maximum_length"],
                    declared_type=row["data_type"],
                )
                for row in cur.fetchall()
            )

            cur.execute(_PRIMARY_KEY_SQL, (table_name,))
            pk_row = cur.fetchone()

            cur.execute(_INDEXES_SQL, (table_name,))
            indexes = tuple(
                IndexShape(name=row["index_name"], columns=tuple(row["columns"]), unique=row["is_unique"])
                for row in cur.fetchall()
            )
        conn.commit()

        return TableShape(
            name=table_name,
            columns=columns,
            primary_key=tuple(pk_row["columns"]) if pk_row else (),
            indexes=indexes,
            primary_key_name=pk_row["constraint_name"] if pk_row else None,
        )

    def create_table_statements(self, desired: TableShape) -> list[str]:
        definitions = [render_column(column) for column in desired.columns]
        if desired.primary_key:
            definitions.append(f"PRIMARY KEY ({', '.join(desired.primary_key)})")
        return [
            f"CREATE TABLE {desired.name} ({', '.join(definitions)})",
            *self._create_index_sql(desired.name, desired.indexes),
        ]

    def alter_table_statements(self, actual: TableShape, desired: TableShape, diff: ShapeDiff) -> list[str]:
        table = desired.name
        statements: list[str] = []

        for index in diff.removed_indexes:
            statements.append(f"DROP INDEX {index.name}")

        if diff.primary_key_changed and actual.primary_key_name:
            statements.append(f"ALTER TABLE {table} DROP CONSTRAINT {actual.primary_key_name}")

        for column in diff.added_columns:
            statements.append(f"ALTER TABLE {table} ADD {render_column(column)}")

        for change in diff.changed_columns:
            name = change.desired.name
            if change.type_changed:
                column_type = render_type(change.desired)
                statements.append(f"ALTER TABLE {table} ALTER {name} TYPE {column_type} USING {name}::{column_type}")
            if change.nullability_changed:
                action = "DROP NOT NULL" if change.desired.nullable else "SET NOT NULL"
                statements.append(f"ALTER TABLE {table} ALTER {name} {action}")

        for column in diff.removed_columns:
            statements.append(f"ALTER TABLE {table} DROP {column.name}")

        if diff.primary_key_changed and desired.primary_key:
            statements.append(f"ALTER TABLE {table} ADD PRIMARY KEY ({', '.join(desired.primary_key)})")

        statements.extend(self._create_index_sql(table, diff.added_indexes))
        return statements

    def execute(self, conn: psycopg.Connection[Any], statement: str) -> None:
        with conn.cursor() as cur:
            cur.execute(statement)  # type: ignore[arg-type]
        conn.commit()

    def abort(self, conn: psycopg.Connection[Any]) -> None:
        conn.rollback()

    @staticmethod
    def _create_index_sql(table_name: str, indexes: tuple[IndexShape, ...]) -> list[str]:
        statements = []
        for index in indexes:
            unique = "UNIQUE " if index.unique else ""
            statements.append(f"CREATE {unique}INDEX {index.name} ON {table_name} ({', '.join(index.columns)})")
        return statements
