"""
Schema provisioning for the subscriptions table.

Only one table shape is ever needed, so instead of a general migration
framework this module knows that shape, compares it with what the
backend's catalog reports, and asks a backend dialect to render the
statements that close the gap.

Provisioning is not transactional across statements on every engine
(PostgreSQL commits each statement, MySQL-style engines cannot roll DDL
back at all). A failure can therefore leave the table partially
migrated. ``ensure_schema()`` is safe to run again: it re-reads the
catalog and only emits what is still missing.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

from substore.errors import SchemaProvisioningError
from substore.models import SubscriptionId

logger = logging.getLogger(__name__)

STATUS_MAX_LENGTH = 32


class ColumnType(Enum):
    """Logical column types of the subscriptions table."""

    STRING = "string"  # bounded, needs a length
    INTEGER = "integer"
    TEXT = "text"
    DATETIME = "datetime"
    OTHER = "other"  # anything introspected that is none of the above


@dataclass(frozen=True)
class ColumnShape:
    name: str
    type: ColumnType
    nullable: bool = False
    length: int | None = None
    # Raw type as reported by the catalog, only set for introspected columns
    declared_type: str | None = field(default=None, compare=False)

    def matches(self, other: ColumnShape) -> bool:
        """Same logical definition, ignoring how the catalog spelled it."""
        if self.type != other.type or self.nullable != other.nullable:
            return False
        if self.type == ColumnType.OTHER:
            return False
        if self.type == ColumnType.STRING:
            return self.length == other.length
        return True


@dataclass(frozen=True)
class IndexShape:
    name: str
    columns: tuple[str, ...]
    unique: bool = False

    def covers_same(self, other: IndexShape) -> bool:
        return self.columns == other.columns and self.unique == other.unique


@dataclass(frozen=True)
class TableShape:
    name: str
    columns: tuple[ColumnShape, ...]
    primary_key: tuple[str, ...] = ()
    indexes: tuple[IndexShape, ...] = ()
    # Name of the primary key constraint, where the backend names it
    primary_key_name: str | None = None

    def column(self, name: str) -> ColumnShape | None:
        for column in self.columns:
            if column.name == name:
                return column
        return None

    @property
    def column_names(self) -> tuple[str, ...]:
        return tuple(column.name for column in self.columns)


@dataclass(frozen=True)
class ColumnChange:
    actual: ColumnShape
    desired: ColumnShape

    @property
    def type_changed(self) -> bool:
        if self.actual.type != self.desired.type or self.desired.type == ColumnType.OTHER:
            return True
        return self.desired.type == ColumnType.STRING and self.actual.length != self.desired.length

    @property
    def nullability_changed(self) -> bool:
        return self.actual.nullable != self.desired.nullable


@dataclass(frozen=True)
class ShapeDiff:
    """What has to change to turn the actual table into the desired one."""

    added_columns: tuple[ColumnShape, ...] = ()
    changed_columns: tuple[ColumnChange, ...] = ()
    removed_columns: tuple[ColumnShape, ...] = ()
    added_indexes: tuple[IndexShape, ...] = ()
    removed_indexes: tuple[IndexShape, ...] = ()
    primary_key_changed: bool = False

    @property
    def is_empty(self) -> bool:
        return not (
            self.added_columns
            or self.changed_columns
            or self.removed_columns
            or self.added_indexes
            or self.removed_indexes
            or self.primary_key_changed
        )


def desired_table_shape(table_name: str) -> TableShape:
    """The one shape the subscriptions table must have."""
    return TableShape(
        name=table_name,
        columns=(
            ColumnShape("id", ColumnType.STRING, nullable=False, length=SubscriptionId.MAX_LENGTH),
            ColumnShape("position", ColumnType.INTEGER, nullable=False),
            ColumnShape("status", ColumnType.STRING, nullable=False, length=STATUS_MAX_LENGTH),
            ColumnShape("error_message", ColumnType.TEXT, nullable=True),
            ColumnShape("error_previous_status", ColumnType.STRING, nullable=True, length=STATUS_MAX_LENGTH),
            ColumnShape("error_trace", ColumnType.TEXT, nullable=True),
            ColumnShape("last_saved_at", ColumnType.DATETIME, nullable=False),
        ),
        primary_key=("id",),
        indexes=(IndexShape(f"idx_{table_name}_status", ("status",)),),
    )


def diff_table_shape(actual: TableShape, desired: TableShape) -> ShapeDiff:
    """Compare an introspected table against the desired shape.

    Columns are matched by name, indexes by their column list (an index on
    ``status`` satisfies the requirement whatever it is called).
    """
    added_columns: list[ColumnShape] = []
    changed_columns: list[ColumnChange] = []
    for desired_column in desired.columns:
        actual_column = actual.column(desired_column.name)
        if actual_column is None:
            added_columns.append(desired_column)
        elif not actual_column.matches(desired_column):
            changed_columns.append(ColumnChange(actual=actual_column, desired=desired_column))

    desired_names = set(desired.column_names)
    removed_columns = [column for column in actual.columns if column.name not in desired_names]

    added_indexes = [
        index for index in desired.indexes if not any(index.covers_same(existing) for existing in actual.indexes)
    ]
    removed_indexes = [
        index for index in actual.indexes if not any(index.covers_same(wanted) for wanted in desired.indexes)
    ]

    return ShapeDiff(
        added_columns=tuple(added_columns),
        changed_columns=tuple(changed_columns),
        removed_columns=tuple(removed_columns),
        added_indexes=tuple(added_indexes),
        removed_indexes=tuple(removed_indexes),
        primary_key_changed=actual.primary_key != desired.primary_key,
    )


class SchemaDialect(Protocol):
    """Backend-specific catalog access and DDL rendering."""

    driver_errors: tuple[type[BaseException], ...]

    def table_exists(self, conn: Any, table_name: str) -> bool: ...

    def introspect_table(self, conn: Any, table_name: str) -> TableShape: ...

    def create_table_statements(self, desired: TableShape) -> list[str]: ...

    def alter_table_statements(self, actual: TableShape, desired: TableShape, diff: ShapeDiff) -> list[str]: ...

    def execute(self, conn: Any, statement: str) -> None: ...

    def abort(self, conn: Any) -> None: ...


class SchemaProvisioner:
    """
    Creates or reconciles the subscriptions table.

    The connection passed in must not be inside an application
    transaction; each dialect decides how statements are committed.
    """

    def __init__(self, table_name: str, dialect: SchemaDialect) -> None:
        self.table_name = table_name
        self.dialect = dialect
        self.desired = desired_table_shape(table_name)

    def required_statements(self, conn: Any) -> list[str]:
        """Statements needed to bring the table to the desired shape.

        Empty when the table already matches.

        Raises:
            SchemaProvisioningError: If the catalog cannot be read
        """
        try:
            if not self.dialect.table_exists(conn, self.table_name):
                return self.dialect.create_table_statements(self.desired)
            actual = self.dialect.introspect_table(conn, self.table_name)
        except self.dialect.driver_errors as e:
            raise SchemaProvisioningError(
                f"Failed to inspect table {self.table_name}: {e}",
                table_name=self.table_name,
                cause=e,
            ) from e

        diff = diff_table_shape(actual, self.desired)
        if diff.is_empty:
            return []
        logger.info(
            "Table %s differs from desired shape: %d added, %d changed, %d removed columns, "
            "%d added, %d removed indexes, primary key changed: %s",
            self.table_name,
            len(diff.added_columns),
            len(diff.changed_columns),
            len(diff.removed_columns),
            len(diff.added_indexes),
            len(diff.removed_indexes),
            diff.primary_key_changed,
        )
        return self.dialect.alter_table_statements(actual, self.desired, diff)

    def ensure_schema(self, conn: Any) -> list[str]:
        """Apply the required statements in order.

        Returns:
            The statements that were applied

        Raises:
            SchemaProvisioningError: On the first failing statement; the
                remaining statements are not attempted
        """
        statements = self.required_statements(conn)
        self.apply(conn, statements)
        if statements:
            logger.info("Provisioned table %s with %d statements", self.table_name, len(statements))
        else:
            logger.debug("Table %s already matches desired shape", self.table_name)
        return statements

    def apply(self, conn: Any, statements: Sequence[str]) -> None:
        for applied, statement in enumerate(statements):
            logger.info("Applying schema statement for %s: %s", self.table_name, statement)
            try:
                self.dialect.execute(conn, statement)
            except self.dialect.driver_errors as e:
                self.dialect.abort(conn)
                logger.warning(
                    "Schema statement %d/%d for %s failed: %s",
                    applied + 1,
                    len(statements),
                    self.table_name,
                    e,
                )
                raise SchemaProvisioningError(
                    f"Failed to setup subscription store {self.table_name}: {e}",
                    table_name=self.table_name,
                    statement=statement,
                    applied=applied,
                    cause=e,
                ) from e
