"""SQLite backend for the subscription store."""

from substore.persistence.sqlite.schema import SqliteSchemaDialect
from substore.persistence.sqlite.store import SqliteSubscriptionStore

__all__ = ["SqliteSubscriptionStore", "SqliteSchemaDialect"]
