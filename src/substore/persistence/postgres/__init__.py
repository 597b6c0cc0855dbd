"""PostgreSQL backend for the subscription store."""

from substore.persistence.postgres.schema import PostgresSchemaDialect
from substore.persistence.postgres.store import PostgresSubscriptionStore

__all__ = ["PostgresSubscriptionStore", "PostgresSchemaDialect"]
