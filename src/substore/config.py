"""Configuration for the subscription store.

Settings are plain dataclasses that can be built directly or loaded from
environment variables. Lock wait limits are handed to the backend (SQLite
busy_timeout, PostgreSQL lock_timeout); the store has no timeout logic of
its own.

Environment Variables:
    SUBSTORE_DATABASE_URL: Connection string (sqlite:///... or postgresql://...)
    SUBSTORE_TABLE_NAME: Name of the subscriptions table
    SUBSTORE_LOCK_TIMEOUT_MS: How long to wait for row/database locks
    SUBSTORE_POOL_MIN_SIZE: Minimum PostgreSQL pool size
    SUBSTORE_POOL_MAX_SIZE: Maximum PostgreSQL pool size
    SUBSTORE_SQLITE_JOURNAL_MODE: SQLite journal mode (WAL, DELETE, ...)
    SUBSTORE_SQLITE_SYNCHRONOUS: SQLite synchronous setting (OFF/NORMAL/FULL)
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass

from substore.errors import ConfigurationError

DEFAULT_TABLE_NAME = "subscriptions"
DEFAULT_CONNECTION_STRING = "sqlite:///./subscriptions.db"
DEFAULT_LOCK_TIMEOUT_MS = 30000

# SQLite treats a busy timeout of 0 as "fail at once"; this is its largest value (about 24 days)
SQLITE_MAX_BUSY_TIMEOUT_MS = 2**31 - 1

# Lower-case plain identifiers, so PostgreSQL does not case-fold them (63 is NAMEDATALEN - 1)
_TABLE_NAME_PATTERN = re.compile(r"^[a-z_][a-z0-9_]{0,62}$")

_JOURNAL_MODES = frozenset({"DELETE", "TRUNCATE", "PERSIST", "MEMORY", "WAL", "OFF"})
_SYNCHRONOUS_MODES = frozenset({"OFF", "NORMAL", "FULL", "EXTRA"})


def validate_table_name(table_name: str) -> str:
    """Check that a table name is safe to interpolate into SQL.

    Raises:
        ConfigurationError: If the name is not a plain identifier
    """
    if not isinstance(table_name, str) or not _TABLE_NAME_PATTERN.match(table_name):
        raise ConfigurationError(f"Invalid table name: {table_name!r}")
    return table_name


@dataclass
class SqliteConfig:
    """PRAGMA settings applied to every SQLite connection.

    Attributes:
        journal_mode: Journal mode; WAL lets readers proceed during a write
        synchronous: Sync mode (OFF, NORMAL, FULL or EXTRA)
        busy_timeout_ms: How long a writer waits for the database lock. Unlike
            lock_timeout_ms, 0 means do not wait at all
    """

    journal_mode: str = "WAL"
    synchronous: str = "NORMAL"
    busy_timeout_ms: int = DEFAULT_LOCK_TIMEOUT_MS

    def __post_init__(self) -> None:
        self.journal_mode = self.journal_mode.upper()
        self.synchronous = self.synchronous.upper()
        if self.journal_mode not in _JOURNAL_MODES:
            raise ConfigurationError(f"Invalid SQLite journal mode: {self.journal_mode}")
        if self.synchronous not in _SYNCHRONOUS_MODES:
            raise ConfigurationError(f"Invalid SQLite synchronous mode: {self.synchronous}")
        if self.busy_timeout_ms < 0:
            raise ConfigurationError(f"busy_timeout_ms must not be negative, got {self.busy_timeout_ms}")

    @classmethod
    def from_env(cls) -> SqliteConfig:
        return cls(
            journal_mode=os.getenv("SUBSTORE_SQLITE_JOURNAL_MODE", "WAL"),
            synchronous=os.getenv("SUBSTORE_SQLITE_SYNCHRONOUS", "NORMAL"),
            busy_timeout_ms=sqlite_busy_timeout(
                _parse_int_env("SUBSTORE_LOCK_TIMEOUT_MS", DEFAULT_LOCK_TIMEOUT_MS)
            ),
        )

    def get_pragma_statements(self, in_memory: bool = False) -> list[str]:
        """Generate PRAGMA statements for this configuration.

        In-memory databases keep their default journal mode; WAL needs a file.
        """
        statements = [f"PRAGMA busy_timeout = {self.busy_timeout_ms}"]
        if not in_memory:
            statements.append(f"PRAGMA journal_mode = {self.journal_mode}")
        statements.append(f"PRAGMA synchronous = {self.synchronous}")
        return statements


@dataclass
class StoreConfig:
    """Settings for building a subscription store.

    Attributes:
        connection_string: sqlite:///path, sqlite:///:memory: or a PostgreSQL URL
        table_name: Name of the subscriptions table
        lock_timeout_ms: Backend lock wait limit in milliseconds (0 = wait forever, on SQLite
            the longest busy timeout it accepts)
        pool_min_size: Minimum PostgreSQL pool size
        pool_max_size: Maximum PostgreSQL pool size
    """

    connection_string: str = DEFAULT_CONNECTION_STRING
    table_name: str = DEFAULT_TABLE_NAME
    lock_timeout_ms: int = DEFAULT_LOCK_TIMEOUT_MS
    pool_min_size: int = 1
    pool_max_size: int = 10

    def __post_init__(self) -> None:
        validate_table_name(self.table_name)
        if not self.connection_string:
            raise ConfigurationError("connection_string must not be empty")
        if self.lock_timeout_ms < 0:
            raise ConfigurationError(f"lock_timeout_ms must not be negative, got {self.lock_timeout_ms}")
        if self.pool_min_size < 1 or self.pool_max_size < self.pool_min_size:
            raise ConfigurationError(
                f"Invalid pool size: min={self.pool_min_size}, max={self.pool_max_size}"
            )

    @classmethod
    def from_env(cls) -> StoreConfig:
        """Load configuration from environment variables."""
        return cls(
            connection_string=os.getenv("SUBSTORE_DATABASE_URL", DEFAULT_CONNECTION_STRING),
            table_name=os.getenv("SUBSTORE_TABLE_NAME", DEFAULT_TABLE_NAME),
            lock_timeout_ms=_parse_int_env("SUBSTORE_LOCK_TIMEOUT_MS", DEFAULT_LOCK_TIMEOUT_MS),
            pool_min_size=_parse_int_env("SUBSTORE_POOL_MIN_SIZE", 1),
            pool_max_size=_parse_int_env("SUBSTORE_POOL_MAX_SIZE", 10),
        )

    def sqlite_config(self) -> SqliteConfig:
        """SQLite pragmas matching this store configuration."""
        base = SqliteConfig.from_env()
        base.busy_timeout_ms = sqlite_busy_timeout(self.lock_timeout_ms)
        return base


def sqlite_busy_timeout(lock_timeout_ms: int) -> int:
    """Translate a lock wait limit (0 = wait forever) into a SQLite busy timeout."""
    if lock_timeout_ms == 0:
        return SQLITE_MAX_BUSY_TIMEOUT_MS
    return min(lock_timeout_ms, SQLITE_MAX_BUSY_TIMEOUT_MS)


def _parse_int_env(name: str, default: int) -> int:
    """Parse an integer environment variable.

    Raises:
        ConfigurationError: If the variable is set but not an integer
    """
    value = os.getenv(name)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be an integer, got {value!r}", cause=e) from e


_default_store_config: StoreConfig | None = None


def get_store_config() -> StoreConfig:
    """Get the default StoreConfig, loading from environment on first call."""
    global _default_store_config
    if _default_store_config is None:
        _default_store_config = StoreConfig.from_env()
    return _default_store_config


def reset_store_config() -> None:
    """Reset the store config singleton. Useful for testing."""
    global _default_store_config
    _default_store_config = None
