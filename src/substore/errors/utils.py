"""Error classification helpers for backend driver exceptions."""

from __future__ import annotations

import sqlite3

from substore.errors.permanent import PermanentError
from substore.errors.transient import TransientError

# lock_not_available, deadlock_detected, serialization_failure
_LOCK_CONTENTION_SQLSTATES = frozenset({"55P03", "40P01", "40001"})

_UNIQUE_VIOLATION_SQLSTATE = "23505"

_LOCK_CONTENTION_PATTERNS = (
    "database is locked",
    "database table is locked",
    "deadlock",
    "lock timeout",
    "could not obtain lock",
    "could not serialize",
)


def is_lock_contention(error: BaseException) -> bool:
    """Check if a driver error means a lock could not be acquired.

    Detects:
    - SQLite: "database is locked" once busy_timeout expires
    - PostgreSQL: SQLSTATE 55P03 (lock_timeout), 40P01 (deadlock), 40001

    Args:
        error: The exception to check

    Returns:
        True if the error indicates lock contention
    """
    if isinstance(error, TransientError):
        return True

    sqlstate = getattr(error, "sqlstate", None)
    if sqlstate in _LOCK_CONTENTION_SQLSTATES:
        return True

    if isinstance(error, sqlite3.IntegrityError):
        return False

    message = str(error).lower()
    return any(pattern in message for pattern in _LOCK_CONTENTION_PATTERNS)


def is_unique_violation(error: BaseException) -> bool:
    """Check if a driver error is a primary key / unique constraint violation."""
    if getattr(error, "sqlstate", None) == _UNIQUE_VIOLATION_SQLSTATE:
        return True

    if isinstance(error, sqlite3.IntegrityError):
        message = str(error).lower()
        return "unique constraint failed" in message or "primary key" in message

    return False


def is_transient(error: BaseException) -> bool:
    """Check if retrying the failed operation later may succeed.

    Permanent classification takes precedence. The cause chain is followed
    so wrapped driver errors are classified by their origin.
    """
    if isinstance(error, PermanentError):
        return False

    if is_lock_contention(error):
        return True

    cause = error.__cause__
    if cause is not None and cause is not error:
        return is_transient(cause)

    return False
