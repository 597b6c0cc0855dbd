"""
Structured error codes for substore.

Gives every store failure a semantic category so the calling engine can
decide between retrying, alerting and giving up without matching on
exception classes or message text.

Usage:
    from substore.error_codes import ErrorCode, classify_error

    try:
        store.find_by_criteria_for_update(criteria)
    except Exception as e:
        if classify_error(e) == ErrorCode.LOCK_CONTENTION:
            # Another engine run holds the rows, try again later
            pass
"""

from __future__ import annotations

from enum import Enum


class ErrorCode(Enum):
    """Semantic error codes for categorizing store exceptions."""

    # General errors
    UNKNOWN = "UNKNOWN"
    SYSTEM_ERROR = "SYSTEM_ERROR"

    # Setup errors
    CONFIGURATION_INVALID = "CONFIGURATION_INVALID"
    SCHEMA_PROVISIONING_FAILED = "SCHEMA_PROVISIONING_FAILED"

    # Data errors
    MALFORMED_ROW = "MALFORMED_ROW"
    DUPLICATE_ID = "DUPLICATE_ID"
    NOT_FOUND = "NOT_FOUND"

    # Usage errors
    INVALID_TRANSACTION_STATE = "INVALID_TRANSACTION_STATE"

    # Backend errors
    STORAGE_ERROR = "STORAGE_ERROR"
    LOCK_CONTENTION = "LOCK_CONTENTION"


def error_chain(error: BaseException) -> list[BaseException]:
    """Traverse __cause__ chain, return list from root to leaf.

    Args:
        error: The exception to traverse

    Returns:
        List of exceptions from root cause to the provided exception.
    """
    chain: list[BaseException] = []
    current: BaseException | None = error

    while current is not None:
        chain.append(current)
        cause = current.__cause__
        if cause is current or cause in chain:
            break
        current = cause

    chain.reverse()
    return chain


def classify_error(error: BaseException) -> ErrorCode:
    """Map any exception to an ErrorCode.

    Substore exceptions carry their own code. Anything else is looked up
    through its cause chain and finally classified by type name.
    """
    if hasattr(error, "error_code"):
        return error.error_code  # type: ignore[no-any-return]

    for exc in reversed(error_chain(error)):
        if hasattr(exc, "error_code"):
            return exc.error_code  # type: ignore[no-any-return]

    error_type = type(error).__name__.lower()

    if any(pattern in error_type for pattern in ["deadlock", "locknotavailable", "serialization"]):
        return ErrorCode.LOCK_CONTENTION

    if any(pattern in error_type for pattern in ["uniqueviolation", "integrity"]):
        return ErrorCode.DUPLICATE_ID

    if any(pattern in error_type for pattern in ["operational", "database", "interface"]):
        return ErrorCode.STORAGE_ERROR

    return ErrorCode.UNKNOWN
