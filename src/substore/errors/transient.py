"""Transient (retryable) errors."""

from __future__ import annotations

from substore.error_codes import ErrorCode
from substore.errors.base import SubstoreError


class TransientError(SubstoreError):
    """Errors for conditions that may clear up on their own.

    The store never retries these itself. They tell the calling engine
    that running the same operation again later is reasonable:
    - Lock wait timeouts
    - Deadlock victims
    - SQLite "database is locked"
    """

    code: int = 101
    default_error_code = ErrorCode.LOCK_CONTENTION
