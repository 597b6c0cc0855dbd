"""Base exception hierarchy for substore.

Two-tier exception hierarchy:

1. SubstoreBaseException - Base for all errors, not caught by default handlers
2. SubstoreError - Standard errors that can be caught and handled

Every error knows the subscriptions table and store operation it concerns
when the raiser does, so callers and log records can tell which store
failed without parsing the message.
"""

from __future__ import annotations

from typing import ClassVar

from substore.error_codes import ErrorCode


class SubstoreBaseException(Exception):  # noqa: N818 - intentional base exception name
    """Base exception for all substore errors.

    Attributes:
        code: Numeric error code, fixed per class unless overridden
        error_code: Semantic ErrorCode, ``default_error_code`` unless overridden
        cause: The driver or validation exception behind this error
        table_name: Subscriptions table involved, if known
        operation: Store operation that failed (add, commit, ...), if known
    """

    code: int = 0
    default_error_code: ClassVar[ErrorCode] = ErrorCode.UNKNOWN

    def __init__(
        self,
        message: str,
        *,
        code: int | None = None,
        cause: BaseException | None = None,
        error_code: ErrorCode | None = None,
        table_name: str | None = None,
        operation: str | None = None,
    ) -> None:
        super().__init__(message)
        if code is not None:
            self.code = code
        self.cause = cause
        self.table_name = table_name
        self.operation = operation
        self._error_code = error_code

    @property
    def error_code(self) -> ErrorCode:
        return self._error_code or self.default_error_code

    def __str__(self) -> str:
        parts = [super().__str__()]
        if self.code:
            parts.append(f"(code={self.code})")
        if self.cause:
            parts.append(f"caused by: {self.cause}")
        return " ".join(parts)


class SubstoreError(SubstoreBaseException):
    """Standard substore error. All store errors inherit from this."""

    code: int = 100
    default_error_code = ErrorCode.SYSTEM_ERROR
