"""Row conversion between Subscription and its persisted columns.

Pure functions, no I/O. ``subscription_to_row`` flattens the optional
error into three nullable columns; ``row_to_subscription`` is the strict
inverse and refuses anything it would have to guess about.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

from substore.errors import MalformedRowError, TimestampParseError
from substore.models import (
    Position,
    Subscription,
    SubscriptionError,
    SubscriptionId,
    SubscriptionStatus,
)

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

ERROR_COLUMNS = ("error_message", "error_previous_status", "error_trace")

COLUMNS = ("id", "position", "status", *ERROR_COLUMNS, "last_saved_at")


def subscription_to_row(subscription: Subscription) -> dict[str, Any]:
    """Convert a subscription to column values for storage.

    ``id`` and ``last_saved_at`` are left out; the store fills them in
    depending on whether it inserts or updates.
    """
    error = subscription.error
    return {
        "status": subscription.status.value,
        "position": subscription.position.value,
        "error_message": error.error_message if error else None,
        "error_previous_status": error.previous_status.value if error else None,
        "error_trace": error.error_trace if error else None,
    }


def row_to_subscription(row: Mapping[str, Any]) -> Subscription:
    """Convert a database row to a Subscription.

    Raises:
        MalformedRowError: If any column has the wrong type, the error
            columns are only partially set, or a status token is unknown
        TimestampParseError: If last_saved_at cannot be parsed
    """
    raw_id = _column(row, "id", None)
    if not isinstance(raw_id, str):
        raise MalformedRowError(
            f"id must be a string, got {type(raw_id).__name__}",
            column="id",
        )
    try:
        subscription_id = SubscriptionId(raw_id)
    except ValueError as e:
        raise MalformedRowError(str(e), column="id", subscription_id=raw_id, cause=e) from e

    status = _decode_status(_column(row, "status", raw_id), "status", raw_id)

    raw_position = _column(row, "position", raw_id)
    if not isinstance(raw_position, int) or isinstance(raw_position, bool):
        raise MalformedRowError(
            f"position of {raw_id} must be an integer, got {type(raw_position).__name__}",
            column="position",
            subscription_id=raw_id,
        )
    try:
        position = Position(raw_position)
    except ValueError as e:
        raise MalformedRowError(str(e), column="position", subscription_id=raw_id, cause=e) from e

    error = _decode_error(row, raw_id)

    raw_last_saved_at = _column(row, "last_saved_at", raw_id)
    try:
        last_saved_at = parse_timestamp(raw_last_saved_at)
    except TimestampParseError as e:
        e.subscription_id = raw_id
        raise

    return Subscription(
        id=subscription_id,
        status=status,
        position=position,
        error=error,
        last_saved_at=last_saved_at,
    )


def _column(row: Mapping[str, Any], name: str, subscription_id: str | None) -> Any:
    # sqlite3.Row raises IndexError for unknown keys, dict rows raise KeyError
    try:
        return row[name]
    except (KeyError, IndexError) as e:
        raise MalformedRowError(
            f"Row is missing column {name}",
            column=name,
            subscription_id=subscription_id,
            cause=e,
        ) from e


def _decode_status(value: Any, column: str, subscription_id: str) -> SubscriptionStatus:
    if not isinstance(value, str):
        raise MalformedRowError(
            f"{column} of {subscription_id} must be a string, got {type(value).__name__}",
            column=column,
            subscription_id=subscription_id,
        )
    try:
        return SubscriptionStatus.from_token(value)
    except ValueError as e:
        raise MalformedRowError(
            f"{column} of {subscription_id} is not a known status: {value!r}",
            column=column,
            subscription_id=subscription_id,
            cause=e,
        ) from e


def _decode_error(row: Mapping[str, Any], subscription_id: str) -> SubscriptionError | None:
    values = {name: _column(row, name, subscription_id) for name in ERROR_COLUMNS}
    present = [name for name, value in values.items() if value is not None]

    if not present:
        return None

    if len(present) != len(ERROR_COLUMNS):
        missing = [name for name in ERROR_COLUMNS if name not in present]
        raise MalformedRowError(
            f"Error columns of {subscription_id} are partially set, missing {', '.join(missing)}",
            column=missing[0],
            subscription_id=subscription_id,
        )

    for name in ("error_message", "error_trace"):
        if not isinstance(values[name], str):
            raise MalformedRowError(
                f"{name} of {subscription_id} must be a string, got {type(values[name]).__name__}",
                column=name,
                subscription_id=subscription_id,
            )

    return SubscriptionError(
        error_message=values["error_message"],
        previous_status=_decode_status(values["error_previous_status"], "error_previous_status", subscription_id),
        error_trace=values["error_trace"],
    )


def to_storage_time(value: datetime) -> datetime:
    """Normalize a clock reading to naive UTC with second precision."""
    if value.tzinfo is not None:
        value = value.astimezone(UTC)
    return value.replace(tzinfo=None, microsecond=0)


def format_timestamp(value: datetime) -> str:
    """Format a clock reading for the last_saved_at column."""
    return to_storage_time(value).strftime(TIMESTAMP_FORMAT)


def parse_timestamp(value: Any) -> datetime:
    """Parse a stored last_saved_at value into an aware UTC datetime.

    Strings must match TIMESTAMP_FORMAT exactly. Drivers that already
    return datetime objects (psycopg for TIMESTAMP columns) are taken as
    UTC when naive.

    Raises:
        TimestampParseError: If the value is not a valid timestamp
    """
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    if not isinstance(value, str):
        raise TimestampParseError(
            f"last_saved_at must be a string, got {type(value).__name__}",
            column="last_saved_at",
        )
    try:
        parsed = datetime.strptime(value, TIMESTAMP_FORMAT)
    except ValueError as e:
        raise TimestampParseError(
            f"last_saved_at {value!r} is not a valid date",
            column="last_saved_at",
            cause=e,
        ) from e
    return parsed.replace(tzinfo=UTC)
