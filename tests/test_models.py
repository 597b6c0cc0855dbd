"""Tests for subscription models."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from substore.models import (
    CATCH_UP_STATUSES,
    Position,
    Subscription,
    SubscriptionError,
    SubscriptionId,
    SubscriptionStatus,
)


class TestSubscriptionId:
    def test_accepts_plain_string(self) -> None:
        assert SubscriptionId("projector.orders").value == "projector.orders"
        assert str(SubscriptionId.from_string("a")) == "a"

    def test_rejects_empty(self) -> None:
        with pytest.raises(ValueError, match="must not be empty"):
            SubscriptionId("")

    def test_rejects_too_long(self) -> None:
        SubscriptionId("x" * SubscriptionId.MAX_LENGTH)
        with pytest.raises(ValueError, match="must not exceed"):
            SubscriptionId("x" * (SubscriptionId.MAX_LENGTH + 1))

    def test_rejects_non_string(self) -> None:
        with pytest.raises(ValueError):
            SubscriptionId(42)  # type: ignore[arg-type]

    def test_ordering_follows_value(self) -> None:
        ids = [SubscriptionId("b"), SubscriptionId("a"), SubscriptionId("c")]
        assert [i.value for i in sorted(ids)] == ["a", "b", "c"]


class TestPosition:
    def test_none_is_zero(self) -> None:
        assert Position.none() == Position(0)

    def test_next(self) -> None:
        assert Position(41).next() == Position(42)

    def test_rejects_negative(self) -> None:
        with pytest.raises(ValueError, match="must not be negative"):
            Position(-1)

    def test_rejects_bool(self) -> None:
        """bool is an int subclass but never a position."""
        with pytest.raises(ValueError):
            Position(True)

    def test_int_conversion(self) -> None:
        assert int(Position.from_integer(7)) == 7


class TestSubscriptionStatus:
    def test_token_is_value(self) -> None:
        for status in SubscriptionStatus:
            assert SubscriptionStatus.from_token(status.value) is status
            assert str(status) == status.name

    def test_is_string_valued(self) -> None:
        assert isinstance(SubscriptionStatus.ACTIVE, str)
        assert SubscriptionStatus.ACTIVE == "ACTIVE"

    def test_unknown_token(self) -> None:
        with pytest.raises(ValueError):
            SubscriptionStatus.from_token("RUNNING")

    def test_is_failure(self) -> None:
        assert SubscriptionStatus.ERROR.is_failure
        assert not SubscriptionStatus.ACTIVE.is_failure

    def test_catch_up_statuses(self) -> None:
        assert CATCH_UP_STATUSES == {SubscriptionStatus.BOOTING, SubscriptionStatus.ACTIVE}


class TestSubscriptionError:
    def test_from_exception_captures_trace(self) -> None:
        try:
            raise RuntimeError("projection exploded")
        except RuntimeError as e:
            error = SubscriptionError.from_exception(SubscriptionStatus.ACTIVE, e)

        assert error.error_message == "projection exploded"
        assert error.previous_status == SubscriptionStatus.ACTIVE
        assert "RuntimeError: projection exploded" in error.error_trace
        assert "Traceback" in error.error_trace

    def test_from_exception_without_message_uses_type_name(self) -> None:
        error = SubscriptionError.from_exception(SubscriptionStatus.BOOTING, KeyError())
        assert error.error_message == "KeyError"


class TestSubscription:
    def test_create_defaults(self) -> None:
        subscription = Subscription.create("sub-a")
        assert subscription.id == SubscriptionId("sub-a")
        assert subscription.status == SubscriptionStatus.NEW
        assert subscription.position == Position(0)
        assert subscription.error is None
        assert subscription.last_saved_at is None
        assert not subscription.has_error

    def test_with_changes_returns_copy(self) -> None:
        original = Subscription.create("sub-a", SubscriptionStatus.ACTIVE)
        moved = original.with_changes(position=42)

        assert moved.position == Position(42)
        assert original.position == Position(0)
        assert moved.id == original.id

    def test_with_error(self) -> None:
        error = SubscriptionError("boom", SubscriptionStatus.ACTIVE, "trace")
        failed = Subscription.create("sub-a", SubscriptionStatus.ERROR, 3, error=error)
        assert failed.has_error
        assert failed.error == error

    def test_frozen(self) -> None:
        subscription = Subscription.create("sub-a")
        with pytest.raises(AttributeError):
            subscription.position = Position(1)  # type: ignore[misc]

    def test_equality_includes_last_saved_at(self) -> None:
        saved = Subscription.create("sub-a").with_changes(last_saved_at=datetime(2025, 1, 1, tzinfo=UTC))
        assert saved != Subscription.create("sub-a")
