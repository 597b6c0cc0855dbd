"""Tests for subscription criteria and predicate building."""

from __future__ import annotations

import pytest

from substore.models import SubscriptionId, SubscriptionStatus
from substore.persistence.store.criteria import (
    Predicate,
    SubscriptionCriteria,
    build_predicate,
    criteria_from,
)


class TestSubscriptionCriteria:
    def test_all_has_no_filters(self) -> None:
        criteria = SubscriptionCriteria.all()
        assert criteria.ids is None
        assert criteria.statuses == frozenset()

    def test_string_ids_are_coerced(self) -> None:
        criteria = SubscriptionCriteria.with_ids("b", SubscriptionId("a"))
        assert criteria.ids == {SubscriptionId("a"), SubscriptionId("b")}

    def test_duplicate_ids_collapse(self) -> None:
        assert SubscriptionCriteria.with_ids("a", "a").id_values() == ["a"]

    def test_empty_ids_rejected(self) -> None:
        """An empty id set is ambiguous; None means no id filter."""
        with pytest.raises(ValueError, match="must not be empty"):
            SubscriptionCriteria(ids=frozenset())
        with pytest.raises(ValueError):
            SubscriptionCriteria.with_ids()

    def test_invalid_id_rejected(self) -> None:
        with pytest.raises(ValueError):
            SubscriptionCriteria.with_ids("")

    def test_status_tokens_are_coerced(self) -> None:
        criteria = SubscriptionCriteria.with_statuses("ACTIVE", SubscriptionStatus.PAUSED)
        assert criteria.statuses == {SubscriptionStatus.ACTIVE, SubscriptionStatus.PAUSED}
        assert criteria.status_values() == ["ACTIVE", "PAUSED"]

    def test_unknown_status_rejected(self) -> None:
        with pytest.raises(ValueError):
            SubscriptionCriteria.with_statuses("RUNNING")
        with pytest.raises(ValueError):
            criteria_from(statuses=[42])  # type: ignore[list-item]

    def test_values_are_sorted(self) -> None:
        criteria = SubscriptionCriteria(
            ids=frozenset({SubscriptionId("c"), SubscriptionId("a")}),
            statuses=frozenset({SubscriptionStatus.PAUSED, SubscriptionStatus.ACTIVE}),
        )
        assert criteria.id_values() == ["a", "c"]
        assert criteria.status_values() == ["ACTIVE", "PAUSED"]

    def test_criteria_from_iterables(self) -> None:
        criteria = criteria_from(ids=["x", "y"], statuses=[SubscriptionStatus.NEW])
        assert criteria.id_values() == ["x", "y"]
        assert criteria.status_values() == ["NEW"]
        assert criteria_from().ids is None

    def test_hashable_and_comparable(self) -> None:
        assert SubscriptionCriteria.with_ids("a", "b") == SubscriptionCriteria.with_ids("b", "a")
        assert len({SubscriptionCriteria.all(), SubscriptionCriteria()}) == 1


class TestBuildPredicate:
    def test_no_filters(self) -> None:
        predicate = build_predicate(SubscriptionCriteria.all())
        assert predicate.is_empty
        assert predicate.where_clause() == ""
        assert predicate.params == ()

    def test_ids_only(self) -> None:
        predicate = build_predicate(SubscriptionCriteria.with_ids("b", "a"))
        assert predicate.where_clause() == " WHERE id IN (?, ?)"
        assert predicate.params == ("a", "b")

    def test_statuses_only(self) -> None:
        predicate = build_predicate(SubscriptionCriteria.with_statuses(SubscriptionStatus.ACTIVE))
        assert predicate.where_clause() == " WHERE status IN (?)"
        assert predicate.params == ("ACTIVE",)

    def test_both_filters_are_conjunctive(self) -> None:
        criteria = SubscriptionCriteria(
            ids=frozenset({SubscriptionId("a")}),
            statuses=frozenset({SubscriptionStatus.BOOTING, SubscriptionStatus.ACTIVE}),
        )
        predicate = build_predicate(criteria, placeholder="%s")
        assert predicate.where_clause() == " WHERE id IN (%s) AND status IN (%s, %s)"
        assert predicate.params == ("a", "ACTIVE", "BOOTING")

    def test_equal_criteria_give_equal_predicates(self) -> None:
        first = build_predicate(SubscriptionCriteria.with_ids("x", "y", "z"))
        second = build_predicate(SubscriptionCriteria.with_ids("z", "x", "y"))
        assert first == second

    def test_predicate_defaults(self) -> None:
        assert Predicate().is_empty
