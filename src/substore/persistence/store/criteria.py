"""Subscription query criteria and their SQL predicate."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from substore.models import SubscriptionId, SubscriptionStatus


@dataclass(frozen=True)
class SubscriptionCriteria:
    """Criteria for selecting subscriptions.

    Attributes:
        ids: Only these ids. None means any id; an empty set is rejected
            because it would read as "no rows" to some callers and "all
            rows" to others.
        statuses: Only these statuses, given as members or persisted tokens.
            Empty means any status. Unknown tokens raise ValueError.

    Both filters apply together when both are given. With neither, the
    criteria select the whole table.
    """

    ids: frozenset[SubscriptionId] | None = None
    statuses: frozenset[SubscriptionStatus] = field(default_factory=frozenset)

    def __post_init__(self) -> None:
        if self.ids is not None:
            ids = frozenset(i if isinstance(i, SubscriptionId) else SubscriptionId(i) for i in self.ids)
            if not ids:
                raise ValueError("ids must not be empty, pass None to select any id")
            object.__setattr__(self, "ids", ids)
        statuses = frozenset(
            s if isinstance(s, SubscriptionStatus) else SubscriptionStatus.from_token(s) for s in self.statuses
        )
        object.__setattr__(self, "statuses", statuses)

    @classmethod
    def all(cls) -> SubscriptionCriteria:
        return cls()

    @classmethod
    def with_ids(cls, *ids: str | SubscriptionId) -> SubscriptionCriteria:
        return cls(ids=frozenset(ids))  # type: ignore[arg-type]

    @classmethod
    def with_statuses(cls, *statuses: SubscriptionStatus | str) -> SubscriptionCriteria:
        return cls(statuses=frozenset(statuses))

    def id_values(self) -> list[str] | None:
        """Sorted id strings, or None when not filtering by id."""
        if self.ids is None:
            return None
        return sorted(i.value for i in self.ids)

    def status_values(self) -> list[str]:
        return sorted(s.value for s in self.statuses)


@dataclass(frozen=True)
class Predicate:
    """A WHERE condition with positional parameters in the backend's paramstyle."""

    conditions: tuple[str, ...] = ()
    params: tuple[Any, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.conditions

    def where_clause(self) -> str:
        """Render as ' WHERE ...', or '' when there is nothing to filter."""
        if self.is_empty:
            return ""
        return " WHERE " + " AND ".join(self.conditions)


def build_predicate(criteria: SubscriptionCriteria, placeholder: str = "?") -> Predicate:
    """Translate criteria into a predicate over the subscriptions table.

    Args:
        criteria: The selection
        placeholder: Positional parameter marker ("?" for sqlite3, "%s" for psycopg)

    Returns:
        Predicate with one IN condition per active filter. Values are
        sorted so equal criteria always produce the same statement.
    """
    conditions: list[str] = []
    params: list[Any] = []

    ids = criteria.id_values()
    if ids is not None:
        conditions.append(f"id IN ({_placeholders(placeholder, len(ids))})")
        params.extend(ids)

    statuses = criteria.status_values()
    if statuses:
        conditions.append(f"status IN ({_placeholders(placeholder, len(statuses))})")
        params.extend(statuses)

    return Predicate(conditions=tuple(conditions), params=tuple(params))


def _placeholders(placeholder: str, count: int) -> str:
    return ", ".join([placeholder] * count)


def criteria_from(
    ids: Iterable[str | SubscriptionId] | None = None,
    statuses: Iterable[SubscriptionStatus | str] = (),
) -> SubscriptionCriteria:
    """Build criteria from arbitrary iterables."""
    return SubscriptionCriteria(
        ids=frozenset(ids) if ids is not None else None,  # type: ignore[arg-type]
        statuses=frozenset(statuses),
    )
