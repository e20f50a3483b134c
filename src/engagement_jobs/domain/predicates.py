"""Row predicates understood by store adapters.

A predicate maps a column name to either a literal (equality) or one of the
condition objects below. All terms must hold for a row to match. Pinning every
previously read value in a predicate turns an update into a compare-and-set.
"""

from __future__ import annotations

from collections.abc import Collection, Mapping, Sequence
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, TypeAlias


class SortDirection(StrEnum):
    """Sort direction for select ordering."""

    ASC = "asc"
    DESC = "desc"


class Condition:
    """Base class for non-equality predicate terms."""

    __slots__ = ()

    def matches(self, value: Any) -> bool:
        raise NotImplementedError


@dataclass(slots=True, frozen=True)
class In(Condition):
    """Column value is one of `values`."""

    values: Collection[Any]

    def __post_init__(self) -> None:
        object.__setattr__(self, "values", tuple(self.values))

    def matches(self, value: Any) -> bool:
        return value in self.values


@dataclass(slots=True, frozen=True)
class NotIn(Condition):
    """Column value is none of `values`."""

    values: Collection[Any]

    def __post_init__(self) -> None:
        object.__setattr__(self, "values", tuple(self.values))

    def matches(self, value: Any) -> bool:
        return value not in self.values


@dataclass(slots=True, frozen=True)
class LessThan(Condition):
    bound: Any

    def matches(self, value: Any) -> bool:
        return value is not None and value < self.bound


@dataclass(slots=True, frozen=True)
class LessEqual(Condition):
    bound: Any

    def matches(self, value: Any) -> bool:
        return value is not None and value <= self.bound


@dataclass(slots=True, frozen=True)
class GreaterThan(Condition):
    bound: Any

    def matches(self, value: Any) -> bool:
        return value is not None and value > self.bound


@dataclass(slots=True, frozen=True)
class GreaterEqual(Condition):
    bound: Any

    def matches(self, value: Any) -> bool:
        return value is not None and value >= self.bound


@dataclass(slots=True, frozen=True)
class IsNull(Condition):
    def matches(self, value: Any) -> bool:
        return value is None


Predicate: TypeAlias = Mapping[str, Any]
Ordering: TypeAlias = Sequence[tuple[str, SortDirection]]


def matches(row: Mapping[str, Any], predicate: Predicate) -> bool:
    """Return whether `row` satisfies every term of `predicate`."""

    for column, expected in predicate.items():
        value = row.get(column)
        if isinstance(expected, Condition):
            if not expected.matches(value):
                return False
        elif value != expected:
            return False
    return True


__all__ = [
    "Condition",
    "GreaterEqual",
    "GreaterThan",
    "In",
    "IsNull",
    "LessEqual",
    "LessThan",
    "NotIn",
    "Ordering",
    "Predicate",
    "SortDirection",
    "matches",
]
