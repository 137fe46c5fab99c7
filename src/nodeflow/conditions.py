"""Boolean conditions evaluated against the shared store.

The same condition types guard conditional actions and conditional routes.
"""
from __future__ import annotations

import enum
import operator
from dataclasses import dataclass
from typing import Any, Callable, Tuple

from .store import SharedStore


class ComparisonOperator(str, enum.Enum):
    """Operators supported by numeric comparisons."""

    EQ = "=="
    NE = "!="
    GT = ">"
    GE = ">="
    LT = "<"
    LE = "<="


_OPERATORS = {
    ComparisonOperator.EQ: operator.eq,
    ComparisonOperator.NE: operator.ne,
    ComparisonOperator.GT: operator.gt,
    ComparisonOperator.GE: operator.ge,
    ComparisonOperator.LT: operator.lt,
    ComparisonOperator.LE: operator.le,
}


class Condition:
    """Base class for store conditions."""

    def evaluate(self, store: SharedStore) -> bool:
        raise NotImplementedError

    def __and__(self, other: "Condition") -> "AllOf":
        return AllOf((self, other))

    def __or__(self, other: "Condition") -> "AnyOf":
        return AnyOf((self, other))

    def __invert__(self) -> "Not":
        return Not(self)


RouteCondition = Condition


@dataclass(frozen=True)
class Always(Condition):
    def evaluate(self, store: SharedStore) -> bool:
        return True

    def __str__(self) -> str:
        return "true"


@dataclass(frozen=True)
class Never(Condition):
    def evaluate(self, store: SharedStore) -> bool:
        return False

    def __str__(self) -> str:
        return "false"


@dataclass(frozen=True)
class KeyExists(Condition):
    key: str

    def evaluate(self, store: SharedStore) -> bool:
        return store.contains(self.key)

    def __str__(self) -> str:
        return f"exists({self.key})"


@dataclass(frozen=True)
class KeyEquals(Condition):
    key: str
    value: Any

    def evaluate(self, store: SharedStore) -> bool:
        if not store.contains(self.key):
            return False
        return store.get(self.key) == self.value

    def __str__(self) -> str:
        return f"{self.key} == {self.value!r}"


@dataclass(frozen=True)
class NumericCompare(Condition):
    """Compare a numeric store value; missing or non-numeric values are false."""

    key: str
    op: ComparisonOperator
    value: float

    def __post_init__(self) -> None:
        object.__setattr__(self, "op", ComparisonOperator(self.op))

    def evaluate(self, store: SharedStore) -> bool:
        actual = store.get(self.key)
        if isinstance(actual, bool) or actual is None:
            return False
        try:
            number = float(actual)
        except (TypeError, ValueError):
            return False
        return _OPERATORS[self.op](number, float(self.value))

    def __str__(self) -> str:
        return f"{self.key} {self.op.value} {self.value}"


@dataclass(frozen=True)
class AllOf(Condition):
    conditions: Tuple[Condition, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "conditions", tuple(self.conditions))

    def evaluate(self, store: SharedStore) -> bool:
        return all(condition.evaluate(store) for condition in self.conditions)

    def __str__(self) -> str:
        return "(" + " && ".join(str(c) for c in self.conditions) + ")"


@dataclass(frozen=True)
class AnyOf(Condition):
    conditions: Tuple[Condition, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "conditions", tuple(self.conditions))

    def evaluate(self, store: SharedStore) -> bool:
        return any(condition.evaluate(store) for condition in self.conditions)

    def __str__(self) -> str:
        return "(" + " || ".join(str(c) for c in self.conditions) + ")"


@dataclass(frozen=True)
class Not(Condition):
    condition: Condition

    def evaluate(self, store: SharedStore) -> bool:
        return not self.condition.evaluate(store)

    def __str__(self) -> str:
        return f"!({self.condition})"


@dataclass(frozen=True)
class Predicate(Condition):
    """Wrap an arbitrary ``store -> bool`` callable."""

    func: Callable[[SharedStore], bool]
    label: str = "predicate"

    def evaluate(self, store: SharedStore) -> bool:
        return bool(self.func(store))

    def __str__(self) -> str:
        return f"{self.label}()"
