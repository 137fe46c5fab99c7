"""Actions: the typed signals a node returns to drive routing.

An action is immutable once built. Routing only ever looks at concrete names:
conditional actions are resolved against the store first, metadata wrappers
are transparent, and multiple actions offer their names as ordered
candidates for first-match routing.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Tuple, Union

from .conditions import Condition
from .store import SharedStore


def _freeze(mapping: Mapping[str, Any]) -> Mapping[str, Any]:
    return MappingProxyType(dict(mapping))


class Action:
    """Base class for all action variants."""

    def resolve(self, store: SharedStore) -> "Action":
        """Replace conditional actions by the branch the store selects."""
        return self

    def unwrap(self) -> "Action":
        """Strip metadata layers."""
        return self

    def candidates(self) -> List[str]:
        """Concrete action names to try, in order, when routing."""
        raise NotImplementedError

    @property
    def name(self) -> str:
        names = self.candidates()
        return names[0] if names else "empty"

    @property
    def params(self) -> Mapping[str, Any]:
        return MappingProxyType({})

    @property
    def metadata(self) -> Mapping[str, Any]:
        return MappingProxyType({})

    def collect_metadata(self) -> Dict[str, Any]:
        return {}

    def is_resolved(self) -> bool:
        return True


@dataclass(frozen=True)
class SimpleAction(Action):
    action_name: str

    def candidates(self) -> List[str]:
        return [self.action_name]

    def __str__(self) -> str:
        return self.action_name


@dataclass(frozen=True)
class ParameterizedAction(Action):
    action_name: str
    parameters: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "parameters", _freeze(self.parameters))

    def __hash__(self) -> int:
        return hash((self.action_name, tuple(self.parameters.items())))

    def candidates(self) -> List[str]:
        return [self.action_name]

    @property
    def params(self) -> Mapping[str, Any]:
        return self.parameters

    def __str__(self) -> str:
        rendered = ", ".join(f"{k}={v}" for k, v in self.parameters.items())
        return f"{self.action_name}({rendered})"


@dataclass(frozen=True)
class ConditionalAction(Action):
    condition: Condition
    then: Action
    otherwise: Action

    def resolve(self, store: SharedStore) -> Action:
        branch = self.then if self.condition.evaluate(store) else self.otherwise
        return branch.resolve(store)

    def candidates(self) -> List[str]:
        raise ValueError(f"Conditional action must be resolved before routing: {self}")

    @property
    def name(self) -> str:
        return self.then.name

    def is_resolved(self) -> bool:
        return False

    def __str__(self) -> str:
        return f"if {self.condition} then {self.then} else {self.otherwise}"


@dataclass(frozen=True)
class MultipleAction(Action):
    items: Tuple[Action, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "items", tuple(self.items))

    def resolve(self, store: SharedStore) -> Action:
        if self.is_resolved():
            return self
        return MultipleAction(tuple(item.resolve(store) for item in self.items))

    def candidates(self) -> List[str]:
        names: List[str] = []
        for item in self.items:
            names.extend(item.candidates())
        return names

    def collect_metadata(self) -> Dict[str, Any]:
        collected: Dict[str, Any] = {}
        for item in self.items:
            collected.update(item.collect_metadata())
        return collected

    def is_resolved(self) -> bool:
        return all(item.is_resolved() for item in self.items)

    def __str__(self) -> str:
        return "[" + ", ".join(str(item) for item in self.items) + "]"


@dataclass(frozen=True)
class MetadataAction(Action):
    inner: Action
    annotations: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "annotations", _freeze(self.annotations))

    def __hash__(self) -> int:
        return hash((self.inner, tuple(self.annotations.items())))

    def resolve(self, store: SharedStore) -> Action:
        if self.inner.is_resolved():
            return self
        return MetadataAction(self.inner.resolve(store), self.annotations)

    def unwrap(self) -> Action:
        return self.inner.unwrap()

    def candidates(self) -> List[str]:
        return self.inner.candidates()

    @property
    def name(self) -> str:
        return self.inner.name

    @property
    def params(self) -> Mapping[str, Any]:
        return self.inner.params

    @property
    def metadata(self) -> Mapping[str, Any]:
        return self.annotations

    def collect_metadata(self) -> Dict[str, Any]:
        collected = self.inner.collect_metadata()
        collected.update(self.annotations)
        return collected

    def is_resolved(self) -> bool:
        return self.inner.is_resolved()

    def __str__(self) -> str:
        return str(self.inner)


ActionLike = Union[Action, str]


def simple(name: str) -> SimpleAction:
    return SimpleAction(name)


def parameterized(name: str, params: Mapping[str, Any]) -> ParameterizedAction:
    return ParameterizedAction(name, params)


def conditional(condition: Condition, then: ActionLike, otherwise: ActionLike) -> ConditionalAction:
    return ConditionalAction(condition, as_action(then), as_action(otherwise))


def multiple(items: Iterable[ActionLike]) -> MultipleAction:
    return MultipleAction(tuple(as_action(item) for item in items))


def with_metadata(action: ActionLike, metadata: Mapping[str, Any]) -> MetadataAction:
    return MetadataAction(as_action(action), metadata)


def as_action(value: ActionLike) -> Action:
    """Coerce a plain string into a simple action."""
    if isinstance(value, Action):
        return value
    if isinstance(value, str):
        return SimpleAction(value)
    raise TypeError(f"Expected an Action or str, got {type(value).__name__}")
