"""
Immutable flow graph: nodes, routes and terminal actions
"""
from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple

from .conditions import RouteCondition
from .node import Node
from .store import SharedStore

DEFAULT_MAX_STEPS = 1000


@dataclass(frozen=True)
class Route:
    """Directed edge taken when ``source`` produces ``action``"""
    source: str
    action: str
    target: str
    condition: Optional[RouteCondition] = None

    def matches(self, store: SharedStore) -> bool:
        return self.condition is None or self.condition.evaluate(store)

    def __str__(self) -> str:
        guard = f" if {self.condition}" if self.condition is not None else ""
        return f"{self.source} --{self.action}--> {self.target}{guard}"


class FlowGraph:
    """A validated, read-only flow definition

    Instances are produced by ``FlowBuilder.build()``; the constructor does
    not re-validate. A graph can be shared between any number of runs.
    """

    def __init__(
        self,
        nodes: Mapping[str, Node],
        routes: Iterable[Route],
        start: str,
        terminal_actions: Iterable[str] = (),
        max_steps: int = DEFAULT_MAX_STEPS,
    ):
        self._nodes = MappingProxyType(dict(nodes))
        self._routes: Tuple[Route, ...] = tuple(routes)
        self._start = start
        self._terminal_actions: FrozenSet[str] = frozenset(terminal_actions)
        self._max_steps = max_steps

        # conditional routes keep registration order; the unconditional one is the fallback
        index: Dict[Tuple[str, str], List[Route]] = {}
        fallback: Dict[Tuple[str, str], Route] = {}
        for route in self._routes:
            key = (route.source, route.action)
            if route.condition is None:
                fallback[key] = route
            else:
                index.setdefault(key, []).append(route)
        self._conditional = {key: tuple(value) for key, value in index.items()}
        self._fallback = fallback

    @property
    def nodes(self) -> Mapping[str, Node]:
        return self._nodes

    @property
    def routes(self) -> Tuple[Route, ...]:
        return self._routes

    @property
    def start(self) -> str:
        return self._start

    @property
    def terminal_actions(self) -> FrozenSet[str]:
        return self._terminal_actions

    @property
    def max_steps(self) -> int:
        return self._max_steps

    def node(self, name: str) -> Node:
        return self._nodes[name]

    def is_terminal(self, action_name: str) -> bool:
        return action_name in self._terminal_actions

    def routes_from(self, source: str) -> List[Route]:
        return [route for route in self._routes if route.source == source]

    def next_node(self, current: str, action_name: str, store: SharedStore) -> Optional[str]:
        """Target of the first matching route, or None"""
        key = (current, action_name)
        for route in self._conditional.get(key, ()):
            if route.matches(store):
                return route.target
        fallback = self._fallback.get(key)
        return fallback.target if fallback is not None else None

    def to_dot(self, name: str = "flow") -> str:
        """Render the graph in Graphviz DOT format"""
        lines = [f'digraph "{name}" {{', "  rankdir=LR;"]
        for node_name in self._nodes:
            shape = "doublecircle" if node_name == self._start else "box"
            lines.append(f'  "{node_name}" [shape={shape}];')
        for route in self._routes:
            label = route.action
            style = ""
            if route.condition is not None:
                label = f"{label} [{route.condition}]"
                style = ", style=dashed"
            label = label.replace('"', '\\"')
            lines.append(f'  "{route.source}" -> "{route.target}" [label="{label}"{style}];')
        lines.append("}")
        return "\n".join(lines)

    def __repr__(self) -> str:
        return (
            f"FlowGraph(start={self._start!r}, nodes={len(self._nodes)}, "
            f"routes={len(self._routes)}, max_steps={self._max_steps})"
        )
