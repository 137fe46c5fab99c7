"""
Fluent construction and validation of flow graphs
"""
import logging
from typing import Dict, List, Optional, Set

from .conditions import RouteCondition
from .graph import DEFAULT_MAX_STEPS, FlowGraph, Route
from .exceptions import GraphError
from .node import Node, NodeBackend
from .subflow import FlowNode

logger = logging.getLogger(__name__)


class FlowBuilder:
    """Collect nodes and routes, then validate them into a FlowGraph

    Every problem found is reported at once by ``build()``.
    """

    def __init__(self):
        self._nodes: Dict[str, Node] = {}
        self._routes: List[Route] = []
        self._start: Optional[str] = None
        self._terminal_actions: Set[str] = set()
        self._max_steps = DEFAULT_MAX_STEPS
        self._problems: List[str] = []

    def node(
        self,
        name: str,
        backend: NodeBackend,
        retries: int = 0,
        retry_delay: float = 0.0,
        backoff_factor: float = 1.0,
        timeout: Optional[float] = None,
    ) -> "FlowBuilder":
        if name in self._nodes:
            self._problems.append(f"duplicate node name '{name}'")
            return self
        try:
            self._nodes[name] = Node(
                name,
                backend,
                retries=retries,
                retry_delay=retry_delay,
                backoff_factor=backoff_factor,
                timeout=timeout,
            )
        except ValueError as e:
            self._problems.append(str(e))
        return self

    def subflow(self, name: str, graph: FlowGraph, action_map: Optional[Dict[str, str]] = None,
                result_key: Optional[str] = None, **node_options) -> "FlowBuilder":
        """Register a whole graph as a single node"""
        return self.node(name, FlowNode(graph, action_map=action_map, result_key=result_key), **node_options)

    def route(self, source: str, action: str, target: str) -> "FlowBuilder":
        self._routes.append(Route(source, action, target))
        return self

    def conditional_route(self, source: str, action: str, target: str,
                          condition: RouteCondition) -> "FlowBuilder":
        self._routes.append(Route(source, action, target, condition))
        return self

    def start_node(self, name: str) -> "FlowBuilder":
        self._start = name
        return self

    def terminal_action(self, action: str) -> "FlowBuilder":
        self._terminal_actions.add(action)
        return self

    def max_steps(self, limit: int) -> "FlowBuilder":
        self._max_steps = limit
        return self

    def validate(self) -> List[str]:
        """Return every structural problem without raising"""
        problems = list(self._problems)

        if self._start is None:
            problems.append("no start node specified")
        elif self._start not in self._nodes:
            problems.append(f"start node '{self._start}' is not defined")

        seen = set()
        for route in self._routes:
            if route.source not in self._nodes:
                problems.append(f"route {route} references unknown node '{route.source}'")
            if route.target not in self._nodes:
                problems.append(f"route {route} references unknown node '{route.target}'")
            if route.condition is None:
                key = (route.source, route.action)
                if key in seen:
                    problems.append(
                        f"duplicate unconditional route from '{route.source}' on action '{route.action}'"
                    )
                seen.add(key)

        if not isinstance(self._max_steps, int) or self._max_steps <= 0:
            problems.append(f"max_steps must be positive, got {self._max_steps}")

        return problems

    def build(self) -> FlowGraph:
        problems = self.validate()
        if problems:
            raise GraphError(problems)

        graph = FlowGraph(
            nodes=self._nodes,
            routes=self._routes,
            start=self._start,
            terminal_actions=self._terminal_actions,
            max_steps=self._max_steps,
        )
        logger.debug("Built %r", graph)
        return graph
