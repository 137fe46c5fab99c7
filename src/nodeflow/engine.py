"""Bounded execution loop driving a flow graph over a shared store."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from .actions import Action
from .context import ExecutionContext
from .exceptions import (
    FlowCancelledError,
    FlowRunError,
    RoutingError,
    StepLimitExceeded,
    ValidationError,
)
from .graph import FlowGraph
from .monitoring import EventLogger, MetricsRecorder
from .store import SharedStore

LOGGER = logging.getLogger("nodeflow.engine")


@dataclass
class FlowResult:
    """Outcome of a run that ended on a terminal action."""

    action: Action
    action_name: str
    last_node: str
    steps: int
    execution_id: str
    path: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "execution_id": self.execution_id,
            "action": self.action_name,
            "params": dict(self.action.params),
            "metadata": self.action.collect_metadata(),
            "last_node": self.last_node,
            "steps": self.steps,
            "path": list(self.path),
        }


class FlowEngine:
    """Runs flows one node at a time until a terminal action is produced.

    A run fails with a typed ``FlowRunError`` when a node fails, a condition
    cannot be evaluated, no route matches, the step limit is reached, or the
    context is cancelled.
    """

    def __init__(
        self,
        metrics: Optional[MetricsRecorder] = None,
        event_logger: Optional[EventLogger] = None,
    ) -> None:
        self.metrics = metrics or MetricsRecorder()
        self.events = event_logger or EventLogger()

    async def run(
        self,
        graph: FlowGraph,
        store: SharedStore,
        context: Optional[ExecutionContext] = None,
        start: Optional[str] = None,
    ) -> FlowResult:
        context = context or ExecutionContext()
        current = start or graph.start
        if current not in graph.nodes:
            raise ValidationError(f"Unknown start node '{current}'", node=current)

        path: List[str] = []
        started = time.perf_counter()
        self.events.log("flow_started", context, start_node=current)
        try:
            while True:
                if context.cancelled:
                    raise FlowCancelledError(node=current, step=context.step_count)
                if context.step_count >= graph.max_steps:
                    raise StepLimitExceeded(graph.max_steps, node=current, step=context.step_count)

                context.step_count += 1
                path.append(current)
                action = await self._run_node(graph, current, store, context)
                action, name, target = self._route(graph, current, action, store, context)
                if target is None:
                    result = FlowResult(
                        action=action,
                        action_name=name,
                        last_node=current,
                        steps=context.step_count,
                        execution_id=context.execution_id,
                        path=path,
                    )
                    self._record_finish(result, context, started)
                    return result
                LOGGER.debug("Routing %s -> %s on %s", current, target, name)
                current = target
        except FlowCancelledError as exc:
            self.metrics.inc("flow_runs_total", labels={"status": "cancelled"})
            self.events.log("flow_cancelled", context, level=logging.WARNING, node=exc.node, step=exc.step)
            raise
        except FlowRunError as exc:
            exc.locate(current, context.step_count)
            self.metrics.inc("flow_runs_total", labels={"status": "failed"})
            self.events.log(
                "flow_failed",
                context,
                level=logging.ERROR,
                node=exc.node,
                step=exc.step,
                kind=exc.kind,
                error=str(exc),
            )
            raise

    def _route(
        self,
        graph: FlowGraph,
        current: str,
        action: Action,
        store: SharedStore,
        context: ExecutionContext,
    ) -> Tuple[Action, str, Optional[str]]:
        """Resolve the action and pick the next node; a None target means terminal."""
        try:
            action = action.resolve(store)
            for name in action.candidates():
                if graph.is_terminal(name):
                    return action, name, None
                target = graph.next_node(current, name, store)
                if target is not None:
                    return action, name, target
        except FlowRunError:
            raise
        except Exception as exc:
            raise ValidationError(
                f"Routing condition failed: {exc!r}", node=current, step=context.step_count
            ) from exc
        raise RoutingError(current, action.name, step=context.step_count)

    async def _run_node(
        self, graph: FlowGraph, name: str, store: SharedStore, context: ExecutionContext
    ) -> Action:
        node = graph.node(name)
        with self.metrics.timed("node_duration_seconds", labels={"node": name}) as timer:
            action = await node.run(store, context)
        self.events.log(
            "node_completed",
            context,
            level=logging.DEBUG,
            node=name,
            step=context.step_count,
            action=str(action),
            duration=timer.elapsed,
        )
        return action

    def _record_finish(self, result: FlowResult, context: ExecutionContext, started: float) -> None:
        duration = time.perf_counter() - started
        self.metrics.inc("flow_runs_total", labels={"status": "completed"})
        self.metrics.observe("flow_duration_seconds", duration)
        self.events.log(
            "flow_completed",
            context,
            action=result.action_name,
            last_node=result.last_node,
            steps=result.steps,
            duration=duration,
        )
