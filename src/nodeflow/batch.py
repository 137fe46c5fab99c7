"""
Running one flow graph over many stores
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence

from .actions import Action, ActionLike, as_action
from .context import ExecutionContext
from .engine import FlowEngine, FlowResult
from .exceptions import FlowCancelledError, FlowRunError, ValidationError
from .graph import FlowGraph
from .node import NodeBackend
from .store import InMemoryStore, SharedStore

logger = logging.getLogger(__name__)

ERROR_GROUP = "error"


@dataclass
class BatchOutcome:
    """Result of one batch item: a finished run or the error that stopped it"""
    index: int
    result: Optional[FlowResult] = None
    error: Optional[FlowRunError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def group(self) -> str:
        """Final action name, or ``"error"`` for a failed item"""
        if self.result is None:
            return ERROR_GROUP
        return self.result.action_name

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"index": self.index, "group": self.group}
        if self.result is not None:
            data["result"] = self.result.to_dict()
        if self.error is not None:
            data["error"] = {"kind": self.error.kind, "node": self.error.node, "message": str(self.error)}
        return data


@dataclass
class BatchReport:
    """Outcomes of a batch, in input order"""
    outcomes: List[BatchOutcome] = field(default_factory=list)

    @property
    def success_count(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.ok)

    @property
    def error_count(self) -> int:
        return len(self.outcomes) - self.success_count

    def grouped(self) -> Dict[str, List[int]]:
        """Item indices keyed by final action name"""
        groups: Dict[str, List[int]] = {}
        for outcome in self.outcomes:
            groups.setdefault(outcome.group, []).append(outcome.index)
        return groups

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success_count": self.success_count,
            "error_count": self.error_count,
            "groups": self.grouped(),
            "items": [outcome.to_dict() for outcome in self.outcomes],
        }


class BatchRunner:
    """Runs a graph once per store and collects every outcome

    Item failures are recorded, not raised, so one bad item does not stop the
    rest. Cancelling the enclosing context stops the whole batch.
    """

    def __init__(self, graph: FlowGraph, engine: Optional[FlowEngine] = None, parallel: bool = False):
        self.graph = graph
        self.engine = engine or FlowEngine()
        self.parallel = parallel

    async def run(self, stores: Sequence[SharedStore],
                  context: Optional[ExecutionContext] = None) -> BatchReport:
        context = context or ExecutionContext()
        if self.parallel:
            outcomes = await self._run_parallel(stores, context)
        else:
            outcomes = [await self._run_item(index, store, context) for index, store in enumerate(stores)]
        report = BatchReport(outcomes)
        logger.info(
            f"Batch finished: {report.success_count}/{len(outcomes)} succeeded",
            extra={"execution_id": context.execution_id},
        )
        return report

    async def dispatch(self, report: BatchReport, stores: Sequence[SharedStore],
                       flows: Mapping[str, FlowGraph],
                       context: Optional[ExecutionContext] = None) -> Dict[str, BatchReport]:
        """Run each group's stores through the follow-up flow for its action

        Groups without a follow-up flow are left out of the returned mapping.
        """
        context = context or ExecutionContext()
        followups: Dict[str, BatchReport] = {}
        for group, indices in report.grouped().items():
            graph = flows.get(group)
            if graph is None:
                continue
            runner = BatchRunner(graph, engine=self.engine)
            outcomes = [await runner._run_item(index, stores[index], context) for index in indices]
            followups[group] = BatchReport(outcomes)
        return followups

    async def _run_parallel(self, stores: Sequence[SharedStore],
                            context: ExecutionContext) -> List[BatchOutcome]:
        if context.cancelled:
            raise FlowCancelledError(step=context.step_count)
        runs = [self.engine.run(self.graph, store, self._item_context(context, index))
                for index, store in enumerate(stores)]
        results = await asyncio.gather(*runs, return_exceptions=True)

        outcomes = []
        for index, result in enumerate(results):
            if isinstance(result, FlowCancelledError):
                raise result
            if isinstance(result, FlowRunError):
                outcomes.append(BatchOutcome(index, error=result))
            elif isinstance(result, BaseException):
                raise result
            else:
                outcomes.append(BatchOutcome(index, result=result))
        return outcomes

    async def _run_item(self, index: int, store: SharedStore, context: ExecutionContext) -> BatchOutcome:
        if context.cancelled:
            raise FlowCancelledError(step=context.step_count)
        try:
            result = await self.engine.run(self.graph, store, self._item_context(context, index))
        except FlowCancelledError:
            raise
        except FlowRunError as e:
            logger.warning(f"Batch item {index} failed: {e}", extra={"execution_id": context.execution_id})
            return BatchOutcome(index, error=e)
        return BatchOutcome(index, result=result)

    @staticmethod
    def _item_context(context: ExecutionContext, index: int) -> ExecutionContext:
        child = context.child()
        child.execution_id = f"{child.execution_id}.{index}"
        child.set_metadata("batch_index", str(index))
        return child


class BatchNode(NodeBackend):
    """Node running an inner graph once per item of a store list

    ``prep`` reads a list of mappings from ``items_key``. Each item seeds its
    own in-memory store. ``post`` writes the batch report and the final item
    stores under ``results_key`` and returns ``action``.
    """

    def __init__(
        self,
        graph: FlowGraph,
        items_key: str,
        results_key: Optional[str] = None,
        action: ActionLike = "batch_complete",
        engine: Optional[FlowEngine] = None,
        parallel: bool = False,
    ):
        self.runner = BatchRunner(graph, engine=engine, parallel=parallel)
        self.items_key = items_key
        self.results_key = results_key
        self.action = as_action(action)

    async def prep(self, store: SharedStore, context: ExecutionContext) -> List[Dict[str, Any]]:
        items = store.get(self.items_key)
        if not isinstance(items, list) or not all(isinstance(item, dict) for item in items):
            raise ValidationError(f"Key '{self.items_key}' must hold a list of mappings")
        return [dict(item) for item in items]

    async def exec(self, prep_result: Any, context: ExecutionContext) -> Any:
        return prep_result

    async def post(self, store: SharedStore, prep_result: Any, exec_result: List[Dict[str, Any]],
                   context: ExecutionContext) -> Action:
        stores = [InMemoryStore(item) for item in exec_result]
        report = await self.runner.run(stores, context)
        if self.results_key:
            summary = report.to_dict()
            summary["stores"] = [item.to_dict() for item in stores]
            store.set(self.results_key, summary)
        return self.action
