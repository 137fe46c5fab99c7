"""
Adapter running a whole flow graph as a single node
"""
from typing import Any, Dict, Mapping, Optional

from .actions import Action, MultipleAction, SimpleAction, with_metadata
from .context import ExecutionContext
from .engine import FlowEngine
from .exceptions import FlowRunError, SubflowError
from .graph import FlowGraph
from .node import NodeBackend
from .store import SharedStore


class FlowNode(NodeBackend):
    """Node backend wrapping an inner graph

    The inner run happens in ``post`` against the outer store, under a child
    context with its own step counter. Its final action name is translated
    through ``action_map``; names without a mapping return the inner
    action that ended the run, narrowed to that one candidate.
    """

    def __init__(
        self,
        graph: FlowGraph,
        action_map: Optional[Mapping[str, str]] = None,
        engine: Optional[FlowEngine] = None,
        result_key: Optional[str] = None,
    ):
        self.graph = graph
        self.action_map: Dict[str, str] = dict(action_map or {})
        self.engine = engine or FlowEngine()
        self.result_key = result_key

    async def prep(self, store: SharedStore, context: ExecutionContext) -> Any:
        return None

    async def exec(self, prep_result: Any, context: ExecutionContext) -> Any:
        return None

    async def post(self, store: SharedStore, prep_result: Any, exec_result: Any,
                   context: ExecutionContext) -> Action:
        try:
            result = await self.engine.run(self.graph, store, context.child())
        except FlowRunError as e:
            raise SubflowError(e) from e

        if self.result_key:
            store.set(self.result_key, result.to_dict())

        mapped = self.action_map.get(result.action_name)
        if mapped is None:
            return _matched(result.action, result.action_name)
        return SimpleAction(mapped)


def _matched(action: Action, name: str) -> Action:
    """Narrow a multiple action down to the candidate that ended the inner run"""
    if action.candidates() == [name]:
        return action
    chosen: Action = SimpleAction(name)
    inner = action.unwrap()
    if isinstance(inner, MultipleAction):
        for item in inner.items:
            if name in item.candidates():
                chosen = _matched(item, name)
                break
    metadata = action.collect_metadata()
    return with_metadata(chosen, metadata) if metadata else chosen
