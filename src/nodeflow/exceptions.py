"""
Exception hierarchy for the flow engine
"""
from typing import List, Optional


class FlowEngineError(Exception):
    """Base class for all flow engine errors"""
    pass


class GraphError(FlowEngineError):
    """Structural problem found while building a flow graph"""
    def __init__(self, problems: List[str]):
        self.problems = list(problems)
        super().__init__(f"Invalid flow graph: {'; '.join(self.problems)}")


class FlowRunError(FlowEngineError):
    """Base class for errors that abort a running flow"""

    kind = "run_error"

    def __init__(self, message: str, node: Optional[str] = None, step: Optional[int] = None):
        self.node = node
        self.step = step
        self.message = message
        super().__init__(message)

    def locate(self, node: str, step: Optional[int]) -> "FlowRunError":
        """Fill in the node and step if the raiser did not know them"""
        if self.node is None:
            self.node = node
        if self.step is None:
            self.step = step
        return self

    def __str__(self) -> str:
        location = []
        if self.node is not None:
            location.append(f"node '{self.node}'")
        if self.step is not None:
            location.append(f"step {self.step}")
        prefix = f"[{', '.join(location)}] " if location else ""
        return f"{prefix}{self.message}"


class ValidationError(FlowRunError):
    """A node's prep or post phase rejected the data it found"""
    kind = "validation"


class ExecutionError(FlowRunError):
    """A node's exec phase failed after all retries"""

    kind = "execution"

    def __init__(
        self,
        message: str,
        node: Optional[str] = None,
        step: Optional[int] = None,
        attempts: int = 1,
    ):
        self.attempts = attempts
        super().__init__(message, node=node, step=step)


class PhaseTimeoutError(ExecutionError):
    """A phase exceeded the node's configured timeout"""

    kind = "timeout"

    def __init__(
        self,
        phase: str,
        timeout: float,
        node: Optional[str] = None,
        step: Optional[int] = None,
        attempts: int = 1,
    ):
        self.phase = phase
        self.timeout = timeout
        super().__init__(
            f"{phase} timed out after {timeout}s",
            node=node,
            step=step,
            attempts=attempts,
        )


class StorageError(FlowRunError):
    """The shared store failed to complete an operation"""
    kind = "storage"


class RoutingError(FlowRunError):
    """No route matches the action a node produced"""

    kind = "routing"

    def __init__(self, node: str, action: str, step: Optional[int] = None):
        self.action = action
        super().__init__(f"No route found for action '{action}'", node=node, step=step)


class StepLimitExceeded(FlowRunError):
    """The run visited more nodes than the graph allows"""

    kind = "step_limit"

    def __init__(self, max_steps: int, node: Optional[str] = None, step: Optional[int] = None):
        self.max_steps = max_steps
        super().__init__(f"Maximum execution steps exceeded: {max_steps}", node=node, step=step)


class FlowCancelledError(FlowRunError):
    """The run observed its cancellation flag and stopped"""
    kind = "cancelled"

    def __init__(self, node: Optional[str] = None, step: Optional[int] = None):
        super().__init__("Flow run cancelled", node=node, step=step)


class SubflowError(FlowRunError):
    """A nested flow failed inside the post phase of its outer node"""

    def __init__(self, inner: FlowRunError, node: Optional[str] = None, step: Optional[int] = None):
        self.inner = inner
        self.kind = inner.kind
        super().__init__(f"Nested flow failed: {inner}", node=node, step=step)
