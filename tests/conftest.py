"""
Shared pytest fixtures
"""
import pytest

from nodeflow import FlowBuilder, FlowEngine, FunctionNode, InMemoryStore
from nodeflow.monitoring import MetricsRecorder


def returning(action):
    """Backend whose post always returns ``action``"""
    return FunctionNode(post=lambda store, prep, result, context: action)


class FailingExec(FunctionNode):
    """Backend whose exec raises every time and counts the attempts"""

    def __init__(self, error=None):
        super().__init__(post=lambda store, prep, result, context: "never")
        self.calls = 0
        self.error = error or RuntimeError("boom")

    async def exec(self, prep_result, context):
        self.calls += 1
        raise self.error


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def metrics():
    return MetricsRecorder()


@pytest.fixture
def engine(metrics):
    return FlowEngine(metrics=metrics)


@pytest.fixture
def two_node_graph():
    return (
        FlowBuilder()
        .node("a", returning("go"))
        .node("b", returning("done"))
        .route("a", "go", "b")
        .start_node("a")
        .terminal_action("done")
        .build()
    )
