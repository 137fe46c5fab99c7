"""
Node lifecycle, retry and timeout tests
"""
import asyncio

import pytest

from conftest import FailingExec
from nodeflow import (
    ExecutionContext,
    ExecutionError,
    FunctionNode,
    InMemoryStore,
    Node,
    NodeBackend,
    PhaseTimeoutError,
    SimpleAction,
    StorageError,
    ValidationError,
)


class RecordingBackend(NodeBackend):
    def __init__(self):
        self.calls = []

    async def prep(self, store, context):
        self.calls.append("prep")
        return store.get("input")

    async def exec(self, prep_result, context):
        self.calls.append("exec")
        return prep_result * 2

    async def post(self, store, prep_result, exec_result, context):
        self.calls.append("post")
        store.set("output", exec_result)
        return "done"


class FlakyExec(FunctionNode):
    def __init__(self, failures):
        super().__init__(post=lambda store, prep, result, context: result)
        self.failures = failures
        self.attempts = []

    async def exec(self, prep_result, context):
        self.attempts.append(context.attempt)
        if len(self.attempts) <= self.failures:
            raise ConnectionError("temporary")
        return "recovered"


class TestNodeLifecycle:
    """Phase ordering and action coercion"""

    @pytest.mark.asyncio
    async def test_phases_run_in_order(self):
        backend = RecordingBackend()
        store = InMemoryStore({"input": 21})
        action = await Node("double", backend).run(store, ExecutionContext())
        assert backend.calls == ["prep", "exec", "post"]
        assert store.get("output") == 42
        assert action == SimpleAction("done")

    @pytest.mark.asyncio
    async def test_node_sets_current_node_on_context(self):
        seen = {}

        def post(store, prep, result, context):
            seen["node"] = context.current_node
            return "ok"

        context = ExecutionContext()
        await Node("probe", FunctionNode(post=post)).run(InMemoryStore(), context)
        assert seen["node"] == "probe"

    @pytest.mark.asyncio
    async def test_function_node_accepts_sync_and_async_callables(self):
        async def prep(store, context):
            return store.get("x")

        backend = FunctionNode(
            prep=prep,
            exec=lambda value, context: value + 1,
            post=lambda store, prep_result, exec_result, context: store.set("y", exec_result) or "next",
        )
        store = InMemoryStore({"x": 1})
        action = await Node("inc", backend).run(store, ExecutionContext())
        assert store.get("y") == 2
        assert action.name == "next"

    @pytest.mark.asyncio
    async def test_post_must_return_an_action(self):
        node = Node("bad", FunctionNode(post=lambda store, prep, result, context: 42))
        with pytest.raises(ValidationError) as excinfo:
            await node.run(InMemoryStore(), ExecutionContext())
        assert excinfo.value.node == "bad"

    def test_invalid_configuration(self):
        with pytest.raises(ValueError):
            Node("n", FunctionNode(post=lambda *args: "x"), retries=-1)
        with pytest.raises(ValueError):
            Node("n", FunctionNode(post=lambda *args: "x"), timeout=0)


class TestErrorClassification:
    """Backend failures become typed run errors"""

    @pytest.mark.asyncio
    async def test_prep_failure_is_validation_error(self):
        def prep(store, context):
            return store.get("required")["field"]

        node = Node("reader", FunctionNode(prep=prep, post=lambda *args: "ok"), retries=3)
        context = ExecutionContext(step_count=4)
        with pytest.raises(ValidationError) as excinfo:
            await node.run(InMemoryStore(), context)
        assert excinfo.value.node == "reader"
        assert excinfo.value.step == 4
        assert excinfo.value.kind == "validation"
        assert isinstance(excinfo.value.__cause__, TypeError)
        assert context.attempt == 0

    @pytest.mark.asyncio
    async def test_storage_error_passes_through_with_location(self):
        def post(store, prep, result, context):
            raise StorageError("disk full")

        with pytest.raises(StorageError) as excinfo:
            await Node("writer", FunctionNode(post=post)).run(InMemoryStore(), ExecutionContext())
        assert excinfo.value.node == "writer"
        assert "[node 'writer', step 0] disk full" == str(excinfo.value)


class TestRetries:
    """Exec retry policy"""

    @pytest.mark.asyncio
    async def test_exec_retried_then_execution_error(self):
        backend = FailingExec()
        node = Node("always_fails", backend, retries=2)
        with pytest.raises(ExecutionError) as excinfo:
            await node.run(InMemoryStore(), ExecutionContext())
        assert backend.calls == 3
        assert excinfo.value.attempts == 3
        assert excinfo.value.kind == "execution"
        assert isinstance(excinfo.value.__cause__, RuntimeError)

    @pytest.mark.asyncio
    async def test_exec_recovers_within_retry_budget(self):
        backend = FlakyExec(failures=2)
        action = await Node("flaky", backend, retries=2).run(InMemoryStore(), ExecutionContext())
        assert action.name == "recovered"
        assert backend.attempts == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_backoff_delays(self, monkeypatch):
        delays = []

        async def fake_sleep(seconds):
            delays.append(seconds)

        monkeypatch.setattr("nodeflow.node.asyncio.sleep", fake_sleep)
        node = Node("backoff", FailingExec(), retries=3, retry_delay=0.5, backoff_factor=2.0)
        with pytest.raises(ExecutionError):
            await node.run(InMemoryStore(), ExecutionContext())
        assert delays == [0.5, 1.0, 2.0]

    @pytest.mark.asyncio
    async def test_no_sleep_without_retry_delay(self, monkeypatch):
        delays = []

        async def fake_sleep(seconds):
            delays.append(seconds)

        monkeypatch.setattr("nodeflow.node.asyncio.sleep", fake_sleep)
        with pytest.raises(ExecutionError):
            await Node("fast", FailingExec(), retries=2).run(InMemoryStore(), ExecutionContext())
        assert delays == []

    @pytest.mark.asyncio
    async def test_exec_fallback_after_retries(self):
        class Degrading(FailingExec):
            async def exec_fallback(self, prep_result, error, context):
                return f"fallback after {error}"

            async def post(self, store, prep_result, exec_result, context):
                store.set("note", exec_result)
                return "ok"

        backend = Degrading()
        store = InMemoryStore()
        action = await Node("degrading", backend, retries=1).run(store, ExecutionContext())
        assert backend.calls == 2
        assert action.name == "ok"
        assert store.get("note") == "fallback after boom"


class TestTimeouts:
    """Per-phase time budget"""

    @pytest.mark.asyncio
    async def test_exec_timeout_is_retried(self):
        class Slow(FunctionNode):
            def __init__(self):
                super().__init__(post=lambda *args: "never")
                self.calls = 0

            async def exec(self, prep_result, context):
                self.calls += 1
                await asyncio.sleep(1)

        backend = Slow()
        node = Node("slow", backend, retries=1, timeout=0.05)
        with pytest.raises(PhaseTimeoutError) as excinfo:
            await node.run(InMemoryStore(), ExecutionContext())
        assert backend.calls == 2
        assert excinfo.value.attempts == 2
        assert excinfo.value.phase == "exec"
        assert excinfo.value.kind == "timeout"
        assert isinstance(excinfo.value, ExecutionError)

    @pytest.mark.asyncio
    async def test_post_timeout_is_not_retried(self):
        calls = []

        async def post(store, prep, result, context):
            calls.append(1)
            await asyncio.sleep(1)

        node = Node("slow_post", FunctionNode(post=post), retries=3, timeout=0.05)
        with pytest.raises(PhaseTimeoutError) as excinfo:
            await node.run(InMemoryStore(), ExecutionContext())
        assert calls == [1]
        assert excinfo.value.phase == "post"
