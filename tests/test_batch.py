"""
Batch runner tests
"""
import pytest

from conftest import returning
from nodeflow import (
    BatchNode,
    BatchRunner,
    ExecutionContext,
    FlowBuilder,
    FlowCancelledError,
    FlowEngine,
    FunctionNode,
    InMemoryStore,
    ValidationError,
)
from nodeflow.loader import FlowLoader


def classify(store, prep, result, context):
    amount = store.get("amount")
    if amount is None:
        raise KeyError("amount")
    store.set("size", "large" if amount > 100 else "small")
    return "large" if amount > 100 else "small"


@pytest.fixture
def classify_graph():
    return (
        FlowBuilder()
        .node("classify", FunctionNode(post=classify))
        .start_node("classify")
        .terminal_action("large")
        .terminal_action("small")
        .build()
    )


class TestBatchRunner:
    """One graph over many stores"""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("parallel", [False, True])
    async def test_results_grouped_by_final_action(self, classify_graph, parallel):
        stores = [InMemoryStore({"amount": amount}) for amount in (500, 20, 150)]
        stores.append(InMemoryStore())
        report = await BatchRunner(classify_graph, parallel=parallel).run(stores)

        assert report.grouped() == {"large": [0, 2], "small": [1], "error": [3]}
        assert report.success_count == 3
        assert report.error_count == 1
        assert [store.get("size") for store in stores] == ["large", "small", "large", None]

        failed = report.outcomes[3]
        assert isinstance(failed.error, ValidationError)
        assert failed.error.node == "classify"
        assert failed.to_dict()["error"]["kind"] == "validation"

    @pytest.mark.asyncio
    async def test_empty_batch(self, classify_graph):
        report = await BatchRunner(classify_graph).run([])
        assert report.outcomes == []
        assert report.grouped() == {}

    @pytest.mark.asyncio
    async def test_items_run_under_child_contexts(self):
        seen = []

        def record(store, prep, result, context):
            seen.append((context.depth, context.get_metadata("batch_index"), context.execution_id))
            return "done"

        graph = FlowBuilder().node("a", FunctionNode(post=record)).start_node("a").terminal_action("done").build()
        parent = ExecutionContext(execution_id="run")
        await BatchRunner(graph).run([InMemoryStore(), InMemoryStore()], parent)

        assert [(depth, index) for depth, index, _ in seen] == [(1, "0"), (1, "1")]
        assert len({execution_id for _, _, execution_id in seen}) == 2

    @pytest.mark.asyncio
    async def test_cancellation_stops_remaining_items(self):
        context = ExecutionContext()
        visited = []

        def cancel_after_first(store, prep, result, context):
            visited.append(store.get("id"))
            context.parent.cancel()
            return "done"

        graph = (
            FlowBuilder()
            .node("a", FunctionNode(post=cancel_after_first))
            .start_node("a")
            .terminal_action("done")
            .build()
        )
        stores = [InMemoryStore({"id": i}) for i in range(3)]
        with pytest.raises(FlowCancelledError):
            await BatchRunner(graph).run(stores, context)
        assert visited == [0]

    @pytest.mark.asyncio
    async def test_dispatch_runs_follow_up_flow_per_group(self, classify_graph):
        def approve(store, prep, result, context):
            store.set("approved", True)
            return "done"

        review = FlowBuilder().node("approve", FunctionNode(post=approve)).start_node("approve").terminal_action("done").build()
        stores = [InMemoryStore({"amount": amount}) for amount in (500, 20, 150)]
        runner = BatchRunner(classify_graph)
        report = await runner.run(stores)
        followups = await runner.dispatch(report, stores, {"large": review})

        assert list(followups) == ["large"]
        assert [outcome.index for outcome in followups["large"].outcomes] == [0, 2]
        assert [store.get("approved") for store in stores] == [True, None, True]


class TestBatchNode:
    """Batch processing as a single node of an outer graph"""

    @pytest.mark.asyncio
    async def test_batch_node_writes_report_and_returns_action(self, classify_graph):
        outer = (
            FlowBuilder()
            .node("batch", BatchNode(classify_graph, "orders", results_key="report"))
            .node("notify", returning("done"))
            .route("batch", "batch_complete", "notify")
            .start_node("batch")
            .terminal_action("done")
            .build()
        )
        store = InMemoryStore({"orders": [{"amount": 10}, {"amount": 900}, {}]})
        result = await FlowEngine().run(outer, store)

        assert result.path == ["batch", "notify"]
        report = store.get("report")
        assert report["groups"] == {"small": [0], "large": [1], "error": [2]}
        assert report["stores"][1] == {"amount": 900, "size": "large"}
        assert store.get("orders") == [{"amount": 10}, {"amount": 900}, {}]

    @pytest.mark.asyncio
    async def test_items_must_be_a_list_of_mappings(self, classify_graph):
        outer = (
            FlowBuilder()
            .node("batch", BatchNode(classify_graph, "orders"))
            .start_node("batch")
            .terminal_action("batch_complete")
            .build()
        )
        with pytest.raises(ValidationError) as excinfo:
            await FlowEngine().run(outer, InMemoryStore({"orders": "nope"}))
        assert excinfo.value.node == "batch"


@pytest.mark.asyncio
async def test_batch_node_from_definition():
    definition = {
        "start": "each",
        "terminal_actions": ["batch_complete"],
        "nodes": [
            {
                "name": "each",
                "type": "batch",
                "config": {
                    "items_key": "users",
                    "results_key": "greetings",
                    "flow": {
                        "start": "greet",
                        "terminal_actions": ["done"],
                        "nodes": [
                            {
                                "name": "greet",
                                "type": "get",
                                "config": {"key": "name", "output_key": "shout", "transform": "upper", "action": "done"},
                            }
                        ],
                    },
                },
            }
        ],
    }
    graph = FlowLoader().from_dict(definition)
    store = InMemoryStore({"users": [{"name": "ada"}, {"name": "bo"}]})
    result = await FlowEngine().run(graph, store)

    assert result.action_name == "batch_complete"
    greetings = store.get("greetings")
    assert greetings["groups"] == {"done": [0, 1]}
    assert [item["shout"] for item in greetings["stores"]] == ["ADA", "BO"]
