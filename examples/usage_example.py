"""
nodeflow usage example
"""
import asyncio
import logging
from pathlib import Path

from nodeflow import (
    ExecutionContext,
    FlowBuilder,
    FlowEngine,
    FunctionNode,
    InMemoryStore,
    NumericCompare,
    conditional,
)
from nodeflow.builtin import LogNode, SetValueNode
from nodeflow.loader import FlowLoader


logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)


def build_review_flow():
    """Score a document and loop on revisions until it passes"""
    def score(store, prep, result, context):
        revision = store.get("revision", 0) + 1
        store.set("revision", revision)
        store.set("score", 60 + revision * 15)
        return conditional(NumericCompare("score", ">=", 90), "approved", "revise")

    review = (
        FlowBuilder()
        .node("score", FunctionNode(post=score))
        .node("report", LogNode("approved after {revision} revisions", action="done"))
        .route("score", "approved", "report")
        .route("score", "revise", "score")
        .start_node("score")
        .terminal_action("done")
        .max_steps(10)
        .build()
    )

    return (
        FlowBuilder()
        .node("setup", SetValueNode({"author": "ada"}, action="review"))
        .subflow("review", review, action_map={"done": "published"}, result_key="review_summary")
        .route("setup", "review", "review")
        .start_node("setup")
        .terminal_action("published")
        .build()
    )


async def example_builder_flow():
    print("\n=== Builder flow ===")
    graph = build_review_flow()
    store = InMemoryStore()
    result = await FlowEngine().run(graph, store, ExecutionContext())
    print(f"Final action: {result.action_name}, path: {result.path}")
    print(f"Review summary: {store.get('review_summary')}")
    print(graph.to_dot("publish"))


async def example_declarative_flow():
    print("\n=== Declarative flow ===")
    graph = FlowLoader().load(Path(__file__).with_name("order_flow.yaml"))
    for total in (40, 250):
        store = InMemoryStore({"total": total})
        result = await FlowEngine().run(graph, store)
        print(f"total={total}: tier={store.get('tier')} via {result.path}")


async def main():
    await example_builder_flow()
    await example_declarative_flow()


if __name__ == "__main__":
    asyncio.run(main())
