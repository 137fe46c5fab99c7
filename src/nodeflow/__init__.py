"""
nodeflow - graph-driven node workflow engine
"""

__version__ = "1.0.0"

from .actions import (
    Action,
    ConditionalAction,
    MetadataAction,
    MultipleAction,
    ParameterizedAction,
    SimpleAction,
    as_action,
    conditional,
    multiple,
    parameterized,
    simple,
    with_metadata,
)
from .batch import BatchNode, BatchOutcome, BatchReport, BatchRunner
from .builder import FlowBuilder
from .conditions import (
    AllOf,
    Always,
    AnyOf,
    ComparisonOperator,
    Condition,
    KeyEquals,
    KeyExists,
    Never,
    Not,
    NumericCompare,
    Predicate,
    RouteCondition,
)
from .context import ExecutionContext
from .engine import FlowEngine, FlowResult
from .exceptions import (
    ExecutionError,
    FlowCancelledError,
    FlowEngineError,
    FlowRunError,
    GraphError,
    PhaseTimeoutError,
    RoutingError,
    StepLimitExceeded,
    StorageError,
    SubflowError,
    ValidationError,
)
from .graph import DEFAULT_MAX_STEPS, FlowGraph, Route
from .loader import FlowLoader
from .node import FunctionNode, Node, NodeBackend
from .store import InMemoryStore, JsonFileStore, SharedStore, SQLStore
from .subflow import FlowNode

__all__ = [
    "Action",
    "SimpleAction",
    "ParameterizedAction",
    "ConditionalAction",
    "MultipleAction",
    "MetadataAction",
    "simple",
    "parameterized",
    "conditional",
    "multiple",
    "with_metadata",
    "as_action",
    "Condition",
    "RouteCondition",
    "ComparisonOperator",
    "Always",
    "Never",
    "KeyExists",
    "KeyEquals",
    "NumericCompare",
    "AllOf",
    "AnyOf",
    "Not",
    "Predicate",
    "SharedStore",
    "InMemoryStore",
    "JsonFileStore",
    "SQLStore",
    "ExecutionContext",
    "NodeBackend",
    "Node",
    "FunctionNode",
    "Route",
    "FlowGraph",
    "DEFAULT_MAX_STEPS",
    "FlowBuilder",
    "FlowEngine",
    "FlowResult",
    "FlowNode",
    "BatchRunner",
    "BatchReport",
    "BatchOutcome",
    "BatchNode",
    "FlowLoader",
    "FlowEngineError",
    "GraphError",
    "FlowRunError",
    "ValidationError",
    "ExecutionError",
    "PhaseTimeoutError",
    "StorageError",
    "RoutingError",
    "StepLimitExceeded",
    "FlowCancelledError",
    "SubflowError",
]
