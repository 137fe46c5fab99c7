"""Loader turning declarative YAML/JSON flow definitions into flow graphs.

A definition looks like::

    flow:
      name: greet
      start: hello
      terminal_actions: [done]
      nodes:
        - name: hello
          type: log
          config: {message: "Hello {user}", action: done}
      routes: []

Conditions use a small dict syntax (``{exists: key}``,
``{equals: {key: k, value: v}}``, ``{compare: {key: k, op: ">", value: 3}}``,
``{all: [...]}``, ``{any: [...]}``, ``{not: ...}``, or the strings
``always``/``never``). Actions are a name, a list of candidates,
``{name: n, params: {...}}``, ``{if: cond, then: a, else: b}`` or
``{action: a, metadata: {...}}``.
"""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as SchemaError

from .actions import Action, conditional, multiple, parameterized, simple, with_metadata
from .batch import BatchNode
from .builder import FlowBuilder
from .builtin import ConditionalNode, DelayNode, GetValueNode, LogNode, SetValueNode
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
)
from .exceptions import GraphError
from .graph import DEFAULT_MAX_STEPS, FlowGraph
from .node import NodeBackend
from .subflow import FlowNode

logger = logging.getLogger(__name__)

NodeFactory = Callable[[Dict[str, Any], "FlowLoader"], NodeBackend]


class NodeSpec(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str
    type: str
    retries: int = Field(0, ge=0)
    retry_delay: float = Field(0.0, ge=0)
    backoff_factor: float = Field(1.0, ge=0)
    timeout: Optional[float] = Field(None, gt=0)
    config: Dict[str, Any] = Field(default_factory=dict)


class RouteSpec(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    source: str = Field(..., alias="from")
    action: str
    target: str = Field(..., alias="to")
    when: Optional[Any] = None


class FlowSpec(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = "flow"
    start: str
    max_steps: Optional[int] = None
    terminal_actions: List[str] = Field(default_factory=list)
    nodes: List[NodeSpec]
    routes: List[RouteSpec] = Field(default_factory=list)


TRANSFORMS: Dict[str, Callable[[Any], Any]] = {
    "int": int,
    "float": float,
    "str": str,
    "upper": lambda value: str(value).upper(),
    "lower": lambda value: str(value).lower(),
    "len": len,
}


def parse_condition(spec: Any) -> Condition:
    """Build a condition from its dict syntax"""
    if spec is True or spec == "always":
        return Always()
    if spec is False or spec == "never":
        return Never()
    if not isinstance(spec, dict) or len(spec) != 1:
        raise ValueError(f"Invalid condition: {spec!r}")

    kind, body = next(iter(spec.items()))
    if kind == "exists":
        return KeyExists(str(body))
    if kind == "equals":
        return KeyEquals(body["key"], body["value"])
    if kind == "compare":
        try:
            op = ComparisonOperator(body["op"])
        except ValueError as exc:
            raise ValueError(f"Unknown comparison operator: {body['op']!r}") from exc
        return NumericCompare(body["key"], op, float(body["value"]))
    if kind == "all":
        return AllOf(tuple(parse_condition(item) for item in body))
    if kind == "any":
        return AnyOf(tuple(parse_condition(item) for item in body))
    if kind == "not":
        return Not(parse_condition(body))
    raise ValueError(f"Unknown condition type: {kind}")


def parse_action(spec: Any) -> Action:
    """Build an action from its dict syntax"""
    if isinstance(spec, str):
        return simple(spec)
    if isinstance(spec, list):
        return multiple(parse_action(item) for item in spec)
    if isinstance(spec, dict):
        if "if" in spec:
            return conditional(
                parse_condition(spec["if"]),
                parse_action(spec["then"]),
                parse_action(spec["else"]),
            )
        if "metadata" in spec:
            return with_metadata(parse_action(spec["action"]), spec["metadata"])
        if "name" in spec:
            params = {str(k): v for k, v in spec.get("params", {}).items()}
            return parameterized(spec["name"], params)
    raise ValueError(f"Invalid action: {spec!r}")


def _log_node(config: Dict[str, Any], loader: "FlowLoader") -> NodeBackend:
    return LogNode(
        config["message"],
        level=config.get("level", "info"),
        action=parse_action(config.get("action", "default")),
    )


def _set_node(config: Dict[str, Any], loader: "FlowLoader") -> NodeBackend:
    return SetValueNode(config["values"], action=parse_action(config.get("action", "default")))


def _get_node(config: Dict[str, Any], loader: "FlowLoader") -> NodeBackend:
    transform = config.get("transform")
    if transform is not None and transform not in TRANSFORMS:
        raise ValueError(f"Unknown transform: {transform}")
    options: Dict[str, Any] = {}
    if "default" in config:
        options["default"] = config["default"]
    return GetValueNode(
        config["key"],
        config.get("output_key", config["key"]),
        transform=TRANSFORMS.get(transform) if transform else None,
        action=parse_action(config.get("action", "default")),
        **options,
    )


def _conditional_node(config: Dict[str, Any], loader: "FlowLoader") -> NodeBackend:
    return ConditionalNode(
        parse_condition(config["condition"]),
        parse_action(config["if_true"]),
        parse_action(config["if_false"]),
    )


def _delay_node(config: Dict[str, Any], loader: "FlowLoader") -> NodeBackend:
    return DelayNode(float(config.get("seconds", 0)), action=parse_action(config.get("action", "default")))


def _flow_node(config: Dict[str, Any], loader: "FlowLoader") -> NodeBackend:
    inner = loader.from_dict(config["flow"])
    return FlowNode(inner, action_map=config.get("action_map"), result_key=config.get("result_key"))


def _batch_node(config: Dict[str, Any], loader: "FlowLoader") -> NodeBackend:
    return BatchNode(
        loader.from_dict(config["flow"]),
        config["items_key"],
        results_key=config.get("results_key"),
        action=parse_action(config.get("action", "batch_complete")),
        parallel=bool(config.get("parallel", False)),
    )


class FlowLoader:
    """Parses flow documents and builds them through ``FlowBuilder``"""

    def __init__(self, default_max_steps: int = DEFAULT_MAX_STEPS) -> None:
        self.default_max_steps = default_max_steps
        self._factories: Dict[str, NodeFactory] = {
            "log": _log_node,
            "set": _set_node,
            "get": _get_node,
            "conditional": _conditional_node,
            "delay": _delay_node,
            "flow": _flow_node,
            "batch": _batch_node,
        }

    def register(self, node_type: str, factory: NodeFactory) -> None:
        self._factories[node_type] = factory

    @property
    def node_types(self) -> List[str]:
        return sorted(self._factories)

    def load(self, path: Union[str, Path], max_steps: Optional[int] = None) -> FlowGraph:
        path = Path(path)
        fmt = "json" if path.suffix.lower() == ".json" else "yaml"
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise GraphError([f"cannot read {path}: {exc}"]) from exc
        return self.loads(text, fmt=fmt, max_steps=max_steps)

    def loads(self, data: str, fmt: str = "yaml", max_steps: Optional[int] = None) -> FlowGraph:
        try:
            if fmt == "yaml":
                payload = yaml.safe_load(data)
            elif fmt == "json":
                payload = json.loads(data)
            else:
                raise GraphError([f"unsupported flow format: {fmt}"])
        except (yaml.YAMLError, json.JSONDecodeError) as exc:
            raise GraphError([f"malformed {fmt} document: {exc}"]) from exc
        if not isinstance(payload, dict):
            raise GraphError(["flow document must be a mapping"])
        return self.from_dict(payload, max_steps=max_steps)

    def from_dict(self, payload: Dict[str, Any], max_steps: Optional[int] = None) -> FlowGraph:
        if "flow" in payload:
            payload = payload["flow"]
        try:
            spec = FlowSpec.model_validate(payload)
        except SchemaError as exc:
            problems = [
                f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
                for error in exc.errors()
            ]
            raise GraphError(problems) from exc

        builder = FlowBuilder()
        problems: List[str] = []
        for node_spec in spec.nodes:
            factory = self._factories.get(node_spec.type)
            if factory is None:
                problems.append(f"node '{node_spec.name}': unknown node type '{node_spec.type}'")
                continue
            try:
                backend = factory(node_spec.config, self)
            except GraphError as exc:
                problems.extend(f"node '{node_spec.name}': {problem}" for problem in exc.problems)
                continue
            except (KeyError, TypeError, ValueError) as exc:
                problems.append(f"node '{node_spec.name}': invalid config ({exc!r})")
                continue
            builder.node(
                node_spec.name,
                backend,
                retries=node_spec.retries,
                retry_delay=node_spec.retry_delay,
                backoff_factor=node_spec.backoff_factor,
                timeout=node_spec.timeout,
            )

        for route in spec.routes:
            if route.when is None:
                builder.route(route.source, route.action, route.target)
                continue
            try:
                condition = parse_condition(route.when)
            except (KeyError, TypeError, ValueError) as exc:
                problems.append(f"route {route.source} --{route.action}--> {route.target}: {exc}")
                continue
            builder.conditional_route(route.source, route.action, route.target, condition)

        builder.start_node(spec.start)
        for action in spec.terminal_actions:
            builder.terminal_action(action)
        if max_steps is None:
            max_steps = spec.max_steps if spec.max_steps is not None else self.default_max_steps
        builder.max_steps(max_steps)

        problems.extend(builder.validate())
        if problems:
            raise GraphError(problems)
        graph = builder.build()
        logger.info("Loaded flow %s", spec.name, extra={"nodes": len(graph.nodes)})
        return graph
