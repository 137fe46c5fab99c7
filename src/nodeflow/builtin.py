"""Built-in node backends covering common store and control operations."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Dict, Mapping, Optional

from .actions import Action, ActionLike, as_action
from .conditions import Condition
from .context import ExecutionContext
from .exceptions import ValidationError
from .node import NodeBackend
from .store import SharedStore

LOGGER = logging.getLogger("nodeflow.builtin")

_MISSING = object()

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


class LogNode(NodeBackend):
    """Log a message rendered from store values, e.g. ``"total={total}"``."""

    def __init__(self, message: str, level: str = "info", action: ActionLike = "default") -> None:
        if level not in _LEVELS:
            raise ValueError(f"Unknown log level: {level}")
        self.message = message
        self.level = _LEVELS[level]
        self.action = as_action(action)

    async def prep(self, store: SharedStore, context: ExecutionContext) -> str:
        try:
            return self.message.format_map(store.to_dict())
        except KeyError as exc:
            raise ValidationError(f"Message refers to missing key {exc}") from exc

    async def exec(self, prep_result: str, context: ExecutionContext) -> str:
        LOGGER.log(self.level, prep_result, extra={"execution_id": context.execution_id})
        return prep_result

    async def post(self, store, prep_result, exec_result, context) -> Action:
        return self.action


class SetValueNode(NodeBackend):
    """Write fixed values into the store."""

    def __init__(self, values: Mapping[str, Any], action: ActionLike = "default") -> None:
        self.values = dict(values)
        self.action = as_action(action)

    async def prep(self, store, context) -> None:
        return None

    async def exec(self, prep_result, context) -> Dict[str, Any]:
        return dict(self.values)

    async def post(self, store, prep_result, exec_result: Dict[str, Any], context) -> Action:
        for key, value in exec_result.items():
            store.set(key, value)
        return self.action


class GetValueNode(NodeBackend):
    """Copy a store value to ``output_key``, optionally transforming it.

    Fails validation when the key is missing and no default was given.
    """

    def __init__(
        self,
        key: str,
        output_key: str,
        transform: Optional[Callable[[Any], Any]] = None,
        default: Any = _MISSING,
        action: ActionLike = "default",
    ) -> None:
        self.key = key
        self.output_key = output_key
        self.transform = transform
        self.default = default
        self.action = as_action(action)

    async def prep(self, store: SharedStore, context: ExecutionContext) -> Any:
        if store.contains(self.key):
            return store.get(self.key)
        if self.default is _MISSING:
            raise ValidationError(f"Required key '{self.key}' is missing from the store")
        return self.default

    async def exec(self, prep_result: Any, context: ExecutionContext) -> Any:
        if self.transform is None:
            return prep_result
        return self.transform(prep_result)

    async def post(self, store, prep_result, exec_result, context) -> Action:
        store.set(self.output_key, exec_result)
        return self.action


class ConditionalNode(NodeBackend):
    """Choose between two actions from a condition on the store."""

    def __init__(self, condition: Condition, if_true: ActionLike, if_false: ActionLike) -> None:
        self.condition = condition
        self.if_true = as_action(if_true)
        self.if_false = as_action(if_false)

    async def prep(self, store: SharedStore, context: ExecutionContext) -> bool:
        return self.condition.evaluate(store)

    async def exec(self, prep_result: bool, context: ExecutionContext) -> bool:
        return prep_result

    async def post(self, store, prep_result, exec_result: bool, context) -> Action:
        return self.if_true if exec_result else self.if_false


class DelayNode(NodeBackend):
    """Sleep for a fixed number of seconds."""

    def __init__(self, seconds: float, action: ActionLike = "default") -> None:
        if seconds < 0:
            raise ValueError("Delay must be non-negative")
        self.seconds = seconds
        self.action = as_action(action)

    async def prep(self, store, context) -> None:
        return None

    async def exec(self, prep_result, context) -> float:
        await asyncio.sleep(self.seconds)
        return self.seconds

    async def post(self, store, prep_result, exec_result, context) -> Action:
        return self.action
