"""Nodes and the three-phase backend contract.

A backend implements ``prep`` (reads the store), ``exec`` (pure computation,
no store access, retried on failure) and ``post`` (writes the store and
returns the routing action). ``Node`` wraps a backend with its name, retry
policy and per-phase timeout, and drives one visit through the phases.
"""
from __future__ import annotations

import asyncio
import inspect
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from .actions import Action, as_action
from .context import ExecutionContext
from .exceptions import (
    ExecutionError,
    FlowEngineError,
    FlowRunError,
    PhaseTimeoutError,
    ValidationError,
)
from .store import SharedStore

LOGGER = logging.getLogger("nodeflow.node")


class NodeBackend(ABC):
    """Capability implemented by every node type."""

    @abstractmethod
    async def prep(self, store: SharedStore, context: ExecutionContext) -> Any:
        """Read and validate what the node needs from the store."""

    @abstractmethod
    async def exec(self, prep_result: Any, context: ExecutionContext) -> Any:
        """Run the computation. Must not touch the store."""

    @abstractmethod
    async def post(
        self,
        store: SharedStore,
        prep_result: Any,
        exec_result: Any,
        context: ExecutionContext,
    ) -> Action:
        """Apply results to the store and return the routing action."""

    async def exec_fallback(
        self, prep_result: Any, error: Exception, context: ExecutionContext
    ) -> Any:
        """Called once exec has failed on every attempt; re-raises by default."""
        raise error


@dataclass
class Node:
    """A named backend plus its retry and timeout configuration."""

    name: str
    backend: NodeBackend
    retries: int = 0
    retry_delay: float = 0.0
    backoff_factor: float = 1.0
    timeout: Optional[float] = None

    def __post_init__(self) -> None:
        if self.retries < 0:
            raise ValueError(f"Node {self.name}: retries must be non-negative")
        if self.timeout is not None and self.timeout <= 0:
            raise ValueError(f"Node {self.name}: timeout must be positive")

    async def run(self, store: SharedStore, context: ExecutionContext) -> Action:
        step = context.step_count
        context.current_node = self.name
        context.attempt = 0

        prep_result = await self._run_phase(
            "prep", lambda: self.backend.prep(store, context), step
        )
        exec_result = await self._exec_with_retries(prep_result, context, step)
        result = await self._run_phase(
            "post",
            lambda: self.backend.post(store, prep_result, exec_result, context),
            step,
        )
        try:
            return as_action(result)
        except TypeError as exc:
            raise ValidationError(
                f"post returned {type(result).__name__}, expected an Action",
                node=self.name,
                step=step,
            ) from exc

    async def _invoke(self, phase: str, call: Callable[[], Awaitable[Any]], step: int) -> Any:
        if self.timeout is None:
            return await call()
        try:
            return await asyncio.wait_for(call(), timeout=self.timeout)
        except asyncio.TimeoutError as exc:
            raise PhaseTimeoutError(phase, self.timeout, node=self.name, step=step) from exc

    async def _run_phase(self, phase: str, call: Callable[[], Awaitable[Any]], step: int) -> Any:
        try:
            return await self._invoke(phase, call, step)
        except FlowRunError as exc:
            raise exc.locate(self.name, step)
        except FlowEngineError:
            raise
        except Exception as exc:
            raise ValidationError(f"{phase} failed: {exc}", node=self.name, step=step) from exc

    async def _exec_with_retries(
        self, prep_result: Any, context: ExecutionContext, step: int
    ) -> Any:
        attempts = self.retries + 1
        last_error: Optional[Exception] = None
        for attempt in range(1, attempts + 1):
            context.attempt = attempt
            try:
                return await self._invoke(
                    "exec", lambda: self.backend.exec(prep_result, context), step
                )
            except Exception as exc:
                last_error = exc
                LOGGER.warning(
                    "exec failed",
                    extra={"node": self.name, "attempt": attempt, "error": str(exc)},
                )
                if attempt < attempts:
                    delay = self.retry_delay * (self.backoff_factor ** (attempt - 1))
                    if delay > 0:
                        await asyncio.sleep(delay)

        assert last_error is not None
        try:
            return await self.backend.exec_fallback(prep_result, last_error, context)
        except PhaseTimeoutError as exc:
            exc.attempts = attempts
            raise exc.locate(self.name, step)
        except FlowRunError as exc:
            raise exc.locate(self.name, step)
        except Exception as exc:
            raise ExecutionError(
                f"exec failed after {attempts} attempt(s): {exc}",
                node=self.name,
                step=step,
                attempts=attempts,
            ) from exc


class FunctionNode(NodeBackend):
    """Backend assembled from plain or async callables.

    ``prep(store, context)`` defaults to returning ``None`` and
    ``exec(prep_result, context)`` defaults to passing ``prep_result`` through.
    """

    def __init__(
        self,
        post: Callable[..., Any],
        prep: Optional[Callable[..., Any]] = None,
        exec: Optional[Callable[..., Any]] = None,
    ) -> None:
        self._prep = prep
        self._exec = exec
        self._post = post

    @staticmethod
    async def _call(func: Callable[..., Any], *args: Any) -> Any:
        result = func(*args)
        if inspect.isawaitable(result):
            result = await result
        return result

    async def prep(self, store: SharedStore, context: ExecutionContext) -> Any:
        if self._prep is None:
            return None
        return await self._call(self._prep, store, context)

    async def exec(self, prep_result: Any, context: ExecutionContext) -> Any:
        if self._exec is None:
            return prep_result
        return await self._call(self._exec, prep_result, context)

    async def post(
        self,
        store: SharedStore,
        prep_result: Any,
        exec_result: Any,
        context: ExecutionContext,
    ) -> Action:
        return await self._call(self._post, store, prep_result, exec_result, context)
