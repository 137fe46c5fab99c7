"""Run metrics and lifecycle events for the flow engine.

Durations are aggregated per metric and label set: running count, total,
min and max, plus a bounded window of the most recent samples, so a
long-lived engine does not grow with the number of visits it has made.
"""
from __future__ import annotations

import logging
import time
from collections import deque
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, Iterator, List, Optional, Tuple

from .context import ExecutionContext

DEFAULT_WINDOW = 100

LabelKey = Tuple[Tuple[str, str], ...]


def _label_key(labels: Optional[Dict[str, str]]) -> LabelKey:
    return tuple(sorted((labels or {}).items()))


@dataclass
class DurationStats:
    """Aggregated timings for one node or one flow."""

    window: int = DEFAULT_WINDOW
    count: int = 0
    total: float = 0.0
    minimum: Optional[float] = None
    maximum: float = 0.0
    recent: Deque[float] = field(init=False)

    def __post_init__(self) -> None:
        self.recent = deque(maxlen=self.window)

    def add(self, seconds: float) -> None:
        self.count += 1
        self.total += seconds
        self.maximum = max(self.maximum, seconds)
        self.minimum = seconds if self.minimum is None else min(self.minimum, seconds)
        self.recent.append(seconds)

    @property
    def mean(self) -> float:
        return self.total / self.count if self.count else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "count": self.count,
            "total": self.total,
            "mean": self.mean,
            "min": self.minimum,
            "max": self.maximum,
        }


@dataclass
class Timer:
    elapsed: float = 0.0


class MetricsRecorder:
    """Counters and duration statistics keyed by metric name and labels."""

    def __init__(self, window: int = DEFAULT_WINDOW) -> None:
        if window <= 0:
            raise ValueError("window must be positive")
        self.window = window
        self._counters: Dict[str, Dict[LabelKey, float]] = {}
        self._durations: Dict[str, Dict[LabelKey, DurationStats]] = {}

    def inc(self, name: str, labels: Optional[Dict[str, str]] = None, value: float = 1) -> None:
        series = self._counters.setdefault(name, {})
        key = _label_key(labels)
        series[key] = series.get(key, 0.0) + value

    def observe(self, name: str, seconds: float, labels: Optional[Dict[str, str]] = None) -> None:
        series = self._durations.setdefault(name, {})
        key = _label_key(labels)
        if key not in series:
            series[key] = DurationStats(window=self.window)
        series[key].add(seconds)

    @contextmanager
    def timed(self, name: str, labels: Optional[Dict[str, str]] = None) -> Iterator[Timer]:
        """Observe the wall time of the block, even when it raises."""
        timer = Timer()
        start = time.perf_counter()
        try:
            yield timer
        finally:
            timer.elapsed = time.perf_counter() - start
            self.observe(name, timer.elapsed, labels)

    def get_counter(self, name: str, labels: Optional[Dict[str, str]] = None) -> float:
        return self._counters.get(name, {}).get(_label_key(labels), 0.0)

    def get_stats(self, name: str, labels: Optional[Dict[str, str]] = None) -> Optional[DurationStats]:
        return self._durations.get(name, {}).get(_label_key(labels))

    def get_samples(self, name: str, labels: Optional[Dict[str, str]] = None) -> List[float]:
        stats = self.get_stats(name, labels)
        return list(stats.recent) if stats else []

    def node_report(self) -> Dict[str, Dict[str, Any]]:
        """Per-node duration summary"""
        series = self._durations.get("node_duration_seconds", {})
        return {dict(key).get("node", ""): stats.to_dict() for key, stats in series.items()}

    def reset(self) -> None:
        self._counters.clear()
        self._durations.clear()


class EventLogger:
    """Structured run events tagged with the run's id and nesting depth."""

    def __init__(self, logger_name: str = "nodeflow.events") -> None:
        self.logger = logging.getLogger(logger_name)

    def log(self, event: str, context: ExecutionContext, level: int = logging.INFO, **payload: Any) -> None:
        if not self.logger.isEnabledFor(level):
            return
        self.logger.log(
            level,
            event,
            extra={"execution_id": context.execution_id, "depth": context.depth, **payload},
        )
