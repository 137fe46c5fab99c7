"""
Per-run execution context
"""
from dataclasses import dataclass, field
from typing import Dict, Optional
from uuid import uuid4


@dataclass
class ExecutionContext:
    """Metadata for one flow run, passed by reference to every phase call

    Only the engine advances ``step_count``; cancellation is requested from
    outside through ``cancel()`` and is observed by the engine once per step.
    """
    execution_id: str = field(default_factory=lambda: uuid4().hex)
    step_count: int = 0
    run_metadata: Dict[str, str] = field(default_factory=dict)
    parent: Optional['ExecutionContext'] = None
    depth: int = 0
    current_node: Optional[str] = None
    attempt: int = 0
    _cancelled: bool = field(default=False, repr=False)

    @property
    def cancelled(self) -> bool:
        """Whether this run, or any run enclosing it, was cancelled"""
        if self._cancelled:
            return True
        return self.parent is not None and self.parent.cancelled

    def cancel(self):
        """Request cooperative cancellation before the next step"""
        self._cancelled = True

    def get_metadata(self, key: str, default: Optional[str] = None) -> Optional[str]:
        """Read a metadata value, falling back to enclosing runs"""
        if key in self.run_metadata:
            return self.run_metadata[key]
        elif self.parent:
            return self.parent.get_metadata(key, default)
        return default

    def set_metadata(self, key: str, value: str):
        self.run_metadata[key] = value

    def child(self) -> 'ExecutionContext':
        """Create the context for a nested run"""
        return ExecutionContext(
            execution_id=f"{self.execution_id}.{self.depth + 1}.{self.step_count}",
            run_metadata=dict(self.run_metadata),
            parent=self,
            depth=self.depth + 1,
        )
