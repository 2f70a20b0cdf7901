"""
Run context shared by every step of one orchestration invocation.

The RunContext is a lock-guarded key/value store. Conditions read it,
handoff callbacks and concurrently running parallel branches write to it,
and it is discarded when the run ends.

Single operations (get, set, remove, update, compute) are atomic. A
check-then-act sequence spread over two calls is not; use compute() when the
new value depends on the old one.
"""

from __future__ import annotations

import threading
import time
import uuid
from collections.abc import Callable, Iterable, Mapping
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .types import AgentResult


class ContextKey(str, Enum):
    """Well-known keys written by the engine."""

    ORIGINAL_INPUT = "original_input"
    PREVIOUS_OUTPUT = "previous_output"
    CURRENT_AGENT_NAME = "current_agent_name"
    EXECUTION_PATH = "execution_path"
    START_TIME = "start_time"
    METADATA = "metadata"


def _key(key: str | ContextKey) -> str:
    return key.value if isinstance(key, ContextKey) else key


class RunContext:
    """
    Mutable, thread-safe state for one orchestration run.

    Example:
        ```python
        ctx = RunContext("What's the weather?")
        ctx.set("user_id", "u-1")
        ctx.record_execution("Planner")
        ctx.compute("visits", lambda n: n + 1, default=0)
        ```
    """

    def __init__(self, original_input: str, initial_values: Mapping[str, Any] | None = None):
        self.original_input = original_input
        self.execution_id = str(uuid.uuid4())
        self.created_at = time.time()

        self._lock = threading.RLock()
        self._values: dict[str, Any] = {_key(k): v for k, v in (initial_values or {}).items()}
        self._execution_path: list[str] = []

        self._values[ContextKey.ORIGINAL_INPUT.value] = original_input
        self._values[ContextKey.START_TIME.value] = self.created_at

    # ------------------------------------------------------------------
    # Key-value storage
    # ------------------------------------------------------------------

    def get(self, key: str | ContextKey, default: Any = None) -> Any:
        with self._lock:
            return self._values.get(_key(key), default)

    def set(self, key: str | ContextKey, value: Any) -> None:
        with self._lock:
            self._values[_key(key)] = value

    def remove(self, key: str | ContextKey) -> Any:
        """Remove a key and return its value (None when absent)."""
        with self._lock:
            return self._values.pop(_key(key), None)

    def has(self, key: str | ContextKey) -> bool:
        with self._lock:
            return _key(key) in self._values

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._values)

    def snapshot(self) -> dict[str, Any]:
        """A shallow copy of all values; later changes do not affect it."""
        with self._lock:
            return dict(self._values)

    def update(self, values: Mapping[str, Any]) -> None:
        """Write several keys in one atomic operation."""
        with self._lock:
            for k, v in values.items():
                self._values[_key(k)] = v

    def compute(self, key: str | ContextKey, fn: Callable[[Any], Any], default: Any = None) -> Any:
        """Atomically replace ``key`` with ``fn(current)`` and return the new value.

        ``fn`` runs while the lock is held, so it must not block or touch other
        contexts.
        """
        k = _key(key)
        with self._lock:
            new_value = fn(self._values.get(k, default))
            self._values[k] = new_value
            return new_value

    def __contains__(self, key: object) -> bool:
        if not isinstance(key, str):
            return False
        return self.has(key)

    def __len__(self) -> int:
        with self._lock:
            return len(self._values)

    # ------------------------------------------------------------------
    # Execution tracking
    # ------------------------------------------------------------------

    def record_execution(self, agent_name: str) -> None:
        """Append ``agent_name`` to the execution path and mark it current."""
        with self._lock:
            self._execution_path.append(agent_name)
            self._values[ContextKey.EXECUTION_PATH.value] = list(self._execution_path)
            self._values[ContextKey.CURRENT_AGENT_NAME.value] = agent_name

    def execution_path(self) -> list[str]:
        with self._lock:
            return list(self._execution_path)

    def set_previous_output(self, result: AgentResult) -> None:
        self.set(ContextKey.PREVIOUS_OUTPUT, result.output)

    def previous_output(self) -> str | None:
        return self.get(ContextKey.PREVIOUS_OUTPUT)

    # ------------------------------------------------------------------
    # Copying and merging
    # ------------------------------------------------------------------

    def copy(self, additional_values: Mapping[str, Any] | None = None) -> RunContext:
        """New context with the same input and values.

        The execution path is per-instance and is not copied.
        """
        values = self.snapshot()
        values.pop(ContextKey.EXECUTION_PATH.value, None)
        if additional_values:
            values.update({_key(k): v for k, v in additional_values.items()})
        return RunContext(self.original_input, values)

    def merge(self, other: RunContext, overwrite: bool = False) -> None:
        """Pull values and execution path entries from ``other``.

        Existing keys are kept unless ``overwrite`` is set; path entries
        already present are not repeated.
        """
        other_values = other.snapshot()
        other_path = other.execution_path()
        with self._lock:
            for k, v in other_values.items():
                if overwrite or k not in self._values:
                    self._values[k] = v
            for name in _unseen(other_path, self._execution_path):
                self._execution_path.append(name)
            self._values[ContextKey.EXECUTION_PATH.value] = list(self._execution_path)

    def __repr__(self) -> str:
        preview = self.original_input[:50] + ("..." if len(self.original_input) > 50 else "")
        return f"RunContext(execution_id={self.execution_id!r}, input={preview!r})"


def _unseen(names: Iterable[str], seen: list[str]) -> list[str]:
    out: list[str] = []
    for name in names:
        if name not in seen and name not in out:
            out.append(name)
    return out


__all__ = ["ContextKey", "RunContext"]
