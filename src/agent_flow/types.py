"""
Core types for agent-flow.

This module defines:
- The Runnable protocol every composable unit satisfies
- AgentResult / TokenUsage returned by a run
- AgentEvent and AgentEventType emitted by streams
- RoutingDecision and AgentDescriptor used by scored selection
"""

from __future__ import annotations

import json
import time
from collections.abc import AsyncIterator
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Protocol, runtime_checkable


@dataclass
class TokenUsage:
    """Token usage statistics reported by a unit."""

    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0

    def __add__(self, other: TokenUsage) -> TokenUsage:
        return TokenUsage(
            input_tokens=self.input_tokens + other.input_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "total_tokens": self.total_tokens,
        }


@dataclass
class AgentResult:
    """Outcome of one run of a unit."""

    output: str = ""
    tool_calls: list[Any] = field(default_factory=list)
    tool_results: list[Any] = field(default_factory=list)
    iteration_count: int = 1
    duration: float = 0.0  # seconds
    token_usage: TokenUsage | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def merged_metadata(self, entries: dict[str, Any]) -> AgentResult:
        """Return a copy whose metadata is merged with ``entries``."""
        return replace(self, metadata={**self.metadata, **entries})

    def with_metadata(self, **entries: Any) -> AgentResult:
        """Keyword form of merged_metadata."""
        return self.merged_metadata(entries)

    def to_dict(self) -> dict[str, Any]:
        return {
            "output": self.output,
            "tool_calls": list(self.tool_calls),
            "tool_results": list(self.tool_results),
            "iteration_count": self.iteration_count,
            "duration": self.duration,
            "token_usage": self.token_usage.to_dict() if self.token_usage else None,
            "metadata": dict(self.metadata),
        }


class AgentEventType(str, Enum):
    """Types of events emitted while a unit streams."""

    # Lifecycle
    STARTED = "started"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    # Output
    OUTPUT_TOKEN = "output_token"
    OUTPUT_CHUNK = "output_chunk"

    # Tools
    TOOL_CALL_STARTED = "tool_call_started"
    TOOL_CALL_COMPLETED = "tool_call_completed"

    # Steps
    ITERATION_STARTED = "iteration_started"
    ITERATION_COMPLETED = "iteration_completed"

    # Handoffs
    HANDOFF_STARTED = "handoff_started"
    HANDOFF_COMPLETED = "handoff_completed"
    HANDOFF_SKIPPED = "handoff_skipped"


_TERMINAL_EVENTS = frozenset({AgentEventType.COMPLETED, AgentEventType.FAILED, AgentEventType.CANCELLED})


@dataclass
class AgentEvent:
    """
    A streaming event.

    Event types and their data:
    - STARTED: dict with the input
    - COMPLETED: AgentResult
    - FAILED: dict with error message and type (the exception is on ``error``)
    - CANCELLED: None
    - OUTPUT_TOKEN / OUTPUT_CHUNK: str
    - ITERATION_STARTED / ITERATION_COMPLETED: dict with the 1-based step number
    - HANDOFF_*: dict with source and target names
    """

    type: AgentEventType
    data: Any = None
    timestamp: float = field(default_factory=time.time)
    error: BaseException | None = field(default=None, repr=False, compare=False)

    @classmethod
    def started(cls, input: str) -> AgentEvent:
        return cls(AgentEventType.STARTED, {"input": input})

    @classmethod
    def completed(cls, result: AgentResult) -> AgentEvent:
        return cls(AgentEventType.COMPLETED, result)

    @classmethod
    def failed(cls, error: BaseException) -> AgentEvent:
        return cls(
            AgentEventType.FAILED,
            {"error": str(error), "error_type": type(error).__name__},
            error=error,
        )

    @classmethod
    def cancelled(cls) -> AgentEvent:
        return cls(AgentEventType.CANCELLED)

    @classmethod
    def token(cls, text: str) -> AgentEvent:
        return cls(AgentEventType.OUTPUT_TOKEN, text)

    @classmethod
    def iteration_started(cls, number: int) -> AgentEvent:
        return cls(AgentEventType.ITERATION_STARTED, {"number": number})

    @classmethod
    def iteration_completed(cls, number: int) -> AgentEvent:
        return cls(AgentEventType.ITERATION_COMPLETED, {"number": number})

    @classmethod
    def handoff(cls, type: AgentEventType, source: str, target: str) -> AgentEvent:
        return cls(type, {"source": source, "target": target})

    @property
    def is_terminal(self) -> bool:
        return self.type in _TERMINAL_EVENTS

    @property
    def result(self) -> AgentResult | None:
        """The result carried by a COMPLETED event."""
        return self.data if isinstance(self.data, AgentResult) else None

    def to_sse(self) -> str:
        """Format as a Server-Sent Event string."""
        event_name = self.type.value

        if isinstance(self.data, str):
            data_str = self.data
        elif hasattr(self.data, "to_dict"):
            data_str = json.dumps(self.data.to_dict(), default=str)
        elif isinstance(self.data, (dict, list)):
            data_str = json.dumps(self.data, default=str)
        elif self.data is None:
            data_str = ""
        else:
            data_str = str(self.data)

        return f"event: {event_name}\ndata: {data_str}\n\n"


@runtime_checkable
class Runnable(Protocol):
    """
    Anything that can be run, streamed and cancelled.

    Composites (Router, Parallel, Orchestration) satisfy this protocol
    themselves, so they nest freely.
    """

    name: str

    async def run(self, input: str) -> AgentResult: ...

    def stream(self, input: str) -> AsyncIterator[AgentEvent]: ...

    async def cancel(self) -> None: ...


def agent_name(unit: Any) -> str:
    """Display name of a unit: its ``name`` when set, else its class name."""
    name = getattr(unit, "name", None)
    if isinstance(name, str) and name:
        return name
    return type(unit).__name__


@dataclass
class RoutingDecision:
    """Result of scored agent selection."""

    selected_agent_name: str
    confidence: float = 1.0
    reasoning: str | None = None

    def __post_init__(self):
        self.confidence = min(max(float(self.confidence), 0.0), 1.0)


@dataclass(frozen=True)
class AgentDescriptor:
    """Static description of a candidate unit for scored selection."""

    name: str
    description: str = ""
    capabilities: tuple[str, ...] = ()
    keywords: tuple[str, ...] = ()

    def __post_init__(self):
        # Accept lists from callers but keep the descriptor hashable
        object.__setattr__(self, "capabilities", tuple(self.capabilities))
        object.__setattr__(self, "keywords", tuple(self.keywords))


__all__ = [
    "TokenUsage",
    "AgentResult",
    "AgentEventType",
    "AgentEvent",
    "Runnable",
    "agent_name",
    "RoutingDecision",
    "AgentDescriptor",
]
