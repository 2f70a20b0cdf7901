"""
Fake runnable units shared by the agent-flow tests.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import AsyncIterator
from typing import Any

from agent_flow.types import AgentEvent, AgentResult, TokenUsage

# =============================================================================
# Fake Units
# =============================================================================


class FakeAgent:
    """Base fake: records every input it receives."""

    def __init__(self, name: str):
        self.name = name
        self.inputs: list[str] = []
        self.cancelled = False

    @property
    def call_count(self) -> int:
        return len(self.inputs)

    async def run(self, input: str) -> AgentResult:
        self.inputs.append(input)
        return AgentResult(output=self.respond(input), metadata={"agent_name": self.name})

    def respond(self, input: str) -> str:
        return f"{self.name}: {input}"

    async def stream(self, input: str) -> AsyncIterator[AgentEvent]:
        yield AgentEvent.started(input)
        try:
            result = await self.run(input)
        except Exception as e:
            yield AgentEvent.failed(e)
            return
        yield AgentEvent.token(result.output)
        yield AgentEvent.completed(result)

    async def cancel(self) -> None:
        self.cancelled = True


class EchoAgent(FakeAgent):
    """Answers ``"<name>: <input>"`` or a fixed output."""

    def __init__(
        self,
        name: str = "echo",
        output: str | None = None,
        metadata: dict[str, Any] | None = None,
        usage: TokenUsage | None = None,
        tool_calls: list[Any] | None = None,
    ):
        super().__init__(name)
        self.output = output
        self.metadata = metadata or {}
        self.usage = usage
        self.tool_calls = tool_calls or []

    def respond(self, input: str) -> str:
        return self.output if self.output is not None else super().respond(input)

    async def run(self, input: str) -> AgentResult:
        self.inputs.append(input)
        return AgentResult(
            output=self.respond(input),
            tool_calls=list(self.tool_calls),
            token_usage=self.usage,
            metadata={"agent_name": self.name, **self.metadata},
        )


class FailingAgent(FakeAgent):
    """Always raises ``error``."""

    def __init__(self, name: str = "failing", error: Exception | None = None):
        super().__init__(name)
        self.error = error or RuntimeError(f"{name} failed")

    async def run(self, input: str) -> AgentResult:
        self.inputs.append(input)
        raise self.error


class SlowAgent(FakeAgent):
    """Sleeps before answering and records start/finish times."""

    def __init__(self, name: str = "slow", delay: float = 0.05, output: str | None = None):
        super().__init__(name)
        self.delay = delay
        self.output = output
        self.started_at: float | None = None
        self.finished_at: float | None = None
        self.was_interrupted = False

    async def run(self, input: str) -> AgentResult:
        self.inputs.append(input)
        self.started_at = time.perf_counter()
        try:
            await asyncio.sleep(self.delay)
        except asyncio.CancelledError:
            self.was_interrupted = True
            raise
        self.finished_at = time.perf_counter()
        return AgentResult(output=self.output if self.output is not None else self.respond(input))


class ConcurrencyTracker:
    """Tracks how many SlowAgents built from it run at once."""

    def __init__(self):
        self.active = 0
        self.peak = 0

    def agent(self, name: str, delay: float = 0.02) -> FakeAgent:
        tracker = self

        class TrackedAgent(FakeAgent):
            async def run(self, input: str) -> AgentResult:
                self.inputs.append(input)
                tracker.active += 1
                tracker.peak = max(tracker.peak, tracker.active)
                try:
                    await asyncio.sleep(delay)
                finally:
                    tracker.active -= 1
                return AgentResult(output=self.respond(input))

        return TrackedAgent(name)


class TokenStreamingAgent(FakeAgent):
    """Streams its answer word by word."""

    async def stream(self, input: str) -> AsyncIterator[AgentEvent]:
        yield AgentEvent.started(input)
        self.inputs.append(input)
        words = self.respond(input).split(" ")
        for word in words:
            yield AgentEvent.token(word)
        yield AgentEvent.completed(AgentResult(output=" ".join(words)))


# Distinct classes, so handoff tool names derive from the type name
class ExecutorAgent(EchoAgent):
    pass


class PlannerAgent(EchoAgent):
    pass
