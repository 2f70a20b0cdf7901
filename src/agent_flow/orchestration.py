"""
Orchestration: the top-level step container.

An Orchestration runs an ordered list of steps. Each step receives the
previous step's output as its input, the first step gets the original input,
and the first failure aborts the run. All steps of one run share a single
RunContext that is created when the run starts and dropped when it ends.

Steps:
- AgentStep: run a unit (bare units are wrapped automatically)
- Transform: rewrite the text with a sync or async function
- Branch: run one of two step lists depending on a condition
- Sequential: a nested step list
- Router and Parallel are steps too

Handoffs attached to the orchestration are reachable from inside a running
unit through current_step_context().

Example:
    ```python
    flow = Orchestration(
        [
            Transform(str.strip),
            Router([route(contains("refund"), billing)], fallback=support),
            Parallel([branch("summary", summarizer), branch("tone", tone)]),
        ],
        handoffs=[handoff(escalation_agent)],
    )
    result = await flow.run("  I want a refund  ")
    ```
"""

from __future__ import annotations

import inspect
import time
from collections.abc import AsyncIterator, Awaitable, Callable, Sequence
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any, Protocol, Union, runtime_checkable

from .cancellation import CancellationToken, CancelledError
from .conditions import RouteCondition
from .context import ContextKey, RunContext
from .errors import AgentNotFoundError, HandoffSkippedError, OrchestrationError
from .handoff import HandoffConfiguration, find_handoff
from .logging import StepLog, StructuredLogger, generate_run_id, get_logger
from .types import AgentEvent, AgentEventType, AgentResult, Runnable, TokenUsage, agent_name


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


@runtime_checkable
class OrchestrationStep(Protocol):
    """Anything an Orchestration can execute as one step."""

    async def execute(self, input: str, step_context: StepContext) -> AgentResult: ...


# =============================================================================
# Step context
# =============================================================================

_current_step_context: ContextVar[StepContext | None] = ContextVar("agent_flow_step_context", default=None)


def current_step_context() -> StepContext | None:
    """The StepContext of the step currently executing in this task, if any."""
    return _current_step_context.get()


@dataclass
class StepContext:
    """What a step sees of the orchestration it runs in."""

    run_context: RunContext
    handoffs: tuple[HandoffConfiguration, ...] = ()
    orchestrator_name: str = "orchestration"
    trace_id: str | None = None
    logger: StructuredLogger | None = None
    _events: list[AgentEvent] = field(default_factory=list, repr=False)

    @property
    def log(self) -> StructuredLogger:
        return self.logger or get_logger()

    def current_agent(self) -> str:
        return self.run_context.get(ContextKey.CURRENT_AGENT_NAME) or self.orchestrator_name

    async def available_handoffs(self) -> list[HandoffConfiguration]:
        """Configurations whose is_enabled gate is open right now."""
        return [h for h in self.handoffs if await h.check_enabled(self.run_context)]

    async def handoff_tools(self) -> list[dict[str, Any]]:
        """Function-tool definitions for the enabled handoffs."""
        return [h.to_openai_format() for h in await self.available_handoffs()]

    def find_by_tool_name(self, tool_name: str) -> HandoffConfiguration:
        for config in self.handoffs:
            if config.effective_tool_name == tool_name:
                return config
        raise AgentNotFoundError(tool_name)

    async def handoff(
        self,
        tool_name: str,
        input: str,
        source_name: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> AgentResult:
        """Hand off to the configuration exposed as ``tool_name``.

        Raises:
            AgentNotFoundError: no handoff has that tool name.
        """
        config = self.find_by_tool_name(tool_name)
        return await self.run_handoff(config, source_name or self.current_agent(), input, metadata)

    async def handoff_from_tool_call(
        self,
        tool_name: str,
        arguments: str | dict[str, Any],
        source_name: str | None = None,
    ) -> AgentResult:
        """Like handoff(), taking the raw arguments of a model tool call."""
        return await self.handoff(tool_name, HandoffConfiguration.parse_arguments(arguments), source_name)

    async def run_handoff(
        self,
        config: HandoffConfiguration,
        source_name: str,
        input: str,
        metadata: dict[str, Any] | None = None,
        *,
        unit: Runnable | None = None,
    ) -> AgentResult:
        target = agent_name(unit) if unit is not None else config.target_name
        self._events.append(AgentEvent.handoff(AgentEventType.HANDOFF_STARTED, source_name, target))
        try:
            result = await config.execute(
                source_name, input, self.run_context, metadata, unit=unit, logger=self.logger
            )
        except HandoffSkippedError:
            self._events.append(AgentEvent.handoff(AgentEventType.HANDOFF_SKIPPED, source_name, target))
            raise
        self._events.append(AgentEvent.handoff(AgentEventType.HANDOFF_COMPLETED, source_name, target))
        return result

    def drain_events(self) -> list[AgentEvent]:
        events, self._events = self._events, []
        return events


# =============================================================================
# Steps
# =============================================================================


class AgentStep:
    """Runs one unit.

    When the orchestration has a handoff configured for the unit, the unit
    is reached through that handoff, so its gate, filter and callback apply.
    """

    def __init__(self, unit: Runnable, name: str | None = None):
        self.unit = unit
        self.name = name or agent_name(unit)

    async def execute(self, input: str, step_context: StepContext) -> AgentResult:
        config = find_handoff(step_context.handoffs, self.unit)
        if config is not None:
            return await step_context.run_handoff(config, step_context.current_agent(), input, unit=self.unit)

        ctx = step_context.run_context
        ctx.record_execution(self.name)
        result = await self.unit.run(input)
        ctx.set_previous_output(result)
        return result

    def __repr__(self) -> str:
        return f"AgentStep({self.name!r})"


class Transform:
    """Rewrites the text flowing between steps."""

    def __init__(self, fn: Callable[[str], Union[str, Awaitable[str]]], name: str | None = None):
        self.fn = fn
        self.name = name or getattr(fn, "__name__", "transform")

    async def execute(self, input: str, step_context: StepContext) -> AgentResult:
        started = time.perf_counter()
        output = await _maybe_await(self.fn(input))
        duration = time.perf_counter() - started
        return AgentResult(
            output=output,
            iteration_count=1,
            duration=duration,
            metadata={"transform.duration": duration},
        )


def _as_steps(steps: Any) -> list[Any]:
    if steps is None:
        return []
    if isinstance(steps, (list, tuple)):
        return [as_step(s) for s in steps]
    return [as_step(steps)]


class Branch:
    """If/else over step lists.

    ``condition`` is a RouteCondition or a ``predicate(input, context)``.
    Without an ``otherwise`` list a false condition passes the input through.
    """

    def __init__(
        self,
        condition: RouteCondition | Callable[[str, RunContext], bool],
        then: Any,
        otherwise: Any = None,
    ):
        self.condition = condition
        self.then = Sequential(_as_steps(then))
        self.otherwise = Sequential(_as_steps(otherwise)) if otherwise is not None else None

    def _matches(self, input: str, context: RunContext) -> bool:
        if isinstance(self.condition, RouteCondition):
            return self.condition.matches(input, context)
        return bool(self.condition(input, context))

    async def execute(self, input: str, step_context: StepContext) -> AgentResult:
        if self._matches(input, step_context.run_context):
            result = await self.then.execute(input, step_context)
            return result.merged_metadata({"branch.taken": "then"})
        if self.otherwise is not None:
            result = await self.otherwise.execute(input, step_context)
            return result.merged_metadata({"branch.taken": "otherwise"})
        return AgentResult(output=input, iteration_count=0, metadata={"branch.taken": "none"})


SequentialTransformer = Union[str, Callable[[AgentResult], str]]


class Sequential:
    """A nested step list run in order, output feeding input.

    ``transformer`` decides what the next step receives: ``"passthrough"``
    (the output), ``"with_metadata"`` (the output followed by the metadata)
    or a callable taking the AgentResult.
    """

    def __init__(self, steps: Sequence[Any], transformer: SequentialTransformer = "passthrough"):
        if isinstance(transformer, str) and transformer not in ("passthrough", "with_metadata"):
            raise ValueError(f"Unknown transformer: {transformer}")
        self.steps = [as_step(s) for s in steps]
        self.transformer = transformer

    def _next_input(self, result: AgentResult) -> str:
        if callable(self.transformer):
            return self.transformer(result)
        if self.transformer == "with_metadata" and result.metadata:
            return f"{result.output}\n\nMetadata: {result.metadata}"
        return result.output

    async def execute(self, input: str, step_context: StepContext) -> AgentResult:
        if not self.steps:
            return AgentResult(output=input, iteration_count=0)

        started = time.perf_counter()
        acc = _Accumulator("sequential")
        current = input
        result = AgentResult(output=input)
        for index, step in enumerate(self.steps):
            if index:
                current = self._next_input(result)
            result = await step.execute(current, step_context)
            acc.add(index, result)

        duration = time.perf_counter() - started
        return acc.build(
            result.output,
            duration,
            {"sequential.step_count": len(self.steps), "sequential.total_duration": duration},
        )


def as_step(item: Any) -> Any:
    """Steps pass through; bare runnable units become AgentSteps."""
    if isinstance(item, OrchestrationStep):
        return item
    if isinstance(item, Runnable):
        return AgentStep(item)
    raise TypeError(f"Not an orchestration step or runnable unit: {item!r}")


class _Accumulator:
    """Collects step results into one AgentResult."""

    def __init__(self, prefix: str):
        self.prefix = prefix
        self.metadata: dict[str, Any] = {}
        self.tool_calls: list[Any] = []
        self.tool_results: list[Any] = []
        self.iterations = 0
        self.usage: TokenUsage | None = None

    def add(self, index: int, result: AgentResult) -> None:
        self.tool_calls.extend(result.tool_calls)
        self.tool_results.extend(result.tool_results)
        self.iterations += result.iteration_count
        if result.token_usage is not None:
            self.usage = result.token_usage if self.usage is None else self.usage + result.token_usage
        for key, value in result.metadata.items():
            self.metadata[f"{self.prefix}.step_{index}.{key}"] = value

    def build(self, output: str, duration: float, extra: dict[str, Any]) -> AgentResult:
        return AgentResult(
            output=output,
            tool_calls=self.tool_calls,
            tool_results=self.tool_results,
            iteration_count=self.iterations,
            duration=duration,
            token_usage=self.usage,
            metadata={**self.metadata, **extra},
        )


# =============================================================================
# Orchestration
# =============================================================================


class Orchestration:
    """Ordered steps sharing one RunContext per run. Fail-fast."""

    def __init__(
        self,
        steps: Sequence[Any],
        handoffs: Sequence[HandoffConfiguration] = (),
        name: str = "orchestration",
        *,
        logger: StructuredLogger | None = None,
    ):
        self.name = name
        self._steps = [as_step(s) for s in steps]
        self._handoffs = tuple(handoffs)
        self._token = CancellationToken()
        self._logger = logger

    @property
    def steps(self) -> list[Any]:
        return list(self._steps)

    @property
    def handoffs(self) -> tuple[HandoffConfiguration, ...]:
        return self._handoffs

    @property
    def is_cancelled(self) -> bool:
        return self._token.is_cancelled

    @property
    def logger(self) -> StructuredLogger:
        return self._logger or get_logger()

    def _check_cancelled(self) -> None:
        self._token.raise_if_cancelled(f"Orchestration '{self.name}' was cancelled")

    async def _execute_step(self, index: int, step: Any, input: str, step_context: StepContext) -> AgentResult:
        started = time.perf_counter()
        step_type = type(step).__name__
        reset = _current_step_context.set(step_context)
        try:
            result = await step.execute(input, step_context)
        except Exception as e:
            if isinstance(e, OrchestrationError) and e.context.orchestration is None:
                e.context.orchestration = self.name
                e.context.step = index
                e.context.run_id = e.context.run_id or self.logger.context.run_id
            self.logger.log_step(
                StepLog(
                    orchestration=self.name,
                    step_index=index,
                    step_type=step_type,
                    success=False,
                    error=str(e),
                    duration_ms=(time.perf_counter() - started) * 1000,
                )
            )
            raise
        finally:
            _current_step_context.reset(reset)
        self.logger.log_step(
            StepLog(
                orchestration=self.name,
                step_index=index,
                step_type=step_type,
                duration_ms=(time.perf_counter() - started) * 1000,
            )
        )
        return result

    def _new_step_context(self, input: str, trace_id: str | None) -> StepContext:
        return StepContext(
            run_context=RunContext(input),
            handoffs=self._handoffs,
            orchestrator_name=self.name,
            trace_id=trace_id,
            logger=self._logger,
        )

    def _finish(self, acc: _Accumulator, output: str, started: float, step_context: StepContext) -> AgentResult:
        return acc.build(
            output,
            time.perf_counter() - started,
            {
                "orchestration.total_steps": len(self._steps),
                "orchestration.total_duration": time.perf_counter() - started,
                "orchestration.execution_path": step_context.run_context.execution_path(),
            },
        )

    async def run(self, input: str) -> AgentResult:
        """Run every step in order.

        Raises:
            CancelledError: cancelled before the run or between steps.
            Exception: the first step failure, unchanged.
        """
        self._check_cancelled()
        if not self._steps:
            return AgentResult(output=input, iteration_count=0, metadata={"orchestration.total_steps": 0})

        started = time.perf_counter()
        with self.logger.trace_context(orchestration=self.name, run_id=generate_run_id()) as trace_id:
            step_context = self._new_step_context(input, trace_id)
            acc = _Accumulator("orchestration")
            current = input
            for index, step in enumerate(self._steps):
                self._check_cancelled()
                result = await self._execute_step(index, step, current, step_context)
                acc.add(index, result)
                current = result.output
            return self._finish(acc, current, started, step_context)

    async def stream(self, input: str) -> AsyncIterator[AgentEvent]:
        """Run the steps, yielding progress events.

        ``iteration_started``/``iteration_completed`` (1-based) surround each
        step, handoff events are emitted after the step that caused them, and
        the stream always ends with completed, failed or cancelled.
        """
        yield AgentEvent.started(input)
        if self._token.is_cancelled:
            yield AgentEvent.cancelled()
            return
        if not self._steps:
            yield AgentEvent.completed(
                AgentResult(output=input, iteration_count=0, metadata={"orchestration.total_steps": 0})
            )
            return

        started = time.perf_counter()
        step_context = self._new_step_context(input, None)
        acc = _Accumulator("orchestration")
        current = input
        for index, step in enumerate(self._steps):
            if self._token.is_cancelled:
                yield AgentEvent.cancelled()
                return
            yield AgentEvent.iteration_started(index + 1)
            try:
                result = await self._execute_step(index, step, current, step_context)
            except CancelledError:
                for event in step_context.drain_events():
                    yield event
                yield AgentEvent.cancelled()
                return
            except Exception as e:
                self.logger.log_error(e, orchestration=self.name, step=index)
                for event in step_context.drain_events():
                    yield event
                yield AgentEvent.failed(e)
                return
            for event in step_context.drain_events():
                yield event
            acc.add(index, result)
            current = result.output
            yield AgentEvent.iteration_completed(index + 1)

        yield AgentEvent.completed(self._finish(acc, current, started, step_context))

    async def execute(self, input: str, step_context: StepContext) -> AgentResult:
        """Run nested inside another orchestration, sharing its run context."""
        self._check_cancelled()
        nested = StepContext(
            run_context=step_context.run_context,
            handoffs=self._handoffs + step_context.handoffs,
            orchestrator_name=self.name,
            trace_id=step_context.trace_id,
            logger=self._logger or step_context.logger,
        )
        started = time.perf_counter()
        acc = _Accumulator("orchestration")
        current = input
        try:
            for index, step in enumerate(self._steps):
                self._check_cancelled()
                result = await self._execute_step(index, step, current, nested)
                acc.add(index, result)
                current = result.output
        finally:
            step_context._events.extend(nested.drain_events())
        return self._finish(acc, current, started, nested)

    async def cancel(self) -> None:
        """Stop at the next step boundary. The running step is not interrupted."""
        self._token.cancel()

    def reset(self) -> None:
        self._token.reset()

    def __repr__(self) -> str:
        return f"Orchestration(name={self.name!r}, steps={len(self._steps)}, handoffs={len(self._handoffs)})"


__all__ = [
    "OrchestrationStep",
    "StepContext",
    "current_step_context",
    "AgentStep",
    "Transform",
    "Branch",
    "Sequential",
    "as_step",
    "Orchestration",
]
