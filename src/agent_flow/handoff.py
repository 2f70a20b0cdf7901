"""
Handoffs: controlled transfer of execution from one unit to another.

A HandoffConfiguration describes how control moves to a target unit:

1. ``is_enabled(context, target)`` gates the handoff
2. a HandoffInputData payload is built from the source, target, input,
   a snapshot of the run context and metadata
3. ``input_filter(data)`` may rewrite the payload
4. ``on_handoff(context, data)`` observes it and may mutate the context
5. the target runs with the filtered input

Failures in steps 3 and 4 abort the handoff with HandoffCallbackError and the
target never runs. Target failures propagate unchanged.

Example:
    ```python
    config = (
        HandoffBuilder(billing_agent)
        .tool_name("escalate_to_billing")
        .input_filter(lambda d: d.replace(input=d.input.strip()))
        .on_handoff(lambda ctx, d: ctx.set("escalated", True))
        .build()
    )
    ```
"""

from __future__ import annotations

import inspect
import json
import time
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any

import jsonschema

from .errors import ErrorContext, HandoffCallbackError, HandoffSkippedError
from .logging import HandoffLog, StructuredLogger, get_logger
from .types import AgentResult, Runnable, agent_name

if TYPE_CHECKING:
    from .context import RunContext


@dataclass(frozen=True)
class HandoffInputData:
    """Payload passed across a handoff."""

    source_agent_name: str
    target_agent_name: str
    input: str
    context: Mapping[str, Any] = field(default_factory=dict)
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def replace(self, **changes: Any) -> HandoffInputData:
        return replace(self, **changes)

    def __repr__(self) -> str:
        preview = self.input[:50] + ("..." if len(self.input) > 50 else "")
        return (
            f"HandoffInputData(from={self.source_agent_name!r}, "
            f"to={self.target_agent_name!r}, input={preview!r})"
        )


OnHandoff = Callable[["RunContext", HandoffInputData], "Awaitable[None] | None"]
InputFilter = Callable[[HandoffInputData], HandoffInputData]
IsEnabled = Callable[["RunContext", Runnable], "Awaitable[bool] | bool"]

HANDOFF_PARAMETERS: dict[str, Any] = {
    "type": "object",
    "properties": {
        "input": {
            "type": "string",
            "description": "The request to hand to the target agent",
        },
    },
    "required": ["input"],
}


def camel_to_snake(name: str) -> str:
    """``ExecutorAgent`` -> ``executor_agent``. Every capital starts a new word."""
    out: list[str] = []
    for index, char in enumerate(name):
        if char.isupper():
            if index > 0:
                out.append("_")
            out.append(char.lower())
        else:
            out.append(char)
    return "".join(out)


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


def _tool_name_prefix() -> str:
    from .config import get_settings

    return get_settings().handoff.tool_name_prefix


def _snapshot_context() -> bool:
    from .config import get_settings

    return get_settings().handoff.context_snapshot


def _error_context(target_name: str) -> ErrorContext:
    return ErrorContext(agent=target_name, operation="handoff")


@dataclass(frozen=True)
class HandoffConfiguration:
    """Immutable description of a handoff to ``target``."""

    target: Runnable
    tool_name_override: str | None = None
    tool_description: str | None = None
    on_handoff: OnHandoff | None = None
    input_filter: InputFilter | None = None
    is_enabled: IsEnabled | None = None
    nest_handoff_history: bool = False

    @property
    def target_name(self) -> str:
        return agent_name(self.target)

    @property
    def effective_tool_name(self) -> str:
        if self.tool_name_override:
            return self.tool_name_override
        return _tool_name_prefix() + camel_to_snake(type(self.target).__name__)

    @property
    def effective_tool_description(self) -> str:
        if self.tool_description:
            return self.tool_description
        return f"Hand off execution to {type(self.target).__name__}"

    def to_openai_format(self) -> dict[str, Any]:
        """Function-tool definition a supervising model can call."""
        return {
            "type": "function",
            "function": {
                "name": self.effective_tool_name,
                "description": self.effective_tool_description,
                "parameters": HANDOFF_PARAMETERS,
            },
        }

    @staticmethod
    def parse_arguments(arguments: str | Mapping[str, Any]) -> str:
        """Validate tool-call arguments and return the ``input`` field.

        Raises:
            ValueError: arguments are not valid JSON or miss ``input``.
        """
        if isinstance(arguments, str):
            try:
                arguments = json.loads(arguments) if arguments else {}
            except json.JSONDecodeError as e:
                raise ValueError(f"Invalid JSON arguments: {e}") from e
        try:
            jsonschema.validate(instance=arguments, schema=HANDOFF_PARAMETERS)
        except jsonschema.ValidationError as e:
            raise ValueError(f"Invalid handoff arguments: {e.message}") from e
        return arguments["input"]

    async def check_enabled(self, context: RunContext, unit: Runnable | None = None) -> bool:
        """Evaluate ``is_enabled``; an unset gate is always open."""
        if self.is_enabled is None:
            return True
        return bool(await _maybe_await(self.is_enabled(context, unit if unit is not None else self.target)))

    async def execute(
        self,
        source_name: str,
        input: str,
        context: RunContext,
        metadata: Mapping[str, Any] | None = None,
        *,
        unit: Runnable | None = None,
        logger: StructuredLogger | None = None,
    ) -> AgentResult:
        """Run the handoff and return the result of the unit it reaches.

        ``unit`` is the unit that actually runs, for callers that matched this
        configuration to an equivalent unit; it defaults to ``target``.

        Raises:
            HandoffSkippedError: ``is_enabled`` returned False.
            HandoffCallbackError: ``input_filter`` or ``on_handoff`` raised.
        """
        log = logger or get_logger()
        runner = unit if unit is not None else self.target
        target_name = agent_name(runner)
        started = time.perf_counter()

        if not await self.check_enabled(context, runner):
            log.log_handoff(
                HandoffLog(
                    source=source_name,
                    target=target_name,
                    tool_name=self.effective_tool_name,
                    enabled=False,
                    error="disabled by is_enabled callback",
                )
            )
            raise HandoffSkippedError(source_name, target_name, context=_error_context(target_name))

        data = HandoffInputData(
            source_agent_name=source_name,
            target_agent_name=target_name,
            input=input,
            context=context.snapshot() if _snapshot_context() else {},
            metadata=dict(metadata or {}),
        )

        if self.input_filter is not None:
            try:
                data = self.input_filter(data)
            except Exception as e:
                self._log_failure(log, source_name, target_name, f"input filter failed: {e}")
                raise HandoffCallbackError(
                    source_name,
                    target_name,
                    f"input filter failed: {e}",
                    context=_error_context(target_name),
                    cause=e,
                ) from e

        if self.on_handoff is not None:
            try:
                await _maybe_await(self.on_handoff(context, data))
            except Exception as e:
                self._log_failure(log, source_name, target_name, f"on_handoff callback failed: {e}")
                raise HandoffCallbackError(
                    source_name,
                    target_name,
                    f"on_handoff callback failed: {e}",
                    context=_error_context(target_name),
                    cause=e,
                ) from e

        if data.metadata:
            context.update(data.metadata)
        context.set("handoff_source", source_name)
        context.record_execution(target_name)

        parent_trace = log.context.trace_id if self.nest_handoff_history else None
        with log.trace_context(parent_trace_id=parent_trace, agent=target_name) as trace_id:
            log.log_input("Handoff input", data.input, target=target_name)
            result = await runner.run(data.input)
            log.log_handoff(
                HandoffLog(
                    source=source_name,
                    target=target_name,
                    tool_name=self.effective_tool_name,
                    nested=self.nest_handoff_history,
                    duration_ms=(time.perf_counter() - started) * 1000,
                )
            )

        context.set_previous_output(result)

        entries: dict[str, Any] = {
            "handoff.source": source_name,
            "handoff.target": target_name,
            "handoff.tool_name": self.effective_tool_name,
            "handoff.nested": self.nest_handoff_history,
            "handoff.trace_id": trace_id,
        }
        if parent_trace is not None:
            entries["handoff.parent_trace_id"] = parent_trace
        return result.merged_metadata(entries)

    def _log_failure(self, log: StructuredLogger, source: str, target: str, error: str) -> None:
        log.log_handoff(
            HandoffLog(
                source=source,
                target=target,
                tool_name=self.effective_tool_name,
                nested=self.nest_handoff_history,
                error=error,
            )
        )


class HandoffBuilder:
    """Fluent construction of a HandoffConfiguration."""

    def __init__(self, target: Runnable):
        self._target = target
        self._tool_name: str | None = None
        self._tool_description: str | None = None
        self._on_handoff: OnHandoff | None = None
        self._input_filter: InputFilter | None = None
        self._is_enabled: IsEnabled | None = None
        self._nest = False

    def tool_name(self, name: str) -> HandoffBuilder:
        self._tool_name = name
        return self

    def tool_description(self, description: str) -> HandoffBuilder:
        self._tool_description = description
        return self

    def on_handoff(self, callback: OnHandoff) -> HandoffBuilder:
        self._on_handoff = callback
        return self

    def input_filter(self, fn: InputFilter) -> HandoffBuilder:
        self._input_filter = fn
        return self

    def is_enabled(self, fn: IsEnabled) -> HandoffBuilder:
        self._is_enabled = fn
        return self

    def nest_history(self, nest: bool = True) -> HandoffBuilder:
        self._nest = nest
        return self

    def build(self) -> HandoffConfiguration:
        return HandoffConfiguration(
            target=self._target,
            tool_name_override=self._tool_name,
            tool_description=self._tool_description,
            on_handoff=self._on_handoff,
            input_filter=self._input_filter,
            is_enabled=self._is_enabled,
            nest_handoff_history=self._nest,
        )


def handoff(
    target: Runnable,
    *,
    tool_name: str | None = None,
    tool_description: str | None = None,
    on_handoff: OnHandoff | None = None,
    input_filter: InputFilter | None = None,
    is_enabled: IsEnabled | None = None,
    nest_history: bool = False,
) -> HandoffConfiguration:
    return HandoffConfiguration(
        target=target,
        tool_name_override=tool_name,
        tool_description=tool_description,
        on_handoff=on_handoff,
        input_filter=input_filter,
        is_enabled=is_enabled,
        nest_handoff_history=nest_history,
    )


def find_handoff(handoffs: Iterable[HandoffConfiguration], unit: Runnable) -> HandoffConfiguration | None:
    """Configuration targeting ``unit``: by identity first, then by type."""
    handoffs = list(handoffs)
    for config in handoffs:
        if config.target is unit:
            return config
    for config in handoffs:
        if type(config.target) is type(unit):
            return config
    return None


__all__ = [
    "HandoffInputData",
    "HandoffConfiguration",
    "HandoffBuilder",
    "handoff",
    "find_handoff",
    "camel_to_snake",
    "HANDOFF_PARAMETERS",
]
