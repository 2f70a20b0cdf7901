"""
Supervisor: strategy-driven delegation.

A SupervisorAgent holds a registry of named units, each with an
AgentDescriptor, and asks a RoutingStrategy which one should handle an
input. It is itself a Runnable, so it can sit inside routers, parallel
stages and orchestrations.

Example:
    ```python
    supervisor = SupervisorAgent(
        agents=[
            ("math", math_agent, AgentDescriptor("math", keywords=["calculate"])),
            ("weather", weather_agent, AgentDescriptor("weather", keywords=["forecast"])),
        ],
        strategy=KeywordRoutingStrategy(),
        fallback=general_agent,
    )
    result = await supervisor.run("calculate 2+2")
    result.metadata["selected_agent"]  # "math"
    ```
"""

from __future__ import annotations

import time
from collections.abc import AsyncIterator, Sequence
from typing import Any

from .cancellation import CancellationToken, CancelledError
from .context import RunContext
from .errors import AgentNotFoundError, ErrorContext, RoutingFailedError
from .handoff import HandoffConfiguration, find_handoff
from .logging import RouteLog, StructuredLogger, get_logger
from .strategies import RoutingStrategy
from .types import AgentDescriptor, AgentEvent, AgentEventType, AgentResult, Runnable, agent_name

NO_SUITABLE_AGENT_REASON = "No suitable agent found and no fallback configured"

AgentEntry = tuple[str, Runnable, AgentDescriptor]


class SupervisorAgent:
    """Delegates each input to the unit its strategy selects.

    An unknown selection goes to ``fallback`` (``routing_decision="fallback"``);
    a strategy failure does too when a fallback exists
    (``routing_decision="fallback_after_error"``). Failures of the selected
    unit propagate unchanged.
    """

    def __init__(
        self,
        agents: Sequence[AgentEntry],
        strategy: RoutingStrategy,
        fallback: Runnable | None = None,
        handoffs: Sequence[HandoffConfiguration] = (),
        name: str = "supervisor",
        *,
        instructions: str | None = None,
        logger: StructuredLogger | None = None,
    ):
        self.name = name
        self._agents = list(agents)
        self._strategy = strategy
        self._fallback = fallback
        self._handoffs = tuple(handoffs)
        self._token = CancellationToken()
        self._logger = logger
        self.instructions = instructions or self._default_instructions()

    def _default_instructions(self) -> str:
        lines = ["You are a supervisor agent that routes requests to specialized agents.", "", "Available agents:"]
        lines.extend(f"- {name}: {descriptor.description}" for name, _, descriptor in self._agents)
        return "\n".join(lines) + "\n"

    @property
    def available_agents(self) -> list[str]:
        return [name for name, _, _ in self._agents]

    @property
    def handoffs(self) -> tuple[HandoffConfiguration, ...]:
        return self._handoffs

    @property
    def is_cancelled(self) -> bool:
        return self._token.is_cancelled

    @property
    def logger(self) -> StructuredLogger:
        return self._logger or get_logger()

    def description_for(self, name: str) -> AgentDescriptor | None:
        for agent_key, _, descriptor in self._agents:
            if agent_key == name:
                return descriptor
        return None

    def _find(self, name: str) -> tuple[str, Runnable] | None:
        for agent_key, unit, _ in self._agents:
            if agent_key == name:
                return agent_key, unit
        return None

    async def _plan(self, input: str, context: RunContext) -> tuple[str, Runnable, dict[str, Any]]:
        """Decide who runs ``input``: (name, unit, routing metadata)."""
        started = time.perf_counter()
        try:
            decision = await self._strategy.select_agent(input, [d for _, _, d in self._agents], context)
        except CancelledError:
            raise
        except Exception as e:
            if self._fallback is None:
                raise
            self.logger.warning("Routing failed, using fallback agent", supervisor=self.name, error=str(e))
            return (
                agent_name(self._fallback),
                self._fallback,
                {"routing_decision": "fallback_after_error", "routing_error": str(e), "routing_confidence": 0.0},
            )

        entry = self._find(decision.selected_agent_name)
        if entry is None:
            if self._fallback is None:
                raise RoutingFailedError(
                    NO_SUITABLE_AGENT_REASON, context=ErrorContext(agent=self.name, operation="route")
                )
            return (
                agent_name(self._fallback),
                self._fallback,
                {"routing_decision": "fallback", "fallback_reason": "agent_not_found", "routing_confidence": 0.0},
            )

        self.logger.log_route(
            RouteLog(
                router=self.name,
                matched_route=entry[0],
                total_routes=len(self._agents),
                duration_ms=(time.perf_counter() - started) * 1000,
            )
        )
        return (
            entry[0],
            entry[1],
            {
                "selected_agent": decision.selected_agent_name,
                "routing_confidence": decision.confidence,
                "routing_reasoning": decision.reasoning,
            },
        )

    async def _dispatch(self, name: str, unit: Runnable, input: str, context: RunContext) -> AgentResult:
        config = find_handoff(self._handoffs, unit)
        if config is not None:
            return await config.execute(self.name, input, context, unit=unit, logger=self._logger)
        context.record_execution(name)
        result = await unit.run(input)
        context.set_previous_output(result)
        return result

    async def run(self, input: str) -> AgentResult:
        """Select a unit for ``input`` and run it.

        Raises:
            CancelledError: the supervisor was cancelled.
            RoutingFailedError: no unit could be selected and there is no fallback.
        """
        self._token.raise_if_cancelled()
        context = RunContext(input)
        name, unit, routing = await self._plan(input, context)
        result = await self._dispatch(name, unit, input, context)
        return result.merged_metadata(routing)

    async def execute_agent(self, name: str, input: str) -> AgentResult:
        """Run a registered unit directly, bypassing the strategy.

        Raises:
            AgentNotFoundError: ``name`` is not registered.
        """
        entry = self._find(name)
        if entry is None:
            raise AgentNotFoundError(name)
        return await entry[1].run(input)

    async def stream(self, input: str) -> AsyncIterator[AgentEvent]:
        """Stream the selected unit, wrapped in handoff events."""
        yield AgentEvent.started(input)
        if self._token.is_cancelled:
            yield AgentEvent.cancelled()
            return

        context = RunContext(input)
        try:
            name, unit, routing = await self._plan(input, context)
        except Exception as e:
            self.logger.log_error(e, supervisor=self.name)
            yield AgentEvent.failed(e)
            return

        yield AgentEvent.handoff(AgentEventType.HANDOFF_STARTED, self.name, name)
        result: AgentResult | None = None
        try:
            if find_handoff(self._handoffs, unit) is not None:
                result = await self._dispatch(name, unit, input, context)
            else:
                context.record_execution(name)
                async for event in unit.stream(input):
                    if event.type == AgentEventType.STARTED:
                        continue
                    if event.type == AgentEventType.COMPLETED:
                        result = event.result
                        break
                    if event.is_terminal:
                        yield event
                        return
                    yield event
        except CancelledError:
            yield AgentEvent.cancelled()
            return
        except Exception as e:
            yield AgentEvent.failed(e)
            return

        if result is None:
            yield AgentEvent.failed(RoutingFailedError(f"Stream of '{name}' ended without completion"))
            return
        context.set_previous_output(result)
        yield AgentEvent.handoff(AgentEventType.HANDOFF_COMPLETED, self.name, name)
        yield AgentEvent.completed(result.merged_metadata(routing))

    async def cancel(self) -> None:
        self._token.cancel()

    def reset(self) -> None:
        self._token.reset()

    def __repr__(self) -> str:
        return f"SupervisorAgent(name={self.name!r}, agents={self.available_agents})"


__all__ = ["SupervisorAgent", "NO_SUITABLE_AGENT_REASON"]
