"""
Condition-based deterministic routing.

This module provides:
- Route: a (condition, unit, name) triple
- Router: dispatches an input to the first route whose condition matches,
  or to a fallback unit

Example:
    ```python
    router = Router(
        routes=[
            route(contains("weather"), weather_agent, name="weather"),
            route(contains("news"), news_agent, name="news"),
        ],
        fallback=general_agent,
    )
    result = await router.run("What's the weather today?")
    result.metadata["router.matched_route"]  # "weather"
    ```
"""

from __future__ import annotations

import time
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING

from .cancellation import CancellationToken
from .conditions import RouteCondition
from .errors import ErrorContext, RoutingFailedError
from .logging import RouteLog, StructuredLogger, get_logger
from .types import AgentEvent, AgentEventType, AgentResult, Runnable, agent_name

if TYPE_CHECKING:
    from .context import RunContext
    from .orchestration import StepContext


NO_ROUTE_REASON = "No route matched input and no fallback agent configured"
FALLBACK_ROUTE = "fallback"
UNNAMED_ROUTE = "unnamed"


@dataclass(frozen=True)
class Route:
    """A condition paired with the unit it dispatches to.

    Routes are evaluated in declaration order; the first match wins.
    """

    condition: RouteCondition
    unit: Runnable
    name: str | None = None


def route(condition: RouteCondition, unit: Runnable, name: str | None = None) -> Route:
    return Route(condition=condition, unit=unit, name=name)


class Router:
    """Dispatches to the first matching route, else to the fallback.

    Routing decisions are recomputed on every call. The only state is the
    cancellation flag.
    """

    def __init__(
        self,
        routes: Sequence[Route],
        fallback: Runnable | None = None,
        name: str = "router",
        *,
        logger: StructuredLogger | None = None,
    ):
        self.name = name
        self._routes = list(routes)
        self._fallback = fallback
        self._token = CancellationToken()
        self._logger = logger

    @property
    def routes(self) -> list[Route]:
        return list(self._routes)

    @property
    def fallback(self) -> Runnable | None:
        return self._fallback

    @property
    def is_cancelled(self) -> bool:
        return self._token.is_cancelled

    @property
    def logger(self) -> StructuredLogger:
        return self._logger or get_logger()

    def select(self, input: str, context: RunContext | None = None) -> tuple[Runnable, str]:
        """Pick the unit for ``input``.

        Returns:
            (unit, matched route name). The name is the route's name,
            ``"unnamed"`` for a route without one, or ``"fallback"``.

        Raises:
            RoutingFailedError: nothing matched and there is no fallback.
        """
        for r in self._routes:
            if r.condition.matches(input, context):
                return r.unit, r.name or UNNAMED_ROUTE
        if self._fallback is not None:
            return self._fallback, FALLBACK_ROUTE
        raise RoutingFailedError(NO_ROUTE_REASON, context=ErrorContext(agent=self.name, operation="route"))

    def _routed_metadata(self, matched: str, started: float) -> dict[str, object]:
        return {
            "router.matched_route": matched,
            "router.total_routes": len(self._routes),
            "router.duration": time.perf_counter() - started,
        }

    def _log_dispatch(self, input: str, matched: str, started: float) -> None:
        self.logger.log_route(
            RouteLog(
                router=self.name,
                matched_route=matched,
                total_routes=len(self._routes),
                fallback=matched == FALLBACK_ROUTE,
                duration_ms=(time.perf_counter() - started) * 1000,
            )
        )
        self.logger.log_input("Routed input", input, router=self.name)

    async def run(self, input: str, *, context: RunContext | None = None) -> AgentResult:
        """Route ``input`` and run the selected unit.

        The unit's result is returned with its metadata merged with
        ``router.matched_route``, ``router.total_routes`` and
        ``router.duration``. Unit failures propagate unchanged.
        """
        self._token.raise_if_cancelled()
        started = time.perf_counter()

        unit, matched = self.select(input, context)
        if context is not None:
            context.record_execution(agent_name(unit))

        result = await unit.run(input)
        self._log_dispatch(input, matched, started)
        if context is not None:
            context.set_previous_output(result)
        return result.merged_metadata(self._routed_metadata(matched, started))

    async def stream(self, input: str, *, context: RunContext | None = None) -> AsyncIterator[AgentEvent]:
        """Stream the selected unit's events.

        Yields ``started`` first. Cancellation and routing failure end the
        stream with a ``cancelled`` or ``failed`` event. The unit's own
        ``completed`` event is re-emitted with the routed metadata.
        """
        yield AgentEvent.started(input)

        if self._token.is_cancelled:
            yield AgentEvent.cancelled()
            return

        started = time.perf_counter()
        try:
            unit, matched = self.select(input, context)
        except RoutingFailedError as e:
            self.logger.log_error(e, router=self.name)
            yield AgentEvent.failed(e)
            return

        if context is not None:
            context.record_execution(agent_name(unit))

        try:
            async for event in unit.stream(input):
                if event.type == AgentEventType.STARTED:
                    continue
                if event.type == AgentEventType.COMPLETED and event.result is not None:
                    self._log_dispatch(input, matched, started)
                    yield AgentEvent.completed(event.result.merged_metadata(self._routed_metadata(matched, started)))
                    return
                yield event
                if event.is_terminal:
                    return
        except Exception as e:
            yield AgentEvent.failed(e)

    async def execute(self, input: str, step_context: StepContext) -> AgentResult:
        """Run as an orchestration step, sharing the run context."""
        return await self.run(input, context=step_context.run_context)

    async def cancel(self) -> None:
        """Cancel subsequent invocations. In-flight units are not interrupted."""
        self._token.cancel()

    def reset(self) -> None:
        """Clear the cancellation flag."""
        self._token.reset()

    def __repr__(self) -> str:
        return f"Router(name={self.name!r}, routes={len(self._routes)}, has_fallback={self._fallback is not None})"


__all__ = ["Route", "route", "Router", "NO_ROUTE_REASON"]
