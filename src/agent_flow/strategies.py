"""
Scored agent selection.

Strategies pick one agent out of a list of AgentDescriptors. They are the
declarative alternative to condition routing, used by SupervisorAgent.

This module provides:
- RoutingStrategy: abstract interface
- KeywordRoutingStrategy: keyword / capability / name substring scoring
- CallableRoutingStrategy: wraps a user supplied selection function
- PromptRoutingStrategy: asks a caller supplied completion function to name
  the agent, falling back to keyword scoring
"""

from __future__ import annotations

import inspect
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Sequence
from typing import TYPE_CHECKING, Any

from .errors import RoutingFailedError
from .logging import StructuredLogger, get_logger
from .types import AgentDescriptor, RoutingDecision

if TYPE_CHECKING:
    from .context import RunContext

KEYWORD_POINTS = 10
CAPABILITY_POINTS = 5
NAME_POINTS = 3

NO_AGENTS_REASON = "No agents available for routing"
SINGLE_AGENT_REASONING = "Only one agent available"
NO_MATCH_REASONING = "No keyword matches found, using fallback agent"


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class RoutingStrategy(ABC):
    """Selects one agent for an input."""

    @abstractmethod
    async def select_agent(
        self,
        input: str,
        agents: Sequence[AgentDescriptor],
        context: RunContext | None = None,
    ) -> RoutingDecision:
        """Return the decision for ``input``.

        Raises:
            RoutingFailedError: ``agents`` is empty.
        """
        ...


def _trivial_decision(agents: Sequence[AgentDescriptor]) -> RoutingDecision | None:
    if not agents:
        raise RoutingFailedError(NO_AGENTS_REASON)
    if len(agents) == 1:
        return RoutingDecision(agents[0].name, confidence=1.0, reasoning=SINGLE_AGENT_REASONING)
    return None


class KeywordRoutingStrategy(RoutingStrategy):
    """Substring scoring over keywords, capabilities and agent name.

    Each keyword found in the input scores 10, each capability 5, the name 3.
    Confidence is the winner's score over its own maximum possible score.
    A zero score, a tie for the top score, or a confidence below
    ``minimum_confidence`` all degrade to the first agent with confidence 0.
    """

    def __init__(
        self,
        case_sensitive: bool | None = None,
        minimum_confidence: float | None = None,
    ):
        if case_sensitive is None or minimum_confidence is None:
            from .config import get_settings

            defaults = get_settings().routing
            if case_sensitive is None:
                case_sensitive = defaults.case_sensitive
            if minimum_confidence is None:
                minimum_confidence = defaults.minimum_confidence
        self.case_sensitive = case_sensitive
        self.minimum_confidence = minimum_confidence

    def _normalize(self, text: str) -> str:
        return text if self.case_sensitive else text.lower()

    def score(self, input: str, descriptor: AgentDescriptor) -> int:
        """Aggregate substring score of ``descriptor`` against ``input``."""
        text = self._normalize(input)
        total = 0
        for keyword in descriptor.keywords:
            if self._normalize(keyword) in text:
                total += KEYWORD_POINTS
        for capability in descriptor.capabilities:
            if self._normalize(capability) in text:
                total += CAPABILITY_POINTS
        if self._normalize(descriptor.name) in text:
            total += NAME_POINTS
        return total

    @staticmethod
    def max_score(descriptor: AgentDescriptor) -> int:
        return (
            len(descriptor.keywords) * KEYWORD_POINTS
            + len(descriptor.capabilities) * CAPABILITY_POINTS
            + NAME_POINTS
        )

    async def select_agent(
        self,
        input: str,
        agents: Sequence[AgentDescriptor],
        context: RunContext | None = None,
    ) -> RoutingDecision:
        trivial = _trivial_decision(agents)
        if trivial is not None:
            return trivial

        fallback_name = agents[0].name
        scores = [(agent, self.score(input, agent)) for agent in agents]
        best_agent, best_score = max(scores, key=lambda pair: pair[1])

        if best_score <= 0:
            return RoutingDecision(fallback_name, confidence=0.0, reasoning=NO_MATCH_REASONING)

        tied = [agent.name for agent, s in scores if s == best_score]
        if len(tied) > 1:
            return RoutingDecision(
                fallback_name,
                confidence=0.0,
                reasoning=f"Tie between {', '.join(tied)} (score {best_score}), using fallback agent",
            )

        confidence = min(best_score / max(self.max_score(best_agent), 1), 1.0)
        if confidence < self.minimum_confidence:
            return RoutingDecision(
                fallback_name,
                confidence=0.0,
                reasoning=f"Confidence too low ({confidence}), using fallback agent",
            )

        return RoutingDecision(
            best_agent.name,
            confidence=confidence,
            reasoning=f"Keyword matching score: {best_score}",
        )


SelectionFn = Callable[[str, Sequence[AgentDescriptor], Any], "RoutingDecision | Awaitable[RoutingDecision]"]


class CallableRoutingStrategy(RoutingStrategy):
    """Delegates selection to ``fn(input, agents, context)``, sync or async."""

    def __init__(self, fn: SelectionFn):
        self._fn = fn

    async def select_agent(
        self,
        input: str,
        agents: Sequence[AgentDescriptor],
        context: RunContext | None = None,
    ) -> RoutingDecision:
        if not agents:
            raise RoutingFailedError(NO_AGENTS_REASON)
        return await _maybe_await(self._fn(input, agents, context))


CompletionFn = Callable[[str], "str | Awaitable[str]"]


class PromptRoutingStrategy(RoutingStrategy):
    """Asks a text completion function which agent should handle the input.

    The engine never calls a model itself; ``complete`` is supplied by the
    caller and receives a routing prompt listing every agent. The reply is
    matched against agent names, exact match first (confidence 0.95), then
    substring (0.85). An unrecognised reply falls back to keyword scoring at
    70% confidence. If ``complete`` raises and ``fallback_to_keyword`` is
    set, keyword scoring is used instead.
    """

    def __init__(
        self,
        complete: CompletionFn,
        fallback_to_keyword: bool = True,
        *,
        keyword_strategy: KeywordRoutingStrategy | None = None,
        logger: StructuredLogger | None = None,
    ):
        self._complete = complete
        self.fallback_to_keyword = fallback_to_keyword
        self._keyword = keyword_strategy or KeywordRoutingStrategy()
        self._logger = logger

    @staticmethod
    def build_prompt(input: str, agents: Sequence[AgentDescriptor]) -> str:
        lines = [
            "You are a routing agent. Your task is to select the most appropriate agent "
            "to handle the user's request.",
            "",
            f'User Request: "{input}"',
            "",
            "Available Agents:",
            "",
        ]
        for index, agent in enumerate(agents, start=1):
            lines.append(f"{index}. {agent.name}")
            lines.append(f"   Description: {agent.description}")
            if agent.capabilities:
                lines.append(f"   Capabilities: {', '.join(agent.capabilities)}")
            if agent.keywords:
                lines.append(f"   Keywords: {', '.join(agent.keywords)}")
            lines.append("")
        lines.append("Respond with ONLY the exact agent name that should handle this request.")
        lines.append("Do not include any explanation or additional text.")
        lines.append("")
        lines.append("Selected Agent:")
        return "\n".join(lines)

    async def _parse(self, reply: str, agents: Sequence[AgentDescriptor]) -> RoutingDecision:
        cleaned = reply.strip().lower()
        for agent in agents:
            if cleaned == agent.name.lower():
                return RoutingDecision(agent.name, 0.95, "LLM selected agent by exact name match")
        for agent in agents:
            if agent.name.lower() in cleaned:
                return RoutingDecision(agent.name, 0.85, "LLM selected agent by partial name match")

        decision = await self._keyword.select_agent(cleaned, agents)
        return RoutingDecision(
            decision.selected_agent_name,
            decision.confidence * 0.7,
            "LLM response unclear, used keyword fallback",
        )

    async def select_agent(
        self,
        input: str,
        agents: Sequence[AgentDescriptor],
        context: RunContext | None = None,
    ) -> RoutingDecision:
        trivial = _trivial_decision(agents)
        if trivial is not None:
            return trivial

        try:
            reply = await _maybe_await(self._complete(self.build_prompt(input, agents)))
        except Exception as e:
            if not self.fallback_to_keyword:
                raise RoutingFailedError(f"LLM routing failed: {e}", cause=e) from e
            (self._logger or get_logger()).warning(
                "Prompt routing failed, using keyword scoring",
                error=str(e),
            )
            return await self._keyword.select_agent(input, agents, context)

        return await self._parse(str(reply), agents)


__all__ = [
    "RoutingStrategy",
    "KeywordRoutingStrategy",
    "CallableRoutingStrategy",
    "PromptRoutingStrategy",
    "KEYWORD_POINTS",
    "CAPABILITY_POINTS",
    "NAME_POINTS",
]
