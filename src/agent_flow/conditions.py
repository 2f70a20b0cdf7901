"""
Route conditions.

A RouteCondition is an immutable predicate over (input text, optional
RunContext). Base conditions look only at the input, except ContextHas.
Conditions compose with ``&``, ``|`` and ``~`` (or ``and_``, ``or_``,
``negate``); And/Or short-circuit left to right.

Example:
    ```python
    cond = contains("weather") & ~starts_with("ignore")
    cond.matches("What's the weather?")  # True
    ```
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .context import RunContext


class RouteCondition(ABC):
    """Base class for all route conditions."""

    @abstractmethod
    def matches(self, input: str, context: RunContext | None = None) -> bool:
        """Evaluate the condition."""

    def and_(self, other: RouteCondition) -> RouteCondition:
        return And(self, other)

    def or_(self, other: RouteCondition) -> RouteCondition:
        return Or(self, other)

    def negate(self) -> RouteCondition:
        return Not(self)

    def __and__(self, other: RouteCondition) -> RouteCondition:
        return self.and_(other)

    def __or__(self, other: RouteCondition) -> RouteCondition:
        return self.or_(other)

    def __invert__(self) -> RouteCondition:
        return self.negate()


# =============================================================================
# Input conditions
# =============================================================================


@dataclass(frozen=True)
class Contains(RouteCondition):
    substring: str
    case_sensitive: bool = False

    def matches(self, input: str, context: RunContext | None = None) -> bool:
        if self.case_sensitive:
            return self.substring in input
        return self.substring.casefold() in input.casefold()


@dataclass(frozen=True)
class MatchesPattern(RouteCondition):
    """Regex search anywhere in the input. An invalid pattern never matches."""

    pattern: str

    def matches(self, input: str, context: RunContext | None = None) -> bool:
        try:
            compiled = re.compile(self.pattern)
        except re.error:
            return False
        return compiled.search(input) is not None


@dataclass(frozen=True)
class StartsWith(RouteCondition):
    prefix: str

    def matches(self, input: str, context: RunContext | None = None) -> bool:
        return input.lower().startswith(self.prefix.lower())


@dataclass(frozen=True)
class EndsWith(RouteCondition):
    suffix: str

    def matches(self, input: str, context: RunContext | None = None) -> bool:
        return input.lower().endswith(self.suffix.lower())


@dataclass(frozen=True)
class LengthInRange(RouteCondition):
    """Input length within ``minimum..maximum``, both inclusive."""

    minimum: int
    maximum: int

    def __post_init__(self):
        if self.minimum < 0:
            raise ValueError("minimum length cannot be negative")
        if self.minimum > self.maximum:
            raise ValueError(f"invalid length range: {self.minimum} > {self.maximum}")

    def matches(self, input: str, context: RunContext | None = None) -> bool:
        return self.minimum <= len(input) <= self.maximum


# =============================================================================
# Context conditions
# =============================================================================


@dataclass(frozen=True)
class ContextHas(RouteCondition):
    """True when the run context holds ``key``; False without a context."""

    key: str

    def matches(self, input: str, context: RunContext | None = None) -> bool:
        if context is None:
            return False
        return context.has(self.key)


# =============================================================================
# Constants
# =============================================================================


@dataclass(frozen=True)
class Always(RouteCondition):
    def matches(self, input: str, context: RunContext | None = None) -> bool:
        return True


@dataclass(frozen=True)
class Never(RouteCondition):
    def matches(self, input: str, context: RunContext | None = None) -> bool:
        return False


# =============================================================================
# Combinators
# =============================================================================


@dataclass(frozen=True)
class And(RouteCondition):
    left: RouteCondition
    right: RouteCondition

    def matches(self, input: str, context: RunContext | None = None) -> bool:
        return self.left.matches(input, context) and self.right.matches(input, context)


@dataclass(frozen=True)
class Or(RouteCondition):
    left: RouteCondition
    right: RouteCondition

    def matches(self, input: str, context: RunContext | None = None) -> bool:
        return self.left.matches(input, context) or self.right.matches(input, context)


@dataclass(frozen=True)
class Not(RouteCondition):
    operand: RouteCondition

    def matches(self, input: str, context: RunContext | None = None) -> bool:
        return not self.operand.matches(input, context)

    def negate(self) -> RouteCondition:
        # Double negation collapses to the original condition
        return self.operand


@dataclass(frozen=True)
class Custom(RouteCondition):
    """Wraps a ``predicate(input, context) -> bool``."""

    predicate: Callable[[str, Any], bool]

    def matches(self, input: str, context: RunContext | None = None) -> bool:
        return bool(self.predicate(input, context))


# =============================================================================
# Factories
# =============================================================================


def contains(substring: str, case_sensitive: bool = False) -> RouteCondition:
    return Contains(substring, case_sensitive)


def matches_pattern(pattern: str) -> RouteCondition:
    return MatchesPattern(pattern)


def starts_with(prefix: str) -> RouteCondition:
    return StartsWith(prefix)


def ends_with(suffix: str) -> RouteCondition:
    return EndsWith(suffix)


def length_in_range(minimum: int, maximum: int) -> RouteCondition:
    return LengthInRange(minimum, maximum)


def context_has(key: str) -> RouteCondition:
    return ContextHas(key)


def custom(predicate: Callable[[str, Any], bool]) -> RouteCondition:
    return Custom(predicate)


ALWAYS: RouteCondition = Always()
NEVER: RouteCondition = Never()


__all__ = [
    "RouteCondition",
    "Contains",
    "MatchesPattern",
    "StartsWith",
    "EndsWith",
    "LengthInRange",
    "ContextHas",
    "Always",
    "Never",
    "And",
    "Or",
    "Not",
    "Custom",
    "contains",
    "matches_pattern",
    "starts_with",
    "ends_with",
    "length_in_range",
    "context_has",
    "custom",
    "ALWAYS",
    "NEVER",
]
