"""
Tests for route conditions.
"""

import pytest

from agent_flow.conditions import (
    ALWAYS,
    NEVER,
    Not,
    contains,
    context_has,
    custom,
    ends_with,
    length_in_range,
    matches_pattern,
    starts_with,
)
from agent_flow.context import RunContext


class TestInputConditions:
    """Conditions over the input text."""

    def test_contains_is_case_insensitive_by_default(self):
        assert contains("weather").matches("What's the WEATHER today?")
        assert not contains("news").matches("What's the weather today?")

    def test_contains_case_sensitive(self):
        cond = contains("Weather", case_sensitive=True)
        assert cond.matches("Weather report")
        assert not cond.matches("weather report")

    def test_matches_pattern_searches_anywhere(self):
        cond = matches_pattern(r"\d{3}-\d{4}")
        assert cond.matches("call 555-1234 now")
        assert not cond.matches("no number here")

    def test_invalid_pattern_never_matches(self):
        cond = matches_pattern("[unclosed")
        assert not cond.matches("[unclosed")
        assert not cond.matches("anything")

    def test_starts_with_and_ends_with_ignore_case(self):
        assert starts_with("hello").matches("Hello world")
        assert ends_with("WORLD").matches("hello world")
        assert not starts_with("world").matches("hello world")

    def test_length_in_range_is_inclusive(self):
        cond = length_in_range(2, 4)
        assert not cond.matches("a")
        assert cond.matches("ab")
        assert cond.matches("abcd")
        assert not cond.matches("abcde")

    def test_length_in_range_rejects_bad_bounds(self):
        with pytest.raises(ValueError):
            length_in_range(-1, 3)
        with pytest.raises(ValueError):
            length_in_range(5, 2)

    def test_constants(self):
        assert ALWAYS.matches("")
        assert not NEVER.matches("anything")


class TestContextConditions:
    """Conditions reading the run context."""

    def test_context_has(self):
        ctx = RunContext("input")
        ctx.set("user_id", "u1")
        assert context_has("user_id").matches("input", ctx)
        assert not context_has("missing").matches("input", ctx)

    def test_context_has_without_context(self):
        assert not context_has("user_id").matches("input")

    def test_custom_receives_input_and_context(self):
        seen = []

        def predicate(text, ctx):
            seen.append((text, ctx))
            return text.isupper()

        ctx = RunContext("LOUD")
        assert custom(predicate).matches("LOUD", ctx)
        assert seen == [("LOUD", ctx)]


class TestCombinators:
    """And / Or / Not composition."""

    def test_and_or(self):
        both = contains("a") & contains("b")
        either = contains("a") | contains("b")

        assert both.matches("ab")
        assert not both.matches("a")
        assert either.matches("b")
        assert not either.matches("c")

    def test_method_forms(self):
        cond = contains("x").and_(contains("y")).or_(contains("z"))
        assert cond.matches("z")
        assert cond.matches("xy")
        assert not cond.matches("x")

    def test_not(self):
        cond = ~contains("spam")
        assert cond.matches("ham")
        assert not cond.matches("spam")

    def test_double_negation_collapses(self):
        base = contains("spam")
        assert isinstance(base.negate(), Not)
        assert base.negate().negate() == base

    def test_and_short_circuits(self):
        calls = []
        tracked = custom(lambda text, ctx: calls.append(text) or True)

        assert not (NEVER & tracked).matches("x")
        assert calls == []

    def test_or_short_circuits(self):
        calls = []
        tracked = custom(lambda text, ctx: calls.append(text) or True)

        assert (ALWAYS | tracked).matches("x")
        assert calls == []

    def test_conditions_are_values(self):
        assert contains("a") == contains("a")
        assert hash(starts_with("x")) == hash(starts_with("x"))
