"""
Tests for the error taxonomy.
"""

import pytest

from agent_flow.cancellation import CancelledError
from agent_flow.errors import (
    AgentNotFoundError,
    AllBranchesFailedError,
    ConfigError,
    ErrorCode,
    ErrorContext,
    HandoffCallbackError,
    HandoffError,
    HandoffSkippedError,
    NoAgentsConfiguredError,
    OrchestrationError,
    RoutingFailedError,
    is_cancellation,
)


class TestErrorCodes:
    """Test error code enumeration."""

    def test_error_codes_are_strings(self):
        assert ErrorCode.ROUTING_FAILED.value.startswith("ERR_")
        assert ErrorCode.ALL_BRANCHES_FAILED.value.startswith("ERR_")

    def test_error_codes_unique(self):
        values = [e.value for e in ErrorCode]
        assert len(values) == len(set(values))


class TestErrorContext:
    """Test error context."""

    def test_to_dict(self):
        ctx = ErrorContext(run_id="run_1", orchestration="flow", step=2, extra={"custom": "data"})

        d = ctx.to_dict()

        assert d["run_id"] == "run_1"
        assert d["step"] == 2
        assert d["custom"] == "data"


class TestOrchestrationErrors:
    """Messages, codes and hierarchy."""

    def test_base_error_str(self):
        err = OrchestrationError("broken", context=ErrorContext(run_id="run_9"))

        assert str(err) == "[ERR_9000] broken (run_id=run_9)"
        assert err.to_dict()["code"] == "ERR_9000"

    def test_cause_is_kept(self):
        cause = ValueError("inner")
        err = ConfigError("bad config", cause=cause)

        assert err.cause is cause
        assert err.to_dict()["cause"] == "inner"
        assert err.code == ErrorCode.CONFIG_ERROR

    def test_routing_failed(self):
        err = RoutingFailedError("no match")

        assert err.reason == "no match"
        assert err.message == "Routing decision failed: no match"
        assert err.code == ErrorCode.ROUTING_FAILED

    def test_not_found_and_no_agents(self):
        assert AgentNotFoundError("ghost").message == "Agent not found: ghost"
        assert NoAgentsConfiguredError().message == "No agents configured"

    def test_all_branches_failed_lists_branches(self):
        err = AllBranchesFailedError({"a": RuntimeError("x"), "b": ValueError("y")})

        assert err.message == "All parallel branches failed: [a: x, b: y]"
        assert set(err.errors) == {"a", "b"}

    def test_handoff_errors(self):
        skipped = HandoffSkippedError("planner", "executor")
        callback = HandoffCallbackError("planner", "executor", "input filter failed: boom")

        assert isinstance(skipped, HandoffError)
        assert isinstance(callback, HandoffError)
        assert skipped.reason == "Handoff disabled by is_enabled callback"
        assert callback.message == "Handoff failed from 'planner' to 'executor': input filter failed: boom"
        assert skipped.code == ErrorCode.HANDOFF_SKIPPED

    @pytest.mark.parametrize(
        "error",
        [
            RoutingFailedError("x"),
            NoAgentsConfiguredError(),
            AgentNotFoundError("x"),
            AllBranchesFailedError({}),
            HandoffSkippedError("a", "b"),
            ConfigError("x"),
        ],
    )
    def test_all_are_orchestration_errors(self, error):
        assert isinstance(error, OrchestrationError)

    def test_is_cancellation(self):
        assert is_cancellation(CancelledError())
        assert not is_cancellation(RuntimeError())
