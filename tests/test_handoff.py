"""
Tests for handoff configuration and execution.
"""

import json

import pytest

from agent_flow.config import HandoffConfig, configure
from agent_flow.context import RunContext
from agent_flow.errors import HandoffCallbackError, HandoffSkippedError
from agent_flow.handoff import (
    HandoffBuilder,
    HandoffConfiguration,
    HandoffInputData,
    camel_to_snake,
    find_handoff,
    handoff,
)
from tests._fakes import EchoAgent, ExecutorAgent, FailingAgent, PlannerAgent


class TestToolNaming:
    """Tool names and descriptions derived from the target."""

    def test_camel_to_snake(self):
        assert camel_to_snake("ExecutorAgent") == "executor_agent"
        assert camel_to_snake("HTTPAgent") == "h_t_t_p_agent"
        assert camel_to_snake("agent") == "agent"

    def test_default_tool_name_and_description(self):
        config = handoff(ExecutorAgent("executor"))

        assert config.effective_tool_name == "handoff_to_executor_agent"
        assert config.effective_tool_description == "Hand off execution to ExecutorAgent"
        assert config.target_name == "executor"

    def test_overrides(self):
        config = handoff(ExecutorAgent("executor"), tool_name="run_it", tool_description="Runs things")

        assert config.effective_tool_name == "run_it"
        assert config.effective_tool_description == "Runs things"

    def test_prefix_from_settings(self):
        configure(handoff=HandoffConfig(tool_name_prefix="transfer_to_"))

        assert handoff(PlannerAgent("p")).effective_tool_name == "transfer_to_planner_agent"

    def test_openai_tool_definition(self):
        tool = handoff(ExecutorAgent("executor")).to_openai_format()

        assert tool["type"] == "function"
        assert tool["function"]["name"] == "handoff_to_executor_agent"
        assert tool["function"]["parameters"]["required"] == ["input"]

    def test_parse_arguments(self):
        assert HandoffConfiguration.parse_arguments('{"input": "do it"}') == "do it"
        assert HandoffConfiguration.parse_arguments({"input": "x"}) == "x"

        with pytest.raises(ValueError, match="Invalid JSON"):
            HandoffConfiguration.parse_arguments("{not json")
        with pytest.raises(ValueError, match="Invalid handoff arguments"):
            HandoffConfiguration.parse_arguments(json.dumps({"task": "x"}))


class TestBuilder:
    """Fluent construction."""

    def test_builder_sets_every_field(self):
        target = ExecutorAgent("executor")

        def observer(ctx, data):
            return None

        def keep(data):
            return data

        def gate(ctx, agent):
            return True

        config = (
            HandoffBuilder(target)
            .tool_name("go")
            .tool_description("Go there")
            .on_handoff(observer)
            .input_filter(keep)
            .is_enabled(gate)
            .nest_history()
            .build()
        )

        assert config.target is target
        assert config.tool_name_override == "go"
        assert config.tool_description == "Go there"
        assert config.on_handoff is observer
        assert config.input_filter is keep
        assert config.is_enabled is gate
        assert config.nest_handoff_history is True

    def test_configuration_is_immutable(self):
        config = handoff(ExecutorAgent("executor"))
        with pytest.raises(AttributeError):
            config.tool_name_override = "changed"


class TestHandoffExecution:
    """Gate, filter, observer and target run."""

    @pytest.mark.asyncio
    async def test_plain_handoff(self, logger):
        target = ExecutorAgent("executor")
        ctx = RunContext("original")

        result = await handoff(target).execute("planner", "do the work", ctx, logger=logger)

        assert result.output == "executor: do the work"
        assert result.metadata["handoff.source"] == "planner"
        assert result.metadata["handoff.target"] == "executor"
        assert result.metadata["handoff.tool_name"] == "handoff_to_executor_agent"
        assert result.metadata["handoff.nested"] is False
        assert ctx.execution_path() == ["executor"]
        assert ctx.get("handoff_source") == "planner"
        assert ctx.previous_output() == "executor: do the work"

    @pytest.mark.asyncio
    async def test_explicit_unit_runs_instead_of_target(self, logger):
        target = EchoAgent("first")
        other = EchoAgent("second")
        gated = []
        config = handoff(target, is_enabled=lambda ctx, unit: gated.append(unit) or True)
        ctx = RunContext("x")

        result = await config.execute("planner", "go", ctx, unit=other, logger=logger)

        assert result.output == "second: go"
        assert target.call_count == 0
        assert gated == [other]
        assert result.metadata["handoff.target"] == "second"
        assert ctx.execution_path() == ["second"]

    @pytest.mark.asyncio
    async def test_input_filter_rewrites_input(self, logger):
        target = ExecutorAgent("executor")
        config = handoff(target, input_filter=lambda data: data.replace(input=f"[filtered] {data.input}"))

        await config.execute("planner", "task", RunContext("task"), logger=logger)

        assert target.inputs == ["[filtered] task"]

    @pytest.mark.asyncio
    async def test_on_handoff_sees_filtered_data_and_mutates_context(self, logger):
        seen: list[HandoffInputData] = []

        async def observer(ctx, data):
            seen.append(data)
            ctx.set("observed", True)

        config = handoff(
            ExecutorAgent("executor"),
            input_filter=lambda data: data.replace(metadata={"priority": "high"}),
            on_handoff=observer,
        )
        ctx = RunContext("task")
        ctx.set("user", "u1")

        await config.execute("planner", "task", ctx, logger=logger)

        assert seen[0].source_agent_name == "planner"
        assert seen[0].target_agent_name == "executor"
        assert seen[0].context["user"] == "u1"
        assert seen[0].metadata == {"priority": "high"}
        assert ctx.get("observed") is True
        # Payload metadata lands in the shared context
        assert ctx.get("priority") == "high"

    @pytest.mark.asyncio
    async def test_snapshot_is_not_live(self, logger):
        captured = []
        config = handoff(ExecutorAgent("executor"), on_handoff=lambda ctx, data: captured.append(data))
        ctx = RunContext("task")

        await config.execute("planner", "task", ctx, logger=logger)
        ctx.set("later", 1)

        assert "later" not in captured[0].context

    @pytest.mark.asyncio
    async def test_snapshot_can_be_disabled(self, logger):
        configure(handoff=HandoffConfig(context_snapshot=False))
        captured = []
        config = handoff(ExecutorAgent("executor"), on_handoff=lambda ctx, data: captured.append(data))

        await config.execute("planner", "task", RunContext("task"), logger=logger)

        assert captured[0].context == {}

    @pytest.mark.asyncio
    async def test_disabled_handoff_is_skipped(self, logger):
        target = ExecutorAgent("executor")
        config = handoff(target, is_enabled=lambda ctx, agent: ctx.has("allowed"))

        with pytest.raises(HandoffSkippedError) as exc_info:
            await config.execute("planner", "task", RunContext("task"), logger=logger)

        assert target.call_count == 0
        assert exc_info.value.source == "planner"
        assert exc_info.value.target == "executor"

    @pytest.mark.asyncio
    async def test_async_gate(self, logger):
        async def gate(ctx, agent):
            return True

        result = await handoff(ExecutorAgent("executor"), is_enabled=gate).execute(
            "planner", "task", RunContext("task"), logger=logger
        )

        assert result.output == "executor: task"

    @pytest.mark.asyncio
    async def test_failing_filter_aborts(self, logger):
        target = ExecutorAgent("executor")

        def broken(data):
            raise KeyError("missing")

        with pytest.raises(HandoffCallbackError, match="input filter failed") as exc_info:
            await handoff(target, input_filter=broken).execute("planner", "task", RunContext("task"), logger=logger)

        assert target.call_count == 0
        assert isinstance(exc_info.value.cause, KeyError)
        assert exc_info.value.context.agent == "executor"
        assert exc_info.value.context.operation == "handoff"

    @pytest.mark.asyncio
    async def test_failing_observer_aborts(self, logger):
        target = ExecutorAgent("executor")

        def broken(ctx, data):
            raise RuntimeError("observer down")

        with pytest.raises(HandoffCallbackError, match="on_handoff callback failed: observer down"):
            await handoff(target, on_handoff=broken).execute("planner", "task", RunContext("task"), logger=logger)

        assert target.call_count == 0

    @pytest.mark.asyncio
    async def test_target_failure_propagates(self, logger):
        with pytest.raises(RuntimeError, match="executor failed"):
            await handoff(FailingAgent("executor")).execute("planner", "task", RunContext("task"), logger=logger)

    @pytest.mark.asyncio
    async def test_nested_history_links_traces(self, logger):
        config = handoff(ExecutorAgent("executor"), nest_history=True)

        with logger.trace_context(trace_id="trace_parent"):
            result = await config.execute("planner", "task", RunContext("task"), logger=logger)

        assert result.metadata["handoff.nested"] is True
        assert result.metadata["handoff.parent_trace_id"] == "trace_parent"
        assert result.metadata["handoff.trace_id"] != "trace_parent"

    @pytest.mark.asyncio
    async def test_flat_history_has_no_parent(self, logger):
        with logger.trace_context(trace_id="trace_parent"):
            result = await handoff(ExecutorAgent("executor")).execute(
                "planner", "task", RunContext("task"), logger=logger
            )

        assert "handoff.parent_trace_id" not in result.metadata


class TestFindHandoff:
    """Matching configurations to units."""

    def test_identity_before_type(self):
        first, second = EchoAgent("first"), EchoAgent("second")
        by_type = handoff(first)
        by_identity = handoff(second)

        assert find_handoff([by_type, by_identity], second) is by_identity

    def test_falls_back_to_type(self):
        config = handoff(ExecutorAgent("configured"))

        assert find_handoff([config], ExecutorAgent("other")) is config
        assert find_handoff([config], PlannerAgent("planner")) is None

    def test_input_data_repr_truncates(self):
        data = HandoffInputData("a", "b", "x" * 80)
        assert "..." in repr(data)
        assert data.context == {}
