"""
Tests for the shared run context.
"""

import asyncio
import threading

import pytest

from agent_flow.context import ContextKey, RunContext
from agent_flow.types import AgentResult


class TestRunContextValues:
    """Key-value storage."""

    def test_reserved_keys_are_populated(self):
        ctx = RunContext("hello")

        assert ctx.original_input == "hello"
        assert ctx.get(ContextKey.ORIGINAL_INPUT) == "hello"
        assert ctx.get("original_input") == "hello"
        assert ctx.has(ContextKey.START_TIME)
        assert ctx.execution_id

    def test_get_set_remove(self):
        ctx = RunContext("x")

        ctx.set("k", 1)
        assert ctx.get("k") == 1
        assert "k" in ctx
        assert ctx.remove("k") == 1
        assert ctx.remove("k") is None
        assert ctx.get("k", "default") == "default"

    def test_initial_values(self):
        ctx = RunContext("x", {"user": "u1"})

        assert ctx.get("user") == "u1"
        assert set(ctx.keys()) >= {"user", "original_input", "start_time"}

    def test_snapshot_is_detached(self):
        ctx = RunContext("x")
        snap = ctx.snapshot()

        ctx.set("later", True)

        assert "later" not in snap

    def test_update_and_compute(self):
        ctx = RunContext("x")

        ctx.update({"a": 1, "b": 2})
        assert ctx.compute("a", lambda v: v + 10) == 11
        assert ctx.compute("visits", lambda v: v + 1, default=0) == 1
        assert ctx.get("b") == 2


class TestExecutionTracking:
    """Execution path and previous output."""

    def test_record_execution(self):
        ctx = RunContext("x")

        ctx.record_execution("planner")
        ctx.record_execution("executor")

        assert ctx.execution_path() == ["planner", "executor"]
        assert ctx.get(ContextKey.CURRENT_AGENT_NAME) == "executor"
        assert ctx.get(ContextKey.EXECUTION_PATH) == ["planner", "executor"]

    def test_execution_path_is_a_copy(self):
        ctx = RunContext("x")
        ctx.record_execution("a")

        ctx.execution_path().append("tampered")

        assert ctx.execution_path() == ["a"]

    def test_previous_output(self):
        ctx = RunContext("x")
        assert ctx.previous_output() is None

        ctx.set_previous_output(AgentResult(output="done"))

        assert ctx.previous_output() == "done"


class TestCopyAndMerge:
    """Copying and merging contexts."""

    def test_copy_keeps_values_but_not_path(self):
        ctx = RunContext("x", {"k": 1})
        ctx.record_execution("a")

        clone = ctx.copy({"extra": True})

        assert clone.get("k") == 1
        assert clone.get("extra") is True
        assert clone.execution_path() == []
        assert clone.execution_id != ctx.execution_id
        assert not ctx.has("extra")

    def test_merge_keeps_existing_by_default(self):
        ctx = RunContext("x", {"shared": "mine"})
        other = RunContext("y", {"shared": "theirs", "new": 1})

        ctx.merge(other)

        assert ctx.get("shared") == "mine"
        assert ctx.get("new") == 1

    def test_merge_overwrite(self):
        ctx = RunContext("x", {"shared": "mine"})
        other = RunContext("y", {"shared": "theirs"})

        ctx.merge(other, overwrite=True)

        assert ctx.get("shared") == "theirs"

    def test_merge_appends_unseen_path_entries(self):
        ctx = RunContext("x")
        ctx.record_execution("a")
        other = RunContext("y")
        other.record_execution("a")
        other.record_execution("b")

        ctx.merge(other)

        assert ctx.execution_path() == ["a", "b"]


class TestConcurrency:
    """Thread and task safety."""

    def test_threads_do_not_lose_updates(self):
        ctx = RunContext("x")

        def bump():
            for _ in range(1000):
                ctx.compute("n", lambda v: v + 1, default=0)

        threads = [threading.Thread(target=bump) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert ctx.get("n") == 4000

    @pytest.mark.asyncio
    async def test_concurrent_tasks_record_every_execution(self):
        ctx = RunContext("x")

        async def record(name):
            await asyncio.sleep(0)
            ctx.record_execution(name)

        await asyncio.gather(*(record(f"agent{i}") for i in range(20)))

        assert sorted(ctx.execution_path()) == sorted(f"agent{i}" for i in range(20))
