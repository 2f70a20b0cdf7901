"""
Concurrent fan-out.

A Parallel stage runs every branch against the same input, waits for all of
them, and composes one result from the branches that succeeded. Branch
failures are collected as data; by default the stage only fails when every
branch failed.

Example:
    ```python
    stage = Parallel(
        [branch("summary", summarizer), branch("sentiment", classifier)],
        max_concurrency=2,
    )
    result = await stage.run(text)
    result.metadata["parallel.success_count"]
    ```
"""

from __future__ import annotations

import asyncio
import json
import time
from collections.abc import AsyncIterator, Callable, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from .cancellation import CancellationToken
from .errors import AllBranchesFailedError, ErrorContext, NoAgentsConfiguredError
from .logging import BranchLog, StructuredLogger, get_logger
from .types import AgentEvent, AgentResult, Runnable, TokenUsage

if TYPE_CHECKING:
    from .context import RunContext
    from .orchestration import StepContext


@dataclass(frozen=True)
class ParallelBranch:
    label: str
    unit: Runnable


def branch(label: str, unit: Runnable) -> ParallelBranch:
    return ParallelBranch(label=label, unit=unit)


class MergeStrategy(str, Enum):
    """How successful branch outputs become one output."""

    LABELED = "labeled"  # "label: output" joined by the separator
    CONCATENATE = "concatenate"  # outputs only, joined by the separator
    STRUCTURED = "structured"  # JSON object label -> output
    FIRST = "first"  # first successful branch in declaration order
    LONGEST = "longest"


class ParallelErrorHandling(str, Enum):
    FAIL_FAST = "fail_fast"
    CONTINUE_ON_PARTIAL_FAILURE = "continue_on_partial_failure"
    COLLECT_ERRORS = "collect_errors"


MergeFn = Callable[[list[tuple[str, AgentResult]]], str]


def _merge_outputs(
    strategy: MergeStrategy | MergeFn,
    successes: list[tuple[str, AgentResult]],
    separator: str,
) -> str:
    if callable(strategy) and not isinstance(strategy, MergeStrategy):
        return strategy(successes)
    if not successes:
        return ""
    if strategy == MergeStrategy.LABELED:
        return separator.join(f"{label}: {result.output}" for label, result in successes)
    if strategy == MergeStrategy.CONCATENATE:
        return separator.join(result.output for _, result in successes)
    if strategy == MergeStrategy.STRUCTURED:
        return json.dumps({label: result.output for label, result in successes}, indent=2)
    if strategy == MergeStrategy.FIRST:
        return successes[0][1].output
    if strategy == MergeStrategy.LONGEST:
        return max(successes, key=lambda pair: len(pair[1].output))[1].output
    raise ValueError(f"Unknown merge strategy: {strategy}")


class Parallel:
    """Runs branches concurrently and joins all of them.

    Launch order follows declaration order; completion order is not
    observable in the result because aggregation restores declaration order.
    """

    def __init__(
        self,
        branches: Sequence[ParallelBranch],
        merge: MergeStrategy | MergeFn = MergeStrategy.LABELED,
        max_concurrency: int | None = None,
        timeout_seconds: float | None = None,
        error_handling: ParallelErrorHandling | str | None = None,
        name: str = "parallel",
        *,
        separator: str | None = None,
        logger: StructuredLogger | None = None,
    ):
        from .config import get_settings

        defaults = get_settings().parallel

        self.name = name
        self._branches = list(branches)
        self._merge = merge
        self._max_concurrency = max_concurrency if max_concurrency is not None else defaults.max_concurrency
        self._timeout = timeout_seconds if timeout_seconds is not None else defaults.timeout_seconds
        self._error_handling = ParallelErrorHandling(error_handling or defaults.error_handling)
        self._separator = separator if separator is not None else defaults.separator
        self._token = CancellationToken()
        self._logger = logger

        if self._max_concurrency is not None and self._max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")

        labels = [b.label for b in self._branches]
        duplicates = sorted({label for label in labels if labels.count(label) > 1})
        if duplicates:
            raise ValueError(f"Duplicate branch labels: {', '.join(duplicates)}")

    @property
    def branches(self) -> list[ParallelBranch]:
        return list(self._branches)

    @property
    def error_handling(self) -> ParallelErrorHandling:
        return self._error_handling

    @property
    def is_cancelled(self) -> bool:
        return self._token.is_cancelled

    @property
    def logger(self) -> StructuredLogger:
        return self._logger or get_logger()

    async def _run_branch(
        self,
        item: ParallelBranch,
        input: str,
        semaphore: asyncio.Semaphore | None,
    ) -> AgentResult:
        started = time.perf_counter()
        try:
            if semaphore is not None:
                async with semaphore:
                    result = await self._call(item, input)
            else:
                result = await self._call(item, input)
        except Exception as e:
            self.logger.log_branch(
                BranchLog(
                    stage=self.name,
                    label=item.label,
                    success=False,
                    error=str(e) or type(e).__name__,
                    duration_ms=(time.perf_counter() - started) * 1000,
                )
            )
            raise
        self.logger.log_branch(
            BranchLog(stage=self.name, label=item.label, duration_ms=(time.perf_counter() - started) * 1000)
        )
        return result

    async def _call(self, item: ParallelBranch, input: str) -> AgentResult:
        if self._timeout is None:
            return await item.unit.run(input)
        try:
            return await asyncio.wait_for(item.unit.run(input), timeout=self._timeout)
        except asyncio.TimeoutError:
            raise TimeoutError(f"Branch '{item.label}' timed out after {self._timeout}s") from None

    async def _gather(self, tasks: list[asyncio.Task]) -> list[AgentResult | BaseException]:
        if self._error_handling != ParallelErrorHandling.FAIL_FAST:
            return await asyncio.gather(*tasks, return_exceptions=True)

        # Stop the remaining branches as soon as one fails
        done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        return [_outcome(t) for t in tasks]

    async def run(self, input: str, *, context: RunContext | None = None) -> AgentResult:
        """Run all branches and compose the result.

        Raises:
            NoAgentsConfiguredError: no branches.
            CancelledError: the stage was cancelled.
            AllBranchesFailedError: every branch failed (default mode).
        """
        if not self._branches:
            raise NoAgentsConfiguredError("Parallel stage has no branches")
        self._token.raise_if_cancelled()

        started = time.perf_counter()
        if context is not None:
            context.record_execution(self.name)

        semaphore = asyncio.Semaphore(self._max_concurrency) if self._max_concurrency else None
        tasks = [asyncio.create_task(self._run_branch(b, input, semaphore)) for b in self._branches]
        outcomes = await self._gather(tasks)

        self._token.raise_if_cancelled()

        successes: list[tuple[str, AgentResult]] = []
        errors: dict[str, BaseException] = {}
        for item, outcome in zip(self._branches, outcomes):
            if isinstance(outcome, BaseException):
                errors[item.label] = outcome
            else:
                successes.append((item.label, outcome))

        if errors and self._error_handling == ParallelErrorHandling.FAIL_FAST:
            # Siblings stopped by the failure are recorded too; raise the real one
            raise next(
                (e for e in errors.values() if not isinstance(e, asyncio.CancelledError)),
                next(iter(errors.values())),
            )

        if not successes and self._error_handling != ParallelErrorHandling.COLLECT_ERRORS:
            raise AllBranchesFailedError(errors, context=ErrorContext(agent=self.name, operation="parallel"))

        result = self._compose(successes, errors, time.perf_counter() - started)
        if context is not None:
            context.set_previous_output(result)
        return result

    def _compose(
        self,
        successes: list[tuple[str, AgentResult]],
        errors: dict[str, BaseException],
        duration: float,
    ) -> AgentResult:
        metadata: dict[str, Any] = {}
        tool_calls: list[Any] = []
        tool_results: list[Any] = []
        usage: TokenUsage | None = None
        iterations = 0

        for label, result in successes:
            for key, value in result.metadata.items():
                metadata[f"parallel.{label}.{key}"] = value
            tool_calls.extend(result.tool_calls)
            tool_results.extend(result.tool_results)
            iterations = max(iterations, result.iteration_count)
            if result.token_usage is not None:
                usage = result.token_usage if usage is None else usage + result.token_usage

        metadata.update(
            {
                "parallel.branch_count": len(self._branches),
                "parallel.success_count": len(successes),
                "parallel.error_count": len(errors),
                "parallel.duration": duration,
            }
        )
        if errors:
            metadata["parallel.errors"] = {label: str(e) or type(e).__name__ for label, e in errors.items()}

        return AgentResult(
            output=_merge_outputs(self._merge, successes, self._separator),
            tool_calls=tool_calls,
            tool_results=tool_results,
            iteration_count=iterations,
            duration=duration,
            token_usage=usage,
            metadata=metadata,
        )

    async def stream(self, input: str, *, context: RunContext | None = None) -> AsyncIterator[AgentEvent]:
        yield AgentEvent.started(input)
        if self._token.is_cancelled:
            yield AgentEvent.cancelled()
            return
        try:
            result = await self.run(input, context=context)
        except Exception as e:
            if self._token.is_cancelled:
                yield AgentEvent.cancelled()
            else:
                yield AgentEvent.failed(e)
            return
        yield AgentEvent.completed(result)

    async def execute(self, input: str, step_context: StepContext) -> AgentResult:
        return await self.run(input, context=step_context.run_context)

    async def cancel(self) -> None:
        """Cancel the stage and forward cancel() to every branch unit."""
        self._token.cancel()
        await asyncio.gather(*(b.unit.cancel() for b in self._branches), return_exceptions=True)

    def reset(self) -> None:
        self._token.reset()

    def __repr__(self) -> str:
        labels = ", ".join(b.label for b in self._branches)
        return f"Parallel(name={self.name!r}, branches=[{labels}])"


def _outcome(task: asyncio.Task) -> AgentResult | BaseException:
    if task.cancelled():
        return asyncio.CancelledError("Branch cancelled after a sibling failed")
    return task.exception() or task.result()


__all__ = [
    "ParallelBranch",
    "branch",
    "MergeStrategy",
    "ParallelErrorHandling",
    "Parallel",
]
