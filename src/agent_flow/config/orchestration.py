"""
Parallel, routing and handoff configuration.
"""

from __future__ import annotations

from dataclasses import dataclass

from .base import VALID_ERROR_HANDLING, ErrorHandlingMode


@dataclass
class ParallelConfig:
    """Defaults for Parallel stages."""

    max_concurrency: int | None = None
    timeout_seconds: float | None = None
    separator: str = "\n\n"
    error_handling: ErrorHandlingMode = "continue_on_partial_failure"

    def __post_init__(self):
        if self.max_concurrency is not None and self.max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        if self.timeout_seconds is not None and self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")
        if self.error_handling not in VALID_ERROR_HANDLING:
            raise ValueError(
                f"Invalid error handling mode: {self.error_handling}. Must be one of {VALID_ERROR_HANDLING}"
            )


@dataclass
class RoutingConfig:
    """Defaults for keyword-scored agent selection."""

    case_sensitive: bool = False
    minimum_confidence: float = 0.1

    def __post_init__(self):
        if not 0.0 <= self.minimum_confidence <= 1.0:
            raise ValueError("minimum_confidence must be between 0.0 and 1.0")


@dataclass
class HandoffConfig:
    """Defaults for handoff execution."""

    # HandoffInputData.context gets a copy of the run context; an empty
    # mapping when off
    context_snapshot: bool = True
    tool_name_prefix: str = "handoff_to_"

    def __post_init__(self):
        if not self.tool_name_prefix:
            raise ValueError("tool_name_prefix cannot be empty")


__all__ = ["ParallelConfig", "RoutingConfig", "HandoffConfig"]
