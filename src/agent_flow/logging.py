"""
Structured Logging for agent-flow.

This module provides:
- Structured JSON logging with consistent fields
- Typed records for routing, branch, handoff and step events
- Trace correlation across nested handoffs
- Timing helpers
"""

from __future__ import annotations

import json
import logging
import sys
import time
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any

# =============================================================================
# Log Record Types
# =============================================================================


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class LogContext:
    """Context information attached to log records."""

    trace_id: str | None = None
    parent_trace_id: str | None = None
    run_id: str | None = None
    orchestration: str | None = None
    agent: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        d = {k: v for k, v in asdict(self).items() if v is not None and k != "extra"}
        d.update(self.extra)
        return d

    def with_update(self, **kwargs) -> LogContext:
        """Create a new context with updated values."""
        return LogContext(
            trace_id=kwargs.get("trace_id", self.trace_id),
            parent_trace_id=kwargs.get("parent_trace_id", self.parent_trace_id),
            run_id=kwargs.get("run_id", self.run_id),
            orchestration=kwargs.get("orchestration", self.orchestration),
            agent=kwargs.get("agent", self.agent),
            extra={**self.extra, **kwargs.get("extra", {})},
        )


@dataclass
class RouteLog:
    """Log record for a router dispatch."""

    router: str
    matched_route: str
    total_routes: int = 0
    fallback: bool = False
    timestamp: str = field(default_factory=_now)
    duration_ms: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


@dataclass
class BranchLog:
    """Log record for one parallel branch."""

    stage: str
    label: str
    success: bool = True
    error: str | None = None
    timestamp: str = field(default_factory=_now)
    duration_ms: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


@dataclass
class HandoffLog:
    """Log record for a handoff between units."""

    source: str
    target: str
    tool_name: str
    enabled: bool = True
    nested: bool = False
    error: str | None = None
    timestamp: str = field(default_factory=_now)
    duration_ms: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


@dataclass
class StepLog:
    """Log record for an orchestration step."""

    orchestration: str
    step_index: int
    step_type: str
    success: bool = True
    error: str | None = None
    timestamp: str = field(default_factory=_now)
    duration_ms: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


# =============================================================================
# Structured Logger
# =============================================================================


class StructuredLogger:
    """
    Logger with structured JSON output and context tracking.

    Example:
        ```python
        logger = StructuredLogger("agent_flow")

        with logger.trace_context(orchestration="triage"):
            logger.log_route(RouteLog(router="triage", matched_route="weather"))
        ```
    """

    def __init__(
        self,
        name: str = "agent_flow",
        level: str = "INFO",
        json_output: bool = True,
        include_timestamp: bool = True,
    ):
        self.name = name
        self.json_output = json_output
        self.include_timestamp = include_timestamp

        self._logger = logging.getLogger(name)
        self._logger.setLevel(getattr(logging, level.upper()))

        self._context: LogContext = LogContext()

        if not self._logger.handlers:
            handler = logging.StreamHandler(sys.stdout)
            if json_output:
                handler.setFormatter(JSONFormatter())
            else:
                handler.setFormatter(TextFormatter())
            self._logger.addHandler(handler)

    @property
    def context(self) -> LogContext:
        return self._context

    def set_context(self, **kwargs) -> None:
        """Update the current log context."""
        self._context = self._context.with_update(**kwargs)

    @contextmanager
    def trace_context(
        self,
        trace_id: str | None = None,
        **kwargs,
    ) -> Iterator[str]:
        """
        Context manager for trace correlation.

        Args:
            trace_id: Trace ID (auto-generated if not provided)
            **kwargs: Additional context fields

        Yields:
            The trace ID
        """
        trace_id = trace_id or generate_trace_id()
        old_context = self._context

        try:
            self._context = old_context.with_update(trace_id=trace_id, **kwargs)
            yield trace_id
        finally:
            self._context = old_context

    def _log(
        self,
        level: int,
        message: str,
        event_type: str | None = None,
        data: dict[str, Any] | None = None,
    ) -> None:
        """Internal logging method."""
        if not self._logger.isEnabledFor(level):
            return

        record_data = {
            "message": message,
            **self._context.to_dict(),
        }

        if event_type:
            record_data["event_type"] = event_type

        if data:
            record_data.update(data)

        if self.json_output:
            self._logger.log(level, json.dumps(record_data, default=str))
        else:
            extras = " ".join(f"{k}={v}" for k, v in record_data.items() if k != "message")
            self._logger.log(level, f"{message} {extras}")

    def debug(self, message: str, **kwargs) -> None:
        self._log(logging.DEBUG, message, data=kwargs)

    def info(self, message: str, **kwargs) -> None:
        self._log(logging.INFO, message, data=kwargs)

    def warning(self, message: str, **kwargs) -> None:
        self._log(logging.WARNING, message, data=kwargs)

    def error(self, message: str, **kwargs) -> None:
        self._log(logging.ERROR, message, data=kwargs)

    def log_input(self, message: str, input: str, **kwargs) -> None:
        """Debug record carrying a unit input.

        The input is left out when ``log_inputs`` is off in the logging
        settings and cut to ``max_logged_input`` characters otherwise.
        """
        from .config import get_settings

        log_config = get_settings().logging
        if log_config.log_inputs:
            kwargs["input"] = truncate_for_log(input, log_config.max_logged_input)
        self._log(logging.DEBUG, message, data=kwargs)

    # Typed logging methods

    def log_route(self, route: RouteLog) -> None:
        """Log a router dispatch."""
        message = f"Router '{route.router}' matched '{route.matched_route}'"
        self._log(logging.INFO, message, event_type="route", data=route.to_dict())

    def log_branch(self, branch: BranchLog) -> None:
        """Log a parallel branch outcome."""
        level = logging.INFO if branch.success else logging.WARNING
        status = "completed" if branch.success else "failed"
        message = f"Branch '{branch.label}' {status}"
        if branch.duration_ms is not None:
            message += f" ({branch.duration_ms:.0f}ms)"
        self._log(level, message, event_type="branch", data=branch.to_dict())

    def log_handoff(self, handoff: HandoffLog) -> None:
        """Log a handoff."""
        level = logging.INFO if handoff.error is None else logging.WARNING
        message = f"Handoff {handoff.source} -> {handoff.target}"
        self._log(level, message, event_type="handoff", data=handoff.to_dict())

    def log_step(self, step: StepLog) -> None:
        """Log an orchestration step."""
        level = logging.DEBUG if step.success else logging.WARNING
        message = f"Step {step.step_index} ({step.step_type}) of '{step.orchestration}'"
        self._log(level, message, event_type="step", data=step.to_dict())

    def log_error(
        self,
        error: BaseException,
        message: str | None = None,
        **kwargs,
    ) -> None:
        """Log an error with context."""
        error_data = {
            "error_type": type(error).__name__,
            "error_message": str(error),
            **kwargs,
        }

        # Extract additional info from OrchestrationError
        if hasattr(error, "code"):
            error_data["error_code"] = str(error.code.value)
        if hasattr(error, "context") and error.context:
            error_data["error_context"] = error.context.to_dict()

        self._log(
            logging.ERROR,
            message or f"Error: {error}",
            event_type="error",
            data=error_data,
        )


# =============================================================================
# Formatters
# =============================================================================


class JSONFormatter(logging.Formatter):
    """JSON log formatter."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": _now(),
            "level": record.levelname,
            "logger": record.name,
        }

        try:
            message_data = json.loads(record.getMessage())
            if isinstance(message_data, dict):
                log_data.update(message_data)
            else:
                log_data["message"] = record.getMessage()
        except (json.JSONDecodeError, TypeError):
            log_data["message"] = record.getMessage()

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable text formatter."""

    LEVEL_COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.now(timezone.utc).strftime("%H:%M:%S.%f")[:-3]
        color = self.LEVEL_COLORS.get(record.levelname, "")
        reset = self.RESET if color else ""

        return f"{timestamp} {color}{record.levelname:8}{reset} {record.getMessage()}"


# =============================================================================
# Utilities
# =============================================================================


def generate_trace_id() -> str:
    """Generate a unique trace ID."""
    return f"trace_{uuid.uuid4().hex[:16]}"


def generate_run_id() -> str:
    """Generate a unique run ID."""
    return f"run_{uuid.uuid4().hex[:12]}"


def truncate_for_log(text: str, max_length: int = 200) -> str:
    """Truncate text for logging."""
    if len(text) <= max_length:
        return text
    return text[:max_length] + f"... ({len(text)} chars total)"


# =============================================================================
# Timing Utilities
# =============================================================================


@dataclass
class Timer:
    """Simple timer for measuring durations."""

    start_time: float = field(default_factory=time.perf_counter)
    end_time: float | None = None

    def stop(self) -> float:
        """Stop the timer and return duration in milliseconds."""
        self.end_time = time.perf_counter()
        return self.elapsed_ms

    @property
    def elapsed(self) -> float:
        """Elapsed time in seconds."""
        end = self.end_time or time.perf_counter()
        return end - self.start_time

    @property
    def elapsed_ms(self) -> float:
        """Elapsed time in milliseconds."""
        return self.elapsed * 1000


@contextmanager
def timed() -> Iterator[Timer]:
    """Context manager for timing operations."""
    timer = Timer()
    try:
        yield timer
    finally:
        timer.stop()


# =============================================================================
# Global Logger
# =============================================================================

_default_logger: StructuredLogger | None = None


def get_logger(name: str = "agent_flow") -> StructuredLogger:
    """Get or create a structured logger.

    The first call honours the level and format from the global settings.
    """
    global _default_logger
    if _default_logger is None or _default_logger.name != name:
        from .config import get_settings

        log_config = get_settings().logging
        _default_logger = StructuredLogger(
            name,
            level=log_config.level,
            json_output=log_config.format == "json",
            include_timestamp=log_config.include_timestamp,
        )
    return _default_logger


def configure_logging(
    level: str = "INFO",
    json_output: bool = True,
    **kwargs: Any,
) -> StructuredLogger:
    """Configure the default logger."""
    global _default_logger
    _default_logger = StructuredLogger(
        level=level,
        json_output=json_output,
        **kwargs,
    )
    return _default_logger


__all__ = [
    # Context
    "LogContext",
    # Log records
    "RouteLog",
    "BranchLog",
    "HandoffLog",
    "StepLog",
    # Logger
    "StructuredLogger",
    # Formatters
    "JSONFormatter",
    "TextFormatter",
    # Timing
    "Timer",
    "timed",
    # Utilities
    "generate_trace_id",
    "generate_run_id",
    "truncate_for_log",
    # Global
    "get_logger",
    "configure_logging",
]
