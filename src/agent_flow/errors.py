"""
Error taxonomy for agent-flow.

This module provides a hierarchical exception system with:
- Error codes for programmatic handling
- Structured context for debugging
- Typed routing, parallel and handoff failures

Unit failures (anything raised by a runnable unit) are deliberately not part
of this hierarchy: they propagate through routers and orchestrations as the
original exception object.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .cancellation import CancelledError


class ErrorCode(str, Enum):
    """Standardized error codes for orchestration failures."""

    # Routing errors (1xxx)
    ROUTING_FAILED = "ERR_1000"
    NO_AGENTS_CONFIGURED = "ERR_1001"
    AGENT_NOT_FOUND = "ERR_1002"

    # Parallel errors (3xxx)
    ALL_BRANCHES_FAILED = "ERR_3001"

    # Handoff errors (4xxx)
    HANDOFF_ERROR = "ERR_4000"
    HANDOFF_SKIPPED = "ERR_4001"
    HANDOFF_CALLBACK_FAILED = "ERR_4002"

    # Configuration errors (6xxx)
    CONFIG_ERROR = "ERR_6000"

    # Internal errors (9xxx)
    INTERNAL_ERROR = "ERR_9000"


@dataclass
class ErrorContext:
    """Structured context for error debugging."""

    run_id: str | None = None
    orchestration: str | None = None
    step: int | None = None
    agent: str | None = None
    operation: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "orchestration": self.orchestration,
            "step": self.step,
            "agent": self.agent,
            "operation": self.operation,
            **self.extra,
        }


class OrchestrationError(Exception):
    """
    Base exception for all orchestration errors.

    Attributes:
        code: Standardized error code for programmatic handling
        message: Human-readable error message
        context: Structured debugging context
        cause: Original exception that caused this error
    """

    code: ErrorCode = ErrorCode.INTERNAL_ERROR

    def __init__(
        self,
        message: str,
        *,
        code: ErrorCode | None = None,
        context: ErrorContext | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.context = context or ErrorContext()
        self.cause = cause

    def __str__(self) -> str:
        parts = [f"[{self.code.value}] {self.message}"]
        if self.context.run_id:
            parts.append(f"(run_id={self.context.run_id})")
        return " ".join(parts)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code.value,
            "message": self.message,
            "context": self.context.to_dict(),
            "cause": str(self.cause) if self.cause else None,
        }


# =============================================================================
# Routing Errors
# =============================================================================


class RoutingFailedError(OrchestrationError):
    """No route matched and no fallback exists, or no candidates were given."""

    code = ErrorCode.ROUTING_FAILED

    def __init__(self, reason: str, **kwargs):
        super().__init__(f"Routing decision failed: {reason}", **kwargs)
        self.reason = reason


class NoAgentsConfiguredError(OrchestrationError):
    """A composite was built without any units."""

    code = ErrorCode.NO_AGENTS_CONFIGURED

    def __init__(self, message: str = "No agents configured", **kwargs):
        super().__init__(message, **kwargs)


class AgentNotFoundError(OrchestrationError):
    """A unit or handoff was requested by a name nobody registered."""

    code = ErrorCode.AGENT_NOT_FOUND

    def __init__(self, name: str, **kwargs):
        super().__init__(f"Agent not found: {name}", **kwargs)
        self.name = name


# =============================================================================
# Parallel Errors
# =============================================================================


class AllBranchesFailedError(OrchestrationError):
    """Every branch of a parallel stage failed."""

    code = ErrorCode.ALL_BRANCHES_FAILED

    def __init__(self, errors: dict[str, BaseException], **kwargs):
        listing = ", ".join(f"{label}: {err}" for label, err in errors.items())
        super().__init__(f"All parallel branches failed: [{listing}]", **kwargs)
        self.errors = dict(errors)


# =============================================================================
# Handoff Errors
# =============================================================================


class HandoffError(OrchestrationError):
    """Base class for handoff failures."""

    code = ErrorCode.HANDOFF_ERROR

    def __init__(self, source: str, target: str, reason: str, **kwargs):
        super().__init__(f"Handoff failed from '{source}' to '{target}': {reason}", **kwargs)
        self.source = source
        self.target = target
        self.reason = reason


class HandoffSkippedError(HandoffError):
    """The handoff's is_enabled check returned False."""

    code = ErrorCode.HANDOFF_SKIPPED

    def __init__(
        self,
        source: str,
        target: str,
        reason: str = "Handoff disabled by is_enabled callback",
        **kwargs,
    ):
        super().__init__(source, target, reason, **kwargs)


class HandoffCallbackError(HandoffError):
    """An input filter or on_handoff observer raised; the target never ran."""

    code = ErrorCode.HANDOFF_CALLBACK_FAILED


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigError(OrchestrationError):
    """Invalid configuration."""

    code = ErrorCode.CONFIG_ERROR


# =============================================================================
# Utilities
# =============================================================================


def is_cancellation(error: BaseException) -> bool:
    """Check whether an error represents a cooperative cancellation."""
    return isinstance(error, CancelledError)


__all__ = [
    "ErrorCode",
    "ErrorContext",
    "OrchestrationError",
    "RoutingFailedError",
    "NoAgentsConfiguredError",
    "AgentNotFoundError",
    "AllBranchesFailedError",
    "HandoffError",
    "HandoffSkippedError",
    "HandoffCallbackError",
    "ConfigError",
    "CancelledError",
    "is_cancellation",
]
