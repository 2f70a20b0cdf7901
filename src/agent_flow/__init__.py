"""
Top-level package for agent-flow.

In-process orchestration of agent-like units: condition routing, scored
selection, concurrent fan-out, handoffs and step pipelines over one shared
run context.

Environment variables are loaded from the nearest `.env` so AGENT_FLOW_*
settings are visible on first use of get_settings().
"""
from dotenv import find_dotenv, load_dotenv

# Keep side effect so AGENT_FLOW_* settings are loaded on import.
_ = load_dotenv(find_dotenv(usecwd=True), override=False)

from .cancellation import CancellationToken, CancelledError
from .conditions import (
    ALWAYS,
    NEVER,
    RouteCondition,
    contains,
    context_has,
    custom,
    ends_with,
    length_in_range,
    matches_pattern,
    starts_with,
)
from .config import Settings, configure, get_settings, load_env, reset_settings
from .context import ContextKey, RunContext
from .errors import (
    AgentNotFoundError,
    AllBranchesFailedError,
    ConfigError,
    ErrorCode,
    HandoffCallbackError,
    HandoffError,
    HandoffSkippedError,
    NoAgentsConfiguredError,
    OrchestrationError,
    RoutingFailedError,
)
from .handoff import HandoffBuilder, HandoffConfiguration, HandoffInputData, handoff
from .logging import StructuredLogger, configure_logging, get_logger
from .orchestration import (
    AgentStep,
    Branch,
    Orchestration,
    Sequential,
    StepContext,
    Transform,
    current_step_context,
)
from .parallel import MergeStrategy, Parallel, ParallelBranch, ParallelErrorHandling, branch
from .router import Route, Router, route
from .strategies import CallableRoutingStrategy, KeywordRoutingStrategy, PromptRoutingStrategy, RoutingStrategy
from .supervisor import SupervisorAgent
from .types import (
    AgentDescriptor,
    AgentEvent,
    AgentEventType,
    AgentResult,
    RoutingDecision,
    Runnable,
    TokenUsage,
)

__version__ = "0.1.0"

__all__ = [
    # Core types
    "Runnable",
    "AgentResult",
    "TokenUsage",
    "AgentEvent",
    "AgentEventType",
    "AgentDescriptor",
    "RoutingDecision",
    # Context and cancellation
    "RunContext",
    "ContextKey",
    "CancellationToken",
    "CancelledError",
    # Conditions
    "RouteCondition",
    "contains",
    "matches_pattern",
    "starts_with",
    "ends_with",
    "length_in_range",
    "context_has",
    "custom",
    "ALWAYS",
    "NEVER",
    # Routing
    "Route",
    "route",
    "Router",
    "RoutingStrategy",
    "KeywordRoutingStrategy",
    "CallableRoutingStrategy",
    "PromptRoutingStrategy",
    "SupervisorAgent",
    # Parallel
    "Parallel",
    "ParallelBranch",
    "branch",
    "MergeStrategy",
    "ParallelErrorHandling",
    # Handoffs
    "HandoffConfiguration",
    "HandoffBuilder",
    "HandoffInputData",
    "handoff",
    # Orchestration
    "Orchestration",
    "StepContext",
    "AgentStep",
    "Transform",
    "Branch",
    "Sequential",
    "current_step_context",
    # Errors
    "ErrorCode",
    "OrchestrationError",
    "RoutingFailedError",
    "NoAgentsConfiguredError",
    "AgentNotFoundError",
    "AllBranchesFailedError",
    "HandoffError",
    "HandoffSkippedError",
    "HandoffCallbackError",
    "ConfigError",
    # Config and logging
    "Settings",
    "get_settings",
    "configure",
    "reset_settings",
    "load_env",
    "StructuredLogger",
    "get_logger",
    "configure_logging",
]
