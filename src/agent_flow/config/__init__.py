"""
Configuration system for agent-flow.

This package provides typed configuration classes with:
- Dataclass-based settings with validation
- Environment variable loading
- YAML/TOML file loading
- Sensible defaults with override capability
"""

from .base import ErrorHandlingMode, LogFormat, LogLevel
from .logging import LoggingConfig
from .orchestration import HandoffConfig, ParallelConfig, RoutingConfig
from .settings import Settings, configure, get_settings, load_env, reset_settings

__all__ = [
    # Types
    "LogLevel",
    "LogFormat",
    "ErrorHandlingMode",
    # Section configs
    "LoggingConfig",
    "ParallelConfig",
    "RoutingConfig",
    "HandoffConfig",
    # Master config
    "Settings",
    # Global functions
    "get_settings",
    "configure",
    "reset_settings",
    "load_env",
]
