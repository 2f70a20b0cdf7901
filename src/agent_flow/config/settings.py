"""
Settings master configuration and global helpers.
"""

from __future__ import annotations

import dataclasses
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from dotenv import find_dotenv, load_dotenv

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

from ..errors import ConfigError
from .logging import LoggingConfig
from .orchestration import HandoffConfig, ParallelConfig, RoutingConfig
from .schema import CONFIG_SCHEMA


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Settings:
    """
    Master configuration for agent-flow.

    This aggregates all configuration sections into a single object
    that can be loaded from environment variables, files, or constructed
    programmatically.
    """

    logging: LoggingConfig = field(default_factory=LoggingConfig)
    parallel: ParallelConfig = field(default_factory=ParallelConfig)
    routing: RoutingConfig = field(default_factory=RoutingConfig)
    handoff: HandoffConfig = field(default_factory=HandoffConfig)

    @classmethod
    def from_env(cls, prefix: str = "AGENT_FLOW_") -> Settings:
        """
        Load settings from environment variables.

        Example:
            AGENT_FLOW_LOG_LEVEL=DEBUG
            AGENT_FLOW_PARALLEL_MAX_CONCURRENCY=4
            AGENT_FLOW_ROUTING_MINIMUM_CONFIDENCE=0.25
        """
        log_kwargs: dict[str, Any] = {}
        if level := os.getenv(f"{prefix}LOG_LEVEL"):
            log_kwargs["level"] = level.upper()
        if log_format := os.getenv(f"{prefix}LOG_FORMAT"):
            log_kwargs["format"] = log_format.lower()
        if log_inputs := os.getenv(f"{prefix}LOG_INPUTS"):
            log_kwargs["log_inputs"] = _parse_bool(log_inputs)
        if max_input := os.getenv(f"{prefix}LOG_MAX_INPUT"):
            log_kwargs["max_logged_input"] = int(max_input)

        parallel_kwargs: dict[str, Any] = {}
        if max_concurrency := os.getenv(f"{prefix}PARALLEL_MAX_CONCURRENCY"):
            parallel_kwargs["max_concurrency"] = int(max_concurrency)
        if timeout := os.getenv(f"{prefix}PARALLEL_TIMEOUT_SECONDS"):
            parallel_kwargs["timeout_seconds"] = float(timeout)
        if mode := os.getenv(f"{prefix}PARALLEL_ERROR_HANDLING"):
            parallel_kwargs["error_handling"] = mode.lower()

        routing_kwargs: dict[str, Any] = {}
        if case_sensitive := os.getenv(f"{prefix}ROUTING_CASE_SENSITIVE"):
            routing_kwargs["case_sensitive"] = _parse_bool(case_sensitive)
        if floor := os.getenv(f"{prefix}ROUTING_MINIMUM_CONFIDENCE"):
            routing_kwargs["minimum_confidence"] = float(floor)

        handoff_kwargs: dict[str, Any] = {}
        if tool_prefix := os.getenv(f"{prefix}HANDOFF_TOOL_NAME_PREFIX"):
            handoff_kwargs["tool_name_prefix"] = tool_prefix
        if snapshot := os.getenv(f"{prefix}HANDOFF_CONTEXT_SNAPSHOT"):
            handoff_kwargs["context_snapshot"] = _parse_bool(snapshot)

        return cls(
            logging=LoggingConfig(**log_kwargs),
            parallel=ParallelConfig(**parallel_kwargs),
            routing=RoutingConfig(**routing_kwargs),
            handoff=HandoffConfig(**handoff_kwargs),
        )

    @classmethod
    def from_file(cls, path: str | Path) -> Settings:
        """
        Load settings from a YAML or TOML file.

        Args:
            path: Path to configuration file (.yaml, .yml, or .toml)

        Returns:
            Settings object with values from file
        """
        path = Path(path)

        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")

        suffix = path.suffix.lower()

        if suffix in (".yaml", ".yml"):
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        elif suffix == ".toml":
            with open(path, "rb") as f:
                data = tomllib.load(f)
        else:
            raise ValueError(f"Unsupported config file format: {suffix}")

        return cls._from_dict(data)

    @classmethod
    def _from_dict(cls, data: dict[str, Any]) -> Settings:
        """
        Create Settings from a dictionary.

        The dictionary is validated against the configuration schema first;
        unknown keys inside a section are ignored.
        """
        try:
            jsonschema.validate(instance=data, schema=CONFIG_SCHEMA)
        except jsonschema.ValidationError as e:
            raise ConfigError(f"Configuration validation failed: {e.message}", cause=e) from e

        def section(config_cls: type, key: str):
            values = data.get(key) or {}
            names = {f.name for f in dataclasses.fields(config_cls)}
            return config_cls(**{k: v for k, v in values.items() if k in names})

        return cls(
            logging=section(LoggingConfig, "logging"),
            parallel=section(ParallelConfig, "parallel"),
            routing=section(RoutingConfig, "routing"),
            handoff=section(HandoffConfig, "handoff"),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert settings to dictionary."""
        return dataclasses.asdict(self)


# =============================================================================
# Global Settings & Helpers
# =============================================================================

_global_settings: Settings | None = None


def get_settings() -> Settings:
    """Get the global settings instance, creating from the environment if needed."""
    global _global_settings
    if _global_settings is None:
        _global_settings = Settings.from_env()
    return _global_settings


def configure(settings: Settings | None = None, **kwargs) -> Settings:
    """
    Configure global settings.

    Args:
        settings: Settings object to use globally
        **kwargs: Override specific sections (e.g. ``routing=RoutingConfig(...)``)

    Returns:
        The configured Settings object
    """
    global _global_settings

    if settings is not None:
        _global_settings = settings
    elif _global_settings is None:
        _global_settings = Settings.from_env()

    for key, value in kwargs.items():
        if not hasattr(_global_settings, key):
            raise ConfigError(f"Unknown settings section: {key}")
        setattr(_global_settings, key, value)

    return _global_settings


def reset_settings() -> None:
    """Drop the global settings so the next get_settings() reloads them."""
    global _global_settings
    _global_settings = None


def load_env(path: str | None = None, *, override: bool = False) -> bool:
    """
    Load environment variables from a .env file.

    Args:
        path: Optional path to a .env file. If not provided, uses find_dotenv().
        override: Whether to override existing environment variables.

    Returns:
        True if a .env file was found and loaded, False otherwise.
    """
    env_path = path or find_dotenv(usecwd=True)
    if not env_path:
        return False
    return load_dotenv(env_path, override=override)


__all__ = ["Settings", "get_settings", "configure", "reset_settings", "load_env"]
