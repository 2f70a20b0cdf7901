"""
Logging configuration.
"""

from __future__ import annotations

from dataclasses import dataclass

from .base import VALID_LOG_FORMATS, VALID_LOG_LEVELS, LogFormat, LogLevel


@dataclass
class LoggingConfig:
    """Configuration for orchestration logging."""

    level: LogLevel = "INFO"
    format: LogFormat = "text"
    include_timestamp: bool = True

    # Unit inputs in debug records: dropped when log_inputs is off,
    # otherwise cut to max_logged_input characters
    log_inputs: bool = True
    max_logged_input: int = 200

    def __post_init__(self):
        """Validate configuration after initialization."""
        if self.level not in VALID_LOG_LEVELS:
            raise ValueError(f"Invalid log level: {self.level}. Must be one of {VALID_LOG_LEVELS}")
        if self.format not in VALID_LOG_FORMATS:
            raise ValueError(f"Invalid log format: {self.format}. Must be one of {VALID_LOG_FORMATS}")
        if self.max_logged_input < 1:
            raise ValueError("max_logged_input must be positive")


__all__ = ["LoggingConfig"]
