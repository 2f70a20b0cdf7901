"""
Base types for configuration.
"""

from __future__ import annotations

from typing import Literal

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
LogFormat = Literal["text", "json"]
ErrorHandlingMode = Literal["fail_fast", "continue_on_partial_failure", "collect_errors"]

VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
VALID_LOG_FORMATS = ("text", "json")
VALID_ERROR_HANDLING = ("fail_fast", "continue_on_partial_failure", "collect_errors")


__all__ = [
    "LogLevel",
    "LogFormat",
    "ErrorHandlingMode",
    "VALID_LOG_LEVELS",
    "VALID_LOG_FORMATS",
    "VALID_ERROR_HANDLING",
]
