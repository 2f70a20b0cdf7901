"""
JSON schemas for configuration validation.
"""

LOGGING_SCHEMA = {
    "type": "object",
    "properties": {
        "level": {"type": "string", "enum": ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]},
        "format": {"type": "string", "enum": ["text", "json"]},
        "include_timestamp": {"type": "boolean"},
        "log_inputs": {"type": "boolean"},
        "max_logged_input": {"type": "integer", "minimum": 1},
    },
}

PARALLEL_SCHEMA = {
    "type": "object",
    "properties": {
        "max_concurrency": {"type": ["integer", "null"], "minimum": 1},
        "timeout_seconds": {"type": ["number", "null"], "exclusiveMinimum": 0},
        "separator": {"type": "string"},
        "error_handling": {
            "type": "string",
            "enum": ["fail_fast", "continue_on_partial_failure", "collect_errors"],
        },
    },
}

ROUTING_SCHEMA = {
    "type": "object",
    "properties": {
        "case_sensitive": {"type": "boolean"},
        "minimum_confidence": {"type": "number", "minimum": 0.0, "maximum": 1.0},
    },
}

HANDOFF_SCHEMA = {
    "type": "object",
    "properties": {
        "context_snapshot": {"type": "boolean"},
        "tool_name_prefix": {"type": "string", "minLength": 1},
    },
}

CONFIG_SCHEMA = {
    "type": "object",
    "properties": {
        "logging": LOGGING_SCHEMA,
        "parallel": PARALLEL_SCHEMA,
        "routing": ROUTING_SCHEMA,
        "handoff": HANDOFF_SCHEMA,
    },
}
