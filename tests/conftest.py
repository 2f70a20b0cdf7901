"""
Shared test fixtures for agent-flow tests.

This module provides:
- Automatic reset of the global settings between tests
- A quiet structured logger
- Common fake units (see tests/_fakes.py)
"""

from __future__ import annotations

import os

import pytest

from agent_flow.config import reset_settings
from agent_flow.logging import StructuredLogger
from tests._fakes import EchoAgent, FailingAgent


@pytest.fixture(autouse=True)
def clean_settings(monkeypatch):
    """Isolate tests from AGENT_FLOW_* variables and the cached settings."""
    for key in list(os.environ):
        if key.startswith("AGENT_FLOW_"):
            monkeypatch.delenv(key, raising=False)
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def logger():
    """A structured logger that only emits errors."""
    return StructuredLogger("agent_flow.tests", level="ERROR", json_output=False)


@pytest.fixture
def echo():
    return EchoAgent("echo")


@pytest.fixture
def failing():
    return FailingAgent("failing")
