"""Shared test fixtures for the schoolface test suite.

This module provides reusable fixtures for:
- Configuration objects
- Deterministic text measurement
- Fake data provider and companion token source
- Async test utilities
"""

from __future__ import annotations

import asyncio
import logging
from datetime import time
from unittest.mock import AsyncMock, Mock

import pytest
from schoolface.config import FaceConfig
from schoolface.schedule import ClassInterval
from schoolface.token_channel import CompanionNode

# ============================================================================
# Pytest Configuration
# ============================================================================


@pytest.fixture(scope="session")
def anyio_backend():
    """Configure anyio backend for async tests."""
    return "asyncio"


# ============================================================================
# Logging Fixtures
# ============================================================================


@pytest.fixture
def mock_logger():
    """Create a mock logger restricted to the logging.Logger API."""
    return Mock(spec=logging.Logger)


# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def face_config():
    """Default configuration with no environment overrides."""
    return FaceConfig.from_env({"SCHOOLFACE_HOSTNAME": "test-face"})


# ============================================================================
# Rendering Fixtures
# ============================================================================


class FixedWidthMeasurer:
    """Every character is ``size / 2`` pixels wide and ``size`` pixels tall."""

    def width(self, text: str, size: int) -> float:
        return len(text) * size / 2

    def height(self, text: str, size: int) -> float:
        return float(size)


@pytest.fixture
def measurer():
    return FixedWidthMeasurer()


@pytest.fixture
def make_class():
    """Factory for ClassInterval from ``"H:MM"`` strings."""

    def _make(name: str, start: str, end: str, color=(255, 0, 0)) -> ClassInterval:
        sh, sm = (int(part) for part in start.split(":"))
        eh, em = (int(part) for part in end.split(":"))
        return ClassInterval(name, time(sh, sm), time(eh, em), color)

    return _make


# ============================================================================
# Collaborator Fakes
# ============================================================================


@pytest.fixture
def mock_provider():
    """Data provider returning an in-session day and an empty lunch payload."""
    provider = AsyncMock()
    provider.fetch_schedule.return_value = {
        "schedule": {
            "day": 1,
            "classes": [
                {
                    "class": {"name": "Chemistry", "color": "#00FF00"},
                    "start": "2025-01-15T08:00:00",
                    "end": "2025-01-15T08:50:00",
                },
                {
                    "class": {"name": "History", "color": "#0000FF"},
                    "start": "2025-01-15T09:00:00",
                    "end": "2025-01-15T09:50:00",
                },
            ],
        }
    }
    provider.fetch_lunch.return_value = {"lunch": {}}
    return provider


class FakeTokenSource:
    """In-memory companion channel; ``push`` simulates a token change."""

    def __init__(self, nodes=None, token=None) -> None:
        self.nodes = list(nodes or [])
        self.token = token
        self.listeners = []
        self.available = True
        self.close_delay = 0.0
        self.connected = False
        self.closed = False
        self.fetched = []

    async def connect(self) -> None:
        self.connected = self.available

    def is_open(self) -> bool:
        return self.connected

    async def discover_nodes(self):
        return list(self.nodes)

    async def fetch_token(self, node):
        self.fetched.append(node)
        return self.token

    def subscribe(self, on_token) -> None:
        self.listeners.append(on_token)

    async def close(self) -> None:
        if self.close_delay:
            await asyncio.sleep(self.close_delay)
        self.connected = False
        self.closed = True

    def push(self, token: str) -> None:
        for listener in self.listeners:
            listener(token)


@pytest.fixture
def token_source_factory():
    def _create(token=None, nodes=None):
        if nodes is None:
            nodes = [CompanionNode("phone-1")] if token is not None else []
        return FakeTokenSource(nodes=nodes, token=token)

    return _create
