"""
Pytest configuration and fixtures for the test suite.
"""
import os
import sys
from datetime import datetime, timezone

import pytest

# Add src directory to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from token_rotator.executor import TokenRotationExecutor
from token_rotator.rotation_logger import configure_rotation_logger
from token_rotator.token_store import InMemoryTokenStatusBackend, TokenStore


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "asyncio: mark test as an async test")


# 12:00 UTC is 20:00 the same day in UTC+8
FIXED_NOW = datetime(2025, 3, 10, 12, 0, tzinfo=timezone.utc)


class MutableClock:
    """Clock whose time a test can move."""

    def __init__(self, now: datetime = FIXED_NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class RateLimited(Exception):
    """Untagged SDK-style exception carrying a 429 status."""

    def __init__(self, message: str = "Too Many Requests"):
        super().__init__(message)
        self.status_code = 429


@pytest.fixture(autouse=True)
def rotation_log_dir(tmp_path):
    """Keep rotation logs out of the working directory."""
    logs_dir = tmp_path / "logs"
    configure_rotation_logger(logs_dir)
    yield logs_dir
    configure_rotation_logger(None)


@pytest.fixture
def clock():
    return MutableClock()


@pytest.fixture
def backend():
    return InMemoryTokenStatusBackend()


@pytest.fixture
def store(backend, clock):
    return TokenStore(backend=backend, clock=clock)


@pytest.fixture
def token_config():
    """Raw comma-separated tokens per provider. Tests edit it in place."""
    return {}


@pytest.fixture
def executor(store, token_config):
    return TokenRotationExecutor(store=store, token_source=token_config.get)
