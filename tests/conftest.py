"""Pytest configuration and shared fixtures."""

import sys
from pathlib import Path

import pytest

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from tests.harness import FakeClock, Harness  # noqa: E402


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def harness():
    return Harness()


@pytest.fixture(autouse=True)
def reset_settings_cache():
    """Settings are cached per process; tests that set env vars need a fresh read."""
    from bluegreen.settings import get_settings

    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
