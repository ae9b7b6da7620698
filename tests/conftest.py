"""Shared test configuration for queryflow."""

import os

import pytest

from queryflow.config import get_settings
from queryflow.infrastructure.logging import clear_request_context
from queryflow.timeline import moments

GRAPH_ROOT = "https://graph.microsoft.com/v1.0"


@pytest.fixture(autouse=True)
def reset_settings_cache():
    """Clear cached settings before each test so env vars are re-read."""
    os.environ["QUERYFLOW_ENVIRONMENT"] = "development"
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture(autouse=True)
def reset_logging_context():
    """Drop request/batch ids left behind by a test."""
    yield
    clear_request_context()


@pytest.fixture(autouse=True)
def reset_observer_tasks():
    """Forget broadcast tasks; each test runs on its own event loop."""
    yield
    moments._pending_observer_tasks.clear()


@pytest.fixture
def graph_root() -> str:
    return GRAPH_ROOT
