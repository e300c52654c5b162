"""
Test Configuration and Fixtures

Shared fixtures and test environment defaults for the suite.
"""

import os
from collections.abc import Callable

import httpx
import pytest

# Set test environment variables before importing the app.
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("LOG_FORMAT", "text")
os.environ.setdefault("SEARCH_CHUNK_DELAY_SECONDS", "0")
os.environ.setdefault("UPDATE_BATCH_DELAY_SECONDS", "0")
os.environ.setdefault("WAREHOUSE_BATCH_DELAY_SECONDS", "0")
os.environ.setdefault("HTTP_BASE_BACKOFF_SECONDS", "0")
os.environ.setdefault("HTTP_MAX_BACKOFF_SECONDS", "0")


# =============================================================================
# PYTEST CONFIGURATION
# =============================================================================


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests (fast, isolated)")
    config.addinivalue_line("markers", "api: API endpoint tests")


def pytest_collection_modifyitems(config, items):
    """Everything without an explicit tier marker is a unit test."""
    for item in items:
        if item.get_closest_marker("unit"):
            continue
        item.add_marker(pytest.mark.unit)


# =============================================================================
# HTTP FIXTURES
# =============================================================================


@pytest.fixture
def make_http_client() -> Callable[[Callable[[httpx.Request], httpx.Response]], httpx.AsyncClient]:
    """Build an AsyncClient whose requests are answered by `handler`."""

    def factory(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    return factory


@pytest.fixture
def no_sleep(monkeypatch):
    """Skip asyncio.sleep pacing and record requested delays."""
    delays: list[float] = []

    async def fake_sleep(delay, *args, **kwargs):
        delays.append(delay)

    monkeypatch.setattr("asyncio.sleep", fake_sleep)
    return delays
