"""Pytest configuration and fixtures for trafficwatch tests."""

import pytest
import httpx
from unittest.mock import AsyncMock

from trafficwatch.health.state import TransitionContext
from trafficwatch.monitoring import reset_metrics


BASE_URL = "http://gateway.test"


@pytest.fixture(autouse=True)
def clean_metrics():
    """Start every test with empty metrics."""
    reset_metrics()
    yield
    reset_metrics()


@pytest.fixture(autouse=True)
def use_test_environment(monkeypatch):
    """Ensure all tests use test environment variables."""
    monkeypatch.setenv("TRAFFICWATCH_API_GATEWAY_URL", BASE_URL)


@pytest.fixture
def context():
    """Transition context with the default threshold of 2."""
    return TransitionContext(failure_threshold=2)


@pytest.fixture
def make_client():
    """Factory for HTTP clients backed by a mock transport.

    The handler receives an httpx.Request and returns an httpx.Response
    (or raises). It may be a coroutine function.
    """

    def factory(handler):
        return httpx.AsyncClient(base_url=BASE_URL, transport=httpx.MockTransport(handler))

    return factory


@pytest.fixture
def status_sequence():
    """Factory for handlers returning statuses in order, repeating the last one.

    Each handler records the requests it served in handler.calls.
    """

    def factory(*statuses):
        calls = []

        def handler(request):
            index = min(len(calls), len(statuses) - 1)
            calls.append(request)
            status = statuses[index]
            return httpx.Response(status, json={"status": status})

        handler.calls = calls
        return handler

    return factory


@pytest.fixture
def no_sleep(monkeypatch):
    """Record backoff delays instead of sleeping."""
    sleep = AsyncMock()
    monkeypatch.setattr("trafficwatch.resilience.executor.cancellable_sleep", sleep)
    return sleep
