"""Pytest fixtures for telemetry testing.

This module provides reusable fixtures for the registry, sampler, exporter
and configuration with no network or host dependencies.
"""

import logging
import threading
from typing import Callable, List

import httpx
import pytest

from pizzametrics.config import CollectorConfig, LoggingConfig, TelemetryConfig
from pizzametrics.metrics.registry import MetricRegistry
from pizzametrics.metrics.sampler import SystemSample, SystemSampler

COLLECTOR_URL = "https://otlp.test/otlp/v1/metrics"


# =============================================================================
# Configuration Fixtures
# =============================================================================


@pytest.fixture
def collector_config() -> CollectorConfig:
    """Collector configuration pointing at a fake endpoint."""
    return CollectorConfig(
        enabled=True,
        url=COLLECTOR_URL,
        api_key="test-api-key",
        source="jwt-pizza-service-test",
        period_ms=10000,
        timeout=2.0,
    )


@pytest.fixture
def telemetry_config(collector_config) -> TelemetryConfig:
    """Complete configuration with text logging."""
    return TelemetryConfig(
        collector=collector_config,
        logging=LoggingConfig(level="DEBUG", format="text"),
    )


@pytest.fixture
def clean_env(monkeypatch):
    """Remove every PIZZA_* variable from the environment."""
    import os

    for key in list(os.environ):
        if key.startswith("PIZZA_"):
            monkeypatch.delenv(key, raising=False)
    return monkeypatch


# =============================================================================
# Component Fixtures
# =============================================================================


@pytest.fixture
def registry() -> MetricRegistry:
    """Fresh registry with its own collector registry."""
    return MetricRegistry()


class FixedSampler(SystemSampler):
    """Sampler returning constant readings."""

    def __init__(self, cpu: float = 12.0, memory: float = 48.5) -> None:
        super().__init__(precision=2)
        self.reading = SystemSample(cpu_percent=cpu, memory_percent=memory)

    def sample(self) -> SystemSample:
        return self.reading


@pytest.fixture
def fixed_sampler() -> FixedSampler:
    return FixedSampler()


class RecordingCollector:
    """httpx handler capturing requests and replying with queued responses."""

    def __init__(self) -> None:
        self.requests: List[httpx.Request] = []
        self.responses: List[Callable[[httpx.Request], httpx.Response]] = []
        self.received = threading.Event()

    def reply(self, status_code: int = 200, text: str = "") -> None:
        self.responses.append(lambda request: httpx.Response(status_code, text=text))

    def fail(self, message: str = "connection refused") -> None:
        def raise_error(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError(message, request=request)

        self.responses.append(raise_error)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        try:
            responder = self.responses.pop(0) if self.responses else None
            if responder is None:
                return httpx.Response(200)
            return responder(request)
        finally:
            self.received.set()


@pytest.fixture
def collector() -> RecordingCollector:
    return RecordingCollector()


@pytest.fixture
def http_client(collector) -> httpx.Client:
    client = httpx.Client(transport=httpx.MockTransport(collector))
    yield client
    client.close()


@pytest.fixture(autouse=True)
def reset_pizzametrics_logger():
    """Restore the package logger after tests that configure logging."""
    logger = logging.getLogger("pizzametrics")
    handlers = list(logger.handlers)
    level = logger.level
    propagate = logger.propagate
    yield
    for handler in list(logger.handlers):
        if handler not in handlers:
            logger.removeHandler(handler)
    logger.setLevel(level)
    logger.propagate = propagate
