"""Telemetry pipeline for the JWT Pizza service.

This package provides:
- A process-wide metric registry for requests, auth, users, latency and orders
- Host CPU and memory sampling
- ASGI and WSGI request instrumentation middleware
- Periodic OTLP/HTTP JSON export to a remote collector
- Structured JSON logging with trace correlation

Example:
    >>> from pizzametrics import TelemetryConfig, TelemetryManager
    >>>
    >>> telemetry = TelemetryManager(TelemetryConfig.from_env())
    >>> telemetry.initialize()
    >>>
    >>> app = telemetry.asgi_middleware(app)
    >>> telemetry.registry.record_auth_result(True)
    >>> telemetry.registry.record_user_session(+1)
"""

from pizzametrics.config import TelemetryConfig
from pizzametrics.manager import TelemetryManager
from pizzametrics.metrics.registry import LatencyKind, MetricRegistry

__version__ = "1.0.0"

__all__ = [
    "LatencyKind",
    "MetricRegistry",
    "TelemetryConfig",
    "TelemetryManager",
]
