"""Metrics aggregation and export package.

This package provides the process-wide metric registry, host sampling,
OTLP payload construction and the periodic exporter.

Example:
    >>> from pizzametrics.config import CollectorConfig
    >>> from pizzametrics.metrics import MetricRegistry, MetricsExporter
    >>>
    >>> registry = MetricRegistry()
    >>> exporter = MetricsExporter(
    ...     CollectorConfig(url="https://otlp.example.net/otlp/v1/metrics", api_key="key"),
    ...     registry,
    ... )
    >>> exporter.start()
    >>>
    >>> registry.record_request("POST", "/api/order")
    >>> registry.record_purchase(True, latency_ms=240, price=0.008, item_count=2)
"""

from pizzametrics.metrics.exporter import MetricsExporter
from pizzametrics.metrics.payload import (
    MetricKind,
    PayloadBuilder,
    build_payload,
    serialize_payload,
)
from pizzametrics.metrics.registry import LatencyKind, MetricRegistry, RegistrySnapshot
from pizzametrics.metrics.sampler import SystemSample, SystemSampler

__all__ = [
    "LatencyKind",
    "MetricKind",
    "MetricRegistry",
    "MetricsExporter",
    "PayloadBuilder",
    "RegistrySnapshot",
    "SystemSample",
    "SystemSampler",
    "build_payload",
    "serialize_payload",
]
