"""Custom exceptions for the telemetry pipeline.

This module defines the exception hierarchy for telemetry errors. Only
configuration errors ever leave the package; sampling, serialization and
transport errors are caught inside the export cycle and logged.
"""

from typing import Optional


class TelemetryError(Exception):
    """Base exception for all telemetry errors."""

    pass


class ConfigurationError(TelemetryError, ValueError):
    """Raised when telemetry configuration is missing or invalid."""

    pass


class SamplingError(TelemetryError):
    """Raised when a host statistic cannot be read."""

    def __init__(self, metric: str, message: str, cause: Optional[Exception] = None):
        self.metric = metric
        self.cause = cause
        super().__init__(f"Failed to sample {metric}: {message}")


class SerializationError(TelemetryError):
    """Raised when a metrics payload cannot be encoded."""

    def __init__(self, message: str, cause: Optional[Exception] = None):
        self.cause = cause
        super().__init__(f"Failed to serialize metrics payload: {message}")


class TransportError(TelemetryError):
    """Raised when the collector cannot be reached or rejects a payload."""

    def __init__(
        self,
        url: str,
        message: str,
        status_code: Optional[int] = None,
        cause: Optional[Exception] = None,
    ):
        self.url = url
        self.status_code = status_code
        self.cause = cause
        if status_code is not None:
            super().__init__(f"Collector {url} returned HTTP {status_code}: {message}")
        else:
            super().__init__(f"Failed to push metrics to {url}: {message}")
