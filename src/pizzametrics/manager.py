"""Telemetry manager wiring the pipeline together.

The host application creates one TelemetryManager at startup, initializes
it, and hands ``manager.registry`` to the code paths that record metrics.
There is no module-level instance.
"""

import logging
from typing import Optional

from pizzametrics.config import TelemetryConfig
from pizzametrics.instrumentation import (
    ASGIApp,
    RequestInstrumentationMiddleware,
    WSGIApp,
    WSGIRequestInstrumentationMiddleware,
)
from pizzametrics.logging.manager import LoggerManager
from pizzametrics.metrics.exporter import MetricsExporter
from pizzametrics.metrics.registry import MetricRegistry
from pizzametrics.metrics.sampler import SystemSampler

logger = logging.getLogger(__name__)


class TelemetryManager:
    """Owns the registry, sampler, exporter and log configuration.

    Example:
        >>> telemetry = TelemetryManager(TelemetryConfig.from_env())
        >>> telemetry.initialize()
        >>>
        >>> app = telemetry.asgi_middleware(app)
        >>> order_service = OrderService(metrics=telemetry.registry)
    """

    def __init__(self, config: Optional[TelemetryConfig] = None) -> None:
        self._config = config
        self._initialized = False
        self._registry: Optional[MetricRegistry] = None
        self._exporter: Optional[MetricsExporter] = None
        self._logger_manager: Optional[LoggerManager] = None

    def initialize(self) -> None:
        """Validate configuration and start all components.

        Raises:
            ConfigurationError: If configuration is invalid.
        """
        if self._initialized:
            logger.warning("TelemetryManager already initialized")
            return

        self._config = self._config or TelemetryConfig.from_env()
        self._config.validate()

        self._logger_manager = LoggerManager(self._config.logging)
        self._logger_manager.configure()
        self._logger_manager.add_extra_field("source", self._config.collector.source)

        self._registry = MetricRegistry()
        self._exporter = MetricsExporter(
            self._config.collector,
            self._registry,
            sampler=SystemSampler(precision=self._config.sampler.precision),
        )
        if self._config.collector.enabled:
            self._exporter.start()
        else:
            logger.info("Metrics export disabled; recording locally only")

        self._initialized = True
        logger.info("Telemetry initialization complete")

    def shutdown(self) -> None:
        """Stop the exporter and detach logging."""
        if not self._initialized:
            return

        logger.info("Shutting down telemetry")
        if self._exporter:
            try:
                self._exporter.shutdown()
            except Exception as e:
                logger.error(f"Error shutting down metrics exporter: {e}")

        # Last, so errors above are still logged
        if self._logger_manager:
            self._logger_manager.shutdown()

        self._initialized = False

    def _require_initialized(self) -> None:
        if not self._initialized:
            raise RuntimeError("TelemetryManager not initialized")

    @property
    def config(self) -> TelemetryConfig:
        self._require_initialized()
        return self._config

    @property
    def registry(self) -> MetricRegistry:
        self._require_initialized()
        return self._registry

    @property
    def exporter(self) -> MetricsExporter:
        self._require_initialized()
        return self._exporter

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    def asgi_middleware(self, app: ASGIApp, time_requests: bool = False) -> ASGIApp:
        """Wrap an ASGI app so that its requests are counted."""
        return RequestInstrumentationMiddleware(app, self.registry, time_requests)

    def wsgi_middleware(self, app: WSGIApp, time_requests: bool = False) -> WSGIApp:
        """Wrap a WSGI app so that its requests are counted."""
        return WSGIRequestInstrumentationMiddleware(app, self.registry, time_requests)
