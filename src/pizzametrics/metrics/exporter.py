"""Periodic export of metrics to the remote collector.

This module provides the background exporter that snapshots the registry,
samples the host, builds the OTLP payload and POSTs it on a fixed period.
A failed cycle is logged and dropped; it never stops the schedule and
never touches the registry.
"""

import logging
import threading
from typing import Dict, Optional

import httpx

from pizzametrics.config import CollectorConfig
from pizzametrics.exceptions import SerializationError, TransportError
from pizzametrics.metrics.payload import PayloadBuilder, serialize_payload
from pizzametrics.metrics.registry import MetricRegistry
from pizzametrics.metrics.sampler import SystemSampler

logger = logging.getLogger(__name__)


class MetricsExporter:
    """Background exporter pushing metrics to an OTLP/HTTP collector.

    Example:
        >>> from pizzametrics.config import CollectorConfig
        >>> config = CollectorConfig(
        ...     url="https://otlp.example.net/otlp/v1/metrics",
        ...     api_key="123:secret",
        ...     period_ms=10000,
        ... )
        >>> exporter = MetricsExporter(config, registry)
        >>> exporter.start()
        >>>
        >>> # Flush immediately, outside the schedule
        >>> exporter.flush()
        True
        >>>
        >>> exporter.shutdown()
    """

    def __init__(
        self,
        config: CollectorConfig,
        registry: MetricRegistry,
        sampler: Optional[SystemSampler] = None,
        client: Optional[httpx.Client] = None,
    ):
        """Initialize exporter.

        Args:
            config: Collector configuration.
            registry: Registry whose values are exported.
            sampler: Host sampler. Defaults to a SystemSampler with precision 2.
            client: HTTP client to send with. If None, the exporter creates and
                owns one.
        """
        self.config = config
        self.registry = registry
        self.sampler = sampler or SystemSampler()
        self.builder = PayloadBuilder(
            static_attributes={"source": config.source},
            resource_attributes=self._resource_attributes(config),
        )
        self._client = client
        self._owns_client = client is None
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._running = False

        self._stats_lock = threading.Lock()
        self.cycles = 0
        self.failures = 0
        self.last_error: Optional[Exception] = None

    @staticmethod
    def _resource_attributes(config: CollectorConfig) -> Dict[str, str]:
        if config.service_name:
            return {"service.name": config.service_name}
        return {}

    @property
    def client(self) -> httpx.Client:
        """HTTP client used for pushes, created on first use."""
        if self._client is None:
            self._client = httpx.Client(timeout=self.config.timeout)
        return self._client

    def start(self) -> None:
        """Start the periodic export thread.

        The first cycle runs one full period after start.
        """
        if self._running:
            logger.warning("MetricsExporter already running")
            return

        logger.info(
            f"Starting metrics export to {self.config.url} "
            f"every {self.config.period_ms} ms"
        )
        self._stop_event.clear()
        self._running = True
        self._thread = threading.Thread(
            target=self._export_loop, daemon=True, name="MetricsExporter"
        )
        self._thread.start()

    def shutdown(self) -> None:
        """Stop the export thread and close an owned HTTP client."""
        if self._running:
            logger.info("Stopping metrics exporter")
            self._running = False
            self._stop_event.set()
            if self._thread:
                self._thread.join(timeout=self.config.timeout + 5)
            logger.info("Metrics exporter stopped")

        if self._owns_client and self._client is not None:
            self._client.close()
            self._client = None

    @property
    def is_running(self) -> bool:
        """Check if the export thread is running."""
        return self._running

    def _export_loop(self) -> None:
        """Background loop running one flush per period."""
        while not self._stop_event.wait(self.config.period_seconds):
            self.flush()

    def flush(self) -> bool:
        """Run one export cycle.

        Returns:
            True if the collector accepted the payload, False otherwise.
            Never raises.
        """
        with self._stats_lock:
            self.cycles += 1
        try:
            snapshot = self.registry.snapshot()
            system_sample = self.sampler.sample()
            payload = self.builder.build(snapshot, system_sample)
            body = serialize_payload(payload)
            self.push(body)
        except SerializationError as e:
            self._record_failure(e)
            logger.error(f"Error building metrics payload: {e}")
            return False
        except TransportError as e:
            self._record_failure(e)
            logger.error(f"Error pushing metrics: {e}")
            return False
        except Exception as e:
            self._record_failure(e)
            logger.exception(f"Unexpected error in metrics export cycle: {e}")
            return False

        with self._stats_lock:
            self.last_error = None
        logger.debug(f"Pushed {len(body)} bytes of metrics to {self.config.url}")
        return True

    def _record_failure(self, error: Exception) -> None:
        with self._stats_lock:
            self.failures += 1
            self.last_error = error

    def push(self, body: bytes) -> None:
        """POST an encoded payload to the collector.

        Args:
            body: JSON-encoded payload.

        Raises:
            TransportError: On network failure or a non-2xx response.
        """
        url = self.config.url or ""
        headers = {
            "Authorization": f"Bearer {self.config.api_key}",
            "Content-Type": "application/json",
        }
        try:
            response = self.client.post(
                url, content=body, headers=headers, timeout=self.config.timeout
            )
        except httpx.HTTPError as e:
            raise TransportError(url, str(e) or type(e).__name__, cause=e)

        if not response.is_success:
            raise TransportError(
                url, response.text[:200], status_code=response.status_code
            )
