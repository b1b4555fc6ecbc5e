"""Logger manager for the pizzametrics logger hierarchy."""

import logging
import sys
from typing import Optional

from pizzametrics.config import LoggingConfig
from pizzametrics.logging.structured import StructuredFormatter, TextFormatter

ROOT_LOGGER_NAME = "pizzametrics"


class LoggerManager:
    """Installs one handler on the ``pizzametrics`` logger.

    Example:
        >>> from pizzametrics.config import LoggingConfig
        >>> manager = LoggerManager(LoggingConfig(level="DEBUG", format="text"))
        >>> manager.configure()
        >>> logging.getLogger("pizzametrics.metrics.exporter").info("ready")
        >>> manager.shutdown()
    """

    def __init__(self, config: LoggingConfig) -> None:
        self.config = config
        self._handler: Optional[logging.Handler] = None
        self._formatter: Optional[logging.Formatter] = None
        self._configured = False

    def configure(self) -> None:
        """Attach the handler and set the level. Calling it twice is a no-op."""
        if self._configured:
            return

        if self.config.format == "json":
            self._formatter = StructuredFormatter(
                include_trace_context=self.config.trace_correlation,
            )
        else:
            self._formatter = TextFormatter(
                include_trace_context=self.config.trace_correlation,
            )

        if self.config.output_file:
            self._handler = logging.FileHandler(self.config.output_file)
        else:
            self._handler = logging.StreamHandler(sys.stderr)
        self._handler.setFormatter(self._formatter)

        root_logger = logging.getLogger(ROOT_LOGGER_NAME)
        root_logger.setLevel(getattr(logging, self.config.level.upper(), logging.INFO))
        root_logger.addHandler(self._handler)
        # Keep telemetry logs out of the host application's root handlers
        root_logger.propagate = False

        self._configured = True

    def shutdown(self) -> None:
        """Remove and close the handler."""
        if not self._configured:
            return

        root_logger = logging.getLogger(ROOT_LOGGER_NAME)
        if self._handler:
            root_logger.removeHandler(self._handler)
            self._handler.close()
            self._handler = None
        root_logger.propagate = True

        self._configured = False

    def add_extra_field(self, key: str, value: str) -> None:
        """Add a static field to every JSON log entry."""
        if isinstance(self._formatter, StructuredFormatter):
            self._formatter.extra_fields[key] = value

    @property
    def is_configured(self) -> bool:
        return self._configured
