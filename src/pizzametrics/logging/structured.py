"""JSON and text log formatters with trace context.

Log records emitted inside an active OpenTelemetry span carry its trace and
span ids, so telemetry errors can be matched to the request that was being
served when they occurred.
"""

import json
import logging
import traceback
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from opentelemetry import trace
from opentelemetry.trace import INVALID_SPAN_ID, INVALID_TRACE_ID

# LogRecord attributes that are not user-supplied extras
_RESERVED_FIELDS = frozenset(
    logging.LogRecord("", 0, "", 0, "", None, None).__dict__
) | {"message", "asctime", "taskName"}


def current_trace_context() -> Optional[Dict[str, str]]:
    """Return the active span's trace_id and span_id, or None outside a span."""
    ctx = trace.get_current_span().get_span_context()
    if ctx.trace_id == INVALID_TRACE_ID or ctx.span_id == INVALID_SPAN_ID:
        return None
    return {
        "trace_id": format(ctx.trace_id, "032x"),
        "span_id": format(ctx.span_id, "016x"),
    }


class StructuredFormatter(logging.Formatter):
    """JSON log formatter.

    Example output:
        {
            "timestamp": "2026-10-19T10:30:45.123456+00:00",
            "level": "ERROR",
            "logger": "pizzametrics.metrics.exporter",
            "message": "Error pushing metrics: Collector ... returned HTTP 401: ...",
            "source": "jwt-pizza-service"
        }
    """

    def __init__(
        self,
        include_trace_context: bool = True,
        extra_fields: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Initialize the structured formatter.

        Args:
            include_trace_context: Include trace_id and span_id when a span is active.
            extra_fields: Static fields added to every log entry.
        """
        super().__init__()
        self.include_trace_context = include_trace_context
        self.extra_fields = extra_fields or {}

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(
                timespec="microseconds"
            ),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if self.include_trace_context:
            entry.update(current_trace_context() or {})

        if record.exc_info:
            exc_type, exc_value, exc_tb = record.exc_info
            entry["exception"] = {
                "type": exc_type.__name__ if exc_type else None,
                "message": str(exc_value) if exc_value else None,
                "traceback": traceback.format_exception(exc_type, exc_value, exc_tb),
            }

        entry.update(self.extra_fields)

        for key, value in record.__dict__.items():
            if key not in _RESERVED_FIELDS and not key.startswith("_"):
                entry[key] = value

        return json.dumps(entry, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable formatter.

    Produces lines such as:
        2026-10-19T10:30:45.123Z ERROR    [pizzametrics.metrics.exporter] [trace=4bf92f35] Error pushing metrics
    """

    def __init__(self, include_trace_context: bool = True) -> None:
        super().__init__()
        self.include_trace_context = include_trace_context

    def format(self, record: logging.LogRecord) -> str:
        dt = datetime.fromtimestamp(record.created, tz=timezone.utc)
        timestamp = dt.strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"
        parts = [timestamp, record.levelname.ljust(8), f"[{record.name}]"]

        if self.include_trace_context:
            context = current_trace_context()
            if context:
                parts.append(f"[trace={context['trace_id'][:16]}]")

        parts.append(record.getMessage())
        result = " ".join(parts)

        if record.exc_info:
            result += "\n" + self.formatException(record.exc_info)

        return result
