"""Request instrumentation middleware.

ASGI and WSGI middleware that count every inbound HTTP request in a
MetricRegistry before handing it to the wrapped application. A failure in
the metrics call is logged and never reaches the request.
"""

import logging
import time
from collections.abc import Callable, Coroutine, Iterable
from typing import Any, Dict, Optional, Tuple

from pizzametrics.metrics.registry import LatencyKind, MetricRegistry

logger = logging.getLogger(__name__)

# ASGI type aliases
Scope = Dict[str, Any]
Receive = Callable[[], Coroutine[Any, Any, Dict[str, Any]]]
Send = Callable[[Dict[str, Any]], Coroutine[Any, Any, None]]
ASGIApp = Callable[[Scope, Receive, Send], Coroutine[Any, Any, None]]

# WSGI type aliases
Environ = Dict[str, Any]
StartResponse = Callable[..., Any]
WSGIApp = Callable[[Environ, StartResponse], Iterable[bytes]]


def _normalize(method: Optional[str], path: Optional[str]) -> Tuple[str, str]:
    return (method or "GET").upper(), path or "/"


class _Instrumentation:
    """Shared recording logic for both middleware flavours."""

    def __init__(self, registry: MetricRegistry, time_requests: bool = False) -> None:
        self.registry = registry
        self.time_requests = time_requests

    def _count(self, method: Optional[str], path: Optional[str]) -> None:
        try:
            self.registry.record_request(*_normalize(method, path))
        except Exception as e:
            logger.error(f"Failed to record request metrics: {e}")

    def _record_elapsed(self, start_time: float) -> None:
        if not self.time_requests:
            return
        try:
            elapsed_ms = (time.perf_counter() - start_time) * 1000.0
            self.registry.record_latency(LatencyKind.REQUEST, elapsed_ms)
        except Exception as e:
            logger.error(f"Failed to record request latency: {e}")


class RequestInstrumentationMiddleware(_Instrumentation):
    """ASGI middleware counting requests per ``[METHOD] /path``.

    Example:
        >>> app = FastAPI()
        >>> app = RequestInstrumentationMiddleware(app, registry)
    """

    def __init__(
        self, app: ASGIApp, registry: MetricRegistry, time_requests: bool = False
    ) -> None:
        """Initialize middleware.

        Args:
            app: ASGI application to wrap.
            registry: Registry receiving the request counts.
            time_requests: Also add each request's wall time to the request
                latency sum.
        """
        super().__init__(registry, time_requests)
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope.get("type") != "http":
            await self.app(scope, receive, send)
            return

        self._count(scope.get("method"), scope.get("path"))
        start_time = time.perf_counter()
        try:
            await self.app(scope, receive, send)
        finally:
            self._record_elapsed(start_time)


class WSGIRequestInstrumentationMiddleware(_Instrumentation):
    """WSGI middleware counting requests per ``[METHOD] /path``.

    When ``time_requests`` is set, the elapsed time covers the application
    call only, not iteration of the response body.

    Example:
        >>> app = Flask(__name__)
        >>> app.wsgi_app = WSGIRequestInstrumentationMiddleware(app.wsgi_app, registry)
    """

    def __init__(
        self, app: WSGIApp, registry: MetricRegistry, time_requests: bool = False
    ) -> None:
        super().__init__(registry, time_requests)
        self.app = app

    def __call__(self, environ: Environ, start_response: StartResponse) -> Iterable[bytes]:
        self._count(environ.get("REQUEST_METHOD"), environ.get("PATH_INFO"))
        start_time = time.perf_counter()
        try:
            return self.app(environ, start_response)
        finally:
            self._record_elapsed(start_time)
