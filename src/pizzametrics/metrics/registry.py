"""Metric registry for the pizza service counters.

This module defines every counter and gauge the service reports and the
record_* operations that request handlers and business logic call to
update them. Values live in a private prometheus_client CollectorRegistry,
whose per-value locks make each increment atomic.
"""

import logging
import math
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterator, List, Optional, Union

from prometheus_client import CollectorRegistry, Counter, Gauge
from prometheus_client.samples import Sample

logger = logging.getLogger(__name__)

Number = Union[int, float]


class LatencyKind(str, Enum):
    """Latency sums tracked by the registry."""

    REQUEST = "request"
    PIZZA = "pizza"


@dataclass(frozen=True)
class RegistrySnapshot:
    """Point-in-time copy of all registry values."""

    requests: Dict[str, int] = field(default_factory=dict)
    auth_success: int = 0
    auth_failure: int = 0
    active_users: int = 0
    request_latency_ms: float = 0.0
    pizza_latency_ms: float = 0.0
    pizzas_sold: int = 0
    purchase_failures: int = 0
    revenue: float = 0.0


def endpoint_key(method: str, path: str) -> str:
    """Build the per-endpoint key, e.g. ``[GET] /api/order``."""
    return f"[{str(method).upper()}] {path or '/'}"


def _samples(metric: Union[Counter, Gauge], suffix: str) -> List[Sample]:
    # Counters expose <name>_total and <name>_created; gauges just <name>.
    result = []
    for family in metric.collect():
        wanted = family.name + suffix
        result.extend(s for s in family.samples if s.name == wanted)
    return result


def _amount(value: Number, what: str) -> Optional[float]:
    """Coerce an increment to a non-negative float, or None if unusable."""
    try:
        amount = float(value)
    except (TypeError, ValueError):
        logger.warning(f"Ignoring non-numeric {what}: {value!r}")
        return None
    if amount < 0 or not math.isfinite(amount):
        logger.warning(f"Ignoring invalid {what}: {value!r}")
        return None
    return amount


class MetricRegistry:
    """Registry of all service metrics.

    One instance is created at process start and shared by the request
    middleware, business logic and the exporter. The record_* methods never
    raise: input that cannot be applied is logged and dropped.

    Example:
        >>> registry = MetricRegistry()
        >>> registry.record_request("GET", "/api/franchise")
        >>> registry.record_auth_result(True)
        >>> registry.record_purchase(True, latency_ms=120, price=0.05, item_count=2)
        >>> registry.snapshot().requests
        {'[GET] /api/franchise': 1}
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None) -> None:
        """Initialize all metrics.

        Args:
            registry: Prometheus collector registry. If None, a private one is
                created so that several MetricRegistry objects can coexist.
        """
        self.registry = registry or CollectorRegistry()
        self._create_request_metrics()
        self._create_auth_metrics()
        self._create_user_metrics()
        self._create_latency_metrics()
        self._create_purchase_metrics()

    def _create_request_metrics(self) -> None:
        self.requests_total = Counter(
            name="pizza_requests",
            documentation="HTTP requests received, per endpoint",
            labelnames=["endpoint"],
            registry=self.registry,
        )

    def _create_auth_metrics(self) -> None:
        self.auth_attempts_total = Counter(
            name="pizza_auth_attempts",
            documentation="Authentication attempts by result",
            labelnames=["result"],  # success/failure
            registry=self.registry,
        )
        # Report zero for both results before the first attempt
        for result in ("success", "failure"):
            self.auth_attempts_total.labels(result=result)

    def _create_user_metrics(self) -> None:
        self.active_users = Gauge(
            name="pizza_active_users",
            documentation="Users currently logged in",
            registry=self.registry,
        )

    def _create_latency_metrics(self) -> None:
        self.latency_ms_total = Counter(
            name="pizza_latency_milliseconds",
            documentation="Running sum of latency in milliseconds",
            labelnames=["kind"],
            registry=self.registry,
        )
        for kind in LatencyKind:
            self.latency_ms_total.labels(kind=kind.value)

    def _create_purchase_metrics(self) -> None:
        self.pizzas_sold_total = Counter(
            name="pizza_sold",
            documentation="Pizzas ordered",
            registry=self.registry,
        )
        self.purchase_failures_total = Counter(
            name="pizza_purchase_failures",
            documentation="Orders the factory failed to fulfil",
            registry=self.registry,
        )
        self.revenue_total = Counter(
            name="pizza_revenue",
            documentation="Revenue from ordered pizzas",
            registry=self.registry,
        )

    # ========================================================================
    # Recording
    # ========================================================================

    def record_request(self, method: str, path: str) -> None:
        """Count one request for the ``[METHOD] /path`` endpoint."""
        self.requests_total.labels(endpoint=endpoint_key(method, path)).inc()

    def record_auth_result(self, success: bool) -> None:
        """Count one successful or failed authentication."""
        result = "success" if success else "failure"
        self.auth_attempts_total.labels(result=result).inc()

    def record_user_session(self, delta: int) -> None:
        """Move the active user count by ``delta`` (+1 login, -1 logout)."""
        if delta not in (1, -1):
            logger.warning(f"Ignoring user session delta {delta!r}, expected +1 or -1")
            return
        self.active_users.inc(delta)

    def record_latency(self, kind: Union[LatencyKind, str], milliseconds: Number) -> None:
        """Add ``milliseconds`` to the request or pizza latency sum."""
        try:
            kind = LatencyKind(kind)
        except (TypeError, ValueError):
            logger.warning(f"Ignoring latency of unknown kind {kind!r}")
            return
        amount = _amount(milliseconds, f"{kind.value} latency")
        if amount is None:
            return
        self.latency_ms_total.labels(kind=kind.value).inc(amount)

    def record_purchase(
        self,
        success: bool,
        latency_ms: Number,
        price: Number,
        item_count: int,
    ) -> None:
        """Record one order sent to the pizza factory.

        Latency, revenue and pizzas sold accumulate whether or not the order
        succeeded; only the failure count depends on ``success``.

        Args:
            success: Whether the factory fulfilled the order.
            latency_ms: Factory round-trip time in milliseconds.
            price: Total price of the order.
            item_count: Number of pizzas in the order.
        """
        if not success:
            self.purchase_failures_total.inc()
        self.record_latency(LatencyKind.PIZZA, latency_ms)

        revenue = _amount(price, "price")
        if revenue is not None:
            self.revenue_total.inc(revenue)

        count = _amount(item_count, "item count")
        if count is not None and not count.is_integer():
            logger.warning(f"Ignoring fractional item count: {item_count!r}")
            count = None
        if count is not None:
            self.pizzas_sold_total.inc(count)

    @contextmanager
    def time_latency(self, kind: Union[LatencyKind, str]) -> Iterator[None]:
        """Context manager recording the block's wall time under ``kind``.

        Example:
            >>> with registry.time_latency(LatencyKind.PIZZA):
            ...     call_factory()
        """
        start_time = time.perf_counter()
        try:
            yield
        finally:
            elapsed_ms = (time.perf_counter() - start_time) * 1000.0
            self.record_latency(kind, elapsed_ms)

    # ========================================================================
    # Reading
    # ========================================================================

    def snapshot(self) -> RegistrySnapshot:
        """Copy every current value into a RegistrySnapshot.

        Each value is read under its own lock; values of different metrics
        may be a few increments apart.
        """
        requests = {
            s.labels["endpoint"]: int(s.value)
            for s in _samples(self.requests_total, "_total")
        }
        auth = {
            s.labels["result"]: int(s.value)
            for s in _samples(self.auth_attempts_total, "_total")
        }
        latency = {
            s.labels["kind"]: s.value for s in _samples(self.latency_ms_total, "_total")
        }

        return RegistrySnapshot(
            requests=requests,
            auth_success=auth.get("success", 0),
            auth_failure=auth.get("failure", 0),
            active_users=int(self._single(self.active_users, "")),
            request_latency_ms=latency.get(LatencyKind.REQUEST.value, 0.0),
            pizza_latency_ms=latency.get(LatencyKind.PIZZA.value, 0.0),
            pizzas_sold=int(self._single(self.pizzas_sold_total, "_total")),
            purchase_failures=int(self._single(self.purchase_failures_total, "_total")),
            revenue=self._single(self.revenue_total, "_total"),
        )

    @staticmethod
    def _single(metric: Union[Counter, Gauge], suffix: str) -> float:
        samples = _samples(metric, suffix)
        return samples[0].value if samples else 0.0
