"""OTLP JSON payload construction.

Turns a registry snapshot and a host sample into the nested
resourceMetrics / scopeMetrics / metrics structure accepted by OTLP/HTTP
collectors, and encodes it for sending. Building is pure: the same inputs
and timestamp always produce the same payload.
"""

import json
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Union

from pizzametrics.exceptions import SerializationError
from pizzametrics.metrics.registry import RegistrySnapshot
from pizzametrics.metrics.sampler import SystemSample

AGGREGATION_TEMPORALITY_CUMULATIVE = "AGGREGATION_TEMPORALITY_CUMULATIVE"
NANOS_PER_MILLI = 1_000_000

Number = Union[int, float]


class MetricKind(str, Enum):
    """OTLP metric data type."""

    SUM = "sum"  # monotonic cumulative counters
    GAUGE = "gauge"  # instantaneous readings


@dataclass(frozen=True)
class DataPoint:
    """One value with its metric-specific attributes."""

    value: Number
    attributes: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class MetricSpec:
    """A metric ready to be encoded."""

    name: str
    unit: str
    kind: MetricKind
    data_points: List[DataPoint]


def _sum(name: str, value: Number, unit: str = "1") -> MetricSpec:
    return MetricSpec(name, unit, MetricKind.SUM, [DataPoint(value)])


def _gauge(name: str, value: Number, unit: str = "%") -> MetricSpec:
    return MetricSpec(name, unit, MetricKind.GAUGE, [DataPoint(value)])


def collect_metric_specs(
    snapshot: RegistrySnapshot, system_sample: SystemSample
) -> List[MetricSpec]:
    """List the metrics of one flush cycle in reporting order.

    The ``requests`` metric carries one data point per endpoint seen so far
    and is left out until the first request is recorded. All other metrics
    are always present.
    """
    specs: List[MetricSpec] = []

    if snapshot.requests:
        points = [
            DataPoint(count, {"endpoint": endpoint})
            for endpoint, count in sorted(snapshot.requests.items())
        ]
        specs.append(MetricSpec("requests", "1", MetricKind.SUM, points))

    specs.extend(
        [
            _gauge("cpu", system_sample.cpu_percent),
            _gauge("memory", system_sample.memory_percent),
            _sum("success", snapshot.auth_success),
            _sum("failure", snapshot.auth_failure),
            _sum("active", snapshot.active_users),
            _sum("request latency", snapshot.request_latency_ms, unit="ms"),
            _sum("pizza latency", snapshot.pizza_latency_ms, unit="ms"),
            _sum("pizza purchases", snapshot.pizzas_sold),
            _sum("purchase failures", snapshot.purchase_failures),
            _sum("revenue", snapshot.revenue),
        ]
    )
    return specs


def _attribute_list(attributes: Mapping[str, str]) -> List[Dict[str, Any]]:
    return [
        {"key": key, "value": {"stringValue": str(value)}}
        for key, value in attributes.items()
    ]


def _value_field(value: Number) -> str:
    if isinstance(value, int):
        return "asInt"
    return "asDouble"


def encode_metric(
    spec: MetricSpec,
    time_unix_nano: int,
    static_attributes: Mapping[str, str],
) -> Dict[str, Any]:
    """Encode one MetricSpec as an OTLP JSON metric object."""
    data_points = []
    for point in spec.data_points:
        # Static attributes win over metric dimensions on a key clash
        attributes = {**point.attributes, **static_attributes}
        value = int(point.value) if isinstance(point.value, bool) else point.value
        data_points.append(
            {
                _value_field(value): value,
                "timeUnixNano": time_unix_nano,
                "attributes": _attribute_list(attributes),
            }
        )

    body: Dict[str, Any] = {"dataPoints": data_points}
    if spec.kind is MetricKind.SUM:
        body["aggregationTemporality"] = AGGREGATION_TEMPORALITY_CUMULATIVE
        body["isMonotonic"] = True

    return {"name": spec.name, "unit": spec.unit, spec.kind.value: body}


def build_payload(
    snapshot: RegistrySnapshot,
    system_sample: SystemSample,
    static_attributes: Optional[Mapping[str, str]] = None,
    timestamp_ms: Optional[int] = None,
    resource_attributes: Optional[Mapping[str, str]] = None,
) -> Dict[str, Any]:
    """Build the OTLP JSON payload for one flush cycle.

    Args:
        snapshot: Registry values to report.
        system_sample: CPU and memory readings.
        static_attributes: Attributes added to every data point, e.g.
            ``{"source": "jwt-pizza-service"}``.
        timestamp_ms: Wall clock time in milliseconds. Defaults to now.
        resource_attributes: Optional resource attributes such as
            ``service.name``; the ``resource`` entry is omitted when empty.

    Returns:
        Dictionary ready for JSON encoding.
    """
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    time_unix_nano = int(timestamp_ms) * NANOS_PER_MILLI
    static_attributes = static_attributes or {}

    metrics = [
        encode_metric(spec, time_unix_nano, static_attributes)
        for spec in collect_metric_specs(snapshot, system_sample)
    ]

    resource_metric: Dict[str, Any] = {}
    if resource_attributes:
        resource_metric["resource"] = {"attributes": _attribute_list(resource_attributes)}
    resource_metric["scopeMetrics"] = [{"metrics": metrics}]

    return {"resourceMetrics": [resource_metric]}


def serialize_payload(payload: Dict[str, Any]) -> bytes:
    """Encode a payload as compact UTF-8 JSON.

    Raises:
        SerializationError: If the payload holds values JSON cannot carry,
            including NaN and infinity.
    """
    try:
        return json.dumps(payload, separators=(",", ":"), allow_nan=False).encode("utf-8")
    except (TypeError, ValueError) as e:
        raise SerializationError(str(e), cause=e)


class PayloadBuilder:
    """Builds payloads with a fixed set of static and resource attributes.

    Example:
        >>> builder = PayloadBuilder({"source": "jwt-pizza-service"})
        >>> payload = builder.build(registry.snapshot(), sampler.sample())
    """

    def __init__(
        self,
        static_attributes: Optional[Mapping[str, str]] = None,
        resource_attributes: Optional[Mapping[str, str]] = None,
    ) -> None:
        self.static_attributes = dict(static_attributes or {})
        self.resource_attributes = dict(resource_attributes or {})

    def build(
        self,
        snapshot: RegistrySnapshot,
        system_sample: SystemSample,
        timestamp_ms: Optional[int] = None,
    ) -> Dict[str, Any]:
        return build_payload(
            snapshot,
            system_sample,
            self.static_attributes,
            timestamp_ms=timestamp_ms,
            resource_attributes=self.resource_attributes,
        )
