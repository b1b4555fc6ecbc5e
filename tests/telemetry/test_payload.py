"""Unit tests for OTLP payload construction and serialization."""

import json

import pytest

from pizzametrics.exceptions import SerializationError
from pizzametrics.metrics.payload import (
    AGGREGATION_TEMPORALITY_CUMULATIVE,
    DataPoint,
    MetricKind,
    MetricSpec,
    PayloadBuilder,
    build_payload,
    collect_metric_specs,
    encode_metric,
    serialize_payload,
)
from pizzametrics.metrics.registry import RegistrySnapshot
from pizzametrics.metrics.sampler import SystemSample

TIMESTAMP_MS = 1_760_000_000_123
STATIC = {"source": "jwt-pizza-service"}


def metrics_of(payload):
    resource_metrics = payload["resourceMetrics"]
    assert len(resource_metrics) == 1
    scope_metrics = resource_metrics[0]["scopeMetrics"]
    assert len(scope_metrics) == 1
    return scope_metrics[0]["metrics"]


def by_name(payload):
    return {m["name"]: m for m in metrics_of(payload)}


def attributes_of(data_point):
    return {a["key"]: a["value"]["stringValue"] for a in data_point["attributes"]}


@pytest.fixture
def sample():
    return SystemSample(cpu_percent=37.0, memory_percent=61.42)


class TestMetricSpecs:
    """Tests for the list of metrics reported each cycle."""

    def test_reporting_order(self, sample):
        """Test metrics appear in a fixed order with requests first."""
        snapshot = RegistrySnapshot(requests={"[GET] /": 1})
        names = [spec.name for spec in collect_metric_specs(snapshot, sample)]
        assert names == [
            "requests",
            "cpu",
            "memory",
            "success",
            "failure",
            "active",
            "request latency",
            "pizza latency",
            "pizza purchases",
            "purchase failures",
            "revenue",
        ]

    def test_only_cpu_and_memory_are_gauges(self, sample):
        """Test CPU and memory are gauges and everything else is a sum."""
        snapshot = RegistrySnapshot(requests={"[GET] /": 1})
        for spec in collect_metric_specs(snapshot, sample):
            expected = MetricKind.GAUGE if spec.name in ("cpu", "memory") else MetricKind.SUM
            assert spec.kind is expected

    def test_units(self, sample):
        """Test unit assignment per metric."""
        units = {s.name: s.unit for s in collect_metric_specs(RegistrySnapshot(), sample)}
        assert units["cpu"] == "%"
        assert units["memory"] == "%"
        assert units["request latency"] == "ms"
        assert units["pizza latency"] == "ms"
        assert units["revenue"] == "1"

    def test_requests_omitted_before_first_request(self, sample):
        """Test no requests metric exists while no endpoint has been seen."""
        names = [s.name for s in collect_metric_specs(RegistrySnapshot(), sample)]
        assert "requests" not in names


class TestBuildPayload:
    """Tests for the OTLP JSON structure."""

    def test_two_endpoints_two_data_points(self, sample):
        """Test each endpoint gets its own data point with shared static attributes."""
        snapshot = RegistrySnapshot(
            requests={"[GET] /api/order": 3, "[POST] /api/auth": 1}
        )
        payload = build_payload(snapshot, sample, STATIC, timestamp_ms=TIMESTAMP_MS)

        requests_metric = by_name(payload)["requests"]
        points = requests_metric["sum"]["dataPoints"]
        assert len(points) == 2

        by_endpoint = {attributes_of(p)["endpoint"]: p for p in points}
        assert by_endpoint["[GET] /api/order"]["asInt"] == 3
        assert by_endpoint["[POST] /api/auth"]["asInt"] == 1
        for point in points:
            assert attributes_of(point)["source"] == "jwt-pizza-service"

    def test_sum_fields(self, sample):
        """Test sums carry cumulative temporality and monotonic flag."""
        payload = build_payload(RegistrySnapshot(auth_success=4), sample, STATIC, TIMESTAMP_MS)
        success = by_name(payload)["success"]
        assert success["unit"] == "1"
        assert success["sum"]["aggregationTemporality"] == AGGREGATION_TEMPORALITY_CUMULATIVE
        assert success["sum"]["isMonotonic"] is True
        assert success["sum"]["dataPoints"][0]["asInt"] == 4

    def test_gauge_fields(self, sample):
        """Test gauges have no temporality or monotonic flag."""
        payload = build_payload(RegistrySnapshot(), sample, STATIC, TIMESTAMP_MS)
        cpu = by_name(payload)["cpu"]
        assert "sum" not in cpu
        assert set(cpu["gauge"]) == {"dataPoints"}
        assert cpu["gauge"]["dataPoints"][0]["asDouble"] == 37.0
        assert by_name(payload)["memory"]["gauge"]["dataPoints"][0]["asDouble"] == 61.42

    def test_timestamp_in_nanoseconds(self, sample):
        """Test every data point carries the millisecond clock times 1e6."""
        payload = build_payload(
            RegistrySnapshot(requests={"[GET] /": 1}), sample, STATIC, TIMESTAMP_MS
        )
        for metric in metrics_of(payload):
            body = metric.get("sum") or metric.get("gauge")
            for point in body["dataPoints"]:
                assert point["timeUnixNano"] == TIMESTAMP_MS * 1_000_000

    def test_default_timestamp_uses_clock(self, sample, monkeypatch):
        """Test the wall clock is used when no timestamp is given."""
        monkeypatch.setattr("pizzametrics.metrics.payload.time.time", lambda: 1700000000.5)
        payload = build_payload(RegistrySnapshot(), sample, STATIC)
        point = by_name(payload)["cpu"]["gauge"]["dataPoints"][0]
        assert point["timeUnixNano"] == 1_700_000_000_500 * 1_000_000

    def test_float_values_use_as_double(self, sample):
        """Test fractional sums are encoded as asDouble."""
        payload = build_payload(RegistrySnapshot(revenue=0.0125), sample, STATIC, TIMESTAMP_MS)
        point = by_name(payload)["revenue"]["sum"]["dataPoints"][0]
        assert point == {
            "asDouble": 0.0125,
            "timeUnixNano": TIMESTAMP_MS * 1_000_000,
            "attributes": [{"key": "source", "value": {"stringValue": "jwt-pizza-service"}}],
        }

    def test_idle_payload_has_gauges_and_zero_sums(self, sample):
        """Test a payload with no activity still has gauges and zero sums."""
        payload = build_payload(RegistrySnapshot(), sample, STATIC, TIMESTAMP_MS)
        metrics = by_name(payload)
        assert "cpu" in metrics and "memory" in metrics
        for name in (
            "success",
            "failure",
            "active",
            "request latency",
            "pizza latency",
            "pizza purchases",
            "purchase failures",
            "revenue",
        ):
            point = metrics[name]["sum"]["dataPoints"][0]
            value = point.get("asInt", point.get("asDouble"))
            assert value == 0

    def test_no_resource_entry_by_default(self, sample):
        """Test the resource entry is omitted without resource attributes."""
        payload = build_payload(RegistrySnapshot(), sample, STATIC, TIMESTAMP_MS)
        assert "resource" not in payload["resourceMetrics"][0]

    def test_resource_attributes(self, sample):
        """Test resource attributes are encoded on the resource."""
        payload = build_payload(
            RegistrySnapshot(),
            sample,
            STATIC,
            TIMESTAMP_MS,
            resource_attributes={"service.name": "jwt-pizza-service"},
        )
        assert payload["resourceMetrics"][0]["resource"] == {
            "attributes": [
                {"key": "service.name", "value": {"stringValue": "jwt-pizza-service"}}
            ]
        }

    def test_same_inputs_same_payload(self, sample):
        """Test building is deterministic for a fixed timestamp."""
        snapshot = RegistrySnapshot(requests={"[GET] /b": 2, "[GET] /a": 1}, revenue=1.5)
        first = build_payload(snapshot, sample, STATIC, TIMESTAMP_MS)
        second = build_payload(snapshot, sample, STATIC, TIMESTAMP_MS)
        assert first == second


class TestEncodeMetric:
    """Tests for single metric encoding."""

    def test_static_attributes_override_dimensions(self):
        """Test the static source wins over a metric dimension of the same key."""
        spec = MetricSpec(
            "requests", "1", MetricKind.SUM, [DataPoint(1, {"source": "x", "endpoint": "e"})]
        )
        encoded = encode_metric(spec, 0, {"source": "jwt-pizza-service"})
        attrs = attributes_of(encoded["sum"]["dataPoints"][0])
        assert attrs == {"source": "jwt-pizza-service", "endpoint": "e"}


class TestPayloadBuilder:
    """Tests for the PayloadBuilder wrapper."""

    def test_builder_applies_attributes(self, sample):
        """Test the builder passes its static and resource attributes through."""
        builder = PayloadBuilder(STATIC, {"service.name": "pizza"})
        payload = builder.build(RegistrySnapshot(), sample, timestamp_ms=TIMESTAMP_MS)
        assert "resource" in payload["resourceMetrics"][0]
        assert attributes_of(by_name(payload)["cpu"]["gauge"]["dataPoints"][0]) == STATIC


class TestSerializePayload:
    """Tests for JSON encoding."""

    def test_serializes_to_json_bytes(self, sample):
        """Test the encoded body parses back to the payload."""
        payload = build_payload(RegistrySnapshot(), sample, STATIC, TIMESTAMP_MS)
        body = serialize_payload(payload)
        assert isinstance(body, bytes)
        assert json.loads(body) == payload

    def test_nan_is_a_serialization_error(self):
        """Test non-finite values are rejected."""
        payload = build_payload(
            RegistrySnapshot(),
            SystemSample(cpu_percent=float("nan")),
            STATIC,
            TIMESTAMP_MS,
        )
        with pytest.raises(SerializationError):
            serialize_payload(payload)

    def test_unencodable_object_is_a_serialization_error(self):
        """Test objects JSON cannot encode are rejected."""
        with pytest.raises(SerializationError):
            serialize_payload({"resourceMetrics": [object()]})
