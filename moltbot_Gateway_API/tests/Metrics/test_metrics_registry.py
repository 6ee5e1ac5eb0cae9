import pytest

from moltbot_Gateway_API.app.core.Metrics import (
    MetricDefinition,
    MetricsRegistry,
    MetricType,
    increment_counter,
    observe_histogram,
    get_metrics_registry,
)


@pytest.mark.unit
def test_standard_metrics_registered():
    registry = MetricsRegistry()
    for name in (
        "gateway_startup_attempts_total",
        "gateway_startup_joined_total",
        "gateway_restarts_total",
        "gateway_soft_failures_total",
        "gateway_startup_duration_seconds",
    ):
        assert name in registry.metrics


@pytest.mark.unit
def test_duplicate_registration_rejected():
    registry = MetricsRegistry()
    dup = MetricDefinition(name="gateway_restarts_total", type=MetricType.COUNTER, description="x")
    assert registry.register_metric(dup) is False


@pytest.mark.unit
def test_unregistered_metric_is_ignored():
    registry = MetricsRegistry()
    registry.record("does_not_exist", 1)
    assert registry.get_metric_stats("does_not_exist") == {}


@pytest.mark.unit
def test_stats_filter_by_labels():
    registry = MetricsRegistry()
    registry.increment("gateway_startup_attempts_total", labels={"outcome": "reused"})
    registry.increment("gateway_startup_attempts_total", labels={"outcome": "launched"})
    registry.increment("gateway_startup_attempts_total", labels={"outcome": "reused"})

    assert registry.get_metric_stats("gateway_startup_attempts_total")["count"] == 3
    reused = registry.get_metric_stats("gateway_startup_attempts_total", labels={"outcome": "reused"})
    assert reused["count"] == 2
    assert reused["sum"] == 2
    assert registry.get_metric_stats("gateway_startup_attempts_total", labels={"outcome": "failed"}) == {}


@pytest.mark.unit
def test_timer_observes_histogram():
    registry = MetricsRegistry()
    with registry.timer("gateway_startup_duration_seconds", labels={"outcome": "launched"}):
        pass
    stats = registry.get_metric_stats("gateway_startup_duration_seconds")
    assert stats["count"] == 1
    assert stats["min"] >= 0


@pytest.mark.unit
def test_prometheus_export():
    registry = MetricsRegistry()
    registry.increment("gateway_restarts_total", labels={"reason": "requested"})
    registry.increment("gateway_restarts_total", labels={"reason": "requested"})
    registry.observe("gateway_startup_duration_seconds", 1.5, labels={"outcome": "reused"})

    text = registry.export_prometheus_format()

    assert "# TYPE gateway_restarts_total counter" in text
    assert 'gateway_restarts_total{reason="requested"} 2' in text
    assert 'gateway_startup_duration_seconds_count{outcome="reused"} 1' in text
    assert 'gateway_startup_duration_seconds_sum{outcome="reused"} 1.5' in text
    # Metrics without samples are omitted
    assert "gateway_startup_joined_total" not in text


@pytest.mark.unit
def test_module_helpers_use_global_registry():
    increment_counter("gateway_startup_joined_total")
    observe_histogram("gateway_startup_duration_seconds", 0.25, labels={"outcome": "failed"})
    registry = get_metrics_registry()
    assert registry.get_metric_stats("gateway_startup_joined_total")["count"] == 1
    assert registry.get_metric_stats("gateway_startup_duration_seconds")["latest"] == 0.25

    registry.reset()
    assert registry.get_metric_stats("gateway_startup_joined_total") == {}
