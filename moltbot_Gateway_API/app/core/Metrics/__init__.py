"""
Metrics module for the gateway supervisor.

In-process counters and histograms with a Prometheus text export.
"""

from .metrics_manager import (
    MetricType,
    MetricDefinition,
    MetricValue,
    MetricsRegistry,
    get_metrics_registry,
    increment_counter,
    observe_histogram,
)

__all__ = [
    "MetricType",
    "MetricDefinition",
    "MetricValue",
    "MetricsRegistry",
    "get_metrics_registry",
    "increment_counter",
    "observe_histogram",
]
