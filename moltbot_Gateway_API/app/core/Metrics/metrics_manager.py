"""
Centralized metrics management for the gateway supervisor.

Values are aggregated in-process and can be exported in Prometheus text
format. Recording a metric never raises into the caller.
"""

import time
from typing import Dict, Any, Optional, List
from dataclasses import dataclass, field
from enum import Enum
from collections import defaultdict, deque
from contextlib import contextmanager
import statistics

from loguru import logger


class MetricType(Enum):
    """Types of metrics supported."""
    COUNTER = "counter"
    GAUGE = "gauge"
    HISTOGRAM = "histogram"


@dataclass
class MetricDefinition:
    """Definition of a metric."""
    name: str
    type: MetricType
    description: str
    unit: str = ""
    labels: List[str] = field(default_factory=list)
    buckets: Optional[List[float]] = None  # For histograms


@dataclass
class MetricValue:
    """A metric value with metadata."""
    value: float
    timestamp: float = field(default_factory=time.time)
    labels: Dict[str, str] = field(default_factory=dict)


class MetricsRegistry:
    """Registry for all supervisor metrics."""

    def __init__(self):
        self.metrics: Dict[str, MetricDefinition] = {}
        self.values: Dict[str, deque] = defaultdict(lambda: deque(maxlen=1000))
        self._register_standard_metrics()

    def _register_standard_metrics(self):
        """Register the gateway startup metrics."""
        self.register_metric(
            MetricDefinition(
                name="gateway_startup_attempts_total",
                type=MetricType.COUNTER,
                description="Startup attempts executed by the coordinator",
                labels=["outcome"]
            )
        )

        self.register_metric(
            MetricDefinition(
                name="gateway_startup_joined_total",
                type=MetricType.COUNTER,
                description="Callers that joined an attempt already in flight",
            )
        )

        self.register_metric(
            MetricDefinition(
                name="gateway_restarts_total",
                type=MetricType.COUNTER,
                description="Gateway processes killed so a fresh one could be launched",
                labels=["reason"]
            )
        )

        self.register_metric(
            MetricDefinition(
                name="gateway_soft_failures_total",
                type=MetricType.COUNTER,
                description="Best-effort operations that failed and were ignored",
                labels=["operation"]
            )
        )

        self.register_metric(
            MetricDefinition(
                name="gateway_startup_duration_seconds",
                type=MetricType.HISTOGRAM,
                description="Wall time of a startup attempt",
                unit="s",
                labels=["outcome"],
                buckets=[0.1, 0.5, 1, 5, 10, 30, 60, 120, 240]
            )
        )

    def register_metric(self, definition: MetricDefinition) -> bool:
        """
        Register a new metric definition.

        Returns:
            True if registered successfully
        """
        if definition.name in self.metrics:
            logger.warning(f"Metric {definition.name} already registered")
            return False

        self.metrics[definition.name] = definition
        logger.debug(f"Registered metric: {definition.name}")
        return True

    def record(self, metric_name: str, value: float, labels: Optional[Dict[str, str]] = None):
        """
        Record a metric value.

        Args:
            metric_name: Name of the metric
            value: Value to record
            labels: Optional labels/dimensions
        """
        if metric_name not in self.metrics:
            logger.warning(f"Metric {metric_name} not registered")
            return

        labels = {str(k): str(v) for k, v in (labels or {}).items()}
        self.values[metric_name].append(MetricValue(value=value, labels=labels))

    def increment(self, metric_name: str, value: float = 1, labels: Optional[Dict[str, str]] = None):
        """Increment a counter metric."""
        self.record(metric_name, value, labels)

    def observe(self, metric_name: str, value: float, labels: Optional[Dict[str, str]] = None):
        """Observe a value for histogram metric."""
        self.record(metric_name, value, labels)

    @contextmanager
    def timer(self, metric_name: str, labels: Optional[Dict[str, str]] = None):
        """Context manager to time an operation into a histogram metric."""
        start_time = time.perf_counter()
        try:
            yield
        finally:
            self.observe(metric_name, time.perf_counter() - start_time, labels)

    def get_metric_stats(self, metric_name: str, labels: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        """
        Get statistics for a metric.

        Args:
            metric_name: Name of the metric
            labels: Optional label filter (exact match on the provided keys)

        Returns:
            Dictionary with metric statistics, empty when nothing matched
        """
        if metric_name not in self.values:
            return {}

        values = list(self.values[metric_name])
        if labels:
            values = [val for val in values if all(
                val.labels.get(key) == str(expected) for key, expected in labels.items()
            )]

        if not values:
            return {}

        numeric_values = [v.value for v in values]

        return {
            "count": len(numeric_values),
            "sum": sum(numeric_values),
            "mean": statistics.mean(numeric_values),
            "min": min(numeric_values),
            "max": max(numeric_values),
            "latest": numeric_values[-1],
            "latest_timestamp": values[-1].timestamp
        }

    def export_prometheus_format(self) -> str:
        """Export metrics in Prometheus text format."""
        lines = []

        for metric_name, definition in self.metrics.items():
            if metric_name not in self.values or not self.values[metric_name]:
                continue

            lines.append(f"# HELP {metric_name} {definition.description}")
            prom_type = "summary" if definition.type == MetricType.HISTOGRAM else definition.type.value
            lines.append(f"# TYPE {metric_name} {prom_type}")

            label_groups = defaultdict(list)
            for value in self.values[metric_name]:
                label_key = ",".join(f'{k}="{v}"' for k, v in sorted(value.labels.items()))
                label_groups[label_key].append(value.value)

            for label_key, group in label_groups.items():
                suffix = f"{{{label_key}}}" if label_key else ""
                if definition.type == MetricType.COUNTER:
                    lines.append(f"{metric_name}{suffix} {sum(group)}")
                elif definition.type == MetricType.GAUGE:
                    lines.append(f"{metric_name}{suffix} {group[-1]}")
                else:
                    lines.append(f"{metric_name}_count{suffix} {len(group)}")
                    lines.append(f"{metric_name}_sum{suffix} {sum(group)}")

        return "\n".join(lines) + ("\n" if lines else "")

    def reset(self) -> None:
        """Drop all recorded values (definitions are kept)."""
        self.values.clear()


# Global metrics registry instance
_metrics_registry: Optional[MetricsRegistry] = None


def get_metrics_registry() -> MetricsRegistry:
    """Get or create the global metrics registry."""
    global _metrics_registry
    if _metrics_registry is None:
        _metrics_registry = MetricsRegistry()
    return _metrics_registry


def increment_counter(metric_name: str, value: float = 1, labels: Optional[Dict[str, str]] = None):
    """Increment a counter metric."""
    try:
        get_metrics_registry().increment(metric_name, value, labels)
    except Exception as e:
        logger.debug(f"increment_counter({metric_name}) failed: {e}")


def observe_histogram(metric_name: str, value: float, labels: Optional[Dict[str, str]] = None):
    """Observe a value for histogram metric."""
    try:
        get_metrics_registry().observe(metric_name, value, labels)
    except Exception as e:
        logger.debug(f"observe_histogram({metric_name}) failed: {e}")
