"""restserver observability: OpenTelemetry tracing and blob traffic metrics."""

from restserver.observability.metrics import (
    MetricLabels,
    MetricsSink,
    NoopMetricsSink,
    OtelMetricsSink,
    configure_metrics,
    create_metrics_sink,
)
from restserver.observability.tracing import configure_tracing

__all__ = [
    "MetricLabels",
    "MetricsSink",
    "NoopMetricsSink",
    "OtelMetricsSink",
    "configure_metrics",
    "configure_tracing",
    "create_metrics_sink",
]
