"""Blob traffic metrics.

Handlers report every completed read, write and delete to a MetricsSink
with a fixed label schema (user, repo, type). When metrics are disabled
the NoopMetricsSink is installed, so handlers call the sink unconditionally.

OtelMetricsSink records OpenTelemetry counters:
    rest_server_blob_read_total / rest_server_blob_read_bytes_total
    rest_server_blob_write_total / rest_server_blob_write_bytes_total
    rest_server_blob_delete_total / rest_server_blob_delete_bytes_total

configure_metrics() installs a MeterProvider exporting through the same
RESTSERVER_OTEL_EXPORTER* settings tracing uses.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from restserver.observability.tracing import TelemetrySettings

logger = logging.getLogger(__name__)

METER_NAME = "restserver"

_meter_provider: Any = None


@dataclass(frozen=True)
class MetricLabels:
    """Label set attached to every blob counter."""

    user: str
    repo: str
    type: str

    def as_attributes(self) -> dict[str, str]:
        return {"user": self.user, "repo": self.repo, "type": self.type}


@runtime_checkable
class MetricsSink(Protocol):
    """Receiver for blob traffic events."""

    def blob_read(self, labels: MetricLabels, size_bytes: int) -> None: ...

    def blob_written(self, labels: MetricLabels, size_bytes: int) -> None: ...

    def blob_deleted(self, labels: MetricLabels, size_bytes: int) -> None: ...


class NoopMetricsSink:
    """Metrics sink used when metrics are disabled."""

    def blob_read(self, labels: MetricLabels, size_bytes: int) -> None:
        pass

    def blob_written(self, labels: MetricLabels, size_bytes: int) -> None:
        pass

    def blob_deleted(self, labels: MetricLabels, size_bytes: int) -> None:
        pass


class OtelMetricsSink:
    """Metrics sink backed by OpenTelemetry counters."""

    def __init__(self, meter_provider: Any = None) -> None:
        """Create the blob counters.

        Args:
            meter_provider: Provider to create the meter from. Defaults to
                the globally installed provider.
        """
        from opentelemetry import metrics

        provider = meter_provider if meter_provider is not None else metrics.get_meter_provider()
        meter = provider.get_meter(METER_NAME)

        self.read_total = meter.create_counter(
            "rest_server_blob_read_total",
            description="Total number of blobs read",
            unit="1",
        )
        self.read_bytes_total = meter.create_counter(
            "rest_server_blob_read_bytes_total",
            description="Total number of bytes read from blobs",
            unit="By",
        )
        self.write_total = meter.create_counter(
            "rest_server_blob_write_total",
            description="Total number of blobs written",
            unit="1",
        )
        self.write_bytes_total = meter.create_counter(
            "rest_server_blob_write_bytes_total",
            description="Total number of bytes written to blobs",
            unit="By",
        )
        self.delete_total = meter.create_counter(
            "rest_server_blob_delete_total",
            description="Total number of blobs deleted",
            unit="1",
        )
        self.delete_bytes_total = meter.create_counter(
            "rest_server_blob_delete_bytes_total",
            description="Total number of bytes of blobs deleted",
            unit="By",
        )

    def blob_read(self, labels: MetricLabels, size_bytes: int) -> None:
        attributes = labels.as_attributes()
        self.read_total.add(1, attributes=attributes)
        self.read_bytes_total.add(size_bytes, attributes=attributes)

    def blob_written(self, labels: MetricLabels, size_bytes: int) -> None:
        attributes = labels.as_attributes()
        self.write_total.add(1, attributes=attributes)
        self.write_bytes_total.add(size_bytes, attributes=attributes)

    def blob_deleted(self, labels: MetricLabels, size_bytes: int) -> None:
        attributes = labels.as_attributes()
        self.delete_total.add(1, attributes=attributes)
        self.delete_bytes_total.add(size_bytes, attributes=attributes)


def create_metrics_sink(enabled: bool) -> MetricsSink:
    """Return the sink matching the metrics-enabled flag."""
    if not enabled:
        return NoopMetricsSink()
    return OtelMetricsSink()


def configure_metrics() -> bool:
    """Install a global MeterProvider with a periodic exporting reader.

    Uses RESTSERVER_OTEL_EXPORTER ("otlp" or "console"),
    RESTSERVER_OTEL_EXPORTER_OTLP_ENDPOINT and
    RESTSERVER_OTEL_EXPORTER_OTLP_PROTOCOL. Idempotent.

    Returns:
        True if a provider is installed, False if setup failed.
    """
    global _meter_provider

    if _meter_provider is not None:
        return True

    try:
        from opentelemetry import metrics
        from opentelemetry.sdk.metrics import MeterProvider
        from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader

        settings = TelemetrySettings.from_env()
        if settings.exporter == "console":
            from opentelemetry.sdk.metrics.export import ConsoleMetricExporter

            exporter: Any = ConsoleMetricExporter()
        else:
            exporter = _otlp_metric_exporter(settings)

        provider = MeterProvider(
            resource=settings.resource(),
            metric_readers=[PeriodicExportingMetricReader(exporter)],
        )
        metrics.set_meter_provider(provider)
        _meter_provider = provider

        logger.info("OpenTelemetry metrics configured: exporter=%s", settings.exporter)
        return True

    except Exception as e:
        logger.error("Failed to configure OpenTelemetry metrics: %s", e)
        return False


def _otlp_metric_exporter(settings: TelemetrySettings) -> Any:
    if settings.otlp_protocol == "http":
        from opentelemetry.exporter.otlp.proto.http.metric_exporter import OTLPMetricExporter
    else:
        from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter

    return OTLPMetricExporter(**settings.otlp_kwargs())
