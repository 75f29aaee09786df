"""OpenTelemetry tracing for restserver.

Spans come from two places: FastAPI instrumentation (one span per request,
enriched with request id, user, repository and object type) and
restserver.storage.tracing (one span per object store call).

Environment Variables:
    RESTSERVER_OTEL_ENABLED: "1" turns tracing on (default: off)
    RESTSERVER_REQUIRE_OTEL: "1" makes a failed setup fatal
    RESTSERVER_OTEL_SERVICE_NAME: service.name resource attribute (default: "restserver")
    RESTSERVER_OTEL_RESOURCE_ATTRS: extra resource attributes, "k=v,k2=v2"
    RESTSERVER_OTEL_EXPORTER: "otlp" or "console" (default: "otlp")
    RESTSERVER_OTEL_EXPORTER_OTLP_ENDPOINT: collector endpoint (optional)
    RESTSERVER_OTEL_EXPORTER_OTLP_PROTOCOL: "grpc" or "http" (default: "grpc")
    RESTSERVER_OTEL_TEST_CAPTURE: "1" keeps finished spans in memory (tests)

The exporter settings are shared with restserver.observability.metrics.

Security:
    - Never export Authorization headers, passwords or request bodies
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from opentelemetry.sdk.resources import Resource
    from opentelemetry.sdk.trace import ReadableSpan, TracerProvider
    from opentelemetry.sdk.trace.export import SpanExporter

logger = logging.getLogger(__name__)

ENV_PREFIX = "RESTSERVER_OTEL_"

_provider: TracerProvider | None = None
_capture: Any = None  # InMemorySpanExporter when RESTSERVER_OTEL_TEST_CAPTURE=1


class TracingConfigError(Exception):
    """Raised when tracing setup fails and RESTSERVER_REQUIRE_OTEL=1."""

    pass


def _env_flag(name: str) -> bool:
    return os.environ.get(name, "").strip().lower() in ("1", "true", "yes")


def _env(name: str, default: str = "") -> str:
    return os.environ.get(name, default).strip()


def parse_resource_attrs(attrs_str: str) -> dict[str, str]:
    """Parse "k=v,k2=v2" into a dict, ignoring pairs without "="."""
    result: dict[str, str] = {}
    for pair in attrs_str.split(","):
        key, sep, value = pair.partition("=")
        if sep:
            result[key.strip()] = value.strip()
    return result


def tracing_enabled() -> bool:
    """Return True if RESTSERVER_OTEL_ENABLED is set."""
    return _env_flag(ENV_PREFIX + "ENABLED")


@dataclass(frozen=True)
class TelemetrySettings:
    """Exporter settings read from the environment.

    Attributes:
        service_name: Value of the service.name resource attribute.
        resource_attrs: Additional resource attributes.
        exporter: "otlp" or "console".
        otlp_endpoint: Collector endpoint, None for the exporter default.
        otlp_protocol: "grpc" or "http".
    """

    service_name: str = "restserver"
    resource_attrs: dict[str, str] = field(default_factory=dict)
    exporter: str = "otlp"
    otlp_endpoint: str | None = None
    otlp_protocol: str = "grpc"

    @classmethod
    def from_env(cls) -> TelemetrySettings:
        return cls(
            service_name=_env(ENV_PREFIX + "SERVICE_NAME", "restserver"),
            resource_attrs=parse_resource_attrs(_env(ENV_PREFIX + "RESOURCE_ATTRS")),
            exporter=_env(ENV_PREFIX + "EXPORTER", "otlp"),
            otlp_endpoint=_env(ENV_PREFIX + "EXPORTER_OTLP_ENDPOINT") or None,
            otlp_protocol=_env(ENV_PREFIX + "EXPORTER_OTLP_PROTOCOL", "grpc"),
        )

    def resource(self) -> Resource:
        """Build the resource shared by traces and metrics."""
        from opentelemetry.sdk.resources import Resource

        return Resource.create({"service.name": self.service_name, **self.resource_attrs})

    def otlp_kwargs(self) -> dict[str, Any]:
        return {"endpoint": self.otlp_endpoint} if self.otlp_endpoint else {}


def _span_exporter(settings: TelemetrySettings) -> SpanExporter:
    if settings.exporter == "console":
        from opentelemetry.sdk.trace.export import ConsoleSpanExporter

        return ConsoleSpanExporter()

    if settings.otlp_protocol == "http":
        from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
    else:
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter

    return OTLPSpanExporter(**settings.otlp_kwargs())


def configure_tracing() -> bool:
    """Install the global tracer provider if tracing is enabled.

    Safe to call repeatedly: the provider is installed at most once per
    process (OpenTelemetry refuses to replace it).

    Returns:
        True if tracing is active, False otherwise.

    Raises:
        TracingConfigError: If RESTSERVER_REQUIRE_OTEL=1 and setup fails.
    """
    global _provider, _capture

    if not tracing_enabled():
        logger.debug("OpenTelemetry tracing disabled")
        return False

    if _provider is not None:
        return True

    capture = _env_flag(ENV_PREFIX + "TEST_CAPTURE")
    settings = TelemetrySettings.from_env()

    try:
        from opentelemetry import trace
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import BatchSpanProcessor, SimpleSpanProcessor

        provider = TracerProvider(resource=settings.resource())
        if capture:
            from opentelemetry.sdk.trace.export.in_memory_span_exporter import (
                InMemorySpanExporter,
            )

            _capture = InMemorySpanExporter()
            provider.add_span_processor(SimpleSpanProcessor(_capture))
        elif settings.exporter == "console":
            provider.add_span_processor(SimpleSpanProcessor(_span_exporter(settings)))
        else:
            provider.add_span_processor(BatchSpanProcessor(_span_exporter(settings)))

        trace.set_tracer_provider(provider)
        _provider = provider
    except Exception as e:
        logger.error("Failed to configure OpenTelemetry tracing: %s", e)
        if _env_flag("RESTSERVER_REQUIRE_OTEL"):
            raise TracingConfigError(f"tracing required but setup failed: {e}") from e
        return False

    logger.info(
        "OpenTelemetry tracing configured: exporter=%s",
        "in-memory" if capture else settings.exporter,
    )
    return True


def instrument_fastapi(app: Any) -> None:
    """Add request spans to a FastAPI app when tracing is enabled."""
    if not tracing_enabled():
        return

    try:
        from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

        FastAPIInstrumentor.instrument_app(app)
    except Exception as e:
        logger.warning("Failed to instrument FastAPI: %s", e)


def set_span_attributes(attributes: dict[str, Any]) -> None:
    """Set attributes on the current span, skipping None values."""
    from opentelemetry import trace

    span = trace.get_current_span()
    if not span.is_recording():
        return
    for key, value in attributes.items():
        if value is not None:
            span.set_attribute(key, str(value))


def get_test_spans() -> list[ReadableSpan]:
    """Return spans captured with RESTSERVER_OTEL_TEST_CAPTURE=1."""
    if _capture is None:
        return []
    return list(_capture.get_finished_spans())


def clear_test_spans() -> None:
    """Forget captured spans."""
    if _capture is not None:
        _capture.clear()
