"""Tests for OpenTelemetry tracing configuration and storage spans."""

from __future__ import annotations

from pathlib import Path

import pytest
from opentelemetry.trace import StatusCode

from restserver.observability.tracing import (
    TelemetrySettings,
    clear_test_spans,
    configure_tracing,
    get_test_spans,
    parse_resource_attrs,
    tracing_enabled,
)
from restserver.storage.errors import ObjectNotFoundError
from restserver.storage.filesystem_store import FilesystemObjectStore


@pytest.fixture
def capture_spans(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("RESTSERVER_OTEL_ENABLED", "1")
    monkeypatch.setenv("RESTSERVER_OTEL_TEST_CAPTURE", "1")
    assert configure_tracing() is True
    clear_test_spans()


class TestConfigureTracing:
    """Tests for tracing settings."""

    def test_disabled_by_default(self) -> None:
        assert not tracing_enabled()
        assert configure_tracing() is False

    def test_parse_resource_attrs(self) -> None:
        assert parse_resource_attrs("env=prod, region = eu ,bogus") == {
            "env": "prod",
            "region": "eu",
        }
        assert parse_resource_attrs("") == {}

    def test_settings_defaults(self) -> None:
        settings = TelemetrySettings.from_env()

        assert settings.service_name == "restserver"
        assert settings.exporter == "otlp"
        assert settings.otlp_protocol == "grpc"
        assert settings.otlp_kwargs() == {}

    def test_settings_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("RESTSERVER_OTEL_SERVICE_NAME", "backup-gw")
        monkeypatch.setenv("RESTSERVER_OTEL_RESOURCE_ATTRS", "env=prod")
        monkeypatch.setenv("RESTSERVER_OTEL_EXPORTER", "console")
        monkeypatch.setenv("RESTSERVER_OTEL_EXPORTER_OTLP_ENDPOINT", "http://collector:4318")
        monkeypatch.setenv("RESTSERVER_OTEL_EXPORTER_OTLP_PROTOCOL", "http")

        settings = TelemetrySettings.from_env()
        resource = settings.resource()

        assert settings.exporter == "console"
        assert settings.otlp_kwargs() == {"endpoint": "http://collector:4318"}
        assert resource.attributes["service.name"] == "backup-gw"
        assert resource.attributes["env"] == "prod"


class TestStorageSpans:
    """Tests for spans emitted by traced storage operations."""

    def test_span_per_operation(self, capture_spans: None, tmp_path: Path) -> None:
        store = FilesystemObjectStore(base_dir=tmp_path)
        store.mkdir("keys")
        store.list_dir("keys")

        spans = {span.name: span for span in get_test_spans()}

        assert "restserver.object_store.mkdir" in spans
        listing = spans["restserver.object_store.list_dir"]
        assert listing.attributes["restserver.storage_path"] == "keys"
        assert listing.attributes["storage.backend"] == "filesystem"
        assert listing.attributes["restserver.entry_count"] == 0

    def test_error_span(self, capture_spans: None, tmp_path: Path) -> None:
        store = FilesystemObjectStore(base_dir=tmp_path)

        with pytest.raises(ObjectNotFoundError):
            store.stat("keys/missing")

        [span] = [s for s in get_test_spans() if s.name == "restserver.object_store.stat"]
        assert span.status.status_code is StatusCode.ERROR
        assert span.attributes["error.type"] == "ObjectNotFoundError"

    def test_absolute_paths_not_exported(self, capture_spans: None, tmp_path: Path) -> None:
        store = FilesystemObjectStore(base_dir=tmp_path)
        store.mkdir("data/00")

        for span in get_test_spans():
            for value in span.attributes.values():
                assert str(tmp_path) not in str(value)

    def test_no_spans_when_disabled(self, tmp_path: Path) -> None:
        clear_test_spans()
        FilesystemObjectStore(base_dir=tmp_path).mkdir("keys")
        assert get_test_spans() == []
