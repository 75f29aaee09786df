"""Pytest configuration and fixtures for restserver tests.

This module provides common fixtures and configuration for all tests.
"""

from __future__ import annotations

import base64
import hashlib
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest
from fastapi.testclient import TestClient

from restserver.api.main import create_app
from restserver.config import HTPASSWD_FILENAME, ServerConfig
from restserver.observability.metrics import MetricLabels
from restserver.storage.filesystem_store import FilesystemObjectStore
from restserver.storage.memory_store import InMemoryObjectStore

OTEL_ENV_VARS = [
    "RESTSERVER_OTEL_ENABLED",
    "RESTSERVER_REQUIRE_OTEL",
    "RESTSERVER_OTEL_SERVICE_NAME",
    "RESTSERVER_OTEL_EXPORTER",
    "RESTSERVER_OTEL_TEST_CAPTURE",
    "RESTSERVER_OTEL_EXPORTER_OTLP_ENDPOINT",
    "RESTSERVER_OTEL_EXPORTER_OTLP_PROTOCOL",
    "RESTSERVER_OTEL_RESOURCE_ATTRS",
]


class RecordingMetricsSink:
    """Metrics sink that remembers every event (for assertions)."""

    def __init__(self) -> None:
        self.events: list[tuple[str, MetricLabels, int]] = []

    def blob_read(self, labels: MetricLabels, size_bytes: int) -> None:
        self.events.append(("read", labels, size_bytes))

    def blob_written(self, labels: MetricLabels, size_bytes: int) -> None:
        self.events.append(("write", labels, size_bytes))

    def blob_deleted(self, labels: MetricLabels, size_bytes: int) -> None:
        self.events.append(("delete", labels, size_bytes))

    def of_kind(self, kind: str) -> list[tuple[MetricLabels, int]]:
        return [(labels, size) for k, labels, size in self.events if k == kind]


@pytest.fixture(autouse=True)
def clear_otel_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep tracing off unless a test turns it on explicitly."""
    for name in OTEL_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def storage_dir(tmp_path: Path) -> Path:
    """Return an empty storage root directory."""
    path = tmp_path / "storage"
    path.mkdir()
    return path


@pytest.fixture
def config(storage_dir: Path) -> ServerConfig:
    """Return a default configuration rooted at storage_dir."""
    return ServerConfig(path=str(storage_dir))


@pytest.fixture
def fs_store(storage_dir: Path) -> FilesystemObjectStore:
    """Return a filesystem store rooted at storage_dir."""
    return FilesystemObjectStore(base_dir=storage_dir)


@pytest.fixture
def memory_store() -> InMemoryObjectStore:
    """Return an empty in-memory store."""
    return InMemoryObjectStore()


@pytest.fixture
def metrics() -> RecordingMetricsSink:
    """Return a recording metrics sink."""
    return RecordingMetricsSink()


@pytest.fixture
def sha_line() -> Callable[[str, str], str]:
    """Return a builder for htpasswd lines with a {SHA} hash (htpasswd -s)."""

    def _line(username: str, password: str) -> str:
        digest = hashlib.sha1(password.encode("utf-8")).digest()
        return f"{username}:{{SHA}}{base64.b64encode(digest).decode('ascii')}"

    return _line


@pytest.fixture
def write_htpasswd(storage_dir: Path) -> Callable[..., Path]:
    """Return a helper writing .htpasswd lines into the storage root."""

    def _write(*lines: str) -> Path:
        path = storage_dir / HTPASSWD_FILENAME
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        return path

    return _write


@pytest.fixture
def make_client(
    config: ServerConfig, fs_store: FilesystemObjectStore, metrics: RecordingMetricsSink
) -> Callable[..., TestClient]:
    """Return a factory for test clients over the filesystem store.

    Keyword arguments override ServerConfig fields; "object_store"
    replaces the backing store.
    """

    def _make(object_store: Any = None, **overrides: Any) -> TestClient:
        app_config = config.model_copy(update=overrides)
        app = create_app(
            app_config,
            object_store=object_store if object_store is not None else fs_store,
            metrics=metrics,
        )
        return TestClient(app, raise_server_exceptions=False)

    return _make


@pytest.fixture
def client(make_client: Callable[..., TestClient]) -> TestClient:
    """Return a test client with default settings."""
    return make_client()


@pytest.fixture
def append_only_client(make_client: Callable[..., TestClient]) -> TestClient:
    """Return a test client with append-only mode on."""
    return make_client(append_only=True)
