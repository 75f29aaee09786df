"""Tests for the config routes: HEAD/GET/POST/DELETE /[repo/]config."""

from __future__ import annotations

from pathlib import Path

from fastapi.testclient import TestClient


class TestConfigRoutes:
    """Tests for repository config handling."""

    def test_missing_config(self, client: TestClient) -> None:
        assert client.head("/config").status_code == 404
        assert client.get("/config").status_code == 404

    def test_save_and_load(self, client: TestClient, storage_dir: Path) -> None:
        assert client.post("/config", content=b"cfg-bytes").status_code == 200
        assert (storage_dir / "config").read_bytes() == b"cfg-bytes"

        response = client.get("/config")
        assert response.status_code == 200
        assert response.content == b"cfg-bytes"
        assert response.headers["content-length"] == "9"

    def test_head_reports_size(self, client: TestClient) -> None:
        client.post("/config", content=b"12345678")

        response = client.head("/config")
        assert response.status_code == 200
        assert response.headers["content-length"] == "8"

    def test_repo_config(self, client: TestClient, storage_dir: Path) -> None:
        """/<repo>/config addresses the config of that repository."""
        assert client.post("/r1/config", content=b"r1").status_code == 200
        assert (storage_dir / "r1" / "config").read_bytes() == b"r1"
        assert client.get("/r1/config").content == b"r1"
        assert client.head("/config").status_code == 404

    def test_delete(self, client: TestClient) -> None:
        client.post("/config", content=b"c")

        assert client.delete("/config").status_code == 200
        assert client.head("/config").status_code == 404

    def test_delete_missing(self, client: TestClient) -> None:
        assert client.delete("/config").status_code == 404

    def test_config_is_not_listable(self, client: TestClient) -> None:
        client.post("/config", content=b"c")
        assert client.get("/config/").status_code == 400

    def test_name_below_config_file(self, client: TestClient) -> None:
        """A config file never acts as a blob directory."""
        client.post("/config", content=b"c")
        assert client.get("/config/c").status_code == 404
        assert client.head("/config/c").status_code == 404
