"""Tests for the filesystem object store.

Tests cover:
A) Writes are atomic: nothing is visible until commit, abort leaves no trace
B) Read / stat / remove semantics and typed not-found errors
C) Directory operations: idempotent mkdir, sorted list_dir
D) Path traversal is rejected before touching the filesystem
"""

from __future__ import annotations

import os
from datetime import UTC, datetime
from pathlib import Path

import pytest

from restserver.storage.errors import ObjectNotFoundError, PathTraversalError
from restserver.storage.filesystem_store import FilesystemObjectStore

MTIME = datetime(2024, 5, 1, 12, 0, 0, tzinfo=UTC)


def put(store: FilesystemObjectStore, path: str, data: bytes) -> None:
    writer = store.create(path)
    writer.write(data)
    writer.commit(MTIME)


class TestWrites:
    """Tests for create/commit/abort."""

    def test_commit_publishes_content(
        self, fs_store: FilesystemObjectStore, storage_dir: Path
    ) -> None:
        """Committed content is stored at the mirrored local path."""
        writer = fs_store.create("repo/keys/k1")
        writer.write(b"hello ")
        writer.write(b"world")
        info = writer.commit(MTIME)

        assert info.size_bytes == 11
        assert (storage_dir / "repo" / "keys" / "k1").read_bytes() == b"hello world"

    def test_commit_sets_modification_time(self, fs_store: FilesystemObjectStore) -> None:
        put(fs_store, "keys/k1", b"x")
        assert fs_store.stat("keys/k1").modified_at == MTIME

    def test_uncommitted_write_is_invisible(self, fs_store: FilesystemObjectStore) -> None:
        """An in-progress upload cannot be read or listed."""
        fs_store.mkdir("keys")
        writer = fs_store.create("keys/k1")
        writer.write(b"partial")

        with pytest.raises(ObjectNotFoundError):
            fs_store.stat("keys/k1")
        assert fs_store.list_dir("keys") == []

        writer.abort()

    def test_abort_keeps_previous_object(
        self, fs_store: FilesystemObjectStore, storage_dir: Path
    ) -> None:
        """An abandoned overwrite leaves the old content and no temp files."""
        put(fs_store, "keys/k1", b"old")

        writer = fs_store.create("keys/k1")
        writer.write(b"new content")
        writer.abort()

        assert (storage_dir / "keys" / "k1").read_bytes() == b"old"
        assert os.listdir(storage_dir / "keys") == ["k1"]

    def test_overwrite_replaces_content(self, fs_store: FilesystemObjectStore) -> None:
        put(fs_store, "keys/k1", b"first")
        put(fs_store, "keys/k1", b"second!")

        with fs_store.open("keys/k1") as fh:
            assert fh.read() == b"second!"

    def test_create_makes_parent_directories(
        self, fs_store: FilesystemObjectStore, storage_dir: Path
    ) -> None:
        put(fs_store, "data/ab/abcdef", b"blob")
        assert (storage_dir / "data" / "ab").is_dir()


class TestReads:
    """Tests for stat/open/remove."""

    def test_stat_missing(self, fs_store: FilesystemObjectStore) -> None:
        with pytest.raises(ObjectNotFoundError):
            fs_store.stat("keys/missing")

    def test_stat_directory_is_not_an_object(self, fs_store: FilesystemObjectStore) -> None:
        fs_store.mkdir("keys")
        with pytest.raises(ObjectNotFoundError):
            fs_store.stat("keys")

    def test_open_missing(self, fs_store: FilesystemObjectStore) -> None:
        with pytest.raises(ObjectNotFoundError):
            fs_store.open("keys/missing")

    def test_remove(self, fs_store: FilesystemObjectStore) -> None:
        put(fs_store, "locks/l1", b"lock")
        fs_store.remove("locks/l1")

        with pytest.raises(ObjectNotFoundError):
            fs_store.stat("locks/l1")

    def test_remove_missing(self, fs_store: FilesystemObjectStore) -> None:
        with pytest.raises(ObjectNotFoundError):
            fs_store.remove("locks/missing")


class TestDirectories:
    """Tests for mkdir/list_dir."""

    def test_mkdir_is_idempotent(
        self, fs_store: FilesystemObjectStore, storage_dir: Path
    ) -> None:
        fs_store.mkdir("repo/data/00")
        fs_store.mkdir("repo/data/00")
        assert (storage_dir / "repo" / "data" / "00").is_dir()

    def test_mkdir_root(self, fs_store: FilesystemObjectStore) -> None:
        fs_store.mkdir(".")

    def test_list_dir_sorted_with_kinds(self, fs_store: FilesystemObjectStore) -> None:
        put(fs_store, "data/ff/ff01", b"a")
        put(fs_store, "data/00/0001", b"b")
        fs_store.mkdir("data/7a")

        entries = fs_store.list_dir("data")

        assert [e.name for e in entries] == ["00", "7a", "ff"]
        assert all(e.is_dir for e in entries)
        assert entries[0].path == "data/00"

    def test_list_dir_root_paths(self, fs_store: FilesystemObjectStore) -> None:
        put(fs_store, "config", b"c")
        entries = fs_store.list_dir(".")
        assert [(e.path, e.is_dir) for e in entries] == [("config", False)]

    def test_list_missing_directory(self, fs_store: FilesystemObjectStore) -> None:
        with pytest.raises(ObjectNotFoundError):
            fs_store.list_dir("snapshots")


class TestPathSafety:
    """Tests for traversal protection."""

    @pytest.mark.parametrize("path", ["../escape", "a/../../b", "/etc/passwd", "a\\b", "x\x00"])
    def test_traversal_rejected(self, fs_store: FilesystemObjectStore, path: str) -> None:
        with pytest.raises(PathTraversalError):
            fs_store.stat(path)

    def test_symlink_outside_base_rejected(
        self, fs_store: FilesystemObjectStore, storage_dir: Path, tmp_path: Path
    ) -> None:
        outside = tmp_path / "outside"
        outside.mkdir()
        (outside / "secret").write_bytes(b"secret")
        (storage_dir / "link").symlink_to(outside)

        with pytest.raises(PathTraversalError):
            fs_store.open("link/secret")

    def test_base_dir_from_environment(
        self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path
    ) -> None:
        monkeypatch.setenv("RESTSERVER_STORAGE_PATH", str(tmp_path))
        assert FilesystemObjectStore().base_dir == tmp_path.resolve()
