"""In-memory Object Storage backend.

Keeps objects and directories in process memory. Intended for tests and
throwaway development servers; nothing survives a restart.
"""

from __future__ import annotations

import io
import posixpath
import threading
from datetime import datetime
from typing import BinaryIO

from restserver.storage.errors import ObjectNotFoundError, PathTraversalError
from restserver.storage.models import DirEntry, ObjectInfo
from restserver.storage.object_store import BlobWriter, ObjectStore


def _normalize(path: str) -> str:
    if not path or "\x00" in path or path.startswith("/"):
        raise PathTraversalError(path=path)
    if any(segment == ".." for segment in path.split("/")):
        raise PathTraversalError(path=path)
    return posixpath.normpath(path)


def _parents(path: str) -> list[str]:
    """Return all ancestor directories of path, root excluded."""
    parents = []
    parent = posixpath.dirname(path)
    while parent:
        parents.append(parent)
        parent = posixpath.dirname(parent)
    return parents


class _MemoryBlobWriter(BlobWriter):
    def __init__(self, store: InMemoryObjectStore, path: str) -> None:
        self._store = store
        self._path = path
        self._buffer = io.BytesIO()

    def write(self, chunk: bytes) -> None:
        self._buffer.write(chunk)

    def commit(self, modified_at: datetime) -> ObjectInfo:
        data = self._buffer.getvalue()
        self._store._publish(self._path, data, modified_at)
        return ObjectInfo(path=self._path, size_bytes=len(data), modified_at=modified_at)

    def abort(self) -> None:
        self._buffer = io.BytesIO()


class InMemoryObjectStore(ObjectStore):
    """Dict-backed object store.

    Thread-safe: all mutations hold a single lock, so it can back a server
    handling concurrent requests from the threadpool.
    """

    def __init__(self) -> None:
        self._objects: dict[str, tuple[bytes, datetime]] = {}
        self._dirs: set[str] = set()
        self._lock = threading.Lock()

    @property
    def backend_name(self) -> str:
        return "memory"

    def _publish(self, path: str, data: bytes, modified_at: datetime) -> None:
        with self._lock:
            self._dirs.update(_parents(path))
            self._objects[path] = (data, modified_at)

    def stat(self, path: str) -> ObjectInfo:
        key = _normalize(path)
        with self._lock:
            entry = self._objects.get(key)
        if entry is None:
            raise ObjectNotFoundError(path=path)
        data, modified_at = entry
        return ObjectInfo(path=key, size_bytes=len(data), modified_at=modified_at)

    def open(self, path: str) -> BinaryIO:
        key = _normalize(path)
        with self._lock:
            entry = self._objects.get(key)
        if entry is None:
            raise ObjectNotFoundError(path=path)
        return io.BytesIO(entry[0])

    def create(self, path: str) -> BlobWriter:
        return _MemoryBlobWriter(self, _normalize(path))

    def remove(self, path: str) -> None:
        key = _normalize(path)
        with self._lock:
            if key not in self._objects:
                raise ObjectNotFoundError(path=path)
            del self._objects[key]

    def mkdir(self, path: str) -> None:
        key = _normalize(path)
        if key == ".":
            return
        with self._lock:
            self._dirs.add(key)
            self._dirs.update(_parents(key))

    def list_dir(self, path: str) -> list[DirEntry]:
        key = _normalize(path)
        with self._lock:
            if key != "." and key not in self._dirs:
                raise ObjectNotFoundError(message="Directory not found", path=path)
            parent = "" if key == "." else key
            entries = [
                DirEntry(path=d, name=posixpath.basename(d), is_dir=True)
                for d in self._dirs
                if posixpath.dirname(d) == parent
            ]
            entries += [
                DirEntry(path=o, name=posixpath.basename(o), is_dir=False)
                for o in self._objects
                if posixpath.dirname(o) == parent
            ]
        return sorted(entries, key=lambda e: e.name)

    def dump(self) -> dict[str, bytes]:
        """Return a snapshot of all stored objects keyed by path."""
        with self._lock:
            return {path: data for path, (data, _) in self._objects.items()}

    def directories(self) -> set[str]:
        """Return a snapshot of all known directories."""
        with self._lock:
            return set(self._dirs)
