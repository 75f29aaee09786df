"""Filesystem Object Storage backend.

Stores objects as plain files under a base directory, mirroring the
store-relative path layout one to one, so a repository served from disk is
directly usable by other restic backends.

Environment Variables:
    RESTSERVER_STORAGE_PATH: Base directory for storage when none is given
        (default: tempfile.gettempdir() / restserver)
"""

from __future__ import annotations

import logging
import os
import posixpath
import tempfile
import uuid
from datetime import UTC, datetime
from pathlib import Path
from typing import BinaryIO

from restserver.storage.errors import (
    ObjectNotFoundError,
    PathTraversalError,
    StorageBackendError,
)
from restserver.storage.models import DirEntry, ObjectInfo
from restserver.storage.object_store import BlobWriter, ObjectStore
from restserver.storage.tracing import traced_storage_operation

logger = logging.getLogger(__name__)

RESTSERVER_STORAGE_PATH_ENV = "RESTSERVER_STORAGE_PATH"

# In-progress uploads live beside their target and are hidden from listings.
_TMP_PREFIX = ".restserver-tmp-"


def _is_path_traversal(path: str) -> bool:
    """Check if a store-relative path could escape the storage root.

    Detects:
    - ".." segments
    - Absolute paths (leading "/" or "~")
    - Backslashes and null bytes
    """
    if not path:
        return True

    if "\x00" in path or "\\" in path:
        return True

    if path.startswith("/") or path.startswith("~"):
        return True

    return any(segment == ".." for segment in path.split("/"))


def _normalize(path: str) -> str:
    """Normalize a store-relative path, raising on traversal attempts."""
    if _is_path_traversal(path):
        raise PathTraversalError(path=path)
    return posixpath.normpath(path)


def _mtime(st: os.stat_result) -> datetime:
    return datetime.fromtimestamp(st.st_mtime, tz=UTC)


class FilesystemBlobWriter(BlobWriter):
    """Writes into a temporary file and renames it into place on commit."""

    def __init__(self, target: Path, rel_path: str) -> None:
        self._target = target
        self._rel_path = rel_path
        self._tmp = target.with_name(f"{_TMP_PREFIX}{target.name}.{uuid.uuid4().hex}")
        self._size = 0
        try:
            self._fh: BinaryIO = open(self._tmp, "wb")  # noqa: SIM115
        except OSError as e:
            raise StorageBackendError(
                message=f"Failed to open temporary file: {e}",
                path=rel_path,
                cause=e,
            ) from e

    def write(self, chunk: bytes) -> None:
        try:
            self._fh.write(chunk)
        except OSError as e:
            raise StorageBackendError(
                message=f"Failed to write content: {e}",
                path=self._rel_path,
                cause=e,
            ) from e
        self._size += len(chunk)

    def commit(self, modified_at: datetime) -> ObjectInfo:
        ts = modified_at.timestamp()
        try:
            self._fh.close()
            os.utime(self._tmp, (ts, ts))
            os.replace(self._tmp, self._target)
        except OSError as e:
            self.abort()
            raise StorageBackendError(
                message=f"Failed to publish content: {e}",
                path=self._rel_path,
                cause=e,
            ) from e

        return ObjectInfo(path=self._rel_path, size_bytes=self._size, modified_at=modified_at)

    def abort(self) -> None:
        try:
            self._fh.close()
        except OSError as e:
            logger.warning("Failed to close temporary file %s: %s", self._tmp.name, e)
        try:
            self._tmp.unlink(missing_ok=True)
        except OSError as e:
            logger.warning("Failed to remove temporary file %s: %s", self._tmp.name, e)


class FilesystemObjectStore(ObjectStore):
    """Filesystem-based object storage implementation.

    A store path "repo/data/ab/ab12" maps to {base_dir}/repo/data/ab/ab12.
    Directories are real directories, so mkdir() and list_dir() are direct
    filesystem operations.
    """

    def __init__(self, base_dir: str | Path | None = None) -> None:
        """Initialize filesystem storage.

        Args:
            base_dir: Base directory for storage. If None, uses the
                RESTSERVER_STORAGE_PATH env var or the OS temp directory.
        """
        if base_dir is None:
            base_dir = os.environ.get(RESTSERVER_STORAGE_PATH_ENV)

        if base_dir is None:
            base_dir = Path(tempfile.gettempdir()) / "restserver"
        else:
            base_dir = Path(base_dir)

        self._base_dir = base_dir.resolve()
        logger.debug("FilesystemObjectStore initialized with base_dir=%s", self._base_dir)

    @property
    def backend_name(self) -> str:
        """Return the backend identifier."""
        return "filesystem"

    @property
    def base_dir(self) -> Path:
        """Return the base directory path."""
        return self._base_dir

    def _local_path(self, path: str) -> Path:
        """Map a store path to a local path inside the base directory."""
        normalized = _normalize(path)
        local = self._base_dir if normalized == "." else self._base_dir / normalized

        # Symlinks may still point outside the base directory.
        try:
            local.resolve().relative_to(self._base_dir)
        except ValueError as e:
            raise PathTraversalError(
                message="Path resolves outside storage base directory",
                path=path,
            ) from e
        return local

    @traced_storage_operation("stat")
    def stat(self, path: str) -> ObjectInfo:
        local = self._local_path(path)
        try:
            st = local.stat()
        except (FileNotFoundError, NotADirectoryError) as e:
            raise ObjectNotFoundError(path=path) from e
        except OSError as e:
            raise StorageBackendError(
                message=f"Failed to stat object: {e}",
                path=path,
                cause=e,
            ) from e

        if not local.is_file():
            raise ObjectNotFoundError(message="Not an object", path=path)

        return ObjectInfo(path=path, size_bytes=st.st_size, modified_at=_mtime(st))

    @traced_storage_operation("open")
    def open(self, path: str) -> BinaryIO:
        local = self._local_path(path)
        try:
            return open(local, "rb")  # noqa: SIM115
        except (FileNotFoundError, NotADirectoryError, IsADirectoryError) as e:
            raise ObjectNotFoundError(path=path) from e
        except OSError as e:
            raise StorageBackendError(
                message=f"Failed to open object: {e}",
                path=path,
                cause=e,
            ) from e

    @traced_storage_operation("create")
    def create(self, path: str) -> BlobWriter:
        local = self._local_path(path)
        try:
            local.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageBackendError(
                message=f"Failed to create parent directory: {e}",
                path=path,
                cause=e,
            ) from e
        return FilesystemBlobWriter(local, path)

    @traced_storage_operation("remove")
    def remove(self, path: str) -> None:
        local = self._local_path(path)
        try:
            local.unlink()
        except (FileNotFoundError, NotADirectoryError, IsADirectoryError) as e:
            raise ObjectNotFoundError(path=path) from e
        except OSError as e:
            raise StorageBackendError(
                message=f"Failed to remove object: {e}",
                path=path,
                cause=e,
            ) from e

        logger.debug("Removed object: path=%s", path)

    @traced_storage_operation("mkdir")
    def mkdir(self, path: str) -> None:
        local = self._local_path(path)
        try:
            local.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageBackendError(
                message=f"Failed to create directory: {e}",
                path=path,
                cause=e,
            ) from e

    @traced_storage_operation("list_dir")
    def list_dir(self, path: str) -> list[DirEntry]:
        local = self._local_path(path)
        prefix = _normalize(path)
        try:
            with os.scandir(local) as it:
                raw = [(e.name, e.is_dir()) for e in it if not e.name.startswith(_TMP_PREFIX)]
        except (FileNotFoundError, NotADirectoryError) as e:
            raise ObjectNotFoundError(message="Directory not found", path=path) from e
        except OSError as e:
            raise StorageBackendError(
                message=f"Failed to list directory: {e}",
                path=path,
                cause=e,
            ) from e

        raw.sort(key=lambda item: item[0])
        return [
            DirEntry(
                path=name if prefix == "." else posixpath.join(prefix, name),
                name=name,
                is_dir=is_dir,
            )
            for name, is_dir in raw
        ]
