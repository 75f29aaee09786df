"""Object storage error types.

Backends never return sentinel values for failures: operations that cannot
complete raise one of these. Each class carries the HTTP status the API
answers with, so handlers never inspect backend details.
"""

from __future__ import annotations


class ObjectStorageError(Exception):
    """Base exception for object storage operations.

    path is the store-relative path involved, if any. cause is the
    underlying OS error for backend failures.
    """

    http_status = 500
    default_message = "Object storage error"

    def __init__(
        self,
        message: str | None = None,
        *,
        path: str | None = None,
        cause: Exception | None = None,
    ) -> None:
        self.message = message or self.default_message
        self.path = path
        self.cause = cause
        super().__init__(self.message)

    def __str__(self) -> str:
        return f"{self.message} path={self.path}" if self.path else self.message


class ObjectNotFoundError(ObjectStorageError):
    """The object or directory does not exist."""

    http_status = 404
    default_message = "Object not found"


class PathTraversalError(ObjectStorageError):
    """The path would escape the storage root.

    Covers "..", absolute paths, NUL bytes and symlinks pointing outside
    the root. Such paths never reach the backend.
    """

    http_status = 400
    default_message = "Invalid path: traversal detected"


class StorageBackendError(ObjectStorageError):
    """The backend failed (disk full, permission denied, I/O error)."""

    default_message = "Storage backend error"
