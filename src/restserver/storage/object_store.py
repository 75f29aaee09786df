"""Object storage interface definition.

Provides the ObjectStore interface that all storage backends implement.
Paths are slash-separated and relative to the backend's root; "." names
the root itself.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import BinaryIO

from restserver.storage.models import DirEntry, ObjectInfo


class BlobWriter(ABC):
    """Incremental writer for a single object.

    Content written through a BlobWriter becomes visible at its path only
    after commit(). abort() discards everything written so far. Exactly one
    of commit() or abort() must be called.
    """

    @abstractmethod
    def write(self, chunk: bytes) -> None:
        """Append a chunk of content.

        Raises:
            StorageBackendError: If the backend cannot accept the chunk.
        """
        ...

    @abstractmethod
    def commit(self, modified_at: datetime) -> ObjectInfo:
        """Publish the written content, replacing any existing object.

        Args:
            modified_at: Modification time to record for the object.

        Returns:
            Metadata of the stored object.

        Raises:
            StorageBackendError: If the object cannot be published.
        """
        ...

    @abstractmethod
    def abort(self) -> None:
        """Discard the written content. Never raises for cleanup failures."""
        ...


class ObjectStore(ABC):
    """Abstract base class for hierarchical object storage backends.

    Contract relied on by the repository handlers:
    - mkdir() is idempotent: creating an existing directory is not an error
    - list_dir() returns entries sorted by name
    - paths never escape the backend root (PathTraversalError otherwise)

    Implementations:
    - FilesystemObjectStore: local directory tree
    - InMemoryObjectStore: dict-backed store for tests and development
    """

    @property
    @abstractmethod
    def backend_name(self) -> str:
        """Return the backend identifier for observability (e.g. "filesystem")."""
        ...

    @abstractmethod
    def stat(self, path: str) -> ObjectInfo:
        """Return object metadata without reading content.

        Raises:
            ObjectNotFoundError: If no object exists at path.
            PathTraversalError: If path escapes the storage root.
            StorageBackendError: If the backend cannot complete the operation.
        """
        ...

    @abstractmethod
    def open(self, path: str) -> BinaryIO:
        """Open an object for streaming reads.

        The caller owns the returned handle and must close it.

        Raises:
            ObjectNotFoundError: If no object exists at path.
            PathTraversalError: If path escapes the storage root.
            StorageBackendError: If the backend cannot open the object.
        """
        ...

    @abstractmethod
    def create(self, path: str) -> BlobWriter:
        """Start writing an object at path, creating parent directories.

        Raises:
            PathTraversalError: If path escapes the storage root.
            StorageBackendError: If the backend cannot start the write.
        """
        ...

    @abstractmethod
    def remove(self, path: str) -> None:
        """Remove an object.

        Raises:
            ObjectNotFoundError: If no object exists at path.
            PathTraversalError: If path escapes the storage root.
            StorageBackendError: If the backend cannot complete the deletion.
        """
        ...

    @abstractmethod
    def mkdir(self, path: str) -> None:
        """Create a directory and any missing parents. Idempotent.

        Raises:
            PathTraversalError: If path escapes the storage root.
            StorageBackendError: If the directory cannot be created.
        """
        ...

    @abstractmethod
    def list_dir(self, path: str) -> list[DirEntry]:
        """List the direct children of a directory, sorted by name.

        Raises:
            ObjectNotFoundError: If the directory does not exist.
            PathTraversalError: If path escapes the storage root.
            StorageBackendError: If the backend cannot complete the listing.
        """
        ...
