"""restserver Object Storage Abstraction.

Provides the hierarchical object store the REST handlers serve from.

Backends:
- FilesystemObjectStore: Local directory tree
- InMemoryObjectStore: Process memory (tests, development)

Environment Variables:
    RESTSERVER_STORAGE_PATH: Base directory for the filesystem backend
        when none is configured explicitly.
"""

from restserver.storage.errors import (
    ObjectNotFoundError,
    ObjectStorageError,
    PathTraversalError,
    StorageBackendError,
)
from restserver.storage.models import DirEntry, ObjectInfo
from restserver.storage.object_store import BlobWriter, ObjectStore

__all__ = [
    "BlobWriter",
    "DirEntry",
    "ObjectInfo",
    "ObjectStore",
    "ObjectStorageError",
    "ObjectNotFoundError",
    "PathTraversalError",
    "StorageBackendError",
]
