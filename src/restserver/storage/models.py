"""Object storage data models."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class ObjectInfo:
    """Metadata for a stored object.

    Attributes:
        path: Slash-separated storage path relative to the store root.
        size_bytes: Size of the object content in bytes.
        modified_at: Last modification time of the object.
    """

    path: str
    size_bytes: int
    modified_at: datetime


@dataclass(frozen=True)
class DirEntry:
    """A single entry returned by a directory listing.

    Attributes:
        path: Full storage path of the entry (relative to the store root).
        name: Base name of the entry.
        is_dir: True for directories, False for objects.
    """

    path: str
    name: str
    is_dir: bool
