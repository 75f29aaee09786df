"""Repository layout and storage path resolution.

Maps (repository, object type, name) to the canonical store path used by
restic's REST backend protocol:

    <repo>/config
    <repo>/data/<name[:2]>/<name>
    <repo>/<type>/<name>          (index, keys, locks, snapshots)

The storage root itself is the repository "." when a request carries no
repository segment. Everything here is pure: no I/O, no state.
"""

from __future__ import annotations

import posixpath
from enum import StrEnum

from restserver.repo.errors import InvalidTypeError, NameTooShortError, UnsafePathError

ROOT_REPO = "."

SHARD_PREFIX_LEN = 2


class ObjectType(StrEnum):
    """Closed set of object types a repository holds."""

    DATA = "data"
    INDEX = "index"
    KEYS = "keys"
    LOCKS = "locks"
    SNAPSHOTS = "snapshots"
    CONFIG = "config"


# Ordered as repository creation makes them.
VALID_TYPES: tuple[ObjectType, ...] = (
    ObjectType.DATA,
    ObjectType.INDEX,
    ObjectType.KEYS,
    ObjectType.LOCKS,
    ObjectType.SNAPSHOTS,
    ObjectType.CONFIG,
)

_VALID_TYPE_NAMES = frozenset(t.value for t in VALID_TYPES)


def is_valid_type(object_type: str) -> bool:
    """Return True if object_type is one of the repository object types."""
    return object_type in _VALID_TYPE_NAMES


def is_hashed(object_type: str) -> bool:
    """Return True if blobs of this type live in two-character shard dirs."""
    return object_type == ObjectType.DATA


def validate_segment(segment: str) -> str:
    """Check that a repository or name segment stays within its directory.

    Raises:
        UnsafePathError: If segment is empty, "." or "..", or contains a
            path separator or NUL byte.
    """
    if segment in ("", ".", ".."):
        raise UnsafePathError(segment)
    if "/" in segment or "\\" in segment or "\x00" in segment:
        raise UnsafePathError(segment)
    return segment


def repo_prefix(repo: str | None) -> str:
    """Return the store prefix for a route's optional repository segment."""
    if repo is None:
        return ROOT_REPO
    return validate_segment(repo)


def _join(*parts: str) -> str:
    return posixpath.normpath(posixpath.join(*parts))


def resolve_type_path(repo: str, object_type: str) -> str:
    """Return the store path of a type directory (or of the config file).

    Args:
        repo: Repository prefix, "." for the storage root.
        object_type: Object type name.

    Raises:
        InvalidTypeError: If object_type is not a repository object type.
    """
    if not is_valid_type(object_type):
        raise InvalidTypeError(object_type)
    return _join(repo, object_type)


def resolve_blob_path(repo: str, object_type: str, name: str) -> str:
    """Return the store path of a named blob.

    Blobs of the data type are sharded by the first two characters of
    their name; other types are stored flat in their type directory.

    Raises:
        InvalidTypeError: If object_type is not a repository object type.
        NameTooShortError: If the type is sharded and name is shorter than
            two characters.
        UnsafePathError: If name could escape the type directory.
    """
    if not is_valid_type(object_type):
        raise InvalidTypeError(object_type)

    if is_hashed(object_type):
        if len(name) < SHARD_PREFIX_LEN:
            raise NameTooShortError(name)
        validate_segment(name)
        return _join(repo, object_type, name[:SHARD_PREFIX_LEN], name)

    validate_segment(name)
    return _join(repo, object_type, name)


def shard_directories() -> list[str]:
    """Return the 256 shard directory names "00" through "ff", ascending."""
    return [f"{i:02x}" for i in range(256)]


def repository_directories(repo: str) -> list[str]:
    """Return every directory repository creation makes, in creation order.

    The repository root comes first, then each type directory except
    config (a file), then the data shard directories.
    """
    dirs = [posixpath.normpath(repo)]
    dirs.extend(_join(repo, t) for t in VALID_TYPES if t is not ObjectType.CONFIG)
    dirs.extend(_join(repo, ObjectType.DATA, shard) for shard in shard_directories())
    return dirs
