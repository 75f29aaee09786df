"""Append-only access policy.

In append-only mode restic may add data but never remove it. Lock files
are the one exception: clients must be able to clean up their own locks.
Writes are never restricted.
"""

from __future__ import annotations

from restserver.repo.errors import AppendOnlyError
from restserver.repo.layout import ObjectType


def is_delete_allowed(object_type: str, append_only: bool) -> bool:
    """Return True if objects of this type may be deleted."""
    if not append_only:
        return True
    return object_type == ObjectType.LOCKS


def check_delete_allowed(object_type: str, append_only: bool) -> None:
    """Raise AppendOnlyError if deleting this type is forbidden.

    Config deletion is forbidden under append-only like every other
    non-lock type.
    """
    if not is_delete_allowed(object_type, append_only):
        raise AppendOnlyError(f"delete of {object_type!r} forbidden in append-only mode")
