"""Repository layout, validation and access policy for the restic REST protocol."""

from restserver.repo.errors import (
    AppendOnlyError,
    InvalidTypeError,
    MissingConfirmationError,
    NameTooShortError,
    RepositoryError,
    UnsafePathError,
)
from restserver.repo.layout import (
    ROOT_REPO,
    VALID_TYPES,
    ObjectType,
    is_hashed,
    is_valid_type,
    repo_prefix,
    repository_directories,
    resolve_blob_path,
    resolve_type_path,
    shard_directories,
    validate_segment,
)
from restserver.repo.policy import check_delete_allowed, is_delete_allowed

__all__ = [
    "AppendOnlyError",
    "InvalidTypeError",
    "MissingConfirmationError",
    "NameTooShortError",
    "ObjectType",
    "ROOT_REPO",
    "RepositoryError",
    "UnsafePathError",
    "VALID_TYPES",
    "check_delete_allowed",
    "is_delete_allowed",
    "is_hashed",
    "is_valid_type",
    "repo_prefix",
    "repository_directories",
    "resolve_blob_path",
    "resolve_type_path",
    "shard_directories",
    "validate_segment",
]
