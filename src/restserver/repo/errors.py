"""Repository protocol error types.

Each error carries the HTTP status the API maps it to. All of them are
raised before the object store is touched.
"""

from __future__ import annotations


class RepositoryError(Exception):
    """Base exception for repository protocol violations.

    Attributes:
        message: Human-readable error message (never sent to clients).
        http_status: HTTP status code the API responds with.
    """

    http_status = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidTypeError(RepositoryError):
    """Raised when an object type is outside the closed set of types."""

    def __init__(self, object_type: str) -> None:
        super().__init__(f"invalid file type: {object_type!r}")
        self.object_type = object_type


class NameTooShortError(RepositoryError):
    """Raised when a sharded blob name has fewer than two characters."""

    def __init__(self, name: str) -> None:
        super().__init__(f"file name is too short: {name!r}")
        self.name = name


class UnsafePathError(RepositoryError):
    """Raised when a repository or name segment could escape its directory."""

    def __init__(self, segment: str) -> None:
        super().__init__(f"unsafe path segment: {segment!r}")
        self.segment = segment


class AppendOnlyError(RepositoryError):
    """Raised when a delete is attempted in append-only mode."""

    http_status = 403


class MissingConfirmationError(RepositoryError):
    """Raised when repository creation is requested without create=true."""

    def __init__(self) -> None:
        super().__init__("repository creation requires create=true")
