"""restserver API error handling.

Provides RestHttpError and the FastAPI exception handlers that map every
failure to exactly one HTTP status with a generic body.

Global exception handlers:
- RepositoryError: protocol violations (400 invalid type/name, 403 append-only)
- ObjectStorageError: storage outcomes (404 not found, 500 backend failure)
- RestHttpError: ad-hoc HTTP errors raised by handlers
- HTTPException: Starlette routing errors (unknown route, method not allowed)
- Exception: Catch-all for unhandled exceptions (500, no details)

Causes are logged at DEBUG; they never change the response.
"""

from __future__ import annotations

import logging

from fastapi import Request
from fastapi.responses import Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from restserver.api.error_model import make_error_response
from restserver.repo.errors import RepositoryError
from restserver.storage.errors import ObjectStorageError

logger = logging.getLogger(__name__)


class RestHttpError(Exception):
    """Application-level HTTP error.

    Attributes:
        status_code: HTTP status code (e.g., 400, 404, 500).
        code: Machine-readable error code for logs (e.g., "not_listable").
        message: Human-readable error message for logs.
    """

    def __init__(self, status_code: int, code: str, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message


def _request_id(request: Request) -> str | None:
    return getattr(request.state, "request_id", None)


async def rest_http_error_handler(request: Request, exc: Exception) -> Response:
    """Exception handler for RestHttpError."""
    assert isinstance(exc, RestHttpError)

    logger.debug(
        "%s %s -> %d %s: %s",
        request.method,
        request.url.path,
        exc.status_code,
        exc.code,
        exc.message,
        extra={"request_id": _request_id(request)},
    )
    return make_error_response(request, http_status=exc.status_code)


async def repository_error_handler(request: Request, exc: Exception) -> Response:
    """Exception handler for repository protocol violations."""
    assert isinstance(exc, RepositoryError)

    logger.debug(
        "%s %s -> %d: %s",
        request.method,
        request.url.path,
        exc.http_status,
        exc.message,
        extra={"request_id": _request_id(request)},
    )
    return make_error_response(request, http_status=exc.http_status)


async def storage_error_handler(request: Request, exc: Exception) -> Response:
    """Exception handler for object store failures."""
    assert isinstance(exc, ObjectStorageError)

    logger.debug(
        "%s %s -> %d: %s",
        request.method,
        request.url.path,
        exc.http_status,
        exc,
        extra={"request_id": _request_id(request)},
    )
    return make_error_response(request, http_status=exc.http_status)


async def http_exception_handler(request: Request, exc: Exception) -> Response:
    """Exception handler for Starlette HTTP exceptions (routing 404/405)."""
    assert isinstance(exc, StarletteHTTPException)

    return make_error_response(
        request,
        http_status=exc.status_code,
        headers=dict(exc.headers) if exc.headers else None,
    )


async def generic_exception_handler(request: Request, exc: Exception) -> Response:
    """Catch-all exception handler for unhandled exceptions.

    Returns 500 with the generic body and logs the exception. Never
    exposes stack traces or exception details to clients.
    """
    logger.exception(
        "Unhandled exception: %s",
        type(exc).__name__,
        extra={"request_id": _request_id(request)},
    )
    return make_error_response(request, http_status=500)
