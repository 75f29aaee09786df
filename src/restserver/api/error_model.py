"""Shared error response builder for the restserver API.

Every error response has the same shape: the standard HTTP reason phrase
as a plain-text body (e.g. "Not Found"), so no internal detail ever
reaches the client. The request id is echoed in X-Request-Id.
"""

from __future__ import annotations

import re
import uuid
from http import HTTPStatus

from fastapi import Request
from fastapi.responses import PlainTextResponse

REQUEST_ID_HEADER = "X-Request-Id"
MAX_REQUEST_ID_LENGTH = 128

_REQUEST_ID_RE = re.compile(r"[\x21-\x7e]+")


def accept_request_id(value: str | None) -> str:
    """Return value if usable as a request id, else a new uuid4 string.

    Usable means short printable ASCII without spaces, so restic's own ids
    survive into the logs while arbitrary header content does not.
    """
    if value is not None:
        value = value.strip()
        if len(value) <= MAX_REQUEST_ID_LENGTH and _REQUEST_ID_RE.fullmatch(value):
            return value
    return str(uuid.uuid4())


def status_text(http_status: int) -> str:
    """Return the standard reason phrase for an HTTP status code."""
    try:
        return HTTPStatus(http_status).phrase
    except ValueError:
        return "Error"


def make_error_response(
    request: Request,
    *,
    http_status: int,
    headers: dict[str, str] | None = None,
) -> PlainTextResponse:
    """Build the plain-text error response for a request.

    The id set by RequestIdMiddleware is reused; handlers that run outside
    the middleware fall back to the request header or a fresh id.
    """
    request_id = getattr(request.state, "request_id", None)
    if request_id is None:
        request_id = accept_request_id(request.headers.get(REQUEST_ID_HEADER))

    response = PlainTextResponse(
        content=status_text(http_status) + "\n",
        status_code=http_status,
        headers=headers,
    )
    response.headers[REQUEST_ID_HEADER] = str(request_id)
    response.headers["X-Content-Type-Options"] = "nosniff"
    return response
