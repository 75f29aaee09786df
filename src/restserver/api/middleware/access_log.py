"""HTTP request log in the Apache combined log format.

Enabled with --log PATH. Each completed request appends one line:

    host - user [time] "METHOD /path HTTP/1.1" status size "referer" "user-agent"

Lines go to the "restserver.access" logger, which writes only to the
configured file and does not propagate to the application log.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from pathlib import Path

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from restserver.api.auth import get_user

ACCESS_LOGGER_NAME = "restserver.access"

_TIME_FORMAT = "%d/%b/%Y:%H:%M:%S %z"


def create_access_logger(path: str | Path) -> logging.Logger:
    """Return the access logger writing to path.

    Any handler installed by a previous call is closed and replaced, so
    repeated app construction never duplicates lines.
    """
    access_logger = logging.getLogger(ACCESS_LOGGER_NAME)
    for handler in list(access_logger.handlers):
        access_logger.removeHandler(handler)
        handler.close()

    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setFormatter(logging.Formatter("%(message)s"))
    access_logger.addHandler(handler)
    access_logger.setLevel(logging.INFO)
    access_logger.propagate = False
    return access_logger


def _quote(value: str | None) -> str:
    if not value:
        return '"-"'
    return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'


def format_combined(request: Request, response: Response, when: datetime) -> str:
    """Format one combined-log-format line."""
    host = request.client.host if request.client else "-"
    user = get_user(request) or "-"

    target = request.url.path
    if request.url.query:
        target += "?" + request.url.query
    http_version = request.scope.get("http_version", "1.1")
    request_line = f"{request.method} {target} HTTP/{http_version}"

    size = response.headers.get("content-length") or "-"

    return (
        f"{host} - {user} [{when.strftime(_TIME_FORMAT)}] "
        f"{_quote(request_line)} {response.status_code} {size} "
        f"{_quote(request.headers.get('referer'))} {_quote(request.headers.get('user-agent'))}"
    )


class AccessLogMiddleware(BaseHTTPMiddleware):
    """Middleware that writes one combined-format line per request.

    Runs outside the authentication middleware so rejected requests are
    logged as well.
    """

    def __init__(self, app: ASGIApp, access_logger: logging.Logger) -> None:
        super().__init__(app)
        self._logger = access_logger

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        """Log the request once a response is available."""
        when = datetime.now(UTC)
        response = await call_next(request)
        self._logger.info(format_combined(request, response, when))
        return response
