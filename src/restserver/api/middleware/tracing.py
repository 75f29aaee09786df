"""Adds request context to the current OpenTelemetry request span.

The span gets restserver.request_id and restserver.user. Repository and
object type attributes are added by the handlers once the route has been
parsed. Passwords, Authorization headers and bodies are never recorded.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from restserver.api.auth import get_user
from restserver.observability.tracing import set_span_attributes


class TracingEnrichmentMiddleware(BaseHTTPMiddleware):
    """Must run inside RequestIdMiddleware and the authentication middleware."""

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        set_span_attributes(
            {
                "restserver.request_id": getattr(request.state, "request_id", None),
                "restserver.user": get_user(request) or None,
            }
        )
        return await call_next(request)
