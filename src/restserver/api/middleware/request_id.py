"""Request ID middleware for the restserver API.

Every response carries X-Request-Id. A usable client-supplied id is reused
so restic's own request ids show up in the server logs.
"""

from collections.abc import Awaitable, Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from restserver.api.error_model import REQUEST_ID_HEADER, accept_request_id


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Stores the request id on request.state and echoes it in the response."""

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        request_id = accept_request_id(request.headers.get(REQUEST_ID_HEADER))
        request.state.request_id = request_id

        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
