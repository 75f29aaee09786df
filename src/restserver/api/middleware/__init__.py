"""restserver API middleware package."""

from restserver.api.middleware.access_log import AccessLogMiddleware
from restserver.api.middleware.request_id import RequestIdMiddleware
from restserver.api.middleware.tracing import TracingEnrichmentMiddleware

__all__ = ["AccessLogMiddleware", "RequestIdMiddleware", "TracingEnrichmentMiddleware"]
