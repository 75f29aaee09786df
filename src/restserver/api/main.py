"""restserver FastAPI application factory.

This module provides the create_app() factory for bootstrapping the REST
server. Everything a handler needs (configuration, object store, metrics
sink) is attached to app.state once here and never mutated afterwards.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI
from starlette.exceptions import HTTPException as StarletteHTTPException

from restserver import __version__
from restserver.api.auth import BasicAuthMiddleware, CredentialValidator, load_htpasswd
from restserver.api.errors import (
    RestHttpError,
    generic_exception_handler,
    http_exception_handler,
    repository_error_handler,
    rest_http_error_handler,
    storage_error_handler,
)
from restserver.api.middleware.access_log import AccessLogMiddleware, create_access_logger
from restserver.api.middleware.request_id import RequestIdMiddleware
from restserver.api.middleware.tracing import TracingEnrichmentMiddleware
from restserver.api.routes.repository import router as repository_router
from restserver.config import ServerConfig
from restserver.observability.metrics import MetricsSink, create_metrics_sink
from restserver.observability.tracing import configure_tracing, instrument_fastapi
from restserver.repo.errors import RepositoryError
from restserver.storage.errors import ObjectStorageError
from restserver.storage.filesystem_store import FilesystemObjectStore
from restserver.storage.object_store import ObjectStore


def create_app(
    config: ServerConfig | None = None,
    object_store: ObjectStore | None = None,
    metrics: MetricsSink | None = None,
    credentials: CredentialValidator | None = None,
) -> FastAPI:
    """Create and configure the restserver FastAPI application.

    Middleware ordering (outermost to innermost):
    1. RequestIdMiddleware - ensures request_id is available everywhere
    2. AccessLogMiddleware - only with config.log; sees rejected requests too
    3. BasicAuthMiddleware - only with credentials; rejects before any handler
    4. TracingEnrichmentMiddleware - tags spans with request id and user

    Note: Starlette middleware is added in reverse order (last added = outermost).

    With config.debug the "restserver" logger is lowered to DEBUG; where
    the records go is left to the caller's logging setup.

    Args:
        config: Server configuration. Defaults to ServerConfig().
        object_store: Backing store. Defaults to a FilesystemObjectStore
            rooted at config.path.
        metrics: Metrics sink. Defaults to OpenTelemetry counters when
            config.metrics_enabled, a no-op sink otherwise.
        credentials: Credential validator for basic auth. If None, the
            htpasswd file under config.path is loaded; when that file is
            absent authentication is disabled.

    Returns:
        Configured FastAPI application instance.
    """
    if config is None:
        config = ServerConfig()
    if object_store is None:
        object_store = FilesystemObjectStore(base_dir=config.path)
    if metrics is None:
        metrics = create_metrics_sink(config.metrics_enabled)
    if credentials is None:
        credentials = load_htpasswd(config.htpasswd_path)

    app = FastAPI(
        title="restserver",
        description="restic REST backend over a generic object store",
        version=__version__,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )

    if config.debug:
        logging.getLogger("restserver").setLevel(logging.DEBUG)

    app.state.config = config
    app.state.object_store = object_store
    app.state.metrics = metrics

    configure_tracing()

    app.add_middleware(TracingEnrichmentMiddleware)
    if credentials is not None:
        app.add_middleware(BasicAuthMiddleware, validator=credentials)
    if config.log:
        app.add_middleware(AccessLogMiddleware, access_logger=create_access_logger(config.log))
    app.add_middleware(RequestIdMiddleware)

    instrument_fastapi(app)

    app.add_exception_handler(RestHttpError, rest_http_error_handler)
    app.add_exception_handler(RepositoryError, repository_error_handler)
    app.add_exception_handler(ObjectStorageError, storage_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    app.include_router(repository_router)

    return app
