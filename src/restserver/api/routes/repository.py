"""Repository routes implementing restic's REST backend protocol.

Each route is registered twice: once at the storage root and once under a
single repository segment. Config routes come before blob routes, so
"/<repo>/config" always addresses a repository config.

    HEAD   /[repo/]config          check config exists
    GET    /[repo/]config          read config
    POST   /[repo/]config          write config
    DELETE /[repo/]config          delete config (forbidden in append-only)
    GET    /[repo/]{type}/         list blobs
    HEAD   /[repo/]{type}/{name}   check blob exists
    GET    /[repo/]{type}/{name}   read blob
    POST   /[repo/]{type}/{name}   write blob
    DELETE /[repo/]{type}/{name}   delete blob (locks only in append-only)
    POST   /[repo/]?create=true    create repository layout

Handlers raise RepositoryError / ObjectStorageError / RestHttpError; the
application's exception handlers turn those into status codes. Store calls
block, so they run in the threadpool.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import BinaryIO

from fastapi import APIRouter, Request, Response
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.concurrency import run_in_threadpool
from starlette.requests import ClientDisconnect

from restserver.api.auth import get_user
from restserver.api.errors import RestHttpError
from restserver.config import ServerConfig
from restserver.observability.metrics import MetricLabels, MetricsSink
from restserver.observability.tracing import set_span_attributes
from restserver.repo.errors import MissingConfirmationError
from restserver.repo.layout import (
    ObjectType,
    is_hashed,
    repo_prefix,
    repository_directories,
    resolve_blob_path,
    resolve_type_path,
)
from restserver.repo.policy import check_delete_allowed
from restserver.storage.errors import (
    ObjectNotFoundError,
    ObjectStorageError,
    PathTraversalError,
    StorageBackendError,
)
from restserver.storage.object_store import ObjectStore

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Repository"])

READ_CHUNK_SIZE = 64 * 1024

OCTET_STREAM = "application/octet-stream"


@dataclass(frozen=True)
class RouteParams:
    """Parameters of a matched repository route.

    Attributes:
        repo: Store prefix of the repository ("." for the storage root).
        object_type: Object type segment (unvalidated).
        name: Blob name, None for config and list routes.
    """

    repo: str
    object_type: str
    name: str | None = None


def parse_route(request: Request, object_type: str | None = None) -> RouteParams:
    """Extract repository, type and name from the matched route.

    Args:
        request: The incoming request.
        object_type: Fixed type for routes without a type segment (config).

    Raises:
        UnsafePathError: If the repository segment is unsafe.
    """
    params = request.path_params
    route = RouteParams(
        repo=repo_prefix(params.get("repo")),
        object_type=object_type if object_type is not None else params["type"],
        name=params.get("name"),
    )
    set_span_attributes(
        {
            "restserver.repo": route.repo,
            "restserver.object_type": route.object_type,
        }
    )
    return route


def _config(request: Request) -> ServerConfig:
    return request.app.state.config


def _store(request: Request) -> ObjectStore:
    return request.app.state.object_store


def _metrics(request: Request) -> MetricsSink:
    return request.app.state.metrics


def _metric_labels(request: Request, route: RouteParams) -> MetricLabels:
    return MetricLabels(user=get_user(request), repo=route.repo, type=str(route.object_type))


def _config_path(route: RouteParams) -> str:
    return resolve_type_path(route.repo, ObjectType.CONFIG)


def _blob_path(route: RouteParams) -> str:
    assert route.name is not None
    return resolve_blob_path(route.repo, route.object_type, route.name)


# --- shared operations -----------------------------------------------------


async def _head_object(request: Request, path: str) -> Response:
    """Report existence and size of an object without reading it."""
    info = await run_in_threadpool(_store(request).stat, path)
    return Response(status_code=200, headers={"Content-Length": str(info.size_bytes)})


def _iter_blob(
    fh: BinaryIO, path: str, metrics: MetricsSink, labels: MetricLabels
) -> Iterator[bytes]:
    """Yield an object's content, recording read metrics once fully sent.

    The handle is closed whether the stream completes, fails, or the
    client goes away.
    """
    sent = 0
    try:
        while True:
            try:
                chunk = fh.read(READ_CHUNK_SIZE)
            except OSError as e:
                logger.error("Read failed mid-stream for %s: %s", path, e)
                raise StorageBackendError(
                    message=f"Failed to read object: {e}", path=path, cause=e
                ) from e
            if not chunk:
                break
            sent += len(chunk)
            yield chunk
    finally:
        fh.close()

    metrics.blob_read(labels, sent)


async def _get_object(request: Request, route: RouteParams, path: str) -> Response:
    """Stream an object's content with its length announced up front."""
    store = _store(request)
    info = await run_in_threadpool(store.stat, path)
    try:
        fh = await run_in_threadpool(store.open, path)
    except StorageBackendError as e:
        logger.debug("Open failed for %s: %s", path, e.cause or e)
        raise ObjectNotFoundError(path=path) from e

    return StreamingResponse(
        _iter_blob(fh, path, _metrics(request), _metric_labels(request, route)),
        media_type=OCTET_STREAM,
        headers={"Content-Length": str(info.size_bytes)},
    )


async def _save_object(request: Request, route: RouteParams, path: str) -> Response:
    """Stream the request body into the store.

    The object only becomes visible once the whole body has arrived; a
    failed or abandoned upload leaves any previous object untouched.
    """
    writer = await run_in_threadpool(_store(request).create, path)
    try:
        async for chunk in request.stream():
            if chunk:
                await run_in_threadpool(writer.write, chunk)
        info = await run_in_threadpool(writer.commit, datetime.now(UTC))
    except ClientDisconnect as e:
        await run_in_threadpool(writer.abort)
        raise RestHttpError(400, "client_disconnected", f"upload of {path} abandoned") from e
    except Exception:
        await run_in_threadpool(writer.abort)
        raise
    except BaseException:
        # Cancelled: nothing can be awaited any more.
        writer.abort()
        raise

    _metrics(request).blob_written(_metric_labels(request, route), info.size_bytes)
    return Response(status_code=200)


async def _delete_object(request: Request, route: RouteParams, path: str) -> Response:
    """Remove an object, reporting its size to the delete metrics."""
    store = _store(request)
    info = await run_in_threadpool(store.stat, path)
    await run_in_threadpool(store.remove, path)

    _metrics(request).blob_deleted(_metric_labels(request, route), info.size_bytes)
    return Response(status_code=200)


def _list_names(store: ObjectStore, type_dir: str, hashed: bool) -> list[str]:
    """List blob names under a type directory.

    Sharded types are listed shard by shard, so names come out ordered by
    shard and then by name within each shard.
    """
    entries = store.list_dir(type_dir)
    if not hashed:
        return [entry.name for entry in entries if not entry.is_dir]

    names: list[str] = []
    for shard in entries:
        if not shard.is_dir:
            continue
        names.extend(entry.name for entry in store.list_dir(shard.path) if not entry.is_dir)
    return names


# --- config ----------------------------------------------------------------


@router.head("/config")
@router.head("/{repo}/config")
async def check_config(request: Request) -> Response:
    """Check whether a repository config exists."""
    logger.debug("CheckConfig()")
    route = parse_route(request, ObjectType.CONFIG)
    return await _head_object(request, _config_path(route))


@router.get("/config")
@router.get("/{repo}/config")
async def get_config(request: Request) -> Response:
    """Read the repository config."""
    logger.debug("GetConfig()")
    route = parse_route(request, ObjectType.CONFIG)
    return await _get_object(request, route, _config_path(route))


@router.post("/config")
@router.post("/{repo}/config")
async def save_config(request: Request) -> Response:
    """Write the repository config."""
    logger.debug("SaveConfig()")
    route = parse_route(request, ObjectType.CONFIG)
    return await _save_object(request, route, _config_path(route))


@router.delete("/config")
@router.delete("/{repo}/config")
async def delete_config(request: Request) -> Response:
    """Delete the repository config. Forbidden in append-only mode."""
    logger.debug("DeleteConfig()")
    check_delete_allowed(ObjectType.CONFIG, _config(request).append_only)
    route = parse_route(request, ObjectType.CONFIG)
    return await _delete_object(request, route, _config_path(route))


# --- blobs -----------------------------------------------------------------


@router.get("/{type}/")
@router.get("/{repo}/{type}/")
async def list_blobs(request: Request) -> Response:
    """List the names of all blobs of a type as a JSON array."""
    logger.debug("ListBlobs()")
    route = parse_route(request)
    type_dir = resolve_type_path(route.repo, route.object_type)
    if route.object_type == ObjectType.CONFIG:
        raise RestHttpError(400, "not_listable", "config is not a blob directory")

    try:
        names = await run_in_threadpool(
            _list_names, _store(request), type_dir, is_hashed(route.object_type)
        )
    except PathTraversalError:
        raise
    except ObjectStorageError as e:
        logger.debug("Listing %s failed: %s", type_dir, e)
        raise ObjectNotFoundError(path=type_dir) from e
    return JSONResponse(content=names)


@router.head("/{type}/{name}")
@router.head("/{repo}/{type}/{name}")
async def check_blob(request: Request) -> Response:
    """Check whether a blob exists."""
    logger.debug("CheckBlob()")
    route = parse_route(request)
    return await _head_object(request, _blob_path(route))


@router.get("/{type}/{name}")
@router.get("/{repo}/{type}/{name}")
async def get_blob(request: Request) -> Response:
    """Read a blob."""
    logger.debug("GetBlob()")
    route = parse_route(request)
    return await _get_object(request, route, _blob_path(route))


@router.post("/{type}/{name}")
@router.post("/{repo}/{type}/{name}")
async def save_blob(request: Request) -> Response:
    """Write a blob. Never restricted by append-only mode."""
    logger.debug("SaveBlob()")
    route = parse_route(request)
    return await _save_object(request, route, _blob_path(route))


@router.delete("/{type}/{name}")
@router.delete("/{repo}/{type}/{name}")
async def delete_blob(request: Request) -> Response:
    """Delete a blob. Only locks may be deleted in append-only mode."""
    logger.debug("DeleteBlob()")
    check_delete_allowed(request.path_params["type"], _config(request).append_only)
    route = parse_route(request)
    return await _delete_object(request, route, _blob_path(route))


# --- repository ------------------------------------------------------------


def _make_layout(store: ObjectStore, repo: str) -> None:
    for directory in repository_directories(repo):
        store.mkdir(directory)


@router.post("/")
@router.post("/{repo}")
@router.post("/{repo}/")
async def create_repository(request: Request) -> Response:
    """Create the repository directory layout.

    Requires the query parameter create=true. Makes the repository root,
    the type directories and the 256 data shard directories; stops at the
    first failure without undoing earlier directories, which is safe
    because every mkdir is idempotent.
    """
    logger.debug("CreateRepo()")
    repo = repo_prefix(request.path_params.get("repo"))

    if request.query_params.get("create") != "true":
        raise MissingConfirmationError()

    logger.info("Creating repository directories in %s", repo)
    try:
        await run_in_threadpool(_make_layout, _store(request), repo)
    except Exception as e:
        logger.error("Creating repository %s failed: %s", repo, e)
        raise

    return Response(status_code=200)
