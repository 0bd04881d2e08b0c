"""
Origin HTTP surface (mounted under ``/api``).

    GET    /api/files/{id}            metadata JSON
    GET    /api/files/{id}/download   bytes with validators; conditional and
                                      range requests handled like the edge
    DELETE /api/files/{id}            remove record and bytes, notify edges
    POST   /api/admin/purge/{id}      bump version, notify edges
    PATCH  /api/admin/files/{id}      toggle isPublic
    GET    /health
"""

from __future__ import annotations

import hmac
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator

import httpx
from fastapi import APIRouter, Depends, FastAPI, Request, Response
from pydantic import BaseModel, ConfigDict, Field

from edgecdn import __version__
from edgecdn.config import Settings, get_settings
from edgecdn.edge.negotiation import is_not_modified, parse_range
from edgecdn.exceptions import NotFoundError, RangeNotSatisfiableError, UnauthorizedError
from edgecdn.invalidation.coordinator import InvalidationCoordinator
from edgecdn.logging import get_logger, log_context
from edgecdn.origin.repository import FileRepository
from edgecdn.origin.storage import BlobStorage
from edgecdn.security.signing import generate_etag
from edgecdn.types import FileRecord, http_date
from edgecdn.web import configure_app, health_payload, json_error

logger = get_logger(__name__)

ORIGIN_CACHE_CONTROL = "public, max-age=31536000, immutable"


class FileUpdate(BaseModel):
    """Body of ``PATCH /api/admin/files/{id}``."""

    model_config = ConfigDict(populate_by_name=True)

    is_public: bool | None = Field(default=None, alias="isPublic")


@dataclass
class OriginComponents:
    """Per-process origin state, reachable as ``app.state.origin``."""

    settings: Settings
    repository: FileRepository
    storage: BlobStorage
    coordinator: InvalidationCoordinator


def build_origin_components(
    settings: Settings,
    *,
    repository: FileRepository | None = None,
    edge_transport: httpx.AsyncBaseTransport | None = None,
) -> OriginComponents:
    if repository is None:
        repository = FileRepository(settings.DB_PATH)
    return OriginComponents(
        settings=settings,
        repository=repository,
        storage=BlobStorage(settings.STORAGE_PATH),
        coordinator=InvalidationCoordinator.from_settings(
            settings, repository, transport=edge_transport
        ),
    )


def _require_admin_key(request: Request) -> None:
    """Accept X-API-Key, a Bearer token or ?apiKey=; open when unconfigured."""
    expected = request.app.state.origin.settings.ADMIN_API_KEY
    if not expected:
        return

    authorization = request.headers.get("authorization", "")
    bearer = (
        authorization[len("bearer "):].strip()
        if authorization.lower().startswith("bearer ")
        else None
    )
    provided = (
        request.headers.get("x-api-key")
        or bearer
        or request.query_params.get("apiKey")
    )
    if not provided or not hmac.compare_digest(provided.encode(), expected.encode()):
        raise UnauthorizedError("Unauthorized")


async def _load(request: Request, file_id: str) -> FileRecord:
    record = await request.app.state.origin.repository.resolve(file_id)
    if record is None:
        raise NotFoundError("File not found", context={"resource_id": file_id})
    return record


files_router = APIRouter(prefix="/files")
admin_router = APIRouter(prefix="/admin", dependencies=[Depends(_require_admin_key)])


@files_router.get("/{file_id}")
async def get_metadata(file_id: str, request: Request) -> dict[str, Any]:
    """File metadata."""
    record = await _load(request, file_id)
    return record.to_metadata_dict()


@files_router.get("/{file_id}/download")
async def download(file_id: str, request: Request) -> Response:
    """Stream a stored file with caching validators."""
    record = await _load(request, file_id)
    blob = await request.app.state.origin.storage.read(record)

    etag = generate_etag(blob.content)
    last_modified = http_date(blob.modified_at)
    headers = {
        "Content-Type": record.mime_type,
        "ETag": etag,
        "Last-Modified": last_modified,
        "Cache-Control": ORIGIN_CACHE_CONTROL,
        "Content-Disposition": f'inline; filename="{record.original_filename}"',
        "Accept-Ranges": "bytes",
    }

    request_headers = {k.lower(): v for k, v in request.headers.items()}
    if is_not_modified(request_headers, etag, last_modified):
        return Response(status_code=304, headers={
            k: v for k, v in headers.items() if k in ("ETag", "Last-Modified", "Cache-Control")
        })

    try:
        byte_range = parse_range(request_headers.get("range"), len(blob.content))
    except RangeNotSatisfiableError as e:
        response = json_error(e.status_code, e.message)
        response.headers["Content-Range"] = f"bytes */{e.total}"
        return response

    if byte_range is not None:
        headers["Content-Range"] = byte_range.content_range
        return Response(
            content=byte_range.slice(blob.content), status_code=206, headers=headers
        )

    return Response(content=blob.content, status_code=200, headers=headers)


@files_router.delete("/{file_id}", dependencies=[Depends(_require_admin_key)])
async def delete_file(file_id: str, request: Request) -> dict[str, Any]:
    """Delete a file and tell edges to drop it."""
    origin = request.app.state.origin
    with log_context(resource_id=file_id, node="origin"):
        record = await origin.coordinator.delete(file_id)
        await origin.storage.delete(record)
    return {
        "success": True,
        "message": "File deleted successfully",
        "fileId": record.id,
    }


@admin_router.post("/purge/{file_id}")
async def purge(file_id: str, request: Request) -> dict[str, Any]:
    """Bump a file's version and notify edges."""
    with log_context(resource_id=file_id, node="origin"):
        event = await request.app.state.origin.coordinator.purge(file_id)
    return {
        "success": True,
        "message": "Cache purged successfully",
        "fileId": event.resource_id,
        "newVersion": event.new_version,
    }


@admin_router.patch("/files/{file_id}")
async def update_file(file_id: str, update: FileUpdate, request: Request) -> dict[str, Any]:
    """Change a file's visibility."""
    record = await _load(request, file_id)
    if update.is_public is not None:
        updated = await request.app.state.origin.repository.set_visibility(
            record.id, update.is_public
        )
        if updated is None:
            raise NotFoundError("File not found", context={"resource_id": file_id})
        record = updated
    return {
        "success": True,
        "message": "File updated successfully",
        "file": record.to_metadata_dict(),
    }


def create_origin_app(
    settings: Settings | None = None,
    *,
    components: OriginComponents | None = None,
) -> FastAPI:
    """Create the origin FastAPI app."""
    if components is not None:
        settings = components.settings
    settings = settings or get_settings()
    origin = components or build_origin_components(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        origin.storage.init()
        if not origin.repository.is_open:
            await origin.repository.init()
        logger.info("Origin server starting", edges=settings.EDGE_URLS)
        yield
        await origin.coordinator.notifier.drain()
        await origin.repository.close()
        logger.info("Origin server stopped")

    app = FastAPI(title="edgecdn origin", version=__version__, lifespan=lifespan)
    app.state.origin = origin
    configure_app(app)

    @app.get("/health")
    async def health() -> dict[str, Any]:
        return health_payload("origin")

    app.include_router(files_router, prefix="/api")
    app.include_router(admin_router, prefix="/api")
    return app
