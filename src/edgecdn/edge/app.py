"""
Edge HTTP surface.

    GET  /cdn/{resource_id}?expires=&signature=   deliver a file
    POST /purge/{resource_id}                     drop one resource
    POST /purge-all                               clear the cache
    GET  /cache-stats                             cache size and config
    GET  /health

The cache, version table, origin client and verifier are built once per
app and shared by every request; nothing lives at module level.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator

import httpx
from fastapi import Body, FastAPI, Query, Request, Response
from pydantic import BaseModel, Field

from edgecdn import __version__
from edgecdn.cache.base import CacheProtocol
from edgecdn.cache.memory import CacheStore
from edgecdn.config import Settings, get_settings
from edgecdn.edge.pipeline import DeliveryPipeline, DeliveryRequest
from edgecdn.edge.versions import VersionTable
from edgecdn.invalidation.edge import EdgeInvalidator
from edgecdn.logging import get_logger
from edgecdn.origin.client import OriginClient
from edgecdn.security.signing import SignedURLVerifier
from edgecdn.web import configure_app, health_payload

logger = get_logger(__name__)


class PurgeNotice(BaseModel):
    """Optional body of ``POST /purge/{id}`` sent by the origin."""

    version: int | None = Field(default=None, ge=1)


@dataclass
class EdgeComponents:
    """Per-process edge state, reachable as ``app.state.edge``."""

    settings: Settings
    cache: CacheProtocol
    versions: VersionTable
    origin: OriginClient
    verifier: SignedURLVerifier
    pipeline: DeliveryPipeline
    invalidator: EdgeInvalidator


def build_edge_components(
    settings: Settings,
    *,
    cache: CacheProtocol | None = None,
    verifier: SignedURLVerifier | None = None,
    origin_transport: httpx.AsyncBaseTransport | None = None,
) -> EdgeComponents:
    """Wire the edge from settings, accepting overrides for tests."""
    if cache is None:
        cache = CacheStore.from_settings(settings)
    versions = VersionTable()
    origin = OriginClient.from_settings(settings, transport=origin_transport)
    if verifier is None:
        verifier = SignedURLVerifier.from_settings(settings)
    pipeline = DeliveryPipeline.from_settings(settings, cache, origin, verifier, versions)
    return EdgeComponents(
        settings=settings,
        cache=cache,
        versions=versions,
        origin=origin,
        verifier=verifier,
        pipeline=pipeline,
        invalidator=EdgeInvalidator(cache, versions),
    )


def create_edge_app(
    settings: Settings | None = None,
    *,
    components: EdgeComponents | None = None,
) -> FastAPI:
    """Create the edge FastAPI app."""
    if components is not None:
        settings = components.settings
    settings = settings or get_settings()
    edge = components or build_edge_components(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info(
            "Edge server starting",
            origin=settings.origin_url,
            cache_enabled=edge.cache.stats().enabled,
        )
        yield
        await edge.origin.close()
        logger.info("Edge server stopped")

    app = FastAPI(title="edgecdn edge", version=__version__, lifespan=lifespan)
    app.state.edge = edge
    configure_app(app)

    @app.get("/health")
    async def health() -> dict[str, Any]:
        return health_payload("edge")

    @app.get("/cdn/{resource_id}")
    async def serve(
        resource_id: str,
        request: Request,
        expires: str | None = Query(default=None),
        signature: str | None = Query(default=None),
    ) -> Response:
        """Serve a file through the edge cache."""
        result = await edge.pipeline.deliver(
            DeliveryRequest(
                resource_id=resource_id,
                headers=dict(request.headers),
                expires=expires,
                signature=signature,
            )
        )
        return Response(content=result.body, status_code=result.status, headers=result.headers)

    @app.post("/purge/{resource_id}")
    async def purge(
        resource_id: str,
        notice: PurgeNotice | None = Body(default=None),
    ) -> dict[str, Any]:
        """Purge one resource from this edge's cache."""
        version = edge.invalidator.purge_local(
            resource_id, notice.version if notice else None
        )
        return {
            "success": True,
            "message": "Cache entry purged",
            "fileId": resource_id,
            "version": version,
        }

    @app.post("/purge-all")
    async def purge_all() -> dict[str, Any]:
        """Clear this edge's cache."""
        edge.invalidator.purge_all()
        return {"success": True, "message": "All cache entries cleared"}

    @app.get("/cache-stats")
    async def cache_stats() -> dict[str, Any]:
        return edge.cache.stats().to_dict()

    return app
