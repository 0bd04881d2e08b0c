"""
Edge delivery pipeline.

Each request moves through:

    AUTH_CHECK -> CACHE_LOOKUP -> (hit | miss -> ORIGIN_FETCH -> cache fill)
               -> RESPONSE_ASSEMBLY

AUTH_CHECK only runs when the request carries ``expires``/``signature``.
Requests without them are served as public; whether a file is private is
decided by the origin, not here.

On a miss the pipeline asks the origin for metadata first (to learn the
file id and current version), falls back to a direct download by the
requested name if that fails, stores the result under the resolved cache
key and assembles the response from the fresh entry.

Errors never escape deliver(): CDNError subclasses become their mapped
status with ``{"error": ...}``; anything else is logged and becomes 500.
Nothing is retried.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Mapping

import orjson

from edgecdn.cache.base import CacheProtocol
from edgecdn.config import Settings
from edgecdn.edge.negotiation import (
    compress,
    is_compressible,
    is_not_modified,
    negotiate_encoding,
    parse_range,
)
from edgecdn.edge.singleflight import SingleFlight
from edgecdn.edge.versions import VersionTable
from edgecdn.exceptions import (
    CDNError,
    InvalidSignatureError,
    RangeNotSatisfiableError,
)
from edgecdn.logging import get_logger, log_context
from edgecdn.origin.client import OriginClient
from edgecdn.security.signing import SignedURLVerifier
from edgecdn.types import CacheEntry, CacheKey, FileMetadata, NotModified, generate_id

logger = get_logger(__name__)


class Stage(str, Enum):
    """Pipeline stages, recorded on failures for diagnostics."""

    AUTH_CHECK = "auth_check"
    CACHE_LOOKUP = "cache_lookup"
    ORIGIN_FETCH = "origin_fetch"
    RESPONSE_ASSEMBLY = "response_assembly"


class CacheStatus(str, Enum):
    HIT = "HIT"
    MISS = "MISS"


@dataclass
class DeliveryRequest:
    """What the pipeline needs from an incoming ``GET /cdn/{id}``."""

    resource_id: str
    headers: Mapping[str, str] = field(default_factory=dict)
    expires: str | None = None
    signature: str | None = None

    def __post_init__(self) -> None:
        self.headers = {k.lower(): v for k, v in self.headers.items()}

    @property
    def is_signed(self) -> bool:
        return self.expires is not None or self.signature is not None


@dataclass
class DeliveryResponse:
    """Status, headers and body ready to hand to the HTTP layer."""

    status: int
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""


def error_response(error: CDNError) -> DeliveryResponse:
    """Structured JSON error body with no internals."""
    headers = {"Content-Type": "application/json"}
    if isinstance(error, RangeNotSatisfiableError):
        headers["Content-Range"] = f"bytes */{error.total}"
    return DeliveryResponse(
        status=error.status_code,
        headers=headers,
        body=orjson.dumps({"error": error.message}),
    )


def internal_error_response() -> DeliveryResponse:
    return DeliveryResponse(
        status=500,
        headers={"Content-Type": "application/json"},
        body=orjson.dumps({"error": "Internal server error"}),
    )


class DeliveryPipeline:
    """Serves one resource per call, filling the cache on misses."""

    def __init__(
        self,
        cache: CacheProtocol,
        origin: OriginClient,
        verifier: SignedURLVerifier,
        versions: VersionTable | None = None,
        *,
        enable_gzip: bool = True,
        enable_brotli: bool = True,
        single_flight: bool = True,
    ) -> None:
        """Initialize pipeline.

        Args:
            cache: Edge cache instance owned by the server process.
            origin: Client for the origin tier.
            verifier: Signed URL verifier.
            versions: Known resource versions used to build cache keys.
            enable_gzip: Allow gzip content coding.
            enable_brotli: Allow brotli content coding.
            single_flight: Coalesce concurrent misses for the same key.
        """
        self.cache = cache
        self.origin = origin
        self.verifier = verifier
        self.versions = versions if versions is not None else VersionTable()
        self.enable_gzip = enable_gzip
        self.enable_brotli = enable_brotli
        self._flight: SingleFlight[CacheEntry | NotModified] | None = (
            SingleFlight() if single_flight else None
        )

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        cache: CacheProtocol,
        origin: OriginClient,
        verifier: SignedURLVerifier,
        versions: VersionTable | None = None,
    ) -> DeliveryPipeline:
        return cls(
            cache,
            origin,
            verifier,
            versions,
            enable_gzip=settings.ENABLE_GZIP,
            enable_brotli=settings.ENABLE_BROTLI,
            single_flight=settings.SINGLE_FLIGHT_ENABLED,
        )

    async def deliver(self, request: DeliveryRequest) -> DeliveryResponse:
        """Run the full pipeline for one request. Never raises."""
        with log_context(
            request_id=generate_id("req"),
            resource_id=request.resource_id,
            node="edge",
        ):
            stage = Stage.AUTH_CHECK
            try:
                self._check_signature(request)

                stage = Stage.CACHE_LOOKUP
                key = self.versions.key_for(request.resource_id)
                entry = self.cache.get(str(key))
                if entry is not None:
                    logger.info("Cache HIT", key=str(key))
                    stage = Stage.RESPONSE_ASSEMBLY
                    return await self.assemble(entry, request.headers, CacheStatus.HIT)

                logger.info("Cache MISS", key=str(key))
                stage = Stage.ORIGIN_FETCH
                result = await self._fill(request.resource_id, key)

                stage = Stage.RESPONSE_ASSEMBLY
                if isinstance(result, NotModified):
                    return self._not_modified_from_origin(result)
                return await self.assemble(result, request.headers, CacheStatus.MISS)

            except CDNError as e:
                logger.warning(
                    "Request failed",
                    stage=stage.value,
                    status=e.status_code,
                    error=str(e),
                )
                return error_response(e)
            except Exception:
                logger.exception("Unexpected delivery failure", stage=stage.value)
                return internal_error_response()

    def _check_signature(self, request: DeliveryRequest) -> None:
        if not request.is_signed:
            return

        if request.expires is None or request.signature is None:
            raise InvalidSignatureError(
                "Invalid or expired signature",
                context={"resource_id": request.resource_id, "reason": "malformed"},
            )
        try:
            expires = int(request.expires)
        except ValueError as e:
            raise InvalidSignatureError(
                "Invalid or expired signature",
                context={"resource_id": request.resource_id, "reason": "malformed"},
            ) from e
        # The signature covers the exact query text, so "0123" is not "123"
        if str(expires) != request.expires:
            raise InvalidSignatureError(
                "Invalid or expired signature",
                context={"resource_id": request.resource_id, "reason": "malformed"},
            )

        if not self.verifier.verify(request.resource_id, expires, request.signature):
            raise InvalidSignatureError(
                "Invalid or expired signature",
                context={"resource_id": request.resource_id, "expires": expires},
            )

    async def _fill(self, resource_id: str, key: CacheKey) -> CacheEntry | NotModified:
        if self._flight is None:
            return await self._fetch_from_origin(resource_id, key)
        return await self._flight.do(
            str(key), lambda: self._fetch_from_origin(resource_id, key)
        )

    async def _fetch_from_origin(
        self, resource_id: str, lookup_key: CacheKey
    ) -> CacheEntry | NotModified:
        """Metadata, then content; store the entry under the version fetched.

        The key comes from the version the origin reported with this fetch,
        or from ``lookup_key`` when metadata was unavailable. A purge that
        lands while the fetch is in flight can only move the version table
        forward; it never relabels older bytes as the newer version.
        """
        metadata: FileMetadata | None = None
        try:
            metadata = await self.origin.fetch_metadata(resource_id)
        except CDNError as e:
            logger.warning("Metadata fetch failed, trying direct download", error=str(e))

        content_id = metadata.id if metadata else resource_id
        result = await self.origin.fetch_content(content_id)
        if isinstance(result, NotModified):
            return result

        if metadata is not None:
            self.versions.observe(resource_id, metadata.version)
            key = CacheKey(resource_id, metadata.version)
        else:
            key = lookup_key
        self.cache.set(str(key), result)
        logger.debug("Stored origin response", key=str(key), size=result.size_bytes)
        return result

    @staticmethod
    def _validator_headers(
        cache_control: str | None,
        etag: str | None,
        last_modified: str | None,
    ) -> dict[str, str]:
        headers: dict[str, str] = {}
        if cache_control:
            headers["Cache-Control"] = cache_control
        if etag:
            headers["ETag"] = etag
        if last_modified:
            headers["Last-Modified"] = last_modified
        return headers

    def _not_modified_from_origin(self, result: NotModified) -> DeliveryResponse:
        headers = self._validator_headers(
            result.cache_control, result.etag, result.last_modified
        )
        headers["X-Cache"] = CacheStatus.MISS.value
        return DeliveryResponse(status=304, headers=headers)

    async def assemble(
        self,
        entry: CacheEntry,
        request_headers: Mapping[str, str],
        cache_status: CacheStatus,
    ) -> DeliveryResponse:
        """Build the 304/206/200 response for a resolved entry.

        ``request_headers`` must use lowercase names.

        Raises:
            RangeNotSatisfiableError: Range lies entirely outside the entity.
        """
        headers = self._validator_headers(
            entry.cache_control, entry.etag, entry.last_modified
        )
        headers["X-Cache"] = cache_status.value

        if is_not_modified(request_headers, entry.etag, entry.last_modified):
            return DeliveryResponse(status=304, headers=headers)

        headers["Content-Type"] = entry.content_type
        headers["Accept-Ranges"] = "bytes"

        byte_range = parse_range(request_headers.get("range"), entry.size_bytes)
        if byte_range is not None:
            headers["Content-Range"] = byte_range.content_range
            headers["Content-Length"] = str(byte_range.length)
            return DeliveryResponse(
                status=206, headers=headers, body=byte_range.slice(entry.content)
            )

        body = entry.content
        if is_compressible(entry.content_type):
            headers["Vary"] = "Accept-Encoding"
            encoding = negotiate_encoding(
                request_headers.get("accept-encoding"),
                entry.content_type,
                allow_brotli=self.enable_brotli,
                allow_gzip=self.enable_gzip,
            )
            if encoding is not None:
                body = await asyncio.to_thread(compress, entry.content, encoding)
                headers["Content-Encoding"] = encoding

        headers["Content-Length"] = str(len(body))
        return DeliveryResponse(status=200, headers=headers, body=body)
