"""
HTTP client the edge uses to reach the origin.

Failure mapping:
- 404 -> NotFoundError
- 304 -> NotModified (content fetch only)
- transport error, timeout, any other non-2xx -> OriginUnavailableError

No retries happen here; callers see one terminal outcome per call.
"""

from __future__ import annotations

from typing import Mapping
from urllib.parse import quote

import httpx
import orjson

from edgecdn.config import Settings
from edgecdn.exceptions import NotFoundError, OriginUnavailableError
from edgecdn.logging import get_logger
from edgecdn.types import (
    DEFAULT_CACHE_CONTROL,
    DEFAULT_CONTENT_TYPE,
    CacheEntry,
    FileMetadata,
    NotModified,
)

logger = get_logger(__name__)

FORWARDED_CONDITIONAL_HEADERS = ("if-none-match", "if-modified-since")


class OriginClient:
    """Fetches file metadata and bytes from the origin API.

    Metadata requests use a short timeout, content transfers a long one.
    """

    def __init__(
        self,
        base_url: str,
        metadata_timeout: float = 5.0,
        content_timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize origin client.

        Args:
            base_url: Origin API base, e.g. ``http://localhost:3000/api``.
            metadata_timeout: Seconds allowed for ``GET /files/{id}``.
            content_timeout: Seconds allowed for ``GET /files/{id}/download``.
            transport: Optional httpx transport (tests use MockTransport).
        """
        self.base_url = base_url.rstrip("/")
        self.metadata_timeout = metadata_timeout
        self.content_timeout = content_timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @classmethod
    def from_settings(
        cls, settings: Settings, transport: httpx.AsyncBaseTransport | None = None
    ) -> OriginClient:
        return cls(
            settings.origin_url,
            metadata_timeout=settings.ORIGIN_METADATA_TIMEOUT,
            content_timeout=settings.ORIGIN_CONTENT_TIMEOUT,
            transport=transport,
        )

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create the shared HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                transport=self._transport,
                follow_redirects=False,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    def _url(self, resource_id: str, suffix: str = "") -> str:
        return f"{self.base_url}/files/{quote(resource_id, safe='')}{suffix}"

    async def _get(
        self,
        url: str,
        timeout: float,
        headers: Mapping[str, str] | None = None,
    ) -> httpx.Response:
        client = self._get_client()
        try:
            return await client.get(url, headers=headers, timeout=timeout)
        except httpx.TimeoutException as e:
            raise OriginUnavailableError(
                "Origin request timed out",
                context={"url": url, "timeout": timeout},
            ) from e
        except httpx.HTTPError as e:
            raise OriginUnavailableError(
                "Failed to fetch from origin",
                context={"url": url, "error": str(e)},
            ) from e

    async def fetch_metadata(
        self, resource_id: str, timeout: float | None = None
    ) -> FileMetadata:
        """Fetch ``GET /files/{id}``.

        Raises:
            NotFoundError: Origin has no such file.
            OriginUnavailableError: Network failure, timeout, bad status or body.
        """
        url = self._url(resource_id)
        response = await self._get(url, timeout or self.metadata_timeout)

        if response.status_code == 404:
            raise NotFoundError("File not found", context={"resource_id": resource_id})
        if not response.is_success:
            raise OriginUnavailableError(
                "Origin metadata request failed",
                context={"url": url, "status_code": response.status_code},
            )

        try:
            return FileMetadata.from_dict(orjson.loads(response.content))
        except (orjson.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            raise OriginUnavailableError(
                "Origin returned malformed metadata",
                context={"url": url, "error": str(e)},
            ) from e

    async def fetch_content(
        self,
        resource_id: str,
        timeout: float | None = None,
        conditional: Mapping[str, str] | None = None,
    ) -> CacheEntry | NotModified:
        """Fetch ``GET /files/{id}/download``.

        Args:
            resource_id: Origin file id (or name the origin resolves).
            timeout: Override for content_timeout.
            conditional: Optional If-None-Match / If-Modified-Since
                headers to forward.

        Returns:
            CacheEntry for 2xx, NotModified for 304.

        Raises:
            NotFoundError: Origin answered 404.
            OriginUnavailableError: Anything else that is not 2xx/304.
        """
        url = self._url(resource_id, "/download")
        headers = {
            k: v
            for k, v in (conditional or {}).items()
            if k.lower() in FORWARDED_CONDITIONAL_HEADERS
        }
        # Cached bodies are stored uncompressed; the edge negotiates per client.
        headers["Accept-Encoding"] = "identity"
        response = await self._get(url, timeout or self.content_timeout, headers)

        if response.status_code == 404:
            raise NotFoundError("File not found", context={"resource_id": resource_id})
        if response.status_code == 304:
            return NotModified(
                etag=response.headers.get("etag"),
                last_modified=response.headers.get("last-modified"),
                cache_control=response.headers.get("cache-control"),
            )
        if not response.is_success:
            raise OriginUnavailableError(
                "Origin download failed",
                context={"url": url, "status_code": response.status_code},
            )

        logger.debug(
            "Fetched content from origin",
            url=url,
            status=response.status_code,
            size=len(response.content),
        )
        return CacheEntry(
            content=response.content,
            content_type=response.headers.get("content-type") or DEFAULT_CONTENT_TYPE,
            etag=response.headers.get("etag"),
            last_modified=response.headers.get("last-modified"),
            cache_control=response.headers.get("cache-control") or DEFAULT_CACHE_CONTROL,
        )
