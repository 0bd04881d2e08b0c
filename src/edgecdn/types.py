"""
Core types for the delivery system.

This module defines the data structures shared by both tiers:
- CacheKey: identity of one content version in the edge cache
- CacheEntry: immutable cached representation of a file
- FileRecord / FileMetadata: origin-owned file description
- NotModified: validator-only origin answer
- SignedURL, PurgeEvent
- Helper functions for ID generation and timestamps
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import format_datetime, parsedate_to_datetime
from typing import Any

from uuid6 import uuid7

DEFAULT_CACHE_CONTROL = "public, max-age=31536000"
DEFAULT_CONTENT_TYPE = "application/octet-stream"


def generate_id(prefix: str = "") -> str:
    """Generate a time-ordered unique ID using UUID7.

    Args:
        prefix: Optional prefix for the ID (e.g., "req", "file")

    Returns:
        A unique ID string, optionally prefixed.
    """
    uid = str(uuid7())
    return f"{prefix}_{uid}" if prefix else uid


def utc_now() -> datetime:
    """Get current UTC time with timezone info."""
    return datetime.now(timezone.utc)


def http_date(value: datetime) -> str:
    """Format a datetime as an RFC 7231 HTTP-date."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return format_datetime(value.astimezone(timezone.utc), usegmt=True)


def parse_http_date(value: str | None) -> datetime | None:
    """Parse an HTTP-date, returning None for missing or unparseable input."""
    if not value:
        return None
    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        return None
    if parsed is None:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class CacheKey:
    """Cache identity derived from a logical name and a content version.

    Two versions of the same name never share a key, so bumping the version
    at the origin makes every edge address fresh content.
    """

    name: str
    version: int = 1

    def __str__(self) -> str:
        return f"{self.name}:v{self.version}"


@dataclass(frozen=True)
class CacheEntry:
    """A cached file body plus the validators served with it.

    Entries are never mutated once stored; a content change arrives under a
    new CacheKey.
    """

    content: bytes
    content_type: str = DEFAULT_CONTENT_TYPE
    etag: str | None = None
    last_modified: str | None = None
    cache_control: str = DEFAULT_CACHE_CONTROL

    @property
    def size_bytes(self) -> int:
        return len(self.content)


@dataclass(frozen=True)
class NotModified:
    """Origin answered 304; only validators are available."""

    etag: str | None = None
    last_modified: str | None = None
    cache_control: str | None = None


@dataclass(frozen=True)
class FileMetadata:
    """Metadata the edge reads from the origin's ``GET /files/{id}``.

    Optional attributes stay None when the origin omits them.
    """

    id: str
    filename: str | None = None
    mime_type: str | None = None
    size: int | None = None
    is_public: bool = True
    version: int = 1

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FileMetadata:
        """Build from the origin's camelCase JSON."""
        version = data.get("version")
        size = data.get("size")
        return cls(
            id=str(data["id"]),
            filename=data.get("filename"),
            mime_type=data.get("mimeType"),
            size=int(size) if size is not None else None,
            is_public=bool(data.get("isPublic", True)),
            version=int(version) if version else 1,
        )


@dataclass
class FileRecord:
    """Origin-owned row describing a stored file."""

    id: str
    filename: str
    original_filename: str
    mime_type: str
    size: int
    storage_path: str
    is_public: bool = True
    version: int = 1
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    def to_metadata_dict(self) -> dict[str, Any]:
        """Serialize in the camelCase shape served by the origin."""
        return {
            "id": self.id,
            "filename": self.filename,
            "originalFilename": self.original_filename,
            "mimeType": self.mime_type,
            "size": self.size,
            "isPublic": self.is_public,
            "version": self.version,
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
        }


@dataclass(frozen=True)
class SignedURL:
    """Components of an expiring, HMAC-authenticated link."""

    resource_id: str
    expires_at: int
    signature: str
    url: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "fileId": self.resource_id,
            "expires": self.expires_at,
            "signature": self.signature,
            "url": self.url,
        }


@dataclass(frozen=True)
class PurgeEvent:
    """A version bump produced by an origin purge."""

    resource_id: str
    new_version: int
