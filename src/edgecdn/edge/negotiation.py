"""
HTTP negotiation helpers shared by the edge pipeline and the origin download
route: conditional requests, byte ranges and content coding.
"""

from __future__ import annotations

import gzip
import re
from dataclasses import dataclass
from typing import Mapping

import brotli

from edgecdn.exceptions import RangeNotSatisfiableError
from edgecdn.types import parse_http_date

COMPRESSIBLE_PREFIXES = (
    "text/",
    "application/javascript",
    "application/json",
    "application/xml",
    "application/x-javascript",
    "image/svg+xml",
)

_RANGE_SPEC = re.compile(r"^(\d*)-(\d*)$")


def is_compressible(content_type: str | None) -> bool:
    """Whether a content type is worth compressing (prefix allow-list)."""
    if not content_type:
        return False
    return content_type.strip().lower().startswith(COMPRESSIBLE_PREFIXES)


def accepted_encodings(accept_encoding: str | None) -> dict[str, float]:
    """Parse Accept-Encoding into ``{coding: q}``.

    Malformed q-values count as 1.0; codings are lowercased.
    """
    accepted: dict[str, float] = {}
    if not accept_encoding:
        return accepted

    for part in accept_encoding.split(","):
        token, _, params = part.partition(";")
        coding = token.strip().lower()
        if not coding:
            continue
        q = 1.0
        for param in params.split(";"):
            name, _, value = param.partition("=")
            if name.strip().lower() == "q":
                try:
                    q = float(value.strip())
                except ValueError:
                    q = 1.0
        accepted[coding] = q
    return accepted


def negotiate_encoding(
    accept_encoding: str | None,
    content_type: str | None,
    *,
    allow_brotli: bool = True,
    allow_gzip: bool = True,
) -> str | None:
    """Pick ``"br"``, ``"gzip"`` or None (identity) for a full-entity response.

    Brotli wins over gzip whenever the client accepts both.
    """
    if not is_compressible(content_type):
        return None

    accepted = accepted_encodings(accept_encoding)
    wildcard = accepted.get("*", 0.0)

    def allows(coding: str) -> bool:
        return accepted.get(coding, wildcard) > 0

    if allow_brotli and allows("br"):
        return "br"
    if allow_gzip and allows("gzip"):
        return "gzip"
    return None


def compress(content: bytes, encoding: str) -> bytes:
    """Encode a body with the negotiated coding."""
    if encoding == "br":
        return brotli.compress(content)
    if encoding == "gzip":
        return gzip.compress(content)
    raise ValueError(f"Unsupported content coding: {encoding}")


def is_not_modified(
    headers: Mapping[str, str],
    etag: str | None,
    last_modified: str | None,
) -> bool:
    """Evaluate If-None-Match / If-Modified-Since against an entity.

    ``headers`` must use lowercase names. The ETag match is exact, quotes
    included. If-Modified-Since matches when the client's date is not older
    than Last-Modified.
    """
    if_none_match = headers.get("if-none-match")
    if if_none_match and etag and if_none_match == etag:
        return True

    since = parse_http_date(headers.get("if-modified-since"))
    modified = parse_http_date(last_modified)
    if since is not None and modified is not None and since >= modified:
        return True

    return False


@dataclass(frozen=True)
class ByteRange:
    """An inclusive, clamped byte range within an entity of ``total`` bytes."""

    start: int
    end: int
    total: int

    @property
    def length(self) -> int:
        return self.end - self.start + 1

    @property
    def content_range(self) -> str:
        return f"bytes {self.start}-{self.end}/{self.total}"

    def slice(self, content: bytes) -> bytes:
        return content[self.start : self.end + 1]


def parse_range(header: str | None, total: int) -> ByteRange | None:
    """Parse a single ``Range: bytes=start-end`` header.

    Returns None when the header is absent, malformed or asks for several
    ranges; callers then serve the full entity.

    Raises:
        RangeNotSatisfiableError: The range is well formed but no byte of it
            falls inside the entity.
    """
    if not header:
        return None

    unit, sep, spec = header.strip().partition("=")
    if not sep or unit.strip().lower() != "bytes":
        return None
    spec = spec.strip()
    if "," in spec:
        return None

    match = _RANGE_SPEC.match(spec)
    if match is None:
        return None
    first, last = match.groups()
    if not first and not last:
        return None

    if not first:
        # Suffix form: the final N bytes
        suffix = int(last)
        if suffix == 0 or total == 0:
            raise RangeNotSatisfiableError(total)
        return ByteRange(start=max(total - suffix, 0), end=total - 1, total=total)

    start = int(first)
    end = int(last) if last else total - 1
    if last and end < start:
        return None
    if start >= total:
        raise RangeNotSatisfiableError(total)
    return ByteRange(start=start, end=min(end, total - 1), total=total)
