"""
Tests for conditional, range and content-coding negotiation.
"""

from __future__ import annotations

import gzip

import brotli
import pytest

from edgecdn.edge.negotiation import (
    accepted_encodings,
    compress,
    is_compressible,
    is_not_modified,
    negotiate_encoding,
    parse_range,
)
from edgecdn.exceptions import RangeNotSatisfiableError

LAST_MODIFIED = "Tue, 14 Nov 2023 22:13:20 GMT"


class TestParseRange:
    """Tests for parse_range."""

    def test_bounded_range(self) -> None:
        byte_range = parse_range("bytes=0-3", 10)

        assert byte_range is not None
        assert byte_range.content_range == "bytes 0-3/10"
        assert byte_range.length == 4
        assert byte_range.slice(b"0123456789") == b"0123"

    def test_open_ended_range(self) -> None:
        byte_range = parse_range("bytes=7-", 10)

        assert byte_range is not None
        assert (byte_range.start, byte_range.end) == (7, 9)

    def test_end_is_clamped(self) -> None:
        byte_range = parse_range("bytes=5-100", 10)

        assert byte_range is not None
        assert byte_range.content_range == "bytes 5-9/10"

    def test_suffix_range(self) -> None:
        """Test that bytes=-N selects the final N bytes."""
        byte_range = parse_range("bytes=-3", 10)

        assert byte_range is not None
        assert byte_range.slice(b"0123456789") == b"789"

    def test_suffix_longer_than_entity(self) -> None:
        byte_range = parse_range("bytes=-50", 10)

        assert byte_range is not None
        assert (byte_range.start, byte_range.end) == (0, 9)

    @pytest.mark.parametrize(
        "header",
        [None, "", "bytes", "items=0-3", "bytes=a-b", "bytes=-", "bytes=5-2", "bytes=0-1,4-5"],
    )
    def test_malformed_or_multi_range_ignored(self, header: str | None) -> None:
        """Test that unusable headers fall back to the full entity."""
        assert parse_range(header, 10) is None

    def test_start_past_end_unsatisfiable(self) -> None:
        with pytest.raises(RangeNotSatisfiableError) as exc_info:
            parse_range("bytes=10-20", 10)

        assert exc_info.value.total == 10
        assert exc_info.value.status_code == 416

    def test_zero_suffix_unsatisfiable(self) -> None:
        with pytest.raises(RangeNotSatisfiableError):
            parse_range("bytes=-0", 10)

    def test_any_range_on_empty_entity_unsatisfiable(self) -> None:
        with pytest.raises(RangeNotSatisfiableError):
            parse_range("bytes=0-", 0)
        with pytest.raises(RangeNotSatisfiableError):
            parse_range("bytes=-5", 0)


class TestNegotiateEncoding:
    """Tests for negotiate_encoding."""

    def test_brotli_preferred(self) -> None:
        assert negotiate_encoding("gzip, deflate, br", "text/plain") == "br"

    def test_gzip_when_brotli_not_accepted(self) -> None:
        assert negotiate_encoding("gzip", "application/json") == "gzip"

    def test_gzip_when_brotli_disabled(self) -> None:
        assert negotiate_encoding("br, gzip", "text/css", allow_brotli=False) == "gzip"

    def test_binary_types_never_encoded(self) -> None:
        assert negotiate_encoding("br, gzip", "image/png") is None
        assert negotiate_encoding("br, gzip", "application/octet-stream") is None

    def test_q_zero_refuses_coding(self) -> None:
        assert negotiate_encoding("br;q=0, gzip", "text/html") == "gzip"
        assert negotiate_encoding("br;q=0, gzip;q=0", "text/html") is None

    def test_wildcard(self) -> None:
        assert negotiate_encoding("*", "text/html") == "br"
        assert negotiate_encoding("*;q=0", "text/html") is None

    def test_no_header_means_identity(self) -> None:
        assert negotiate_encoding(None, "text/html") is None

    def test_accepted_encodings_parses_q_values(self) -> None:
        assert accepted_encodings("GZIP;q=0.5, br;q=oops, identity") == {
            "gzip": 0.5,
            "br": 1.0,
            "identity": 1.0,
        }

    def test_is_compressible(self) -> None:
        assert is_compressible("text/plain; charset=utf-8")
        assert is_compressible("image/svg+xml")
        assert not is_compressible("image/jpeg")
        assert not is_compressible(None)


class TestCompress:
    """Tests for compress."""

    def test_brotli_decodes(self) -> None:
        body = b"hello " * 100

        assert brotli.decompress(compress(body, "br")) == body

    def test_gzip_decodes(self) -> None:
        body = b"hello " * 100

        assert gzip.decompress(compress(body, "gzip")) == body

    def test_unknown_coding_rejected(self) -> None:
        with pytest.raises(ValueError):
            compress(b"x", "deflate")


class TestIsNotModified:
    """Tests for is_not_modified."""

    def test_matching_etag(self) -> None:
        assert is_not_modified({"if-none-match": '"abc"'}, '"abc"', LAST_MODIFIED)

    def test_etag_match_is_exact(self) -> None:
        assert not is_not_modified({"if-none-match": "abc"}, '"abc"', LAST_MODIFIED)

    def test_if_modified_since_same_date(self) -> None:
        assert is_not_modified({"if-modified-since": LAST_MODIFIED}, '"abc"', LAST_MODIFIED)

    def test_if_modified_since_older_date(self) -> None:
        headers = {"if-modified-since": "Mon, 13 Nov 2023 00:00:00 GMT"}

        assert not is_not_modified(headers, '"abc"', LAST_MODIFIED)

    def test_unparseable_date_ignored(self) -> None:
        assert not is_not_modified({"if-modified-since": "yesterday"}, '"abc"', LAST_MODIFIED)

    def test_no_validators(self) -> None:
        assert not is_not_modified({}, '"abc"', LAST_MODIFIED)
