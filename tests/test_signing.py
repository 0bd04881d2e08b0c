"""
Tests for signed URLs and ETag generation.
"""

from __future__ import annotations

import hashlib
from unittest.mock import patch
from urllib.parse import parse_qs, urlsplit

from edgecdn.security.signing import SignedURLVerifier, generate_etag


def _flip(value: str) -> str:
    """Change the last character of a string."""
    return value[:-1] + ("0" if value[-1] != "0" else "1")


class TestSign:
    """Tests for SignedURLVerifier.sign."""

    def test_sign_uses_default_ttl(self, verifier: SignedURLVerifier, clock) -> None:
        signed = verifier.sign("a.jpg")

        assert signed.expires_at == int(clock()) + 300
        assert len(signed.signature) == 64

    def test_signed_url_carries_parameters(self, verifier: SignedURLVerifier) -> None:
        """Test that the URL path and query match the signed values."""
        signed = verifier.sign("my file.jpg", ttl_seconds=10)
        parts = urlsplit(signed.url)
        query = parse_qs(parts.query)

        assert parts.path == "/cdn/my%20file.jpg"
        assert query["expires"] == [str(signed.expires_at)]
        assert query["signature"] == [signed.signature]

    def test_signature_is_deterministic(self, verifier: SignedURLVerifier) -> None:
        assert verifier.sign("a.jpg").signature == verifier.sign("a.jpg").signature
        assert verifier.sign("a.jpg").signature != verifier.sign("b.jpg").signature


class TestVerify:
    """Tests for SignedURLVerifier.verify."""

    def test_round_trip(self, verifier: SignedURLVerifier) -> None:
        signed = verifier.sign("a.jpg")

        assert verifier.verify("a.jpg", signed.expires_at, signed.signature) is True

    def test_expired_link_rejected(self, verifier: SignedURLVerifier, clock) -> None:
        """Test that a correct signature is rejected after expiry."""
        signed = verifier.sign("a.jpg", ttl_seconds=60)

        clock.advance(60)
        assert verifier.verify("a.jpg", signed.expires_at, signed.signature) is True

        clock.advance(1)
        assert verifier.verify("a.jpg", signed.expires_at, signed.signature) is False

    def test_tampered_resource_rejected(self, verifier: SignedURLVerifier) -> None:
        signed = verifier.sign("a.jpg")

        assert verifier.verify("a.jpf", signed.expires_at, signed.signature) is False

    def test_tampered_expiry_rejected(self, verifier: SignedURLVerifier) -> None:
        """Test that extending the expiry invalidates the signature."""
        signed = verifier.sign("a.jpg")

        assert verifier.verify("a.jpg", signed.expires_at + 1, signed.signature) is False

    def test_tampered_signature_rejected(self, verifier: SignedURLVerifier) -> None:
        signed = verifier.sign("a.jpg")

        assert verifier.verify("a.jpg", signed.expires_at, _flip(signed.signature)) is False

    def test_wrong_secret_rejected(self, verifier: SignedURLVerifier, clock) -> None:
        other = SignedURLVerifier("another-secret", clock=clock)
        signed = other.sign("a.jpg")

        assert verifier.verify("a.jpg", signed.expires_at, signed.signature) is False

    def test_malformed_inputs_never_raise(self, verifier: SignedURLVerifier) -> None:
        """Test that garbage parameters are reported as invalid."""
        assert verifier.verify("a.jpg", "soon", "abc") is False  # type: ignore[arg-type]
        assert verifier.verify("a.jpg", None, "abc") is False  # type: ignore[arg-type]
        assert verifier.verify("a.jpg", 9_999_999_999, None) is False  # type: ignore[arg-type]
        assert verifier.verify("a.jpg", 9_999_999_999, "\udcff") is False

    def test_uses_constant_time_comparison(self, verifier: SignedURLVerifier) -> None:
        """Test that signature comparison goes through hmac.compare_digest."""
        signed = verifier.sign("a.jpg")

        with patch(
            "edgecdn.security.signing.hmac.compare_digest", return_value=True
        ) as compare:
            assert verifier.verify("a.jpg", signed.expires_at, "anything") is True

        compare.assert_called_once()

    def test_from_settings_shares_secret(
        self, mock_settings, mock_env_vars: dict[str, str], verifier: SignedURLVerifier
    ) -> None:
        """Test that a verifier built from settings accepts the fixture's links."""
        signed = verifier.sign("a.jpg", ttl_seconds=10**9)

        from_settings = SignedURLVerifier.from_settings(mock_settings)

        assert mock_settings.SIGNING_SECRET == mock_env_vars["SIGNING_SECRET"]
        assert from_settings.verify("a.jpg", signed.expires_at, signed.signature) is True


class TestGenerateEtag:
    """Tests for generate_etag."""

    def test_quoted_md5(self) -> None:
        content = b"hello"

        assert generate_etag(content) == f'"{hashlib.md5(content).hexdigest()}"'

    def test_differs_per_content(self) -> None:
        assert generate_etag(b"a") != generate_etag(b"b")
