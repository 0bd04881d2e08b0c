"""
HMAC-signed, expiring URLs.

A signed URL carries ``expires`` (epoch seconds) and ``signature``, where

    signature = hex(HMAC-SHA256(secret, f"{resource_id}:{expires}"))

Tokens are stateless: there is no revocation list. Rotating the secret
invalidates every outstanding link at once.
"""

from __future__ import annotations

import hashlib
import hmac
import time
from typing import Callable
from urllib.parse import quote

from edgecdn.config import Settings
from edgecdn.types import SignedURL


def generate_etag(content: bytes) -> str:
    """Strong ETag for a body: quoted MD5 hex digest."""
    return f'"{hashlib.md5(content).hexdigest()}"'


class SignedURLVerifier:
    """Issues and checks signed URLs for one secret."""

    def __init__(
        self,
        secret: str,
        default_ttl_seconds: int = 3600,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize verifier.

        Args:
            secret: HMAC key shared by the signer and every edge.
            default_ttl_seconds: Lifetime used when sign() gets no ttl.
            clock: Wall-clock source in epoch seconds.
        """
        self._secret = secret.encode("utf-8")
        self.default_ttl_seconds = default_ttl_seconds
        self._clock = clock

    @classmethod
    def from_settings(
        cls, settings: Settings, clock: Callable[[], float] = time.time
    ) -> SignedURLVerifier:
        return cls(settings.SIGNING_SECRET, settings.SIGNED_URL_TTL_SECONDS, clock=clock)

    def _now(self) -> int:
        return int(self._clock())

    def _digest(self, resource_id: str, expires_at: int) -> str:
        message = f"{resource_id}:{expires_at}".encode("utf-8")
        return hmac.new(self._secret, message, hashlib.sha256).hexdigest()

    def sign(self, resource_id: str, ttl_seconds: int | None = None) -> SignedURL:
        """Create a signed URL for ``resource_id``.

        Args:
            resource_id: Resource the link grants access to.
            ttl_seconds: Lifetime in seconds; defaults to default_ttl_seconds.

        Returns:
            SignedURL with expiry, hex signature and a ready ``/cdn`` path.
        """
        ttl = self.default_ttl_seconds if ttl_seconds is None else ttl_seconds
        expires_at = self._now() + ttl
        signature = self._digest(resource_id, expires_at)
        url = (
            f"/cdn/{quote(resource_id, safe='')}"
            f"?expires={expires_at}&signature={signature}"
        )
        return SignedURL(
            resource_id=resource_id,
            expires_at=expires_at,
            signature=signature,
            url=url,
        )

    def verify(self, resource_id: str, expires_at: int, signature: str) -> bool:
        """Check a signed URL. Never raises.

        Returns False once ``now > expires_at`` regardless of the signature;
        otherwise compares against the recomputed HMAC in constant time.
        """
        try:
            expires = int(expires_at)
        except (TypeError, ValueError):
            return False
        if not isinstance(signature, str):
            return False
        if self._now() > expires:
            return False

        expected = self._digest(resource_id, expires)
        return hmac.compare_digest(
            expected.encode("utf-8"), signature.encode("utf-8", "surrogateescape")
        )
