"""Signed URL verification and content validators."""

from edgecdn.security.signing import SignedURLVerifier, generate_etag

__all__ = ["SignedURLVerifier", "generate_etag"]
