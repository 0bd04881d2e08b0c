"""
Custom exception hierarchy for the edge/origin delivery system.

All exceptions inherit from CDNError, which provides optional context
for structured logging and carries the HTTP status it maps to.
"""

from __future__ import annotations

from typing import Any


class CDNError(Exception):
    """Base exception for all delivery errors.

    Attributes:
        message: Human-readable error message, safe to return to clients.
        context: Optional structured context for logging/debugging.
        status_code: HTTP status this error maps to at the service boundary.
    """

    status_code: int = 500

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            ctx_str = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
            return f"{self.message} ({ctx_str})"
        return self.message

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, context={self.context!r})"


class ConfigurationError(CDNError):
    """Raised when configuration is invalid or missing."""

    pass


class NotFoundError(CDNError):
    """Raised when a resource does not exist at the origin.

    Context should include:
        - resource_id: The requested resource
    """

    status_code = 404


class InvalidSignatureError(CDNError):
    """Raised when a signed URL is malformed, tampered with, or expired.

    Context should include:
        - resource_id: The requested resource
        - reason: "expired", "mismatch" or "malformed"
    """

    status_code = 403


class OriginUnavailableError(CDNError):
    """Raised when the origin cannot be reached or answers with an error.

    Context should include:
        - url: The URL that was being fetched
        - status_code: HTTP status code if the origin answered
        - error: Transport error description otherwise
    """

    status_code = 502


class RangeNotSatisfiableError(CDNError):
    """Raised when a well-formed byte range lies outside the entity.

    Context should include:
        - total: Entity length in bytes
    """

    status_code = 416

    def __init__(self, total: int) -> None:
        super().__init__("Requested range not satisfiable", context={"total": total})
        self.total = total


class UnauthorizedError(CDNError):
    """Raised when an admin request lacks a valid API key."""

    status_code = 401
