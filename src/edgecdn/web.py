"""
FastAPI plumbing shared by the edge and origin apps.

Both tiers answer errors as ``{"error": message}`` and never leak
tracebacks or internal context to clients.
"""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from edgecdn.exceptions import CDNError
from edgecdn.logging import get_logger
from edgecdn.types import utc_now

logger = get_logger(__name__)


def json_error(
    status_code: int, message: str, headers: dict[str, str] | None = None
) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message}, headers=headers)


async def _cdn_error_handler(request: Request, exc: CDNError) -> JSONResponse:
    logger.warning(
        "Request failed",
        path=request.url.path,
        status=exc.status_code,
        error=str(exc),
    )
    return json_error(exc.status_code, exc.message)


async def _http_error_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    # Routing errors (unknown path, wrong method) and explicit HTTPExceptions
    return json_error(exc.status_code, str(exc.detail), headers=exc.headers)


async def _validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = exc.errors()
    message = "Invalid request"
    if errors:
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ()))
        message = f"Invalid request: {field} {first.get('msg', '')}".rstrip()
    logger.warning("Request validation failed", path=request.url.path, errors=len(errors))
    return json_error(422, message)


async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Unhandled error", path=request.url.path, exc_info=True)
    return json_error(500, "Internal server error")


def configure_app(app: FastAPI) -> None:
    """Install CORS and the structured error handlers."""
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(CDNError, _cdn_error_handler)
    app.add_exception_handler(StarletteHTTPException, _http_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)


def health_payload(service: str) -> dict[str, object]:
    return {
        "status": "ok",
        "service": service,
        "timestamp": int(utc_now().timestamp() * 1000),
    }
