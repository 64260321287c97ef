"""Structured API errors.

Every failure leaves the service as ``{"success": false, "error": <code>,
"message": <text>}``. Route handlers raise ``ApiError`` (directly or via
``api_error_from``); the handlers installed by ``install_error_handlers``
render it, and also catch anything that slipped through.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from soulscape.chain.client import ChainError
from soulscape.config import ConfigError
from soulscape.engine.evolution import EvolutionError, EvolutionInProgressError
from soulscape.model.address import InvalidAddressError
from soulscape.store.snapshots import StoreError

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """An error with a stable code and HTTP status."""

    def __init__(self, status_code: int, code: str, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message


def error_body(code: str, message: str) -> dict[str, object]:
    """JSON body shared by every error response."""
    return {"success": False, "error": code, "message": message}


def api_error_from(exc: Exception) -> ApiError:
    """Map a domain exception to its API error."""
    if isinstance(exc, ApiError):
        return exc
    if isinstance(exc, InvalidAddressError):
        return ApiError(status.HTTP_400_BAD_REQUEST, "invalid_address", str(exc))
    if isinstance(exc, EvolutionInProgressError):
        return ApiError(status.HTTP_409_CONFLICT, "evolution_in_progress", str(exc))
    if isinstance(exc, ConfigError):
        return ApiError(status.HTTP_503_SERVICE_UNAVAILABLE, "config_error", str(exc))
    if isinstance(exc, (EvolutionError, ChainError)):
        return ApiError(status.HTTP_502_BAD_GATEWAY, "chain_error", str(exc))
    if isinstance(exc, StoreError):
        return ApiError(status.HTTP_503_SERVICE_UNAVAILABLE, "store_unavailable", str(exc))
    return ApiError(status.HTTP_500_INTERNAL_SERVER_ERROR, "internal_error", "Internal error")


async def _api_error_handler(request: Request, exc: Exception) -> JSONResponse:
    error = api_error_from(exc)
    return JSONResponse(
        status_code=error.status_code, content=error_body(error.code, error.message)
    )


async def _http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    code = "not_found" if exc.status_code == status.HTTP_404_NOT_FOUND else "http_error"
    return JSONResponse(status_code=exc.status_code, content=error_body(code, str(exc.detail)))


async def _validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    first = exc.errors()[0] if exc.errors() else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = f"{location}: {first.get('msg', 'invalid value')}" if location else "Invalid request"
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST, content=error_body("invalid_request", message)
    )


async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body("internal_error", "Internal error"),
    )


def install_error_handlers(app: FastAPI) -> None:
    """Register the structured error handlers on ``app``."""
    for exc_type in (
        ApiError,
        InvalidAddressError,
        ConfigError,
        EvolutionError,
        ChainError,
        StoreError,
    ):
        app.add_exception_handler(exc_type, _api_error_handler)
    app.add_exception_handler(HTTPException, _http_exception_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)
