"""
Centralised error handling — exception hierarchy + FastAPI handlers.

Error taxonomy used across the pipeline:

    SourceUnavailableError      external prediction / weather service down
                                or timed out → caller falls back to the next
                                source, never shown to the user
    MalformedResponseError      source answered without the required fields
                                → treated exactly like SourceUnavailableError
    PersistenceUnavailableError ward store unreachable → reads degrade to an
                                empty result set, writes answer 503

Only the HTTP layer turns these into responses; inside the Aggregator and
Dispatcher they are caught and converted into a degraded/demo status.
"""

from __future__ import annotations

import logging
import traceback
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from monsoon.app.core.config import settings

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
# Exception Hierarchy
# ═══════════════════════════════════════════════════════════════════════════

class MonsoonAPIError(Exception):
    """Base exception for all application errors."""

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        *,
        status_code: int = 500,
        error_code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details or {}


class NotFoundError(MonsoonAPIError):
    """Resource not found (404)."""

    def __init__(self, resource: str, **identifiers: Any):
        super().__init__(
            message=f"{resource} not found",
            status_code=404,
            error_code="NOT_FOUND",
            details={"resource": resource, **identifiers},
        )


class ValidationError(MonsoonAPIError):
    """Input validation failed (422)."""

    def __init__(self, message: str, *, field: Optional[str] = None, **details: Any):
        d = {**details}
        if field:
            d["field"] = field
        super().__init__(
            message=message,
            status_code=422,
            error_code="VALIDATION_ERROR",
            details=d,
        )


class ConflictError(MonsoonAPIError):
    """Resource already exists (409)."""

    def __init__(self, resource: str, **identifiers: Any):
        id_str = ", ".join(f"{k}={v}" for k, v in identifiers.items())
        super().__init__(
            message=f"{resource} already exists: {id_str}",
            status_code=409,
            error_code="CONFLICT",
            details={"resource": resource, **identifiers},
        )


class SourceUnavailableError(MonsoonAPIError):
    """An upstream data source is unreachable or timed out (502)."""

    def __init__(self, source: str, message: str = "", **details: Any):
        super().__init__(
            message=f"Source '{source}' unavailable: {message}",
            status_code=502,
            error_code="SOURCE_UNAVAILABLE",
            details={"source": source, **details},
        )
        self.source = source


class MalformedResponseError(SourceUnavailableError):
    """An upstream source answered without the fields we need."""

    def __init__(self, source: str, message: str = "", **details: Any):
        super().__init__(source, message, **details)
        self.error_code = "MALFORMED_RESPONSE"
        self.message = f"Source '{source}' returned a malformed payload: {message}"


class PersistenceUnavailableError(MonsoonAPIError):
    """Backing ward store is unreachable (503)."""

    def __init__(self, operation: str, message: str = ""):
        super().__init__(
            message=f"Ward store unavailable during {operation}: {message}",
            status_code=503,
            error_code="PERSISTENCE_UNAVAILABLE",
            details={"operation": operation},
        )


# ═══════════════════════════════════════════════════════════════════════════
# Error Response Builder
# ═══════════════════════════════════════════════════════════════════════════

def _build_error_response(
    status_code: int,
    error_code: str,
    message: str,
    details: Optional[Dict[str, Any]] = None,
    request: Optional[Request] = None,
) -> JSONResponse:
    body: Dict[str, Any] = {
        "success": False,
        "error": {
            "code": error_code,
            "message": message,
            "status": status_code,
        },
    }
    if details:
        body["error"]["details"] = details

    if request and not settings.is_production:
        body["error"]["path"] = str(request.url.path)
        body["error"]["method"] = request.method

    return JSONResponse(status_code=status_code, content=body)


def register_error_handlers(app: FastAPI) -> None:
    """Register all exception handlers on the FastAPI app."""

    @app.exception_handler(MonsoonAPIError)
    async def handle_monsoon_error(request: Request, exc: MonsoonAPIError):
        logger.error(
            "API Error [%s]: %s | details=%s",
            exc.error_code, exc.message, exc.details,
        )
        return _build_error_response(
            exc.status_code, exc.error_code, exc.message, exc.details, request,
        )

    @app.exception_handler(ValueError)
    async def handle_value_error(request: Request, exc: ValueError):
        logger.warning("ValueError: %s", exc)
        return _build_error_response(
            422, "VALIDATION_ERROR", str(exc), request=request,
        )

    @app.exception_handler(Exception)
    async def handle_unhandled(request: Request, exc: Exception):
        logger.critical(
            "Unhandled exception: %s\n%s", exc, traceback.format_exc(),
        )
        message = str(exc) if settings.DEBUG else "Internal server error"
        return _build_error_response(500, "INTERNAL_ERROR", message, request=request)
