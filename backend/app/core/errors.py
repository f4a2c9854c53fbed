"""
Centralised error handling — exception hierarchy + FastAPI handlers.

Provides:
    • Gateway exception classes with HTTP status + error code
    • One JSON error envelope carrying the request id
    • Malformed multipart forms mapped into the same envelope
    • Logging of unhandled errors with traceback

Channel failures are NOT exceptions: they are converted into
``ChannelOutcome`` values inside each channel and never reach these
handlers. Only the errors below cross the service boundary.

Usage:
    from backend.app.core.errors import (
        SubmissionAPIError,
        NotFoundError,
        ValidationError,
        SubmissionInProgressError,
        RelayUpstreamError,
        register_error_handlers,
    )

    raise ValidationError("missing file", field="file")
"""

from __future__ import annotations

import logging
import traceback
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from backend.app.core.config import settings
from backend.app.core.logging_config import get_request_context

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
# Exception Hierarchy
# ═══════════════════════════════════════════════════════════════════════════

class SubmissionAPIError(Exception):
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


class NotFoundError(SubmissionAPIError):
    """Resource not found (404)."""

    def __init__(self, resource: str, **identifiers: Any):
        details = {"resource": resource, **identifiers}
        super().__init__(
            message=f"{resource} not found",
            status_code=404,
            error_code="NOT_FOUND",
            details=details,
        )


class ValidationError(SubmissionAPIError):
    """Input validation failed (422). Fatal to a submission run, never retried."""

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
        self.field = field


class SubmissionInProgressError(SubmissionAPIError):
    """A submission with the same id is still in flight (409)."""

    def __init__(self, submission_id: str):
        super().__init__(
            message=f"Submission {submission_id} is already in progress",
            status_code=409,
            error_code="SUBMISSION_IN_PROGRESS",
            details={"submission_id": submission_id},
        )


class RelayUpstreamError(SubmissionAPIError):
    """The upload relay could not reach its upstream (502)."""

    def __init__(self, upstream: str, message: str = "", **details: Any):
        super().__init__(
            message=f"Upstream '{upstream}' failed: {message}",
            status_code=502,
            error_code="RELAY_UPSTREAM_ERROR",
            details={"upstream": upstream, **details},
        )




# ═══════════════════════════════════════════════════════════════════════════
# Error Envelope
# ═══════════════════════════════════════════════════════════════════════════

def _error_envelope(
    status_code: int,
    error_code: str,
    message: str,
    *,
    details: Optional[Dict[str, Any]] = None,
    request: Optional[Request] = None,
) -> JSONResponse:
    """
    Wrap an error in the envelope every endpoint shares:

        {"error": {"code", "message", "status", "request_id", "details"?}}

    The request_id matches the X-Request-ID header so a caller can quote
    it when reporting a failed submission. Path and method are added
    outside production.
    """
    error: Dict[str, Any] = {
        "code": error_code,
        "message": message,
        "status": status_code,
    }
    request_id = get_request_context().get("request_id")
    if request_id:
        error["request_id"] = request_id
    if details:
        error["details"] = details
    if request is not None and not settings.is_production:
        error["path"] = request.url.path
        error["method"] = request.method

    return JSONResponse(status_code=status_code, content={"error": error})


def _describe_form_errors(exc: RequestValidationError) -> List[Dict[str, str]]:
    """Flatten FastAPI's validation errors to field / problem pairs."""
    problems = []
    for err in exc.errors():
        location = [str(part) for part in err.get("loc", ()) if part not in ("body", "query")]
        problems.append({
            "field": ".".join(location) or "request",
            "problem": err.get("msg", "invalid value"),
        })
    return problems


# ═══════════════════════════════════════════════════════════════════════════
# FastAPI Exception Handlers
# ═══════════════════════════════════════════════════════════════════════════

def register_error_handlers(app: FastAPI) -> None:
    """Attach the envelope handlers to ``app``."""

    @app.exception_handler(SubmissionAPIError)
    async def handle_submission_error(request: Request, exc: SubmissionAPIError):
        level = logging.WARNING if exc.status_code < 500 else logging.ERROR
        logger.log(
            level,
            "%s %s rejected [%s]: %s",
            request.method, request.url.path, exc.error_code, exc.message,
            extra={"status_code": exc.status_code, "endpoint": request.url.path},
        )
        return _error_envelope(
            exc.status_code, exc.error_code, exc.message,
            details=exc.details, request=request,
        )

    @app.exception_handler(RequestValidationError)
    async def handle_malformed_form(request: Request, exc: RequestValidationError):
        problems = _describe_form_errors(exc)
        logger.warning(
            "Malformed request to %s: %s",
            request.url.path, ", ".join(p["field"] for p in problems),
        )
        return _error_envelope(
            422, "VALIDATION_ERROR", "Request form is malformed",
            details={"fields": problems}, request=request,
        )

    @app.exception_handler(Exception)
    async def handle_unhandled(request: Request, exc: Exception):
        logger.critical(
            "Unhandled %s on %s %s: %s\n%s",
            type(exc).__name__, request.method, request.url.path,
            exc, traceback.format_exc(),
        )
        message = str(exc) if settings.DEBUG else "Internal server error"
        return _error_envelope(500, "INTERNAL_ERROR", message, request=request)
