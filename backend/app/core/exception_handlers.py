"""
Translate internal error kinds into structured HTTP error responses.

Every response carries a ``traceId`` which is also logged together with the
full internal detail, so a sanitized message can be traced back.
"""
import uuid
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.errors import UmbrellaError, Violation
from app.core.logging import get_logger

logger = get_logger(__name__)

GENERIC_MESSAGE = "An unexpected error occurred. Please contact support."


def _trace_id(request: Request) -> str:
    return getattr(request.state, "correlation_id", None) or str(uuid.uuid4())


def error_body(status_code: int, kind: str, message: str, trace_id: str, **extra: Any) -> Dict[str, Any]:
    body = {
        "status": status_code,
        "error": kind,
        "message": message,
        "traceId": trace_id,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    body.update(extra)
    return body


async def handle_umbrella_error(request: Request, exc: UmbrellaError) -> JSONResponse:
    trace_id = _trace_id(request)
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        f"{exc.kind} [TraceId: {trace_id}] {request.method} {request.url.path} - "
        f"{exc.message} {exc.details()}"
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.status_code, exc.kind, exc.message, trace_id, **exc.details()),
    )


async def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Schema-level request problems are reported like rule violations."""
    trace_id = _trace_id(request)
    violations = []
    for error in exc.errors():
        location = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path", "form")]
        violations.append(Violation(".".join(location) or "request", error.get("msg", "invalid")).to_dict())
    logger.warning(f"ValidationError [TraceId: {trace_id}] {request.url.path} - {violations}")
    return JSONResponse(
        status_code=400,
        content=error_body(400, "ValidationError", "Validation failed", trace_id, violations=violations),
    )


async def handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    trace_id = _trace_id(request)
    kind = "NotFoundError" if exc.status_code == 404 else "HTTPError"
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.status_code, kind, str(exc.detail), trace_id),
        headers=getattr(exc, "headers", None),
    )


async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
    trace_id = _trace_id(request)
    logger.error(
        f"Unhandled exception [TraceId: {trace_id}] {request.method} {request.url.path}",
        exc_info=exc,
    )
    return JSONResponse(
        status_code=500,
        content=error_body(500, "UnclassifiedError", GENERIC_MESSAGE, trace_id),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(UmbrellaError, handle_umbrella_error)
    app.add_exception_handler(RequestValidationError, handle_request_validation)
    app.add_exception_handler(StarletteHTTPException, handle_http_exception)
    app.add_exception_handler(Exception, handle_unexpected)
