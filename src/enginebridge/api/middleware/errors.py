"""
Error-handling middleware -- maps bridge errors to RFC 7807 responses.

Every error envelope carries the CORS origin header itself, because the
catch-all handler runs outside the CORS middleware.
"""

from __future__ import annotations

from http import HTTPStatus
from typing import Any

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from enginebridge.api.schemas.common import ErrorDetail, ProblemDetail
from enginebridge.core.errors import BridgeError
from enginebridge.core.logging import get_logger

log = get_logger(__name__)

# ── Error code → HTTP status mapping ─────────────────────────────────────

ERROR_CODE_TO_STATUS: dict[str, int] = {
    "VALIDATION_FAILED": 400,
    "NOT_FOUND": 404,
    "EXTRACTION_FAILED": 502,
    "EXECUTION_FAILED": 500,
    "TIMED_OUT": 504,
    "CANCELLED": 503,
    "INTERNAL": 500,
}


def status_for_error_code(code: str) -> int:
    """Resolve a bridge error code to HTTP status, defaulting to 500."""
    return ERROR_CODE_TO_STATUS.get(code, 500)


def _title(status: int) -> str:
    try:
        return HTTPStatus(status).phrase
    except ValueError:
        return "Error"


def _allow_origin(request: Request) -> str:
    settings = getattr(request.app.state, "settings", None)
    return getattr(settings, "cors_allow_origin", "*")


def problem_response(
    *,
    status: int,
    title: str | None = None,
    detail: str = "",
    instance: str = "",
    errors: list[dict[str, Any]] | None = None,
    allow_origin: str = "*",
) -> JSONResponse:
    """Build an RFC 7807 JSON error response."""
    body = ProblemDetail(
        title=title or _title(status),
        status=status,
        detail=detail,
        instance=instance,
        errors=[ErrorDetail(**e) for e in errors or []],
    )
    return JSONResponse(
        status_code=status,
        content=body.model_dump(by_alias=True),
        headers={"Access-Control-Allow-Origin": allow_origin},
    )


async def bridge_error_handler(request: Request, exc: BridgeError) -> JSONResponse:
    """``BridgeError`` subclasses → status from their ``code``."""
    status = status_for_error_code(exc.code)
    errors = None
    field = getattr(exc, "field", None)
    if field:
        errors = [{"code": exc.code, "message": exc.message, "field": field}]
    log.info("request_failed", path=request.url.path, code=exc.code, status=status)
    return problem_response(
        status=status,
        detail=exc.message,
        instance=request.url.path,
        errors=errors,
        allow_origin=_allow_origin(request),
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Router-level HTTP errors in envelope form.

    An unmatched method+path pair is a 404, also when the path exists under
    another method (Starlette's 405).
    """
    status = exc.status_code
    detail = exc.detail if isinstance(exc.detail, str) else _title(status)
    if status == 405 or (status == 404 and detail == "Not Found"):
        status = 404
        detail = f"No route matches {request.method} {request.url.path}"
    return problem_response(
        status=status,
        detail=detail,
        instance=request.url.path,
        allow_origin=_allow_origin(request),
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Malformed bodies and query parameters → 400 naming the field."""
    errors = []
    for item in exc.errors():
        location = [str(part) for part in item.get("loc", ()) if part not in ("body", "query", "path")]
        field = ".".join(location) or None
        errors.append({"code": "VALIDATION_FAILED", "message": item.get("msg", ""), "field": field})
    first = errors[0] if errors else {"message": "invalid request", "field": None}
    detail = f"{first['field']}: {first['message']}" if first["field"] else first["message"]
    return problem_response(
        status=400,
        detail=detail,
        instance=request.url.path,
        errors=errors,
        allow_origin=_allow_origin(request),
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unhandled exceptions -- 500 with the exception message."""
    log.error("unhandled_exception", path=request.url.path, error=str(exc), exc_info=exc)
    return problem_response(
        status=500,
        title="Internal Server Error",
        detail=str(exc) or type(exc).__name__,
        instance=request.url.path,
        allow_origin=_allow_origin(request),
    )
