from __future__ import annotations

from typing import Any

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from auditcycle.apps.api.response import error_response, is_versioned_request
from auditcycle.core.errors import (
    AuditCycleError,
    CloneError,
    PeriodConflictError,
    PeriodNotFoundError,
    PeriodValidationError,
)


_DEFAULT_ERROR_CODES: dict[int, str] = {
    400: "BAD_REQUEST",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
    422: "VALIDATION_ERROR",
    500: "INTERNAL_ERROR",
    503: "SERVICE_UNAVAILABLE",
}

# Domain errors that routes let escape; most specific class first.
_DOMAIN_ERRORS: tuple[tuple[type[AuditCycleError], int, str], ...] = (
    (PeriodValidationError, 400, "PERIOD_VALIDATION_ERROR"),
    (PeriodNotFoundError, 404, "NOT_FOUND"),
    (PeriodConflictError, 409, "PERIOD_CONFLICT"),
    (CloneError, 500, "SESSION_CLONE_FAILED"),
)


def _default_code(status_code: int) -> str:
    # Fallback code when a raised HTTPException carries only a message.
    return _DEFAULT_ERROR_CODES.get(status_code, "UNKNOWN_ERROR")


def _split_detail(detail: Any, status_code: int) -> tuple[str, str, dict[str, Any] | None]:
    # Routes may raise detail={"code": ..., "message": ..., **extra} or a bare string.
    if isinstance(detail, dict):
        code = str(detail.get("code") or _default_code(status_code))
        message = str(detail.get("message") or "Request failed")
        details = {k: v for k, v in detail.items() if k not in {"code", "message"}}
        return code, message, details or None
    if isinstance(detail, str):
        return _default_code(status_code), detail, None
    return _default_code(status_code), "Request failed", None


def _render(
    request: Request,
    *,
    status_code: int,
    code: str,
    message: str,
    details: dict[str, Any] | None = None,
    legacy_detail: Any = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    # Unversioned aliases keep FastAPI's plain {"detail": ...} body.
    if not is_versioned_request(request):
        detail = legacy_detail if legacy_detail is not None else message
        return JSONResponse(content={"detail": detail}, status_code=status_code, headers=headers)
    payload = error_response(request=request, code=code, message=message, details=details)
    return JSONResponse(content=payload, status_code=status_code, headers=headers)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    # Registered for both FastAPI and Starlette HTTPException; the former subclasses the latter.
    code, message, details = _split_detail(exc.detail, exc.status_code)
    return _render(
        request,
        status_code=exc.status_code,
        code=code,
        message=message,
        details=details,
        legacy_detail=exc.detail,
        headers=getattr(exc, "headers", None),
    )


async def domain_exception_handler(request: Request, exc: AuditCycleError) -> JSONResponse:
    for error_type, status_code, code in _DOMAIN_ERRORS:
        if isinstance(exc, error_type):
            break
    else:
        status_code, code = 500, "INTERNAL_ERROR"
    details = {"year_session": exc.year_session} if isinstance(exc, CloneError) else None
    return _render(
        request,
        status_code=status_code,
        code=code,
        message=str(exc),
        details=details,
        legacy_detail={"code": code, "message": str(exc)},
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    # Field-level errors go under details.errors so the admin UI can highlight inputs.
    return _render(
        request,
        status_code=422,
        code="REQUEST_VALIDATION_ERROR",
        message="Validation error",
        details={"errors": exc.errors()},
        legacy_detail=exc.errors(),
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    # Never leak stack traces to clients.
    return _render(
        request,
        status_code=500,
        code="INTERNAL_ERROR",
        message="Internal server error",
        legacy_detail="Internal Server Error",
    )
