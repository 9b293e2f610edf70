from __future__ import annotations

from typing import Any

from auditcycle.apps.api.response import ErrorEnvelope


def _error_example(*, code: str, message: str, details: dict[str, Any] | None = None) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "error": {"code": code, "message": message},
        "meta": {"request_id": "req_example", "api_version": "v1"},
    }
    if details:
        payload["error"]["details"] = details
    return payload


def _response(description: str, *, code: str, message: str) -> dict[str, Any]:
    return {
        "model": ErrorEnvelope,
        "description": description,
        "content": {"application/json": {"example": _error_example(code=code, message=message)}},
    }


DEFAULT_ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    400: _response(
        "Period validation failed",
        code="PERIOD_VALIDATION_ERROR",
        message="enabler_weightage and result_weightage must sum to 100",
    ),
    404: _response("Not found", code="NOT_FOUND", message="Resource not found"),
    409: _response(
        "Conflict",
        code="PERIOD_CONFLICT",
        message="year_session '2025-2026' already exists",
    ),
    422: _response("Validation error", code="REQUEST_VALIDATION_ERROR", message="Validation error"),
    500: _response("Internal server error", code="INTERNAL_ERROR", message="Internal server error"),
}
