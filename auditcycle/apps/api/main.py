from __future__ import annotations

from contextlib import asynccontextmanager
import json
import logging
from typing import AsyncIterator
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.openapi.docs import get_swagger_ui_html
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from auditcycle.apps.api.errors import (
    domain_exception_handler,
    http_exception_handler,
    unhandled_exception_handler,
    validation_exception_handler,
)
from auditcycle.apps.api.response import API_VERSION, REQUEST_ID_HEADER, is_versioned_request
from auditcycle.apps.api.routes.health import router as health_router
from auditcycle.apps.api.routes.ops import router as ops_router
from auditcycle.apps.api.routes.periods import router as periods_router
from auditcycle.core.config import get_settings
from auditcycle.core.errors import AuditCycleError
from auditcycle.core.logging import configure_logging
from auditcycle.persistence.db import SessionLocal
from auditcycle.services.maintenance import run_daily_maintenance
from auditcycle.services.notifications import BroadcastMailer
from auditcycle.services.sessions import SessionScheduler, bootstrap


logger = logging.getLogger(__name__)

_ENVELOPE_EXEMPT_PREFIXES = (
    "/v1/openapi.json",
    "/v1/docs",
)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings = get_settings()
    if not settings.scheduler_enabled:
        logger.info("session_scheduler_disabled")
        yield
        return

    mailer: BroadcastMailer = app.state.mailer

    async def daily_job() -> None:
        await run_daily_maintenance(SessionLocal, mailer, settings=settings)

    scheduler = SessionScheduler(SessionLocal, daily_job=daily_job, settings=settings)
    app.state.scheduler = scheduler
    await bootstrap(scheduler, SessionLocal)
    try:
        yield
    finally:
        await scheduler.aclose()
        app.state.scheduler = None
        logger.info("session_scheduler_stopped")


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(title="AuditCycle API", lifespan=lifespan)
    app.state.scheduler = None
    app.state.mailer = BroadcastMailer()

    @app.middleware("http")
    async def request_context_middleware(request: Request, call_next):  # type: ignore[override]
        # Preserve incoming request IDs or assign a new one for traceability.
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid4())
        request.state.request_id = request_id
        response = await call_next(request)
        # Wrap versioned JSON responses that bypassed success_response.
        if (
            is_versioned_request(request)
            and not request.url.path.startswith(_ENVELOPE_EXEMPT_PREFIXES)
            and response.status_code < 400
            and response.media_type == "application/json"
        ):
            raw_body = getattr(response, "body", None)
            if raw_body:
                try:
                    payload = json.loads(raw_body)
                except (TypeError, ValueError):
                    payload = None
                is_enveloped = (
                    isinstance(payload, dict)
                    and "data" in payload
                    and isinstance(payload.get("meta"), dict)
                    and payload["meta"].get("api_version") == API_VERSION
                )
                if payload is not None and not is_enveloped:
                    wrapped_response = JSONResponse(
                        content={
                            "data": payload,
                            "meta": {"request_id": request_id, "api_version": API_VERSION},
                        },
                        status_code=response.status_code,
                    )
                    for key, value in response.headers.items():
                        if key.lower() in {"content-length", "content-type"}:
                            continue
                        wrapped_response.headers[key] = value
                    response = wrapped_response
        response.headers.setdefault(REQUEST_ID_HEADER, request_id)
        return response

    @app.exception_handler(StarletteHTTPException)
    async def _http_exception_handler(request: Request, exc: StarletteHTTPException):
        return await http_exception_handler(request, exc)

    @app.exception_handler(AuditCycleError)
    async def _domain_exception_handler(request: Request, exc: AuditCycleError):
        return await domain_exception_handler(request, exc)

    @app.exception_handler(Exception)
    async def _unhandled_exception_handler(request: Request, exc: Exception):
        return await unhandled_exception_handler(request, exc)

    @app.exception_handler(RequestValidationError)
    async def _validation_exception_handler(request: Request, exc: RequestValidationError):
        return await validation_exception_handler(request, exc)

    # Mount versioned v1 API routes.
    app.include_router(health_router, prefix=f"/{API_VERSION}")
    app.include_router(periods_router, prefix=f"/{API_VERSION}")
    # Expose scheduler state for operators.
    app.include_router(ops_router, prefix=f"/{API_VERSION}")

    # Retain unversioned routes as compatibility aliases.
    app.include_router(health_router, include_in_schema=False)
    app.include_router(periods_router, include_in_schema=False)
    app.include_router(ops_router, include_in_schema=False)

    @app.get("/v1/openapi.json", include_in_schema=False)
    async def openapi_json() -> JSONResponse:
        return JSONResponse(app.openapi())

    @app.get("/v1/docs", include_in_schema=False)
    async def v1_docs() -> HTMLResponse:
        return get_swagger_ui_html(openapi_url="/v1/openapi.json", title="AuditCycle API v1")

    @app.get("/docs", include_in_schema=False)
    async def docs_redirect() -> RedirectResponse:
        return RedirectResponse(url="/v1/docs")

    return app


app = create_app()
