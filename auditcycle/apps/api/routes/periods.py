from __future__ import annotations

from datetime import datetime
import logging

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request
from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from auditcycle.apps.api.deps import get_db, get_mailer, get_scheduler
from auditcycle.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from auditcycle.apps.api.response import SuccessEnvelope, success_response
from auditcycle.core.clock import SystemClock
from auditcycle.core.config import get_settings
from auditcycle.core.errors import PeriodConflictError, PeriodNotFoundError, PeriodValidationError
from auditcycle.persistence.repos import forms as forms_repo
from auditcycle.persistence.repos import periods as periods_repo
from auditcycle.services import periods as period_service
from auditcycle.services.notifications import (
    BroadcastMailer,
    BroadcastMessage,
    list_broadcast_recipients,
    send_quietly,
    session_created,
    session_updated,
)
from auditcycle.services.sessions import (
    PeriodSnapshot,
    SessionScheduler,
    get_current_period,
    get_latest_upcoming_period,
)


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/periods", tags=["periods"], responses=DEFAULT_ERROR_RESPONSES)


class PeriodResponse(BaseModel):
    year_session: str
    year: int
    audit_start_date: str
    audit_end_date: str
    self_audit_start_date: str
    self_audit_end_date: str
    enabler_weightage: int
    result_weightage: int
    is_current_period: bool | None = None


class PeriodCreateRequest(BaseModel):
    year_session: str = Field(min_length=1, max_length=64)
    year: int
    audit_start_date: datetime
    audit_end_date: datetime
    self_audit_start_date: datetime
    self_audit_end_date: datetime
    enabler_weightage: int
    result_weightage: int

    model_config = {"extra": "forbid"}


class PeriodUpdateRequest(BaseModel):
    year: int
    audit_start_date: datetime
    audit_end_date: datetime
    self_audit_start_date: datetime
    self_audit_end_date: datetime
    enabler_weightage: int
    result_weightage: int

    model_config = {"extra": "forbid"}


class FormPeriodSetResponse(BaseModel):
    year_session: str
    form_ids: list[int]


def _to_response(period: PeriodSnapshot, *, is_current: bool | None = None) -> PeriodResponse:
    return PeriodResponse(
        year_session=period.year_session,
        year=period.year,
        audit_start_date=period.audit_start_date.isoformat(),
        audit_end_date=period.audit_end_date.isoformat(),
        self_audit_start_date=period.self_audit_start_date.isoformat(),
        self_audit_end_date=period.self_audit_end_date.isoformat(),
        enabler_weightage=period.enabler_weightage,
        result_weightage=period.result_weightage,
        is_current_period=is_current,
    )


async def _after_period_change(
    db: AsyncSession,
    scheduler: SessionScheduler | None,
    mailer: BroadcastMailer,
    message: BroadcastMessage | None,
    background_tasks: BackgroundTasks | None = None,
) -> None:
    if scheduler is not None:
        await scheduler.resync()
    if message is None or background_tasks is None:
        return
    # Recipients are read while the request session is still open; SMTP runs after the response.
    try:
        recipients = await list_broadcast_recipients(db)
    except SQLAlchemyError as exc:
        logger.warning("broadcast_recipients_failed subject=%s", message.subject, exc_info=exc)
        return
    background_tasks.add_task(send_quietly, mailer, message, recipients)


@router.get("", response_model=SuccessEnvelope[list[PeriodResponse]] | list[PeriodResponse])
async def list_periods(request: Request, db: AsyncSession = Depends(get_db)) -> list[PeriodResponse]:
    try:
        rows = await periods_repo.list_periods(db)
    except SQLAlchemyError as exc:
        raise HTTPException(status_code=500, detail="Database error while listing periods") from exc
    return success_response(request=request, data=[_to_response(PeriodSnapshot.from_row(row)) for row in rows])


@router.get("/current", response_model=SuccessEnvelope[PeriodResponse | None] | PeriodResponse | None)
async def get_current(request: Request, db: AsyncSession = Depends(get_db)) -> PeriodResponse | None:
    # Fall back to the soonest upcoming session so the UI can show what comes next.
    now = SystemClock().now()
    try:
        current = await get_current_period(db, now)
        if current is not None:
            return success_response(request=request, data=_to_response(current, is_current=True))
        upcoming = await get_latest_upcoming_period(db, now)
    except SQLAlchemyError as exc:
        raise HTTPException(status_code=500, detail="Database error while fetching current period") from exc
    if upcoming is None:
        return success_response(request=request, data=None)
    return success_response(request=request, data=_to_response(upcoming, is_current=False))


@router.get("/{year_session}", response_model=SuccessEnvelope[PeriodResponse] | PeriodResponse)
async def get_period(year_session: str, request: Request, db: AsyncSession = Depends(get_db)) -> PeriodResponse:
    try:
        row = await periods_repo.get_period(db, year_session)
    except SQLAlchemyError as exc:
        raise HTTPException(status_code=500, detail="Database error while fetching period") from exc
    if row is None:
        raise PeriodNotFoundError(year_session)
    return success_response(request=request, data=_to_response(PeriodSnapshot.from_row(row)))


@router.get(
    "/{year_session}/forms",
    response_model=SuccessEnvelope[FormPeriodSetResponse] | FormPeriodSetResponse,
)
async def get_period_forms(
    year_session: str, request: Request, db: AsyncSession = Depends(get_db)
) -> FormPeriodSetResponse:
    try:
        rows = await forms_repo.list_form_period_set(db, year_session)
    except SQLAlchemyError as exc:
        raise HTTPException(status_code=500, detail="Database error while fetching session forms") from exc
    payload = FormPeriodSetResponse(year_session=year_session, form_ids=[row.form_id for row in rows])
    return success_response(request=request, data=payload)


@router.post("", response_model=SuccessEnvelope[PeriodResponse] | PeriodResponse)
async def create_period(
    payload: PeriodCreateRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    scheduler: SessionScheduler | None = Depends(get_scheduler),
    mailer: BroadcastMailer = Depends(get_mailer),
) -> PeriodResponse:
    try:
        period = await period_service.create_period(db, period_service.PeriodInput(**payload.model_dump()))
        snapshot = PeriodSnapshot.from_row(period)
        await db.commit()
    except (PeriodValidationError, PeriodConflictError):
        # Rendered by the domain error handler.
        await db.rollback()
        raise
    except SQLAlchemyError as exc:
        await db.rollback()
        raise HTTPException(status_code=500, detail="Database error while creating period") from exc

    logger.info("period_created year_session=%s", snapshot.year_session)
    message = session_created(
        year_session=snapshot.year_session,
        self_audit_start=snapshot.self_audit_start_date,
        self_audit_end=snapshot.self_audit_end_date,
        audit_start=snapshot.audit_start_date,
        audit_end=snapshot.audit_end_date,
        system_url=get_settings().system_url,
    )
    await _after_period_change(db, scheduler, mailer, message, background_tasks)
    return success_response(request=request, data=_to_response(snapshot))


@router.patch("/{year_session}", response_model=SuccessEnvelope[PeriodResponse] | PeriodResponse)
async def update_period(
    year_session: str,
    payload: PeriodUpdateRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    scheduler: SessionScheduler | None = Depends(get_scheduler),
    mailer: BroadcastMailer = Depends(get_mailer),
) -> PeriodResponse:
    try:
        period = await period_service.update_period(
            db,
            year_session,
            period_service.PeriodInput(year_session=year_session, **payload.model_dump()),
        )
        snapshot = PeriodSnapshot.from_row(period)
        await db.commit()
    except (PeriodNotFoundError, PeriodValidationError, PeriodConflictError):
        await db.rollback()
        raise
    except SQLAlchemyError as exc:
        await db.rollback()
        raise HTTPException(status_code=500, detail="Database error while updating period") from exc

    logger.info("period_updated year_session=%s", year_session)
    message = session_updated(
        year_session=snapshot.year_session,
        self_audit_start=snapshot.self_audit_start_date,
        self_audit_end=snapshot.self_audit_end_date,
        audit_start=snapshot.audit_start_date,
        audit_end=snapshot.audit_end_date,
        system_url=get_settings().system_url,
    )
    await _after_period_change(db, scheduler, mailer, message, background_tasks)
    return success_response(request=request, data=_to_response(snapshot))


@router.delete("/{year_session}", response_model=SuccessEnvelope[PeriodResponse] | PeriodResponse)
async def delete_period(
    year_session: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    scheduler: SessionScheduler | None = Depends(get_scheduler),
    mailer: BroadcastMailer = Depends(get_mailer),
) -> PeriodResponse:
    try:
        snapshot = await period_service.delete_period(db, year_session)
        await db.commit()
    except PeriodNotFoundError:
        await db.rollback()
        raise
    except SQLAlchemyError as exc:
        await db.rollback()
        raise HTTPException(status_code=500, detail="Database error while deleting period") from exc

    logger.info("period_deleted year_session=%s", year_session)
    await _after_period_change(db, scheduler, mailer, None)
    return success_response(request=request, data=_to_response(snapshot))
