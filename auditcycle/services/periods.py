from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime
from zoneinfo import ZoneInfo

from sqlalchemy.ext.asyncio import AsyncSession

from auditcycle.core.config import get_settings
from auditcycle.core.errors import PeriodConflictError, PeriodNotFoundError, PeriodValidationError
from auditcycle.domain.models import Period
from auditcycle.persistence.repos import periods as periods_repo
from auditcycle.services.sessions.resolver import PeriodSnapshot


_INVALID_SESSION_CHARS = ("?", "/")
_TOTAL_WEIGHTAGE = 100


@dataclass(slots=True)
class PeriodInput:
    year_session: str
    year: int
    audit_start_date: datetime
    audit_end_date: datetime
    self_audit_start_date: datetime
    self_audit_end_date: datetime
    enabler_weightage: int
    result_weightage: int

    def fields(self) -> dict[str, object]:
        values = asdict(self)
        values.pop("year_session")
        return values


def _localize(value: datetime, tz: ZoneInfo) -> datetime:
    # Clients may send wall-clock times without an offset; read them in the scheduler zone.
    if value.tzinfo is None:
        return value.replace(tzinfo=tz)
    return value


def normalize_period_input(data: PeriodInput) -> PeriodInput:
    tz = ZoneInfo(get_settings().scheduler_timezone)
    return PeriodInput(
        year_session=data.year_session.strip(),
        year=data.year,
        audit_start_date=_localize(data.audit_start_date, tz),
        audit_end_date=_localize(data.audit_end_date, tz),
        self_audit_start_date=_localize(data.self_audit_start_date, tz),
        self_audit_end_date=_localize(data.self_audit_end_date, tz),
        enabler_weightage=data.enabler_weightage,
        result_weightage=data.result_weightage,
    )


def validate_period_input(data: PeriodInput) -> None:
    if not data.year_session:
        raise PeriodValidationError("year_session must not be empty")
    if any(char in data.year_session for char in _INVALID_SESSION_CHARS):
        raise PeriodValidationError("year_session must not contain '?' or '/'")
    if data.year <= 0:
        raise PeriodValidationError("year must be a positive integer")
    if data.enabler_weightage < 0 or data.result_weightage < 0:
        raise PeriodValidationError("weightages must not be negative")
    if data.enabler_weightage + data.result_weightage != _TOTAL_WEIGHTAGE:
        raise PeriodValidationError("enabler_weightage and result_weightage must sum to 100")
    ordered = (
        data.self_audit_start_date,
        data.self_audit_end_date,
        data.audit_start_date,
        data.audit_end_date,
    )
    if any(earlier > later for earlier, later in zip(ordered, ordered[1:])):
        raise PeriodValidationError(
            "dates must satisfy self_audit_start <= self_audit_end <= audit_start <= audit_end"
        )


async def _ensure_no_overlap(session: AsyncSession, data: PeriodInput, *, exclude: str | None) -> None:
    overlapping = await periods_repo.list_overlapping_periods(
        session,
        window_start=data.self_audit_start_date,
        window_end=data.audit_end_date,
        exclude_year_session=exclude,
    )
    if overlapping:
        names = ", ".join(row.year_session for row in overlapping)
        raise PeriodConflictError(f"period window overlaps existing session(s): {names}")


async def create_period(session: AsyncSession, data: PeriodInput) -> Period:
    """Validate and insert a period; the caller commits and resyncs the scheduler."""
    data = normalize_period_input(data)
    validate_period_input(data)
    if await periods_repo.find_period_case_insensitive(session, data.year_session) is not None:
        raise PeriodConflictError(f"year_session {data.year_session!r} already exists")
    await _ensure_no_overlap(session, data, exclude=None)
    return await periods_repo.create_period(session, year_session=data.year_session, **data.fields())


async def update_period(session: AsyncSession, year_session: str, data: PeriodInput) -> Period:
    data = normalize_period_input(PeriodInput(**{**asdict(data), "year_session": year_session}))
    if await periods_repo.get_period(session, year_session) is None:
        raise PeriodNotFoundError(year_session)
    validate_period_input(data)
    await _ensure_no_overlap(session, data, exclude=year_session)
    period = await periods_repo.update_period(session, year_session, **data.fields())
    if period is None:
        raise PeriodNotFoundError(year_session)
    return period


async def delete_period(session: AsyncSession, year_session: str) -> PeriodSnapshot:
    period = await periods_repo.get_period(session, year_session)
    if period is None:
        raise PeriodNotFoundError(year_session)
    snapshot = PeriodSnapshot.from_row(period)
    await periods_repo.delete_period(session, year_session)
    return snapshot
