from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from auditcycle.core.clock import ensure_utc
from auditcycle.domain.models import Period


_DATE_FIELDS = (
    "audit_start_date",
    "audit_end_date",
    "self_audit_start_date",
    "self_audit_end_date",
)
_UPDATABLE_FIELDS = frozenset(
    {
        *_DATE_FIELDS,
        "year",
        "enabler_weightage",
        "result_weightage",
    }
)


def _normalize_dates(values: dict[str, Any]) -> dict[str, Any]:
    # Persist every boundary in UTC so range comparisons are driver independent.
    normalized = dict(values)
    for field in _DATE_FIELDS:
        if isinstance(normalized.get(field), datetime):
            normalized[field] = ensure_utc(normalized[field])
    return normalized


async def list_periods(session: AsyncSession) -> list[Period]:
    # Stable ordering keeps list responses deterministic across requests.
    result = await session.execute(
        select(Period).order_by(Period.self_audit_start_date, Period.year_session)
    )
    return list(result.scalars().all())


async def get_period(session: AsyncSession, year_session: str) -> Period | None:
    result = await session.execute(select(Period).where(Period.year_session == year_session))
    return result.scalar_one_or_none()


async def find_period_case_insensitive(session: AsyncSession, year_session: str) -> Period | None:
    result = await session.execute(
        select(Period).where(func.lower(Period.year_session) == year_session.lower()).limit(1)
    )
    return result.scalar_one_or_none()


async def list_overlapping_periods(
    session: AsyncSession,
    *,
    window_start: datetime,
    window_end: datetime,
    exclude_year_session: str | None = None,
) -> list[Period]:
    # Two [self_audit_start, audit_end] windows overlap when each starts before the other ends.
    stmt = select(Period).where(
        Period.self_audit_start_date <= ensure_utc(window_end),
        Period.audit_end_date >= ensure_utc(window_start),
    )
    if exclude_year_session is not None:
        stmt = stmt.where(Period.year_session != exclude_year_session)
    result = await session.execute(stmt.order_by(Period.self_audit_start_date))
    return list(result.scalars().all())


async def create_period(session: AsyncSession, **values: Any) -> Period:
    period = Period(**_normalize_dates(values))
    session.add(period)
    await session.flush()
    return period


async def update_period(session: AsyncSession, year_session: str, **fields: Any) -> Period | None:
    # Fetch first so a missing session never turns into an implicit insert.
    period = await get_period(session, year_session)
    if period is None:
        return None
    for key, value in _normalize_dates(fields).items():
        if key not in _UPDATABLE_FIELDS:
            raise ValueError(f"period field {key!r} is not updatable")
        setattr(period, key, value)
    await session.flush()
    return period


async def delete_period(session: AsyncSession, year_session: str) -> bool:
    result = await session.execute(delete(Period).where(Period.year_session == year_session))
    return bool(result.rowcount)


async def get_current_period(session: AsyncSession, now: datetime) -> Period | None:
    # Overlapping windows are rejected on write; earliest start wins if legacy rows overlap anyway.
    moment = ensure_utc(now)
    result = await session.execute(
        select(Period)
        .where(Period.self_audit_start_date <= moment, Period.audit_end_date >= moment)
        .order_by(Period.self_audit_start_date, Period.year_session)
        .limit(1)
    )
    return result.scalar_one_or_none()


async def get_latest_upcoming_period(session: AsyncSession, now: datetime) -> Period | None:
    result = await session.execute(
        select(Period)
        .where(Period.self_audit_start_date > ensure_utc(now))
        .order_by(Period.self_audit_start_date, Period.year_session)
        .limit(1)
    )
    return result.scalar_one_or_none()


async def list_upcoming_periods(session: AsyncSession, now: datetime) -> list[Period]:
    # Inclusive bound: a session starting exactly now is still queued rather than skipped.
    result = await session.execute(
        select(Period)
        .where(Period.self_audit_start_date >= ensure_utc(now))
        .order_by(Period.self_audit_start_date, Period.year_session)
    )
    return list(result.scalars().all())
