from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from auditcycle.core.clock import ensure_utc
from auditcycle.domain.models import Period
from auditcycle.persistence.repos import periods as periods_repo


@dataclass(frozen=True, slots=True)
class PeriodSnapshot:
    # Detached copy of a period row so scheduler state never holds ORM instances across sessions.
    year_session: str
    year: int
    audit_start_date: datetime
    audit_end_date: datetime
    self_audit_start_date: datetime
    self_audit_end_date: datetime
    enabler_weightage: int
    result_weightage: int

    @classmethod
    def from_row(cls, row: Period) -> "PeriodSnapshot":
        return cls(
            year_session=row.year_session,
            year=row.year,
            audit_start_date=ensure_utc(row.audit_start_date),
            audit_end_date=ensure_utc(row.audit_end_date),
            self_audit_start_date=ensure_utc(row.self_audit_start_date),
            self_audit_end_date=ensure_utc(row.self_audit_end_date),
            enabler_weightage=row.enabler_weightage,
            result_weightage=row.result_weightage,
        )

    def contains(self, moment: datetime) -> bool:
        return self.self_audit_start_date <= ensure_utc(moment) <= self.audit_end_date


async def get_current_period(session: AsyncSession, now: datetime) -> PeriodSnapshot | None:
    """Return the period whose self-audit-start..audit-end window contains ``now``.

    ``None`` is the normal answer between cycles.
    """
    row = await periods_repo.get_current_period(session, now)
    return PeriodSnapshot.from_row(row) if row is not None else None


async def get_latest_upcoming_period(session: AsyncSession, now: datetime) -> PeriodSnapshot | None:
    """Return the soonest period that has not started yet (strictly after ``now``)."""
    row = await periods_repo.get_latest_upcoming_period(session, now)
    return PeriodSnapshot.from_row(row) if row is not None else None


async def get_upcoming_periods_queue(session: AsyncSession, now: datetime) -> list[PeriodSnapshot]:
    """Return every period starting at or after ``now``, soonest first.

    The head of this queue is the scheduler's next trigger.
    """
    rows = await periods_repo.list_upcoming_periods(session, now)
    return [PeriodSnapshot.from_row(row) for row in rows]


async def is_new_session_start(session: AsyncSession, now: datetime) -> str | None:
    # Re-check at fire time instead of trusting the timer; edits may have raced it.
    current = await get_current_period(session, now)
    if current is None:
        return None
    if ensure_utc(now) >= current.self_audit_start_date:
        return current.year_session
    return None
