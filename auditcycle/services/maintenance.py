from __future__ import annotations

import asyncio
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
import logging
from pathlib import Path
from typing import Any, Callable, Literal
from zoneinfo import ZoneInfo

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from auditcycle.core.clock import ensure_utc
from auditcycle.core.config import Settings, get_settings
from auditcycle.domain.models import ReminderNotice
from auditcycle.services.notifications import (
    BroadcastMailer,
    assessment_expiring,
    self_assessment_expiring,
    send_broadcast_best_effort,
)
from auditcycle.services.sessions.resolver import PeriodSnapshot, get_current_period


logger = logging.getLogger(__name__)

ReminderKind = Literal["self_audit_end", "audit_end"]


@dataclass(slots=True)
class DailyMaintenanceReport:
    removed_files: list[str] = field(default_factory=list)
    reminders_sent: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


def _sweep_idle_files(scratch_dir: Path, permanent_dirs: frozenset[str], cutoff_ts: float) -> list[str]:
    removed: list[str] = []
    if not scratch_dir.is_dir():
        return removed
    for entry in sorted(scratch_dir.iterdir()):
        if entry.name in permanent_dirs:
            continue
        # Only loose top-level files are scratch uploads; unknown folders are left alone.
        if not entry.is_file():
            continue
        if entry.stat().st_mtime < cutoff_ts:
            entry.unlink(missing_ok=True)
            removed.append(entry.name)
    return removed


async def remove_idle_files(
    scratch_dir: Path,
    *,
    now: datetime,
    permanent_dirs: Iterable[str],
    max_age: timedelta = timedelta(hours=24),
) -> list[str]:
    """Delete scratch uploads older than ``max_age``; return the removed file names."""
    cutoff_ts = (now - max_age).timestamp()
    removed = await asyncio.to_thread(_sweep_idle_files, scratch_dir, frozenset(permanent_dirs), cutoff_ts)
    if removed:
        logger.info("idle_files_removed dir=%s count=%d", scratch_dir, len(removed))
    return removed


def local_day_start(now: datetime, tz: ZoneInfo) -> datetime:
    local = now.astimezone(tz)
    return local.replace(hour=0, minute=0, second=0, microsecond=0)


def is_within_reminder_window(
    deadline: datetime,
    *,
    day_start: datetime,
    min_days: int,
    max_days: int,
) -> bool:
    # Run once a day, so an exclusive lower and inclusive upper bound yields one hit per deadline.
    remaining = deadline - day_start
    return timedelta(days=min_days) < remaining <= timedelta(days=max_days)


async def _claim_reminder(
    session: AsyncSession, year_session: str, kind: ReminderKind, deadline: datetime
) -> bool:
    # Persisted marker so a restart inside the window does not re-send the same reminder.
    deadline = ensure_utc(deadline)
    existing = await session.execute(
        select(ReminderNotice.id).where(
            ReminderNotice.year_session == year_session,
            ReminderNotice.kind == kind,
            ReminderNotice.deadline == deadline,
        )
    )
    if existing.scalar_one_or_none() is not None:
        return False
    session.add(ReminderNotice(year_session=year_session, kind=kind, deadline=deadline))
    try:
        await session.commit()
    except IntegrityError:
        await session.rollback()
        return False
    return True


def _due_reminders(
    period: PeriodSnapshot, *, day_start: datetime, settings: Settings
) -> list[tuple[ReminderKind, datetime]]:
    due: list[tuple[ReminderKind, datetime]] = []
    for kind, deadline in (
        ("self_audit_end", period.self_audit_end_date),
        ("audit_end", period.audit_end_date),
    ):
        if is_within_reminder_window(
            deadline,
            day_start=day_start,
            min_days=settings.expiry_reminder_min_days,
            max_days=settings.expiry_reminder_max_days,
        ):
            due.append((kind, deadline))  # type: ignore[arg-type]
    return due


async def check_and_notify_expiring(
    session: AsyncSession,
    mailer: BroadcastMailer,
    *,
    now: datetime,
    settings: Settings | None = None,
) -> list[str]:
    """Broadcast a reminder for each deadline of the current period that is 4-5 days out."""
    settings = settings or get_settings()
    period = await get_current_period(session, now)
    if period is None:
        return []
    day_start = local_day_start(now, ZoneInfo(settings.scheduler_timezone))
    sent: list[str] = []
    for kind, deadline in _due_reminders(period, day_start=day_start, settings=settings):
        if not await _claim_reminder(session, period.year_session, kind, deadline):
            logger.info("expiry_reminder_skipped year_session=%s kind=%s", period.year_session, kind)
            continue
        if kind == "self_audit_end":
            message = self_assessment_expiring(
                year_session=period.year_session,
                self_audit_start=period.self_audit_start_date,
                self_audit_end=period.self_audit_end_date,
                system_url=settings.system_url,
            )
        else:
            message = assessment_expiring(
                year_session=period.year_session,
                audit_start=period.audit_start_date,
                audit_end=period.audit_end_date,
                system_url=settings.system_url,
            )
        await send_broadcast_best_effort(session, mailer, message)
        sent.append(kind)
    return sent


async def run_daily_maintenance(
    session_factory: Callable[[], Any],
    mailer: BroadcastMailer,
    *,
    now: datetime | None = None,
    settings: Settings | None = None,
) -> DailyMaintenanceReport:
    # Each step is isolated: a failed sweep must not suppress reminders and vice versa.
    settings = settings or get_settings()
    now = now or datetime.now(timezone.utc)
    report = DailyMaintenanceReport()
    try:
        report.removed_files = await remove_idle_files(
            Path(settings.upload_scratch_dir),
            now=now,
            permanent_dirs=settings.upload_permanent_dirs,
            max_age=timedelta(hours=settings.idle_file_max_age_hours),
        )
    except OSError as exc:
        logger.warning("idle_file_cleanup_failed dir=%s", settings.upload_scratch_dir, exc_info=exc)
        report.errors.append("remove_idle_files")
    try:
        async with session_factory() as session:
            report.reminders_sent = await check_and_notify_expiring(
                session, mailer, now=now, settings=settings
            )
    except Exception:  # noqa: BLE001 - the daily loop must survive storage outages.
        logger.exception("expiry_reminder_check_failed")
        report.errors.append("check_and_notify_expiring")
    return report
