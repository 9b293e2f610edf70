from __future__ import annotations

import logging

from auditcycle.core.clock import Clock, SystemClock
from auditcycle.services.sessions.cloning import CloneOutcome, SessionFactory, run_session_start_clone
from auditcycle.services.sessions.resolver import get_current_period
from auditcycle.services.sessions.scheduler import SessionScheduler


logger = logging.getLogger(__name__)


async def check_startup_ongoing_session(
    session_factory: SessionFactory,
    clock: Clock | None = None,
) -> CloneOutcome | None:
    """Clone forms for a session that is already current when the process starts.

    Recovers from a restart that happened after a session boundary but before
    the scheduled clone completed. Safe on every start: the clone gate is a
    no-op for sessions that already have FormPeriodSet rows.
    """
    now = (clock or SystemClock()).now()
    async with session_factory() as session:
        current = await get_current_period(session, now)
    if current is None:
        logger.info("startup_session_check no_current_session")
        return None
    outcome = await run_session_start_clone(session_factory, current.year_session)
    logger.info("startup_session_check year_session=%s outcome=%s", current.year_session, outcome.value)
    return outcome


async def bootstrap(scheduler: SessionScheduler, session_factory: SessionFactory, clock: Clock | None = None) -> None:
    # A failed recovery clone is logged; the scheduler still has to be armed.
    try:
        await check_startup_ongoing_session(session_factory, clock)
    except Exception:  # noqa: BLE001 - startup must continue so future sessions are still scheduled.
        logger.exception("startup_session_check_failed")
    scheduler.start()
    await scheduler.resync()
