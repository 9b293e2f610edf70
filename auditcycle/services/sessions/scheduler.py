"""In-process session scheduler.

One ``SessionScheduler`` instance owns the process-wide timer for the next
session start. ``resync()`` recomputes the upcoming-period queue and re-arms
the timer for its head; ``on_trigger()`` re-checks whether a session really
started, runs the clone gate, and always resyncs so the loop advances to the
next period. Arming always cancels the previous timer first, so at most one
session timer is live at any time.

The same instance also arms the fixed daily maintenance timer.
"""
from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from datetime import datetime, time, timedelta
from enum import Enum
import logging
from typing import Any, Protocol
from zoneinfo import ZoneInfo

from auditcycle.core.clock import Clock, SystemClock, ensure_utc
from auditcycle.core.config import Settings, get_settings
from auditcycle.services.sessions.cloning import CloneOutcome, SessionFactory, run_session_start_clone
from auditcycle.services.sessions.resolver import (
    PeriodSnapshot,
    get_upcoming_periods_queue,
    is_new_session_start,
)


logger = logging.getLogger(__name__)

TimerCallback = Callable[[], Awaitable[None]]


class TimerHandle(Protocol):
    def cancel(self) -> None: ...

    def cancelled(self) -> bool: ...


class TimerFactory(Protocol):
    def call_at(self, when: datetime, callback: TimerCallback) -> TimerHandle: ...

    async def shutdown(self) -> None: ...


class AsyncioTimerFactory:
    """Arm one-shot timers on the running event loop."""

    def __init__(self, clock: Clock | None = None) -> None:
        self._clock = clock or SystemClock()
        # Keep strong references so fired callbacks are not garbage collected mid-run.
        self._tasks: set[asyncio.Task[None]] = set()

    def call_at(self, when: datetime, callback: TimerCallback) -> TimerHandle:
        loop = asyncio.get_running_loop()
        delay = max(0.0, (ensure_utc(when) - self._clock.now()).total_seconds())
        return loop.call_later(delay, self._spawn, callback)

    def _spawn(self, callback: TimerCallback) -> None:
        task = asyncio.ensure_future(callback())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def shutdown(self) -> None:
        # Pending loop timers are cancelled by their owners; this reaps callbacks already running.
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()


class SchedulerState(str, Enum):
    IDLE = "idle"
    ARMED = "armed"


def next_daily_run(now: datetime, at: time, tz: ZoneInfo) -> datetime:
    # Next wall-clock occurrence of ``at`` strictly after ``now`` in the given zone.
    local_now = now.astimezone(tz)
    candidate = local_now.replace(hour=at.hour, minute=at.minute, second=at.second, microsecond=0)
    if candidate <= local_now:
        candidate = candidate + timedelta(days=1)
    return candidate


class SessionScheduler:
    def __init__(
        self,
        session_factory: SessionFactory,
        *,
        clock: Clock | None = None,
        timer_factory: TimerFactory | None = None,
        daily_job: Callable[[], Awaitable[Any]] | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._timer_factory = timer_factory or AsyncioTimerFactory(self._clock)
        self._daily_job = daily_job
        self._settings = settings or get_settings()
        self._timer: TimerHandle | None = None
        self._daily_timer: TimerHandle | None = None
        # Bumped on every arm/disarm so a callback spawned just before a rearm can detect it is stale.
        self._generation = 0
        self._next_trigger_at: datetime | None = None
        self._queue: list[PeriodSnapshot] = []
        self.last_outcome: CloneOutcome | None = None
        self._closed = False

    @property
    def state(self) -> SchedulerState:
        return SchedulerState.ARMED if self._timer is not None else SchedulerState.IDLE

    @property
    def next_trigger_at(self) -> datetime | None:
        return self._next_trigger_at

    @property
    def queue(self) -> list[PeriodSnapshot]:
        return list(self._queue)

    def start(self) -> None:
        if self._daily_job is not None and self._daily_timer is None:
            self._arm_daily()

    def stop(self) -> None:
        self._disarm()
        self._next_trigger_at = None
        if self._daily_timer is not None:
            self._daily_timer.cancel()
            self._daily_timer = None

    async def aclose(self) -> None:
        """Stop arming timers and wait for in-flight trigger or daily callbacks to unwind."""
        self._closed = True
        self.stop()
        await self._timer_factory.shutdown()
        logger.info("session_scheduler_closed")

    async def resync(self, *, skip: str | None = None) -> None:
        """Recompute the upcoming queue and re-arm the session timer for its head.

        ``skip`` drops a session that was just handled; a trigger that runs exactly
        on time would otherwise find it still at the head of the queue.
        """
        now = self._clock.now()
        try:
            async with self._session_factory() as session:
                queue = await get_upcoming_periods_queue(session, now)
        except Exception:  # noqa: BLE001 - keep the current timer when storage is unavailable.
            logger.exception("session_scheduler_resync_failed")
            return
        if skip is not None:
            queue = [period for period in queue if period.year_session != skip]
        self._apply_queue(queue)

    def _apply_queue(self, queue: list[PeriodSnapshot]) -> None:
        if self._closed:
            return
        # No await in here: cancel and arm must not interleave with another resync.
        self._queue = queue
        if not queue:
            self._disarm()
            self._next_trigger_at = None
            logger.info("session_scheduler_idle")
            return
        head = queue[0]
        self._disarm()
        generation = self._generation
        self._next_trigger_at = head.self_audit_start_date
        self._timer = self._timer_factory.call_at(
            head.self_audit_start_date, lambda: self._fire(generation)
        )
        logger.info(
            "session_scheduler_armed year_session=%s trigger_at=%s queued=%d",
            head.year_session,
            head.self_audit_start_date.isoformat(),
            len(queue),
        )

    def _disarm(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._generation += 1

    async def _fire(self, generation: int) -> None:
        if generation != self._generation:
            logger.info("session_scheduler_stale_trigger_ignored")
            return
        self._timer = None
        await self.on_trigger()

    async def on_trigger(self) -> None:
        """Handle a session-start timer: verify, clone once, then re-arm. Never raises."""
        now = self._clock.now()
        year_session: str | None = None
        try:
            async with self._session_factory() as session:
                year_session = await is_new_session_start(session, now)
            if year_session is None:
                logger.info("session_trigger_no_session_starting at=%s", now.isoformat())
            else:
                self.last_outcome = await run_session_start_clone(self._session_factory, year_session)
                logger.info(
                    "session_trigger_processed year_session=%s outcome=%s",
                    year_session,
                    self.last_outcome.value,
                )
        except Exception:  # noqa: BLE001 - a failed clone must not stop the scheduling loop.
            logger.exception("session_trigger_failed")
        await self.resync(skip=year_session)

    def _arm_daily(self) -> None:
        if self._closed:
            return
        settings = self._settings
        when = next_daily_run(
            self._clock.now(), settings.daily_jobs_time, ZoneInfo(settings.scheduler_timezone)
        )
        self._daily_timer = self._timer_factory.call_at(when, self._on_daily)
        logger.info("daily_jobs_armed run_at=%s", when.isoformat())

    async def _on_daily(self) -> None:
        self._daily_timer = None
        try:
            if self._daily_job is not None:
                await self._daily_job()
        except Exception:  # noqa: BLE001 - the daily loop runs forever regardless of one failure.
            logger.exception("daily_jobs_failed")
        self._arm_daily()

    def snapshot(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "next_trigger_at": self._next_trigger_at.isoformat() if self._next_trigger_at else None,
            "queue": [period.year_session for period in self._queue],
            "daily_jobs_armed": self._daily_timer is not None,
            "last_outcome": self.last_outcome.value if self.last_outcome else None,
        }
