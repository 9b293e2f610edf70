from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from auditcycle.services.sessions import (
    CloneOutcome,
    SchedulerState,
    SessionScheduler,
    bootstrap,
    check_startup_ongoing_session,
)
from auditcycle.services.sessions import startup as startup_module
from auditcycle.tests.utils.seed import active_form_ids, count_forms, seed_enabler_form, seed_period


START_A = datetime(2030, 3, 1, tzinfo=timezone.utc)
START_B = datetime(2030, 9, 1, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_startup_check_clones_ongoing_session_once(session_factory, clock) -> None:
    async with session_factory() as session:
        original_id = await seed_enabler_form(session)
        await seed_period(session, "2030-A", START_A)
    clock.set(START_A + timedelta(days=3))

    first = await check_startup_ongoing_session(session_factory, clock)
    second = await check_startup_ongoing_session(session_factory, clock)

    assert first is CloneOutcome.CLONED
    assert second is CloneOutcome.ALREADY_PROCESSED
    async with session_factory() as session:
        assert original_id not in await active_form_ids(session)
        assert await count_forms(session) == 2


@pytest.mark.asyncio
async def test_startup_check_between_cycles_is_noop(session_factory, clock) -> None:
    async with session_factory() as session:
        await seed_enabler_form(session)
        await seed_period(session, "2030-A", START_A)

    assert await check_startup_ongoing_session(session_factory, clock) is None
    async with session_factory() as session:
        assert await count_forms(session) == 1


@pytest.mark.asyncio
async def test_bootstrap_arms_scheduler_even_if_recovery_fails(
    session_factory, clock, timers, monkeypatch
) -> None:
    async with session_factory() as session:
        await seed_period(session, "2030-B", START_B)

    async def _failing_check(session_factory, clock=None):  # noqa: ANN001
        raise RuntimeError("clone failed")

    monkeypatch.setattr(startup_module, "check_startup_ongoing_session", _failing_check)
    scheduler = SessionScheduler(session_factory, clock=clock, timer_factory=timers)

    await bootstrap(scheduler, session_factory, clock)

    assert scheduler.state is SchedulerState.ARMED
    assert scheduler.next_trigger_at == START_B
