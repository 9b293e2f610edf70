from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from auditcycle.persistence.repos import forms as forms_repo
from auditcycle.services import periods as period_service
from auditcycle.services.sessions import CloneOutcome, SchedulerState, SessionScheduler, bootstrap
from auditcycle.tests.utils.seed import (
    active_form_ids,
    count_forms,
    period_input,
    seed_enabler_form,
    seed_result_form,
)


START_A = datetime(2030, 3, 1, tzinfo=timezone.utc)
START_B = datetime(2030, 9, 1, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_two_sessions_clone_once_each_across_restart(session_factory, clock, timers) -> None:
    async with session_factory() as session:
        enabler_id = await seed_enabler_form(session, form_number=1)
        result_id = await seed_result_form(session, form_number=2)
        await period_service.create_period(session, period_input("2030-A", START_A))
        await period_service.create_period(session, period_input("2030-B", START_B))
        await session.commit()

    # Process starts before either session.
    scheduler = SessionScheduler(session_factory, clock=clock, timer_factory=timers)
    await bootstrap(scheduler, session_factory, clock)
    assert scheduler.next_trigger_at == START_A
    assert len(timers.live()) == 1

    clock.set(START_A + timedelta(seconds=1))
    await timers.live()[0].fire()
    assert scheduler.last_outcome is CloneOutcome.CLONED
    assert scheduler.next_trigger_at == START_B

    async with session_factory() as session:
        linked_a = [row.form_id for row in await forms_repo.list_form_period_set(session, "2030-A")]
        generation_a = await active_form_ids(session)
    assert linked_a == sorted([enabler_id, result_id])
    assert len(generation_a) == 2 and set(generation_a).isdisjoint(linked_a)

    # Restart mid-session: the recovery check must not clone again.
    scheduler.stop()
    clock.set(START_A + timedelta(days=3))
    restarted = SessionScheduler(session_factory, clock=clock, timer_factory=timers)
    await bootstrap(restarted, session_factory, clock)
    async with session_factory() as session:
        assert await active_form_ids(session) == generation_a
        assert await count_forms(session) == 4
    assert restarted.next_trigger_at == START_B

    clock.set(START_B)
    await timers.live()[0].fire()
    assert restarted.last_outcome is CloneOutcome.CLONED
    assert restarted.state is SchedulerState.IDLE

    async with session_factory() as session:
        linked_b = [row.form_id for row in await forms_repo.list_form_period_set(session, "2030-B")]
        generation_b = await active_form_ids(session)
        assert await count_forms(session) == 6
    assert linked_b == sorted(generation_a)
    assert len(generation_b) == 2 and set(generation_b).isdisjoint(linked_b)
