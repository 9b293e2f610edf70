from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from auditcycle.services.sessions import (
    get_current_period,
    get_latest_upcoming_period,
    get_upcoming_periods_queue,
    is_new_session_start,
)
from auditcycle.tests.utils.seed import seed_period


START_A = datetime(2030, 3, 1, tzinfo=timezone.utc)
START_B = datetime(2030, 9, 1, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_current_period_window_is_inclusive(session_factory) -> None:
    async with session_factory() as session:
        await seed_period(session, "2030-A", START_A)

        assert (await get_current_period(session, START_A)).year_session == "2030-A"
        # Audit end (start + 30 days) is still inside the window.
        assert (await get_current_period(session, START_A + timedelta(days=30))).year_session == "2030-A"
        assert await get_current_period(session, START_A - timedelta(seconds=1)) is None
        assert await get_current_period(session, START_A + timedelta(days=30, seconds=1)) is None


@pytest.mark.asyncio
async def test_current_period_accepts_non_utc_now(session_factory) -> None:
    async with session_factory() as session:
        await seed_period(session, "2030-A", START_A)
        # 08:00 in UTC+8 is midnight UTC, exactly the session start.
        local_now = datetime(2030, 3, 1, 8, 0, tzinfo=timezone(timedelta(hours=8)))
        current = await get_current_period(session, local_now)

    assert current is not None
    assert current.self_audit_start_date == START_A


@pytest.mark.asyncio
async def test_upcoming_queries_and_queue_order(session_factory) -> None:
    async with session_factory() as session:
        await seed_period(session, "2030-B", START_B)
        await seed_period(session, "2030-A", START_A)
        now = START_A - timedelta(days=1)

        latest = await get_latest_upcoming_period(session, now)
        queue = await get_upcoming_periods_queue(session, now)

    assert latest.year_session == "2030-A"
    assert [period.year_session for period in queue] == ["2030-A", "2030-B"]
    assert all(period.self_audit_start_date >= now for period in queue)


@pytest.mark.asyncio
async def test_upcoming_bounds_differ_at_start_instant(session_factory) -> None:
    async with session_factory() as session:
        await seed_period(session, "2030-A", START_A)

        # Strictly-after for the single lookup, inclusive for the scheduler queue.
        assert await get_latest_upcoming_period(session, START_A) is None
        queue = await get_upcoming_periods_queue(session, START_A)

    assert [period.year_session for period in queue] == ["2030-A"]


@pytest.mark.asyncio
async def test_is_new_session_start(session_factory) -> None:
    async with session_factory() as session:
        await seed_period(session, "2030-A", START_A)

        assert await is_new_session_start(session, START_A - timedelta(minutes=1)) is None
        assert await is_new_session_start(session, START_A) == "2030-A"
        assert await is_new_session_start(session, START_A + timedelta(days=2)) == "2030-A"


@pytest.mark.asyncio
async def test_resolver_on_empty_store(session_factory) -> None:
    async with session_factory() as session:
        now = datetime(2030, 1, 1, tzinfo=timezone.utc)
        assert await get_current_period(session, now) is None
        assert await get_latest_upcoming_period(session, now) is None
        assert await get_upcoming_periods_queue(session, now) == []
        assert await is_new_session_start(session, now) is None
