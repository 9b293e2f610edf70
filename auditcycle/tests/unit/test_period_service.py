from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from auditcycle.core.errors import PeriodConflictError, PeriodNotFoundError, PeriodValidationError
from auditcycle.persistence.repos import periods as periods_repo
from auditcycle.services import periods as period_service
from auditcycle.tests.utils.seed import period_input


START = datetime(2030, 3, 1, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "changes",
    [
        {"year_session": "  "},
        {"year_session": "2030/2031"},
        {"year_session": "2030?"},
        {"year": 0},
        {"enabler_weightage": 70, "result_weightage": 40},
        {"enabler_weightage": -10, "result_weightage": 110},
        {"self_audit_end_date": START - timedelta(days=1)},
        {"audit_start_date": START + timedelta(days=5)},
        {"audit_end_date": START + timedelta(days=10)},
    ],
)
def test_validate_period_input_rejects_bad_payloads(changes) -> None:
    data = period_service.normalize_period_input(replace(period_input("2030-A", START), **changes))
    with pytest.raises(PeriodValidationError):
        period_service.validate_period_input(data)


def test_validate_period_input_accepts_touching_boundaries() -> None:
    data = replace(
        period_input("2030-A", START),
        self_audit_end_date=START,
        audit_start_date=START,
        audit_end_date=START,
    )
    period_service.validate_period_input(data)


def test_naive_datetimes_are_read_in_scheduler_zone() -> None:
    naive = replace(period_input("2030-A", START), self_audit_start_date=datetime(2030, 3, 1, 8, 0))
    normalized = period_service.normalize_period_input(naive)
    # Asia/Kuala_Lumpur is UTC+8.
    assert normalized.self_audit_start_date == datetime(2030, 3, 1, 0, 0, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_create_period_rejects_duplicates_case_insensitively(session_factory) -> None:
    async with session_factory() as session:
        await period_service.create_period(session, period_input("Session-2030", START))
        await session.commit()

        with pytest.raises(PeriodConflictError):
            await period_service.create_period(
                session, period_input("session-2030", START + timedelta(days=200))
            )


@pytest.mark.asyncio
async def test_create_period_rejects_overlapping_windows(session_factory) -> None:
    async with session_factory() as session:
        await period_service.create_period(session, period_input("2030-A", START))
        await session.commit()

        with pytest.raises(PeriodConflictError):
            await period_service.create_period(session, period_input("2030-B", START + timedelta(days=15)))


@pytest.mark.asyncio
async def test_update_period_moves_window_and_ignores_itself(session_factory) -> None:
    async with session_factory() as session:
        await period_service.create_period(session, period_input("2030-A", START))
        await session.commit()

        moved = period_input("2030-A", START + timedelta(days=5))
        period = await period_service.update_period(session, "2030-A", moved)
        await session.commit()

    assert period.year_session == "2030-A"
    async with session_factory() as session:
        stored = await periods_repo.get_period(session, "2030-A")
    assert stored.self_audit_start_date.replace(tzinfo=timezone.utc) == START + timedelta(days=5)


@pytest.mark.asyncio
async def test_update_and_delete_missing_period(session_factory) -> None:
    async with session_factory() as session:
        with pytest.raises(PeriodNotFoundError):
            await period_service.update_period(session, "missing", period_input("missing", START))
        with pytest.raises(PeriodNotFoundError):
            await period_service.delete_period(session, "missing")


@pytest.mark.asyncio
async def test_delete_period_returns_snapshot(session_factory) -> None:
    async with session_factory() as session:
        await period_service.create_period(session, period_input("2030-A", START))
        await session.commit()

        snapshot = await period_service.delete_period(session, "2030-A")
        await session.commit()

    assert snapshot.year_session == "2030-A"
    assert snapshot.self_audit_start_date == START
    async with session_factory() as session:
        assert await periods_repo.get_period(session, "2030-A") is None
