from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from httpx import ASGITransport, AsyncClient

from auditcycle.apps.api.deps import get_db
from auditcycle.apps.api.main import create_app
from auditcycle.services.sessions import SchedulerState, SessionScheduler
from auditcycle.tests.utils.fakes import RecordingMailer
from auditcycle.tests.utils.seed import seed_enabler_form, seed_period, seed_user


START_A = datetime(2030, 3, 1, tzinfo=timezone.utc)


def _payload(year_session: str, start: datetime, **overrides) -> dict:
    payload = {
        "year_session": year_session,
        "year": start.year,
        "self_audit_start_date": start.isoformat(),
        "self_audit_end_date": (start + timedelta(days=10)).isoformat(),
        "audit_start_date": (start + timedelta(days=11)).isoformat(),
        "audit_end_date": (start + timedelta(days=30)).isoformat(),
        "enabler_weightage": 60,
        "result_weightage": 40,
    }
    payload.update(overrides)
    return payload


def _app(session_factory, scheduler: SessionScheduler | None = None):
    app = create_app()

    async def _override_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = _override_db
    # ASGITransport skips the lifespan, so wire the scheduler by hand.
    app.state.scheduler = scheduler
    return app


@pytest.mark.asyncio
async def test_period_crud_resyncs_scheduler(session_factory, clock, timers) -> None:
    scheduler = SessionScheduler(session_factory, clock=clock, timer_factory=timers)
    app = _app(session_factory, scheduler)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.post("/v1/periods", json=_payload("2030-A", START_A))
        assert response.status_code == 200
        body = response.json()
        assert body["data"]["year_session"] == "2030-A"
        assert body["meta"]["api_version"] == "v1"
        assert scheduler.state is SchedulerState.ARMED
        assert scheduler.next_trigger_at == START_A

        moved = START_A - timedelta(days=20)
        payload = _payload("2030-A", moved)
        payload.pop("year_session")
        response = await client.patch("/v1/periods/2030-A", json=payload)
        assert response.status_code == 200
        assert scheduler.next_trigger_at == moved
        assert len(timers.live()) == 1

        response = await client.get("/v1/periods/2030-A")
        assert response.status_code == 200
        assert datetime.fromisoformat(response.json()["data"]["self_audit_start_date"]) == moved

        response = await client.delete("/v1/periods/2030-A")
        assert response.status_code == 200
        assert scheduler.state is SchedulerState.IDLE
        assert timers.live() == []

        response = await client.get("/v1/periods/2030-A")
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "NOT_FOUND"


@pytest.mark.asyncio
async def test_period_validation_and_conflicts(session_factory) -> None:
    app = _app(session_factory)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.post(
            "/v1/periods", json=_payload("2030-A", START_A, enabler_weightage=70)
        )
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "PERIOD_VALIDATION_ERROR"

        response = await client.post("/v1/periods", json=_payload("2030-A", START_A, unexpected=True))
        assert response.status_code == 422
        assert response.json()["error"]["code"] == "REQUEST_VALIDATION_ERROR"

        response = await client.post("/v1/periods", json=_payload("2030-A", START_A))
        assert response.status_code == 200

        response = await client.post(
            "/v1/periods", json=_payload("2030-a", START_A + timedelta(days=200))
        )
        assert response.status_code == 409
        assert response.json()["error"]["code"] == "PERIOD_CONFLICT"

        response = await client.post(
            "/v1/periods", json=_payload("2030-B", START_A + timedelta(days=5))
        )
        assert response.status_code == 409

        payload = _payload("missing", START_A + timedelta(days=300))
        payload.pop("year_session")
        response = await client.patch("/v1/periods/missing", json=payload)
        assert response.status_code == 404

        response = await client.delete("/v1/periods/missing")
        assert response.status_code == 404


@pytest.mark.asyncio
async def test_list_and_legacy_routes(session_factory) -> None:
    async with session_factory() as session:
        await seed_period(session, "2030-B", START_A + timedelta(days=180))
        await seed_period(session, "2030-A", START_A)
    app = _app(session_factory)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get("/v1/periods")
        assert response.status_code == 200
        assert [item["year_session"] for item in response.json()["data"]] == ["2030-A", "2030-B"]

        # Unversioned aliases return the bare payload.
        response = await client.get("/periods")
        assert response.status_code == 200
        assert [item["year_session"] for item in response.json()] == ["2030-A", "2030-B"]
        assert response.headers["X-Request-Id"]

        # Legacy error bodies keep the plain detail shape.
        response = await client.post("/periods", json=_payload("2030-a", START_A + timedelta(days=400)))
        assert response.status_code == 409
        assert response.json()["detail"]["code"] == "PERIOD_CONFLICT"
        response = await client.get("/periods/missing")
        assert response.status_code == 404
        assert response.json() == {"detail": {"code": "NOT_FOUND", "message": "missing"}}


@pytest.mark.asyncio
async def test_current_period_prefers_running_session(session_factory) -> None:
    now = datetime.now(timezone.utc)
    app = _app(session_factory)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get("/v1/periods/current")
        assert response.status_code == 200
        assert response.json()["data"] is None

        async with session_factory() as session:
            await seed_period(session, "upcoming", now + timedelta(days=60))
        response = await client.get("/v1/periods/current")
        assert response.json()["data"]["year_session"] == "upcoming"
        assert response.json()["data"]["is_current_period"] is False

        async with session_factory() as session:
            await seed_period(session, "running", now - timedelta(days=2))
        response = await client.get("/v1/periods/current")
        assert response.json()["data"]["year_session"] == "running"
        assert response.json()["data"]["is_current_period"] is True


@pytest.mark.asyncio
async def test_session_forms_and_scheduler_status(session_factory, clock, timers) -> None:
    async with session_factory() as session:
        form_id = await seed_enabler_form(session)
        await seed_period(session, "2030-A", START_A)
    scheduler = SessionScheduler(session_factory, clock=clock, timer_factory=timers)
    await scheduler.resync()
    app = _app(session_factory, scheduler)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get("/v1/ops/scheduler")
        assert response.status_code == 200
        status = response.json()["data"]
        assert status["enabled"] is True
        assert status["state"] == "armed"
        assert status["queue"] == ["2030-A"]
        assert datetime.fromisoformat(status["next_trigger_at"]) == START_A

        response = await client.get("/v1/periods/2030-A/forms")
        assert response.json()["data"] == {"year_session": "2030-A", "form_ids": []}

        clock.set(START_A)
        await timers.live()[0].fire()

        response = await client.get("/v1/periods/2030-A/forms")
        assert response.json()["data"]["form_ids"] == [form_id]
        response = await client.get("/v1/ops/scheduler")
        assert response.json()["data"]["last_outcome"] == "cloned"
        assert response.json()["data"]["state"] == "idle"


@pytest.mark.asyncio
async def test_health_and_disabled_scheduler_status(session_factory) -> None:
    app = _app(session_factory)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get("/v1/health")
        assert response.json()["data"] == {"status": "ok", "scheduler": "disabled"}
        response = await client.get("/v1/ops/scheduler")
        assert response.json()["data"]["enabled"] is False


@pytest.mark.asyncio
async def test_period_writes_broadcast_after_response(session_factory) -> None:
    async with session_factory() as session:
        await seed_user(session, "auditor@example.com")
        await seed_user(session, "retired@example.com", is_active=False)
    app = _app(session_factory)
    mailer = RecordingMailer()
    app.state.mailer = mailer

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.post("/v1/periods", json=_payload("2030-A", START_A))
        assert response.status_code == 200

        payload = _payload("2030-A", START_A - timedelta(days=5))
        payload.pop("year_session")
        response = await client.patch("/v1/periods/2030-A", json=payload)
        assert response.status_code == 200

        response = await client.delete("/v1/periods/2030-A")
        assert response.status_code == 200

    subjects = [message.subject for message, _ in mailer.sent]
    assert subjects == [
        "Notification - A New Session is Created",
        "Notification - A Session has been Updated",
    ]
    assert all(recipients == ["auditor@example.com"] for _, recipients in mailer.sent)


@pytest.mark.asyncio
async def test_health_reports_armed_scheduler(session_factory, clock, timers) -> None:
    async with session_factory() as session:
        await seed_period(session, "2030-A", START_A)
    scheduler = SessionScheduler(session_factory, clock=clock, timer_factory=timers)
    await scheduler.resync()
    app = _app(session_factory, scheduler)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get("/v1/health", headers={"X-Request-Id": "req-health"})
        assert response.json() == {
            "data": {"status": "ok", "scheduler": "armed"},
            "meta": {"request_id": "req-health", "api_version": "v1"},
        }
