from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from auditcycle.apps.api.deps import get_scheduler
from auditcycle.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from auditcycle.apps.api.response import SuccessEnvelope, success_response
from auditcycle.services.sessions import SessionScheduler


router = APIRouter(prefix="/ops", tags=["ops"], responses=DEFAULT_ERROR_RESPONSES)


class SchedulerStatusResponse(BaseModel):
    enabled: bool
    state: str
    next_trigger_at: str | None
    queue: list[str]
    daily_jobs_armed: bool
    last_outcome: str | None


@router.get(
    "/scheduler",
    response_model=SuccessEnvelope[SchedulerStatusResponse] | SchedulerStatusResponse,
)
async def scheduler_status(
    request: Request,
    scheduler: SessionScheduler | None = Depends(get_scheduler),
) -> dict:
    # Expose the in-memory timer state so operators can verify the next session trigger.
    if scheduler is None:
        payload = SchedulerStatusResponse(
            enabled=False,
            state="idle",
            next_trigger_at=None,
            queue=[],
            daily_jobs_armed=False,
            last_outcome=None,
        )
    else:
        payload = SchedulerStatusResponse(enabled=True, **scheduler.snapshot())
    return success_response(request=request, data=payload)
