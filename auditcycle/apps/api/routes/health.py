from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from auditcycle.apps.api.deps import get_scheduler
from auditcycle.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from auditcycle.apps.api.response import SuccessEnvelope, success_response
from auditcycle.services.sessions import SessionScheduler

router = APIRouter(tags=["health"], responses=DEFAULT_ERROR_RESPONSES)


class HealthResponse(BaseModel):
    status: Literal["ok"]
    scheduler: Literal["armed", "idle", "disabled"]


@router.get("/health", response_model=SuccessEnvelope[HealthResponse] | HealthResponse)
async def health(
    request: Request,
    scheduler: SessionScheduler | None = Depends(get_scheduler),
) -> dict:
    # Liveness only; an idle scheduler just means no future session is stored.
    scheduler_state = "disabled" if scheduler is None else scheduler.state.value
    payload = HealthResponse(status="ok", scheduler=scheduler_state)
    return success_response(request=request, data=payload)
