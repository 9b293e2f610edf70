from __future__ import annotations

from typing import AsyncGenerator

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from auditcycle.persistence.db import get_session
from auditcycle.services.notifications import BroadcastMailer
from auditcycle.services.sessions import SessionScheduler


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    # One AsyncSession per request; context manager ensures close on success/error.
    async with get_session() as session:
        yield session


def get_scheduler(request: Request) -> SessionScheduler | None:
    # The scheduler is owned by the app; None when disabled (scripts, some tests).
    return getattr(request.app.state, "scheduler", None)


def get_mailer(request: Request) -> BroadcastMailer:
    mailer = getattr(request.app.state, "mailer", None)
    if mailer is None:
        mailer = BroadcastMailer()
        request.app.state.mailer = mailer
    return mailer
