from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta

from auditcycle.services.notifications import BroadcastMessage
from auditcycle.services.sessions.scheduler import TimerCallback


class FakeClock:
    def __init__(self, now: datetime) -> None:
        self._now = now

    def now(self) -> datetime:
        return self._now

    def set(self, now: datetime) -> None:
        self._now = now

    def advance(self, delta: timedelta) -> None:
        self._now = self._now + delta


@dataclass
class FakeTimerHandle:
    when: datetime
    callback: TimerCallback
    _cancelled: bool = False

    def cancel(self) -> None:
        self._cancelled = True

    def cancelled(self) -> bool:
        return self._cancelled

    async def fire(self) -> None:
        # A fired one-shot timer is no longer pending, same as asyncio.TimerHandle.
        self._cancelled = True
        await self.callback()


class FakeTimerFactory:
    """Record armed timers instead of scheduling them; tests fire them by hand."""

    def __init__(self) -> None:
        self.handles: list[FakeTimerHandle] = []
        self.shut_down = False

    def call_at(self, when: datetime, callback: TimerCallback) -> FakeTimerHandle:
        handle = FakeTimerHandle(when=when, callback=callback)
        self.handles.append(handle)
        return handle

    def live(self) -> list[FakeTimerHandle]:
        return [handle for handle in self.handles if not handle.cancelled()]

    async def shutdown(self) -> None:
        self.shut_down = True


@dataclass
class RecordingMailer:
    sent: list[tuple[BroadcastMessage, list[str]]] = field(default_factory=list)

    async def send(self, message: BroadcastMessage, recipients) -> bool:  # noqa: ANN001
        self.sent.append((message, list(recipients)))
        return True
