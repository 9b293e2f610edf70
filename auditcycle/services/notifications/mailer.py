from __future__ import annotations

from collections.abc import Sequence
from email.message import EmailMessage
import logging

import aiosmtplib
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from auditcycle.core.config import Settings, get_settings
from auditcycle.core.errors import NotificationError
from auditcycle.domain.models import User
from auditcycle.services.notifications.templates import BroadcastMessage


logger = logging.getLogger(__name__)


class BroadcastMailer:
    """Send one plain-text e-mail to every active user, recipients in Bcc."""

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or get_settings()

    @property
    def enabled(self) -> bool:
        return bool(self._settings.notifications_enabled)

    def build_message(self, message: BroadcastMessage, recipients: Sequence[str]) -> EmailMessage:
        email = EmailMessage()
        email["From"] = self._settings.notification_from
        email["Subject"] = message.subject
        # aiosmtplib strips Bcc before transmission, so recipients never see each other.
        email["Bcc"] = ", ".join(recipients)
        email.set_content(message.body)
        return email

    async def send(self, message: BroadcastMessage, recipients: Sequence[str]) -> bool:
        if not self.enabled:
            logger.info("broadcast_skipped reason=disabled subject=%s", message.subject)
            return False
        if not recipients:
            logger.info("broadcast_skipped reason=no_recipients subject=%s", message.subject)
            return False
        settings = self._settings
        try:
            await aiosmtplib.send(
                self.build_message(message, recipients),
                recipients=list(recipients),
                hostname=settings.smtp_host,
                port=settings.smtp_port,
                username=settings.smtp_username,
                password=settings.smtp_password,
                use_tls=settings.smtp_use_tls,
                start_tls=settings.smtp_start_tls and not settings.smtp_use_tls,
                timeout=settings.smtp_timeout_s,
            )
        except aiosmtplib.SMTPException as exc:
            raise NotificationError(f"SMTP delivery failed: {exc}") from exc
        logger.info("broadcast_sent subject=%s recipients=%d", message.subject, len(recipients))
        return True


async def list_broadcast_recipients(session: AsyncSession) -> list[str]:
    result = await session.execute(
        select(User.email).where(User.is_active.is_(True)).order_by(User.id)
    )
    return [email for email in result.scalars().all() if email]


async def send_quietly(
    mailer: BroadcastMailer,
    message: BroadcastMessage,
    recipients: Sequence[str],
) -> bool:
    # Runs detached from the request (BackgroundTasks), so failures are logged, never raised.
    try:
        return await mailer.send(message, recipients)
    except (NotificationError, OSError) as exc:
        logger.warning("broadcast_failed subject=%s", message.subject, exc_info=exc)
        return False


async def send_broadcast_best_effort(
    session: AsyncSession,
    mailer: BroadcastMailer,
    message: BroadcastMessage,
) -> bool:
    # Notifications are fire-and-forget for callers: log and swallow delivery or lookup failures.
    try:
        recipients = await list_broadcast_recipients(session)
    except SQLAlchemyError as exc:
        logger.warning("broadcast_recipients_failed subject=%s", message.subject, exc_info=exc)
        return False
    return await send_quietly(mailer, message, recipients)
