from auditcycle.services.notifications.mailer import (
    BroadcastMailer,
    list_broadcast_recipients,
    send_broadcast_best_effort,
    send_quietly,
)
from auditcycle.services.notifications.templates import (
    BroadcastMessage,
    assessment_expiring,
    self_assessment_expiring,
    session_created,
    session_updated,
)

__all__ = [
    "BroadcastMailer",
    "BroadcastMessage",
    "assessment_expiring",
    "list_broadcast_recipients",
    "self_assessment_expiring",
    "send_broadcast_best_effort",
    "send_quietly",
    "session_created",
    "session_updated",
]
