from __future__ import annotations


class AuditCycleError(Exception):
    """Base error for auditcycle."""


class PeriodValidationError(AuditCycleError):
    """Period payload failed domain validation."""


class PeriodConflictError(AuditCycleError):
    """Period clashes with an existing period (duplicate id or overlapping window)."""


class PeriodNotFoundError(AuditCycleError):
    """Requested year session does not exist."""


class CloneError(AuditCycleError):
    """Form generation clone failed and was rolled back."""

    def __init__(self, year_session: str, message: str) -> None:
        super().__init__(message)
        self.year_session = year_session


class PartialCloneError(AuditCycleError):
    """A form tree was only partly copied; the surrounding clone must be rolled back."""


class NotificationError(AuditCycleError):
    """Broadcast e-mail delivery failure."""
