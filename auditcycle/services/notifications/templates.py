from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


_FOOTER = (
    "\n\n\n(This is a system generated email. You are receiving this email because you have been "
    "added into the quality assessment system with specific role(s) assigned. System link : {url})"
)


@dataclass(frozen=True, slots=True)
class BroadcastMessage:
    subject: str
    body: str


def _format_window(start: datetime, end: datetime) -> str:
    return f"{start.strftime('%Y-%m-%d %H:%M')} ~ {end.strftime('%Y-%m-%d %H:%M')}"


def session_created(
    *,
    year_session: str,
    self_audit_start: datetime,
    self_audit_end: datetime,
    audit_start: datetime,
    audit_end: datetime,
    system_url: str,
) -> BroadcastMessage:
    body = (
        "Dear users,\n\nA new session is created with the following details :\n\n"
        f"    Session Name : {year_session}\n"
        f"    Self-assessment Period : {_format_window(self_audit_start, self_audit_end)}\n"
        f"    Assessment Period : {_format_window(audit_start, audit_end)}\n\n"
        "Your role(s) may change from time to time with notification email being sent to you. "
        "Please conduct your duties within the period stated."
    )
    return BroadcastMessage(
        subject="Notification - A New Session is Created",
        body=body + _FOOTER.format(url=system_url),
    )


def session_updated(
    *,
    year_session: str,
    self_audit_start: datetime,
    self_audit_end: datetime,
    audit_start: datetime,
    audit_end: datetime,
    system_url: str,
) -> BroadcastMessage:
    body = (
        "Dear users,\n\nThe following session is amended. The updated details are as follows :\n\n"
        f"    Session Name : {year_session}\n"
        f"    Self-assessment Period : {_format_window(self_audit_start, self_audit_end)}\n"
        f"    Assessment Period : {_format_window(audit_start, audit_end)}\n"
    )
    return BroadcastMessage(
        subject="Notification - A Session has been Updated",
        body=body + _FOOTER.format(url=system_url),
    )


def self_assessment_expiring(
    *, year_session: str, self_audit_start: datetime, self_audit_end: datetime, system_url: str
) -> BroadcastMessage:
    body = (
        "Dear users,\n\nThe self-assessment period of the following session is closing in less than 5 days :\n\n"
        f"    Session Name : {year_session}\n"
        f"    Self-assessment Period : {_format_window(self_audit_start, self_audit_end)}\n\n"
        "For PTj, please finalize & submit the enablers/results, including the rejected ones, if any. "
        "No changes are allowed once the self-assessment period closes.\n"
        "For Assessors, please reject any enablers/results that need rework as soon as possible."
    )
    return BroadcastMessage(
        subject="Reminder - Self-Assessment Period is Expiring in 5 Days",
        body=body + _FOOTER.format(url=system_url),
    )


def assessment_expiring(
    *, year_session: str, audit_start: datetime, audit_end: datetime, system_url: str
) -> BroadcastMessage:
    body = (
        "Dear users,\n\nThe assessment period of the following session is closing in less than 5 days :\n\n"
        f"    Session Name : {year_session}\n"
        f"    Assessment Period : {_format_window(audit_start, audit_end)}\n\n"
        "For Assessors, please finalize your assessment(s) and submit them before the closing date.\n"
        "For PTj, the finalized assessment results are available once the period closes."
    )
    return BroadcastMessage(
        subject="Reminder - Assessment Period is Expiring in 5 Days",
        body=body + _FOOTER.format(url=system_url),
    )
