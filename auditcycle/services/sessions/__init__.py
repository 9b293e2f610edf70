from auditcycle.services.sessions.startup import bootstrap, check_startup_ongoing_session
from auditcycle.services.sessions.cloning import (
    ClonedForm,
    CloneOutcome,
    check_and_clone,
    clone_form_and_content,
    extract_cloned_form,
    run_session_start_clone,
)
from auditcycle.services.sessions.resolver import (
    PeriodSnapshot,
    get_current_period,
    get_latest_upcoming_period,
    get_upcoming_periods_queue,
    is_new_session_start,
)
from auditcycle.services.sessions.scheduler import (
    AsyncioTimerFactory,
    SchedulerState,
    SessionScheduler,
    TimerFactory,
    TimerHandle,
)

__all__ = [
    "AsyncioTimerFactory",
    "ClonedForm",
    "CloneOutcome",
    "PeriodSnapshot",
    "SchedulerState",
    "SessionScheduler",
    "TimerFactory",
    "TimerHandle",
    "bootstrap",
    "check_and_clone",
    "check_startup_ongoing_session",
    "clone_form_and_content",
    "extract_cloned_form",
    "get_current_period",
    "get_latest_upcoming_period",
    "get_upcoming_periods_queue",
    "is_new_session_start",
    "run_session_start_clone",
]
