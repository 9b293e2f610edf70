"""Form generation cloning for session starts.

When a new year session begins, every active form is copied into a fresh
generation (new ids, densely renumbered content) and the previous generation
is retired. The FormPeriodSet ledger records which pre-clone form ids were in
force going into the session and doubles as the idempotency gate.
"""
from __future__ import annotations

from collections import defaultdict
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import Enum
import logging
from typing import Any

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from auditcycle.core.errors import CloneError, PartialCloneError
from auditcycle.domain.models import FORM_TYPE_ENABLER, FORM_TYPE_RESULT, Form, STATUS_ACTIVE
from auditcycle.persistence.repos import forms as forms_repo


logger = logging.getLogger(__name__)

FormPeriodSetRow = tuple[int, str]
SessionFactory = Callable[[], Any]

# Form attributes carried verbatim into the new generation.
_FORM_COPY_FIELDS = (
    "title",
    "form_definition",
    "form_type",
    "form_number",
    "form_status",
    "min_scale",
    "max_scale",
    "weightage",
    "flag",
    "non_academic_weightage",
)


class CloneOutcome(str, Enum):
    CLONED = "cloned"
    LINKED = "linked"
    ALREADY_PROCESSED = "already_processed"


@dataclass(frozen=True, slots=True)
class ClonedForm:
    source_form_id: int
    new_form_id: int
    form_type: int
    criteria: int = 0
    sub_criteria: int = 0
    questions: int = 0
    result_questions: int = 0


async def _clone_enabler_content(session: AsyncSession, source_form_id: int, new_form_id: int) -> ClonedForm:
    # Read the whole active tree first, then write it back level by level.
    criteria = await forms_repo.list_criteria(session, source_form_id, status=STATUS_ACTIVE)
    sub_criteria = await forms_repo.list_sub_criteria(
        session, [row.criterion_id for row in criteria], status=STATUS_ACTIVE
    )
    questions = await forms_repo.list_questions(
        session, [row.sub_criterion_id for row in sub_criteria], status=STATUS_ACTIVE
    )

    subs_by_criterion: dict[int, list] = defaultdict(list)
    for row in sub_criteria:
        subs_by_criterion[row.criterion_id].append(row)
    questions_by_sub: dict[int, list] = defaultdict(list)
    for row in questions:
        questions_by_sub[row.sub_criterion_id].append(row)

    question_rows: list[dict[str, Any]] = []
    inserted_sub_criteria = 0
    # Numbering restarts at 1 under every parent, closing gaps left by deactivated rows.
    for criterion_number, criterion in enumerate(criteria, start=1):
        new_criterion_id = await forms_repo.insert_criterion(
            session,
            form_id=new_form_id,
            description=criterion.description,
            criterion_number=criterion_number,
            criterion_status=criterion.criterion_status,
        )
        for sub_number, sub in enumerate(subs_by_criterion.get(criterion.criterion_id, []), start=1):
            new_sub_id = await forms_repo.insert_sub_criterion(
                session,
                criterion_id=new_criterion_id,
                description=sub.description,
                sub_criterion_number=sub_number,
                sub_criterion_status=sub.sub_criterion_status,
            )
            if new_sub_id is None:
                continue
            inserted_sub_criteria += 1
            for question_number, question in enumerate(questions_by_sub.get(sub.sub_criterion_id, []), start=1):
                question_rows.append(
                    {
                        "sub_criterion_id": new_sub_id,
                        "description": question.description,
                        "question_number": question_number,
                        "question_status": question.question_status,
                        "example_evidence": question.example_evidence,
                    }
                )

    # Only write questions when every parent landed; a partial tree must not get orphans.
    if inserted_sub_criteria != len(sub_criteria):
        raise PartialCloneError(
            f"form {source_form_id}: inserted {inserted_sub_criteria} of {len(sub_criteria)} sub-criteria",
        )
    await forms_repo.insert_questions(session, question_rows)
    return ClonedForm(
        source_form_id=source_form_id,
        new_form_id=new_form_id,
        form_type=FORM_TYPE_ENABLER,
        criteria=len(criteria),
        sub_criteria=inserted_sub_criteria,
        questions=len(question_rows),
    )


async def _clone_result_content(session: AsyncSession, source_form_id: int, new_form_id: int) -> ClonedForm:
    results = await forms_repo.list_result_questions(session, source_form_id, status=STATUS_ACTIVE)
    rows = [
        {
            "form_id": new_form_id,
            "title": row.title,
            "description": row.description,
            "ref_code": row.ref_code,
            "result_question_number": number,
            "result_question_status": row.result_question_status,
        }
        for number, row in enumerate(results, start=1)
    ]
    await forms_repo.insert_result_questions(session, rows)
    return ClonedForm(
        source_form_id=source_form_id,
        new_form_id=new_form_id,
        form_type=FORM_TYPE_RESULT,
        result_questions=len(rows),
    )


async def clone_form(session: AsyncSession, form: Form) -> ClonedForm:
    """Copy one form and its active content into a new generation, then retire it."""
    new_form_id = await forms_repo.insert_form(
        session, **{field: getattr(form, field) for field in _FORM_COPY_FIELDS}
    )
    if form.form_type == FORM_TYPE_ENABLER:
        cloned = await _clone_enabler_content(session, form.form_id, new_form_id)
    elif form.form_type == FORM_TYPE_RESULT:
        cloned = await _clone_result_content(session, form.form_id, new_form_id)
    else:
        logger.warning("form_clone_unknown_type form_id=%s form_type=%s", form.form_id, form.form_type)
        cloned = ClonedForm(source_form_id=form.form_id, new_form_id=new_form_id, form_type=form.form_type)
    # Retire last: the old generation stays authoritative until the new content exists.
    await forms_repo.deactivate_form(session, form.form_id)
    return cloned


async def clone_form_and_content(session: AsyncSession) -> list[ClonedForm]:
    """Clone every active form generation inside the caller's transaction.

    Nothing is committed here; the caller commits the whole new generation or
    rolls all of it back, so a failed clone never leaves two active generations.
    """
    forms = await forms_repo.list_active_forms(session)
    cloned: list[ClonedForm] = []
    for form in forms:
        cloned.append(await clone_form(session, form))
    logger.info("form_clone_completed forms=%d", len(cloned))
    return cloned


async def extract_cloned_form(session: AsyncSession, year_session: str) -> list[FormPeriodSetRow]:
    # Must run before cloning: it captures the pre-clone ids that were in force for this session.
    forms = await forms_repo.list_active_forms(session)
    return [(form.form_id, year_session) for form in forms]


async def check_and_clone(
    session: AsyncSession,
    year_session: str,
    form_period_set: Sequence[FormPeriodSetRow],
    should_clone: bool = False,
) -> CloneOutcome:
    """Clone and link forms for ``year_session`` exactly once.

    Existing FormPeriodSet rows for the session mean it was already processed.
    Concurrent gates are resolved by the unique (form_id, year_session)
    constraint: the loser's whole transaction, clone included, is rolled back.
    """
    if await forms_repo.has_form_period_set_rows(session, year_session):
        logger.info("session_clone_skipped year_session=%s reason=already_processed", year_session)
        return CloneOutcome.ALREADY_PROCESSED
    try:
        cloned: list[ClonedForm] = []
        if should_clone:
            cloned = await clone_form_and_content(session)
        await forms_repo.insert_form_period_set_rows(session, form_period_set)
        await session.commit()
    except IntegrityError:
        await session.rollback()
        logger.warning("session_clone_skipped year_session=%s reason=concurrent_gate", year_session)
        return CloneOutcome.ALREADY_PROCESSED
    except PartialCloneError as exc:
        await session.rollback()
        logger.error("session_clone_failed year_session=%s reason=%s", year_session, exc)
        raise CloneError(year_session, str(exc)) from exc
    except SQLAlchemyError as exc:
        await session.rollback()
        logger.exception("session_clone_failed year_session=%s", year_session)
        raise CloneError(year_session, "Database error while cloning forms") from exc
    logger.info(
        "session_clone_committed year_session=%s cloned=%d linked=%d",
        year_session,
        len(cloned),
        len(form_period_set),
    )
    return CloneOutcome.CLONED if should_clone else CloneOutcome.LINKED


async def run_session_start_clone(session_factory: SessionFactory, year_session: str) -> CloneOutcome:
    # Snapshot and gate share one transaction so the snapshot cannot go stale before the clone.
    async with session_factory() as session:
        form_period_set = await extract_cloned_form(session, year_session)
        return await check_and_clone(session, year_session, form_period_set, should_clone=True)
