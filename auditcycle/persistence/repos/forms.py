from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Any

from sqlalchemy import insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from auditcycle.domain.models import (
    STATUS_ACTIVE,
    STATUS_RETIRED,
    Criterion,
    Form,
    FormPeriodSet,
    Question,
    ResultQuestion,
    SubCriterion,
)


async def list_active_forms(session: AsyncSession) -> list[Form]:
    result = await session.execute(
        select(Form).where(Form.form_status == STATUS_ACTIVE).order_by(Form.form_id)
    )
    return list(result.scalars().all())


async def get_form(session: AsyncSession, form_id: int) -> Form | None:
    result = await session.execute(select(Form).where(Form.form_id == form_id))
    return result.scalar_one_or_none()


async def insert_form(session: AsyncSession, **fields: Any) -> int:
    form = Form(**fields)
    session.add(form)
    # Flush to let the database assign the surrogate id without committing the generation.
    await session.flush()
    return form.form_id


async def deactivate_form(session: AsyncSession, form_id: int) -> bool:
    result = await session.execute(
        update(Form).where(Form.form_id == form_id).values(form_status=STATUS_RETIRED)
    )
    return bool(result.rowcount)


async def list_criteria(
    session: AsyncSession, form_id: int, *, status: int | None = STATUS_ACTIVE
) -> list[Criterion]:
    stmt = select(Criterion).where(Criterion.form_id == form_id)
    if status is not None:
        stmt = stmt.where(Criterion.criterion_status == status)
    result = await session.execute(stmt.order_by(Criterion.criterion_number, Criterion.criterion_id))
    return list(result.scalars().all())


async def list_sub_criteria(
    session: AsyncSession, criterion_ids: Sequence[int], *, status: int | None = STATUS_ACTIVE
) -> list[SubCriterion]:
    # One round trip per tree level instead of one per parent row.
    if not criterion_ids:
        return []
    stmt = select(SubCriterion).where(SubCriterion.criterion_id.in_(list(criterion_ids)))
    if status is not None:
        stmt = stmt.where(SubCriterion.sub_criterion_status == status)
    result = await session.execute(
        stmt.order_by(SubCriterion.sub_criterion_number, SubCriterion.sub_criterion_id)
    )
    return list(result.scalars().all())


async def list_questions(
    session: AsyncSession, sub_criterion_ids: Sequence[int], *, status: int | None = STATUS_ACTIVE
) -> list[Question]:
    if not sub_criterion_ids:
        return []
    stmt = select(Question).where(Question.sub_criterion_id.in_(list(sub_criterion_ids)))
    if status is not None:
        stmt = stmt.where(Question.question_status == status)
    result = await session.execute(stmt.order_by(Question.question_number, Question.question_id))
    return list(result.scalars().all())


async def list_result_questions(
    session: AsyncSession, form_id: int, *, status: int | None = STATUS_ACTIVE
) -> list[ResultQuestion]:
    stmt = select(ResultQuestion).where(ResultQuestion.form_id == form_id)
    if status is not None:
        stmt = stmt.where(ResultQuestion.result_question_status == status)
    result = await session.execute(
        stmt.order_by(ResultQuestion.result_question_number, ResultQuestion.result_question_id)
    )
    return list(result.scalars().all())


async def insert_criterion(session: AsyncSession, **fields: Any) -> int:
    row = Criterion(**fields)
    session.add(row)
    await session.flush()
    return row.criterion_id


async def insert_sub_criterion(session: AsyncSession, **fields: Any) -> int:
    row = SubCriterion(**fields)
    session.add(row)
    await session.flush()
    return row.sub_criterion_id


async def insert_questions(session: AsyncSession, rows: Sequence[dict[str, Any]]) -> int:
    if not rows:
        return 0
    await session.execute(insert(Question), list(rows))
    return len(rows)


async def insert_result_questions(session: AsyncSession, rows: Sequence[dict[str, Any]]) -> int:
    if not rows:
        return 0
    await session.execute(insert(ResultQuestion), list(rows))
    return len(rows)


async def has_form_period_set_rows(session: AsyncSession, year_session: str) -> bool:
    result = await session.execute(
        select(FormPeriodSet.id).where(FormPeriodSet.year_session == year_session).limit(1)
    )
    return result.scalar_one_or_none() is not None


async def list_form_period_set(session: AsyncSession, year_session: str) -> list[FormPeriodSet]:
    result = await session.execute(
        select(FormPeriodSet)
        .where(FormPeriodSet.year_session == year_session)
        .order_by(FormPeriodSet.form_id)
    )
    return list(result.scalars().all())


async def insert_form_period_set_rows(
    session: AsyncSession, rows: Iterable[tuple[int, str]]
) -> int:
    payload = [{"form_id": form_id, "year_session": year_session} for form_id, year_session in rows]
    if not payload:
        return 0
    await session.execute(insert(FormPeriodSet), payload)
    return len(payload)
