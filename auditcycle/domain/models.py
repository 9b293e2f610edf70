from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


FORM_TYPE_ENABLER = 0
FORM_TYPE_RESULT = 1

STATUS_ACTIVE = 1
STATUS_RETIRED = 0


class Base(DeclarativeBase):
    pass


class Period(Base):
    __tablename__ = "periods"
    __table_args__ = (
        Index("ix_periods_self_audit_start_date", "self_audit_start_date"),
    )

    # Human-chosen session key such as "2025/2026"; uniqueness is case-insensitive at the API layer.
    year_session: Mapped[str] = mapped_column(String, primary_key=True)
    year: Mapped[int] = mapped_column(Integer)
    audit_start_date: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    audit_end_date: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    # The scheduler keys its session-start trigger off this instant.
    self_audit_start_date: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    self_audit_end_date: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    enabler_weightage: Mapped[int] = mapped_column(Integer)
    result_weightage: Mapped[int] = mapped_column(Integer)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class Form(Base):
    __tablename__ = "forms"
    __table_args__ = (
        Index("ix_forms_form_status", "form_status"),
    )

    # Surrogate key; every clone produces a new generation with a new id.
    form_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String)
    form_definition: Mapped[str | None] = mapped_column(Text, nullable=True)
    form_type: Mapped[int] = mapped_column(Integer)
    form_number: Mapped[int] = mapped_column(Integer)
    form_status: Mapped[int] = mapped_column(Integer, default=STATUS_ACTIVE, nullable=False)
    min_scale: Mapped[int] = mapped_column(Integer, default=0)
    max_scale: Mapped[int] = mapped_column(Integer, default=0)
    weightage: Mapped[int] = mapped_column(Integer, default=0)
    flag: Mapped[int] = mapped_column(Integer, default=0)
    non_academic_weightage: Mapped[int] = mapped_column(Integer, default=0)
    form_updated_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class Criterion(Base):
    __tablename__ = "criteria"

    criterion_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    form_id: Mapped[int] = mapped_column(Integer, ForeignKey("forms.form_id"), index=True)
    description: Mapped[str] = mapped_column(Text)
    criterion_number: Mapped[int] = mapped_column(Integer)
    criterion_status: Mapped[int] = mapped_column(Integer, default=STATUS_ACTIVE, nullable=False)


class SubCriterion(Base):
    __tablename__ = "sub_criteria"

    sub_criterion_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    criterion_id: Mapped[int] = mapped_column(Integer, ForeignKey("criteria.criterion_id"), index=True)
    description: Mapped[str] = mapped_column(Text)
    sub_criterion_number: Mapped[int] = mapped_column(Integer)
    sub_criterion_status: Mapped[int] = mapped_column(Integer, default=STATUS_ACTIVE, nullable=False)


class Question(Base):
    __tablename__ = "questions"

    question_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    sub_criterion_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("sub_criteria.sub_criterion_id"), index=True
    )
    description: Mapped[str] = mapped_column(Text)
    question_number: Mapped[int] = mapped_column(Integer)
    question_status: Mapped[int] = mapped_column(Integer, default=STATUS_ACTIVE, nullable=False)
    example_evidence: Mapped[str | None] = mapped_column(Text, nullable=True)


class ResultQuestion(Base):
    __tablename__ = "result_questions"

    result_question_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    form_id: Mapped[int] = mapped_column(Integer, ForeignKey("forms.form_id"), index=True)
    title: Mapped[str] = mapped_column(String)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    ref_code: Mapped[str | None] = mapped_column(String, nullable=True)
    result_question_number: Mapped[int] = mapped_column(Integer)
    result_question_status: Mapped[int] = mapped_column(Integer, default=STATUS_ACTIVE, nullable=False)


class FormPeriodSet(Base):
    __tablename__ = "form_period_sets"
    __table_args__ = (
        # The pair constraint is the clone gate's idempotency signal under concurrent triggers.
        UniqueConstraint("form_id", "year_session", name="uq_form_period_sets_form_session"),
        Index("ix_form_period_sets_year_session", "year_session"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    # No FK to forms/periods: the ledger outlives deleted periods and retired generations.
    form_id: Mapped[int] = mapped_column(Integer)
    year_session: Mapped[str] = mapped_column(String)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class ReminderNotice(Base):
    __tablename__ = "reminder_notices"
    __table_args__ = (
        # Keyed on the deadline too, so a moved deadline earns a fresh reminder.
        UniqueConstraint("year_session", "kind", "deadline", name="uq_reminder_notices_session_kind_deadline"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    year_session: Mapped[str] = mapped_column(String)
    # "self_audit_end" or "audit_end".
    kind: Mapped[str] = mapped_column(String)
    deadline: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    sent_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String, unique=True)
    username: Mapped[str | None] = mapped_column(String, nullable=True)
    # Disabled users stay on record but receive no broadcasts.
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
