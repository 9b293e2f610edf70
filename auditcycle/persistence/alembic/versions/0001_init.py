"""init

Revision ID: 0001_init
Revises: 
Create Date: 2026-10-19 09:00:00.000000
"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "periods",
        sa.Column("year_session", sa.String(), primary_key=True),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("audit_start_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("audit_end_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("self_audit_start_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("self_audit_end_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("enabler_weightage", sa.Integer(), nullable=False),
        sa.Column("result_weightage", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    # The scheduler queue is ordered by session start.
    op.create_index("ix_periods_self_audit_start_date", "periods", ["self_audit_start_date"])

    op.create_table(
        "forms",
        sa.Column("form_id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("form_definition", sa.Text(), nullable=True),
        sa.Column("form_type", sa.Integer(), nullable=False),
        sa.Column("form_number", sa.Integer(), nullable=False),
        sa.Column("form_status", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("min_scale", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("max_scale", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("weightage", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("flag", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("non_academic_weightage", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("form_updated_date", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_forms_form_status", "forms", ["form_status"])

    op.create_table(
        "criteria",
        sa.Column("criterion_id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("form_id", sa.Integer(), sa.ForeignKey("forms.form_id"), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("criterion_number", sa.Integer(), nullable=False),
        sa.Column("criterion_status", sa.Integer(), nullable=False, server_default="1"),
    )
    op.create_index("ix_criteria_form_id", "criteria", ["form_id"])

    op.create_table(
        "sub_criteria",
        sa.Column("sub_criterion_id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("criterion_id", sa.Integer(), sa.ForeignKey("criteria.criterion_id"), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("sub_criterion_number", sa.Integer(), nullable=False),
        sa.Column("sub_criterion_status", sa.Integer(), nullable=False, server_default="1"),
    )
    op.create_index("ix_sub_criteria_criterion_id", "sub_criteria", ["criterion_id"])

    op.create_table(
        "questions",
        sa.Column("question_id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "sub_criterion_id",
            sa.Integer(),
            sa.ForeignKey("sub_criteria.sub_criterion_id"),
            nullable=False,
        ),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("question_number", sa.Integer(), nullable=False),
        sa.Column("question_status", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("example_evidence", sa.Text(), nullable=True),
    )
    op.create_index("ix_questions_sub_criterion_id", "questions", ["sub_criterion_id"])

    op.create_table(
        "result_questions",
        sa.Column("result_question_id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("form_id", sa.Integer(), sa.ForeignKey("forms.form_id"), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("ref_code", sa.String(), nullable=True),
        sa.Column("result_question_number", sa.Integer(), nullable=False),
        sa.Column("result_question_status", sa.Integer(), nullable=False, server_default="1"),
    )
    op.create_index("ix_result_questions_form_id", "result_questions", ["form_id"])

    op.create_table(
        "form_period_sets",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("form_id", sa.Integer(), nullable=False),
        sa.Column("year_session", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        # Concurrent session-start gates collide here instead of cloning twice.
        sa.UniqueConstraint("form_id", "year_session", name="uq_form_period_sets_form_session"),
    )
    op.create_index("ix_form_period_sets_year_session", "form_period_sets", ["year_session"])

    op.create_table(
        "reminder_notices",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("year_session", sa.String(), nullable=False),
        sa.Column("kind", sa.String(), nullable=False),
        sa.Column("deadline", sa.DateTime(timezone=True), nullable=False),
        sa.Column("sent_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint(
            "year_session", "kind", "deadline", name="uq_reminder_notices_session_kind_deadline"
        ),
    )

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("email", sa.String(), nullable=False, unique=True),
        sa.Column("username", sa.String(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )


def downgrade() -> None:
    op.drop_table("users")
    op.drop_table("reminder_notices")
    op.drop_index("ix_form_period_sets_year_session", table_name="form_period_sets")
    op.drop_table("form_period_sets")
    op.drop_index("ix_result_questions_form_id", table_name="result_questions")
    op.drop_table("result_questions")
    op.drop_index("ix_questions_sub_criterion_id", table_name="questions")
    op.drop_table("questions")
    op.drop_index("ix_sub_criteria_criterion_id", table_name="sub_criteria")
    op.drop_table("sub_criteria")
    op.drop_index("ix_criteria_form_id", table_name="criteria")
    op.drop_table("criteria")
    op.drop_index("ix_forms_form_status", table_name="forms")
    op.drop_table("forms")
    op.drop_index("ix_periods_self_audit_start_date", table_name="periods")
    op.drop_table("periods")
