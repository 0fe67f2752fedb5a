# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Initial tenant schema for content, students and learner progress.

Creates:
- students
- modules, chapters, quiz_groups, quizzes
- student_module_progress, student_chapter_progress, student_quiz_attempts
- ai_feedback, learning_log_reviews

Revision ID: 001_progress_schema
Revises:
Create Date: 2025-09-01
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "001_progress_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSON = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    """Create all tenant tables and their indexes."""

    # =========================================================================
    # Students
    # =========================================================================
    op.create_table(
        "students",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("first_name", sa.String(100), nullable=False),
        sa.Column("last_name", sa.String(100), nullable=False),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("year", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("school_id", sa.String(36), nullable=False),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_students_school_id", "students", ["school_id"])

    # =========================================================================
    # Content
    # =========================================================================
    op.create_table(
        "modules",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("tags", JSON, nullable=False),
        sa.Column("year", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("sequence", sa.Integer(), nullable=True),
        sa.Column("published", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index(
        "uq_modules_year_sequence",
        "modules",
        ["year", "sequence"],
        unique=True,
        postgresql_where=sa.text("deleted_at IS NULL"),
        sqlite_where=sa.text("deleted_at IS NULL"),
    )

    op.create_table(
        "chapters",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("module_id", sa.String(36), sa.ForeignKey("modules.id"), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_chapters_module_id", "chapters", ["module_id"])
    op.create_index(
        "uq_chapters_module_sequence",
        "chapters",
        ["module_id", "sequence"],
        unique=True,
        postgresql_where=sa.text("deleted_at IS NULL"),
        sqlite_where=sa.text("deleted_at IS NULL"),
    )

    op.create_table(
        "quiz_groups",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("type", sa.String(20), nullable=False),
        sa.Column("module_id", sa.String(36), sa.ForeignKey("modules.id"), nullable=False),
        sa.Column("chapter_id", sa.String(36), sa.ForeignKey("chapters.id"), nullable=True),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_quiz_groups_module_id", "quiz_groups", ["module_id"])
    op.create_index("ix_quiz_groups_chapter_id", "quiz_groups", ["chapter_id"])

    op.create_table(
        "quizzes",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("quiz_group_id", sa.String(36), sa.ForeignKey("quiz_groups.id"), nullable=False),
        sa.Column("question", sa.Text(), nullable=False),
        sa.Column("type", sa.String(20), nullable=False),
        sa.Column("options", JSON, nullable=False),
        sa.Column("answer", JSON, nullable=False),
        sa.Column("explanation", sa.Text(), nullable=True),
        sa.Column("tags", JSON, nullable=False),
        sa.Column("sequence", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_quizzes_quiz_group_id", "quizzes", ["quiz_group_id"])

    # =========================================================================
    # Progress
    # =========================================================================
    op.create_table(
        "student_module_progress",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("student_id", sa.String(36), sa.ForeignKey("students.id"), nullable=False),
        sa.Column("module_id", sa.String(36), sa.ForeignKey("modules.id"), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="NOT_STARTED"),
        sa.Column("progress_percentage", sa.Float(), nullable=False, server_default="0"),
        sa.Column("chapters_completed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_chapters", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("module_quiz_completed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_accessed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("student_id", "module_id", name="uq_module_progress_student_module"),
    )
    op.create_index("ix_student_module_progress_student_id", "student_module_progress", ["student_id"])
    op.create_index("ix_student_module_progress_module_id", "student_module_progress", ["module_id"])
    op.create_index(
        "ix_module_progress_last_accessed",
        "student_module_progress",
        ["student_id", "last_accessed_at"],
    )

    op.create_table(
        "student_chapter_progress",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("student_id", sa.String(36), sa.ForeignKey("students.id"), nullable=False),
        sa.Column("chapter_id", sa.String(36), sa.ForeignKey("chapters.id"), nullable=False),
        sa.Column("module_id", sa.String(36), sa.ForeignKey("modules.id"), nullable=False),
        sa.Column("chapter_sequence", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="NOT_STARTED"),
        sa.Column("chapter_quiz_completed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("quiz_auto_completed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("quiz_completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_accessed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("student_id", "chapter_id", name="uq_chapter_progress_student_chapter"),
    )
    op.create_index("ix_student_chapter_progress_student_id", "student_chapter_progress", ["student_id"])
    op.create_index("ix_student_chapter_progress_chapter_id", "student_chapter_progress", ["chapter_id"])
    op.create_index(
        "ix_chapter_progress_student_module",
        "student_chapter_progress",
        ["student_id", "module_id"],
    )

    op.create_table(
        "student_quiz_attempts",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("student_id", sa.String(36), sa.ForeignKey("students.id"), nullable=False),
        sa.Column("quiz_group_id", sa.String(36), sa.ForeignKey("quiz_groups.id"), nullable=False),
        sa.Column("module_id", sa.String(36), sa.ForeignKey("modules.id"), nullable=False),
        sa.Column("chapter_id", sa.String(36), sa.ForeignKey("chapters.id"), nullable=True),
        sa.Column("attempt_number", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="IN_PROGRESS"),
        sa.Column("score_percentage", sa.Float(), nullable=False, server_default="0"),
        sa.Column("correct_answers", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_questions", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("time_taken_seconds", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_passed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("passing_threshold", sa.Float(), nullable=False, server_default="60"),
        sa.Column("answers", JSON, nullable=False),
        sa.Column("tag_performance", JSON, nullable=False),
        sa.Column("grading_status", sa.String(20), nullable=True),
        sa.Column("grading_report", JSON, nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint(
            "student_id", "quiz_group_id", "attempt_number", name="uq_quiz_attempt_number"
        ),
    )
    op.create_index("ix_student_quiz_attempts_student_id", "student_quiz_attempts", ["student_id"])
    op.create_index(
        "ix_student_quiz_attempts_quiz_group_id", "student_quiz_attempts", ["quiz_group_id"]
    )
    op.create_index(
        "uq_quiz_attempt_in_progress",
        "student_quiz_attempts",
        ["student_id", "quiz_group_id"],
        unique=True,
        postgresql_where=sa.text("status = 'IN_PROGRESS'"),
        sqlite_where=sa.text("status = 'IN_PROGRESS'"),
    )

    # =========================================================================
    # Dashboard feedback sources
    # =========================================================================
    op.create_table(
        "ai_feedback",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("student_id", sa.String(36), sa.ForeignKey("students.id"), nullable=False),
        sa.Column("module_id", sa.String(36), sa.ForeignKey("modules.id"), nullable=True),
        sa.Column("summary", sa.Text(), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_ai_feedback_student_created", "ai_feedback", ["student_id", "created_at"])

    op.create_table(
        "learning_log_reviews",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("student_id", sa.String(36), sa.ForeignKey("students.id"), nullable=False),
        sa.Column("professor_id", sa.String(36), nullable=False),
        sa.Column("module_id", sa.String(36), sa.ForeignKey("modules.id"), nullable=True),
        sa.Column("comment", sa.Text(), nullable=False),
        sa.Column("rating", sa.Integer(), nullable=True),
        *_timestamps(),
    )
    op.create_index(
        "ix_log_reviews_student_created", "learning_log_reviews", ["student_id", "created_at"]
    )


def downgrade() -> None:
    """Drop all tenant tables."""
    for table in (
        "learning_log_reviews",
        "ai_feedback",
        "student_quiz_attempts",
        "student_chapter_progress",
        "student_module_progress",
        "quizzes",
        "quiz_groups",
        "chapters",
        "modules",
        "students",
    ):
        op.drop_table(table)
