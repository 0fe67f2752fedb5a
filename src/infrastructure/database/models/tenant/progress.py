# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Learner progress records.

Rows are created lazily the first time a learner starts something and are
never hard deleted. progress_percentage on module rows is derived by the
progress aggregator and must not be written anywhere else.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from src.infrastructure.database.models.base import (
    Base,
    JSONType,
    TimestampMixin,
    UUIDPrimaryKeyMixin,
)


class ProgressStatus(str, Enum):
    """Status of a module or chapter for one learner."""

    NOT_STARTED = "NOT_STARTED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"


class AttemptStatus(str, Enum):
    """Quiz attempt lifecycle. Transitions only go forward."""

    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"


class GradingStatus(str, Enum):
    """How an attempt's score was obtained."""

    COMPLETED = "completed"
    FAILED = "failed"
    DISABLED = "disabled"


class StudentModuleProgress(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """Progress of one student through one module."""

    __tablename__ = "student_module_progress"
    __table_args__ = (
        UniqueConstraint("student_id", "module_id", name="uq_module_progress_student_module"),
        Index("ix_module_progress_last_accessed", "student_id", "last_accessed_at"),
    )

    student_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("students.id"), nullable=False, index=True
    )
    module_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("modules.id"), nullable=False, index=True
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ProgressStatus.NOT_STARTED.value
    )
    progress_percentage: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    chapters_completed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_chapters: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    module_quiz_completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_accessed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )


class StudentChapterProgress(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """Progress of one student through one chapter.

    A chapter counts as done for gating and aggregation only once
    chapter_quiz_completed is set, either by passing its quiz or
    automatically when the chapter has no quiz (quiz_auto_completed).
    """

    __tablename__ = "student_chapter_progress"
    __table_args__ = (
        UniqueConstraint("student_id", "chapter_id", name="uq_chapter_progress_student_chapter"),
        Index("ix_chapter_progress_student_module", "student_id", "module_id"),
    )

    student_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("students.id"), nullable=False, index=True
    )
    chapter_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("chapters.id"), nullable=False, index=True
    )
    module_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("modules.id"), nullable=False
    )
    chapter_sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ProgressStatus.NOT_STARTED.value
    )
    chapter_quiz_completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    quiz_auto_completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    quiz_completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_accessed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )


class StudentQuizAttempt(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """One attempt of a student at a quiz group.

    At most one attempt per (student, quiz group) may be IN_PROGRESS; the
    partial unique index enforces it at the database level.

    Attributes:
        answers: List of {quiz_id, selected_answers, time_spent_seconds,
            is_correct} recorded at submission.
        tag_performance: List of {tag, correct, total, percentage}.
        grading_report: Raw grader payload, when the grader answered.
    """

    __tablename__ = "student_quiz_attempts"
    __table_args__ = (
        UniqueConstraint(
            "student_id",
            "quiz_group_id",
            "attempt_number",
            name="uq_quiz_attempt_number",
        ),
        Index(
            "uq_quiz_attempt_in_progress",
            "student_id",
            "quiz_group_id",
            unique=True,
            postgresql_where=text("status = 'IN_PROGRESS'"),
            sqlite_where=text("status = 'IN_PROGRESS'"),
        ),
    )

    student_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("students.id"), nullable=False, index=True
    )
    quiz_group_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("quiz_groups.id"), nullable=False, index=True
    )
    module_id: Mapped[str] = mapped_column(String(36), ForeignKey("modules.id"), nullable=False)
    chapter_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("chapters.id"), nullable=True
    )
    attempt_number: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=AttemptStatus.IN_PROGRESS.value
    )
    score_percentage: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    correct_answers: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_questions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    time_taken_seconds: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_passed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    passing_threshold: Mapped[float] = mapped_column(Float, nullable=False, default=60.0)
    answers: Mapped[list[dict[str, Any]]] = mapped_column(JSONType, nullable=False, default=list)
    tag_performance: Mapped[list[dict[str, Any]]] = mapped_column(
        JSONType, nullable=False, default=list
    )
    grading_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    grading_report: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
