# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Feedback records shown on the student dashboard.

Both tables are written by other services (AI feedback generation and
professor reviews of learning logs). The progress core reads them on a
best-effort basis.
"""

from sqlalchemy import ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from src.infrastructure.database.models.base import (
    Base,
    TimestampMixin,
    UUIDPrimaryKeyMixin,
)


class AIFeedback(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """An AI generated feedback summary for a student."""

    __tablename__ = "ai_feedback"
    __table_args__ = (Index("ix_ai_feedback_student_created", "student_id", "created_at"),)

    student_id: Mapped[str] = mapped_column(String(36), ForeignKey("students.id"), nullable=False)
    module_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("modules.id"), nullable=True
    )
    summary: Mapped[str] = mapped_column(Text, nullable=False)


class LearningLogReview(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """A professor's review of a student's learning log."""

    __tablename__ = "learning_log_reviews"
    __table_args__ = (Index("ix_log_reviews_student_created", "student_id", "created_at"),)

    student_id: Mapped[str] = mapped_column(String(36), ForeignKey("students.id"), nullable=False)
    professor_id: Mapped[str] = mapped_column(String(36), nullable=False)
    module_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("modules.id"), nullable=True
    )
    comment: Mapped[str] = mapped_column(Text, nullable=False)
    rating: Mapped[int | None] = mapped_column(Integer, nullable=True)
