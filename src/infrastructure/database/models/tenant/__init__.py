# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Tenant database models."""

from src.infrastructure.database.models.tenant.content import (
    Chapter,
    Module,
    QuestionType,
    Quiz,
    QuizGroup,
    QuizGroupType,
)
from src.infrastructure.database.models.tenant.feedback import AIFeedback, LearningLogReview
from src.infrastructure.database.models.tenant.progress import (
    AttemptStatus,
    GradingStatus,
    ProgressStatus,
    StudentChapterProgress,
    StudentModuleProgress,
    StudentQuizAttempt,
)
from src.infrastructure.database.models.tenant.student import Student

__all__ = [
    # Students
    "Student",
    # Content
    "Module",
    "Chapter",
    "QuizGroup",
    "Quiz",
    "QuizGroupType",
    "QuestionType",
    # Progress
    "StudentModuleProgress",
    "StudentChapterProgress",
    "StudentQuizAttempt",
    "ProgressStatus",
    "AttemptStatus",
    "GradingStatus",
    # Feedback
    "AIFeedback",
    "LearningLogReview",
]
