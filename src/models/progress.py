# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Request and response models for progress tracking.

Response models are built from ORM rows with ``model_validate(row)``.
Correct answers of quiz questions never appear in any model sent before
an attempt is submitted.
"""

from datetime import datetime
from math import ceil
from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.utils.datetime import ensure_utc

T = TypeVar("T")


class _ORMModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    @field_validator("*", mode="after")
    @classmethod
    def _utc_datetimes(cls, value: object) -> object:
        if isinstance(value, datetime):
            return ensure_utc(value)
        return value


# =============================================================================
# Requests
# =============================================================================


class StartModuleRequest(BaseModel):
    module_id: str = Field(min_length=1, max_length=36)


class StartChapterRequest(BaseModel):
    chapter_id: str = Field(min_length=1, max_length=36)


class CompleteChapterRequest(BaseModel):
    chapter_id: str = Field(min_length=1, max_length=36)


class StartQuizRequest(BaseModel):
    quiz_group_id: str = Field(min_length=1, max_length=36)


class SubmittedAnswer(BaseModel):
    """Learner's answer to one question."""

    quiz_id: str = Field(min_length=1, max_length=36)
    selected_answers: list[str] = Field(default_factory=list)
    time_spent_seconds: int = Field(default=0, ge=0)


class SubmitQuizRequest(BaseModel):
    """Answers for the in-progress attempt of a quiz group."""

    quiz_group_id: str = Field(min_length=1, max_length=36)
    answers: list[SubmittedAnswer] = Field(min_length=1)
    time_taken_seconds: int = Field(default=0, ge=0)


class ProgressFilter(BaseModel):
    """Filters and pagination for progress listings."""

    module_id: str | None = None
    chapter_id: str | None = None
    quiz_group_id: str | None = None
    status: str | None = None
    from_date: datetime | None = None
    to_date: datetime | None = None
    page: int = Field(default=1, ge=1)
    limit: int | None = Field(default=None, ge=1)


# =============================================================================
# Progress rows
# =============================================================================


class ModuleProgressResponse(_ORMModel):
    id: str
    student_id: str
    module_id: str
    module_title: str | None = None
    status: str
    progress_percentage: float
    chapters_completed: int
    total_chapters: int
    module_quiz_completed: bool
    started_at: datetime | None = None
    completed_at: datetime | None = None
    last_accessed_at: datetime | None = None


class ChapterProgressResponse(_ORMModel):
    id: str
    student_id: str
    chapter_id: str
    module_id: str
    chapter_sequence: int
    status: str
    chapter_quiz_completed: bool
    quiz_auto_completed: bool
    quiz_completed_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    last_accessed_at: datetime | None = None


class ChapterCompletionResponse(BaseModel):
    """Result of marking a chapter completed."""

    chapter_progress: ChapterProgressResponse
    module_progress: ModuleProgressResponse | None = None


# =============================================================================
# Quiz attempts
# =============================================================================


class QuizQuestionResponse(_ORMModel):
    """A question as shown to a learner, without its answer."""

    id: str
    question: str
    type: str
    options: list[str] = Field(default_factory=list)
    sequence: int


class AnswerRecord(BaseModel):
    quiz_id: str
    selected_answers: list[str] = Field(default_factory=list)
    time_spent_seconds: int = 0
    is_correct: bool = False


class TagPerformance(BaseModel):
    tag: str
    correct: int
    total: int
    percentage: float


class QuizAttemptResponse(_ORMModel):
    id: str
    student_id: str
    quiz_group_id: str
    module_id: str
    chapter_id: str | None = None
    attempt_number: int
    status: str
    score_percentage: float
    correct_answers: int
    total_questions: int
    time_taken_seconds: int
    is_passed: bool
    passing_threshold: float
    answers: list[AnswerRecord] = Field(default_factory=list)
    tag_performance: list[TagPerformance] = Field(default_factory=list)
    grading_status: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None


class QuizAttemptStartResponse(BaseModel):
    """Attempt returned by quiz start, with the questions to answer.

    Attributes:
        resumed: True when an attempt already in progress was returned.
    """

    attempt: QuizAttemptResponse
    questions: list[QuizQuestionResponse]
    resumed: bool = False


class QuestionResultResponse(BaseModel):
    quiz_id: str
    question_index: int
    is_correct: bool
    correct_answer: str | None = None
    explanation: str | None = None
    feedback: str | None = None


class QuizSubmissionResponse(BaseModel):
    """Result of a submission.

    Attributes:
        grader_degraded: True when the AI grader gave no usable answer and
            the attempt was scored 0.
    """

    attempt: QuizAttemptResponse
    results: list[QuestionResultResponse] = Field(default_factory=list)
    grading_status: str
    grader_degraded: bool = False
    overall_feedback: str | None = None


# =============================================================================
# Access checks
# =============================================================================


class AccessCheckResponse(BaseModel):
    can_access: bool
    reason: str | None = None
    message: str | None = None
    blocking_items: list[str] = Field(default_factory=list)


class ModuleLockResponse(BaseModel):
    module_id: str
    title: str
    year: int
    sequence: int | None = None
    is_locked: bool
    lock_reason: str | None = None
    status: str
    progress_percentage: float = 0.0


# =============================================================================
# Pagination
# =============================================================================


class Page(BaseModel, Generic[T]):
    items: list[T]
    total: int
    page: int
    limit: int
    total_pages: int

    @classmethod
    def build(cls, items: list[T], total: int, page: int, limit: int) -> "Page[T]":
        return cls(
            items=items,
            total=total,
            page=page,
            limit=limit,
            total_pages=ceil(total / limit) if limit else 0,
        )


# =============================================================================
# Dashboards
# =============================================================================


class FeedbackSummary(_ORMModel):
    id: str
    module_id: str | None = None
    summary: str
    created_at: datetime


class ProfessorReviewSummary(_ORMModel):
    id: str
    professor_id: str
    module_id: str | None = None
    comment: str
    rating: int | None = None
    created_at: datetime


class StudentDashboardResponse(BaseModel):
    """Student dashboard.

    Attributes:
        degraded_sections: Enrichment sections that failed to load and
            were replaced with empty lists.
    """

    student_id: str
    total_modules: int = 0
    in_progress_modules: int = 0
    completed_modules: int = 0
    completed_chapters: int = 0
    total_quiz_attempts: int = 0
    passed_quizzes: int = 0
    average_progress: float = 0.0
    recent_activity: list[ModuleProgressResponse] = Field(default_factory=list)
    ai_feedback: list[FeedbackSummary] = Field(default_factory=list)
    professor_reviews: list[ProfessorReviewSummary] = Field(default_factory=list)
    degraded_sections: list[str] = Field(default_factory=list)


class StudentModuleProgressSummary(_ORMModel):
    student_id: str
    student_name: str
    module_id: str
    module_title: str
    status: str
    progress_percentage: float
    last_accessed_at: datetime | None = None


class QuizAttemptSummary(_ORMModel):
    attempt_id: str
    student_id: str
    student_name: str
    quiz_group_id: str
    attempt_number: int
    score_percentage: float
    is_passed: bool
    completed_at: datetime | None = None


class SchoolDashboardResponse(BaseModel):
    total_students: int = 0
    active_students: int = 0
    not_started: int = 0
    in_progress: int = 0
    completed: int = 0
    average_progress: float = 0.0
    student_progress: list[StudentModuleProgressSummary] = Field(default_factory=list)
    recent_quiz_attempts: list[QuizAttemptSummary] = Field(default_factory=list)
