# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Progress service: the entry point for learner progress operations.

This module provides the ProgressService class for:
- Starting modules and chapters (sequence gated, idempotent)
- Marking chapters completed
- Starting and submitting quiz attempts
- Student and school dashboards
- Progress listings and read-only access checks

Every operation follows the same frame: validate the caller's role,
validate the target exists and is not deleted, apply sequence gating,
persist, and return a response model. Module progress is recalculated
after any change to chapter or quiz completion; a failed recalculation
is logged and handed to a background retry, sent once the tenant
transaction commits, instead of failing the learner's action.
"""

import logging
from dataclasses import dataclass
from functools import partial
from typing import Any, Awaitable, Callable

from sqlalchemy import Select, case, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.config.settings import Settings, get_settings
from src.domains.progress.aggregator import ProgressAggregator
from src.domains.progress.caller import Caller
from src.domains.progress.enrichment import load_enrichment
from src.domains.progress.errors import (
    ChapterNotFoundError,
    CrossSchoolAccessError,
    LearningModuleNotFoundError,
    MissingParameterError,
    QuizGroupNotFoundError,
    RoleNotAllowedError,
    SequenceLockedError,
    StudentNotFoundError,
)
from src.domains.progress.grading import AttemptGradingPipeline
from src.domains.progress.messages import localize
from src.domains.progress.repository import ProgressRepository
from src.domains.progress.sequence import (
    AccessDecision,
    Denied,
    SequencedItem,
    evaluate_chained,
    evaluate_module,
)
from src.infrastructure.database.hooks import run_after_commit
from src.infrastructure.database.models.tenant import (
    AIFeedback,
    AttemptStatus,
    Chapter,
    LearningLogReview,
    Module,
    ProgressStatus,
    QuizGroup,
    Student,
    StudentChapterProgress,
    StudentModuleProgress,
    StudentQuizAttempt,
)
from src.infrastructure.grading import AIGraderClient
from src.models.progress import (
    AccessCheckResponse,
    ChapterCompletionResponse,
    ChapterProgressResponse,
    FeedbackSummary,
    ModuleLockResponse,
    ModuleProgressResponse,
    Page,
    ProfessorReviewSummary,
    ProgressFilter,
    QuestionResultResponse,
    QuizAttemptResponse,
    QuizAttemptStartResponse,
    QuizAttemptSummary,
    QuizQuestionResponse,
    QuizSubmissionResponse,
    SchoolDashboardResponse,
    StudentDashboardResponse,
    StudentModuleProgressSummary,
    SubmitQuizRequest,
)
from src.utils.datetime import utc_now

logger = logging.getLogger(__name__)

RecalculationScheduler = Callable[[str, str, str], None]


@dataclass
class StartContext:
    """State threaded through the ensure-started steps."""

    student: Student
    module: Module
    chapter: Chapter | None = None
    module_progress: StudentModuleProgress | None = None
    chapter_progress: StudentChapterProgress | None = None


def enqueue_recalculation(tenant_code: str, student_id: str, module_id: str) -> None:
    """Schedule a module progress recalculation on the background workers."""
    from src.infrastructure.background.tasks.progress import recalculate_module_progress_task

    recalculate_module_progress_task.send(tenant_code, student_id, module_id)


class ProgressService:
    """Service for learner progress tracking.

    Attributes:
        db: Async tenant database session.
        tenant_code: Tenant the session belongs to.
    """

    def __init__(
        self,
        db: AsyncSession,
        tenant_code: str,
        settings: Settings | None = None,
        grader: AIGraderClient | None = None,
        aggregator: ProgressAggregator | None = None,
        recalculation_scheduler: RecalculationScheduler | None = None,
    ) -> None:
        """Initialize progress service.

        Args:
            db: Async database session for the tenant database.
            tenant_code: Tenant identifier, used for background retries.
            settings: Application settings.
            grader: AI grader client. None disables grading.
            aggregator: Module progress aggregator.
            recalculation_scheduler: Callable scheduling a retry of a failed
                recalculation. Defaults to the Dramatiq actor.
        """
        self.db = db
        self.tenant_code = tenant_code
        self._settings = settings or get_settings()
        self._repository = ProgressRepository(db)
        self._aggregator = aggregator or ProgressAggregator()
        self._pipeline = AttemptGradingPipeline(self._repository, self._settings, grader)
        self._schedule_recalculation = recalculation_scheduler or enqueue_recalculation
        # Parent-to-child order
        self._start_chapter_steps: tuple[Callable[[StartContext], Awaitable[Any]], ...] = (
            self._ensure_module_started,
            self._ensure_chapter_started,
        )

    # =========================================================================
    # Learner operations
    # =========================================================================

    async def start_module(self, caller: Caller, module_id: str) -> ModuleProgressResponse:
        """Start (or resume) a module.

        Raises:
            RoleNotAllowedError: If the caller is not a student.
            StudentNotFoundError: If the student record is missing.
            LearningModuleNotFoundError: If the module is missing or unpublished.
            SequenceLockedError: If the module is locked.
        """
        student = await self._require_student(caller)
        module = await self._get_module(module_id)

        context = StartContext(student=student, module=module)
        progress = await self._ensure_module_started(context)

        logger.info("Module started: student=%s, module=%s", student.id, module.id)
        return self._module_view(progress, module.title)

    async def start_chapter(self, caller: Caller, chapter_id: str) -> ChapterProgressResponse:
        """Start (or resume) a chapter, starting its module first.

        Raises:
            RoleNotAllowedError: If the caller is not a student.
            ChapterNotFoundError: If the chapter is missing.
            SequenceLockedError: If the chapter or its module is locked.
        """
        student = await self._require_student(caller)
        chapter, module = await self._get_chapter(chapter_id)
        await self._require_unlocked(self._chapter_decision(student.id, chapter))

        context = StartContext(student=student, module=module, chapter=chapter)
        for step in self._start_chapter_steps:
            await step(context)

        logger.info("Chapter started: student=%s, chapter=%s", student.id, chapter.id)
        return ChapterProgressResponse.model_validate(context.chapter_progress)

    async def mark_chapter_complete(
        self, caller: Caller, chapter_id: str
    ) -> ChapterCompletionResponse:
        """Mark a chapter completed and recalculate the module.

        A chapter without any quiz group has its quiz auto completed.

        Raises:
            RoleNotAllowedError: If the caller is not a student.
            ChapterNotFoundError: If the chapter is missing.
            SequenceLockedError: If the chapter or its module is locked.
        """
        student = await self._require_student(caller)
        chapter, module = await self._get_chapter(chapter_id)
        await self._require_unlocked(self._chapter_decision(student.id, chapter))

        context = StartContext(student=student, module=module, chapter=chapter)
        await self._ensure_module_started(context)

        now = utc_now()
        progress = await self._repository.get_or_create_chapter_progress(student.id, chapter)
        progress.status = ProgressStatus.COMPLETED.value
        progress.chapter_sequence = chapter.sequence
        progress.last_accessed_at = now
        if progress.started_at is None:
            progress.started_at = now
        if progress.completed_at is None:
            progress.completed_at = now

        if not progress.chapter_quiz_completed:
            quiz_groups = await self._repository.count_chapter_quiz_groups(chapter.id)
            if quiz_groups == 0:
                progress.chapter_quiz_completed = True
                progress.quiz_auto_completed = True
                progress.quiz_completed_at = now
        await self.db.flush()

        module_progress = await self._recalculate_safely(student.id, module.id)

        logger.info(
            "Chapter completed: student=%s, chapter=%s, quiz_auto_completed=%s",
            student.id,
            chapter.id,
            progress.quiz_auto_completed,
        )
        return ChapterCompletionResponse(
            chapter_progress=ChapterProgressResponse.model_validate(progress),
            module_progress=(
                self._module_view(module_progress, module.title) if module_progress else None
            ),
        )

    async def start_quiz_attempt(
        self, caller: Caller, quiz_group_id: str
    ) -> QuizAttemptStartResponse:
        """Start a quiz attempt, or return the one already in progress.

        Raises:
            RoleNotAllowedError: If the caller is not a student.
            QuizGroupNotFoundError: If the quiz group is missing.
            SequenceLockedError: If the quiz is locked.
        """
        student = await self._require_student(caller)
        quiz_group = await self._get_quiz_group(quiz_group_id)

        started = await self._pipeline.start(student.id, quiz_group)

        return QuizAttemptStartResponse(
            attempt=QuizAttemptResponse.model_validate(started.attempt),
            questions=[QuizQuestionResponse.model_validate(q) for q in started.questions],
            resumed=started.resumed,
        )

    async def submit_quiz_answers(
        self, caller: Caller, request: SubmitQuizRequest
    ) -> QuizSubmissionResponse:
        """Grade the in-progress attempt of a quiz group.

        Raises:
            RoleNotAllowedError: If the caller is not a student.
            QuizGroupNotFoundError: If the quiz group is missing.
            NoActiveAttemptError: If no attempt is in progress.
            AttemptAlreadyCompletedError: If a concurrent submission won.
        """
        student = await self._require_student(caller)
        quiz_group = await self._get_quiz_group(request.quiz_group_id)

        graded = await self._pipeline.submit(student.id, quiz_group, request)
        if graded.progress_changed:
            await self._recalculate_safely(student.id, quiz_group.module_id)

        return QuizSubmissionResponse(
            attempt=QuizAttemptResponse.model_validate(graded.attempt),
            results=[
                QuestionResultResponse(
                    quiz_id=result.quiz_id,
                    question_index=result.question_index,
                    is_correct=result.is_correct,
                    correct_answer=result.correct_answer,
                    explanation=result.explanation,
                    feedback=result.feedback,
                )
                for result in graded.results
            ],
            grading_status=graded.attempt.grading_status or "",
            grader_degraded=graded.grader_degraded,
            overall_feedback=graded.overall_feedback,
        )

    # =========================================================================
    # Access checks (read only)
    # =========================================================================

    async def check_chapter_access(self, caller: Caller, chapter_id: str) -> AccessCheckResponse:
        """Tell whether a chapter can be opened, without starting it."""
        student = await self._require_student(caller)
        chapter, module = await self._get_chapter(chapter_id)

        decision = await self._module_decision(student, module)
        if not isinstance(decision, Denied):
            decision = await self._chapter_decision(student.id, chapter)
        return self._access_view(decision, caller.language)

    async def check_quiz_access(self, caller: Caller, quiz_group_id: str) -> AccessCheckResponse:
        """Tell whether a quiz can be started, without starting it."""
        student = await self._require_student(caller)
        quiz_group = await self._get_quiz_group(quiz_group_id)

        decision = await self._pipeline.check_access(student.id, quiz_group)
        return self._access_view(decision, caller.language)

    async def list_module_locks(self, caller: Caller) -> list[ModuleLockResponse]:
        """List published modules with their lock state for the student."""
        student = await self._require_student(caller)
        modules = await self._repository.list_modules()
        completed_ids = await self._repository.module_ids_at_or_above(
            student.id, self._settings.progress.module_unlock_threshold
        )

        result = await self.db.execute(
            select(StudentModuleProgress).where(StudentModuleProgress.student_id == student.id)
        )
        progress_by_module = {row.module_id: row for row in result.scalars().all()}

        siblings_by_year: dict[int, list[SequencedItem]] = {}
        for module in modules:
            siblings_by_year.setdefault(module.year, []).append(
                SequencedItem(module.id, module.sequence)
            )

        locks = []
        for module in modules:
            decision = evaluate_module(
                SequencedItem(module.id, module.sequence),
                module.year,
                student.year,
                siblings_by_year[module.year],
                completed_ids,
            )
            progress = progress_by_module.get(module.id)
            locks.append(
                ModuleLockResponse(
                    module_id=module.id,
                    title=module.title,
                    year=module.year,
                    sequence=module.sequence,
                    is_locked=isinstance(decision, Denied),
                    lock_reason=decision.reason.value if isinstance(decision, Denied) else None,
                    status=progress.status if progress else ProgressStatus.NOT_STARTED.value,
                    progress_percentage=progress.progress_percentage if progress else 0.0,
                )
            )
        return locks

    # =========================================================================
    # Listings
    # =========================================================================

    async def list_module_progress(
        self, caller: Caller, filters: ProgressFilter
    ) -> Page[ModuleProgressResponse]:
        """List the student's module progress, most recently accessed first."""
        student = await self._require_student(caller)

        query = (
            select(StudentModuleProgress, Module.title)
            .join(Module, Module.id == StudentModuleProgress.module_id)
            .where(StudentModuleProgress.student_id == student.id)
        )
        if filters.module_id:
            query = query.where(StudentModuleProgress.module_id == filters.module_id)
        if filters.status:
            query = query.where(StudentModuleProgress.status == filters.status)
        query = self._date_range(query, StudentModuleProgress.last_accessed_at, filters)

        total, limit = await self._count(query), self._page_size(filters)
        rows = await self.db.execute(
            query.order_by(StudentModuleProgress.last_accessed_at.desc().nulls_last())
            .offset((filters.page - 1) * limit)
            .limit(limit)
        )
        items = [self._module_view(progress, title) for progress, title in rows.all()]
        return Page[ModuleProgressResponse].build(items, total, filters.page, limit)

    async def list_chapter_progress(
        self, caller: Caller, filters: ProgressFilter
    ) -> Page[ChapterProgressResponse]:
        """List the student's chapter progress in chapter order."""
        student = await self._require_student(caller)

        query = select(StudentChapterProgress).where(
            StudentChapterProgress.student_id == student.id
        )
        if filters.module_id:
            query = query.where(StudentChapterProgress.module_id == filters.module_id)
        if filters.chapter_id:
            query = query.where(StudentChapterProgress.chapter_id == filters.chapter_id)
        if filters.status:
            query = query.where(StudentChapterProgress.status == filters.status)
        query = self._date_range(query, StudentChapterProgress.last_accessed_at, filters)

        total, limit = await self._count(query), self._page_size(filters)
        rows = await self.db.execute(
            query.order_by(
                StudentChapterProgress.module_id,
                StudentChapterProgress.chapter_sequence,
            )
            .offset((filters.page - 1) * limit)
            .limit(limit)
        )
        items = [ChapterProgressResponse.model_validate(row) for row in rows.scalars().all()]
        return Page[ChapterProgressResponse].build(items, total, filters.page, limit)

    async def list_quiz_attempts(
        self, caller: Caller, filters: ProgressFilter
    ) -> Page[QuizAttemptResponse]:
        """List the student's quiz attempts, newest first."""
        student = await self._require_student(caller)

        query = select(StudentQuizAttempt).where(StudentQuizAttempt.student_id == student.id)
        if filters.quiz_group_id:
            query = query.where(StudentQuizAttempt.quiz_group_id == filters.quiz_group_id)
        if filters.module_id:
            query = query.where(StudentQuizAttempt.module_id == filters.module_id)
        if filters.chapter_id:
            query = query.where(StudentQuizAttempt.chapter_id == filters.chapter_id)
        if filters.status:
            query = query.where(StudentQuizAttempt.status == filters.status)
        query = self._date_range(query, StudentQuizAttempt.started_at, filters)

        total, limit = await self._count(query), self._page_size(filters)
        rows = await self.db.execute(
            query.order_by(
                StudentQuizAttempt.started_at.desc(),
                StudentQuizAttempt.attempt_number.desc(),
            )
            .offset((filters.page - 1) * limit)
            .limit(limit)
        )
        items = [QuizAttemptResponse.model_validate(row) for row in rows.scalars().all()]
        return Page[QuizAttemptResponse].build(items, total, filters.page, limit)

    # =========================================================================
    # Dashboards
    # =========================================================================

    async def get_student_dashboard(
        self, caller: Caller, student_id: str | None = None
    ) -> StudentDashboardResponse:
        """Build a student's dashboard.

        Students see their own dashboard. Staff and super admins must name
        the student; staff may only look at students of their schools.

        Raises:
            RoleNotAllowedError: If the role is not recognized.
            MissingParameterError: If staff omit student_id.
            StudentNotFoundError: If the student does not exist.
            CrossSchoolAccessError: If the student is in another school.
        """
        student = await self._resolve_dashboard_student(caller, student_id)

        module_stats = await self.db.execute(
            select(
                func.count(StudentModuleProgress.id),
                func.sum(
                    case((StudentModuleProgress.status == ProgressStatus.IN_PROGRESS.value, 1), else_=0)
                ),
                func.sum(
                    case((StudentModuleProgress.status == ProgressStatus.COMPLETED.value, 1), else_=0)
                ),
                func.avg(StudentModuleProgress.progress_percentage),
            ).where(StudentModuleProgress.student_id == student.id)
        )
        total_modules, in_progress, completed, average = module_stats.one()

        completed_chapters = await self.db.scalar(
            select(func.count(StudentChapterProgress.id)).where(
                StudentChapterProgress.student_id == student.id,
                StudentChapterProgress.status == ProgressStatus.COMPLETED.value,
            )
        )
        attempt_stats = await self.db.execute(
            select(
                func.count(StudentQuizAttempt.id),
                func.sum(case((StudentQuizAttempt.is_passed.is_(True), 1), else_=0)),
            ).where(StudentQuizAttempt.student_id == student.id)
        )
        total_attempts, passed = attempt_stats.one()

        limit = self._settings.progress.dashboard_recent_limit
        recent_rows = await self.db.execute(
            select(StudentModuleProgress, Module.title)
            .join(Module, Module.id == StudentModuleProgress.module_id)
            .where(StudentModuleProgress.student_id == student.id)
            .order_by(StudentModuleProgress.last_accessed_at.desc().nulls_last())
            .limit(limit)
        )
        recent_activity = [self._module_view(row, title) for row, title in recent_rows.all()]

        feedback = await load_enrichment(
            self.db, "ai_feedback", lambda: self._recent_feedback(student.id, limit), []
        )
        reviews = await load_enrichment(
            self.db, "professor_reviews", lambda: self._recent_reviews(student.id, limit), []
        )

        return StudentDashboardResponse(
            student_id=student.id,
            total_modules=total_modules or 0,
            in_progress_modules=in_progress or 0,
            completed_modules=completed or 0,
            completed_chapters=completed_chapters or 0,
            total_quiz_attempts=total_attempts or 0,
            passed_quizzes=passed or 0,
            average_progress=round(float(average or 0), 2),
            recent_activity=recent_activity,
            ai_feedback=feedback.value,
            professor_reviews=reviews.value,
            degraded_sections=[r.source for r in (feedback, reviews) if not r.ok],
        )

    async def get_school_dashboard(
        self,
        caller: Caller,
        module_id: str | None = None,
        school_id: str | None = None,
    ) -> SchoolDashboardResponse:
        """Build the progress overview of one or more schools.

        Staff see their own schools (optionally narrowed to one). Super
        admins must name the school.

        Raises:
            RoleNotAllowedError: If the caller is a student.
            MissingParameterError: If a super admin omits school_id.
            CrossSchoolAccessError: If staff ask for another school.
        """
        school_ids = self._resolve_dashboard_schools(caller, school_id)

        student_ids = (
            select(Student.id)
            .where(Student.school_id.in_(school_ids), Student.deleted_at.is_(None))
            .scalar_subquery()
        )
        total_students = await self.db.scalar(
            select(func.count(Student.id)).where(
                Student.school_id.in_(school_ids), Student.deleted_at.is_(None)
            )
        )

        progress_filter = [StudentModuleProgress.student_id.in_(student_ids)]
        if module_id:
            progress_filter.append(StudentModuleProgress.module_id == module_id)

        stats = await self.db.execute(
            select(
                func.count(func.distinct(StudentModuleProgress.student_id)),
                func.sum(
                    case((StudentModuleProgress.status == ProgressStatus.IN_PROGRESS.value, 1), else_=0)
                ),
                func.sum(
                    case((StudentModuleProgress.status == ProgressStatus.COMPLETED.value, 1), else_=0)
                ),
                func.avg(StudentModuleProgress.progress_percentage),
            ).where(*progress_filter)
        )
        active_students, in_progress, completed, average = stats.one()
        total_students = total_students or 0
        active_students = active_students or 0

        progress_rows = await self.db.execute(
            select(StudentModuleProgress, Student, Module.title)
            .join(Student, Student.id == StudentModuleProgress.student_id)
            .join(Module, Module.id == StudentModuleProgress.module_id)
            .where(*progress_filter)
            .order_by(StudentModuleProgress.last_accessed_at.desc().nulls_last())
            .limit(20)
        )
        student_progress = [
            StudentModuleProgressSummary(
                student_id=student.id,
                student_name=student.full_name,
                module_id=progress.module_id,
                module_title=title,
                status=progress.status,
                progress_percentage=progress.progress_percentage,
                last_accessed_at=progress.last_accessed_at,
            )
            for progress, student, title in progress_rows.all()
        ]

        attempt_filter = [
            StudentQuizAttempt.student_id.in_(student_ids),
            StudentQuizAttempt.status == AttemptStatus.COMPLETED.value,
        ]
        if module_id:
            attempt_filter.append(StudentQuizAttempt.module_id == module_id)
        attempt_rows = await self.db.execute(
            select(StudentQuizAttempt, Student)
            .join(Student, Student.id == StudentQuizAttempt.student_id)
            .where(*attempt_filter)
            .order_by(StudentQuizAttempt.completed_at.desc())
            .limit(10)
        )
        recent_attempts = [
            QuizAttemptSummary(
                attempt_id=attempt.id,
                student_id=student.id,
                student_name=student.full_name,
                quiz_group_id=attempt.quiz_group_id,
                attempt_number=attempt.attempt_number,
                score_percentage=attempt.score_percentage,
                is_passed=attempt.is_passed,
                completed_at=attempt.completed_at,
            )
            for attempt, student in attempt_rows.all()
        ]

        return SchoolDashboardResponse(
            total_students=total_students,
            active_students=active_students,
            not_started=max(0, total_students - active_students),
            in_progress=in_progress or 0,
            completed=completed or 0,
            average_progress=round(float(average or 0), 2),
            student_progress=student_progress,
            recent_quiz_attempts=recent_attempts,
        )

    # =========================================================================
    # Ensure-started steps
    # =========================================================================

    async def _ensure_module_started(self, context: StartContext) -> StudentModuleProgress:
        await self._require_unlocked(self._module_decision(context.student, context.module))

        now = utc_now()
        progress = await self._repository.get_or_create_module_progress(
            context.student.id, context.module.id
        )
        if progress.status != ProgressStatus.COMPLETED.value:
            progress.status = ProgressStatus.IN_PROGRESS.value
        if progress.started_at is None:
            progress.started_at = now
        progress.last_accessed_at = now
        progress.total_chapters = await self._aggregator.count_chapters(self.db, context.module.id)
        await self.db.flush()

        context.module_progress = progress
        return progress

    async def _ensure_chapter_started(self, context: StartContext) -> StudentChapterProgress:
        if context.chapter is None:
            raise ValueError("Chapter step requires a chapter")

        now = utc_now()
        progress = await self._repository.get_or_create_chapter_progress(
            context.student.id, context.chapter
        )
        if progress.status != ProgressStatus.COMPLETED.value:
            progress.status = ProgressStatus.IN_PROGRESS.value
        if progress.started_at is None:
            progress.started_at = now
        progress.last_accessed_at = now
        progress.chapter_sequence = context.chapter.sequence
        await self.db.flush()

        context.chapter_progress = progress
        return progress

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _require_student(self, caller: Caller) -> Student:
        if not caller.is_student:
            raise RoleNotAllowedError(role=caller.role.value)
        student = await self._repository.get_student(caller.user_id)
        if student is None:
            raise StudentNotFoundError()
        return student

    async def _get_module(self, module_id: str) -> Module:
        module = await self._repository.get_module(module_id)
        if module is None:
            raise LearningModuleNotFoundError()
        return module

    async def _get_chapter(self, chapter_id: str) -> tuple[Chapter, Module]:
        chapter = await self._repository.get_chapter(chapter_id)
        if chapter is None:
            raise ChapterNotFoundError()
        module = await self._repository.get_module(chapter.module_id)
        if module is None:
            raise ChapterNotFoundError()
        return chapter, module

    async def _get_quiz_group(self, quiz_group_id: str) -> QuizGroup:
        quiz_group = await self._repository.get_quiz_group(quiz_group_id)
        if quiz_group is None or await self._repository.get_module(quiz_group.module_id) is None:
            raise QuizGroupNotFoundError()
        if quiz_group.chapter_id and await self._repository.get_chapter(quiz_group.chapter_id) is None:
            raise QuizGroupNotFoundError()
        return quiz_group

    async def _module_decision(self, student: Student, module: Module) -> AccessDecision:
        siblings = await self._repository.list_modules(year=module.year)
        completed_ids = await self._repository.module_ids_at_or_above(
            student.id, self._settings.progress.module_unlock_threshold
        )
        return evaluate_module(
            SequencedItem(module.id, module.sequence),
            module.year,
            student.year,
            [SequencedItem(m.id, m.sequence) for m in siblings],
            completed_ids,
        )

    async def _chapter_decision(self, student_id: str, chapter: Chapter) -> AccessDecision:
        chapters = await self._repository.list_chapters(chapter.module_id)
        completed_ids = await self._repository.completed_chapter_ids(student_id, chapter.module_id)
        return evaluate_chained(
            [SequencedItem(c.id, c.sequence) for c in chapters],
            chapter.id,
            completed_ids,
        )

    @staticmethod
    async def _require_unlocked(decision: Awaitable[AccessDecision]) -> None:
        result = await decision
        if isinstance(result, Denied):
            raise SequenceLockedError(result.reason, result.blocking_items)

    async def _recalculate_safely(
        self, student_id: str, module_id: str
    ) -> StudentModuleProgress | None:
        """Recalculate module progress; on failure schedule a retry after commit."""
        try:
            async with self.db.begin_nested():
                return await self._aggregator.recalculate_module_progress(
                    self.db, student_id, module_id
                )
        except SQLAlchemyError as e:
            logger.error(
                "Module progress recalculation failed, scheduling retry: "
                "tenant=%s, student=%s, module=%s: %s",
                self.tenant_code,
                student_id,
                module_id,
                e,
            )

        # Workers must see the chapter state this request commits
        run_after_commit(
            self.db,
            partial(self._schedule_recalculation, self.tenant_code, student_id, module_id),
        )
        return None

    async def _resolve_dashboard_student(
        self, caller: Caller, student_id: str | None
    ) -> Student:
        if caller.is_student:
            return await self._require_student(caller)

        if not (caller.is_staff or caller.is_super_admin):
            raise RoleNotAllowedError(role=caller.role.value)
        if not student_id:
            raise MissingParameterError("student_id")

        student = await self._repository.get_student(student_id)
        if student is None:
            raise StudentNotFoundError()
        if caller.is_staff and student.school_id not in caller.school_ids:
            raise CrossSchoolAccessError()
        return student

    @staticmethod
    def _resolve_dashboard_schools(caller: Caller, school_id: str | None) -> list[str]:
        if caller.is_super_admin:
            if not school_id:
                raise MissingParameterError("school_id")
            return [school_id]
        if not caller.is_staff:
            raise RoleNotAllowedError(role=caller.role.value)
        if school_id:
            if school_id not in caller.school_ids:
                raise CrossSchoolAccessError()
            return [school_id]
        return list(caller.school_ids)

    async def _recent_feedback(self, student_id: str, limit: int) -> list[FeedbackSummary]:
        result = await self.db.execute(
            select(AIFeedback)
            .where(AIFeedback.student_id == student_id)
            .order_by(AIFeedback.created_at.desc())
            .limit(limit)
        )
        return [FeedbackSummary.model_validate(row) for row in result.scalars().all()]

    async def _recent_reviews(self, student_id: str, limit: int) -> list[ProfessorReviewSummary]:
        result = await self.db.execute(
            select(LearningLogReview)
            .where(LearningLogReview.student_id == student_id)
            .order_by(LearningLogReview.created_at.desc())
            .limit(limit)
        )
        return [ProfessorReviewSummary.model_validate(row) for row in result.scalars().all()]

    def _page_size(self, filters: ProgressFilter) -> int:
        size = filters.limit or self._settings.progress.default_page_size
        return min(size, self._settings.progress.max_page_size)

    async def _count(self, query: Select) -> int:
        total = await self.db.scalar(select(func.count()).select_from(query.subquery()))
        return total or 0

    @staticmethod
    def _date_range(query: Select, column: Any, filters: ProgressFilter) -> Select:
        if filters.from_date:
            query = query.where(column >= filters.from_date)
        if filters.to_date:
            query = query.where(column <= filters.to_date)
        return query

    @staticmethod
    def _module_view(progress: StudentModuleProgress, title: str | None) -> ModuleProgressResponse:
        return ModuleProgressResponse.model_validate(progress).model_copy(
            update={"module_title": title}
        )

    @staticmethod
    def _access_view(decision: AccessDecision, language: str) -> AccessCheckResponse:
        if isinstance(decision, Denied):
            return AccessCheckResponse(
                can_access=False,
                reason=decision.reason.value,
                message=localize(decision.reason.value, language),
                blocking_items=list(decision.blocking_items),
            )
        return AccessCheckResponse(can_access=True)
