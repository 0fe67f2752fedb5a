# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for ProgressService.

Runs the service against an in-memory tenant database with the AI grader
stubbed through an httpx mock transport.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.config.settings import GraderSettings, Settings
from src.domains.progress import (
    ChapterNotFoundError,
    CrossSchoolAccessError,
    LearningModuleNotFoundError,
    MissingParameterError,
    ProgressService,
    QuizGroupNotFoundError,
    RoleNotAllowedError,
    SequenceLockedError,
    StudentNotFoundError,
)
from src.domains.progress.aggregator import ProgressAggregator
from src.domains.progress.caller import Caller, UserRole
from src.domains.progress.sequence import LockReason
from src.infrastructure.database.hooks import pending_after_commit
from src.infrastructure.database.models.tenant import (
    AIFeedback,
    Chapter,
    LearningLogReview,
    Module,
    ProgressStatus,
    Student,
    StudentModuleProgress,
)
from src.infrastructure.grading import AIGraderClient
from src.models.progress import ProgressFilter, SubmitQuizRequest, SubmittedAnswer

TENANT_CODE = "test_tenant"


def passing_grader() -> AIGraderClient:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={
                "score_percentage": 100.0,
                "correct_answers": 2,
                "questions_results": [
                    {"question_index": 1, "is_correct": True},
                    {"question_index": 2, "is_correct": True},
                ],
            },
        )

    return AIGraderClient(
        GraderSettings(base_url="http://grader.test"),
        transport=httpx.MockTransport(handler),
    )


@pytest.fixture
def scheduler() -> MagicMock:
    return MagicMock()


def failing_recalculation_service(
    db: AsyncSession, settings: Settings, scheduler: MagicMock
) -> ProgressService:
    aggregator = MagicMock(spec=ProgressAggregator)
    aggregator.count_chapters = AsyncMock(return_value=4)
    aggregator.recalculate_module_progress = AsyncMock(side_effect=SQLAlchemyError("boom"))
    return ProgressService(
        db,
        TENANT_CODE,
        settings=settings,
        aggregator=aggregator,
        recalculation_scheduler=scheduler,
    )


@pytest.fixture
def service(db: AsyncSession, settings: Settings, scheduler: MagicMock) -> ProgressService:
    return ProgressService(
        db,
        TENANT_CODE,
        settings=settings,
        grader=passing_grader(),
        recalculation_scheduler=scheduler,
    )


async def pass_chapter(service: ProgressService, caller: Caller, course, index: int) -> None:
    """Complete a chapter and pass its quiz."""
    group = course.chapter_groups[index]
    await service.mark_chapter_complete(caller, course.chapters[index].id)
    await service.start_quiz_attempt(caller, group.id)
    await service.submit_quiz_answers(
        caller,
        SubmitQuizRequest(
            quiz_group_id=group.id,
            answers=[
                SubmittedAnswer(quiz_id=quiz.id, selected_answers=["A"])
                for quiz in course.quizzes[group.id]
            ],
        ),
    )


class TestStartModule:
    """Tests for start_module."""

    @pytest.mark.asyncio
    async def test_first_module_starts(self, service, student_caller, course) -> None:
        result = await service.start_module(student_caller, course.module.id)

        assert result.status == ProgressStatus.IN_PROGRESS.value
        assert result.module_title == "Fractions"
        assert result.total_chapters == 4
        assert result.progress_percentage == 0
        assert result.started_at is not None

    @pytest.mark.asyncio
    async def test_restart_keeps_started_at(self, service, student_caller, course) -> None:
        first = await service.start_module(student_caller, course.module.id)
        second = await service.start_module(student_caller, course.module.id)

        assert second.id == first.id
        assert second.started_at == first.started_at

    @pytest.mark.asyncio
    async def test_next_module_locked(self, service, student_caller, course) -> None:
        with pytest.raises(SequenceLockedError) as exc_info:
            await service.start_module(student_caller, course.next_module.id)

        assert exc_info.value.reason == LockReason.PREVIOUS_MODULE_INCOMPLETE
        assert exc_info.value.blocking_items == (course.module.id,)

    @pytest.mark.asyncio
    async def test_next_module_unlocks_at_threshold(
        self, db: AsyncSession, service, student_caller, course
    ) -> None:
        db.add(
            StudentModuleProgress(
                student_id=course.student.id,
                module_id=course.module.id,
                status=ProgressStatus.IN_PROGRESS.value,
                progress_percentage=90,
            )
        )
        await db.flush()

        result = await service.start_module(student_caller, course.next_module.id)

        assert result.module_id == course.next_module.id

    @pytest.mark.asyncio
    async def test_future_year_module_locked(
        self, db: AsyncSession, service, student_caller, course
    ) -> None:
        later = Module(title="Algebra", year=2, sequence=1)
        db.add(later)
        await db.flush()

        with pytest.raises(SequenceLockedError) as exc_info:
            await service.start_module(student_caller, later.id)

        assert exc_info.value.reason == LockReason.MODULE_FUTURE_YEAR

    @pytest.mark.asyncio
    async def test_unpublished_module_not_found(
        self, db: AsyncSession, service, student_caller, course
    ) -> None:
        course.module.published = False
        await db.flush()

        with pytest.raises(LearningModuleNotFoundError):
            await service.start_module(student_caller, course.module.id)

    @pytest.mark.asyncio
    async def test_staff_cannot_start(self, service, professor_caller, course) -> None:
        with pytest.raises(RoleNotAllowedError):
            await service.start_module(professor_caller, course.module.id)

    @pytest.mark.asyncio
    async def test_unknown_student(self, service, course) -> None:
        caller = Caller(user_id="ghost", role=UserRole.STUDENT, tenant_code=TENANT_CODE)

        with pytest.raises(StudentNotFoundError):
            await service.start_module(caller, course.module.id)


class TestChapters:
    """Tests for chapter start, completion and access checks."""

    @pytest.mark.asyncio
    async def test_start_chapter_starts_module(self, service, student_caller, course) -> None:
        chapter = await service.start_chapter(student_caller, course.chapters[0].id)

        assert chapter.status == ProgressStatus.IN_PROGRESS.value
        assert chapter.chapter_sequence == 1
        modules = await service.list_module_progress(student_caller, ProgressFilter())
        assert [m.module_id for m in modules.items] == [course.module.id]

    @pytest.mark.asyncio
    async def test_second_chapter_locked(self, service, student_caller, course) -> None:
        with pytest.raises(SequenceLockedError) as exc_info:
            await service.start_chapter(student_caller, course.chapters[1].id)

        assert exc_info.value.reason == LockReason.PREVIOUS_CHAPTER_INCOMPLETE
        assert exc_info.value.blocking_items == (course.chapters[0].id,)

    @pytest.mark.asyncio
    async def test_completion_without_quiz_pass_keeps_next_locked(
        self, service, student_caller, course
    ) -> None:
        result = await service.mark_chapter_complete(student_caller, course.chapters[0].id)

        assert result.chapter_progress.status == ProgressStatus.COMPLETED.value
        assert result.chapter_progress.chapter_quiz_completed is False
        assert result.module_progress is not None
        assert result.module_progress.progress_percentage == 0

        access = await service.check_chapter_access(student_caller, course.chapters[1].id)
        assert access.can_access is False
        assert access.reason == LockReason.PREVIOUS_CHAPTER_INCOMPLETE.value
        assert access.message == "Complete the previous chapter and its quiz first."

    @pytest.mark.asyncio
    async def test_passing_chapter_quiz_unlocks_next_chapter(
        self, service, student_caller, course
    ) -> None:
        await pass_chapter(service, student_caller, course, 0)

        access = await service.check_chapter_access(student_caller, course.chapters[1].id)
        modules = await service.list_module_progress(student_caller, ProgressFilter())

        assert access.can_access is True
        assert modules.items[0].progress_percentage == 23
        assert modules.items[0].chapters_completed == 1

    @pytest.mark.asyncio
    async def test_chapter_without_quiz_auto_completes(
        self, db: AsyncSession, service, student_caller, course
    ) -> None:
        module = Module(title="Reading", year=1)
        db.add(module)
        await db.flush()
        chapter = Chapter(module_id=module.id, title="Only chapter", sequence=1)
        db.add(chapter)
        await db.flush()

        result = await service.mark_chapter_complete(student_caller, chapter.id)

        assert result.chapter_progress.chapter_quiz_completed is True
        assert result.chapter_progress.quiz_auto_completed is True
        assert result.module_progress.progress_percentage == 90
        assert result.module_progress.status == ProgressStatus.IN_PROGRESS.value

    @pytest.mark.asyncio
    async def test_missing_chapter(self, service, student_caller, course) -> None:
        with pytest.raises(ChapterNotFoundError):
            await service.start_chapter(student_caller, "missing")

    @pytest.mark.asyncio
    async def test_failed_recalculation_is_scheduled_after_commit(
        self, db: AsyncSession, settings, scheduler, student_caller, course
    ) -> None:
        service = failing_recalculation_service(db, settings, scheduler)

        result = await service.mark_chapter_complete(student_caller, course.chapters[0].id)

        assert result.chapter_progress.status == ProgressStatus.COMPLETED.value
        assert result.module_progress is None
        scheduler.assert_not_called()
        assert pending_after_commit(db) == 1

        await db.commit()

        scheduler.assert_called_once_with(TENANT_CODE, course.student.id, course.module.id)
        assert pending_after_commit(db) == 0

    @pytest.mark.asyncio
    async def test_rolled_back_request_drops_retry(
        self, db: AsyncSession, settings, scheduler, student_caller, course
    ) -> None:
        service = failing_recalculation_service(db, settings, scheduler)

        await service.mark_chapter_complete(student_caller, course.chapters[0].id)
        await db.rollback()
        await db.commit()

        scheduler.assert_not_called()
        assert pending_after_commit(db) == 0


class TestQuizzes:
    """Tests for quiz operations through the service."""

    @pytest.mark.asyncio
    async def test_quiz_access_before_chapter_completion(
        self, service, student_caller, course
    ) -> None:
        access = await service.check_quiz_access(student_caller, course.chapter_groups[0].id)

        assert access.can_access is False
        assert access.reason == LockReason.CHAPTER_NOT_COMPLETED.value
        assert access.blocking_items == [course.chapters[0].id]

    @pytest.mark.asyncio
    async def test_start_quiz_hides_answers(self, service, student_caller, course) -> None:
        await service.mark_chapter_complete(student_caller, course.chapters[0].id)

        started = await service.start_quiz_attempt(student_caller, course.chapter_groups[0].id)

        dumped = started.model_dump()
        assert len(dumped["questions"]) == 2
        assert "answer" not in dumped["questions"][0]
        assert "explanation" not in dumped["questions"][0]

    @pytest.mark.asyncio
    async def test_submission_response(self, service, student_caller, course) -> None:
        group = course.chapter_groups[0]
        await service.mark_chapter_complete(student_caller, course.chapters[0].id)
        await service.start_quiz_attempt(student_caller, group.id)

        result = await service.submit_quiz_answers(
            student_caller,
            SubmitQuizRequest(
                quiz_group_id=group.id,
                answers=[
                    SubmittedAnswer(quiz_id=q.id, selected_answers=["A"])
                    for q in course.quizzes[group.id]
                ],
            ),
        )

        assert result.grading_status == "completed"
        assert result.attempt.is_passed is True
        assert result.grader_degraded is False
        assert len(result.results) == 2

    @pytest.mark.asyncio
    async def test_missing_quiz_group(self, service, student_caller, course) -> None:
        with pytest.raises(QuizGroupNotFoundError):
            await service.start_quiz_attempt(student_caller, "missing")

    @pytest.mark.asyncio
    async def test_list_attempts_filters_by_group(self, service, student_caller, course) -> None:
        await pass_chapter(service, student_caller, course, 0)

        page = await service.list_quiz_attempts(
            student_caller, ProgressFilter(quiz_group_id=course.chapter_groups[0].id)
        )
        empty = await service.list_quiz_attempts(
            student_caller, ProgressFilter(quiz_group_id=course.module_group.id)
        )

        assert page.total == 1
        assert page.items[0].status == "COMPLETED"
        assert empty.total == 0
        assert empty.items == []


class TestListings:
    """Tests for module locks and paginated listings."""

    @pytest.mark.asyncio
    async def test_module_locks(self, db: AsyncSession, service, student_caller, course) -> None:
        later = Module(title="Algebra", year=2, sequence=1)
        db.add(later)
        await db.flush()

        locks = {lock.module_id: lock for lock in await service.list_module_locks(student_caller)}

        assert locks[course.module.id].is_locked is False
        assert locks[course.module.id].status == ProgressStatus.NOT_STARTED.value
        assert locks[course.next_module.id].is_locked is True
        assert locks[course.next_module.id].lock_reason == "PREVIOUS_MODULE_INCOMPLETE"
        assert locks[later.id].lock_reason == "MODULE_FUTURE_YEAR"

    @pytest.mark.asyncio
    async def test_chapter_listing_pagination(self, service, student_caller, course) -> None:
        await service.start_chapter(student_caller, course.chapters[0].id)

        page = await service.list_chapter_progress(student_caller, ProgressFilter(limit=1))
        filtered = await service.list_chapter_progress(
            student_caller, ProgressFilter(status=ProgressStatus.COMPLETED.value)
        )

        assert page.total == 1
        assert page.limit == 1
        assert page.total_pages == 1
        assert filtered.total == 0

    @pytest.mark.asyncio
    async def test_page_size_capped(self, service, student_caller, course) -> None:
        page = await service.list_module_progress(student_caller, ProgressFilter(limit=1000))

        assert page.limit == 100


class TestStudentDashboard:
    """Tests for get_student_dashboard."""

    @pytest.mark.asyncio
    async def test_student_sees_own_dashboard(
        self, db: AsyncSession, service, student_caller, course
    ) -> None:
        db.add(AIFeedback(student_id=course.student.id, summary="Good pace"))
        db.add(
            LearningLogReview(
                student_id=course.student.id,
                professor_id="professor-0001",
                comment="Keep going",
                rating=4,
            )
        )
        await pass_chapter(service, student_caller, course, 0)

        dashboard = await service.get_student_dashboard(student_caller)

        assert dashboard.student_id == course.student.id
        assert dashboard.total_modules == 1
        assert dashboard.in_progress_modules == 1
        assert dashboard.completed_chapters == 1
        assert dashboard.total_quiz_attempts == 1
        assert dashboard.passed_quizzes == 1
        assert dashboard.average_progress == 23.0
        assert [f.summary for f in dashboard.ai_feedback] == ["Good pace"]
        assert [r.comment for r in dashboard.professor_reviews] == ["Keep going"]
        assert dashboard.degraded_sections == []

    @pytest.mark.asyncio
    async def test_failing_enrichment_degrades(self, service, student_caller, course) -> None:
        with patch.object(
            service, "_recent_reviews", AsyncMock(side_effect=SQLAlchemyError("down"))
        ):
            dashboard = await service.get_student_dashboard(student_caller)

        assert dashboard.professor_reviews == []
        assert dashboard.degraded_sections == ["professor_reviews"]

    @pytest.mark.asyncio
    async def test_unexpected_enrichment_error_degrades(
        self, service, student_caller, course
    ) -> None:
        with patch.object(
            service, "_recent_feedback", AsyncMock(side_effect=RuntimeError("pool closed"))
        ):
            dashboard = await service.get_student_dashboard(student_caller)

        assert dashboard.student_id == course.student.id
        assert dashboard.ai_feedback == []
        assert dashboard.degraded_sections == ["ai_feedback"]

    @pytest.mark.asyncio
    async def test_staff_must_name_student(self, service, professor_caller, course) -> None:
        with pytest.raises(MissingParameterError) as exc_info:
            await service.get_student_dashboard(professor_caller)

        assert exc_info.value.parameter == "student_id"

    @pytest.mark.asyncio
    async def test_staff_of_school_sees_student(
        self, service, professor_caller, course
    ) -> None:
        dashboard = await service.get_student_dashboard(professor_caller, course.student.id)

        assert dashboard.student_id == course.student.id
        assert dashboard.total_modules == 0

    @pytest.mark.asyncio
    async def test_staff_of_other_school_rejected(self, service, course) -> None:
        caller = Caller(
            user_id="professor-0002",
            role=UserRole.PROFESSOR,
            tenant_code=TENANT_CODE,
            school_ids=("school-0002",),
        )

        with pytest.raises(CrossSchoolAccessError):
            await service.get_student_dashboard(caller, course.student.id)


class TestSchoolDashboard:
    """Tests for get_school_dashboard."""

    @pytest.mark.asyncio
    async def test_counts_students(
        self, db: AsyncSession, service, student_caller, professor_caller, course
    ) -> None:
        db.add(Student(first_name="Alan", last_name="Turing", year=1, school_id="school-0001"))
        await db.flush()
        await pass_chapter(service, student_caller, course, 0)

        dashboard = await service.get_school_dashboard(professor_caller)

        assert dashboard.total_students == 2
        assert dashboard.active_students == 1
        assert dashboard.not_started == 1
        assert dashboard.in_progress == 1
        assert dashboard.completed == 0
        assert dashboard.student_progress[0].student_name == "Ada Lovelace"
        assert dashboard.student_progress[0].module_title == "Fractions"
        assert len(dashboard.recent_quiz_attempts) == 1

    @pytest.mark.asyncio
    async def test_module_filter(
        self, service, student_caller, professor_caller, course
    ) -> None:
        await service.start_module(student_caller, course.module.id)

        dashboard = await service.get_school_dashboard(
            professor_caller, module_id=course.next_module.id
        )

        assert dashboard.active_students == 0
        assert dashboard.student_progress == []

    @pytest.mark.asyncio
    async def test_student_rejected(self, service, student_caller, course) -> None:
        with pytest.raises(RoleNotAllowedError):
            await service.get_school_dashboard(student_caller)

    @pytest.mark.asyncio
    async def test_super_admin_must_name_school(self, service, course) -> None:
        caller = Caller(user_id="root", role=UserRole.SUPER_ADMIN, tenant_code=TENANT_CODE)

        with pytest.raises(MissingParameterError):
            await service.get_school_dashboard(caller)

    @pytest.mark.asyncio
    async def test_staff_cannot_pick_other_school(
        self, service, professor_caller, course
    ) -> None:
        with pytest.raises(CrossSchoolAccessError):
            await service.get_school_dashboard(professor_caller, school_id="school-0002")
