# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Data access for content lookups and progress row upserts.

Progress rows are created lazily. Creation runs inside a savepoint so a
concurrent insert of the same (student, item) pair, which trips the
unique constraint, only rolls back the savepoint; the winner's row is
then re-read.
"""

import logging
from typing import Any, Callable, TypeVar

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.infrastructure.database.models.tenant import (
    AttemptStatus,
    Chapter,
    Module,
    ProgressStatus,
    Quiz,
    QuizGroup,
    Student,
    StudentChapterProgress,
    StudentModuleProgress,
    StudentQuizAttempt,
)

logger = logging.getLogger(__name__)

RowT = TypeVar("RowT")


class ProgressRepository:
    """Queries shared by the progress service and the grading pipeline.

    Attributes:
        db: Async tenant database session.
    """

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    # =========================================================================
    # Content
    # =========================================================================

    async def get_student(self, student_id: str) -> Student | None:
        result = await self.db.execute(
            select(Student).where(Student.id == student_id, Student.deleted_at.is_(None))
        )
        return result.scalar_one_or_none()

    async def get_module(self, module_id: str) -> Module | None:
        """Get a published, non-deleted module."""
        result = await self.db.execute(
            select(Module).where(
                Module.id == module_id,
                Module.deleted_at.is_(None),
                Module.published.is_(True),
            )
        )
        return result.scalar_one_or_none()

    async def list_modules(self, year: int | None = None) -> list[Module]:
        """List published, non-deleted modules ordered by year and sequence."""
        query = select(Module).where(Module.deleted_at.is_(None), Module.published.is_(True))
        if year is not None:
            query = query.where(Module.year == year)
        query = query.order_by(Module.year, Module.sequence, Module.title)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def get_chapter(self, chapter_id: str) -> Chapter | None:
        result = await self.db.execute(
            select(Chapter).where(Chapter.id == chapter_id, Chapter.deleted_at.is_(None))
        )
        return result.scalar_one_or_none()

    async def list_chapters(self, module_id: str) -> list[Chapter]:
        """List the non-deleted chapters of a module in sequence order."""
        result = await self.db.execute(
            select(Chapter)
            .where(Chapter.module_id == module_id, Chapter.deleted_at.is_(None))
            .order_by(Chapter.sequence)
        )
        return list(result.scalars().all())

    async def count_chapter_quiz_groups(self, chapter_id: str) -> int:
        result = await self.db.execute(
            select(func.count(QuizGroup.id)).where(
                QuizGroup.chapter_id == chapter_id,
                QuizGroup.deleted_at.is_(None),
            )
        )
        return result.scalar_one()

    async def get_quiz_group(self, quiz_group_id: str) -> QuizGroup | None:
        result = await self.db.execute(
            select(QuizGroup).where(
                QuizGroup.id == quiz_group_id,
                QuizGroup.deleted_at.is_(None),
            )
        )
        return result.scalar_one_or_none()

    async def list_quizzes(self, quiz_group_id: str) -> list[Quiz]:
        result = await self.db.execute(
            select(Quiz)
            .where(Quiz.quiz_group_id == quiz_group_id, Quiz.deleted_at.is_(None))
            .order_by(Quiz.sequence)
        )
        return list(result.scalars().all())

    # =========================================================================
    # Progress rows
    # =========================================================================

    async def get_module_progress(
        self, student_id: str, module_id: str
    ) -> StudentModuleProgress | None:
        result = await self.db.execute(
            select(StudentModuleProgress).where(
                StudentModuleProgress.student_id == student_id,
                StudentModuleProgress.module_id == module_id,
            )
        )
        return result.scalar_one_or_none()

    async def get_chapter_progress(
        self, student_id: str, chapter_id: str
    ) -> StudentChapterProgress | None:
        result = await self.db.execute(
            select(StudentChapterProgress).where(
                StudentChapterProgress.student_id == student_id,
                StudentChapterProgress.chapter_id == chapter_id,
            )
        )
        return result.scalar_one_or_none()

    async def get_or_create_module_progress(
        self, student_id: str, module_id: str
    ) -> StudentModuleProgress:
        """Get the module progress row, creating it if missing."""
        return await self._get_or_create(
            lambda: self.get_module_progress(student_id, module_id),
            lambda: StudentModuleProgress(student_id=student_id, module_id=module_id),
        )

    async def get_or_create_chapter_progress(
        self, student_id: str, chapter: Chapter
    ) -> StudentChapterProgress:
        """Get the chapter progress row, creating it if missing."""
        return await self._get_or_create(
            lambda: self.get_chapter_progress(student_id, chapter.id),
            lambda: StudentChapterProgress(
                student_id=student_id,
                chapter_id=chapter.id,
                module_id=chapter.module_id,
                chapter_sequence=chapter.sequence,
            ),
        )

    async def _get_or_create(
        self,
        fetch: Callable[[], Any],
        build: Callable[[], RowT],
    ) -> RowT:
        existing = await fetch()
        if existing is not None:
            return existing

        row = build()
        try:
            async with self.db.begin_nested():
                self.db.add(row)
                await self.db.flush()
        except IntegrityError:
            logger.debug("Concurrent insert detected for %s, re-reading", type(row).__name__)
            existing = await fetch()
            if existing is None:
                raise
            return existing
        return row

    async def completed_chapter_ids(
        self,
        student_id: str,
        module_id: str,
        require_completed_status: bool = False,
    ) -> set[str]:
        """Ids of chapters of a module whose quiz the student completed.

        Args:
            require_completed_status: Also require the chapter row itself
                to be marked COMPLETED.
        """
        query = select(StudentChapterProgress.chapter_id).where(
            StudentChapterProgress.student_id == student_id,
            StudentChapterProgress.module_id == module_id,
            StudentChapterProgress.chapter_quiz_completed.is_(True),
        )
        if require_completed_status:
            query = query.where(StudentChapterProgress.status == ProgressStatus.COMPLETED.value)
        result = await self.db.execute(query)
        return set(result.scalars().all())

    async def module_ids_at_or_above(
        self, student_id: str, threshold: float
    ) -> set[str]:
        """Ids of modules where the student's progress reached a threshold."""
        result = await self.db.execute(
            select(StudentModuleProgress.module_id).where(
                StudentModuleProgress.student_id == student_id,
                StudentModuleProgress.progress_percentage >= threshold,
            )
        )
        return set(result.scalars().all())

    # =========================================================================
    # Attempts
    # =========================================================================

    async def get_in_progress_attempt(
        self, student_id: str, quiz_group_id: str
    ) -> StudentQuizAttempt | None:
        result = await self.db.execute(
            select(StudentQuizAttempt).where(
                StudentQuizAttempt.student_id == student_id,
                StudentQuizAttempt.quiz_group_id == quiz_group_id,
                StudentQuizAttempt.status == AttemptStatus.IN_PROGRESS.value,
            )
        )
        return result.scalar_one_or_none()

    async def last_attempt_number(self, student_id: str, quiz_group_id: str) -> int:
        result = await self.db.execute(
            select(func.max(StudentQuizAttempt.attempt_number)).where(
                StudentQuizAttempt.student_id == student_id,
                StudentQuizAttempt.quiz_group_id == quiz_group_id,
            )
        )
        return result.scalar_one_or_none() or 0
