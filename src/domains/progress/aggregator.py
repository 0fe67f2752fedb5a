# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Module progress aggregation.

A module's progress percentage is derived from its chapters and its
module quiz:

    progress = min(100, round(chapters_completed / total_chapters * 90)
                        + (10 if module_quiz_completed else 0))

A chapter counts as completed once its quiz is completed (or auto
completed because the chapter has no quiz). Only non-deleted chapters
count. Recalculation is idempotent: running it twice leaves the row
unchanged.

Usage:
    from src.domains.progress.aggregator import ProgressAggregator

    aggregator = ProgressAggregator()
    progress = await aggregator.recalculate_module_progress(db, student_id, module_id)

    # Maintenance: recompute every module row of a tenant
    result = await aggregator.recalculate_all(db)
"""

import logging
import math
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.infrastructure.database.models.tenant import (
    Chapter,
    ProgressStatus,
    StudentChapterProgress,
    StudentModuleProgress,
)
from src.utils.datetime import utc_now

logger = logging.getLogger(__name__)

CHAPTER_WEIGHT = 90
MODULE_QUIZ_WEIGHT = 10


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for positives."""
    return int(math.floor(value + 0.5))


def compute_progress_percentage(
    chapters_completed: int,
    total_chapters: int,
    module_quiz_completed: bool,
) -> int:
    """Compute a module progress percentage.

    Args:
        chapters_completed: Chapters whose quiz is completed.
        total_chapters: Non-deleted chapters of the module.
        module_quiz_completed: Whether the module quiz was passed.

    Returns:
        Percentage in [0, 100].
    """
    chapter_share = 0
    if total_chapters > 0:
        chapter_share = round_half_up(chapters_completed / total_chapters * CHAPTER_WEIGHT)
    quiz_share = MODULE_QUIZ_WEIGHT if module_quiz_completed else 0
    return min(100, chapter_share + quiz_share)


class RecalculationResult:
    """Result of a bulk recalculation.

    Attributes:
        rows_processed: Module progress rows examined.
        rows_changed: Rows whose derived fields changed.
    """

    def __init__(self, rows_processed: int = 0, rows_changed: int = 0) -> None:
        self.rows_processed = rows_processed
        self.rows_changed = rows_changed

    def to_dict(self) -> dict[str, Any]:
        return {
            "rows_processed": self.rows_processed,
            "rows_changed": self.rows_changed,
        }


class ProgressAggregator:
    """Recomputes module progress rows from chapter and quiz records."""

    async def count_chapters(self, db: AsyncSession, module_id: str) -> int:
        """Count the non-deleted chapters of a module."""
        result = await db.execute(
            select(func.count(Chapter.id)).where(
                Chapter.module_id == module_id,
                Chapter.deleted_at.is_(None),
            )
        )
        return result.scalar_one()

    async def count_completed_chapters(
        self,
        db: AsyncSession,
        student_id: str,
        module_id: str,
    ) -> int:
        """Count chapters of a module whose quiz the student completed."""
        result = await db.execute(
            select(func.count(StudentChapterProgress.id))
            .join(Chapter, Chapter.id == StudentChapterProgress.chapter_id)
            .where(
                StudentChapterProgress.student_id == student_id,
                Chapter.module_id == module_id,
                Chapter.deleted_at.is_(None),
                StudentChapterProgress.chapter_quiz_completed.is_(True),
            )
        )
        return result.scalar_one()

    async def recalculate_module_progress(
        self,
        db: AsyncSession,
        student_id: str,
        module_id: str,
    ) -> StudentModuleProgress | None:
        """Recompute one student's progress in one module.

        Args:
            db: Tenant database session.
            student_id: Student identifier.
            module_id: Module identifier.

        Returns:
            The updated progress row, or None if the student has no row
            for this module.
        """
        result = await db.execute(
            select(StudentModuleProgress).where(
                StudentModuleProgress.student_id == student_id,
                StudentModuleProgress.module_id == module_id,
            )
        )
        progress = result.scalar_one_or_none()
        if progress is None:
            logger.debug(
                "No module progress to recalculate: student=%s, module=%s",
                student_id,
                module_id,
            )
            return None

        await self._apply(db, progress)
        await db.flush()
        return progress

    async def _apply(self, db: AsyncSession, progress: StudentModuleProgress) -> bool:
        """Recompute derived fields on a loaded row. Returns True if changed."""
        total = await self.count_chapters(db, progress.module_id)
        completed = await self.count_completed_chapters(
            db, progress.student_id, progress.module_id
        )
        percentage = compute_progress_percentage(
            completed, total, progress.module_quiz_completed
        )
        status = (
            ProgressStatus.COMPLETED.value
            if percentage >= 100
            else ProgressStatus.IN_PROGRESS.value
        )

        changed = (
            progress.total_chapters != total
            or progress.chapters_completed != completed
            or progress.progress_percentage != percentage
            or progress.status != status
        )

        progress.total_chapters = total
        progress.chapters_completed = completed
        progress.progress_percentage = percentage
        progress.status = status

        if status == ProgressStatus.COMPLETED.value:
            if progress.completed_at is None:
                progress.completed_at = utc_now()
        else:
            progress.completed_at = None

        if changed:
            logger.info(
                "Module progress recalculated: student=%s, module=%s, %d/%d chapters, %d%%",
                progress.student_id,
                progress.module_id,
                completed,
                total,
                percentage,
            )
        return changed

    async def recalculate_all(self, db: AsyncSession) -> RecalculationResult:
        """Recompute every module progress row of the tenant."""
        result = RecalculationResult()
        rows = await db.execute(select(StudentModuleProgress))

        for progress in rows.scalars().all():
            result.rows_processed += 1
            if await self._apply(db, progress):
                result.rows_changed += 1

        await db.flush()
        logger.info(
            "Recalculated %d module progress rows (%d changed)",
            result.rows_processed,
            result.rows_changed,
        )
        return result
