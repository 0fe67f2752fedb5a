# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Progress tracking API endpoints.

This module provides endpoints for learner progress:
- POST /modules/start - Start a module
- POST /chapters/start - Start a chapter
- POST /chapters/complete - Mark a chapter completed
- POST /quiz/start - Start (or resume) a quiz attempt
- POST /quiz/submit - Submit quiz answers for grading
- GET /modules - List module progress
- GET /modules/locks - List modules with their lock state
- GET /chapters - List chapter progress
- GET /quiz-attempts - List quiz attempts
- GET /chapters/{chapter_id}/can-access - Check chapter access
- GET /quiz/{quiz_group_id}/can-access - Check quiz access
- GET /dashboard - Student dashboard
- GET /admin/dashboard - School dashboard for staff

Example:
    POST /api/v1/progress/quiz/submit
    {
        "quiz_group_id": "5b0c...",
        "answers": [{"quiz_id": "9e1d...", "selected_answers": ["B"]}],
        "time_taken_seconds": 240
    }
"""

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import get_caller, get_grader, get_tenant_db
from src.api.errors import progress_error_to_http
from src.domains.progress.caller import Caller
from src.domains.progress.errors import ProgressServiceError
from src.domains.progress.service import ProgressService
from src.infrastructure.grading import AIGraderClient
from src.models.progress import (
    AccessCheckResponse,
    ChapterCompletionResponse,
    ChapterProgressResponse,
    CompleteChapterRequest,
    ModuleLockResponse,
    ModuleProgressResponse,
    Page,
    ProgressFilter,
    QuizAttemptResponse,
    QuizAttemptStartResponse,
    QuizSubmissionResponse,
    SchoolDashboardResponse,
    StartChapterRequest,
    StartModuleRequest,
    StartQuizRequest,
    StudentDashboardResponse,
    SubmitQuizRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _get_service(
    db: AsyncSession,
    caller: Caller,
    grader: AIGraderClient | None = None,
) -> ProgressService:
    """Get progress service instance.

    Args:
        db: Tenant database session.
        caller: Authenticated caller.
        grader: AI grader client, only needed for submissions.

    Returns:
        Configured ProgressService instance.
    """
    return ProgressService(db=db, tenant_code=caller.tenant_code, grader=grader)


def _to_http(error: ProgressServiceError, caller: Caller) -> HTTPException:
    logger.info("Progress request rejected: code=%s, user=%s", error.code, caller.user_id)
    return progress_error_to_http(error, caller.language)


def get_progress_filter(
    module_id: str | None = Query(None, description="Filter by module"),
    chapter_id: str | None = Query(None, description="Filter by chapter"),
    quiz_group_id: str | None = Query(None, description="Filter by quiz group"),
    status: str | None = Query(None, description="Filter by status"),
    from_date: datetime | None = Query(None, description="Lower date bound"),
    to_date: datetime | None = Query(None, description="Upper date bound"),
    page: int = Query(1, ge=1, description="Page number"),
    limit: int | None = Query(None, ge=1, description="Page size"),
) -> ProgressFilter:
    """Collect listing filters from the query string."""
    return ProgressFilter(
        module_id=module_id,
        chapter_id=chapter_id,
        quiz_group_id=quiz_group_id,
        status=status,
        from_date=from_date,
        to_date=to_date,
        page=page,
        limit=limit,
    )


# =========================================================================
# Learner actions
# =========================================================================


@router.post(
    "/modules/start",
    response_model=ModuleProgressResponse,
    summary="Start module",
    description="Start or resume a module. The module must be unlocked.",
)
async def start_module(
    data: StartModuleRequest,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_tenant_db),
) -> ModuleProgressResponse:
    """Start or resume a module."""
    service = _get_service(db, caller)
    try:
        return await service.start_module(caller, data.module_id)
    except ProgressServiceError as e:
        raise _to_http(e, caller)


@router.post(
    "/chapters/start",
    response_model=ChapterProgressResponse,
    summary="Start chapter",
    description="Start or resume a chapter, starting its module if needed.",
)
async def start_chapter(
    data: StartChapterRequest,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_tenant_db),
) -> ChapterProgressResponse:
    """Start or resume a chapter."""
    service = _get_service(db, caller)
    try:
        return await service.start_chapter(caller, data.chapter_id)
    except ProgressServiceError as e:
        raise _to_http(e, caller)


@router.post(
    "/chapters/complete",
    response_model=ChapterCompletionResponse,
    summary="Complete chapter",
    description="Mark a chapter completed and recalculate module progress.",
)
async def complete_chapter(
    data: CompleteChapterRequest,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_tenant_db),
) -> ChapterCompletionResponse:
    """Mark a chapter completed."""
    service = _get_service(db, caller)
    try:
        return await service.mark_chapter_complete(caller, data.chapter_id)
    except ProgressServiceError as e:
        raise _to_http(e, caller)


@router.post(
    "/quiz/start",
    response_model=QuizAttemptStartResponse,
    summary="Start quiz attempt",
    description="Start a quiz attempt, or return the attempt already in progress.",
)
async def start_quiz(
    data: StartQuizRequest,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_tenant_db),
) -> QuizAttemptStartResponse:
    """Start or resume a quiz attempt."""
    service = _get_service(db, caller)
    try:
        return await service.start_quiz_attempt(caller, data.quiz_group_id)
    except ProgressServiceError as e:
        raise _to_http(e, caller)


@router.post(
    "/quiz/submit",
    response_model=QuizSubmissionResponse,
    summary="Submit quiz answers",
    description=(
        "Grade the attempt in progress. When the grading service is "
        "unavailable the attempt completes with a score of zero."
    ),
)
async def submit_quiz(
    data: SubmitQuizRequest,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_tenant_db),
    grader: AIGraderClient | None = Depends(get_grader),
) -> QuizSubmissionResponse:
    """Submit quiz answers."""
    service = _get_service(db, caller, grader)
    try:
        return await service.submit_quiz_answers(caller, data)
    except ProgressServiceError as e:
        raise _to_http(e, caller)


# =========================================================================
# Listings
# =========================================================================


@router.get(
    "/modules",
    response_model=Page[ModuleProgressResponse],
    summary="List module progress",
)
async def list_module_progress(
    filters: ProgressFilter = Depends(get_progress_filter),
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_tenant_db),
) -> Page[ModuleProgressResponse]:
    """List the student's module progress."""
    service = _get_service(db, caller)
    try:
        return await service.list_module_progress(caller, filters)
    except ProgressServiceError as e:
        raise _to_http(e, caller)


@router.get(
    "/modules/locks",
    response_model=list[ModuleLockResponse],
    summary="List module locks",
    description="List published modules with their lock state for the student.",
)
async def list_module_locks(
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_tenant_db),
) -> list[ModuleLockResponse]:
    """List module lock states."""
    service = _get_service(db, caller)
    try:
        return await service.list_module_locks(caller)
    except ProgressServiceError as e:
        raise _to_http(e, caller)


@router.get(
    "/chapters",
    response_model=Page[ChapterProgressResponse],
    summary="List chapter progress",
)
async def list_chapter_progress(
    filters: ProgressFilter = Depends(get_progress_filter),
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_tenant_db),
) -> Page[ChapterProgressResponse]:
    """List the student's chapter progress."""
    service = _get_service(db, caller)
    try:
        return await service.list_chapter_progress(caller, filters)
    except ProgressServiceError as e:
        raise _to_http(e, caller)


@router.get(
    "/quiz-attempts",
    response_model=Page[QuizAttemptResponse],
    summary="List quiz attempts",
)
async def list_quiz_attempts(
    filters: ProgressFilter = Depends(get_progress_filter),
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_tenant_db),
) -> Page[QuizAttemptResponse]:
    """List the student's quiz attempts."""
    service = _get_service(db, caller)
    try:
        return await service.list_quiz_attempts(caller, filters)
    except ProgressServiceError as e:
        raise _to_http(e, caller)


# =========================================================================
# Access checks
# =========================================================================


@router.get(
    "/chapters/{chapter_id}/can-access",
    response_model=AccessCheckResponse,
    summary="Check chapter access",
)
async def check_chapter_access(
    chapter_id: str,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_tenant_db),
) -> AccessCheckResponse:
    """Tell whether the student may open a chapter."""
    service = _get_service(db, caller)
    try:
        return await service.check_chapter_access(caller, chapter_id)
    except ProgressServiceError as e:
        raise _to_http(e, caller)


@router.get(
    "/quiz/{quiz_group_id}/can-access",
    response_model=AccessCheckResponse,
    summary="Check quiz access",
)
async def check_quiz_access(
    quiz_group_id: str,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_tenant_db),
) -> AccessCheckResponse:
    """Tell whether the student may start a quiz."""
    service = _get_service(db, caller)
    try:
        return await service.check_quiz_access(caller, quiz_group_id)
    except ProgressServiceError as e:
        raise _to_http(e, caller)


# =========================================================================
# Dashboards
# =========================================================================


@router.get(
    "/dashboard",
    response_model=StudentDashboardResponse,
    summary="Student dashboard",
    description=(
        "Students get their own dashboard. Staff and super admins must "
        "pass student_id."
    ),
)
async def get_student_dashboard(
    student_id: str | None = Query(None, description="Student to inspect (staff only)"),
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_tenant_db),
) -> StudentDashboardResponse:
    """Get a student dashboard."""
    service = _get_service(db, caller)
    try:
        return await service.get_student_dashboard(caller, student_id)
    except ProgressServiceError as e:
        raise _to_http(e, caller)


@router.get(
    "/admin/dashboard",
    response_model=SchoolDashboardResponse,
    summary="School dashboard",
    description="Progress overview of the caller's schools.",
)
async def get_school_dashboard(
    module_id: str | None = Query(None, description="Restrict to one module"),
    school_id: str | None = Query(None, description="Restrict to one school"),
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_tenant_db),
) -> SchoolDashboardResponse:
    """Get the school progress dashboard."""
    service = _get_service(db, caller)
    try:
        return await service.get_school_dashboard(caller, module_id, school_id)
    except ProgressServiceError as e:
        raise _to_http(e, caller)
