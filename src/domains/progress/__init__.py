# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Progress domain for LearnPath.

This domain tracks learner progress through modules, chapters and quizzes
and enforces the order in which content unlocks.

Example:
    from src.domains.progress import ProgressService

    service = ProgressService(db=session, tenant_code="lycee_hugo")
    progress = await service.start_module(caller, module_id)
"""

from src.domains.progress.aggregator import (
    ProgressAggregator,
    RecalculationResult,
    compute_progress_percentage,
)
from src.domains.progress.caller import Caller, UserRole
from src.domains.progress.errors import (
    AttemptAlreadyCompletedError,
    ChapterNotFoundError,
    CrossSchoolAccessError,
    ErrorCategory,
    LearningModuleNotFoundError,
    MissingParameterError,
    NoActiveAttemptError,
    ProgressServiceError,
    QuizGroupNotFoundError,
    RoleNotAllowedError,
    SequenceLockedError,
    StudentNotFoundError,
)
from src.domains.progress.grading import AttemptGradingPipeline
from src.domains.progress.messages import localize, normalize_language
from src.domains.progress.sequence import Allowed, Denied, LockReason, SequencedItem
from src.domains.progress.service import ProgressService

__all__ = [
    # Service
    "ProgressService",
    "ProgressAggregator",
    "AttemptGradingPipeline",
    "RecalculationResult",
    "compute_progress_percentage",
    # Caller
    "Caller",
    "UserRole",
    # Sequence
    "LockReason",
    "SequencedItem",
    "Allowed",
    "Denied",
    # Messages
    "localize",
    "normalize_language",
    # Errors
    "ErrorCategory",
    "ProgressServiceError",
    "StudentNotFoundError",
    "LearningModuleNotFoundError",
    "ChapterNotFoundError",
    "QuizGroupNotFoundError",
    "NoActiveAttemptError",
    "RoleNotAllowedError",
    "CrossSchoolAccessError",
    "SequenceLockedError",
    "AttemptAlreadyCompletedError",
    "MissingParameterError",
]
