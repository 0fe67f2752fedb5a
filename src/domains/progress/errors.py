# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Progress service exceptions.

Every learner-facing error carries a stable code and a category. The API
layer maps the category to an HTTP status and localizes the code into a
message (see messages.py).
"""

from enum import Enum
from typing import Any

from src.domains.progress.sequence import LockReason


class ErrorCategory(str, Enum):
    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"
    CONFLICT = "conflict"
    BAD_REQUEST = "bad_request"


class ProgressServiceError(Exception):
    """Base exception for progress service errors.

    Attributes:
        code: Stable machine readable code, also the message key.
        category: Error family used for HTTP mapping.
        params: Values interpolated into the localized message.
    """

    code = "PROGRESS_ERROR"
    category = ErrorCategory.BAD_REQUEST

    def __init__(self, message: str | None = None, **params: Any) -> None:
        super().__init__(message or self.code)
        self.params = params

    @property
    def message_key(self) -> str:
        return self.code


class StudentNotFoundError(ProgressServiceError):
    """Raised when the student record does not exist."""

    code = "STUDENT_NOT_FOUND"
    category = ErrorCategory.NOT_FOUND


class LearningModuleNotFoundError(ProgressServiceError):
    """Raised when a module does not exist, is deleted or unpublished."""

    code = "MODULE_NOT_FOUND"
    category = ErrorCategory.NOT_FOUND


class ChapterNotFoundError(ProgressServiceError):
    """Raised when a chapter does not exist or is deleted."""

    code = "CHAPTER_NOT_FOUND"
    category = ErrorCategory.NOT_FOUND


class QuizGroupNotFoundError(ProgressServiceError):
    """Raised when a quiz group does not exist or is deleted."""

    code = "QUIZ_GROUP_NOT_FOUND"
    category = ErrorCategory.NOT_FOUND


class NoActiveAttemptError(ProgressServiceError):
    """Raised when answers are submitted without an in-progress attempt."""

    code = "NO_IN_PROGRESS_QUIZ_ATTEMPT_FOUND"
    category = ErrorCategory.NOT_FOUND


class RoleNotAllowedError(ProgressServiceError):
    """Raised when the caller's role may not perform the operation."""

    code = "ROLE_NOT_ALLOWED"
    category = ErrorCategory.FORBIDDEN


class CrossSchoolAccessError(ProgressServiceError):
    """Raised when staff look at a student from another school."""

    code = "CROSS_SCHOOL_ACCESS"
    category = ErrorCategory.FORBIDDEN


class SequenceLockedError(ProgressServiceError):
    """Raised when sequence gating denies access.

    Attributes:
        reason: Lock reason from the sequence evaluator.
        blocking_items: Ids of the items to complete first.
    """

    code = "SEQUENCE_LOCKED"
    category = ErrorCategory.FORBIDDEN

    def __init__(self, reason: LockReason, blocking_items: tuple[str, ...] = ()) -> None:
        super().__init__(f"Access locked: {reason.value}")
        self.reason = reason
        self.blocking_items = blocking_items

    @property
    def message_key(self) -> str:
        return self.reason.value


class AttemptAlreadyCompletedError(ProgressServiceError):
    """Raised when a concurrent submission already completed the attempt."""

    code = "ATTEMPT_ALREADY_COMPLETED"
    category = ErrorCategory.CONFLICT


class MissingParameterError(ProgressServiceError):
    """Raised when a role requires a parameter the caller did not send."""

    code = "MISSING_PARAMETER"
    category = ErrorCategory.BAD_REQUEST

    def __init__(self, parameter: str) -> None:
        super().__init__(f"Missing parameter: {parameter}", parameter=parameter)
        self.parameter = parameter
