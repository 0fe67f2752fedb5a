# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Mapping of domain errors to HTTP errors.

Every error body has the shape ``{"code": ..., "message": ...}`` with the
message localized to the caller's language. Sequence lock errors also
carry the lock reason and the blocking item ids.
"""

from typing import Any

from fastapi import HTTPException, status

from src.domains.progress.errors import ErrorCategory, ProgressServiceError, SequenceLockedError
from src.domains.progress.messages import localize
from src.infrastructure.database.tenant_manager import TenantNotFoundError, TenantUnavailableError

STATUS_BY_CATEGORY = {
    ErrorCategory.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCategory.FORBIDDEN: status.HTTP_403_FORBIDDEN,
    ErrorCategory.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorCategory.BAD_REQUEST: status.HTTP_400_BAD_REQUEST,
}


def error_detail(code: str, language: str, message_key: str | None = None, **params: Any) -> dict[str, Any]:
    """Build an error body for a code."""
    return {"code": code, "message": localize(message_key or code, language, **params)}


def progress_error_to_http(error: ProgressServiceError, language: str) -> HTTPException:
    """Convert a progress service error to an HTTPException."""
    detail = error_detail(error.code, language, error.message_key, **error.params)
    if isinstance(error, SequenceLockedError):
        detail["reason"] = error.reason.value
        detail["blocking_items"] = list(error.blocking_items)
    return HTTPException(
        status_code=STATUS_BY_CATEGORY.get(error.category, status.HTTP_400_BAD_REQUEST),
        detail=detail,
    )


def tenant_error_to_http(
    error: TenantNotFoundError | TenantUnavailableError, language: str
) -> HTTPException:
    """Convert a tenant routing error to an HTTPException."""
    if isinstance(error, TenantNotFoundError):
        return HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=error_detail("TENANT_NOT_FOUND", language),
        )
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=error_detail("TENANT_UNAVAILABLE", language),
    )
