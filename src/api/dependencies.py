# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""FastAPI dependency injection definitions.

This module provides dependency functions for FastAPI endpoints.
Dependencies are used to:
- Get tenant database sessions
- Get the authenticated caller
- Get the AI grader client

Example:
    @router.get("/dashboard")
    async def dashboard(
        caller: Caller = Depends(get_caller),
        db: AsyncSession = Depends(get_tenant_db),
    ):
        ...
"""

import logging
from typing import AsyncGenerator

from fastapi import HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.errors import error_detail, tenant_error_to_http
from src.api.middleware.auth import CurrentUser, get_current_user
from src.api.middleware.tenant import TenantContext, get_tenant_from_request
from src.core.config import get_settings
from src.domains.progress.caller import Caller, UserRole
from src.domains.progress.messages import normalize_language
from src.infrastructure.database.tenant_manager import (
    TenantDatabaseManager,
    TenantNotFoundError,
    TenantUnavailableError,
)
from src.infrastructure.grading import AIGraderClient

logger = logging.getLogger(__name__)

# Tenant database manager singleton
_tenant_db_manager: TenantDatabaseManager | None = None

# AI grader client singleton
_grader_client: AIGraderClient | None = None


async def init_db() -> None:
    """Initialize the tenant database manager."""
    global _tenant_db_manager
    _tenant_db_manager = TenantDatabaseManager(get_settings())


async def close_db() -> None:
    """Close all tenant database connections."""
    global _tenant_db_manager

    if _tenant_db_manager:
        await _tenant_db_manager.close_all()
        _tenant_db_manager = None


def init_grader() -> None:
    """Create the AI grader client."""
    global _grader_client
    _grader_client = AIGraderClient(get_settings().grader)


async def close_grader() -> None:
    """Close the AI grader client."""
    global _grader_client

    if _grader_client:
        await _grader_client.close()
        _grader_client = None


def get_tenant_db_manager() -> TenantDatabaseManager:
    """Get the tenant database manager.

    Raises:
        HTTPException: If the manager is not initialized.
    """
    if not _tenant_db_manager:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Tenant database manager not initialized",
        )
    return _tenant_db_manager


def get_grader() -> AIGraderClient | None:
    """Get the AI grader client, None when not initialized."""
    return _grader_client


def request_language(request: Request) -> str:
    """Language for messages: token preference, then Accept-Language."""
    default = get_settings().default_language
    user = get_current_user(request)
    if user and user.preferred_language:
        return normalize_language(user.preferred_language, default)
    accept = request.headers.get("Accept-Language")
    if accept:
        return normalize_language(accept.split(",")[0].strip(), default)
    return default


def require_auth(request: Request) -> CurrentUser:
    """Require authenticated user.

    Raises:
        HTTPException: If not authenticated.
    """
    user = get_current_user(request)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


def require_tenant(request: Request) -> TenantContext:
    """Require a resolved tenant.

    Raises:
        HTTPException: If no tenant could be resolved from the request.
    """
    require_auth(request)
    tenant = get_tenant_from_request(request)
    if not tenant:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=error_detail(
                "MISSING_PARAMETER",
                request_language(request),
                parameter="tenant_code",
            ),
        )
    return tenant


def get_caller(request: Request) -> Caller:
    """Build the progress service caller from the request.

    Raises:
        HTTPException: If not authenticated, the role is unknown, or no
            tenant could be resolved.
    """
    user = require_auth(request)
    tenant = require_tenant(request)
    language = request_language(request)

    try:
        role = UserRole(user.user_type)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=error_detail("ROLE_NOT_ALLOWED", language),
        )

    return Caller(
        user_id=user.id,
        role=role,
        tenant_code=tenant.code,
        school_ids=tuple(user.school_ids),
        language=language,
    )


async def get_tenant_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """Get tenant database session.

    Resolves tenant from request and returns a session for that tenant's
    database. The session commits when the endpoint succeeds.

    Raises:
        HTTPException: 400 without tenant context, 404 for an unknown
            tenant, 503 when the tenant database is unreachable.
    """
    tenant = require_tenant(request)
    manager = get_tenant_db_manager()

    try:
        await manager.get_engine(tenant.code)
    except (TenantNotFoundError, TenantUnavailableError) as e:
        logger.warning("Tenant routing failed: %s", e)
        raise tenant_error_to_http(e, request_language(request))

    async with manager.get_session(tenant.code) as session:
        yield session
