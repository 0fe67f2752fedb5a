# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Tenant resolution middleware.

This middleware resolves the tenant context from:
1. JWT token claims (tenant users)
2. X-Tenant-Code header (super admins, who belong to no tenant)

The resolved tenant is stored in request.state for use by dependencies
and bound to the logging context for the duration of the request. It
must run after AuthMiddleware.

Example:
    # Super admin request with header
    GET /api/v1/progress/dashboard?student_id=...
    X-Tenant-Code: lycee_hugo
"""

import logging
from typing import Callable
from uuid import uuid4

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from src.api.middleware.auth import get_current_user
from src.utils.logging import bind_context, clear_context

logger = logging.getLogger(__name__)

# Header name for tenant code
TENANT_HEADER = "X-Tenant-Code"

# Header carrying a caller supplied request id
REQUEST_ID_HEADER = "X-Request-ID"


class TenantContext:
    """Tenant context resolved from request.

    Attributes:
        code: Tenant code string.
        source: Where the code came from ("token" or "header").
    """

    def __init__(self, code: str, source: str) -> None:
        self.code = code
        self.source = source

    def __repr__(self) -> str:
        return f"TenantContext(code={self.code!r}, source={self.source!r})"


class TenantMiddleware(BaseHTTPMiddleware):
    """Middleware for tenant resolution.

    Tenant users are always served from the tenant in their token; a
    header naming another tenant is ignored. Super admins name the tenant
    with the X-Tenant-Code header.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Response],
    ) -> Response:
        """Resolve the tenant and bind the logging context.

        Args:
            request: Incoming HTTP request.
            call_next: Next middleware/handler.

        Returns:
            HTTP response.
        """
        request.state.tenant = self._resolve(request)

        clear_context()
        user = get_current_user(request)
        bind_context(
            request_id=request.headers.get(REQUEST_ID_HEADER) or uuid4().hex,
            path=request.url.path,
            tenant_code=request.state.tenant.code if request.state.tenant else None,
            user_id=user.id if user else None,
        )
        try:
            return await call_next(request)
        finally:
            clear_context()

    def _resolve(self, request: Request) -> TenantContext | None:
        user = get_current_user(request)
        if user is None:
            return None

        if user.is_super_admin:
            header_code = request.headers.get(TENANT_HEADER)
            if header_code:
                return TenantContext(code=header_code.strip().lower(), source="header")
            return None

        if user.tenant_code:
            header_code = request.headers.get(TENANT_HEADER)
            if header_code and header_code.strip().lower() != user.tenant_code:
                logger.warning(
                    "Ignoring tenant header %s for user %s of tenant %s",
                    header_code,
                    user.id,
                    user.tenant_code,
                )
            return TenantContext(code=user.tenant_code, source="token")

        return None


def get_tenant_from_request(request: Request) -> TenantContext | None:
    """Get tenant context from request state.

    Args:
        request: HTTP request with state.

    Returns:
        TenantContext or None if not resolved.
    """
    return getattr(request.state, "tenant", None)
