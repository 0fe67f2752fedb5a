# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""API middleware package.

Middleware:
    AuthMiddleware: JWT token validation.
    TenantMiddleware: Tenant resolution and logging context.
"""

from src.api.middleware.auth import AuthMiddleware, CurrentUser, get_current_user
from src.api.middleware.tenant import TenantContext, TenantMiddleware, get_tenant_from_request

__all__ = [
    "AuthMiddleware",
    "CurrentUser",
    "get_current_user",
    "TenantMiddleware",
    "TenantContext",
    "get_tenant_from_request",
]
