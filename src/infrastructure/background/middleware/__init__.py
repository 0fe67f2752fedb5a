# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Background processing middleware for LearnPath.

Provides Dramatiq middleware for tenant context propagation.
"""

from src.infrastructure.background.middleware.tenant import (
    TenantMiddleware,
    get_current_tenant,
    set_current_tenant,
)

__all__ = [
    "TenantMiddleware",
    "get_current_tenant",
    "set_current_tenant",
]
