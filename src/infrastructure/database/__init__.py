# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Database infrastructure.

Each tenant (school) owns an isolated database. TenantDatabaseManager
resolves a tenant code to a cached async engine and hands out sessions.

Example:
    from src.infrastructure.database import TenantDatabaseManager

    tenant_manager = TenantDatabaseManager(settings)
    async with tenant_manager.get_session("lycee_hugo") as session:
        result = await session.execute(select(Module))
"""

from src.infrastructure.database.hooks import pending_after_commit, run_after_commit
from src.infrastructure.database.tenant_manager import (
    TenantConnection,
    TenantDatabaseManager,
    TenantNotFoundError,
    TenantUnavailableError,
    _clear_thread_db_connections,
    get_worker_db_manager,
    reset_worker_db_manager,
    set_worker_db_manager,
)

__all__ = [
    # Tenant database
    "TenantConnection",
    "TenantDatabaseManager",
    "TenantNotFoundError",
    "TenantUnavailableError",
    # Deferred work
    "run_after_commit",
    "pending_after_commit",
    # Worker thread-local manager
    "get_worker_db_manager",
    "set_worker_db_manager",
    "reset_worker_db_manager",
    "_clear_thread_db_connections",
]
