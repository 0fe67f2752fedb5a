# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Tenant database connection management.

Every school owns an isolated database. This module resolves a tenant code
to that database and hands out async sessions bound to it. Engines are
created lazily on first use, verified with a test query, and cached for
the life of the process (bounded, least recently used engines are
disposed first).

Concurrent first use of one tenant code produces exactly one engine:
creation is serialized per tenant code and the cache is re-checked after
the lock is acquired.

Example:
    from src.infrastructure.database import TenantDatabaseManager

    manager = TenantDatabaseManager(settings)

    async with manager.get_session("lycee_hugo") as session:
        result = await session.execute(select(Module))
        modules = result.scalars().all()

    # Cleanup on shutdown
    await manager.close_all()
"""

import asyncio
import logging
import re
import threading
from collections import OrderedDict
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, AsyncIterator, Callable

from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

if TYPE_CHECKING:
    from src.core.config.settings import Settings

logger = logging.getLogger(__name__)

TENANT_CODE_PATTERN = re.compile(r"^[a-z0-9_\-]{1,63}$")


class TenantNotFoundError(Exception):
    """Raised when a tenant code does not identify a tenant database.

    Attributes:
        tenant_code: The tenant code that was not found.
    """

    def __init__(self, tenant_code: str) -> None:
        super().__init__(f"Tenant not found: {tenant_code}")
        self.tenant_code = tenant_code


class TenantUnavailableError(Exception):
    """Raised when a tenant database cannot be reached.

    Nothing is cached when this is raised, so the next call tries again
    from scratch.

    Attributes:
        tenant_code: The tenant code whose database is unreachable.
        reason: The underlying failure.
    """

    def __init__(self, tenant_code: str, reason: str) -> None:
        super().__init__(f"Tenant database unavailable for {tenant_code}: {reason}")
        self.tenant_code = tenant_code
        self.reason = reason


@dataclass
class TenantConnection:
    """A cached, verified connection to one tenant database.

    Attributes:
        tenant_code: Tenant the connection belongs to.
        engine: Async engine bound to the tenant database.
        sessionmaker: Session factory bound to the engine.
    """

    tenant_code: str
    engine: AsyncEngine
    sessionmaker: async_sessionmaker[AsyncSession]


class TenantDatabaseManager:
    """Manages database connections for multiple tenants.

    Attributes:
        settings: Application settings containing database configuration.

    Example:
        manager = TenantDatabaseManager(settings)

        engine = await manager.get_engine("lycee_hugo")
        async with manager.get_session("lycee_hugo") as session:
            await session.execute(...)
    """

    def __init__(
        self,
        settings: "Settings",
        url_resolver: Callable[[str], str] | None = None,
    ) -> None:
        """Initialize the tenant database manager.

        Args:
            settings: Application settings containing database configuration.
            url_resolver: Optional callable mapping a tenant code to an
                async database URL. Defaults to the URL template from
                the tenant database settings.
        """
        self._settings = settings
        self._url_resolver = url_resolver or settings.tenant_db.url_for
        self._max_cached = max(1, settings.tenant_db.max_cached_tenants)
        self._connections: OrderedDict[str, TenantConnection] = OrderedDict()
        self._locks: dict[str, asyncio.Lock] = {}

    @property
    def cached_tenants(self) -> list[str]:
        """Tenant codes with a live cached engine, least recently used first."""
        return list(self._connections.keys())

    def _validate_tenant_code(self, tenant_code: str) -> None:
        if not tenant_code or not TENANT_CODE_PATTERN.match(tenant_code):
            raise TenantNotFoundError(tenant_code)

    def _engine_options(self, url: str) -> dict[str, Any]:
        options: dict[str, Any] = {
            "pool_pre_ping": True,
            "pool_recycle": 1800,
            "echo": self._settings.debug and self._settings.log_level == "DEBUG",
        }
        # SQLite uses a non-queue pool without sizing arguments
        if make_url(url).get_backend_name() != "sqlite":
            options["pool_size"] = self._settings.tenant_db.pool_size
            options["max_overflow"] = self._settings.tenant_db.max_overflow
        return options

    async def _connect(self, tenant_code: str) -> TenantConnection:
        """Create and verify a connection for a tenant.

        Raises:
            TenantUnavailableError: If the database cannot be reached.
        """
        url = self._url_resolver(tenant_code)
        try:
            engine = create_async_engine(url, **self._engine_options(url))
        except (SQLAlchemyError, ValueError) as e:
            raise TenantUnavailableError(tenant_code, str(e)) from e

        try:
            async with engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except (SQLAlchemyError, OSError) as e:
            await engine.dispose()
            logger.warning("Tenant database unreachable: %s (%s)", tenant_code, e)
            raise TenantUnavailableError(tenant_code, str(e)) from e

        logger.info("Connected tenant database: %s", tenant_code)
        return TenantConnection(
            tenant_code=tenant_code,
            engine=engine,
            sessionmaker=async_sessionmaker(
                bind=engine,
                class_=AsyncSession,
                expire_on_commit=False,
                autoflush=False,
            ),
        )

    async def _get_connection(self, tenant_code: str) -> TenantConnection:
        """Get the cached connection for a tenant, creating it once.

        Raises:
            TenantNotFoundError: If the tenant code is invalid.
            TenantUnavailableError: If the database cannot be reached.
        """
        self._validate_tenant_code(tenant_code)

        connection = self._connections.get(tenant_code)
        if connection is not None:
            self._connections.move_to_end(tenant_code)
            return connection

        lock = self._locks.setdefault(tenant_code, asyncio.Lock())
        async with lock:
            connection = self._connections.get(tenant_code)
            if connection is not None:
                self._connections.move_to_end(tenant_code)
                return connection

            try:
                connection = await self._connect(tenant_code)
            except TenantUnavailableError:
                if self._locks.get(tenant_code) is lock:
                    del self._locks[tenant_code]
                raise
            self._connections[tenant_code] = connection
            await self._evict_overflow()
            return connection

    async def _evict_overflow(self) -> None:
        while len(self._connections) > self._max_cached:
            tenant_code, connection = self._connections.popitem(last=False)
            self._locks.pop(tenant_code, None)
            logger.info("Evicting cached tenant engine: %s", tenant_code)
            await connection.engine.dispose()

    async def get_engine(self, tenant_code: str) -> AsyncEngine:
        """Get the async engine for a tenant.

        Args:
            tenant_code: Unique identifier for the tenant.

        Returns:
            AsyncEngine for the tenant database.

        Raises:
            TenantNotFoundError: If the tenant code is invalid.
            TenantUnavailableError: If the database cannot be reached.
        """
        connection = await self._get_connection(tenant_code)
        return connection.engine

    @asynccontextmanager
    async def get_session(self, tenant_code: str) -> AsyncIterator[AsyncSession]:
        """Get an async session for a tenant database.

        The session is committed on success and rolled back on exception.

        Args:
            tenant_code: Unique identifier for the tenant.

        Yields:
            AsyncSession for database operations.

        Raises:
            TenantNotFoundError: If the tenant code is invalid.
            TenantUnavailableError: If the database cannot be reached.
            SQLAlchemyError: If a database operation fails.
        """
        connection = await self._get_connection(tenant_code)

        async with connection.sessionmaker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def check_connection(self, tenant_code: str) -> bool:
        """Check if a tenant database is reachable.

        Returns:
            True if the database is reachable, False otherwise.
        """
        try:
            engine = await self.get_engine(tenant_code)
            async with engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except (SQLAlchemyError, TenantNotFoundError, TenantUnavailableError):
            return False

    async def close_tenant(self, tenant_code: str) -> None:
        """Dispose the cached engine for a single tenant, if any."""
        connection = self._connections.pop(tenant_code, None)
        self._locks.pop(tenant_code, None)
        if connection is not None:
            await connection.engine.dispose()

    async def close_all(self) -> None:
        """Close all tenant database connections.

        Called at application shutdown to close every connection pool.
        """
        for tenant_code in list(self._connections.keys()):
            await self.close_tenant(tenant_code)

    def forget_all(self) -> None:
        """Drop cached engines without disposing them.

        Used when the event loop the engines were bound to is gone.
        """
        self._connections.clear()
        self._locks.clear()


# =============================================================================
# WORKER THREAD-LOCAL MANAGER
# =============================================================================

# Each Dramatiq worker thread gets its own manager instance
_thread_local_manager = threading.local()


def get_worker_db_manager() -> TenantDatabaseManager:
    """Get TenantDatabaseManager instance for current worker thread.

    Async engines are bound to the event loop they were created in, and
    every worker thread runs its own loop (see tasks/base.py), so engines
    are never shared between threads.

    Returns:
        Thread-local TenantDatabaseManager instance.
    """
    manager = getattr(_thread_local_manager, "db_manager", None)

    if manager is None:
        from src.core.config import get_settings

        manager = TenantDatabaseManager(get_settings())
        _thread_local_manager.db_manager = manager

    return manager


def set_worker_db_manager(manager: TenantDatabaseManager | None) -> None:
    """Install a manager for the current worker thread (tests, tooling)."""
    _thread_local_manager.db_manager = manager


def _clear_thread_db_connections() -> None:
    """Clear database connections for current thread.

    Called by run_async() when a new event loop is created for a thread.
    Safe to call even if no manager exists for the thread.
    """
    manager = getattr(_thread_local_manager, "db_manager", None)
    if manager is not None:
        manager.forget_all()


def reset_worker_db_manager() -> None:
    """Reset worker DB manager for current thread."""
    _clear_thread_db_connections()
    _thread_local_manager.db_manager = None
