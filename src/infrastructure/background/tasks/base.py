# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Base utilities for Dramatiq tasks.

Dramatiq actors are synchronous and run on worker threads. SQLAlchemy
async engines are bound to the event loop that created them, so every
worker thread keeps one persistent event loop and its own tenant database
manager (see tenant_manager.get_worker_db_manager). When a thread needs a
new loop, the engines cached for the old one are forgotten.
"""

import asyncio
import logging
import threading
from typing import Any, Awaitable, Callable, Coroutine, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession

from src.infrastructure.database.tenant_manager import (
    _clear_thread_db_connections,
    get_worker_db_manager,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Thread-local storage for event loops
_thread_local = threading.local()


def _get_thread_event_loop() -> asyncio.AbstractEventLoop:
    """Get or create the persistent event loop of the current thread."""
    loop = getattr(_thread_local, "event_loop", None)

    if loop is None or loop.is_closed():
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        _thread_local.event_loop = loop

        # Engines cached for a previous loop are unusable
        _clear_thread_db_connections()

        logger.debug(
            "Created new event loop for thread %s",
            threading.current_thread().name,
        )

    return loop


def run_async(coro: Coroutine[Any, Any, T]) -> T:
    """Run a coroutine to completion on the thread's event loop.

    Args:
        coro: Coroutine to run.

    Returns:
        Result of coroutine.
    """
    loop = _get_thread_event_loop()
    return loop.run_until_complete(coro)


def run_in_tenant(tenant_code: str, job: Callable[[AsyncSession], Awaitable[T]]) -> T:
    """Run a job inside a committed session of a tenant database.

    Exceptions propagate so Dramatiq can retry the message.

    Example:
        @dramatiq.actor
        def my_task(tenant_code: str):
            async def _job(session):
                ...
            return run_in_tenant(tenant_code, _job)
    """

    async def _run() -> T:
        manager = get_worker_db_manager()
        async with manager.get_session(tenant_code) as session:
            return await job(session)

    return run_async(_run())
