# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Progress maintenance background tasks for LearnPath.

- recalculate_module_progress_task: retried recalculation of one module
  progress row, scheduled when the inline recalculation of a learner
  action failed.
- recalculate_tenant_progress: recomputes every module progress row of a
  tenant, for repairs after content changes.
"""

import logging
from typing import Any

import dramatiq
from sqlalchemy.ext.asyncio import AsyncSession

from src.domains.progress.aggregator import ProgressAggregator
from src.infrastructure.background.broker import Priority, Queues, setup_dramatiq
from src.infrastructure.background.tasks.base import run_in_tenant
from src.infrastructure.database.tenant_manager import TenantNotFoundError

# Setup broker before defining actors
setup_dramatiq()

logger = logging.getLogger(__name__)


@dramatiq.actor(
    queue_name=Queues.PROGRESS,
    max_retries=5,
    min_backoff=1000,  # 1 second
    max_backoff=300000,  # 5 minutes
    time_limit=60000,  # 1 minute
    priority=Priority.HIGH,
    throws=(TenantNotFoundError,),
)
def recalculate_module_progress_task(
    tenant_code: str,
    student_id: str,
    module_id: str,
) -> dict[str, Any]:
    """Recalculate a student's progress in one module.

    Args:
        tenant_code: Tenant code.
        student_id: Student whose progress changed.
        module_id: Module to recalculate.

    Returns:
        The recalculated percentage and status, or found=False when the
        student never started the module.
    """

    async def _recalculate(session: AsyncSession) -> dict[str, Any]:
        progress = await ProgressAggregator().recalculate_module_progress(
            session, student_id, module_id
        )
        if progress is None:
            return {"tenant_code": tenant_code, "module_id": module_id, "found": False}
        return {
            "tenant_code": tenant_code,
            "module_id": module_id,
            "found": True,
            "progress_percentage": progress.progress_percentage,
            "status": progress.status,
        }

    result = run_in_tenant(tenant_code, _recalculate)
    logger.info(
        "Deferred module progress recalculated: tenant=%s, student=%s, module=%s",
        tenant_code,
        student_id,
        module_id,
    )
    return result


@dramatiq.actor(
    queue_name=Queues.MAINTENANCE,
    max_retries=1,
    time_limit=1800000,  # 30 minutes
    priority=Priority.LOW,
    throws=(TenantNotFoundError,),
)
def recalculate_tenant_progress(tenant_code: str) -> dict[str, Any]:
    """Recompute every module progress row of a tenant.

    Args:
        tenant_code: Tenant code.

    Returns:
        Rows processed and rows changed.
    """

    async def _recalculate(session: AsyncSession) -> dict[str, Any]:
        result = await ProgressAggregator().recalculate_all(session)
        return {"tenant_code": tenant_code, **result.to_dict()}

    result = run_in_tenant(tenant_code, _recalculate)
    logger.info(
        "Tenant progress recalculated: tenant=%s, processed=%d, changed=%d",
        tenant_code,
        result["rows_processed"],
        result["rows_changed"],
    )
    return result


def get_progress_actors() -> list:
    """Get all progress actors."""
    return [
        recalculate_module_progress_task,
        recalculate_tenant_progress,
    ]
