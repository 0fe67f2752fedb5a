# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Background task infrastructure module for LearnPath.

Quick Start:
    # Setup broker (call once at startup)
    from src.infrastructure.background import setup_dramatiq
    setup_dramatiq()

    # Send tasks
    from src.infrastructure.background.tasks import recalculate_module_progress_task

    recalculate_module_progress_task.send("lycee_hugo", student_id, module_id)

Running Workers:
    dramatiq src.infrastructure.background.tasks --processes 2 --threads 4
"""

from src.infrastructure.background.broker import (
    BrokerManager,
    Priority,
    Queues,
    get_broker,
    get_broker_manager,
    setup_dramatiq,
    shutdown_dramatiq,
)
from src.infrastructure.background.middleware import (
    TenantMiddleware,
    get_current_tenant,
    set_current_tenant,
)

# Task actors are imported lazily to avoid circular imports
# Use: from src.infrastructure.background.tasks import recalculate_tenant_progress

__all__ = [
    "BrokerManager",
    "Priority",
    "Queues",
    "TenantMiddleware",
    "get_broker",
    "get_broker_manager",
    "get_current_tenant",
    "set_current_tenant",
    "setup_dramatiq",
    "shutdown_dramatiq",
]
