# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Background task actors for LearnPath.

Usage:
    from src.infrastructure.background.tasks import recalculate_tenant_progress

    recalculate_tenant_progress.send("lycee_hugo")

Running Workers:
    dramatiq src.infrastructure.background.tasks --processes 2 --threads 4
"""

from src.infrastructure.background.tasks.progress import (
    get_progress_actors,
    recalculate_module_progress_task,
    recalculate_tenant_progress,
)

# Re-export run_async for convenience
from src.infrastructure.background.tasks.base import run_async, run_in_tenant

__all__ = [
    # Progress
    "recalculate_module_progress_task",
    "recalculate_tenant_progress",
    # Utilities
    "run_async",
    "run_in_tenant",
    "get_all_actors",
]


def get_all_actors() -> list:
    """Get all registered actors."""
    return [*get_progress_actors()]
