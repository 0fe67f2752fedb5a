# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for progress background tasks.

Actors run on the stub broker. Actor bodies are called directly on a
separate thread, the way a Dramatiq worker thread runs them.
"""

from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, Callable

import pytest

from src.core.config.settings import Settings
from src.infrastructure.background.broker import Queues, get_broker
from src.infrastructure.background.tasks import (
    get_all_actors,
    recalculate_module_progress_task,
    recalculate_tenant_progress,
    run_async,
)
from src.infrastructure.database import (
    TenantDatabaseManager,
    TenantNotFoundError,
    reset_worker_db_manager,
    set_worker_db_manager,
)
from src.infrastructure.database.models.base import Base
from src.infrastructure.database.models.tenant import (
    Chapter,
    Module,
    ProgressStatus,
    Student,
    StudentChapterProgress,
    StudentModuleProgress,
)

TENANT = "lycee_hugo"


async def seed(manager: TenantDatabaseManager) -> dict[str, str]:
    engine = await manager.get_engine(TENANT)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with manager.get_session(TENANT) as session:
        student = Student(first_name="Ada", last_name="Lovelace", year=1, school_id="s1")
        module = Module(title="Fractions", year=1, sequence=1)
        session.add_all([student, module])
        await session.flush()
        chapters = [Chapter(module_id=module.id, title=f"C{n}", sequence=n) for n in (1, 2)]
        session.add_all(chapters)
        await session.flush()
        session.add(
            StudentModuleProgress(
                student_id=student.id,
                module_id=module.id,
                status=ProgressStatus.IN_PROGRESS.value,
            )
        )
        session.add(
            StudentChapterProgress(
                student_id=student.id,
                chapter_id=chapters[0].id,
                module_id=module.id,
                chapter_sequence=1,
                status=ProgressStatus.COMPLETED.value,
                chapter_quiz_completed=True,
            )
        )
        return {"student_id": student.id, "module_id": module.id}


def run_on_worker_thread(tmp_path: Path, job: Callable[[dict[str, str]], Any]) -> Any:
    """Seed a tenant database and run a job on a fresh worker thread."""

    def _work() -> Any:
        manager = TenantDatabaseManager(
            Settings(),
            url_resolver=lambda code: f"sqlite+aiosqlite:///{tmp_path / code}.db",
        )
        set_worker_db_manager(manager)
        try:
            ids = run_async(seed(manager))
            return job(ids)
        finally:
            run_async(manager.close_all())
            reset_worker_db_manager()

    with ThreadPoolExecutor(max_workers=1) as executor:
        return executor.submit(_work).result()


class TestRecalculationActors:
    """Tests for the progress recalculation actors."""

    def test_module_recalculation(self, tmp_path: Path) -> None:
        result = run_on_worker_thread(
            tmp_path,
            lambda ids: recalculate_module_progress_task.fn(
                TENANT, ids["student_id"], ids["module_id"]
            ),
        )

        assert result["found"] is True
        assert result["progress_percentage"] == 45
        assert result["status"] == ProgressStatus.IN_PROGRESS.value

    def test_module_recalculation_without_row(self, tmp_path: Path) -> None:
        result = run_on_worker_thread(
            tmp_path,
            lambda ids: recalculate_module_progress_task.fn(TENANT, "nobody", ids["module_id"]),
        )

        assert result["found"] is False

    def test_tenant_recalculation(self, tmp_path: Path) -> None:
        result = run_on_worker_thread(
            tmp_path,
            lambda ids: recalculate_tenant_progress.fn(TENANT),
        )

        assert result == {"tenant_code": TENANT, "rows_processed": 1, "rows_changed": 1}

    def test_unknown_tenant_is_not_retried(self, tmp_path: Path) -> None:
        with pytest.raises(TenantNotFoundError):
            run_on_worker_thread(
                tmp_path,
                lambda ids: recalculate_tenant_progress.fn("Not A Tenant"),
            )

        assert TenantNotFoundError in recalculate_tenant_progress.options["throws"]


class TestEnqueue:
    """Tests for sending progress messages."""

    def test_send_stamps_tenant_code(self) -> None:
        broker = get_broker()
        broker.flush_all()

        message = recalculate_module_progress_task.send(TENANT, "student-1", "module-1")

        assert message.queue_name == Queues.PROGRESS
        assert message.options["tenant_code"] == TENANT
        assert broker.queues[Queues.PROGRESS].qsize() == 1
        broker.flush_all()

    def test_all_actors_registered(self) -> None:
        names = {actor.actor_name for actor in get_all_actors()}

        assert names == {"recalculate_module_progress_task", "recalculate_tenant_progress"}
