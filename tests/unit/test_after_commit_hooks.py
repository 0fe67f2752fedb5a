# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for jobs deferred until a tenant transaction commits."""

from unittest.mock import MagicMock

import pytest
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.infrastructure.database.hooks import pending_after_commit, run_after_commit


class TestRunAfterCommit:
    """Tests for run_after_commit."""

    @pytest.mark.asyncio
    async def test_runs_on_commit_only(self, db: AsyncSession) -> None:
        job = MagicMock()
        await db.execute(text("SELECT 1"))

        run_after_commit(db, job)
        job.assert_not_called()

        await db.commit()

        job.assert_called_once_with()
        assert pending_after_commit(db) == 0

    @pytest.mark.asyncio
    async def test_savepoint_release_does_not_run_jobs(self, db: AsyncSession) -> None:
        job = MagicMock()
        await db.execute(text("SELECT 1"))

        async with db.begin_nested():
            run_after_commit(db, job)
        job.assert_not_called()

        await db.commit()
        job.assert_called_once_with()

    @pytest.mark.asyncio
    async def test_rollback_discards_jobs(self, db: AsyncSession) -> None:
        job = MagicMock()
        await db.execute(text("SELECT 1"))

        run_after_commit(db, job)
        await db.rollback()
        await db.execute(text("SELECT 1"))
        await db.commit()

        job.assert_not_called()

    @pytest.mark.asyncio
    async def test_failing_job_does_not_stop_the_others(self, db: AsyncSession) -> None:
        failing = MagicMock(side_effect=RuntimeError("broker down"))
        job = MagicMock()
        await db.execute(text("SELECT 1"))

        run_after_commit(db, failing)
        run_after_commit(db, job)
        await db.commit()

        failing.assert_called_once_with()
        job.assert_called_once_with()

    @pytest.mark.asyncio
    async def test_listeners_registered_once(self, db: AsyncSession) -> None:
        job = MagicMock()
        await db.execute(text("SELECT 1"))

        run_after_commit(db, job)
        run_after_commit(db, job)
        await db.commit()

        assert job.call_count == 2
