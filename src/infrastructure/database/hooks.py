# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Work deferred until a tenant transaction commits.

Background jobs that read what the current request wrote must not be
sent while the request transaction is still open: a worker would read
the pre-commit state. Jobs queued with run_after_commit() are run by a
SQLAlchemy ``after_commit`` listener on the session, once the outermost
transaction commits. A rolled back transaction discards them.

Example:
    run_after_commit(db, partial(task.send, tenant_code, student_id))
    ...
    await db.commit()  # task.send runs here
"""

import logging
from typing import Callable

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session, SessionTransaction

logger = logging.getLogger(__name__)

# Session.info key holding the queued jobs
PENDING_AFTER_COMMIT = "pending_after_commit"


def run_after_commit(db: AsyncSession, job: Callable[[], None]) -> None:
    """Queue a job to run once the session's outermost transaction commits.

    Args:
        db: Tenant session the job depends on.
        job: Callable without arguments.
    """
    session = db.sync_session
    if not event.contains(session, "after_commit", _run_pending):
        event.listen(session, "after_commit", _run_pending)
        event.listen(session, "after_transaction_end", _discard_pending)
    session.info.setdefault(PENDING_AFTER_COMMIT, []).append(job)


def pending_after_commit(db: AsyncSession) -> int:
    """Number of jobs waiting for the session to commit."""
    return len(db.sync_session.info.get(PENDING_AFTER_COMMIT, []))


def _run_pending(session: Session) -> None:
    for job in session.info.pop(PENDING_AFTER_COMMIT, []):
        try:
            job()
        except Exception:
            logger.exception("After-commit job failed: %r", job)


def _discard_pending(session: Session, transaction: SessionTransaction) -> None:
    # Savepoints end inside the outer transaction
    if transaction.parent is not None:
        return
    discarded = session.info.pop(PENDING_AFTER_COMMIT, None)
    if discarded:
        logger.warning("Discarded %d after-commit jobs of a rolled back transaction", len(discarded))
