# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Best-effort dashboard enrichment.

Enrichment sources (AI feedback summaries, professor reviews) are nice to
have. A failing source is logged and replaced by its default value; it
never fails the dashboard. Each source runs inside a savepoint so a
database error does not poison the surrounding transaction.
"""

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class EnrichmentResult(Generic[T]):
    """Value of one enrichment source.

    Attributes:
        source: Name of the source.
        value: Loaded value, or the default on failure.
        error: Failure description, None on success.
    """

    source: str
    value: T
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


async def load_enrichment(
    db: AsyncSession,
    source: str,
    loader: Callable[[], Awaitable[T]],
    default: T,
) -> EnrichmentResult[T]:
    """Run one enrichment loader, falling back to a default on failure.

    Args:
        db: Session the loader queries through.
        source: Name reported in logs and on failure.
        loader: Coroutine factory producing the value.
        default: Value used when the loader fails.
    """
    try:
        async with db.begin_nested():
            value = await loader()
    except Exception as e:
        logger.warning("Dashboard enrichment '%s' failed: %s", source, e)
        return EnrichmentResult(source=source, value=default, error=str(e))
    return EnrichmentResult(source=source, value=value)
