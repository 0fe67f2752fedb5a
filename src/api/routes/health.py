# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Health check endpoints.

This module provides health, liveness and readiness endpoints for the API.
Tenant databases are opened on demand, so readiness only checks the
shared infrastructure (Redis broker, AI grader).
"""

import time
import logging
from datetime import datetime, timezone
from typing import Any

import httpx
import redis.asyncio as aioredis
from fastapi import APIRouter
from pydantic import BaseModel, Field
from redis.exceptions import RedisError

from src import __version__
from src.core.config import get_settings

logger = logging.getLogger(__name__)

router = APIRouter()

# Track server start time for uptime calculation
_server_start_time = time.time()


class ComponentHealth(BaseModel):
    """Individual component health status."""
    status: str = Field(description="Component status")
    latency_ms: float | None = Field(None, description="Response latency in ms")
    message: str | None = Field(None, description="Additional status message")


class ComponentsHealth(BaseModel):
    """All components health status."""
    redis: ComponentHealth | None = None
    grader: ComponentHealth | None = None
    cached_tenants: int = 0


class HealthResponse(BaseModel):
    """Health check response model."""
    status: str = Field(description="Overall health status")
    version: str = Field(description="API version")
    environment: str = Field(description="Deployment environment")
    uptime_seconds: int = Field(description="Server uptime in seconds")
    checked_at: datetime = Field(description="When health was checked")
    components: ComponentsHealth = Field(default_factory=ComponentsHealth)


class ReadinessResponse(BaseModel):
    """Readiness check response model."""
    ready: bool = Field(description="Whether the service is ready")
    checks: dict[str, Any] = Field(description="Individual check results")


async def check_redis() -> ComponentHealth:
    """Check Redis connection."""
    redis_cfg = get_settings().redis
    start = time.time()
    client = aioredis.Redis(
        host=redis_cfg.host,
        port=redis_cfg.port,
        password=redis_cfg.password.get_secret_value() if redis_cfg.password else None,
        db=redis_cfg.database,
    )
    try:
        await client.ping()
    except (RedisError, OSError) as e:
        logger.error("Redis health check failed: %s", e)
        return ComponentHealth(status="unhealthy", message=str(e))
    finally:
        await client.aclose()

    latency = (time.time() - start) * 1000
    return ComponentHealth(status="healthy", latency_ms=round(latency, 2))


async def check_grader() -> ComponentHealth:
    """Check that the AI grading service answers at all."""
    grader_cfg = get_settings().grader
    if not grader_cfg.enabled:
        return ComponentHealth(status="disabled")

    start = time.time()
    try:
        async with httpx.AsyncClient(base_url=grader_cfg.base_url, timeout=5.0) as client:
            await client.get("/")
    except httpx.HTTPError as e:
        logger.warning("Grader health check failed: %s", e)
        # Submissions still complete with the fallback score
        return ComponentHealth(status="degraded", message=str(e))

    latency = (time.time() - start) * 1000
    return ComponentHealth(status="healthy", latency_ms=round(latency, 2))


def _cached_tenants() -> int:
    from src.api.dependencies import _tenant_db_manager

    return len(_tenant_db_manager.cached_tenants) if _tenant_db_manager else 0


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Check if the API is healthy with component details.

    Returns:
        HealthResponse with detailed status.
    """
    settings = get_settings()
    redis_health = await check_redis()
    grader_health = await check_grader()

    if redis_health.status == "unhealthy":
        overall_status = "unhealthy"
    elif grader_health.status in ("healthy", "disabled"):
        overall_status = "healthy"
    else:
        overall_status = "degraded"

    return HealthResponse(
        status=overall_status,
        version=__version__,
        environment=settings.environment,
        uptime_seconds=int(time.time() - _server_start_time),
        checked_at=datetime.now(timezone.utc),
        components=ComponentsHealth(
            redis=redis_health,
            grader=grader_health,
            cached_tenants=_cached_tenants(),
        ),
    )


@router.get("/health/live")
async def liveness_check() -> dict[str, str]:
    """Report that the process is up."""
    return {"status": "alive"}


@router.get("/health/ready", response_model=ReadinessResponse)
async def readiness_check() -> ReadinessResponse:
    """Check if the API is ready to accept traffic.

    Returns:
        ReadinessResponse with individual check results.
    """
    checks: dict[str, Any] = {}

    redis_health = await check_redis()
    checks["redis"] = {"status": redis_health.status, "latency_ms": redis_health.latency_ms}

    return ReadinessResponse(ready=redis_health.status == "healthy", checks=checks)
