# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Fixtures for API integration tests."""

from typing import Callable

import pytest
from fastapi import FastAPI
from pydantic import SecretStr

from src.api.middleware.auth import AuthMiddleware
from src.api.middleware.tenant import TenantMiddleware
from src.api.v1 import router as v1_router
from src.core.config.settings import JWTSettings
from src.domains.auth.jwt import JWTManager

JWT_SECRET = "integration-test-secret"


@pytest.fixture
def jwt_manager() -> JWTManager:
    return JWTManager(JWTSettings(secret_key=SecretStr(JWT_SECRET)))


@pytest.fixture
def build_app(jwt_manager: JWTManager) -> Callable[[], FastAPI]:
    """Build an app with the production middleware order and v1 routes."""

    def _build() -> FastAPI:
        app = FastAPI()
        app.add_middleware(TenantMiddleware)
        app.add_middleware(AuthMiddleware, jwt_manager=jwt_manager)
        app.include_router(v1_router)
        return app

    return _build


@pytest.fixture
def auth_headers(jwt_manager: JWTManager) -> Callable[..., dict[str, str]]:
    """Build Authorization headers for a role."""

    def _headers(
        user_type: str = "student",
        user_id: str = "student-0001",
        tenant_code: str | None = "lycee_hugo",
        school_ids: list[str] | None = None,
        year: int | None = 1,
        preferred_language: str | None = "en",
        **extra: str,
    ) -> dict[str, str]:
        token = jwt_manager.create_access_token(
            user_id=user_id,
            user_type=user_type,
            tenant_code=tenant_code,
            school_ids=school_ids,
            year=year,
            preferred_language=preferred_language,
        )
        return {"Authorization": f"Bearer {token}", **extra}

    return _headers
