# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Integration tests for the progress API.

The progress service is replaced by a mock; authentication, tenant
resolution, validation and error mapping run for real.
"""

from typing import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from src.api.dependencies import get_grader, get_tenant_db
from src.domains.progress.caller import Caller, UserRole
from src.domains.progress.errors import (
    AttemptAlreadyCompletedError,
    MissingParameterError,
    SequenceLockedError,
)
from src.domains.progress.sequence import LockReason
from src.models.progress import (
    AccessCheckResponse,
    ModuleProgressResponse,
    Page,
    SchoolDashboardResponse,
)

SERVICE_PATH = "src.api.v1.progress._get_service"


def module_progress() -> ModuleProgressResponse:
    return ModuleProgressResponse(
        id="progress-1",
        student_id="student-0001",
        module_id="module-1",
        module_title="Fractions",
        status="IN_PROGRESS",
        progress_percentage=0,
        chapters_completed=0,
        total_chapters=4,
        module_quiz_completed=False,
    )


@pytest.fixture
def service() -> MagicMock:
    service = MagicMock()
    service.start_module = AsyncMock(return_value=module_progress())
    service.list_module_progress = AsyncMock(
        return_value=Page[ModuleProgressResponse].build([module_progress()], 1, 1, 10)
    )
    service.check_chapter_access = AsyncMock(return_value=AccessCheckResponse(can_access=True))
    service.get_school_dashboard = AsyncMock(return_value=SchoolDashboardResponse())
    return service


@pytest.fixture
def grader() -> MagicMock:
    return MagicMock(name="grader")


@pytest.fixture
def client(build_app, service: MagicMock, grader: MagicMock):
    app = build_app()

    async def _fake_db() -> AsyncGenerator[MagicMock, None]:
        yield MagicMock(name="session")

    app.dependency_overrides[get_tenant_db] = _fake_db
    app.dependency_overrides[get_grader] = lambda: grader

    with patch(SERVICE_PATH, return_value=service) as factory:
        client = TestClient(app)
        client.service_factory = factory  # type: ignore[attr-defined]
        yield client


def last_caller(service_method: AsyncMock) -> Caller:
    return service_method.await_args.args[0]


class TestAuthentication:
    """Tests for authentication and caller resolution."""

    def test_missing_token_rejected(self, client: TestClient) -> None:
        response = client.get("/api/v1/progress/modules")

        assert response.status_code == 401

    def test_invalid_token_rejected(self, client: TestClient) -> None:
        response = client.get(
            "/api/v1/progress/modules", headers={"Authorization": "Bearer nonsense"}
        )

        assert response.status_code == 401

    def test_unknown_role_forbidden(self, client: TestClient, auth_headers) -> None:
        response = client.get("/api/v1/progress/modules", headers=auth_headers(user_type="parent"))

        assert response.status_code == 403
        assert response.json()["detail"]["code"] == "ROLE_NOT_ALLOWED"

    def test_student_caller_built_from_token(
        self, client: TestClient, service: MagicMock, auth_headers
    ) -> None:
        response = client.post(
            "/api/v1/progress/modules/start",
            json={"module_id": "module-1"},
            headers=auth_headers(),
        )

        assert response.status_code == 200
        assert response.json()["module_title"] == "Fractions"
        caller = last_caller(service.start_module)
        assert caller.role == UserRole.STUDENT
        assert caller.user_id == "student-0001"
        assert caller.tenant_code == "lycee_hugo"
        assert caller.language == "en"
        assert not hasattr(caller, "year")
        assert service.start_module.await_args.args[1] == "module-1"

    def test_super_admin_needs_tenant_header(self, client: TestClient, auth_headers) -> None:
        response = client.get(
            "/api/v1/progress/admin/dashboard",
            headers=auth_headers(user_type="super_admin", tenant_code=None),
        )

        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "MISSING_PARAMETER"

    def test_super_admin_tenant_from_header(
        self, client: TestClient, service: MagicMock, auth_headers
    ) -> None:
        response = client.get(
            "/api/v1/progress/admin/dashboard?school_id=school-1",
            headers=auth_headers(
                user_type="super_admin", tenant_code=None, **{"X-Tenant-Code": "Lycee_Hugo"}
            ),
        )

        assert response.status_code == 200
        assert last_caller(service.get_school_dashboard).tenant_code == "lycee_hugo"
        assert service.get_school_dashboard.await_args.args[2] == "school-1"

    def test_tenant_header_ignored_for_tenant_users(
        self, client: TestClient, service: MagicMock, auth_headers
    ) -> None:
        client.post(
            "/api/v1/progress/modules/start",
            json={"module_id": "module-1"},
            headers=auth_headers(**{"X-Tenant-Code": "other_school"}),
        )

        assert last_caller(service.start_module).tenant_code == "lycee_hugo"


class TestErrorMapping:
    """Tests for domain error responses."""

    def test_sequence_locked(self, client: TestClient, service: MagicMock, auth_headers) -> None:
        service.start_module.side_effect = SequenceLockedError(
            LockReason.PREVIOUS_MODULE_INCOMPLETE, ("module-0",)
        )

        response = client.post(
            "/api/v1/progress/modules/start",
            json={"module_id": "module-1"},
            headers=auth_headers(),
        )

        assert response.status_code == 403
        assert response.json()["detail"] == {
            "code": "SEQUENCE_LOCKED",
            "message": "Complete the previous module first.",
            "reason": "PREVIOUS_MODULE_INCOMPLETE",
            "blocking_items": ["module-0"],
        }

    def test_message_language_from_accept_language(
        self, client: TestClient, service: MagicMock, auth_headers
    ) -> None:
        service.get_school_dashboard.side_effect = MissingParameterError("school_id")

        response = client.get(
            "/api/v1/progress/admin/dashboard",
            headers=auth_headers(
                user_type="professor",
                preferred_language=None,
                **{"Accept-Language": "fr-FR,fr;q=0.9"},
            ),
        )

        assert response.status_code == 400
        assert response.json()["detail"]["message"] == (
            "Paramètre obligatoire manquant : school_id."
        )

    def test_concurrent_submission_conflict(
        self, client: TestClient, service: MagicMock, auth_headers
    ) -> None:
        service.submit_quiz_answers = AsyncMock(side_effect=AttemptAlreadyCompletedError())

        response = client.post(
            "/api/v1/progress/quiz/submit",
            json={
                "quiz_group_id": "group-1",
                "answers": [{"quiz_id": "quiz-1", "selected_answers": ["A"]}],
            },
            headers=auth_headers(),
        )

        assert response.status_code == 409
        assert response.json()["detail"]["code"] == "ATTEMPT_ALREADY_COMPLETED"


class TestEndpoints:
    """Tests for request handling of individual endpoints."""

    def test_submit_requires_answers(self, client: TestClient, auth_headers) -> None:
        response = client.post(
            "/api/v1/progress/quiz/submit",
            json={"quiz_group_id": "group-1", "answers": []},
            headers=auth_headers(),
        )

        assert response.status_code == 422

    def test_submit_uses_grader(
        self, client: TestClient, service: MagicMock, grader: MagicMock, auth_headers
    ) -> None:
        service.submit_quiz_answers = AsyncMock(side_effect=AttemptAlreadyCompletedError())

        client.post(
            "/api/v1/progress/quiz/submit",
            json={
                "quiz_group_id": "group-1",
                "answers": [{"quiz_id": "quiz-1", "selected_answers": ["A"]}],
            },
            headers=auth_headers(),
        )

        assert client.service_factory.call_args.args[2] is grader  # type: ignore[attr-defined]

    def test_listing_filters(self, client: TestClient, service: MagicMock, auth_headers) -> None:
        response = client.get(
            "/api/v1/progress/modules?status=COMPLETED&page=2&limit=5",
            headers=auth_headers(),
        )

        assert response.status_code == 200
        assert response.json()["total"] == 1
        filters = service.list_module_progress.await_args.args[1]
        assert filters.status == "COMPLETED"
        assert filters.page == 2
        assert filters.limit == 5

    def test_invalid_page_rejected(self, client: TestClient, auth_headers) -> None:
        response = client.get("/api/v1/progress/modules?page=0", headers=auth_headers())

        assert response.status_code == 422

    def test_chapter_access(self, client: TestClient, service: MagicMock, auth_headers) -> None:
        response = client.get(
            "/api/v1/progress/chapters/chapter-2/can-access", headers=auth_headers()
        )

        assert response.status_code == 200
        assert response.json()["can_access"] is True
        assert service.check_chapter_access.await_args.args[1] == "chapter-2"
