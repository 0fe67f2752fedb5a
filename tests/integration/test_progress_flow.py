# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""End-to-end learner flow through the HTTP API.

Requests go through the real middleware, routes and service against the
in-memory tenant database. Only the AI grader is stubbed.
"""

from typing import AsyncGenerator

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import get_grader, get_tenant_db
from src.core.config.settings import GraderSettings
from src.infrastructure.grading import AIGraderClient


def passing_grader() -> AIGraderClient:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"score_percentage": 100.0, "correct_answers": 2})

    return AIGraderClient(
        GraderSettings(base_url="http://grader.test"),
        transport=httpx.MockTransport(handler),
    )


@pytest_asyncio.fixture
async def api(build_app, db: AsyncSession) -> AsyncGenerator[httpx.AsyncClient, None]:
    app = build_app()

    async def _tenant_db() -> AsyncGenerator[AsyncSession, None]:
        yield db
        await db.commit()

    app.dependency_overrides[get_tenant_db] = _tenant_db
    app.dependency_overrides[get_grader] = passing_grader

    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app), base_url="http://test"
    ) as client:
        yield client


class TestLearnerFlow:
    """A student works through the first chapter of a module."""

    @pytest.mark.asyncio
    async def test_first_chapter(self, api: httpx.AsyncClient, course, auth_headers) -> None:
        headers = auth_headers(user_id=course.student.id, tenant_code="test_tenant")
        chapter_1, chapter_2 = course.chapters[0].id, course.chapters[1].id
        group = course.chapter_groups[0]

        locked = await api.post(
            "/api/v1/progress/chapters/start", json={"chapter_id": chapter_2}, headers=headers
        )
        assert locked.status_code == 403
        assert locked.json()["detail"]["blocking_items"] == [chapter_1]

        started = await api.post(
            "/api/v1/progress/chapters/start", json={"chapter_id": chapter_1}, headers=headers
        )
        assert started.status_code == 200
        assert started.json()["status"] == "IN_PROGRESS"

        quiz_locked = await api.get(
            f"/api/v1/progress/quiz/{group.id}/can-access", headers=headers
        )
        assert quiz_locked.json()["reason"] == "CHAPTER_NOT_COMPLETED"

        completed = await api.post(
            "/api/v1/progress/chapters/complete", json={"chapter_id": chapter_1}, headers=headers
        )
        assert completed.status_code == 200
        assert completed.json()["chapter_progress"]["status"] == "COMPLETED"

        attempt = await api.post(
            "/api/v1/progress/quiz/start", json={"quiz_group_id": group.id}, headers=headers
        )
        assert attempt.status_code == 200
        assert attempt.json()["attempt"]["attempt_number"] == 1

        submitted = await api.post(
            "/api/v1/progress/quiz/submit",
            json={
                "quiz_group_id": group.id,
                "answers": [
                    {"quiz_id": q.id, "selected_answers": ["A"]}
                    for q in course.quizzes[group.id]
                ],
                "time_taken_seconds": 42,
            },
            headers=headers,
        )
        assert submitted.status_code == 200
        assert submitted.json()["attempt"]["is_passed"] is True
        assert submitted.json()["grading_status"] == "completed"

        again = await api.post(
            "/api/v1/progress/quiz/submit",
            json={
                "quiz_group_id": group.id,
                "answers": [{"quiz_id": course.quizzes[group.id][0].id}],
            },
            headers=headers,
        )
        assert again.status_code == 404
        assert again.json()["detail"]["code"] == "NO_IN_PROGRESS_QUIZ_ATTEMPT_FOUND"

        access = await api.get(
            f"/api/v1/progress/chapters/{chapter_2}/can-access", headers=headers
        )
        assert access.json()["can_access"] is True

        modules = await api.get("/api/v1/progress/modules", headers=headers)
        assert modules.json()["items"][0]["progress_percentage"] == 23

        dashboard = await api.get("/api/v1/progress/dashboard", headers=headers)
        assert dashboard.json()["passed_quizzes"] == 1

    @pytest.mark.asyncio
    async def test_professor_sees_school(
        self, api: httpx.AsyncClient, course, auth_headers
    ) -> None:
        headers = auth_headers(
            user_type="professor",
            user_id="professor-0001",
            tenant_code="test_tenant",
            school_ids=["school-0001"],
            year=None,
        )

        school = await api.get("/api/v1/progress/admin/dashboard", headers=headers)
        student = await api.get(
            f"/api/v1/progress/dashboard?student_id={course.student.id}", headers=headers
        )
        start = await api.post(
            "/api/v1/progress/modules/start", json={"module_id": course.module.id}, headers=headers
        )

        assert school.status_code == 200
        assert school.json()["total_students"] == 1
        assert school.json()["not_started"] == 1
        assert student.status_code == 200
        assert start.status_code == 403
        assert start.json()["detail"]["code"] == "ROLE_NOT_ALLOWED"
