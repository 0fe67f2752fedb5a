# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Pytest configuration and shared fixtures.

This module provides fixtures used across all test types:
- Settings with grading disabled
- An in-memory SQLite tenant database (aiosqlite) with the full schema
- A small course: one student, a module with four chapters, quizzes
"""

import os

# Dramatiq actors are defined at import time; use the stub broker
os.environ.setdefault("DRAMATIQ_TEST_MODE", "true")

from collections.abc import AsyncGenerator  # noqa: E402
from dataclasses import dataclass, field  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from sqlalchemy import event  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool  # noqa: E402

from src.core.config.settings import GraderSettings, ProgressSettings, Settings  # noqa: E402
from src.domains.progress.caller import Caller, UserRole  # noqa: E402
from src.infrastructure.database.models.base import Base  # noqa: E402
from src.infrastructure.database.models.tenant import (  # noqa: E402
    Chapter,
    Module,
    Quiz,
    QuizGroup,
    QuizGroupType,
    QuestionType,
    Student,
)

TENANT_CODE = "test_tenant"
SCHOOL_ID = "school-0001"


def enable_sqlite_savepoints(engine: AsyncEngine) -> None:
    """Let SQLAlchemy emit BEGIN itself so SAVEPOINT works on SQLite."""

    @event.listens_for(engine.sync_engine, "connect")
    def _do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _do_begin(conn):
        conn.exec_driver_sql("BEGIN")


# =============================================================================
# Marker Configuration
# =============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """Configure custom pytest markers."""
    config.addinivalue_line("markers", "unit: mark test as a unit test")
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test"
    )


# =============================================================================
# Settings
# =============================================================================


@pytest.fixture
def settings() -> Settings:
    """Settings with grading disabled and default thresholds."""
    return Settings(
        environment="development",
        grader=GraderSettings(enabled=False),
        progress=ProgressSettings(),
    )


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def savepoint_recipe():
    """The SQLite savepoint recipe, for modules that build their own engine."""
    return enable_sqlite_savepoints


@pytest_asyncio.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """In-memory tenant database with every table created."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    enable_sqlite_savepoints(engine)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def db(engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    """Session configured the way the tenant manager configures them."""
    session_factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    async with session_factory() as session:
        yield session


# =============================================================================
# Course content
# =============================================================================


@dataclass
class Course:
    """Content created by the course fixture."""

    student: Student
    module: Module
    next_module: Module
    chapters: list[Chapter]
    chapter_groups: list[QuizGroup]
    module_group: QuizGroup
    quizzes: dict[str, list[Quiz]] = field(default_factory=dict)


def _quiz(group: QuizGroup, sequence: int, tags: list[str]) -> Quiz:
    return Quiz(
        quiz_group_id=group.id,
        question=f"Question {sequence} of {group.title}",
        type=QuestionType.SINGLE_SELECT.value,
        options=["A", "B", "C"],
        answer=["A"],
        explanation="A is correct",
        tags=tags,
        sequence=sequence,
    )


@pytest_asyncio.fixture
async def course(db: AsyncSession) -> Course:
    """A year-1 student and a year-1 path of two modules.

    The first module has four chapters. Chapters 1 to 3 have a quiz group
    of two questions each; chapter 4 has none. The module has its own
    quiz group with two questions.
    """
    student = Student(
        first_name="Ada",
        last_name="Lovelace",
        email="ada@example.com",
        year=1,
        school_id=SCHOOL_ID,
    )
    module = Module(title="Fractions", description="Parts of a whole", year=1, sequence=1)
    next_module = Module(title="Decimals", description="Base ten", year=1, sequence=2)
    db.add_all([student, module, next_module])
    await db.flush()

    chapters = [
        Chapter(module_id=module.id, title=f"Chapter {n}", sequence=n) for n in range(1, 5)
    ]
    db.add_all(chapters)
    await db.flush()

    chapter_groups = [
        QuizGroup(
            title=f"Quiz {chapter.title}",
            type=QuizGroupType.CHAPTER.value,
            module_id=module.id,
            chapter_id=chapter.id,
        )
        for chapter in chapters[:3]
    ]
    module_group = QuizGroup(
        title="Final quiz",
        type=QuizGroupType.MODULE.value,
        module_id=module.id,
    )
    db.add_all([*chapter_groups, module_group])
    await db.flush()

    quizzes: dict[str, list[Quiz]] = {}
    for group in [*chapter_groups, module_group]:
        quizzes[group.id] = [_quiz(group, 1, ["fractions"]), _quiz(group, 2, ["fractions", "ratios"])]
        db.add_all(quizzes[group.id])
    await db.commit()

    return Course(
        student=student,
        module=module,
        next_module=next_module,
        chapters=chapters,
        chapter_groups=chapter_groups,
        module_group=module_group,
        quizzes=quizzes,
    )


@pytest.fixture
def student_caller(course: Course) -> Caller:
    """The course student as an authenticated caller."""
    return Caller(
        user_id=course.student.id,
        role=UserRole.STUDENT,
        tenant_code=TENANT_CODE,
        language="en",
    )


@pytest.fixture
def professor_caller() -> Caller:
    """A professor of the course school."""
    return Caller(
        user_id="professor-0001",
        role=UserRole.PROFESSOR,
        tenant_code=TENANT_CODE,
        school_ids=(SCHOOL_ID,),
        language="en",
    )
