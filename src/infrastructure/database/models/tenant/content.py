# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Learning content: modules, chapters, quiz groups and quizzes.

Content is authored elsewhere; the progress core only reads it. Sequence
columns are 1-based ranks. Uniqueness of a sequence only applies to rows
that are not soft deleted.
"""

from enum import Enum

from sqlalchemy import Boolean, ForeignKey, Index, Integer, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from src.infrastructure.database.models.base import (
    Base,
    JSONType,
    SoftDeleteMixin,
    TimestampMixin,
    UUIDPrimaryKeyMixin,
)


class QuizGroupType(str, Enum):
    """Parent scope of a quiz group."""

    MODULE = "MODULE"
    CHAPTER = "CHAPTER"


class QuestionType(str, Enum):
    """Kind of answer a quiz question expects."""

    SINGLE_SELECT = "SINGLE_SELECT"
    MULTI_SELECT = "MULTI_SELECT"
    TRUE_FALSE = "TRUE_FALSE"
    SHORT_ANSWER = "SHORT_ANSWER"


class Module(Base, UUIDPrimaryKeyMixin, TimestampMixin, SoftDeleteMixin):
    """An ordered unit of study for one academic year.

    Attributes:
        title: Display title.
        description: Free text description.
        tags: Topic tags.
        year: Academic year the module targets.
        sequence: Rank among the modules of the same year. None for
            modules outside the ordered path.
        published: Whether learners can see the module.
    """

    __tablename__ = "modules"
    __table_args__ = (
        Index(
            "uq_modules_year_sequence",
            "year",
            "sequence",
            unique=True,
            postgresql_where=text("deleted_at IS NULL"),
            sqlite_where=text("deleted_at IS NULL"),
        ),
    )

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    tags: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)
    year: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    sequence: Mapped[int | None] = mapped_column(Integer, nullable=True)
    published: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class Chapter(Base, UUIDPrimaryKeyMixin, TimestampMixin, SoftDeleteMixin):
    """A chapter inside a module.

    Attributes:
        module_id: Parent module.
        title: Display title.
        description: Free text description.
        sequence: Rank within the module.
    """

    __tablename__ = "chapters"
    __table_args__ = (
        Index(
            "uq_chapters_module_sequence",
            "module_id",
            "sequence",
            unique=True,
            postgresql_where=text("deleted_at IS NULL"),
            sqlite_where=text("deleted_at IS NULL"),
        ),
    )

    module_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("modules.id"), nullable=False, index=True
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)


class QuizGroup(Base, UUIDPrimaryKeyMixin, TimestampMixin, SoftDeleteMixin):
    """A set of questions attached to a module or to a chapter.

    Attributes:
        title: Display title.
        type: MODULE or CHAPTER scope.
        module_id: Module the group belongs to (also set for chapter groups).
        chapter_id: Chapter the group belongs to, for chapter groups.
    """

    __tablename__ = "quiz_groups"

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    module_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("modules.id"), nullable=False, index=True
    )
    chapter_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("chapters.id"), nullable=True, index=True
    )

    @property
    def is_chapter_quiz(self) -> bool:
        return self.type == QuizGroupType.CHAPTER.value


class Quiz(Base, UUIDPrimaryKeyMixin, TimestampMixin, SoftDeleteMixin):
    """One question of a quiz group.

    The answer column holds the correct options and is never exposed to
    learners.
    """

    __tablename__ = "quizzes"

    quiz_group_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("quiz_groups.id"), nullable=False, index=True
    )
    question: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    options: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)
    answer: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)
    explanation: Mapped[str | None] = mapped_column(Text, nullable=True)
    tags: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
