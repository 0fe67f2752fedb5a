# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Student records, owned by the account collaborator and read here."""

from sqlalchemy import Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from src.infrastructure.database.models.base import (
    Base,
    SoftDeleteMixin,
    TimestampMixin,
    UUIDPrimaryKeyMixin,
)


class Student(Base, UUIDPrimaryKeyMixin, TimestampMixin, SoftDeleteMixin):
    """A learner enrolled in one school of the tenant.

    Attributes:
        first_name: Given name.
        last_name: Family name.
        email: Login email.
        year: Academic year the student is in (1-based).
        school_id: School the student belongs to.
    """

    __tablename__ = "students"
    __table_args__ = (Index("ix_students_school_id", "school_id"),)

    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    year: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    school_id: Mapped[str] = mapped_column(String(36), nullable=False)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"
