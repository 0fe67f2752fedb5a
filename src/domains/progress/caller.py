# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Identity of the user on whose behalf a progress operation runs."""

from dataclasses import dataclass, field
from enum import Enum


class UserRole(str, Enum):
    """Roles issued by the account service."""

    STUDENT = "student"
    PROFESSOR = "professor"
    SCHOOL_ADMIN = "school_admin"
    SUPER_ADMIN = "super_admin"


@dataclass(frozen=True)
class Caller:
    """Authenticated caller of the progress service.

    Attributes:
        user_id: Account id. For students this is also the student id.
        role: Role claimed by the access token.
        tenant_code: Tenant the request is served for.
        school_ids: Schools the caller belongs to (staff roles).
        language: Preferred language for error messages.
    """

    user_id: str
    role: UserRole
    tenant_code: str
    school_ids: tuple[str, ...] = field(default_factory=tuple)
    language: str = "fr"

    @property
    def is_student(self) -> bool:
        return self.role == UserRole.STUDENT

    @property
    def is_staff(self) -> bool:
        return self.role in (UserRole.PROFESSOR, UserRole.SCHOOL_ADMIN)

    @property
    def is_super_admin(self) -> bool:
        return self.role == UserRole.SUPER_ADMIN
