from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from app.rijschool.models import Profile, User


@dataclass(frozen=True)
class AuthContext:
    """
    Identity of the caller for one request.

    Built once by ``load_current_user`` and handed to handlers by
    ``require_permission``; services receive it as an argument instead of
    reaching for request globals.
    """

    user: "User"
    profile: "Profile | None"
    role: str | None
    permissions: frozenset[str] = field(default_factory=frozenset)
    student_id: int | None = None
    instructor_id: int | None = None
    request_id: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    @property
    def is_instructor(self) -> bool:
        return self.role == "instructor"

    @property
    def is_student(self) -> bool:
        return self.role == "student"

    @property
    def profile_id(self) -> int | None:
        return self.profile.id if self.profile else None

    def has_permission(self, key: str) -> bool:
        return self.user.is_active and key in self.permissions

    def to_dict(self) -> dict:
        return {
            "user_id": self.user.id,
            "email": self.user.email,
            "role": self.role,
            "profile": self.profile.to_dict() if self.profile else None,
            "student_id": self.student_id,
            "instructor_id": self.instructor_id,
            "permissions": sorted(self.permissions),
        }


def build_context(user: "User", *, request_id: str | None = None) -> AuthContext:
    perms = frozenset(p.key for role in user.roles for p in role.permissions)
    profile = user.profile
    student_id = profile.student.id if profile and profile.student else None
    instructor_id = profile.instructor.id if profile and profile.instructor else None
    return AuthContext(
        user=user,
        profile=profile,
        role=user.primary_role,
        permissions=perms,
        student_id=student_id,
        instructor_id=instructor_id,
        request_id=request_id,
    )
