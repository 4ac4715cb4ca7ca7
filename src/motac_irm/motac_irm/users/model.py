from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import ClassVar, Optional

from ..core.enums import Role, ServiceStatus, UserStatus


@dataclass(frozen=True)
class User:
    """Domain entity: User.

    Note: plain data object; no DB access lives here. ``grade_level`` is
    joined from grades for approver checks.
    """

    RESOURCE: ClassVar[str] = "user"

    user_id: int
    full_name: str
    email: str
    password_hash: str
    role: Role
    ic_number: str
    personal_email: Optional[str] = None
    phone_number: Optional[str] = None
    grade_id: Optional[int] = None
    grade_level: Optional[int] = None
    dept_id: Optional[int] = None
    position: Optional[str] = None
    service_status: Optional[ServiceStatus] = None
    motac_email: Optional[str] = None
    user_id_assigned: Optional[str] = None
    status: UserStatus = UserStatus.ACTIVE
    deleted_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.status == UserStatus.ACTIVE and self.deleted_at is None


@dataclass(frozen=True)
class Actor:
    """Whoever performs an operation; passed explicitly to every mutating use case."""

    user_id: int
    role: Role
    full_name: str = ""
    grade_level: Optional[int] = None

    @classmethod
    def from_user(cls, user: User) -> "Actor":
        return cls(user_id=user.user_id, role=user.role, full_name=user.full_name, grade_level=user.grade_level)
