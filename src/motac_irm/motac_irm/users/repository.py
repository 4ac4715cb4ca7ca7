from __future__ import annotations

from datetime import datetime
from typing import Any, Mapping, Optional, Protocol, Sequence

from ..core.enums import Role, ServiceStatus
from .model import User


class UserRepository(Protocol):
    """Repository interface for User.

    Note (DIP): services depend on this interface, not on a concrete database.
    """

    def get_by_id(self, user_id: int) -> Optional[User]:
        raise NotImplementedError

    def get_by_email(self, email: str) -> Optional[User]:
        raise NotImplementedError

    def get_by_ic_number(self, ic_number: str) -> Optional[User]:
        raise NotImplementedError

    def get_by_personal_email(self, personal_email: str) -> Optional[User]:
        raise NotImplementedError

    def get_by_motac_email(self, motac_email: str) -> Optional[User]:
        raise NotImplementedError

    def create_user(
        self,
        *,
        full_name: str,
        email: str,
        password_hash: str,
        role: Role,
        ic_number: str,
        personal_email: Optional[str],
        phone_number: Optional[str],
        grade_id: Optional[int],
        dept_id: Optional[int],
        position: Optional[str],
        service_status: Optional[ServiceStatus],
    ) -> int:
        raise NotImplementedError

    def update_user(self, user_id: int, *, changes: Mapping[str, Any]) -> bool:
        raise NotImplementedError

    def soft_delete(self, user_id: int, *, deleted_at: datetime) -> bool:
        raise NotImplementedError

    def assign_motac_identity(self, user_id: int, *, motac_email: str, user_id_assigned: str) -> bool:
        raise NotImplementedError

    def find_approver(self, *, min_grade_level: int, exclude_user_id: int) -> Optional[User]:
        """Any active user whose grade level qualifies as supporting officer."""

        raise NotImplementedError

    def list_admin_view(self, *, include_deleted: bool = False) -> Sequence[dict]:
        raise NotImplementedError
