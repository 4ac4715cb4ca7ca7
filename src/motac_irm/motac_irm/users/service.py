from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping, Optional

from werkzeug.security import check_password_hash, generate_password_hash

from ..authorization.policy import USER, authorize
from ..common.datetime_utils import now_local
from ..common.log import get_logger, operation_extra
from ..common.validators import Validator
from ..core.constants import DEFAULT_PASSWORD_CONFIRM_SECONDS, MIN_PASSWORD_LENGTH
from ..core.enums import Role, ServiceStatus, UserStatus
from ..core.exceptions import AuthenticationError, ConflictError, NotFoundError
from ..grades.repository import GradeRepository
from .department_repository import DepartmentRepository
from .model import Actor, User
from .repository import UserRepository

logger = get_logger(__name__)


@dataclass(frozen=True)
class SessionUser:
    """What we store into Flask session after login."""

    user_id: int
    full_name: str
    role: Role
    grade_level: Optional[int]
    dept_id: Optional[int]

    def to_actor(self) -> Actor:
        return Actor(user_id=self.user_id, role=self.role, full_name=self.full_name, grade_level=self.grade_level)


class AuthService:
    """Use case: authenticate user (login) and the password confirmation gate."""

    def __init__(self, users: UserRepository, *, confirm_seconds: int = DEFAULT_PASSWORD_CONFIRM_SECONDS):
        self._users = users
        self._confirm_seconds = int(confirm_seconds)

    def _check(self, user: Optional[User], password: str) -> bool:
        if not user or not user.is_active:
            return False
        try:
            return check_password_hash(user.password_hash, password or "")
        except ValueError:
            # e.g. placeholder hashes like 'CHANGE_ME' or corrupted values
            return False

    def authenticate(self, email: str, password: str) -> SessionUser:
        user = self._users.get_by_email((email or "").strip().lower())
        if not self._check(user, password):
            raise AuthenticationError("These credentials do not match our records")

        return SessionUser(
            user_id=user.user_id,
            full_name=user.full_name,
            role=user.role,
            grade_level=user.grade_level,
            dept_id=user.dept_id,
        )

    def load_actor(self, user_id: int) -> Optional[Actor]:
        user = self._users.get_by_id(user_id)
        if not user or not user.is_active:
            return None
        return Actor.from_user(user)

    def confirm_password(self, *, user_id: int, password: str, now: Optional[datetime] = None) -> datetime:
        """Return the timestamp to store as ``password_confirmed_at``."""
        user = self._users.get_by_id(user_id)
        if not self._check(user, password):
            raise AuthenticationError("The provided password is incorrect")
        return now or now_local()

    def password_recently_confirmed(self, confirmed_at: Optional[datetime], *, now: Optional[datetime] = None) -> bool:
        if confirmed_at is None:
            return False
        now = now or now_local()
        return (now - confirmed_at).total_seconds() <= self._confirm_seconds


class UserService:
    """Use case: registration, self-service profile, admin user management."""

    def __init__(self, users: UserRepository, grades: GradeRepository, departments: DepartmentRepository):
        self._users = users
        self._grades = grades
        self._departments = departments

    def _validate(
        self,
        data: Mapping[str, Any],
        *,
        partial: bool = False,
        ignore_id: Optional[int] = None,
    ) -> dict[str, Any]:
        v = Validator(partial=partial)
        out: dict[str, Any] = {
            "full_name": v.string("full_name", data.get("full_name"), required=True, max_length=255),
            "email": v.email("email", data.get("email"), required=True),
            "personal_email": v.email("personal_email", data.get("personal_email")),
            "ic_number": v.string("ic_number", data.get("ic_number"), required=True, max_length=20),
            "phone_number": v.string("phone_number", data.get("phone_number"), max_length=20),
            "grade_id": v.integer("grade_id", data.get("grade_id")),
            "dept_id": v.integer("dept_id", data.get("dept_id")),
            "position": v.string("position", data.get("position"), required=True, max_length=255),
            "service_status": v.choice("service_status", data.get("service_status"), ServiceStatus),
        }

        password = data.get("password")
        if password or not partial:
            if not password or len(password) < MIN_PASSWORD_LENGTH:
                v.add("password", f"password must be at least {MIN_PASSWORD_LENGTH} characters")
            elif password != data.get("password_confirmation"):
                v.add("password", "password confirmation does not match")
            else:
                out["password_hash"] = generate_password_hash(password)

        for field, lookup in (
            ("email", self._users.get_by_email),
            ("personal_email", self._users.get_by_personal_email),
            ("ic_number", self._users.get_by_ic_number),
        ):
            value = out[field]
            if value is not None and not v.has(field):
                owner = lookup(value)
                v.unique(field, value, owner.user_id if owner else None, ignore_id=ignore_id)

        v.exists("grade_id", out["grade_id"], self._grades.get_by_id)
        v.exists("dept_id", out["dept_id"], self._departments.get_by_id)
        v.raise_if_failed()
        return out

    def register(self, data: Mapping[str, Any]) -> int:
        """Self-registration: always creates a STAFF account."""
        values = self._validate(data)
        user_id = self._create(values, role=Role.STAFF)
        logger.info("User registered", extra=operation_extra(actor_id=user_id, operation="user.register", entity_type=USER, entity_id=user_id))
        return user_id

    def create_account(self, *, actor: Actor, data: Mapping[str, Any]) -> int:
        authorize(actor, USER, "create")
        values = self._validate(data)
        v = Validator()
        role = v.choice("role", data.get("role") or Role.STAFF.value, Role)
        v.raise_if_failed()
        user_id = self._create(values, role=role)
        logger.info("User created", extra=operation_extra(actor_id=actor.user_id, operation="user.create", entity_type=USER, entity_id=user_id))
        return user_id

    def _create(self, values: Mapping[str, Any], *, role: Role) -> int:
        return self._users.create_user(
            full_name=values["full_name"],
            email=values["email"],
            password_hash=values["password_hash"],
            role=role,
            ic_number=values["ic_number"],
            personal_email=values["personal_email"],
            phone_number=values["phone_number"],
            grade_id=values["grade_id"],
            dept_id=values["dept_id"],
            position=values["position"],
            service_status=values["service_status"],
        )

    def get_user(self, *, actor: Actor, user_id: int) -> User:
        user = self._users.get_by_id(user_id)
        if not user or user.deleted_at is not None:
            raise NotFoundError("User not found")
        authorize(actor, user, "view")
        return user

    def update_account(self, *, actor: Actor, user_id: int, data: Mapping[str, Any]) -> User:
        user = self.get_user(actor=actor, user_id=user_id)
        authorize(actor, user, "update")

        values = self._validate(data, partial=True, ignore_id=user.user_id)
        changes = {k: val for k, val in values.items() if val is not None}

        # Role and status are admin-only fields.
        if data.get("role") or data.get("status"):
            authorize(actor, user, "manage")
            v = Validator(partial=True)
            role = v.choice("role", data.get("role"), Role)
            status = v.choice("status", data.get("status"), UserStatus)
            v.raise_if_failed()
            if role:
                changes["role"] = role
            if status:
                changes["status"] = status

        if changes:
            self._users.update_user(user.user_id, changes=changes)
        logger.info(
            "User updated",
            extra=operation_extra(actor_id=actor.user_id, operation="user.update", entity_type=USER, entity_id=user.user_id),
        )
        return self._users.get_by_id(user.user_id)

    def list_admin_view(self, *, actor: Actor):
        authorize(actor, USER, "list_all")
        return self._users.list_admin_view()

    def delete_user(self, *, actor: Actor, user_id: int, now: Optional[datetime] = None) -> None:
        """Soft delete: users are never removed from the table."""
        user = self._users.get_by_id(user_id)
        if not user or user.deleted_at is not None:
            raise NotFoundError("User not found")
        authorize(actor, user, "delete")
        if user.user_id == actor.user_id:
            raise ConflictError("You cannot delete your own account")

        self._users.soft_delete(user.user_id, deleted_at=now or now_local())
        logger.info("User deleted", extra=operation_extra(actor_id=actor.user_id, operation="user.delete", entity_type=USER, entity_id=user.user_id))
