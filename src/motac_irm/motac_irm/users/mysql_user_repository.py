from __future__ import annotations

from datetime import datetime
from typing import Any, Mapping, Optional, Sequence

from ..core.enums import Role, ServiceStatus, UserStatus
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, fetchone
from .model import User
from .repository import UserRepository

_SELECT_USER = """
    SELECT u.user_id, u.full_name, u.email, u.password_hash, u.role, u.ic_number,
           u.personal_email, u.phone_number, u.grade_id, g.level AS grade_level,
           u.dept_id, u.position, u.service_status, u.motac_email, u.user_id_assigned,
           u.status, u.deleted_at
    FROM users u
    LEFT JOIN grades g ON g.grade_id = u.grade_id
"""

# Columns an update may touch; anything else in ``changes`` is a programming error.
_UPDATABLE = {
    "full_name",
    "email",
    "password_hash",
    "role",
    "ic_number",
    "personal_email",
    "phone_number",
    "grade_id",
    "dept_id",
    "position",
    "service_status",
    "status",
}


def _row_to_user(row: dict) -> User:
    return User(
        user_id=int(row["user_id"]),
        full_name=row["full_name"],
        email=row["email"],
        password_hash=row["password_hash"],
        role=Role(row["role"]),
        ic_number=row["ic_number"],
        personal_email=row.get("personal_email"),
        phone_number=row.get("phone_number"),
        grade_id=row.get("grade_id"),
        grade_level=int(row["grade_level"]) if row.get("grade_level") is not None else None,
        dept_id=row.get("dept_id"),
        position=row.get("position"),
        service_status=ServiceStatus(row["service_status"]) if row.get("service_status") else None,
        motac_email=row.get("motac_email"),
        user_id_assigned=row.get("user_id_assigned"),
        status=UserStatus(row.get("status") or UserStatus.ACTIVE.value),
        deleted_at=row.get("deleted_at"),
    )


def _db_value(value: Any) -> Any:
    return value.value if isinstance(value, (Role, ServiceStatus, UserStatus)) else value


class MySQLUserRepository(UserRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def _get_one(self, where: str, value: Any) -> Optional[User]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"{_SELECT_USER} WHERE {where}", (value,))
            row = fetchone(cur)
            return _row_to_user(row) if row else None

    def get_by_id(self, user_id: int) -> Optional[User]:
        return self._get_one("u.user_id=%s", user_id)

    def get_by_email(self, email: str) -> Optional[User]:
        return self._get_one("u.email=%s", email)

    def get_by_ic_number(self, ic_number: str) -> Optional[User]:
        return self._get_one("u.ic_number=%s", ic_number)

    def get_by_personal_email(self, personal_email: str) -> Optional[User]:
        return self._get_one("u.personal_email=%s", personal_email)

    def get_by_motac_email(self, motac_email: str) -> Optional[User]:
        return self._get_one("u.motac_email=%s", motac_email)

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
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                INSERT INTO users(full_name, email, password_hash, role, ic_number, personal_email,
                                  phone_number, grade_id, dept_id, position, service_status, status)
                VALUES(%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,'active')
                """,
                (
                    full_name,
                    email,
                    password_hash,
                    role.value,
                    ic_number,
                    personal_email,
                    phone_number,
                    grade_id,
                    dept_id,
                    position,
                    service_status.value if service_status else None,
                ),
            )
            return int(cur.lastrowid)

    def update_user(self, user_id: int, *, changes: Mapping[str, Any]) -> bool:
        unknown = set(changes) - _UPDATABLE
        if unknown:
            raise ValueError(f"Unsupported user columns: {sorted(unknown)}")
        if not changes:
            return False
        assignments = ", ".join(f"{col}=%s" for col in changes)
        params = [_db_value(v) for v in changes.values()] + [user_id]
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"UPDATE users SET {assignments} WHERE user_id=%s AND deleted_at IS NULL", tuple(params))
            return cur.rowcount > 0

    def soft_delete(self, user_id: int, *, deleted_at: datetime) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                "UPDATE users SET deleted_at=%s, status='inactive' WHERE user_id=%s AND deleted_at IS NULL",
                (deleted_at, user_id),
            )
            return cur.rowcount > 0

    def assign_motac_identity(self, user_id: int, *, motac_email: str, user_id_assigned: str) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                "UPDATE users SET motac_email=%s, user_id_assigned=%s WHERE user_id=%s",
                (motac_email, user_id_assigned, user_id),
            )
            return cur.rowcount > 0

    def find_approver(self, *, min_grade_level: int, exclude_user_id: int) -> Optional[User]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                {_SELECT_USER}
                WHERE g.level >= %s AND u.user_id <> %s
                  AND u.status='active' AND u.deleted_at IS NULL
                ORDER BY g.level ASC, u.user_id ASC
                LIMIT 1
                """,
                (min_grade_level, exclude_user_id),
            )
            row = fetchone(cur)
            return _row_to_user(row) if row else None

    def list_admin_view(self, *, include_deleted: bool = False) -> Sequence[dict]:
        where = "" if include_deleted else "WHERE u.deleted_at IS NULL"
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT u.user_id, u.full_name, u.email, u.role, u.status, u.position,
                       u.motac_email, d.dept_name, g.name AS grade_name
                FROM users u
                LEFT JOIN departments d ON d.dept_id = u.dept_id
                LEFT JOIN grades g ON g.grade_id = u.grade_id
                {where}
                ORDER BY u.user_id DESC
                """
            )
            rows = fetchall(cur)
            return [
                {
                    "user_id": r["user_id"],
                    "full_name": r["full_name"],
                    "email": r["email"],
                    "role": r["role"],
                    "status": r["status"],
                    "position": r.get("position") or "-",
                    "motac_email": r.get("motac_email") or "-",
                    "dept_name": r.get("dept_name") or "-",
                    "grade_name": r.get("grade_name") or "-",
                }
                for r in rows
            ]
