from __future__ import annotations

from typing import Any, Optional, Sequence

from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, fetchone
from .model import Grade
from .repository import GradeRepository


def _row_to_grade(r: dict) -> Grade:
    return Grade(
        grade_id=int(r["grade_id"]),
        name=r["name"],
        level=int(r["level"]),
        is_approver_grade=bool(r.get("is_approver_grade")),
        min_approval_grade_id=r.get("min_approval_grade_id"),
    )


class MySQLGradeRepository(GradeRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def _get_one(self, where: str, value: Any) -> Optional[Grade]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"SELECT grade_id, name, level, is_approver_grade, min_approval_grade_id FROM grades WHERE {where}",
                (value,),
            )
            row = fetchone(cur)
            return _row_to_grade(row) if row else None

    def get_by_id(self, grade_id: int) -> Optional[Grade]:
        return self._get_one("grade_id=%s", grade_id)

    def get_by_name(self, name: str) -> Optional[Grade]:
        return self._get_one("name=%s", name)

    def get_by_level(self, level: int) -> Optional[Grade]:
        return self._get_one("level=%s", level)

    def list_all(self) -> Sequence[Grade]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                "SELECT grade_id, name, level, is_approver_grade, min_approval_grade_id FROM grades ORDER BY level"
            )
            return [_row_to_grade(r) for r in fetchall(cur)]

    def create(
        self,
        *,
        name: str,
        level: int,
        is_approver_grade: bool,
        min_approval_grade_id: Optional[int],
    ) -> int:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                INSERT INTO grades(name, level, is_approver_grade, min_approval_grade_id)
                VALUES(%s,%s,%s,%s)
                """,
                (name, level, 1 if is_approver_grade else 0, min_approval_grade_id),
            )
            return int(cur.lastrowid)

    def update(
        self,
        grade_id: int,
        *,
        name: str,
        level: int,
        is_approver_grade: bool,
        min_approval_grade_id: Optional[int],
    ) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                UPDATE grades
                SET name=%s, level=%s, is_approver_grade=%s, min_approval_grade_id=%s
                WHERE grade_id=%s
                """,
                (name, level, 1 if is_approver_grade else 0, min_approval_grade_id, grade_id),
            )
            return cur.rowcount > 0

    def count_users(self, grade_id: int) -> int:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("SELECT COUNT(*) AS n FROM users WHERE grade_id=%s AND deleted_at IS NULL", (grade_id,))
            row = fetchone(cur)
            return int(row["n"]) if row else 0

    def delete(self, grade_id: int) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("DELETE FROM grades WHERE grade_id=%s", (grade_id,))
            return cur.rowcount > 0
