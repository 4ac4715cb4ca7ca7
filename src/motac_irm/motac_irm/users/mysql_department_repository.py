from __future__ import annotations

from typing import Optional, Sequence

from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, fetchone
from .department_model import Department
from .department_repository import DepartmentRepository


def _row_to_department(r: dict) -> Department:
    return Department(dept_id=int(r["dept_id"]), dept_name=r["dept_name"], code=r.get("code"))


class MySQLDepartmentRepository(DepartmentRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def list_all(self) -> Sequence[Department]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("SELECT dept_id, dept_name, code FROM departments ORDER BY dept_name")
            return [_row_to_department(r) for r in fetchall(cur)]

    def get_by_id(self, dept_id: int) -> Optional[Department]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("SELECT dept_id, dept_name, code FROM departments WHERE dept_id=%s", (dept_id,))
            row = fetchone(cur)
            return _row_to_department(row) if row else None
