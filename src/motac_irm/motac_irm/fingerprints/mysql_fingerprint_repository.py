from __future__ import annotations

import json
from datetime import date, datetime
from typing import Any, Mapping, Optional, Sequence

from ..core.enums import ImportStatus
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, fetchone, load_json, normalize_mysql_time
from .model import Fingerprint, FingerprintFilter, ImportJob
from .repository import FingerprintRepository, ImportJobRepository

_FINGERPRINT_COLUMNS = ("employee_id", "date", "check_in", "check_out", "log", "excuse", "device_id", "is_checked")

_SELECT = """
    SELECT f.fingerprint_id, f.employee_id, f.date, f.check_in, f.check_out, f.log,
           f.excuse, f.device_id, f.is_checked
    FROM fingerprints f
"""


def _row_to_fingerprint(r: dict) -> Fingerprint:
    return Fingerprint(
        fingerprint_id=int(r["fingerprint_id"]),
        employee_id=int(r["employee_id"]),
        date=r["date"],
        check_in=normalize_mysql_time(r.get("check_in")),
        check_out=normalize_mysql_time(r.get("check_out")),
        log=r.get("log"),
        excuse=r.get("excuse"),
        device_id=r.get("device_id"),
        is_checked=bool(r.get("is_checked")),
    )


def _checked(values: Mapping[str, Any]) -> None:
    unknown = set(values) - set(_FINGERPRINT_COLUMNS)
    if unknown:
        raise ValueError(f"Unsupported fingerprint columns: {sorted(unknown)}")


class MySQLFingerprintRepository(FingerprintRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def get_by_id(self, fingerprint_id: int) -> Optional[Fingerprint]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"{_SELECT} WHERE f.fingerprint_id=%s", (fingerprint_id,))
            row = fetchone(cur)
            return _row_to_fingerprint(row) if row else None

    def get_by_employee_and_date(self, employee_id: int, on: date) -> Optional[Fingerprint]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"{_SELECT} WHERE f.employee_id=%s AND f.date=%s", (employee_id, on))
            row = fetchone(cur)
            return _row_to_fingerprint(row) if row else None

    def create(self, *, values: Mapping[str, Any]) -> int:
        _checked(values)
        cols = list(values)
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"INSERT INTO fingerprints({', '.join(cols)}) VALUES({', '.join(['%s'] * len(cols))})",
                tuple(values[c] for c in cols),
            )
            return int(cur.lastrowid)

    def update(self, fingerprint_id: int, *, changes: Mapping[str, Any]) -> bool:
        if not changes:
            return True
        _checked(changes)
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"UPDATE fingerprints SET {', '.join(f'{c}=%s' for c in changes)} WHERE fingerprint_id=%s",
                (*changes.values(), fingerprint_id),
            )
            return cur.rowcount > 0

    def delete(self, fingerprint_id: int) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("DELETE FROM fingerprints WHERE fingerprint_id=%s", (fingerprint_id,))
            return cur.rowcount > 0

    def upsert(self, *, employee_id: int, on: date, values: Mapping[str, Any]) -> None:
        _checked(values)
        cols = [c for c in values if c not in ("employee_id", "date")]
        updates = ", ".join(f"{c}=VALUES({c})" for c in cols) or "employee_id=employee_id"
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                INSERT INTO fingerprints(employee_id, date{''.join(f', {c}' for c in cols)})
                VALUES({', '.join(['%s'] * (len(cols) + 2))})
                ON DUPLICATE KEY UPDATE {updates}
                """,
                (employee_id, on, *(values[c] for c in cols)),
            )

    def list_filtered(self, filters: FingerprintFilter, *, limit: Optional[int] = None) -> Sequence[Fingerprint]:
        clauses = ["1=1"]
        params: list[object] = []
        if filters.employee_id is not None:
            clauses.append("f.employee_id=%s")
            params.append(int(filters.employee_id))
        if filters.date_from is not None:
            clauses.append("f.date >= %s")
            params.append(filters.date_from)
        if filters.date_to is not None:
            clauses.append("f.date <= %s")
            params.append(filters.date_to)
        if filters.is_absence:
            clauses.append("f.log IS NULL")
        if filters.is_one_fingerprint:
            clauses.append("f.check_in IS NOT NULL AND f.check_out IS NULL")
        if filters.search:
            like = f"%{filters.search}%"
            clauses.append(
                """(f.log LIKE %s OR f.excuse LIKE %s OR EXISTS(
                       SELECT 1 FROM users u
                       WHERE u.user_id = f.employee_id
                         AND (u.full_name LIKE %s OR u.ic_number LIKE %s OR CAST(u.user_id AS CHAR) LIKE %s)))"""
            )
            params.extend([like] * 5)
        sql = f"{_SELECT} WHERE {' AND '.join(clauses)} ORDER BY f.date DESC, f.employee_id"
        if limit is not None:
            sql += " LIMIT %s"
            params.append(int(limit))
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(sql, tuple(params))
            return [_row_to_fingerprint(r) for r in fetchall(cur)]


def _row_to_job(r: dict) -> ImportJob:
    return ImportJob(
        import_id=int(r["import_id"]),
        file_name=r["file_name"],
        file_size=int(r["file_size"]),
        file_ext=r["file_ext"],
        file_type=r.get("file_type"),
        status=ImportStatus(r["status"]),
        current_row=int(r.get("current_row") or 0),
        total_rows=int(r.get("total_rows") or 0),
        success_count=int(r.get("success_count") or 0),
        failure_count=int(r.get("failure_count") or 0),
        details=load_json(r.get("details")) or {},
        created_by=r.get("created_by"),
        created_at=r.get("created_at"),
        finished_at=r.get("finished_at"),
    )


_JOB_COLUMNS = ("status", "current_row", "total_rows", "success_count", "failure_count", "details", "finished_at")


class MySQLImportJobRepository(ImportJobRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def create(
        self,
        *,
        file_name: str,
        file_size: int,
        file_ext: str,
        file_type: Optional[str],
        created_by: Optional[int],
        created_at: datetime,
    ) -> int:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                INSERT INTO imports(file_name, file_size, file_ext, file_type, status, created_by, created_at)
                VALUES(%s, %s, %s, %s, 'waiting', %s, %s)
                """,
                (file_name, int(file_size), file_ext, file_type, created_by, created_at),
            )
            return int(cur.lastrowid)

    def get_by_id(self, import_id: int) -> Optional[ImportJob]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("SELECT * FROM imports WHERE import_id=%s", (import_id,))
            row = fetchone(cur)
            return _row_to_job(row) if row else None

    def update(self, import_id: int, *, changes: Mapping[str, Any]) -> None:
        unknown = set(changes) - set(_JOB_COLUMNS)
        if unknown:
            raise ValueError(f"Unsupported import columns: {sorted(unknown)}")
        params = []
        for col, value in changes.items():
            if col == "details":
                value = json.dumps(value, default=str)
            elif col == "status":
                value = getattr(value, "value", value)
            params.append(value)
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"UPDATE imports SET {', '.join(f'{c}=%s' for c in changes)} WHERE import_id=%s",
                (*params, import_id),
            )

    def list_recent(self, *, limit: int = 20) -> Sequence[ImportJob]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("SELECT * FROM imports ORDER BY import_id DESC LIMIT %s", (int(limit),))
            return [_row_to_job(r) for r in fetchall(cur)]
