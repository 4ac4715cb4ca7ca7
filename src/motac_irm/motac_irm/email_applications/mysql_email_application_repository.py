from __future__ import annotations

from datetime import datetime
from typing import Any, Mapping, Optional, Sequence

from mysql.connector.errors import IntegrityError

from ..core.enums import EmailApplicationStatus, ServiceStatus
from ..core.exceptions import ConflictError
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, fetchone, is_duplicate_key
from .model import EmailApplication
from .repository import EmailApplicationRepository

_DRAFT_COLUMNS = (
    "service_status",
    "purpose",
    "proposed_email",
    "group_email",
    "group_admin_name",
    "group_admin_email",
    "certification_accepted",
    "certification_timestamp",
)

_TRANSITION_COLUMNS = _DRAFT_COLUMNS + (
    "rejection_reason",
    "provision_attempts",
    "provision_error",
    "submitted_at",
)

_SELECT = """
    SELECT application_id, user_id, status, service_status, purpose, proposed_email,
           group_email, group_admin_name, group_admin_email, certification_accepted,
           certification_timestamp, rejection_reason, final_assigned_email,
           final_assigned_user_id, provisioned_at, provision_attempts, provision_error,
           submitted_at, created_at
    FROM email_applications
"""


def _row_to_application(r: dict) -> EmailApplication:
    return EmailApplication(
        application_id=int(r["application_id"]),
        user_id=int(r["user_id"]),
        status=EmailApplicationStatus(r["status"]),
        service_status=ServiceStatus(r["service_status"]) if r.get("service_status") else None,
        purpose=r.get("purpose"),
        proposed_email=r.get("proposed_email"),
        group_email=r.get("group_email"),
        group_admin_name=r.get("group_admin_name"),
        group_admin_email=r.get("group_admin_email"),
        certification_accepted=bool(r.get("certification_accepted")),
        certification_timestamp=r.get("certification_timestamp"),
        rejection_reason=r.get("rejection_reason"),
        final_assigned_email=r.get("final_assigned_email"),
        final_assigned_user_id=r.get("final_assigned_user_id"),
        provisioned_at=r.get("provisioned_at"),
        provision_attempts=int(r.get("provision_attempts") or 0),
        provision_error=r.get("provision_error"),
        submitted_at=r.get("submitted_at"),
        created_at=r.get("created_at"),
    )


def _db_value(value: Any) -> Any:
    if isinstance(value, ServiceStatus):
        return value.value
    if isinstance(value, bool):
        return 1 if value else 0
    return value


def _assignments(values: Mapping[str, Any], allowed: Sequence[str]) -> tuple[str, tuple]:
    unknown = set(values) - set(allowed)
    if unknown:
        raise ValueError(f"Unsupported email application columns: {sorted(unknown)}")
    sql = ", ".join(f"{c}=%s" for c in values)
    return sql, tuple(_db_value(v) for v in values.values())


class MySQLEmailApplicationRepository(EmailApplicationRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def create_draft(self, *, user_id: int, values: Mapping[str, Any]) -> int:
        cols = [c for c in _DRAFT_COLUMNS if c in values]
        placeholders = ", ".join(["%s"] * (len(cols) + 1))
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"INSERT INTO email_applications(user_id, {', '.join(cols)}, status) VALUES({placeholders}, 'draft')"
                if cols
                else "INSERT INTO email_applications(user_id, status) VALUES(%s, 'draft')",
                (user_id, *(_db_value(values[c]) for c in cols)),
            )
            return int(cur.lastrowid)

    def get_by_id(self, application_id: int) -> Optional[EmailApplication]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"{_SELECT} WHERE application_id=%s", (application_id,))
            row = fetchone(cur)
            return _row_to_application(row) if row else None

    def update_draft(self, application_id: int, *, values: Mapping[str, Any]) -> bool:
        """False only when the row is no longer a draft.

        Relies on the FOUND_ROWS client flag set in ``DatabaseConnection.connect``:
        re-saving identical values matches the row without changing it.
        """
        if not values:
            return True
        sql, params = _assignments(values, _DRAFT_COLUMNS)
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"UPDATE email_applications SET {sql} WHERE application_id=%s AND status='draft'",
                params + (application_id,),
            )
            return cur.rowcount > 0

    def transition(
        self,
        application_id: int,
        *,
        expected: str,
        target: str,
        changes: Mapping[str, Any],
    ) -> bool:
        extra_sql, extra_params = _assignments(changes, _TRANSITION_COLUMNS) if changes else ("", ())
        set_sql = "status=%s" + (f", {extra_sql}" if extra_sql else "")
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"UPDATE email_applications SET {set_sql} WHERE application_id=%s AND status=%s",
                (target, *extra_params, application_id, expected),
            )
            return cur.rowcount > 0

    def complete_provisioning(
        self,
        application_id: int,
        *,
        final_email: str,
        final_user_id: str,
        provisioned_at: datetime,
    ) -> bool:
        try:
            with db_cursor(self._conn_factory) as (_, cur):
                cur.execute(
                    """
                    UPDATE email_applications
                    SET status='completed', final_assigned_email=%s, final_assigned_user_id=%s,
                        provisioned_at=%s, provision_error=NULL
                    WHERE application_id=%s AND status='processing'
                    """,
                    (final_email, final_user_id, provisioned_at, application_id),
                )
                return cur.rowcount > 0
        except IntegrityError as e:
            if is_duplicate_key(e):
                raise ConflictError("The assigned email or user id is already in use") from e
            raise

    def final_email_taken(self, email: str) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("SELECT 1 AS x FROM email_applications WHERE final_assigned_email=%s LIMIT 1", (email,))
            return fetchone(cur) is not None

    def list_applications(
        self,
        *,
        user_id: Optional[int] = None,
        status: Optional[EmailApplicationStatus] = None,
        limit: int = 200,
    ) -> Sequence[EmailApplication]:
        clauses = ["1=1"]
        params: list[object] = []
        if user_id is not None:
            clauses.append("user_id=%s")
            params.append(int(user_id))
        if status is not None:
            clauses.append("status=%s")
            params.append(status.value)
        params.append(int(limit))
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"{_SELECT} WHERE {' AND '.join(clauses)} ORDER BY application_id DESC LIMIT %s",
                tuple(params),
            )
            return [_row_to_application(r) for r in fetchall(cur)]
