from __future__ import annotations

from datetime import datetime
from typing import Any, Mapping, Optional, Sequence

from mysql.connector.errors import IntegrityError

from ..core.enums import (
    AssetType,
    EquipmentCondition,
    LoanApplicationStatus,
    LoanTransactionStatus,
)
from ..core.exceptions import ConflictError
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, fetchone, in_clause, is_duplicate_key
from ..equipment.availability import ensure_issuable, status_after_return, transaction_status_after_return
from ..equipment.mysql_equipment_repository import EQUIPMENT_COLUMNS, row_to_equipment
from .model import LoanApplication, LoanItem, LoanTransaction
from .repository import LoanApplicationRepository

_DRAFT_COLUMNS = (
    "purpose",
    "location",
    "loan_start_date",
    "loan_end_date",
    "responsible_officer_id",
    "applicant_confirmation",
    "applicant_confirmation_timestamp",
)

_TRANSITION_COLUMNS = _DRAFT_COLUMNS + ("rejection_reason", "submitted_at")

_EQUIPMENT_SELECT = ", ".join(f"e.{c}" for c in EQUIPMENT_COLUMNS)

_SELECT = """
    SELECT application_id, user_id, responsible_officer_id, purpose, location,
           loan_start_date, loan_end_date, status, rejection_reason,
           applicant_confirmation, applicant_confirmation_timestamp, submitted_at, created_at
    FROM loan_applications
"""

_SELECT_TX = """
    SELECT transaction_id, application_id, equipment_id, issuing_officer_id, receiving_officer_id,
           accessories_on_issue, issue_timestamp, returning_officer_id, return_accepting_officer_id,
           accessories_on_return, return_timestamp, return_condition, return_notes, status
    FROM loan_transactions
"""


def _row_to_item(r: dict) -> LoanItem:
    return LoanItem(
        item_id=int(r["item_id"]),
        line_no=int(r["line_no"]),
        equipment_type=AssetType(r["equipment_type"]),
        quantity_requested=int(r["quantity_requested"]),
        quantity_approved=int(r["quantity_approved"]) if r.get("quantity_approved") is not None else None,
        quantity_issued=int(r.get("quantity_issued") or 0),
        notes=r.get("notes"),
    )


def _row_to_application(r: dict, items: Sequence[LoanItem] = ()) -> LoanApplication:
    return LoanApplication(
        application_id=int(r["application_id"]),
        user_id=int(r["user_id"]),
        status=LoanApplicationStatus(r["status"]),
        purpose=r.get("purpose"),
        location=r.get("location"),
        loan_start_date=r.get("loan_start_date"),
        loan_end_date=r.get("loan_end_date"),
        responsible_officer_id=r.get("responsible_officer_id"),
        rejection_reason=r.get("rejection_reason"),
        applicant_confirmation=bool(r.get("applicant_confirmation")),
        applicant_confirmation_timestamp=r.get("applicant_confirmation_timestamp"),
        submitted_at=r.get("submitted_at"),
        created_at=r.get("created_at"),
        items=tuple(items),
    )


def _row_to_transaction(r: dict) -> LoanTransaction:
    return LoanTransaction(
        transaction_id=int(r["transaction_id"]),
        application_id=int(r["application_id"]),
        equipment_id=int(r["equipment_id"]),
        issuing_officer_id=int(r["issuing_officer_id"]),
        receiving_officer_id=int(r["receiving_officer_id"]),
        issue_timestamp=r["issue_timestamp"],
        status=LoanTransactionStatus(r["status"]),
        accessories_on_issue=r.get("accessories_on_issue"),
        return_timestamp=r.get("return_timestamp"),
        returning_officer_id=r.get("returning_officer_id"),
        return_accepting_officer_id=r.get("return_accepting_officer_id"),
        accessories_on_return=r.get("accessories_on_return"),
        return_condition=EquipmentCondition(r["return_condition"]) if r.get("return_condition") else None,
        return_notes=r.get("return_notes"),
    )


def _db_value(value: Any) -> Any:
    if isinstance(value, bool):
        return 1 if value else 0
    return getattr(value, "value", value)


def _assignments(values: Mapping[str, Any], allowed: Sequence[str]) -> tuple[str, tuple]:
    unknown = set(values) - set(allowed)
    if unknown:
        raise ValueError(f"Unsupported loan application columns: {sorted(unknown)}")
    sql = ", ".join(f"{c}=%s" for c in values)
    return sql, tuple(_db_value(v) for v in values.values())


def _insert_items(cur, application_id: int, items: Sequence[Mapping[str, Any]]) -> None:
    for line_no, item in enumerate(items, start=1):
        cur.execute(
            """
            INSERT INTO loan_application_items(application_id, line_no, equipment_type, quantity_requested, notes)
            VALUES(%s, %s, %s, %s, %s)
            """,
            (
                application_id,
                line_no,
                _db_value(item["equipment_type"]),
                int(item["quantity_requested"]),
                item.get("notes"),
            ),
        )


def _lock_application(cur, application_id: int, expected: str) -> None:
    cur.execute("SELECT status FROM loan_applications WHERE application_id=%s FOR UPDATE", (application_id,))
    row = fetchone(cur)
    if row is None or row["status"] != expected:
        raise ConflictError(
            "The application was changed by another user; reload and try again",
            details={"status": row["status"] if row else None, "expected": expected},
        )


class MySQLLoanApplicationRepository(LoanApplicationRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def create_draft(self, *, user_id: int, values: Mapping[str, Any], items: Sequence[Mapping[str, Any]]) -> int:
        cols = [c for c in _DRAFT_COLUMNS if c in values]
        col_sql = "".join(f", {c}" for c in cols)
        placeholders = ", ".join(["%s"] * (len(cols) + 1))
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"INSERT INTO loan_applications(user_id{col_sql}, status) VALUES({placeholders}, 'draft')",
                (user_id, *(_db_value(values[c]) for c in cols)),
            )
            application_id = int(cur.lastrowid)
            _insert_items(cur, application_id, items)
            return application_id

    def get_by_id(self, application_id: int) -> Optional[LoanApplication]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"{_SELECT} WHERE application_id=%s", (application_id,))
            row = fetchone(cur)
            if not row:
                return None
            cur.execute(
                "SELECT * FROM loan_application_items WHERE application_id=%s ORDER BY line_no",
                (application_id,),
            )
            items = [_row_to_item(r) for r in fetchall(cur)]
            return _row_to_application(row, items)

    def update_draft(
        self,
        application_id: int,
        *,
        values: Mapping[str, Any],
        items: Optional[Sequence[Mapping[str, Any]]] = None,
    ) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                "SELECT status FROM loan_applications WHERE application_id=%s FOR UPDATE",
                (application_id,),
            )
            row = fetchone(cur)
            if row is None or row["status"] != LoanApplicationStatus.DRAFT.value:
                return False
            if values:
                sql, params = _assignments(values, _DRAFT_COLUMNS)
                cur.execute(f"UPDATE loan_applications SET {sql} WHERE application_id=%s", params + (application_id,))
            if items is not None:
                cur.execute("DELETE FROM loan_application_items WHERE application_id=%s", (application_id,))
                _insert_items(cur, application_id, items)
            return True

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
                f"UPDATE loan_applications SET {set_sql} WHERE application_id=%s AND status=%s",
                (target, *extra_params, application_id, expected),
            )
            return cur.rowcount > 0

    def issue(
        self,
        application_id: int,
        *,
        expected: str,
        target: str,
        equipment_ids: Sequence[int],
        issuing_officer_id: int,
        receiving_officer_id: int,
        accessories: Optional[str],
        issued_at: datetime,
    ) -> list[int]:
        ids = sorted({int(i) for i in equipment_ids})
        try:
            with db_cursor(self._conn_factory) as (_, cur):
                _lock_application(cur, application_id, expected)

                # Lock units in id order so concurrent issuers queue instead of deadlocking.
                cur.execute(
                    f"""
                    SELECT e.equipment_id, {_EQUIPMENT_SELECT},
                           EXISTS(SELECT 1 FROM loan_transactions t
                                  WHERE t.equipment_id = e.equipment_id AND t.return_timestamp IS NULL) AS has_open
                    FROM equipment e
                    WHERE e.equipment_id IN ({in_clause(ids)})
                    ORDER BY e.equipment_id
                    FOR UPDATE
                    """,
                    tuple(ids),
                )
                rows = fetchall(cur)
                found = {int(r["equipment_id"]) for r in rows}
                missing = [i for i in ids if i not in found]
                if missing:
                    raise ConflictError("Some equipment no longer exists", details={"missing_equipment_ids": missing})
                units = [(row_to_equipment(r), bool(r["has_open"])) for r in rows]
                ensure_issuable(units)

                transaction_ids: list[int] = []
                for eq, _ in units:
                    cur.execute(
                        """
                        INSERT INTO loan_transactions(
                            application_id, equipment_id, issuing_officer_id, receiving_officer_id,
                            accessories_on_issue, issue_timestamp, status)
                        VALUES(%s, %s, %s, %s, %s, %s, 'issued')
                        """,
                        (application_id, eq.equipment_id, issuing_officer_id, receiving_officer_id, accessories, issued_at),
                    )
                    transaction_ids.append(int(cur.lastrowid))
                    cur.execute("UPDATE equipment SET status='on_loan' WHERE equipment_id=%s", (eq.equipment_id,))

                per_type: dict[str, int] = {}
                for eq, _ in units:
                    per_type[eq.asset_type.value] = per_type.get(eq.asset_type.value, 0) + 1
                for asset_type, count in per_type.items():
                    cur.execute(
                        """
                        UPDATE loan_application_items SET quantity_issued = quantity_issued + %s
                        WHERE application_id=%s AND equipment_type=%s
                        ORDER BY line_no LIMIT 1
                        """,
                        (count, application_id, asset_type),
                    )

                cur.execute(
                    "UPDATE loan_applications SET status=%s WHERE application_id=%s AND status=%s",
                    (target, application_id, expected),
                )
                return transaction_ids
        except IntegrityError as e:
            if is_duplicate_key(e):
                raise ConflictError("Some equipment is already on loan") from e
            raise

    def return_equipment(
        self,
        application_id: int,
        *,
        expected: str,
        target: str,
        conditions: Mapping[int, EquipmentCondition],
        returning_officer_id: int,
        accepting_officer_id: int,
        accessories: Optional[str],
        notes: Optional[str],
        returned_at: datetime,
    ) -> int:
        with db_cursor(self._conn_factory) as (_, cur):
            _lock_application(cur, application_id, expected)
            cur.execute(
                f"{_SELECT_TX} WHERE application_id=%s AND return_timestamp IS NULL ORDER BY equipment_id FOR UPDATE",
                (application_id,),
            )
            open_tx = [_row_to_transaction(r) for r in fetchall(cur)]
            uncovered = [t.equipment_id for t in open_tx if t.equipment_id not in conditions]
            if uncovered:
                raise ConflictError(
                    "A return condition is needed for every unit on loan",
                    details={"equipment_ids": uncovered},
                )

            for t in open_tx:
                condition = conditions[t.equipment_id]
                cur.execute(
                    """
                    UPDATE loan_transactions
                    SET return_timestamp=%s, returning_officer_id=%s, return_accepting_officer_id=%s,
                        accessories_on_return=%s, return_condition=%s, return_notes=%s, status=%s
                    WHERE transaction_id=%s
                    """,
                    (
                        returned_at,
                        returning_officer_id,
                        accepting_officer_id,
                        accessories,
                        condition.value,
                        notes,
                        transaction_status_after_return(condition).value,
                        t.transaction_id,
                    ),
                )
                cur.execute(
                    "UPDATE equipment SET status=%s, condition_status=%s WHERE equipment_id=%s",
                    (status_after_return(condition).value, condition.value, t.equipment_id),
                )

            cur.execute(
                "UPDATE loan_applications SET status=%s WHERE application_id=%s AND status=%s",
                (target, application_id, expected),
            )
            return len(open_tx)

    def list_transactions(self, application_id: int) -> Sequence[LoanTransaction]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"{_SELECT_TX} WHERE application_id=%s ORDER BY transaction_id", (application_id,))
            return [_row_to_transaction(r) for r in fetchall(cur)]

    def list_applications(
        self,
        *,
        user_id: Optional[int] = None,
        status: Optional[LoanApplicationStatus] = None,
        limit: int = 200,
    ) -> Sequence[LoanApplication]:
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
