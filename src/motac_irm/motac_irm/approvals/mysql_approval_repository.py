from __future__ import annotations

from datetime import datetime
from typing import Optional, Sequence

from ..core.enums import ApprovableType, ApprovalDecision, ApprovalStage
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall
from .model import Approval
from .repository import ApprovalRepository

_SELECT = """
    SELECT approval_id, approvable_type, approvable_id, officer_id, stage, decision, comments, created_at
    FROM approvals
"""


def _row_to_approval(r: dict) -> Approval:
    return Approval(
        approval_id=int(r["approval_id"]),
        approvable_type=ApprovableType(r["approvable_type"]),
        approvable_id=int(r["approvable_id"]),
        stage=ApprovalStage(r["stage"]),
        decision=ApprovalDecision(r["decision"]),
        created_at=r["created_at"],
        officer_id=r.get("officer_id"),
        comments=r.get("comments"),
    )


class MySQLApprovalRepository(ApprovalRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def append(
        self,
        *,
        approvable_type: ApprovableType,
        approvable_id: int,
        stage: ApprovalStage,
        decision: ApprovalDecision,
        officer_id: Optional[int],
        comments: Optional[str],
        created_at: datetime,
    ) -> int:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                INSERT INTO approvals(approvable_type, approvable_id, officer_id, stage, decision, comments, created_at)
                VALUES(%s,%s,%s,%s,%s,%s,%s)
                """,
                (approvable_type.value, approvable_id, officer_id, stage.value, decision.value, comments, created_at),
            )
            return int(cur.lastrowid)

    def list_for(self, *, approvable_type: ApprovableType, approvable_id: int) -> Sequence[Approval]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                {_SELECT}
                WHERE approvable_type=%s AND approvable_id=%s
                ORDER BY created_at ASC, approval_id ASC
                """,
                (approvable_type.value, approvable_id),
            )
            return [_row_to_approval(r) for r in fetchall(cur)]

    def list_for_officer(
        self,
        *,
        officer_id: int,
        decision: Optional[ApprovalDecision] = None,
        approvable_type: Optional[ApprovableType] = None,
        limit: int = 200,
    ) -> Sequence[Approval]:
        clauses = ["officer_id=%s"]
        params: list[object] = [int(officer_id)]
        if decision is not None:
            clauses.append("decision=%s")
            params.append(decision.value)
        if approvable_type is not None:
            clauses.append("approvable_type=%s")
            params.append(approvable_type.value)
        params.append(int(limit))
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"{_SELECT} WHERE {' AND '.join(clauses)} ORDER BY created_at DESC, approval_id DESC LIMIT %s",
                tuple(params),
            )
            return [_row_to_approval(r) for r in fetchall(cur)]
