from __future__ import annotations

from datetime import datetime
from typing import Optional, Sequence

from ..common.datetime_utils import now_local
from ..common.log import get_logger
from ..core.enums import ApprovableType, ApprovalDecision, ApprovalStage
from ..core.exceptions import ConflictError
from .model import Approval
from .repository import ApprovalRepository

logger = get_logger(__name__)


class ApprovalLedger:
    """Append-only approval history of one application.

    A stage is *open* while its latest row is ``pending``; deciding it appends
    a new row instead of touching the pending one.
    """

    def __init__(self, approvals: ApprovalRepository):
        self._approvals = approvals

    def history(self, approvable_type: ApprovableType, approvable_id: int) -> list[Approval]:
        rows = self._approvals.list_for(approvable_type=approvable_type, approvable_id=approvable_id)
        return sorted(rows, key=lambda a: (a.created_at, a.approval_id))

    def current_stage(self, approvable_type: ApprovableType, approvable_id: int) -> Optional[Approval]:
        """Most recent pending row whose stage has not been decided since."""
        latest_by_stage: dict[ApprovalStage, Approval] = {}
        for row in self.history(approvable_type, approvable_id):
            latest_by_stage[row.stage] = row
        open_rows = [r for r in latest_by_stage.values() if r.decision == ApprovalDecision.PENDING]
        if not open_rows:
            return None
        return max(open_rows, key=lambda a: (a.created_at, a.approval_id))

    def open_stage(
        self,
        approvable_type: ApprovableType,
        approvable_id: int,
        *,
        stage: ApprovalStage,
        officer_id: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> int:
        return self._approvals.append(
            approvable_type=approvable_type,
            approvable_id=approvable_id,
            stage=stage,
            decision=ApprovalDecision.PENDING,
            officer_id=officer_id,
            comments=None,
            created_at=now or now_local(),
        )

    def record_decision(
        self,
        approvable_type: ApprovableType,
        approvable_id: int,
        *,
        stage: ApprovalStage,
        decision: ApprovalDecision,
        officer_id: int,
        comments: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> int:
        if decision == ApprovalDecision.PENDING:
            raise ValueError("record_decision() needs approved or rejected")

        current = self.current_stage(approvable_type, approvable_id)
        if current is not None and current.stage != stage:
            raise ConflictError(
                f"Stage '{stage.value}' is not open for decision",
                details={"open_stage": current.stage.value},
            )

        approval_id = self._approvals.append(
            approvable_type=approvable_type,
            approvable_id=approvable_id,
            stage=stage,
            decision=decision,
            officer_id=officer_id,
            comments=(comments or "").strip() or None,
            created_at=now or now_local(),
        )
        logger.info(
            f"Approval {decision.value} at {stage.value}",
            extra={
                "actor_id": officer_id,
                "operation": f"approval.{decision.value}",
                "entity_type": approvable_type.value,
                "entity_id": approvable_id,
            },
        )
        return approval_id

    def assigned_to(
        self,
        officer_id: int,
        *,
        decision: Optional[ApprovalDecision] = None,
        approvable_type: Optional[ApprovableType] = None,
    ) -> list[Approval]:
        """Approval dashboard of one officer: open stages assigned to them and decisions they made.

        A pending row counts only while its stage is still open; once anyone
        decides that stage the row drops off the officer's list.
        """
        rows = self._approvals.list_for_officer(officer_id=officer_id, decision=decision, approvable_type=approvable_type)
        result = []
        for row in rows:
            if row.decision == ApprovalDecision.PENDING:
                current = self.current_stage(row.approvable_type, row.approvable_id)
                if current is None or current.approval_id != row.approval_id:
                    continue
            result.append(row)
        return result
