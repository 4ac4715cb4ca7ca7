from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ..core.enums import ApprovableType, ApprovalDecision, ApprovalStage


@dataclass(frozen=True)
class Approval:
    """One ledger row: a stage opened (pending) or decided (approved/rejected)."""

    approval_id: int
    approvable_type: ApprovableType
    approvable_id: int
    stage: ApprovalStage
    decision: ApprovalDecision
    created_at: datetime
    officer_id: Optional[int] = None
    comments: Optional[str] = None
