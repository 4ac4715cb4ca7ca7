from __future__ import annotations

from datetime import datetime
from typing import Optional, Protocol, Sequence

from ..core.enums import ApprovableType, ApprovalDecision, ApprovalStage
from .model import Approval


class ApprovalRepository(Protocol):
    """Append-only store: rows are inserted, never updated or deleted."""

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
        raise NotImplementedError

    def list_for(self, *, approvable_type: ApprovableType, approvable_id: int) -> Sequence[Approval]:
        """Rows in ascending (created_at, approval_id) order."""

        raise NotImplementedError

    def list_for_officer(
        self,
        *,
        officer_id: int,
        decision: Optional[ApprovalDecision] = None,
        approvable_type: Optional[ApprovableType] = None,
        limit: int = 200,
    ) -> Sequence[Approval]:
        """Rows naming ``officer_id``, newest first."""

        raise NotImplementedError
