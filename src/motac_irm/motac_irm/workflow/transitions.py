"""Explicit transition tables for application lifecycles.

Given the current status S and an action A, the table yields exactly one
:class:`Transition` or raises :class:`ConflictError`. Services never write a
status that did not come out of :meth:`TransitionTable.resolve`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

from ..common.log import get_logger
from ..core.enums import ApprovalStage, EmailApplicationStatus, LoanApplicationStatus, WorkflowAction
from ..core.exceptions import ConflictError

logger = get_logger(__name__)

A = WorkflowAction


@dataclass(frozen=True)
class Transition:
    source: str
    action: WorkflowAction
    target: str
    # Authorization action checked against the application before the move.
    policy_action: str
    # Approval stage decided by this transition (approve/reject only).
    stage: Optional[ApprovalStage] = None


class TransitionTable:
    def __init__(self, resource: str, transitions: Iterable[Transition], *, order: dict[str, int]):
        self.resource = resource
        self._order = dict(order)
        self._by_key: dict[tuple[str, WorkflowAction], Transition] = {}
        for t in transitions:
            key = (t.source, t.action)
            if key in self._by_key:
                raise ValueError(f"Duplicate transition for {key}")
            self._by_key[key] = t

    def __iter__(self):
        return iter(self._by_key.values())

    def resolve(self, current: str, action: WorkflowAction) -> Transition:
        current = getattr(current, "value", current)
        transition = self._by_key.get((current, action))
        if transition is None:
            logger.debug(
                f"Rejected transition: {self.resource} {current} --{action.value}-->",
                extra={"operation": action.value, "status": current},
            )
            raise ConflictError(
                f"Cannot {action.value.replace('_', ' ')} a {self.resource.replace('_', ' ')} with status '{current}'",
                details={"status": current, "action": action.value},
            )
        return transition

    def can(self, current: str, action: WorkflowAction) -> bool:
        return (getattr(current, "value", current), action) in self._by_key

    def allowed_actions(self, current: str) -> list[WorkflowAction]:
        current = getattr(current, "value", current)
        return [action for (source, action) in self._by_key if source == current]

    def is_terminal(self, state: str) -> bool:
        return not self.allowed_actions(state)

    def rank(self, state: str) -> int:
        return self._order[getattr(state, "value", state)]


ES = EmailApplicationStatus

EMAIL_APPLICATION_TRANSITIONS = TransitionTable(
    "email_application",
    [
        Transition(ES.DRAFT.value, A.SUBMIT, ES.PENDING_SUPPORT.value, "submit"),
        Transition(ES.PENDING_SUPPORT.value, A.APPROVE, ES.PENDING_ADMIN.value, "decide_support", ApprovalStage.SUPPORT_REVIEW),
        Transition(ES.PENDING_SUPPORT.value, A.REJECT, ES.REJECTED.value, "decide_support", ApprovalStage.SUPPORT_REVIEW),
        Transition(ES.PENDING_ADMIN.value, A.APPROVE, ES.APPROVED.value, "decide_admin", ApprovalStage.IT_ADMIN),
        Transition(ES.PENDING_ADMIN.value, A.REJECT, ES.REJECTED.value, "decide_admin", ApprovalStage.IT_ADMIN),
        Transition(ES.APPROVED.value, A.PROVISION, ES.PROCESSING.value, "provision"),
        Transition(ES.PROCESSING.value, A.PROVISION_SUCCEEDED, ES.COMPLETED.value, "provision"),
        Transition(ES.PROCESSING.value, A.PROVISION_FAILED, ES.PROVISION_FAILED.value, "provision"),
        Transition(ES.PROCESSING.value, A.REJECT, ES.REJECTED.value, "provision"),
        Transition(ES.PROVISION_FAILED.value, A.RETRY_PROVISION, ES.APPROVED.value, "retry_provision"),
    ],
    order={
        ES.DRAFT.value: 0,
        ES.PENDING_SUPPORT.value: 1,
        ES.PENDING_ADMIN.value: 2,
        ES.APPROVED.value: 3,
        ES.PROCESSING.value: 4,
        ES.PROVISION_FAILED.value: 5,
        ES.COMPLETED.value: 6,
        ES.REJECTED.value: 7,
    },
)

LS = LoanApplicationStatus

LOAN_APPLICATION_TRANSITIONS = TransitionTable(
    "loan_application",
    [
        Transition(LS.DRAFT.value, A.SUBMIT, LS.PENDING_SUPPORT.value, "submit"),
        Transition(LS.PENDING_SUPPORT.value, A.APPROVE, LS.PENDING_ADMIN.value, "decide_support", ApprovalStage.SUPPORT_REVIEW),
        Transition(LS.PENDING_SUPPORT.value, A.REJECT, LS.REJECTED.value, "decide_support", ApprovalStage.SUPPORT_REVIEW),
        Transition(LS.PENDING_ADMIN.value, A.APPROVE, LS.APPROVED.value, "decide_admin", ApprovalStage.BPM_REVIEW),
        Transition(LS.PENDING_ADMIN.value, A.REJECT, LS.REJECTED.value, "decide_admin", ApprovalStage.BPM_REVIEW),
        Transition(LS.APPROVED.value, A.ISSUE, LS.ISSUED.value, "issue"),
        Transition(LS.ISSUED.value, A.RETURN, LS.RETURNED.value, "return"),
        Transition(LS.RETURNED.value, A.COMPLETE, LS.COMPLETED.value, "complete"),
    ],
    order={
        LS.DRAFT.value: 0,
        LS.PENDING_SUPPORT.value: 1,
        LS.PENDING_ADMIN.value: 2,
        LS.APPROVED.value: 3,
        LS.ISSUED.value: 4,
        LS.RETURNED.value: 5,
        LS.COMPLETED.value: 6,
        LS.REJECTED.value: 7,
    },
)

# Stage opened once the keyed status is reached.
EMAIL_NEXT_STAGE = {
    ES.PENDING_SUPPORT.value: ApprovalStage.SUPPORT_REVIEW,
    ES.PENDING_ADMIN.value: ApprovalStage.IT_ADMIN,
}
LOAN_NEXT_STAGE = {
    LS.PENDING_SUPPORT.value: ApprovalStage.SUPPORT_REVIEW,
    LS.PENDING_ADMIN.value: ApprovalStage.BPM_REVIEW,
}
