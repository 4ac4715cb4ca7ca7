from __future__ import annotations

from datetime import datetime
from typing import Any, Mapping, Optional

from ..approvals.model import Approval
from ..approvals.service import ApprovalLedger
from ..authorization.policy import authorize
from ..common.datetime_utils import now_local
from ..common.log import get_logger, operation_extra
from ..common.validators import Validator
from ..core.constants import DEFAULT_MIN_APPROVER_GRADE_LEVEL
from ..core.enums import ApprovableType, ApprovalDecision, ApprovalStage, WorkflowAction
from ..core.exceptions import ConflictError, NotFoundError
from ..users.model import Actor
from ..users.repository import UserRepository
from .transitions import Transition, TransitionTable

logger = get_logger(__name__)


class ApplicationWorkflow:
    """Shared lifecycle mechanics for email and loan applications.

    Subclasses provide the transition table, the stage map and the two
    repository hooks ``_get`` and ``_write_status``.
    """

    table: TransitionTable
    approvable_type: ApprovableType
    next_stage: Mapping[str, ApprovalStage]
    not_found_message = "Application not found"

    def __init__(
        self,
        ledger: ApprovalLedger,
        users: UserRepository,
        *,
        min_approver_grade_level: int = DEFAULT_MIN_APPROVER_GRADE_LEVEL,
    ):
        self._ledger = ledger
        self._users = users
        self._min_level = int(min_approver_grade_level)

    # Repository hooks

    def _get(self, application_id: int) -> Any:
        raise NotImplementedError

    def _write_status(self, application_id: int, *, expected: str, target: str, changes: Mapping[str, Any]) -> bool:
        """Conditional update: only succeeds while the row still has ``expected``."""
        raise NotImplementedError

    # Helpers

    def _authorize(self, actor: Actor, entity: Any, action: str) -> None:
        authorize(actor, entity, action, min_approver_grade_level=self._min_level)

    def _get_existing(self, application_id: int) -> Any:
        app = self._get(application_id)
        if not app:
            raise NotFoundError(self.not_found_message)
        return app

    def _move(
        self,
        actor: Actor,
        app: Any,
        action: WorkflowAction,
        *,
        changes: Optional[Mapping[str, Any]] = None,
        authorized: bool = False,
    ) -> Transition:
        transition = self.table.resolve(app.status, action)
        if not authorized:
            self._authorize(actor, app, transition.policy_action)
        ok = self._write_status(
            app.application_id,
            expected=transition.source,
            target=transition.target,
            changes=changes or {},
        )
        if not ok:
            raise ConflictError("The application was changed by another user; reload and try again")
        logger.info(
            f"{self.table.resource} {transition.source} -> {transition.target}",
            extra=operation_extra(
                actor_id=actor.user_id,
                operation=f"{self.table.resource}.{action.value}",
                entity_type=self.table.resource,
                entity_id=app.application_id,
                status=transition.target,
            ),
        )
        return transition

    def _open_stage_for(self, app: Any, status: str, *, now: datetime) -> None:
        stage = self.next_stage.get(status)
        if stage is None:
            return
        officer_id = None
        if stage == ApprovalStage.SUPPORT_REVIEW:
            officer = self._users.find_approver(min_grade_level=self._min_level, exclude_user_id=app.user_id)
            officer_id = officer.user_id if officer else None
        self._ledger.open_stage(self.approvable_type, app.application_id, stage=stage, officer_id=officer_id, now=now)

    # Approval decisions

    def approve(self, *, actor: Actor, application_id: int, comments: Optional[str] = None, now: Optional[datetime] = None) -> Any:
        now = now or now_local()
        app = self._get_existing(application_id)
        transition = self._move(actor, app, WorkflowAction.APPROVE)
        # Separate transaction from the status write above: a crash in between
        # leaves the new status without its approved row. The status write goes
        # first so a lost race never leaves an orphan decision row.
        self._ledger.record_decision(
            self.approvable_type,
            app.application_id,
            stage=transition.stage,
            decision=ApprovalDecision.APPROVED,
            officer_id=actor.user_id,
            comments=comments,
            now=now,
        )
        self._open_stage_for(app, transition.target, now=now)
        return self._get(app.application_id)

    def reject(self, *, actor: Actor, application_id: int, reason: Optional[str], now: Optional[datetime] = None) -> Any:
        now = now or now_local()
        app = self._get_existing(application_id)

        transition = self.table.resolve(app.status, WorkflowAction.REJECT)
        self._authorize(actor, app, transition.policy_action)

        v = Validator()
        reason = v.string("rejection_reason", reason, required=True, max_length=1000)
        v.raise_if_failed()

        officer = actor.full_name or f"Officer #{actor.user_id}"
        self._move(actor, app, WorkflowAction.REJECT, changes={"rejection_reason": f"{officer}: {reason}"}, authorized=True)
        if transition.stage is not None:
            self._ledger.record_decision(
                self.approvable_type,
                app.application_id,
                stage=transition.stage,
                decision=ApprovalDecision.REJECTED,
                officer_id=actor.user_id,
                comments=reason,
                now=now,
            )
        return self._get(app.application_id)

    # Queries

    def get(self, *, actor: Actor, application_id: int) -> Any:
        app = self._get_existing(application_id)
        self._authorize(actor, app, "view")
        return app

    def history(self, *, actor: Actor, application_id: int) -> list[Approval]:
        app = self.get(actor=actor, application_id=application_id)
        return self._ledger.history(self.approvable_type, app.application_id)

    def current_stage(self, *, actor: Actor, application_id: int) -> Optional[Approval]:
        app = self.get(actor=actor, application_id=application_id)
        return self._ledger.current_stage(self.approvable_type, app.application_id)

    def allowed_actions(self, app: Any) -> list[str]:
        return [a.value for a in self.table.allowed_actions(app.status)]
