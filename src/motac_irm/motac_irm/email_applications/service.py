from __future__ import annotations

from datetime import datetime
from typing import Any, Mapping, Optional, Sequence

from ..approvals.service import ApprovalLedger
from ..authorization.policy import EMAIL_APPLICATION
from ..common.datetime_utils import now_local
from ..common.log import get_logger, operation_extra
from ..common.validators import Validator
from ..core.constants import DEFAULT_MAX_PROVISION_ATTEMPTS, DEFAULT_MIN_APPROVER_GRADE_LEVEL
from ..core.enums import ApprovableType, EmailApplicationStatus, ServiceStatus, WorkflowAction
from ..core.exceptions import ConflictError, ExternalServiceError
from ..users.model import Actor
from ..users.repository import UserRepository
from ..workflow.application_workflow import ApplicationWorkflow
from ..workflow.transitions import EMAIL_APPLICATION_TRANSITIONS, EMAIL_NEXT_STAGE
from .model import EmailApplication
from .provisioning import EmailProvisioner
from .repository import EmailApplicationRepository

logger = get_logger(__name__)


def validate_email_application(data: Mapping[str, Any], *, submitting: bool) -> dict[str, Any]:
    """Draft rules; ``submitting`` adds the required fields and the certification gate."""
    v = Validator()
    values: dict[str, Any] = {
        "service_status": v.choice("service_status", data.get("service_status"), ServiceStatus, required=submitting),
        "purpose": v.string("purpose", data.get("purpose"), required=submitting, max_length=500),
        "proposed_email": v.email("proposed_email", data.get("proposed_email")),
        "group_email": v.email("group_email", data.get("group_email")),
        "group_admin_name": v.string("group_admin_name", data.get("group_admin_name"), max_length=255),
        "group_admin_email": v.email("group_admin_email", data.get("group_admin_email")),
    }
    v.together(
        [
            ("group_email", data.get("group_email")),
            ("group_admin_name", data.get("group_admin_name")),
            ("group_admin_email", data.get("group_admin_email")),
        ]
    )
    if submitting:
        v.accepted("certification_accepted", data.get("certification_accepted"))
    v.raise_if_failed()
    return values


class EmailApplicationService(ApplicationWorkflow):
    """Use case: email / user-id application lifecycle."""

    table = EMAIL_APPLICATION_TRANSITIONS
    approvable_type = ApprovableType.EMAIL_APPLICATION
    next_stage = EMAIL_NEXT_STAGE
    not_found_message = "Email application not found"

    def __init__(
        self,
        applications: EmailApplicationRepository,
        ledger: ApprovalLedger,
        users: UserRepository,
        provisioner: EmailProvisioner,
        *,
        min_approver_grade_level: int = DEFAULT_MIN_APPROVER_GRADE_LEVEL,
        max_provision_attempts: int = DEFAULT_MAX_PROVISION_ATTEMPTS,
    ):
        super().__init__(ledger, users, min_approver_grade_level=min_approver_grade_level)
        self._applications = applications
        self._provisioner = provisioner
        self._max_attempts = int(max_provision_attempts)

    def _get(self, application_id: int) -> Optional[EmailApplication]:
        return self._applications.get_by_id(application_id)

    def _write_status(self, application_id: int, *, expected: str, target: str, changes: Mapping[str, Any]) -> bool:
        return self._applications.transition(application_id, expected=expected, target=target, changes=changes)

    # Drafts

    def create_draft(self, *, actor: Actor, data: Mapping[str, Any], now: Optional[datetime] = None) -> int:
        self._authorize(actor, EMAIL_APPLICATION, "create")
        values = validate_email_application(data, submitting=False)
        if data.get("certification_accepted") in (True, 1, "1", "true", "on", "yes"):
            values["certification_accepted"] = True
            values["certification_timestamp"] = now or now_local()

        application_id = self._applications.create_draft(
            user_id=actor.user_id,
            values={k: val for k, val in values.items() if val is not None},
        )
        logger.info(
            "Email application drafted",
            extra=operation_extra(actor_id=actor.user_id, operation="email_application.create", entity_type=EMAIL_APPLICATION, entity_id=application_id),
        )
        return application_id

    def update_draft(self, *, actor: Actor, application_id: int, data: Mapping[str, Any]) -> EmailApplication:
        app = self._get_existing(application_id)
        self._authorize(actor, app, "update")
        if app.status != EmailApplicationStatus.DRAFT:
            raise ConflictError("Only draft applications can be edited")

        values = validate_email_application(data, submitting=False)
        values = {k: val for k, val in values.items() if k in data}
        if not self._applications.update_draft(app.application_id, values=values):
            raise ConflictError("The application was submitted in the meantime")
        return self._get(app.application_id)

    # Lifecycle

    def submit(
        self,
        *,
        actor: Actor,
        application_id: int,
        data: Optional[Mapping[str, Any]] = None,
        now: Optional[datetime] = None,
    ) -> EmailApplication:
        """draft -> pending_support; validates the merged draft and certification."""
        now = now or now_local()
        app = self._get_existing(application_id)
        transition = self.table.resolve(app.status, WorkflowAction.SUBMIT)
        self._authorize(actor, app, transition.policy_action)

        merged = {
            "service_status": app.service_status.value if app.service_status else None,
            "purpose": app.purpose,
            "proposed_email": app.proposed_email,
            "group_email": app.group_email,
            "group_admin_name": app.group_admin_name,
            "group_admin_email": app.group_admin_email,
            "certification_accepted": app.certification_accepted,
        }
        merged.update(data or {})
        values = validate_email_application(merged, submitting=True)

        values["certification_accepted"] = True
        values["certification_timestamp"] = app.certification_timestamp or now
        values["submitted_at"] = now
        self._move(actor, app, WorkflowAction.SUBMIT, changes=values, authorized=True)
        self._open_stage_for(app, transition.target, now=now)
        return self._get(app.application_id)

    def provision(self, *, actor: Actor, application_id: int, now: Optional[datetime] = None) -> EmailApplication:
        """approved -> processing -> completed, or provision_failed on any failure."""
        now = now or now_local()
        app = self._get_existing(application_id)
        self._move(
            actor,
            app,
            WorkflowAction.PROVISION,
            changes={"provision_attempts": app.provision_attempts + 1},
        )

        try:
            applicant = self._users.get_by_id(app.user_id)
            if applicant is None:
                raise ExternalServiceError("Applicant account no longer exists")
            result = self._provisioner.provision(app, applicant)
            completed = self._applications.complete_provisioning(
                app.application_id,
                final_email=result.email,
                final_user_id=result.user_id_assigned,
                provisioned_at=now,
            )
        except Exception as e:
            self._mark_provision_failed(actor, app, detail=str(e) or type(e).__name__)
            raise ExternalServiceError(
                "Email provisioning failed",
                details={"application_id": app.application_id},
            ) from e

        if not completed:
            raise ConflictError("The application was changed while it was being provisioned")
        logger.info(
            "Email application completed",
            extra=operation_extra(
                actor_id=actor.user_id,
                operation="email_application.provision",
                entity_type=EMAIL_APPLICATION,
                entity_id=app.application_id,
                status=EmailApplicationStatus.COMPLETED.value,
            ),
        )
        return self._get(app.application_id)

    def _mark_provision_failed(self, actor: Actor, app: EmailApplication, *, detail: str) -> None:
        transition = self.table.resolve(EmailApplicationStatus.PROCESSING, WorkflowAction.PROVISION_FAILED)
        moved = self._applications.transition(
            app.application_id,
            expected=transition.source,
            target=transition.target,
            changes={"provision_error": detail[:1000]},
        )
        logger.error(
            "Email provisioning failed",
            exc_info=True,
            extra=operation_extra(
                actor_id=actor.user_id,
                operation="email_application.provision",
                entity_type=EMAIL_APPLICATION,
                entity_id=app.application_id,
                status=transition.target if moved else "unchanged",
            ),
        )

    def retry_provision(self, *, actor: Actor, application_id: int) -> EmailApplication:
        """provision_failed -> approved while attempts remain."""
        app = self._get_existing(application_id)
        transition = self.table.resolve(app.status, WorkflowAction.RETRY_PROVISION)
        self._authorize(actor, app, transition.policy_action)
        if app.provision_attempts >= self._max_attempts:
            raise ConflictError(
                "Provisioning attempts exhausted",
                details={"attempts": app.provision_attempts, "max_attempts": self._max_attempts},
            )
        self._move(actor, app, WorkflowAction.RETRY_PROVISION, authorized=True)
        return self._get(app.application_id)

    # Queries

    def list_mine(self, *, actor: Actor) -> Sequence[EmailApplication]:
        return self._applications.list_applications(user_id=actor.user_id)

    def list_all(self, *, actor: Actor, status: Optional[str] = None) -> Sequence[EmailApplication]:
        self._authorize(actor, EMAIL_APPLICATION, "list_all")
        v = Validator()
        status_filter = v.choice("status", status, EmailApplicationStatus)
        v.raise_if_failed()
        return self._applications.list_applications(status=status_filter)
