from __future__ import annotations

from collections import Counter
from datetime import date, datetime
from typing import Any, Callable, Mapping, Optional, Sequence

from ..approvals.service import ApprovalLedger
from ..authorization.policy import LOAN_APPLICATION
from ..common.datetime_utils import now_local
from ..common.log import get_logger, operation_extra
from ..common.validators import Validator, clean_str
from ..core.constants import DEFAULT_MIN_APPROVER_GRADE_LEVEL
from ..core.enums import ApprovableType, AssetType, EquipmentCondition, LoanApplicationStatus, WorkflowAction
from ..core.exceptions import ConflictError
from ..equipment.repository import EquipmentRepository
from ..users.model import Actor
from ..users.repository import UserRepository
from ..workflow.application_workflow import ApplicationWorkflow
from ..workflow.transitions import LOAN_APPLICATION_TRANSITIONS, LOAN_NEXT_STAGE
from .model import LoanApplication, LoanTransaction
from .repository import LoanApplicationRepository

logger = get_logger(__name__)

_TRUTHY = (True, 1, "1", "true", "on", "yes")


def _accessories(value: Any) -> Optional[str]:
    if isinstance(value, (list, tuple)):
        value = ", ".join(str(a).strip() for a in value if str(a).strip())
    return clean_str(value)


def validate_loan_items(v: Validator, items: Any, *, required: bool) -> Optional[list[dict[str, Any]]]:
    if items is None:
        if required:
            v.add("items", "items must contain at least 1 item")
        return None
    if not isinstance(items, (list, tuple)):
        v.add("items", "items must be a list")
        return None
    if required and not items:
        v.add("items", "items must contain at least 1 item")

    cleaned: list[dict[str, Any]] = []
    for i, raw in enumerate(items):
        raw = raw if isinstance(raw, Mapping) else {}
        cleaned.append(
            {
                "equipment_type": v.choice(f"items.{i}.equipment_type", raw.get("equipment_type"), AssetType, required=True),
                "quantity_requested": v.integer(
                    f"items.{i}.quantity_requested", raw.get("quantity_requested"), required=True, min_value=1
                ),
                "notes": v.string(f"items.{i}.notes", raw.get("notes"), max_length=500),
            }
        )
    return cleaned


def validate_loan_application(
    data: Mapping[str, Any],
    *,
    submitting: bool,
    today: date,
    user_exists: Callable[[int], Any],
) -> tuple[dict[str, Any], Optional[list[dict[str, Any]]]]:
    """Return ``(column values, items)``; ``items`` is None when the input had none."""
    v = Validator()
    values: dict[str, Any] = {
        "purpose": v.string("purpose", data.get("purpose"), required=submitting, max_length=500),
        "location": v.string("location", data.get("location"), required=submitting, max_length=255),
        "loan_start_date": v.date("loan_start_date", data.get("loan_start_date"), required=submitting),
        "loan_end_date": v.date("loan_end_date", data.get("loan_end_date"), required=submitting),
        "responsible_officer_id": v.integer("responsible_officer_id", data.get("responsible_officer_id")),
    }
    if values["loan_start_date"] is not None and values["loan_start_date"] < today:
        v.add("loan_start_date", "loan_start_date must be a date after or equal to today")
    v.after_or_equal("loan_end_date", values["loan_end_date"], values["loan_start_date"], "loan_start_date")

    self_responsible = data.get("applicant_is_responsible_officer", True) in _TRUTHY
    if not self_responsible and values["responsible_officer_id"] is None and not v.has("responsible_officer_id"):
        v.add("responsible_officer_id", "responsible_officer_id is required unless the applicant is the responsible officer")
    v.exists("responsible_officer_id", values["responsible_officer_id"], user_exists)

    items = validate_loan_items(v, data.get("items"), required=submitting)
    if submitting:
        v.accepted("applicant_confirmation", data.get("applicant_confirmation"))
    v.raise_if_failed()
    return values, items


class LoanApplicationService(ApplicationWorkflow):
    """Use case: ICT equipment loan lifecycle from draft to returned equipment."""

    table = LOAN_APPLICATION_TRANSITIONS
    approvable_type = ApprovableType.LOAN_APPLICATION
    next_stage = LOAN_NEXT_STAGE
    not_found_message = "Loan application not found"

    def __init__(
        self,
        applications: LoanApplicationRepository,
        ledger: ApprovalLedger,
        users: UserRepository,
        equipment: EquipmentRepository,
        *,
        min_approver_grade_level: int = DEFAULT_MIN_APPROVER_GRADE_LEVEL,
    ):
        super().__init__(ledger, users, min_approver_grade_level=min_approver_grade_level)
        self._applications = applications
        self._equipment = equipment

    def _get(self, application_id: int) -> Optional[LoanApplication]:
        return self._applications.get_by_id(application_id)

    def _write_status(self, application_id: int, *, expected: str, target: str, changes: Mapping[str, Any]) -> bool:
        return self._applications.transition(application_id, expected=expected, target=target, changes=changes)

    def _validate(self, data: Mapping[str, Any], *, submitting: bool, now: datetime):
        return validate_loan_application(
            data,
            submitting=submitting,
            today=now.date(),
            user_exists=self._users.get_by_id,
        )

    def _log(self, actor: Actor, message: str, operation: str, application_id: int, **more: Any) -> None:
        logger.info(
            message,
            extra=operation_extra(
                actor_id=actor.user_id,
                operation=f"loan_application.{operation}",
                entity_type=LOAN_APPLICATION,
                entity_id=application_id,
                **more,
            ),
        )

    # Drafts

    def create_draft(self, *, actor: Actor, data: Mapping[str, Any], now: Optional[datetime] = None) -> int:
        now = now or now_local()
        self._authorize(actor, LOAN_APPLICATION, "create")
        values, items = self._validate(data, submitting=False, now=now)
        if data.get("applicant_confirmation") in _TRUTHY:
            values["applicant_confirmation"] = True
            values["applicant_confirmation_timestamp"] = now

        application_id = self._applications.create_draft(
            user_id=actor.user_id,
            values={k: val for k, val in values.items() if val is not None},
            items=items or [],
        )
        self._log(actor, "Loan application drafted", "create", application_id)
        return application_id

    def update_draft(
        self,
        *,
        actor: Actor,
        application_id: int,
        data: Mapping[str, Any],
        now: Optional[datetime] = None,
    ) -> LoanApplication:
        now = now or now_local()
        app = self._get_existing(application_id)
        self._authorize(actor, app, "update")
        if app.status != LoanApplicationStatus.DRAFT:
            raise ConflictError("Only draft applications can be edited")

        values, items = self._validate(data, submitting=False, now=now)
        values = {k: val for k, val in values.items() if k in data}
        if data.get("applicant_is_responsible_officer") in _TRUTHY:
            values["responsible_officer_id"] = None
        if not self._applications.update_draft(app.application_id, values=values, items=items):
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
    ) -> LoanApplication:
        """draft -> pending_support after the full submit validation."""
        now = now or now_local()
        app = self._get_existing(application_id)
        transition = self.table.resolve(app.status, WorkflowAction.SUBMIT)
        self._authorize(actor, app, transition.policy_action)

        merged: dict[str, Any] = {
            "purpose": app.purpose,
            "location": app.location,
            "loan_start_date": app.loan_start_date,
            "loan_end_date": app.loan_end_date,
            "responsible_officer_id": app.responsible_officer_id,
            "applicant_confirmation": app.applicant_confirmation,
            "items": [
                {"equipment_type": i.equipment_type.value, "quantity_requested": i.quantity_requested, "notes": i.notes}
                for i in app.items
            ],
        }
        merged.update(data or {})
        values, items = self._validate(merged, submitting=True, now=now)
        if data and "items" in data:
            if not self._applications.update_draft(app.application_id, values={}, items=items):
                raise ConflictError("The application was submitted in the meantime")

        values["applicant_confirmation"] = True
        values["applicant_confirmation_timestamp"] = app.applicant_confirmation_timestamp or now
        values["submitted_at"] = now
        self._move(actor, app, WorkflowAction.SUBMIT, changes=values, authorized=True)
        self._open_stage_for(app, transition.target, now=now)
        return self._get(app.application_id)

    def issue(
        self,
        *,
        actor: Actor,
        application_id: int,
        data: Mapping[str, Any],
        now: Optional[datetime] = None,
    ) -> list[int]:
        """approved -> issued; one transaction per selected unit, all or nothing."""
        now = now or now_local()
        app = self._get_existing(application_id)
        transition = self.table.resolve(app.status, WorkflowAction.ISSUE)
        self._authorize(actor, app, transition.policy_action)

        v = Validator()
        raw_ids = data.get("equipment_ids")
        equipment_ids: list[int] = []
        if not isinstance(raw_ids, (list, tuple)) or not raw_ids:
            v.add("equipment_ids", "equipment_ids must contain at least 1 item")
        else:
            for i, raw in enumerate(raw_ids):
                n = v.integer(f"equipment_ids.{i}", raw, required=True)
                if n is not None:
                    equipment_ids.append(n)
            if len(set(equipment_ids)) != len(equipment_ids):
                v.add("equipment_ids", "equipment_ids must not contain duplicates")
        receiving_id = v.integer("receiving_officer_id", data.get("receiving_officer_id"), required=True)
        v.exists("receiving_officer_id", receiving_id, self._users.get_by_id)
        accessories = v.string("accessories", _accessories(data.get("accessories")), max_length=500)

        units = []
        for n in equipment_ids:
            eq = self._equipment.get_by_id(n)
            if eq is None:
                v.add("equipment_ids", f"The selected equipment {n} is invalid")
            else:
                units.append(eq)
        if units and not v.has("equipment_ids"):
            requested: Counter = Counter()
            for item in app.items:
                requested[item.equipment_type] += item.quantity_to_issue
            selected = Counter(eq.asset_type for eq in units)
            if selected != requested:
                mismatch = ", ".join(
                    f"{t.value}: requested {requested.get(t, 0)}, selected {selected.get(t, 0)}"
                    for t in sorted(set(requested) | set(selected), key=lambda t: t.value)
                    if requested.get(t, 0) != selected.get(t, 0)
                )
                v.add("equipment_ids", f"Selected equipment does not match the requested items ({mismatch})")
        v.raise_if_failed()

        transaction_ids = self._applications.issue(
            app.application_id,
            expected=transition.source,
            target=transition.target,
            equipment_ids=equipment_ids,
            issuing_officer_id=actor.user_id,
            receiving_officer_id=receiving_id,
            accessories=accessories,
            issued_at=now,
        )
        self._log(actor, "Loan equipment issued", "issue", app.application_id, status=transition.target, units=len(transaction_ids))
        return transaction_ids

    def return_equipment(
        self,
        *,
        actor: Actor,
        application_id: int,
        data: Mapping[str, Any],
        now: Optional[datetime] = None,
    ) -> LoanApplication:
        """issued -> returned; closes every open transaction and flips each unit by condition."""
        now = now or now_local()
        app = self._get_existing(application_id)
        transition = self.table.resolve(app.status, WorkflowAction.RETURN)
        self._authorize(actor, app, transition.policy_action)

        v = Validator()
        returning_id = v.integer("returning_officer_id", data.get("returning_officer_id"), required=True)
        v.exists("returning_officer_id", returning_id, self._users.get_by_id)
        accessories = v.string("accessories", _accessories(data.get("accessories")), max_length=500)
        notes = v.string("notes", data.get("notes"), max_length=500)

        raw_conditions = data.get("conditions") or {}
        if isinstance(raw_conditions, (list, tuple)):
            raw_conditions = {c.get("equipment_id"): c.get("condition") for c in raw_conditions if isinstance(c, Mapping)}
        conditions: dict[int, EquipmentCondition] = {}
        for key, raw in raw_conditions.items():
            try:
                equipment_id = int(key)
            except (TypeError, ValueError):
                v.add("conditions", f"{key!r} is not an equipment id")
                continue
            condition = v.choice(f"conditions.{equipment_id}", raw, EquipmentCondition, required=True)
            if condition is not None:
                conditions[equipment_id] = condition

        open_ids = [t.equipment_id for t in self._applications.list_transactions(app.application_id) if t.is_open]
        missing = [n for n in open_ids if n not in conditions]
        if missing:
            v.add("conditions", f"A condition is required for equipment {', '.join(str(n) for n in missing)}")
        v.raise_if_failed()

        closed = self._applications.return_equipment(
            app.application_id,
            expected=transition.source,
            target=transition.target,
            conditions={n: conditions[n] for n in open_ids},
            returning_officer_id=returning_id,
            accepting_officer_id=actor.user_id,
            accessories=accessories,
            notes=notes,
            returned_at=now,
        )
        self._log(actor, "Loan equipment returned", "return", app.application_id, status=transition.target, units=closed)
        return self._get(app.application_id)

    def complete(self, *, actor: Actor, application_id: int) -> LoanApplication:
        app = self._get_existing(application_id)
        self._move(actor, app, WorkflowAction.COMPLETE)
        return self._get(app.application_id)

    # Queries

    def transactions(self, *, actor: Actor, application_id: int) -> Sequence[LoanTransaction]:
        app = self.get(actor=actor, application_id=application_id)
        return self._applications.list_transactions(app.application_id)

    def list_mine(self, *, actor: Actor) -> Sequence[LoanApplication]:
        return self._applications.list_applications(user_id=actor.user_id)

    def list_all(self, *, actor: Actor, status: Optional[str] = None) -> Sequence[LoanApplication]:
        self._authorize(actor, LOAN_APPLICATION, "list_all")
        v = Validator()
        status_filter = v.choice("status", status, LoanApplicationStatus)
        v.raise_if_failed()
        return self._applications.list_applications(status=status_filter)
