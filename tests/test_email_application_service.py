from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from src.motac_irm.motac_irm.core.enums import (
    ApprovableType,
    ApprovalDecision,
    ApprovalStage,
    EmailApplicationStatus,
)
from src.motac_irm.motac_irm.core.exceptions import (
    AuthorizationError,
    ConflictError,
    ExternalServiceError,
    ValidationError,
)

NOW = datetime(2025, 1, 15, 9, 0, 0)

FORM = {
    "service_status": "permanent",
    "purpose": "Akaun e-mel rasmi untuk urusan jabatan",
    "proposed_email": "ahmad.ali@motac.gov.my",
}


def _draft(world, user=None, **over):
    data = dict(FORM, **over)
    return world.container.email_application_service.create_draft(actor=world.actor(user or world.staff), data=data, now=NOW)


def _submitted(world, user=None, **over):
    service = world.container.email_application_service
    application_id = _draft(world, user, **over)
    service.submit(
        actor=world.actor(user or world.staff),
        application_id=application_id,
        data={"certification_accepted": True},
        now=NOW,
    )
    return application_id


def _approved(world):
    service = world.container.email_application_service
    application_id = _submitted(world)
    service.approve(actor=world.actor(world.approver), application_id=application_id, now=NOW + timedelta(hours=1))
    service.approve(actor=world.actor(world.it_admin), application_id=application_id, now=NOW + timedelta(hours=2))
    return application_id


def test_submit_requires_certification(world):
    service = world.container.email_application_service
    application_id = _draft(world)

    with pytest.raises(ValidationError) as exc:
        service.submit(actor=world.actor(world.staff), application_id=application_id, now=NOW)

    assert "certification_accepted" in exc.value.errors
    assert world.email_applications.get_by_id(application_id).status == EmailApplicationStatus.DRAFT


def test_submit_reports_every_missing_field(world):
    service = world.container.email_application_service
    application_id = service.create_draft(actor=world.actor(world.staff), data={}, now=NOW)

    with pytest.raises(ValidationError) as exc:
        service.submit(actor=world.actor(world.staff), application_id=application_id, now=NOW)
    assert set(exc.value.errors) == {"service_status", "purpose", "certification_accepted"}


def test_group_email_needs_admin_name_and_email(world):
    with pytest.raises(ValidationError) as exc:
        _draft(world, group_email="unit.ict@motac.gov.my")
    assert set(exc.value.errors) == {"group_admin_name", "group_admin_email"}


def test_submit_opens_support_review_for_an_eligible_officer(world):
    application_id = _submitted(world)

    app = world.email_applications.get_by_id(application_id)
    assert app.status == EmailApplicationStatus.PENDING_SUPPORT
    assert app.certification_accepted and app.certification_timestamp == NOW
    assert app.submitted_at == NOW

    stage = world.container.email_application_service.current_stage(actor=world.actor(world.staff), application_id=application_id)
    assert stage.stage == ApprovalStage.SUPPORT_REVIEW
    assert stage.officer_id == world.approver.user_id


def test_full_lifecycle_to_completed(world):
    service = world.container.email_application_service
    application_id = _approved(world)

    app = service.provision(actor=world.actor(world.it_admin), application_id=application_id, now=NOW + timedelta(hours=3))

    assert app.status == EmailApplicationStatus.COMPLETED
    assert app.final_assigned_email == "ahmad.ali@motac.gov.my"
    assert app.final_assigned_user_id == "ahmad.ali"
    assert app.provisioned_at == NOW + timedelta(hours=3)
    assert world.users.get_by_id(world.staff.user_id).motac_email == "ahmad.ali@motac.gov.my"

    history = service.history(actor=world.actor(world.staff), application_id=application_id)
    assert [(h.stage, h.decision) for h in history] == [
        (ApprovalStage.SUPPORT_REVIEW, ApprovalDecision.PENDING),
        (ApprovalStage.SUPPORT_REVIEW, ApprovalDecision.APPROVED),
        (ApprovalStage.IT_ADMIN, ApprovalDecision.PENDING),
        (ApprovalStage.IT_ADMIN, ApprovalDecision.APPROVED),
    ]


def test_second_approve_on_completed_application_conflicts(world):
    service = world.container.email_application_service
    application_id = _approved(world)
    service.provision(actor=world.actor(world.it_admin), application_id=application_id, now=NOW)
    rows_before = len(world.approvals.rows)

    with pytest.raises(ConflictError):
        service.approve(actor=world.actor(world.it_admin), application_id=application_id, now=NOW)

    assert world.email_applications.get_by_id(application_id).status == EmailApplicationStatus.COMPLETED
    assert len(world.approvals.rows) == rows_before


def test_approve_losing_the_status_race_records_no_decision(world, monkeypatch):
    service = world.container.email_application_service
    application_id = _submitted(world)
    rows_before = list(world.approvals.rows)
    monkeypatch.setattr(world.email_applications, "transition", lambda *a, **kw: False)

    with pytest.raises(ConflictError):
        service.approve(actor=world.actor(world.approver), application_id=application_id, now=NOW)

    assert world.approvals.rows == rows_before
    assert world.email_applications.get_by_id(application_id).status == EmailApplicationStatus.PENDING_SUPPORT


def test_staff_below_grade_cannot_support(world):
    application_id = _submitted(world)
    with pytest.raises(AuthorizationError):
        world.container.email_application_service.approve(actor=world.actor(world.bpm), application_id=application_id, now=NOW)


def test_officer_cannot_approve_own_application(world):
    service = world.container.email_application_service
    application_id = _submitted(world, user=world.approver)
    with pytest.raises(AuthorizationError):
        service.approve(actor=world.actor(world.approver), application_id=application_id, now=NOW)


def test_reject_needs_a_reason_and_records_it(world):
    service = world.container.email_application_service
    application_id = _submitted(world)
    officer = world.actor(world.approver)

    with pytest.raises(ValidationError) as exc:
        service.reject(actor=officer, application_id=application_id, reason="  ", now=NOW)
    assert list(exc.value.errors) == ["rejection_reason"]

    app = service.reject(actor=officer, application_id=application_id, reason="Not eligible", now=NOW)
    assert app.status == EmailApplicationStatus.REJECTED
    assert app.rejection_reason == "Dato Pegawai: Not eligible"
    assert world.approvals.rows[-1].decision == ApprovalDecision.REJECTED
    assert service.allowed_actions(app) == []


def test_only_drafts_can_be_edited(world):
    service = world.container.email_application_service
    application_id = _submitted(world)
    with pytest.raises(ConflictError):
        service.update_draft(actor=world.actor(world.staff), application_id=application_id, data={"purpose": "x"})


def test_update_draft_only_touches_given_fields(world):
    service = world.container.email_application_service
    application_id = _draft(world)
    app = service.update_draft(actor=world.actor(world.staff), application_id=application_id, data={"purpose": "Baru"})
    assert app.purpose == "Baru"
    assert app.proposed_email == FORM["proposed_email"]


def test_provision_failure_marks_application_and_allows_retry(world, monkeypatch):
    service = world.container.email_application_service
    it_admin = world.actor(world.it_admin)
    application_id = _approved(world)

    monkeypatch.setattr(world.users, "assign_motac_identity", lambda *a, **kw: False)
    with pytest.raises(ExternalServiceError):
        service.provision(actor=it_admin, application_id=application_id, now=NOW)

    app = world.email_applications.get_by_id(application_id)
    assert app.status == EmailApplicationStatus.PROVISION_FAILED
    assert app.final_assigned_email is None and app.final_assigned_user_id is None
    assert app.provision_attempts == 1
    assert app.provision_error

    monkeypatch.undo()
    service.retry_provision(actor=it_admin, application_id=application_id)
    app = service.provision(actor=it_admin, application_id=application_id, now=NOW)
    assert app.status == EmailApplicationStatus.COMPLETED
    assert app.provision_attempts == 2


def test_retry_after_failed_completion_keeps_the_proposed_address(world, monkeypatch):
    service = world.container.email_application_service
    it_admin = world.actor(world.it_admin)
    application_id = _approved(world)

    complete = world.email_applications.complete_provisioning
    calls = []

    def fail_once(*args, **kwargs):
        calls.append(kwargs)
        if len(calls) == 1:
            raise RuntimeError("connection lost")
        return complete(*args, **kwargs)

    monkeypatch.setattr(world.email_applications, "complete_provisioning", fail_once)
    with pytest.raises(ExternalServiceError):
        service.provision(actor=it_admin, application_id=application_id, now=NOW)
    assert world.users.get_by_id(world.staff.user_id).motac_email == "ahmad.ali@motac.gov.my"

    service.retry_provision(actor=it_admin, application_id=application_id)
    app = service.provision(actor=it_admin, application_id=application_id, now=NOW)

    assert app.status == EmailApplicationStatus.COMPLETED
    assert app.final_assigned_email == "ahmad.ali@motac.gov.my"
    assert world.users.get_by_id(world.staff.user_id).motac_email == "ahmad.ali@motac.gov.my"


def test_resaving_an_unchanged_draft_succeeds(world):
    service = world.container.email_application_service
    application_id = _draft(world)
    app = service.update_draft(actor=world.actor(world.staff), application_id=application_id, data={"purpose": FORM["purpose"]})
    assert app.status == EmailApplicationStatus.DRAFT
    assert app.purpose == FORM["purpose"]


def test_retry_is_capped(world, monkeypatch):
    service = world.container.email_application_service
    it_admin = world.actor(world.it_admin)
    application_id = _approved(world)
    monkeypatch.setattr(world.users, "assign_motac_identity", lambda *a, **kw: False)

    for _ in range(3):
        with pytest.raises(ExternalServiceError):
            service.provision(actor=it_admin, application_id=application_id, now=NOW)
        if world.email_applications.get_by_id(application_id).provision_attempts < 3:
            service.retry_provision(actor=it_admin, application_id=application_id)

    with pytest.raises(ConflictError) as exc:
        service.retry_provision(actor=it_admin, application_id=application_id)
    assert exc.value.details["attempts"] == 3


def test_provision_requires_it_admin(world):
    application_id = _approved(world)
    with pytest.raises(AuthorizationError):
        world.container.email_application_service.provision(actor=world.actor(world.bpm), application_id=application_id, now=NOW)


def test_taken_proposed_address_falls_back_to_generated_one(world):
    service = world.container.email_application_service
    world.users.add(full_name="Other Ahmad", motac_email="ahmad.ali@motac.gov.my")
    application_id = _approved(world)

    app = service.provision(actor=world.actor(world.it_admin), application_id=application_id, now=NOW)
    assert app.final_assigned_email == "ahmad.ali1@motac.gov.my"


def test_list_all_is_for_officers(world):
    service = world.container.email_application_service
    _submitted(world)
    assert len(service.list_mine(actor=world.actor(world.staff))) == 1
    assert len(service.list_all(actor=world.actor(world.it_admin), status="pending_support")) == 1
    with pytest.raises(AuthorizationError):
        service.list_all(actor=world.actor(world.bpm))
    assert world.approvals.list_for(approvable_type=ApprovableType.EMAIL_APPLICATION, approvable_id=999) == []
