from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from src.motac_irm.motac_irm.approvals.service import ApprovalLedger
from src.motac_irm.motac_irm.core.enums import ApprovableType, ApprovalDecision, ApprovalStage
from src.motac_irm.motac_irm.core.exceptions import ConflictError

from tests.fakes import FakeApprovals

T0 = datetime(2025, 1, 15, 9, 0, 0)
LOAN = ApprovableType.LOAN_APPLICATION


def test_decision_appends_and_keeps_the_pending_row():
    repo = FakeApprovals()
    ledger = ApprovalLedger(repo)
    ledger.open_stage(LOAN, 1, stage=ApprovalStage.SUPPORT_REVIEW, officer_id=4, now=T0)
    ledger.record_decision(
        LOAN, 1, stage=ApprovalStage.SUPPORT_REVIEW, decision=ApprovalDecision.APPROVED, officer_id=4, now=T0 + timedelta(hours=1)
    )

    history = ledger.history(LOAN, 1)
    assert [r.decision for r in history] == [ApprovalDecision.PENDING, ApprovalDecision.APPROVED]
    assert ledger.current_stage(LOAN, 1) is None


def test_current_stage_is_the_latest_undecided_stage():
    ledger = ApprovalLedger(FakeApprovals())
    ledger.open_stage(LOAN, 1, stage=ApprovalStage.SUPPORT_REVIEW, now=T0)
    ledger.record_decision(LOAN, 1, stage=ApprovalStage.SUPPORT_REVIEW, decision=ApprovalDecision.APPROVED, officer_id=4, now=T0)
    ledger.open_stage(LOAN, 1, stage=ApprovalStage.BPM_REVIEW, now=T0 + timedelta(minutes=5))

    current = ledger.current_stage(LOAN, 1)
    assert current.stage == ApprovalStage.BPM_REVIEW
    assert ledger.current_stage(LOAN, 2) is None


def test_deciding_a_stage_that_is_not_open_conflicts():
    ledger = ApprovalLedger(FakeApprovals())
    ledger.open_stage(LOAN, 1, stage=ApprovalStage.BPM_REVIEW, now=T0)
    with pytest.raises(ConflictError):
        ledger.record_decision(LOAN, 1, stage=ApprovalStage.SUPPORT_REVIEW, decision=ApprovalDecision.APPROVED, officer_id=4, now=T0)


def test_pending_is_not_a_decision():
    ledger = ApprovalLedger(FakeApprovals())
    with pytest.raises(ValueError):
        ledger.record_decision(LOAN, 1, stage=ApprovalStage.SUPPORT_REVIEW, decision=ApprovalDecision.PENDING, officer_id=4)


def test_comments_are_trimmed_to_none():
    repo = FakeApprovals()
    ApprovalLedger(repo).record_decision(
        LOAN, 1, stage=ApprovalStage.SUPPORT_REVIEW, decision=ApprovalDecision.REJECTED, officer_id=4, comments="   ", now=T0
    )
    assert repo.rows[0].comments is None


def test_officer_sees_open_assignments_and_own_decisions():
    ledger = ApprovalLedger(FakeApprovals())
    email = ApprovableType.EMAIL_APPLICATION
    ledger.open_stage(LOAN, 1, stage=ApprovalStage.SUPPORT_REVIEW, officer_id=4, now=T0)
    ledger.open_stage(email, 2, stage=ApprovalStage.SUPPORT_REVIEW, officer_id=4, now=T0 + timedelta(minutes=1))
    ledger.open_stage(LOAN, 3, stage=ApprovalStage.SUPPORT_REVIEW, officer_id=9, now=T0 + timedelta(minutes=2))
    ledger.record_decision(
        LOAN, 1, stage=ApprovalStage.SUPPORT_REVIEW, decision=ApprovalDecision.APPROVED, officer_id=4, now=T0 + timedelta(hours=1)
    )

    mine = ledger.assigned_to(4)
    assert [(r.approvable_id, r.decision) for r in mine] == [(1, ApprovalDecision.APPROVED), (2, ApprovalDecision.PENDING)]

    pending = ledger.assigned_to(4, decision=ApprovalDecision.PENDING)
    assert [(r.approvable_type, r.approvable_id) for r in pending] == [(email, 2)]

    assert [r.approvable_id for r in ledger.assigned_to(4, approvable_type=LOAN)] == [1]
    assert ledger.assigned_to(5) == []


def test_stage_decided_by_another_officer_leaves_the_assignee_list():
    ledger = ApprovalLedger(FakeApprovals())
    ledger.open_stage(LOAN, 1, stage=ApprovalStage.SUPPORT_REVIEW, officer_id=4, now=T0)
    ledger.record_decision(
        LOAN, 1, stage=ApprovalStage.SUPPORT_REVIEW, decision=ApprovalDecision.REJECTED, officer_id=6, comments="Tidak lengkap", now=T0
    )

    assert ledger.assigned_to(4) == []
    assert [r.decision for r in ledger.assigned_to(6)] == [ApprovalDecision.REJECTED]
