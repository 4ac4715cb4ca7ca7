from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import ClassVar, Optional

from ..core.enums import AssetType, EquipmentCondition, LoanApplicationStatus, LoanTransactionStatus


@dataclass(frozen=True)
class LoanItem:
    line_no: int
    equipment_type: AssetType
    quantity_requested: int
    item_id: Optional[int] = None
    quantity_approved: Optional[int] = None
    quantity_issued: int = 0
    notes: Optional[str] = None

    @property
    def quantity_to_issue(self) -> int:
        return self.quantity_approved if self.quantity_approved is not None else self.quantity_requested


@dataclass(frozen=True)
class LoanApplication:
    RESOURCE: ClassVar[str] = "loan_application"

    application_id: int
    user_id: int
    status: LoanApplicationStatus
    purpose: Optional[str] = None
    location: Optional[str] = None
    loan_start_date: Optional[date] = None
    loan_end_date: Optional[date] = None
    # None means the applicant is the responsible officer.
    responsible_officer_id: Optional[int] = None
    rejection_reason: Optional[str] = None
    applicant_confirmation: bool = False
    applicant_confirmation_timestamp: Optional[datetime] = None
    submitted_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    items: tuple[LoanItem, ...] = ()


@dataclass(frozen=True)
class LoanTransaction:
    transaction_id: int
    application_id: int
    equipment_id: int
    issuing_officer_id: int
    receiving_officer_id: int
    issue_timestamp: datetime
    status: LoanTransactionStatus = LoanTransactionStatus.ISSUED
    accessories_on_issue: Optional[str] = None
    return_timestamp: Optional[datetime] = None
    returning_officer_id: Optional[int] = None
    return_accepting_officer_id: Optional[int] = None
    accessories_on_return: Optional[str] = None
    return_condition: Optional[EquipmentCondition] = None
    return_notes: Optional[str] = None

    @property
    def is_open(self) -> bool:
        return self.return_timestamp is None
