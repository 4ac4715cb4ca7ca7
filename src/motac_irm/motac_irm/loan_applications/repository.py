from __future__ import annotations

from datetime import datetime
from typing import Any, Mapping, Optional, Protocol, Sequence

from ..core.enums import EquipmentCondition, LoanApplicationStatus
from .model import LoanApplication, LoanTransaction


class LoanApplicationRepository(Protocol):
    def create_draft(self, *, user_id: int, values: Mapping[str, Any], items: Sequence[Mapping[str, Any]]) -> int:
        raise NotImplementedError

    def get_by_id(self, application_id: int) -> Optional[LoanApplication]:
        raise NotImplementedError

    def update_draft(
        self,
        application_id: int,
        *,
        values: Mapping[str, Any],
        items: Optional[Sequence[Mapping[str, Any]]] = None,
    ) -> bool:
        """Only touches rows still in ``draft``; ``items`` replaces the item list when given."""

        raise NotImplementedError

    def transition(
        self,
        application_id: int,
        *,
        expected: str,
        target: str,
        changes: Mapping[str, Any],
    ) -> bool:
        raise NotImplementedError

    def issue(
        self,
        application_id: int,
        *,
        expected: str,
        target: str,
        equipment_ids: Sequence[int],
        issuing_officer_id: int,
        receiving_officer_id: int,
        accessories: Optional[str],
        issued_at: datetime,
    ) -> list[int]:
        """All-or-nothing issuance under row locks.

        Raises ConflictError when the application left ``expected`` or any unit
        is not available; nothing is written in that case.
        """

        raise NotImplementedError

    def return_equipment(
        self,
        application_id: int,
        *,
        expected: str,
        target: str,
        conditions: Mapping[int, EquipmentCondition],
        returning_officer_id: int,
        accepting_officer_id: int,
        accessories: Optional[str],
        notes: Optional[str],
        returned_at: datetime,
    ) -> int:
        """Close every open transaction of the application atomically; returns how many."""

        raise NotImplementedError

    def list_transactions(self, application_id: int) -> Sequence[LoanTransaction]:
        raise NotImplementedError

    def list_applications(
        self,
        *,
        user_id: Optional[int] = None,
        status: Optional[LoanApplicationStatus] = None,
        limit: int = 200,
    ) -> Sequence[LoanApplication]:
        raise NotImplementedError
