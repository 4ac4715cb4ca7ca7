"""Equipment availability derived from loan transactions.

An open loan transaction is the source of truth for ``on_loan``; the stored
status column is a cache rewritten only inside issue/return.
"""

from __future__ import annotations

from typing import Iterable

from ..core.enums import EquipmentCondition, EquipmentStatus, LoanTransactionStatus
from ..core.exceptions import ConflictError
from .model import Equipment

_STATUS_AFTER_RETURN = {
    EquipmentCondition.GOOD: EquipmentStatus.AVAILABLE,
    EquipmentCondition.NEEDS_REPAIR: EquipmentStatus.UNDER_MAINTENANCE,
    EquipmentCondition.DAMAGED: EquipmentStatus.UNDER_MAINTENANCE,
    EquipmentCondition.LOST: EquipmentStatus.DISPOSED,
}

_TRANSACTION_STATUS_AFTER_RETURN = {
    EquipmentCondition.GOOD: LoanTransactionStatus.RETURNED,
    EquipmentCondition.NEEDS_REPAIR: LoanTransactionStatus.RETURNED,
    EquipmentCondition.DAMAGED: LoanTransactionStatus.DAMAGED,
    EquipmentCondition.LOST: LoanTransactionStatus.LOST,
}


def effective_status(stored: EquipmentStatus, *, has_open_transaction: bool) -> EquipmentStatus:
    if has_open_transaction:
        return EquipmentStatus.ON_LOAN
    return stored


def is_consistent(stored: EquipmentStatus, *, has_open_transaction: bool) -> bool:
    return (stored == EquipmentStatus.ON_LOAN) == has_open_transaction


def ensure_issuable(units: Iterable[tuple[Equipment, bool]]) -> None:
    """Raise ConflictError unless every ``(unit, has_open_transaction)`` is available now."""
    unavailable = [
        eq.equipment_id
        for eq, has_open in units
        if effective_status(eq.status, has_open_transaction=has_open) != EquipmentStatus.AVAILABLE
    ]
    if unavailable:
        raise ConflictError(
            "Some equipment is no longer available",
            details={"unavailable_equipment_ids": unavailable},
        )


def status_after_return(condition: EquipmentCondition) -> EquipmentStatus:
    return _STATUS_AFTER_RETURN[condition]


def transaction_status_after_return(condition: EquipmentCondition) -> LoanTransactionStatus:
    return _TRANSACTION_STATUS_AFTER_RETURN[condition]
