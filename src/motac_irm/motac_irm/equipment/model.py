from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import ClassVar, Optional

from ..core.enums import AssetType, EquipmentCondition, EquipmentStatus


@dataclass(frozen=True)
class Equipment:
    """Inventory asset. ``status`` is the stored availability column."""

    RESOURCE: ClassVar[str] = "equipment"

    equipment_id: int
    asset_type: AssetType
    brand: str
    model: str
    serial_number: str
    current_location: str
    status: EquipmentStatus = EquipmentStatus.AVAILABLE
    condition_status: EquipmentCondition = EquipmentCondition.GOOD
    tag_id: Optional[str] = None
    purchase_date: Optional[date] = None
    warranty_expiry_date: Optional[date] = None
    dept_id: Optional[int] = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class EquipmentView:
    equipment: Equipment
    effective_status: EquipmentStatus
    has_open_transaction: bool
