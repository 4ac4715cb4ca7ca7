from __future__ import annotations

from typing import Any, Mapping, Optional, Sequence

from ..authorization.policy import EQUIPMENT, authorize
from ..common.log import get_logger, operation_extra
from ..common.validators import Validator
from ..core.enums import AssetType, EquipmentCondition, EquipmentStatus
from ..core.exceptions import ConflictError, NotFoundError
from ..users.department_repository import DepartmentRepository
from ..users.model import Actor
from .availability import effective_status, is_consistent
from .model import Equipment, EquipmentView
from .repository import EquipmentRepository

logger = get_logger(__name__)


class EquipmentService:
    """Use case: equipment inventory and availability lookups."""

    def __init__(self, equipment: EquipmentRepository, departments: DepartmentRepository):
        self._equipment = equipment
        self._departments = departments

    def _validate(self, data: Mapping[str, Any], *, partial: bool, ignore_id: Optional[int] = None) -> dict[str, Any]:
        v = Validator(partial=partial)
        values: dict[str, Any] = {
            "asset_type": v.choice("asset_type", data.get("asset_type"), AssetType, required=True),
            "brand": v.string("brand", data.get("brand"), required=True, max_length=255),
            "model": v.string("model", data.get("model"), required=True, max_length=255),
            "serial_number": v.string("serial_number", data.get("serial_number"), required=True, max_length=255),
            "tag_id": v.string("tag_id", data.get("tag_id"), max_length=255),
            "purchase_date": v.date("purchase_date", data.get("purchase_date")),
            "warranty_expiry_date": v.date("warranty_expiry_date", data.get("warranty_expiry_date")),
            "status": v.choice("status", data.get("status"), EquipmentStatus),
            "condition_status": v.choice("condition_status", data.get("condition_status"), EquipmentCondition),
            "current_location": v.string("current_location", data.get("current_location"), required=True, max_length=255),
            "dept_id": v.integer("dept_id", data.get("dept_id")),
            "notes": v.string("notes", data.get("notes"), max_length=1000),
        }
        v.after_or_equal("warranty_expiry_date", values["warranty_expiry_date"], values["purchase_date"], "purchase_date")

        if values["status"] == EquipmentStatus.ON_LOAN:
            v.add("status", "status on_loan is set by issuing a loan")

        if values["serial_number"]:
            owner = self._equipment.get_by_serial(values["serial_number"])
            v.unique("serial_number", values["serial_number"], owner.equipment_id if owner else None, ignore_id=ignore_id)
        if values["tag_id"]:
            owner = self._equipment.get_by_tag(values["tag_id"])
            v.unique("tag_id", values["tag_id"], owner.equipment_id if owner else None, ignore_id=ignore_id)
        v.exists("dept_id", values["dept_id"], self._departments.get_by_id)
        v.raise_if_failed()
        return values

    def create_equipment(self, *, actor: Actor, data: Mapping[str, Any]) -> int:
        authorize(actor, EQUIPMENT, "create")
        values = self._validate(data, partial=False)
        values = {k: val for k, val in values.items() if val is not None}
        values.setdefault("status", EquipmentStatus.AVAILABLE)
        equipment_id = self._equipment.create(values=values)
        logger.info(
            "Equipment created",
            extra=operation_extra(actor_id=actor.user_id, operation="equipment.create", entity_type=EQUIPMENT, entity_id=equipment_id),
        )
        return equipment_id

    def update_equipment(self, *, actor: Actor, equipment_id: int, data: Mapping[str, Any]) -> EquipmentView:
        current = self._equipment.get_by_id(equipment_id)
        if not current:
            raise NotFoundError("Equipment not found")
        authorize(actor, current, "update")

        values = self._validate(data, partial=True, ignore_id=current.equipment_id)
        changes = {k: val for k, val in values.items() if val is not None}
        if "status" in changes and changes["status"] != current.status:
            if self._equipment.has_open_transaction(current.equipment_id):
                raise ConflictError("Equipment is on loan; its status changes when it is returned")

        if changes:
            self._equipment.update(current.equipment_id, changes=changes)
        logger.info(
            "Equipment updated",
            extra=operation_extra(actor_id=actor.user_id, operation="equipment.update", entity_type=EQUIPMENT, entity_id=equipment_id),
        )
        return self.get_equipment(equipment_id)

    def get_equipment(self, equipment_id: int) -> EquipmentView:
        equipment = self._equipment.get_by_id(equipment_id)
        if not equipment:
            raise NotFoundError("Equipment not found")
        has_open = self._equipment.has_open_transaction(equipment.equipment_id)
        return EquipmentView(
            equipment=equipment,
            effective_status=effective_status(equipment.status, has_open_transaction=has_open),
            has_open_transaction=has_open,
        )

    def is_available_now(self, equipment_id: int) -> bool:
        return self.get_equipment(equipment_id).effective_status == EquipmentStatus.AVAILABLE

    def list_equipment(
        self,
        *,
        asset_type: Optional[str] = None,
        status: Optional[str] = None,
        search: Optional[str] = None,
    ) -> Sequence[EquipmentView]:
        v = Validator()
        asset = v.choice("asset_type", asset_type, AssetType)
        status_filter = v.choice("status", status, EquipmentStatus)
        v.raise_if_failed()

        rows = self._equipment.list_with_open_flag(
            asset_type=asset,
            status=None if status_filter == EquipmentStatus.ON_LOAN else status_filter,
            search=(search or "").strip() or None,
        )
        views = [
            EquipmentView(
                equipment=eq,
                effective_status=effective_status(eq.status, has_open_transaction=has_open),
                has_open_transaction=has_open,
            )
            for eq, has_open in rows
        ]
        if status_filter is not None:
            # Filter on the derived status so on_loan reflects open transactions.
            views = [view for view in views if view.effective_status == status_filter]
        return views

    def find_inconsistent(self) -> list[Equipment]:
        """Units whose stored column disagrees with their transactions."""
        return [
            eq
            for eq, has_open in self._equipment.list_with_open_flag(limit=100000)
            if not is_consistent(eq.status, has_open_transaction=has_open)
        ]
