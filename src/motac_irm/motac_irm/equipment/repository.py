from __future__ import annotations

from typing import Any, Mapping, Optional, Protocol, Sequence

from ..core.enums import AssetType, EquipmentStatus
from .model import Equipment


class EquipmentRepository(Protocol):
    def get_by_id(self, equipment_id: int) -> Optional[Equipment]:
        raise NotImplementedError

    def get_by_serial(self, serial_number: str) -> Optional[Equipment]:
        raise NotImplementedError

    def get_by_tag(self, tag_id: str) -> Optional[Equipment]:
        raise NotImplementedError

    def create(self, *, values: Mapping[str, Any]) -> int:
        raise NotImplementedError

    def update(self, equipment_id: int, *, changes: Mapping[str, Any]) -> bool:
        """Catalogue fields and at-rest status; ``on_loan`` is only written by loan issue."""

        raise NotImplementedError

    def has_open_transaction(self, equipment_id: int) -> bool:
        raise NotImplementedError

    def list_with_open_flag(
        self,
        *,
        asset_type: Optional[AssetType] = None,
        status: Optional[EquipmentStatus] = None,
        search: Optional[str] = None,
        limit: int = 200,
    ) -> Sequence[tuple[Equipment, bool]]:
        raise NotImplementedError
