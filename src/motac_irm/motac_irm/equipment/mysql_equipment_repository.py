from __future__ import annotations

from typing import Any, Mapping, Optional, Sequence

from ..core.enums import AssetType, EquipmentCondition, EquipmentStatus
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, fetchone
from .model import Equipment
from .repository import EquipmentRepository

EQUIPMENT_COLUMNS = (
    "asset_type",
    "brand",
    "model",
    "serial_number",
    "tag_id",
    "purchase_date",
    "warranty_expiry_date",
    "status",
    "condition_status",
    "current_location",
    "dept_id",
    "notes",
)

_SELECT = """
    SELECT e.equipment_id, e.asset_type, e.brand, e.model, e.serial_number, e.tag_id,
           e.purchase_date, e.warranty_expiry_date, e.status, e.condition_status,
           e.current_location, e.dept_id, e.notes,
           EXISTS(
               SELECT 1 FROM loan_transactions t
               WHERE t.equipment_id = e.equipment_id AND t.return_timestamp IS NULL
           ) AS has_open
    FROM equipment e
"""


def row_to_equipment(r: dict) -> Equipment:
    return Equipment(
        equipment_id=int(r["equipment_id"]),
        asset_type=AssetType(r["asset_type"]),
        brand=r["brand"],
        model=r["model"],
        serial_number=r["serial_number"],
        current_location=r["current_location"],
        status=EquipmentStatus(r["status"]),
        condition_status=EquipmentCondition(r.get("condition_status") or EquipmentCondition.GOOD.value),
        tag_id=r.get("tag_id"),
        purchase_date=r.get("purchase_date"),
        warranty_expiry_date=r.get("warranty_expiry_date"),
        dept_id=r.get("dept_id"),
        notes=r.get("notes"),
    )


def _db_value(value: Any) -> Any:
    return value.value if isinstance(value, (AssetType, EquipmentStatus, EquipmentCondition)) else value


class MySQLEquipmentRepository(EquipmentRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def _get_one(self, where: str, value: Any) -> Optional[Equipment]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"{_SELECT} WHERE {where}", (value,))
            row = fetchone(cur)
            return row_to_equipment(row) if row else None

    def get_by_id(self, equipment_id: int) -> Optional[Equipment]:
        return self._get_one("e.equipment_id=%s", equipment_id)

    def get_by_serial(self, serial_number: str) -> Optional[Equipment]:
        return self._get_one("e.serial_number=%s", serial_number)

    def get_by_tag(self, tag_id: str) -> Optional[Equipment]:
        return self._get_one("e.tag_id=%s", tag_id)

    def create(self, *, values: Mapping[str, Any]) -> int:
        cols = [c for c in EQUIPMENT_COLUMNS if c in values]
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"INSERT INTO equipment({', '.join(cols)}) VALUES({', '.join(['%s'] * len(cols))})",
                tuple(_db_value(values[c]) for c in cols),
            )
            return int(cur.lastrowid)

    def update(self, equipment_id: int, *, changes: Mapping[str, Any]) -> bool:
        unknown = set(changes) - set(EQUIPMENT_COLUMNS)
        if unknown:
            raise ValueError(f"Unsupported equipment columns: {sorted(unknown)}")
        if not changes:
            return False
        if _db_value(changes.get("status")) == EquipmentStatus.ON_LOAN.value:
            raise ValueError("on_loan is written by loan issuance only")
        assignments = ", ".join(f"{c}=%s" for c in changes)
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"UPDATE equipment SET {assignments} WHERE equipment_id=%s",
                tuple(_db_value(v) for v in changes.values()) + (equipment_id,),
            )
            return cur.rowcount > 0

    def has_open_transaction(self, equipment_id: int) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                "SELECT 1 AS x FROM loan_transactions WHERE equipment_id=%s AND return_timestamp IS NULL LIMIT 1",
                (equipment_id,),
            )
            return fetchone(cur) is not None

    def list_with_open_flag(
        self,
        *,
        asset_type: Optional[AssetType] = None,
        status: Optional[EquipmentStatus] = None,
        search: Optional[str] = None,
        limit: int = 200,
    ) -> Sequence[tuple[Equipment, bool]]:
        clauses = ["1=1"]
        params: list[object] = []
        if asset_type:
            clauses.append("e.asset_type=%s")
            params.append(asset_type.value)
        if status:
            clauses.append("e.status=%s")
            params.append(status.value)
        if search:
            clauses.append("(e.brand LIKE %s OR e.model LIKE %s OR e.serial_number LIKE %s OR e.tag_id LIKE %s)")
            like = f"%{search}%"
            params.extend([like, like, like, like])
        params.append(int(limit))

        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"{_SELECT} WHERE {' AND '.join(clauses)} ORDER BY e.equipment_id DESC LIMIT %s",
                tuple(params),
            )
            return [(row_to_equipment(r), bool(r["has_open"])) for r in fetchall(cur)]
