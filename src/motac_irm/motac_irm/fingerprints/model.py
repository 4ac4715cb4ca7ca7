from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Any, ClassVar, Optional

from ..common.datetime_utils import format_hhmm
from ..core.enums import ImportStatus


def build_log(check_in: Optional[time], check_out: Optional[time]) -> Optional[str]:
    """Device-style log string: recorded times as HH:MM joined by a space."""
    parts = [format_hhmm(t) for t in (check_in, check_out) if t is not None]
    return " ".join(parts) or None


@dataclass(frozen=True)
class Fingerprint:
    RESOURCE: ClassVar[str] = "fingerprint"

    fingerprint_id: int
    employee_id: int
    date: date
    check_in: Optional[time] = None
    check_out: Optional[time] = None
    log: Optional[str] = None
    excuse: Optional[str] = None
    device_id: Optional[str] = None
    is_checked: bool = False

    @property
    def is_absence(self) -> bool:
        return self.log is None

    @property
    def is_one_fingerprint(self) -> bool:
        return self.check_in is not None and self.check_out is None


@dataclass(frozen=True)
class FingerprintFilter:
    employee_id: Optional[int] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    is_absence: bool = False
    is_one_fingerprint: bool = False
    search: Optional[str] = None


@dataclass(frozen=True)
class RowFailure:
    row: int
    reason: str

    def to_dict(self) -> dict[str, Any]:
        return {"row": self.row, "reason": self.reason}


@dataclass(frozen=True)
class ImportJob:
    import_id: int
    file_name: str
    file_size: int
    file_ext: str
    status: ImportStatus
    file_type: Optional[str] = None
    current_row: int = 0
    total_rows: int = 0
    success_count: int = 0
    failure_count: int = 0
    details: dict[str, Any] = field(default_factory=dict)
    created_by: Optional[int] = None
    created_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    @property
    def failures(self) -> list[dict[str, Any]]:
        return list(self.details.get("failures", []))

    @property
    def is_finished(self) -> bool:
        return self.status not in (ImportStatus.WAITING, ImportStatus.PROCESSING)
