from __future__ import annotations

from datetime import date, datetime
from typing import Any, Mapping, Optional, Protocol, Sequence

from .model import Fingerprint, FingerprintFilter, ImportJob


class FingerprintRepository(Protocol):
    def get_by_id(self, fingerprint_id: int) -> Optional[Fingerprint]:
        raise NotImplementedError

    def get_by_employee_and_date(self, employee_id: int, on: date) -> Optional[Fingerprint]:
        raise NotImplementedError

    def create(self, *, values: Mapping[str, Any]) -> int:
        raise NotImplementedError

    def update(self, fingerprint_id: int, *, changes: Mapping[str, Any]) -> bool:
        raise NotImplementedError

    def delete(self, fingerprint_id: int) -> bool:
        raise NotImplementedError

    def upsert(self, *, employee_id: int, on: date, values: Mapping[str, Any]) -> None:
        """Insert or overwrite the row for ``(employee_id, on)``; commits on its own."""

        raise NotImplementedError

    def list_filtered(self, filters: FingerprintFilter, *, limit: Optional[int] = None) -> Sequence[Fingerprint]:
        raise NotImplementedError


class ImportJobRepository(Protocol):
    def create(
        self,
        *,
        file_name: str,
        file_size: int,
        file_ext: str,
        file_type: Optional[str],
        created_by: Optional[int],
        created_at: datetime,
    ) -> int:
        raise NotImplementedError

    def get_by_id(self, import_id: int) -> Optional[ImportJob]:
        raise NotImplementedError

    def update(self, import_id: int, *, changes: Mapping[str, Any]) -> None:
        raise NotImplementedError

    def list_recent(self, *, limit: int = 20) -> Sequence[ImportJob]:
        raise NotImplementedError
