from __future__ import annotations

from typing import Optional, Protocol, Sequence

from .model import Grade


class GradeRepository(Protocol):
    def get_by_id(self, grade_id: int) -> Optional[Grade]:
        raise NotImplementedError

    def get_by_name(self, name: str) -> Optional[Grade]:
        raise NotImplementedError

    def get_by_level(self, level: int) -> Optional[Grade]:
        raise NotImplementedError

    def list_all(self) -> Sequence[Grade]:
        raise NotImplementedError

    def create(
        self,
        *,
        name: str,
        level: int,
        is_approver_grade: bool,
        min_approval_grade_id: Optional[int],
    ) -> int:
        raise NotImplementedError

    def update(
        self,
        grade_id: int,
        *,
        name: str,
        level: int,
        is_approver_grade: bool,
        min_approval_grade_id: Optional[int],
    ) -> bool:
        raise NotImplementedError

    def count_users(self, grade_id: int) -> int:
        raise NotImplementedError

    def delete(self, grade_id: int) -> bool:
        raise NotImplementedError
