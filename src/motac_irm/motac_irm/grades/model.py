from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar, Optional


@dataclass(frozen=True)
class Grade:
    """Organizational rank; ``level`` drives the supporting-officer check."""

    RESOURCE: ClassVar[str] = "grade"

    grade_id: int
    name: str
    level: int
    is_approver_grade: bool = False
    min_approval_grade_id: Optional[int] = None
