from __future__ import annotations

from typing import Any, Optional, Sequence

from ..authorization.policy import GRADE, authorize
from ..common.log import get_logger, operation_extra
from ..common.validators import Validator
from ..core.exceptions import ConflictError, NotFoundError
from ..users.model import Actor
from .model import Grade
from .repository import GradeRepository

logger = get_logger(__name__)


class GradeService:
    """Use case: manage grades (admin)."""

    def __init__(self, grades: GradeRepository):
        self._grades = grades

    def list_grades(self) -> Sequence[Grade]:
        return self._grades.list_all()

    def _validate(
        self,
        *,
        name: Any,
        level: Any,
        min_approval_grade_id: Any,
        ignore_id: Optional[int] = None,
    ) -> tuple[str, int, Optional[int]]:
        v = Validator()
        name = v.string("name", name, required=True, max_length=255)
        level = v.integer("level", level, required=True, min_value=1)
        min_grade = v.integer("min_approval_grade_id", min_approval_grade_id)
        if name:
            existing = self._grades.get_by_name(name)
            v.unique("name", name, existing.grade_id if existing else None, ignore_id=ignore_id)
        if level is not None and not v.has("level"):
            existing = self._grades.get_by_level(level)
            v.unique("level", level, existing.grade_id if existing else None, ignore_id=ignore_id)
        v.exists("min_approval_grade_id", min_grade, self._grades.get_by_id)
        v.raise_if_failed()
        return name, level, min_grade

    def create_grade(
        self,
        *,
        actor: Actor,
        name: Any,
        level: Any,
        is_approver_grade: bool = False,
        min_approval_grade_id: Any = None,
    ) -> int:
        authorize(actor, GRADE, "create")
        name, level, min_grade = self._validate(name=name, level=level, min_approval_grade_id=min_approval_grade_id)
        grade_id = self._grades.create(
            name=name,
            level=level,
            is_approver_grade=bool(is_approver_grade),
            min_approval_grade_id=min_grade,
        )
        logger.info("Grade created", extra=operation_extra(actor_id=actor.user_id, operation="grade.create", entity_type=GRADE, entity_id=grade_id))
        return grade_id

    def update_grade(
        self,
        *,
        actor: Actor,
        grade_id: int,
        name: Any,
        level: Any,
        is_approver_grade: bool = False,
        min_approval_grade_id: Any = None,
    ) -> Grade:
        grade = self._grades.get_by_id(grade_id)
        if not grade:
            raise NotFoundError("Grade not found")
        authorize(actor, grade, "update")
        name, level, min_grade = self._validate(
            name=name,
            level=level,
            min_approval_grade_id=min_approval_grade_id,
            ignore_id=grade.grade_id,
        )
        self._grades.update(
            grade.grade_id,
            name=name,
            level=level,
            is_approver_grade=bool(is_approver_grade),
            min_approval_grade_id=min_grade,
        )
        logger.info("Grade updated", extra=operation_extra(actor_id=actor.user_id, operation="grade.update", entity_type=GRADE, entity_id=grade_id))
        return self._grades.get_by_id(grade.grade_id)

    def delete_grade(self, *, actor: Actor, grade_id: int) -> None:
        grade = self._grades.get_by_id(grade_id)
        if not grade:
            raise NotFoundError("Grade not found")
        authorize(actor, grade, "delete")
        if self._grades.count_users(grade.grade_id) > 0:
            raise ConflictError("Grade is still assigned to users")
        self._grades.delete(grade.grade_id)
        logger.info("Grade deleted", extra=operation_extra(actor_id=actor.user_id, operation="grade.delete", entity_type=GRADE, entity_id=grade_id))
