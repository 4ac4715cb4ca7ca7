"""Authorization as a pure function of ``(actor, entity, action)``.

``entity`` is either a domain object carrying a ``RESOURCE`` class attribute
(for record-level checks) or the resource name itself (for collection-level
actions such as ``create``). Nothing here reads ambient request state.
"""

from __future__ import annotations

from typing import Any, Callable, Optional, Union

from ..core.constants import DEFAULT_MIN_APPROVER_GRADE_LEVEL
from ..core.enums import Role
from ..core.exceptions import AuthorizationError
from ..users.model import Actor

EMAIL_APPLICATION = "email_application"
LOAN_APPLICATION = "loan_application"
EQUIPMENT = "equipment"
GRADE = "grade"
USER = "user"
FINGERPRINT = "fingerprint"

Rule = Callable[[Actor, Any, int], bool]


def _any_actor(actor: Actor, entity: Any, level: int) -> bool:
    return True


def _admin(actor: Actor, entity: Any, level: int) -> bool:
    return actor.role == Role.ADMIN


def _it_admin(actor: Actor, entity: Any, level: int) -> bool:
    return actor.role in (Role.ADMIN, Role.IT_ADMIN)


def _bpm(actor: Actor, entity: Any, level: int) -> bool:
    return actor.role in (Role.ADMIN, Role.BPM_STAFF)


def _approver(actor: Actor, entity: Any, level: int) -> bool:
    if actor.role == Role.ADMIN:
        return True
    return actor.grade_level is not None and actor.grade_level >= level


def _owner(actor: Actor, entity: Any, level: int) -> bool:
    return getattr(entity, "user_id", None) == actor.user_id


# A User record is "owned" by the account itself.
_self = _owner


def _responsible_officer(actor: Actor, entity: Any, level: int) -> bool:
    return getattr(entity, "responsible_officer_id", None) == actor.user_id


def _own_fingerprint(actor: Actor, entity: Any, level: int) -> bool:
    return getattr(entity, "employee_id", None) == actor.user_id


def _any_of(*rules: Rule) -> Rule:
    return lambda actor, entity, level: any(r(actor, entity, level) for r in rules)


def _not_owner(rule: Rule) -> Rule:
    # Officers never decide on their own application.
    return lambda actor, entity, level: rule(actor, entity, level) and not _owner(actor, entity, level)


_RULES: dict[tuple[str, str], Rule] = {
    (EMAIL_APPLICATION, "create"): _any_actor,
    (EMAIL_APPLICATION, "view"): _any_of(_owner, _it_admin, _approver),
    (EMAIL_APPLICATION, "list_all"): _any_of(_it_admin, _approver),
    (EMAIL_APPLICATION, "update"): _owner,
    (EMAIL_APPLICATION, "submit"): _owner,
    (EMAIL_APPLICATION, "decide_support"): _not_owner(_approver),
    (EMAIL_APPLICATION, "decide_admin"): _not_owner(_it_admin),
    (EMAIL_APPLICATION, "provision"): _it_admin,
    (EMAIL_APPLICATION, "retry_provision"): _it_admin,
    (LOAN_APPLICATION, "create"): _any_actor,
    (LOAN_APPLICATION, "view"): _any_of(_owner, _responsible_officer, _bpm, _approver),
    (LOAN_APPLICATION, "list_all"): _any_of(_bpm, _approver),
    (LOAN_APPLICATION, "update"): _owner,
    (LOAN_APPLICATION, "submit"): _owner,
    (LOAN_APPLICATION, "decide_support"): _not_owner(_approver),
    (LOAN_APPLICATION, "decide_admin"): _not_owner(_bpm),
    (LOAN_APPLICATION, "issue"): _bpm,
    (LOAN_APPLICATION, "return"): _bpm,
    (LOAN_APPLICATION, "complete"): _bpm,
    (EQUIPMENT, "view"): _any_actor,
    (EQUIPMENT, "create"): _bpm,
    (EQUIPMENT, "update"): _bpm,
    (GRADE, "view"): _any_actor,
    (GRADE, "create"): _admin,
    (GRADE, "update"): _admin,
    (GRADE, "delete"): _admin,
    (USER, "view"): _any_of(_self, _admin),
    (USER, "list_all"): _admin,
    (USER, "create"): _admin,
    (USER, "update"): _any_of(_self, _admin),
    (USER, "manage"): _admin,
    (USER, "delete"): _admin,
    (FINGERPRINT, "view"): _any_of(_own_fingerprint, _admin),
    (FINGERPRINT, "list_all"): _admin,
    (FINGERPRINT, "create"): _admin,
    (FINGERPRINT, "update"): _admin,
    (FINGERPRINT, "delete"): _admin,
    (FINGERPRINT, "import"): _admin,
    (FINGERPRINT, "export"): _admin,
}


def resource_of(entity: Union[str, Any]) -> str:
    if isinstance(entity, str):
        return entity
    resource = getattr(entity, "RESOURCE", None)
    if not resource:
        raise TypeError(f"{type(entity).__name__} is not an authorizable resource")
    return resource


def is_allowed(
    actor: Optional[Actor],
    entity: Union[str, Any],
    action: str,
    *,
    min_approver_grade_level: int = DEFAULT_MIN_APPROVER_GRADE_LEVEL,
) -> bool:
    if actor is None:
        return False
    rule = _RULES.get((resource_of(entity), action))
    if rule is None:
        return False
    return bool(rule(actor, entity, min_approver_grade_level))


def authorize(
    actor: Optional[Actor],
    entity: Union[str, Any],
    action: str,
    *,
    min_approver_grade_level: int = DEFAULT_MIN_APPROVER_GRADE_LEVEL,
) -> None:
    if not is_allowed(actor, entity, action, min_approver_grade_level=min_approver_grade_level):
        raise AuthorizationError()
