"""Field-keyed validation helpers.

A :class:`Validator` collects every failing field before raising, so one
:class:`ValidationError` reports the whole form instead of the first problem.
Nothing here touches persistence; uniqueness and existence checks receive
the lookup result from the caller.
"""

from __future__ import annotations

import re
from datetime import date, time
from enum import Enum
from typing import Any, Callable, Iterable, Optional, Type, TypeVar

from ..core.exceptions import ValidationError
from .datetime_utils import parse_hhmm, to_date

E = TypeVar("E", bound=Enum)

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def require_non_empty(value: str, field_name: str) -> str:
    if not value or not value.strip():
        raise ValidationError.for_field(field_name, f"{field_name} is required")
    return value.strip()


def require_min_length(value: str, field_name: str, min_len: int) -> str:
    if value is None or len(value) < min_len:
        raise ValidationError.for_field(field_name, f"{field_name} must be at least {min_len} characters")
    return value


def clean_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    s = str(value).strip()
    return s or None


class Validator:
    """Accumulates field errors; call :meth:`raise_if_failed` at the end."""

    def __init__(self, *, partial: bool = False):
        # partial=True is the update mode: missing fields are allowed.
        self.partial = partial
        self.errors: dict[str, list[str]] = {}

    def add(self, field: str, message: str) -> None:
        self.errors.setdefault(field, []).append(message)

    def has(self, field: str) -> bool:
        return field in self.errors

    @property
    def ok(self) -> bool:
        return not self.errors

    def raise_if_failed(self, message: str = "The given data was invalid") -> None:
        if self.errors:
            raise ValidationError(message, self.errors)

    # String rules

    def string(
        self,
        field: str,
        value: Any,
        *,
        required: bool = False,
        max_length: Optional[int] = None,
        min_length: Optional[int] = None,
    ) -> Optional[str]:
        s = clean_str(value)
        if s is None:
            if required and not self.partial:
                self.add(field, f"{field} is required")
            return None
        if max_length is not None and len(s) > max_length:
            self.add(field, f"{field} may not be greater than {max_length} characters")
        if min_length is not None and len(s) < min_length:
            self.add(field, f"{field} must be at least {min_length} characters")
        return s

    def email(self, field: str, value: Any, *, required: bool = False, max_length: int = 255) -> Optional[str]:
        s = self.string(field, value, required=required, max_length=max_length)
        if s is not None and not _EMAIL_RE.match(s):
            self.add(field, f"{field} must be a valid email address")
        return s.lower() if s else s

    def choice(self, field: str, value: Any, enum_cls: Type[E], *, required: bool = False) -> Optional[E]:
        if value is None or (isinstance(value, str) and not value.strip()):
            if required and not self.partial:
                self.add(field, f"{field} is required")
            return None
        try:
            return enum_cls(value.strip() if isinstance(value, str) else value)
        except ValueError:
            allowed = ", ".join(m.value for m in enum_cls)
            self.add(field, f"{field} must be one of: {allowed}")
            return None

    # Numeric and temporal rules

    def integer(
        self,
        field: str,
        value: Any,
        *,
        required: bool = False,
        min_value: Optional[int] = None,
    ) -> Optional[int]:
        if value is None or (isinstance(value, str) and not value.strip()):
            if required and not self.partial:
                self.add(field, f"{field} is required")
            return None
        if isinstance(value, bool):
            self.add(field, f"{field} must be an integer")
            return None
        try:
            n = int(str(value).strip())
        except ValueError:
            self.add(field, f"{field} must be an integer")
            return None
        if min_value is not None and n < min_value:
            self.add(field, f"{field} must be at least {min_value}")
        return n

    def date(self, field: str, value: Any, *, required: bool = False) -> Optional[date]:
        if value is None or (isinstance(value, str) and not value.strip()):
            if required and not self.partial:
                self.add(field, f"{field} is required")
            return None
        try:
            return to_date(value)
        except ValueError:
            self.add(field, f"{field} is not a valid date (YYYY-MM-DD)")
            return None

    def time(self, field: str, value: Any, *, required: bool = False) -> Optional[time]:
        if value is None or (isinstance(value, str) and not value.strip()):
            if required and not self.partial:
                self.add(field, f"{field} is required")
            return None
        if isinstance(value, time):
            return value
        try:
            return parse_hhmm(str(value))
        except ValueError:
            self.add(field, f"{field} does not match the format HH:MM")
            return None

    def accepted(self, field: str, value: Any) -> bool:
        if value in (True, 1, "1", "true", "on", "yes"):
            return True
        self.add(field, f"{field} must be accepted")
        return False

    # Cross-field and lookup rules

    def after_or_equal(self, field: str, value: Any, other: Any, other_field: str) -> None:
        if value is not None and other is not None and value < other:
            self.add(field, f"{field} must be a date after or equal to {other_field}")

    def after(self, field: str, value: Any, other: Any, other_field: str) -> None:
        if value is not None and other is not None and value <= other:
            self.add(field, f"{field} must be after {other_field}")

    def exists(self, field: str, value: Any, lookup: Callable[[Any], Any]) -> None:
        if value is not None and not self.has(field) and not lookup(value):
            self.add(field, f"The selected {field} is invalid")

    def unique(
        self,
        field: str,
        value: Any,
        owner_id: Optional[int],
        *,
        ignore_id: Optional[int] = None,
    ) -> None:
        """``owner_id`` is the id of the record already holding ``value``."""
        if value is None or self.has(field) or owner_id is None:
            return
        if ignore_id is not None and int(owner_id) == int(ignore_id):
            return
        self.add(field, f"The {field} has already been taken")

    def together(self, fields: Iterable[tuple[str, Any]]) -> None:
        """All-or-none rule: if any field is filled, every field is required."""
        pairs = list(fields)
        filled = [name for name, value in pairs if clean_str(value) is not None]
        if filled and len(filled) != len(pairs):
            others = ", ".join(name for name, _ in pairs)
            for name, value in pairs:
                if clean_str(value) is None:
                    self.add(name, f"{name} is required when any of {others} is present")
