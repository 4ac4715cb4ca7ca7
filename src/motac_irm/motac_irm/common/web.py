"""Flask glue shared by every controller: session actor, JSON shaping, error translation."""

from __future__ import annotations

import dataclasses
import uuid
from datetime import date, datetime, time
from enum import Enum
from functools import wraps
from typing import Any, Callable, Optional

from flask import g, jsonify, request, session

from ..core.exceptions import AuthenticationError, DomainError, ValidationError
from ..users.model import Actor
from ..users.repository import UserRepository
from .log import get_logger, operation_extra, set_correlation_id

logger = get_logger(__name__)

GENERIC_ERROR_MESSAGE = "Something went wrong. Please try again later."


def actor_loader(users: UserRepository) -> Callable[[], None]:
    """before_request hook: rebuild the actor from the user's current row.

    Role and grade changes take effect on the next request. A deleted or
    deactivated account loses its session.
    """

    def load_actor() -> None:
        g.actor = None
        if "user_id" not in session:
            return
        user = users.get_by_id(int(session["user_id"]))
        if user is None or not user.is_active:
            session.clear()
            return
        g.actor = Actor.from_user(user)
        session["role"] = user.role.value
        session["grade_level"] = user.grade_level

    return load_actor


def current_actor() -> Optional[Actor]:
    return g.get("actor")


def require_actor() -> Actor:
    actor = current_actor()
    if actor is None:
        raise AuthenticationError("Please log in to continue")
    return actor


def serialize(value: Any) -> Any:
    """JSON-safe copy of dataclasses, enums and temporal values."""
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: serialize(getattr(value, f.name)) for f in dataclasses.fields(value)}
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, time):
        return value.strftime("%H:%M")
    if isinstance(value, dict):
        return {str(k): serialize(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [serialize(v) for v in value]
    return value


def ok(data: Any = None, *, status: int = 200, **more: Any):
    body = {"success": True, "data": serialize(data)}
    body.update({k: serialize(v) for k, v in more.items()})
    return jsonify(body), status


def error_response(err: DomainError):
    body = {"success": False}
    body.update(err.to_dict())
    if isinstance(err, ValidationError):
        body["errors"] = err.errors
    return jsonify(body), err.http_status


def payload() -> dict[str, Any]:
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    return request.form.to_dict()


def bind_correlation_id() -> None:
    set_correlation_id(request.headers.get("X-Correlation-ID") or uuid.uuid4().hex)


def api_view(operation: str) -> Callable:
    """Translate domain errors to JSON; log anything unexpected with its context."""

    def decorator(view):
        @wraps(view)
        def wrapper(*args, **kwargs):
            try:
                return view(*args, **kwargs)
            except DomainError as e:
                log = logger.info if isinstance(e, ValidationError) else logger.warning
                log(
                    e.message,
                    extra=operation_extra(
                        actor_id=session.get("user_id"),
                        operation=operation,
                        entity_id=_entity_id(kwargs),
                        error_code=e.error_code,
                    ),
                )
                return error_response(e)
            except Exception:
                logger.error(
                    f"Unhandled error in {operation}",
                    exc_info=True,
                    extra=operation_extra(
                        actor_id=session.get("user_id"),
                        operation=operation,
                        entity_id=_entity_id(kwargs),
                        error_code="INTERNAL_ERROR",
                    ),
                )
                return jsonify({"success": False, "error_code": "INTERNAL_ERROR", "message": GENERIC_ERROR_MESSAGE, "details": {}}), 500

        return wrapper

    return decorator


def _entity_id(kwargs: dict[str, Any]) -> Optional[int]:
    for key, value in kwargs.items():
        if key.endswith("_id"):
            return value
    return None
