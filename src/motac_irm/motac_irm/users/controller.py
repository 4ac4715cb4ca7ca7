from __future__ import annotations

from datetime import datetime
from functools import wraps

from flask import Flask, session

from ..common.web import api_view, ok, payload, require_actor
from ..core.exceptions import AuthenticationError
from ..container import Container
from .model import User


def user_to_dict(user: User) -> dict:
    return {
        "user_id": user.user_id,
        "full_name": user.full_name,
        "email": user.email,
        "role": user.role.value,
        "ic_number": user.ic_number,
        "personal_email": user.personal_email,
        "phone_number": user.phone_number,
        "grade_id": user.grade_id,
        "grade_level": user.grade_level,
        "dept_id": user.dept_id,
        "position": user.position,
        "service_status": user.service_status.value if user.service_status else None,
        "motac_email": user.motac_email,
        "user_id_assigned": user.user_id_assigned,
        "status": user.status.value,
    }


def register(app: Flask, container: Container) -> None:
    def password_confirmed(view):
        """Sensitive actions need a password confirmation younger than the configured window."""

        @wraps(view)
        def wrapper(*args, **kwargs):
            raw = session.get("password_confirmed_at")
            confirmed_at = datetime.fromisoformat(raw) if raw else None
            if not container.auth_service.password_recently_confirmed(confirmed_at):
                raise AuthenticationError(
                    "Please confirm your password to continue",
                    details={"reason": "password_confirmation_required"},
                )
            return view(*args, **kwargs)

        return wrapper

    @app.route("/login", methods=["POST"], endpoint="login")
    @api_view("auth.login")
    def login():
        data = payload()
        s_user = container.auth_service.authenticate(data.get("email", ""), data.get("password", ""))

        session.clear()
        session.permanent = bool(data.get("remember"))
        session["user_id"] = s_user.user_id
        session["name"] = s_user.full_name
        session["role"] = s_user.role.value
        session["grade_level"] = s_user.grade_level
        session["dept_id"] = s_user.dept_id
        return ok(s_user)

    @app.route("/logout", methods=["POST"], endpoint="logout")
    def logout():
        session.clear()
        return ok()

    @app.route("/register", methods=["POST"], endpoint="register")
    @api_view("user.register")
    def register_user():
        user_id = container.user_service.register(payload())
        return ok({"user_id": user_id}, status=201)

    @app.route("/user/confirm-password", methods=["POST"], endpoint="confirm_password")
    @api_view("auth.confirm_password")
    def confirm_password():
        actor = require_actor()
        confirmed_at = container.auth_service.confirm_password(user_id=actor.user_id, password=payload().get("password", ""))
        session["password_confirmed_at"] = confirmed_at.isoformat()
        return ok({"password_confirmed_at": confirmed_at})

    @app.route("/me", methods=["GET"], endpoint="me")
    @api_view("user.me")
    def me():
        actor = require_actor()
        return ok(user_to_dict(container.user_service.get_user(actor=actor, user_id=actor.user_id)))

    @app.route("/departments", methods=["GET"], endpoint="departments")
    @api_view("department.list")
    def departments():
        require_actor()
        return ok(container.departments_repo.list_all())

    @app.route("/admin/users", methods=["GET"], endpoint="admin_users")
    @api_view("user.list")
    def admin_users():
        return ok(container.user_service.list_admin_view(actor=require_actor()))

    @app.route("/admin/users", methods=["POST"], endpoint="add_user")
    @api_view("user.create")
    def add_user():
        user_id = container.user_service.create_account(actor=require_actor(), data=payload())
        return ok({"user_id": user_id}, status=201)

    @app.route("/users/<int:user_id>", methods=["GET"], endpoint="get_user")
    @api_view("user.view")
    def get_user(user_id: int):
        return ok(user_to_dict(container.user_service.get_user(actor=require_actor(), user_id=user_id)))

    @app.route("/users/<int:user_id>", methods=["PUT", "PATCH"], endpoint="update_user")
    @api_view("user.update")
    def update_user(user_id: int):
        user = container.user_service.update_account(actor=require_actor(), user_id=user_id, data=payload())
        return ok(user_to_dict(user))

    @app.route("/admin/users/<int:user_id>", methods=["DELETE"], endpoint="delete_user")
    @api_view("user.delete")
    @password_confirmed
    def delete_user(user_id: int):
        container.user_service.delete_user(actor=require_actor(), user_id=user_id)
        return ok()
