from __future__ import annotations

from flask import Flask

from ..common.web import api_view, ok, payload, require_actor
from ..container import Container


def register(app: Flask, container: Container) -> None:
    @app.route("/grades", methods=["GET"], endpoint="grades")
    @api_view("grade.list")
    def grades():
        require_actor()
        return ok(container.grade_service.list_grades())

    @app.route("/grades", methods=["POST"], endpoint="add_grade")
    @api_view("grade.create")
    def add_grade():
        data = payload()
        grade_id = container.grade_service.create_grade(
            actor=require_actor(),
            name=data.get("name"),
            level=data.get("level"),
            is_approver_grade=data.get("is_approver_grade") in (True, 1, "1", "true", "on"),
            min_approval_grade_id=data.get("min_approval_grade_id"),
        )
        return ok({"grade_id": grade_id}, status=201)

    @app.route("/grades/<int:grade_id>", methods=["PUT"], endpoint="update_grade")
    @api_view("grade.update")
    def update_grade(grade_id: int):
        data = payload()
        grade = container.grade_service.update_grade(
            actor=require_actor(),
            grade_id=grade_id,
            name=data.get("name"),
            level=data.get("level"),
            is_approver_grade=data.get("is_approver_grade") in (True, 1, "1", "true", "on"),
            min_approval_grade_id=data.get("min_approval_grade_id"),
        )
        return ok(grade)

    @app.route("/grades/<int:grade_id>", methods=["DELETE"], endpoint="delete_grade")
    @api_view("grade.delete")
    def delete_grade(grade_id: int):
        container.grade_service.delete_grade(actor=require_actor(), grade_id=grade_id)
        return ok()
