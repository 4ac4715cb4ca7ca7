from __future__ import annotations

from flask import Flask, request

from ..authorization.policy import EQUIPMENT, authorize
from ..common.web import api_view, ok, payload, require_actor
from ..container import Container


def register(app: Flask, container: Container) -> None:
    @app.route("/equipment", methods=["GET"], endpoint="equipment_list")
    @api_view("equipment.list")
    def equipment_list():
        authorize(require_actor(), EQUIPMENT, "view")
        views = container.equipment_service.list_equipment(
            asset_type=request.args.get("asset_type"),
            status=request.args.get("status"),
            search=request.args.get("search"),
        )
        return ok(views)

    @app.route("/equipment", methods=["POST"], endpoint="add_equipment")
    @api_view("equipment.create")
    def add_equipment():
        equipment_id = container.equipment_service.create_equipment(actor=require_actor(), data=payload())
        return ok({"equipment_id": equipment_id}, status=201)

    @app.route("/equipment/<int:equipment_id>", methods=["GET"], endpoint="get_equipment")
    @api_view("equipment.view")
    def get_equipment(equipment_id: int):
        authorize(require_actor(), EQUIPMENT, "view")
        return ok(container.equipment_service.get_equipment(equipment_id))

    @app.route("/equipment/<int:equipment_id>", methods=["PUT", "PATCH"], endpoint="update_equipment")
    @api_view("equipment.update")
    def update_equipment(equipment_id: int):
        view = container.equipment_service.update_equipment(actor=require_actor(), equipment_id=equipment_id, data=payload())
        return ok(view)

    @app.route("/equipment/inconsistent", methods=["GET"], endpoint="inconsistent_equipment")
    @api_view("equipment.inconsistent")
    def inconsistent_equipment():
        authorize(require_actor(), EQUIPMENT, "update")
        return ok(container.equipment_service.find_inconsistent())
