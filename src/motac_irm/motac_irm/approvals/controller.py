from __future__ import annotations

from flask import Flask, request

from ..common.validators import Validator
from ..common.web import api_view, ok, require_actor
from ..container import Container
from ..core.enums import ApprovableType, ApprovalDecision


def _filter(value):
    return None if value in (None, "", "all") else value


def register(app: Flask, container: Container) -> None:
    @app.route("/approvals", methods=["GET"], endpoint="my_approvals")
    @api_view("approval.list_mine")
    def my_approvals():
        actor = require_actor()
        v = Validator()
        decision = v.choice("decision", _filter(request.args.get("decision")), ApprovalDecision)
        approvable_type = v.choice("type", _filter(request.args.get("type")), ApprovableType)
        v.raise_if_failed()
        return ok(container.approval_ledger.assigned_to(actor.user_id, decision=decision, approvable_type=approvable_type))
