from __future__ import annotations

from flask import Flask, request

from ..common.web import api_view, ok, payload, require_actor
from ..container import Container
from .model import LoanApplication


def register(app: Flask, container: Container) -> None:
    service = container.loan_application_service

    def _with_actions(application: LoanApplication) -> dict:
        return {"application": application, "allowed_actions": service.allowed_actions(application)}

    @app.route("/loan-applications", methods=["GET"], endpoint="loan_applications")
    @api_view("loan_application.list")
    def loan_applications():
        actor = require_actor()
        if request.args.get("scope") == "all":
            return ok(service.list_all(actor=actor, status=request.args.get("status")))
        return ok(service.list_mine(actor=actor))

    @app.route("/loan-applications", methods=["POST"], endpoint="create_loan_application")
    @api_view("loan_application.create")
    def create_loan_application():
        application_id = service.create_draft(actor=require_actor(), data=payload())
        return ok({"application_id": application_id}, status=201)

    @app.route("/loan-applications/<int:application_id>", methods=["GET"], endpoint="get_loan_application")
    @api_view("loan_application.view")
    def get_loan_application(application_id: int):
        return ok(_with_actions(service.get(actor=require_actor(), application_id=application_id)))

    @app.route("/loan-applications/<int:application_id>", methods=["PUT", "PATCH"], endpoint="update_loan_application")
    @api_view("loan_application.update")
    def update_loan_application(application_id: int):
        return ok(service.update_draft(actor=require_actor(), application_id=application_id, data=payload()))

    @app.route("/loan-applications/<int:application_id>/submit", methods=["POST"], endpoint="submit_loan_application")
    @api_view("loan_application.submit")
    def submit_loan_application(application_id: int):
        return ok(service.submit(actor=require_actor(), application_id=application_id, data=payload()))

    @app.route("/loan-applications/<int:application_id>/approve", methods=["POST"], endpoint="approve_loan_application")
    @api_view("loan_application.approve")
    def approve_loan_application(application_id: int):
        application = service.approve(
            actor=require_actor(),
            application_id=application_id,
            comments=payload().get("comments"),
        )
        return ok(application)

    @app.route("/loan-applications/<int:application_id>/reject", methods=["POST"], endpoint="reject_loan_application")
    @api_view("loan_application.reject")
    def reject_loan_application(application_id: int):
        application = service.reject(
            actor=require_actor(),
            application_id=application_id,
            reason=payload().get("rejection_reason"),
        )
        return ok(application)

    @app.route("/loan-applications/<int:application_id>/issue", methods=["POST"], endpoint="issue_loan_application")
    @api_view("loan_application.issue")
    def issue_loan_application(application_id: int):
        transaction_ids = service.issue(actor=require_actor(), application_id=application_id, data=payload())
        return ok({"transaction_ids": transaction_ids})

    @app.route("/loan-applications/<int:application_id>/return", methods=["POST"], endpoint="return_loan_application")
    @api_view("loan_application.return")
    def return_loan_application(application_id: int):
        return ok(service.return_equipment(actor=require_actor(), application_id=application_id, data=payload()))

    @app.route("/loan-applications/<int:application_id>/complete", methods=["POST"], endpoint="complete_loan_application")
    @api_view("loan_application.complete")
    def complete_loan_application(application_id: int):
        return ok(service.complete(actor=require_actor(), application_id=application_id))

    @app.route("/loan-applications/<int:application_id>/transactions", methods=["GET"], endpoint="loan_transactions")
    @api_view("loan_application.transactions")
    def loan_transactions(application_id: int):
        return ok(service.transactions(actor=require_actor(), application_id=application_id))

    @app.route("/loan-applications/<int:application_id>/approvals", methods=["GET"], endpoint="loan_application_approvals")
    @api_view("loan_application.approvals")
    def loan_application_approvals(application_id: int):
        actor = require_actor()
        return ok(
            service.history(actor=actor, application_id=application_id),
            current_stage=service.current_stage(actor=actor, application_id=application_id),
        )
