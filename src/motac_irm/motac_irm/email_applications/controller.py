from __future__ import annotations

from flask import Flask, request

from ..common.web import api_view, ok, payload, require_actor
from ..container import Container
from .model import EmailApplication


def register(app: Flask, container: Container) -> None:
    service = container.email_application_service

    def _with_actions(application: EmailApplication) -> dict:
        return {"application": application, "allowed_actions": service.allowed_actions(application)}

    @app.route("/email-applications", methods=["GET"], endpoint="email_applications")
    @api_view("email_application.list")
    def email_applications():
        actor = require_actor()
        if request.args.get("scope") == "all":
            return ok(service.list_all(actor=actor, status=request.args.get("status")))
        return ok(service.list_mine(actor=actor))

    @app.route("/email-applications", methods=["POST"], endpoint="create_email_application")
    @api_view("email_application.create")
    def create_email_application():
        application_id = service.create_draft(actor=require_actor(), data=payload())
        return ok({"application_id": application_id}, status=201)

    @app.route("/email-applications/<int:application_id>", methods=["GET"], endpoint="get_email_application")
    @api_view("email_application.view")
    def get_email_application(application_id: int):
        return ok(_with_actions(service.get(actor=require_actor(), application_id=application_id)))

    @app.route("/email-applications/<int:application_id>", methods=["PUT", "PATCH"], endpoint="update_email_application")
    @api_view("email_application.update")
    def update_email_application(application_id: int):
        return ok(service.update_draft(actor=require_actor(), application_id=application_id, data=payload()))

    @app.route("/email-applications/<int:application_id>/submit", methods=["POST"], endpoint="submit_email_application")
    @api_view("email_application.submit")
    def submit_email_application(application_id: int):
        return ok(service.submit(actor=require_actor(), application_id=application_id, data=payload()))

    @app.route("/email-applications/<int:application_id>/approve", methods=["POST"], endpoint="approve_email_application")
    @api_view("email_application.approve")
    def approve_email_application(application_id: int):
        application = service.approve(
            actor=require_actor(),
            application_id=application_id,
            comments=payload().get("comments"),
        )
        return ok(application)

    @app.route("/email-applications/<int:application_id>/reject", methods=["POST"], endpoint="reject_email_application")
    @api_view("email_application.reject")
    def reject_email_application(application_id: int):
        application = service.reject(
            actor=require_actor(),
            application_id=application_id,
            reason=payload().get("rejection_reason"),
        )
        return ok(application)

    @app.route("/email-applications/<int:application_id>/provision", methods=["POST"], endpoint="provision_email_application")
    @api_view("email_application.provision")
    def provision_email_application(application_id: int):
        return ok(service.provision(actor=require_actor(), application_id=application_id))

    @app.route(
        "/email-applications/<int:application_id>/retry-provision",
        methods=["POST"],
        endpoint="retry_provision_email_application",
    )
    @api_view("email_application.retry_provision")
    def retry_provision_email_application(application_id: int):
        return ok(service.retry_provision(actor=require_actor(), application_id=application_id))

    @app.route("/email-applications/<int:application_id>/approvals", methods=["GET"], endpoint="email_application_approvals")
    @api_view("email_application.approvals")
    def email_application_approvals(application_id: int):
        actor = require_actor()
        return ok(
            service.history(actor=actor, application_id=application_id),
            current_stage=service.current_stage(actor=actor, application_id=application_id),
        )
