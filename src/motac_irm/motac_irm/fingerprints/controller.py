from __future__ import annotations

from flask import Flask, request, send_file

from ..common.web import api_view, ok, payload, require_actor
from ..container import Container
from ..core.exceptions import ValidationError
from .exporter import XLSX_MIMETYPE


def register(app: Flask, container: Container) -> None:
    service = container.fingerprint_service

    @app.route("/fingerprints", methods=["GET"], endpoint="fingerprints")
    @api_view("fingerprint.list")
    def fingerprints():
        return ok(service.list_records(actor=require_actor(), params=request.args.to_dict()))

    @app.route("/fingerprints", methods=["POST"], endpoint="add_fingerprint")
    @api_view("fingerprint.create")
    def add_fingerprint():
        fingerprint_id = service.create(actor=require_actor(), data=payload())
        return ok({"fingerprint_id": fingerprint_id}, status=201)

    @app.route("/fingerprints/<int:fingerprint_id>", methods=["GET"], endpoint="get_fingerprint")
    @api_view("fingerprint.view")
    def get_fingerprint(fingerprint_id: int):
        return ok(service.get(actor=require_actor(), fingerprint_id=fingerprint_id))

    @app.route("/fingerprints/<int:fingerprint_id>", methods=["PUT", "PATCH"], endpoint="update_fingerprint")
    @api_view("fingerprint.update")
    def update_fingerprint(fingerprint_id: int):
        return ok(service.update(actor=require_actor(), fingerprint_id=fingerprint_id, data=payload()))

    @app.route("/fingerprints/<int:fingerprint_id>", methods=["DELETE"], endpoint="delete_fingerprint")
    @api_view("fingerprint.delete")
    def delete_fingerprint(fingerprint_id: int):
        service.delete(actor=require_actor(), fingerprint_id=fingerprint_id)
        return ok()

    @app.route("/fingerprints/import", methods=["POST"], endpoint="import_fingerprints")
    @api_view("fingerprint.import")
    def import_fingerprints():
        actor = require_actor()
        upload = request.files.get("file")
        if upload is None or not upload.filename:
            raise ValidationError.for_field("file", "file is required")
        job = service.start_import(
            actor=actor,
            file_name=upload.filename,
            stream=upload.stream,
            content_type=upload.mimetype,
        )
        return ok(job, status=200 if job.is_finished else 202)

    @app.route("/fingerprints/imports", methods=["GET"], endpoint="fingerprint_imports")
    @api_view("fingerprint.imports")
    def fingerprint_imports():
        return ok(service.recent_imports(actor=require_actor()))

    @app.route("/fingerprints/imports/<int:import_id>", methods=["GET"], endpoint="fingerprint_import_status")
    @api_view("fingerprint.import_status")
    def fingerprint_import_status(import_id: int):
        return ok(service.import_status(actor=require_actor(), import_id=import_id))

    @app.route("/fingerprints/export", methods=["GET"], endpoint="export_fingerprints")
    @api_view("fingerprint.export")
    def export_fingerprints():
        output, filename = service.export(actor=require_actor(), params=request.args.to_dict())
        return send_file(output, download_name=filename, as_attachment=True, mimetype=XLSX_MIMETYPE)

    @app.route("/fingerprints/template", methods=["GET"], endpoint="fingerprint_template")
    @api_view("fingerprint.template")
    def fingerprint_template():
        output = service.template(actor=require_actor())
        return send_file(output, download_name="fingerprints_template.xlsx", as_attachment=True, mimetype=XLSX_MIMETYPE)
