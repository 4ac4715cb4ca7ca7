from __future__ import annotations

import importlib
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from config import get_settings_module

from .common.log import get_logger, setup_logging
from .common.web import GENERIC_ERROR_MESSAGE, actor_loader, bind_correlation_id, error_response
from .core.exceptions import DomainError
from .database.bootstrap import apply_schema, apply_seed_sql, ensure_demo_users, list_tables

from .approvals.controller import register as register_approvals
from .container import Container, build_container
from .email_applications.controller import register as register_email_applications
from .equipment.controller import register as register_equipment
from .fingerprints.controller import register as register_fingerprints
from .grades.controller import register as register_grades
from .loan_applications.controller import register as register_loan_applications
from .users.controller import register as register_users

logger = get_logger(__name__)

_SETTING_NAMES = (
    "MIN_APPROVER_GRADE_LEVEL",
    "EMAIL_DOMAIN",
    "MAX_PROVISION_ATTEMPTS",
    "PASSWORD_CONFIRM_SECONDS",
    "IMPORT_ASYNC",
    "IMPORT_WORKERS",
    "IMPORT_MAX_ROWS",
)


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(DomainError)
    def handle_domain_error(e: DomainError):
        return error_response(e)

    @app.errorhandler(HTTPException)
    def handle_http_error(e: HTTPException):
        return jsonify({"success": False, "error_code": e.name.upper().replace(" ", "_"), "message": e.description, "details": {}}), e.code

    @app.errorhandler(Exception)
    def handle_unexpected(e: Exception):
        logger.error("Unhandled error", exc_info=e)
        return jsonify({"success": False, "error_code": "INTERNAL_ERROR", "message": GENERIC_ERROR_MESSAGE, "details": {}}), 500


def create_app(container: Optional[Container] = None) -> Flask:
    load_dotenv(override=False)
    app = Flask(__name__)

    settings_module = get_settings_module()
    settings = importlib.import_module(settings_module)
    app.secret_key = getattr(settings, "SECRET_KEY")
    db_config = getattr(settings, "DB_CONFIG")
    app.config["DEBUG"] = bool(getattr(settings, "DEBUG", False))
    app.config["TESTING"] = bool(getattr(settings, "TESTING", False))

    setup_logging(level=getattr(settings, "LOG_LEVEL", "INFO"), log_dir=getattr(settings, "LOG_DIR", None))
    logger.info(
        f"Starting with settings={settings_module} "
        f"db={db_config.get('user')}@{db_config.get('host')}:{db_config.get('port', 3306)}/{db_config.get('database')}"
    )

    if container is None:
        auto_init_db = bool(getattr(settings, "AUTO_INIT_DB", False))
        auto_seed_db = bool(getattr(settings, "AUTO_SEED_DB", False))
        root = Path(__file__).resolve().parents[3]
        if auto_init_db:
            apply_schema(db_config, schema_path=root / "database" / "schema.sql")
            logger.info(f"Schema ready (tables={len(list_tables(db_config))})")
        if auto_seed_db:
            apply_seed_sql(db_config, seed_path=root / "database" / "seed.sql")
            ensure_demo_users(db_config)
            logger.info("Demo seed ready")

        container = build_container(
            db_config=db_config,
            settings={name: getattr(settings, name) for name in _SETTING_NAMES if hasattr(settings, name)},
        )

    app.before_request(bind_correlation_id)
    app.before_request(actor_loader(container.users_repo))
    register_error_handlers(app)

    register_users(app, container)
    register_grades(app, container)
    register_equipment(app, container)
    register_email_applications(app, container)
    register_loan_applications(app, container)
    register_approvals(app, container)
    register_fingerprints(app, container)

    return app
