from __future__ import annotations

import io
from datetime import datetime
from typing import Any, BinaryIO, Mapping, Optional, Sequence

from ..authorization.policy import FINGERPRINT, authorize, is_allowed
from ..common.datetime_utils import now_local
from ..common.log import get_logger, operation_extra
from ..common.validators import Validator
from ..core.constants import DEFAULT_LIST_LIMIT, IMPORT_EXTENSIONS
from ..core.exceptions import NotFoundError
from ..users.model import Actor
from ..users.repository import UserRepository
from .exporter import export_filename, export_fingerprints, import_template
from .import_queue import ImportQueue
from .importer import FingerprintImporter, file_extension
from .model import Fingerprint, FingerprintFilter, ImportJob, build_log
from .repository import FingerprintRepository, ImportJobRepository

logger = get_logger(__name__)

_TRUTHY = (True, 1, "1", "true", "on", "yes")


def resolve_employee(users: UserRepository, value: Any) -> Optional[int]:
    """Spreadsheet employee cell: a user id, or failing that an IC number."""
    text = str(value).strip()
    if text.isdigit():
        user = users.get_by_id(int(text))
        if user is not None and user.is_active:
            return user.user_id
    user = users.get_by_ic_number(text)
    return user.user_id if user is not None and user.is_active else None


def parse_filters(params: Mapping[str, Any]) -> FingerprintFilter:
    v = Validator()
    employee_id = v.integer("employee_id", params.get("employee_id"))
    date_from = v.date("date_from", params.get("date_from"))
    date_to = v.date("date_to", params.get("date_to"))
    v.after_or_equal("date_to", date_to, date_from, "date_from")
    search = v.string("search", params.get("search"), max_length=255)
    v.raise_if_failed()
    return FingerprintFilter(
        employee_id=employee_id,
        date_from=date_from,
        date_to=date_to,
        is_absence=params.get("is_absence") in _TRUTHY,
        is_one_fingerprint=params.get("is_one_fingerprint") in _TRUTHY,
        search=search,
    )


class FingerprintService:
    """Use case: attendance fingerprints (manual entry, listing, import/export)."""

    def __init__(
        self,
        fingerprints: FingerprintRepository,
        jobs: ImportJobRepository,
        users: UserRepository,
        importer: FingerprintImporter,
        *,
        queue: Optional[ImportQueue] = None,
        list_limit: int = DEFAULT_LIST_LIMIT,
    ):
        self._fingerprints = fingerprints
        self._jobs = jobs
        self._users = users
        self._importer = importer
        self._queue = queue
        self._list_limit = int(list_limit)

    def _validate(self, data: Mapping[str, Any], *, ignore_id: Optional[int] = None) -> dict[str, Any]:
        v = Validator()
        values: dict[str, Any] = {
            "employee_id": v.integer("employee_id", data.get("employee_id"), required=True),
            "date": v.date("date", data.get("date"), required=True),
            "check_in": v.time("check_in", data.get("check_in")),
            "check_out": v.time("check_out", data.get("check_out")),
            "excuse": v.string("excuse", data.get("excuse"), max_length=255),
            "device_id": v.string("device_id", data.get("device_id"), max_length=100),
        }
        v.exists("employee_id", values["employee_id"], self._users.get_by_id)
        if values["check_out"] is not None and values["check_in"] is None:
            v.add("check_in", "check_in is required when check_out is present")
        v.after("check_out", values["check_out"], values["check_in"], "check_in")
        if values["employee_id"] is not None and values["date"] is not None and not v.has("employee_id"):
            owner = self._fingerprints.get_by_employee_and_date(values["employee_id"], values["date"])
            v.unique("date", values["date"], owner.fingerprint_id if owner else None, ignore_id=ignore_id)
        v.raise_if_failed()
        values["log"] = build_log(values["check_in"], values["check_out"])
        return values

    def _get_existing(self, fingerprint_id: int) -> Fingerprint:
        record = self._fingerprints.get_by_id(fingerprint_id)
        if record is None:
            raise NotFoundError("Fingerprint record not found")
        return record

    # Manual entry

    def create(self, *, actor: Actor, data: Mapping[str, Any]) -> int:
        authorize(actor, FINGERPRINT, "create")
        values = self._validate(data)
        fingerprint_id = self._fingerprints.create(values=values)
        logger.info(
            "Fingerprint created",
            extra=operation_extra(actor_id=actor.user_id, operation="fingerprint.create", entity_type=FINGERPRINT, entity_id=fingerprint_id),
        )
        return fingerprint_id

    def update(self, *, actor: Actor, fingerprint_id: int, data: Mapping[str, Any]) -> Fingerprint:
        current = self._get_existing(fingerprint_id)
        authorize(actor, current, "update")
        merged = {
            "employee_id": current.employee_id,
            "date": current.date,
            "check_in": current.check_in,
            "check_out": current.check_out,
            "excuse": current.excuse,
            "device_id": current.device_id,
        }
        merged.update(data)
        values = self._validate(merged, ignore_id=current.fingerprint_id)
        self._fingerprints.update(current.fingerprint_id, changes=values)
        return self._fingerprints.get_by_id(current.fingerprint_id)

    def delete(self, *, actor: Actor, fingerprint_id: int) -> None:
        authorize(actor, FINGERPRINT, "delete")
        if not self._fingerprints.delete(fingerprint_id):
            raise NotFoundError("Fingerprint record not found")
        logger.info(
            "Fingerprint deleted",
            extra=operation_extra(actor_id=actor.user_id, operation="fingerprint.delete", entity_type=FINGERPRINT, entity_id=fingerprint_id),
        )

    # Queries

    def get(self, *, actor: Actor, fingerprint_id: int) -> Fingerprint:
        record = self._get_existing(fingerprint_id)
        authorize(actor, record, "view")
        return record

    def _scoped_filters(self, actor: Actor, params: Mapping[str, Any]) -> FingerprintFilter:
        filters = parse_filters(params)
        if is_allowed(actor, FINGERPRINT, "list_all"):
            return filters
        # Everyone else only sees their own records.
        return FingerprintFilter(
            employee_id=actor.user_id,
            date_from=filters.date_from,
            date_to=filters.date_to,
            is_absence=filters.is_absence,
            is_one_fingerprint=filters.is_one_fingerprint,
            search=filters.search,
        )

    def list_records(self, *, actor: Actor, params: Mapping[str, Any]) -> Sequence[Fingerprint]:
        return self._fingerprints.list_filtered(self._scoped_filters(actor, params), limit=self._list_limit)

    # Export

    def export(self, *, actor: Actor, params: Mapping[str, Any], now: Optional[datetime] = None) -> tuple[io.BytesIO, str]:
        authorize(actor, FINGERPRINT, "export")
        filters = parse_filters(params)
        records = self._fingerprints.list_filtered(filters)
        if not records:
            raise NotFoundError("No fingerprint records match the selected filters")
        logger.info(
            "Fingerprints exported",
            extra=operation_extra(actor_id=actor.user_id, operation="fingerprint.export", entity_type=FINGERPRINT, rows=len(records)),
        )
        return export_fingerprints(records), export_filename(now or now_local())

    def template(self, *, actor: Actor) -> io.BytesIO:
        authorize(actor, FINGERPRINT, "import")
        return import_template()

    # Import

    def start_import(
        self,
        *,
        actor: Actor,
        file_name: str,
        stream: BinaryIO,
        content_type: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> ImportJob:
        """Record the upload and run it inline, or hand it to the worker queue.

        Queued jobs come back ``waiting``; poll :meth:`import_status`.
        """
        authorize(actor, FINGERPRINT, "import")
        v = Validator()
        file_name = v.string("file", file_name, required=True, max_length=255)
        v.raise_if_failed()

        content = stream.read()
        ext = file_extension(file_name)
        import_id = self._jobs.create(
            file_name=file_name,
            file_size=len(content),
            file_ext=ext,
            file_type=content_type or IMPORT_EXTENSIONS.get(ext),
            created_by=actor.user_id,
            created_at=now or now_local(),
        )
        logger.info(
            "Fingerprint import queued" if self._queue else "Fingerprint import started",
            extra=operation_extra(actor_id=actor.user_id, operation="fingerprint.import", import_id=import_id),
        )
        if self._queue is not None:
            self._queue.submit(self._importer.run, import_id, io.BytesIO(content))
            return self._jobs.get_by_id(import_id)
        return self._importer.run(import_id, io.BytesIO(content))

    def import_status(self, *, actor: Actor, import_id: int) -> ImportJob:
        authorize(actor, FINGERPRINT, "import")
        job = self._jobs.get_by_id(import_id)
        if job is None:
            raise NotFoundError("Import not found")
        return job

    def recent_imports(self, *, actor: Actor, limit: int = 20) -> Sequence[ImportJob]:
        authorize(actor, FINGERPRINT, "import")
        return self._jobs.list_recent(limit=limit)
