"""Fingerprint spreadsheet import.

Rows are validated and committed one at a time; a bad row is recorded as a
``{row, reason}`` failure and the import carries on. Row numbers are 1-based
data rows (the header is not counted).
"""

from __future__ import annotations

from datetime import date, datetime, time
from typing import Any, BinaryIO, Callable, Iterable, Mapping, Optional, Union

import pandas as pd

from ..common.datetime_utils import now_local, to_date, to_time
from ..common.log import get_logger
from ..common.validators import clean_str
from ..core.constants import DEFAULT_IMPORT_MAX_ROWS, FINGERPRINT_COLUMNS, IMPORT_EXTENSIONS
from ..core.enums import ImportStatus
from ..core.exceptions import ExternalServiceError, NotFoundError
from .model import ImportJob, RowFailure, build_log
from .repository import FingerprintRepository, ImportJobRepository

logger = get_logger(__name__)

_ENGINES = {"xlsx": "openpyxl", "xls": "xlrd"}

Source = Union[str, BinaryIO]


class RowError(ValueError):
    """A single spreadsheet row cannot be imported."""


def file_extension(file_name: str) -> str:
    return file_name.rsplit(".", 1)[-1].lower() if "." in file_name else ""


def normalize_header(h: Any) -> str:
    if h is None:
        return ""
    s = str(h).strip().lower()
    for ch in ("-", "/", " "):
        s = s.replace(ch, "_")
    return "_".join(p for p in s.split("_") if p)


def _blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return bool(pd.isna(value))


def read_sheet(source: Source, *, ext: str) -> pd.DataFrame:
    frame = pd.read_excel(source, engine=_ENGINES[ext], dtype=object)
    frame.columns = [normalize_header(c) for c in frame.columns]
    return frame.dropna(how="all")


def missing_columns(columns: Iterable[str]) -> list[str]:
    """Required columns absent from their expected leading position."""
    cols = list(columns)
    return [name for i, name in enumerate(FINGERPRINT_COLUMNS) if i >= len(cols) or cols[i] != name]


def import_status_for(success_count: int, failure_count: int) -> ImportStatus:
    if failure_count == 0:
        return ImportStatus.COMPLETED
    if success_count == 0:
        return ImportStatus.FAILED
    return ImportStatus.COMPLETED_WITH_ERRORS


def _time_cell(raw: Mapping[str, Any], field: str) -> Optional[time]:
    value = raw.get(field)
    if _blank(value):
        return None
    # Excel stores bare times as a fraction of a day.
    if isinstance(value, (int, float)) and not isinstance(value, bool) and 0 <= value < 1:
        seconds = int(round(value * 86400))
        return time(seconds // 3600, (seconds % 3600) // 60, seconds % 60)
    try:
        return to_time(value)
    except ValueError:
        raise RowError(f"Invalid {field} '{value}'") from None


def parse_row(
    raw: Mapping[str, Any],
    *,
    resolve_employee: Callable[[Any], Optional[int]],
) -> tuple[int, date, dict[str, Any]]:
    """Return ``(employee_id, date, column values)`` or raise :class:`RowError`."""
    employee_raw = raw.get("employee_id")
    if _blank(employee_raw):
        raise RowError("employee_id is required")
    if isinstance(employee_raw, float) and employee_raw.is_integer():
        employee_raw = int(employee_raw)
    employee_id = resolve_employee(employee_raw)
    if employee_id is None:
        raise RowError(f"Unknown employee '{employee_raw}'")

    date_raw = raw.get("date")
    if _blank(date_raw):
        raise RowError("date is required")
    try:
        on = to_date(date_raw)
    except ValueError:
        raise RowError(f"Invalid date '{date_raw}'") from None

    check_in = _time_cell(raw, "check_in")
    check_out = _time_cell(raw, "check_out")
    if check_out is not None and check_in is None:
        raise RowError("check_out given without check_in")
    if check_in is not None and check_out is not None and check_out <= check_in:
        raise RowError("check_out must be after check_in")

    excuse = None if _blank(raw.get("excuse")) else clean_str(raw.get("excuse"))
    if excuse is not None and len(excuse) > 255:
        raise RowError("excuse may not be greater than 255 characters")

    return employee_id, on, {
        "check_in": check_in,
        "check_out": check_out,
        "log": build_log(check_in, check_out),
        "excuse": excuse,
    }


class FingerprintImporter:
    def __init__(
        self,
        fingerprints: FingerprintRepository,
        jobs: ImportJobRepository,
        *,
        resolve_employee: Callable[[Any], Optional[int]],
        max_rows: int = DEFAULT_IMPORT_MAX_ROWS,
        progress_every: int = 50,
        clock: Callable[[], datetime] = now_local,
    ):
        self._fingerprints = fingerprints
        self._jobs = jobs
        self._resolve_employee = resolve_employee
        self._max_rows = int(max_rows)
        self._progress_every = max(1, int(progress_every))
        self._clock = clock

    def _finish(self, job: ImportJob, status: ImportStatus, **changes: Any) -> ImportJob:
        changes["status"] = status
        changes["finished_at"] = self._clock()
        self._jobs.update(job.import_id, changes=changes)
        logger.info(
            f"Fingerprint import finished: {status.value}",
            extra={
                "operation": "fingerprint.import",
                "import_id": job.import_id,
                "status": status.value,
                "rows": changes.get("current_row", 0),
            },
        )
        return self._jobs.get_by_id(job.import_id)

    def run(self, import_id: int, source: Source) -> ImportJob:
        job = self._jobs.get_by_id(import_id)
        if job is None:
            raise NotFoundError("Import not found")

        if job.file_ext not in IMPORT_EXTENSIONS:
            allowed = ", ".join(IMPORT_EXTENSIONS)
            return self._finish(job, ImportStatus.FAILED_VALIDATION, details={"error": f"The file must be of type: {allowed}"})

        self._jobs.update(job.import_id, changes={"status": ImportStatus.PROCESSING})
        try:
            frame = read_sheet(source, ext=job.file_ext)
        except Exception as e:
            logger.error(
                "Fingerprint spreadsheet could not be read",
                exc_info=True,
                extra={"operation": "fingerprint.import", "import_id": job.import_id},
            )
            self._finish(job, ImportStatus.FAILED, details={"error": "The file could not be read"})
            raise ExternalServiceError("The spreadsheet could not be read", details={"import_id": job.import_id}) from e

        missing = missing_columns(frame.columns)
        if missing:
            return self._finish(
                job,
                ImportStatus.FAILED_VALIDATION,
                details={"error": "Missing or misplaced columns", "missing_columns": missing},
            )
        total = len(frame)
        if total == 0:
            return self._finish(job, ImportStatus.FAILED_VALIDATION, details={"error": "The file has no data rows"})
        if total > self._max_rows:
            return self._finish(
                job,
                ImportStatus.FAILED_VALIDATION,
                details={"error": f"The file has more than {self._max_rows} rows"},
            )

        self._jobs.update(job.import_id, changes={"total_rows": total})
        success = 0
        failures: list[RowFailure] = []
        processed = 0
        try:
            for index, raw in zip(frame.index, frame.to_dict("records")):
                row_no = int(index) + 1
                processed += 1
                try:
                    employee_id, on, values = parse_row(raw, resolve_employee=self._resolve_employee)
                except RowError as e:
                    failures.append(RowFailure(row=row_no, reason=str(e)))
                else:
                    self._fingerprints.upsert(employee_id=employee_id, on=on, values=values)
                    success += 1
                if processed % self._progress_every == 0:
                    self._jobs.update(job.import_id, changes={"current_row": processed})
        except Exception:
            logger.error(
                "Fingerprint import aborted",
                exc_info=True,
                extra={"operation": "fingerprint.import", "import_id": job.import_id},
            )
            self._finish(
                job,
                ImportStatus.FAILED,
                current_row=processed,
                success_count=success,
                failure_count=len(failures),
                details={"error": "Import aborted", "failures": [f.to_dict() for f in failures]},
            )
            raise

        return self._finish(
            job,
            import_status_for(success, len(failures)),
            current_row=processed,
            success_count=success,
            failure_count=len(failures),
            details={"failures": [f.to_dict() for f in failures]},
        )
