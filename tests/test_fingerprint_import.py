from __future__ import annotations

import io
from datetime import date, datetime, time

import pandas as pd
import pytest

from src.motac_irm.motac_irm.core.enums import ImportStatus
from src.motac_irm.motac_irm.core.exceptions import AuthorizationError, ExternalServiceError
from src.motac_irm.motac_irm.fingerprints.import_queue import ImportQueue
from src.motac_irm.motac_irm.fingerprints.importer import (
    FingerprintImporter,
    RowError,
    import_status_for,
    missing_columns,
    normalize_header,
    parse_row,
)
from src.motac_irm.motac_irm.fingerprints.service import FingerprintService, resolve_employee

NOW = datetime(2025, 1, 15, 9, 0, 0)


def _xlsx(rows, columns=("employee_id", "date", "check_in", "check_out")) -> io.BytesIO:
    output = io.BytesIO()
    pd.DataFrame(rows, columns=list(columns)).to_excel(output, index=False, engine="openpyxl")
    output.seek(0)
    return output


def _ten_rows(employee_id):
    rows = [[employee_id, f"2025-01-{day:02d}", "08:00", "17:00"] for day in range(1, 11)]
    rows[3][1] = "2024-13-01"
    rows[6][2], rows[6][3] = "17:00", "08:00"
    return rows


def _start(world, stream, file_name="attendance.xlsx", actor=None):
    return world.container.fingerprint_service.start_import(
        actor=world.actor(actor or world.admin),
        file_name=file_name,
        stream=stream,
        now=NOW,
    )


def test_partial_success_reports_failed_rows(world):
    job = _start(world, _xlsx(_ten_rows(world.staff.user_id)))

    assert job.status == ImportStatus.COMPLETED_WITH_ERRORS
    assert job.success_count == 8
    assert job.failure_count == 2
    assert [f["row"] for f in job.failures] == [4, 7]
    assert job.total_rows == 10 and job.current_row == 10
    assert job.finished_at is not None
    assert len(world.fingerprints.records) == 8

    record = world.fingerprints.get_by_employee_and_date(world.staff.user_id, date(2025, 1, 1))
    assert (record.check_in, record.check_out, record.log) == (time(8, 0), time(17, 0), "08:00 17:00")


def test_reimport_updates_instead_of_duplicating(world):
    rows = [[world.staff.user_id, "2025-01-02", "08:00", ""]]
    _start(world, _xlsx(rows))
    rows = [[world.staff.ic_number, "2025-01-02", "08:10", "17:30"]]
    job = _start(world, _xlsx(rows))

    assert job.status == ImportStatus.COMPLETED
    assert len(world.fingerprints.records) == 1
    record = next(iter(world.fingerprints.records.values()))
    assert record.log == "08:10 17:30"


def test_every_row_failing_marks_the_import_failed(world):
    job = _start(world, _xlsx([[999, "2025-01-02", "08:00", "17:00"], ["", "2025-01-03", "", ""]]))
    assert job.status == ImportStatus.FAILED
    assert [f["reason"] for f in job.failures] == ["Unknown employee '999'", "employee_id is required"]


def test_wrong_extension_fails_validation_without_reading(world):
    job = _start(world, io.BytesIO(b"employee_id,date\n"), file_name="attendance.csv")
    assert job.status == ImportStatus.FAILED_VALIDATION
    assert "xlsx" in job.details["error"]


def test_misplaced_columns_fail_validation(world):
    stream = _xlsx([["2025-01-02", world.staff.user_id, "08:00", "17:00"]], columns=("date", "employee_id", "check_in", "check_out"))
    job = _start(world, stream)
    assert job.status == ImportStatus.FAILED_VALIDATION
    assert job.details["missing_columns"] == ["employee_id", "date"]
    assert world.fingerprints.records == {}


def test_empty_sheet_fails_validation(world):
    job = _start(world, _xlsx([]))
    assert job.status == ImportStatus.FAILED_VALIDATION


def test_unreadable_file_marks_job_failed(world):
    with pytest.raises(ExternalServiceError):
        _start(world, io.BytesIO(b"this is not a workbook"))
    job = world.imports.get_by_id(1)
    assert job.status == ImportStatus.FAILED


def test_row_limit(world):
    rows = [[world.staff.user_id, f"2025-02-{day:02d}", "08:00", "17:00"] for day in range(1, 4)]
    importer = FingerprintImporter(
        world.fingerprints,
        world.imports,
        resolve_employee=lambda value: resolve_employee(world.users, value),
        max_rows=2,
        clock=lambda: NOW,
    )
    import_id = world.imports.create(
        file_name="big.xlsx", file_size=1, file_ext="xlsx", file_type=None, created_by=1, created_at=NOW
    )
    job = importer.run(import_id, _xlsx(rows))
    assert job.status == ImportStatus.FAILED_VALIDATION
    assert job.finished_at == NOW


def test_import_requires_admin(world):
    with pytest.raises(AuthorizationError):
        _start(world, _xlsx(_ten_rows(world.staff.user_id)), actor=world.staff)


def test_queued_import_finishes_in_the_background(world):
    queue = ImportQueue(max_workers=1)
    importer = FingerprintImporter(
        world.fingerprints,
        world.imports,
        resolve_employee=lambda value: resolve_employee(world.users, value),
    )
    service = FingerprintService(world.fingerprints, world.imports, world.users, importer, queue=queue)

    job = service.start_import(
        actor=world.actor(world.admin), file_name="a.xlsx", stream=_xlsx(_ten_rows(world.staff.user_id)), now=NOW
    )
    queue.shutdown(wait=True)

    finished = service.import_status(actor=world.actor(world.admin), import_id=job.import_id)
    assert finished.status == ImportStatus.COMPLETED_WITH_ERRORS
    assert [s for _, s in world.imports.updates if "status" in s][0]["status"] == ImportStatus.PROCESSING


# Row parsing


def _resolve(value):
    return 5 if str(value) == "5" else None


def test_parse_row_accepts_excel_values():
    employee_id, on, values = parse_row(
        {"employee_id": 5.0, "date": datetime(2025, 1, 2), "check_in": 0.3333333, "check_out": time(17, 0)},
        resolve_employee=_resolve,
    )
    assert (employee_id, on) == (5, date(2025, 1, 2))
    assert values["check_in"] == time(8, 0)
    assert values["log"] == "08:00 17:00"


def test_parse_row_rejects_check_out_without_check_in():
    with pytest.raises(RowError, match="without check_in"):
        parse_row({"employee_id": 5, "date": "2025-01-02", "check_in": None, "check_out": "17:00"}, resolve_employee=_resolve)


def test_absence_row_has_no_log():
    _, _, values = parse_row({"employee_id": 5, "date": "2025-01-02", "excuse": "Cuti"}, resolve_employee=_resolve)
    assert values["log"] is None
    assert values["excuse"] == "Cuti"


def test_header_and_status_helpers():
    assert normalize_header(" Check In ") == "check_in"
    assert normalize_header("Employee-ID") == "employee_id"
    assert missing_columns(["employee_id", "date", "check_in", "check_out", "excuse"]) == []
    assert missing_columns(["employee_id", "date"]) == ["check_in", "check_out"]
    assert import_status_for(3, 0) == ImportStatus.COMPLETED
    assert import_status_for(0, 3) == ImportStatus.FAILED
    assert import_status_for(2, 1) == ImportStatus.COMPLETED_WITH_ERRORS
