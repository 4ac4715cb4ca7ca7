from __future__ import annotations

from datetime import date, datetime, time

import pandas as pd
import pytest

from src.motac_irm.motac_irm.core.exceptions import AuthorizationError, NotFoundError, ValidationError
from src.motac_irm.motac_irm.fingerprints.exporter import EXPORT_COLUMNS
from src.motac_irm.motac_irm.fingerprints.service import parse_filters

NOW = datetime(2025, 1, 15, 9, 0, 0)


def _create(world, employee_id, on, check_in="08:00", check_out="17:00", **more):
    data = {"employee_id": employee_id, "date": on, "check_in": check_in, "check_out": check_out}
    data.update(more)
    return world.container.fingerprint_service.create(actor=world.actor(world.admin), data=data)


def test_create_derives_the_log(world):
    fingerprint_id = _create(world, world.staff.user_id, "2025-01-02", check_out=None)
    record = world.fingerprints.get_by_id(fingerprint_id)
    assert record.log == "08:00"
    assert record.is_one_fingerprint


def test_one_record_per_employee_and_day(world):
    _create(world, world.staff.user_id, "2025-01-02")
    with pytest.raises(ValidationError) as exc:
        _create(world, world.staff.user_id, "2025-01-02")
    assert list(exc.value.errors) == ["date"]


def test_time_rules(world):
    with pytest.raises(ValidationError) as exc:
        _create(world, world.staff.user_id, "2025-01-02", check_in=None, check_out="17:00")
    assert list(exc.value.errors) == ["check_in"]

    with pytest.raises(ValidationError) as exc:
        _create(world, world.staff.user_id, "2025-01-02", check_in="17:00", check_out="08:00")
    assert list(exc.value.errors) == ["check_out"]


def test_unknown_employee(world):
    with pytest.raises(ValidationError) as exc:
        _create(world, 999, "2025-01-02")
    assert list(exc.value.errors) == ["employee_id"]


def test_update_merges_and_recomputes_log(world):
    service = world.container.fingerprint_service
    fingerprint_id = _create(world, world.staff.user_id, "2025-01-02")
    record = service.update(actor=world.actor(world.admin), fingerprint_id=fingerprint_id, data={"check_out": "18:15"})
    assert record.check_out == time(18, 15)
    assert record.log == "08:00 18:15"


def test_delete_missing_record_is_not_found(world):
    with pytest.raises(NotFoundError):
        world.container.fingerprint_service.delete(actor=world.actor(world.admin), fingerprint_id=42)


def test_staff_only_sees_own_records(world):
    service = world.container.fingerprint_service
    _create(world, world.staff.user_id, "2025-01-02")
    other_id = _create(world, world.approver.user_id, "2025-01-02")

    mine = service.list_records(actor=world.actor(world.staff), params={"employee_id": str(world.approver.user_id)})
    assert {r.employee_id for r in mine} == {world.staff.user_id}
    assert len(service.list_records(actor=world.actor(world.admin), params={})) == 2

    with pytest.raises(AuthorizationError):
        service.get(actor=world.actor(world.staff), fingerprint_id=other_id)


def test_filters(world):
    service = world.container.fingerprint_service
    _create(world, world.staff.user_id, "2025-01-02")
    _create(world, world.staff.user_id, "2025-01-03", check_in=None, check_out=None, excuse="Cuti sakit")
    _create(world, world.staff.user_id, "2025-01-04", check_out=None)

    admin = world.actor(world.admin)
    assert [r.date for r in service.list_records(actor=admin, params={"is_absence": "1"})] == [date(2025, 1, 3)]
    assert [r.date for r in service.list_records(actor=admin, params={"is_one_fingerprint": "true"})] == [date(2025, 1, 4)]
    assert [r.date for r in service.list_records(actor=admin, params={"search": "sakit"})] == [date(2025, 1, 3)]
    ranged = service.list_records(actor=admin, params={"date_from": "2025-01-03", "date_to": "2025-01-04"})
    assert [r.date for r in ranged] == [date(2025, 1, 4), date(2025, 1, 3)]


def test_filter_dates_must_be_ordered():
    with pytest.raises(ValidationError) as exc:
        parse_filters({"date_from": "2025-02-01", "date_to": "2025-01-01"})
    assert list(exc.value.errors) == ["date_to"]


def test_export_writes_filtered_rows(world):
    service = world.container.fingerprint_service
    _create(world, world.staff.user_id, "2025-01-02")
    _create(world, world.approver.user_id, "2025-01-02")

    output, filename = service.export(
        actor=world.actor(world.admin), params={"employee_id": world.staff.user_id}, now=NOW
    )

    assert filename == "fingerprints_20250115_090000.xlsx"
    frame = pd.read_excel(output, engine="openpyxl", dtype=object)
    assert list(frame.columns) == list(EXPORT_COLUMNS)
    assert frame["employee_id"].tolist() == [world.staff.user_id]
    assert frame["log"].tolist() == ["08:00 17:00"]


def test_export_with_no_matching_records_is_not_found(world):
    with pytest.raises(NotFoundError):
        world.container.fingerprint_service.export(actor=world.actor(world.admin), params={}, now=NOW)


def test_template_has_the_import_header(world):
    output = world.container.fingerprint_service.template(actor=world.actor(world.admin))
    frame = pd.read_excel(output, engine="openpyxl")
    assert list(frame.columns) == list(EXPORT_COLUMNS)
    assert frame.empty
