from __future__ import annotations

import io
from datetime import datetime
from typing import Iterable

import pandas as pd

from ..common.datetime_utils import format_hhmm
from ..core.constants import FINGERPRINT_COLUMNS, FINGERPRINT_OPTIONAL_COLUMNS
from .model import Fingerprint

XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
EXPORT_COLUMNS = FINGERPRINT_COLUMNS + FINGERPRINT_OPTIONAL_COLUMNS


def _write(df: pd.DataFrame, sheet_name: str) -> io.BytesIO:
    # Written in memory; nothing lands on disk.
    output = io.BytesIO()
    with pd.ExcelWriter(output, engine="openpyxl") as writer:
        df.to_excel(writer, index=False, sheet_name=sheet_name)
    output.seek(0)
    return output


def export_fingerprints(records: Iterable[Fingerprint]) -> io.BytesIO:
    data = [
        {
            "employee_id": r.employee_id,
            "date": r.date.isoformat(),
            "check_in": format_hhmm(r.check_in) or "",
            "check_out": format_hhmm(r.check_out) or "",
            "log": r.log or "",
            "excuse": r.excuse or "",
        }
        for r in records
    ]
    return _write(pd.DataFrame(data, columns=list(EXPORT_COLUMNS)), "Fingerprints")


def import_template() -> io.BytesIO:
    return _write(pd.DataFrame(columns=list(EXPORT_COLUMNS)), "Fingerprints")


def export_filename(now: datetime) -> str:
    return f"fingerprints_{now.strftime('%Y%m%d_%H%M%S')}.xlsx"
