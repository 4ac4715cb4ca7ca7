from __future__ import annotations

import mysql.connector
from mysql.connector.constants import ClientFlag

from src.motac_irm.motac_irm.database.connection import DatabaseConnection, DBConfig


def test_connect_reports_matched_rows_and_disables_autocommit(monkeypatch):
    captured = {}
    monkeypatch.setattr(mysql.connector, "connect", lambda **kw: captured.update(kw) or "conn")

    conn = DatabaseConnection(DBConfig.from_dict({"database": "motac_irm_test"})).connect()

    assert conn == "conn"
    assert ClientFlag.FOUND_ROWS in captured["client_flags"]
    assert captured["autocommit"] is False
    assert captured["database"] == "motac_irm_test"
