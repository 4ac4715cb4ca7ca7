from __future__ import annotations

import re
from pathlib import Path
from typing import Iterable

import mysql.connector
from werkzeug.security import generate_password_hash

from ..common.log import get_logger
from .connection import DBConfig

logger = get_logger(__name__)


def _connect(target: DBConfig, *, with_database: bool = True):
    kwargs = dict(
        host=target.host,
        port=target.port,
        user=target.user,
        password=target.password,
        use_pure=True,
    )
    if with_database:
        kwargs["database"] = target.database
    return mysql.connector.connect(**kwargs)


def _strip_create_db_and_use(sql: str) -> str:
    # Keep schema.sql compatible regardless of DB name.
    sql = re.sub(r"(?im)^\s*CREATE\s+DATABASE\b.*?;\s*$", "", sql)
    sql = re.sub(r"(?im)^\s*USE\b.*?;\s*$", "", sql)
    return sql


def _strip_comments(sql: str) -> str:
    return re.sub(r"(?m)^\s*--.*$", "", sql)


def _iter_sql_statements(sql: str) -> Iterable[str]:
    # Minimal SQL splitter for schema/seed files (handles ';' inside quotes).
    buf: list[str] = []
    in_single = False
    in_double = False
    escape = False

    for ch in sql:
        if escape:
            buf.append(ch)
            escape = False
            continue

        if ch == "\\":
            buf.append(ch)
            escape = True
            continue

        if ch == "'" and not in_double:
            in_single = not in_single
        elif ch == '"' and not in_single:
            in_double = not in_double
        elif ch == ";" and not in_single and not in_double:
            stmt = "".join(buf).strip()
            buf.clear()
            if stmt:
                yield stmt
            continue

        buf.append(ch)

    tail = "".join(buf).strip()
    if tail:
        yield tail


def _run_sql_file(db_config: dict, path: str | Path) -> int:
    target = DBConfig.from_dict(db_config)
    sql = _strip_comments(_strip_create_db_and_use(Path(path).read_text(encoding="utf-8")))

    conn = _connect(target)
    count = 0
    try:
        cur = conn.cursor()
        for stmt in _iter_sql_statements(sql):
            cur.execute(stmt)
            count += 1
        conn.commit()
    finally:
        conn.close()
    return count


def ensure_database_exists(db_config: dict) -> None:
    target = DBConfig.from_dict(db_config)
    conn = _connect(target, with_database=False)
    try:
        cur = conn.cursor()
        cur.execute(
            f"CREATE DATABASE IF NOT EXISTS `{target.database}` CHARACTER SET utf8mb4 COLLATE utf8mb4_unicode_ci;"
        )
        conn.commit()
    finally:
        conn.close()


def apply_schema(db_config: dict, *, schema_path: str | Path) -> None:
    ensure_database_exists(db_config)
    count = _run_sql_file(db_config, schema_path)
    logger.info("Schema applied", extra={"operation": "apply_schema", "status": f"{count} statements"})


def apply_seed_sql(db_config: dict, *, seed_path: str | Path) -> None:
    count = _run_sql_file(db_config, seed_path)
    logger.info("Seed data applied", extra={"operation": "apply_seed", "status": f"{count} statements"})


def ensure_demo_users(db_config: dict) -> None:
    """Create (or refresh) one demo account per role."""
    target = DBConfig.from_dict(db_config)

    conn = _connect(target)
    try:
        cur = conn.cursor(dictionary=True)

        def lookup_id(sql: str, value) -> int:
            cur.execute(sql, (value,))
            row = cur.fetchone()
            if not row:
                raise RuntimeError(f"Missing reference row for {value!r}; apply seed.sql first")
            return int(row["id"])

        dept_bpm = lookup_id("SELECT dept_id AS id FROM departments WHERE code=%s", "BPM")
        grade_n41 = lookup_id("SELECT grade_id AS id FROM grades WHERE level=%s", 41)
        grade_n29 = lookup_id("SELECT grade_id AS id FROM grades WHERE level=%s", 29)

        def upsert_user(full_name: str, email: str, password: str, role: str, ic_number: str, grade_id: int) -> None:
            password_hash = generate_password_hash(password)
            cur.execute("SELECT user_id FROM users WHERE email=%s", (email,))
            existing = cur.fetchone()
            if existing:
                cur.execute(
                    """
                    UPDATE users
                    SET full_name=%s, password_hash=%s, role=%s, grade_id=%s, dept_id=%s,
                        status='active', deleted_at=NULL
                    WHERE email=%s
                    """,
                    (full_name, password_hash, role, grade_id, dept_bpm, email),
                )
            else:
                cur.execute(
                    """
                    INSERT INTO users (full_name, email, password_hash, role, ic_number, grade_id, dept_id, position)
                    VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
                    """,
                    (full_name, email, password_hash, role, ic_number, grade_id, dept_bpm, "Demo"),
                )

        upsert_user("Admin Demo", "admin@motac.local", "admin12345", "admin", "800101015001", grade_n41)
        upsert_user("IT Admin Demo", "itadmin@motac.local", "itadmin12345", "it_admin", "800101015002", grade_n41)
        upsert_user("BPM Staff Demo", "bpm@motac.local", "bpmstaff12345", "bpm_staff", "800101015003", grade_n29)
        upsert_user("Pegawai Penyokong", "approver@motac.local", "approver12345", "staff", "800101015004", grade_n41)
        upsert_user("Ahmad Ali", "ahmad@motac.local", "staff12345", "staff", "900101015005", grade_n29)

        conn.commit()
    finally:
        conn.close()


def list_tables(db_config: dict) -> list[str]:
    target = DBConfig.from_dict(db_config)
    conn = _connect(target)
    try:
        cur = conn.cursor()
        cur.execute("SHOW TABLES")
        return [row[0] for row in cur.fetchall()]
    finally:
        conn.close()
