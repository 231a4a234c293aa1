"""Tests for the forward-only blob database migration runner."""

from __future__ import annotations

import sqlite3

from envoy.db.connection import Database
from envoy.db.migrations import DB_VERSION, MIGRATIONS, current_version, run_migrations


def _conn(tmp_path) -> sqlite3.Connection:
    return Database(tmp_path / "lib.db").connect()


def test_fresh_database_migrates_to_latest(tmp_path):
    conn = _conn(tmp_path)
    assert run_migrations(conn) == DB_VERSION
    tables = {r[0] for r in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")}
    assert {"files", "schema_version"} <= tables
    conn.close()


def test_run_migrations_idempotent(tmp_path):
    conn = _conn(tmp_path)
    run_migrations(conn)
    run_migrations(conn)
    count = conn.execute("SELECT COUNT(*) FROM schema_version").fetchone()[0]
    assert count == len(MIGRATIONS)
    conn.close()


def test_current_version_zero_on_fresh_db(tmp_path):
    conn = _conn(tmp_path)
    assert current_version(conn) == 0
    conn.close()


def test_newer_database_left_untouched(tmp_path):
    conn = _conn(tmp_path)
    run_migrations(conn)
    conn.execute("INSERT INTO schema_version (version) VALUES (?)", (DB_VERSION + 5,))
    conn.commit()
    assert run_migrations(conn) == DB_VERSION + 5
    conn.close()


def test_data_survives_rerun(tmp_path):
    conn = _conn(tmp_path)
    run_migrations(conn)
    conn.execute(
        "INSERT INTO files (id, name, mime_type, data, date) VALUES ('f', 'n', 'application/pdf', 'x', 'd')"
    )
    conn.commit()
    run_migrations(conn)
    assert conn.execute("SELECT COUNT(*) FROM files").fetchone()[0] == 1
    conn.close()
