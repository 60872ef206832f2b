"""Tests for position store schema initialization."""

from __future__ import annotations

from recordimport.db.connection import Database
from recordimport.db.schema import CURRENT_VERSION, initialize, schema_version


def _table_columns(conn, table: str) -> set[str]:
    rows = conn.execute(f"PRAGMA table_info({table})").fetchall()
    return {row["name"] for row in rows}


def test_import_positions_columns(tmp_db):
    cols = _table_columns(tmp_db, "import_positions")
    assert cols == {
        "partition_id",
        "record_type",
        "position",
        "sequence",
        "index_name",
        "completed",
        "updated_at",
    }


def test_primary_key_is_partition_and_type(tmp_db):
    rows = tmp_db.execute("PRAGMA table_info(import_positions)").fetchall()
    pk = sorted((r["pk"], r["name"]) for r in rows if r["pk"])
    assert [name for _, name in pk] == ["partition_id", "record_type"]


def test_schema_version_current(tmp_db):
    assert schema_version(tmp_db) == CURRENT_VERSION


def test_schema_version_zero_when_uninitialised(tmp_path):
    conn = Database(tmp_path / "empty.db").connect()
    assert schema_version(conn) == 0
    conn.close()


def test_initialize_idempotent(tmp_db):
    initialize(tmp_db)
    assert schema_version(tmp_db) == CURRENT_VERSION
