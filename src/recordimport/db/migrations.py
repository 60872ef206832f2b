"""Forward-only migration runner for the position store schema."""

from __future__ import annotations

import logging
import sqlite3

logger = logging.getLogger(__name__)

# schema_version is the bootstrap table, created before migrations run.
_CREATE_SCHEMA_VERSION = """
CREATE TABLE IF NOT EXISTS schema_version (
    version     INTEGER NOT NULL,
    applied_at  DATETIME NOT NULL DEFAULT (datetime('now'))
)
"""

_V1_SQL = """
CREATE TABLE IF NOT EXISTS import_positions (
    partition_id    INTEGER NOT NULL,
    record_type     TEXT NOT NULL,
    position        INTEGER NOT NULL DEFAULT 0,
    sequence        INTEGER NOT NULL DEFAULT 0,
    index_name      TEXT,
    updated_at      DATETIME NOT NULL DEFAULT (datetime('now')),
    PRIMARY KEY (partition_id, record_type)
);
"""

# Marks a stream whose older-version indices have been fully read.
_V2_SQL = """
ALTER TABLE import_positions ADD COLUMN completed INTEGER NOT NULL DEFAULT 0;
"""

# Append-only. Each entry: (version: int, sql: str).
# executescript() issues an implicit COMMIT before running.
MIGRATIONS: list[tuple[int, str]] = [
    (1, _V1_SQL),
    (2, _V2_SQL),
]


def run_migrations(conn: sqlite3.Connection) -> list[int]:
    """Bring the position store up to the newest schema version.

    Idempotent. Returns the versions applied by this call, oldest first.
    """
    conn.execute(_CREATE_SCHEMA_VERSION)
    conn.commit()

    (current,) = conn.execute("SELECT COALESCE(MAX(version), 0) FROM schema_version").fetchone()
    pending = [(v, sql) for v, sql in MIGRATIONS if v > current]
    for version, sql in pending:
        conn.executescript(sql)
        conn.execute("INSERT INTO schema_version (version) VALUES (?)", (version,))
        conn.commit()
        logger.info("Position store migrated to schema v%d", version)
    return [v for v, _ in pending]
