"""Repository for durable import positions.

One row per (partition_id, record_type). Writes are upserts; rows are only
deleted on a controlled reimport.
"""

from __future__ import annotations

import sqlite3

from recordimport.db.models import ImportPosition
from recordimport.errors import PersistenceError
from recordimport.records import RecordType

_SELECT_COLUMNS = (
    "partition_id, record_type, position, sequence, index_name, completed, updated_at"
)


class PositionRepository:
    """Data access layer for ImportPosition rows.

    Wraps an open sqlite3.Connection. The connection is owned by the caller
    and must be closed after use; concurrent callers must serialise access.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        """Initialise with an open database connection.

        Args:
            conn: An open sqlite3.Connection with schema initialised
                (see recordimport.db.schema.initialize).
        """
        self._conn = conn

    def get_position(self, partition_id: int, record_type: RecordType) -> ImportPosition | None:
        """Return the stored position for the key, or None if never saved."""
        row = self._conn.execute(
            f"SELECT {_SELECT_COLUMNS} FROM import_positions "
            "WHERE partition_id = ? AND record_type = ?",
            (partition_id, record_type.value),
        ).fetchone()
        return _row_to_position(row) if row else None

    def save_position(self, position: ImportPosition) -> None:
        """Insert or update the row for ``position.key``.

        Raises:
            PersistenceError: If the write fails.
        """
        try:
            self._conn.execute(
                """
                INSERT INTO import_positions
                    (partition_id, record_type, position, sequence, index_name, completed)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(partition_id, record_type) DO UPDATE SET
                    position   = excluded.position,
                    sequence   = excluded.sequence,
                    index_name = excluded.index_name,
                    completed  = excluded.completed,
                    updated_at = datetime('now')
                """,
                (
                    position.partition_id,
                    position.record_type.value,
                    position.position,
                    position.sequence,
                    position.index_name,
                    int(position.completed),
                ),
            )
            self._conn.commit()
        except sqlite3.Error as exc:
            raise PersistenceError(
                f"Could not save import position for partition {position.partition_id} "
                f"and type {position.record_type.value}: {exc}"
            ) from exc

    def list_positions(self) -> list[ImportPosition]:
        """Return all stored positions ordered by record type, then partition."""
        rows = self._conn.execute(
            f"SELECT {_SELECT_COLUMNS} FROM import_positions "
            "ORDER BY record_type, partition_id"
        ).fetchall()
        return [_row_to_position(r) for r in rows]

    def delete_positions(
        self,
        partition_id: int | None = None,
        record_type: RecordType | None = None,
    ) -> int:
        """Delete positions matching the filters (all rows when both are None).

        Returns the number of rows deleted.
        """
        clauses: list[str] = []
        params: list[object] = []
        if partition_id is not None:
            clauses.append("partition_id = ?")
            params.append(partition_id)
        if record_type is not None:
            clauses.append("record_type = ?")
            params.append(record_type.value)
        sql = "DELETE FROM import_positions"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        cur = self._conn.execute(sql, params)
        self._conn.commit()
        return cur.rowcount


def _row_to_position(row: sqlite3.Row) -> ImportPosition:
    return ImportPosition(
        partition_id=row["partition_id"],
        record_type=RecordType(row["record_type"]),
        position=row["position"],
        sequence=row["sequence"],
        index_name=row["index_name"],
        completed=bool(row["completed"]),
        updated_at=row["updated_at"],
    )
