"""Domain models for the position store."""

from __future__ import annotations

from dataclasses import dataclass, replace

from recordimport.records import RecordType


@dataclass(frozen=True)
class ImportPosition:
    """Resume point of one (partition, record type) stream.

    ``position`` never decreases for a key; ``index_name`` is the index the
    record at ``position`` was read from.
    """

    partition_id: int
    record_type: RecordType
    position: int = 0
    sequence: int = 0
    index_name: str | None = None
    completed: bool = False
    updated_at: str | None = None

    @property
    def key(self) -> tuple[int, RecordType]:
        return (self.partition_id, self.record_type)

    def advanced_to(self, position: int, sequence: int | None, index_name: str | None) -> ImportPosition:
        """Copy of this position moved to the given record coordinates."""
        return replace(
            self,
            position=position,
            sequence=sequence if sequence is not None else self.sequence,
            index_name=index_name,
            updated_at=None,
        )
