"""Source record model: record types, raw records and import batches."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from recordimport.errors import ProcessingError

# Source index names are "<prefix>_<type>_<engineVersion>_<date>".
INDEX_DELIMITER = "_"

# Last engine release before the version was encoded in index names.
LEGACY_ENGINE_VERSION = "0.22.0"


class RecordType(str, Enum):
    """Logical category of an engine record, imported independently."""

    PROCESS = "process"
    PROCESS_INSTANCE = "process-instance"
    JOB = "job"
    INCIDENT = "incident"
    VARIABLE = "variable"

    def alias_name(self, prefix: str) -> str:
        """Alias covering every versioned index of this type."""
        return f"{prefix}{INDEX_DELIMITER}{self.value}"

    def index_pattern(self, prefix: str) -> str:
        """Wildcard matching the concrete indices (used for refresh)."""
        return f"{prefix}{INDEX_DELIMITER}{self.value}{INDEX_DELIMITER}*"

    @classmethod
    def parse(cls, value: str) -> RecordType:
        try:
            return cls(value)
        except ValueError:
            known = ", ".join(t.value for t in cls)
            raise ValueError(f"Unknown record type '{value}'. Known types: {known}") from None


def extract_engine_version(index_name: str) -> str:
    """Return the engine version encoded in *index_name*.

    The version is the third ``_``-separated segment, with a ``-snapshot``
    suffix removed. Older index names carry no version and map to
    ``LEGACY_ENGINE_VERSION``.
    """
    parts = index_name.split(INDEX_DELIMITER)
    if len(parts) >= 3:
        return parts[2].replace("-snapshot", "")
    return LEGACY_ENGINE_VERSION


@dataclass(frozen=True)
class RawRecord:
    """One source document together with the index it was read from."""

    index_name: str
    partition_id: int
    position: int
    sequence: int | None
    key: int | None
    intent: str
    value_type: str
    timestamp: int | None
    value: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_hit(cls, hit: dict[str, Any]) -> RawRecord:
        """Build a record from a search hit (``_index`` + ``_source``)."""
        source = hit.get("_source") or {}
        try:
            position = int(source["position"])
            partition_id = int(source["partitionId"])
        except (KeyError, TypeError, ValueError) as exc:
            raise ProcessingError(
                f"Malformed record in index '{hit.get('_index')}': missing {exc}"
            ) from exc
        sequence = source.get("sequence")
        key = source.get("key")
        timestamp = source.get("timestamp")
        return cls(
            index_name=hit["_index"],
            partition_id=partition_id,
            position=position,
            sequence=int(sequence) if sequence is not None else None,
            key=int(key) if key is not None else None,
            intent=str(source.get("intent", "")),
            value_type=str(source.get("valueType", "")),
            timestamp=int(timestamp) if timestamp is not None else None,
            value=dict(source.get("value") or {}),
        )


@dataclass(frozen=True)
class ImportBatch:
    """An ordered page of records for one (partition, record type).

    Records keep source order. Sub-batches created by the import job hold
    records of exactly one index name.
    """

    partition_id: int
    record_type: RecordType
    records: tuple[RawRecord, ...] = ()
    last_index_name: str | None = None

    @classmethod
    def of(cls, partition_id: int, record_type: RecordType, records: list[RawRecord]) -> ImportBatch:
        last_index = records[-1].index_name if records else None
        return cls(partition_id, record_type, tuple(records), last_index)

    def __len__(self) -> int:
        return len(self.records)

    @property
    def is_empty(self) -> bool:
        return not self.records

    @property
    def index_names(self) -> set[str]:
        return {r.index_name for r in self.records}

    @property
    def last_position(self) -> int:
        """Position of the last record, 0 for an empty batch."""
        return self.records[-1].position if self.records else 0

    def split_by_index(self) -> list[ImportBatch]:
        """Split into contiguous runs sharing one index name, keeping order.

        A batch of at most one record is returned unchanged.
        """
        if len(self.records) <= 1:
            return [self]

        sub_batches: list[ImportBatch] = []
        current: list[RawRecord] = []
        previous_index: str | None = None
        for record in self.records:
            if previous_index is not None and record.index_name != previous_index:
                sub_batches.append(ImportBatch.of(self.partition_id, self.record_type, current))
                current = []
            current.append(record)
            previous_index = record.index_name
        sub_batches.append(ImportBatch.of(self.partition_id, self.record_type, current))
        return sub_batches

    def describe(self) -> str:
        return (
            f"partition={self.partition_id} type={self.record_type.value} "
            f"records={len(self.records)} last_index={self.last_index_name}"
        )
