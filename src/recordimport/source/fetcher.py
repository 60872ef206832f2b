"""Record fetcher for one (partition, record type) stream.

Two query shapes are used:

* **position query**: ``partitionId == P AND position > lastPosition``,
  sorted by position. Always complete, the fallback of last resort.
* **sequence query**: ``sequence in (lastSequence, lastSequence + size]``,
  sorted by sequence. Tighter, but a gap in the sequence larger than the
  window makes it miss newer records.

The sequence query is used once a sequence has been observed for the stream.
After ``max_empty_pages`` consecutive empty pages a cheap count with the
position query checks whether records exist beyond the sequence window; if
so, the next fetch uses the position query.

The fetcher holds no resume state of its own: a FetchState is passed in and
an updated one is returned.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any

from recordimport.db.models import ImportPosition
from recordimport.errors import NoSuchIndexError, SourceError
from recordimport.records import ImportBatch, RawRecord, RecordType
from recordimport.source.client import SourceClient

logger = logging.getLogger(__name__)

QUERY_MAX_SIZE = 10_000

PARTITION_ID_FIELD = "partitionId"
POSITION_FIELD = "position"
SEQUENCE_FIELD = "sequence"


class QueryMode(str, Enum):
    POSITION = "position"
    SEQUENCE = "sequence"


@dataclass(frozen=True)
class FetchState:
    """Explicit per-stream fetch state threaded through the reader loop."""

    position: int = 0
    sequence: int = 0
    has_seen_sequence: bool = False
    consecutive_empty_pages: int = 0
    force_position_query: bool = False

    @classmethod
    def from_position(cls, position: ImportPosition) -> FetchState:
        return cls(
            position=position.position,
            sequence=position.sequence,
            has_seen_sequence=position.sequence > 0,
        )

    def advanced_to(self, position: ImportPosition) -> FetchState:
        """State after a page was imported up to *position*."""
        return replace(
            self,
            position=position.position,
            sequence=position.sequence,
            has_seen_sequence=self.has_seen_sequence or position.sequence > 0,
        )


@dataclass(frozen=True)
class FetchResult:
    batch: ImportBatch
    state: FetchState
    mode: QueryMode
    page_size: int

    @property
    def is_full_page(self) -> bool:
        return len(self.batch) >= self.page_size


class DynamicBatchSize:
    """Page size that halves on fetch errors and doubles back on success."""

    def __init__(self, minimum: int, maximum: int) -> None:
        if minimum < 1 or minimum > maximum:
            raise ValueError(f"invalid batch size bounds: min={minimum} max={maximum}")
        self.minimum = minimum
        self.maximum = maximum
        self.current = maximum

    def shrink(self) -> None:
        self.current = max(self.minimum, self.current // 2)

    def grow(self) -> None:
        self.current = min(self.maximum, self.current * 2)


class RecordFetcher:
    """Issues one query per call against the source alias of a stream."""

    def __init__(
        self,
        client: SourceClient,
        partition_id: int,
        record_type: RecordType,
        *,
        batch_size: DynamicBatchSize,
        max_empty_pages: int,
        position_query_only: bool = False,
    ) -> None:
        self._client = client
        self.partition_id = partition_id
        self.record_type = record_type
        self._batch_size = batch_size
        self._max_empty_pages = max_empty_pages
        self._position_query_only = position_query_only

    @property
    def alias_name(self) -> str:
        return self.record_type.alias_name(self._client.prefix)

    @property
    def index_pattern(self) -> str:
        return self.record_type.index_pattern(self._client.prefix)

    @property
    def batch_size(self) -> int:
        return self._batch_size.current

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def query_mode(self, state: FetchState) -> QueryMode:
        if self._position_query_only or not state.has_seen_sequence or state.force_position_query:
            return QueryMode.POSITION
        return QueryMode.SEQUENCE

    def fetch(self, state: FetchState) -> FetchResult:
        """Fetch the next ordered page after *state*.

        A missing source index yields an empty page. Any other source failure
        shrinks the page size and propagates as SourceError.
        """
        mode = self.query_mode(state)
        size = self._batch_size.current
        if mode is QueryMode.POSITION:
            query = self._position_query(state.position)
            sort_field = POSITION_FIELD
        else:
            query = self._sequence_query(state.sequence, size)
            sort_field = SEQUENCE_FIELD

        try:
            hits = self._client.search(
                self.alias_name,
                self.partition_id,
                query,
                [{sort_field: {"order": "asc"}}],
                size,
            )
        except NoSuchIndexError:
            logger.debug("No index found for alias %s", self.alias_name)
            hits = []
        except SourceError:
            self._batch_size.shrink()
            logger.warning(
                "Fetch failed for %s on partition %d, batch size reduced to %d",
                self.alias_name,
                self.partition_id,
                self._batch_size.current,
            )
            raise
        else:
            self._batch_size.grow()

        records = [RawRecord.from_hit(h) for h in hits]
        batch = ImportBatch.of(self.partition_id, self.record_type, records)
        return FetchResult(batch, self._next_state(state, mode, bool(records)), mode, size)

    def fetch_range(self, position_from: int, position_to: int) -> ImportBatch:
        """Re-read every record with ``position_from < position <= position_to``.

        Pages through the range ``QUERY_MAX_SIZE`` records at a time, so the
        result always reaches *position_to* when the records exist.

        Raises:
            NoSuchIndexError: If the source alias does not exist.
        """
        logger.debug(
            "Re-reading %s partition %d positions (%d, %d]",
            self.alias_name,
            self.partition_id,
            position_from,
            position_to,
        )
        records: list[RawRecord] = []
        cursor = position_from
        while True:
            width = position_to - cursor
            size = QUERY_MAX_SIZE if width <= 0 or width > QUERY_MAX_SIZE else width
            hits = self._client.search(
                self.alias_name,
                self.partition_id,
                self._position_query(cursor, position_to),
                [{POSITION_FIELD: {"order": "asc"}}],
                size,
            )
            page = [RawRecord.from_hit(h) for h in hits]
            records.extend(page)
            if len(page) < size or page[-1].position >= position_to:
                break
            cursor = page[-1].position
        return ImportBatch.of(self.partition_id, self.record_type, records)

    def refresh_source(self) -> bool:
        return self._client.refresh(self.index_pattern)

    # ------------------------------------------------------------------
    # Mode switching
    # ------------------------------------------------------------------

    def _next_state(self, state: FetchState, mode: QueryMode, found: bool) -> FetchState:
        if found:
            return replace(state, consecutive_empty_pages=0, force_position_query=False)

        empty_pages = state.consecutive_empty_pages + 1
        force = False
        if mode is QueryMode.SEQUENCE and empty_pages >= self._max_empty_pages:
            force = self._records_beyond_sequence_window(state)
        return replace(state, consecutive_empty_pages=empty_pages, force_position_query=force)

    def _records_beyond_sequence_window(self, state: FetchState) -> bool:
        """Count records after ``state.position``; True if any exist."""
        logger.info(
            "Using the position query to see if there are new records in %s on partition %d",
            self.alias_name,
            self.partition_id,
        )
        try:
            found = self._client.count(
                self.alias_name, self.partition_id, self._position_query(state.position)
            )
        except NoSuchIndexError:
            logger.warning("No index of type %s found to count records from", self.alias_name)
            return False
        except SourceError as exc:
            logger.warning(
                "Error while looking for records beyond the sequence window of %s: %s",
                self.alias_name,
                exc,
            )
            return False

        if found > 0:
            logger.info(
                "Found %d records in %s on partition %d that the sequence query cannot reach; "
                "reverting to the position query for the next fetch",
                found,
                self.alias_name,
                self.partition_id,
            )
            return True
        logger.info("No newer records to import on %s, empty pages are expected", self.alias_name)
        return False

    # ------------------------------------------------------------------
    # Query builders
    # ------------------------------------------------------------------

    def _position_query(self, position_from: int, position_to: int | None = None) -> dict[str, Any]:
        bounds: dict[str, int] = {"gt": position_from}
        if position_to is not None:
            bounds["lte"] = position_to
        return {
            "bool": {
                "filter": [
                    {"term": {PARTITION_ID_FIELD: self.partition_id}},
                    {"range": {POSITION_FIELD: bounds}},
                ]
            }
        }

    def _sequence_query(self, sequence: int, size: int) -> dict[str, Any]:
        return {
            "bool": {
                "filter": [
                    {"term": {PARTITION_ID_FIELD: self.partition_id}},
                    {"range": {SEQUENCE_FIELD: {"gt": sequence, "lte": sequence + size}}},
                ]
            }
        }
