"""Per-stream records reader.

State machine::

    IDLE -> FETCHING -> DISPATCHED -> IDLE      (page handed to a worker)
                     -> BACKOFF    -> IDLE      (empty page or fetch error)

A reader never has more than one page in flight: it stays DISPATCHED until
the worker reports the job outcome.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from enum import Enum

from recordimport.db.models import ImportPosition
from recordimport.errors import RecordImportError
from recordimport.importing.job import ImportJob, JobResult
from recordimport.importing.listeners import ListenerFanout
from recordimport.importing.positions import PositionTracker
from recordimport.processors.registry import ProcessorRegistry
from recordimport.records import RecordType
from recordimport.source.fetcher import FetchResult, FetchState, RecordFetcher

logger = logging.getLogger(__name__)


class ReaderState(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    DISPATCHED = "dispatched"
    BACKOFF = "backoff"


class RecordsReader:
    """Owns the fetch state of one (partition, record type) stream."""

    def __init__(
        self,
        fetcher: RecordFetcher,
        tracker: PositionTracker,
        *,
        backoff: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.fetcher = fetcher
        self._tracker = tracker
        self._backoff = backoff
        self._clock = clock
        self._lock = threading.Lock()
        self._state = ReaderState.IDLE
        self._activation_time = 0.0
        self._fetch_state: FetchState | None = None
        self._pending_state: FetchState | None = None

    @property
    def partition_id(self) -> int:
        return self.fetcher.partition_id

    @property
    def record_type(self) -> RecordType:
        return self.fetcher.record_type

    @property
    def state(self) -> ReaderState:
        return self._state

    @property
    def activation_time(self) -> float:
        return self._activation_time

    @property
    def fetch_state(self) -> FetchState:
        with self._lock:
            return self._current_fetch_state()

    def fetch_position(self) -> ImportPosition:
        """Last loaded position of this stream."""
        return self._tracker.latest_loaded(self.partition_id, self.record_type)

    def is_ready(self) -> bool:
        """True when the reader may fetch now; ends an elapsed backoff."""
        with self._lock:
            if self._state is ReaderState.BACKOFF and self._clock() >= self._activation_time:
                self._state = ReaderState.IDLE
            return self._state is ReaderState.IDLE and self._clock() >= self._activation_time

    def fetch(self) -> FetchResult | None:
        """Fetch the next page. Returns None when the reader backed off instead."""
        with self._lock:
            self._state = ReaderState.FETCHING
            state = self._current_fetch_state()

        try:
            result = self.fetcher.fetch(state)
        except RecordImportError as exc:
            logger.warning(
                "Fetching partition %d type %s failed, backing off: %s",
                self.partition_id,
                self.record_type.value,
                exc,
            )
            self._back_off()
            return None

        with self._lock:
            if result.batch.is_empty:
                self._fetch_state = result.state
                self._enter_backoff()
                logger.debug(
                    "No new records for partition %d type %s, backing off %.1fs",
                    self.partition_id,
                    self.record_type.value,
                    self._backoff,
                )
                return None
            self._pending_state = result.state
            self._state = ReaderState.DISPATCHED
            return result

    def create_job(
        self,
        result: FetchResult,
        registry: ProcessorRegistry,
        listeners: ListenerFanout,
    ) -> ImportJob:
        """Build the job for *result* and mark its range as scheduled.

        The job starts from the loaded position: with one page in flight per
        reader it is exactly where this page was fetched from.
        """
        previous = self._tracker.latest_loaded(self.partition_id, self.record_type)
        last = result.batch.records[-1]
        self._tracker.record_scheduled(
            previous.advanced_to(last.position, last.sequence, last.index_name)
        )
        return ImportJob(result.batch, previous, self.fetcher, registry, self._tracker, listeners)

    def job_done(self, result: JobResult) -> None:
        """Return to IDLE after the worker finished the dispatched page."""
        if result.success:
            # the committed position may be short of the scheduled page end
            self._tracker.reset_scheduled(self.partition_id, self.record_type)
            with self._lock:
                pending = self._pending_state or self._current_fetch_state()
                self._fetch_state = pending.advanced_to(result.position)
                self._pending_state = None
                self._state = ReaderState.IDLE
                self._activation_time = self._clock()
            return
        self._rewind()
        self._back_off()

    def job_discarded(self) -> None:
        """The dispatched page was dropped before running (shutdown)."""
        self._rewind()
        with self._lock:
            self._state = ReaderState.IDLE

    def _rewind(self) -> None:
        loaded = self._tracker.reset_scheduled(self.partition_id, self.record_type)
        with self._lock:
            self._fetch_state = self._state_at(loaded)
            self._pending_state = None

    def _state_at(self, position: ImportPosition) -> FetchState:
        base = self._fetch_state or FetchState.from_position(position)
        return FetchState(
            position=position.position,
            sequence=position.sequence,
            has_seen_sequence=base.has_seen_sequence or position.sequence > 0,
            force_position_query=base.force_position_query,
        )

    def _back_off(self) -> None:
        with self._lock:
            self._enter_backoff()

    def _enter_backoff(self) -> None:
        self._state = ReaderState.BACKOFF
        self._activation_time = self._clock() + self._backoff

    def _current_fetch_state(self) -> FetchState:
        if self._fetch_state is None:
            self._fetch_state = FetchState.from_position(
                self._tracker.latest_scheduled(self.partition_id, self.record_type)
            )
        return self._fetch_state
