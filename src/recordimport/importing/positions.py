"""In-memory position tracking in front of the durable position store.

Two positions are kept per (partition, record type):

* **scheduled**: advanced when a page is handed to a worker, so the reader
  never fetches the same range twice while a job is in flight.
* **loaded**: advanced only after a job committed all its writes. Only
  loaded positions are ever persisted, so a restart resumes from confirmed
  work.

With ``flush_interval > 0`` loaded positions are written by a background
thread; otherwise every ``record_loaded`` call writes through.
"""

from __future__ import annotations

import logging
import threading

from recordimport.db.models import ImportPosition
from recordimport.db.repository import PositionRepository
from recordimport.errors import PersistenceError
from recordimport.records import RecordType

logger = logging.getLogger(__name__)

PositionKey = tuple[int, RecordType]


class PositionTracker:
    """Thread-safe holder of scheduled and loaded positions."""

    def __init__(self, repository: PositionRepository, flush_interval: float = 0.0) -> None:
        self._repository = repository
        self._flush_interval = flush_interval
        self._lock = threading.RLock()
        self._scheduled: dict[PositionKey, ImportPosition] = {}
        self._loaded: dict[PositionKey, ImportPosition] = {}
        self._dirty: set[PositionKey] = set()
        self._stopping = threading.Event()
        self._thread: threading.Thread | None = None

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def latest_loaded(self, partition_id: int, record_type: RecordType) -> ImportPosition:
        """Last confirmed position; loaded from the store on first access."""
        key = (partition_id, record_type)
        with self._lock:
            position = self._loaded.get(key)
            if position is None:
                position = self._repository.get_position(partition_id, record_type)
                if position is None:
                    position = ImportPosition(partition_id, record_type)
                self._loaded[key] = position
            return position

    def latest_scheduled(self, partition_id: int, record_type: RecordType) -> ImportPosition:
        with self._lock:
            scheduled = self._scheduled.get((partition_id, record_type))
            if scheduled is not None:
                return scheduled
            return self.latest_loaded(partition_id, record_type)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def record_scheduled(self, position: ImportPosition) -> None:
        with self._lock:
            current = self._scheduled.get(position.key)
            if current is not None and position.position < current.position:
                return
            self._scheduled[position.key] = position

    def record_loaded(self, position: ImportPosition) -> bool:
        """Confirm *position* as durable. Returns False for a regression.

        Raises:
            PersistenceError: In write-through mode, if the store write fails.
        """
        with self._lock:
            current = self.latest_loaded(position.partition_id, position.record_type)
            if position.position < current.position:
                logger.warning(
                    "Ignoring position regression for partition %d type %s: %d < %d",
                    position.partition_id,
                    position.record_type.value,
                    position.position,
                    current.position,
                )
                return False
            if not self._flushes_in_background:
                self._repository.save_position(position)
            else:
                self._dirty.add(position.key)
            self._loaded[position.key] = position
            scheduled = self._scheduled.get(position.key)
            if scheduled is None or scheduled.position < position.position:
                self._scheduled[position.key] = position
            return True

    def reset_scheduled(self, partition_id: int, record_type: RecordType) -> ImportPosition:
        """Drop the scheduled position back to the loaded one and return it."""
        with self._lock:
            loaded = self.latest_loaded(partition_id, record_type)
            self._scheduled[(partition_id, record_type)] = loaded
            return loaded

    def flush(self) -> int:
        """Write every loaded position not yet persisted. Returns the count.

        Raises:
            PersistenceError: If a write fails; unwritten keys stay pending.
        """
        with self._lock:
            pending = sorted(self._dirty, key=lambda k: (k[1].value, k[0]))
            for key in pending:
                self._repository.save_position(self._loaded[key])
                self._dirty.discard(key)
            if pending:
                logger.debug("Flushed %d import position(s)", len(pending))
            return len(pending)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def _flushes_in_background(self) -> bool:
        return self._thread is not None

    def start(self) -> None:
        if self._flush_interval <= 0 or self._thread is not None:
            return
        self._stopping.clear()
        self._thread = threading.Thread(
            target=self._flush_loop, name="position-flusher", daemon=True
        )
        self._thread.start()

    def close(self) -> None:
        """Stop the flush thread and write all pending positions."""
        self._stopping.set()
        if self._thread is not None:
            self._thread.join()
        self.flush()
        with self._lock:
            self._thread = None

    def _flush_loop(self) -> None:
        while not self._stopping.wait(self._flush_interval):
            try:
                self.flush()
            except PersistenceError:
                logger.exception("Periodic position flush failed, will retry")
