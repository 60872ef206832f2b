"""Import listeners: observers notified after a page finished or failed."""

from __future__ import annotations

import logging
import threading
from collections import Counter
from collections.abc import Callable, Iterable
from typing import Protocol

from recordimport.records import ImportBatch

logger = logging.getLogger(__name__)


class ImportListener(Protocol):
    """Receives page outcomes synchronously from the import job.

    Implementations must return quickly; they run on a worker thread.
    """

    def finished(self, batch: ImportBatch) -> None: ...

    def failed(self, batch: ImportBatch) -> None: ...


class ListenerFanout:
    """Calls every listener in order; a raising listener never affects the others."""

    def __init__(self, listeners: Iterable[ImportListener] = ()) -> None:
        self._listeners: tuple[ImportListener, ...] = tuple(listeners)

    def __len__(self) -> int:
        return len(self._listeners)

    def finished(self, batch: ImportBatch) -> None:
        for listener in self._listeners:
            self._notify(listener.finished, batch)

    def failed(self, batch: ImportBatch) -> None:
        for listener in self._listeners:
            self._notify(listener.failed, batch)

    @staticmethod
    def _notify(callback: Callable[[ImportBatch], None], batch: ImportBatch) -> None:
        try:
            callback(batch)
        except Exception:
            logger.exception("Import listener %r raised for batch %s", callback, batch.describe())


class LoggingListener:
    def finished(self, batch: ImportBatch) -> None:
        logger.debug("Imported %s", batch.describe())

    def failed(self, batch: ImportBatch) -> None:
        logger.warning("Import failed, will retry: %s", batch.describe())


class ImportMetrics:
    """Thread-safe counters per record type."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._imported: Counter[str] = Counter()
        self._finished: Counter[str] = Counter()
        self._failed: Counter[str] = Counter()

    def finished(self, batch: ImportBatch) -> None:
        with self._lock:
            self._imported[batch.record_type.value] += len(batch)
            self._finished[batch.record_type.value] += 1

    def failed(self, batch: ImportBatch) -> None:
        with self._lock:
            self._failed[batch.record_type.value] += 1

    def snapshot(self) -> dict[str, dict[str, int]]:
        with self._lock:
            return {
                "imported_records": dict(self._imported),
                "finished_batches": dict(self._finished),
                "failed_batches": dict(self._failed),
            }
