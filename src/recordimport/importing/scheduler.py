"""Importer: reader threads feeding a bounded job queue drained by workers.

Readers are distributed round-robin over ``reader_threads`` threads. Each
page becomes an ImportJob on a bounded queue; a full queue blocks the
reader (retrying every ``scheduler_backoff`` seconds) rather than dropping
the page. ``import_threads`` workers run the jobs. A failing job affects
only its own stream.
"""

from __future__ import annotations

import logging
import queue
import threading
from collections.abc import Iterable, Sequence

from recordimport.config import ImportConfig
from recordimport.destination.writer import DestinationWriter
from recordimport.importing.job import ImportJob, JobResult
from recordimport.importing.listeners import ImportListener, ListenerFanout
from recordimport.importing.positions import PositionTracker
from recordimport.importing.reader import RecordsReader
from recordimport.processors.registry import ProcessorRegistry, build_registry
from recordimport.source.client import SourceClient
from recordimport.source.fetcher import DynamicBatchSize, RecordFetcher

logger = logging.getLogger(__name__)

_STOP = object()


class Importer:
    """Runs every reader until stop() is called."""

    def __init__(
        self,
        readers: Sequence[RecordsReader],
        registry: ProcessorRegistry,
        tracker: PositionTracker,
        listeners: ListenerFanout,
        *,
        reader_threads: int = 1,
        import_threads: int = 2,
        queue_size: int = 10,
        scheduler_backoff: float = 0.1,
    ) -> None:
        if reader_threads < 1 or import_threads < 1 or queue_size < 1:
            raise ValueError("reader_threads, import_threads and queue_size must be >= 1")
        self.readers = list(readers)
        self._registry = registry
        self._tracker = tracker
        self._listeners = listeners
        self._reader_thread_count = reader_threads
        self._import_thread_count = import_threads
        self._scheduler_backoff = scheduler_backoff
        self._queue: queue.Queue = queue.Queue(maxsize=queue_size)
        self._running = threading.Event()
        self._stopped = threading.Event()
        self._reader_threads: list[threading.Thread] = []
        self._workers: list[threading.Thread] = []

    @property
    def is_running(self) -> bool:
        return self._running.is_set()

    def start(self) -> None:
        if self._running.is_set():
            return
        logger.info(
            "Starting importer: %d reader(s) on %d thread(s), %d worker(s)",
            len(self.readers),
            self._reader_thread_count,
            self._import_thread_count,
        )
        self._stopped.clear()
        self._running.set()
        self._tracker.start()
        for i in range(self._import_thread_count):
            worker = threading.Thread(target=self._work, name=f"import-worker-{i}", daemon=True)
            worker.start()
            self._workers.append(worker)
        for i in range(self._reader_thread_count):
            owned = self.readers[i :: self._reader_thread_count]
            if not owned:
                continue
            thread = threading.Thread(
                target=self._read, args=(owned,), name=f"records-reader-{i}", daemon=True
            )
            thread.start()
            self._reader_threads.append(thread)

    def stop(self, timeout: float | None = None) -> None:
        """Stop reading, finish running jobs, then flush positions.

        Jobs still waiting in the queue are discarded; their ranges were
        never loaded and are fetched again on the next start.
        """
        if not self._running.is_set() and not self._workers:
            return
        logger.info("Stopping importer")
        self._running.clear()
        self._stopped.set()
        for thread in self._reader_threads:
            thread.join(timeout)

        discarded = 0
        while True:
            try:
                item = self._queue.get_nowait()
            except queue.Empty:
                break
            if item is not _STOP:
                reader, _job = item
                reader.job_discarded()
                discarded += 1
            self._queue.task_done()
        if discarded:
            logger.info("Discarded %d queued import job(s)", discarded)

        for _ in self._workers:
            self._queue.put(_STOP)
        for worker in self._workers:
            worker.join(timeout)
        self._reader_threads = []
        self._workers = []
        self._tracker.close()
        logger.info("Importer stopped")

    # ------------------------------------------------------------------
    # Reader side
    # ------------------------------------------------------------------

    def _read(self, readers: list[RecordsReader]) -> None:
        while self._running.is_set():
            dispatched = False
            for reader in readers:
                if not self._running.is_set():
                    return
                if reader.is_ready():
                    dispatched = self._schedule(reader) or dispatched
            if not dispatched:
                self._stopped.wait(self._scheduler_backoff)

    def _schedule(self, reader: RecordsReader) -> bool:
        try:
            result = reader.fetch()
            if result is None:
                return False
            if result.is_full_page:
                logger.debug("Full page for %s, more records are likely", result.batch.describe())
            job = reader.create_job(result, self._registry, self._listeners)
        except Exception:
            logger.exception(
                "Scheduling failed for partition %d type %s",
                reader.partition_id,
                reader.record_type.value,
            )
            reader.job_done(JobResult(False, reader.fetch_position()))
            return False
        if not self._enqueue(reader, job):
            reader.job_discarded()
        return True

    def _enqueue(self, reader: RecordsReader, job: ImportJob) -> bool:
        while self._running.is_set():
            try:
                self._queue.put((reader, job), timeout=self._scheduler_backoff)
                return True
            except queue.Full:
                logger.debug("Import queue full, retrying in %.2fs", self._scheduler_backoff)
        return False

    # ------------------------------------------------------------------
    # Worker side
    # ------------------------------------------------------------------

    def _work(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is _STOP:
                    return
                reader, job = item
                try:
                    result = job.run()
                except Exception:
                    logger.exception("Import job raised for %s", job.batch.describe())
                    result = JobResult(False, job.previous_position)
                reader.job_done(result)
            finally:
                self._queue.task_done()


def build_importer(
    cfg: ImportConfig,
    source: SourceClient,
    writer: DestinationWriter,
    tracker: PositionTracker,
    listeners: Iterable[ImportListener] = (),
) -> Importer:
    """Wire one reader per (partition, record type) from *cfg*."""
    importer_cfg = cfg.importer
    registry = build_registry(writer)
    readers = []
    for record_type in importer_cfg.record_types:
        for partition_id in importer_cfg.partitions:
            fetcher = RecordFetcher(
                source,
                partition_id,
                record_type,
                batch_size=DynamicBatchSize(importer_cfg.batch_size_min, importer_cfg.batch_size_max),
                max_empty_pages=importer_cfg.max_empty_pages,
                position_query_only=importer_cfg.position_query_only,
            )
            readers.append(
                RecordsReader(fetcher, tracker, backoff=importer_cfg.reader_backoff_ms / 1000)
            )
    return Importer(
        readers,
        registry,
        tracker,
        ListenerFanout(listeners),
        reader_threads=importer_cfg.reader_threads,
        import_threads=importer_cfg.import_threads,
        queue_size=importer_cfg.queue_size,
        scheduler_backoff=importer_cfg.scheduler_backoff_ms / 1000,
    )
