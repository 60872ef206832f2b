"""Import job: turns one fetched page into committed destination writes.

The page is processed as a unit. Only when every sub-batch has been written
does the loaded position advance; any failure leaves it untouched so the
same range is fetched again on the next cycle.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from recordimport.db.models import ImportPosition
from recordimport.errors import NoSuchIndexError
from recordimport.importing.listeners import ListenerFanout
from recordimport.importing.positions import PositionTracker
from recordimport.processors.registry import ProcessorRegistry
from recordimport.records import ImportBatch, extract_engine_version
from recordimport.source.fetcher import RecordFetcher

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class JobResult:
    success: bool
    position: ImportPosition


class ImportJob:
    """Unit of work for one page of one (partition, record type) stream."""

    def __init__(
        self,
        batch: ImportBatch,
        previous_position: ImportPosition,
        fetcher: RecordFetcher,
        registry: ProcessorRegistry,
        tracker: PositionTracker,
        listeners: ListenerFanout,
    ) -> None:
        self.batch = batch
        self.previous_position = previous_position
        self._fetcher = fetcher
        self._registry = registry
        self._tracker = tracker
        self._listeners = listeners

    def run(self) -> JobResult:
        """Process the page and advance the loaded position on full success."""
        if self.batch.is_empty:
            return JobResult(True, self.previous_position)

        try:
            batch = self._reread_if_index_changed(self.batch)
            sub_batches = batch.split_by_index()
            for sub_batch in sub_batches:
                self._process(sub_batch)
            new_position = self._new_position(batch)
            self._tracker.record_loaded(new_position)
        except Exception:
            logger.error(
                "Import job failed, position stays at %d: %s",
                self.previous_position.position,
                self.batch.describe(),
                exc_info=True,
            )
            self._listeners.failed(self.batch)
            return JobResult(False, self.previous_position)

        for sub_batch in sub_batches:
            self._listeners.finished(sub_batch)
        return JobResult(True, new_position)

    def index_changed(self, batch: ImportBatch) -> bool:
        """True when the page spans indices or moved past the previous index.

        A stream with no stored index name always counts as changed, so its
        first page is re-read after a refresh and cannot skip records of an
        older index that were not yet searchable.
        """
        return (
            len(batch.index_names) > 1
            or batch.last_index_name != self.previous_position.index_name
        )

    def _reread_if_index_changed(self, batch: ImportBatch) -> ImportBatch:
        if not self.index_changed(batch):
            return batch

        logger.debug(
            "Index changed for partition %d type %s (%s -> %s), refreshing and re-reading",
            batch.partition_id,
            batch.record_type.value,
            self.previous_position.index_name,
            batch.last_index_name,
        )
        self._fetcher.refresh_source()
        try:
            reread = self._fetcher.fetch_range(self.previous_position.position, batch.last_position)
        except NoSuchIndexError:
            logger.warning(
                "Source alias %s vanished during re-read, importing the fetched page as is",
                self._fetcher.alias_name,
            )
            return batch
        if reread.is_empty:
            return batch
        if len(reread) != len(batch):
            logger.info(
                "Re-read of partition %d type %s returned %d record(s) instead of %d",
                batch.partition_id,
                batch.record_type.value,
                len(reread),
                len(batch),
            )
        return reread

    def _process(self, sub_batch: ImportBatch) -> None:
        version = extract_engine_version(sub_batch.last_index_name or "")
        processor = self._registry.resolve(version)
        written = processor.process(sub_batch)
        logger.debug(
            "Processor %s wrote %d document(s) for %s",
            processor.version,
            written,
            sub_batch.describe(),
        )

    def _new_position(self, batch: ImportBatch) -> ImportPosition:
        if batch.is_empty:
            return self.previous_position
        last = batch.records[-1]
        return self.previous_position.advanced_to(last.position, last.sequence, last.index_name)
