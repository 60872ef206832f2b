"""Import pipeline: readers, jobs, position tracking and listeners."""

from recordimport.importing.job import ImportJob, JobResult
from recordimport.importing.listeners import (
    ImportListener,
    ImportMetrics,
    ListenerFanout,
    LoggingListener,
)
from recordimport.importing.positions import PositionTracker
from recordimport.importing.reader import ReaderState, RecordsReader
from recordimport.importing.scheduler import Importer, build_importer

__all__ = [
    "ImportJob",
    "ImportListener",
    "ImportMetrics",
    "Importer",
    "JobResult",
    "ListenerFanout",
    "LoggingListener",
    "PositionTracker",
    "ReaderState",
    "RecordsReader",
    "build_importer",
]
