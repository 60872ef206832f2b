"""Exception hierarchy shared by the import pipeline."""

from __future__ import annotations


class RecordImportError(Exception):
    """Base class for all pipeline errors."""


class SourceError(RecordImportError):
    """A query against the source store failed (timeout, shard failure, ...)."""


class NoSuchIndexError(SourceError):
    """The source alias or index does not exist (yet) for a partition/type."""


class ProcessingError(RecordImportError):
    """A record could not be mapped to a destination entity."""


class PersistenceError(RecordImportError):
    """Writing to the destination store or the position store failed."""
