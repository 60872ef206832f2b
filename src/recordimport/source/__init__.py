"""Source store access: Elasticsearch client wrapper and record fetcher."""

from recordimport.source.client import SourceClient, build_es_client
from recordimport.source.fetcher import (
    DynamicBatchSize,
    FetchResult,
    FetchState,
    QueryMode,
    RecordFetcher,
)

__all__ = [
    "DynamicBatchSize",
    "FetchResult",
    "FetchState",
    "QueryMode",
    "RecordFetcher",
    "SourceClient",
    "build_es_client",
]
