"""Thin wrapper around the Elasticsearch client for the source (engine) store.

Exposes the three calls the importer needs: search, count and refresh.
Missing indices surface as NoSuchIndexError, every other failure as
SourceError.
"""

from __future__ import annotations

import logging
from typing import Any

from elasticsearch import ApiError, Elasticsearch, NotFoundError, TransportError

from recordimport.config import StoreCfg
from recordimport.errors import NoSuchIndexError, SourceError

logger = logging.getLogger(__name__)

_INDEX_NOT_FOUND_MARKERS = ("index_not_found_exception", "no such index")


def build_es_client(cfg: StoreCfg) -> Elasticsearch:
    """Create an Elasticsearch client for *cfg* (API key from the environment only)."""
    kwargs: dict[str, Any] = {"request_timeout": 30, "retry_on_timeout": True, "max_retries": 2}
    if cfg.api_key:
        kwargs["api_key"] = cfg.api_key
    return Elasticsearch(cfg.url, **kwargs)


def is_index_not_found(exc: Exception) -> bool:
    text = f"{getattr(exc, 'error', '')} {exc}".lower()
    return any(marker in text for marker in _INDEX_NOT_FOUND_MARKERS)


class SourceClient:
    """Read access to the engine's record indices."""

    def __init__(self, es: Elasticsearch, prefix: str) -> None:
        self._es = es
        self.prefix = prefix

    def search(
        self,
        index: str,
        routing: int,
        query: dict[str, Any],
        sort: list[dict[str, Any]],
        size: int,
    ) -> list[dict[str, Any]]:
        """Return the raw hits (``_index`` + ``_source``) of one search page.

        Raises:
            NoSuchIndexError: If *index* does not exist.
            SourceError: On transport errors or when not every shard answered.
        """
        try:
            response = self._es.search(
                index=index,
                query=query,
                sort=sort,
                size=size,
                routing=str(routing),
                request_cache=False,
            )
        except NotFoundError as exc:
            if is_index_not_found(exc):
                raise NoSuchIndexError(f"No index found for '{index}'") from exc
            raise SourceError(f"Search on '{index}' failed: {exc}") from exc
        except (ApiError, TransportError) as exc:
            raise SourceError(f"Search on '{index}' failed: {exc}") from exc

        shards = response.get("_shards") or {}
        total = shards.get("total", 0)
        failed = shards.get("failed", 0)
        successful = shards.get("successful", 0)
        if failed > 0 or total > failed + successful:
            raise SourceError(
                f"Not all shards of '{index}' could be searched successfully "
                f"(total={total}, successful={successful}, failed={failed})"
            )
        return list(response["hits"]["hits"])

    def count(self, index: str, routing: int, query: dict[str, Any]) -> int:
        """Return the number of documents in *index* matching *query*."""
        try:
            response = self._es.count(index=index, query=query, routing=str(routing))
        except NotFoundError as exc:
            if is_index_not_found(exc):
                raise NoSuchIndexError(f"No index found for '{index}'") from exc
            raise SourceError(f"Count on '{index}' failed: {exc}") from exc
        except (ApiError, TransportError) as exc:
            raise SourceError(f"Count on '{index}' failed: {exc}") from exc
        return int(response["count"])

    def refresh(self, index_pattern: str) -> bool:
        """Refresh *index_pattern* so just-flushed records become searchable.

        Failures are logged and reported as False; they never abort an import.
        """
        try:
            response = self._es.indices.refresh(index=index_pattern)
        except (ApiError, TransportError) as exc:
            logger.warning("Unable to refresh indices: %s (%s)", index_pattern, exc)
            return False
        failed = (response.get("_shards") or {}).get("failed", 0)
        if failed > 0:
            logger.warning("Unable to refresh indices: %s (%d failed shards)", index_pattern, failed)
            return False
        return True
