"""Bulk writer for the destination store.

Every write is an idempotent upsert keyed by the entity id, so re-applying a
page after a restart converges to the same documents.
"""

from __future__ import annotations

import logging
from typing import Any

from elasticsearch import ApiError, Elasticsearch, TransportError
from elasticsearch.helpers import BulkIndexError, bulk

from recordimport.errors import PersistenceError

logger = logging.getLogger(__name__)

UPDATE_RETRY_COUNT = 3


def upsert_action(index: str, doc_id: str, doc: dict[str, Any]) -> dict[str, Any]:
    """Bulk ``update`` action that creates the document when missing."""
    return {
        "_op_type": "update",
        "_index": index,
        "_id": doc_id,
        "doc": doc,
        "doc_as_upsert": True,
        "retry_on_conflict": UPDATE_RETRY_COUNT,
    }


class DestinationWriter:
    """Writes entity documents into ``<prefix>-<entity>`` indices."""

    def __init__(self, es: Elasticsearch, prefix: str) -> None:
        self._es = es
        self.prefix = prefix

    def index_name(self, entity: str) -> str:
        return f"{self.prefix}-{entity}" if self.prefix else entity

    def bulk(self, actions: list[dict[str, Any]]) -> int:
        """Send *actions* in one bulk request. Returns the number of successes.

        Raises:
            PersistenceError: If any action fails or the cluster is unreachable.
        """
        if not actions:
            return 0
        try:
            success, _ = bulk(self._es, actions, raise_on_error=True, refresh=False)
        except BulkIndexError as exc:
            first = exc.errors[0] if exc.errors else {}
            raise PersistenceError(
                f"{len(exc.errors)} of {len(actions)} document(s) failed to import; first error: {first}"
            ) from exc
        except (ApiError, TransportError) as exc:
            raise PersistenceError(f"Bulk request failed: {exc}") from exc
        logger.debug("Bulk request wrote %d document(s)", success)
        return success
