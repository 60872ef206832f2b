"""Base batch processor: maps engine records to destination entities.

Subclasses adapt one engine version's payload shape via ``normalize_value``;
the entity mapping itself is shared.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Callable

from recordimport.destination.writer import DestinationWriter, upsert_action
from recordimport.errors import ProcessingError
from recordimport.records import ImportBatch, RawRecord, RecordType

logger = logging.getLogger(__name__)

# (entity, entity id, document) or None when the record carries no change.
EntityDoc = tuple[str, str, dict[str, Any]]

_PROCESS_INSTANCE_STATES = {
    "ELEMENT_ACTIVATING": "ACTIVE",
    "ELEMENT_ACTIVATED": "ACTIVE",
    "ELEMENT_COMPLETED": "COMPLETED",
    "ELEMENT_TERMINATED": "CANCELED",
}

_JOB_INTENTS = frozenset(
    ["CREATED", "COMPLETED", "FAILED", "TIMED_OUT", "RETRIES_UPDATED", "CANCELED", "ERROR_THROWN"]
)

_INCIDENT_STATES = {"CREATED": "ACTIVE", "RESOLVED": "RESOLVED"}

_VARIABLE_INTENTS = frozenset(["CREATED", "UPDATED"])


class BatchProcessor(ABC):
    """Persists one sub-batch of a single engine version."""

    version: str = ""

    @abstractmethod
    def process(self, batch: ImportBatch) -> int:
        """Write *batch* to the destination. Returns the number of documents written.

        Raises:
            ProcessingError: If a record cannot be mapped.
            PersistenceError: If the destination write fails.
        """


class RecordProcessor(BatchProcessor):
    """Maps every record of a batch to an upsert and writes them in one bulk call."""

    def __init__(self, writer: DestinationWriter) -> None:
        self._writer = writer
        self._handlers: dict[RecordType, Callable[[RawRecord, dict[str, Any]], EntityDoc | None]] = {
            RecordType.PROCESS: self._process_definition,
            RecordType.PROCESS_INSTANCE: self._process_instance,
            RecordType.JOB: self._job,
            RecordType.INCIDENT: self._incident,
            RecordType.VARIABLE: self._variable,
        }

    def process(self, batch: ImportBatch) -> int:
        actions = []
        for record in batch.records:
            entity_doc = self.map_record(batch.record_type, record)
            if entity_doc is None:
                continue
            entity, doc_id, doc = entity_doc
            actions.append(upsert_action(self._writer.index_name(entity), doc_id, doc))
        logger.debug(
            "Processor %s mapped %d of %d record(s) (%s)",
            self.version,
            len(actions),
            len(batch),
            batch.describe(),
        )
        return self._writer.bulk(actions)

    def map_record(self, record_type: RecordType, record: RawRecord) -> EntityDoc | None:
        value = self.normalize_value(record.value)
        return self._handlers[record_type](record, value)

    def normalize_value(self, value: dict[str, Any]) -> dict[str, Any]:
        """Return *value* in the current payload shape. Overridden per version."""
        return dict(value)

    def common_fields(self, record: RawRecord, value: dict[str, Any]) -> dict[str, Any]:
        """Fields written on every entity."""
        return {"partitionId": record.partition_id, "position": record.position}

    # ------------------------------------------------------------------
    # Entity mappers
    # ------------------------------------------------------------------

    def _process_definition(self, record: RawRecord, value: dict[str, Any]) -> EntityDoc | None:
        if record.intent != "CREATED":
            return None
        key = _require(value, "processDefinitionKey", record)
        doc = {
            **self.common_fields(record, value),
            "key": key,
            "bpmnProcessId": value.get("bpmnProcessId"),
            "version": value.get("version"),
            "resourceName": value.get("resourceName"),
        }
        return "process", str(key), doc

    def _process_instance(self, record: RawRecord, value: dict[str, Any]) -> EntityDoc | None:
        state = _PROCESS_INSTANCE_STATES.get(record.intent)
        if state is None or value.get("bpmnElementType") != "PROCESS":
            return None
        key = _require(value, "processInstanceKey", record)
        doc = {
            **self.common_fields(record, value),
            "key": key,
            "bpmnProcessId": value.get("bpmnProcessId"),
            "processDefinitionKey": value.get("processDefinitionKey"),
            "state": state,
        }
        if state == "ACTIVE":
            doc["startDate"] = _to_date(record.timestamp)
        else:
            doc["endDate"] = _to_date(record.timestamp)
        return "process-instance", str(key), doc

    def _job(self, record: RawRecord, value: dict[str, Any]) -> EntityDoc | None:
        if record.intent not in _JOB_INTENTS:
            return None
        if record.key is None:
            raise ProcessingError(f"Job record at position {record.position} has no key")
        doc = {
            **self.common_fields(record, value),
            "key": record.key,
            "type": value.get("type"),
            "worker": value.get("worker"),
            "retries": value.get("retries"),
            "state": record.intent,
            "processInstanceKey": value.get("processInstanceKey"),
            "elementId": value.get("elementId"),
            "errorMessage": value.get("errorMessage"),
            "lastUpdated": _to_date(record.timestamp),
        }
        return "job", str(record.key), doc

    def _incident(self, record: RawRecord, value: dict[str, Any]) -> EntityDoc | None:
        state = _INCIDENT_STATES.get(record.intent)
        if state is None:
            return None
        if record.key is None:
            raise ProcessingError(f"Incident record at position {record.position} has no key")
        doc = {
            **self.common_fields(record, value),
            "key": record.key,
            "state": state,
            "errorType": value.get("errorType"),
            "errorMessage": value.get("errorMessage"),
            "processInstanceKey": value.get("processInstanceKey"),
            "elementId": value.get("elementId"),
            "jobKey": value.get("jobKey"),
        }
        if state == "ACTIVE":
            doc["creationTime"] = _to_date(record.timestamp)
        return "incident", str(record.key), doc

    def _variable(self, record: RawRecord, value: dict[str, Any]) -> EntityDoc | None:
        if record.intent not in _VARIABLE_INTENTS:
            return None
        scope_key = _require(value, "scopeKey", record)
        name = _require(value, "name", record)
        doc = {
            **self.common_fields(record, value),
            "name": name,
            "value": value.get("value"),
            "scopeKey": scope_key,
            "processInstanceKey": value.get("processInstanceKey"),
        }
        return "variable", f"{scope_key}-{name}", doc


def _require(value: dict[str, Any], field_name: str, record: RawRecord) -> Any:
    found = value.get(field_name)
    if found is None:
        raise ProcessingError(
            f"Record at position {record.position} in '{record.index_name}' "
            f"has no '{field_name}' in its value"
        )
    return found


def _to_date(timestamp_ms: int | None) -> str | None:
    if timestamp_ms is None:
        return None
    return datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc).isoformat()
