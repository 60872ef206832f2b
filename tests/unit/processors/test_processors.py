"""Tests for the version-specific batch processors."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from recordimport.destination.writer import DestinationWriter
from recordimport.errors import ProcessingError
from recordimport.processors.versions import (
    DEFAULT_TENANT_ID,
    LegacyProcessor,
    V1Processor,
    V8Processor,
)
from recordimport.records import ImportBatch, RawRecord, RecordType

_TS = 1_700_000_000_000


def _rec(intent: str, value: dict, *, key: int | None = 1, position: int = 10, value_type: str = "JOB") -> RawRecord:
    return RawRecord(
        index_name="zeebe-record_x_8.2.0_2024-01-01",
        partition_id=1,
        position=position,
        sequence=position,
        key=key,
        intent=intent,
        value_type=value_type,
        timestamp=_TS,
        value=value,
    )


@pytest.fixture
def writer():
    es_writer = DestinationWriter(MagicMock(), "monitoring")
    es_writer.bulk = MagicMock(side_effect=lambda actions: len(actions))
    return es_writer


def _actions(writer) -> list[dict]:
    return writer.bulk.call_args.args[0]


# ---------------------------------------------------------------------------
# Entity mapping
# ---------------------------------------------------------------------------


def test_job_record_upserted_by_key(writer) -> None:
    batch = ImportBatch.of(1, RecordType.JOB, [_rec("CREATED", {"type": "payment", "retries": 3}, key=77)])
    assert V1Processor(writer).process(batch) == 1

    (action,) = _actions(writer)
    assert action["_index"] == "monitoring-job"
    assert action["_id"] == "77"
    assert action["doc"]["type"] == "payment"
    assert action["doc"]["state"] == "CREATED"
    assert action["doc"]["lastUpdated"].startswith("2023-11-14T")
    assert action["doc_as_upsert"] is True


def test_process_instance_state_mapping(writer) -> None:
    value = {"bpmnElementType": "PROCESS", "processInstanceKey": 5, "bpmnProcessId": "order"}
    records = [
        _rec("ELEMENT_ACTIVATING", value, position=1),
        _rec("ELEMENT_COMPLETED", value, position=2),
    ]
    V1Processor(writer).process(ImportBatch.of(1, RecordType.PROCESS_INSTANCE, records))

    first, second = _actions(writer)
    assert first["_id"] == second["_id"] == "5"
    assert first["doc"]["state"] == "ACTIVE"
    assert "startDate" in first["doc"]
    assert second["doc"]["state"] == "COMPLETED"
    assert "endDate" in second["doc"]


def test_non_process_elements_skipped(writer) -> None:
    value = {"bpmnElementType": "SERVICE_TASK", "processInstanceKey": 5}
    written = V1Processor(writer).process(
        ImportBatch.of(1, RecordType.PROCESS_INSTANCE, [_rec("ELEMENT_ACTIVATED", value)])
    )
    assert written == 0
    assert _actions(writer) == []


def test_incident_resolved(writer) -> None:
    V1Processor(writer).process(
        ImportBatch.of(1, RecordType.INCIDENT, [_rec("RESOLVED", {"errorType": "JOB_NO_RETRIES"}, key=9)])
    )
    (action,) = _actions(writer)
    assert action["_index"] == "monitoring-incident"
    assert action["doc"]["state"] == "RESOLVED"


def test_variable_id_is_scope_and_name(writer) -> None:
    V1Processor(writer).process(
        ImportBatch.of(1, RecordType.VARIABLE, [_rec("UPDATED", {"scopeKey": 12, "name": "amount", "value": "5"})])
    )
    (action,) = _actions(writer)
    assert action["_id"] == "12-amount"
    assert action["doc"]["value"] == "5"


def test_process_definition(writer) -> None:
    V1Processor(writer).process(
        ImportBatch.of(
            1,
            RecordType.PROCESS,
            [_rec("CREATED", {"processDefinitionKey": 3, "bpmnProcessId": "order", "version": 2})],
        )
    )
    (action,) = _actions(writer)
    assert action["_index"] == "monitoring-process"
    assert action["_id"] == "3"
    assert action["doc"]["version"] == 2


def test_missing_required_field_raises(writer) -> None:
    batch = ImportBatch.of(1, RecordType.VARIABLE, [_rec("CREATED", {"name": "x"})])
    with pytest.raises(ProcessingError, match="scopeKey"):
        V1Processor(writer).process(batch)
    writer.bulk.assert_not_called()


def test_job_without_key_raises(writer) -> None:
    batch = ImportBatch.of(1, RecordType.JOB, [_rec("CREATED", {}, key=None)])
    with pytest.raises(ProcessingError, match="no key"):
        V1Processor(writer).process(batch)


# ---------------------------------------------------------------------------
# Version adaptations
# ---------------------------------------------------------------------------


def test_legacy_renames_workflow_fields(writer) -> None:
    value = {"bpmnElementType": "WORKFLOW", "workflowInstanceKey": 8, "workflowKey": 2}
    LegacyProcessor(writer).process(
        ImportBatch.of(1, RecordType.PROCESS_INSTANCE, [_rec("ELEMENT_ACTIVATED", value)])
    )
    (action,) = _actions(writer)
    assert action["_id"] == "8"
    assert action["doc"]["processDefinitionKey"] == 2


def test_v8_adds_tenant_and_parent(writer) -> None:
    value = {
        "bpmnElementType": "PROCESS",
        "processInstanceKey": 5,
        "parentProcessInstanceKey": 4,
        "tenantId": "acme",
    }
    V8Processor(writer).process(ImportBatch.of(1, RecordType.PROCESS_INSTANCE, [_rec("ELEMENT_ACTIVATED", value)]))
    doc = _actions(writer)[0]["doc"]
    assert doc["tenantId"] == "acme"
    assert doc["parentProcessInstanceKey"] == 4


def test_v8_default_tenant_and_no_parent(writer) -> None:
    value = {"bpmnElementType": "PROCESS", "processInstanceKey": 5, "parentProcessInstanceKey": -1}
    V8Processor(writer).process(ImportBatch.of(1, RecordType.PROCESS_INSTANCE, [_rec("ELEMENT_ACTIVATED", value)]))
    doc = _actions(writer)[0]["doc"]
    assert doc["tenantId"] == DEFAULT_TENANT_ID
    assert doc["parentProcessInstanceKey"] is None


def test_v1_has_no_tenant(writer) -> None:
    V1Processor(writer).process(ImportBatch.of(1, RecordType.JOB, [_rec("CREATED", {})]))
    assert "tenantId" not in _actions(writer)[0]["doc"]
