"""Version-specific processors.

Each engine generation wrote a slightly different payload; the processors
bring it into the current shape before the shared entity mapping runs.
"""

from __future__ import annotations

from typing import Any

from recordimport.processors.base import RecordProcessor
from recordimport.records import RawRecord

DEFAULT_TENANT_ID = "<default>"

# Pre-1.0 payloads used "workflow" where later versions use "process".
_LEGACY_RENAMES = {
    "workflowInstanceKey": "processInstanceKey",
    "workflowKey": "processDefinitionKey",
    "workflowDefinitionVersion": "version",
}


class LegacyProcessor(RecordProcessor):
    """Index names without a version and every unknown version (0.22 era)."""

    version = "0.22"

    def normalize_value(self, value: dict[str, Any]) -> dict[str, Any]:
        normalized = dict(value)
        for old, new in _LEGACY_RENAMES.items():
            if old in normalized and new not in normalized:
                normalized[new] = normalized.pop(old)
        if normalized.get("bpmnElementType") == "WORKFLOW":
            normalized["bpmnElementType"] = "PROCESS"
        return normalized


class V1Processor(RecordProcessor):
    version = "1"


class V8Processor(RecordProcessor):
    """8.x payloads: multi-tenancy and parent process instances."""

    version = "8"

    def normalize_value(self, value: dict[str, Any]) -> dict[str, Any]:
        normalized = dict(value)
        normalized.setdefault("tenantId", DEFAULT_TENANT_ID)
        parent = normalized.get("parentProcessInstanceKey")
        if parent is not None and parent < 0:
            normalized["parentProcessInstanceKey"] = None
        return normalized

    def common_fields(self, record: RawRecord, value: dict[str, Any]) -> dict[str, Any]:
        fields = super().common_fields(record, value)
        fields["tenantId"] = value.get("tenantId", DEFAULT_TENANT_ID)
        if "parentProcessInstanceKey" in value:
            fields["parentProcessInstanceKey"] = value["parentProcessInstanceKey"]
        return fields
