from __future__ import annotations

import datetime as dt

import pytest

from batch_ops.audit.sink import AuditSink, SqliteAuditSink
from batch_ops.domain.errors import AuditWriteFailure
from batch_ops.domain.operations import AuditLogEntry, OperationKind


def _entry(operation_id: str = "op-1", **overrides) -> AuditLogEntry:
    values = {
        "operation_id": operation_id,
        "kind": OperationKind.STATUS_UPDATE,
        "item_count": 2,
        "performed_by": "registrar",
        "detail": {"item_count": 2, "new_status": "suspended"},
        "timestamp": dt.datetime(2024, 9, 1, 8, 0, tzinfo=dt.timezone.utc),
    }
    values.update(overrides)
    return AuditLogEntry(**values)


def test_sink_satisfies_protocol(audit_sink: SqliteAuditSink) -> None:
    assert isinstance(audit_sink, AuditSink)


@pytest.mark.asyncio
async def test_append_then_list(audit_sink: SqliteAuditSink) -> None:
    await audit_sink.append(_entry())
    await audit_sink.append(_entry("op-2", action="undo", detail={"item_count": 2}))

    entries = audit_sink.list_entries()
    assert [entry.operation_id for entry in entries] == ["op-1", "op-2"]
    first = entries[0]
    assert first.kind is OperationKind.STATUS_UPDATE
    assert first.action == "apply"
    assert first.performed_by == "registrar"
    assert first.detail == {"item_count": 2, "new_status": "suspended"}
    assert first.timestamp == dt.datetime(2024, 9, 1, 8, 0, tzinfo=dt.timezone.utc)

    assert [entry.action for entry in audit_sink.list_entries(operation_id="op-2")] == ["undo"]


@pytest.mark.asyncio
async def test_append_failure_raises_audit_write_failure(store, audit_sink) -> None:
    store.close()
    with pytest.raises(AuditWriteFailure, match="op-1"):
        await audit_sink.append(_entry())


def test_entry_to_dict() -> None:
    payload = _entry().to_dict()
    assert payload["kind"] == "statusUpdate"
    assert payload["action"] == "apply"
    assert payload["timestamp"] == "2024-09-01T08:00:00+00:00"
