"""Append-only audit trail for batch operations."""

from __future__ import annotations

import asyncio
import sqlite3
from datetime import datetime
from typing import Protocol, runtime_checkable

from batch_ops.domain.errors import AuditWriteFailure
from batch_ops.domain.operations import AuditLogEntry, OperationKind
from batch_ops.storage.db import SqliteStore
from batch_ops.utils.serialization import loads_mapping


@runtime_checkable
class AuditSink(Protocol):
    async def append(self, entry: AuditLogEntry) -> None:
        """Persist ``entry``; raise ``AuditWriteFailure`` when it cannot be stored."""
        ...


class SqliteAuditSink:
    def __init__(self, store: SqliteStore) -> None:
        self._store = store

    async def append(self, entry: AuditLogEntry) -> None:
        try:
            await asyncio.to_thread(
                self._store.insert_audit_entry,
                entry.operation_id,
                entry.kind.value,
                entry.action,
                entry.item_count,
                entry.performed_by,
                entry.detail,
                entry.timestamp.isoformat(),
            )
        except (sqlite3.Error, TypeError, ValueError) as exc:
            raise AuditWriteFailure(
                f"Could not write audit entry for {entry.operation_id}: {exc}"
            ) from exc

    def list_entries(
        self, operation_id: str | None = None, limit: int = 100
    ) -> list[AuditLogEntry]:
        """Most recent ``limit`` entries, oldest first."""
        rows = self._store.list_audit_entries(operation_id=operation_id, limit=limit)
        return [
            AuditLogEntry(
                operation_id=row["operation_id"],
                kind=OperationKind(row["operation_type"]),
                item_count=row["item_count"],
                performed_by=row["performed_by"],
                detail=loads_mapping(row["details"]),
                action=row["action"],
                timestamp=datetime.fromisoformat(row["created_at"]),
            )
            for row in rows
        ]
