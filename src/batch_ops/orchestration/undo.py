"""Undo controller: replays a retained snapshot over the current records."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from batch_ops.audit.sink import AuditSink
from batch_ops.domain.errors import NoSnapshot, OperationInProgress, UndoFailure
from batch_ops.domain.operations import AuditLogEntry
from batch_ops.orchestration.locks import RecordLockManager
from batch_ops.orchestration.registry import OperationRegistry
from batch_ops.orchestration.snapshots import SnapshotStore
from batch_ops.storage.entities import EntityMutator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UndoResult:
    operation_id: str
    restored_count: int

    def to_dict(self) -> dict[str, object]:
        return {
            "success": True,
            "operation_id": self.operation_id,
            "restored_count": self.restored_count,
        }


class UndoController:
    def __init__(
        self,
        registry: OperationRegistry,
        snapshots: SnapshotStore,
        mutator: EntityMutator,
        audit_sink: AuditSink | None = None,
        locks: RecordLockManager | None = None,
        timeout_seconds: float = 30.0,
    ) -> None:
        self._registry = registry
        self._snapshots = snapshots
        self._mutator = mutator
        self._audit_sink = audit_sink
        self._locks = locks or RecordLockManager()
        self._timeout_seconds = timeout_seconds

    async def undo(self, operation_id: str, performed_by: str = "system") -> UndoResult:
        """Restore every prior record of ``operation_id`` as a full overwrite.

        The snapshot is single-use: a second call raises ``NoSnapshot``. If a
        restore write fails the snapshot is retained again so undo can be
        retried, and ``UndoFailure`` is raised. The operation's status is
        never changed.
        """
        operation = self._registry.get(operation_id)
        if operation is not None and not operation.is_terminal:
            raise OperationInProgress(
                f"Operation {operation_id} is {operation.status.value}; undo after it finishes"
            )

        snapshot = self._snapshots.consume(operation_id)
        if snapshot is None:
            raise NoSnapshot(operation_id)

        restored = 0
        try:
            for record_id, prior in zip(snapshot.target_ids, snapshot.prior_records):
                async with self._locks.hold(record_id):
                    await asyncio.wait_for(
                        self._mutator.write_one(record_id, prior, replace=True),
                        self._timeout_seconds,
                    )
                restored += 1
        except (Exception, asyncio.CancelledError) as exc:
            self._snapshots.save(snapshot)
            logger.error(
                "Undo of %s stopped after %d of %d records: %s",
                operation_id,
                restored,
                len(snapshot.prior_records),
                exc,
            )
            if isinstance(exc, asyncio.CancelledError):
                raise
            raise UndoFailure(
                f"Undo of {operation_id} failed after {restored} records: {exc}"
            ) from exc

        self._registry.mark_undone(operation_id)
        logger.info("Undid operation %s (%d records restored)", operation_id, restored)

        if self._audit_sink is not None and snapshot.kind is not None:
            entry = AuditLogEntry(
                operation_id=operation_id,
                kind=snapshot.kind,
                item_count=restored,
                performed_by=performed_by,
                detail={
                    "item_count": restored,
                    "restored_from": snapshot.captured_at.isoformat(),
                },
                action="undo",
            )
            try:
                await self._audit_sink.append(entry)
            except Exception as exc:
                logger.error("Audit write failed for undo of %s: %s", operation_id, exc)

        return UndoResult(operation_id=operation_id, restored_count=restored)
