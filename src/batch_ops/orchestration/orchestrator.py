"""Batch orchestrator: submission, snapshot capture, execution and undo."""

from __future__ import annotations

import asyncio
import datetime as dt
import logging
from collections.abc import Mapping, Sequence
from typing import Any, Literal

from batch_ops.context import current_actor
from batch_ops.domain import kinds
from batch_ops.domain.errors import (
    IllegalTransition,
    OperationInProgress,
    SnapshotCaptureFailure,
)
from batch_ops.domain.operations import (
    ErrorKind,
    Operation,
    OperationKind,
    OperationStatus,
    Snapshot,
)
from batch_ops.orchestration.cancellation import CancellationToken
from batch_ops.orchestration.executor import MutationExecutor
from batch_ops.orchestration.registry import OperationRegistry
from batch_ops.orchestration.snapshots import SnapshotStore
from batch_ops.orchestration.undo import UndoController, UndoResult

logger = logging.getLogger(__name__)


class BatchOrchestrator:
    """Front door for bulk operations.

    ``submit`` only validates and registers. ``execute`` captures the snapshot
    (for undo-eligible kinds) and then runs the executor; a capture failure
    fails the operation before any record is touched. ``launch`` does both in
    a background task and returns the id immediately.
    """

    def __init__(
        self,
        registry: OperationRegistry,
        snapshots: SnapshotStore,
        executor: MutationExecutor,
        undo_controller: UndoController,
        default_actor: str = "system",
        recent_limit: int = 10,
    ) -> None:
        self.registry = registry
        self.snapshots = snapshots
        self._executor = executor
        self._undo = undo_controller
        self._default_actor = default_actor
        self._recent_limit = recent_limit
        self._tokens: dict[str, CancellationToken] = {}
        self._tasks: set[asyncio.Task[Operation]] = set()
        self._running: set[str] = set()

    def submit(
        self,
        kind: str | OperationKind,
        target_ids: Sequence[str],
        parameters: Mapping[str, Any] | None = None,
        label: str | None = None,
        performed_by: str | None = None,
    ) -> str:
        operation_id = self.registry.submit(
            kind,
            target_ids,
            parameters,
            label=label,
            performed_by=performed_by or current_actor(self._default_actor),
        )
        self._tokens[operation_id] = CancellationToken()
        return operation_id

    async def execute(
        self, operation_id: str, timeout_seconds: float | None = None
    ) -> Operation:
        operation = self.registry.require(operation_id)
        # Claimed synchronously so a concurrent call cannot also capture.
        if operation_id in self._running:
            raise OperationInProgress(f"Operation {operation_id} is already being executed")
        if operation.status is not OperationStatus.PENDING:
            raise IllegalTransition(
                operation_id, operation.status.value, OperationStatus.PROCESSING.value
            )
        self._running.add(operation_id)
        token = self._tokens.setdefault(operation_id, CancellationToken())
        try:
            if token.cancelled:
                return self.registry.transition(
                    operation_id,
                    OperationStatus.FAILED,
                    error_detail=token.reason or "Cancelled before start",
                    error_kind=ErrorKind.CANCELLED,
                )
            if kinds.is_undo_eligible(operation.kind, operation.parameters):
                try:
                    await self.snapshots.capture(
                        operation_id, operation.target_ids, kind=operation.kind
                    )
                except SnapshotCaptureFailure as exc:
                    logger.warning("Snapshot capture failed for %s: %s", operation_id, exc)
                    return self.registry.transition(
                        operation_id,
                        OperationStatus.FAILED,
                        error_detail=str(exc),
                        error_kind=ErrorKind.SNAPSHOT_CAPTURE_FAILURE,
                    )
            return await self._executor.run(operation_id, token, timeout_seconds)
        finally:
            self._tokens.pop(operation_id, None)
            self._running.discard(operation_id)

    async def submit_and_execute(
        self,
        kind: str | OperationKind,
        target_ids: Sequence[str],
        parameters: Mapping[str, Any] | None = None,
        label: str | None = None,
        performed_by: str | None = None,
        timeout_seconds: float | None = None,
    ) -> Operation:
        operation_id = self.submit(kind, target_ids, parameters, label, performed_by)
        return await self.execute(operation_id, timeout_seconds)

    def launch(
        self,
        kind: str | OperationKind,
        target_ids: Sequence[str],
        parameters: Mapping[str, Any] | None = None,
        label: str | None = None,
        performed_by: str | None = None,
    ) -> str:
        """Submit and schedule execution on the running loop; returns the id."""
        operation_id = self.submit(kind, target_ids, parameters, label, performed_by)
        task = asyncio.get_running_loop().create_task(
            self.execute(operation_id), name=f"batch-op-{operation_id}"
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return operation_id

    def cancel(self, operation_id: str, reason: str | None = None) -> bool:
        """Request cancellation; takes effect before the next record."""
        token = self._tokens.get(operation_id)
        if token is None:
            return False
        token.cancel(reason or "Cancelled by request")
        logger.info("Cancellation requested for %s", operation_id)
        return True

    async def undo(self, operation_id: str, performed_by: str | None = None) -> UndoResult:
        return await self._undo.undo(
            operation_id, performed_by=performed_by or current_actor(self._default_actor)
        )

    async def wait_idle(self) -> None:
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def get(self, operation_id: str) -> Operation | None:
        return self.registry.get(operation_id)

    def get_snapshot(self, operation_id: str) -> Snapshot | None:
        return self.snapshots.get(operation_id)

    def recent_operations(self, limit: int | None = None) -> list[Operation]:
        return self.registry.list(limit if limit is not None else self._recent_limit)

    def clear_operation(self, operation_id: str) -> bool:
        """Dismiss from the registry; the snapshot and audit trail are kept."""
        return self.registry.remove(operation_id)

    # ------------------------------------------------------------------
    # Named bulk actions
    # ------------------------------------------------------------------

    async def transfer_to_class(
        self, target_ids: Sequence[str], class_id: str, stage: str | None = None
    ) -> Operation:
        return await self.submit_and_execute(
            OperationKind.TRANSFER, target_ids, {"class_id": class_id, "stage": stage}
        )

    async def update_status(self, target_ids: Sequence[str], status: str) -> Operation:
        return await self.submit_and_execute(
            OperationKind.STATUS_UPDATE, target_ids, {"status": status}
        )

    async def assign_advisor(self, target_ids: Sequence[str], advisor_id: str) -> Operation:
        return await self.submit_and_execute(
            OperationKind.ASSIGN_ADVISOR, target_ids, {"advisor_id": advisor_id}
        )

    async def import_data(
        self, target_ids: Sequence[str], records: Mapping[str, Mapping[str, Any]]
    ) -> Operation:
        return await self.submit_and_execute(
            OperationKind.BULK_IMPORT,
            target_ids,
            {"records": {key: dict(value) for key, value in records.items()}},
        )

    async def send_notifications(
        self,
        target_ids: Sequence[str],
        message: str,
        recipients: Literal["students", "guardians", "both"] = "both",
    ) -> Operation:
        return await self.submit_and_execute(
            OperationKind.SEND_NOTIFICATION,
            target_ids,
            {"message": message, "recipients": recipients},
        )

    async def print_documents(
        self,
        target_ids: Sequence[str],
        document_type: Literal["cards", "registration", "attendance", "certificates"],
    ) -> Operation:
        return await self.submit_and_execute(
            OperationKind.PRINT_BATCH, target_ids, {"document_type": document_type}
        )

    async def toggle_accounts(self, target_ids: Sequence[str], enabled: bool) -> Operation:
        return await self.submit_and_execute(
            OperationKind.TOGGLE_ACCOUNTS, target_ids, {"enabled": enabled}
        )

    async def record_attendance(
        self, target_ids: Sequence[str], date: dt.date | str, status: str
    ) -> Operation:
        day = date.isoformat() if isinstance(date, dt.date) else date
        return await self.submit_and_execute(
            OperationKind.RECORD_ATTENDANCE, target_ids, {"date": day, "status": status}
        )

    async def promote_year(
        self, target_ids: Sequence[str], stage: str, academic_year: str
    ) -> Operation:
        return await self.submit_and_execute(
            OperationKind.PROMOTE_YEAR,
            target_ids,
            {"stage": stage, "academic_year": academic_year},
        )

    async def delete_or_archive(
        self, target_ids: Sequence[str], action: Literal["archive", "delete"]
    ) -> Operation:
        return await self.submit_and_execute(
            OperationKind.ARCHIVE_OR_DELETE, target_ids, {"action": action}
        )

    async def link_activity(
        self,
        target_ids: Sequence[str],
        activity_id: str,
        action: Literal["link", "unlink"] = "link",
    ) -> Operation:
        return await self.submit_and_execute(
            OperationKind.LINK_ACTIVITY,
            target_ids,
            {"activity_id": activity_id, "action": action},
        )

    async def copy_data(self, target_ids: Sequence[str], source_class: str) -> Operation:
        return await self.submit_and_execute(
            OperationKind.COPY_DATA, target_ids, {"source_class": source_class}
        )
