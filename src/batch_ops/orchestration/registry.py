"""In-memory registry of submitted operations."""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from collections.abc import Mapping, Sequence
from typing import Any
from uuid import uuid4

from batch_ops.domain import kinds
from batch_ops.domain.errors import (
    IllegalTransition,
    InvalidOperationRequest,
    OperationInProgress,
    OperationNotFound,
)
from batch_ops.domain.operations import (
    ErrorKind,
    Operation,
    OperationKind,
    OperationStatus,
)
from batch_ops.utils.time import utc_now

logger = logging.getLogger(__name__)

_ALLOWED_TRANSITIONS: dict[OperationStatus, frozenset[OperationStatus]] = {
    OperationStatus.PENDING: frozenset({OperationStatus.PROCESSING, OperationStatus.FAILED}),
    OperationStatus.PROCESSING: frozenset({OperationStatus.COMPLETED, OperationStatus.FAILED}),
    OperationStatus.COMPLETED: frozenset(),
    OperationStatus.FAILED: frozenset(),
}


def _generate_operation_id() -> str:
    return uuid4().hex


class OperationRegistry:
    """Session-scoped mapping of operation id to operation state.

    Readers always receive copies; only the registry mutates stored operations.
    """

    def __init__(self) -> None:
        self._operations: OrderedDict[str, Operation] = OrderedDict()
        self._lock = threading.Lock()

    def submit(
        self,
        kind: str | OperationKind,
        target_ids: Sequence[str],
        parameters: Mapping[str, Any] | None,
        label: str | None = None,
        performed_by: str = "system",
    ) -> str:
        operation_kind = kinds.parse_kind(kind)
        if isinstance(target_ids, (str, bytes)) or not isinstance(target_ids, Sequence):
            raise InvalidOperationRequest("target_ids must be a list of record ids")
        ids = tuple(dict.fromkeys(str(target_id) for target_id in target_ids))
        if not ids:
            raise InvalidOperationRequest("target_ids must not be empty")
        if any(not target_id.strip() for target_id in ids):
            raise InvalidOperationRequest("target_ids must not contain blank ids")
        normalized = kinds.normalize_parameters(operation_kind, parameters)
        operation = Operation(
            id=_generate_operation_id(),
            kind=operation_kind,
            target_ids=ids,
            parameters=normalized,
            label=label or kinds.default_label(operation_kind, normalized),
            performed_by=performed_by,
        )
        with self._lock:
            self._operations[operation.id] = operation
        logger.info(
            "Submitted operation %s kind=%s targets=%d",
            operation.id,
            operation_kind.value,
            len(ids),
        )
        return operation.id

    def get(self, operation_id: str) -> Operation | None:
        with self._lock:
            operation = self._operations.get(operation_id)
            return operation.copy() if operation is not None else None

    def require(self, operation_id: str) -> Operation:
        operation = self.get(operation_id)
        if operation is None:
            raise OperationNotFound(operation_id)
        return operation

    def update_progress(
        self, operation_id: str, progress: int, processed_count: int | None = None
    ) -> None:
        with self._lock:
            operation = self._operations.get(operation_id)
            if operation is None or operation.is_terminal:
                return
            bounded = max(0, min(100, int(progress)))
            # Progress never moves backwards.
            if bounded >= operation.progress:
                operation.progress = bounded
            if processed_count is not None and processed_count >= operation.processed_count:
                operation.processed_count = processed_count

    def transition(
        self,
        operation_id: str,
        status: OperationStatus,
        error_detail: str | None = None,
        error_kind: ErrorKind | None = None,
        failed_target_id: str | None = None,
    ) -> Operation:
        with self._lock:
            operation = self._operations.get(operation_id)
            if operation is None:
                raise OperationNotFound(operation_id)
            if status not in _ALLOWED_TRANSITIONS[operation.status]:
                raise IllegalTransition(operation_id, operation.status.value, status.value)
            now = utc_now()
            operation.status = status
            if status is OperationStatus.PROCESSING:
                operation.started_at = now
            elif status is OperationStatus.COMPLETED:
                operation.progress = 100
                operation.processed_count = operation.item_count
                operation.completed_at = now
            elif status is OperationStatus.FAILED:
                operation.error_detail = error_detail or "Operation failed"
                operation.error_kind = error_kind or ErrorKind.MUTATION_FAILURE
                operation.failed_target_id = failed_target_id
                operation.completed_at = now
            return operation.copy()

    def mark_undone(self, operation_id: str) -> None:
        """Stamp ``undone_at`` without touching the status."""
        with self._lock:
            operation = self._operations.get(operation_id)
            if operation is not None:
                operation.undone_at = utc_now()

    def list(self, limit: int = 10) -> list[Operation]:
        if limit <= 0:
            return []
        with self._lock:
            recent = list(self._operations.values())[-limit:]
            return [operation.copy() for operation in recent]

    def remove(self, operation_id: str) -> bool:
        """Drop a finished operation; unknown ids return False.

        Raises ``OperationInProgress`` while the operation is pending or
        processing, since its executor still needs the entry.
        """
        with self._lock:
            operation = self._operations.get(operation_id)
            if operation is None:
                return False
            if not operation.is_terminal:
                raise OperationInProgress(
                    f"Operation {operation_id} is {operation.status.value}; "
                    "clear it after it finishes"
                )
            del self._operations[operation_id]
            return True

    def __len__(self) -> int:
        with self._lock:
            return len(self._operations)
