"""Domain objects for batch operations."""

from __future__ import annotations

import copy
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from batch_ops.utils.time import to_iso, utc_now


class OperationKind(str, Enum):
    TRANSFER = "transfer"
    STATUS_UPDATE = "statusUpdate"
    ASSIGN_ADVISOR = "assignAdvisor"
    BULK_IMPORT = "bulkImport"
    SEND_NOTIFICATION = "sendNotification"
    PRINT_BATCH = "printBatch"
    TOGGLE_ACCOUNTS = "toggleAccounts"
    RECORD_ATTENDANCE = "recordAttendance"
    PROMOTE_YEAR = "promoteYear"
    ARCHIVE_OR_DELETE = "archiveOrDelete"
    LINK_ACTIVITY = "linkActivity"
    COPY_DATA = "copyData"


class OperationStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (OperationStatus.COMPLETED, OperationStatus.FAILED)


class ErrorKind(str, Enum):
    MUTATION_FAILURE = "MutationFailure"
    TIMEOUT = "Timeout"
    CANCELLED = "Cancelled"
    SNAPSHOT_CAPTURE_FAILURE = "SnapshotCaptureFailure"
    AUDIT_WRITE_FAILURE = "AuditWriteFailure"


class MutationAction(str, Enum):
    WRITE = "write"
    INSERT = "insert"
    DELETE = "delete"
    NONE = "none"


def percent_complete(processed: int, total: int) -> int:
    """Integer percentage rounded half up (2 of 3 -> 67, 1 of 8 -> 13)."""
    if total <= 0:
        return 0
    return min(100, (200 * processed + total) // (2 * total))


@dataclass
class Operation:
    id: str
    kind: OperationKind
    target_ids: tuple[str, ...]
    parameters: dict[str, Any]
    label: str
    performed_by: str
    status: OperationStatus = OperationStatus.PENDING
    progress: int = 0
    processed_count: int = 0
    error_detail: str | None = None
    error_kind: ErrorKind | None = None
    failed_target_id: str | None = None
    created_at: datetime = field(default_factory=utc_now)
    started_at: datetime | None = None
    completed_at: datetime | None = None
    undone_at: datetime | None = None

    @property
    def item_count(self) -> int:
        return len(self.target_ids)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def remaining_ids(self) -> tuple[str, ...]:
        """Targets not processed by a failed operation, failing record first."""
        if self.status is not OperationStatus.FAILED:
            return ()
        return self.target_ids[self.processed_count :]

    def copy(self) -> Operation:
        clone = copy.copy(self)
        clone.parameters = copy.deepcopy(self.parameters)
        return clone

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "target_ids": list(self.target_ids),
            "parameters": self.parameters,
            "label": self.label,
            "performed_by": self.performed_by,
            "status": self.status.value,
            "progress": self.progress,
            "processed_count": self.processed_count,
            "error_detail": self.error_detail,
            "error_kind": self.error_kind.value if self.error_kind else None,
            "failed_target_id": self.failed_target_id,
            "remaining_ids": list(self.remaining_ids()),
            "created_at": to_iso(self.created_at),
            "started_at": to_iso(self.started_at),
            "completed_at": to_iso(self.completed_at),
            "undone_at": to_iso(self.undone_at),
        }


@dataclass(frozen=True)
class Snapshot:
    operation_id: str
    target_ids: tuple[str, ...]
    prior_records: tuple[Mapping[str, Any], ...]
    captured_at: datetime = field(default_factory=utc_now)
    kind: OperationKind | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "operation_id": self.operation_id,
            "target_ids": list(self.target_ids),
            "prior_records": [dict(record) for record in self.prior_records],
            "captured_at": to_iso(self.captured_at),
            "kind": self.kind.value if self.kind else None,
        }


@dataclass(frozen=True)
class AuditLogEntry:
    operation_id: str
    kind: OperationKind
    item_count: int
    performed_by: str
    detail: Mapping[str, Any]
    action: str = "apply"
    timestamp: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "operation_id": self.operation_id,
            "kind": self.kind.value,
            "action": self.action,
            "item_count": self.item_count,
            "performed_by": self.performed_by,
            "detail": dict(self.detail),
            "timestamp": to_iso(self.timestamp),
        }


@dataclass(frozen=True)
class MutationRequest:
    """One storage call the executor issues for one target record."""

    action: MutationAction
    target_id: str
    collection: str = ""
    fields: Mapping[str, Any] = field(default_factory=dict)
    match: Mapping[str, Any] = field(default_factory=dict)
    require_match: bool = False
