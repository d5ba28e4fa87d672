"""Operation model, per-kind dispatch and error taxonomy."""

from batch_ops.domain.errors import (
    BatchOpsError,
    InvalidOperationRequest,
    MutationFailure,
    NoSnapshot,
    SnapshotCaptureFailure,
)
from batch_ops.domain.operations import (
    AuditLogEntry,
    ErrorKind,
    MutationAction,
    MutationRequest,
    Operation,
    OperationKind,
    OperationStatus,
    Snapshot,
)

__all__ = [
    "AuditLogEntry",
    "BatchOpsError",
    "ErrorKind",
    "InvalidOperationRequest",
    "MutationAction",
    "MutationFailure",
    "MutationRequest",
    "NoSnapshot",
    "Operation",
    "OperationKind",
    "OperationStatus",
    "Snapshot",
    "SnapshotCaptureFailure",
]
