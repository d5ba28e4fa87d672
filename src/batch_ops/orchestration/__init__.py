"""Operation lifecycle: registry, snapshots, execution and undo."""

from batch_ops.orchestration.cancellation import CancellationToken
from batch_ops.orchestration.executor import MutationExecutor
from batch_ops.orchestration.locks import RecordLockManager
from batch_ops.orchestration.orchestrator import BatchOrchestrator
from batch_ops.orchestration.registry import OperationRegistry
from batch_ops.orchestration.snapshots import SnapshotStore
from batch_ops.orchestration.undo import UndoController, UndoResult

__all__ = [
    "BatchOrchestrator",
    "CancellationToken",
    "MutationExecutor",
    "OperationRegistry",
    "RecordLockManager",
    "SnapshotStore",
    "UndoController",
    "UndoResult",
]
