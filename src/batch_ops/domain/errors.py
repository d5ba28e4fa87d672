"""Error taxonomy for batch operations."""

from __future__ import annotations


class BatchOpsError(Exception):
    """Base class for orchestrator errors."""

    code = "batch_ops_error"


class InvalidOperationRequest(BatchOpsError):
    """Rejected at submission time; no state was created."""

    code = "invalid_operation_request"


class OperationNotFound(BatchOpsError, LookupError):
    code = "operation_not_found"

    def __init__(self, operation_id: str) -> None:
        super().__init__(f"Unknown operation: {operation_id}")
        self.operation_id = operation_id


class IllegalTransition(BatchOpsError):
    code = "illegal_transition"

    def __init__(self, operation_id: str, current: str, requested: str) -> None:
        super().__init__(
            f"Operation {operation_id} cannot move from {current} to {requested}"
        )
        self.operation_id = operation_id
        self.current = current
        self.requested = requested


class OperationInProgress(BatchOpsError):
    code = "operation_in_progress"


class MutationFailure(BatchOpsError):
    """The entity mutator rejected a specific record."""

    code = "mutation_failure"

    def __init__(self, target_id: str, cause: BaseException | str) -> None:
        message = str(cause) or type(cause).__name__
        super().__init__(f"Failed to mutate record {target_id}: {message}")
        self.target_id = target_id
        self.cause = cause


class SnapshotCaptureFailure(BatchOpsError):
    code = "snapshot_capture_failure"


class NoSnapshot(BatchOpsError, LookupError):
    code = "no_snapshot"

    def __init__(self, operation_id: str) -> None:
        super().__init__(f"No snapshot retained for operation {operation_id}")
        self.operation_id = operation_id


class UndoFailure(BatchOpsError):
    code = "undo_failure"


class AuditWriteFailure(BatchOpsError):
    code = "audit_write_failure"


class EntityStoreError(BatchOpsError):
    """Raised by the storage adapter when a read or write cannot be applied."""

    code = "entity_store_error"


class RecordNotFound(EntityStoreError, LookupError):
    code = "record_not_found"

    def __init__(self, collection: str, record_id: str) -> None:
        super().__init__(f"Record {record_id} not found in {collection}")
        self.collection = collection
        self.record_id = record_id
