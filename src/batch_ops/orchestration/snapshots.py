"""Pre-mutation snapshots retained for undo."""

from __future__ import annotations

import copy
import logging
import threading
from collections.abc import Sequence

from batch_ops.domain.errors import SnapshotCaptureFailure
from batch_ops.domain.operations import OperationKind, Snapshot
from batch_ops.storage.entities import EntityMutator

logger = logging.getLogger(__name__)


class SnapshotStore:
    """Holds at most one live snapshot per operation id."""

    def __init__(self, mutator: EntityMutator) -> None:
        self._mutator = mutator
        self._snapshots: dict[str, Snapshot] = {}
        self._lock = threading.Lock()

    async def capture(
        self,
        operation_id: str,
        target_ids: Sequence[str],
        kind: OperationKind | None = None,
    ) -> Snapshot:
        """Read every target's current state and retain it under ``operation_id``.

        Raises ``SnapshotCaptureFailure`` if the read fails or any target has no
        record, in which case nothing is retained. A live snapshot is never
        replaced: capturing again for the same id raises as well.
        """
        try:
            records = await self._mutator.read_many(list(target_ids))
        except Exception as exc:
            raise SnapshotCaptureFailure(
                f"Could not read prior state for operation {operation_id}: {exc}"
            ) from exc

        if len(records) != len(target_ids):
            raise SnapshotCaptureFailure(
                f"Prior state incomplete for operation {operation_id}: "
                f"expected {len(target_ids)} records, read {len(records)}"
            )

        snapshot = Snapshot(
            operation_id=operation_id,
            target_ids=tuple(target_ids),
            prior_records=tuple(copy.deepcopy(dict(record)) for record in records),
            kind=kind,
        )
        with self._lock:
            if operation_id in self._snapshots:
                raise SnapshotCaptureFailure(
                    f"Operation {operation_id} already holds a live snapshot"
                )
            self._snapshots[operation_id] = snapshot
        logger.debug("Captured %d prior records for %s", len(records), operation_id)
        return snapshot

    def save(self, snapshot: Snapshot) -> None:
        with self._lock:
            self._snapshots[snapshot.operation_id] = snapshot

    def get(self, operation_id: str) -> Snapshot | None:
        with self._lock:
            return self._snapshots.get(operation_id)

    def consume(self, operation_id: str) -> Snapshot | None:
        with self._lock:
            return self._snapshots.pop(operation_id, None)

    def discard(self, operation_id: str) -> bool:
        with self._lock:
            return self._snapshots.pop(operation_id, None) is not None

    def __contains__(self, operation_id: object) -> bool:
        with self._lock:
            return operation_id in self._snapshots

    def __len__(self) -> int:
        with self._lock:
            return len(self._snapshots)
