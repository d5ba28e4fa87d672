"""Mutation executor: drives one operation's per-record loop."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime
from typing import Literal

from batch_ops.audit.sink import AuditSink
from batch_ops.domain import kinds
from batch_ops.domain.errors import MutationFailure, RecordNotFound
from batch_ops.domain.operations import (
    AuditLogEntry,
    ErrorKind,
    MutationAction,
    MutationRequest,
    Operation,
    OperationStatus,
    percent_complete,
)
from batch_ops.orchestration.cancellation import CancellationToken
from batch_ops.orchestration.locks import RecordLockManager
from batch_ops.orchestration.registry import OperationRegistry
from batch_ops.schema.models import RecordSchema
from batch_ops.storage.entities import EntityMutator
from batch_ops.utils.time import utc_now

logger = logging.getLogger(__name__)


class MutationExecutor:
    """Applies an operation's mutation to each target in order, fail-fast.

    Per-record errors, timeouts and cancellation never escape ``run``; they are
    recorded on the operation as ``failed`` with an ``error_kind``.
    """

    def __init__(
        self,
        registry: OperationRegistry,
        mutator: EntityMutator,
        audit_sink: AuditSink,
        schema: RecordSchema,
        locks: RecordLockManager | None = None,
        timeout_seconds: float = 30.0,
        audit_failure_policy: Literal["log", "fail"] = "log",
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._registry = registry
        self._mutator = mutator
        self._audit_sink = audit_sink
        self._schema = schema
        self._locks = locks or RecordLockManager()
        self._timeout_seconds = timeout_seconds
        self._audit_failure_policy = audit_failure_policy
        self._clock = clock

    async def run(
        self,
        operation_id: str,
        cancel_token: CancellationToken | None = None,
        timeout_seconds: float | None = None,
    ) -> Operation:
        operation = self._registry.transition(operation_id, OperationStatus.PROCESSING)
        timeout = timeout_seconds if timeout_seconds is not None else self._timeout_seconds
        total = operation.item_count
        processed = 0
        logger.info(
            "Operation %s (%s) started over %d records",
            operation.id,
            operation.kind.value,
            total,
        )

        for target_id in operation.target_ids:
            if cancel_token is not None and cancel_token.cancelled:
                reason = cancel_token.reason or "Operation cancelled"
                return self._fail(
                    operation,
                    ErrorKind.CANCELLED,
                    f"{reason} after {processed} of {total} records",
                    None,
                )
            try:
                request = kinds.resolve_mutation(
                    operation.kind,
                    operation.parameters,
                    target_id,
                    self._schema,
                    self._clock(),
                )
                # The lock is held until a timed-out write has settled in the store.
                async with self._locks.hold(target_id):
                    await asyncio.wait_for(self._apply(request), timeout)
            except asyncio.TimeoutError:
                return self._fail(
                    operation,
                    ErrorKind.TIMEOUT,
                    f"Timed out after {timeout:g}s mutating record {target_id}; "
                    "outcome unknown, the write may have been applied",
                    target_id,
                )
            except asyncio.CancelledError:
                self._fail(
                    operation,
                    ErrorKind.CANCELLED,
                    f"Task cancelled while mutating record {target_id}",
                    target_id,
                )
                raise
            except Exception as exc:
                failure = MutationFailure(target_id, exc)
                return self._fail(operation, ErrorKind.MUTATION_FAILURE, str(failure), target_id)

            processed += 1
            # 100 is reserved for the completed transition.
            self._registry.update_progress(
                operation.id, min(percent_complete(processed, total), 99), processed
            )

        entry = AuditLogEntry(
            operation_id=operation.id,
            kind=operation.kind,
            item_count=total,
            performed_by=operation.performed_by,
            detail={
                "item_count": total,
                **kinds.audit_detail(operation.kind, operation.parameters),
            },
            timestamp=self._clock(),
        )
        try:
            await self._audit_sink.append(entry)
        except Exception as exc:
            logger.error("Audit write failed for operation %s: %s", operation.id, exc)
            if self._audit_failure_policy == "fail":
                return self._fail(
                    operation,
                    ErrorKind.AUDIT_WRITE_FAILURE,
                    f"Mutations applied but audit write failed: {exc}",
                    None,
                )

        completed = self._registry.transition(operation.id, OperationStatus.COMPLETED)
        logger.info("Operation %s completed (%d records)", operation.id, total)
        return completed

    async def _apply(self, request: MutationRequest) -> None:
        if request.action is MutationAction.WRITE:
            await self._mutator.write_one(request.target_id, request.fields)
        elif request.action is MutationAction.INSERT:
            await self._mutator.insert_one(request.collection, request.fields)
        elif request.action is MutationAction.DELETE:
            deleted = await self._mutator.delete_one(request.collection, request.match)
            if request.require_match and deleted == 0:
                raise RecordNotFound(request.collection, request.target_id)
        elif request.action is MutationAction.NONE:
            # Still yield so progress consumers observe every record.
            await asyncio.sleep(0)
        else:
            raise ValueError(f"Unsupported mutation action: {request.action!r}")

    def _fail(
        self,
        operation: Operation,
        error_kind: ErrorKind,
        detail: str,
        target_id: str | None,
    ) -> Operation:
        logger.warning(
            "Operation %s failed (%s): %s", operation.id, error_kind.value, detail
        )
        return self._registry.transition(
            operation.id,
            OperationStatus.FAILED,
            error_detail=detail,
            error_kind=error_kind,
            failed_target_id=target_id,
        )
