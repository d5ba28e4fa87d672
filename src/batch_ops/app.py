"""Application context assembly."""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache

from batch_ops.audit.sink import SqliteAuditSink
from batch_ops.config import Settings, load_settings
from batch_ops.orchestration.executor import MutationExecutor
from batch_ops.orchestration.locks import RecordLockManager
from batch_ops.orchestration.orchestrator import BatchOrchestrator
from batch_ops.orchestration.registry import OperationRegistry
from batch_ops.orchestration.snapshots import SnapshotStore
from batch_ops.orchestration.undo import UndoController
from batch_ops.schema.loader import load_record_schema
from batch_ops.schema.models import RecordSchema
from batch_ops.storage.db import SqliteStore
from batch_ops.storage.entities import SqliteEntityMutator


@dataclass
class AppContext:
    """Application-wide dependency container.

    Provides access to all core services and configuration.
    The server builds it once at startup; tests build fresh instances.
    """

    settings: Settings
    store: SqliteStore
    schema: RecordSchema
    mutator: SqliteEntityMutator
    audit_sink: SqliteAuditSink
    registry: OperationRegistry
    snapshots: SnapshotStore
    orchestrator: BatchOrchestrator

    def close(self) -> None:
        self.store.close()


def build_app_context(settings: Settings) -> AppContext:
    """Wire the store, schema, registry and orchestrator from ``settings``."""
    schema = load_record_schema(settings.schema_mapping.path)
    store = SqliteStore(settings.storage.sqlite_path, wal=settings.storage.sqlite_wal)
    mutator = SqliteEntityMutator(store, schema)
    audit_sink = SqliteAuditSink(store)

    execution = settings.execution
    registry = OperationRegistry()
    snapshots = SnapshotStore(mutator)
    locks = RecordLockManager()
    executor = MutationExecutor(
        registry,
        mutator,
        audit_sink,
        schema,
        locks=locks,
        timeout_seconds=execution.mutation_timeout_seconds,
        audit_failure_policy=execution.audit_failure_policy,
    )
    undo_controller = UndoController(
        registry,
        snapshots,
        mutator,
        audit_sink=audit_sink,
        locks=locks,
        timeout_seconds=execution.mutation_timeout_seconds,
    )
    orchestrator = BatchOrchestrator(
        registry,
        snapshots,
        executor,
        undo_controller,
        default_actor=execution.default_actor,
        recent_limit=execution.recent_operations_limit,
    )

    return AppContext(
        settings=settings,
        store=store,
        schema=schema,
        mutator=mutator,
        audit_sink=audit_sink,
        registry=registry,
        snapshots=snapshots,
        orchestrator=orchestrator,
    )


@lru_cache(maxsize=1)
def get_app_context() -> AppContext:
    """Get or create the application context.

    Returns a cached singleton instance of AppContext with all
    dependencies initialized.
    """
    return build_app_context(load_settings())
