from __future__ import annotations

import os
from collections.abc import Iterator

import pytest

from batch_ops.audit.sink import SqliteAuditSink
from batch_ops.config import _load_settings_cached
from batch_ops.orchestration.executor import MutationExecutor
from batch_ops.orchestration.locks import RecordLockManager
from batch_ops.orchestration.orchestrator import BatchOrchestrator
from batch_ops.orchestration.registry import OperationRegistry
from batch_ops.orchestration.snapshots import SnapshotStore
from batch_ops.orchestration.undo import UndoController
from batch_ops.schema.models import RecordSchema
from batch_ops.storage.db import SqliteStore
from batch_ops.storage.entities import SqliteEntityMutator


def pytest_sessionstart(session: pytest.Session) -> None:
    # Keep test runs away from the project-level database file.
    os.environ.setdefault("SQLITE_PATH", ":memory:")


@pytest.fixture(autouse=True)
def _clear_settings_cache() -> Iterator[None]:
    _load_settings_cached.cache_clear()
    yield
    _load_settings_cached.cache_clear()


@pytest.fixture
def schema() -> RecordSchema:
    return RecordSchema()


@pytest.fixture
def store(tmp_path) -> Iterator[SqliteStore]:
    sqlite_store = SqliteStore(str(tmp_path / "batch_ops.sqlite"))
    yield sqlite_store
    sqlite_store.close()


@pytest.fixture
def mutator(store: SqliteStore, schema: RecordSchema) -> SqliteEntityMutator:
    entity_mutator = SqliteEntityMutator(store, schema)
    entity_mutator.seed(
        [
            {"student_id": "S1", "name": "Amal", "class": "C1", "enrollment_status": "active"},
            {"student_id": "S2", "name": "Badr", "class": "C1", "enrollment_status": "active"},
            {"student_id": "S3", "name": "Dina", "class": "C2", "enrollment_status": "active"},
        ]
    )
    return entity_mutator


@pytest.fixture
def audit_sink(store: SqliteStore) -> SqliteAuditSink:
    return SqliteAuditSink(store)


@pytest.fixture
def registry() -> OperationRegistry:
    return OperationRegistry()


@pytest.fixture
def orchestrator(
    registry: OperationRegistry,
    mutator: SqliteEntityMutator,
    audit_sink: SqliteAuditSink,
    schema: RecordSchema,
) -> BatchOrchestrator:
    locks = RecordLockManager()
    snapshots = SnapshotStore(mutator)
    executor = MutationExecutor(
        registry, mutator, audit_sink, schema, locks=locks, timeout_seconds=5.0
    )
    undo_controller = UndoController(
        registry, snapshots, mutator, audit_sink=audit_sink, locks=locks, timeout_seconds=5.0
    )
    return BatchOrchestrator(registry, snapshots, executor, undo_controller)
