"""SQLite-backed record store and entity mutator."""

from batch_ops.storage.db import SqliteStore
from batch_ops.storage.entities import EntityMutator, SqliteEntityMutator

__all__ = ["EntityMutator", "SqliteEntityMutator", "SqliteStore"]
