"""Entity mutator: per-record read/write/insert/delete against the record store."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping, Sequence
from typing import Any, Protocol, TypeVar, runtime_checkable

from batch_ops.domain.errors import EntityStoreError, RecordNotFound
from batch_ops.schema.models import RecordSchema
from batch_ops.storage.db import SqliteStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def _run_to_completion(func: Callable[..., T], /, *args: Any) -> T:
    """Run a blocking store call in a worker thread that always finishes.

    A worker thread cannot be interrupted. When the caller is cancelled (a
    ``wait_for`` timeout included) this waits for the thread to commit or fail
    before re-raising, so the caller's record lock covers the real write.
    """
    future = asyncio.ensure_future(asyncio.to_thread(func, *args))
    try:
        return await asyncio.shield(future)
    except asyncio.CancelledError:
        try:
            await future
        except Exception as exc:
            logger.warning("Store call failed after cancellation: %s", exc)
        raise


@runtime_checkable
class EntityMutator(Protocol):
    """Storage collaborator driven by the executor and the undo controller.

    Records are opaque string-keyed mappings. ``write_one`` merges ``fields``
    into the primary record unless ``replace`` is set, in which case the
    stored record becomes exactly ``fields``.
    """

    async def read_many(self, record_ids: Sequence[str]) -> list[dict[str, Any]]: ...

    async def write_one(
        self, record_id: str, fields: Mapping[str, Any], replace: bool = False
    ) -> None: ...

    async def insert_one(self, collection: str, fields: Mapping[str, Any]) -> str: ...

    async def delete_one(self, collection: str, match: Mapping[str, Any]) -> int: ...


class SqliteEntityMutator:
    def __init__(self, store: SqliteStore, schema: RecordSchema) -> None:
        self._store = store
        self._schema = schema

    @property
    def schema(self) -> RecordSchema:
        return self._schema

    async def read_many(self, record_ids: Sequence[str]) -> list[dict[str, Any]]:
        """Return records in ``record_ids`` order; ids with no record are skipped."""
        found = await asyncio.to_thread(
            self._store.get_documents, self._schema.collection, record_ids
        )
        return [found[record_id] for record_id in record_ids if record_id in found]

    async def write_one(
        self, record_id: str, fields: Mapping[str, Any], replace: bool = False
    ) -> None:
        payload = dict(fields)
        payload[self._schema.key_field] = record_id
        try:
            updated = await _run_to_completion(
                self._store.merge_document,
                self._schema.collection,
                record_id,
                payload,
                replace,
            )
        except Exception as exc:
            raise EntityStoreError(f"Write failed for {record_id}: {exc}") from exc
        if updated is None:
            raise RecordNotFound(self._schema.collection, record_id)

    async def insert_one(self, collection: str, fields: Mapping[str, Any]) -> str:
        try:
            return await _run_to_completion(self._store.insert_document, collection, fields)
        except Exception as exc:
            raise EntityStoreError(f"Insert into {collection} failed: {exc}") from exc

    async def delete_one(self, collection: str, match: Mapping[str, Any]) -> int:
        try:
            deleted = await _run_to_completion(self._store.delete_matching, collection, match)
        except Exception as exc:
            raise EntityStoreError(f"Delete from {collection} failed: {exc}") from exc
        if deleted > 1:
            logger.warning("Delete in %s matched %d rows for %s", collection, deleted, dict(match))
        return deleted

    def seed(self, records: Sequence[Mapping[str, Any]]) -> None:
        """Upsert primary records synchronously; the key field names each record."""
        key = self._schema.key_field
        for record in records:
            if key not in record:
                raise EntityStoreError(f"Record is missing key field {key!r}")
            self._store.put_document(self._schema.collection, str(record[key]), record)
