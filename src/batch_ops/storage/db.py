"""SQLite access layer for records and the batch operation audit log."""

from __future__ import annotations

import sqlite3
import threading
from collections.abc import Iterable, Mapping, Sequence
from pathlib import Path
from typing import Any
from uuid import uuid4

from batch_ops.utils.serialization import dumps, loads_mapping
from batch_ops.utils.time import utc_now_iso

_SqlValue = str | bytes | int | float | None
_SqlParams = Sequence[_SqlValue] | Mapping[str, _SqlValue]


def _json_path(key: str) -> str:
    escaped = key.replace('"', '\\"')
    return f'$."{escaped}"'


class SqliteStore:
    def __init__(self, path: str, wal: bool = True) -> None:
        if path != ":memory:":
            Path(path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        self._closed = False
        if wal and path != ":memory:":
            self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA foreign_keys=ON")
        self._init_schema()

    def _init_schema(self) -> None:
        self._conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS documents (
                collection TEXT NOT NULL,
                doc_id TEXT NOT NULL,
                data TEXT NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                PRIMARY KEY (collection, doc_id)
            );

            CREATE TABLE IF NOT EXISTS batch_operation_audit_log (
                entry_id INTEGER PRIMARY KEY AUTOINCREMENT,
                operation_id TEXT NOT NULL,
                operation_type TEXT NOT NULL,
                action TEXT NOT NULL,
                item_count INTEGER NOT NULL,
                performed_by TEXT,
                details TEXT NOT NULL,
                created_at TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_documents_collection ON documents(collection);
            CREATE INDEX IF NOT EXISTS idx_audit_operation_id
                ON batch_operation_audit_log(operation_id);
            CREATE INDEX IF NOT EXISTS idx_audit_created_at
                ON batch_operation_audit_log(created_at);
            """
        )
        self._conn.commit()

    def execute(
        self,
        query: str,
        params: _SqlParams,
    ) -> None:
        with self._lock:
            self._conn.execute(query, params)
            self._conn.commit()

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._conn.close()
            self._closed = True

    def fetch_one(
        self,
        query: str,
        params: _SqlParams,
    ) -> sqlite3.Row | None:
        with self._lock:
            cur = self._conn.execute(query, params)
            return cur.fetchone()

    def fetch_all(
        self,
        query: str,
        params: _SqlParams,
    ) -> list[sqlite3.Row]:
        with self._lock:
            cur = self._conn.execute(query, params)
            return cur.fetchall()

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def get_document(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        row = self.fetch_one(
            "SELECT data FROM documents WHERE collection = ? AND doc_id = ?",
            (collection, doc_id),
        )
        if row is None:
            return None
        return loads_mapping(row["data"])

    def get_documents(self, collection: str, doc_ids: Iterable[str]) -> dict[str, dict[str, Any]]:
        ids = list(dict.fromkeys(doc_ids))
        if not ids:
            return {}
        placeholders = ",".join("?" for _ in ids)
        rows = self.fetch_all(
            f"SELECT doc_id, data FROM documents "
            f"WHERE collection = ? AND doc_id IN ({placeholders})",
            [collection, *ids],
        )
        return {row["doc_id"]: loads_mapping(row["data"]) for row in rows}

    def find_documents(
        self, collection: str, match: Mapping[str, Any] | None = None
    ) -> list[dict[str, Any]]:
        query = "SELECT data FROM documents WHERE collection = ?"
        params: list[_SqlValue] = [collection]
        for key, value in (match or {}).items():
            query += " AND json_extract(data, ?) IS ?"
            params.extend([_json_path(key), value])
        query += " ORDER BY rowid"
        return [loads_mapping(row["data"]) for row in self.fetch_all(query, params)]

    def put_document(self, collection: str, doc_id: str, data: Mapping[str, Any]) -> None:
        now = utc_now_iso()
        self.execute(
            """
            INSERT INTO documents (collection, doc_id, data, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(collection, doc_id)
            DO UPDATE SET data = excluded.data, updated_at = excluded.updated_at
            """,
            (collection, doc_id, dumps(dict(data)), now, now),
        )

    def insert_document(
        self, collection: str, data: Mapping[str, Any], doc_id: str | None = None
    ) -> str:
        doc_id = doc_id or uuid4().hex
        now = utc_now_iso()
        self.execute(
            "INSERT INTO documents (collection, doc_id, data, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?)",
            (collection, doc_id, dumps(dict(data)), now, now),
        )
        return doc_id

    def merge_document(
        self,
        collection: str,
        doc_id: str,
        fields: Mapping[str, Any],
        replace: bool = False,
    ) -> dict[str, Any] | None:
        """Apply ``fields`` to an existing document and return the new data.

        Returns None when the document does not exist. The read and the write
        happen under one lock so concurrent merges cannot interleave.
        """
        with self._lock:
            row = self._conn.execute(
                "SELECT data FROM documents WHERE collection = ? AND doc_id = ?",
                (collection, doc_id),
            ).fetchone()
            if row is None:
                return None
            if replace:
                updated = dict(fields)
            else:
                updated = loads_mapping(row["data"])
                updated.update(fields)
            self._conn.execute(
                "UPDATE documents SET data = ?, updated_at = ? "
                "WHERE collection = ? AND doc_id = ?",
                (dumps(updated), utc_now_iso(), collection, doc_id),
            )
            self._conn.commit()
            return updated

    def delete_matching(self, collection: str, match: Mapping[str, Any]) -> int:
        if not match:
            raise ValueError("Refusing to delete without match criteria")
        query = "DELETE FROM documents WHERE collection = ?"
        params: list[_SqlValue] = [collection]
        for key, value in match.items():
            query += " AND json_extract(data, ?) IS ?"
            params.extend([_json_path(key), value])
        with self._lock:
            cursor = self._conn.execute(query, params)
            self._conn.commit()
            return cursor.rowcount

    # ------------------------------------------------------------------
    # Audit log
    # ------------------------------------------------------------------

    def insert_audit_entry(
        self,
        operation_id: str,
        operation_type: str,
        action: str,
        item_count: int,
        performed_by: str | None,
        details: Mapping[str, Any],
        created_at: str,
    ) -> int:
        with self._lock:
            cursor = self._conn.execute(
                """
                INSERT INTO batch_operation_audit_log (
                    operation_id, operation_type, action, item_count,
                    performed_by, details, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    operation_id,
                    operation_type,
                    action,
                    item_count,
                    performed_by,
                    dumps(dict(details)),
                    created_at,
                ),
            )
            self._conn.commit()
            return int(cursor.lastrowid)

    def list_audit_entries(
        self, operation_id: str | None = None, limit: int = 100
    ) -> list[sqlite3.Row]:
        if operation_id is None:
            rows = self.fetch_all(
                "SELECT * FROM batch_operation_audit_log ORDER BY entry_id DESC LIMIT ?",
                (limit,),
            )
        else:
            rows = self.fetch_all(
                "SELECT * FROM batch_operation_audit_log WHERE operation_id = ? "
                "ORDER BY entry_id DESC LIMIT ?",
                (operation_id, limit),
            )
        return list(reversed(rows))
