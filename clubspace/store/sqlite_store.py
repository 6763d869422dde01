"""
SQLite backed document store.

Each document is one JSON row keyed by ``(collection, doc_id)``. Batches run
inside a single SQLite transaction.
"""
from __future__ import annotations

import json
import logging
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Sequence

from ..exceptions import (
    DocumentNotFoundError,
    StoreError,
    StoreErrorKind,
    store_error_for,
)
from .base import (
    DocumentStore,
    Filter,
    StoredDocument,
    WriteOp,
    matches_filters,
    merge_fields,
    new_document_id,
    sort_documents,
)

LOGGER = logging.getLogger(__name__)

_TIMESTAMP_TAG = "__timestamp__"


def _encode(value: Any) -> Any:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return {_TIMESTAMP_TAG: value.astimezone(timezone.utc).isoformat()}
    if isinstance(value, dict):
        return {key: _encode(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_encode(item) for item in value]
    return value


def _decode(value: Any) -> Any:
    if isinstance(value, dict):
        if set(value) == {_TIMESTAMP_TAG}:
            return datetime.fromisoformat(value[_TIMESTAMP_TAG])
        return {key: _decode(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_decode(item) for item in value]
    return value


def dumps_document(data: Dict[str, Any]) -> str:
    return json.dumps(_encode(data), sort_keys=True)


def loads_document(body: str) -> Dict[str, Any]:
    return _decode(json.loads(body))


class SQLiteDocumentStore(DocumentStore):
    """
    Persist documents in a single SQLite table.
    """

    def __init__(self, db_path: Path | str) -> None:
        self.db_path = str(db_path)
        self._memory_conn: Optional[sqlite3.Connection] = None
        self._lock = threading.RLock()
        if self.db_path == ":memory:":
            self._memory_conn = sqlite3.connect(":memory:", check_same_thread=False)
        else:
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        with self._connection() as conn:
            self.ensure_schema(conn)

    @staticmethod
    def ensure_schema(conn: sqlite3.Connection) -> None:
        conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS documents (
                collection TEXT NOT NULL,
                doc_id TEXT NOT NULL,
                body TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                PRIMARY KEY (collection, doc_id)
            );

            CREATE INDEX IF NOT EXISTS idx_documents_collection
                ON documents (collection);
            """
        )

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            try:
                if self._memory_conn is not None:
                    conn = self._memory_conn
                    with conn:
                        yield conn
                    return
                conn = sqlite3.connect(self.db_path)
                try:
                    with conn:
                        yield conn
                finally:
                    conn.close()
            except sqlite3.OperationalError as exc:
                raise store_error_for(StoreErrorKind.UNAVAILABLE, str(exc)) from exc
            except sqlite3.DatabaseError as exc:
                raise StoreError(str(exc)) from exc

    @staticmethod
    def _now() -> str:
        return datetime.now(timezone.utc).isoformat()

    @staticmethod
    def _read(conn: sqlite3.Connection, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        row = conn.execute(
            "SELECT body FROM documents WHERE collection = ? AND doc_id = ?",
            (collection, doc_id),
        ).fetchone()
        if row is None:
            return None
        return loads_document(row[0])

    def _write(self, conn: sqlite3.Connection, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        conn.execute(
            """
            INSERT INTO documents (collection, doc_id, body, updated_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT (collection, doc_id)
            DO UPDATE SET body = excluded.body, updated_at = excluded.updated_at
            """,
            (collection, doc_id, dumps_document(data), self._now()),
        )

    def _apply(self, conn: sqlite3.Connection, op: WriteOp) -> None:
        if op.kind == "delete":
            conn.execute(
                "DELETE FROM documents WHERE collection = ? AND doc_id = ?",
                (op.collection, op.doc_id),
            )
            return
        data = op.data or {}
        existing = self._read(conn, op.collection, op.doc_id)
        if op.kind == "update":
            if existing is None:
                raise DocumentNotFoundError(f"No document {op.collection}/{op.doc_id}")
            self._write(conn, op.collection, op.doc_id, {**existing, **data})
        elif op.kind == "set":
            if op.merge and existing is not None:
                data = merge_fields(existing, data)
            self._write(conn, op.collection, op.doc_id, data)
        else:
            raise ValueError(f"Unsupported write operation '{op.kind}'")

    def list_documents(
        self,
        collection: str,
        *,
        where: Sequence[Filter] = (),
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> List[StoredDocument]:
        with self._connection() as conn:
            rows = conn.execute(
                "SELECT doc_id, body FROM documents WHERE collection = ? ORDER BY doc_id",
                (collection,),
            ).fetchall()
        documents = [StoredDocument(row[0], loads_document(row[1])) for row in rows]
        documents = [doc for doc in documents if matches_filters(doc.data, where)]
        return sort_documents(documents, order_by, descending)

    def get_document(self, collection: str, doc_id: str) -> Optional[StoredDocument]:
        with self._connection() as conn:
            data = self._read(conn, collection, doc_id)
        if data is None:
            return None
        return StoredDocument(doc_id, data)

    def add_document(self, collection: str, data: Dict[str, Any]) -> str:
        doc_id = new_document_id()
        self.commit([WriteOp("set", collection, doc_id, dict(data))])
        return doc_id

    def set_document(
        self, collection: str, doc_id: str, data: Dict[str, Any], *, merge: bool = False
    ) -> None:
        self.commit([WriteOp("set", collection, doc_id, dict(data), merge)])

    def update_document(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> None:
        self.commit([WriteOp("update", collection, doc_id, dict(fields))])

    def delete_document(self, collection: str, doc_id: str) -> None:
        self.commit([WriteOp("delete", collection, doc_id)])

    def commit(self, ops: Sequence[WriteOp]) -> None:
        with self._connection() as conn:
            for op in ops:
                self._apply(conn, op)
        LOGGER.debug("Committed %s write(s) to %s", len(ops), self.db_path)

    def close(self) -> None:
        if self._memory_conn is not None:
            self._memory_conn.close()
            self._memory_conn = None
