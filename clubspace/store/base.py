"""
Document store abstraction used by the club repositories.

A store holds named collections of schemaless documents keyed by id. Reads are
single request/response calls; writes can be grouped into a batch which is
applied atomically (all operations land or none do). Nothing spans more than
one batch.
"""
from __future__ import annotations

import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence


@dataclass(frozen=True)
class Filter:
    """Equality filter on a top-level field."""

    field: str
    value: Any


@dataclass(frozen=True)
class StoredDocument:
    id: str
    data: Dict[str, Any]


@dataclass(frozen=True)
class WriteOp:
    kind: str  # "set", "update" or "delete"
    collection: str
    doc_id: str
    data: Optional[Dict[str, Any]] = None
    merge: bool = False


@dataclass
class WriteBatch:
    """
    Collect write operations and commit them in one atomic call.
    """

    store: "DocumentStore"
    ops: List[WriteOp] = field(default_factory=list)

    def set(
        self, collection: str, doc_id: str, data: Dict[str, Any], *, merge: bool = False
    ) -> "WriteBatch":
        self.ops.append(WriteOp("set", collection, doc_id, dict(data), merge))
        return self

    def update(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> "WriteBatch":
        self.ops.append(WriteOp("update", collection, doc_id, dict(fields)))
        return self

    def delete(self, collection: str, doc_id: str) -> "WriteBatch":
        self.ops.append(WriteOp("delete", collection, doc_id))
        return self

    def __len__(self) -> int:
        return len(self.ops)

    def commit(self) -> int:
        """
        Apply every collected operation atomically and return how many were applied.
        """
        if not self.ops:
            return 0
        self.store.commit(self.ops)
        applied = len(self.ops)
        self.ops = []
        return applied


def new_document_id() -> str:
    return uuid.uuid4().hex[:20]


def merge_fields(existing: Dict[str, Any], incoming: Dict[str, Any]) -> Dict[str, Any]:
    """
    Merge ``incoming`` into ``existing``; nested maps merge, everything else is replaced.
    """
    merged = dict(existing)
    for key, value in incoming.items():
        current = merged.get(key)
        if isinstance(value, dict) and isinstance(current, dict):
            merged[key] = merge_fields(current, value)
        else:
            merged[key] = value
    return merged


def matches_filters(data: Dict[str, Any], where: Sequence[Filter]) -> bool:
    return all(data.get(item.field) == item.value for item in where)


def sort_documents(
    documents: Iterable[StoredDocument], order_by: Optional[str], descending: bool
) -> List[StoredDocument]:
    docs = list(documents)
    if not order_by:
        return docs
    present = [doc for doc in docs if doc.data.get(order_by) is not None]
    missing = [doc for doc in docs if doc.data.get(order_by) is None]
    present.sort(key=lambda doc: doc.data[order_by], reverse=descending)
    return present + missing


class DocumentStore(ABC):
    """
    Minimal CRUD and batch-write contract over collections of documents.
    """

    @abstractmethod
    def list_documents(
        self,
        collection: str,
        *,
        where: Sequence[Filter] = (),
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> List[StoredDocument]:
        """Return documents matching every equality filter."""

    @abstractmethod
    def get_document(self, collection: str, doc_id: str) -> Optional[StoredDocument]:
        """Return the document or ``None`` when it does not exist."""

    @abstractmethod
    def add_document(self, collection: str, data: Dict[str, Any]) -> str:
        """Create a document with a generated id and return the id."""

    @abstractmethod
    def set_document(
        self, collection: str, doc_id: str, data: Dict[str, Any], *, merge: bool = False
    ) -> None:
        """Create or replace (or merge into) a document."""

    @abstractmethod
    def update_document(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> None:
        """Update fields of an existing document; raises when it does not exist."""

    @abstractmethod
    def delete_document(self, collection: str, doc_id: str) -> None:
        """Delete a document; deleting a missing document is not an error."""

    @abstractmethod
    def commit(self, ops: Sequence[WriteOp]) -> None:
        """Apply ``ops`` atomically."""

    def batch(self) -> WriteBatch:
        return WriteBatch(self)

    def close(self) -> None:
        return None
