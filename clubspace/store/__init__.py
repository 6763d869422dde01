"""
Document store adapters.
"""

from __future__ import annotations

from ..config import Settings
from .base import (
    DocumentStore,
    Filter,
    StoredDocument,
    WriteBatch,
    WriteOp,
    new_document_id,
)
from .firestore import FirestoreDocumentStore
from .sqlite_store import SQLiteDocumentStore

__all__ = [
    "DocumentStore",
    "Filter",
    "StoredDocument",
    "WriteBatch",
    "WriteOp",
    "new_document_id",
    "FirestoreDocumentStore",
    "SQLiteDocumentStore",
    "build_store",
]


def build_store(settings: Settings) -> DocumentStore:
    """
    Instantiate the document store selected by ``settings.store_backend``.
    """
    backend = settings.store_backend
    if backend == "sqlite":
        return SQLiteDocumentStore(settings.sqlite_path)
    if backend == "firestore":
        return FirestoreDocumentStore.from_settings(settings)
    raise ValueError(f"Unsupported store backend '{backend}'")
