"""
Firestore REST adapter.

Talks to the Firestore v1 REST API through :class:`clubspace.http.HTTPClient`
and converts between plain Python values and Firestore typed values.
"""
from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import quote

from ..config import Settings
from ..exceptions import DocumentNotFoundError, StoreError
from ..http import HTTPClient
from .base import DocumentStore, Filter, StoredDocument, WriteOp

LOGGER = logging.getLogger(__name__)

_FRACTION_RE = re.compile(r"\.(\d+)")


def _parse_timestamp(raw: str) -> datetime:
    # Firestore returns nanosecond precision; datetime keeps microseconds.
    text = raw.replace("Z", "+00:00")
    text = _FRACTION_RE.sub(lambda match: "." + match.group(1)[:6].ljust(6, "0"), text, count=1)
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _format_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def encode_value(value: Any) -> Dict[str, Any]:
    """
    Convert a Python value into a Firestore ``Value`` payload.
    """
    if value is None:
        return {"nullValue": None}
    if isinstance(value, bool):
        return {"booleanValue": value}
    if isinstance(value, int):
        return {"integerValue": str(value)}
    if isinstance(value, float):
        return {"doubleValue": value}
    if isinstance(value, str):
        return {"stringValue": value}
    if isinstance(value, datetime):
        return {"timestampValue": _format_timestamp(value)}
    if isinstance(value, (list, tuple)):
        return {"arrayValue": {"values": [encode_value(item) for item in value]}}
    if isinstance(value, dict):
        return {"mapValue": {"fields": encode_fields(value)}}
    raise TypeError(f"Cannot store value of type {type(value).__name__}")


def encode_fields(data: Dict[str, Any]) -> Dict[str, Any]:
    return {str(key): encode_value(item) for key, item in data.items()}


def decode_value(payload: Dict[str, Any]) -> Any:
    """
    Convert a Firestore ``Value`` payload into a Python value.
    """
    if "nullValue" in payload:
        return None
    if "booleanValue" in payload:
        return bool(payload["booleanValue"])
    if "integerValue" in payload:
        return int(payload["integerValue"])
    if "doubleValue" in payload:
        return float(payload["doubleValue"])
    if "stringValue" in payload:
        return payload["stringValue"]
    if "timestampValue" in payload:
        return _parse_timestamp(payload["timestampValue"])
    if "arrayValue" in payload:
        values = (payload["arrayValue"] or {}).get("values") or []
        return [decode_value(item) for item in values]
    if "mapValue" in payload:
        return decode_fields((payload["mapValue"] or {}).get("fields") or {})
    if "referenceValue" in payload:
        return payload["referenceValue"]
    raise StoreError(f"Unsupported Firestore value: {sorted(payload)}")


def decode_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
    return {key: decode_value(item) for key, item in fields.items()}


class FirestoreDocumentStore(DocumentStore):
    """
    Document store backed by the Firestore REST API.
    """

    def __init__(
        self,
        project_id: str,
        *,
        database: str = "(default)",
        base_url: str = "https://firestore.googleapis.com/v1",
        auth_token: Optional[str] = None,
        http: Optional[HTTPClient] = None,
    ):
        self.project_id = project_id
        self.database = database
        self.http = http or HTTPClient(base_url, auth_token=auth_token)
        self.root = f"projects/{project_id}/databases/{database}/documents"

    @classmethod
    def from_settings(cls, settings: Settings) -> "FirestoreDocumentStore":
        if not settings.firestore_project:
            raise ValueError("CLUBSPACE_FIRESTORE_PROJECT must be set for the firestore backend.")
        return cls(
            settings.firestore_project,
            database=settings.firestore_database,
            base_url=settings.firestore_base_url,
            auth_token=settings.firestore_token,
        )

    def _name(self, collection: str, doc_id: str) -> str:
        return f"{self.root}/{collection}/{doc_id}"

    def _path(self, collection: str, doc_id: Optional[str] = None) -> str:
        path = f"{self.root}/{quote(collection, safe='')}"
        if doc_id is not None:
            path = f"{path}/{quote(doc_id, safe='')}"
        return path

    @staticmethod
    def _document_from_payload(payload: Dict[str, Any]) -> StoredDocument:
        name = payload.get("name", "")
        doc_id = name.rsplit("/", 1)[-1]
        return StoredDocument(doc_id, decode_fields(payload.get("fields") or {}))

    def _structured_query(
        self,
        collection: str,
        where: Sequence[Filter],
        order_by: Optional[str],
        descending: bool,
    ) -> Dict[str, Any]:
        query: Dict[str, Any] = {"from": [{"collectionId": collection}]}
        filters = [
            {
                "fieldFilter": {
                    "field": {"fieldPath": item.field},
                    "op": "EQUAL",
                    "value": encode_value(item.value),
                }
            }
            for item in where
        ]
        if len(filters) == 1:
            query["where"] = filters[0]
        elif filters:
            query["where"] = {"compositeFilter": {"op": "AND", "filters": filters}}
        if order_by:
            query["orderBy"] = [
                {
                    "field": {"fieldPath": order_by},
                    "direction": "DESCENDING" if descending else "ASCENDING",
                }
            ]
        return query

    def list_documents(
        self,
        collection: str,
        *,
        where: Sequence[Filter] = (),
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> List[StoredDocument]:
        body = {"structuredQuery": self._structured_query(collection, where, order_by, descending)}
        payload = self.http.request("POST", f"{self.root}:runQuery", json=body) or []
        documents: List[StoredDocument] = []
        for row in payload:
            document = row.get("document") if isinstance(row, dict) else None
            if document:
                documents.append(self._document_from_payload(document))
        return documents

    def get_document(self, collection: str, doc_id: str) -> Optional[StoredDocument]:
        try:
            payload = self.http.request("GET", self._path(collection, doc_id))
        except DocumentNotFoundError:
            return None
        if not payload:
            return None
        return self._document_from_payload(payload)

    def add_document(self, collection: str, data: Dict[str, Any]) -> str:
        payload = self.http.request(
            "POST", self._path(collection), json={"fields": encode_fields(data)}
        )
        return self._document_from_payload(payload or {}).id

    def set_document(
        self, collection: str, doc_id: str, data: Dict[str, Any], *, merge: bool = False
    ) -> None:
        self.commit([WriteOp("set", collection, doc_id, dict(data), merge)])

    def update_document(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> None:
        self.commit([WriteOp("update", collection, doc_id, dict(fields))])

    def delete_document(self, collection: str, doc_id: str) -> None:
        self.commit([WriteOp("delete", collection, doc_id)])

    def _write_payload(self, op: WriteOp) -> Dict[str, Any]:
        name = self._name(op.collection, op.doc_id)
        if op.kind == "delete":
            return {"delete": name}
        data = op.data or {}
        write: Dict[str, Any] = {"update": {"name": name, "fields": encode_fields(data)}}
        if op.kind == "update":
            write["updateMask"] = {"fieldPaths": sorted(data)}
            write["currentDocument"] = {"exists": True}
        elif op.merge:
            write["updateMask"] = {"fieldPaths": sorted(data)}
        elif op.kind != "set":
            raise ValueError(f"Unsupported write operation '{op.kind}'")
        return write

    def commit(self, ops: Sequence[WriteOp]) -> None:
        if not ops:
            return
        writes = [self._write_payload(op) for op in ops]
        self.http.request("POST", f"{self.root}:commit", json={"writes": writes})
        LOGGER.debug("Committed %s write(s) to project %s", len(writes), self.project_id)
