from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any
from unittest.mock import patch

import pytest
import requests
from requests import Response

from clubspace.exceptions import (
    StoreError,
    StoreErrorKind,
    StorePermissionError,
    StoreUnavailableError,
)
from clubspace.store import Filter, FirestoreDocumentStore, WriteOp
from clubspace.store.firestore import decode_fields, decode_value, encode_fields, encode_value

ROOT = "projects/demo/databases/(default)/documents"


def _store() -> FirestoreDocumentStore:
    return FirestoreDocumentStore("demo", base_url="https://firestore.test/v1", auth_token="token")


def _response(status_code: int, payload: Any, url: str = "https://firestore.test/v1") -> Response:
    response = Response()
    response.status_code = status_code
    response._content = json.dumps(payload).encode("utf-8")
    response.headers["Content-Type"] = "application/json; charset=UTF-8"
    response.url = url
    return response


def test_encode_value_covers_firestore_types():
    when = datetime(2026, 3, 1, 19, 0, tzinfo=timezone.utc)
    encoded = encode_fields(
        {"title": "Match", "goals": 3, "friendly": False, "date": when, "tags": ["a"], "extra": None}
    )
    assert encoded == {
        "title": {"stringValue": "Match"},
        "goals": {"integerValue": "3"},
        "friendly": {"booleanValue": False},
        "date": {"timestampValue": "2026-03-01T19:00:00.000000Z"},
        "tags": {"arrayValue": {"values": [{"stringValue": "a"}]}},
        "extra": {"nullValue": None},
    }
    assert decode_fields(encoded) == {
        "title": "Match",
        "goals": 3,
        "friendly": False,
        "date": when,
        "tags": ["a"],
        "extra": None,
    }


def test_decode_trims_nanosecond_timestamps():
    value = decode_value({"timestampValue": "2026-03-01T19:00:00.123456789Z"})
    assert value == datetime(2026, 3, 1, 19, 0, 0, 123456, tzinfo=timezone.utc)


def test_encode_rejects_unknown_types():
    with pytest.raises(TypeError):
        encode_value(object())


def test_get_document_returns_none_on_not_found():
    store = _store()
    with patch.object(store.http.session, "request") as mock_request:
        mock_request.return_value = _response(404, {"error": {"code": 404, "message": "not found"}})
        assert store.get_document("events", "e1") is None


def test_get_document_decodes_fields():
    store = _store()
    payload = {
        "name": f"{ROOT}/users/u1",
        "fields": {"email": {"stringValue": "ana@club.test"}, "role": {"stringValue": "PLAYER"}},
    }
    with patch.object(store.http.session, "request") as mock_request:
        mock_request.return_value = _response(200, payload)
        doc = store.get_document("users", "u1")

    assert doc.id == "u1"
    assert doc.data == {"email": "ana@club.test", "role": "PLAYER"}
    _, kwargs = mock_request.call_args
    assert kwargs["method"] == "GET"
    assert kwargs["url"] == f"https://firestore.test/v1/{ROOT}/users/u1"


def test_list_documents_sends_structured_query():
    store = _store()
    rows = [
        {"document": {"name": f"{ROOT}/attendances/a1", "fields": {"eventId": {"stringValue": "e1"}}}},
        {"readTime": "2026-03-01T00:00:00Z"},
    ]
    with patch.object(store.http.session, "request") as mock_request:
        mock_request.return_value = _response(200, rows)
        docs = store.list_documents("attendances", where=[Filter("eventId", "e1")], order_by="createdAt")

    assert [doc.id for doc in docs] == ["a1"]
    _, kwargs = mock_request.call_args
    assert kwargs["url"].endswith(":runQuery")
    query = kwargs["json"]["structuredQuery"]
    assert query["from"] == [{"collectionId": "attendances"}]
    assert query["where"]["fieldFilter"]["value"] == {"stringValue": "e1"}
    assert query["orderBy"][0]["direction"] == "ASCENDING"


def test_commit_builds_update_and_delete_writes():
    store = _store()
    ops = [
        WriteOp("set", "events_archive", "e1", {"title": "T"}),
        WriteOp("update", "events", "e2", {"suspended": True}),
        WriteOp("set", "stats", "ana@club.test", {"goals": 1}, merge=True),
        WriteOp("delete", "events", "e1"),
    ]
    with patch.object(store.http.session, "request") as mock_request:
        mock_request.return_value = _response(200, {"writeResults": []})
        store.commit(ops)

    assert mock_request.call_count == 1
    writes = mock_request.call_args.kwargs["json"]["writes"]
    assert writes[0] == {"update": {"name": f"{ROOT}/events_archive/e1", "fields": {"title": {"stringValue": "T"}}}}
    assert writes[1]["updateMask"] == {"fieldPaths": ["suspended"]}
    assert writes[1]["currentDocument"] == {"exists": True}
    assert writes[2]["updateMask"] == {"fieldPaths": ["goals"]}
    assert "currentDocument" not in writes[2]
    assert writes[3] == {"delete": f"{ROOT}/events/e1"}


def test_permission_denied_is_mapped():
    store = _store()
    with patch.object(store.http.session, "request") as mock_request:
        mock_request.return_value = _response(
            403, {"error": {"code": 403, "message": "Missing or insufficient permissions."}}
        )
        with pytest.raises(StorePermissionError) as excinfo:
            store.set_document("events", "e1", {"title": "x"})

    assert excinfo.value.kind is StoreErrorKind.PERMISSION_DENIED
    assert excinfo.value.status_code == 403
    assert "insufficient permissions" in str(excinfo.value)


def test_connection_failures_are_unavailable():
    store = _store()
    with patch.object(store.http.session, "request") as mock_request:
        mock_request.side_effect = requests.ConnectionError("offline")
        with pytest.raises(StoreUnavailableError):
            store.list_documents("events")


def test_server_errors_are_unavailable():
    store = _store()
    with patch.object(store.http.session, "request") as mock_request:
        mock_request.return_value = _response(503, {"error": {"message": "backend down"}})
        with pytest.raises(StoreError) as excinfo:
            store.delete_document("events", "e1")
    assert excinfo.value.kind is StoreErrorKind.UNAVAILABLE


def test_non_json_response_is_rejected():
    store = _store()
    response = Response()
    response.status_code = 200
    response._content = b"<html></html>"
    response.headers["Content-Type"] = "text/html"
    with patch.object(store.http.session, "request") as mock_request:
        mock_request.return_value = response
        with pytest.raises(StoreError):
            store.list_documents("events")
