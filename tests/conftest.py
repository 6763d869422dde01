from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import pytest

from clubspace.config import Settings
from clubspace.records import Collections, Role
from clubspace.services import ClubServices
from clubspace.session import Session
from clubspace.store import SQLiteDocumentStore

NOW = datetime(2026, 3, 14, 20, 0, tzinfo=timezone.utc)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def store(tmp_path):
    db = SQLiteDocumentStore(tmp_path / "club.db")
    yield db
    db.close()


@pytest.fixture
def services(store) -> ClubServices:
    return ClubServices.build(Settings(), store, clock=lambda: NOW)


@pytest.fixture
def admin() -> Session:
    return Session("u-admin", "capi@club.test", "Capi", Role.ADMIN)


@pytest.fixture
def player() -> Session:
    return Session("u1", "ana@club.test", "Ana", Role.PLAYER)


@pytest.fixture
def viewer() -> Session:
    return Session("u-viewer", "mama@club.test", "Mama", Role.VIEWER)


def seed_user(store, doc_id: str, email: str, role: str = "PLAYER", alias: Optional[str] = None) -> None:
    data: Dict[str, Any] = {"email": email, "role": role}
    if alias:
        data["alias"] = alias
    store.set_document(Collections.USERS, doc_id, data)


def seed_club(store) -> None:
    seed_user(store, "u-admin", "capi@club.test", "ADMIN", "Capi")
    seed_user(store, "u1", "ana@club.test", "PLAYER", "Ana")
    seed_user(store, "u2", "bea@club.test", "PLAYER", "Bea")
    seed_user(store, "u3", "caro@club.test", "PLAYER")
    seed_user(store, "u-viewer", "mama@club.test", "VIEWER", "Mama")


def seed_event(
    store,
    event_id: str,
    event_type: str,
    date: datetime,
    *,
    archived: bool = False,
    **extra: Any,
) -> None:
    data: Dict[str, Any] = {
        "type": event_type,
        "date": date,
        "title": f"{event_type.title()} {event_id}",
        "createdBy": "u-admin",
        "createdAt": date - timedelta(days=7),
    }
    data.update(extra)
    if archived:
        data["archivedAt"] = date + timedelta(hours=2)
    collection = Collections.EVENTS_ARCHIVE if archived else Collections.EVENTS
    store.set_document(collection, event_id, data)


def seed_attendance(
    store,
    user_id: str,
    event_id: str,
    status: str = "attending",
    *,
    archived: bool = False,
    display_name: Optional[str] = None,
) -> None:
    data = {
        "eventId": event_id,
        "userId": user_id,
        "userDisplayName": display_name or user_id,
        "attending": status == "attending",
        "status": status,
        "createdAt": NOW - timedelta(days=1),
        "updatedAt": NOW - timedelta(days=1),
    }
    collection = Collections.ATTENDANCES_ARCHIVE if archived else Collections.ATTENDANCES
    store.set_document(collection, f"{user_id}_{event_id}", data)


def seed_rival(store, rival_id: str, name: str) -> None:
    store.set_document(
        Collections.RIVALS,
        rival_id,
        {"name": name, "logoUrl": "", "createdAt": NOW - timedelta(days=30), "createdBy": "capi@club.test"},
    )
