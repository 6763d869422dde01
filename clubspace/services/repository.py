"""
Typed access to the club collections.
"""
from __future__ import annotations

import logging
from typing import Callable, Dict, List, Optional, Sequence, TypeVar

from ..records import (
    Attendance,
    Collections,
    Event,
    EventType,
    Fixture,
    MatchResult,
    PlayerStats,
    Rival,
    UserProfile,
)
from ..store import DocumentStore, Filter, StoredDocument

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


def attendance_id(user_id: str, event_id: str) -> str:
    return f"{user_id}_{event_id}"


def _decode(docs: Sequence[StoredDocument], factory: Callable[[str, dict], T]) -> List[T]:
    return [factory(doc.id, doc.data) for doc in docs]


class ClubRepository:
    """
    CRUD helpers over the raw document store returning typed records.
    """

    def __init__(self, store: DocumentStore) -> None:
        self.store = store

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def live_events(self) -> List[Event]:
        docs = self.store.list_documents(Collections.EVENTS)
        return _decode(docs, lambda doc_id, data: Event.from_document(doc_id, data))

    def get_event(self, event_id: str) -> Optional[Event]:
        doc = self.store.get_document(Collections.EVENTS, event_id)
        return Event.from_document(doc.id, doc.data) if doc else None

    def archived_events(self, event_type: Optional[EventType] = None) -> List[Event]:
        where = [Filter("type", event_type.value)] if event_type else []
        docs = self.store.list_documents(Collections.EVENTS_ARCHIVE, where=where)
        return _decode(
            docs,
            lambda doc_id, data: Event.from_document(doc_id, data, Collections.EVENTS_ARCHIVE),
        )

    def get_archived_event(self, event_id: str) -> Optional[Event]:
        doc = self.store.get_document(Collections.EVENTS_ARCHIVE, event_id)
        if doc is None:
            return None
        return Event.from_document(doc.id, doc.data, Collections.EVENTS_ARCHIVE)

    # ------------------------------------------------------------------
    # Attendances
    # ------------------------------------------------------------------

    def attendances(self, event_id: Optional[str] = None, *, archived: bool = False) -> List[Attendance]:
        collection = Collections.ATTENDANCES_ARCHIVE if archived else Collections.ATTENDANCES
        where = [Filter("eventId", event_id)] if event_id else []
        docs = self.store.list_documents(collection, where=where)
        return _decode(
            docs, lambda doc_id, data: Attendance.from_document(doc_id, data, collection)
        )

    def get_attendance(self, user_id: str, event_id: str) -> Optional[Attendance]:
        doc = self.store.get_document(Collections.ATTENDANCES, attendance_id(user_id, event_id))
        return Attendance.from_document(doc.id, doc.data) if doc else None

    # ------------------------------------------------------------------
    # Stats
    # ------------------------------------------------------------------

    def get_stats(self, key: str) -> Optional[PlayerStats]:
        doc = self.store.get_document(Collections.STATS, key)
        return PlayerStats.from_document(doc.id, doc.data) if doc else None

    def all_stats(self) -> Dict[str, PlayerStats]:
        docs = self.store.list_documents(Collections.STATS)
        return {doc.id: PlayerStats.from_document(doc.id, doc.data) for doc in docs}

    # ------------------------------------------------------------------
    # Results, rivals, fixtures, users
    # ------------------------------------------------------------------

    def get_result(self, event_id: str) -> Optional[MatchResult]:
        doc = self.store.get_document(Collections.MATCH_RESULTS, event_id)
        return MatchResult.from_document(doc.id, doc.data) if doc else None

    def all_results(self) -> List[MatchResult]:
        docs = self.store.list_documents(Collections.MATCH_RESULTS)
        return _decode(docs, MatchResult.from_document)

    def rivals(self) -> List[Rival]:
        docs = self.store.list_documents(Collections.RIVALS, order_by="name")
        return _decode(docs, Rival.from_document)

    def get_rival(self, rival_id: str) -> Optional[Rival]:
        doc = self.store.get_document(Collections.RIVALS, rival_id)
        return Rival.from_document(doc.id, doc.data) if doc else None

    def fixtures(self) -> List[Fixture]:
        docs = self.store.list_documents(Collections.FIXTURES, order_by="fecha")
        return _decode(docs, Fixture.from_document)

    def get_fixture(self, fixture_id: str) -> Optional[Fixture]:
        doc = self.store.get_document(Collections.FIXTURES, fixture_id)
        return Fixture.from_document(doc.id, doc.data) if doc else None

    def users(self) -> List[UserProfile]:
        docs = self.store.list_documents(Collections.USERS)
        return _decode(docs, UserProfile.from_document)

    def get_user(self, user_id: str) -> Optional[UserProfile]:
        doc = self.store.get_document(Collections.USERS, user_id)
        return UserProfile.from_document(doc.id, doc.data) if doc else None

    def find_user_by_email(self, email: str) -> Optional[UserProfile]:
        docs = self.store.list_documents(Collections.USERS, where=[Filter("email", email)])
        if not docs:
            return None
        return UserProfile.from_document(docs[0].id, docs[0].data)
