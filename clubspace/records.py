"""
Typed records for every collection plus their document (de)serialisation.

``from_document`` validates the stored shape and raises
:class:`~clubspace.exceptions.MalformedDocumentError` rather than guessing;
fields that older documents may legitimately lack have explicit defaults.
"""
from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Type, TypeVar

from .exceptions import MalformedDocumentError

GUEST_PLAYER_ID = "INVITADO"
GUEST_PLAYER_NAME = "Invitada"


class Collections:
    EVENTS = "events"
    EVENTS_ARCHIVE = "events_archive"
    ATTENDANCES = "attendances"
    ATTENDANCES_ARCHIVE = "attendances_archive"
    RIVALS = "rivals"
    FIXTURES = "fixtures"
    MATCH_RESULTS = "match_results"
    STATS = "stats"
    USERS = "users"


class EventType(str, Enum):
    TRAINING = "TRAINING"
    MATCH = "MATCH"
    BIRTHDAY = "BIRTHDAY"
    CUSTOM = "CUSTOM"

    @property
    def counts_for_stats(self) -> bool:
        return self in (EventType.TRAINING, EventType.MATCH)


class RecurringType(str, Enum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class AttendanceStatus(str, Enum):
    ATTENDING = "attending"
    NOT_ATTENDING = "not-attending"
    PENDING = "pending"
    NOT_VOTED = "not-voted"


class CardType(str, Enum):
    YELLOW = "yellow"
    RED = "red"


class PlayerPosition(str, Enum):
    GOALKEEPER = "Arquera"
    DEFENDER = "Defensora"
    MIDFIELDER = "Mediocampista"
    FORWARD = "Delantera"


class Role(str, Enum):
    ADMIN = "ADMIN"
    PLAYER = "PLAYER"
    VIEWER = "VIEWER"


E = TypeVar("E", bound=Enum)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class _Fields:
    """
    Typed accessor over a raw document that reports shape errors.
    """

    def __init__(self, collection: str, doc_id: str, data: Dict[str, Any]):
        self.collection = collection
        self.doc_id = doc_id
        self.data = data if isinstance(data, dict) else {}
        if not isinstance(data, dict):
            self.fail("document body is not a map")

    def fail(self, reason: str) -> None:
        raise MalformedDocumentError(self.collection, self.doc_id, reason)

    def _check(self, key: str, value: Any, kind: Type | Tuple[Type, ...]) -> Any:
        kinds = kind if isinstance(kind, tuple) else (kind,)
        if isinstance(value, bool) and bool not in kinds:
            self.fail(f"field '{key}' must be {kind}, got bool")
        if not isinstance(value, kinds):
            self.fail(f"field '{key}' must be {kind}, got {type(value).__name__}")
        return value

    def required(self, key: str, kind: Type | Tuple[Type, ...]) -> Any:
        if self.data.get(key) is None:
            self.fail(f"missing required field '{key}'")
        return self._check(key, self.data[key], kind)

    def optional(self, key: str, kind: Type | Tuple[Type, ...], default: Any = None) -> Any:
        value = self.data.get(key)
        if value is None:
            return default
        return self._check(key, value, kind)

    def counter(self, key: str) -> int:
        value = self.optional(key, int, 0)
        if value < 0:
            self.fail(f"counter '{key}' is negative")
        return value

    def timestamp(self, key: str, *, required: bool = True) -> Optional[datetime]:
        value = self.data.get(key)
        if value is None:
            if required:
                self.fail(f"missing required timestamp '{key}'")
            return None
        if isinstance(value, datetime):
            return as_utc(value)
        if isinstance(value, str):
            try:
                return as_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
            except ValueError:
                self.fail(f"timestamp '{key}' is not ISO formatted")
        self.fail(f"timestamp '{key}' has type {type(value).__name__}")
        return None

    def enum(self, key: str, enum_cls: Type[E], *, default: Optional[E] = None) -> E:
        value = self.data.get(key)
        if value is None:
            if default is None:
                self.fail(f"missing required field '{key}'")
            return default  # type: ignore[return-value]
        try:
            return enum_cls(value)
        except ValueError:
            self.fail(f"field '{key}' has unknown value {value!r}")
        raise AssertionError("unreachable")

    def items(self, key: str) -> List[Dict[str, Any]]:
        value = self.optional(key, list, [])
        for index, item in enumerate(value):
            if not isinstance(item, dict):
                self.fail(f"entry {index} of '{key}' is not a map")
        return value


def _without_none(data: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in data.items() if value is not None}


@dataclass(frozen=True)
class Event:
    id: str
    type: EventType
    date: datetime
    title: str
    created_by: str
    created_at: datetime
    description: Optional[str] = None
    location: Optional[str] = None
    is_recurring: bool = False
    recurring_type: Optional[RecurringType] = None
    recurring_end_date: Optional[datetime] = None
    original_event_id: Optional[str] = None
    rival_id: Optional[str] = None
    rival_name: Optional[str] = None
    is_friendly: Optional[bool] = None
    suspended: bool = False
    suspended_by: Optional[str] = None
    suspended_at: Optional[datetime] = None
    archived_at: Optional[datetime] = None

    @classmethod
    def from_document(cls, doc_id: str, data: Dict[str, Any], collection: str = Collections.EVENTS) -> "Event":
        f = _Fields(collection, doc_id, data)
        recurring_raw = data.get("recurringType") if isinstance(data, dict) else None
        return cls(
            id=doc_id,
            type=f.enum("type", EventType),
            date=f.timestamp("date"),
            title=f.required("title", str),
            created_by=f.required("createdBy", str),
            created_at=f.timestamp("createdAt"),
            description=f.optional("description", str),
            location=f.optional("location", str),
            is_recurring=f.optional("isRecurring", bool, False),
            recurring_type=f.enum("recurringType", RecurringType) if recurring_raw else None,
            recurring_end_date=f.timestamp("recurringEndDate", required=False),
            original_event_id=f.optional("originalEventId", str),
            rival_id=f.optional("rivalId", str),
            rival_name=f.optional("rivalName", str),
            is_friendly=f.optional("isFriendly", bool),
            suspended=f.optional("suspended", bool, False),
            suspended_by=f.optional("suspendedBy", str),
            suspended_at=f.timestamp("suspendedAt", required=False),
            archived_at=f.timestamp("archivedAt", required=False),
        )

    def to_document(self) -> Dict[str, Any]:
        return _without_none(
            {
                "type": self.type.value,
                "date": self.date,
                "title": self.title,
                "description": self.description,
                "location": self.location,
                "createdBy": self.created_by,
                "createdAt": self.created_at,
                "isRecurring": self.is_recurring,
                "recurringType": self.recurring_type.value if self.recurring_type else None,
                "recurringEndDate": self.recurring_end_date,
                "originalEventId": self.original_event_id,
                "rivalId": self.rival_id,
                "rivalName": self.rival_name,
                "isFriendly": self.is_friendly,
                "suspended": self.suspended,
                "suspendedBy": self.suspended_by,
                "suspendedAt": self.suspended_at,
                "archivedAt": self.archived_at,
            }
        )


@dataclass(frozen=True)
class Attendance:
    id: str
    event_id: str
    user_id: str
    user_display_name: str
    status: AttendanceStatus
    created_at: datetime
    updated_at: datetime
    comment: Optional[str] = None
    with_car: bool = False
    can_give_ride: bool = False
    archived_at: Optional[datetime] = None

    @property
    def attending(self) -> bool:
        return self.status is AttendanceStatus.ATTENDING

    @classmethod
    def from_document(
        cls, doc_id: str, data: Dict[str, Any], collection: str = Collections.ATTENDANCES
    ) -> "Attendance":
        f = _Fields(collection, doc_id, data)
        attending = f.required("attending", bool)
        legacy = AttendanceStatus.ATTENDING if attending else AttendanceStatus.NOT_ATTENDING
        status = f.enum("status", AttendanceStatus, default=legacy)
        if status is AttendanceStatus.NOT_VOTED:
            f.fail("status 'not-voted' is never persisted")
        return cls(
            id=doc_id,
            event_id=f.required("eventId", str),
            user_id=f.required("userId", str),
            user_display_name=f.required("userDisplayName", str),
            status=status,
            created_at=f.timestamp("createdAt"),
            updated_at=f.timestamp("updatedAt"),
            comment=f.optional("comment", str),
            with_car=f.optional("withCar", bool, False),
            can_give_ride=f.optional("canGiveRide", bool, False),
            archived_at=f.timestamp("archivedAt", required=False),
        )

    def to_document(self) -> Dict[str, Any]:
        return _without_none(
            {
                "eventId": self.event_id,
                "userId": self.user_id,
                "userDisplayName": self.user_display_name,
                "attending": self.attending,
                "status": self.status.value,
                "comment": self.comment,
                "withCar": self.with_car,
                "canGiveRide": self.can_give_ride,
                "createdAt": self.created_at,
                "updatedAt": self.updated_at,
                "archivedAt": self.archived_at,
            }
        )


STAT_RESULT_FIELDS = ("goals", "assists", "yellowCards", "redCards", "figureOfTheMatch")
STAT_ATTENDANCE_FIELDS = ("matchesAttended", "trainingsAttended")


@dataclass(frozen=True)
class PlayerStats:
    """
    Aggregated counters for one player, keyed by email.

    ``totalAttended`` is always derived from the match and training counters.
    """

    user_id: str
    display_name: str
    matches_attended: int = 0
    trainings_attended: int = 0
    goals: int = 0
    assists: int = 0
    yellow_cards: int = 0
    red_cards: int = 0
    figure_of_the_match: int = 0
    last_updated: Optional[datetime] = None

    @property
    def total_attended(self) -> int:
        return self.matches_attended + self.trainings_attended

    @classmethod
    def empty(cls, user_id: str, display_name: Optional[str] = None) -> "PlayerStats":
        return cls(user_id=user_id, display_name=display_name or user_id)

    @classmethod
    def from_document(cls, doc_id: str, data: Dict[str, Any]) -> "PlayerStats":
        f = _Fields(Collections.STATS, doc_id, data)
        return cls(
            user_id=f.optional("userId", str, doc_id),
            display_name=f.optional("displayName", str, doc_id),
            matches_attended=f.counter("matchesAttended"),
            trainings_attended=f.counter("trainingsAttended"),
            goals=f.counter("goals"),
            assists=f.counter("assists"),
            yellow_cards=f.counter("yellowCards"),
            red_cards=f.counter("redCards"),
            figure_of_the_match=f.counter("figureOfTheMatch"),
            last_updated=f.timestamp("lastUpdated", required=False),
        )

    def counter(self, name: str) -> int:
        return int(self.to_document()[name])

    def with_counters(self, counters: Dict[str, int], *, when: Optional[datetime] = None) -> "PlayerStats":
        """
        Return a copy with the given document-named counters replaced (clamped at 0).
        """
        names = {
            "matchesAttended": "matches_attended",
            "trainingsAttended": "trainings_attended",
            "goals": "goals",
            "assists": "assists",
            "yellowCards": "yellow_cards",
            "redCards": "red_cards",
            "figureOfTheMatch": "figure_of_the_match",
        }
        changes: Dict[str, Any] = {
            names[key]: max(0, int(value)) for key, value in counters.items()
        }
        if when is not None:
            changes["last_updated"] = when
        return replace(self, **changes)

    def to_document(self) -> Dict[str, Any]:
        return _without_none(
            {
                "userId": self.user_id,
                "displayName": self.display_name,
                "matchesAttended": self.matches_attended,
                "trainingsAttended": self.trainings_attended,
                "totalAttended": self.total_attended,
                "goals": self.goals,
                "assists": self.assists,
                "yellowCards": self.yellow_cards,
                "redCards": self.red_cards,
                "figureOfTheMatch": self.figure_of_the_match,
                "lastUpdated": self.last_updated,
            }
        )


@dataclass(frozen=True)
class Goal:
    id: str
    player_id: str
    player_name: str
    created_at: datetime
    assist_player_id: Optional[str] = None
    assist_player_name: Optional[str] = None

    @classmethod
    def from_item(cls, f: _Fields, item: Dict[str, Any]) -> "Goal":
        g = _Fields(f.collection, f.doc_id, item)
        return cls(
            id=g.required("id", str),
            player_id=g.required("playerId", str),
            player_name=g.required("playerName", str),
            created_at=g.timestamp("createdAt"),
            assist_player_id=g.optional("assistPlayerId", str),
            assist_player_name=g.optional("assistPlayerName", str),
        )

    def to_item(self) -> Dict[str, Any]:
        return _without_none(
            {
                "id": self.id,
                "playerId": self.player_id,
                "playerName": self.player_name,
                "assistPlayerId": self.assist_player_id,
                "assistPlayerName": self.assist_player_name,
                "createdAt": self.created_at,
            }
        )


@dataclass(frozen=True)
class Card:
    id: str
    player_id: str
    player_name: str
    card_type: CardType
    created_at: datetime

    @classmethod
    def from_item(cls, f: _Fields, item: Dict[str, Any]) -> "Card":
        c = _Fields(f.collection, f.doc_id, item)
        return cls(
            id=c.required("id", str),
            player_id=c.required("playerId", str),
            player_name=c.required("playerName", str),
            card_type=c.enum("cardType", CardType),
            created_at=c.timestamp("createdAt"),
        )

    def to_item(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "playerId": self.player_id,
            "playerName": self.player_name,
            "cardType": self.card_type.value,
            "createdAt": self.created_at,
        }


@dataclass(frozen=True)
class MatchResult:
    """
    Result of one archived match; the document id is the event id.
    """

    event_id: str
    rival_id: str
    rival_name: str
    furia_goals: int
    rival_goals: int
    date: datetime
    created_at: datetime
    updated_at: datetime
    goals: Tuple[Goal, ...] = ()
    cards: Tuple[Card, ...] = ()
    figure_of_the_match_id: Optional[str] = None
    figure_of_the_match_name: Optional[str] = None
    is_friendly: bool = False
    location: Optional[str] = None

    @property
    def outcome(self) -> str:
        if self.furia_goals > self.rival_goals:
            return "win"
        if self.furia_goals < self.rival_goals:
            return "lose"
        return "draw"

    @classmethod
    def from_document(cls, doc_id: str, data: Dict[str, Any]) -> "MatchResult":
        f = _Fields(Collections.MATCH_RESULTS, doc_id, data)
        return cls(
            event_id=doc_id,
            rival_id=f.required("rivalId", str),
            rival_name=f.required("rivalName", str),
            furia_goals=f.counter("furiaGoals"),
            rival_goals=f.counter("rivalGoals"),
            date=f.timestamp("date"),
            created_at=f.timestamp("createdAt"),
            updated_at=f.timestamp("updatedAt"),
            goals=tuple(Goal.from_item(f, item) for item in f.items("goals")),
            cards=tuple(Card.from_item(f, item) for item in f.items("cards")),
            figure_of_the_match_id=f.optional("figureOfTheMatchId", str) or None,
            figure_of_the_match_name=f.optional("figureOfTheMatchName", str) or None,
            is_friendly=f.optional("isFriendly", bool, False),
            location=f.optional("location", str),
        )

    def to_document(self) -> Dict[str, Any]:
        return {
            "eventId": self.event_id,
            "rivalId": self.rival_id,
            "rivalName": self.rival_name,
            "furiaGoals": self.furia_goals,
            "rivalGoals": self.rival_goals,
            "goals": [goal.to_item() for goal in self.goals],
            "cards": [card.to_item() for card in self.cards],
            "figureOfTheMatchId": self.figure_of_the_match_id,
            "figureOfTheMatchName": self.figure_of_the_match_name,
            "isFriendly": self.is_friendly,
            "date": self.date,
            "location": self.location,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }


@dataclass(frozen=True)
class Rival:
    id: str
    name: str
    created_at: datetime
    created_by: str
    logo_url: str = ""

    @classmethod
    def from_document(cls, doc_id: str, data: Dict[str, Any]) -> "Rival":
        f = _Fields(Collections.RIVALS, doc_id, data)
        return cls(
            id=doc_id,
            name=f.required("name", str),
            created_at=f.timestamp("createdAt"),
            created_by=f.optional("createdBy", str, "unknown"),
            logo_url=f.optional("logoUrl", str, ""),
        )

    def to_document(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "logoUrl": self.logo_url,
            "createdAt": self.created_at,
            "createdBy": self.created_by,
        }


@dataclass(frozen=True)
class Fixture:
    """
    One round ("fecha") of the tournament calendar.
    """

    id: str
    fecha: int
    rival_id: str
    rival_name: str
    created_at: datetime
    updated_at: datetime
    date: Optional[datetime] = None
    location: Optional[str] = None
    played: bool = False
    furia_goals: Optional[int] = None
    rival_goals: Optional[int] = None
    match_result_id: Optional[str] = None

    @classmethod
    def from_document(cls, doc_id: str, data: Dict[str, Any]) -> "Fixture":
        f = _Fields(Collections.FIXTURES, doc_id, data)
        return cls(
            id=doc_id,
            fecha=f.required("fecha", int),
            rival_id=f.required("rivalId", str),
            rival_name=f.required("rivalName", str),
            created_at=f.timestamp("createdAt"),
            updated_at=f.timestamp("updatedAt"),
            date=f.timestamp("date", required=False),
            location=f.optional("location", str),
            played=f.optional("played", bool, False),
            furia_goals=f.optional("furiaGoals", int),
            rival_goals=f.optional("rivalGoals", int),
            match_result_id=f.optional("matchResultId", str),
        )

    def to_document(self) -> Dict[str, Any]:
        return {
            "fecha": self.fecha,
            "rivalId": self.rival_id,
            "rivalName": self.rival_name,
            "date": self.date,
            "location": self.location,
            "played": self.played,
            "furiaGoals": self.furia_goals,
            "rivalGoals": self.rival_goals,
            "matchResultId": self.match_result_id,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }


@dataclass(frozen=True)
class UserProfile:
    id: str
    email: str
    role: Role
    alias: Optional[str] = None
    birthday: Optional[str] = None
    position: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.alias or self.email

    @classmethod
    def from_document(cls, doc_id: str, data: Dict[str, Any]) -> "UserProfile":
        f = _Fields(Collections.USERS, doc_id, data)
        return cls(
            id=doc_id,
            email=f.required("email", str),
            role=f.enum("role", Role, default=Role.PLAYER),
            alias=f.optional("alias", str),
            birthday=f.optional("birthday", str),
            position=f.optional("position", str),
        )

    def to_document(self) -> Dict[str, Any]:
        return _without_none(
            {
                "email": self.email,
                "alias": self.alias,
                "role": self.role.value,
                "birthday": self.birthday,
                "position": self.position,
            }
        )


@dataclass(frozen=True)
class AttendanceEntry:
    """
    One archived attendance as seen by the statistics engine.
    """

    event_id: str
    attended: bool
    event_type: EventType


@dataclass
class RosterRow:
    user_id: str
    display_name: str
    status: AttendanceStatus
    comment: Optional[str] = None
    with_car: bool = False
    can_give_ride: bool = False
