"""
FastAPI app over the club services.

The browser client authenticates elsewhere and forwards the identity in the
``X-User-Id``, ``X-User-Email``, ``X-User-Name`` and ``X-User-Role`` headers.
It also sends ``X-Auth-Token`` carrying the shared secret from
``CLUBSPACE_AUTH_SECRET``. Requests without an identity, or whose token does not
match, get a read-only session.
"""

from __future__ import annotations

import dataclasses
import hmac
import json
import logging
import threading
from contextlib import asynccontextmanager
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from fastapi import APIRouter, Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from clubspace.analytics import attendance_percentages, leaderboard, stats_frame
from clubspace.config import Settings
from clubspace.exceptions import ClubspaceError, StoreErrorKind
from clubspace.records import EventType, RecurringType, Role
from clubspace.services import ArchivalScheduler, ClubServices
from clubspace.services.events import summarize_roster
from clubspace.services.results import CardInput, GoalInput, ResultDraft
from clubspace.session import Session

LOGGER = logging.getLogger(__name__)

ANONYMOUS_USER = "anonymous"

IDENTITY_HEADERS = [
    "Content-Type",
    "X-User-Id",
    "X-User-Email",
    "X-User-Name",
    "X-User-Role",
    "X-Auth-Token",
]

_SERVICES_LOCK = threading.Lock()

_STATUS_BY_KIND = {
    StoreErrorKind.UNAVAILABLE: 503,
    StoreErrorKind.PERMISSION_DENIED: 403,
    StoreErrorKind.NOT_FOUND: 404,
    StoreErrorKind.VALIDATION: 422,
    StoreErrorKind.UNKNOWN: 500,
}


class StatsAction(str, Enum):
    REPROCESS = "reprocess"
    RECALCULATE = "recalculate"
    INITIALIZE = "initialize"
    SYNC = "sync"
    CONSOLIDATE = "consolidate"


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class EventCreateRequest(BaseModel):
    event_type: EventType
    title: str = Field(..., max_length=100)
    date: datetime
    description: Optional[str] = None
    location: Optional[str] = None
    recurring_type: Optional[RecurringType] = None
    recurring_end_date: Optional[datetime] = None
    rival_id: Optional[str] = None


class VoteRequest(BaseModel):
    status: str
    comment: Optional[str] = None
    with_car: bool = False
    can_give_ride: bool = False


class GoalPayload(BaseModel):
    player_id: str
    assist_player_id: Optional[str] = None


class CardPayload(BaseModel):
    player_id: str
    card_type: str


class ResultRequest(BaseModel):
    rival_id: Optional[str] = None
    furia_goals: int = 0
    rival_goals: int = 0
    goals: List[GoalPayload] = Field(default_factory=list)
    cards: List[CardPayload] = Field(default_factory=list)
    figure_of_the_match_id: Optional[str] = None
    is_friendly: bool = False


class RivalRequest(BaseModel):
    name: str


class FixtureRequest(BaseModel):
    fecha: int
    rival_id: str
    match_date: Optional[date] = None
    location: Optional[str] = None
    match_result_id: Optional[str] = None


class UserCreateRequest(BaseModel):
    email: str
    role: Role = Role.PLAYER
    alias: Optional[str] = None
    birthday: Optional[str] = None
    position: Optional[str] = None


class UserUpdateRequest(BaseModel):
    role: Role
    alias: Optional[str] = None
    birthday: Optional[str] = None
    position: Optional[str] = None


class AliasRequest(BaseModel):
    alias: str


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _http_error(exc: ClubspaceError, action: str) -> HTTPException:
    status = _STATUS_BY_KIND.get(exc.kind, 500)
    if status == 503:
        detail = "The club database is unavailable right now. Please try again in a moment."
    elif status == 403:
        detail = f"{exc} Check that your role is allowed to {action}."
    elif status == 500:
        detail = f"Failed to {action}: {exc}"
    else:
        detail = str(exc)
    if status >= 500:
        LOGGER.error("Failed to %s: %s", action, exc)
    else:
        LOGGER.warning("Rejected request to %s: %s", action, exc)
    return HTTPException(status_code=status, detail=detail)


def _doc(record: Any) -> Dict[str, Any]:
    payload = record.to_document()
    record_id = getattr(record, "id", None)
    if record_id is not None:
        payload = {"id": record_id, **payload}
    return payload


def _records(df) -> List[Dict[str, Any]]:
    return json.loads(df.to_json(orient="records", date_format="iso"))


def get_services(request: Request) -> ClubServices:
    services = request.app.state.services
    if services is None:
        with _SERVICES_LOCK:
            services = request.app.state.services
            if services is None:
                services = ClubServices.build(request.app.state.settings)
                request.app.state.services = services
    return services


def _token_matches(token: Optional[str], secret: Optional[str]) -> bool:
    if not token or not secret:
        return False
    return hmac.compare_digest(token.encode("utf-8"), secret.encode("utf-8"))


def get_session(
    request: Request,
    x_user_id: Optional[str] = Header(None),
    x_user_email: Optional[str] = Header(None),
    x_user_name: Optional[str] = Header(None),
    x_user_role: Optional[str] = Header(None),
    x_auth_token: Optional[str] = Header(None),
) -> Session:
    email = (x_user_email or "").strip().lower()
    user_id = (x_user_id or "").strip() or email
    if not user_id:
        return Session(ANONYMOUS_USER, "", "Anonymous", Role.VIEWER)
    display_name = (x_user_name or "").strip() or email or user_id
    if not _token_matches(x_auth_token, request.app.state.settings.auth_secret):
        LOGGER.warning("Unverified identity headers for %s; using VIEWER", user_id)
        return Session(user_id, email, display_name, Role.VIEWER)
    try:
        role = Role((x_user_role or Role.VIEWER.value).strip().upper())
    except ValueError:
        LOGGER.warning("Unknown role header %r for %s; using VIEWER", x_user_role, user_id)
        role = Role.VIEWER
    return Session(user_id, email, display_name, role)


router = APIRouter(prefix="/api")


@router.get("/health")
def health() -> Dict[str, str]:
    return {"status": "ok"}


# ---------------------------------------------------------------------------
# Events and attendance
# ---------------------------------------------------------------------------


@router.get("/events")
def list_events(services: ClubServices = Depends(get_services)) -> Dict[str, Any]:
    try:
        events = services.events.load_active_events()
    except ClubspaceError as exc:
        raise _http_error(exc, "load events") from exc
    return {"events": [_doc(event) for event in events]}


@router.post("/events", status_code=201)
def create_event(
    request: EventCreateRequest,
    services: ClubServices = Depends(get_services),
    session: Session = Depends(get_session),
) -> Dict[str, Any]:
    try:
        events = services.events.create_event(
            session,
            event_type=request.event_type,
            title=request.title,
            date=request.date,
            description=request.description,
            location=request.location,
            recurring_type=request.recurring_type,
            recurring_end_date=request.recurring_end_date,
            rival_id=request.rival_id,
        )
    except ClubspaceError as exc:
        raise _http_error(exc, "create events") from exc
    return {"created": len(events), "events": [_doc(event) for event in events]}


@router.post("/events/{event_id}/suspend")
def suspend_event(
    event_id: str,
    services: ClubServices = Depends(get_services),
    session: Session = Depends(get_session),
) -> Dict[str, Any]:
    try:
        return _doc(services.events.suspend_event(session, event_id))
    except ClubspaceError as exc:
        raise _http_error(exc, "suspend events") from exc


@router.post("/events/{event_id}/resume")
def resume_event(
    event_id: str,
    services: ClubServices = Depends(get_services),
    session: Session = Depends(get_session),
) -> Dict[str, Any]:
    try:
        return _doc(services.events.resume_event(session, event_id))
    except ClubspaceError as exc:
        raise _http_error(exc, "resume events") from exc


@router.delete("/events/{event_id}")
def delete_event(
    event_id: str,
    services: ClubServices = Depends(get_services),
    session: Session = Depends(get_session),
) -> Dict[str, int]:
    try:
        deleted = services.events.delete_event(session, event_id)
    except ClubspaceError as exc:
        raise _http_error(exc, "delete events") from exc
    return {"deleted": deleted}


@router.delete("/events")
def delete_all_events(
    services: ClubServices = Depends(get_services),
    session: Session = Depends(get_session),
) -> Dict[str, int]:
    try:
        deleted = services.events.delete_all_live_events(session)
    except ClubspaceError as exc:
        raise _http_error(exc, "delete events") from exc
    return {"deleted": deleted}


@router.put("/events/{event_id}/attendance")
def vote(
    event_id: str,
    request: VoteRequest,
    services: ClubServices = Depends(get_services),
    session: Session = Depends(get_session),
) -> Dict[str, Any]:
    try:
        attendance = services.events.record_attendance(
            session,
            event_id,
            request.status,
            comment=request.comment,
            with_car=request.with_car,
            can_give_ride=request.can_give_ride,
        )
    except ClubspaceError as exc:
        raise _http_error(exc, "record attendance") from exc
    return _doc(attendance)


@router.get("/events/{event_id}/roster")
def event_roster(event_id: str, services: ClubServices = Depends(get_services)) -> Dict[str, Any]:
    try:
        rows = services.events.event_roster(event_id)
    except ClubspaceError as exc:
        raise _http_error(exc, "load the roster") from exc
    return {
        "eventId": event_id,
        "summary": summarize_roster(rows),
        "rows": [dataclasses.asdict(row) for row in rows],
    }


@router.post("/admin/archive")
def run_archival(
    services: ClubServices = Depends(get_services),
    session: Session = Depends(get_session),
) -> Dict[str, Any]:
    try:
        session.require_admin()
        report = services.archival.reconcile()
    except ClubspaceError as exc:
        raise _http_error(exc, "archive past events") from exc
    return dataclasses.asdict(report)


# ---------------------------------------------------------------------------
# Matches
# ---------------------------------------------------------------------------


@router.get("/matches")
def match_history(
    rival_id: Optional[str] = Query(None),
    outcome: Optional[Literal["win", "draw", "lose"]] = Query(None),
    services: ClubServices = Depends(get_services),
) -> Dict[str, Any]:
    try:
        items = services.results.list_match_history(rival_id=rival_id, outcome=outcome)
    except ClubspaceError as exc:
        raise _http_error(exc, "load the match history") from exc
    return {
        "matches": [
            {
                "event": _doc(item.event),
                "attendance": item.attendance,
                "result": item.result.to_document() if item.result else None,
                "outcome": item.result.outcome if item.result else None,
            }
            for item in items
        ]
    }


@router.put("/matches/{event_id}/result")
def save_result(
    event_id: str,
    request: ResultRequest,
    services: ClubServices = Depends(get_services),
    session: Session = Depends(get_session),
) -> Dict[str, Any]:
    draft = ResultDraft(
        rival_id=request.rival_id,
        furia_goals=request.furia_goals,
        rival_goals=request.rival_goals,
        goals=[GoalInput(goal.player_id, goal.assist_player_id) for goal in request.goals],
        cards=[CardInput(card.player_id, card.card_type) for card in request.cards],
        figure_of_the_match_id=request.figure_of_the_match_id,
        is_friendly=request.is_friendly,
    )
    try:
        outcome = services.results.save_result(session, event_id, draft)
    except ClubspaceError as exc:
        raise _http_error(exc, "save the match result") from exc
    return {"result": outcome.result.to_document(), "statsDeltas": outcome.deltas}


@router.delete("/matches/{event_id}")
def delete_match(
    event_id: str,
    services: ClubServices = Depends(get_services),
    session: Session = Depends(get_session),
) -> Dict[str, int]:
    try:
        deleted = services.results.delete_match(session, event_id)
    except ClubspaceError as exc:
        raise _http_error(exc, "delete the match") from exc
    return {"deleted": deleted}


# ---------------------------------------------------------------------------
# Rivals and fixtures
# ---------------------------------------------------------------------------


@router.get("/rivals")
def list_rivals(services: ClubServices = Depends(get_services)) -> Dict[str, Any]:
    try:
        rivals = services.fixtures.list_rivals()
    except ClubspaceError as exc:
        raise _http_error(exc, "load rivals") from exc
    return {"rivals": [_doc(rival) for rival in rivals]}


@router.post("/rivals", status_code=201)
def create_rival(
    request: RivalRequest,
    services: ClubServices = Depends(get_services),
    session: Session = Depends(get_session),
) -> Dict[str, Any]:
    try:
        return _doc(services.fixtures.create_rival(session, request.name))
    except ClubspaceError as exc:
        raise _http_error(exc, "create rivals") from exc


@router.put("/rivals/{rival_id}")
def rename_rival(
    rival_id: str,
    request: RivalRequest,
    services: ClubServices = Depends(get_services),
    session: Session = Depends(get_session),
) -> Dict[str, Any]:
    try:
        return _doc(services.fixtures.rename_rival(session, rival_id, request.name))
    except ClubspaceError as exc:
        raise _http_error(exc, "rename rivals") from exc


@router.delete("/rivals/{rival_id}")
def delete_rival(
    rival_id: str,
    services: ClubServices = Depends(get_services),
    session: Session = Depends(get_session),
) -> Dict[str, str]:
    try:
        services.fixtures.delete_rival(session, rival_id)
    except ClubspaceError as exc:
        raise _http_error(exc, "delete rivals") from exc
    return {"status": "deleted"}


@router.get("/fixtures")
def list_fixtures(services: ClubServices = Depends(get_services)) -> Dict[str, Any]:
    try:
        fixtures = services.fixtures.list_fixtures()
        next_round = services.fixtures.next_round()
    except ClubspaceError as exc:
        raise _http_error(exc, "load the fixture") from exc
    return {"fixtures": [_doc(fixture) for fixture in fixtures], "nextRound": next_round}


def _save_fixture(
    services: ClubServices, session: Session, request: FixtureRequest, fixture_id: Optional[str]
) -> Dict[str, Any]:
    try:
        fixture = services.fixtures.save_fixture(
            session,
            fecha=request.fecha,
            rival_id=request.rival_id,
            match_date=request.match_date,
            location=request.location,
            match_result_id=request.match_result_id,
            fixture_id=fixture_id,
        )
    except ClubspaceError as exc:
        raise _http_error(exc, "save fixtures") from exc
    return _doc(fixture)


@router.post("/fixtures", status_code=201)
def create_fixture(
    request: FixtureRequest,
    services: ClubServices = Depends(get_services),
    session: Session = Depends(get_session),
) -> Dict[str, Any]:
    return _save_fixture(services, session, request, None)


@router.put("/fixtures/{fixture_id}")
def update_fixture(
    fixture_id: str,
    request: FixtureRequest,
    services: ClubServices = Depends(get_services),
    session: Session = Depends(get_session),
) -> Dict[str, Any]:
    return _save_fixture(services, session, request, fixture_id)


@router.delete("/fixtures/{fixture_id}")
def delete_fixture(
    fixture_id: str,
    services: ClubServices = Depends(get_services),
    session: Session = Depends(get_session),
) -> Dict[str, str]:
    try:
        services.fixtures.delete_fixture(session, fixture_id)
    except ClubspaceError as exc:
        raise _http_error(exc, "delete fixtures") from exc
    return {"status": "deleted"}


# ---------------------------------------------------------------------------
# Stats
# ---------------------------------------------------------------------------


@router.get("/stats")
def list_stats(services: ClubServices = Depends(get_services)) -> Dict[str, Any]:
    try:
        df = stats_frame(services.repo.all_stats().values())
    except ClubspaceError as exc:
        raise _http_error(exc, "load stats") from exc
    return {"players": _records(df)}


@router.get("/stats/leaderboard")
def stats_leaderboard(
    metric: str = Query("goals"),
    limit: int = Query(10, ge=1, le=100),
    services: ClubServices = Depends(get_services),
) -> Dict[str, Any]:
    try:
        df = leaderboard(services.repo.all_stats().values(), metric, limit=limit)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except ClubspaceError as exc:
        raise _http_error(exc, "build the leaderboard") from exc
    return {"metric": metric, "rows": _records(df)}


@router.get("/stats/attendance")
def stats_attendance(services: ClubServices = Depends(get_services)) -> Dict[str, Any]:
    try:
        df = attendance_percentages(
            services.repo.archived_events(), services.repo.attendances(archived=True)
        )
    except ClubspaceError as exc:
        raise _http_error(exc, "build the attendance table") from exc
    return {"rows": _records(df)}


@router.post("/admin/stats/{action}")
def stats_maintenance(
    action: StatsAction,
    reset_inactive: bool = Query(False),
    services: ClubServices = Depends(get_services),
    session: Session = Depends(get_session),
) -> Dict[str, Any]:
    try:
        session.require_admin()
        if action is StatsAction.REPROCESS:
            result: Any = dataclasses.asdict(
                services.stats.reprocess_match_results(reset_inactive=reset_inactive)
            )
        elif action is StatsAction.RECALCULATE:
            result = dataclasses.asdict(services.stats.recalculate_attendance())
        elif action is StatsAction.INITIALIZE:
            result = {"created": services.stats.initialize_stats()}
        elif action is StatsAction.SYNC:
            result = {"deleted": services.stats.sync_with_users()}
        else:
            result = {"consolidated": services.stats.consolidate_duplicates()}
    except ClubspaceError as exc:
        raise _http_error(exc, f"{action.value} stats") from exc
    return {"action": action.value, "result": result}


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


@router.get("/users")
def list_users(
    services: ClubServices = Depends(get_services),
    session: Session = Depends(get_session),
) -> Dict[str, Any]:
    try:
        session.require_admin()
        users = services.users.list_users()
    except ClubspaceError as exc:
        raise _http_error(exc, "list users") from exc
    return {"users": [_doc(user) for user in users]}


@router.post("/users", status_code=201)
def add_user(
    request: UserCreateRequest,
    services: ClubServices = Depends(get_services),
    session: Session = Depends(get_session),
) -> Dict[str, Any]:
    try:
        user = services.users.add_user(
            session,
            email=request.email,
            role=request.role,
            alias=request.alias,
            birthday=request.birthday,
            position=request.position,
        )
    except ClubspaceError as exc:
        raise _http_error(exc, "add users") from exc
    return _doc(user)


@router.put("/users/me/alias")
def update_alias(
    request: AliasRequest,
    services: ClubServices = Depends(get_services),
    session: Session = Depends(get_session),
) -> Dict[str, Any]:
    try:
        return _doc(services.users.update_display_name(session, request.alias))
    except ClubspaceError as exc:
        raise _http_error(exc, "change your alias") from exc


@router.put("/users/{user_id}")
def update_user(
    user_id: str,
    request: UserUpdateRequest,
    services: ClubServices = Depends(get_services),
    session: Session = Depends(get_session),
) -> Dict[str, Any]:
    try:
        user = services.users.update_user(
            session,
            user_id,
            role=request.role,
            alias=request.alias,
            birthday=request.birthday,
            position=request.position,
        )
    except ClubspaceError as exc:
        raise _http_error(exc, "update users") from exc
    return _doc(user)


@router.delete("/users/{user_id}")
def delete_user(
    user_id: str,
    services: ClubServices = Depends(get_services),
    session: Session = Depends(get_session),
) -> Dict[str, str]:
    try:
        services.users.delete_user(session, user_id)
    except ClubspaceError as exc:
        raise _http_error(exc, "delete users") from exc
    return {"status": "deleted"}


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------


@asynccontextmanager
async def _lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    logging.getLogger("clubspace").setLevel(settings.log_level)
    owned = app.state.services is None
    if owned:
        app.state.services = ClubServices.build(settings)
    scheduler: Optional[ArchivalScheduler] = None
    if settings.archive_interval_seconds > 0:
        scheduler = ArchivalScheduler(app.state.services.archival, settings.archive_interval_seconds)
        scheduler.start()
    try:
        yield
    finally:
        if scheduler is not None:
            await scheduler.stop()
        if owned:
            app.state.services.close()
            app.state.services = None


def create_app(
    services: Optional[ClubServices] = None,
    settings: Optional[Settings] = None,
) -> FastAPI:
    """
    Build the API. Without ``services`` the store is opened at startup.
    """
    if settings is None:
        settings = services.settings if services else Settings.from_env()
    application = FastAPI(title="Clubspace API", version="0.1.0", lifespan=_lifespan)
    application.state.services = services
    application.state.settings = settings
    application.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=False,
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=IDENTITY_HEADERS,
    )
    application.include_router(router)
    return application


app = create_app()
