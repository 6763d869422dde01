from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from clubspace.exceptions import DocumentNotFoundError, ReadOnlyError, ValidationError
from clubspace.records import AttendanceStatus, Collections, EventType, RecurringType
from clubspace.services.events import expand_recurrence, summarize_roster

from conftest import NOW, seed_attendance, seed_club, seed_event, seed_rival


def test_create_single_event(store, services, admin):
    events = services.events.create_event(
        admin,
        event_type=EventType.TRAINING,
        title="  Entrenamiento  ",
        date=NOW + timedelta(days=1),
        location="Club",
    )

    assert len(events) == 1
    stored = services.repo.get_event(events[0].id)
    assert stored.title == "Entrenamiento"
    assert stored.is_recurring is False
    assert stored.created_by == "u-admin"
    assert stored.created_at == NOW


def test_create_weekly_recurring_event(store, services, admin):
    start = NOW + timedelta(days=1)
    events = services.events.create_event(
        admin,
        event_type=EventType.TRAINING,
        title="Training",
        date=start,
        recurring_type=RecurringType.WEEKLY,
        recurring_end_date=start + timedelta(weeks=3),
    )

    assert [event.date for event in events] == [start + timedelta(weeks=n) for n in range(4)]
    assert events[0].original_event_id is None
    assert {event.original_event_id for event in events[1:]} == {events[0].id}
    assert len(store.list_documents(Collections.EVENTS)) == 4


def test_monthly_recurrence_clamps_to_month_end():
    start = datetime(2026, 1, 31, 19, 0, tzinfo=timezone.utc)
    dates = expand_recurrence(start, RecurringType.MONTHLY, datetime(2026, 4, 30, 23, 0, tzinfo=timezone.utc))
    assert [value.day for value in dates] == [31, 28, 31, 30]


def test_create_event_validation(store, services, admin, player):
    with pytest.raises(ReadOnlyError):
        services.events.create_event(player, event_type=EventType.MATCH, title="x", date=NOW)
    with pytest.raises(ValidationError):
        services.events.create_event(admin, event_type=EventType.MATCH, title="x" * 101, date=NOW)
    with pytest.raises(ValidationError):
        services.events.create_event(
            admin, event_type=EventType.TRAINING, title="x", date=NOW, recurring_type=RecurringType.WEEKLY
        )
    with pytest.raises(ValidationError, match="Only matches"):
        services.events.create_event(
            admin, event_type=EventType.TRAINING, title="x", date=NOW, rival_id="r1"
        )


def test_match_event_copies_rival_name(store, services, admin):
    seed_rival(store, "r1", "Las Leonas")
    events = services.events.create_event(
        admin, event_type=EventType.MATCH, title="Fecha 3", date=NOW + timedelta(days=3), rival_id="r1"
    )
    assert events[0].rival_name == "Las Leonas"


def test_vote_and_revote(store, services, player):
    seed_club(store)
    seed_event(store, "t1", "TRAINING", NOW + timedelta(days=1))

    first = services.events.record_attendance(player, "t1", "attending", with_car=True, can_give_ride=True)
    assert first.id == "u1_t1"
    assert first.attending

    second = services.events.record_attendance(player, "t1", AttendanceStatus.NOT_ATTENDING, comment=" sick ")
    stored = services.repo.get_attendance("u1", "t1")
    assert stored.status is AttendanceStatus.NOT_ATTENDING
    assert stored.comment == "sick"
    assert stored.with_car is False
    assert stored.created_at == first.created_at
    assert second.updated_at == NOW


def test_vote_rejections(store, services, player, viewer):
    seed_club(store)
    seed_event(store, "t1", "TRAINING", NOW + timedelta(days=1))
    seed_event(store, "t2", "TRAINING", NOW + timedelta(days=2), suspended=True)

    with pytest.raises(ReadOnlyError):
        services.events.record_attendance(viewer, "t1", "attending")
    with pytest.raises(ValidationError):
        services.events.record_attendance(player, "t1", "not-voted")
    with pytest.raises(ValidationError):
        services.events.record_attendance(player, "t1", "maybe")
    with pytest.raises(ValidationError, match="suspended"):
        services.events.record_attendance(player, "t2", "attending")
    with pytest.raises(DocumentNotFoundError):
        services.events.record_attendance(player, "nope", "attending")
    assert store.list_documents(Collections.ATTENDANCES) == []


def test_ride_offer_requires_a_car(store, services, player):
    seed_club(store)
    seed_event(store, "t1", "TRAINING", NOW + timedelta(days=1))
    attendance = services.events.record_attendance(player, "t1", "attending", can_give_ride=True)
    assert attendance.can_give_ride is False


def test_roster_lists_not_voted_players(store, services):
    seed_club(store)
    seed_event(store, "t1", "TRAINING", NOW + timedelta(days=1))
    seed_attendance(store, "ana@club.test", "t1", "attending", display_name="Ana")
    seed_attendance(store, "u2", "t1", "pending", display_name="Bea")
    seed_attendance(store, "mama@club.test", "t1", "attending", display_name="Mama")

    rows = services.events.event_roster("t1")

    by_user = {row.user_id: row.status for row in rows}
    assert by_user == {
        "capi@club.test": AttendanceStatus.NOT_VOTED,
        "ana@club.test": AttendanceStatus.ATTENDING,
        "bea@club.test": AttendanceStatus.PENDING,
        "caro@club.test": AttendanceStatus.NOT_VOTED,
    }
    summary = summarize_roster(rows)
    assert summary["attending"] == 1
    assert summary["not-voted"] == 2


def test_roster_of_archived_event(store, services):
    seed_club(store)
    seed_event(store, "m1", "MATCH", NOW - timedelta(days=1), archived=True)
    seed_attendance(store, "u3", "m1", "not-attending", archived=True)

    rows = services.events.event_roster("m1")
    statuses = {row.user_id: row.status for row in rows}
    assert statuses["caro@club.test"] is AttendanceStatus.NOT_ATTENDING

    with pytest.raises(DocumentNotFoundError):
        services.events.event_roster("nope")


def test_suspend_resume_and_delete(store, services, admin):
    seed_club(store)
    seed_event(store, "t1", "TRAINING", NOW + timedelta(days=1))
    seed_attendance(store, "u1", "t1", "attending")

    suspended = services.events.suspend_event(admin, "t1")
    assert suspended.suspended is True
    assert suspended.suspended_by == "u-admin"
    resumed = services.events.resume_event(admin, "t1")
    assert resumed.suspended is False
    assert resumed.suspended_at is None

    assert services.events.delete_event(admin, "t1") == 2
    assert services.repo.get_event("t1") is None
    assert store.list_documents(Collections.ATTENDANCES) == []


def test_delete_all_live_events(store, services, admin):
    seed_club(store)
    seed_event(store, "t1", "TRAINING", NOW + timedelta(days=1))
    seed_event(store, "t2", "TRAINING", NOW + timedelta(days=8))
    seed_attendance(store, "u1", "t1", "attending")
    seed_event(store, "m0", "MATCH", NOW - timedelta(days=8), archived=True)

    assert services.events.delete_all_live_events(admin) == 3
    assert services.repo.live_events() == []
    assert services.repo.get_archived_event("m0") is not None
