"""
Event creation, attendance voting and the active events view.
"""
from __future__ import annotations

import calendar
import logging
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from ..exceptions import DocumentNotFoundError, ValidationError
from ..records import (
    Attendance,
    AttendanceStatus,
    Collections,
    Event,
    EventType,
    RecurringType,
    RosterRow,
    as_utc,
    utcnow,
)
from ..session import Session
from ..store import new_document_id
from .archival import DEFAULT_ACTIVE_WINDOW, DEFAULT_GRACE, ArchivalEngine, classify_events
from .repository import ClubRepository, attendance_id
from .stats import PlayerDirectory

LOGGER = logging.getLogger(__name__)

MAX_TITLE_LENGTH = 100
MAX_OCCURRENCES = 366

VOTABLE_STATUSES = (
    AttendanceStatus.ATTENDING,
    AttendanceStatus.NOT_ATTENDING,
    AttendanceStatus.PENDING,
)


def _add_months(value: datetime, months: int) -> datetime:
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def expand_recurrence(
    start: datetime, recurring_type: RecurringType, until: datetime
) -> List[datetime]:
    """
    Occurrence dates from ``start`` up to and including ``until``.

    Monthly and yearly steps are computed from ``start`` so a 31st keeps
    landing on the last day of shorter months without drifting.
    """
    dates: List[datetime] = []
    step = 0
    while len(dates) < MAX_OCCURRENCES:
        if recurring_type is RecurringType.WEEKLY:
            occurrence = start + timedelta(weeks=step)
        elif recurring_type is RecurringType.MONTHLY:
            occurrence = _add_months(start, step)
        else:
            occurrence = _add_months(start, 12 * step)
        if occurrence > until:
            break
        dates.append(occurrence)
        step += 1
    return dates


def summarize_roster(rows: List[RosterRow]) -> Dict[str, int]:
    summary = {status.value: 0 for status in AttendanceStatus}
    for row in rows:
        summary[row.status.value] += 1
    summary["withCar"] = sum(1 for row in rows if row.with_car)
    summary["canGiveRide"] = sum(1 for row in rows if row.can_give_ride)
    return summary


class EventService:
    """
    User-facing operations over live events and their attendances.
    """

    def __init__(
        self,
        repo: ClubRepository,
        archival: ArchivalEngine,
        *,
        archive_on_read: bool = True,
        grace: timedelta = DEFAULT_GRACE,
        window: timedelta = DEFAULT_ACTIVE_WINDOW,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.repo = repo
        self.archival = archival
        self.archive_on_read = archive_on_read
        self.grace = grace
        self.window = window
        self.clock = clock

    def _live_event(self, event_id: str) -> Event:
        event = self.repo.get_event(event_id)
        if event is None:
            raise DocumentNotFoundError(f"Event {event_id} not found or already archived.")
        return event

    def load_active_events(self, now: Optional[datetime] = None) -> List[Event]:
        """
        Events to show: not past their grace period and within the display window.
        """
        now = as_utc(now or self.clock())
        if self.archive_on_read:
            self.archival.run_safely(now)
        partition = classify_events(
            self.repo.live_events(), now, grace=self.grace, window=self.window
        )
        return partition.active

    def create_event(
        self,
        session: Session,
        *,
        event_type: EventType,
        title: str,
        date: datetime,
        description: Optional[str] = None,
        location: Optional[str] = None,
        recurring_type: Optional[RecurringType] = None,
        recurring_end_date: Optional[datetime] = None,
        rival_id: Optional[str] = None,
    ) -> List[Event]:
        """
        Create an event, or every occurrence of a recurring one.
        """
        session.require_admin()
        title = (title or "").strip()
        if not title:
            raise ValidationError("Event title is required.")
        if len(title) > MAX_TITLE_LENGTH:
            raise ValidationError(f"Event title must be at most {MAX_TITLE_LENGTH} characters.")
        date = as_utc(date)

        rival_name = None
        if rival_id:
            if event_type is not EventType.MATCH:
                raise ValidationError("Only matches can have a rival.")
            rival = self.repo.get_rival(rival_id)
            if rival is None:
                raise ValidationError("Rival not found.")
            rival_name = rival.name

        dates = [date]
        if recurring_type is not None:
            if recurring_end_date is None:
                raise ValidationError("Recurring events need an end date.")
            recurring_end_date = as_utc(recurring_end_date)
            if recurring_end_date < date:
                raise ValidationError("The recurrence end date must be after the first event.")
            dates = expand_recurrence(date, recurring_type, recurring_end_date)

        now = self.clock()
        ids = [new_document_id() for _ in dates]
        events = [
            Event(
                id=doc_id,
                type=event_type,
                date=occurrence,
                title=title,
                created_by=session.user_id,
                created_at=now,
                description=(description or "").strip() or None,
                location=(location or "").strip() or None,
                is_recurring=recurring_type is not None,
                recurring_type=recurring_type,
                recurring_end_date=recurring_end_date if recurring_type else None,
                original_event_id=ids[0] if recurring_type and index else None,
                rival_id=rival_id or None,
                rival_name=rival_name,
            )
            for index, (doc_id, occurrence) in enumerate(zip(ids, dates))
        ]
        batch = self.repo.store.batch()
        for event in events:
            batch.set(Collections.EVENTS, event.id, event.to_document())
        batch.commit()
        LOGGER.info("Created %s event(s) '%s' by %s", len(events), title, session.email)
        return events

    def suspend_event(self, session: Session, event_id: str) -> Event:
        session.require_admin()
        self._live_event(event_id)
        self.repo.store.update_document(
            Collections.EVENTS,
            event_id,
            {"suspended": True, "suspendedBy": session.user_id, "suspendedAt": self.clock()},
        )
        LOGGER.info("Event %s suspended by %s", event_id, session.email)
        return self._live_event(event_id)

    def resume_event(self, session: Session, event_id: str) -> Event:
        session.require_admin()
        self._live_event(event_id)
        self.repo.store.update_document(
            Collections.EVENTS,
            event_id,
            {"suspended": False, "suspendedBy": None, "suspendedAt": None},
        )
        return self._live_event(event_id)

    def delete_event(self, session: Session, event_id: str) -> int:
        """
        Delete a live event together with its attendances.
        """
        session.require_admin()
        self._live_event(event_id)
        batch = self.repo.store.batch()
        for attendance in self.repo.attendances(event_id):
            batch.delete(Collections.ATTENDANCES, attendance.id)
        batch.delete(Collections.EVENTS, event_id)
        return batch.commit()

    def delete_all_live_events(self, session: Session) -> int:
        session.require_admin()
        batch = self.repo.store.batch()
        for attendance in self.repo.attendances():
            batch.delete(Collections.ATTENDANCES, attendance.id)
        for event in self.repo.live_events():
            batch.delete(Collections.EVENTS, event.id)
        deleted = batch.commit()
        LOGGER.warning("Deleted all live events and attendances (%s documents)", deleted)
        return deleted

    def record_attendance(
        self,
        session: Session,
        event_id: str,
        status: AttendanceStatus | str,
        *,
        comment: Optional[str] = None,
        with_car: bool = False,
        can_give_ride: bool = False,
    ) -> Attendance:
        """
        Create or replace the session user's vote for a live event.
        """
        session.require_writer()
        try:
            status = AttendanceStatus(status)
        except ValueError as exc:
            raise ValidationError(f"Unknown attendance status {status!r}.") from exc
        if status not in VOTABLE_STATUSES:
            raise ValidationError(f"Status '{status.value}' cannot be recorded.")
        event = self._live_event(event_id)
        if event.suspended:
            raise ValidationError("This event is suspended.")

        now = self.clock()
        existing = self.repo.get_attendance(session.user_id, event_id)
        attendance = Attendance(
            id=attendance_id(session.user_id, event_id),
            event_id=event_id,
            user_id=session.user_id,
            user_display_name=session.display_name,
            status=status,
            created_at=existing.created_at if existing else now,
            updated_at=now,
            comment=(comment or "").strip() or None,
            with_car=with_car,
            can_give_ride=with_car and can_give_ride,
        )
        self.repo.store.set_document(Collections.ATTENDANCES, attendance.id, attendance.to_document())
        return attendance

    def event_roster(self, event_id: str) -> List[RosterRow]:
        """
        Every counted player's status for an event; players without a record
        are reported as ``not-voted``.
        """
        archived = False
        if self.repo.get_event(event_id) is None:
            if self.repo.get_archived_event(event_id) is None:
                raise DocumentNotFoundError(f"Event {event_id} not found.")
            archived = True
        directory = PlayerDirectory.from_repository(self.repo)
        by_user: Dict[str, Attendance] = {}
        for attendance in self.repo.attendances(event_id, archived=archived):
            user = directory.resolve(attendance.user_id)
            by_user[user.email if user else attendance.user_id] = attendance

        rows: List[RosterRow] = []
        for user in directory.counted_users():
            attendance = by_user.pop(user.email, None)
            if attendance is None:
                rows.append(RosterRow(user.email, user.display_name, AttendanceStatus.NOT_VOTED))
            else:
                rows.append(self._row(user.email, user.display_name, attendance))
        for user_id, attendance in by_user.items():
            if directory.attendance_key(user_id) is None:
                continue
            rows.append(self._row(user_id, attendance.user_display_name, attendance))
        rows.sort(key=lambda row: row.display_name.lower())
        return rows

    @staticmethod
    def _row(user_id: str, display_name: str, attendance: Attendance) -> RosterRow:
        return RosterRow(
            user_id=user_id,
            display_name=display_name,
            status=attendance.status,
            comment=attendance.comment,
            with_car=attendance.with_car,
            can_give_ride=attendance.can_give_ride,
        )
