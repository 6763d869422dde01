"""
Archival of past events and their attendances.

An event is archivable once ``now > date + grace`` (one hour by default).
Archiving credits attendance stats first and then moves the event and its
attendances to the ``*_archive`` collections in a single batch. The two steps
are not atomic together: if the batch fails the stats stay credited and the
event is archived (and credited again) on a later pass.
"""
from __future__ import annotations

import asyncio
import contextlib
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Sequence

from ..records import (
    Attendance,
    AttendanceEntry,
    Collections,
    Event,
    as_utc,
    utcnow,
)
from .repository import ClubRepository
from .stats import StatsEngine

LOGGER = logging.getLogger(__name__)

DEFAULT_GRACE = timedelta(hours=1)
DEFAULT_ACTIVE_WINDOW = timedelta(days=10)


@dataclass
class EventPartition:
    archivable: List[Event] = field(default_factory=list)
    active: List[Event] = field(default_factory=list)
    upcoming_later: List[Event] = field(default_factory=list)


def is_archivable(event: Event, now: datetime, grace: timedelta = DEFAULT_GRACE) -> bool:
    return as_utc(now) > event.date + grace


def classify_events(
    events: Sequence[Event],
    now: datetime,
    *,
    grace: timedelta = DEFAULT_GRACE,
    window: timedelta = DEFAULT_ACTIVE_WINDOW,
) -> EventPartition:
    """
    Split live events into archivable, active and not-yet-displayed ones.
    """
    now = as_utc(now)
    partition = EventPartition()
    for event in events:
        if is_archivable(event, now, grace):
            partition.archivable.append(event)
        elif event.date <= now + window:
            partition.active.append(event)
        else:
            partition.upcoming_later.append(event)
    partition.active.sort(key=lambda event: event.date)
    return partition


@dataclass
class ArchivalReport:
    archived_event_ids: List[str] = field(default_factory=list)
    archived_attendances: int = 0
    credited_users: List[str] = field(default_factory=list)

    @property
    def archived(self) -> int:
        return len(self.archived_event_ids)


class ArchivalEngine:
    """
    Reconcile live collections against wall-clock time.
    """

    def __init__(
        self,
        repo: ClubRepository,
        stats: StatsEngine,
        *,
        grace: timedelta = DEFAULT_GRACE,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.repo = repo
        self.stats = stats
        self.grace = grace
        self.clock = clock
        self._lock = threading.Lock()

    def reconcile(self, now: Optional[datetime] = None) -> ArchivalReport:
        """
        Archive every live event past its grace period. Safe to call repeatedly:
        archived events are no longer in ``events`` and are not seen again.
        Passes are serialised within the process.
        """
        with self._lock:
            return self._reconcile(now)

    def _reconcile(self, now: Optional[datetime]) -> ArchivalReport:
        now = as_utc(now or self.clock())
        store = self.repo.store
        report = ArchivalReport()

        candidate_ids = [
            event.id for event in self.repo.live_events() if is_archivable(event, now, self.grace)
        ]
        if not candidate_ids:
            return report

        raw_events: Dict[str, dict] = {}
        events: Dict[str, Event] = {}
        for event_id in candidate_ids:
            doc = store.get_document(Collections.EVENTS, event_id)
            if doc is None:
                continue
            event = Event.from_document(doc.id, doc.data)
            if not is_archivable(event, now, self.grace):
                continue
            raw_events[doc.id] = doc.data
            events[doc.id] = event
        if not events:
            return report

        raw_attendances: Dict[str, dict] = {}
        attendances: List[Attendance] = []
        for doc in store.list_documents(Collections.ATTENDANCES):
            attendance = Attendance.from_document(doc.id, doc.data)
            if attendance.event_id in events:
                raw_attendances[doc.id] = doc.data
                attendances.append(attendance)

        entries_by_user: Dict[str, List[AttendanceEntry]] = {}
        names: Dict[str, str] = {}
        for attendance in attendances:
            event = events[attendance.event_id]
            if not event.type.counts_for_stats or event.suspended:
                continue
            entries_by_user.setdefault(attendance.user_id, []).append(
                AttendanceEntry(attendance.event_id, attendance.attending, event.type)
            )
            names.setdefault(attendance.user_id, attendance.user_display_name)

        directory = self.stats.directory()
        for user_id, entries in entries_by_user.items():
            updated = self.stats.apply_attendance(
                user_id, entries, display_name=names.get(user_id), directory=directory
            )
            if updated is not None:
                report.credited_users.append(updated.user_id)

        batch = store.batch()
        for event_id, data in raw_events.items():
            batch.set(Collections.EVENTS_ARCHIVE, event_id, {**data, "archivedAt": now})
            batch.delete(Collections.EVENTS, event_id)
        for attendance_id, data in raw_attendances.items():
            batch.set(Collections.ATTENDANCES_ARCHIVE, attendance_id, {**data, "archivedAt": now})
            batch.delete(Collections.ATTENDANCES, attendance_id)
        batch.commit()

        report.archived_event_ids = sorted(events)
        report.archived_attendances = len(raw_attendances)
        LOGGER.info(
            "Archived %s event(s) and %s attendance(s)",
            report.archived,
            report.archived_attendances,
        )
        return report

    def run_safely(self, now: Optional[datetime] = None) -> Optional[ArchivalReport]:
        """
        Run :meth:`reconcile`, logging and swallowing any failure.
        """
        try:
            return self.reconcile(now)
        except Exception:
            LOGGER.exception("Archival pass failed; events stay live until the next run")
            return None


class ArchivalScheduler:
    """
    Run archival passes periodically on the running asyncio loop.
    """

    def __init__(self, engine: ArchivalEngine, interval_seconds: float) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.engine = engine
        self.interval_seconds = interval_seconds
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self) -> Optional[ArchivalReport]:
        return await asyncio.to_thread(self.engine.run_safely)

    async def _loop(self) -> None:
        while True:
            await self.run_once()
            await asyncio.sleep(self.interval_seconds)

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._loop())
        LOGGER.info("Archival scheduler started (every %ss)", self.interval_seconds)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
