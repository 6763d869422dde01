"""
Club services wired over a single document store.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from ..config import Settings
from ..records import utcnow
from ..store import DocumentStore, build_store
from .archival import ArchivalEngine, ArchivalReport, ArchivalScheduler, classify_events
from .events import EventService
from .fixtures import FixtureService
from .repository import ClubRepository
from .results import MatchResultEditor, ResultDraft
from .stats import PlayerDirectory, StatsEngine
from .users import UserService

__all__ = [
    "ArchivalEngine",
    "ArchivalReport",
    "ArchivalScheduler",
    "ClubRepository",
    "ClubServices",
    "EventService",
    "FixtureService",
    "MatchResultEditor",
    "PlayerDirectory",
    "ResultDraft",
    "StatsEngine",
    "UserService",
    "classify_events",
]


@dataclass
class ClubServices:
    settings: Settings
    repo: ClubRepository
    stats: StatsEngine
    archival: ArchivalEngine
    events: EventService
    results: MatchResultEditor
    fixtures: FixtureService
    users: UserService

    @classmethod
    def build(
        cls,
        settings: Optional[Settings] = None,
        store: Optional[DocumentStore] = None,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> "ClubServices":
        settings = settings or Settings.from_env()
        repo = ClubRepository(store or build_store(settings))
        grace = timedelta(minutes=settings.archive_grace_minutes)
        window = timedelta(days=settings.active_window_days)
        stats = StatsEngine(repo, clock=clock)
        archival = ArchivalEngine(repo, stats, grace=grace, clock=clock)
        return cls(
            settings=settings,
            repo=repo,
            stats=stats,
            archival=archival,
            events=EventService(
                repo,
                archival,
                archive_on_read=settings.archive_on_read,
                grace=grace,
                window=window,
                clock=clock,
            ),
            results=MatchResultEditor(repo, stats, clock=clock),
            fixtures=FixtureService(repo, clock=clock),
            users=UserService(repo),
        )

    def close(self) -> None:
        self.repo.store.close()
