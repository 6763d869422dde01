"""
Rivals and the tournament fixture.
"""
from __future__ import annotations

import logging
from datetime import date as date_type
from datetime import datetime, time, timezone
from typing import Callable, List, Optional

from ..exceptions import DocumentNotFoundError, ValidationError
from ..records import Collections, Fixture, Rival, utcnow
from ..session import Session
from .repository import ClubRepository

LOGGER = logging.getLogger(__name__)


def _fixture_datetime(value: Optional[date_type]) -> Optional[datetime]:
    # Stored at noon UTC.
    if value is None:
        return None
    if isinstance(value, datetime):
        value = value.date()
    return datetime.combine(value, time(12, 0), tzinfo=timezone.utc)


class FixtureService:
    def __init__(self, repo: ClubRepository, *, clock: Callable[[], datetime] = utcnow) -> None:
        self.repo = repo
        self.clock = clock

    # ------------------------------------------------------------------
    # Rivals
    # ------------------------------------------------------------------

    def list_rivals(self) -> List[Rival]:
        return self.repo.rivals()

    def _check_unique_name(self, name: str, *, exclude_id: Optional[str] = None) -> str:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Please enter the rival's name.")
        lowered = name.lower()
        for rival in self.repo.rivals():
            if rival.id != exclude_id and rival.name.lower() == lowered:
                raise ValidationError("A rival with that name already exists.")
        return name

    def create_rival(self, session: Session, name: str) -> Rival:
        session.require_admin()
        name = self._check_unique_name(name)
        rival = Rival(id="", name=name, created_at=self.clock(), created_by=session.email or "unknown")
        rival_id = self.repo.store.add_document(Collections.RIVALS, rival.to_document())
        LOGGER.info("Created rival %s (%s)", name, rival_id)
        return Rival(rival_id, rival.name, rival.created_at, rival.created_by, rival.logo_url)

    def rename_rival(self, session: Session, rival_id: str, name: str) -> Rival:
        session.require_admin()
        if self.repo.get_rival(rival_id) is None:
            raise DocumentNotFoundError(f"Rival {rival_id} not found.")
        name = self._check_unique_name(name, exclude_id=rival_id)
        self.repo.store.update_document(Collections.RIVALS, rival_id, {"name": name})
        return self.repo.get_rival(rival_id)

    def delete_rival(self, session: Session, rival_id: str) -> None:
        session.require_admin()
        if any(fixture.rival_id == rival_id for fixture in self.repo.fixtures()):
            raise ValidationError("This rival is used in the fixture and cannot be deleted.")
        self.repo.store.delete_document(Collections.RIVALS, rival_id)

    # ------------------------------------------------------------------
    # Fixtures
    # ------------------------------------------------------------------

    def list_fixtures(self) -> List[Fixture]:
        return self.repo.fixtures()

    def next_round(self) -> int:
        fixtures = self.repo.fixtures()
        if not fixtures:
            return 1
        return max(fixture.fecha for fixture in fixtures) + 1

    def save_fixture(
        self,
        session: Session,
        *,
        fecha: int,
        rival_id: str,
        match_date: Optional[date_type] = None,
        location: Optional[str] = None,
        match_result_id: Optional[str] = None,
        fixture_id: Optional[str] = None,
    ) -> Fixture:
        """
        Create or update a round. Linking a result copies its score and marks
        the round as played; unlinking clears both.
        """
        session.require_admin()
        if not rival_id:
            raise ValidationError("Please select a rival.")
        if fecha < 1:
            raise ValidationError("Round numbers start at 1.")
        rival = self.repo.get_rival(rival_id)
        if rival is None:
            raise ValidationError("Rival not found.")
        existing = None
        if fixture_id:
            existing = self.repo.get_fixture(fixture_id)
            if existing is None:
                raise DocumentNotFoundError(f"Fixture {fixture_id} not found.")

        played, furia_goals, rival_goals, linked = False, None, None, None
        if match_result_id:
            result = self.repo.get_result(match_result_id)
            if result is None:
                raise DocumentNotFoundError(f"Match result {match_result_id} not found.")
            played, furia_goals, rival_goals = True, result.furia_goals, result.rival_goals
            linked = match_result_id

        now = self.clock()
        fixture = Fixture(
            id=fixture_id or "",
            fecha=fecha,
            rival_id=rival.id,
            rival_name=rival.name,
            created_at=existing.created_at if existing else now,
            updated_at=now,
            date=_fixture_datetime(match_date),
            location=(location or "").strip() or None,
            played=played,
            furia_goals=furia_goals,
            rival_goals=rival_goals,
            match_result_id=linked,
        )
        if fixture_id:
            self.repo.store.set_document(Collections.FIXTURES, fixture_id, fixture.to_document())
        else:
            fixture_id = self.repo.store.add_document(Collections.FIXTURES, fixture.to_document())
        return self.repo.get_fixture(fixture_id)

    def delete_fixture(self, session: Session, fixture_id: str) -> None:
        session.require_admin()
        self.repo.store.delete_document(Collections.FIXTURES, fixture_id)
