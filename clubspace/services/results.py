"""
Match result editing and match history.

Saving a result upserts ``match_results/<eventId>``, mirrors the rival and
friendly flag onto the archived event, then hands the previous and new
versions to :meth:`StatsEngine.apply_result_delta`. Deleting a match does not
reverse its stats; run a full reprocess to repair them.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional

from ..exceptions import DocumentNotFoundError, ValidationError
from ..records import (
    GUEST_PLAYER_ID,
    GUEST_PLAYER_NAME,
    Card,
    CardType,
    Collections,
    Event,
    EventType,
    Goal,
    MatchResult,
    Rival,
    utcnow,
)
from ..session import Session
from .repository import ClubRepository
from .stats import PlayerDirectory, StatsEngine

LOGGER = logging.getLogger(__name__)

MAX_SCORE = 99
OUTCOMES = ("win", "draw", "lose")


@dataclass(frozen=True)
class GoalInput:
    player_id: str
    assist_player_id: Optional[str] = None


@dataclass(frozen=True)
class CardInput:
    player_id: str
    card_type: CardType | str


@dataclass
class ResultDraft:
    rival_id: Optional[str]
    furia_goals: int
    rival_goals: int
    goals: List[GoalInput] = field(default_factory=list)
    cards: List[CardInput] = field(default_factory=list)
    figure_of_the_match_id: Optional[str] = None
    is_friendly: bool = False


@dataclass
class SaveOutcome:
    result: MatchResult
    previous: Optional[MatchResult]
    deltas: Dict[str, Dict[str, int]]


@dataclass
class MatchHistoryItem:
    event: Event
    attendance: int
    result: Optional[MatchResult] = None


def clamp_score(value: int) -> int:
    return max(0, min(MAX_SCORE, int(value)))


def _player_name(directory: PlayerDirectory, player_id: str, *, friendly: bool, role: str) -> str:
    if player_id == GUEST_PLAYER_ID:
        if not friendly:
            raise ValidationError("Guest players are only allowed in friendly matches.")
        return GUEST_PLAYER_NAME
    user = directory.resolve(player_id)
    if user is None:
        raise ValidationError(f"Unknown {role} player '{player_id}'.")
    return user.display_name


def validate_result(draft: ResultDraft) -> ResultDraft:
    """
    Check a draft without touching the store and return it with clamped scores.
    """
    if not draft.rival_id:
        raise ValidationError("Please select a rival.")
    furia_goals = clamp_score(draft.furia_goals)
    rival_goals = clamp_score(draft.rival_goals)
    if len(draft.goals) != furia_goals:
        raise ValidationError(f"You must add exactly {furia_goals} goal(s).")
    for goal in draft.goals:
        if not goal.player_id:
            raise ValidationError("Every goal needs a scorer.")
        if goal.assist_player_id and goal.assist_player_id == goal.player_id:
            raise ValidationError("A player cannot assist her own goal.")
    referenced = [goal.player_id for goal in draft.goals]
    referenced += [goal.assist_player_id for goal in draft.goals if goal.assist_player_id]
    referenced += [card.player_id for card in draft.cards]
    referenced.append(draft.figure_of_the_match_id)
    if GUEST_PLAYER_ID in referenced and not draft.is_friendly:
        raise ValidationError("Guest players are only allowed in friendly matches.")
    for card in draft.cards:
        if not card.player_id:
            raise ValidationError("Every card needs a player.")
        try:
            CardType(card.card_type)
        except ValueError as exc:
            raise ValidationError(f"Unknown card type {card.card_type!r}.") from exc
    return ResultDraft(
        rival_id=draft.rival_id,
        furia_goals=furia_goals,
        rival_goals=rival_goals,
        goals=list(draft.goals),
        cards=list(draft.cards),
        figure_of_the_match_id=draft.figure_of_the_match_id or None,
        is_friendly=draft.is_friendly,
    )


class MatchResultEditor:
    """
    Persist results for archived matches and keep stats in step.
    """

    def __init__(
        self,
        repo: ClubRepository,
        stats: StatsEngine,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.repo = repo
        self.stats = stats
        self.clock = clock

    def _archived_match(self, event_id: str) -> Event:
        event = self.repo.get_archived_event(event_id)
        if event is None:
            raise DocumentNotFoundError(f"Archived match {event_id} not found.")
        if event.type is not EventType.MATCH:
            raise ValidationError("Results can only be recorded for matches.")
        return event

    def build_result(
        self,
        event: Event,
        draft: ResultDraft,
        rival: Rival,
        directory: PlayerDirectory,
        previous: Optional[MatchResult],
    ) -> MatchResult:
        now = self.clock()
        friendly = draft.is_friendly
        goals = []
        for index, item in enumerate(draft.goals):
            assist_id = item.assist_player_id or None
            goals.append(
                Goal(
                    id=f"goal_{event.id}_{index}",
                    player_id=item.player_id,
                    player_name=_player_name(directory, item.player_id, friendly=friendly, role="scoring"),
                    created_at=now,
                    assist_player_id=assist_id,
                    assist_player_name=(
                        _player_name(directory, assist_id, friendly=friendly, role="assisting")
                        if assist_id
                        else None
                    ),
                )
            )
        cards = [
            Card(
                id=f"card_{event.id}_{index}",
                player_id=item.player_id,
                player_name=_player_name(directory, item.player_id, friendly=friendly, role="booked"),
                card_type=CardType(item.card_type),
                created_at=now,
            )
            for index, item in enumerate(draft.cards)
        ]
        figure_id = draft.figure_of_the_match_id
        figure_name = (
            _player_name(directory, figure_id, friendly=friendly, role="figure of the match")
            if figure_id
            else None
        )
        return MatchResult(
            event_id=event.id,
            rival_id=rival.id,
            rival_name=rival.name,
            furia_goals=draft.furia_goals,
            rival_goals=draft.rival_goals,
            date=event.date,
            created_at=previous.created_at if previous else now,
            updated_at=now,
            goals=tuple(goals),
            cards=tuple(cards),
            figure_of_the_match_id=figure_id,
            figure_of_the_match_name=figure_name,
            is_friendly=friendly,
            location=event.location,
        )

    def save_result(self, session: Session, event_id: str, draft: ResultDraft) -> SaveOutcome:
        session.require_admin()
        clean = validate_result(draft)
        rival = self.repo.get_rival(clean.rival_id)
        if rival is None:
            raise ValidationError("Rival not found.")
        event = self._archived_match(event_id)
        directory = self.stats.directory()
        previous = self.repo.get_result(event_id)
        result = self.build_result(event, clean, rival, directory, previous)

        batch = self.repo.store.batch()
        batch.set(Collections.MATCH_RESULTS, event_id, result.to_document())
        batch.update(
            Collections.EVENTS_ARCHIVE,
            event_id,
            {"rivalId": rival.id, "rivalName": rival.name, "isFriendly": result.is_friendly},
        )
        batch.commit()
        LOGGER.info(
            "Saved result %s %s-%s %s for event %s",
            "(friendly)" if result.is_friendly else "",
            result.furia_goals,
            result.rival_goals,
            result.rival_name,
            event_id,
        )
        deltas = self.stats.apply_result_delta(previous, result)
        return SaveOutcome(result=result, previous=previous, deltas=deltas)

    def delete_match(self, session: Session, event_id: str) -> int:
        """
        Remove an archived match, its archived attendances and its result.
        """
        session.require_admin()
        self._archived_match(event_id)
        batch = self.repo.store.batch()
        for attendance in self.repo.attendances(event_id, archived=True):
            batch.delete(Collections.ATTENDANCES_ARCHIVE, attendance.id)
        batch.delete(Collections.MATCH_RESULTS, event_id)
        batch.delete(Collections.EVENTS_ARCHIVE, event_id)
        deleted = batch.commit()
        LOGGER.warning(
            "Deleted match %s; its stats contribution stays until stats are reprocessed",
            event_id,
        )
        return deleted

    def list_match_history(
        self, *, rival_id: Optional[str] = None, outcome: Optional[str] = None
    ) -> List[MatchHistoryItem]:
        """
        Archived matches, newest first, optionally filtered by rival and outcome.

        Filtering by outcome drops matches that have no result yet.
        """
        if outcome is not None and outcome not in OUTCOMES:
            raise ValidationError(f"Outcome must be one of {', '.join(OUTCOMES)}.")
        items: List[MatchHistoryItem] = []
        for event in self.repo.archived_events(EventType.MATCH):
            if rival_id and event.rival_id != rival_id:
                continue
            result = self.repo.get_result(event.id)
            if outcome is not None and (result is None or result.outcome != outcome):
                continue
            attending = sum(
                1 for attendance in self.repo.attendances(event.id, archived=True) if attendance.attending
            )
            items.append(MatchHistoryItem(event=event, attendance=attending, result=result))
        items.sort(key=lambda item: item.event.date, reverse=True)
        return items
