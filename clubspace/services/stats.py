"""
Player statistics aggregation.

Stats documents live in ``stats`` keyed by the player's email. They are
maintained incrementally (attendance on archival, result deltas on edit) and
can be rebuilt from scratch from the archive and ``match_results``. There is
no compare-and-swap: every update is read, compute, write, so two admins
editing at the same time can overwrite each other.
"""
from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Set

from ..records import (
    GUEST_PLAYER_ID,
    STAT_ATTENDANCE_FIELDS,
    STAT_RESULT_FIELDS,
    AttendanceEntry,
    CardType,
    Collections,
    EventType,
    MatchResult,
    PlayerStats,
    Role,
    UserProfile,
    utcnow,
)
from ..store import WriteBatch
from .repository import ClubRepository

LOGGER = logging.getLogger(__name__)

# Firestore rejects commits with more than 500 writes.
MAX_BATCH_WRITES = 450

ALL_COUNTERS = STAT_ATTENDANCE_FIELDS + STAT_RESULT_FIELDS


class PlayerDirectory:
    """
    Resolve player ids (user document ids or emails) to stats keys.
    """

    def __init__(self, users: Iterable[UserProfile]):
        self._users: Dict[str, UserProfile] = {}
        for user in users:
            self._users[user.id] = user
        for user in list(self._users.values()):
            self._users.setdefault(user.email, user)

    @classmethod
    def from_repository(cls, repo: ClubRepository) -> "PlayerDirectory":
        return cls(repo.users())

    def resolve(self, player_id: str) -> Optional[UserProfile]:
        return self._users.get(player_id)

    @property
    def emails(self) -> Set[str]:
        return {user.email for user in self._users.values()}

    def counted_users(self) -> List[UserProfile]:
        seen: Dict[str, UserProfile] = {}
        for user in self._users.values():
            if user.role is not Role.VIEWER:
                seen.setdefault(user.email, user)
        return list(seen.values())

    def attendance_key(self, user_id: str) -> Optional[str]:
        """
        Stats key for an attendance owner. Unknown ids are used as-is since
        attendances are recorded under the voter's email.
        """
        user = self.resolve(user_id)
        if user is None:
            return user_id
        if user.role is Role.VIEWER:
            return None
        return user.email

    def result_key(self, player_id: str) -> Optional[str]:
        """
        Stats key for a player referenced by a match result, ``None`` when the
        id is unknown or belongs to a read-only account.
        """
        user = self.resolve(player_id)
        if user is None or user.role is Role.VIEWER:
            return None
        return user.email

    def display_name(self, key: str, fallback: Optional[str] = None) -> str:
        user = self.resolve(key)
        if user is not None:
            return user.display_name
        return fallback or key


def tally_result(result: Optional[MatchResult]) -> Dict[str, Counter]:
    """
    Count a result's contribution per player id.

    Friendly matches contribute nothing; goals scored by the guest player are
    ignored together with their assist.
    """
    tallies: Dict[str, Counter] = {}
    if result is None or result.is_friendly:
        return tallies

    def bump(player_id: Optional[str], name: str) -> None:
        if not player_id or player_id == GUEST_PLAYER_ID:
            return
        tallies.setdefault(player_id, Counter())[name] += 1

    for goal in result.goals:
        if goal.player_id == GUEST_PLAYER_ID:
            continue
        bump(goal.player_id, "goals")
        bump(goal.assist_player_id, "assists")
    for card in result.cards:
        bump(card.player_id, "yellowCards" if card.card_type is CardType.YELLOW else "redCards")
    bump(result.figure_of_the_match_id, "figureOfTheMatch")
    return tallies


def result_deltas(
    previous: Optional[MatchResult], current: Optional[MatchResult]
) -> Dict[str, Dict[str, int]]:
    """
    Per player id, the non-zero counter differences between two results.
    """
    old = tally_result(previous)
    new = tally_result(current)
    deltas: Dict[str, Dict[str, int]] = {}
    for player_id in sorted(set(old) | set(new)):
        before = old.get(player_id, Counter())
        after = new.get(player_id, Counter())
        diff = {
            name: after[name] - before[name]
            for name in STAT_RESULT_FIELDS
            if after[name] != before[name]
        }
        if diff:
            deltas[player_id] = diff
    return deltas


@dataclass
class ReprocessReport:
    processed_results: int = 0
    updated_players: int = 0
    skipped_player_ids: List[str] = field(default_factory=list)
    tallies: Dict[str, Dict[str, int]] = field(default_factory=dict)


@dataclass
class RecalculationReport:
    processed_attendances: int = 0
    updated_players: int = 0
    tallies: Dict[str, Dict[str, int]] = field(default_factory=dict)


class StatsEngine:
    """
    Maintain per-player stats documents.
    """

    def __init__(
        self,
        repo: ClubRepository,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.repo = repo
        self.clock = clock

    def directory(self) -> PlayerDirectory:
        return PlayerDirectory.from_repository(self.repo)

    def _commit_in_chunks(self, batch: WriteBatch) -> int:
        ops = list(batch.ops)
        for start in range(0, len(ops), MAX_BATCH_WRITES):
            self.repo.store.commit(ops[start:start + MAX_BATCH_WRITES])
        batch.ops = []
        return len(ops)

    # ------------------------------------------------------------------
    # Incremental updates
    # ------------------------------------------------------------------

    def apply_attendance(
        self,
        user_id: str,
        entries: Sequence[AttendanceEntry],
        *,
        display_name: Optional[str] = None,
        directory: Optional[PlayerDirectory] = None,
    ) -> Optional[PlayerStats]:
        """
        Add archived attendances to a player's counters. Never decrements.
        """
        directory = directory or self.directory()
        key = directory.attendance_key(user_id)
        if key is None:
            LOGGER.debug("Skipping attendance stats for read-only user %s", user_id)
            return None
        matches = sum(1 for entry in entries if entry.attended and entry.event_type is EventType.MATCH)
        trainings = sum(
            1 for entry in entries if entry.attended and entry.event_type is EventType.TRAINING
        )
        existing = self.repo.get_stats(key)
        if existing is not None and not matches and not trainings:
            return existing
        current = existing or PlayerStats.empty(key, directory.display_name(key, display_name))
        updated = current.with_counters(
            {
                "matchesAttended": current.matches_attended + matches,
                "trainingsAttended": current.trainings_attended + trainings,
            },
            when=self.clock(),
        )
        self.repo.store.set_document(Collections.STATS, key, updated.to_document(), merge=True)
        LOGGER.info(
            "Attendance stats for %s: +%s matches, +%s trainings", key, matches, trainings
        )
        return updated

    def apply_result_delta(
        self,
        previous: Optional[MatchResult],
        current: Optional[MatchResult],
    ) -> Dict[str, Dict[str, int]]:
        """
        Apply the difference between two versions of a match result.

        Every affected player is written in one batch, so a figure-of-the-match
        swap never shows both players credited. Returns the applied deltas
        keyed by stats key.
        """
        directory = self.directory()
        per_key: Dict[str, Counter] = {}
        for player_id, diff in result_deltas(previous, current).items():
            key = directory.result_key(player_id)
            if key is None:
                LOGGER.warning("Player id %s not found in users; skipping stats delta", player_id)
                continue
            per_key.setdefault(key, Counter()).update(diff)

        applied: Dict[str, Dict[str, int]] = {}
        batch = self.repo.store.batch()
        now = self.clock()
        for key, diff in per_key.items():
            diff = {name: value for name, value in diff.items() if value}
            if not diff:
                continue
            current_stats = self.repo.get_stats(key) or PlayerStats.empty(
                key, directory.display_name(key)
            )
            counters = {name: current_stats.counter(name) + value for name, value in diff.items()}
            updated = current_stats.with_counters(counters, when=now)
            batch.set(Collections.STATS, key, updated.to_document(), merge=True)
            applied[key] = dict(diff)
        if batch.commit():
            LOGGER.info("Applied result deltas for %s player(s)", len(applied))
        return applied

    # ------------------------------------------------------------------
    # Full rebuilds
    # ------------------------------------------------------------------

    def reprocess_match_results(self, *, reset_inactive: bool = False) -> ReprocessReport:
        """
        Recompute goals, assists, cards and figure-of-the-match from every result.

        Overwrites those five counters for every player with activity; with
        ``reset_inactive`` players without any activity are zeroed as well.
        Attendance counters are left untouched.
        """
        directory = self.directory()
        report = ReprocessReport()
        totals: Dict[str, Counter] = {}
        skipped: Set[str] = set()
        for result in self.repo.all_results():
            report.processed_results += 1
            for player_id, counts in tally_result(result).items():
                key = directory.result_key(player_id)
                if key is None:
                    skipped.add(player_id)
                    continue
                totals.setdefault(key, Counter()).update(counts)
        for player_id in sorted(skipped):
            LOGGER.warning("Player id %s not found in users; ignored during reprocessing", player_id)

        existing = self.repo.all_stats()
        keys = set(totals)
        if reset_inactive:
            keys |= {key for key, stats in existing.items() if any(stats.counter(n) for n in STAT_RESULT_FIELDS)}

        now = self.clock()
        batch = self.repo.store.batch()
        for key in sorted(keys):
            counts = totals.get(key, Counter())
            base = existing.get(key) or PlayerStats.empty(key, directory.display_name(key))
            tally = {name: counts[name] for name in STAT_RESULT_FIELDS}
            batch.set(Collections.STATS, key, base.with_counters(tally, when=now).to_document())
            report.tallies[key] = tally
        report.updated_players = len(keys)
        report.skipped_player_ids = sorted(skipped)
        self._commit_in_chunks(batch)
        LOGGER.info(
            "Reprocessed %s match result(s); updated %s player(s)",
            report.processed_results,
            report.updated_players,
        )
        return report

    def recalculate_attendance(self) -> RecalculationReport:
        """
        Recompute attendance counters from the archived attendances.
        """
        directory = self.directory()
        event_types = {
            event.id: event.type
            for event in self.repo.archived_events()
            if event.type.counts_for_stats and not event.suspended
        }
        report = RecalculationReport()
        counts: Dict[str, Counter] = {
            user.email: Counter() for user in directory.counted_users()
        }
        names: Dict[str, str] = {}
        for attendance in self.repo.attendances(archived=True):
            report.processed_attendances += 1
            event_type = event_types.get(attendance.event_id)
            if event_type is None or not attendance.attending:
                continue
            key = directory.attendance_key(attendance.user_id)
            if key is None:
                continue
            names.setdefault(key, attendance.user_display_name)
            field_name = "matchesAttended" if event_type is EventType.MATCH else "trainingsAttended"
            counts.setdefault(key, Counter())[field_name] += 1

        existing = self.repo.all_stats()
        now = self.clock()
        batch = self.repo.store.batch()
        for key in sorted(counts):
            base = existing.get(key) or PlayerStats.empty(
                key, directory.display_name(key, names.get(key))
            )
            tally = {name: counts[key][name] for name in STAT_ATTENDANCE_FIELDS}
            batch.set(Collections.STATS, key, base.with_counters(tally, when=now).to_document())
            report.tallies[key] = tally
        report.updated_players = len(counts)
        self._commit_in_chunks(batch)
        LOGGER.info(
            "Recalculated attendance for %s player(s) from %s archived attendance(s)",
            report.updated_players,
            report.processed_attendances,
        )
        return report

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def initialize_stats(self) -> int:
        """
        Create zeroed stats documents for users that have none yet.
        """
        directory = self.directory()
        existing = self.repo.all_stats()
        batch = self.repo.store.batch()
        now = self.clock()
        for user in directory.counted_users():
            if user.email in existing:
                continue
            stats = PlayerStats.empty(user.email, user.display_name).with_counters({}, when=now)
            batch.set(Collections.STATS, user.email, stats.to_document())
        created = self._commit_in_chunks(batch)
        LOGGER.info("Initialized stats for %s user(s)", created)
        return created

    def sync_with_users(self) -> int:
        """
        Delete stats documents whose player no longer exists in ``users``.
        """
        valid = self.directory().emails
        batch = self.repo.store.batch()
        for doc_id, stats in self.repo.all_stats().items():
            email = stats.user_id or doc_id
            if email not in valid:
                LOGGER.info("Removing stats for non-existent user %s", email)
                batch.delete(Collections.STATS, doc_id)
        return self._commit_in_chunks(batch)

    def consolidate_duplicates(self) -> int:
        """
        Merge stats documents stored under non-email ids into the email-keyed one.
        """
        directory = self.directory()
        groups: Dict[str, Dict[str, PlayerStats]] = {}
        for doc_id, stats in self.repo.all_stats().items():
            user = directory.resolve(stats.user_id) or directory.resolve(doc_id)
            if user is None:
                LOGGER.warning("Stats document %s has no matching user; skipping", doc_id)
                continue
            groups.setdefault(user.email, {})[doc_id] = stats

        now = self.clock()
        batch = self.repo.store.batch()
        consolidated = 0
        for email, docs in groups.items():
            if list(docs) == [email]:
                continue
            totals = Counter()
            for stats in docs.values():
                totals.update({name: stats.counter(name) for name in ALL_COUNTERS})
            for doc_id in docs:
                if doc_id != email:
                    batch.delete(Collections.STATS, doc_id)
            merged = PlayerStats.empty(email, directory.display_name(email)).with_counters(
                {name: totals[name] for name in ALL_COUNTERS}, when=now
            )
            batch.set(Collections.STATS, email, merged.to_document())
            consolidated += 1
            LOGGER.info("Consolidated %s stats document(s) for %s", len(docs), email)
        self._commit_in_chunks(batch)
        return consolidated
