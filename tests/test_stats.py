from __future__ import annotations

from datetime import timedelta
from typing import Iterable, Optional, Sequence, Tuple

from clubspace.records import (
    GUEST_PLAYER_ID,
    Card,
    CardType,
    Collections,
    Goal,
    MatchResult,
)
from clubspace.services.stats import result_deltas, tally_result

from conftest import NOW, seed_attendance, seed_club, seed_event


def _result(
    goals: Sequence[Tuple[str, Optional[str]]] = (),
    *,
    figure: Optional[str] = None,
    friendly: bool = False,
    cards: Iterable[Tuple[str, CardType]] = (),
    event_id: str = "m1",
) -> MatchResult:
    return MatchResult(
        event_id=event_id,
        rival_id="r1",
        rival_name="Las Leonas",
        furia_goals=len(goals),
        rival_goals=0,
        date=NOW - timedelta(days=1),
        created_at=NOW,
        updated_at=NOW,
        goals=tuple(
            Goal(f"goal_{event_id}_{index}", scorer, scorer, NOW, assist, assist)
            for index, (scorer, assist) in enumerate(goals)
        ),
        cards=tuple(
            Card(f"card_{event_id}_{index}", player, player, card_type, NOW)
            for index, (player, card_type) in enumerate(cards)
        ),
        figure_of_the_match_id=figure,
        is_friendly=friendly,
    )


def _count_commits(store, monkeypatch):
    calls = []
    original = store.commit

    def counting(ops):
        calls.append(list(ops))
        return original(ops)

    monkeypatch.setattr(store, "commit", counting)
    return calls


def test_goal_edit_moves_one_goal():
    old = _result([("A", None), ("A", None), ("B", None)])
    new = _result([("A", None), ("B", None), ("B", None)])

    assert result_deltas(old, new) == {"A": {"goals": -1}, "B": {"goals": 1}}


def test_friendly_toggle_removes_and_restores_credit():
    competitive = _result([("A", "B")], figure="A", cards=[("B", CardType.YELLOW)])
    friendly = _result([("A", "B")], figure="A", cards=[("B", CardType.YELLOW)], friendly=True)

    assert tally_result(friendly) == {}
    assert result_deltas(competitive, friendly) == {
        "A": {"goals": -1, "figureOfTheMatch": -1},
        "B": {"assists": -1, "yellowCards": -1},
    }
    assert result_deltas(friendly, competitive) == {
        "A": {"goals": 1, "figureOfTheMatch": 1},
        "B": {"assists": 1, "yellowCards": 1},
    }


def test_guest_goal_gives_no_credit_to_anyone():
    result = _result([(GUEST_PLAYER_ID, "A"), ("B", GUEST_PLAYER_ID)])
    assert result_deltas(None, result) == {"B": {"goals": 1}}


def test_saving_same_result_twice_writes_nothing(store, services, monkeypatch):
    seed_club(store)
    result = _result([("u1", "u2")])
    services.stats.apply_result_delta(None, result)
    calls = _count_commits(store, monkeypatch)

    assert services.stats.apply_result_delta(result, result) == {}
    assert calls == []


def test_figure_swap_is_written_in_one_batch(store, services, monkeypatch):
    seed_club(store)
    services.stats.apply_result_delta(None, _result(figure="u1"))
    calls = _count_commits(store, monkeypatch)

    applied = services.stats.apply_result_delta(_result(figure="u1"), _result(figure="u2"))

    assert applied == {
        "ana@club.test": {"figureOfTheMatch": -1},
        "bea@club.test": {"figureOfTheMatch": 1},
    }
    assert len(calls) == 1
    assert services.repo.get_stats("ana@club.test").figure_of_the_match == 0
    assert services.repo.get_stats("bea@club.test").figure_of_the_match == 1


def test_deltas_are_keyed_by_email_and_clamped(store, services):
    seed_club(store)
    store.set_document(Collections.STATS, "ana@club.test", {"userId": "ana@club.test", "displayName": "Ana", "matchesAttended": 4})

    services.stats.apply_result_delta(_result([("u1", None), ("ana@club.test", None)]), None)

    stats = services.repo.get_stats("ana@club.test")
    assert stats.goals == 0
    assert stats.matches_attended == 4


def test_unknown_players_are_skipped(store, services):
    seed_club(store)
    applied = services.stats.apply_result_delta(None, _result([("ghost", None), ("u2", None)]))
    assert applied == {"bea@club.test": {"goals": 1}}
    assert services.repo.get_stats("ghost") is None


def test_reprocess_is_idempotent_and_keeps_attendance(store, services):
    seed_club(store)
    store.set_document(
        Collections.STATS,
        "ana@club.test",
        {"userId": "ana@club.test", "displayName": "Ana", "goals": 9, "trainingsAttended": 7},
    )
    for result in (
        _result([("u1", "u2"), ("u1", None)], figure="u1", event_id="m1"),
        _result([("u2", "u1")], cards=[("u3", CardType.RED)], event_id="m2"),
        _result([("u3", None)], friendly=True, event_id="m3"),
    ):
        store.set_document(Collections.MATCH_RESULTS, result.event_id, result.to_document())

    first = services.stats.reprocess_match_results()
    snapshot = {key: stats.to_document() for key, stats in services.repo.all_stats().items()}
    second = services.stats.reprocess_match_results()

    assert first.processed_results == 3
    assert first.tallies == second.tallies
    assert {key: stats.to_document() for key, stats in services.repo.all_stats().items()} == snapshot

    ana = services.repo.get_stats("ana@club.test")
    assert (ana.goals, ana.assists, ana.figure_of_the_match) == (2, 1, 1)
    assert ana.trainings_attended == 7
    caro = services.repo.get_stats("caro@club.test")
    assert (caro.goals, caro.red_cards) == (0, 1)


def test_reprocess_reports_unknown_ids_and_resets_inactive(store, services):
    seed_club(store)
    store.set_document(Collections.STATS, "bea@club.test", {"goals": 5})
    result = _result([("u1", None), ("stranger", None)])
    store.set_document(Collections.MATCH_RESULTS, result.event_id, result.to_document())

    kept = services.stats.reprocess_match_results()
    assert kept.skipped_player_ids == ["stranger"]
    assert services.repo.get_stats("bea@club.test").goals == 5

    services.stats.reprocess_match_results(reset_inactive=True)
    assert services.repo.get_stats("bea@club.test").goals == 0
    assert services.repo.get_stats("ana@club.test").goals == 1


def test_recalculate_attendance_from_archive(store, services):
    seed_club(store)
    seed_event(store, "m1", "MATCH", NOW - timedelta(days=7), archived=True)
    seed_event(store, "t1", "TRAINING", NOW - timedelta(days=5), archived=True)
    seed_event(store, "t2", "TRAINING", NOW - timedelta(days=3), archived=True, suspended=True)
    seed_event(store, "b1", "BIRTHDAY", NOW - timedelta(days=2), archived=True)
    for event_id in ("m1", "t1", "t2", "b1"):
        seed_attendance(store, "ana@club.test", event_id, "attending", archived=True)
    seed_attendance(store, "u2", "t1", "attending", archived=True)
    seed_attendance(store, "u2", "m1", "not-attending", archived=True)
    seed_attendance(store, "mama@club.test", "t1", "attending", archived=True)
    store.set_document(Collections.STATS, "ana@club.test", {"goals": 3, "trainingsAttended": 12})

    report = services.stats.recalculate_attendance()

    assert report.processed_attendances == 7
    ana = services.repo.get_stats("ana@club.test")
    assert (ana.matches_attended, ana.trainings_attended, ana.goals) == (1, 1, 3)
    bea = services.repo.get_stats("bea@club.test")
    assert (bea.matches_attended, bea.trainings_attended) == (0, 1)
    assert services.repo.get_stats("mama@club.test") is None
    assert services.repo.get_stats("caro@club.test").total_attended == 0


def test_initialize_sync_and_consolidate(store, services):
    seed_club(store)
    store.set_document(Collections.STATS, "u1", {"userId": "u1", "goals": 2, "matchesAttended": 1})
    store.set_document(Collections.STATS, "ana@club.test", {"userId": "ana@club.test", "goals": 1})
    store.set_document(Collections.STATS, "gone@club.test", {"userId": "gone@club.test", "goals": 4})

    assert services.stats.consolidate_duplicates() == 1
    ana = services.repo.get_stats("ana@club.test")
    assert (ana.goals, ana.matches_attended) == (3, 1)
    assert services.repo.get_stats("u1") is None

    assert services.stats.sync_with_users() == 1
    assert services.repo.get_stats("gone@club.test") is None

    created = services.stats.initialize_stats()
    assert created == 3
    assert services.stats.initialize_stats() == 0
    assert services.repo.get_stats("mama@club.test") is None


def test_attendance_credit_ignores_unattended_entries(store, services):
    seed_club(store)
    seed_event(store, "t1", "TRAINING", NOW - timedelta(hours=2))
    seed_attendance(store, "u3", "t1", "pending")

    services.archival.reconcile()

    caro = services.repo.get_stats("caro@club.test")
    assert caro is not None
    assert caro.total_attended == 0
