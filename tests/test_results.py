from __future__ import annotations

from datetime import timedelta

import pytest

from clubspace.exceptions import DocumentNotFoundError, ReadOnlyError, ValidationError
from clubspace.records import GUEST_PLAYER_ID, Collections
from clubspace.services.results import (
    CardInput,
    GoalInput,
    ResultDraft,
    clamp_score,
    validate_result,
)

from conftest import NOW, seed_attendance, seed_club, seed_event, seed_rival


def _draft(goals=(), **overrides) -> ResultDraft:
    values = dict(
        rival_id="r1",
        furia_goals=len(goals),
        rival_goals=1,
        goals=[GoalInput(*goal) for goal in goals],
    )
    values.update(overrides)
    return ResultDraft(**values)


@pytest.fixture
def club(store):
    seed_club(store)
    seed_rival(store, "r1", "Las Leonas")
    seed_rival(store, "r2", "Deportivo Norte")
    seed_event(store, "m1", "MATCH", NOW - timedelta(days=3), archived=True, location="Cancha 2")
    seed_event(store, "m2", "MATCH", NOW - timedelta(days=10), archived=True)
    seed_event(store, "t1", "TRAINING", NOW - timedelta(days=2), archived=True)
    seed_attendance(store, "u1", "m1", "attending", archived=True)
    seed_attendance(store, "u2", "m1", "attending", archived=True)
    seed_attendance(store, "u3", "m1", "not-attending", archived=True)
    return store


def test_goal_count_must_match_score():
    three = [("u1", None), ("u1", "u2"), ("u2", None)]
    with pytest.raises(ValidationError, match="exactly 3"):
        validate_result(_draft(three[:2], furia_goals=3))
    assert len(validate_result(_draft(three)).goals) == 3


def test_scores_are_clamped():
    assert clamp_score(-3) == 0
    assert clamp_score(150) == 99
    clean = validate_result(_draft(rival_goals=150))
    assert clean.rival_goals == 99


def test_rival_is_required():
    with pytest.raises(ValidationError, match="rival"):
        validate_result(_draft(rival_id=None))


def test_player_cannot_assist_herself():
    with pytest.raises(ValidationError):
        validate_result(_draft([("u1", "u1")]))


def test_guest_only_in_friendlies():
    with pytest.raises(ValidationError, match="friendly"):
        validate_result(_draft([(GUEST_PLAYER_ID, None)]))
    assert validate_result(_draft([(GUEST_PLAYER_ID, None)], is_friendly=True)).is_friendly


def test_unknown_card_type_is_rejected():
    with pytest.raises(ValidationError):
        validate_result(_draft(cards=[CardInput("u1", "green")]))


def test_save_result_persists_and_credits_stats(club, services, admin):
    draft = _draft(
        [("u1", "u2"), ("u1", None)],
        cards=[CardInput("u3", "yellow")],
        figure_of_the_match_id="u1",
    )
    outcome = services.results.save_result(admin, "m1", draft)

    stored = services.repo.get_result("m1")
    assert stored.rival_name == "Las Leonas"
    assert [goal.id for goal in stored.goals] == ["goal_m1_0", "goal_m1_1"]
    assert stored.goals[0].assist_player_name == "Bea"
    assert stored.cards[0].player_name == "caro@club.test"
    assert stored.location == "Cancha 2"
    assert outcome.previous is None

    event = club.get_document(Collections.EVENTS_ARCHIVE, "m1").data
    assert event["rivalName"] == "Las Leonas"
    assert event["isFriendly"] is False

    ana = services.repo.get_stats("ana@club.test")
    assert (ana.goals, ana.figure_of_the_match) == (2, 1)
    assert services.repo.get_stats("bea@club.test").assists == 1
    assert services.repo.get_stats("caro@club.test").yellow_cards == 1


def test_editing_result_applies_only_the_difference(club, services, admin):
    services.results.save_result(admin, "m1", _draft([("u1", None), ("u1", None), ("u2", None)]))
    first_created = services.repo.get_result("m1").created_at

    outcome = services.results.save_result(admin, "m1", _draft([("u1", None), ("u2", None), ("u2", None)]))

    assert outcome.deltas == {"ana@club.test": {"goals": -1}, "bea@club.test": {"goals": 1}}
    assert services.repo.get_stats("ana@club.test").goals == 1
    assert services.repo.get_stats("bea@club.test").goals == 2
    assert services.repo.get_result("m1").created_at == first_created


def test_marking_friendly_removes_credit(club, services, admin):
    services.results.save_result(admin, "m1", _draft([("u1", None)], figure_of_the_match_id="u2"))
    services.results.save_result(
        admin, "m1", _draft([("u1", None)], figure_of_the_match_id="u2", is_friendly=True)
    )

    assert services.repo.get_stats("ana@club.test").goals == 0
    assert services.repo.get_stats("bea@club.test").figure_of_the_match == 0


def test_save_result_rejections(club, services, admin, player):
    with pytest.raises(ReadOnlyError):
        services.results.save_result(player, "m1", _draft())
    with pytest.raises(ValidationError, match="Rival not found"):
        services.results.save_result(admin, "m1", _draft(rival_id="missing"))
    with pytest.raises(ValidationError, match="only be recorded for matches"):
        services.results.save_result(admin, "t1", _draft())
    with pytest.raises(DocumentNotFoundError):
        services.results.save_result(admin, "nope", _draft())
    with pytest.raises(ValidationError, match="Unknown scoring player"):
        services.results.save_result(admin, "m1", _draft([("ghost", None)]))
    assert services.repo.get_result("m1") is None


def test_delete_match_keeps_stats_until_reprocess(club, services, admin):
    services.results.save_result(admin, "m1", _draft([("u1", None)]))

    deleted = services.results.delete_match(admin, "m1")

    assert deleted == 5
    assert services.repo.get_result("m1") is None
    assert services.repo.get_archived_event("m1") is None
    assert services.repo.attendances("m1", archived=True) == []
    assert services.repo.get_stats("ana@club.test").goals == 1

    services.stats.reprocess_match_results(reset_inactive=True)
    assert services.repo.get_stats("ana@club.test").goals == 0


def test_match_history_filters(club, services, admin):
    services.results.save_result(admin, "m1", _draft([("u1", None), ("u2", None)], rival_goals=1))
    services.results.save_result(admin, "m2", _draft(rival_id="r2", rival_goals=2))

    history = services.results.list_match_history()
    assert [item.event.id for item in history] == ["m1", "m2"]
    assert history[0].attendance == 2

    assert [item.event.id for item in services.results.list_match_history(outcome="win")] == ["m1"]
    assert [item.event.id for item in services.results.list_match_history(outcome="lose")] == ["m2"]
    assert services.results.list_match_history(outcome="draw") == []
    assert [item.event.id for item in services.results.list_match_history(rival_id="r2")] == ["m2"]
    with pytest.raises(ValidationError):
        services.results.list_match_history(outcome="tie")
