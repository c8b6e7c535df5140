from __future__ import annotations

import pytest

from dealflow.core.rng import ScriptedRandom
from dealflow.models import DayType, Difficulty, TimeSlot
from dealflow.scenarios import (
    affinity_score,
    choice_changes,
    eligible_scenarios,
    get_scenario,
    is_eligible,
    select_scenario,
    trigger_chance,
)


def _ids(snapshot):
    return [s.id for s in eligible_scenarios(snapshot)]


def test_fresh_associate_sees_only_ungated_scenarios(snapshot):
    assert _ids(snapshot) == [2, 3, 4, 5]


def test_opener_is_never_drawn(snapshot):
    assert is_eligible(get_scenario(1), snapshot) is False


def test_played_and_blocked_scenarios_are_excluded(snapshot):
    snapshot.player.played_scenario_ids = [3]
    snapshot.player.flags = ["PARTNERED_WITH_HUNTER"]
    assert _ids(snapshot) == [2, 4]


def test_portfolio_gate(snapshot):
    snapshot.player.portfolio = []
    assert 2 not in _ids(snapshot)


def test_weekend_and_cash_gates(snapshot):
    brother = get_scenario(5002)
    assert not is_eligible(brother, snapshot)
    snapshot.player.day_type = DayType.weekend
    assert not is_eligible(brother, snapshot)
    snapshot.player.cash = 30_000
    assert is_eligible(brother, snapshot)

    golf = get_scenario(200)
    snapshot.player.reputation = 30
    snapshot.player.time_slot = TimeSlot.morning
    assert not is_eligible(golf, snapshot)
    snapshot.player.time_slot = TimeSlot.evening
    assert is_eligible(golf, snapshot)


def test_trigger_chance_modifiers(snapshot):
    # base, cash pressure, holds a portfolio
    assert trigger_chance(snapshot) == pytest.approx(0.50)
    snapshot.player.stress = 80
    assert trigger_chance(snapshot) == pytest.approx(0.75)


def test_failed_roll_selects_nothing(snapshot):
    assert select_scenario(snapshot, rng=ScriptedRandom([0.6])) is None


def test_pick_is_uniform_within_top_cluster(snapshot):
    picked = select_scenario(snapshot, rng=ScriptedRandom([0.0, 0.99]))
    assert picked.id == 5
    picked = select_scenario(snapshot, rng=ScriptedRandom([0.0, 0.0]))
    assert picked.id == 2


def test_rival_affinity_narrows_the_cluster(snapshot):
    hunter = snapshot.rival_funds[0]
    snapshot.rival_funds[0] = hunter.model_copy(update={"vendetta": 70})
    assert affinity_score(get_scenario(5), snapshot) == pytest.approx(2.2)
    assert affinity_score(get_scenario(4), snapshot) == pytest.approx(1.0)
    picked = select_scenario(snapshot, rng=ScriptedRandom([0.0, 0.0]))
    assert picked.id == 5


def test_choice_marks_scenario_played(snapshot):
    changes, choice, passed = choice_changes(snapshot, get_scenario(1), 0)
    assert passed is False
    assert choice.text.startswith("Recommend")
    assert changes.reputation == 20
    assert changes.played_scenario_ids == [1]


def test_skill_check_bonus_merges_in(snapshot):
    snapshot.player.financial_engineering = 30
    changes, _, passed = choice_changes(snapshot, get_scenario(1), 0)
    assert passed is True
    assert changes.reputation == 30
    assert changes.financial_engineering == 5
    assert changes.score == 1500


def test_hard_difficulty_scales_gains_down_and_losses_up(snapshot):
    snapshot.difficulty = Difficulty.hard
    changes, _, _ = choice_changes(snapshot, get_scenario(4), 0)
    assert changes.energy == -48
    assert changes.stress == 24
    assert changes.reputation == 8
    assert changes.analyst_rating == 4
    assert changes.score == 300


def test_choice_index_out_of_range(snapshot):
    with pytest.raises(ValueError, match="out of range"):
        choice_changes(snapshot, get_scenario(4), 3)


def test_lookup_misses():
    assert get_scenario(None) is None
    assert get_scenario(424242) is None


def test_affinity_without_a_player_is_neutral(snapshot):
    snapshot.player = None
    assert affinity_score(get_scenario(5), snapshot) == 1.0
