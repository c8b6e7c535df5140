from __future__ import annotations

import pytest

from dealflow.core.rng import ScriptedRandom
from dealflow.models import AIState, Faction, GamePhase
from dealflow.rival_ai import (
    Decision,
    Personality,
    TacticalMove,
    VendettaPhase,
    build_mindset,
    check_coalition,
    poach_candidates,
    record_player_bid,
    run_rival_tick,
    tactical_effects,
    vendetta_phase,
)


def _fund(snapshot, fund_id):
    return next(f for f in snapshot.rival_funds if f.id == fund_id)


@pytest.mark.parametrize(
    ("score", "phase"),
    [
        (0, VendettaPhase.cold),
        (30, VendettaPhase.cold),
        (31, VendettaPhase.warming),
        (50, VendettaPhase.warming),
        (51, VendettaPhase.hot),
        (70, VendettaPhase.hot),
        (71, VendettaPhase.blood_feud),
        (85, VendettaPhase.blood_feud),
        (86, VendettaPhase.total_war),
    ],
)
def test_vendetta_phase_thresholds(score, phase):
    assert vendetta_phase(score) == phase


def test_poach_candidates_soonest_deadline_first(snapshot):
    hunter = _fund(snapshot, "hunter_capital")
    assert [d.id for d in poach_candidates(hunter, snapshot.active_deals)] == [103, 101]
    meridian = _fund(snapshot, "meridian_partners")
    assert [d.id for d in poach_candidates(meridian, snapshot.active_deals)][:2] == [101, 102]


def test_record_player_bid_scores_aggressiveness():
    ai = AIState()
    record_player_bid(ai, bid=100, valuation=100, sector="Packaging")
    record_player_bid(ai, bid=120, valuation=100, sector="SaaS")
    assert ai.recent_bids == [50, 100]
    assert ai.deals_won == ["Packaging", "SaaS"]

    for _ in range(12):
        record_player_bid(ai, bid=90, valuation=100, sector="Misc")
    assert len(ai.recent_bids) == 10
    assert ai.recent_bids[-1] == 25


def test_personality_is_drawn_once_then_kept(snapshot):
    hunter = _fund(snapshot, "hunter_capital")
    first = build_mindset(hunter, snapshot.player, rng=ScriptedRandom([0.5]))
    assert first.personality == Personality.aggressive
    assert first.vendetta_phase == VendettaPhase.hot

    again = build_mindset(hunter, snapshot.player, rng=ScriptedRandom([0.0]), previous=first)
    assert again.personality == Personality.aggressive


def test_no_coalition_against_a_weak_player(snapshot):
    assert check_coalition(snapshot.rival_funds, snapshot.player, tick=3, rng=ScriptedRandom([], default=0.0)) is None


def test_tactical_effects_scale_with_intensity():
    rumor = Decision(action=TacticalMove.rumor, intensity=100, success_chance=0.5, reasoning="")
    changes = tactical_effects(rumor, rng=ScriptedRandom([]))
    assert changes.stress == 5
    assert changes.reputation == -3
    assert changes.faction_reputation == {Faction.rivals: -2}


def test_tick_guard(snapshot):
    # cursor 0 has nothing to react to yet
    assert run_rival_tick(snapshot, rng=ScriptedRandom([], default=0.99)) is None
    assert snapshot.ai_state.last_processed_rival_tick is None

    snapshot.player.time_cursor = 2
    run_rival_tick(snapshot, rng=ScriptedRandom([], default=0.99))
    assert snapshot.ai_state.last_processed_rival_tick == 2
    assert set(snapshot.ai_state.rival_mindsets) == {"hunter_capital", "meridian_partners", "apex_equity"}
    assert run_rival_tick(snapshot, rng=ScriptedRandom([], default=0.0)) is None


def test_no_moves_during_intro(snapshot):
    snapshot.phase = GamePhase.intro
    snapshot.player.time_cursor = 2
    assert run_rival_tick(snapshot, rng=ScriptedRandom([], default=0.0)) is None


def test_failed_moves_leave_no_trace(snapshot):
    snapshot.player.time_cursor = 1
    deals_before = [d.id for d in snapshot.active_deals]
    funds_before = [f.model_dump() for f in snapshot.rival_funds]
    changes = run_rival_tick(snapshot, rng=ScriptedRandom([], default=0.99))
    assert changes is None
    assert [d.id for d in snapshot.active_deals] == deals_before
    assert [f.model_dump() for f in snapshot.rival_funds] == funds_before


def test_vendetta_escalation_adds_stress(snapshot):
    snapshot.player.time_cursor = 2
    snapshot.ai_state.previous_vendetta["hunter_capital"] = 55
    idx = next(i for i, f in enumerate(snapshot.rival_funds) if f.id == "hunter_capital")
    snapshot.rival_funds[idx] = snapshot.rival_funds[idx].model_copy(update={"vendetta": 75})

    changes = run_rival_tick(snapshot, rng=ScriptedRandom([], default=0.99))
    assert changes is not None
    assert changes.stress == 5
    assert any(line.startswith("VENDETTA ESCALATION") for line in snapshot.action_log)
    assert snapshot.ai_state.previous_vendetta["hunter_capital"] == 75


def test_successful_poach_takes_the_soonest_deal(snapshot):
    snapshot.player.time_cursor = 1
    rng = ScriptedRandom(
        [
            0.5, 0.5, 0.5,  # personalities
            0.99,  # no surprise
            0.0,  # hunter acts
            0.0,  # weighted pick: poach
            0.5,  # intensity roll
            0.0,  # reasoning
            0.0,  # success roll
        ],
        default=0.0,
    )
    changes = run_rival_tick(snapshot, rng=rng)

    # intensity 85 * 0.4 + 55 * 0.3 + 15 = 65.5 -> 66
    assert changes.stress == 8 + 66 // 10
    assert changes.reputation == -2
    assert changes.faction_reputation == {Faction.rivals: -2}
    assert changes.npc_relationship_update.npc_id == "hunter"
    assert changes.npc_relationship_update.change == -3
    assert changes.knowledge_gain[0]["tags"][-1] == "poach"

    assert 103 not in [d.id for d in snapshot.active_deals]
    hunter = _fund(snapshot, "hunter_capital")
    assert hunter.portfolio[-1].name == "NeuraByte AI"
    assert hunter.vendetta == 60
    assert hunter.last_action_tick == 1
    assert hunter.dry_powder == 150_000_000 - 72_000_000
    assert snapshot.ai_state.deals_lost == ["Artificial Intelligence"]
    assert any(line.startswith("RIVAL ATTACK:") for line in snapshot.action_log)
