from __future__ import annotations

from dealflow import time_engine
from dealflow.action_economy import toggle_overtime
from dealflow.core.rng import ScriptedRandom
from dealflow.models import (
    ActiveSkill,
    ActorKind,
    GamePhase,
    LifestyleLevel,
    StatChanges,
    TimeSlot,
)
from dealflow.hydration import hydrate_snapshot
from dealflow.reducer import LEFT_ALONE_FLAG, apply_changes
from dealflow.time_engine import WEEKLY_SCORE, advance_week


def _quiet() -> ScriptedRandom:
    # Every Bernoulli roll fails: no events, dramas, market news, scenarios or rival moves.
    return ScriptedRandom([], default=0.99)


def test_quiet_week_runs_finances_and_advances_the_clock(snapshot):
    report = advance_week(snapshot, rng=_quiet())

    assert report.processed is True
    assert report.game_over is False
    assert report.scenario_id is None
    state = report.snapshot
    player = state.player
    assert state.last_processed_week_tick == 0
    assert player.game_time.week == 2
    assert player.time_cursor == 1
    assert player.time_slot == TimeSlot.afternoon
    # +2000 salary, -500 weekly burn on the broke associate lifestyle
    assert player.cash == 3000
    assert player.personal_finances.bank_balance == 3000
    assert player.personal_finances.salary_ytd == 2000
    assert player.stress == 1
    assert player.score == WEEKLY_SCORE
    assert any(line.startswith("PAYROLL") for line in state.action_log)


def test_tick_is_pure_and_idempotent_per_cursor(snapshot):
    report = advance_week(snapshot, rng=_quiet())
    assert snapshot.player.cash == 1500
    assert snapshot.last_processed_week_tick is None

    again = advance_week(report.snapshot, rng=_quiet(), at_cursor=0)
    assert again.processed is False
    assert again.snapshot is report.snapshot


def test_five_weeks_progress_calendar_and_cash(snapshot):
    state = snapshot
    for _ in range(5):
        report = advance_week(state, rng=_quiet())
        assert report.processed
        state = report.snapshot
    player = state.player
    assert player.game_time.week == 6
    assert player.time_cursor == 5
    assert state.last_processed_week_tick == 4
    assert player.cash == 1500 + 5 * 1500
    assert player.score == 5 * WEEKLY_SCORE


def test_relationships_decay_each_week(snapshot):
    sarah_before = next(n for n in snapshot.npcs if n.id == "sarah")
    state = advance_week(snapshot, rng=_quiet()).snapshot
    sarah = next(n for n in state.npcs if n.id == "sarah")
    assert sarah.mood == sarah_before.mood - 3
    assert sarah.trust == sarah_before.trust - 1
    assert state.player.npc_standing["sarah"].mood == sarah.mood


def test_missed_standing_meeting_costs_mood_and_trust(snapshot):
    # Sarah holds a standing weekday afternoon check-in; cursor 1 is weekday afternoon.
    state = advance_week(snapshot, rng=_quiet()).snapshot
    report = advance_week(state, rng=_quiet())
    assert "missed_meetings" in report.notes
    sarah = next(n for n in report.snapshot.npcs if n.id == "sarah")
    assert any("missed_meeting" in m.tags for m in sarah.memories)


def test_overtime_applies_penalty_and_resets_action_points(snapshot):
    snapshot.player.game_time = toggle_overtime(snapshot.player.game_time)
    assert snapshot.player.game_time.actions_remaining == 3

    state = advance_week(snapshot, rng=_quiet()).snapshot
    gt = state.player.game_time
    assert gt.overtime_active is False
    assert gt.max_actions == 2
    assert gt.actions_remaining == 2
    assert state.player.energy == snapshot.player.energy - 15
    assert state.player.health == snapshot.player.health - 5


def test_spent_overtime_is_still_billed_at_week_end(snapshot):
    gt = toggle_overtime(snapshot.player.game_time)
    gt.actions_remaining = 0
    snapshot.player.game_time = gt

    state = advance_week(snapshot, rng=_quiet()).snapshot
    assert state.player.energy == snapshot.player.energy - 15
    assert state.player.health == snapshot.player.health - 5
    assert state.player.game_time.max_actions == 2


def test_scenario_fires_when_roll_succeeds(snapshot):
    # drama roll, market roll, then the scenario trigger and the cluster pick
    rng = ScriptedRandom([0.99, 0.99, 0.0], default=0.0)
    report = advance_week(snapshot, rng=rng)
    assert report.scenario_id is not None
    assert report.scenario_id != 1
    assert report.snapshot.active_scenario_id == report.scenario_id
    assert report.snapshot.phase == GamePhase.scenario


def test_pending_scenario_does_not_block_the_tick(snapshot):
    snapshot.active_scenario_id = 3
    snapshot.phase = GamePhase.scenario
    report = advance_week(snapshot, rng=ScriptedRandom([], default=0.0))
    assert report.processed
    assert report.scenario_id is None
    assert report.snapshot.active_scenario_id == 3


def test_skill_completes_after_its_duration(snapshot):
    snapshot.player.active_skills = [ActiveSkill(skill_id="modeling_bootcamp", started_tick=3)]
    fe_before = snapshot.player.financial_engineering

    state = advance_week(snapshot, rng=_quiet(), at_cursor=4).snapshot
    player = state.player
    assert player.active_skills == []
    assert "modeling_bootcamp" in player.completed_skills
    assert player.financial_engineering == fe_before + 15


def test_declined_finances_end_the_game_as_bankrupt(snapshot):
    finances = snapshot.player.personal_finances
    finances.lifestyle = LifestyleLevel.master_of_universe
    report = advance_week(snapshot, rng=_quiet())
    assert report.game_over is True
    assert report.snapshot.phase == GamePhase.game_over
    assert report.snapshot.game_over_reason == "BANKRUPT"

    after = advance_week(report.snapshot, rng=_quiet())
    assert after.processed is False


def test_snapshot_without_actors_keeps_playing():
    state = hydrate_snapshot(
        {
            "phase": "LIFE_MANAGEMENT",
            "player": {
                "cash": 1500,
                "reputation": 10,
                "stress": 0,
                "portfolio": [{"id": 1, "name": "PackFancy Inc.", "deal_phase": "PIPELINE"}],
            },
        }
    )
    assert state.npcs == []

    for _ in range(5):
        report = advance_week(state, rng=_quiet())
        assert report.processed is True
        assert report.game_over is False
        state = report.snapshot

    assert state.phase == GamePhase.life_management
    assert state.player.game_time.week == 6


def test_losing_the_last_close_relationship_ends_alone(snapshot):
    close = [n.id for n in snapshot.npcs if n.kind in (ActorKind.family, ActorKind.partner)]
    for npc_id in close[:-1]:
        snapshot = apply_changes(snapshot, StatChanges(remove_npc_id=npc_id)).snapshot
    assert LEFT_ALONE_FLAG not in snapshot.player.flags
    assert advance_week(snapshot, rng=_quiet()).game_over is False

    snapshot = apply_changes(snapshot, StatChanges(remove_npc_id=close[-1])).snapshot
    assert LEFT_ALONE_FLAG in snapshot.player.flags
    report = advance_week(snapshot, rng=_quiet())
    assert report.game_over
    assert report.snapshot.phase == GamePhase.alone
    assert report.snapshot.game_over_reason == "ALONE"


def test_refused_terminal_event_falls_through_to_the_next(snapshot, monkeypatch):
    # INTRO cannot go to PRISON, so the second condition decides.
    snapshot.phase = GamePhase.intro
    monkeypatch.setattr(
        time_engine, "_terminal_candidates", lambda _: [("convict", "AUDIT"), ("lose", "REPUTATION")]
    )
    report = advance_week(snapshot, rng=_quiet())
    assert report.game_over is True
    assert report.snapshot.phase == GamePhase.game_over
    assert report.snapshot.game_over_reason == "REPUTATION"


def test_audit_risk_at_ceiling_sends_player_to_prison(snapshot):
    snapshot.player.audit_risk = 100
    report = advance_week(snapshot, rng=_quiet())
    assert report.snapshot.phase == GamePhase.prison
    assert report.snapshot.game_over_reason == "AUDIT"


def test_reputation_floor_only_bites_after_grace_period(snapshot):
    snapshot.player.reputation = 2
    early = advance_week(snapshot, rng=_quiet())
    assert early.game_over is False

    late = snapshot.model_copy(deep=True)
    late.player.game_time.week = 11
    report = advance_week(late, rng=_quiet())
    assert report.snapshot.phase == GamePhase.game_over
    assert report.snapshot.game_over_reason == "REPUTATION"
