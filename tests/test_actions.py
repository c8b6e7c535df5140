from __future__ import annotations

from uuid import uuid4

import fakeredis
import pytest
from pydantic import ValidationError

from dealflow.actions import apply_action, dispatch_action
from dealflow.game_setup import new_game
from dealflow.game_store import create_game, get_game
from dealflow.lock import lock_key
from dealflow.models import DealPhase, Difficulty, GamePhase, PlayerLevel
from dealflow.streams import Feed, read_feed


def test_unknown_action_is_a_value_error(snapshot) -> None:
    with pytest.raises(ValueError, match="Unknown action"):
        apply_action(snapshot, action="sell_the_firm")


def test_malformed_payload_is_a_value_error(snapshot) -> None:
    with pytest.raises(ValidationError):
        apply_action(snapshot, action="analyze", payload={"company_id": "not-a-number"})


def test_accepted_action_spends_points_and_advances_rng(snapshot) -> None:
    result = apply_action(snapshot, action="analyze", payload={"company_id": 1})

    assert result.accepted is True
    assert result.state.player.game_time.actions_remaining == 1
    assert result.state.player.portfolio[0].analyzed is True
    assert result.state.rng_counter == snapshot.rng_counter + 1
    assert [e.type for e in result.events] == ["COMMAND_ACCEPTED"]


def test_declined_action_returns_original_snapshot(snapshot) -> None:
    state = apply_action(snapshot, action="analyze", payload={"company_id": 1}).state
    again = apply_action(state, action="analyze", payload={"company_id": 1})

    assert again.accepted is False
    assert "already been analyzed" in again.reason
    assert again.state is state
    assert again.state.rng_counter == state.rng_counter
    assert again.events[0].type == "COMMAND_DECLINED"
    assert again.events[0].payload["reason"] == again.reason


def test_advance_week_emits_week_processed(snapshot) -> None:
    result = apply_action(snapshot, action="advance_week")
    assert result.accepted
    assert result.state.player.game_time.week == 2
    types = [e.type for e in result.events]
    assert types[:2] == ["COMMAND_ACCEPTED", "WEEK_PROCESSED"]
    assert result.events[1].payload["week"] == 2


def test_week_end_game_over_is_announced(snapshot) -> None:
    snapshot.player.audit_risk = 100
    result = apply_action(snapshot, action="advance_week")
    assert result.state.phase == GamePhase.prison
    assert result.events[-1].type == "GAME_OVER"
    assert result.events[-1].payload["reason"] == "AUDIT"

    after = apply_action(result.state, action="toggle_overtime")
    assert after.accepted is False


def test_opening_choice_leaves_the_intro() -> None:
    state = new_game(difficulty=Difficulty.normal, seed=7)
    result = apply_action(state, action="choose_scenario", payload={"choice_index": 1})

    assert result.accepted
    nxt = result.state
    assert nxt.phase == GamePhase.life_management
    assert nxt.active_scenario_id is None
    assert nxt.player.played_scenario_ids == [1]
    assert nxt.player.portfolio[0].current_valuation == 80_000_000
    assert nxt.player.reputation == 35


def test_choice_out_of_range_is_declined() -> None:
    state = new_game(difficulty=Difficulty.normal, seed=7)
    result = apply_action(state, action="choose_scenario", payload={"choice_index": 9})
    assert result.accepted is False
    assert "out of range" in result.reason


def test_associate_cannot_borrow(snapshot) -> None:
    result = apply_action(snapshot, action="draw_loan", payload={"amount": 10_000})
    assert result.accepted is False
    assert result.reason == "Loan limit exceeded. Max available: $0"


def test_vp_draws_and_repays_a_personal_loan(snapshot) -> None:
    snapshot.player.level = PlayerLevel.vp
    drawn = apply_action(snapshot, action="draw_loan", payload={"amount": 10_000}).state
    finances = drawn.player.personal_finances
    assert drawn.player.cash == 11_500
    assert finances.outstanding_loan == 10_000
    assert finances.loan_rate == pytest.approx(0.15)

    repaid = apply_action(drawn, action="repay_loan", payload={"amount": 50_000}).state
    assert repaid.player.personal_finances.outstanding_loan == 0
    assert repaid.player.personal_finances.loan_rate == 0.0
    assert repaid.player.cash == 1_500


def test_meeting_is_free_but_once_per_week(snapshot) -> None:
    sarah = next(n for n in snapshot.npcs if n.id == "sarah")
    met = apply_action(snapshot, action="meet_npc", payload={"npc_id": "sarah"})
    assert met.accepted
    assert met.state.player.game_time.actions_remaining == 2
    assert next(n for n in met.state.npcs if n.id == "sarah").relationship == sarah.relationship + 2

    again = apply_action(met.state, action="meet_npc", payload={"npc_id": "sarah"})
    assert again.accepted is False
    assert again.reason == "You already did that this week"


def test_lifestyle_change_and_repeat(snapshot) -> None:
    result = apply_action(snapshot, action="set_lifestyle", payload={"lifestyle": "COMFORTABLE"})
    assert result.accepted
    assert result.state.player.personal_finances.monthly_burn == 5000
    repeat = apply_action(result.state, action="set_lifestyle", payload={"lifestyle": "COMFORTABLE"})
    assert repeat.reason == "You already live like that"


def test_bid_on_competitive_deal(snapshot) -> None:
    low = apply_action(snapshot, action="bid_on_deal", payload={"deal_id": 102, "bid": 40_000_000})
    assert low.accepted is False
    assert low.reason.startswith("Outbid")

    won = apply_action(snapshot, action="bid_on_deal", payload={"deal_id": 102, "bid": 45_000_000})
    assert won.accepted
    player = won.state.player
    assert [c.name for c in player.portfolio] == ["PackFancy Inc.", "Midwest Manufacturing Co."]
    assert player.portfolio[1].deal_phase == DealPhase.owned
    assert 102 not in [d.id for d in won.state.active_deals]
    assert won.state.ai_state.deals_won == ["Industrial"]


def test_founder_mode_sets_level(snapshot) -> None:
    snapshot.player.reputation = 60
    result = apply_action(snapshot, action="go_founder")
    assert result.state.phase == GamePhase.founder_mode
    assert result.state.player.level == PlayerLevel.founder


def test_raw_changes_go_through_the_reducer(snapshot) -> None:
    result = apply_action(
        snapshot, action="apply_changes", payload={"changes": {"reputation": 5, "stress": 500}, "source": "test"}
    )
    assert result.accepted
    assert result.state.player.reputation == 15
    assert result.state.player.stress == 100
    assert result.state.action_log[-1] == "UPDATE: applied changes from test"


def test_dispatch_persists_and_publishes() -> None:
    r = fakeredis.FakeRedis(decode_responses=True)
    state = create_game(r=r, difficulty=Difficulty.normal, seed=11)

    result = dispatch_action(r=r, game_id=state.game_id, action="skip_intro")
    assert result.accepted
    assert len(result.feed_entry_ids) == 1
    assert get_game(r=r, game_id=state.game_id).phase == GamePhase.life_management

    declined = dispatch_action(r=r, game_id=state.game_id, action="skip_intro")
    assert declined.accepted is False
    assert get_game(r=r, game_id=state.game_id).rng_counter == 1

    entries = read_feed(r=r, feed=Feed(game_id=str(state.game_id)))
    assert [fields["type"] for _, fields in entries] == ["COMMAND_DECLINED", "COMMAND_ACCEPTED"]
    assert r.get(lock_key(str(state.game_id))) is None


def test_dispatch_missing_game() -> None:
    r = fakeredis.FakeRedis(decode_responses=True)
    with pytest.raises(ValueError, match="Game not found"):
        dispatch_action(r=r, game_id=uuid4(), action="advance_week")


def test_dispatch_fails_fast_when_busy() -> None:
    r = fakeredis.FakeRedis(decode_responses=True)
    state = create_game(r=r, difficulty=Difficulty.normal, seed=11)
    r.set(lock_key(str(state.game_id)), "1")
    with pytest.raises(ValueError, match="Game is busy"):
        dispatch_action(r=r, game_id=state.game_id, action="skip_intro")


def test_spent_overtime_cannot_be_cancelled(snapshot) -> None:
    state = apply_action(snapshot, action="toggle_overtime").state
    state.player.game_time.actions_remaining = 0

    declined = apply_action(state, action="toggle_overtime")
    assert declined.accepted is False
    assert declined.reason == "The overtime action is already spent this week"
    assert declined.state is state
    assert declined.state.player.game_time.overtime_active is True
