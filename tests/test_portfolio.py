from __future__ import annotations

import pytest

from dealflow.core.errors import CommandRejected
from dealflow.core.rng import ScriptedRandom
from dealflow.models import DealPhase, ExitType, MarketVolatility
from dealflow.portfolio import (
    EXIT_PROFILES,
    analyze_company,
    available_exits,
    begin_exit,
    cancel_exit,
    complete_exit,
    exit_blockers,
    is_quarter_end,
    run_management_action,
    submit_offer,
    walk_away,
    weekly_drift,
)
from dealflow.reducer import apply_changes

NORMAL = MarketVolatility.normal


def _owned(snapshot, **overrides):
    """Mark the opening company as owned for two years, debt free."""

    player = snapshot.player
    player.game_time.year = 3
    company = player.portfolio[0]
    player.portfolio[0] = company.model_copy(
        update={
            "deal_phase": DealPhase.owned,
            "investment_cost": 50_000_000,
            "acquisition_year": 1,
            "acquisition_month": 1,
            "acquisition_week": 1,
            **overrides,
        }
    )
    return player.portfolio[0]


def test_analyze_marks_company_and_cannot_repeat(snapshot):
    changes = analyze_company(snapshot.player, 1)
    assert changes.analyst_rating == 2
    assert changes.modify_company.updates == {"analyzed": True}

    state = apply_changes(snapshot, changes).snapshot
    assert state.player.portfolio[0].analyzed is True
    assert state.player.knowledge_log[-1].source == "Diligence"
    with pytest.raises(CommandRejected, match="already been analyzed"):
        analyze_company(state.player, 1)


def test_unknown_company_is_rejected(snapshot):
    with pytest.raises(CommandRejected, match="No portfolio company"):
        analyze_company(snapshot.player, 99)


def test_lowball_offer_is_rejected(snapshot):
    with pytest.raises(CommandRejected, match="below 90%"):
        submit_offer(snapshot.player, 1, 40_000_000)


def test_accepted_offer_takes_ownership_with_lbo_debt(snapshot):
    changes = submit_offer(snapshot.player, 1, 50_000_000)
    transition = apply_changes(snapshot, changes)
    assert transition.accepted

    company = transition.snapshot.player.portfolio[0]
    assert company.deal_phase == DealPhase.owned
    assert company.investment_cost == 50_000_000
    assert company.debt == 30_000_000
    assert company.acquisition_week == 1
    assert transition.snapshot.player.deals_closed == 1
    assert transition.snapshot.player.reputation == snapshot.player.reputation + 3

    with pytest.raises(CommandRejected, match="not open for offers"):
        submit_offer(transition.snapshot.player, 1, 60_000_000)


def test_fresh_acquisition_has_no_exit_routes(snapshot):
    company = _owned(snapshot, acquisition_year=3)
    blockers = exit_blockers(snapshot.player, company, EXIT_PROFILES[ExitType.secondary_sale], NORMAL)
    assert any("months of ownership" in b for b in blockers)
    assert available_exits(snapshot.player, company, NORMAL) == []
    with pytest.raises(CommandRejected, match="Secondary Sale not available"):
        begin_exit(snapshot.player, company.id, ExitType.secondary_sale, NORMAL)


def test_ipo_blocked_in_a_panic(snapshot):
    company = _owned(snapshot, revenue_growth=0.25)
    blockers = exit_blockers(snapshot.player, company, EXIT_PROFILES[ExitType.ipo], MarketVolatility.panic)
    assert "market is PANIC" in blockers
    assert any("reputation below 40" in b for b in blockers)


def test_exit_lifecycle_secondary_sale(snapshot):
    company = _owned(snapshot)
    assert ExitType.secondary_sale in available_exits(snapshot.player, company, NORMAL)

    state = apply_changes(snapshot, begin_exit(snapshot.player, 1, ExitType.secondary_sale, NORMAL)).snapshot
    exiting = state.player.portfolio[0]
    assert exiting.deal_phase == DealPhase.exiting
    assert exiting.exit_started_week == 1

    with pytest.raises(CommandRejected, match="more week"):
        complete_exit(state.player, 1, NORMAL, rng=ScriptedRandom([0.5]))

    state.player.game_time.week = 4
    changes, valuation = complete_exit(state.player, 1, NORMAL, rng=ScriptedRandom([0.5]))
    assert valuation.multiple == pytest.approx(2.35)
    assert valuation.exit_value == 117_500_000
    assert valuation.profit == 67_500_000
    # associates earn no carry
    assert changes.cash is None
    assert changes.remove_company_id == 1

    done = apply_changes(state, changes).snapshot
    assert done.player.portfolio == []
    assert done.player.completed_exits[-1].exit_type == ExitType.secondary_sale
    assert done.player.completed_exits[-1].profit == 67_500_000


def test_cancel_exit_returns_to_owned(snapshot):
    _owned(snapshot)
    state = apply_changes(snapshot, begin_exit(snapshot.player, 1, ExitType.secondary_sale, NORMAL)).snapshot
    state = apply_changes(state, cancel_exit(state.player, 1)).snapshot
    assert state.player.portfolio[0].deal_phase == DealPhase.owned
    assert state.player.portfolio[0].exit_type is None
    with pytest.raises(CommandRejected, match="no exit in progress"):
        cancel_exit(state.player, 1)


def test_dividend_recap_keeps_the_company(snapshot):
    _owned(snapshot)
    snapshot.player.financial_engineering = 40
    state = apply_changes(snapshot, begin_exit(snapshot.player, 1, ExitType.dividend_recap, NORMAL)).snapshot
    state.player.game_time.week = 3
    changes, valuation = complete_exit(state.player, 1, NORMAL, rng=ScriptedRandom([0.5]))
    assert changes.remove_company_id is None
    company = apply_changes(state, changes).snapshot.player.portfolio[0]
    assert company.deal_phase == DealPhase.owned
    assert company.debt == valuation.exit_value


def test_walk_away_from_pipeline_but_not_mid_exit(snapshot):
    changes = walk_away(snapshot.player, 1)
    assert changes.reputation == -2
    assert apply_changes(snapshot, changes).snapshot.player.portfolio == []

    _owned(snapshot)
    state = apply_changes(snapshot, begin_exit(snapshot.player, 1, ExitType.secondary_sale, NORMAL)).snapshot
    with pytest.raises(CommandRejected, match="mid-exit"):
        walk_away(state.player, 1)


def test_management_action_outcome_and_cooldown(snapshot):
    _owned(snapshot)
    changes, outcome = run_management_action(snapshot.player, 1, "SET_STRATEGY", rng=ScriptedRandom([0.1]))
    assert outcome.chance == 60
    assert changes.reputation == 2
    patch = changes.modify_company.updates
    assert patch["revenue_growth"] == pytest.approx(0.07)
    assert patch["last_management_actions"] == {"SET_STRATEGY": 1}

    state = apply_changes(snapshot, changes).snapshot
    with pytest.raises(CommandRejected, match="cooldown for 4"):
        run_management_action(state.player, 1, "SET_STRATEGY", rng=ScriptedRandom([0.1]))


def test_management_requires_ownership_and_known_action(snapshot):
    with pytest.raises(CommandRejected, match="must be owned"):
        run_management_action(snapshot.player, 1, "SET_STRATEGY", rng=ScriptedRandom([0.1]))
    with pytest.raises(CommandRejected, match="Unknown management action"):
        run_management_action(snapshot.player, 1, "BUY_A_YACHT", rng=ScriptedRandom([0.1]))


def test_weekly_drift_only_moves_owned_companies(snapshot):
    assert weekly_drift(snapshot.player.portfolio[0]) == {}

    company = _owned(snapshot)
    patch = weekly_drift(company)
    assert patch["revenue"] > company.revenue
    assert patch["ebitda"] == round(patch["revenue"] * company.ebitda_margin)
    assert "has_board_crisis" not in patch


def test_quarter_end_every_thirteen_weeks():
    assert is_quarter_end(13)
    assert is_quarter_end(52)
    assert not is_quarter_end(12)
