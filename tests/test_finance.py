from __future__ import annotations

from dealflow.finance import (
    accrue_loan_interest,
    calculate_annual_bonus,
    company_moic,
    plan_bridge_loan,
    remaining_loan_capacity,
    weekly_burn,
    weekly_cashflow,
    weekly_lifestyle_stress,
)
from dealflow.models import CompletedExit, ExitType, LifestyleLevel, PlayerLevel, PlayerState, PortfolioCompany


def _player(**kw) -> PlayerState:  # type: ignore[no-untyped-def]
    return PlayerState(**kw)


def test_lifestyle_weekly_burn_and_stress() -> None:
    assert weekly_burn(LifestyleLevel.broke_associate) == 500
    assert weekly_lifestyle_stress(LifestyleLevel.broke_associate) == 1
    assert weekly_burn(LifestyleLevel.master_of_universe) == 12_500
    assert weekly_lifestyle_stress(LifestyleLevel.master_of_universe) == -2


def test_interest_is_capped_and_capitalized_when_cash_is_short() -> None:
    interest = accrue_loan_interest(balance=52_000, rate=0.5, cash_available=100)
    assert interest.due == 500
    assert interest.paid == 100
    assert interest.capitalized == 400
    assert interest.stress == 3

    capped = accrue_loan_interest(balance=100, rate=0.5, cash_available=1_000)
    assert capped.due <= 10

    assert accrue_loan_interest(balance=0, rate=0.2, cash_available=0).due == 0


def test_bonus_is_zero_below_reputation_floor() -> None:
    assert calculate_annual_bonus(_player(level=PlayerLevel.vice_president, reputation=29)) == 0


def test_bonus_weights_reputation_portfolio_and_exits() -> None:
    exits = [
        CompletedExit(company_id=i, name=f"C{i}", exit_type=ExitType.ipo, exit_value=1, multiple=2.0, profit=1, week=1)
        for i in range(3)
    ]
    player = _player(
        level=PlayerLevel.vice_president,
        reputation=80,
        portfolio=[PortfolioCompany(id=1, name="A", current_valuation=150, investment_cost=100)],
        completed_exits=exits,
    )
    # full reputation, portfolio factor clamp(0.5 + 0.5), three exits
    assert calculate_annual_bonus(player) == 4500 * 52


def test_moic_drives_the_portfolio_factor() -> None:
    assert company_moic(current_valuation=150, investment_cost=100) == 1.5
    assert company_moic(current_valuation=80_000_000, investment_cost=0) == 1.0

    def bonus(valuation: int) -> int:
        player = _player(
            level=PlayerLevel.vice_president,
            reputation=80,
            portfolio=[PortfolioCompany(id=1, name="A", current_valuation=valuation, investment_cost=100)],
        )
        return calculate_annual_bonus(player)

    # reputation 0.3 + portfolio clamp(moic - 1 + 0.5) * 0.4, no exits
    assert bonus(100) == round(4500 * 52 * (0.3 + 0.5 * 0.4))
    assert bonus(40) == round(4500 * 52 * 0.3)


def test_weekly_cashflow_pays_salary_minus_burn() -> None:
    flow = weekly_cashflow(_player(level=PlayerLevel.associate), year_rolled_over=False)
    assert flow.salary == 2000
    assert flow.burn == 500
    assert flow.bonus == 0
    assert flow.net == 1500


def test_bridge_plan_and_capacity() -> None:
    associate = _player(level=PlayerLevel.associate)
    assert remaining_loan_capacity(associate) == 0
    assert not plan_bridge_loan(associate, cash_delta=-1).accepted
    assert plan_bridge_loan(associate, cash_delta=0).accepted

    principal = _player(level=PlayerLevel.principal)
    decision = plan_bridge_loan(principal, cash_delta=-40_000)
    assert decision.accepted
    assert decision.loan_size == 44_000
