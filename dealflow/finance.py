from __future__ import annotations

import math
from dataclasses import dataclass

from dealflow.core.clamp import clamp01
from dealflow.models import LifestyleLevel, PlayerLevel, PlayerState


@dataclass(frozen=True, slots=True)
class Compensation:
    weekly_salary: int
    bonus_multiplier: float
    can_access_loan: bool
    loan_limit: int
    # Percent of exit profit paid to the player.
    carry_percentage: float = 0.0


COMPENSATION_BY_LEVEL: dict[PlayerLevel, Compensation] = {
    PlayerLevel.associate: Compensation(2000, 0.5, False, 0),
    PlayerLevel.senior_associate: Compensation(3000, 0.75, True, 25_000),
    PlayerLevel.vice_president: Compensation(4500, 1.0, True, 50_000, 0.5),
    PlayerLevel.principal: Compensation(6000, 1.5, True, 100_000, 2.0),
    PlayerLevel.partner: Compensation(10_000, 3.0, True, 500_000, 10.0),
    PlayerLevel.founder: Compensation(0, 0.0, True, 1_000_000, 20.0),
}


@dataclass(frozen=True, slots=True)
class LifestyleTier:
    name: str
    monthly_burn: int
    # Monthly stress delta; negative tiers buy calm.
    stress_modifier: int


LIFESTYLE_TIERS: dict[LifestyleLevel, LifestyleTier] = {
    LifestyleLevel.broke_associate: LifestyleTier("Broke Associate", 2000, 5),
    LifestyleLevel.comfortable: LifestyleTier("Comfortable", 5000, 0),
    LifestyleLevel.aspirational: LifestyleTier("Aspirational", 10_000, -2),
    LifestyleLevel.baller: LifestyleTier("Baller", 25_000, -5),
    LifestyleLevel.master_of_universe: LifestyleTier("Master of the Universe", 50_000, -10),
}


@dataclass(frozen=True, slots=True)
class SkillInvestment:
    id: str
    name: str
    cost: int
    time_weeks: int
    analyst_rating: int = 0
    financial_engineering: int = 0
    reputation: int = 0
    sets_flags: tuple[str, ...] = ()
    prerequisite: str | None = None
    min_level: PlayerLevel | None = None


SKILL_INVESTMENTS: dict[str, SkillInvestment] = {
    s.id: s
    for s in (
        SkillInvestment("cfa_level1", "CFA Level I", 3000, 12, analyst_rating=10, financial_engineering=5),
        SkillInvestment(
            "cfa_level2", "CFA Level II", 3500, 16, analyst_rating=15, financial_engineering=10, prerequisite="cfa_level1"
        ),
        SkillInvestment(
            "cfa_level3",
            "CFA Level III",
            4000,
            20,
            analyst_rating=20,
            reputation=10,
            sets_flags=("CFA_CHARTERHOLDER",),
            prerequisite="cfa_level2",
        ),
        SkillInvestment(
            "executive_mba",
            "Executive MBA",
            150_000,
            52,
            reputation=20,
            sets_flags=("HAS_EMBA",),
            min_level=PlayerLevel.senior_associate,
        ),
        SkillInvestment("modeling_bootcamp", "Financial Modeling Bootcamp", 2500, 2, financial_engineering=15),
        SkillInvestment("golf_lessons", "Golf Lessons", 5000, 8, reputation=5, sets_flags=("CAN_GOLF",)),
        SkillInvestment("mandarin_course", "Mandarin Course", 8000, 24, reputation=10, sets_flags=("SPEAKS_MANDARIN",)),
        SkillInvestment("wine_sommelier", "Wine Sommelier Course", 4000, 6, reputation=8, sets_flags=("WINE_EXPERT",)),
    )
}

LEVEL_ORDER: tuple[PlayerLevel, ...] = tuple(PlayerLevel)

BONUS_MIN_REPUTATION = 30
BONUS_FULL_REPUTATION = 80
BONUS_REPUTATION_WEIGHT = 0.3
BONUS_PORTFOLIO_WEIGHT = 0.4
BONUS_DEALS_WEIGHT = 0.3

BRIDGE_LOAN_MIN = 25_000
BRIDGE_LOAN_RATE = 0.22
PERSONAL_LOAN_RATE = 0.15
BRIDGE_LOAN_BUFFER = 1.1
INTEREST_CAP_FRACTION = 0.10
CAPITALIZED_INTEREST_STRESS = 3


def compensation_for(level: PlayerLevel) -> Compensation:
    return COMPENSATION_BY_LEVEL.get(level, COMPENSATION_BY_LEVEL[PlayerLevel.associate])


def weekly_burn(lifestyle: LifestyleLevel) -> int:
    return round(LIFESTYLE_TIERS[lifestyle].monthly_burn / 4)


def weekly_lifestyle_stress(lifestyle: LifestyleLevel) -> int:
    return round(LIFESTYLE_TIERS[lifestyle].stress_modifier / 4)


def calculate_annual_bonus(player: PlayerState) -> int:
    comp = compensation_for(player.level)
    if comp.bonus_multiplier == 0 or player.reputation < BONUS_MIN_REPUTATION:
        return 0

    base = comp.weekly_salary * 52 * comp.bonus_multiplier
    reputation_factor = clamp01(
        (player.reputation - BONUS_MIN_REPUTATION) / (BONUS_FULL_REPUTATION - BONUS_MIN_REPUTATION)
    )

    gains = [
        company_moic(current_valuation=c.current_valuation, investment_cost=c.investment_cost) - 1.0
        for c in player.portfolio
    ]
    avg_return = sum(gains) / len(gains) if gains else 0.0
    portfolio_factor = clamp01(avg_return + 0.5)
    deals_factor = min(1.0, len(player.completed_exits) / 3)

    score = (
        reputation_factor * BONUS_REPUTATION_WEIGHT
        + portfolio_factor * BONUS_PORTFOLIO_WEIGHT
        + deals_factor * BONUS_DEALS_WEIGHT
    )
    return round(base * score)


@dataclass(frozen=True, slots=True)
class LoanInterest:
    due: int
    paid: int
    capitalized: int
    stress: int


def accrue_loan_interest(*, balance: int, rate: float, cash_available: int) -> LoanInterest:
    """One tick of loan interest, never more than 10% of the balance.

    Whatever cash cannot cover is added to the balance instead of pushing cash negative.
    """

    if balance <= 0 or rate <= 0:
        return LoanInterest(0, 0, 0, 0)
    due = min(round(balance * rate / 52), math.floor(balance * INTEREST_CAP_FRACTION))
    paid = min(due, max(0, cash_available))
    capitalized = due - paid
    return LoanInterest(due=due, paid=paid, capitalized=capitalized, stress=CAPITALIZED_INTEREST_STRESS if capitalized else 0)


@dataclass(frozen=True, slots=True)
class WeeklyCashflow:
    salary: int
    bonus: int
    burn: int
    interest: LoanInterest
    lifestyle_stress: int

    @property
    def net(self) -> int:
        return self.salary + self.bonus - self.burn - self.interest.paid


def weekly_cashflow(player: PlayerState, *, year_rolled_over: bool) -> WeeklyCashflow:
    finances = player.personal_finances
    salary = compensation_for(player.level).weekly_salary
    bonus = calculate_annual_bonus(player) if year_rolled_over else 0
    burn = weekly_burn(finances.lifestyle)
    available = finances.bank_balance + salary + bonus - burn
    interest = accrue_loan_interest(balance=finances.outstanding_loan, rate=finances.loan_rate, cash_available=available)
    return WeeklyCashflow(
        salary=salary,
        bonus=bonus,
        burn=burn,
        interest=interest,
        lifestyle_stress=weekly_lifestyle_stress(finances.lifestyle),
    )


def remaining_loan_capacity(player: PlayerState) -> int:
    comp = compensation_for(player.level)
    if not comp.can_access_loan:
        return 0
    return max(0, comp.loan_limit - player.personal_finances.outstanding_loan)


@dataclass(frozen=True, slots=True)
class BridgeDecision:
    accepted: bool
    loan_size: int = 0
    reason: str | None = None


def plan_bridge_loan(player: PlayerState, *, cash_delta: int) -> BridgeDecision:
    """Decide whether a cash outflow needs, and can get, an automatic bridge loan."""

    projected = player.personal_finances.bank_balance + cash_delta
    if projected >= 0:
        return BridgeDecision(accepted=True)

    comp = compensation_for(player.level)
    if not comp.can_access_loan:
        return BridgeDecision(accepted=False, reason="Insufficient funds and your level has no access to credit")

    deficit = -projected
    loan_size = max(BRIDGE_LOAN_MIN, math.ceil(deficit * BRIDGE_LOAN_BUFFER))
    if loan_size > remaining_loan_capacity(player):
        return BridgeDecision(accepted=False, reason="Bridge loan would exceed your credit limit")
    return BridgeDecision(accepted=True, loan_size=loan_size)


def ownership_months(*, acquisition_year: int | None, acquisition_month: int | None, year: int, month: int) -> int:
    if acquisition_year is None or acquisition_month is None:
        return 0
    return (year * 12 + month) - (acquisition_year * 12 + acquisition_month)


def company_moic(*, current_valuation: int, investment_cost: int) -> float:
    """Multiple on invested capital; a company bought for nothing counts as flat."""

    if investment_cost <= 0:
        return 1.0
    return current_valuation / investment_cost
