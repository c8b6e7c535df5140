"""Portfolio company lifecycle: PIPELINE -> OWNED -> EXITING -> removed.

Player-facing operations build a `StatChanges` command (guarded by
`DealPhaseMachine`) and raise `CommandRejected` when a business rule says no.
Weekly drift and the quarterly revaluation return plain update dicts that the
time engine feeds back through the reducer as company patches.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from dealflow.core.clamp import clamp, clamp_stat
from dealflow.core.errors import CommandRejected
from dealflow.core.rng import GameRandom
from dealflow.finance import compensation_for, ownership_months
from dealflow.fsm import DealPhaseMachine
from dealflow.models import (
    CompanyPatch,
    CompletedExit,
    DealPhase,
    DealType,
    ExitType,
    Faction,
    MarketVolatility,
    PlayerState,
    PortfolioCompany,
    StatChanges,
)

OFFER_ACCEPT_RATIO = 0.9
LBO_DEBT_RATIO = 0.6
BOARD_CRISIS_GROWTH = -0.1
BOARD_CRISIS_CEO = 30


@dataclass(frozen=True, slots=True)
class ExitProfile:
    exit_type: ExitType
    name: str
    base_multiple: float
    variance: tuple[float, float]
    weeks_to_close: int
    min_months: int = 0
    min_valuation: int = 0
    min_ebitda: int = 0
    min_growth: float | None = None
    min_reputation: int = 0
    min_financial_engineering: int = 0
    markets: frozenset[MarketVolatility] | None = None
    # A recap pays out but keeps the company.
    keeps_company: bool = False


EXIT_PROFILES: dict[ExitType, ExitProfile] = {
    ExitType.ipo: ExitProfile(
        ExitType.ipo,
        "Initial Public Offering",
        4.0,
        (-0.5, 1.5),
        6,
        min_months=24,
        min_valuation=50_000_000,
        min_ebitda=10_000_000,
        min_growth=0.10,
        min_reputation=40,
        markets=frozenset({MarketVolatility.normal, MarketVolatility.bull_run}),
    ),
    ExitType.strategic_sale: ExitProfile(
        ExitType.strategic_sale,
        "Strategic Sale",
        3.0,
        (-0.3, 0.8),
        4,
        min_months=18,
        min_valuation=20_000_000,
        min_reputation=30,
    ),
    ExitType.secondary_sale: ExitProfile(
        ExitType.secondary_sale, "Secondary Sale", 2.2, (-0.2, 0.5), 3, min_months=12, min_valuation=15_000_000
    ),
    ExitType.dividend_recap: ExitProfile(
        ExitType.dividend_recap,
        "Dividend Recapitalization",
        1.5,
        (-0.2, 0.3),
        2,
        min_months=12,
        min_ebitda=5_000_000,
        min_financial_engineering=30,
        keeps_company=True,
    ),
    ExitType.liquidation: ExitProfile(ExitType.liquidation, "Liquidation", 0.3, (-0.2, 0.1), 6, min_months=6),
}


@dataclass(frozen=True, slots=True)
class Outcome:
    chance: int
    text: str
    stats: dict[str, int] = field(default_factory=dict)
    deltas: dict[str, float] = field(default_factory=dict)
    factors: dict[str, float] = field(default_factory=dict)
    sets: dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class ManagementAction:
    id: str
    label: str
    cooldown_weeks: int
    outcomes: tuple[Outcome, ...]


MANAGEMENT_ACTIONS: dict[str, ManagementAction] = {
    a.id: a
    for a in (
        ManagementAction(
            "SET_STRATEGY",
            "Set New Strategy",
            4,
            (
                Outcome(60, "Strategy well-received by management. Growth trajectory improving.", {"reputation": 2}, {"revenue_growth": 0.05}),
                Outcome(30, "Strategy met with skepticism. No immediate impact."),
                Outcome(
                    10,
                    "Strategy backfires. Key talent threatens to leave.",
                    {"reputation": -3, "stress": 5},
                    {"revenue_growth": -0.03, "ceo_performance": -10},
                ),
            ),
        ),
        ManagementAction(
            "FIRE_CEO",
            "Fire CEO",
            12,
            (
                Outcome(
                    40,
                    "New CEO drives immediate improvements. Board applauds decision.",
                    {"reputation": 5, "stress": 10},
                    factors={"ebitda": 1.10},
                    sets={"ceo_performance": 80},
                ),
                Outcome(35, "Transition period. Results unclear. Board watching closely.", {"stress": 5}, sets={"ceo_performance": 50}),
                Outcome(
                    25,
                    "Disaster. Key customers and employees flee. Activist investors circling.",
                    {"reputation": -10, "stress": 20},
                    factors={"revenue": 0.9, "ebitda": 0.85},
                    sets={"ceo_performance": 30},
                ),
            ),
        ),
        ManagementAction(
            "HIRE_EXECUTIVE",
            "Hire Key Executive",
            6,
            (
                Outcome(55, "Strong hire. The new executive is already making an impact.", {"reputation": 2}, {"ceo_performance": 10, "board_alignment": 5}),
                Outcome(30, "Decent hire. Early signs are promising but unproven.", {}, {"ceo_performance": 3}),
                Outcome(15, "Bad cultural fit. The hire creates friction in the leadership team.", {"stress": 5, "reputation": -2}, {"ceo_performance": -5}),
            ),
        ),
        ManagementAction(
            "BOARD_MEETING",
            "Board Meeting",
            2,
            (
                Outcome(70, "Productive meeting. Stakeholders aligned on path forward.", {"reputation": 1}, {"board_alignment": 5}),
                Outcome(20, "Contentious meeting. LPs asking tough questions about performance.", {"stress": 5}, {"board_alignment": -3}),
                Outcome(10, "Disaster. Co-investor threatens legal action over governance.", {"reputation": -5, "stress": 15}, {"board_alignment": -15}),
            ),
        ),
        ManagementAction(
            "COST_CUTTING",
            "Cost Cutting Initiative",
            8,
            (
                Outcome(50, "Successful cost reduction. Margins improve significantly.", {}, {"ebitda_margin": 0.05}, {"ebitda": 1.08}),
                Outcome(30, "Some savings realized but growth impacted by reduced investment.", {}, {"ebitda_margin": 0.02, "revenue_growth": -0.02}),
                Outcome(20, "Cuts too deep. Customer service suffers, churn increases.", {"stress": 5}, factors={"revenue": 0.95}),
            ),
        ),
        ManagementAction(
            "GROWTH_INVESTMENT",
            "Growth Investment",
            6,
            (
                Outcome(45, "Investment paying off. Revenue growth accelerating.", {"reputation": 3}, {"revenue_growth": 0.10, "cash_balance": -500_000}),
                Outcome(35, "Modest returns on investment. Growth improved slightly.", {}, {"revenue_growth": 0.03, "cash_balance": -500_000}),
                Outcome(20, "Investment underperforming. Burned more cash than expected.", {"stress": 8}, {"cash_balance": -1_000_000, "runway_months": -3}),
            ),
        ),
        ManagementAction(
            "REFINANCE_DEBT",
            "Refinance Debt",
            10,
            (
                Outcome(55, "Successfully refinanced at lower rate. Debt burden reduced.", {"financial_engineering": 3}, factors={"debt": 0.85}),
                Outcome(30, "Marginal improvement in terms. No significant change.", {"financial_engineering": 1}),
                Outcome(15, "Lenders sensing weakness. Terms worsened, covenants tightened.", {"stress": 10, "audit_risk": 5}, factors={"debt": 1.05}),
            ),
        ),
        ManagementAction(
            "ADD_ON_ACQUISITION",
            "Add-On Acquisition",
            16,
            (
                Outcome(
                    35,
                    "Brilliant acquisition. Synergies realized, platform growing.",
                    {"reputation": 8, "score": 200, "financial_engineering": 5},
                    factors={"revenue": 1.30, "ebitda": 1.25, "employee_count": 1.20},
                ),
                Outcome(
                    40,
                    "Decent deal. Some synergies but integration challenges.",
                    {"stress": 5, "reputation": 2},
                    factors={"revenue": 1.15, "ebitda": 1.05, "debt": 1.20},
                ),
                Outcome(
                    25,
                    "Integration nightmare. Cultures clashing, synergies elusive.",
                    {"reputation": -8, "stress": 20},
                    {"ceo_performance": -15},
                    {"revenue": 1.10, "ebitda": 0.90, "debt": 1.40},
                ),
            ),
        ),
    )
}

_SCORE_FIELDS = frozenset({"ceo_performance", "board_alignment"})
_INT_FIELDS = frozenset(
    {"revenue", "ebitda", "debt", "cash_balance", "employee_count", "runway_months", "current_valuation"}
)


def apply_company_adjustments(
    company: PortfolioCompany,
    *,
    deltas: dict[str, float] | None = None,
    factors: dict[str, float] | None = None,
    sets: dict[str, float] | None = None,
) -> dict[str, object]:
    """Compute a patch from additive deltas, multiplicative factors and absolute sets."""

    values: dict[str, float] = {}

    def current(name: str) -> float:
        return values.get(name, getattr(company, name))

    for name, factor in (factors or {}).items():
        values[name] = current(name) * factor
    for name, delta in (deltas or {}).items():
        values[name] = current(name) + delta
    for name, value in (sets or {}).items():
        values[name] = value

    patch: dict[str, object] = {}
    for name, value in values.items():
        if name in _SCORE_FIELDS:
            patch[name] = clamp_stat(value)
        elif name in _INT_FIELDS:
            patch[name] = max(0, round(value)) if name != "ebitda" else round(value)
        elif name == "ebitda_margin":
            patch[name] = clamp(value, 0.05, 0.5)
        else:
            patch[name] = value
    return patch


def find_company(player: PlayerState, company_id: int) -> PortfolioCompany:
    company = next((c for c in player.portfolio if c.id == company_id), None)
    if company is None:
        raise CommandRejected(f"No portfolio company with id {company_id}")
    return company


def _guard(company: PortfolioCompany, event: str, message: str) -> DealPhaseMachine:
    machine = DealPhaseMachine(company.model_copy())
    if not machine.try_send(event):
        raise CommandRejected(message)
    return machine


def analyze_company(player: PlayerState, company_id: int) -> StatChanges:
    company = find_company(player, company_id)
    if company.deal_phase != DealPhase.pipeline:
        raise CommandRejected(f"{company.name} is no longer in the pipeline")
    if company.analyzed:
        raise CommandRejected(f"{company.name} has already been analyzed")
    return StatChanges(
        analyst_rating=2,
        modify_company=CompanyPatch(id=company.id, updates={"analyzed": True}),
        knowledge_gain=[
            {
                "summary": f"Diligence on {company.name}: EBITDA ${company.ebitda:,}, growth {company.revenue_growth:.0%}",
                "source": "Diligence",
                "tags": ["diligence", company.sector.lower()],
                "confidence": 85,
            }
        ],
    )


def submit_offer(player: PlayerState, company_id: int, bid: int) -> StatChanges:
    company = find_company(player, company_id)
    _guard(company, "acquire", f"{company.name} is not open for offers")
    if bid < company.current_valuation * OFFER_ACCEPT_RATIO:
        raise CommandRejected(
            f"Offer rejected: ${bid:,} is below {OFFER_ACCEPT_RATIO:.0%} of the ${company.current_valuation:,} valuation"
        )

    gt = player.game_time
    updates: dict[str, object] = {
        "deal_phase": DealPhase.owned.value,
        "investment_cost": bid,
        "ownership_percentage": 100.0,
        "acquisition_week": gt.week,
        "acquisition_year": gt.year,
        "acquisition_month": gt.month,
    }
    if company.deal_type == DealType.lbo and company.debt == 0:
        updates["debt"] = round(bid * LBO_DEBT_RATIO)
    return StatChanges(
        reputation=3,
        score=100,
        deals_closed=1,
        faction_reputation={Faction.limited_partners: 2},
        modify_company=CompanyPatch(id=company.id, updates=updates),
    )


def management_cooldown_remaining(company: PortfolioCompany, action: ManagementAction, week: int) -> int:
    last = company.last_management_actions.get(action.id)
    if last is None:
        return 0
    return max(0, action.cooldown_weeks - (week - last))


def run_management_action(player: PlayerState, company_id: int, action_id: str, *, rng: GameRandom) -> tuple[StatChanges, Outcome]:
    action = MANAGEMENT_ACTIONS.get(action_id)
    if action is None:
        raise CommandRejected(f"Unknown management action: {action_id}")
    company = find_company(player, company_id)
    if company.deal_phase != DealPhase.owned:
        raise CommandRejected(f"{company.name} must be owned to take management actions")
    week = player.game_time.week
    wait = management_cooldown_remaining(company, action, week)
    if wait:
        raise CommandRejected(f"{action.label} is on cooldown for {wait} more week(s)")

    roll = rng.rand() * 100
    cumulative = 0
    outcome = action.outcomes[-1]
    for candidate in action.outcomes:
        cumulative += candidate.chance
        if roll <= cumulative:
            outcome = candidate
            break

    patch = apply_company_adjustments(company, deltas=outcome.deltas, factors=outcome.factors, sets=outcome.sets)
    patch["last_management_actions"] = {**company.last_management_actions, action.id: week}
    patch["actions_this_week"] = [*company.actions_this_week, action.id]
    patch.update(board_crisis_patch(company, patch))
    changes = StatChanges(
        **outcome.stats,
        modify_company=CompanyPatch(id=company.id, updates=patch),
    )
    return changes, outcome


def board_crisis_patch(company: PortfolioCompany, patch: dict[str, object]) -> dict[str, object]:
    growth = float(patch.get("revenue_growth", company.revenue_growth))
    ceo = int(patch.get("ceo_performance", company.ceo_performance))
    crisis = growth < BOARD_CRISIS_GROWTH or ceo < BOARD_CRISIS_CEO
    if crisis == company.has_board_crisis:
        return {}
    return {"has_board_crisis": crisis}


def exit_blockers(
    player: PlayerState, company: PortfolioCompany, profile: ExitProfile, market: MarketVolatility
) -> list[str]:
    gt = player.game_time
    months = ownership_months(
        acquisition_year=company.acquisition_year,
        acquisition_month=company.acquisition_month,
        year=gt.year,
        month=gt.month,
    )
    blockers: list[str] = []
    if months < profile.min_months:
        blockers.append(f"needs {profile.min_months} months of ownership (have {months})")
    if company.current_valuation < profile.min_valuation:
        blockers.append(f"valuation below ${profile.min_valuation:,}")
    if company.ebitda < profile.min_ebitda:
        blockers.append(f"EBITDA below ${profile.min_ebitda:,}")
    if profile.min_growth is not None and company.revenue_growth < profile.min_growth:
        blockers.append(f"growth below {profile.min_growth:.0%}")
    if player.reputation < profile.min_reputation:
        blockers.append(f"reputation below {profile.min_reputation}")
    if player.financial_engineering < profile.min_financial_engineering:
        blockers.append(f"financial engineering below {profile.min_financial_engineering}")
    if profile.markets is not None and market not in profile.markets:
        blockers.append(f"market is {market.value}")
    return blockers


def available_exits(player: PlayerState, company: PortfolioCompany, market: MarketVolatility) -> list[ExitType]:
    return [t for t, p in EXIT_PROFILES.items() if not exit_blockers(player, company, p, market)]


def begin_exit(player: PlayerState, company_id: int, exit_type: ExitType, market: MarketVolatility) -> StatChanges:
    company = find_company(player, company_id)
    _guard(company, "begin_exit", f"{company.name} must be owned to start an exit")
    profile = EXIT_PROFILES[exit_type]
    blockers = exit_blockers(player, company, profile, market)
    if blockers:
        raise CommandRejected(f"{profile.name} not available: " + "; ".join(blockers))
    return StatChanges(
        stress=5,
        modify_company=CompanyPatch(
            id=company.id,
            updates={
                "deal_phase": DealPhase.exiting.value,
                "exit_type": exit_type.value,
                "exit_started_week": player.game_time.week,
            },
        ),
    )


def cancel_exit(player: PlayerState, company_id: int) -> StatChanges:
    company = find_company(player, company_id)
    _guard(company, "cancel_exit", f"{company.name} has no exit in progress")
    return StatChanges(
        stress=3,
        reputation=-1,
        modify_company=CompanyPatch(
            id=company.id,
            updates={"deal_phase": DealPhase.owned.value, "exit_type": None, "exit_started_week": None},
        ),
    )


@dataclass(frozen=True, slots=True)
class ExitValuation:
    exit_value: int
    multiple: float
    profit: int


def calculate_exit_value(
    company: PortfolioCompany,
    profile: ExitProfile,
    *,
    financial_engineering: int,
    reputation: int,
    market: MarketVolatility,
    rng: GameRandom,
) -> ExitValuation:
    lo, hi = profile.variance
    multiple = profile.base_multiple + rng.uniform(lo, hi)

    if market == MarketVolatility.bull_run:
        multiple *= 1.2
    elif market == MarketVolatility.credit_crunch:
        multiple *= 0.85
    elif market == MarketVolatility.panic:
        multiple *= 0.6

    if financial_engineering >= 75:
        multiple *= 1.2
    elif financial_engineering >= 50:
        multiple *= 1.1

    if profile.exit_type in (ExitType.ipo, ExitType.strategic_sale) and reputation >= 60:
        multiple *= 1.05

    if company.revenue_growth > 0.20:
        multiple *= 1.15
    elif company.revenue_growth < 0:
        multiple *= 0.85

    if company.current_valuation > 0 and company.debt / company.current_valuation > 0.7:
        multiple *= 0.9

    multiple = max(0.1, multiple)
    exit_value = round(company.investment_cost * multiple)
    return ExitValuation(exit_value=exit_value, multiple=multiple, profit=exit_value - company.investment_cost)


def complete_exit(
    player: PlayerState, company_id: int, market: MarketVolatility, *, rng: GameRandom
) -> tuple[StatChanges, ExitValuation]:
    company = find_company(player, company_id)
    if company.deal_phase != DealPhase.exiting or company.exit_type is None:
        raise CommandRejected(f"{company.name} has no exit in progress")
    profile = EXIT_PROFILES[company.exit_type]
    started = company.exit_started_week or player.game_time.week
    waited = player.game_time.week - started
    if waited < profile.weeks_to_close:
        raise CommandRejected(f"{profile.name} needs {profile.weeks_to_close - waited} more week(s) to close")

    valuation = calculate_exit_value(
        company,
        profile,
        financial_engineering=player.financial_engineering,
        reputation=player.reputation,
        market=market,
        rng=rng,
    )
    carry = round(max(0, valuation.profit) * compensation_for(player.level).carry_percentage / 100)
    won = valuation.profit > 0
    record = CompletedExit(
        company_id=company.id,
        name=company.name,
        exit_type=profile.exit_type,
        exit_value=valuation.exit_value,
        multiple=round(valuation.multiple, 2),
        profit=valuation.profit,
        week=player.game_time.week,
    )

    if profile.keeps_company:
        _guard(company, "cancel_exit", f"{company.name} cannot return to ownership")
        company_change: dict[str, object] = {
            "modify_company": CompanyPatch(
                id=company.id,
                updates={
                    "deal_phase": DealPhase.owned.value,
                    "exit_type": None,
                    "exit_started_week": None,
                    "debt": company.debt + max(0, valuation.exit_value),
                },
            )
        }
    else:
        _guard(company, "complete_exit", f"{company.name} cannot be exited")
        company_change = {"remove_company_id": company.id}

    changes = StatChanges(
        cash=carry or None,
        reputation=5 if won else -5,
        stress=-5 if won else 5,
        score=max(0, valuation.profit // 100_000),
        faction_reputation={Faction.limited_partners: 5 if won else -5},
        completed_exit=record,
        **company_change,
    )
    return changes, valuation


def walk_away(player: PlayerState, company_id: int) -> StatChanges:
    company = find_company(player, company_id)
    _guard(company, "walk_away", f"Cannot walk away from {company.name} mid-exit")
    return StatChanges(reputation=-2, remove_company_id=company.id)


def weekly_drift(company: PortfolioCompany) -> dict[str, object]:
    """Revenue compounds by the annual growth rate spread over 52 weeks; EBITDA follows margin."""

    if company.deal_phase != DealPhase.owned:
        return {}
    revenue = round(company.revenue * (1 + company.revenue_growth / 52))
    patch: dict[str, object] = {"revenue": max(0, revenue), "ebitda": round(revenue * company.ebitda_margin)}
    patch.update(board_crisis_patch(company, patch))
    return patch


def quarterly_revaluation(company: PortfolioCompany, market: MarketVolatility, *, rng: GameRandom) -> dict[str, object]:
    if company.deal_phase != DealPhase.owned:
        return {}

    growth = company.revenue_growth + (rng.rand() - 0.5) * 0.1
    if market == MarketVolatility.panic:
        growth -= 0.15
    elif market == MarketVolatility.credit_crunch:
        growth -= 0.08
    elif market == MarketVolatility.bull_run:
        growth += 0.05
    if company.ceo_performance < 30:
        growth -= 0.05
    elif company.ceo_performance > 80:
        growth += 0.03
    if company.board_alignment < 40:
        growth -= 0.02

    revenue = round(company.revenue * (1 + growth / 4))
    margin = company.ebitda_margin + (-0.02 if rng.rand() > 0.7 else 0.01)
    margin = clamp(margin, 0.05, 0.5)
    ebitda = round(revenue * margin)
    valuation = round(ebitda * (8 + max(0.0, growth) * 20))

    employees = company.employee_count
    if growth > 0.15:
        employees = round(employees * 1.05)
    elif growth < -0.1:
        employees = max(10, round(employees * 0.9))

    cash = max(0, round(company.cash_balance + ebitda / 4 - company.debt * 0.02))
    runway = 999 if ebitda >= 0 else round(cash / (abs(ebitda) / 12))

    ceo = company.ceo_performance
    if rng.rand() > 0.9:
        ceo = max(20, ceo - 5)
    board = company.board_alignment
    if rng.rand() > 0.85:
        board = int(clamp(board + (5 if rng.rand() > 0.5 else -5), 20, 100))

    patch: dict[str, object] = {
        "revenue_growth": growth,
        "revenue": max(0, revenue),
        "ebitda_margin": margin,
        "ebitda": ebitda,
        "current_valuation": max(0, valuation),
        "employee_count": employees,
        "cash_balance": cash,
        "runway_months": runway,
        "ceo_performance": ceo,
        "board_alignment": board,
    }
    patch.update(board_crisis_patch(company, patch))
    return patch


def is_quarter_end(week: int) -> bool:
    return week % 13 == 0

