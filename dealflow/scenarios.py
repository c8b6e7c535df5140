"""Scenario catalog and the week-end scenario selector.

Selection is a two-step draw: a Bernoulli roll decides whether anything fires,
then eligible scenarios are scored by tag affinity and one is picked uniformly
from the top-scoring cluster.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, Field

from dealflow.commands import merge_changes, scale_changes
from dealflow.core.rng import GameRandom
from dealflow.models import (
    DayType,
    DealPhase,
    DealType,
    Faction,
    GameSnapshot,
    MarketVolatility,
    PlayerState,
    RelationshipUpdate,
    StatChanges,
    TimeSlot,
)
from dealflow.roster import OPENING_SCENARIO_ID, difficulty_spec

logger = logging.getLogger(__name__)

BASE_TRIGGER_CHANCE = 0.35
CASH_PRESSURE_THRESHOLD = 5000
LOW_FACTION_THRESHOLD = 25
HIGH_STRESS_THRESHOLD = 70
CLUSTER_WINDOW = 0.75

VOLATILITY_BONUS: dict[MarketVolatility, float] = {
    MarketVolatility.normal: 0.0,
    MarketVolatility.bull_run: 0.05,
    MarketVolatility.credit_crunch: 0.15,
    MarketVolatility.panic: 0.20,
}


class SkillCheck(BaseModel):
    skill: str
    threshold: int
    bonus_text: str = ""
    bonus: StatChanges = Field(default_factory=StatChanges)


class ScenarioChoice(BaseModel):
    text: str
    guidance: str = ""
    outcome_text: str = ""
    stat_changes: StatChanges = Field(default_factory=StatChanges)
    skill_check: SkillCheck | None = None


class FactionGate(BaseModel):
    faction: Faction
    min: int | None = None
    max: int | None = None


class DayGate(BaseModel):
    day_type: DayType
    time_slots: list[TimeSlot] = Field(default_factory=list)


class Scenario(BaseModel):
    id: int
    title: str
    description: str
    choices: list[ScenarioChoice] = Field(default_factory=list)
    trigger_tags: list[str] = Field(default_factory=list)
    is_rival_event: bool = False

    requires_portfolio: bool = False
    required_flags: list[str] = Field(default_factory=list)
    blocked_by_flags: list[str] = Field(default_factory=list)
    min_reputation: int | None = None
    max_reputation: int | None = None
    min_stress: int | None = None
    min_cash: int | None = None
    allowed_volatility: list[MarketVolatility] = Field(default_factory=list)
    day_gate: DayGate | None = None
    faction_requirements: list[FactionGate] = Field(default_factory=list)


def _choice(text: str, outcome: str, guidance: str = "", *, check: SkillCheck | None = None, **stats: Any) -> ScenarioChoice:
    return ScenarioChoice(
        text=text, guidance=guidance, outcome_text=outcome, stat_changes=StatChanges(**stats), skill_check=check
    )


def _rel(npc_id: str, change: int, memory: str, *, trust: int | None = None) -> RelationshipUpdate:
    return RelationshipUpdate(npc_id=npc_id, change=change, trust_change=trust, memory=memory)


MD, AN, REG, LP, RIV = (
    Faction.managing_directors,
    Faction.analysts,
    Faction.regulators,
    Faction.limited_partners,
    Faction.rivals,
)

BOX_AI: dict[str, Any] = {
    "name": "Box.ai",
    "ceo": "Skyler",
    "sector": "Packaging Tech",
    "deal_type": DealType.venture_capital,
    "deal_phase": DealPhase.owned,
    "investment_cost": 5_000_000,
    "ownership_percentage": 15,
    "current_valuation": 33_000_000,
    "revenue": 50_000,
    "ebitda": -1_500_000,
    "revenue_growth": 3.0,
    "ebitda_margin": 0.05,
    "cash_balance": 4_000_000,
    "runway_months": 32,
    "employee_count": 12,
}

SCENARIOS: tuple[Scenario, ...] = (
    Scenario(
        id=OPENING_SCENARIO_ID,
        title="PackFancy Inc.",
        description=(
            "A CIM for a mid-market manufacturer of artisanal cardboard boxes lands on your desk. "
            "Chad wants an IOI by Friday. Page 40 mentions a patent for a hydrophobic coating."
        ),
        choices=[
            _choice(
                "Recommend a full-throated, aggressive LBO.",
                "Your model verges on fiction, but it tells the partners what they want to hear.",
                "Tell them debt is cheap and growth is forever.",
                check=SkillCheck(
                    skill="financial_engineering",
                    threshold=25,
                    bonus_text="You structure the debt tranches so well the fund saves millions in interest.",
                    bonus=StatChanges(reputation=10, financial_engineering=5, score=500),
                ),
                reputation=20,
                stress=15,
                score=1000,
                modify_company={"id": 1, "updates": {"deal_type": DealType.lbo}},
                npc_relationship_update=_rel("chad", 10, "Backed the aggressive LBO of PackFancy"),
            ),
            _choice(
                "Pitch it as a tech play on the coating patent.",
                "'It's not boxes, it's Advanced Materials!' The valuation soars.",
                "You found the hidden IP. Change the narrative.",
                reputation=25,
                stress=5,
                score=800,
                modify_company={
                    "id": 1,
                    "updates": {"deal_type": DealType.growth_equity, "current_valuation": 80_000_000},
                },
                npc_relationship_update=_rel("chad", 20, "Found the hidden IP value in PackFancy"),
            ),
            _choice(
                "Back the founder's Box.ai spinout instead.",
                "You convince the IC that Box.ai is the next Amazon. Funds are wired.",
                "Don't think about the fact that 90% of startups fail.",
                reputation=10,
                stress=5,
                score=500,
                add_portfolio_company=BOX_AI,
            ),
            _choice(
                "Pass. The leverage required is insane.",
                "Chad sneers. You dodge a potential bankruptcy, and a bonus.",
                "No one likes the guy who says no to fees.",
                reputation=-10,
                stress=5,
                analyst_rating=-5,
                score=-250,
                remove_company_id=1,
                npc_relationship_update=_rel("chad", -5, "Too chicken to back PackFancy"),
            ),
        ],
    ),
    Scenario(
        id=100,
        title="The SEC Inquiry",
        description="Two agents are waiting in the lobby asking about the Synergy Systems deal and rumors of sabotage.",
        required_flags=["PLAYED_DIRTY_WITH_HUNTER"],
        allowed_volatility=[MarketVolatility.credit_crunch, MarketVolatility.panic],
        trigger_tags=["regulatory", "rival"],
        faction_requirements=[FactionGate(faction=REG, max=80)],
        choices=[
            _choice(
                "Deny everything and lawyer up.",
                "The legal fees are astronomical. You survive, on thin ice.",
                cash=-10_000,
                reputation=-10,
                stress=20,
                score=-200,
                audit_risk=20,
                faction_reputation={REG: -25, MD: 5},
            ),
            _choice(
                "Cooperate fully and give them Hunter.",
                "The SEC turns its gaze on Hunter. You're a rat, but a free one.",
                reputation=-20,
                stress=-10,
                score=100,
                faction_reputation={REG: 15, RIV: -15, MD: -5},
                npc_relationship_update=_rel("hunter", -100, "Testified against Hunter to the SEC"),
            ),
            _choice(
                "Pay a quiet settlement.",
                "The problem goes away, for now.",
                cash=-25_000,
                stress=-20,
                reputation=5,
                score=300,
                ethics=-20,
                audit_risk=10,
                faction_reputation={REG: -30, LP: -5},
            ),
        ],
    ),
    Scenario(
        id=200,
        title="The Golf Course Whisper",
        description="A drunk CFO at the club mumbles about a massive buyout announced Monday. Worth millions. Also illegal.",
        min_reputation=25,
        day_gate=DayGate(day_type=DayType.weekend, time_slots=[TimeSlot.afternoon, TimeSlot.evening]),
        allowed_volatility=[MarketVolatility.bull_run, MarketVolatility.normal],
        trigger_tags=["insider", "lp"],
        faction_requirements=[FactionGate(faction=REG, max=90), FactionGate(faction=LP, min=30)],
        choices=[
            _choice(
                "Buy calls on the stock immediately.",
                "The stock pops 40%. Your chest tightens every time the phone rings.",
                cash=150_000,
                stress=30,
                score=500,
                sets_flags=["COMMITTED_INSIDER_TRADING"],
                ethics=-50,
                audit_risk=80,
                faction_reputation={REG: -40, MD: 10, LP: -5},
            ),
            _choice(
                "Tip off the fund's trading desk anonymously.",
                "The firm makes a small fortune. Chad knows you know.",
                reputation=15,
                analyst_rating=10,
                score=200,
                faction_reputation={MD: 8, REG: -15, LP: 5},
                npc_relationship_update=_rel("chad", 10, "Provided extremely accurate market intel"),
            ),
            _choice(
                "Ignore it. Too much risk.",
                "You watch the stock soar from the sidelines. No orange jumpsuit.",
                stress=-5,
                reputation=5,
                score=50,
                ethics=10,
                faction_reputation={REG: 10, MD: -5},
            ),
        ],
    ),
    Scenario(
        id=101,
        title="Cardiac Event",
        description="3 AM, mid-model, your left arm goes numb. Your body is rejecting your lifestyle.",
        min_stress=80,
        choices=[
            _choice("Call an ambulance.", "Three days in hospital. The partners send flowers and interview replacements.",
                    stress=-50, energy=40, reputation=-10, cash=-5000, score=-100),
            _choice("Take a beta blocker and keep working.", "You finish the model. The gun is still loaded.",
                    stress=-10, energy=-10, score=200),
            _choice("Pass out on your desk.", "The cleaning crew finds you. Four hours of sleep.",
                    stress=-5, energy=10, reputation=-5, score=-50),
        ],
    ),
    Scenario(
        id=102,
        title="The Headhunter's Offer",
        description="A mega-fund wants you. Double your comp, carry from day one.",
        min_reputation=75,
        allowed_volatility=[MarketVolatility.bull_run, MarketVolatility.normal],
        trigger_tags=["career"],
        faction_requirements=[FactionGate(faction=MD, min=50), FactionGate(faction=LP, min=35)],
        choices=[
            _choice("Take the interview.", "You leverage the offer into a massive raise.",
                    cash=20_000, reputation=10, stress=5, score=500, faction_reputation={MD: 10, LP: 8, RIV: -5}),
            _choice("Politely decline. Loyalty pays.", "Your MD hears about it and is impressed.",
                    reputation=5, analyst_rating=5, score=100, faction_reputation={MD: 12, LP: 4}),
            _choice("Jump ship immediately.", "The new firm is a sweatshop, but the pay is incredible.",
                    cash=50_000, reputation=-10, stress=15, score=600, faction_reputation={MD: -25, LP: -10, RIV: 10}),
        ],
    ),
    Scenario(
        id=2,
        title="The Recalcitrant CEO",
        description="A portfolio CEO says your financial engineering will destroy the company's soul.",
        requires_portfolio=True,
        trigger_tags=["portfolio"],
        choices=[
            _choice("Remind him who owns the company.", "He complies sullenly. He'll be a problem later.",
                    reputation=5, stress=10, score=200),
            _choice("Find a compromise.", "The CEO is mollified; the partners see you as soft.",
                    reputation=-5, stress=-5, analyst_rating=5, score=-100),
            _choice("Go behind his back to the board.", "The board sides with you. You've started a war.",
                    reputation=10, stress=15, cash=-2000, score=350),
        ],
    ),
    Scenario(
        id=3,
        title="Bonus Season",
        description="Your year-end review with your MD. The rumor mill is churning.",
        trigger_tags=["career"],
        choices=[
            _choice("Accept whatever they give you.", "A mediocre bonus. You're a team player, which means a sucker.",
                    cash=20_000, stress=-5, reputation=-5, score=-150),
            _choice("Come prepared with a list of your wins.", "Your MD is impressed by the preparation.",
                    cash=35_000, reputation=5, analyst_rating=5, score=250),
            _choice("Hint at a competing offer.", "They match the imaginary offer. They'll be watching you.",
                    cash=50_000, reputation=10, stress=10, score=500),
        ],
    ),
    Scenario(
        id=4,
        title="The All-Nighter",
        description="6 PM Friday: a partner needs a 100-page deck on left-handed widgets by Monday.",
        choices=[
            _choice("Pull the all-nighter.", "The deck is flawless. The partner barely glances at it.",
                    energy=-40, stress=20, reputation=10, analyst_rating=5, score=300),
            _choice("Delegate to the intern.", "You spend Sunday fixing their work anyway.",
                    energy=-20, stress=10, reputation=-10, analyst_rating=-5, score=-400,
                    npc_relationship_update=_rel("sarah", -10, "Dumped weekend work on junior team")),
            _choice("Push back on the request.", "Nobody has said no to them before. Partner track: gone.",
                    stress=-20, reputation=-15, energy=10, score=-750),
        ],
    ),
    Scenario(
        id=5,
        title="Whispers in the Pantry",
        description="Hunter is telling an MD a false rumor that you botched a recent analysis.",
        is_rival_event=True,
        blocked_by_flags=["PARTNERED_WITH_HUNTER"],
        trigger_tags=["rival"],
        choices=[
            _choice("Confront him publicly.", "Hunter plays innocent and you look unhinged.",
                    reputation=-10, stress=15, score=-300, sets_flags=["LOST_COOL"],
                    npc_relationship_update=_rel("hunter", -10, "Public shouting match in pantry")),
            _choice("Spread a worse rumor about him.", "The Magic 8-Ball rumor sticks. Mutually assured destruction.",
                    reputation=10, stress=5, cash=-1000, score=400, sets_flags=["RUMOR_MONGER", "PLAYED_DIRTY_WITH_HUNTER"],
                    npc_relationship_update=_rel("hunter", -20, "Retaliated with vicious rumors")),
            _choice("Go to your MD with proof.", "Competent, if a bit of a tattletale.",
                    reputation=5, analyst_rating=5, score=150, sets_flags=["PROFESSIONAL"]),
            _choice("Let your work speak for itself.", "The high road is where people get run over.",
                    reputation=-15, stress=10, score=-500),
        ],
    ),
    Scenario(
        id=5002,
        title="Brother Needs 'Investment'",
        description="Mike's crypto-gaming startup needs $50,000 in seed money. He's family.",
        day_gate=DayGate(day_type=DayType.weekend),
        min_cash=25_000,
        trigger_tags=["family"],
        choices=[
            _choice("Write the check.", "'You won't regret this, bro!' He almost certainly will.",
                    cash=-50_000, stress=10, ethics=-5, sets_flags=["INVESTED_IN_MIKE"],
                    npc_relationship_update=_rel("brother_mike", 30, "Believed in me when no one else did")),
            _choice("Offer advice instead.", "He'll thank you in two years.",
                    energy=-10, analyst_rating=5,
                    npc_relationship_update=_rel("brother_mike", -10, "Shot down my idea but tried to help", trust=15)),
            _choice("Hard pass.", "Christmas dinner is going to be very quiet.",
                    stress=5, ethics=10,
                    npc_relationship_update=_rel("brother_mike", -25, "Wouldn't even give me a chance")),
        ],
    ),
    Scenario(
        id=5003,
        title="Emma's Ultimatum",
        description="'I need to know if there's a future here.' You've missed 8 of the last 10 dates.",
        day_gate=DayGate(day_type=DayType.weekend, time_slots=[TimeSlot.evening]),
        min_stress=40,
        trigger_tags=["family"],
        choices=[
            _choice("I'll change.", "You block off every Saturday. Chad is going to hate this.",
                    stress=-15, energy=20, reputation=-5,
                    npc_relationship_update=_rel("girlfriend_emma", 25, "Committed to making time for us", trust=10),
                    npc_relationship_update2=_rel("chad", -10, "Started prioritizing personal life over deals")),
            _choice("You deserve better.", "She cries. You feel hollow.",
                    stress=25, energy=-20, ethics=15, remove_npc_id="girlfriend_emma"),
            _choice("Just a few more months.", "She stays, but something's broken.",
                    stress=10,
                    npc_relationship_update=_rel("girlfriend_emma", -15, "Made empty promises again", trust=-20)),
        ],
    ),
    Scenario(
        id=6,
        title="The Distressed Hospital Chain",
        description="Twelve facilities drowning in debt. Real estate value, and real patients.",
        min_reputation=30,
        trigger_tags=["healthcare", "distressed"],
        choices=[
            _choice("Acquire and optimize operations.", "The turnaround will be brutal.",
                    reputation=15, stress=25, cash=-50_000, score=800, ethics=-15),
            _choice("Strip the real estate, sell the operations.", "Your returns look spectacular.",
                    reputation=-10, cash=100_000, score=600, ethics=-30, faction_reputation={REG: -15, LP: 10}),
            _choice("Pass. Healthcare is a minefield.", "Six months later the chain files. You feel nothing.",
                    stress=-5, score=100),
        ],
    ),
    Scenario(
        id=7,
        title="The AI Hype Machine",
        description="$200K revenue, a $500M valuation ask, and a Wired cover.",
        min_reputation=20,
        trigger_tags=["tech", "venture"],
        choices=[
            _choice("Lead the Series C at their valuation.", "Your LPs see the press release and smile. For now.",
                    reputation=20, stress=10, cash=-50_000, score=400, ethics=-5),
            _choice("Demand a down round and real metrics.", "They take SoftBank's money. You dodged a bullet.",
                    reputation=5, analyst_rating=15, score=300),
            _choice("Invest in their boring competitor.", "Less press, more profit.",
                    reputation=10, analyst_rating=10, score=500, cash=-25_000),
        ],
    ),
    Scenario(
        id=26,
        title="The Activist Attack",
        description="An activist hedge fund is agitating against one of your public holdings and names you personally.",
        min_reputation=40,
        trigger_tags=["rival", "regulatory"],
        choices=[
            _choice("Fight the proxy battle.", "You win the vote and lose a month of sleep.",
                    reputation=10, stress=25, energy=-20, score=500, faction_reputation={RIV: -10}),
            _choice("Settle and give them a board seat.", "Peace, at the cost of control.",
                    reputation=-5, stress=-5, score=200, faction_reputation={LP: -5}),
            _choice("Leak their own skeletons to the press.", "It works. The regulators noticed how.",
                    reputation=5, ethics=-20, audit_risk=15, score=400, faction_reputation={REG: -10, RIV: -15}),
        ],
    ),
    Scenario(
        id=29,
        title="The LP Co-Investment",
        description="Your largest LP wants co-invest rights, a board observer seat and a veto over the exit.",
        min_reputation=45,
        trigger_tags=["lp", "fundraising"],
        faction_requirements=[FactionGate(faction=LP, min=50)],
        choices=[
            _choice("Accept with their terms.", "Every board meeting now includes their clarifying questions.",
                    reputation=10, stress=15, score=600, faction_reputation={LP: 20, MD: -5}),
            _choice("Negotiate lighter governance rights.", "Information rights, no board seat. Fair.",
                    reputation=5, stress=10, score=500, faction_reputation={LP: 10}),
            _choice("Decline. Preserve GP control.", "They cut their commitment to your next fund.",
                    reputation=-10, score=200, faction_reputation={LP: -15, MD: 10}),
        ],
    ),
    Scenario(
        id=30,
        title="The Geographic Expansion",
        description="A Brazilian target with enormous growth, currency risk and a legal system you don't understand.",
        min_reputation=40,
        trigger_tags=["international", "emerging"],
        choices=[
            _choice("Expand internationally.", "The currency drops 20%, the business grows 50%.",
                    cash=-60_000, reputation=15, stress=25, score=700),
            _choice("Partner with a local fund.", "They navigate the politics, you bring the capital.",
                    cash=-40_000, reputation=10, score=600, analyst_rating=10),
            _choice("Stick to markets you understand.", "Investing is humbling.", score=100),
        ],
    ),
)

SCENARIOS_BY_ID: dict[int, Scenario] = {s.id: s for s in SCENARIOS}


def get_scenario(scenario_id: int | None) -> Scenario | None:
    if scenario_id is None:
        return None
    return SCENARIOS_BY_ID.get(scenario_id)


def trigger_chance(snapshot: GameSnapshot) -> float:
    player = snapshot.player
    if player is None:
        return 0.0
    chance = BASE_TRIGGER_CHANCE
    if player.cash < CASH_PRESSURE_THRESHOLD:
        chance += 0.10
    if player.audit_risk > 50:
        chance += 0.10
    chance += VOLATILITY_BONUS.get(snapshot.market_volatility, 0.0)
    if any(v < LOW_FACTION_THRESHOLD for v in player.faction_reputation.values()):
        chance += 0.08
    if player.portfolio:
        chance += 0.05
    if player.stress > HIGH_STRESS_THRESHOLD:
        chance *= 1.5
    return min(1.0, chance)


def is_eligible(scenario: Scenario, snapshot: GameSnapshot) -> bool:
    """All gates must pass. The opener is never drawn; it is fired by game setup."""

    player = snapshot.player
    if player is None or scenario.id == OPENING_SCENARIO_ID:
        return False
    if scenario.id in player.played_scenario_ids:
        return False
    if scenario.requires_portfolio and not player.portfolio:
        return False
    flags = set(player.flags)
    if not set(scenario.required_flags) <= flags or flags & set(scenario.blocked_by_flags):
        return False
    if scenario.min_reputation is not None and player.reputation < scenario.min_reputation:
        return False
    if scenario.max_reputation is not None and player.reputation > scenario.max_reputation:
        return False
    if scenario.min_stress is not None and player.stress < scenario.min_stress:
        return False
    if scenario.min_cash is not None and player.cash < scenario.min_cash:
        return False
    if scenario.allowed_volatility and snapshot.market_volatility not in scenario.allowed_volatility:
        return False
    if scenario.day_gate is not None:
        if player.day_type != scenario.day_gate.day_type:
            return False
        if scenario.day_gate.time_slots and player.time_slot not in scenario.day_gate.time_slots:
            return False
    for gate in scenario.faction_requirements:
        standing = player.faction_reputation.get(gate.faction, 0)
        if gate.min is not None and standing < gate.min:
            return False
        if gate.max is not None and standing > gate.max:
            return False
    return True


def eligible_scenarios(snapshot: GameSnapshot) -> list[Scenario]:
    return [s for s in SCENARIOS if is_eligible(s, snapshot)]


def affinity_score(scenario: Scenario, snapshot: GameSnapshot) -> float:
    player = snapshot.player
    if player is None:
        return 1.0
    factions = player.faction_reputation
    tags = set(scenario.trigger_tags)
    score = 1.0
    if "regulatory" in tags and (player.audit_risk > 50 or factions.get(REG, 50) < 35):
        score += 1.5
    if "rival" in tags and (
        factions.get(RIV, 30) < LOW_FACTION_THRESHOLD or any(f.vendetta > 60 for f in snapshot.rival_funds)
    ):
        score += 1.2
    if "lp" in tags and (factions.get(LP, 40) >= 50 or factions.get(LP, 40) < LOW_FACTION_THRESHOLD):
        score += 1.0
    if "career" in tags and player.reputation >= 60:
        score += 1.0
    if "insider" in tags and (
        player.cash < CASH_PRESSURE_THRESHOLD or snapshot.market_volatility == MarketVolatility.bull_run
    ):
        score += 1.0
    return score


def select_scenario(snapshot: GameSnapshot, *, rng: GameRandom) -> Scenario | None:
    if not rng.chance(trigger_chance(snapshot)):
        return None
    pool = eligible_scenarios(snapshot)
    if not pool:
        return None
    scored = [(affinity_score(s, snapshot), s) for s in pool]
    best = max(score for score, _ in scored)
    cluster = [s for score, s in scored if score >= best - CLUSTER_WINDOW]
    picked = rng.choice(cluster)
    logger.debug("scenario selected game_id=%s scenario=%s cluster=%s", snapshot.game_id, picked.id, len(cluster))
    return picked


def _skill_value(player: PlayerState, skill: str) -> int:
    value = getattr(player, skill, 0)
    return value if isinstance(value, int) else 0


def choice_changes(snapshot: GameSnapshot, scenario: Scenario, choice_index: int) -> tuple[StatChanges, ScenarioChoice, bool]:
    """Outcome command for a choice: skill bonus merged, difficulty applied, scenario marked played."""

    player = snapshot.player
    if player is None:
        raise ValueError("No active player")
    if not 0 <= choice_index < len(scenario.choices):
        raise ValueError(f"Choice {choice_index} out of range for scenario {scenario.id}")
    choice = scenario.choices[choice_index]
    changes = choice.stat_changes
    passed = False
    if choice.skill_check is not None and _skill_value(player, choice.skill_check.skill) >= choice.skill_check.threshold:
        changes = merge_changes(changes, choice.skill_check.bonus)
        passed = True
    spec = difficulty_spec(snapshot.difficulty)
    changes = scale_changes(changes, positive=spec.positive, negative=spec.negative)
    changes = merge_changes(changes, StatChanges(played_scenario_ids=[scenario.id]))
    return changes, choice, passed
