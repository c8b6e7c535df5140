from __future__ import annotations

from dataclasses import dataclass

from dealflow.models import (
    ActorKind,
    CompetitiveDeal,
    DayType,
    DealType,
    Difficulty,
    Faction,
    LifestyleLevel,
    NarrativeActor,
    NpcSchedule,
    PlayerLevel,
    PortfolioCompany,
    RivalFund,
    RivalStrategy,
    StandingMeeting,
    TimeSlot,
)

MAX_PORTFOLIO_SIZE = 8
MAX_MEMORIES = 12
MAX_KNOWLEDGE_ENTRIES = 18
MAX_ACTION_LOG = 50

DEFAULT_FACTION_REPUTATION: dict[Faction, int] = {
    Faction.managing_directors: 45,
    Faction.analysts: 55,
    Faction.regulators: 50,
    Faction.limited_partners: 40,
    Faction.rivals: 30,
}

OPENING_SCENARIO_ID = 1


@dataclass(frozen=True, slots=True)
class StartingStats:
    level: PlayerLevel
    cash: int
    reputation: int
    stress: int
    energy: int
    analyst_rating: int
    financial_engineering: int
    ethics: int
    lifestyle: LifestyleLevel
    loan_balance: int = 0
    loan_rate: float = 0.0
    audit_risk: int = 0
    health: int = 100


@dataclass(frozen=True, slots=True)
class DifficultySpec:
    name: Difficulty
    description: str
    stats: StartingStats
    # Scale narrative outcome deltas: gains by `positive`, losses by `negative`.
    positive: float
    negative: float


NORMAL_STATS = StartingStats(
    level=PlayerLevel.associate,
    cash=1500,
    reputation=10,
    stress=0,
    energy=90,
    analyst_rating=50,
    financial_engineering=10,
    ethics=60,
    lifestyle=LifestyleLevel.broke_associate,
)

DIFFICULTY_SETTINGS: dict[Difficulty, DifficultySpec] = {
    Difficulty.easy: DifficultySpec(
        name=Difficulty.easy,
        description="Trust fund associate. A cushion of cash and a friendlier partnership.",
        stats=StartingStats(
            level=PlayerLevel.associate,
            cash=50_000,
            reputation=20,
            stress=0,
            energy=90,
            analyst_rating=50,
            financial_engineering=20,
            ethics=60,
            lifestyle=LifestyleLevel.aspirational,
        ),
        positive=1.2,
        negative=0.8,
    ),
    Difficulty.normal: DifficultySpec(
        name=Difficulty.normal,
        description="Standard analyst-to-associate promotion. Broke, but employed.",
        stats=NORMAL_STATS,
        positive=1.0,
        negative=1.0,
    ),
    Difficulty.hard: DifficultySpec(
        name=Difficulty.hard,
        description="Student loans, a shaky offer letter and a partner who already dislikes you.",
        stats=StartingStats(
            level=PlayerLevel.associate,
            cash=500,
            reputation=10,
            stress=35,
            energy=90,
            analyst_rating=40,
            financial_engineering=5,
            ethics=60,
            lifestyle=LifestyleLevel.broke_associate,
            loan_balance=15_000,
            loan_rate=0.08,
        ),
        positive=0.8,
        negative=1.2,
    ),
}


def difficulty_spec(difficulty: Difficulty | str | None) -> DifficultySpec:
    try:
        return DIFFICULTY_SETTINGS[Difficulty(difficulty)]
    except ValueError:
        return DIFFICULTY_SETTINGS[Difficulty.normal]


def opening_company() -> PortfolioCompany:
    return PortfolioCompany(
        id=1,
        name="PackFancy Inc.",
        ceo="Doris Chen",
        sector="Packaging",
        deal_type=DealType.lbo,
        current_valuation=55_000_000,
        revenue=120_000_000,
        ebitda=15_000_000,
        debt=0,
        revenue_growth=0.02,
        ebitda_margin=0.125,
        cash_balance=8_000_000,
        employee_count=450,
        ceo_performance=70,
        board_alignment=65,
    )


def _schedule(
    weekday: list[TimeSlot],
    weekend: list[TimeSlot],
    channel: str,
    meetings: list[tuple[DayType, TimeSlot, str]] | None = None,
) -> NpcSchedule:
    return NpcSchedule(
        weekday=weekday,
        weekend=weekend,
        preferred_channel=channel,
        standing_meetings=[StandingMeeting(day_type=d, time_slot=s, description=desc) for d, s, desc in meetings or []],
    )


M, A, E = TimeSlot.morning, TimeSlot.afternoon, TimeSlot.evening
WD, WE = DayType.weekday, DayType.weekend


def initial_npcs() -> list[NarrativeActor]:
    return [
        NarrativeActor(
            id="chad",
            name="Chad (MD)",
            role="Managing Director",
            relationship=50,
            mood=55,
            trust=45,
            traits=["Aggressive", "Results-Oriented", "Impatient"],
            faction=Faction.managing_directors,
            schedule=_schedule([M, A], [M], "desk standup", [(WD, M, "Pipeline standup")]),
            goals=["Close a trophy deal this quarter", "Protect my bonus pool"],
        ),
        NarrativeActor(
            id="hunter",
            name="Hunter",
            role="Rival VP",
            relationship=20,
            mood=25,
            trust=15,
            traits=["Manipulative", "Competitive", "Shark"],
            is_rival=True,
            faction=Faction.rivals,
            schedule=_schedule([A, E], [E], "late-night texts", [(WD, E, "Shadow auction updates")]),
            goals=["Steal your deals", "Win auctions on the cheap"],
        ),
        NarrativeActor(
            id="sarah",
            name="Sarah",
            role="Senior Analyst",
            relationship=60,
            mood=65,
            trust=60,
            traits=["Overworked", "Detail-Oriented", "Anxious"],
            faction=Faction.analysts,
            schedule=_schedule([A, E], [A], "data room pings", [(WD, A, "Model scrub")]),
            goals=["Keep the model clean", "Get credit for solid diligence"],
        ),
        NarrativeActor(
            id="regulator",
            name="Agent Smith",
            role="SEC Regulator",
            relationship=50,
            mood=45,
            trust=50,
            traits=["Suspicious", "Bureaucratic"],
            faction=Faction.regulators,
            schedule=_schedule([M], [], "formal memos", [(WD, M, "Compliance check")]),
            goals=["Lower your audit risk", "Spot sloppy disclosures early"],
        ),
        NarrativeActor(
            id="lp_swiss",
            name="Hans Gruber",
            role="Limited Partner (Swiss Bank)",
            relationship=40,
            mood=35,
            trust=45,
            traits=["Risk-Averse", "Conservative", "Traditional"],
            faction=Faction.limited_partners,
            schedule=_schedule([M], [M], "quarterly letters", [(WD, M, "Quarterly NAV review")]),
            goals=["Capital preservation", "See an IP roadmap"],
        ),
        NarrativeActor(
            id="lp_oil",
            name="Sheikh Al-Maktoum",
            role="Limited Partner (SWF)",
            relationship=30,
            mood=35,
            trust=25,
            traits=["Patient", "Status-Conscious"],
            faction=Faction.limited_partners,
            schedule=_schedule([A], [A, E], "private dinners", [(WE, E, "Deal dinner debrief")]),
            goals=["Trophy assets", "Access to marquee deals"],
        ),
        NarrativeActor(
            id="mom",
            name="Mom",
            role="Retired Teacher",
            kind=ActorKind.family,
            relationship=80,
            mood=70,
            trust=90,
            traits=["Supportive", "Worried"],
            schedule=_schedule([M, E], [M, A, E], "phone calls"),
            goals=["See you take care of yourself"],
        ),
        NarrativeActor(
            id="dad",
            name="Dad",
            role="Retired Accountant",
            kind=ActorKind.family,
            relationship=60,
            mood=50,
            trust=75,
            traits=["Frugal", "Skeptical of Wall Street"],
            schedule=_schedule([M], [M, A], "sunday calls"),
            goals=["Make sure you save something"],
        ),
        NarrativeActor(
            id="brother_mike",
            name="Mike",
            role="Younger Brother",
            kind=ActorKind.family,
            relationship=65,
            mood=50,
            trust=70,
            traits=["Dreamer", "Broke"],
            schedule=_schedule([E], [A, E], "texts"),
            goals=["Get you to invest in his startup"],
        ),
        NarrativeActor(
            id="girlfriend_emma",
            name="Emma",
            role="Girlfriend (6 months)",
            kind=ActorKind.partner,
            relationship=70,
            mood=55,
            trust=60,
            traits=["Neglected", "Understanding", "Has Limits"],
            schedule=_schedule([E], [M, A, E], "dinner dates"),
            goals=["Actually see you on weekends"],
        ),
    ]


def initial_rival_funds() -> list[RivalFund]:
    return [
        RivalFund(
            id="hunter_capital",
            name="Vanderbilt Capital",
            managing_partner="Hunter Vanderbilt III",
            npc_id="hunter",
            strategy=RivalStrategy.predatory,
            aum=500_000_000,
            dry_powder=150_000_000,
            reputation=75,
            aggression_level=85,
            risk_tolerance=70,
            vendetta=55,
        ),
        RivalFund(
            id="meridian_partners",
            name="Meridian Partners",
            managing_partner="Victoria Chen",
            npc_id="victoria",
            strategy=RivalStrategy.conservative,
            aum=800_000_000,
            dry_powder=200_000_000,
            reputation=85,
            aggression_level=30,
            risk_tolerance=25,
            vendetta=35,
        ),
        RivalFund(
            id="apex_equity",
            name="Apex Equity Group",
            managing_partner="Marcus Webb",
            npc_id="marcus",
            strategy=RivalStrategy.opportunistic,
            aum=350_000_000,
            dry_powder=100_000_000,
            reputation=60,
            aggression_level=55,
            risk_tolerance=80,
            vendetta=45,
        ),
    ]


def initial_competitive_deals() -> list[CompetitiveDeal]:
    return [
        CompetitiveDeal(
            id=101,
            company_name="TechFlow Solutions",
            sector="Enterprise SaaS",
            description="B2B workflow automation platform with sticky enterprise contracts.",
            deal_type=DealType.growth_equity,
            asking_price=85_000_000,
            fair_value=72_000_000,
            revenue=25_000_000,
            ebitda=3_000_000,
            growth=0.45,
            deadline=4,
            interested_rivals=["hunter_capital", "meridian_partners"],
            is_hot=True,
        ),
        CompetitiveDeal(
            id=102,
            company_name="Midwest Manufacturing Co.",
            sector="Industrial",
            description="Family-owned precision parts manufacturer. Boring, but prints cash.",
            deal_type=DealType.lbo,
            asking_price=45_000_000,
            fair_value=52_000_000,
            revenue=35_000_000,
            ebitda=8_000_000,
            growth=0.03,
            deadline=6,
            interested_rivals=["meridian_partners"],
        ),
        CompetitiveDeal(
            id=103,
            company_name="NeuraByte AI",
            sector="Artificial Intelligence",
            description="Hot AI startup with proprietary training data and an apocalyptic burn rate.",
            deal_type=DealType.venture_capital,
            asking_price=120_000_000,
            fair_value=40_000_000,
            revenue=2_000_000,
            ebitda=-15_000_000,
            growth=3.0,
            deadline=2,
            interested_rivals=["hunter_capital", "apex_equity"],
            is_hot=True,
        ),
        CompetitiveDeal(
            id=104,
            company_name="GreenLeaf Logistics",
            sector="Transportation",
            description="Regional trucking company mid-way through an electric fleet transition.",
            deal_type=DealType.lbo,
            asking_price=65_000_000,
            fair_value=58_000_000,
            revenue=80_000_000,
            ebitda=12_000_000,
            growth=0.08,
            deadline=5,
            interested_rivals=["meridian_partners", "apex_equity"],
        ),
        CompetitiveDeal(
            id=105,
            company_name="CloudVault Security",
            sector="Cybersecurity",
            description="Zero-trust security platform growing fast while competitors circle.",
            deal_type=DealType.growth_equity,
            asking_price=95_000_000,
            fair_value=110_000_000,
            revenue=18_000_000,
            ebitda=1_000_000,
            growth=0.85,
            deadline=3,
            interested_rivals=["hunter_capital", "apex_equity", "meridian_partners"],
            is_hot=True,
        ),
    ]
