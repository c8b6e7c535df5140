from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, Field


class PlayerLevel(StrEnum):
    associate = "Associate"
    senior_associate = "Senior Associate"
    vice_president = "Vice President"
    principal = "Principal"
    partner = "Partner"
    founder = "Founder"


class Difficulty(StrEnum):
    easy = "Easy"
    normal = "Normal"
    hard = "Hard"


class MarketVolatility(StrEnum):
    normal = "NORMAL"
    bull_run = "BULL_RUN"
    credit_crunch = "CREDIT_CRUNCH"
    panic = "PANIC"


class DealPhase(StrEnum):
    pipeline = "PIPELINE"
    owned = "OWNED"
    exiting = "EXITING"


class DealType(StrEnum):
    lbo = "Leveraged Buyout"
    growth_equity = "Growth Equity"
    venture_capital = "Venture Capital"


class ExitType(StrEnum):
    ipo = "IPO"
    strategic_sale = "STRATEGIC_SALE"
    secondary_sale = "SECONDARY_SALE"
    dividend_recap = "DIVIDEND_RECAP"
    liquidation = "LIQUIDATION"


class RivalStrategy(StrEnum):
    aggressive = "AGGRESSIVE"
    conservative = "CONSERVATIVE"
    opportunistic = "OPPORTUNISTIC"
    predatory = "PREDATORY"


class Faction(StrEnum):
    managing_directors = "MANAGING_DIRECTORS"
    analysts = "ANALYSTS"
    regulators = "REGULATORS"
    limited_partners = "LIMITED_PARTNERS"
    rivals = "RIVALS"


class LifestyleLevel(StrEnum):
    broke_associate = "BROKE_ASSOCIATE"
    comfortable = "COMFORTABLE"
    aspirational = "ASPIRATIONAL"
    baller = "BALLER"
    master_of_universe = "MASTER_OF_UNIVERSE"


class DayType(StrEnum):
    weekday = "WEEKDAY"
    weekend = "WEEKEND"


class TimeSlot(StrEnum):
    morning = "MORNING"
    afternoon = "AFTERNOON"
    evening = "EVENING"


class ActorKind(StrEnum):
    work = "WORK"
    partner = "PARTNER"
    family = "FAMILY"
    wildcard = "WILDCARD"


class Severity(StrEnum):
    info = "INFO"
    warning = "WARNING"
    critical = "CRITICAL"


class GamePhase(StrEnum):
    intro = "INTRO"
    scenario = "SCENARIO"
    life_management = "LIFE_MANAGEMENT"
    portfolio = "PORTFOLIO"
    game_over = "GAME_OVER"
    founder_mode = "FOUNDER_MODE"
    victory = "VICTORY"
    prison = "PRISON"
    alone = "ALONE"


TERMINAL_PHASES: frozenset[GamePhase] = frozenset(
    {GamePhase.game_over, GamePhase.victory, GamePhase.prison, GamePhase.alone}
)

Sentiment = Literal["positive", "negative", "neutral"]


# --- command wire format -------------------------------------------------------


class RelationshipUpdate(BaseModel):
    npc_id: str
    change: int = 0
    # When unset, mood and trust both move by `change`.
    mood_change: int | None = None
    trust_change: int | None = None
    memory: str = ""


class CompanyPatch(BaseModel):
    id: int
    updates: dict[str, Any] = Field(default_factory=dict)


class StatChanges(BaseModel):
    """Sparse delta: the only channel through which game state changes.

    Numeric fields are deltas (added, then clamped). Every field is optional
    and independent of the others, so two commands can be merged field by field.
    """

    cash: int | None = None
    reputation: int | None = None
    stress: int | None = None
    energy: int | None = None
    health: int | None = None
    analyst_rating: int | None = None
    financial_engineering: int | None = None
    ethics: int | None = None
    audit_risk: int | None = None
    dependency: int | None = None
    score: int | None = None
    aum: int | None = None
    deals_closed: int | None = None

    level: PlayerLevel | None = None

    add_portfolio_company: dict[str, Any] | None = None
    modify_company: CompanyPatch | None = None
    remove_company_id: int | None = None
    completed_exit: CompletedExit | None = None
    faction_reputation: dict[Faction, int] | None = None
    sets_flags: list[str] | None = None

    loan_balance_change: int | None = None
    loan_rate: float | None = None

    npc_relationship_update: RelationshipUpdate | None = None
    npc_relationship_update2: RelationshipUpdate | None = None
    remove_npc_id: str | None = None

    skill_investment: str | None = None
    lifestyle_level: LifestyleLevel | None = None
    knowledge_gain: list[dict[str, Any]] | None = None
    played_scenario_ids: list[int] | None = None

    advance_time_slots: int | None = None
    advance_days: int | None = None

    def is_empty(self) -> bool:
        return not self.model_dump(exclude_none=True)


# --- player ------------------------------------------------------------------------


class GameTime(BaseModel):
    week: int = 1
    year: int = 1
    quarter: int = 1
    month: int = 1
    actions_remaining: int = 2
    max_actions: int = 2
    overtime_active: bool = False
    # `week|actionType|targetId` keys consumed this week.
    actions_performed_this_week: list[str] = Field(default_factory=list)
    actions_used_this_week: list[str] = Field(default_factory=list)


class PersonalFinances(BaseModel):
    bank_balance: int = 0
    total_earnings: int = 0
    salary_ytd: int = 0
    bonus_ytd: int = 0
    outstanding_loan: int = 0
    loan_rate: float = 0.0
    lifestyle: LifestyleLevel = LifestyleLevel.broke_associate
    monthly_burn: int = 2000


class KnowledgeEntry(BaseModel):
    id: str
    summary: str
    source: str = ""
    npc_id: str | None = None
    faction: Faction | None = None
    tags: list[str] = Field(default_factory=list)
    confidence: int = 70
    tick: int = 0


class Memory(BaseModel):
    id: str
    summary: str
    sentiment: Sentiment = "neutral"
    impact: int = 0
    tags: list[str] = Field(default_factory=list)
    source_npc_id: str | None = None
    tick: int = 0


class ActiveSkill(BaseModel):
    skill_id: str
    started_tick: int


class NpcStanding(BaseModel):
    """Player-side mirror of one actor's mood/trust."""

    mood: int = 50
    trust: int = 50


class CompletedExit(BaseModel):
    company_id: int
    name: str
    exit_type: ExitType
    exit_value: int
    multiple: float
    profit: int
    week: int


class PlayerState(BaseModel):
    level: PlayerLevel = PlayerLevel.associate

    # `cash` mirrors `personal_finances.bank_balance` after every transition.
    cash: int = 0
    aum: int = 0
    score: int = 0

    stress: int = 0
    energy: int = 100
    health: int = 100
    reputation: int = 10
    ethics: int = 50
    audit_risk: int = 0
    analyst_rating: int = 50
    financial_engineering: int = 10
    dependency: int = 0

    faction_reputation: dict[Faction, int] = Field(default_factory=dict)
    portfolio: list[PortfolioCompany] = Field(default_factory=list)
    game_time: GameTime = Field(default_factory=GameTime)
    personal_finances: PersonalFinances = Field(default_factory=PersonalFinances)
    knowledge_log: list[KnowledgeEntry] = Field(default_factory=list)
    flags: list[str] = Field(default_factory=list)
    played_scenario_ids: list[int] = Field(default_factory=list)
    completed_exits: list[CompletedExit] = Field(default_factory=list)
    active_skills: list[ActiveSkill] = Field(default_factory=list)
    completed_skills: list[str] = Field(default_factory=list)
    npc_standing: dict[str, NpcStanding] = Field(default_factory=dict)
    deals_closed: int = 0

    day_type: DayType = DayType.weekday
    time_slot: TimeSlot = TimeSlot.morning
    time_cursor: int = 0


# --- portfolio --------------------------------------------------------------------------


class EventOption(BaseModel):
    id: str
    label: str
    outcome_text: str = ""
    stat_changes: StatChanges = Field(default_factory=StatChanges)
    # Additive deltas on company numeric fields.
    company_deltas: dict[str, float] = Field(default_factory=dict)
    # Multiplicative factors on company numeric fields (e.g. revenue 0.82).
    company_factors: dict[str, float] = Field(default_factory=dict)
    # Percent chance that the option backfires.
    risk: int = 0


class CompanyEvent(BaseModel):
    id: str
    type: str
    company_id: int
    title: str
    description: str = ""
    severity: Severity = Severity.warning
    options: list[EventOption] = Field(default_factory=list)
    fired_week: int = 1
    expires_week: int = 4
    consult_advisor: bool = False


class PortfolioCompany(BaseModel):
    id: int
    name: str
    ceo: str = "Unknown"
    sector: str = "Misc"
    deal_type: DealType = DealType.lbo
    deal_phase: DealPhase = DealPhase.pipeline

    current_valuation: int = 0
    investment_cost: int = 0
    ownership_percentage: float = 0.0
    revenue: int = 0
    ebitda: int = 0
    debt: int = 0
    revenue_growth: float = 0.0
    ebitda_margin: float = 0.0
    cash_balance: int = 0
    employee_count: int = 0
    runway_months: int = 999

    ceo_performance: int = 70
    board_alignment: int = 80
    has_board_crisis: bool = False
    analyzed: bool = False

    acquisition_week: int | None = None
    acquisition_year: int | None = None
    acquisition_month: int | None = None
    exit_type: ExitType | None = None
    exit_started_week: int | None = None

    actions_this_week: list[str] = Field(default_factory=list)
    last_management_actions: dict[str, int] = Field(default_factory=dict)
    event_history: list[str] = Field(default_factory=list)


# --- narrative actors ----------------------------------------------------------------


class StandingMeeting(BaseModel):
    day_type: DayType
    time_slot: TimeSlot
    description: str = ""


class NpcSchedule(BaseModel):
    weekday: list[TimeSlot] = Field(default_factory=list)
    weekend: list[TimeSlot] = Field(default_factory=list)
    preferred_channel: str = ""
    standing_meetings: list[StandingMeeting] = Field(default_factory=list)


class NarrativeActor(BaseModel):
    id: str
    name: str
    role: str = ""
    kind: ActorKind = ActorKind.work
    # Legacy scalar; mood/trust are tracked independently of it.
    relationship: int = 50
    mood: int = 50
    trust: int = 50
    traits: list[str] = Field(default_factory=list)
    memories: list[Memory] = Field(default_factory=list)
    is_rival: bool = False
    faction: Faction | None = None
    schedule: NpcSchedule = Field(default_factory=NpcSchedule)
    last_contact_tick: int = 0
    goals: list[str] = Field(default_factory=list)


class DramaChoice(BaseModel):
    text: str
    description: str = ""
    outcome_text: str = ""
    stat_changes: StatChanges = Field(default_factory=StatChanges)


class NpcDrama(BaseModel):
    id: str
    title: str
    description: str = ""
    involved_npcs: list[str] = Field(default_factory=list)
    urgency: str = "MEDIUM"
    fired_week: int = 1
    expires_week: int = 3
    choices: list[DramaChoice] = Field(default_factory=list)


class PlayerWarning(BaseModel):
    id: str
    kind: str
    severity: str
    title: str
    message: str


# --- rivals --------------------------------------------------------------------------------


class RivalPortfolioEntry(BaseModel):
    name: str
    deal_type: DealType = DealType.lbo
    acquisition_price: int = 0
    current_value: int = 0
    acquired_week: int = 1


class RivalFund(BaseModel):
    id: str
    name: str
    managing_partner: str = ""
    npc_id: str = ""
    strategy: RivalStrategy = RivalStrategy.opportunistic
    aum: int = 0
    dry_powder: int = 0
    reputation: int = 50
    aggression_level: int = 50
    risk_tolerance: int = 50
    vendetta: int = 40
    win_streak: int = 0
    total_deals: int = 0
    portfolio: list[RivalPortfolioEntry] = Field(default_factory=list)
    last_action_tick: int = -1


class CompetitiveDeal(BaseModel):
    id: int
    company_name: str
    sector: str = "Misc"
    description: str = ""
    deal_type: DealType = DealType.lbo
    fair_value: int = 0
    asking_price: int = 0
    revenue: int = 0
    ebitda: int = 0
    growth: float = 0.0
    deadline: int = 3
    interested_rivals: list[str] = Field(default_factory=list)
    is_hot: bool = False


class RivalMindset(BaseModel):
    fund_id: str
    personality: str = "CALCULATING"
    mood: str = "OPPORTUNISTIC"
    fear_level: int = 0
    respect_level: int = 0
    vendetta_phase: str = "COLD"
    is_in_coalition: bool = False
    last_surprise_tick: int = -10


class CoalitionState(BaseModel):
    members: list[str] = Field(default_factory=list)
    target: str = "PLAYER"
    expires_at_tick: int = 0
    strength: float = 0.0


class PlayerPatterns(BaseModel):
    average_bid_aggressiveness: float = 50.0
    preferred_sectors: list[str] = Field(default_factory=list)
    bid_dropout_threshold: float = 1.35
    risk_tolerance: float = 50.0
    response_to_bluffs: str = "CALLS"
    deal_closing_rate: float = 0.5
    weaknesses: list[str] = Field(default_factory=list)
    last_updated_tick: int = 0


class AIState(BaseModel):
    rival_mindsets: dict[str, RivalMindset] = Field(default_factory=dict)
    coalition: CoalitionState | None = None
    player_patterns: PlayerPatterns = Field(default_factory=PlayerPatterns)
    recent_bids: list[int] = Field(default_factory=list)
    deals_won: list[str] = Field(default_factory=list)
    deals_lost: list[str] = Field(default_factory=list)
    previous_vendetta: dict[str, int] = Field(default_factory=dict)
    last_processed_rival_tick: int | None = None


# --- snapshot ---------------------------------------------------------------------------


class GameSnapshot(BaseModel):
    """The one persisted document: everything needed to resume or replay a game."""

    game_id: UUID
    created_at: datetime
    last_updated_at: datetime

    # For reproducibility/debugging.
    seed: int = 0
    rng_counter: int = 0

    difficulty: Difficulty = Difficulty.normal
    phase: GamePhase = GamePhase.intro
    game_over_reason: str | None = None

    player: PlayerState | None = None
    npcs: list[NarrativeActor] = Field(default_factory=list)
    rival_funds: list[RivalFund] = Field(default_factory=list)
    active_deals: list[CompetitiveDeal] = Field(default_factory=list)
    action_log: list[str] = Field(default_factory=list)
    ai_state: AIState = Field(default_factory=AIState)
    market_volatility: MarketVolatility = MarketVolatility.normal

    active_scenario_id: int | None = None

    active_event: CompanyEvent | None = None
    event_queue: list[CompanyEvent] = Field(default_factory=list)
    active_drama: NpcDrama | None = None
    drama_queue: list[NpcDrama] = Field(default_factory=list)
    warnings: list[PlayerWarning] = Field(default_factory=list)

    last_processed_week_tick: int | None = None


StatChanges.model_rebuild()
PlayerState.model_rebuild()
