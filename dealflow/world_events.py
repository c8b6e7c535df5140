"""Company crises, relationship drama, market news and player warnings.

Everything here is driven by the injected `GameRandom`. Generators return
models or `StatChanges`; the time engine and dispatch layer apply them.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

from dealflow.commands import scale_changes
from dealflow.core.rng import GameRandom
from dealflow.finance import weekly_burn
from dealflow.models import (
    CompanyEvent,
    CompanyPatch,
    DealPhase,
    DramaChoice,
    EventOption,
    Faction,
    GameSnapshot,
    MarketVolatility,
    NarrativeActor,
    NpcDrama,
    PlayerState,
    PlayerWarning,
    PortfolioCompany,
    RelationshipUpdate,
    Severity,
    StatChanges,
)
from dealflow.portfolio import apply_company_adjustments, board_crisis_patch
from dealflow.reducer import Transition, append_log, apply_changes
from dealflow.roster import difficulty_spec

logger = logging.getLogger(__name__)

EVENT_BASE_PROBABILITY = 0.08
EVENT_LIFETIME_WEEKS = 3
DRAMA_CHANCE = 0.10
MARKET_EVENT_CHANCE = 0.02
EVENT_DEADLINE_WARNING_WEEKS = 2

CONSULT_TYPES = frozenset(
    {"REVENUE_DROP", "KEY_CUSTOMER_LOSS", "ACTIVIST_INVESTOR", "REGULATORY_ISSUE", "STRATEGIC_BUYER_INTEREST"}
)


def _opt(
    option_id: str,
    label: str,
    outcome: str,
    *,
    stats: dict | None = None,
    deltas: dict | None = None,
    factors: dict | None = None,
    risk: int = 0,
) -> EventOption:
    return EventOption(
        id=option_id,
        label=label,
        outcome_text=outcome,
        stat_changes=StatChanges(**(stats or {})),
        company_deltas=deltas or {},
        company_factors=factors or {},
        risk=risk,
    )


@dataclass(frozen=True, slots=True)
class EventTemplate:
    title: str
    severity: Severity
    description: str
    options: Callable[[PortfolioCompany], list[EventOption]]


# Option costs are paid from the company's balance sheet, not the player's bank account.
EVENT_TEMPLATES: dict[str, EventTemplate] = {
    "REVENUE_DROP": EventTemplate(
        "Revenue Miss",
        Severity.warning,
        "{name} just reported revenue 15% below forecast. Sales blames product, product blames marketing.",
        lambda c: [
            _opt("fire_sales", "Fire the Sales VP", "The Sales VP is out. Revenue stabilizes but morale tanks.",
                 stats={"stress": 10}, deltas={"revenue_growth": 0.02, "ceo_performance": -10}),
            _opt("pivot_strategy", "Pivot Go-to-Market Strategy", "Bold move. Results will take 6 months to show.",
                 stats={"reputation": 5}, deltas={"cash_balance": -2_000_000, "revenue_growth": 0.08}, risk=30),
            _opt("wait_and_see", "Give them another quarter", "You chose patience. The board is watching closely.", risk=60),
        ],
    ),
    "KEY_CUSTOMER_LOSS": EventTemplate(
        "Major Customer Churning",
        Severity.critical,
        "{name}'s largest customer is moving to a cheaper competitor.",
        lambda c: [
            _opt("match_price", "Match the competitor's price", "The customer stays. Margins take the hit.",
                 factors={"ebitda": 0.85}),
            _opt("let_them_go", "Let them walk", "Revenue drops, but you kept pricing discipline.",
                 stats={"reputation": -5}, factors={"revenue": 0.82}),
            _opt("executive_intervention", "Fly out personally", "Three red-eyes later, the contract is renewed.",
                 stats={"energy": -30, "stress": 15, "reputation": 10}, risk=40),
        ],
    ),
    "MANAGEMENT_DEPARTURE": EventTemplate(
        "Executive Resignation",
        Severity.warning,
        "{name}'s CFO has accepted an offer elsewhere.",
        lambda c: [
            _opt("counteroffer", "Massive counteroffer", "The CFO stays, for now.",
                 deltas={"cash_balance": -500_000, "ceo_performance": 5}),
            _opt("let_go_gracefully", "Wish them well", "A graceful handoff. The team respects it.",
                 stats={"reputation": 5}, deltas={"ceo_performance": -10}),
            _opt("enforce_noncompete", "Threaten legal action", "Lawyers get rich. Everyone else gets bitter.",
                 stats={"reputation": -10, "ethics": -10}, deltas={"cash_balance": -200_000}),
        ],
    ),
    "COMPETITOR_THREAT": EventTemplate(
        "Competitive Pressure",
        Severity.warning,
        "A well-funded competitor is undercutting {name} on price.",
        lambda c: [
            _opt("innovate", "Accelerate R&D", "Product velocity picks up.",
                 deltas={"cash_balance": -1_000_000, "revenue_growth": 0.03}),
            _opt("acquire", "Acquire the competitor", "You buy the threat. Integration will hurt.",
                 stats={"stress": 15}, deltas={"cash_balance": -5_000_000}, factors={"revenue": 1.1}),
            _opt("differentiate", "Focus on enterprise", "You cede the low end and hold the core.",
                 deltas={"revenue_growth": -0.02}),
        ],
    ),
    "REGULATORY_ISSUE": EventTemplate(
        "Regulatory Scrutiny",
        Severity.critical,
        "Regulators have opened an inquiry into {name}'s reporting practices.",
        lambda c: [
            _opt("full_cooperation", "Full cooperation", "Expensive, but the inquiry closes quietly.",
                 stats={"ethics": 10, "audit_risk": -10}, deltas={"cash_balance": -1_500_000}),
            _opt("fight_it", "Fight the investigation", "You dig in. The regulators dig deeper.",
                 stats={"ethics": -15, "audit_risk": 20, "stress": 20}, deltas={"cash_balance": -500_000}, risk=50),
            _opt("settle_quickly", "Seek quick settlement", "A fine, a press release, and it's over.",
                 stats={"reputation": -5}, deltas={"cash_balance": -3_000_000}),
        ],
    ),
    "SUPPLY_CHAIN_CRISIS": EventTemplate(
        "Supply Chain Disruption",
        Severity.critical,
        "{name}'s primary supplier just halted shipments.",
        lambda c: [
            _opt("emergency_sourcing", "Emergency alternative sourcing", "Production continues at a premium.",
                 stats={"stress": 15}, deltas={"ebitda_margin": -0.03}),
            _opt("vertical_integration", "Acquire a supplier", "You own the chain now.",
                 stats={"reputation": 5}, deltas={"cash_balance": -8_000_000, "ebitda_margin": 0.02}),
            _opt("delay_production", "Delay production", "Customers are not pleased.",
                 stats={"reputation": -10}, factors={"revenue": 0.9}),
        ],
    ),
    "ACTIVIST_INVESTOR": EventTemplate(
        "Activist Approaches",
        Severity.critical,
        "An activist fund has taken a stake in {name} and wants board seats.",
        lambda c: [
            _opt("fight", "Prepare for proxy war", "You win, barely. It cost you.",
                 stats={"stress": 25, "energy": -20}, deltas={"cash_balance": -1_000_000}, risk=40),
            _opt("negotiate", "Give them a board seat", "Peace, at the price of control.",
                 stats={"reputation": -5}, deltas={"board_alignment": -10}),
            _opt("accelerate_exit", "Start exit planning", "The activist backs off once a sale is in view.",
                 stats={"reputation": 10}, deltas={"board_alignment": 10}),
        ],
    ),
    "IPO_WINDOW": EventTemplate(
        "IPO Window Opens",
        Severity.info,
        "Bankers are calling: comparable companies to {name} are pricing above range.",
        lambda c: [
            _opt("begin_ipo", "Begin IPO process", "The roadshow prep begins.",
                 stats={"stress": 20}, deltas={"cash_balance": -500_000}, factors={"current_valuation": 1.1}),
            _opt("dual_track", "Run dual track", "Two processes, double the leverage, double the work.",
                 stats={"stress": 30}, deltas={"cash_balance": -750_000}, factors={"current_valuation": 1.15}),
            _opt("not_ready", "We're not ready", "The window may close. It may not."),
        ],
    ),
    "STRATEGIC_BUYER_INTEREST": EventTemplate(
        "Strategic Interest",
        Severity.info,
        "A strategic acquirer has made an informal approach for {name}.",
        lambda c: [
            _opt("engage_seriously", "Engage seriously", "Diligence begins. Your valuation mark improves.",
                 stats={"stress": 15}, factors={"current_valuation": 1.1}),
            _opt("play_hard_to_get", "Play hard to get", "They might come back higher. Or not at all.",
                 factors={"current_valuation": 1.05}, risk=30),
            _opt("politely_decline", "Politely decline", "Word gets around that you're disciplined.",
                 stats={"reputation": 5}),
        ],
    ),
}


def company_has_event(snapshot: GameSnapshot, company_id: int) -> bool:
    events = [snapshot.active_event, *snapshot.event_queue]
    return any(e is not None and e.company_id == company_id for e in events)


def world_pressure(player: PlayerState, market: MarketVolatility) -> float:
    """Multiplier on crisis odds from stress, audit risk, cash pressure and volatility."""

    pressure = 1.0
    if player.stress > 70:
        pressure += 0.25
    if player.audit_risk > 50:
        pressure += 0.15
    if player.cash < 5000:
        pressure += 0.15
    pressure += {
        MarketVolatility.panic: 0.3,
        MarketVolatility.credit_crunch: 0.15,
        MarketVolatility.bull_run: 0.05,
    }.get(market, 0.0)
    return pressure


def company_event_probability(company: PortfolioCompany, player: PlayerState, market: MarketVolatility) -> float:
    p = EVENT_BASE_PROBABILITY
    if company.revenue_growth < -0.1:
        p += 0.10
    if company.ceo_performance < 40:
        p += 0.05
    if company.board_alignment < 50:
        p += 0.05
    return min(1.0, p * world_pressure(player, market))


def pick_event_type(company: PortfolioCompany, rng: GameRandom) -> str:
    candidates: list[str] = []
    if company.revenue_growth < 0:
        candidates.append("REVENUE_DROP")
    if rng.rand() > 0.7:
        candidates.append("KEY_CUSTOMER_LOSS")
    if company.ceo_performance < 50 or rng.rand() > 0.85:
        candidates.append("MANAGEMENT_DEPARTURE")
    if company.current_valuation > 100_000_000:
        candidates.append("ACTIVIST_INVESTOR")
        if rng.rand() > 0.6:
            candidates.append("STRATEGIC_BUYER_INTEREST")
    if company.revenue_growth > 0.2 and company.current_valuation > 50_000_000:
        candidates.append("IPO_WINDOW")
    if rng.rand() > 0.9:
        candidates.append("COMPETITOR_THREAT")
    if rng.rand() > 0.95:
        candidates.extend(["REGULATORY_ISSUE", "SUPPLY_CHAIN_CRISIS"])
    if not candidates:
        candidates.append("COMPETITOR_THREAT")
    return rng.choice(candidates)


def build_company_event(event_type: str, company: PortfolioCompany, *, week: int) -> CompanyEvent:
    template = EVENT_TEMPLATES[event_type]
    return CompanyEvent(
        id=f"{event_type.lower()}_{company.id}_{week}",
        type=event_type,
        company_id=company.id,
        title=template.title,
        description=template.description.format(name=company.name),
        severity=template.severity,
        options=template.options(company),
        fired_week=week,
        expires_week=week + EVENT_LIFETIME_WEEKS,
        consult_advisor=event_type in CONSULT_TYPES,
    )


def roll_company_event(
    snapshot: GameSnapshot, company: PortfolioCompany, *, rng: GameRandom
) -> CompanyEvent | None:
    player = snapshot.player
    if player is None or company.deal_phase != DealPhase.owned or company_has_event(snapshot, company.id):
        return None
    if not rng.chance(company_event_probability(company, player, snapshot.market_volatility)):
        return None
    event = build_company_event(pick_event_type(company, rng), company, week=player.game_time.week)
    logger.debug("company event fired game_id=%s event=%s", snapshot.game_id, event.id)
    return event


def enqueue_event(snapshot: GameSnapshot, event: CompanyEvent) -> None:
    """At most one active event; the rest wait in FIFO order."""

    if snapshot.active_event is None:
        snapshot.active_event = event
    else:
        snapshot.event_queue.append(event)


def finish_active_event(snapshot: GameSnapshot) -> None:
    snapshot.active_event = snapshot.event_queue.pop(0) if snapshot.event_queue else None


RISK_BACKFIRE = StatChanges(stress=5, reputation=-3)


def event_option_changes(
    event: CompanyEvent, option_id: str | None, company: PortfolioCompany | None, *, rng: GameRandom
) -> tuple[StatChanges, EventOption, bool]:
    """The command an event choice produces; `None` picks the last (passive) option."""

    option = next((o for o in event.options if o.id == option_id), None) if option_id else None
    if option is None:
        if option_id:
            raise ValueError(f"Unknown option {option_id!r} for event {event.id}")
        option = event.options[-1]

    backfired = bool(option.risk) and rng.rand() * 100 < option.risk
    changes = option.stat_changes.model_copy(deep=True)
    if backfired:
        changes = changes.model_copy(
            update={
                "stress": (changes.stress or 0) + (RISK_BACKFIRE.stress or 0),
                "reputation": (changes.reputation or 0) + (RISK_BACKFIRE.reputation or 0),
            }
        )

    if company is not None:
        deltas = dict(option.company_deltas)
        if backfired:
            deltas["revenue_growth"] = deltas.get("revenue_growth", 0.0) - 0.02
        patch = apply_company_adjustments(company, deltas=deltas, factors=option.company_factors)
        patch.update(board_crisis_patch(company, patch))
        patch["event_history"] = [*company.event_history, f"{event.type}:{option.id}"][-10:]
        changes = changes.model_copy(update={"modify_company": CompanyPatch(id=company.id, updates=patch)})
    return changes, option, backfired


def expired_events(snapshot: GameSnapshot, week: int) -> list[CompanyEvent]:
    events = [e for e in [snapshot.active_event, *snapshot.event_queue] if e is not None]
    return [e for e in events if e.expires_week <= week]


def drop_event(snapshot: GameSnapshot, event_id: str) -> None:
    if snapshot.active_event is not None and snapshot.active_event.id == event_id:
        finish_active_event(snapshot)
    else:
        snapshot.event_queue = [e for e in snapshot.event_queue if e.id != event_id]


def _scaled(snapshot: GameSnapshot, changes: StatChanges) -> StatChanges:
    spec = difficulty_spec(snapshot.difficulty)
    return scale_changes(changes, positive=spec.positive, negative=spec.negative)


def resolve_event(
    snapshot: GameSnapshot, event: CompanyEvent, option_id: str | None, *, rng: GameRandom
) -> Transition:
    """Apply one option of `event` and free its slot; the next queued event is promoted."""

    player = snapshot.player
    company = None
    if player is not None:
        company = next((c for c in player.portfolio if c.id == event.company_id), None)
    changes, option, backfired = event_option_changes(event, option_id, company, rng=rng)
    transition = apply_changes(snapshot, _scaled(snapshot, changes))
    if not transition.accepted:
        return transition
    nxt = transition.snapshot
    drop_event(nxt, event.id)
    suffix = " It backfired." if backfired else ""
    append_log(nxt, f"EVENT: {event.title} - {option.label}. {option.outcome_text}{suffix}".strip())
    return Transition(snapshot=nxt, bridge_loan=transition.bridge_loan)


# --- drama ------------------------------------------------------------------------------


def _rel(npc_id: str, change: int, memory: str, *, trust: int | None = None) -> RelationshipUpdate:
    return RelationshipUpdate(npc_id=npc_id, change=change, trust_change=trust, memory=memory)


def _choice(text: str, outcome: str, **stats) -> DramaChoice:
    return DramaChoice(text=text, outcome_text=outcome, stat_changes=StatChanges(**stats))


@dataclass(frozen=True, slots=True)
class DramaTemplate:
    id: str
    title: str
    description: str
    involved: tuple[str, ...]
    urgency: str
    lifetime_weeks: int
    # Extra roll that must exceed this threshold.
    rarity: float
    eligible: Callable[[dict[str, NarrativeActor]], bool]
    choices: tuple[DramaChoice, ...]


DRAMA_TEMPLATES: tuple[DramaTemplate, ...] = (
    DramaTemplate(
        "sarah_hunter_rivalry",
        "Office Politics Erupts",
        "Sarah says Hunter is taking credit for her model work on the PackFancy deal. Hunter's version is... different.",
        ("sarah", "hunter"),
        "MEDIUM",
        2,
        0.7,
        lambda n: "sarah" in n and "hunter" in n and n["sarah"].relationship >= 40,
        (
            _choice(
                "Back Sarah",
                "Sarah is grateful. Hunter will remember this.",
                npc_relationship_update=_rel("sarah", 25, "Defended me when it mattered"),
                npc_relationship_update2=_rel("hunter", -30, "Sided against me in front of Chad"),
            ),
            _choice(
                "Back Hunter",
                "Hunter owes you one. Sarah stops making eye contact.",
                npc_relationship_update=_rel("hunter", 20, "Had my back in the credit dispute"),
                npc_relationship_update2=_rel("sarah", -20, "Threw me under the bus", trust=-15),
            ),
            _choice(
                "Stay out of it",
                "Nobody is happy, and everyone noticed.",
                reputation=-5,
                npc_relationship_update=_rel("sarah", -10, "Wouldn't stand up for me"),
                npc_relationship_update2=_rel("hunter", -5, "Too weak to pick a side"),
            ),
        ),
    ),
    DramaTemplate(
        "chad_secret",
        "Chad's Little Problem",
        "Chad needs you to 'adjust' a few numbers in the LP report before Friday. Just this once.",
        ("chad",),
        "HIGH",
        1,
        0.8,
        lambda n: "chad" in n and n["chad"].relationship >= 30,
        (
            _choice(
                "Cover for him",
                "Chad's career is saved. Yours now has a secret in it.",
                ethics=-30,
                audit_risk=20,
                npc_relationship_update=_rel("chad", 40, "Saved my career when I needed it", trust=30),
                sets_flags=["COVERED_FOR_CHAD"],
            ),
            _choice(
                "I can't do that",
                "Chad stares at you coldly. 'Remember this moment.'",
                ethics=20,
                reputation=-10,
                npc_relationship_update=_rel("chad", -35, "Abandoned me in my hour of need", trust=-20),
            ),
            _choice(
                "Anonymous compliance tip",
                "Compliance moves fast. Chad never finds out who.",
                ethics=30,
                reputation=15,
                audit_risk=-20,
                npc_relationship_update=_rel("chad", -50, "The rat who ended my career"),
                sets_flags=["WHISTLEBLOWER_CHAD"],
            ),
        ),
    ),
    DramaTemplate(
        "emma_jealousy",
        "Emma Suspects Something",
        "Emma noticed how often Sarah's name lights up your phone at midnight.",
        ("girlfriend_emma", "sarah"),
        "MEDIUM",
        3,
        0.85,
        lambda n: "girlfriend_emma" in n
        and "sarah" in n
        and n["girlfriend_emma"].relationship >= 50
        and n["sarah"].relationship >= 60,
        (
            _choice(
                "Prove your commitment to Emma",
                "A weekend away, phone off. Emma relaxes.",
                npc_relationship_update=_rel("girlfriend_emma", 20, "Chose me over everything", trust=15),
                npc_relationship_update2=_rel("sarah", -10, "Suddenly became distant"),
            ),
            _choice("Get better at compartmentalizing", "Nothing changes, but everything feels fragile.", stress=15),
            _choice(
                "Examine your feelings",
                "You're not sure what you want anymore.",
                stress=10,
                sets_flags=["CONSIDERING_SARAH"],
            ),
        ),
    ),
    DramaTemplate(
        "hunter_scheme",
        "Hunter's Proposition",
        "Hunter has a line on an FDA approval. 'We could front-run this. Chad doesn't need to know.'",
        ("hunter",),
        "MEDIUM",
        2,
        0.85,
        lambda n: "hunter" in n and n["hunter"].relationship >= 50,
        (
            _choice(
                "I'm in",
                "The trade works. You made $50K. But now you're complicit.",
                cash=50_000,
                ethics=-40,
                audit_risk=30,
                npc_relationship_update=_rel("hunter", 25, "Partner in crime", trust=20),
                sets_flags=["INSIDER_TRADING"],
            ),
            _choice(
                "This is insider trading",
                "Hunter laughs. 'Thanks, Boy Scout.'",
                ethics=15,
                npc_relationship_update=_rel("hunter", -25, "Threatened to expose me"),
            ),
            _choice(
                "Too risky for me",
                "Hunter shrugs and does the trade anyway. You saw nothing.",
                npc_relationship_update=_rel("hunter", -5, "Too straight-laced for the real game"),
            ),
        ),
    ),
    DramaTemplate(
        "mom_medical",
        "Mom's Medical Bills",
        "Dad's insurance won't cover a procedure he needs. It's $25,000.",
        ("mom",),
        "HIGH",
        2,
        0.9,
        lambda n: "mom" in n and n["mom"].relationship >= 30,
        (
            _choice(
                "Pay the full amount",
                "Dad gets the procedure. Your parents are eternally grateful.",
                cash=-25_000,
                stress=-10,
                npc_relationship_update=_rel("mom", 30, "Saved your father without hesitation", trust=20),
            ),
            _choice(
                "Pay half, suggest a payment plan",
                "Mom is grateful but slightly hurt.",
                cash=-12_500,
                npc_relationship_update=_rel("mom", 10, "Helped, but hesitated"),
            ),
            _choice(
                "Suggest they find another option",
                "Your mom hangs up without saying goodbye.",
                stress=20,
                npc_relationship_update=_rel("mom", -35, "Abandoned us when we needed you most", trust=-25),
            ),
        ),
    ),
)


def _drama_active(snapshot: GameSnapshot, drama_id: str) -> bool:
    dramas = [snapshot.active_drama, *snapshot.drama_queue]
    return any(d is not None and d.id.startswith(drama_id) for d in dramas)


def roll_drama(snapshot: GameSnapshot, *, rng: GameRandom) -> NpcDrama | None:
    player = snapshot.player
    if player is None or not rng.chance(DRAMA_CHANCE):
        return None
    npcs = {n.id: n for n in snapshot.npcs}
    close = [n for n in snapshot.npcs if not n.is_rival and n.relationship >= 40]
    if len(close) < 2:
        return None
    week = player.game_time.week
    for template in DRAMA_TEMPLATES:
        if _drama_active(snapshot, template.id) or not template.eligible(npcs):
            continue
        if rng.rand() <= template.rarity:
            continue
        logger.debug("drama fired game_id=%s drama=%s", snapshot.game_id, template.id)
        return NpcDrama(
            id=f"{template.id}_{week}",
            title=template.title,
            description=template.description,
            involved_npcs=list(template.involved),
            urgency=template.urgency,
            fired_week=week,
            expires_week=week + template.lifetime_weeks,
            choices=[c.model_copy(deep=True) for c in template.choices],
        )
    return None


def enqueue_drama(snapshot: GameSnapshot, drama: NpcDrama) -> None:
    if snapshot.active_drama is None:
        snapshot.active_drama = drama
    else:
        snapshot.drama_queue.append(drama)


def finish_active_drama(snapshot: GameSnapshot) -> None:
    snapshot.active_drama = snapshot.drama_queue.pop(0) if snapshot.drama_queue else None


def drama_choice_changes(drama: NpcDrama, choice_index: int | None) -> tuple[StatChanges, DramaChoice]:
    if not drama.choices:
        raise ValueError(f"Drama {drama.id} has no choices")
    if choice_index is None:
        choice = drama.choices[-1]
    elif 0 <= choice_index < len(drama.choices):
        choice = drama.choices[choice_index]
    else:
        raise ValueError(f"Choice {choice_index} out of range for drama {drama.id}")
    return choice.stat_changes.model_copy(deep=True), choice


def expired_dramas(snapshot: GameSnapshot, week: int) -> list[NpcDrama]:
    dramas = [d for d in [snapshot.active_drama, *snapshot.drama_queue] if d is not None]
    return [d for d in dramas if d.expires_week <= week]


def drop_drama(snapshot: GameSnapshot, drama_id: str) -> None:
    if snapshot.active_drama is not None and snapshot.active_drama.id == drama_id:
        finish_active_drama(snapshot)
    else:
        snapshot.drama_queue = [d for d in snapshot.drama_queue if d.id != drama_id]


def resolve_drama(snapshot: GameSnapshot, drama: NpcDrama, choice_index: int | None) -> Transition:
    changes, choice = drama_choice_changes(drama, choice_index)
    transition = apply_changes(snapshot, _scaled(snapshot, changes))
    if not transition.accepted:
        return transition
    nxt = transition.snapshot
    drop_drama(nxt, drama.id)
    append_log(nxt, f"DRAMA: {drama.title} - {choice.text}. {choice.outcome_text}".strip())
    return Transition(snapshot=nxt, bridge_loan=transition.bridge_loan)


# --- market -----------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class MarketNews:
    kind: str
    headline: str
    changes: StatChanges
    volatility: MarketVolatility


def roll_market_event(snapshot: GameSnapshot, *, rng: GameRandom) -> MarketNews | None:
    if not rng.chance(MARKET_EVENT_CHANCE):
        return None
    market = snapshot.market_volatility
    kinds = ["SECTOR_ROTATION", "INTEREST_RATE", "CREDIT_CONDITIONS", "VOLATILITY_SHIFT"]
    kind = rng.choice(kinds)
    if kind == "SECTOR_ROTATION":
        return MarketNews(kind, "Sector rotation: your coverage is out of favor this week.", StatChanges(reputation=-2), market)
    if kind == "INTEREST_RATE":
        return MarketNews(kind, "The Fed surprises the market. Leverage just got pricier.", StatChanges(stress=5), market)
    if kind == "CREDIT_CONDITIONS":
        return MarketNews(
            kind,
            "Credit tightens. Your bank adds a surprise fee.",
            StatChanges(cash=-1000, faction_reputation={Faction.limited_partners: -1}),
            market,
        )
    if market == MarketVolatility.normal:
        shifted = rng.choice([MarketVolatility.bull_run, MarketVolatility.credit_crunch, MarketVolatility.panic])
        return MarketNews(kind, f"Markets lurch: regime shifts to {shifted.value}.", StatChanges(stress=3), shifted)
    return MarketNews(kind, "Markets calm down. Back to normal.", StatChanges(), MarketVolatility.normal)


# --- warnings ---------------------------------------------------------------------------


def build_warnings(snapshot: GameSnapshot) -> list[PlayerWarning]:
    player = snapshot.player
    if player is None:
        return []
    warnings: list[PlayerWarning] = []

    def warn(kind: str, severity: str, title: str, message: str, warning_id: str | None = None) -> None:
        warnings.append(PlayerWarning(id=warning_id or kind, kind=kind, severity=severity, title=title, message=message))

    if player.cash < 5000:
        warn("low_cash", "CRITICAL" if player.cash < 1000 else "HIGH", "Cash Running Low",
             f"${player.cash:,} in the bank against ${weekly_burn(player.personal_finances.lifestyle):,}/week burn.")
    if player.health < 30:
        warn("low_health", "CRITICAL" if player.health < 15 else "HIGH", "Health Failing",
             "Your body is sending you invoices.")
    if player.stress > 80:
        warn("high_stress", "CRITICAL" if player.stress > 90 else "HIGH", "Burnout Imminent",
             "Stress is at breaking point.")
    if player.reputation < 30:
        warn("low_reputation", "CRITICAL" if player.reputation < 15 else "HIGH", "Reputation Slipping",
             "The partners are starting to talk.")

    finances = player.personal_finances
    weekly_interest = finances.outstanding_loan * finances.loan_rate / 52
    if finances.outstanding_loan > 0 and weekly_interest > max(0, player.cash) * 0.2:
        severe = weekly_interest > max(0, player.cash) * 0.4
        warn("loan_burden", "HIGH" if severe else "MEDIUM", "Debt Burden",
             f"Interest of ${round(weekly_interest):,}/week on a ${finances.outstanding_loan:,} balance.")

    for company in player.portfolio:
        if company.has_board_crisis:
            warn("board_crisis", "HIGH", f"Board Crisis at {company.name}",
                 "The board is losing confidence in management.", f"crisis_{company.id}")
        if company.ebitda < 0 and company.runway_months < 12:
            warn("runway", "HIGH", f"{company.name} Running Out of Cash",
                 f"{company.runway_months} months of runway left.", f"runway_{company.id}")

    week = player.game_time.week
    for event in [e for e in [snapshot.active_event, *snapshot.event_queue] if e is not None]:
        remaining = event.expires_week - week
        if remaining <= EVENT_DEADLINE_WARNING_WEEKS:
            warn("event_deadline", "HIGH", f"Decision Needed: {event.title}",
                 f"{max(0, remaining)} week(s) left before it resolves itself.", f"deadline_{event.id}")
    return warnings
