"""Rival fund behaviour.

Each tick every fund gets a fresh mindset, a coalition may form, and funds are
walked most-threatening-first until one tactical move succeeds. Rival-owned
state (funds, competitive deals, AI state) is updated on the snapshot passed
in; the player-facing consequences come back as one `StatChanges` for the
reducer.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import StrEnum

from dealflow.core.clamp import clamp, clamp_stat
from dealflow.core.rng import GameRandom
from dealflow.models import (
    AIState,
    CoalitionState,
    CompetitiveDeal,
    DealType,
    Faction,
    GamePhase,
    GameSnapshot,
    MarketVolatility,
    PlayerPatterns,
    PlayerState,
    RelationshipUpdate,
    RivalFund,
    RivalMindset,
    RivalPortfolioEntry,
    RivalStrategy,
    StatChanges,
)
from dealflow.reducer import append_log

logger = logging.getLogger(__name__)


class VendettaPhase(StrEnum):
    cold = "COLD"
    warming = "WARMING"
    hot = "HOT"
    blood_feud = "BLOOD_FEUD"
    total_war = "TOTAL_WAR"


class TacticalMove(StrEnum):
    poach = "POACH"
    rumor = "RUMOR"
    coalition = "COALITION"
    sabotage = "SABOTAGE"
    market_manipulation = "MARKET_MANIPULATION"
    psychological_warfare = "PSYCHOLOGICAL_WARFARE"
    surprise_bid = "SURPRISE_BID"


class Personality(StrEnum):
    calculating = "CALCULATING"
    aggressive = "AGGRESSIVE"
    opportunistic = "OPPORTUNISTIC"
    paranoid = "PARANOID"
    unpredictable = "UNPREDICTABLE"


class Mood(StrEnum):
    confident = "CONFIDENT"
    cautious = "CAUTIOUS"
    desperate = "DESPERATE"
    vengeful = "VENGEFUL"
    opportunistic = "OPPORTUNISTIC"


@dataclass(frozen=True, slots=True)
class PhaseBehavior:
    tactics: tuple[TacticalMove, ...]
    aggression_multiplier: float
    surprise_chance: float


_T = TacticalMove
VENDETTA_BEHAVIORS: dict[VendettaPhase, PhaseBehavior] = {
    VendettaPhase.cold: PhaseBehavior((_T.poach, _T.rumor), 1.0, 0.05),
    VendettaPhase.warming: PhaseBehavior((_T.poach, _T.rumor, _T.psychological_warfare), 1.15, 0.12),
    VendettaPhase.hot: PhaseBehavior(
        (_T.poach, _T.rumor, _T.coalition, _T.psychological_warfare, _T.surprise_bid), 1.3, 0.2
    ),
    VendettaPhase.blood_feud: PhaseBehavior(
        (_T.poach, _T.rumor, _T.coalition, _T.sabotage, _T.psychological_warfare, _T.surprise_bid), 1.5, 0.3
    ),
    VendettaPhase.total_war: PhaseBehavior(
        (
            _T.poach,
            _T.rumor,
            _T.coalition,
            _T.sabotage,
            _T.market_manipulation,
            _T.psychological_warfare,
            _T.surprise_bid,
        ),
        2.0,
        0.45,
    ),
}

COALITION_ACTION_BOOST = 1.3
COALITION_THREAT_BOOST = 1.5
SURPRISE_COOLDOWN_TICKS = 3
ESCALATION_STRESS = 5
COALITION_STRESS = 10
MAX_RECENT_BIDS = 10


@dataclass(frozen=True, slots=True)
class PsychTactic:
    id: str
    stat: str
    magnitude: int
    message: str


PSYCHOLOGICAL_TACTICS: tuple[PsychTactic, ...] = (
    PsychTactic("INTIMIDATION", "stress", 8, "sends a thinly-veiled threat about your career"),
    PsychTactic("MISDIRECTION", "reputation", -3, "plants false rumors about your due diligence process"),
    PsychTactic("INFORMATION_LEAK", "audit_risk", 5, "leaks damaging information to regulators"),
    PsychTactic("SOCIAL_SABOTAGE", "limited_partners", -10, "poisons your relationships with key LPs"),
    PsychTactic("DEAL_POISONING", "stress", 5, "spreads FUD about a deal you're pursuing"),
    PsychTactic("PUBLIC_HUMILIATION", "reputation", -8, "publicly questions your judgment at an industry event"),
    PsychTactic("RESOURCE_DRAIN", "energy", -15, "forces you into costly legal battles"),
    PsychTactic("ALLIANCE_BREAKING", "rivals", -5, "turns your potential allies against you"),
)

SURPRISE_EVENTS: dict[str, tuple[tuple[str, str], ...]] = {
    "LOW": (("COUNTERINTELLIGENCE", "feeds you false information about a deal"),),
    "MEDIUM": (
        ("TALENT_POACHING", "steals your best analyst with a massive signing bonus"),
        ("MEDIA_HIT_PIECE", "plants a negative story about you in the financial press"),
        ("PRICE_WAR", "deliberately overpays for a deal just to deny it to you"),
    ),
    "HIGH": (
        ("HOSTILE_TAKEOVER_ATTEMPT", "launches a hostile bid on one of your portfolio companies"),
        ("REGULATORY_TIP", "anonymously tips off the SEC about your recent deals"),
        ("LP_REBELLION", "convinces your LPs to reduce their commitment"),
        ("INDUSTRY_BLACKLIST", "gets you quietly blacklisted from certain deal flows"),
    ),
}

SURPRISE_SEVERITIES: dict[VendettaPhase, tuple[str, ...]] = {
    VendettaPhase.hot: ("LOW", "MEDIUM"),
    VendettaPhase.blood_feud: ("LOW", "MEDIUM", "HIGH"),
    VendettaPhase.total_war: ("MEDIUM", "HIGH"),
}

COALITION_ANNOUNCEMENTS = (
    "Word on the street: rival funds are comparing notes on your strategy.",
    "Unusual activity detected - competitors seem to be coordinating.",
    "Your sources report a secret meeting between rival fund partners.",
    "The game just changed. Your competitors are working together.",
    "A coalition has formed. You're the target.",
)

ESCALATION_MESSAGES: dict[VendettaPhase, tuple[str, ...]] = {
    VendettaPhase.warming: (
        "{name} seems to have taken notice of you. Not in a good way.",
        "You've gotten under {name}'s skin. They're watching your moves closely.",
        "{name} is starting to view you as a real threat.",
    ),
    VendettaPhase.hot: (
        "{name} has made this personal. Every deal is now a battleground.",
        "The rivalry with {name} is heating up. Expect fireworks.",
        "{name} is actively working against your interests.",
    ),
    VendettaPhase.blood_feud: (
        "{name} has declared war. There will be collateral damage.",
        "This has gone beyond business. {name} wants to see you fail.",
        "The vendetta with {name} has reached dangerous levels.",
    ),
    VendettaPhase.total_war: (
        "{name} is willing to burn everything to beat you. Including themselves.",
        "DEFCON 1: {name} has launched all-out war on your fund.",
        "This is existential. Only one of you survives this rivalry.",
    ),
}

REASONINGS: dict[TacticalMove, tuple[str, ...]] = {
    _T.poach: ("sees an opportunity to steal a deal", "wants to deny you market access", "believes you're distracted"),
    _T.rumor: ("is undermining your reputation", "wants to poison your LP relationships", "is playing dirty politics"),
    _T.coalition: ("is forming alliances against you", "recognizes you as the biggest threat", "is coordinating with other funds"),
    _T.sabotage: ("is attacking your portfolio companies", "wants to create problems for your investments", "is going after your weakest holdings"),
    _T.market_manipulation: ("is manipulating deal flow", "is spreading sector-wide FUD", "is cornering the market on key deals"),
    _T.psychological_warfare: ("is trying to get in your head", "wants to increase your stress", "is playing mind games"),
    _T.surprise_bid: ("is making an unexpected aggressive move", "caught everyone off guard", "is changing their strategy dramatically"),
}

MOVE_MESSAGES: dict[TacticalMove, tuple[str, ...]] = {
    _T.poach: ("{fund} swooped in on {target}", "{partner} stole the deal while you hesitated", "{fund} closed {target} before you could move"),
    _T.rumor: ("{partner} is spreading rumors about your due diligence", "Word on the street: {fund} is questioning your judgment", '{partner} told LPs you\'re "in over your head"'),
    _T.coalition: ("Multiple rival funds are coordinating against you", "{fund} has formed an alliance with other funds", "You're facing a united front from your competitors"),
    _T.sabotage: ("{fund} is attacking your portfolio companies", "{partner} is creating problems for your investments", "Someone is leaking negative info about your holdings"),
    _T.market_manipulation: ("{fund} is manipulating deal flow in your target sectors", "{partner} is cornering deals before they hit the market", "The game is rigged, and {fund} is doing the rigging"),
    _T.psychological_warfare: ("{partner} is playing mind games", "{fund} is trying to get in your head", "The pressure from {fund} is intensifying"),
    _T.surprise_bid: ("{fund} made an unexpected aggressive move", "{partner} caught everyone off guard", "{fund} just changed the game entirely"),
}


def vendetta_phase(score: int) -> VendettaPhase:
    if score <= 30:
        return VendettaPhase.cold
    if score <= 50:
        return VendettaPhase.warming
    if score <= 70:
        return VendettaPhase.hot
    if score <= 85:
        return VendettaPhase.blood_feud
    return VendettaPhase.total_war


def adaptive_difficulty(player: PlayerState, funds: list[RivalFund]) -> float:
    """Rivals sharpen up when the player dominates and ease off when they struggle."""

    win_rate = len(player.portfolio) / max(1, player.time_cursor / 4)
    wealth = player.cash + sum(c.current_valuation for c in player.portfolio)
    rival_wealth = sum(f.dry_powder + sum(p.current_value for p in f.portfolio) for f in funds) / max(1, len(funds))

    multiplier = 1.0
    if win_rate > 0.6:
        multiplier += 0.2
    if win_rate > 0.8:
        multiplier += 0.3
    if wealth > rival_wealth * 1.5:
        multiplier += 0.15
    if wealth > rival_wealth * 2:
        multiplier += 0.25
    if player.reputation > 80:
        multiplier += 0.1
    if player.stress > 80:
        multiplier -= 0.1
    if player.cash < 10_000_000:
        multiplier -= 0.15
    return clamp(multiplier, 0.5, 2.0)


_DEAL_RISK = {DealType.venture_capital: 80, DealType.growth_equity: 50, DealType.lbo: 30}


def analyze_player_patterns(player: PlayerState, ai_state: AIState) -> PlayerPatterns:
    bids = ai_state.recent_bids
    overbid = sum(bids) / len(bids) if bids else 50.0

    sectors: dict[str, int] = {}
    for sector in [*ai_state.deals_won, *ai_state.deals_lost]:
        sectors[sector] = sectors.get(sector, 0) + 1
    preferred = [s for s, _ in sorted(sectors.items(), key=lambda kv: -kv[1])[:3]]

    risk = (
        sum(_DEAL_RISK.get(c.deal_type, 30) for c in player.portfolio) / len(player.portfolio)
        if player.portfolio
        else 50.0
    )
    total = len(ai_state.deals_won) + len(ai_state.deals_lost)
    closing = len(ai_state.deals_won) / total if total else 0.5

    weaknesses: list[str] = []
    if player.stress > 70:
        weaknesses.append("HIGH_STRESS")
    if player.cash < 20_000_000:
        weaknesses.append("CASH_STRAPPED")
    if player.audit_risk > 50:
        weaknesses.append("REGULATORY_EXPOSURE")
    if player.reputation < 40:
        weaknesses.append("LOW_REPUTATION")
    if overbid > 70:
        weaknesses.append("OVERPAYS_FOR_DEALS")
    if closing < 0.3:
        weaknesses.append("POOR_CLOSER")

    return PlayerPatterns(
        average_bid_aggressiveness=overbid,
        preferred_sectors=preferred,
        bid_dropout_threshold=1.2 + (overbid / 100) * 0.3,
        risk_tolerance=risk,
        response_to_bluffs="RAISES" if overbid > 60 else "CALLS" if overbid > 40 else "FOLDS",
        deal_closing_rate=closing,
        weaknesses=weaknesses,
        last_updated_tick=player.time_cursor,
    )


def record_player_bid(ai_state: AIState, *, bid: int, valuation: int, sector: str) -> None:
    """Feed a winning player offer into pattern tracking (1.0x valuation scores 50)."""

    ratio = bid / valuation if valuation > 0 else 1.0
    ai_state.recent_bids = [*ai_state.recent_bids, clamp_stat(50 + (ratio - 1) * 250)][-MAX_RECENT_BIDS:]
    ai_state.deals_won = [*ai_state.deals_won, sector][-MAX_RECENT_BIDS:]


def _personality(strategy: RivalStrategy, rng: GameRandom) -> Personality:
    roll = rng.rand()
    if strategy == RivalStrategy.predatory:
        return Personality.aggressive if roll > 0.3 else Personality.unpredictable
    if strategy == RivalStrategy.conservative:
        return Personality.calculating if roll > 0.2 else Personality.paranoid
    if strategy == RivalStrategy.opportunistic:
        return Personality.opportunistic if roll > 0.4 else Personality.unpredictable
    return Personality.calculating


def build_mindset(
    fund: RivalFund, player: PlayerState, *, rng: GameRandom, previous: RivalMindset | None = None
) -> RivalMindset:
    """Fear, respect and mood are recomputed every tick; personality sticks once drawn."""

    threat = (player.reputation / 100) * 0.4 + (len(player.portfolio) / 5) * 0.3 + (player.cash / 100_000_000) * 0.3
    fear = min(100, round(threat * 100))
    respect = clamp_stat(
        (
            (player.reputation / 100) * 0.5
            + (player.financial_engineering / 100) * 0.3
            + (len(player.completed_exits) / 3) * 0.2
        )
        * 100
    )

    if fund.win_streak > 2:
        mood = Mood.confident
    elif fund.dry_powder < fund.aum * 0.1:
        mood = Mood.desperate
    elif fund.vendetta > 70:
        mood = Mood.vengeful
    elif fear > 60:
        mood = Mood.cautious
    else:
        mood = Mood.opportunistic

    personality = previous.personality if previous is not None else _personality(fund.strategy, rng)
    return RivalMindset(
        fund_id=fund.id,
        personality=personality,
        mood=mood,
        fear_level=fear,
        respect_level=respect,
        vendetta_phase=vendetta_phase(fund.vendetta),
        is_in_coalition=previous.is_in_coalition if previous is not None else False,
        last_surprise_tick=previous.last_surprise_tick if previous is not None else -10,
    )


@dataclass(frozen=True, slots=True)
class Decision:
    action: TacticalMove
    intensity: int
    success_chance: float
    reasoning: str
    target: str = "PLAYER"
    surprise: bool = False


def poach_candidates(fund: RivalFund, deals: list[CompetitiveDeal]) -> list[CompetitiveDeal]:
    """Deals this fund is chasing: soonest deadline first, hot deals ahead on ties."""

    return sorted(
        (d for d in deals if fund.id in d.interested_rivals),
        key=lambda d: (d.deadline, not d.is_hot),
    )


def decide_tactical_move(
    fund: RivalFund,
    mindset: RivalMindset,
    player: PlayerState,
    deals: list[CompetitiveDeal],
    market: MarketVolatility,
    *,
    tick: int,
    multiplier: float,
    rng: GameRandom,
) -> Decision | None:
    phase = VendettaPhase(mindset.vendetta_phase)
    behavior = VENDETTA_BEHAVIORS[phase]
    mood = Mood(mindset.mood)

    surprise = (
        rng.rand() < behavior.surprise_chance * multiplier
        and tick - mindset.last_surprise_tick > SURPRISE_COOLDOWN_TICKS
    )

    chance = 0.2 + fund.aggression_level / 200 + fund.vendetta / 250
    chance *= behavior.aggression_multiplier * multiplier
    chance += {Mood.vengeful: 0.15, Mood.desperate: 0.2, Mood.cautious: -0.1}.get(mood, 0.0)
    if market == MarketVolatility.panic:
        chance += 0.1
    elif market == MarketVolatility.bull_run:
        chance -= 0.05

    if rng.rand() > chance and not surprise:
        return None

    if surprise and _T.surprise_bid in behavior.tactics:
        action = _T.surprise_bid if rng.rand() > 0.4 else _T.psychological_warfare
    else:
        weights = {
            _T.poach: 40 if deals else 0,
            _T.rumor: 25,
            _T.coalition: 20 if phase in (VendettaPhase.hot, VendettaPhase.blood_feud) else 5,
            _T.sabotage: 15 if player.portfolio else 0,
            _T.market_manipulation: 10 if market == MarketVolatility.normal else 5,
            _T.psychological_warfare: 30 if mood == Mood.vengeful else 15,
            _T.surprise_bid: 10,
        }
        options = [(t, weights[t]) for t in behavior.tactics if weights[t] > 0]
        if not options:
            return None
        action = rng.weighted(options)

    intensity = round(
        (fund.aggression_level * 0.4 + fund.vendetta * 0.3 + rng.rand() * 30) * (1.3 if mood == Mood.vengeful else 1.0)
    )
    success = min(0.9, 0.3 + fund.reputation / 200 + intensity / 300 - player.reputation / 300)

    target = "PLAYER"
    if action == _T.poach:
        candidates = poach_candidates(fund, deals)
        target = candidates[0].company_name if candidates else "PLAYER"
    return Decision(
        action=action,
        intensity=intensity,
        success_chance=success,
        reasoning=rng.choice(REASONINGS[action]),
        target=target,
        surprise=surprise,
    )


def coalition_dominance(player: PlayerState) -> float:
    return (
        (player.reputation / 100) * 0.3
        + (len(player.portfolio) / 5) * 0.3
        + (player.cash / 100_000_000) * 0.2
        + (len(player.completed_exits) / 3) * 0.2
    )


def check_coalition(funds: list[RivalFund], player: PlayerState, *, tick: int, rng: GameRandom) -> CoalitionState | None:
    dominance = coalition_dominance(player)
    if dominance < 0.5:
        return None
    if rng.rand() > 0.1 + (dominance - 0.5) * 0.4:
        return None
    hostile = sorted((f for f in funds if f.vendetta > 40), key=lambda f: -f.vendetta)
    if len(hostile) < 2:
        return None
    members = hostile[:3]
    return CoalitionState(
        members=[m.id for m in members],
        target="PLAYER",
        expires_at_tick=tick + 8 + rng.randint(0, 3),
        strength=sum(m.aggression_level for m in members) / len(members),
    )


def tactical_effects(decision: Decision, *, rng: GameRandom) -> StatChanges:
    """Player-side consequences of a successful move, scaled by intensity."""

    k = decision.intensity / 100
    match decision.action:
        case _T.rumor:
            return StatChanges(stress=round(5 * k), reputation=round(-3 * k), faction_reputation={Faction.rivals: -2})
        case _T.psychological_warfare:
            tactic = rng.choice(PSYCHOLOGICAL_TACTICS)
            amount = round(tactic.magnitude * k)
            if tactic.stat in ("limited_partners", "rivals"):
                return StatChanges(stress=round(3 * k), faction_reputation={Faction[tactic.stat]: amount})
            return StatChanges(**{tactic.stat: amount})
        case _T.sabotage:
            return StatChanges(stress=round(10 * k), reputation=round(-5 * k), audit_risk=round(3 * k))
        case _T.market_manipulation:
            return StatChanges(stress=round(8 * k), faction_reputation={Faction.rivals: -5})
        case _T.coalition:
            return StatChanges(stress=round(12 * k), reputation=round(-4 * k))
        case _T.surprise_bid:
            return StatChanges(stress=round(15 * k))
        case _T.poach:
            return StatChanges(
                stress=8 + decision.intensity // 10, reputation=-2, faction_reputation={Faction.rivals: -2}
            )
    return StatChanges(stress=3)


def tactical_message(fund: RivalFund, decision: Decision, *, success: bool, rng: GameRandom) -> str:
    prefix = "RIVAL ATTACK:" if success else "RIVAL ATTEMPT:"
    template = rng.choice(MOVE_MESSAGES[decision.action])
    return f"{prefix} {template.format(fund=fund.name, partner=fund.managing_partner, target=decision.target)}"


def knowledge_entry(fund: RivalFund, decision: Decision, *, success: bool) -> dict:
    return {
        "summary": f"{fund.managing_partner} {decision.reasoning}{' successfully' if success else ' but failed'}",
        "source": fund.name,
        "npc_id": fund.npc_id,
        "faction": Faction.rivals,
        "tags": ["rival", "ai_action", decision.action.value.lower()],
        "confidence": 90 if success else 60,
    }


def surprise_event(phase: VendettaPhase, *, rng: GameRandom) -> str | None:
    severities = SURPRISE_SEVERITIES.get(phase)
    if not severities:
        return None
    pool = [event for severity in severities for event in SURPRISE_EVENTS[severity]]
    return rng.choice(pool)[1]


@dataclass(slots=True)
class _TickEffects:
    stress: int = 0
    reputation: int = 0
    audit_risk: int = 0
    energy: int = 0
    factions: dict[Faction, int] = field(default_factory=dict)
    knowledge: list[dict] = field(default_factory=list)
    relationship: RelationshipUpdate | None = None
    company_patch: tuple[int, dict] | None = None

    def add(self, changes: StatChanges) -> None:
        self.stress += changes.stress or 0
        self.reputation += changes.reputation or 0
        self.audit_risk += changes.audit_risk or 0
        self.energy += changes.energy or 0
        for faction, delta in (changes.faction_reputation or {}).items():
            self.factions[faction] = self.factions.get(faction, 0) + delta

    def to_changes(self) -> StatChanges:
        patch = None
        if self.company_patch is not None:
            patch = {"id": self.company_patch[0], "updates": self.company_patch[1]}
        return StatChanges(
            stress=self.stress or None,
            reputation=self.reputation or None,
            audit_risk=self.audit_risk or None,
            energy=self.energy or None,
            faction_reputation={f: d for f, d in self.factions.items() if d} or None,
            knowledge_gain=self.knowledge or None,
            npc_relationship_update=self.relationship,
            modify_company=patch,
        )


def _replace_fund(funds: list[RivalFund], fund: RivalFund) -> list[RivalFund]:
    return [fund if f.id == fund.id else f for f in funds]


def run_rival_tick(snapshot: GameSnapshot, *, rng: GameRandom) -> StatChanges | None:
    """Process rival moves for the current cursor at most once.

    Mutates `snapshot` (an owned working copy) for rival state and returns the
    player-facing command, or `None` when the cursor was already processed.
    """

    player = snapshot.player
    if player is None or snapshot.phase == GamePhase.intro:
        return None
    tick = player.time_cursor
    ai = snapshot.ai_state
    if tick < 1 or ai.last_processed_rival_tick == tick:
        return None
    ai.last_processed_rival_tick = tick

    funds = list(snapshot.rival_funds)
    deals = list(snapshot.active_deals)
    effects = _TickEffects()
    multiplier = adaptive_difficulty(player, funds)
    ai.player_patterns = analyze_player_patterns(player, ai)

    mindsets: dict[str, RivalMindset] = {}
    for fund in funds:
        mindsets[fund.id] = build_mindset(fund, player, rng=rng, previous=ai.rival_mindsets.get(fund.id))
        previous = ai.previous_vendetta.get(fund.id, fund.vendetta)
        before, after = vendetta_phase(previous), vendetta_phase(fund.vendetta)
        if after != before and after != VendettaPhase.cold:
            message = rng.choice(ESCALATION_MESSAGES[after]).format(name=fund.managing_partner)
            append_log(snapshot, f"VENDETTA ESCALATION: {message}")
            effects.stress += ESCALATION_STRESS
            logger.debug("vendetta escalation game_id=%s fund=%s phase=%s", snapshot.game_id, fund.id, after)
        ai.previous_vendetta[fund.id] = fund.vendetta

    coalition = ai.coalition
    if coalition is not None and coalition.expires_at_tick <= tick:
        coalition = None
    if coalition is None:
        coalition = check_coalition(funds, player, tick=tick, rng=rng)
        if coalition is not None:
            append_log(snapshot, f"COALITION ALERT: {rng.choice(COALITION_ANNOUNCEMENTS)}")
            effects.stress += COALITION_STRESS
            effects.knowledge.append(
                {
                    "summary": "Multiple rival funds are coordinating against you",
                    "source": "coalition",
                    "faction": Faction.rivals,
                    "tags": ["coalition", "rival", "threat"],
                }
            )
            logger.debug("coalition formed game_id=%s members=%s", snapshot.game_id, coalition.members)
    members = set(coalition.members) if coalition else set()
    for fund_id, mindset in mindsets.items():
        mindset.is_in_coalition = fund_id in members

    def threat(f: RivalFund) -> float:
        return (f.aggression_level + f.vendetta) * (COALITION_THREAT_BOOST if f.id in members else 1.0)

    for fund in sorted(funds, key=threat, reverse=True):
        cooldown_ready = fund.last_action_tick < tick - 1
        if not cooldown_ready and rng.rand() > 0.4:
            continue
        mindset = mindsets[fund.id]
        boost = COALITION_ACTION_BOOST if fund.id in members else 1.0
        decision = decide_tactical_move(
            fund,
            mindset,
            player,
            deals,
            snapshot.market_volatility,
            tick=tick,
            multiplier=multiplier * boost,
            rng=rng,
        )
        if decision is None:
            continue
        if decision.surprise:
            mindset.last_surprise_tick = tick

        success = rng.rand() < decision.success_chance
        if decision.action == _T.poach:
            candidates = poach_candidates(fund, deals)
            success = success and bool(candidates)
            if success:
                deal = candidates[0]
                deals = [d for d in deals if d.id != deal.id]
                fund = fund.model_copy(
                    update={
                        "dry_powder": max(0, fund.dry_powder - round(deal.asking_price * 0.6)),
                        "portfolio": [
                            *fund.portfolio,
                            RivalPortfolioEntry(
                                name=deal.company_name,
                                deal_type=deal.deal_type,
                                acquisition_price=deal.asking_price,
                                current_value=round(deal.asking_price * 1.1),
                                acquired_week=player.game_time.week,
                            ),
                        ],
                        "total_deals": fund.total_deals + 1,
                        "win_streak": fund.win_streak + 1,
                        "reputation": clamp_stat(fund.reputation + 2),
                        "vendetta": clamp_stat(fund.vendetta + 5),
                        "last_action_tick": tick,
                    }
                )
                ai.deals_lost = [*ai.deals_lost, deal.sector][-MAX_RECENT_BIDS:]
                if fund.npc_id:
                    effects.relationship = RelationshipUpdate(
                        npc_id=fund.npc_id, change=-3, memory=f"Poached {deal.company_name} before you could move."
                    )
        elif success:
            update: dict = {"vendetta": clamp_stat(fund.vendetta + (3 if decision.action == _T.rumor else 2)), "last_action_tick": tick}
            if decision.action == _T.rumor:
                update["win_streak"] = max(0, fund.win_streak - 1)
            fund = fund.model_copy(update=update)
            if decision.action == _T.sabotage and player.portfolio:
                company = rng.choice(player.portfolio)
                effects.company_patch = (company.id, {"board_alignment": clamp_stat(company.board_alignment - 5)})

        if not success:
            logger.debug("rival move failed game_id=%s fund=%s move=%s", snapshot.game_id, fund.id, decision.action)
            continue

        funds = _replace_fund(funds, fund)
        effects.add(tactical_effects(decision, rng=rng))
        effects.knowledge.append(knowledge_entry(fund, decision, success=True))
        append_log(snapshot, tactical_message(fund, decision, success=True, rng=rng))
        if decision.action == _T.surprise_bid:
            detail = surprise_event(VendettaPhase(mindset.vendetta_phase), rng=rng)
            if detail:
                append_log(snapshot, f"{fund.managing_partner} {detail}")
        logger.debug("rival move game_id=%s fund=%s move=%s", snapshot.game_id, fund.id, decision.action)
        break

    snapshot.rival_funds = funds
    snapshot.active_deals = deals
    ai.rival_mindsets = mindsets
    ai.coalition = coalition
    changes = effects.to_changes()
    return None if changes.is_empty() else changes
