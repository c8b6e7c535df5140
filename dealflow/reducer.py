"""The single state-transition function.

`apply_changes(snapshot, changes)` never mutates its input and never raises on
bad data: it deep-copies the snapshot, applies each command variant in a fixed
order and returns a `Transition`. Business-rule rejections (insufficient funds,
credit limit, invalid skill enrolment) come back as `accepted=False` with the
snapshot unchanged.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from pydantic import ValidationError

from dealflow.clock import advance_slots
from dealflow.commands import (
    AddCompany,
    AdjustCash,
    AdjustFactions,
    AdjustLoan,
    AdjustStats,
    AdvanceClock,
    BOUNDED_STATS,
    Command,
    GainKnowledge,
    InitPlayer,
    MarkScenariosPlayed,
    ModifyCompany,
    RecordExit,
    RemoveCompany,
    RemoveNpc,
    SetFlags,
    SetLevel,
    SetLifestyle,
    StartSkill,
    UpdateRelationship,
    split_command,
)
from dealflow.core.clamp import clamp_loan_rate, clamp_stat
from dealflow.finance import (
    BRIDGE_LOAN_RATE,
    LEVEL_ORDER,
    LIFESTYLE_TIERS,
    SKILL_INVESTMENTS,
    plan_bridge_loan,
)
from dealflow.hydration import (
    clamp_action_log,
    clamp_knowledge,
    clamp_memories,
    generate_unique_portfolio_id,
    hydrate_company,
    normalize_knowledge_entry,
    normalize_memory,
)
from dealflow.models import (
    ActiveSkill,
    ActorKind,
    GameSnapshot,
    GameTime,
    NpcStanding,
    PersonalFinances,
    PlayerLevel,
    PlayerState,
    PortfolioCompany,
    RelationshipUpdate,
    StatChanges,
)
from dealflow.roster import DEFAULT_FACTION_REPUTATION, MAX_PORTFOLIO_SIZE

logger = logging.getLogger(__name__)

# Set when a command removes the last family or partner actor.
LEFT_ALONE_FLAG = "LEFT_ALONE"
CLOSE_ACTOR_KINDS = frozenset({ActorKind.family, ActorKind.partner})


@dataclass(frozen=True, slots=True)
class Transition:
    snapshot: GameSnapshot
    accepted: bool = True
    reason: str | None = None
    bridge_loan: int = 0


def default_player(level: PlayerLevel) -> PlayerState:
    return PlayerState(
        level=level,
        cash=1500,
        reputation=10,
        stress=0,
        energy=100,
        health=100,
        analyst_rating=50,
        financial_engineering=10,
        ethics=50,
        audit_risk=0,
        faction_reputation=dict(DEFAULT_FACTION_REPUTATION),
        game_time=GameTime(),
        personal_finances=PersonalFinances(bank_balance=1500, monthly_burn=2000),
    )


def append_log(snapshot: GameSnapshot, line: str) -> None:
    """Newest first, bounded."""

    snapshot.action_log = clamp_action_log([line, *snapshot.action_log])


def _skill_rejection(player: PlayerState, skill_id: str) -> str | None:
    skill = SKILL_INVESTMENTS.get(skill_id)
    if skill is None:
        return f"Unknown skill investment: {skill_id}"
    if skill_id in player.completed_skills or any(s.skill_id == skill_id for s in player.active_skills):
        return f"{skill.name} is already taken"
    if skill.prerequisite and skill.prerequisite not in player.completed_skills:
        prereq = SKILL_INVESTMENTS[skill.prerequisite].name
        return f"{skill.name} requires {prereq}"
    if skill.min_level and LEVEL_ORDER.index(player.level) < LEVEL_ORDER.index(skill.min_level):
        return f"{skill.name} requires {skill.min_level.value} or above"
    return None


def _cash_outflow(player: PlayerState, changes: StatChanges) -> int:
    delta = changes.cash or 0
    if changes.skill_investment and changes.skill_investment in SKILL_INVESTMENTS:
        delta -= SKILL_INVESTMENTS[changes.skill_investment].cost
    return delta


def apply_changes(snapshot: GameSnapshot, changes: StatChanges) -> Transition:
    player_exists = snapshot.player is not None
    if not player_exists and changes.level is None:
        return Transition(snapshot=snapshot, accepted=False, reason="No active player")

    commands = split_command(changes, player_exists=player_exists)
    if not commands:
        return Transition(snapshot=snapshot)

    bridge = 0
    if player_exists:
        player = snapshot.player
        if changes.skill_investment:
            reason = _skill_rejection(player, changes.skill_investment)
            if reason:
                return Transition(snapshot=snapshot, accepted=False, reason=reason)
        cash_delta = _cash_outflow(player, changes)
        decision = plan_bridge_loan(player, cash_delta=cash_delta)
        if not decision.accepted:
            return Transition(snapshot=snapshot, accepted=False, reason=decision.reason)
        bridge = decision.loan_size

    nxt = snapshot.model_copy(deep=True)
    for command in commands:
        _apply(nxt, command)

    player = nxt.player
    if player is not None:
        if bridge:
            player.personal_finances.bank_balance += bridge
            player.personal_finances.outstanding_loan += bridge
            player.personal_finances.loan_rate = BRIDGE_LOAN_RATE
            append_log(nxt, f"Bridge loan of ${bridge:,} drawn at {BRIDGE_LOAN_RATE:.0%}")
            logger.info("bridge loan game_id=%s amount=%s", nxt.game_id, bridge)
        # Legacy mirror.
        player.cash = player.personal_finances.bank_balance
    return Transition(snapshot=nxt, bridge_loan=bridge)


def reduce(snapshot: GameSnapshot, changes: StatChanges) -> GameSnapshot:
    return apply_changes(snapshot, changes).snapshot


def _apply(snapshot: GameSnapshot, command: Command) -> None:
    if isinstance(command, InitPlayer):
        snapshot.player = default_player(command.level)
        return

    player = snapshot.player
    if player is None:
        return

    match command:
        case SetLevel(level=level):
            player.level = level
        case AdjustStats(deltas=deltas):
            for name, delta in deltas:
                current = getattr(player, name)
                if name in BOUNDED_STATS:
                    setattr(player, name, clamp_stat(current + delta))
                else:
                    setattr(player, name, current + delta)
        case AdjustCash(amount=amount):
            player.personal_finances.bank_balance += amount
            if amount > 0:
                player.personal_finances.total_earnings += amount
        case AdjustLoan(balance_change=change, rate=rate):
            finances = player.personal_finances
            finances.outstanding_loan = max(0, finances.outstanding_loan + change)
            if rate is not None:
                finances.loan_rate = clamp_loan_rate(rate)
        case StartSkill(skill_id=skill_id):
            skill = SKILL_INVESTMENTS[skill_id]
            player.personal_finances.bank_balance -= skill.cost
            player.active_skills.append(ActiveSkill(skill_id=skill_id, started_tick=player.time_cursor))
        case SetLifestyle(lifestyle=lifestyle):
            player.personal_finances.lifestyle = lifestyle
            player.personal_finances.monthly_burn = LIFESTYLE_TIERS[lifestyle].monthly_burn
        case AddCompany(payload=payload):
            _add_company(player, payload)
        case ModifyCompany(company_id=company_id, updates=updates):
            _modify_company(player, company_id, updates)
        case RecordExit(exit=record):
            player.completed_exits.append(record)
        case RemoveCompany(company_id=company_id):
            player.portfolio = [c for c in player.portfolio if c.id != company_id]
        case AdjustFactions(deltas=deltas):
            for faction, delta in deltas:
                current = player.faction_reputation.get(faction, DEFAULT_FACTION_REPUTATION[faction])
                player.faction_reputation[faction] = clamp_stat(current + delta)
        case SetFlags(flags=flags):
            player.flags = sorted(set(player.flags) | set(flags))
        case UpdateRelationship(update=update):
            _update_relationship(snapshot, player, update)
        case RemoveNpc(npc_id=npc_id):
            had_close = any(n.kind in CLOSE_ACTOR_KINDS for n in snapshot.npcs)
            snapshot.npcs = [n for n in snapshot.npcs if n.id != npc_id]
            player.npc_standing.pop(npc_id, None)
            if had_close and not any(n.kind in CLOSE_ACTOR_KINDS for n in snapshot.npcs):
                player.flags = sorted(set(player.flags) | {LEFT_ALONE_FLAG})
        case GainKnowledge(entries=entries):
            log = list(player.knowledge_log)
            for raw in entries:
                entry = normalize_knowledge_entry(raw, tick=player.time_cursor)
                log = [e for e in log if e.id != entry.id] + [entry]
            player.knowledge_log = clamp_knowledge(log)
        case MarkScenariosPlayed(scenario_ids=ids):
            for scenario_id in ids:
                if scenario_id not in player.played_scenario_ids:
                    player.played_scenario_ids.append(scenario_id)
        case AdvanceClock(slots=slots):
            advance_slots(player, slots)


def _add_company(player: PlayerState, payload: dict) -> None:
    if len(player.portfolio) >= MAX_PORTFOLIO_SIZE:
        return
    name = str(payload.get("name", "")).strip().lower()
    if not name or any(c.name.strip().lower() == name for c in player.portfolio):
        return
    company_id = generate_unique_portfolio_id(c.id for c in player.portfolio)
    company = hydrate_company(payload, company_id=company_id)
    if company is None:
        return
    gt = player.game_time
    if company.acquisition_week is None:
        company.acquisition_week = gt.week
        company.acquisition_year = gt.year
        company.acquisition_month = gt.month
    player.portfolio.append(company)


def _modify_company(player: PlayerState, company_id: int, updates: dict) -> None:
    for idx, company in enumerate(player.portfolio):
        if company.id != company_id:
            continue
        data = company.model_dump()
        data.update({k: v for k, v in updates.items() if k != "id"})
        try:
            player.portfolio[idx] = PortfolioCompany.model_validate(data)
        except ValidationError:
            logger.warning("ignored invalid company patch company_id=%s keys=%s", company_id, sorted(updates))
        return


def _update_relationship(snapshot: GameSnapshot, player: PlayerState, update: RelationshipUpdate) -> None:
    npc = next((n for n in snapshot.npcs if n.id == update.npc_id), None)
    if npc is None:
        return
    mood_delta = update.mood_change if update.mood_change is not None else update.change
    trust_delta = update.trust_change if update.trust_change is not None else update.change
    npc.mood = clamp_stat(npc.mood + mood_delta)
    npc.trust = clamp_stat(npc.trust + trust_delta)
    npc.relationship = clamp_stat(npc.relationship + update.change)
    npc.last_contact_tick = player.time_cursor

    change = update.change or mood_delta
    sentiment = "positive" if change > 0 else "negative" if change < 0 else "neutral"
    summary = update.memory or {
        "positive": "Relationship improved",
        "negative": "Relationship soured",
        "neutral": "Checked in",
    }[sentiment]
    memory = normalize_memory(
        {"summary": summary, "sentiment": sentiment, "impact": abs(change)},
        npc_id=npc.id,
        tick=player.time_cursor,
    )
    npc.memories = clamp_memories([*npc.memories, memory])
    player.npc_standing[npc.id] = NpcStanding(mood=npc.mood, trust=npc.trust)

    if update.memory:
        entry = normalize_knowledge_entry(
            {
                "summary": f"{npc.name}: {update.memory}",
                "npc_id": npc.id,
                "faction": npc.faction,
                "tags": ["npc"],
            },
            source=npc.name,
            tick=player.time_cursor,
        )
        player.knowledge_log = clamp_knowledge([*player.knowledge_log, entry])
