from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any
from uuid import UUID

import redis
from pydantic import BaseModel

from dealflow.action_economy import consume_action, toggle_overtime
from dealflow.api.models import (
    ChangesPayload,
    CompanyPayload,
    DealBidPayload,
    DramaChoicePayload,
    EmptyPayload,
    EventChoicePayload,
    ExitPayload,
    LifestylePayload,
    LoanPayload,
    ManagementPayload,
    MeetPayload,
    OfferPayload,
    ScenarioChoicePayload,
    SkillPayload,
)
from dealflow.core.errors import CommandRejected
from dealflow.core.events import GameEvent
from dealflow.core.rng import GameRandom, tick_random
from dealflow.finance import PERSONAL_LOAN_RATE, remaining_loan_capacity
from dealflow.fsm import GamePhaseMachine
from dealflow.game_store import get_game, save_game
from dealflow.lock import game_lock
from dealflow.models import (
    DealPhase,
    GamePhase,
    GameSnapshot,
    PlayerLevel,
    RelationshipUpdate,
    StatChanges,
)
from dealflow.portfolio import (
    EXIT_PROFILES,
    analyze_company,
    begin_exit,
    cancel_exit,
    complete_exit,
    find_company,
    run_management_action,
    submit_offer,
    walk_away,
)
from dealflow.reducer import append_log, apply_changes
from dealflow.rival_ai import record_player_bid
from dealflow.roster import MAX_PORTFOLIO_SIZE
from dealflow.scenarios import choice_changes, get_scenario
from dealflow.streams import Feed, publish_many
from dealflow.time_engine import advance_week
from dealflow.turn_processing.validators import ValidationContext, pipeline_for_action
from dealflow.world_events import resolve_drama, resolve_event

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CommandResult:
    state: GameSnapshot
    accepted: bool
    reason: str | None = None
    events: list[GameEvent] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class ActionResult:
    state: GameSnapshot
    accepted: bool
    reason: str | None
    feed_entry_ids: list[str]


Handler = Callable[[GameSnapshot, Any, GameRandom], GameSnapshot]


def _commit(snapshot: GameSnapshot, changes: StatChanges) -> GameSnapshot:
    transition = apply_changes(snapshot, changes)
    if not transition.accepted:
        raise CommandRejected(transition.reason or "Command declined")
    return transition.snapshot


def _spend(snapshot: GameSnapshot, *, action_type: str, target_id: object | None = None, cost: int = 1) -> GameSnapshot:
    result = consume_action(snapshot.player.game_time, action_type=action_type, target_id=target_id, cost=cost)
    if not result.accepted:
        raise CommandRejected(result.reason or "Action not available")
    nxt = snapshot.model_copy(deep=True)
    nxt.player.game_time = result.game_time
    return nxt


def _transition(snapshot: GameSnapshot, event: str) -> None:
    fsm = GamePhaseMachine(snapshot)
    if not fsm.try_send(event):
        raise CommandRejected(f"Cannot {event.replace('_', ' ')} from {snapshot.phase.value}")
    fsm.sync_phase_to_model()


# --- handlers -------------------------------------------------------------------------


def _advance_week(snapshot: GameSnapshot, payload: EmptyPayload, rng: GameRandom) -> GameSnapshot:
    report = advance_week(snapshot, rng=rng)
    if not report.processed:
        raise CommandRejected("This week has already been processed")
    return report.snapshot


def _toggle_overtime(snapshot: GameSnapshot, payload: EmptyPayload, rng: GameRandom) -> GameSnapshot:
    nxt = snapshot.model_copy(deep=True)
    nxt.player.game_time = toggle_overtime(nxt.player.game_time)
    on = nxt.player.game_time.overtime_active
    append_log(nxt, "OVERTIME: +1 action this week, your body will bill you later" if on else "OVERTIME: cancelled")
    return nxt


def _analyze(snapshot: GameSnapshot, payload: CompanyPayload, rng: GameRandom) -> GameSnapshot:
    changes = analyze_company(snapshot.player, payload.company_id)
    nxt = _commit(_spend(snapshot, action_type="analyze", target_id=payload.company_id), changes)
    append_log(nxt, f"DILIGENCE: finished the model on company #{payload.company_id}")
    return nxt


def _submit_offer(snapshot: GameSnapshot, payload: OfferPayload, rng: GameRandom) -> GameSnapshot:
    changes = submit_offer(snapshot.player, payload.company_id, payload.bid)
    company = find_company(snapshot.player, payload.company_id)
    nxt = _commit(_spend(snapshot, action_type="offer", target_id=payload.company_id), changes)
    record_player_bid(nxt.ai_state, bid=payload.bid, valuation=company.current_valuation, sector=company.sector)
    append_log(nxt, f"DEAL CLOSED: acquired {company.name} for ${payload.bid:,}")
    return nxt


def _bid_on_deal(snapshot: GameSnapshot, payload: DealBidPayload, rng: GameRandom) -> GameSnapshot:
    deal = next((d for d in snapshot.active_deals if d.id == payload.deal_id), None)
    if deal is None:
        raise CommandRejected(f"Deal {payload.deal_id} is no longer on the market")
    player = snapshot.player
    if len(player.portfolio) >= MAX_PORTFOLIO_SIZE:
        raise CommandRejected("Your portfolio cannot take another company")
    if any(c.name.strip().lower() == deal.company_name.strip().lower() for c in player.portfolio):
        raise CommandRejected(f"{deal.company_name} is already in your portfolio")
    if payload.bid < deal.asking_price:
        raise CommandRejected(f"Outbid: the seller wants at least ${deal.asking_price:,}")
    changes = StatChanges(
        reputation=3,
        score=100,
        deals_closed=1,
        add_portfolio_company={
            "name": deal.company_name,
            "sector": deal.sector,
            "deal_type": deal.deal_type.value,
            "deal_phase": DealPhase.owned.value,
            "current_valuation": deal.fair_value,
            "investment_cost": payload.bid,
            "ownership_percentage": 100.0,
            "revenue": deal.revenue,
            "ebitda": deal.ebitda,
            "revenue_growth": deal.growth,
            "ebitda_margin": deal.ebitda / deal.revenue if deal.revenue else 0.0,
        },
    )
    nxt = _commit(_spend(snapshot, action_type="bid", target_id=deal.id), changes)
    nxt.active_deals = [d for d in nxt.active_deals if d.id != deal.id]
    record_player_bid(nxt.ai_state, bid=payload.bid, valuation=deal.fair_value, sector=deal.sector)
    append_log(nxt, f"AUCTION WON: {deal.company_name} for ${payload.bid:,}")
    return nxt


def _management_action(snapshot: GameSnapshot, payload: ManagementPayload, rng: GameRandom) -> GameSnapshot:
    changes, outcome = run_management_action(snapshot.player, payload.company_id, payload.action_id, rng=rng)
    spent = _spend(snapshot, action_type=f"manage:{payload.action_id}", target_id=payload.company_id)
    nxt = _commit(spent, changes)
    append_log(nxt, f"MANAGEMENT: {outcome.text}")
    return nxt


def _begin_exit(snapshot: GameSnapshot, payload: ExitPayload, rng: GameRandom) -> GameSnapshot:
    changes = begin_exit(snapshot.player, payload.company_id, payload.exit_type, snapshot.market_volatility)
    nxt = _commit(_spend(snapshot, action_type="exit", target_id=payload.company_id), changes)
    profile = EXIT_PROFILES[payload.exit_type]
    append_log(nxt, f"EXIT: {profile.name} process launched, {profile.weeks_to_close} week(s) to close")
    return nxt


def _cancel_exit(snapshot: GameSnapshot, payload: CompanyPayload, rng: GameRandom) -> GameSnapshot:
    nxt = _commit(snapshot, cancel_exit(snapshot.player, payload.company_id))
    append_log(nxt, "EXIT: process pulled, the bankers are not amused")
    return nxt


def _complete_exit(snapshot: GameSnapshot, payload: CompanyPayload, rng: GameRandom) -> GameSnapshot:
    changes, valuation = complete_exit(snapshot.player, payload.company_id, snapshot.market_volatility, rng=rng)
    nxt = _commit(snapshot, changes)
    append_log(nxt, f"EXIT COMPLETE: {valuation.multiple:.2f}x, profit ${valuation.profit:,}")
    return nxt


def _walk_away(snapshot: GameSnapshot, payload: CompanyPayload, rng: GameRandom) -> GameSnapshot:
    nxt = _commit(snapshot, walk_away(snapshot.player, payload.company_id))
    append_log(nxt, f"WALKED AWAY from company #{payload.company_id}")
    return nxt


def _meet_npc(snapshot: GameSnapshot, payload: MeetPayload, rng: GameRandom) -> GameSnapshot:
    npc = next((n for n in snapshot.npcs if n.id == payload.npc_id), None)
    if npc is None:
        raise CommandRejected(f"{payload.npc_id} is not in your life anymore")
    spent = _spend(snapshot, action_type="meet", target_id=npc.id, cost=0)
    nxt = _commit(
        spent,
        StatChanges(npc_relationship_update=RelationshipUpdate(npc_id=npc.id, change=2, memory="We caught up.")),
    )
    append_log(nxt, f"MET: {npc.name}")
    return nxt


def _choose_scenario(snapshot: GameSnapshot, payload: ScenarioChoicePayload, rng: GameRandom) -> GameSnapshot:
    scenario = get_scenario(snapshot.active_scenario_id)
    if scenario is None:
        raise CommandRejected("The pending scenario no longer exists")
    try:
        changes, choice, passed = choice_changes(snapshot, scenario, payload.choice_index)
    except ValueError as exc:
        raise CommandRejected(str(exc)) from exc
    nxt = _commit(snapshot, changes)
    if nxt.phase == GamePhase.intro:
        _transition(nxt, "skip_intro")
    elif nxt.phase == GamePhase.scenario:
        founder = nxt.player.level == PlayerLevel.founder
        _transition(nxt, "resume_founder" if founder else "resolve_scenario")
    nxt.active_scenario_id = None
    append_log(nxt, f"CHOICE: {choice.text}. {choice.outcome_text}".strip())
    if passed and choice.skill_check is not None and choice.skill_check.bonus_text:
        append_log(nxt, f"SKILL CHECK PASSED: {choice.skill_check.bonus_text}")
    return nxt


def _resolve_event(snapshot: GameSnapshot, payload: EventChoicePayload, rng: GameRandom) -> GameSnapshot:
    try:
        transition = resolve_event(snapshot, snapshot.active_event, payload.option_id, rng=rng)
    except ValueError as exc:
        raise CommandRejected(str(exc)) from exc
    if not transition.accepted:
        raise CommandRejected(transition.reason or "Command declined")
    return transition.snapshot


def _resolve_drama(snapshot: GameSnapshot, payload: DramaChoicePayload, rng: GameRandom) -> GameSnapshot:
    try:
        transition = resolve_drama(snapshot, snapshot.active_drama, payload.choice_index)
    except ValueError as exc:
        raise CommandRejected(str(exc)) from exc
    if not transition.accepted:
        raise CommandRejected(transition.reason or "Command declined")
    return transition.snapshot


def _set_lifestyle(snapshot: GameSnapshot, payload: LifestylePayload, rng: GameRandom) -> GameSnapshot:
    if snapshot.player.personal_finances.lifestyle == payload.lifestyle:
        raise CommandRejected("You already live like that")
    nxt = _commit(snapshot, StatChanges(lifestyle_level=payload.lifestyle))
    append_log(nxt, f"LIFESTYLE: now living {payload.lifestyle.value.replace('_', ' ').lower()}")
    return nxt


def _start_skill(snapshot: GameSnapshot, payload: SkillPayload, rng: GameRandom) -> GameSnapshot:
    nxt = _commit(snapshot, StatChanges(skill_investment=payload.skill_id))
    append_log(nxt, f"ENROLLED: {payload.skill_id}")
    return nxt


def _draw_loan(snapshot: GameSnapshot, payload: LoanPayload, rng: GameRandom) -> GameSnapshot:
    capacity = remaining_loan_capacity(snapshot.player)
    if payload.amount > capacity:
        raise CommandRejected(f"Loan limit exceeded. Max available: ${capacity:,}")
    finances = snapshot.player.personal_finances
    rate = finances.loan_rate if finances.outstanding_loan and finances.loan_rate else PERSONAL_LOAN_RATE
    nxt = _commit(snapshot, StatChanges(cash=payload.amount, loan_balance_change=payload.amount, loan_rate=rate))
    append_log(nxt, f"LOAN: drew ${payload.amount:,} at {rate:.0%}")
    return nxt


def _repay_loan(snapshot: GameSnapshot, payload: LoanPayload, rng: GameRandom) -> GameSnapshot:
    finances = snapshot.player.personal_finances
    amount = min(payload.amount, finances.outstanding_loan, max(0, finances.bank_balance))
    if amount <= 0:
        raise CommandRejected("Nothing to repay" if not finances.outstanding_loan else "No cash to repay with")
    paid_off = amount == finances.outstanding_loan
    nxt = _commit(
        snapshot,
        StatChanges(cash=-amount, loan_balance_change=-amount, loan_rate=0.0 if paid_off else None),
    )
    append_log(nxt, f"LOAN: repaid ${amount:,}" + (", debt free" if paid_off else ""))
    return nxt


def _phase_handler(event: str, line: str, *, level: PlayerLevel | None = None) -> Handler:
    def handler(snapshot: GameSnapshot, payload: EmptyPayload, rng: GameRandom) -> GameSnapshot:
        nxt = snapshot.model_copy(deep=True)
        _transition(nxt, event)
        if event == "skip_intro":
            nxt.active_scenario_id = None
        if level is not None:
            nxt = _commit(nxt, StatChanges(level=level))
        append_log(nxt, line)
        return nxt

    return handler


def _apply_raw(snapshot: GameSnapshot, payload: ChangesPayload, rng: GameRandom) -> GameSnapshot:
    nxt = _commit(snapshot, payload.changes)
    append_log(nxt, f"UPDATE: applied changes from {payload.source}")
    return nxt


ACTION_HANDLERS: dict[str, tuple[type[BaseModel], Handler]] = {
    "advance_week": (EmptyPayload, _advance_week),
    "toggle_overtime": (EmptyPayload, _toggle_overtime),
    "analyze": (CompanyPayload, _analyze),
    "submit_offer": (OfferPayload, _submit_offer),
    "bid_on_deal": (DealBidPayload, _bid_on_deal),
    "management_action": (ManagementPayload, _management_action),
    "begin_exit": (ExitPayload, _begin_exit),
    "cancel_exit": (CompanyPayload, _cancel_exit),
    "complete_exit": (CompanyPayload, _complete_exit),
    "walk_away": (CompanyPayload, _walk_away),
    "meet_npc": (MeetPayload, _meet_npc),
    "choose_scenario": (ScenarioChoicePayload, _choose_scenario),
    "resolve_event": (EventChoicePayload, _resolve_event),
    "resolve_drama": (DramaChoicePayload, _resolve_drama),
    "set_lifestyle": (LifestylePayload, _set_lifestyle),
    "start_skill": (SkillPayload, _start_skill),
    "draw_loan": (LoanPayload, _draw_loan),
    "repay_loan": (LoanPayload, _repay_loan),
    "skip_intro": (EmptyPayload, _phase_handler("skip_intro", "Skipped the intro. Straight to the desk.")),
    "open_portfolio": (EmptyPayload, _phase_handler("open_portfolio", "Opened the portfolio command center")),
    "close_portfolio": (EmptyPayload, _phase_handler("close_portfolio", "Back to the desk")),
    "go_founder": (
        EmptyPayload,
        _phase_handler("go_founder", "FOUNDER MODE: you hung up your own shingle", level=PlayerLevel.founder),
    ),
    "apply_changes": (ChangesPayload, _apply_raw),
}


def apply_action(snapshot: GameSnapshot, *, action: str, payload: dict[str, Any] | None = None) -> CommandResult:
    """Validate and apply one action to a snapshot without touching Redis.

    Unknown actions and malformed payloads raise `ValueError`; business-rule
    rejections come back as `accepted=False` with the snapshot unchanged.
    """

    entry = ACTION_HANDLERS.get(action)
    if entry is None:
        raise ValueError(f"Unknown action: {action}")
    payload_model, handler = entry
    parsed = payload_model.model_validate(payload or {})

    ctx = ValidationContext(game_id=str(snapshot.game_id), action=action)
    cursor = snapshot.player.time_cursor if snapshot.player else -1
    try:
        pipeline_for_action(action).validate(ctx=ctx, state=snapshot)
        rng = tick_random(snapshot.seed, snapshot.rng_counter)
        nxt = handler(snapshot, parsed, rng)
    except CommandRejected as exc:
        logger.info("command declined game_id=%s action=%s reason=%s", snapshot.game_id, action, exc.reason)
        event = GameEvent.now(type="COMMAND_DECLINED", cursor=cursor, payload={"action": action, "reason": exc.reason})
        return CommandResult(state=snapshot, accepted=False, reason=exc.reason, events=[event])

    nxt.rng_counter = snapshot.rng_counter + 1
    events = [GameEvent.now(type="COMMAND_ACCEPTED", cursor=cursor, payload={"action": action})]
    if action == "advance_week":
        week = nxt.player.game_time.week if nxt.player else None
        events.append(GameEvent.now(type="WEEK_PROCESSED", cursor=cursor, payload={"week": week, "phase": nxt.phase.value}))
    if nxt.phase != snapshot.phase and nxt.game_over_reason:
        events.append(
            GameEvent.now(type="GAME_OVER", cursor=cursor, payload={"phase": nxt.phase.value, "reason": nxt.game_over_reason})
        )
    return CommandResult(state=nxt, accepted=True, events=events)


def dispatch_action(*, r: redis.Redis, game_id: UUID, action: str, payload: dict[str, Any] | None = None) -> ActionResult:
    """Entry point for the HTTP API and the advisor.

    - acquires the per-game lock
    - loads the snapshot
    - validates and applies the action
    - persists accepted changes
    - publishes feed entries (Redis Streams)
    """

    gid_str = str(game_id)
    with game_lock(r=r, game_id=gid_str):
        state = get_game(r=r, game_id=game_id)
        if state is None:
            raise ValueError("Game not found")

        result = apply_action(state, action=action, payload=payload)
        if result.accepted:
            save_game(r=r, state=result.state)

        ids = publish_many(r=r, feed=Feed(game_id=gid_str), entries=[e.as_fields() for e in result.events])
        return ActionResult(state=result.state, accepted=result.accepted, reason=result.reason, feed_entry_ids=ids)
