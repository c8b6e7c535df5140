"""Week-end tick.

`advance_week` is the one authoritative tick path. It works on a deep copy of
the snapshot, runs every weekly subsystem in a fixed order and is keyed by the
player's time cursor: a cursor that was already processed is a no-op.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from dealflow.action_economy import reset_week
from dealflow.clock import advance_slots, calendar_for_week
from dealflow.core.clamp import clamp_stat
from dealflow.core.rng import GameRandom
from dealflow.finance import SKILL_INVESTMENTS, weekly_cashflow
from dealflow.fsm import GamePhaseMachine
from dealflow.hydration import clamp_memories, normalize_memory
from dealflow.models import (
    TERMINAL_PHASES,
    CompanyPatch,
    DayType,
    GamePhase,
    GameSnapshot,
    NpcStanding,
    StatChanges,
)
from dealflow.portfolio import is_quarter_end, quarterly_revaluation, weekly_drift
from dealflow.reducer import LEFT_ALONE_FLAG, append_log, apply_changes
from dealflow.rival_ai import run_rival_tick
from dealflow.scenarios import select_scenario
from dealflow.world_events import (
    build_warnings,
    enqueue_drama,
    enqueue_event,
    expired_dramas,
    expired_events,
    drop_drama,
    drop_event,
    resolve_drama,
    resolve_event,
    roll_company_event,
    roll_drama,
    roll_market_event,
)

logger = logging.getLogger(__name__)

MISSED_MEETING_MOOD = -6
MISSED_MEETING_TRUST = -4
RIVAL_MOOD_DECAY = -2
MOOD_DECAY = -3
TRUST_DECAY = -1
WEEKLY_SCORE = 10
REPUTATION_FLOOR = 5
REPUTATION_GRACE_WEEKS = 10
AUDIT_CONVICTION = 100
VICTORY_EXITS = 3
VICTORY_REPUTATION = 75


@dataclass(frozen=True, slots=True)
class TickReport:
    snapshot: GameSnapshot
    processed: bool
    cursor: int
    game_over: bool = False
    scenario_id: int | None = None
    notes: list[str] = field(default_factory=list)


def _missed_meetings(snapshot: GameSnapshot, cursor: int) -> list[str]:
    player = snapshot.player
    missed: list[str] = []
    for npc in snapshot.npcs:
        if npc.last_contact_tick >= cursor:
            continue
        if not any(
            m.day_type == player.day_type and m.time_slot == player.time_slot
            for m in npc.schedule.standing_meetings
        ):
            continue
        missed.append(npc.name)
        kind = "check-in" if player.day_type == DayType.weekday else "meetup"
        memory = normalize_memory(
            {
                "summary": f"You missed our {kind} ({player.time_slot.value.lower()}).",
                "sentiment": "negative",
                "impact": MISSED_MEETING_TRUST,
                "tags": ["missed_meeting"],
            },
            npc_id=npc.id,
            tick=cursor,
        )
        npc.mood = clamp_stat(npc.mood + MISSED_MEETING_MOOD)
        npc.trust = clamp_stat(npc.trust + MISSED_MEETING_TRUST)
        npc.memories = clamp_memories([*npc.memories, memory])
        player.npc_standing[npc.id] = NpcStanding(mood=npc.mood, trust=npc.trust)
    return missed


def _apply(snapshot: GameSnapshot, changes: StatChanges, *, what: str) -> tuple[GameSnapshot, bool]:
    transition = apply_changes(snapshot, changes)
    if not transition.accepted:
        logger.info("tick step declined game_id=%s step=%s reason=%s", snapshot.game_id, what, transition.reason)
    return transition.snapshot, transition.accepted


def _run_finances(snapshot: GameSnapshot, *, year_rolled_over: bool) -> tuple[GameSnapshot, bool]:
    player = snapshot.player
    flow = weekly_cashflow(player, year_rolled_over=year_rolled_over)
    before_total = player.personal_finances.total_earnings
    changes = StatChanges(
        cash=flow.net,
        stress=(flow.lifestyle_stress + flow.interest.stress) or None,
        loan_balance_change=flow.interest.capitalized or None,
    )
    snapshot, accepted = _apply(snapshot, changes, what="finances")
    if not accepted:
        return snapshot, False

    finances = snapshot.player.personal_finances
    if year_rolled_over:
        finances.salary_ytd = 0
        finances.bonus_ytd = 0
    finances.salary_ytd += flow.salary
    finances.bonus_ytd += flow.bonus
    finances.total_earnings = before_total + flow.salary + flow.bonus

    if flow.salary:
        append_log(snapshot, f"PAYROLL: +${flow.salary:,} salary deposited")
    append_log(snapshot, f"LIFESTYLE: -${flow.burn:,} weekly burn")
    if flow.interest.due:
        line = f"INTEREST: ${flow.interest.due:,} due on your loan"
        if flow.interest.capitalized:
            line += f", ${flow.interest.capitalized:,} added to the balance"
        append_log(snapshot, line)
    if flow.bonus:
        append_log(snapshot, f"BONUS: ${flow.bonus:,} annual bonus paid")
    elif year_rolled_over:
        append_log(snapshot, "BONUS: the partners passed you over this year")
    return snapshot, True


def _complete_skills(snapshot: GameSnapshot, cursor: int) -> GameSnapshot:
    for active in list(snapshot.player.active_skills):
        skill = SKILL_INVESTMENTS.get(active.skill_id)
        if skill is None or cursor - active.started_tick < skill.time_weeks:
            continue
        changes = StatChanges(
            analyst_rating=skill.analyst_rating or None,
            financial_engineering=skill.financial_engineering or None,
            reputation=skill.reputation or None,
            sets_flags=list(skill.sets_flags) or None,
        )
        snapshot, _ = _apply(snapshot, changes, what=f"skill:{skill.id}")
        player = snapshot.player
        player.active_skills = [s for s in player.active_skills if s.skill_id != active.skill_id]
        if active.skill_id not in player.completed_skills:
            player.completed_skills.append(active.skill_id)
        append_log(snapshot, f"SKILL COMPLETE: {skill.name}")
    return snapshot


def _terminal_candidates(snapshot: GameSnapshot) -> list[tuple[str, str]]:
    """(fsm event, reason) for every terminal condition that holds, in priority order."""

    player = snapshot.player
    found: list[tuple[str, str]] = []
    if player.reputation < REPUTATION_FLOOR and player.game_time.week > REPUTATION_GRACE_WEEKS:
        found.append(("lose", "REPUTATION"))
    if player.audit_risk >= AUDIT_CONVICTION:
        found.append(("convict", "AUDIT"))
    if LEFT_ALONE_FLAG in player.flags:
        found.append(("abandon", "ALONE"))
    if (
        snapshot.phase == GamePhase.founder_mode
        and len(player.completed_exits) >= VICTORY_EXITS
        and player.reputation >= VICTORY_REPUTATION
    ):
        found.append(("win", "FOUNDER_VICTORY"))
    return found


def _end_game(snapshot: GameSnapshot, event: str, reason: str) -> bool:
    fsm = GamePhaseMachine(snapshot)
    if not fsm.try_send(event):
        return False
    fsm.sync_phase_to_model()
    snapshot.game_over_reason = reason
    snapshot.active_scenario_id = None
    append_log(snapshot, f"GAME OVER: {reason}")
    logger.info("game over game_id=%s phase=%s reason=%s", snapshot.game_id, snapshot.phase.value, reason)
    return True


def _decay_relationships(snapshot: GameSnapshot) -> None:
    player = snapshot.player
    for npc in snapshot.npcs:
        npc.mood = clamp_stat(npc.mood + (RIVAL_MOOD_DECAY if npc.is_rival else MOOD_DECAY))
        npc.trust = clamp_stat(npc.trust + TRUST_DECAY)
        player.npc_standing[npc.id] = NpcStanding(mood=npc.mood, trust=npc.trust)
    if snapshot.npcs:
        append_log(snapshot, "Relationships cooled after a quiet week. Reach out to keep trust from slipping.")


def _portfolio_tick(snapshot: GameSnapshot, *, rng: GameRandom) -> GameSnapshot:
    week = snapshot.player.game_time.week
    quarter_end = is_quarter_end(week)
    for company in list(snapshot.player.portfolio):
        patch = weekly_drift(company)
        if quarter_end and patch:
            drifted = company.model_copy(update=patch)
            patch = {**patch, **quarterly_revaluation(drifted, snapshot.market_volatility, rng=rng)}
        if patch:
            snapshot, _ = _apply(
                snapshot, StatChanges(modify_company=CompanyPatch(id=company.id, updates=patch)), what="drift"
            )
    if quarter_end:
        cal = calendar_for_week(week)
        append_log(snapshot, f"QUARTER CLOSE: Q{cal.quarter} Y{cal.year} marks are in")
    return snapshot


def _expire_events(snapshot: GameSnapshot, *, rng: GameRandom) -> GameSnapshot:
    week = snapshot.player.game_time.week
    for event in expired_events(snapshot, week):
        transition = resolve_event(snapshot, event, None, rng=rng)
        if transition.accepted:
            snapshot = transition.snapshot
            append_log(snapshot, f"EVENT EXPIRED: {event.title} resolved itself")
        else:
            drop_event(snapshot, event.id)
    for drama in expired_dramas(snapshot, week):
        transition = resolve_drama(snapshot, drama, None)
        if transition.accepted:
            snapshot = transition.snapshot
            append_log(snapshot, f"DRAMA EXPIRED: {drama.title}")
        else:
            drop_drama(snapshot, drama.id)
    return snapshot


def _world_tick(snapshot: GameSnapshot, *, rng: GameRandom) -> GameSnapshot:
    snapshot = _portfolio_tick(snapshot, rng=rng)
    snapshot = _expire_events(snapshot, rng=rng)

    for company in list(snapshot.player.portfolio):
        event = roll_company_event(snapshot, company, rng=rng)
        if event is None:
            continue
        had_active = snapshot.active_event is not None
        enqueue_event(snapshot, event)
        if not had_active:
            append_log(snapshot, f"COMPANY EVENT: {event.title} at {company.name}")

    drama = roll_drama(snapshot, rng=rng)
    if drama is not None:
        had_active = snapshot.active_drama is not None
        enqueue_drama(snapshot, drama)
        if not had_active:
            append_log(snapshot, f"DRAMA: {drama.title}")

    news = roll_market_event(snapshot, rng=rng)
    if news is not None:
        if not news.changes.is_empty():
            snapshot, _ = _apply(snapshot, news.changes, what="market")
        snapshot.market_volatility = news.volatility
        append_log(snapshot, f"MARKET: {news.headline}")
    return snapshot


def _maybe_fire_scenario(snapshot: GameSnapshot, *, rng: GameRandom) -> int | None:
    if snapshot.active_scenario_id is not None:
        return None
    scenario = select_scenario(snapshot, rng=rng)
    if scenario is None:
        return None
    fsm = GamePhaseMachine(snapshot)
    if not fsm.try_send("fire_scenario"):
        return None
    fsm.sync_phase_to_model()
    snapshot.active_scenario_id = scenario.id
    append_log(snapshot, f"SCENARIO: {scenario.title}")
    return scenario.id


def _expire_deals(snapshot: GameSnapshot) -> None:
    remaining = []
    for deal in snapshot.active_deals:
        deal = deal.model_copy(update={"deadline": deal.deadline - 1})
        if deal.deadline <= 0:
            append_log(snapshot, f"DEAL CLOSED: {deal.company_name} went to another bidder")
            continue
        remaining.append(deal)
    snapshot.active_deals = remaining


def _finish(snapshot: GameSnapshot, cursor: int) -> None:
    player = snapshot.player
    player.time_cursor = cursor
    advance_slots(player, 1)


def advance_week(snapshot: GameSnapshot, *, rng: GameRandom, at_cursor: int | None = None) -> TickReport:
    """Process one week-end for the player's current cursor (or `at_cursor`).

    Returns `processed=False` with the input snapshot untouched when the cursor
    was already processed, when there is no player, or when the game is over.
    """

    player = snapshot.player
    if player is None or snapshot.phase in TERMINAL_PHASES:
        return TickReport(snapshot=snapshot, processed=False, cursor=-1)
    cursor = player.time_cursor if at_cursor is None else at_cursor
    last = snapshot.last_processed_week_tick
    if last is not None and cursor <= last:
        logger.info("tick skipped game_id=%s cursor=%s last=%s", snapshot.game_id, cursor, last)
        return TickReport(snapshot=snapshot, processed=False, cursor=cursor)

    snapshot = snapshot.model_copy(deep=True)
    snapshot.last_processed_week_tick = cursor
    notes: list[str] = []

    missed = _missed_meetings(snapshot, cursor)
    if missed:
        append_log(snapshot, f"Missed appointments with {', '.join(missed)}.")
        notes.append("missed_meetings")

    gt = snapshot.player.game_time
    previous_year = gt.year
    cal = calendar_for_week(gt.week + 1)
    gt.week, gt.year, gt.quarter, gt.month = cal.week, cal.year, cal.quarter, cal.month
    year_rolled_over = cal.year != previous_year

    snapshot, solvent = _run_finances(snapshot, year_rolled_over=year_rolled_over)
    if not solvent:
        _end_game(snapshot, "lose", "BANKRUPT")
        _finish(snapshot, cursor)
        return TickReport(snapshot=snapshot, processed=True, cursor=cursor, game_over=True, notes=notes)

    snapshot = _complete_skills(snapshot, cursor + 1)
    snapshot, _ = _apply(snapshot, StatChanges(score=WEEKLY_SCORE), what="score")

    if any(_end_game(snapshot, event, reason) for event, reason in _terminal_candidates(snapshot)):
        _finish(snapshot, cursor)
        return TickReport(snapshot=snapshot, processed=True, cursor=cursor, game_over=True, notes=notes)

    _decay_relationships(snapshot)
    snapshot = _world_tick(snapshot, rng=rng)
    snapshot.warnings = build_warnings(snapshot)
    scenario_id = _maybe_fire_scenario(snapshot, rng=rng)

    rival_changes = run_rival_tick(snapshot, rng=rng)
    if rival_changes is not None:
        snapshot, _ = _apply(snapshot, rival_changes, what="rivals")
        notes.append("rival_move")

    reset = reset_week(snapshot.player.game_time)
    snapshot.player.game_time = reset.game_time
    if reset.energy_penalty or reset.health_penalty:
        snapshot, _ = _apply(
            snapshot,
            StatChanges(energy=reset.energy_penalty, health=reset.health_penalty),
            what="overtime",
        )
        append_log(snapshot, "OVERTIME: the extra hours caught up with you")
    for company in snapshot.player.portfolio:
        company.actions_this_week = []

    _expire_deals(snapshot)
    _finish(snapshot, cursor)
    append_log(snapshot, f"WEEK {snapshot.player.game_time.week} begins")
    logger.info(
        "tick processed game_id=%s cursor=%s week=%s phase=%s scenario=%s",
        snapshot.game_id,
        cursor,
        snapshot.player.game_time.week,
        snapshot.phase.value,
        scenario_id,
    )
    return TickReport(snapshot=snapshot, processed=True, cursor=cursor, scenario_id=scenario_id, notes=notes)

