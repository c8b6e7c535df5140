from __future__ import annotations

from dataclasses import dataclass

from dealflow.core.errors import CommandRejected
from dealflow.models import GameTime

DEFAULT_MAX_ACTIONS = 2
OVERTIME_ENERGY_PENALTY = -15
OVERTIME_HEALTH_PENALTY = -5


@dataclass(frozen=True, slots=True)
class ConsumeResult:
    game_time: GameTime
    accepted: bool
    reason: str | None = None


@dataclass(frozen=True, slots=True)
class WeekReset:
    game_time: GameTime
    energy_penalty: int = 0
    health_penalty: int = 0


def action_key(week: int, action_type: str, target_id: object | None) -> str:
    return f"{week}|{action_type}|{'' if target_id is None else target_id}"


def consume_action(
    game_time: GameTime, *, action_type: str, target_id: object | None = None, cost: int = 1
) -> ConsumeResult:
    """Spend AP. Actions with a target are limited to once per target per week."""

    key = action_key(game_time.week, action_type, target_id) if target_id is not None else None
    if key is not None and key in game_time.actions_performed_this_week:
        return ConsumeResult(game_time, accepted=False, reason="You already did that this week")
    if game_time.actions_remaining < cost:
        return ConsumeResult(game_time, accepted=False, reason="Not enough action points left this week")

    nxt = game_time.model_copy(deep=True)
    nxt.actions_remaining -= cost
    nxt.actions_used_this_week.append(action_type)
    if key is not None:
        nxt.actions_performed_this_week.append(key)
    return ConsumeResult(nxt, accepted=True)


def toggle_overtime(game_time: GameTime) -> GameTime:
    """Flip overtime for the current week.

    Switching off refunds the extra action, so it is refused once that action
    has been spent; the penalty then stays scheduled for the week-end.
    """

    nxt = game_time.model_copy(deep=True)
    if nxt.overtime_active:
        if nxt.actions_remaining < 1:
            raise CommandRejected("The overtime action is already spent this week")
        nxt.overtime_active = False
        nxt.max_actions = max(0, nxt.max_actions - 1)
        nxt.actions_remaining -= 1
    else:
        nxt.overtime_active = True
        nxt.max_actions += 1
        nxt.actions_remaining += 1
    return nxt


def reset_week(game_time: GameTime) -> WeekReset:
    """Week-end: settle overtime, refill AP, forget this week's dedupe keys."""

    nxt = game_time.model_copy(deep=True)
    energy = health = 0
    if nxt.overtime_active:
        energy, health = OVERTIME_ENERGY_PENALTY, OVERTIME_HEALTH_PENALTY
        nxt.overtime_active = False
        nxt.max_actions = max(0, nxt.max_actions - 1)
    nxt.actions_remaining = nxt.max_actions
    nxt.actions_performed_this_week = []
    nxt.actions_used_this_week = []
    return WeekReset(nxt, energy_penalty=energy, health_penalty=health)
