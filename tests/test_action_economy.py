from __future__ import annotations

import pytest

from dealflow.action_economy import (
    OVERTIME_ENERGY_PENALTY,
    OVERTIME_HEALTH_PENALTY,
    consume_action,
    reset_week,
    toggle_overtime,
)
from dealflow.core.errors import CommandRejected
from dealflow.models import GameTime


def test_consume_spends_points_and_dedupes_targets() -> None:
    gt = GameTime()
    first = consume_action(gt, action_type="analyze", target_id=1)
    assert first.accepted
    assert first.game_time.actions_remaining == 1
    assert gt.actions_remaining == 2

    again = consume_action(first.game_time, action_type="analyze", target_id=1)
    assert not again.accepted
    assert again.reason == "You already did that this week"

    other = consume_action(first.game_time, action_type="analyze", target_id=2)
    assert other.accepted
    assert other.game_time.actions_remaining == 0

    broke = consume_action(other.game_time, action_type="analyze", target_id=3)
    assert not broke.accepted
    assert "action points" in (broke.reason or "")


def test_zero_cost_actions_are_still_deduped() -> None:
    gt = GameTime(actions_remaining=0)
    met = consume_action(gt, action_type="meet", target_id="mom", cost=0)
    assert met.accepted
    assert not consume_action(met.game_time, action_type="meet", target_id="mom", cost=0).accepted


def test_overtime_toggle_is_reversible() -> None:
    gt = GameTime()
    on = toggle_overtime(gt)
    assert (on.overtime_active, on.max_actions, on.actions_remaining) == (True, 3, 3)
    off = toggle_overtime(on)
    assert (off.overtime_active, off.max_actions, off.actions_remaining) == (False, 2, 2)


def test_week_reset_refills_and_bills_overtime() -> None:
    gt = toggle_overtime(GameTime())
    spent = consume_action(gt, action_type="analyze", target_id=1).game_time
    reset = reset_week(spent)
    assert reset.game_time.overtime_active is False
    assert reset.game_time.max_actions == 2
    assert reset.game_time.actions_remaining == 2
    assert reset.game_time.actions_performed_this_week == []
    assert (reset.energy_penalty, reset.health_penalty) == (OVERTIME_ENERGY_PENALTY, OVERTIME_HEALTH_PENALTY)

    quiet = reset_week(GameTime(actions_remaining=0))
    assert (quiet.energy_penalty, quiet.health_penalty) == (0, 0)
    assert quiet.game_time.actions_remaining == 2


def test_overtime_cannot_be_cancelled_after_the_extra_action_is_spent() -> None:
    gt = toggle_overtime(GameTime())
    for target in (1, 2, 3):
        gt = consume_action(gt, action_type="analyze", target_id=target).game_time
    assert gt.actions_remaining == 0

    with pytest.raises(CommandRejected, match="already spent"):
        toggle_overtime(gt)

    reset = reset_week(gt)
    assert (reset.energy_penalty, reset.health_penalty) == (OVERTIME_ENERGY_PENALTY, OVERTIME_HEALTH_PENALTY)
