from __future__ import annotations

import math
from dataclasses import dataclass

from dealflow.models import DayType, PlayerState, TimeSlot

SLOT_ORDER: tuple[TimeSlot, ...] = (TimeSlot.morning, TimeSlot.afternoon, TimeSlot.evening)
WEEKS_PER_YEAR = 52
WEEKS_PER_QUARTER = 13


@dataclass(frozen=True, slots=True)
class Calendar:
    week: int
    year: int
    quarter: int
    month: int


def next_slot(day_type: DayType, time_slot: TimeSlot) -> tuple[DayType, TimeSlot]:
    """MORNING -> AFTERNOON -> EVENING -> MORNING; the day type flips on the wrap."""

    idx = SLOT_ORDER.index(time_slot)
    if idx + 1 < len(SLOT_ORDER):
        return day_type, SLOT_ORDER[idx + 1]
    flipped = DayType.weekend if day_type == DayType.weekday else DayType.weekday
    return flipped, SLOT_ORDER[0]


def advance_slots(player: PlayerState, slots: int) -> None:
    for _ in range(max(0, slots)):
        player.day_type, player.time_slot = next_slot(player.day_type, player.time_slot)
        player.time_cursor += 1


def calendar_for_week(week: int) -> Calendar:
    week = max(1, week)
    week_in_year = (week - 1) % WEEKS_PER_YEAR + 1
    return Calendar(
        week=week,
        year=1 + (week - 1) // WEEKS_PER_YEAR,
        quarter=min(4, math.ceil(week_in_year / WEEKS_PER_QUARTER)),
        month=min(12, (week_in_year - 1) * 12 // WEEKS_PER_YEAR + 1),
    )
