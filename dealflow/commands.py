"""Narrow command variants behind the flat `StatChanges` wire record.

`split_command` turns one sparse `StatChanges` into an ordered list of
variants; the reducer matches on them exhaustively. `merge_changes` and
`scale_changes` operate on the wire record itself.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from dealflow.models import (
    CompanyPatch,
    CompletedExit,
    Faction,
    LifestyleLevel,
    PlayerLevel,
    RelationshipUpdate,
    StatChanges,
)

BOUNDED_STATS: tuple[str, ...] = (
    "reputation",
    "stress",
    "energy",
    "health",
    "analyst_rating",
    "financial_engineering",
    "ethics",
    "audit_risk",
    "dependency",
)

UNBOUNDED_STATS: tuple[str, ...] = ("score", "aum", "deals_closed")

# A positive delta on these hurts the player.
ADVERSE_STATS: frozenset[str] = frozenset({"stress", "audit_risk", "dependency"})


@dataclass(frozen=True, slots=True)
class InitPlayer:
    level: PlayerLevel


@dataclass(frozen=True, slots=True)
class SetLevel:
    level: PlayerLevel


@dataclass(frozen=True, slots=True)
class AdjustStats:
    deltas: tuple[tuple[str, int], ...]


@dataclass(frozen=True, slots=True)
class AdjustCash:
    amount: int


@dataclass(frozen=True, slots=True)
class AddCompany:
    payload: dict[str, Any]


@dataclass(frozen=True, slots=True)
class ModifyCompany:
    company_id: int
    updates: dict[str, Any]


@dataclass(frozen=True, slots=True)
class RemoveCompany:
    company_id: int


@dataclass(frozen=True, slots=True)
class RecordExit:
    exit: CompletedExit


@dataclass(frozen=True, slots=True)
class AdjustFactions:
    deltas: tuple[tuple[Faction, int], ...]


@dataclass(frozen=True, slots=True)
class SetFlags:
    flags: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class AdjustLoan:
    balance_change: int = 0
    rate: float | None = None


@dataclass(frozen=True, slots=True)
class UpdateRelationship:
    update: RelationshipUpdate


@dataclass(frozen=True, slots=True)
class RemoveNpc:
    npc_id: str


@dataclass(frozen=True, slots=True)
class StartSkill:
    skill_id: str


@dataclass(frozen=True, slots=True)
class SetLifestyle:
    lifestyle: LifestyleLevel


@dataclass(frozen=True, slots=True)
class GainKnowledge:
    entries: tuple[dict[str, Any], ...]


@dataclass(frozen=True, slots=True)
class MarkScenariosPlayed:
    scenario_ids: tuple[int, ...]


@dataclass(frozen=True, slots=True)
class AdvanceClock:
    slots: int


Command = (
    InitPlayer
    | SetLevel
    | AdjustStats
    | AdjustCash
    | AddCompany
    | ModifyCompany
    | RemoveCompany
    | RecordExit
    | AdjustFactions
    | SetFlags
    | AdjustLoan
    | UpdateRelationship
    | RemoveNpc
    | StartSkill
    | SetLifestyle
    | GainKnowledge
    | MarkScenariosPlayed
    | AdvanceClock
)

SLOTS_PER_DAY = 3


def split_command(changes: StatChanges, *, player_exists: bool = True) -> list[Command]:
    """Fixed application order: identity, stats, money, entities, narrative, clock."""

    out: list[Command] = []
    if changes.level is not None:
        out.append(SetLevel(changes.level) if player_exists else InitPlayer(changes.level))

    deltas = tuple(
        (name, value)
        for name in BOUNDED_STATS + UNBOUNDED_STATS
        if (value := getattr(changes, name)) is not None and value != 0
    )
    if deltas:
        out.append(AdjustStats(deltas))

    if changes.loan_balance_change or changes.loan_rate is not None:
        out.append(AdjustLoan(balance_change=changes.loan_balance_change or 0, rate=changes.loan_rate))
    if changes.cash:
        out.append(AdjustCash(changes.cash))
    if changes.skill_investment:
        out.append(StartSkill(changes.skill_investment))
    if changes.lifestyle_level is not None:
        out.append(SetLifestyle(changes.lifestyle_level))

    if changes.add_portfolio_company is not None:
        out.append(AddCompany(dict(changes.add_portfolio_company)))
    if changes.modify_company is not None:
        out.append(ModifyCompany(changes.modify_company.id, dict(changes.modify_company.updates)))
    if changes.completed_exit is not None:
        out.append(RecordExit(changes.completed_exit))
    if changes.remove_company_id is not None:
        out.append(RemoveCompany(changes.remove_company_id))
    if changes.faction_reputation:
        out.append(AdjustFactions(tuple(changes.faction_reputation.items())))
    if changes.sets_flags:
        out.append(SetFlags(tuple(changes.sets_flags)))

    for update in (changes.npc_relationship_update, changes.npc_relationship_update2):
        if update is not None:
            out.append(UpdateRelationship(update))
    if changes.remove_npc_id:
        out.append(RemoveNpc(changes.remove_npc_id))
    if changes.knowledge_gain:
        out.append(GainKnowledge(tuple(changes.knowledge_gain)))
    if changes.played_scenario_ids:
        out.append(MarkScenariosPlayed(tuple(changes.played_scenario_ids)))

    slots = (changes.advance_time_slots or 0) + (changes.advance_days or 0) * SLOTS_PER_DAY
    if slots > 0:
        out.append(AdvanceClock(slots))
    return out


def _sum(a: int | None, b: int | None) -> int | None:
    if a is None:
        return b
    if b is None:
        return a
    return a + b


def merge_changes(first: StatChanges, second: StatChanges) -> StatChanges:
    """Combine two commands field by field; numeric deltas add, sets union, scalars take `second`."""

    merged: dict[str, Any] = {}
    for name in BOUNDED_STATS + UNBOUNDED_STATS + ("cash", "loan_balance_change", "advance_time_slots", "advance_days"):
        merged[name] = _sum(getattr(first, name), getattr(second, name))

    for name in ("level", "loan_rate", "skill_investment", "lifestyle_level", "add_portfolio_company", "remove_npc_id", "remove_company_id", "completed_exit"):
        value = getattr(second, name)
        merged[name] = value if value is not None else getattr(first, name)

    if first.modify_company and second.modify_company and first.modify_company.id == second.modify_company.id:
        merged["modify_company"] = CompanyPatch(
            id=first.modify_company.id, updates={**first.modify_company.updates, **second.modify_company.updates}
        )
    else:
        merged["modify_company"] = second.modify_company or first.modify_company

    if first.faction_reputation or second.faction_reputation:
        factions: dict[Faction, int] = dict(first.faction_reputation or {})
        for faction, delta in (second.faction_reputation or {}).items():
            factions[faction] = factions.get(faction, 0) + delta
        merged["faction_reputation"] = factions

    if first.sets_flags or second.sets_flags:
        merged["sets_flags"] = list(dict.fromkeys([*(first.sets_flags or []), *(second.sets_flags or [])]))
    if first.knowledge_gain or second.knowledge_gain:
        merged["knowledge_gain"] = [*(first.knowledge_gain or []), *(second.knowledge_gain or [])]
    if first.played_scenario_ids or second.played_scenario_ids:
        merged["played_scenario_ids"] = list(
            dict.fromkeys([*(first.played_scenario_ids or []), *(second.played_scenario_ids or [])])
        )

    updates = [
        u
        for u in (
            first.npc_relationship_update,
            first.npc_relationship_update2,
            second.npc_relationship_update,
            second.npc_relationship_update2,
        )
        if u is not None
    ]
    # Two relationship slots; the most recent updates win.
    updates = updates[-2:]
    merged["npc_relationship_update"] = updates[0] if updates else None
    merged["npc_relationship_update2"] = updates[1] if len(updates) > 1 else None

    return StatChanges(**merged)


def _scale(value: int, *, positive: float, negative: float, adverse: bool) -> int:
    helps = value < 0 if adverse else value > 0
    return round(value * (positive if helps else negative))


def scale_changes(changes: StatChanges, *, positive: float, negative: float) -> StatChanges:
    """Apply difficulty outcome modifiers: gains scale by `positive`, losses by `negative`."""

    if positive == 1 and negative == 1:
        return changes
    update: dict[str, Any] = {}
    for name in BOUNDED_STATS + ("cash",):
        value = getattr(changes, name)
        if value:
            update[name] = _scale(value, positive=positive, negative=negative, adverse=name in ADVERSE_STATS)
    if changes.faction_reputation:
        update["faction_reputation"] = {
            f: _scale(v, positive=positive, negative=negative, adverse=False) for f, v in changes.faction_reputation.items()
        }
    return changes.model_copy(update=update)
