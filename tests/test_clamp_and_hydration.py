from __future__ import annotations

import json

from dealflow.core.clamp import as_int, clamp_loan_rate, clamp_stat
from dealflow.hydration import (
    generate_unique_portfolio_id,
    hydrate_company,
    hydrate_npc,
    hydrate_player,
    hydrate_snapshot,
)
from dealflow.models import ActorKind, DealPhase, Difficulty, GamePhase, LifestyleLevel


def test_clamp_stat_bounds_rounds_and_falls_back() -> None:
    assert clamp_stat(150) == 100
    assert clamp_stat(-3) == 0
    assert clamp_stat(49.6) == 50
    assert clamp_stat(None, fallback=42) == 42
    assert clamp_stat("garbage", fallback=7) == 7
    assert clamp_stat(float("nan"), fallback=9) == 9


def test_loan_rate_clamp_keeps_zero_for_paid_off() -> None:
    assert clamp_loan_rate(0) == 0.0
    assert clamp_loan_rate(0.01) == 0.05
    assert clamp_loan_rate(0.9) == 0.50
    assert clamp_loan_rate(0.22) == 0.22


def test_as_int_is_forgiving() -> None:
    assert as_int("12.6") == 13
    assert as_int(True, 5) == 5
    assert as_int(None, 3) == 3


def test_generate_unique_portfolio_id_skips_existing() -> None:
    assert generate_unique_portfolio_id([]) == 1
    assert generate_unique_portfolio_id([1, 2, 5]) == 6


def test_hydrate_company_derives_missing_operating_fields() -> None:
    company = hydrate_company({"name": "Acme", "revenue": 20_000_000, "ebitda": 4_000_000})
    assert company is not None
    assert company.deal_phase == DealPhase.pipeline
    assert company.ebitda_margin == 0.2
    assert company.employee_count == 100
    assert company.cash_balance == 2_000_000
    assert hydrate_company({"revenue": 1}) is None


def test_hydrate_npc_defaults_mood_and_trust_from_relationship() -> None:
    npc = hydrate_npc({"id": "mom", "relationship": 80, "relationshipType": "FAMILY"})
    assert npc is not None
    assert npc.mood == 80
    assert npc.trust == 80
    assert npc.kind == ActorKind.family
    assert hydrate_npc({"name": "no id"}) is None


def test_hydrate_player_clamps_and_mirrors_cash() -> None:
    player = hydrate_player(
        {
            "cash": 900,
            "stress": 300,
            "personalFinances": {"bankBalance": 5, "lifestyle": "NOT_A_TIER"},
            "portfolio": [{"id": 1, "name": "A"}, {"id": 1, "name": "B"}, {"name": ""}],
        },
        difficulty=Difficulty.normal,
    )
    assert player is not None
    assert player.stress == 100
    assert player.personal_finances.bank_balance == 900
    assert player.personal_finances.lifestyle == LifestyleLevel.broke_associate
    assert [c.id for c in player.portfolio] == [1, 2]


def test_hydrate_snapshot_never_raises_on_garbage() -> None:
    state = hydrate_snapshot("{not json")
    assert state.player is None
    assert state.phase == GamePhase.intro

    state = hydrate_snapshot(json.dumps({"phase": "NOPE", "player": {"cash": "abc"}, "npcs": [1, None, {"id": "x"}]}))
    assert state.phase == GamePhase.intro
    assert state.player is not None
    assert [n.id for n in state.npcs] == ["x"]


def test_snapshot_round_trips_through_json(snapshot) -> None:  # type: ignore[no-untyped-def]
    restored = hydrate_snapshot(snapshot.model_dump_json())
    assert restored.game_id == snapshot.game_id
    assert restored.player == snapshot.player
    assert restored.npcs == snapshot.npcs
    assert restored.active_deals == snapshot.active_deals
