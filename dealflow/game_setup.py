from __future__ import annotations

import random
from datetime import UTC, datetime
from uuid import uuid4

from dealflow.finance import LIFESTYLE_TIERS
from dealflow.models import (
    Difficulty,
    GamePhase,
    GameSnapshot,
    GameTime,
    NpcStanding,
    PersonalFinances,
    PlayerState,
)
from dealflow.roster import (
    DEFAULT_FACTION_REPUTATION,
    OPENING_SCENARIO_ID,
    difficulty_spec,
    initial_competitive_deals,
    initial_npcs,
    initial_rival_funds,
    opening_company,
)


def _now() -> datetime:
    return datetime.now(tz=UTC)


def build_starting_player(difficulty: Difficulty) -> PlayerState:
    stats = difficulty_spec(difficulty).stats
    npcs = initial_npcs()
    return PlayerState(
        level=stats.level,
        cash=stats.cash,
        reputation=stats.reputation,
        stress=stats.stress,
        energy=stats.energy,
        health=stats.health,
        analyst_rating=stats.analyst_rating,
        financial_engineering=stats.financial_engineering,
        ethics=stats.ethics,
        audit_risk=stats.audit_risk,
        faction_reputation=dict(DEFAULT_FACTION_REPUTATION),
        portfolio=[opening_company()],
        game_time=GameTime(),
        personal_finances=PersonalFinances(
            bank_balance=stats.cash,
            outstanding_loan=stats.loan_balance,
            loan_rate=stats.loan_rate,
            lifestyle=stats.lifestyle,
            monthly_burn=LIFESTYLE_TIERS[stats.lifestyle].monthly_burn,
        ),
        npc_standing={n.id: NpcStanding(mood=n.mood, trust=n.trust) for n in npcs},
    )


def new_game(*, difficulty: Difficulty = Difficulty.normal, seed: int | None = None) -> GameSnapshot:
    """A fresh game: the opening scenario is pending and no week has been processed."""

    if seed is None:
        seed = random.SystemRandom().randint(1, 2**31 - 1)
    now = _now()
    return GameSnapshot(
        game_id=uuid4(),
        created_at=now,
        last_updated_at=now,
        seed=seed,
        difficulty=difficulty,
        phase=GamePhase.intro,
        player=build_starting_player(difficulty),
        npcs=initial_npcs(),
        rival_funds=initial_rival_funds(),
        active_deals=initial_competitive_deals(),
        active_scenario_id=OPENING_SCENARIO_ID,
        action_log=[f"Welcome to the firm. Difficulty: {difficulty.value}."],
    )
