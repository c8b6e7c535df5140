from __future__ import annotations

import logging
from datetime import UTC, datetime
from uuid import UUID

import redis

from dealflow.game_setup import new_game
from dealflow.hydration import hydrate_snapshot
from dealflow.models import Difficulty, GameSnapshot

logger = logging.getLogger(__name__)

GAMES_SET_KEY = "dealflow:games"
GAME_KEY_PREFIX = "dealflow:game:"  # + {uuid}


def _now() -> datetime:
    return datetime.now(tz=UTC)


def _game_key(game_id: UUID) -> str:
    return f"{GAME_KEY_PREFIX}{game_id}"


def save_game(*, r: redis.Redis, state: GameSnapshot) -> None:
    state.last_updated_at = _now()
    r.set(_game_key(state.game_id), state.model_dump_json())
    r.sadd(GAMES_SET_KEY, str(state.game_id))


def get_game(*, r: redis.Redis, game_id: UUID) -> GameSnapshot | None:
    raw = r.get(_game_key(game_id))
    if not raw:
        return None
    # Hydration never raises; a damaged document comes back with defaults.
    return hydrate_snapshot(raw)


def require_game(*, r: redis.Redis, game_id: UUID) -> GameSnapshot:
    state = get_game(r=r, game_id=game_id)
    if state is None:
        raise ValueError("Game not found")
    return state


def create_game(*, r: redis.Redis, difficulty: Difficulty, seed: int | None = None) -> GameSnapshot:
    state = new_game(difficulty=difficulty, seed=seed)
    save_game(r=r, state=state)
    logger.info("game created game_id=%s difficulty=%s seed=%s", state.game_id, difficulty.value, state.seed)
    return state


def list_games(*, r: redis.Redis) -> list[GameSnapshot]:
    ids = sorted(r.smembers(GAMES_SET_KEY))
    out: list[GameSnapshot] = []
    for sid in ids:
        try:
            gid = UUID(sid)
        except ValueError:
            continue
        state = get_game(r=r, game_id=gid)
        if state is not None:
            out.append(state)
    out.sort(key=lambda s: s.created_at, reverse=True)
    return out
