from __future__ import annotations

from contextlib import contextmanager

import redis

from dealflow.settings import settings_from_env


def lock_key(game_id: str) -> str:
    return f"dealflow:lock:{game_id}"


@contextmanager
def game_lock(*, r: redis.Redis, game_id: str, ttl_ms: int | None = None):
    """Per-game mutex around one command or one tick.

    A second caller fails fast instead of queueing; the TTL frees a lock left by
    a crashed holder.
    """

    key = lock_key(game_id)
    ttl = ttl_ms if ttl_ms is not None else settings_from_env(load_env_file=False).lock_ttl_ms
    acquired = r.set(key, "1", nx=True, px=ttl)
    if not acquired:
        raise ValueError("Game is busy")
    try:
        yield
    finally:
        r.delete(key)
