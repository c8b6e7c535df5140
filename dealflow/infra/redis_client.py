from __future__ import annotations

import redis

from dealflow.settings import settings_from_env


def create_redis(url: str | None = None) -> redis.Redis:
    # decode_responses=True => strings in/out instead of bytes
    return redis.Redis.from_url(url or settings_from_env().redis_url, decode_responses=True)
