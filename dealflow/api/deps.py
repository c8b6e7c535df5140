from __future__ import annotations

from collections.abc import Generator

import redis

from dealflow.agents.base import Agent
from dealflow.agents.factory import create_default_agent
from dealflow.infra.redis_client import create_redis


def get_redis() -> Generator[redis.Redis, None, None]:
    client = create_redis()
    try:
        yield client
    finally:
        client.close()


def get_advisor_agent() -> Agent:
    return create_default_agent(name="advisor")
