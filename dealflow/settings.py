from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

from dealflow.models import Difficulty


@dataclass(frozen=True, slots=True)
class Settings:
    redis_url: str = "redis://localhost:6379/0"
    log_level: str = "INFO"
    default_difficulty: Difficulty = Difficulty.normal
    lock_ttl_ms: int = 5_000
    openai_model: str = "gpt-4o-mini"
    openai_base_url: str | None = None
    openai_api_key: str | None = None


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def settings_from_env(*, load_env_file: bool = True) -> Settings:
    """Read settings from the environment, optionally seeding it from a local `.env`."""

    if load_env_file:
        # Real environment variables win over .env values.
        load_dotenv(override=False)

    difficulty_raw = os.environ.get("DEALFLOW_DEFAULT_DIFFICULTY", Difficulty.normal.value)
    try:
        difficulty = Difficulty(difficulty_raw)
    except ValueError:
        raise ValueError(f"Unknown DEALFLOW_DEFAULT_DIFFICULTY: {difficulty_raw!r}") from None

    return Settings(
        redis_url=os.environ.get("REDIS_URL", "redis://localhost:6379/0"),
        log_level=os.environ.get("DEALFLOW_LOG_LEVEL", "INFO").upper(),
        default_difficulty=difficulty,
        lock_ttl_ms=_int_env("DEALFLOW_LOCK_TTL_MS", 5_000),
        openai_model=os.environ.get("OPENAI_MODEL", "gpt-4o-mini"),
        openai_base_url=os.environ.get("OPENAI_BASE_URL") or None,
        openai_api_key=os.environ.get("OPENAI_API_KEY") or None,
    )
