from __future__ import annotations

from dataclasses import replace
from typing import Any

from autogen import LLMConfig

from dealflow.settings import Settings, settings_from_env


def llm_config_from_settings(settings: Settings) -> LLMConfig:
    # OpenAI-compatible local servers ignore the key, but the client still wants one.
    api_key = settings.openai_api_key or ("ollama" if settings.openai_base_url else None)

    if not api_key:
        raise RuntimeError(
            "Set OPENAI_API_KEY for hosted OpenAI, or set OPENAI_BASE_URL for a local OpenAI-compatible server"
        )

    config: dict[str, Any] = {"model": settings.openai_model, "api_key": api_key}
    if settings.openai_base_url:
        config["base_url"] = settings.openai_base_url

    return LLMConfig(config_list=[config])


def llm_config_from_env(*, model: str | None = None) -> LLMConfig:
    settings = settings_from_env()
    if model:
        settings = replace(settings, openai_model=model)
    return llm_config_from_settings(settings)
