from __future__ import annotations

from typing import cast

from dealflow.agents.ag2_backend import Ag2ChatAgent
from dealflow.agents.base import Agent
from dealflow.settings import settings_from_env


def create_default_agent(*, name: str = "advisor") -> Agent:
    """Create the default LLM-backed agent (AG2, configured from env)."""

    settings = settings_from_env()
    return cast(Agent, Ag2ChatAgent(name=name, model=settings.openai_model))
