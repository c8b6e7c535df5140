from __future__ import annotations

import os

import httpx
import pytest

from dealflow.agents.ag2_backend import Ag2ChatAgent
from dealflow.agents.advisor import ask_advisor, build_advisor_context
from dealflow.game_setup import new_game
from dealflow.models import Difficulty


def _ollama_healthy(base_url: str) -> bool:
    # base_url might be http://127.0.0.1:11434/v1
    root = base_url.removesuffix("/v1")
    try:
        r = httpx.get(f"{root}/api/tags", timeout=1.0)
        return r.status_code == 200
    except httpx.HTTPError:
        return False


@pytest.mark.asyncio
async def test_ag2_advisor_integration_env_gated() -> None:
    base_url = os.environ.get("OPENAI_BASE_URL")
    api_key = os.environ.get("OPENAI_API_KEY")

    if not (api_key or base_url):
        pytest.skip("Set OPENAI_API_KEY or OPENAI_BASE_URL")

    if base_url and not _ollama_healthy(base_url):
        pytest.skip("Ollama not reachable at OPENAI_BASE_URL")

    state = new_game(difficulty=Difficulty.normal, seed=1)
    ctx = build_advisor_context(state)
    agent = Ag2ChatAgent(name="ag2-test", model=os.environ.get("OPENAI_MODEL", "gpt-4o-mini"))

    reply = await ask_advisor(agent=agent, ctx=ctx, query="Which choice should I pick, and why?")
    assert reply.text
