from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any

from autogen import ConversableAgent

from dealflow.agents.autogen_config import llm_config_from_env
from dealflow.agents.base import AgentAction
from dealflow.agents.json_schema import JsonSchema
from dealflow.core.context import RenderedContext

logger = logging.getLogger(__name__)


def _extract_last_content(messages: object) -> str:
    """Last non-empty message content from an AG2 chat history."""

    if not isinstance(messages, list):
        return ""

    for msg in reversed(messages):
        if isinstance(msg, dict):
            content = msg.get("content")
            if isinstance(content, str) and content.strip():
                return content.strip()
    return ""


def _reply_text(result: Any) -> str:
    text = _extract_last_content(list(result.messages))
    if text:
        return text
    summary = result.summary
    return summary.strip() if isinstance(summary, str) else ""


@dataclass(slots=True)
class Ag2ChatAgent:
    """One-shot AG2 advisor.

    Each call builds a fresh `ConversableAgent` whose system message is the
    composed advisor context, so no chat history leaks between games.
    """

    name: str
    model: str

    async def propose_action(
        self,
        *,
        prompt: str,
        ctx: RenderedContext,
        structured_output: JsonSchema | None = None,
    ) -> AgentAction:
        advisor = ConversableAgent(
            name=self.name,
            system_message=ctx.system_prompt,
            llm_config=llm_config_from_env(model=self.model),
            human_input_mode="NEVER",
        )

        # response_format is passed straight through to the OpenAI client.
        run_kwargs: dict[str, Any] = {"message": prompt, "max_turns": 1}
        if structured_output is not None:
            run_kwargs["response_format"] = structured_output.as_response_format()

        started = time.perf_counter()
        result = advisor.run(**run_kwargs)
        result.process()
        text = _reply_text(result)
        elapsed_ms = int((time.perf_counter() - started) * 1000)
        logger.debug("advisor call model=%s chars=%s elapsed_ms=%s", self.model, len(text), elapsed_ms)

        metadata: dict[str, Any] = {"model": self.model, "elapsed_ms": elapsed_ms}
        if structured_output is not None:
            metadata["schema"] = structured_output.name
        return AgentAction(kind="advice", content=text, metadata=metadata)
