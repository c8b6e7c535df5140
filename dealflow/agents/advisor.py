from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any
from uuid import UUID

import redis

from dealflow.actions import dispatch_action
from dealflow.agents.base import Agent
from dealflow.agents.json_schema import JsonSchema
from dealflow.core.context import (
    BaseAgentContext,
    RenderedContext,
    ScenarioContext,
    compose_context,
    player_context_from_snapshot,
)
from dealflow.core.events import GameEvent
from dealflow.game_store import require_game
from dealflow.models import GameSnapshot, RelationshipUpdate, StatChanges
from dealflow.scenarios import get_scenario
from dealflow.streams import Feed, publish

logger = logging.getLogger(__name__)

ADVISOR_STATS: tuple[str, ...] = (
    "reputation",
    "stress",
    "energy",
    "health",
    "analyst_rating",
    "ethics",
    "audit_risk",
    "aum",
)
MAX_STAT_DELTA = 20
MAX_RELATIONSHIP_DELTA = 20
MAX_AUM_DELTA = 100_000_000
MAX_NPCS_PER_REPLY = 2
FALLBACK_TEXT = "Looks like the market for good advice just crashed. Try again later, champ."

ADVISOR_INSTRUCTIONS = """\
You are a cynical, brutally honest and sarcastic private equity Managing Director
advising a junior associate on how to climb the ladder and get rich.
Use PE jargon correctly, keep answers short and punchy, and call the player 'kid' or 'rookie'.

When the player faces a scenario, explain the trade-off between the available choices
instead of just naming one. If they ask what you would do, give the most ruthless option.
If stress is above 70, mock them for cracking. If reputation is low, remind them they are irrelevant.
If they ask to be tested, give them one hard PE question and wait for the answer.

You may nudge the game state. Every reply is a JSON object:
  {"text": "<what you say>", "effects": [...]}
Each effect is {"kind": "stat" | "relationship", "target": "<stat name or npc id>", "delta": <int>, "memory": "<short note>"}.
Stat targets: reputation, stress, energy, health, analyst_rating, ethics, audit_risk, aum.
Use an empty effects list unless the conversation clearly earned a reward or a punishment.
"""


class AdvisorReplyError(RuntimeError):
    pass


@dataclass(frozen=True, slots=True)
class AdvisorEffect:
    kind: str
    target: str
    delta: int
    memory: str = ""


@dataclass(frozen=True, slots=True)
class AdvisorReply:
    text: str
    effects: list[AdvisorEffect] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class AdvisorOutcome:
    text: str
    accepted: bool
    reason: str | None
    effects_applied: bool
    state: GameSnapshot


ADVICE_SCHEMA = JsonSchema(
    name="advisor_reply",
    schema={
        "type": "object",
        "additionalProperties": False,
        "properties": {
            "text": {"type": "string"},
            "effects": {
                "type": "array",
                "items": {
                    "type": "object",
                    "additionalProperties": False,
                    "properties": {
                        "kind": {"type": "string", "enum": ["stat", "relationship"]},
                        "target": {"type": "string"},
                        "delta": {"type": "integer"},
                        "memory": {"type": "string"},
                    },
                    "required": ["kind", "target", "delta", "memory"],
                },
            },
        },
        "required": ["text", "effects"],
    },
    strict=True,
)


def _bounded(value: int, limit: int) -> int:
    return max(-limit, min(limit, value))


def _parse_effect(raw: object) -> AdvisorEffect:
    if not isinstance(raw, dict):
        raise AdvisorReplyError("Each effect must be a JSON object")

    kind = raw.get("kind")
    target = raw.get("target")
    delta = raw.get("delta")
    memory = raw.get("memory") or ""

    if kind not in ("stat", "relationship"):
        raise AdvisorReplyError(f"Unknown effect kind: {kind!r}")
    if not isinstance(target, str) or not target.strip():
        raise AdvisorReplyError("Missing/invalid effect 'target'")
    # bool is an int subclass; reject it explicitly.
    if isinstance(delta, bool) or not isinstance(delta, int):
        raise AdvisorReplyError("Effect 'delta' must be an integer")
    if not isinstance(memory, str):
        raise AdvisorReplyError("Effect 'memory' must be a string")

    target = target.strip()
    if kind == "stat":
        if target not in ADVISOR_STATS:
            raise AdvisorReplyError(f"Advisor cannot change stat {target!r}")
        delta = _bounded(delta, MAX_AUM_DELTA if target == "aum" else MAX_STAT_DELTA)
    else:
        delta = _bounded(delta, MAX_RELATIONSHIP_DELTA)
    return AdvisorEffect(kind=kind, target=target, delta=delta, memory=memory.strip())


def parse_advisor_reply(text: str) -> AdvisorReply:
    """Parse the advisor's strict-JSON reply.

    Expected shape:
        {"text": "...", "effects": [{"kind": "stat", "target": "stress", "delta": -5, "memory": ""}]}

    Deltas are clamped to per-kind limits. Non-JSON output is rejected.
    """

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise AdvisorReplyError(f"Invalid JSON: {e}") from e

    if not isinstance(data, dict):
        raise AdvisorReplyError("Expected a JSON object")

    reply_text = data.get("text")
    if not isinstance(reply_text, str) or not reply_text.strip():
        raise AdvisorReplyError("Missing/invalid 'text' field")

    raw_effects = data.get("effects", [])
    if raw_effects is None:
        raw_effects = []
    if not isinstance(raw_effects, list):
        raise AdvisorReplyError("'effects' must be a list")

    effects = [_parse_effect(item) for item in raw_effects]
    npc_targets = {e.target for e in effects if e.kind == "relationship"}
    if len(npc_targets) > MAX_NPCS_PER_REPLY:
        raise AdvisorReplyError(f"At most {MAX_NPCS_PER_REPLY} NPCs may be affected per reply")

    return AdvisorReply(text=reply_text.strip(), effects=effects)


def effects_to_changes(effects: Sequence[AdvisorEffect]) -> StatChanges | None:
    """Fold advisor effects into one command; `None` when nothing would change."""

    if not effects:
        return None

    update: dict[str, Any] = {}
    relationships: dict[str, RelationshipUpdate] = {}
    for effect in effects:
        if effect.kind == "stat":
            update[effect.target] = update.get(effect.target, 0) + effect.delta
            continue
        previous = relationships.get(effect.target)
        if previous is None:
            relationships[effect.target] = RelationshipUpdate(
                npc_id=effect.target, change=effect.delta, memory=effect.memory
            )
        else:
            relationships[effect.target] = RelationshipUpdate(
                npc_id=effect.target,
                change=previous.change + effect.delta,
                memory="; ".join(m for m in (previous.memory, effect.memory) if m),
            )

    update = {k: v for k, v in update.items() if v}
    slots = ("npc_relationship_update", "npc_relationship_update2")
    for slot, rel in zip(slots, relationships.values()):
        update[slot] = rel
    if not update:
        return None
    return StatChanges(**update)


def build_advisor_context(snapshot: GameSnapshot, *, recent_dialogue: Sequence[str] = ()) -> RenderedContext:
    scenario_ctx: ScenarioContext | None = None
    scenario = get_scenario(snapshot.active_scenario_id)
    if scenario is not None:
        scenario_ctx = ScenarioContext(
            title=scenario.title,
            description=scenario.description,
            choices=[f"{c.text} (hint: {c.guidance})" if c.guidance else c.text for c in scenario.choices],
        )
    elif snapshot.active_event is not None:
        event = snapshot.active_event
        scenario_ctx = ScenarioContext(
            title=event.title,
            description=event.description,
            choices=[o.label for o in event.options],
        )

    return compose_context(
        base=BaseAgentContext(system_prompt=ADVISOR_INSTRUCTIONS),
        player=player_context_from_snapshot(snapshot),
        scenario=scenario_ctx,
        dialogue=recent_dialogue,
    )


async def ask_advisor(
    *,
    agent: Agent,
    ctx: RenderedContext,
    query: str,
    max_attempts: int = 3,
) -> AdvisorReply:
    """Ask the advisor and validate its reply.

    Once every attempt failed to parse, the player gets the canned fallback line
    with no effects; raw model output is never shown.
    """

    prompt = f"{query.strip()}\n\nReturn ONLY JSON matching the required schema."

    last_err: Exception | None = None
    for attempt in range(1, max_attempts + 1):
        # Agents without structured-output support only take prompt+ctx.
        propose = getattr(agent, "propose_action")
        try:
            action = await propose(prompt=prompt, ctx=ctx, structured_output=ADVICE_SCHEMA)  # type: ignore[arg-type]
        except TypeError:
            action = await propose(prompt=prompt, ctx=ctx)  # type: ignore[misc]

        try:
            return parse_advisor_reply(action.content)
        except AdvisorReplyError as e:
            last_err = e
            logger.warning("advisor reply rejected attempt=%s/%s error=%s", attempt, max_attempts, e)

    logger.warning("advisor degraded to text-only after %s attempts: %s", max_attempts, last_err)
    return AdvisorReply(text=FALLBACK_TEXT)


async def consult_advisor(
    *,
    r: redis.Redis,
    game_id: UUID,
    query: str,
    agent: Agent,
    recent_dialogue: Sequence[str] = (),
    max_attempts: int = 3,
) -> AdvisorOutcome:
    """Consult the advisor and apply its effects as a single command.

    The game is not locked while the model is thinking; effects go through the
    normal dispatch path once the reply arrives.
    """

    state = require_game(r=r, game_id=game_id)
    ctx = build_advisor_context(state, recent_dialogue=recent_dialogue)
    reply = await ask_advisor(agent=agent, ctx=ctx, query=query, max_attempts=max_attempts)

    accepted, reason, applied = True, None, False
    changes = effects_to_changes(reply.effects)
    if changes is not None:
        result = dispatch_action(
            r=r,
            game_id=game_id,
            action="apply_changes",
            payload={"changes": changes.model_dump(mode="json", exclude_none=True), "source": "advisor"},
        )
        state, accepted, reason, applied = result.state, result.accepted, result.reason, result.accepted

    cursor = state.player.time_cursor if state.player else -1
    event = GameEvent.now(
        type="ADVISOR_REPLY",
        cursor=cursor,
        payload={"effects": len(reply.effects), "applied": applied, "reason": reason},
    )
    publish(r=r, feed=Feed(game_id=str(game_id)), fields=event.as_fields())
    return AdvisorOutcome(text=reply.text, accepted=accepted, reason=reason, effects_applied=applied, state=state)
