from __future__ import annotations

import json
from dataclasses import dataclass, field

import fakeredis
import pytest
from fastapi.testclient import TestClient

from dealflow.agents.advisor import (
    FALLBACK_TEXT,
    MAX_AUM_DELTA,
    AdvisorEffect,
    AdvisorReplyError,
    ask_advisor,
    build_advisor_context,
    consult_advisor,
    effects_to_changes,
    parse_advisor_reply,
)
from dealflow.agents.base import AgentAction
from dealflow.agents.json_schema import JsonSchema
from dealflow.core.context import RenderedContext
from dealflow.game_setup import new_game
from dealflow.game_store import create_game, get_game
from dealflow.models import Difficulty
from dealflow.streams import Feed, read_feed


@dataclass
class _ScriptedAdvisor:
    replies: list[str]
    name: str = "advisor"
    seen_schema: list[JsonSchema | None] = field(default_factory=list)

    async def propose_action(
        self,
        *,
        prompt: str,
        ctx: RenderedContext,
        structured_output: JsonSchema | None = None,
    ) -> AgentAction:
        self.seen_schema.append(structured_output)
        content = self.replies.pop(0) if self.replies else ""
        return AgentAction(kind="advice", content=content, metadata={})


@dataclass
class _PlainAgent:
    """Agent without structured-output support."""

    reply: str
    name: str = "plain"
    calls: int = 0

    async def propose_action(self, *, prompt: str, ctx: RenderedContext) -> AgentAction:
        self.calls += 1
        return AgentAction(kind="advice", content=self.reply, metadata={})


def _reply(text: str = "Buy low, kid.", effects: list[dict] | None = None) -> str:
    return json.dumps({"text": text, "effects": effects or []})


def _ctx() -> RenderedContext:
    return RenderedContext(system_prompt="You are a test advisor.")


def test_parse_rejects_non_json_and_missing_text() -> None:
    with pytest.raises(AdvisorReplyError, match="Invalid JSON"):
        parse_advisor_reply("sure thing, rookie")
    with pytest.raises(AdvisorReplyError, match="Expected a JSON object"):
        parse_advisor_reply("[]")
    with pytest.raises(AdvisorReplyError, match="'text'"):
        parse_advisor_reply(json.dumps({"text": "  ", "effects": []}))


def test_parse_rejects_unknown_stat_and_bool_delta() -> None:
    with pytest.raises(AdvisorReplyError, match="cannot change stat"):
        parse_advisor_reply(_reply(effects=[{"kind": "stat", "target": "cash", "delta": 5, "memory": ""}]))
    with pytest.raises(AdvisorReplyError, match="integer"):
        parse_advisor_reply(_reply(effects=[{"kind": "stat", "target": "stress", "delta": True, "memory": ""}]))


def test_parse_caps_affected_npcs() -> None:
    effects = [{"kind": "relationship", "target": npc, "delta": 1, "memory": ""} for npc in ("sarah", "chad", "hunter")]
    with pytest.raises(AdvisorReplyError, match="At most 2 NPCs"):
        parse_advisor_reply(_reply(effects=effects))


def test_parse_clamps_deltas() -> None:
    reply = parse_advisor_reply(
        _reply(
            effects=[
                {"kind": "stat", "target": "stress", "delta": -90, "memory": ""},
                {"kind": "stat", "target": "aum", "delta": 10**12, "memory": ""},
                {"kind": "relationship", "target": "sarah", "delta": 45, "memory": " vouched for you "},
            ]
        )
    )
    assert [e.delta for e in reply.effects] == [-20, MAX_AUM_DELTA, 20]
    assert reply.effects[2].memory == "vouched for you"


def test_parse_accepts_null_effects() -> None:
    reply = parse_advisor_reply(json.dumps({"text": "Go home.", "effects": None}))
    assert reply.text == "Go home."
    assert reply.effects == []


def test_effects_fold_into_one_change() -> None:
    changes = effects_to_changes(
        [
            AdvisorEffect(kind="stat", target="stress", delta=-5),
            AdvisorEffect(kind="stat", target="stress", delta=-3),
            AdvisorEffect(kind="stat", target="reputation", delta=2),
            AdvisorEffect(kind="relationship", target="sarah", delta=4, memory="coffee"),
            AdvisorEffect(kind="relationship", target="sarah", delta=1, memory="lunch"),
            AdvisorEffect(kind="relationship", target="chad", delta=-2),
        ]
    )
    assert changes.stress == -8
    assert changes.reputation == 2
    assert changes.npc_relationship_update.npc_id == "sarah"
    assert changes.npc_relationship_update.change == 5
    assert changes.npc_relationship_update.memory == "coffee; lunch"
    assert changes.npc_relationship_update2.npc_id == "chad"


def test_effects_that_cancel_out_are_nothing() -> None:
    assert effects_to_changes([]) is None
    assert (
        effects_to_changes(
            [AdvisorEffect(kind="stat", target="ethics", delta=3), AdvisorEffect(kind="stat", target="ethics", delta=-3)]
        )
        is None
    )


@pytest.mark.asyncio
async def test_ask_advisor_passes_the_schema() -> None:
    agent = _ScriptedAdvisor(replies=[_reply("Lever up.")])
    reply = await ask_advisor(agent=agent, ctx=_ctx(), query="What now?")

    assert reply.text == "Lever up."
    assert agent.seen_schema[0] is not None
    assert agent.seen_schema[0].name == "advisor_reply"


@pytest.mark.asyncio
async def test_ask_advisor_retries_bad_replies() -> None:
    agent = _ScriptedAdvisor(
        replies=[
            "not json",
            _reply(effects=[{"kind": "stat", "target": "cash", "delta": 1, "memory": ""}]),
            _reply("Third time lucky."),
        ]
    )
    reply = await ask_advisor(agent=agent, ctx=_ctx(), query="Help")
    assert reply.text == "Third time lucky."
    assert len(agent.seen_schema) == 3


@pytest.mark.asyncio
async def test_ask_advisor_falls_back_without_structured_output() -> None:
    agent = _PlainAgent(reply="Just grind harder.")
    reply = await ask_advisor(agent=agent, ctx=_ctx(), query="Help", max_attempts=2)

    # plain text never parses; the raw output is not shown to the player
    assert reply.text == FALLBACK_TEXT
    assert reply.effects == []
    assert agent.calls == 2


@pytest.mark.asyncio
async def test_ask_advisor_empty_replies_use_fallback_text() -> None:
    agent = _ScriptedAdvisor(replies=[])
    reply = await ask_advisor(agent=agent, ctx=_ctx(), query="Help", max_attempts=1)
    assert reply.text == FALLBACK_TEXT


def test_context_lists_scenario_choices() -> None:
    state = new_game(difficulty=Difficulty.normal, seed=3)
    ctx = build_advisor_context(state, recent_dialogue=["player: what do I do?", "   "])

    prompt = ctx.system_prompt
    assert "CURRENT PLAYER STATUS:" in prompt
    assert "PackFancy Inc." in prompt
    assert "CURRENT SCENARIO" in prompt
    assert "AVAILABLE CHOICES:" in prompt
    assert "0. Recommend" in prompt
    assert prompt.endswith("RECENT DIALOGUE (oldest first):\nplayer: what do I do?")


@pytest.mark.asyncio
async def test_consult_applies_effects_and_publishes() -> None:
    r = fakeredis.FakeRedis(decode_responses=True)
    state = create_game(r=r, difficulty=Difficulty.normal, seed=5)
    before = state.player.reputation
    sarah_before = next(n for n in state.npcs if n.id == "sarah").relationship

    agent = _ScriptedAdvisor(
        replies=[
            _reply(
                "Nice work, rookie.",
                effects=[
                    {"kind": "stat", "target": "reputation", "delta": 3, "memory": ""},
                    {"kind": "relationship", "target": "sarah", "delta": 2, "memory": "heard good things"},
                ],
            )
        ]
    )
    outcome = await consult_advisor(r=r, game_id=state.game_id, query="How am I doing?", agent=agent)

    assert outcome.text == "Nice work, rookie."
    assert outcome.accepted is True
    assert outcome.effects_applied is True

    saved = get_game(r=r, game_id=state.game_id)
    assert saved.player.reputation == before + 3
    assert next(n for n in saved.npcs if n.id == "sarah").relationship == sarah_before + 2

    entries = read_feed(r=r, feed=Feed(game_id=str(state.game_id)))
    assert entries[0][1]["type"] == "ADVISOR_REPLY"
    assert entries[0][1]["effects"] == "2"
    assert entries[0][1]["applied"] == "True"
    assert entries[1][1]["action"] == "apply_changes"


@pytest.mark.asyncio
async def test_consult_without_effects_leaves_state_alone() -> None:
    r = fakeredis.FakeRedis(decode_responses=True)
    state = create_game(r=r, difficulty=Difficulty.normal, seed=5)

    outcome = await consult_advisor(
        r=r, game_id=state.game_id, query="Hi", agent=_ScriptedAdvisor(replies=[_reply("Get back to work.")])
    )
    assert outcome.effects_applied is False
    assert outcome.state.rng_counter == state.rng_counter
    entries = read_feed(r=r, feed=Feed(game_id=str(state.game_id)))
    assert [fields["type"] for _, fields in entries] == ["ADVISOR_REPLY"]


def test_advisor_route(client_and_redis: tuple[TestClient, fakeredis.FakeRedis]) -> None:
    from dealflow.api.deps import get_advisor_agent
    from dealflow.main import app

    client, _ = client_and_redis
    agent = _ScriptedAdvisor(replies=[_reply("Sell the dog.", [{"kind": "stat", "target": "stress", "delta": 4, "memory": ""}])])
    app.dependency_overrides[get_advisor_agent] = lambda: agent

    gid = client.post("/game", json={"seed": 9}).json()["game_id"]
    resp = client.post(f"/games/{gid}/advisor", json={"query": "Should I hold PackFancy?"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["text"] == "Sell the dog."
    assert body["effects_applied"] is True

    assert client.post(f"/games/{gid}/advisor", json={"query": ""}).status_code == 422


def test_advisor_route_unavailable_backend(client_and_redis: tuple[TestClient, fakeredis.FakeRedis]) -> None:
    from dealflow.api.deps import get_advisor_agent
    from dealflow.main import app

    @dataclass
    class _Unreachable:
        name: str = "advisor"

        async def propose_action(self, *, prompt, ctx, structured_output=None) -> AgentAction:
            raise RuntimeError("LLM backend unreachable")

    client, _ = client_and_redis
    app.dependency_overrides[get_advisor_agent] = _Unreachable
    gid = client.post("/game", json={"seed": 9}).json()["game_id"]

    resp = client.post(f"/games/{gid}/advisor", json={"query": "hello?"})
    assert resp.status_code == 503
