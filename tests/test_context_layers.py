from __future__ import annotations

from dealflow.core.context import (
    BaseAgentContext,
    PlayerContext,
    ScenarioContext,
    compose_context,
    player_context_from_snapshot,
)


def test_compose_context_includes_layers() -> None:
    base = BaseAgentContext(system_prompt="BASE")
    player = PlayerContext(level="Associate", status_lines=["- cash: $1,000"], portfolio_lines=["- PackFancy"])
    scenario = ScenarioContext(title="The Pitch", description="Pick one.", choices=["Go big", "Go home"])

    text = compose_context(base=base, player=player, scenario=scenario).system_prompt

    assert text.startswith("BASE")
    assert "CURRENT PLAYER STATUS:\n- level: Associate\n- cash: $1,000" in text
    assert "PORTFOLIO:\n- PackFancy" in text
    assert "Title: The Pitch" in text
    assert "0. Go big\n1. Go home" in text


def test_compose_context_skips_empty_layers() -> None:
    rendered = compose_context(base=BaseAgentContext(system_prompt="  BASE  "), player=None, dialogue=["", "  "])
    assert rendered.system_prompt == "BASE"
    assert rendered.as_messages() == [{"role": "system", "content": "BASE"}]


def test_player_context_from_snapshot(snapshot) -> None:
    snapshot.player.personal_finances.outstanding_loan = 25_000
    ctx = player_context_from_snapshot(snapshot)

    assert ctx.level == snapshot.player.level.value
    assert "- phase: LIFE_MANAGEMENT" in ctx.status_lines
    assert "- outstanding_loan: $25,000" in ctx.status_lines
    assert ctx.portfolio_lines[0].startswith("- PackFancy Inc.")


def test_player_context_without_player(snapshot) -> None:
    snapshot.player = None
    assert player_context_from_snapshot(snapshot) is None
