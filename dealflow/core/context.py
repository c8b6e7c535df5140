from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from dealflow.models import GameSnapshot


@dataclass(frozen=True, slots=True)
class BaseAgentContext:
    """Global instructions shared by every advisor call."""

    system_prompt: str
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class PlayerContext:
    """Plain-text view of the player's current standing."""

    level: str
    status_lines: list[str]
    portfolio_lines: list[str] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class ScenarioContext:
    """The decision the player is facing right now."""

    title: str
    description: str
    choices: list[str] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class RenderedContext:
    """Final, merged context passed into the LLM agent."""

    system_prompt: str

    def as_messages(self) -> list[dict[str, str]]:
        return [{"role": "system", "content": self.system_prompt}]


def player_context_from_snapshot(snapshot: GameSnapshot) -> PlayerContext | None:
    player = snapshot.player
    if player is None:
        return None

    t = player.game_time
    lines = [
        f"- week: {t.week} (year {t.year}, Q{t.quarter})",
        f"- phase: {snapshot.phase.value}",
        f"- cash: ${player.cash:,}",
        f"- reputation: {player.reputation}",
        f"- stress: {player.stress}%",
        f"- energy: {player.energy}",
        f"- analyst_rating: {player.analyst_rating}",
        f"- ethics: {player.ethics}",
        f"- audit_risk: {player.audit_risk}",
        f"- actions_remaining: {t.actions_remaining}/{t.max_actions}",
    ]
    if player.personal_finances.outstanding_loan:
        lines.append(f"- outstanding_loan: ${player.personal_finances.outstanding_loan:,}")

    portfolio = [
        f"- {c.name} ({c.deal_phase.value}): valuation ${c.current_valuation / 1_000_000:.1f}M, "
        f"debt ${c.debt / 1_000_000:.1f}M, deal {c.deal_type.value}"
        for c in player.portfolio
    ]
    return PlayerContext(level=player.level.value, status_lines=lines, portfolio_lines=portfolio)


def compose_context(
    *,
    base: BaseAgentContext,
    player: PlayerContext | None,
    scenario: ScenarioContext | None = None,
    dialogue: Sequence[str] = (),
) -> RenderedContext:
    parts: list[str] = []
    parts.append(base.system_prompt.strip())

    if player is not None:
        parts.append("\n".join(["CURRENT PLAYER STATUS:", f"- level: {player.level}", *player.status_lines]).strip())
        if player.portfolio_lines:
            parts.append("\n".join(["PORTFOLIO:", *player.portfolio_lines]))

    if scenario is not None:
        section = [
            "CURRENT SCENARIO (the player is facing this right now):",
            f"Title: {scenario.title}",
            f"Description: {scenario.description.strip()}",
        ]
        if scenario.choices:
            section.append("AVAILABLE CHOICES:")
            section.extend(f"{i}. {text}" for i, text in enumerate(scenario.choices))
        parts.append("\n".join(section))

    lines = [line.strip() for line in dialogue if line.strip()]
    if lines:
        parts.append("\n".join(["RECENT DIALOGUE (oldest first):", *lines]))

    system_prompt = "\n\n".join([p for p in parts if p.strip()]).strip()
    return RenderedContext(system_prompt=system_prompt)
