from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

from dealflow.core.errors import CommandRejected
from dealflow.models import TERMINAL_PHASES, GamePhase, GameSnapshot


@dataclass(frozen=True, slots=True)
class ValidationContext:
    """Inputs available to validators; small enough to log as-is."""

    game_id: str
    action: str


class TurnValidator(ABC):
    """A small, composable validation unit for an incoming action."""

    @abstractmethod
    def validate(self, *, ctx: ValidationContext, state: GameSnapshot) -> None:
        raise NotImplementedError


@dataclass(frozen=True, slots=True)
class PlayerValidator(TurnValidator):
    def validate(self, *, ctx: ValidationContext, state: GameSnapshot) -> None:
        if state.player is None:
            raise CommandRejected("No active player")


@dataclass(frozen=True, slots=True)
class GameOverValidator(TurnValidator):
    """Deny every mutation once the game reached a terminal phase."""

    def validate(self, *, ctx: ValidationContext, state: GameSnapshot) -> None:
        if state.phase in TERMINAL_PHASES:
            raise CommandRejected(f"The game is over ({state.phase.value})")


@dataclass(frozen=True, slots=True)
class PhaseValidator(TurnValidator):
    allowed_phases: frozenset[GamePhase]

    def validate(self, *, ctx: ValidationContext, state: GameSnapshot) -> None:
        if state.phase not in self.allowed_phases:
            allowed = ",".join(sorted(p.value for p in self.allowed_phases))
            raise CommandRejected(f"'{ctx.action}' is not available during {state.phase.value} (allowed: {allowed})")


@dataclass(frozen=True, slots=True)
class ActionPointValidator(TurnValidator):
    cost: int = 1

    def validate(self, *, ctx: ValidationContext, state: GameSnapshot) -> None:
        if state.player.game_time.actions_remaining < self.cost:
            raise CommandRejected("Not enough action points left this week")


@dataclass(frozen=True, slots=True)
class ActiveScenarioValidator(TurnValidator):
    def validate(self, *, ctx: ValidationContext, state: GameSnapshot) -> None:
        if state.active_scenario_id is None:
            raise CommandRejected("There is no scenario waiting for a decision")


@dataclass(frozen=True, slots=True)
class ActiveEventValidator(TurnValidator):
    def validate(self, *, ctx: ValidationContext, state: GameSnapshot) -> None:
        if state.active_event is None:
            raise CommandRejected("There is no company event waiting for a decision")


@dataclass(frozen=True, slots=True)
class ActiveDramaValidator(TurnValidator):
    def validate(self, *, ctx: ValidationContext, state: GameSnapshot) -> None:
        if state.active_drama is None:
            raise CommandRejected("There is no drama waiting for a decision")


@dataclass(frozen=True, slots=True)
class MinReputationValidator(TurnValidator):
    minimum: int

    def validate(self, *, ctx: ValidationContext, state: GameSnapshot) -> None:
        if state.player.reputation < self.minimum:
            raise CommandRejected(f"Requires reputation {self.minimum} (you have {state.player.reputation})")


@dataclass(frozen=True, slots=True)
class ValidatorPipeline:
    validators: tuple[TurnValidator, ...]

    def validate(self, *, ctx: ValidationContext, state: GameSnapshot) -> None:
        for v in self.validators:
            v.validate(ctx=ctx, state=state)


FOUNDER_MIN_REPUTATION = 50

_BASE = (PlayerValidator(), GameOverValidator())
_SPEND = (*_BASE, ActionPointValidator())


def _pipe(*validators: TurnValidator) -> ValidatorPipeline:
    return ValidatorPipeline(validators=validators)


DEFAULT_ACTION_PIPELINES: dict[str, ValidatorPipeline] = {
    "advance_week": _pipe(*_BASE),
    "toggle_overtime": _pipe(*_BASE),
    "analyze": _pipe(*_SPEND),
    "submit_offer": _pipe(*_SPEND),
    "bid_on_deal": _pipe(*_SPEND),
    "management_action": _pipe(*_SPEND),
    "begin_exit": _pipe(*_SPEND),
    "cancel_exit": _pipe(*_BASE),
    "complete_exit": _pipe(*_BASE),
    "walk_away": _pipe(*_BASE),
    "meet_npc": _pipe(*_BASE),
    "choose_scenario": _pipe(*_BASE, ActiveScenarioValidator()),
    "resolve_event": _pipe(*_BASE, ActiveEventValidator()),
    "resolve_drama": _pipe(*_BASE, ActiveDramaValidator()),
    "set_lifestyle": _pipe(*_BASE),
    "start_skill": _pipe(*_BASE),
    "draw_loan": _pipe(*_BASE),
    "repay_loan": _pipe(*_BASE),
    "skip_intro": _pipe(*_BASE, PhaseValidator(allowed_phases=frozenset({GamePhase.intro}))),
    "open_portfolio": _pipe(*_BASE, PhaseValidator(allowed_phases=frozenset({GamePhase.life_management}))),
    "close_portfolio": _pipe(*_BASE, PhaseValidator(allowed_phases=frozenset({GamePhase.portfolio}))),
    "go_founder": _pipe(
        *_BASE,
        PhaseValidator(allowed_phases=frozenset({GamePhase.life_management})),
        MinReputationValidator(minimum=FOUNDER_MIN_REPUTATION),
    ),
    "apply_changes": _pipe(*_BASE),
}


def pipeline_for_action(action: str) -> ValidatorPipeline:
    pipe = DEFAULT_ACTION_PIPELINES.get(action)
    if pipe is None:
        raise ValueError(f"Unknown action: {action}")
    return pipe
