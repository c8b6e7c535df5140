from __future__ import annotations

from statemachine import State, StateMachine
from statemachine.exceptions import TransitionNotAllowed

from dealflow.models import DealPhase, GamePhase, GameSnapshot, PortfolioCompany


class _GuardedMachine(StateMachine):
    def try_send(self, event: str) -> bool:
        try:
            self.send(event)
        except TransitionNotAllowed:
            return False
        return True


class GamePhaseMachine(_GuardedMachine):
    """FSM over `GameSnapshot.phase`.

    Machines only guard transitions; the reducer and tick code own the data.
    """

    intro = State(GamePhase.intro.value, value=GamePhase.intro.value, initial=True)
    scenario = State(GamePhase.scenario.value, value=GamePhase.scenario.value)
    life_management = State(GamePhase.life_management.value, value=GamePhase.life_management.value)
    portfolio = State(GamePhase.portfolio.value, value=GamePhase.portfolio.value)
    founder_mode = State(GamePhase.founder_mode.value, value=GamePhase.founder_mode.value)
    game_over = State(GamePhase.game_over.value, value=GamePhase.game_over.value, final=True)
    victory = State(GamePhase.victory.value, value=GamePhase.victory.value, final=True)
    prison = State(GamePhase.prison.value, value=GamePhase.prison.value, final=True)
    alone = State(GamePhase.alone.value, value=GamePhase.alone.value, final=True)

    fire_scenario = (
        intro.to(scenario)
        | life_management.to(scenario)
        | portfolio.to(scenario)
        | founder_mode.to(scenario)
    )
    resolve_scenario = scenario.to(life_management)
    resume_founder = scenario.to(founder_mode)
    skip_intro = intro.to(life_management)
    open_portfolio = life_management.to(portfolio)
    close_portfolio = portfolio.to(life_management)
    go_founder = life_management.to(founder_mode)

    lose = (
        intro.to(game_over)
        | scenario.to(game_over)
        | life_management.to(game_over)
        | portfolio.to(game_over)
        | founder_mode.to(game_over)
    )
    win = life_management.to(victory) | portfolio.to(victory) | founder_mode.to(victory) | scenario.to(victory)
    convict = (
        scenario.to(prison) | life_management.to(prison) | portfolio.to(prison) | founder_mode.to(prison)
    )
    abandon = scenario.to(alone) | life_management.to(alone) | portfolio.to(alone) | founder_mode.to(alone)

    def __init__(self, game: GameSnapshot):
        self.game = game
        super().__init__(start_value=game.phase.value)

    def sync_phase_to_model(self) -> None:
        self.game.phase = GamePhase(str(self.current_state.value))


class DealPhaseMachine(_GuardedMachine):
    """Lifecycle of one portfolio company. Only explicit player actions move it."""

    pipeline = State(DealPhase.pipeline.value, value=DealPhase.pipeline.value, initial=True)
    owned = State(DealPhase.owned.value, value=DealPhase.owned.value)
    exiting = State(DealPhase.exiting.value, value=DealPhase.exiting.value)
    exited = State("EXITED", value="EXITED", final=True)
    walked_away = State("WALKED_AWAY", value="WALKED_AWAY", final=True)

    acquire = pipeline.to(owned)
    begin_exit = owned.to(exiting)
    cancel_exit = exiting.to(owned)
    complete_exit = exiting.to(exited)
    walk_away = pipeline.to(walked_away) | owned.to(walked_away)

    def __init__(self, company: PortfolioCompany):
        self.company = company
        super().__init__(start_value=company.deal_phase.value)

    @property
    def removed(self) -> bool:
        return bool(self.current_state.final)

    def sync_phase_to_model(self) -> None:
        if not self.removed:
            self.company.deal_phase = DealPhase(str(self.current_state.value))
