from __future__ import annotations

from statemachine import State, StateMachine

from icecream.api.models import GamePhase, GameState


class TurnFSM(StateMachine):
    """Guards the fixed per-turn phase cycle of a GameState.

    plan -> pulse_update -> event -> (decision ->) consequence -> plan

    The engine does the work of each phase; the FSM only decides which edges
    are legal. `turn` increments on the consequence -> plan edge and nowhere else.
    """

    planning = State(GamePhase.plan.value, value=GamePhase.plan.value, initial=True)
    updating_pulses = State(GamePhase.pulse_update.value, value=GamePhase.pulse_update.value)
    injecting_events = State(GamePhase.event.value, value=GamePhase.event.value)
    awaiting_decision = State(GamePhase.decision.value, value=GamePhase.decision.value)
    resolving_consequences = State(GamePhase.consequence.value, value=GamePhase.consequence.value)

    update_pulses = planning.to(updating_pulses)
    inject_events = updating_pulses.to(injecting_events)
    present_decision = injecting_events.to(awaiting_decision)
    skip_decision = injecting_events.to(resolving_consequences)
    resolve_decision = awaiting_decision.to(resolving_consequences)
    next_turn = resolving_consequences.to(planning)

    def __init__(self, game: GameState):
        self.game = game
        super().__init__(start_value=game.phase.value)

    def after_next_turn(self) -> None:
        self.game.turn += 1

    def sync_phase_to_model(self) -> None:
        self.game.phase = GamePhase(str(self.current_state.value))
