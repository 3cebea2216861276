from __future__ import annotations

import pytest
from statemachine.exceptions import TransitionNotAllowed

from icecream.api.models import GamePhase
from icecream.fsm import TurnFSM


def test_fsm_starts_from_the_snapshot_phase(make_state) -> None:
    fsm = TurnFSM(make_state(phase=GamePhase.event))
    assert fsm.current_state.value == "event"


def test_illegal_transition_raises(make_state) -> None:
    fsm = TurnFSM(make_state())
    with pytest.raises(TransitionNotAllowed):
        fsm.resolve_decision()


def test_next_turn_increments_turn(make_state) -> None:
    state = make_state(turn=3, phase=GamePhase.consequence)
    fsm = TurnFSM(state)

    fsm.next_turn()
    fsm.sync_phase_to_model()

    assert state.turn == 4
    assert state.phase == GamePhase.plan


def test_decision_can_be_skipped(make_state) -> None:
    state = make_state(phase=GamePhase.event)
    fsm = TurnFSM(state)
    fsm.skip_decision()
    fsm.sync_phase_to_model()
    assert state.phase == GamePhase.consequence
    assert state.turn == 1
