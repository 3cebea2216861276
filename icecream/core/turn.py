"""The turn engine: one phase per `advance`.

`advance` never mutates its input. It works on a deep copy and returns it, so a
failure part-way through leaves the caller's snapshot exactly as it was.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

from icecream.api.models import ActiveEvent, Decision, Ending, GamePhase, GameState, TurnContext, utcnow
from icecream.config import DEFAULT_SKIP_STEP_CAP
from icecream.core.decisions import DecisionEngine
from icecream.core.endings import DEFAULT_THRESHOLDS, EndingThresholds, evaluate_ending
from icecream.core.events import DEFAULT_EVENT_TUNING, EventTuning, inject_events, per_turn_drift, tick_events
from icecream.core.pulse import DEFAULT_PULSE_TUNING, PulseTuning, propagate, sum_deltas
from icecream.errors import InvalidChoice, NoActiveDecision
from icecream.fsm import TurnFSM

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class TurnResult:
    """What one advance (or one skip) did.

    - `phase_completed`: the phase that was processed; None when nothing ran.
    - `effects_applied`: net field changes, keyed by pulse/family field name.
    - `changed`: False only when the state came back untouched (ended session,
      or a skip that had nothing to do).
    """

    state: GameState
    phase_completed: GamePhase | None = None
    new_events: tuple[ActiveEvent, ...] = ()
    decision: Decision | None = None
    effects_applied: dict[str, float] = field(default_factory=dict)
    ending: Ending | None = None
    changed: bool = True
    steps: int = 1


def _snapshot_layers(state: GameState) -> dict[str, float]:
    values: dict[str, float] = {}
    values.update(state.global_pulse.model_dump())
    values.update(state.city.pulse.model_dump())
    hood = state.city.current_neighborhood()
    if hood is not None:
        values.update(hood.pulse.model_dump())
    values.update(state.family.model_dump())
    return values


def _diff(before: dict[str, float], after: dict[str, float]) -> dict[str, float]:
    out: dict[str, float] = {}
    for name, value in after.items():
        delta = round(value - before.get(name, value), 4)
        if delta:
            out[name] = delta
    return out


class TurnEngine:
    def __init__(
        self,
        *,
        pulse_tuning: PulseTuning = DEFAULT_PULSE_TUNING,
        event_tuning: EventTuning = DEFAULT_EVENT_TUNING,
        thresholds: EndingThresholds = DEFAULT_THRESHOLDS,
        decisions: DecisionEngine | None = None,
        enforce_unlocks: bool = False,
        skip_step_cap: int = DEFAULT_SKIP_STEP_CAP,
    ) -> None:
        self.pulse_tuning = pulse_tuning
        self.event_tuning = event_tuning
        self.thresholds = thresholds
        self.decisions = decisions or DecisionEngine()
        self.enforce_unlocks = enforce_unlocks
        self.skip_step_cap = skip_step_cap

    def advance(
        self,
        state: GameState,
        context: TurnContext,
        choice_ids: Sequence[str] | None = None,
    ) -> TurnResult:
        if state.ending is not None:
            return TurnResult(state=state, ending=state.ending, changed=False, steps=0)

        if choice_ids and state.phase != GamePhase.decision:
            raise NoActiveDecision(f"No decision is pending in phase '{state.phase.value}'")

        work = state.model_copy(deep=True)
        fsm = TurnFSM(work)
        phase = work.phase
        before = _snapshot_layers(work)
        new_events: tuple[ActiveEvent, ...] = ()
        decision: Decision | None = None

        if phase == GamePhase.plan:
            fsm.update_pulses()

        elif phase == GamePhase.pulse_update:
            propagate(work, per_turn_drift(work.active_events), self.pulse_tuning)
            fsm.inject_events()

        elif phase == GamePhase.event:
            injection = inject_events(work, context, self.event_tuning)
            new_events = tuple(injection.new_events)
            if injection.decision is not None:
                work.current_decision = decision = injection.decision
                fsm.present_decision()
            else:
                fsm.skip_decision()

        elif phase == GamePhase.decision:
            self._resolve_decision(work, fsm, choice_ids)

        elif phase == GamePhase.consequence:
            expired = tick_events(work.active_events)
            if expired:
                logger.debug("turn %s: %d event(s) expired", work.turn, len(expired))
            work.ending = evaluate_ending(work, self.thresholds)
            if work.ending is None:
                fsm.next_turn()
            else:
                logger.info("session %s ended on turn %s: %s", work.session_id, work.turn, work.ending.type)

        fsm.sync_phase_to_model()
        work.updated_at = utcnow()
        logger.debug("session %s: %s -> %s (turn %s)", work.session_id, phase.value, work.phase.value, work.turn)

        return TurnResult(
            state=work,
            phase_completed=phase,
            new_events=new_events,
            decision=decision,
            effects_applied=_diff(before, _snapshot_layers(work)),
            ending=work.ending,
        )

    def _resolve_decision(self, work: GameState, fsm: TurnFSM, choice_ids: Sequence[str] | None) -> None:
        if choice_ids:
            self.decisions.submit_choices(work, choice_ids, enforce_unlocks=self.enforce_unlocks)
            fsm.resolve_decision()
            return

        pending = work.current_decision
        if pending is None:
            raise NoActiveDecision("No decision is pending")
        if pending.urgency is None:
            raise InvalidChoice(f"Decision '{pending.id}' needs at least one choice id")

        remaining = pending.urgency - 1
        if remaining > 0:
            pending.urgency = remaining
            return

        self.decisions.expire(work)
        fsm.resolve_decision()

    def skip_to_next_decision(
        self,
        state: GameState,
        context: TurnContext,
        max_steps: int | None = None,
    ) -> TurnResult:
        """Advance until a decision is pending, the game ends, or the turn rolls over."""

        cap = self.skip_step_cap if max_steps is None else max_steps
        if state.ending is not None or state.phase == GamePhase.decision:
            return TurnResult(state=state, ending=state.ending, decision=state.current_decision, changed=False, steps=0)

        start_turn = state.turn
        current = state
        new_events: list[ActiveEvent] = []
        effects: dict[str, float] = {}
        last: TurnResult | None = None
        steps = 0

        while steps < cap:
            last = self.advance(current, context)
            steps += 1
            current = last.state
            new_events.extend(last.new_events)
            effects = sum_deltas(effects, last.effects_applied)
            if current.ending is not None or current.phase == GamePhase.decision or current.turn != start_turn:
                break
        else:
            logger.warning("session %s: skip stopped after %d steps", state.session_id, cap)

        return TurnResult(
            state=current,
            phase_completed=last.phase_completed if last else None,
            new_events=tuple(new_events),
            decision=current.current_decision,
            effects_applied={k: round(v, 4) for k, v in effects.items() if round(v, 4)},
            ending=current.ending,
            changed=steps > 0,
            steps=steps,
        )
