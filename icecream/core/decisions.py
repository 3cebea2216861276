from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from icecream.api.models import Choice, ChoiceRecord, ChoiceStatus, Decision, GameState
from icecream.core.pulse import split_by_layer, sum_deltas
from icecream.core.unlocks import UnlockCheck, evaluate_unlock
from icecream.errors import GameEnded, InvalidChoice, NoActiveDecision

logger = logging.getLogger(__name__)

__all__ = [
    "DecisionEngine",
    "DecisionOutcome",
    "UnlockCheck",
    "aggregate_effects",
    "apply_effects",
    "evaluate_unlock",
]


@dataclass(frozen=True, slots=True)
class DecisionOutcome:
    record: ChoiceRecord
    effects: dict[str, float]
    learned: frozenset[str] = frozenset()


def aggregate_effects(choices: Sequence[Choice]) -> dict[str, float]:
    """Field-wise sum of every selected choice's effects."""

    return sum_deltas(*(c.effects for c in choices))


def apply_effects(state: GameState, effects: dict[str, float]) -> None:
    """Route each effect key to the layer that owns it and apply it, clamped."""

    by_layer = split_by_layer(effects)
    if "global" in by_layer:
        state.global_pulse = state.global_pulse.shifted(by_layer["global"])
    if "city" in by_layer:
        state.city.pulse = state.city.pulse.shifted(by_layer["city"])
    if "neighborhood" in by_layer:
        hood = state.city.current_neighborhood()
        if hood is None:
            raise InvalidChoice("Choice affects the neighborhood but no neighborhood is selected")
        hood.pulse = hood.pulse.shifted(by_layer["neighborhood"])
    if "family" in by_layer:
        state.family = state.family.shifted(by_layer["family"])


class DecisionEngine:
    """Validates and resolves the pending decision.

    Methods mutate the given state in place; every check runs before the first
    mutation, so a rejected submission leaves the state as it was.
    """

    def submit_choices(
        self,
        state: GameState,
        choice_ids: Sequence[str],
        *,
        enforce_unlocks: bool = False,
    ) -> DecisionOutcome:
        if state.ending is not None:
            raise GameEnded(state.ending)

        decision = state.current_decision
        if decision is None:
            raise NoActiveDecision("No decision is pending")

        chosen = self._validate(state, decision, list(choice_ids), enforce_unlocks=enforce_unlocks)

        effects = aggregate_effects(chosen)
        if "neighborhood" in split_by_layer(effects) and state.city.current_neighborhood() is None:
            raise InvalidChoice("Choice affects the neighborhood but no neighborhood is selected")

        apply_effects(state, effects)

        learned = frozenset(tag for c in chosen for tag in c.grants_knowledge)
        state.rights_knowledge |= learned

        record = ChoiceRecord(
            turn=state.turn,
            decision_id=decision.id,
            choice_ids=tuple(c.id for c in chosen),
            effects=effects,
        )
        state.choice_history.append(record)
        state.current_decision = None

        logger.debug("turn %s: decision %s resolved with %s", state.turn, decision.id, record.choice_ids)
        return DecisionOutcome(record=record, effects=effects, learned=learned)

    def expire(self, state: GameState) -> ChoiceRecord:
        """Close the pending decision without an answer."""

        decision = state.current_decision
        if decision is None:
            raise NoActiveDecision("No decision is pending")

        record = ChoiceRecord(turn=state.turn, decision_id=decision.id, expired=True)
        state.choice_history.append(record)
        state.current_decision = None
        logger.debug("turn %s: decision %s expired", state.turn, decision.id)
        return record

    def choice_statuses(self, state: GameState) -> list[ChoiceStatus]:
        decision = state.current_decision
        if decision is None:
            return []
        out: list[ChoiceStatus] = []
        for choice in decision.choices:
            check = evaluate_unlock(choice, state, explain=True)
            out.append(ChoiceStatus(choice=choice, unlocked=check.unlocked, failing=list(check.failing)))
        return out

    def _validate(
        self,
        state: GameState,
        decision: Decision,
        choice_ids: list[str],
        *,
        enforce_unlocks: bool,
    ) -> list[Choice]:
        if not choice_ids:
            raise InvalidChoice("At least one choice id is required")

        if len(choice_ids) != len(set(choice_ids)):
            raise InvalidChoice(f"Duplicate choice ids: {','.join(choice_ids)}")

        if not decision.multi_select and len(choice_ids) > 1:
            raise InvalidChoice(f"Decision '{decision.id}' accepts a single choice")

        chosen: list[Choice] = []
        for cid in choice_ids:
            choice = decision.choice(cid)
            if choice is None:
                raise InvalidChoice(f"Unknown choice '{cid}' for decision '{decision.id}'")
            if enforce_unlocks:
                check = evaluate_unlock(choice, state, explain=True)
                if not check.unlocked:
                    raise InvalidChoice(f"Choice '{cid}' is locked ({'; '.join(check.failing)})")
            chosen.append(choice)
        return chosen
