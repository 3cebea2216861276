from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

from icecream.api.models import Choice, GameState, UnlockConditions


@dataclass(frozen=True, slots=True)
class UnlockCheck:
    """Outcome of evaluating a choice's unlock predicates.

    - `unlocked`: every predicate holds.
    - `failing`: descriptions of the predicates that did not hold. Only filled in
      when the caller asked for an explanation; otherwise evaluation stops at the
      first failure and this stays empty.
    """

    unlocked: bool
    failing: tuple[str, ...] = ()


class UnlockPredicate(ABC):
    """One condition a choice needs before it can be picked."""

    @abstractmethod
    def holds(self, *, state: GameState) -> bool:
        raise NotImplementedError

    @abstractmethod
    def describe(self) -> str:
        raise NotImplementedError


@dataclass(frozen=True, slots=True)
class MinTurn(UnlockPredicate):
    turn: int

    def holds(self, *, state: GameState) -> bool:
        return state.turn >= self.turn

    def describe(self) -> str:
        return f"turn >= {self.turn}"


@dataclass(frozen=True, slots=True)
class MaxStress(UnlockPredicate):
    limit: float

    def holds(self, *, state: GameState) -> bool:
        return state.family.stress <= self.limit

    def describe(self) -> str:
        return f"stress <= {self.limit:g}"


@dataclass(frozen=True, slots=True)
class MinCohesion(UnlockPredicate):
    limit: float

    def holds(self, *, state: GameState) -> bool:
        return state.family.cohesion >= self.limit

    def describe(self) -> str:
        return f"cohesion >= {self.limit:g}"


@dataclass(frozen=True, slots=True)
class MinTrustNetwork(UnlockPredicate):
    limit: float

    def holds(self, *, state: GameState) -> bool:
        return state.family.trust_network_strength >= self.limit

    def describe(self) -> str:
        return f"trust_network_strength >= {self.limit:g}"


@dataclass(frozen=True, slots=True)
class MaxVisibility(UnlockPredicate):
    limit: float

    def holds(self, *, state: GameState) -> bool:
        return state.family.visibility <= self.limit

    def describe(self) -> str:
        return f"visibility <= {self.limit:g}"


@dataclass(frozen=True, slots=True)
class RequiredChoices(UnlockPredicate):
    """Any one of `choice_ids` was picked in an earlier decision."""

    choice_ids: frozenset[str]

    def holds(self, *, state: GameState) -> bool:
        return any(cid in self.choice_ids for record in state.choice_history for cid in record.choice_ids)

    def describe(self) -> str:
        return f"previously chose one of: {','.join(sorted(self.choice_ids))}"


@dataclass(frozen=True, slots=True)
class RightsKnowledge(UnlockPredicate):
    """Any one of `tags` has been learned."""

    tags: frozenset[str]

    def holds(self, *, state: GameState) -> bool:
        return not self.tags.isdisjoint(state.rights_knowledge)

    def describe(self) -> str:
        return f"knows one of: {','.join(sorted(self.tags))}"


def predicates_for(conditions: UnlockConditions | None) -> tuple[UnlockPredicate, ...]:
    """Flatten declared conditions into an ordered predicate list (cheap checks first)."""

    if conditions is None:
        return ()

    preds: list[UnlockPredicate] = []
    if conditions.min_turn is not None:
        preds.append(MinTurn(conditions.min_turn))
    if conditions.max_stress is not None:
        preds.append(MaxStress(conditions.max_stress))
    if conditions.min_cohesion is not None:
        preds.append(MinCohesion(conditions.min_cohesion))
    if conditions.min_trust_network is not None:
        preds.append(MinTrustNetwork(conditions.min_trust_network))
    if conditions.max_visibility is not None:
        preds.append(MaxVisibility(conditions.max_visibility))
    if conditions.required_choices:
        preds.append(RequiredChoices(frozenset(conditions.required_choices)))
    if conditions.rights_knowledge:
        preds.append(RightsKnowledge(frozenset(conditions.rights_knowledge)))
    return tuple(preds)


def evaluate_unlock(choice: Choice, state: GameState, explain: bool = False) -> UnlockCheck:
    preds = predicates_for(choice.unlock_conditions)
    if not explain:
        return UnlockCheck(unlocked=all(p.holds(state=state) for p in preds))

    failing = tuple(p.describe() for p in preds if not p.holds(state=state))
    return UnlockCheck(unlocked=not failing, failing=failing)
