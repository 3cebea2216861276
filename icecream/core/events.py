"""Event selection, instantiation and lifetime.

Each scope rolls against its own RNG, seeded from `(seed, turn, scope)`, so the
same snapshot always draws the same events and one scope's roll never shifts
another's.
"""

from __future__ import annotations

import logging
import random
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import TypeVar

from icecream.api.models import (
    ENFORCEMENT_KINDS,
    ActiveEvent,
    ActiveEvents,
    Choice,
    CityEventTemplate,
    Decision,
    EffectMode,
    EventScope,
    GameState,
    GlobalEventTemplate,
    NeighborhoodEventKind,
    NeighborhoodEventTemplate,
    TurnContext,
    UnlockConditions,
)
from icecream.core.pulse import CityPulse, GlobalPulse, LayerDrift, NeighborhoodPulse, sum_deltas

logger = logging.getLogger(__name__)

T = TypeVar("T")
EventTemplateT = GlobalEventTemplate | CityEventTemplate | NeighborhoodEventTemplate

SCOPE_ORDER: tuple[EventScope, ...] = ("global", "city", "neighborhood")

# Which staged decision wins when several scopes fire in the same turn.
DECISION_PRIORITY: tuple[EventScope, ...] = ("neighborhood", "city", "global")


@dataclass(frozen=True, slots=True)
class EventTuning:
    """Per-turn fire chances, as linear functions of the owning layer's pulse."""

    neighborhood_base: float = 0.3
    neighborhood_per_visibility: float = 0.002
    neighborhood_per_suspicion: float = 0.001
    neighborhood_per_trust: float = -0.001

    city_base: float = 0.15
    city_per_cover: float = -0.001
    city_per_inertia: float = 0.001

    global_base: float = 0.02
    global_per_volatility: float = 0.0006

    @classmethod
    def certain(cls) -> "EventTuning":
        """Every scope fires every turn (useful for deterministic tests and demos)."""

        return cls(
            neighborhood_base=1.0,
            neighborhood_per_visibility=0.0,
            neighborhood_per_suspicion=0.0,
            neighborhood_per_trust=0.0,
            city_base=1.0,
            city_per_cover=0.0,
            city_per_inertia=0.0,
            global_base=1.0,
            global_per_volatility=0.0,
        )

    def global_chance(self, pulse: GlobalPulse) -> float:
        return self.global_base + pulse.political_volatility * self.global_per_volatility

    def city_chance(self, pulse: CityPulse) -> float:
        return self.city_base + pulse.political_cover * self.city_per_cover + pulse.bureaucratic_inertia * self.city_per_inertia

    def neighborhood_chance(self, pulse: NeighborhoodPulse) -> float:
        return (
            self.neighborhood_base
            + pulse.enforcement_visibility * self.neighborhood_per_visibility
            + pulse.suspicion * self.neighborhood_per_suspicion
            + pulse.trust * self.neighborhood_per_trust
        )


DEFAULT_EVENT_TUNING = EventTuning()


def scope_rng(seed: int, turn: int, scope: EventScope) -> random.Random:
    return random.Random(f"{seed}:{turn}:{scope}")


def weighted_pick(items: Sequence[T], weights: Sequence[float], rng: random.Random) -> T | None:
    """Cumulative-weight pick. Zero total weight picks nothing."""

    total = sum(weights)
    if not items or total <= 0:
        return None

    roll = rng.random() * total
    last: T | None = None
    for item, weight in zip(items, weights):
        if weight <= 0:
            continue
        if roll < weight:
            return item
        roll -= weight
        last = item
    # Float rounding can leave a sliver past the final bucket.
    return last


def neighborhood_weight(template: NeighborhoodEventTemplate, pulse: NeighborhoodPulse) -> float:
    weight = template.weight
    if template.kind in ENFORCEMENT_KINDS:
        weight *= 1 + pulse.enforcement_visibility / 100
    if template.kind == NeighborhoodEventKind.meeting:
        weight *= 1 + pulse.community_density / 100
    else:
        weight *= 1 + pulse.suspicion / 200
    return weight


def _choice(choice_id: str, label: str, description: str, effects: dict, requires: str | None = None) -> Choice:
    conditions = UnlockConditions(required_choices=[requires]) if requires else None
    return Choice(id=choice_id, label=label, description=description, effects=effects, unlock_conditions=conditions)


DEFAULT_CHOICES: dict[NeighborhoodEventKind, tuple[Choice, ...]] = {
    NeighborhoodEventKind.checkpoint: (
        _choice("comply", "Comply fully", "Present documentation and answer questions.", {"visibility": 5, "stress": 10}),
        _choice(
            "assert_rights",
            "Assert your rights",
            "Politely decline to answer questions beyond what's legally required.",
            {"visibility": 10, "stress": 15, "cohesion": 5},
            requires="learn_rights_basic",
        ),
        _choice("avoid", "Try to avoid", "Change your route to bypass the checkpoint.", {"visibility": -5, "stress": 5}),
    ),
    NeighborhoodEventKind.raid_rumor: (
        _choice(
            "stay_home",
            "Stay home",
            "Keep a low profile until things calm down.",
            {"visibility": -10, "stress": 15, "cohesion": -5},
        ),
        _choice(
            "warn_others",
            "Warn your network",
            "Alert neighbors and community members.",
            {"visibility": 5, "trust_network_strength": 10, "cohesion": 5},
        ),
        _choice("continue_normal", "Continue as normal", "Go about your day without changing routine.", {"stress": 5}),
    ),
    NeighborhoodEventKind.audit: (
        _choice(
            "provide_documents", "Provide all documents", "Give them everything they ask for.", {"visibility": 10, "stress": 10}
        ),
        _choice(
            "request_lawyer",
            "Request a lawyer",
            "Ask for legal representation before proceeding.",
            {"visibility": 5, "stress": 20, "cohesion": 5},
            requires="learn_rights_legal",
        ),
    ),
    NeighborhoodEventKind.meeting: (
        _choice(
            "attend",
            "Attend the meeting",
            "Participate in the community gathering.",
            {"visibility": 5, "trust_network_strength": 15, "stress": -5, "cohesion": 5},
        ),
        _choice("skip", "Skip it", "You have other priorities right now.", {"trust_network_strength": -5}),
    ),
    NeighborhoodEventKind.detention: (
        _choice(
            "seek_help",
            "Seek legal help immediately",
            "Contact a lawyer and community organizations.",
            {"stress": 25, "trust_network_strength": 5},
        ),
        _choice(
            "stay_silent",
            "Remain silent",
            "Exercise your right to remain silent.",
            {"stress": 30},
            requires="learn_rights_basic",
        ),
    ),
}

FALLBACK_CHOICES: tuple[Choice, ...] = (
    _choice("accept", "Accept the situation", "There is nothing to do but carry on.", {"stress": 10}),
)


def default_decision(event: ActiveEvent) -> Decision:
    template = event.template
    choices = DEFAULT_CHOICES.get(getattr(template, "kind", None), FALLBACK_CHOICES)
    return Decision(
        id=f"decision_{event.id}",
        title=template.title,
        narrative=template.description,
        choices=[c.model_copy(deep=True) for c in choices],
        multi_select=False,
        trigger_event_id=event.id,
    )


def staged_decision(event: ActiveEvent) -> Decision | None:
    template = event.template
    if template.decision is not None:
        return template.decision.model_copy(deep=True, update={"trigger_event_id": event.id})
    if template.scope == "neighborhood":
        return default_decision(event)
    return None


def instantiate(template: EventTemplateT, *, rng: random.Random, turn: int, neighborhood_id: str | None = None) -> ActiveEvent:
    magnitude = 1.0
    severity = None
    target = None
    if template.scope == "global":
        magnitude = float(rng.randint(*template.magnitude_range))
    elif template.scope == "neighborhood":
        severity = rng.randint(*template.severity_range)
        target = rng.choice(template.targets) if template.targets else None

    return ActiveEvent(
        id=f"evt_{turn}_{template.scope}_{template.id}",
        template=template,
        start_turn=turn,
        remaining_turns=template.duration,
        magnitude=magnitude,
        severity=severity,
        target=target,
        neighborhood_id=neighborhood_id,
    )


def apply_event_effects(state: GameState, event: ActiveEvent) -> dict[str, float]:
    """Apply the event's (magnitude-scaled) effects to its owning layer, in place."""

    effects = event.effects
    if not effects:
        return {}

    if event.scope == "global":
        state.global_pulse = state.global_pulse.shifted(effects)
    elif event.scope == "city":
        state.city.pulse = state.city.pulse.shifted(effects)
    else:
        hood = state.city.neighborhood(event.neighborhood_id or "")
        if hood is None:
            return {}
        hood.pulse = hood.pulse.shifted(effects)
    return dict(effects)


@dataclass(slots=True)
class Injection:
    new_events: list[ActiveEvent] = field(default_factory=list)
    decision: Decision | None = None
    effects_applied: dict[str, float] = field(default_factory=dict)


def _candidates(state: GameState, context: TurnContext, scope: EventScope, tuning: EventTuning):
    """Return (pool, weights, chance, neighborhood_id) for one scope, or None if the scope has no target."""

    turn = state.turn
    if scope == "global":
        pulse = state.global_pulse
        pool = [t for t in context.global_templates if t.trigger.holds(pulse, turn)]
        return pool, [t.weight for t in pool], tuning.global_chance(pulse), None

    if scope == "city":
        pulse = state.city.pulse
        pool = [t for t in context.city_templates if t.trigger.holds(pulse, turn)]
        return pool, [t.weight for t in pool], tuning.city_chance(pulse), None

    hood = state.city.current_neighborhood()
    if hood is None:
        return None
    pool = [t for t in context.neighborhood_templates if t.trigger.holds(hood.pulse, turn)]
    weights = [neighborhood_weight(t, hood.pulse) for t in pool]
    return pool, weights, tuning.neighborhood_chance(hood.pulse), hood.id


def inject_events(state: GameState, context: TurnContext, tuning: EventTuning = DEFAULT_EVENT_TUNING) -> Injection:
    """Roll, select and instantiate at most one event per scope, mutating `state`."""

    out = Injection()
    staged: dict[EventScope, Decision] = {}

    for scope in SCOPE_ORDER:
        found = _candidates(state, context, scope, tuning)
        if found is None:
            continue
        pool, weights, chance, neighborhood_id = found

        rng = scope_rng(state.seed, state.turn, scope)
        if rng.random() >= chance:
            continue

        template = weighted_pick(pool, weights, rng)
        if template is None:
            continue

        event = instantiate(template, rng=rng, turn=state.turn, neighborhood_id=neighborhood_id)
        logger.debug("turn %s: %s event %s fired", state.turn, scope, template.id)

        # Both modes hit the owning layer on the firing turn.
        out.effects_applied = sum_deltas(out.effects_applied, apply_event_effects(state, event))
        if event.remaining_turns > 0:
            state.active_events.for_scope(scope).append(event)
        out.new_events.append(event)

        decision = staged_decision(event)
        if decision is not None:
            staged[scope] = decision

    out.decision = next((staged[s] for s in DECISION_PRIORITY if s in staged), None)
    return out


def per_turn_drift(active: ActiveEvents) -> LayerDrift:
    """Sum the effects of every active per_turn event, grouped by owning layer."""

    drift = LayerDrift()
    for event in active.all():
        if event.template.mode != EffectMode.per_turn:
            continue
        if event.scope == "global":
            drift.global_deltas = sum_deltas(drift.global_deltas, event.effects)
        elif event.scope == "city":
            drift.city_deltas = sum_deltas(drift.city_deltas, event.effects)
        elif event.neighborhood_id is not None:
            current = drift.neighborhood_deltas.get(event.neighborhood_id, {})
            drift.neighborhood_deltas[event.neighborhood_id] = sum_deltas(current, event.effects)
    return drift


def tick_events(active: ActiveEvents) -> list[ActiveEvent]:
    """Decrement every active event; drop and return the ones that reach zero."""

    expired: list[ActiveEvent] = []
    for scope in SCOPE_ORDER:
        kept: list[ActiveEvent] = []
        for event in active.for_scope(scope):
            remaining = event.remaining_turns - 1
            if remaining <= 0:
                expired.append(event)
                continue
            event.remaining_turns = remaining
            kept.append(event)
        setattr(active, f"{scope}_events", kept)
    return expired
