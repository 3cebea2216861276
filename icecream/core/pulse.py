"""Layered pulse vectors and the once-per-turn propagation step.

National policy sets the weather; cities translate; neighborhoods express; the
family absorbs. Influence flows strictly downward within one propagation step:
global -> city -> neighborhood -> family. Each layer reads the already-updated
layer above it and never a layer below.

Every field update has the shape

    new = clamp(old + decay + cross_layer + event_drift, lo, hi)

with a single clamp at the end. There is no randomness here.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, ClassVar, Literal, Self, get_args

from pydantic import BaseModel, ConfigDict, ValidationInfo, field_validator

if TYPE_CHECKING:
    from icecream.api.models import GameState


UNIT_BOUNDS: tuple[float, float] = (0.0, 100.0)
SIGNED_BOUNDS: tuple[float, float] = (-100.0, 100.0)

# Values are stored rounded so snapshots stay readable and comparisons stay stable.
PRECISION = 4


def clamp(value: float, lo: float = UNIT_BOUNDS[0], hi: float = UNIT_BOUNDS[1]) -> float:
    return max(lo, min(hi, float(value)))


def sum_deltas(*parts: Mapping[str, float]) -> dict[str, float]:
    out: dict[str, float] = {}
    for part in parts:
        for key, value in part.items():
            out[key] = out.get(key, 0.0) + float(value)
    return out


class PulseVector(BaseModel):
    """Named, bounded numeric fields for one layer.

    Subclasses declare their fields as floats; `bounds` overrides the default
    [0, 100] range for signed fields. Clamping happens in a field validator, so it
    applies both at construction and on assignment.
    """

    model_config = ConfigDict(validate_assignment=True)

    bounds: ClassVar[Mapping[str, tuple[float, float]]] = {}

    @field_validator("*")
    @classmethod
    def _clamp_to_bounds(cls, value: float, info: ValidationInfo) -> float:
        lo, hi = cls.bounds_for(info.field_name or "")
        return round(clamp(value, lo, hi), PRECISION)

    @classmethod
    def bounds_for(cls, name: str) -> tuple[float, float]:
        return cls.bounds.get(name, UNIT_BOUNDS)

    @classmethod
    def field_names(cls) -> tuple[str, ...]:
        return tuple(cls.model_fields)

    def shifted(self, deltas: Mapping[str, float]) -> Self:
        """Return a copy with `deltas` added field-wise, clamped once per field."""

        names = set(type(self).model_fields)
        unknown = sorted(set(deltas) - names)
        if unknown:
            raise ValueError(f"Unknown {type(self).__name__} field(s): {','.join(unknown)}")

        values = self.model_dump()
        for key, delta in deltas.items():
            values[key] = values[key] + float(delta)
        return type(self)(**values)

    def pull_toward(self, baseline: Self, rate: float, only: Iterable[str] | None = None) -> dict[str, float]:
        """Decay deltas moving each field `rate` of the way back to `baseline`."""

        names = tuple(only) if only is not None else self.field_names()
        return {name: rate * (getattr(baseline, name) - getattr(self, name)) for name in names}

    def decayed(self, baseline: Self, rate: float) -> Self:
        return self.shifted(self.pull_toward(baseline, rate))

    def changes_from(self, before: Self) -> dict[str, float]:
        out: dict[str, float] = {}
        for name in self.field_names():
            diff = round(getattr(self, name) - getattr(before, name), PRECISION)
            if diff:
                out[name] = diff
        return out


def blend(a: PulseVector, b: PulseVector, weight: float) -> PulseVector:
    """Linear interpolation between two vectors of the same layer (weight=1 -> b)."""

    if type(a) is not type(b):
        raise TypeError(f"Cannot blend {type(a).__name__} with {type(b).__name__}")
    w = clamp(weight, 0.0, 1.0)
    values = {name: getattr(a, name) * (1.0 - w) + getattr(b, name) * w for name in a.field_names()}
    return type(a)(**values)


GlobalField = Literal["enforcement_climate", "media_narrative", "judicial_alignment", "political_volatility"]
CityField = Literal[
    "federal_cooperation",
    "data_density",
    "political_cover",
    "civil_society_capacity",
    "bureaucratic_inertia",
]
NeighborhoodField = Literal[
    "trust",
    "suspicion",
    "enforcement_visibility",
    "community_density",
    "economic_precarity",
]
FamilyField = Literal["visibility", "stress", "cohesion", "trust_network_strength"]
PulseField = Literal[GlobalField, CityField, NeighborhoodField, FamilyField]

Layer = Literal["global", "city", "neighborhood", "family"]


class GlobalPulse(PulseVector):
    bounds: ClassVar[Mapping[str, tuple[float, float]]] = {
        "media_narrative": SIGNED_BOUNDS,
        "judicial_alignment": SIGNED_BOUNDS,
    }

    # 0-20 lax, 21-50 baseline, 51-80 aggressive, 81-100 crisis
    enforcement_climate: float = 50.0
    # -100 fatigue/sympathy .. +100 panic/scapegoating
    media_narrative: float = 0.0
    # -100 rights-expansive .. +100 executive-deferential
    judicial_alignment: float = 0.0
    political_volatility: float = 30.0


class CityPulse(PulseVector):
    # 0-20 resist, 21-50 passive, 51-80 quiet comply, 81-100 partner
    federal_cooperation: float = 50.0
    data_density: float = 50.0
    political_cover: float = 50.0
    civil_society_capacity: float = 50.0
    bureaucratic_inertia: float = 50.0


class NeighborhoodPulse(PulseVector):
    trust: float = 50.0
    # Not the inverse of trust; both can be high.
    suspicion: float = 50.0
    enforcement_visibility: float = 50.0
    community_density: float = 50.0
    economic_precarity: float = 50.0


class FamilyImpact(PulseVector):
    visibility: float = 30.0
    stress: float = 20.0
    cohesion: float = 70.0
    trust_network_strength: float = 40.0


LAYER_VECTORS: dict[Layer, type[PulseVector]] = {
    "global": GlobalPulse,
    "city": CityPulse,
    "neighborhood": NeighborhoodPulse,
    "family": FamilyImpact,
}

FIELD_LAYERS: dict[str, Layer] = {
    name: layer for layer, vector in LAYER_VECTORS.items() for name in vector.field_names()
}

# Field names must stay unique across layers: an effect key names exactly one layer.
assert len(FIELD_LAYERS) == sum(len(v.model_fields) for v in LAYER_VECTORS.values())
assert set(FIELD_LAYERS) == set(get_args(PulseField))


def split_by_layer(effects: Mapping[str, float]) -> dict[Layer, dict[str, float]]:
    out: dict[Layer, dict[str, float]] = {}
    for key, value in effects.items():
        layer = FIELD_LAYERS.get(key)
        if layer is None:
            raise ValueError(f"Unknown pulse field: {key}")
        out.setdefault(layer, {})[key] = float(value)
    return out


@dataclass(slots=True)
class LayerDrift:
    """Event-driven per-turn deltas, grouped by the layer they act on."""

    global_deltas: dict[str, float] = field(default_factory=dict)
    city_deltas: dict[str, float] = field(default_factory=dict)
    neighborhood_deltas: dict[str, dict[str, float]] = field(default_factory=dict)
    family_deltas: dict[str, float] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class PulseTuning:
    global_baseline: GlobalPulse = field(default_factory=GlobalPulse)
    global_decay: float = 0.02

    neighborhood_baseline: NeighborhoodPulse = field(default_factory=NeighborhoodPulse)
    neighborhood_decay: float = 0.03

    family_baseline: FamilyImpact = field(default_factory=FamilyImpact)
    # Cohesion and the trust network have their own dynamics and do not revert.
    family_decay: Mapping[str, float] = field(default_factory=lambda: {"stress": 0.03, "visibility": 0.02})

    # global -> city
    cooperation_per_climate: float = 0.05
    cover_per_narrative: float = -0.02
    capacity_per_volatility: float = -0.01

    # city -> neighborhood
    visibility_per_cooperation: float = 0.05
    visibility_per_data_density: float = 0.01
    suspicion_per_cooperation: float = 0.01
    suspicion_per_data_density: float = 0.01
    trust_per_civil_society: float = 0.02
    density_per_civil_society: float = 0.01
    precarity_per_inertia: float = 0.01

    # neighborhood -> family
    stress_per_enforcement: float = 0.04
    stress_per_precarity: float = 0.02
    visibility_per_suspicion: float = 0.01
    network_per_density: float = 0.01
    network_per_trust: float = 0.01

    # family internal
    cohesion_strain_threshold: float = 60.0
    cohesion_strain: float = -0.5
    cohesion_recovery: float = 0.2


DEFAULT_PULSE_TUNING = PulseTuning()


def city_influence(city: CityPulse, world: GlobalPulse, t: PulseTuning) -> dict[str, float]:
    return {
        "federal_cooperation": (world.enforcement_climate - 50.0) * t.cooperation_per_climate,
        # Panic narratives erode the cover local officials can count on.
        "political_cover": world.media_narrative * t.cover_per_narrative,
        "civil_society_capacity": (world.political_volatility - 30.0) * t.capacity_per_volatility,
    }


def neighborhood_influence(hood: NeighborhoodPulse, city: CityPulse, t: PulseTuning) -> dict[str, float]:
    cooperation = city.federal_cooperation - 50.0
    data = city.data_density - 50.0
    civil = city.civil_society_capacity - 50.0
    return {
        "enforcement_visibility": cooperation * t.visibility_per_cooperation + data * t.visibility_per_data_density,
        "suspicion": cooperation * t.suspicion_per_cooperation + data * t.suspicion_per_data_density,
        "trust": civil * t.trust_per_civil_society,
        "community_density": civil * t.density_per_civil_society,
        "economic_precarity": (city.bureaucratic_inertia - 50.0) * t.precarity_per_inertia,
    }


def family_influence(family: FamilyImpact, hood: NeighborhoodPulse, t: PulseTuning) -> dict[str, float]:
    # More visible families feel the street-level pressure more.
    exposure = family.visibility / 50.0
    pressure = (hood.enforcement_visibility - 50.0) * t.stress_per_enforcement + (
        hood.economic_precarity - 50.0
    ) * t.stress_per_precarity
    strained = family.stress > t.cohesion_strain_threshold
    return {
        "stress": pressure * exposure,
        "visibility": (hood.suspicion - 50.0) * t.visibility_per_suspicion,
        "cohesion": t.cohesion_strain if strained else t.cohesion_recovery,
        "trust_network_strength": (hood.community_density - 50.0) * t.network_per_density
        + (hood.trust - 50.0) * t.network_per_trust,
    }


def propagate(state: "GameState", drift: LayerDrift | None = None, tuning: PulseTuning = DEFAULT_PULSE_TUNING) -> None:
    """Advance every layer of `state` by one turn, in place.

    Callers own `state` (the turn engine passes a private copy).
    """

    drift = drift or LayerDrift()
    t = tuning

    world = state.global_pulse
    state.global_pulse = world.shifted(
        sum_deltas(world.pull_toward(t.global_baseline, t.global_decay), drift.global_deltas)
    )

    city = state.city.pulse
    state.city.pulse = city.shifted(sum_deltas(city_influence(city, state.global_pulse, t), drift.city_deltas))

    for hood in state.city.neighborhoods:
        hood.pulse = hood.pulse.shifted(
            sum_deltas(
                hood.pulse.pull_toward(t.neighborhood_baseline, t.neighborhood_decay),
                neighborhood_influence(hood.pulse, state.city.pulse, t),
                drift.neighborhood_deltas.get(hood.id, {}),
            )
        )

    current = state.city.current_neighborhood()
    family = state.family
    family_parts: list[Mapping[str, float]] = [
        family.pull_toward(t.family_baseline, rate, only=(name,)) for name, rate in t.family_decay.items()
    ]
    family_parts.append(drift.family_deltas)
    if current is not None:
        family_parts.append(family_influence(family, current.pulse, t))
    state.family = family.shifted(sum_deltas(*family_parts))
