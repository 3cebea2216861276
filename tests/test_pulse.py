from __future__ import annotations

import pytest

from icecream.core.pulse import (
    FIELD_LAYERS,
    CityPulse,
    FamilyImpact,
    GlobalPulse,
    LayerDrift,
    NeighborhoodPulse,
    blend,
    propagate,
    split_by_layer,
)


def test_fields_clamp_on_construction_and_assignment() -> None:
    hood = NeighborhoodPulse(trust=140, suspicion=-3)
    assert hood.trust == 100.0
    assert hood.suspicion == 0.0

    hood.trust = -20
    assert hood.trust == 0.0


def test_signed_fields_use_signed_bounds() -> None:
    world = GlobalPulse(media_narrative=-150, judicial_alignment=-40, enforcement_climate=-5)
    assert world.media_narrative == -100.0
    assert world.judicial_alignment == -40.0
    assert world.enforcement_climate == 0.0


def test_shifted_clamps_once_and_returns_a_copy() -> None:
    family = FamilyImpact(stress=90)
    out = family.shifted({"stress": 30, "cohesion": -5})
    assert out.stress == 100.0
    assert out.cohesion == 65.0
    assert family.stress == 90.0


def test_shifted_rejects_fields_from_other_layers() -> None:
    with pytest.raises(ValueError, match="trust"):
        FamilyImpact().shifted({"trust": 5})


def test_decayed_moves_toward_baseline() -> None:
    hood = NeighborhoodPulse(trust=90, suspicion=10)
    out = hood.decayed(NeighborhoodPulse(), 0.5)
    assert out.trust == 70.0
    assert out.suspicion == 30.0
    assert out.community_density == 50.0


def test_blend_interpolates_same_layer_only() -> None:
    a = CityPulse(federal_cooperation=0)
    b = CityPulse(federal_cooperation=100)
    assert blend(a, b, 0.25).federal_cooperation == 25.0
    assert blend(a, b, 7).federal_cooperation == 100.0

    with pytest.raises(TypeError):
        blend(a, NeighborhoodPulse(), 0.5)


def test_every_field_names_exactly_one_layer() -> None:
    assert FIELD_LAYERS["enforcement_climate"] == "global"
    assert FIELD_LAYERS["political_cover"] == "city"
    assert FIELD_LAYERS["trust"] == "neighborhood"
    assert FIELD_LAYERS["trust_network_strength"] == "family"

    routed = split_by_layer({"stress": 10, "trust": -2, "media_narrative": 4})
    assert routed == {"family": {"stress": 10.0}, "neighborhood": {"trust": -2.0}, "global": {"media_narrative": 4.0}}

    with pytest.raises(ValueError):
        split_by_layer({"morale": 1})


def test_baseline_world_only_recovers_cohesion(make_state) -> None:
    state = make_state()
    propagate(state)

    assert state.global_pulse == GlobalPulse()
    assert state.city.pulse == CityPulse()
    assert all(h.pulse == NeighborhoodPulse() for h in state.city.neighborhoods)
    assert state.family.cohesion == 70.2
    assert state.family.stress == 20.0


def test_global_pressure_reaches_the_city_after_decay(make_state) -> None:
    state = make_state(global_pulse=GlobalPulse(enforcement_climate=90))
    propagate(state)

    assert state.global_pulse.enforcement_climate == 89.2
    # (89.2 - 50) * 0.05
    assert state.city.pulse.federal_cooperation == pytest.approx(51.96)


def test_lower_layers_never_push_upward(make_state) -> None:
    state = make_state()
    hood = state.city.current_neighborhood()
    assert hood is not None
    hood.pulse = NeighborhoodPulse(trust=100, suspicion=100, enforcement_visibility=100)
    state.family = FamilyImpact(stress=100, visibility=100)

    propagate(state)

    assert state.city.pulse == CityPulse()
    assert state.global_pulse == GlobalPulse()


def test_drift_is_applied_to_its_own_layer(make_state) -> None:
    state = make_state()
    drift = LayerDrift(
        global_deltas={"enforcement_climate": 4},
        neighborhood_deltas={"south": {"trust": -6}},
    )
    propagate(state, drift)

    assert state.global_pulse.enforcement_climate == 54.0
    south = state.city.neighborhood("south")
    north = state.city.neighborhood("north")
    assert south is not None and north is not None
    assert south.pulse.trust == 44.0
    assert north.pulse.trust == 50.0


def test_propagation_is_deterministic_and_bounded(make_state) -> None:
    def run():
        state = make_state(
            global_pulse=GlobalPulse(enforcement_climate=100, media_narrative=100, political_volatility=100),
            family=FamilyImpact(visibility=100, stress=95),
        )
        for _ in range(50):
            propagate(state)
        return state

    a, b = run(), run()
    assert a.model_dump(exclude={"created_at", "updated_at"}) == b.model_dump(exclude={"created_at", "updated_at"})
    for name, value in a.family.model_dump().items():
        assert 0.0 <= value <= 100.0, name
    assert -100.0 <= a.global_pulse.media_narrative <= 100.0
