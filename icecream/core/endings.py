from __future__ import annotations

from dataclasses import dataclass

from icecream.api.models import Ending, Failure, GameState, Victory, VictoryType

FAILURE_REASON = "Family could not endure the pressure."
TIMEOUT_REASON = "Time ran out without achieving safety."


@dataclass(frozen=True, slots=True)
class EndingThresholds:
    failure_stress: float = 95.0
    failure_cohesion: float = 10.0

    sanctuary_trust: float = 80.0
    sanctuary_density: float = 70.0
    sanctuary_network: float = 80.0

    outlast_climate: float = 40.0

    transform_cover: float = 80.0
    transform_cooperation: float = 20.0
    transform_narrative: float = -50.0


DEFAULT_THRESHOLDS = EndingThresholds()


def is_family_broken(state: GameState, t: EndingThresholds = DEFAULT_THRESHOLDS) -> bool:
    return state.family.stress >= t.failure_stress and state.family.cohesion <= t.failure_cohesion


def is_sanctuary(state: GameState, t: EndingThresholds = DEFAULT_THRESHOLDS) -> bool:
    hood = state.city.current_neighborhood()
    if hood is None:
        return False
    return (
        hood.pulse.trust >= t.sanctuary_trust
        and hood.pulse.community_density >= t.sanctuary_density
        and state.family.trust_network_strength >= t.sanctuary_network
    )


def is_outlasted(state: GameState, t: EndingThresholds = DEFAULT_THRESHOLDS) -> bool:
    return state.turn >= state.max_turns and state.global_pulse.enforcement_climate < t.outlast_climate


def is_transformed(state: GameState, t: EndingThresholds = DEFAULT_THRESHOLDS) -> bool:
    return (
        state.city.pulse.political_cover >= t.transform_cover
        and state.city.pulse.federal_cooperation <= t.transform_cooperation
        and state.global_pulse.media_narrative <= t.transform_narrative
    )


VICTORY_CHECKS = (
    (VictoryType.sanctuary, is_sanctuary),
    (VictoryType.outlast, is_outlasted),
    (VictoryType.transform, is_transformed),
)


def evaluate_ending(state: GameState, thresholds: EndingThresholds = DEFAULT_THRESHOLDS) -> Ending | None:
    """Decide whether the post-consequence state is terminal.

    Failure outranks every victory; victories are checked in a fixed order; a
    session that reaches `max_turns` without any of them fails on time.
    """

    if is_family_broken(state, thresholds):
        return Failure(reason=FAILURE_REASON, turn=state.turn)

    for victory_type, check in VICTORY_CHECKS:
        if check(state, thresholds):
            return Victory(victory_type=victory_type, turn=state.turn)

    if state.turn >= state.max_turns:
        return Failure(reason=TIMEOUT_REASON, turn=state.turn)
    return None
