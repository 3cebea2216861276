from __future__ import annotations

import random
from uuid import uuid4

from icecream.api.models import CityProfile, CityState, GamePhase, GameState, NeighborhoodState, utcnow
from icecream.config import DEFAULT_MAX_TURNS


def build_city_state(*, city: CityProfile, neighborhood_id: str | None = None) -> CityState:
    """Copy reference data into per-session state.

    The family starts in `neighborhood_id`, or the city's first neighborhood.
    """

    if neighborhood_id is not None and city.neighborhood(neighborhood_id) is None:
        raise ValueError(f"Unknown neighborhood '{neighborhood_id}' for city '{city.id}'")

    return CityState(
        id=city.id,
        name=city.name,
        region=city.state,
        pulse=city.pulse.model_copy(),
        neighborhoods=[
            NeighborhoodState(id=n.id, name=n.name, description=n.description, pulse=n.pulse.model_copy())
            for n in city.neighborhoods
        ],
        current_neighborhood_id=neighborhood_id or city.neighborhoods[0].id,
    )


def new_session(
    *,
    city: CityProfile,
    neighborhood_id: str | None = None,
    max_turns: int = DEFAULT_MAX_TURNS,
    seed: int | None = None,
    session_id: str | None = None,
) -> GameState:
    now = utcnow()
    if seed is None:
        seed = random.SystemRandom().randint(1, 2**31 - 1)

    return GameState(
        session_id=session_id or str(uuid4()),
        created_at=now,
        updated_at=now,
        turn=1,
        phase=GamePhase.plan,
        max_turns=max_turns,
        seed=seed,
        city=build_city_state(city=city, neighborhood_id=neighborhood_id),
    )
