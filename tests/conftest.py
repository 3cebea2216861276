from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from icecream.api.models import CityState, GameState, NeighborhoodState


@pytest.fixture(scope="session", autouse=True)
def _init_content_from_test_fixtures() -> None:
    """Load the registry from `tests/content` so tests never depend on the shipped cities."""

    from icecream.content.singleton import init_content, reset_content_for_tests

    reset_content_for_tests()

    test_root = Path(__file__).resolve().parent
    init_content(project_root=test_root)


def build_state(**overrides: Any) -> GameState:
    """A small, valid snapshot: Testville, family living in North Side."""

    city = CityState(
        id="testville",
        name="Testville",
        region="TS",
        neighborhoods=[
            NeighborhoodState(id="north", name="North Side"),
            NeighborhoodState(id="south", name="South Side"),
        ],
        current_neighborhood_id="north",
    )
    data: dict[str, Any] = {"session_id": "s-test", "seed": 42, "city": city}
    data.update(overrides)
    return GameState(**data)


@pytest.fixture()
def make_state() -> Callable[..., GameState]:
    return build_state


@pytest.fixture()
def client_and_redis():
    """TestClient wired to an in-memory fakeredis instead of a live server."""

    from collections.abc import Generator

    import fakeredis
    from fastapi.testclient import TestClient

    from icecream.api.deps import get_redis
    from icecream.main import app

    r = fakeredis.FakeRedis(decode_responses=True)

    def _override() -> Generator[fakeredis.FakeRedis, None, None]:
        yield r

    app.dependency_overrides[get_redis] = _override
    with TestClient(app) as c:
        yield c, r
    app.dependency_overrides.clear()
