from __future__ import annotations

import pytest

from icecream.api.models import GamePhase
from icecream.config import load_settings
from icecream.content.singleton import get_content
from icecream.game_setup import build_city_state, new_session


def test_new_session_starts_in_the_first_neighborhood() -> None:
    city = get_content().require_city("testville")
    state = new_session(city=city, max_turns=12, seed=5)

    assert state.turn == 1
    assert state.phase == GamePhase.plan
    assert state.max_turns == 12
    assert state.seed == 5
    assert state.city.current_neighborhood_id == "north"
    assert [n.id for n in state.city.neighborhoods] == ["north", "south"]
    assert state.city.neighborhood("south").pulse.suspicion == 60.0
    assert state.current_decision is None
    assert state.choice_history == []


def test_session_state_does_not_share_reference_data() -> None:
    city = get_content().require_city("testville")
    state = new_session(city=city, neighborhood_id="south")
    state.city.current_neighborhood().pulse.trust = 0

    assert city.neighborhood("south").pulse.trust == 40.0


def test_unknown_neighborhood() -> None:
    city = get_content().require_city("testville")
    with pytest.raises(ValueError, match="Unknown neighborhood"):
        build_city_state(city=city, neighborhood_id="east")


def test_seeds_are_drawn_when_missing() -> None:
    city = get_content().require_city("testville")
    a, b = new_session(city=city), new_session(city=city)
    assert a.session_id != b.session_id
    assert a.seed > 0


def test_settings_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("REDIS_URL", "redis://example:6379/3")
    monkeypatch.setenv("ICECREAM_MAX_TURNS", "25")
    monkeypatch.setenv("ICECREAM_ENFORCE_UNLOCKS", "no")
    monkeypatch.setenv("ICECREAM_ADMIN_API_KEY", "")

    settings = load_settings()

    assert settings.redis_url == "redis://example:6379/3"
    assert settings.max_turns == 25
    assert settings.enforce_unlocks is False
    assert settings.admin_api_key is None
