from __future__ import annotations

import fakeredis
import pytest
from fastapi.testclient import TestClient

from icecream.api.deps import get_engine
from icecream.api.models import Decision, GamePhase
from icecream.config import Settings, get_settings
from icecream.core.events import EventTuning
from icecream.core.turn import TurnEngine
from icecream.lock import LOCK_KEY_PREFIX
from icecream.main import app
from icecream.session_store import RedisSessionStore


def _create(client: TestClient, **payload) -> dict:
    body = {"city_id": "testville", "seed": 7, **payload}
    resp = client.post("/sessions", json=body)
    assert resp.status_code == 201, resp.text
    return resp.json()


@pytest.fixture()
def eventful_engine():
    """Every scope fires every turn, so a decision shows up on turn 1."""

    app.dependency_overrides[get_engine] = lambda: TurnEngine(event_tuning=EventTuning.certain(), enforce_unlocks=True)
    yield
    app.dependency_overrides.pop(get_engine, None)


def test_healthcheck_and_info(client_and_redis: tuple[TestClient, fakeredis.FakeRedis]) -> None:
    client, _ = client_and_redis
    assert client.get("/healthcheck").json() == {"status": "ok"}
    assert client.get("/info").json()["name"] == "icecream"


def test_list_and_get_cities(client_and_redis: tuple[TestClient, fakeredis.FakeRedis]) -> None:
    client, _ = client_and_redis

    cities = client.get("/cities").json()["cities"]
    assert [c["id"] for c in cities] == ["testville"]
    assert [n["id"] for n in cities[0]["neighborhoods"]] == ["north", "south"]

    assert client.get("/cities/testville").json()["name"] == "Testville"
    assert client.get("/cities/atlantis").status_code == 404


def test_create_session(client_and_redis: tuple[TestClient, fakeredis.FakeRedis]) -> None:
    client, r = client_and_redis

    state = _create(client, neighborhood_id="south", max_turns=30)

    assert state["turn"] == 1
    assert state["phase"] == "plan"
    assert state["max_turns"] == 30
    assert state["seed"] == 7
    assert state["city"]["current_neighborhood_id"] == "south"
    assert r.exists(f"icecream:session:{state['session_id']}")

    fetched = client.get(f"/sessions/{state['session_id']}")
    assert fetched.status_code == 200
    assert fetched.json()["session_id"] == state["session_id"]


def test_create_session_errors(client_and_redis: tuple[TestClient, fakeredis.FakeRedis]) -> None:
    client, _ = client_and_redis

    assert client.post("/sessions", json={"city_id": "atlantis"}).status_code == 404
    assert client.post("/sessions", json={"city_id": "testville", "neighborhood_id": "east"}).status_code == 422
    assert client.post("/sessions", json={"city_id": "testville", "max_turns": 0}).status_code == 422


def test_unknown_session(client_and_redis: tuple[TestClient, fakeredis.FakeRedis]) -> None:
    client, _ = client_and_redis
    assert client.get("/sessions/nope").status_code == 404
    assert client.post("/sessions/nope/next").status_code == 404
    assert client.delete("/sessions/nope").status_code == 404


def test_next_advances_one_phase(client_and_redis: tuple[TestClient, fakeredis.FakeRedis]) -> None:
    client, _ = client_and_redis
    sid = _create(client)["session_id"]

    body = client.post(f"/sessions/{sid}/next").json()

    assert body["phase_completed"] == "plan"
    assert body["state"]["phase"] == "pulse_update"
    assert body["changed"] is True
    assert client.get(f"/sessions/{sid}").json()["phase"] == "pulse_update"


def test_choose_without_a_decision(client_and_redis: tuple[TestClient, fakeredis.FakeRedis]) -> None:
    client, _ = client_and_redis
    sid = _create(client)["session_id"]

    resp = client.post(f"/sessions/{sid}/choose", json={"choice_ids": ["comply"]})
    assert resp.status_code == 422


def test_skip_then_choose(client_and_redis: tuple[TestClient, fakeredis.FakeRedis], eventful_engine) -> None:
    client, _ = client_and_redis
    sid = _create(client)["session_id"]

    skipped = client.post(f"/sessions/{sid}/skip").json()
    assert skipped["steps"] == 3
    assert skipped["state"]["phase"] == "decision"
    decision = skipped["decision"]
    assert decision is not None

    pending = client.get(f"/sessions/{sid}/decision").json()
    assert pending["decision"]["id"] == decision["id"]
    statuses = {s["choice"]["id"]: s for s in pending["choices"]}

    unlocked = next(cid for cid, s in statuses.items() if s["unlocked"])
    bad = client.post(f"/sessions/{sid}/choose", json={"choice_ids": ["not-a-choice"]})
    assert bad.status_code == 422

    chosen = client.post(f"/sessions/{sid}/choose", json={"choice_ids": [unlocked]}).json()
    assert chosen["phase_completed"] == "decision"
    assert chosen["state"]["phase"] == "consequence"
    assert chosen["state"]["choice_history"][-1]["choice_ids"] == [unlocked]

    assert client.get(f"/sessions/{sid}/decision").json() == {"decision": None, "choices": []}


def test_locked_choice_is_rejected(client_and_redis: tuple[TestClient, fakeredis.FakeRedis]) -> None:
    client, r = client_and_redis
    sid = _create(client)["session_id"]

    store = RedisSessionStore(r)
    state = store.get(sid)
    state.phase = GamePhase.decision
    state.current_decision = Decision(
        id="d-lawyer",
        title="Audit",
        choices=[
            {"id": "provide_documents", "label": "Provide"},
            {
                "id": "request_lawyer",
                "label": "Lawyer",
                "unlock_conditions": {"required_choices": ["learn_rights_legal"]},
            },
        ],
    )
    store.set(sid, state)

    statuses = client.get(f"/sessions/{sid}/decision").json()["choices"]
    assert [(s["choice"]["id"], s["unlocked"]) for s in statuses] == [
        ("provide_documents", True),
        ("request_lawyer", False),
    ]

    resp = client.post(f"/sessions/{sid}/choose", json={"choice_ids": ["request_lawyer"]})
    assert resp.status_code == 422
    assert "locked" in resp.json()["detail"]
    assert client.get(f"/sessions/{sid}").json()["phase"] == "decision"


def test_busy_session_conflicts(client_and_redis: tuple[TestClient, fakeredis.FakeRedis]) -> None:
    client, r = client_and_redis
    sid = _create(client)["session_id"]

    r.set(f"{LOCK_KEY_PREFIX}{sid}", "another-writer", px=5_000)
    assert client.post(f"/sessions/{sid}/next").status_code == 409

    r.delete(f"{LOCK_KEY_PREFIX}{sid}")
    assert client.post(f"/sessions/{sid}/next").status_code == 200


def test_list_and_delete_sessions(client_and_redis: tuple[TestClient, fakeredis.FakeRedis]) -> None:
    client, _ = client_and_redis
    a = _create(client)["session_id"]
    b = _create(client)["session_id"]

    listed = client.get("/sessions").json()["sessions"]
    assert {s["session_id"] for s in listed} == {a, b}

    assert client.delete(f"/sessions/{a}").status_code == 204
    assert [s["session_id"] for s in client.get("/sessions").json()["sessions"]] == [b]


def test_admin_delete_all(client_and_redis: tuple[TestClient, fakeredis.FakeRedis]) -> None:
    client, _ = client_and_redis
    _create(client)
    _create(client)

    app.dependency_overrides[get_settings] = lambda: Settings(admin_api_key=None)
    assert client.delete("/admin/sessions").status_code == 403

    app.dependency_overrides[get_settings] = lambda: Settings(admin_api_key="secret")
    assert client.delete("/admin/sessions", headers={"x-api-key": "wrong"}).status_code == 401

    resp = client.delete("/admin/sessions", headers={"x-api-key": "secret"})
    assert resp.status_code == 200
    assert resp.json() == {"deleted": 2}
    assert client.get("/sessions").json()["sessions"] == []
