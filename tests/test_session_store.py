from __future__ import annotations

import json
import zlib
from datetime import timedelta

import fakeredis
import pytest

from icecream.errors import SessionBusy, SessionNotFound
from icecream.lock import LOCK_KEY_PREFIX, session_lock
from icecream.session_store import SESSION_KEY_PREFIX, SESSIONS_SET_KEY, RedisSessionStore, require_session


@pytest.fixture()
def r() -> fakeredis.FakeRedis:
    return fakeredis.FakeRedis(decode_responses=True)


@pytest.fixture()
def store(r: fakeredis.FakeRedis) -> RedisSessionStore:
    return RedisSessionStore(r, ttl_seconds=600)


def test_set_get_roundtrip_with_ttl(store: RedisSessionStore, r: fakeredis.FakeRedis, make_state) -> None:
    state = make_state(session_id="s1", rights_knowledge={"rights_legal", "rights_basic"})
    store.set("s1", state)

    assert 0 < r.ttl(f"{SESSION_KEY_PREFIX}s1") <= 600
    assert r.sismember(SESSIONS_SET_KEY, "s1")

    loaded = store.get("s1")
    assert loaded == state
    assert json.loads(r.get(f"{SESSION_KEY_PREFIX}s1"))["rights_knowledge"] == ["rights_basic", "rights_legal"]


def test_set_rejects_mismatched_session_id(store: RedisSessionStore, make_state) -> None:
    with pytest.raises(ValueError):
        store.set("other", make_state(session_id="s1"))


def test_touch_refreshes_ttl(store: RedisSessionStore, r: fakeredis.FakeRedis, make_state) -> None:
    store.set("s1", make_state(session_id="s1"))
    r.expire(f"{SESSION_KEY_PREFIX}s1", 5)

    assert store.touch("s1")
    assert r.ttl(f"{SESSION_KEY_PREFIX}s1") > 5
    assert not store.touch("missing")


def test_old_snapshots_still_load(store: RedisSessionStore, r: fakeredis.FakeRedis) -> None:
    legacy = {
        "session_id": "legacy",
        "turn": 3,
        "phase": "event",
        "city": {"id": "testville", "name": "Testville"},
        "mood": "retired field",
    }
    r.set(f"{SESSION_KEY_PREFIX}legacy", json.dumps(legacy))

    state = store.get("legacy")

    assert state is not None
    assert state.turn == 3
    assert state.seed == zlib.crc32(b"legacy")
    assert state.family.stress == 20.0


def test_list_sessions_prunes_expired_ids(store: RedisSessionStore, r: fakeredis.FakeRedis, make_state) -> None:
    older = make_state(session_id="older")
    newer = make_state(session_id="newer", created_at=older.created_at + timedelta(seconds=5))
    store.set("older", older)
    store.set("newer", newer)
    r.sadd(SESSIONS_SET_KEY, "gone")

    assert [s.session_id for s in store.list_sessions()] == ["newer", "older"]
    assert not r.sismember(SESSIONS_SET_KEY, "gone")


def test_delete_and_delete_all(store: RedisSessionStore, r: fakeredis.FakeRedis, make_state) -> None:
    for sid in ("a", "b", "c"):
        store.set(sid, make_state(session_id=sid))

    store.delete("a")
    assert not store.exists("a")
    assert not r.sismember(SESSIONS_SET_KEY, "a")

    assert store.delete_all() == 2
    assert store.list_sessions() == []


def test_require_session(store: RedisSessionStore) -> None:
    with pytest.raises(SessionNotFound):
        require_session(store=store, session_id="nope")


def test_lock_is_single_writer(r: fakeredis.FakeRedis) -> None:
    with session_lock(r=r, session_id="s1"):
        with pytest.raises(SessionBusy):
            with session_lock(r=r, session_id="s1"):
                pass
        # Other sessions are independent.
        with session_lock(r=r, session_id="s2"):
            pass

    assert r.get(f"{LOCK_KEY_PREFIX}s1") is None


def test_lock_release_leaves_a_foreign_token(r: fakeredis.FakeRedis) -> None:
    key = f"{LOCK_KEY_PREFIX}s1"
    with session_lock(r=r, session_id="s1") as token:
        # Simulate expiry and takeover by another writer.
        r.set(key, "someone-else")
        assert token != "someone-else"

    assert r.get(key) == "someone-else"
