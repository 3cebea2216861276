from __future__ import annotations

import logging
from typing import Protocol

import redis

from icecream.api.models import GameState
from icecream.config import DEFAULT_SESSION_TTL_SECONDS
from icecream.errors import SessionNotFound

logger = logging.getLogger(__name__)

SESSIONS_SET_KEY = "icecream:sessions"
SESSION_KEY_PREFIX = "icecream:session:"  # + {session_id}


def _session_key(session_id: str) -> str:
    return f"{SESSION_KEY_PREFIX}{session_id}"


class SessionStore(Protocol):
    def get(self, session_id: str) -> GameState | None: ...

    def set(self, session_id: str, state: GameState) -> None: ...

    def exists(self, session_id: str) -> bool: ...

    def delete(self, session_id: str) -> None: ...

    def touch(self, session_id: str) -> bool: ...

    def list_sessions(self) -> list[GameState]: ...

    def delete_all(self) -> int: ...


class RedisSessionStore:
    """One JSON snapshot per session, expiring after `ttl_seconds` of inactivity."""

    def __init__(self, r: redis.Redis, *, ttl_seconds: int = DEFAULT_SESSION_TTL_SECONDS) -> None:
        self.r = r
        self.ttl_seconds = ttl_seconds

    def get(self, session_id: str) -> GameState | None:
        raw = self.r.get(_session_key(session_id))
        if not raw:
            return None
        return GameState.model_validate_json(raw)

    def set(self, session_id: str, state: GameState) -> None:
        if state.session_id != session_id:
            raise ValueError(f"Snapshot belongs to session {state.session_id}, not {session_id}")
        self.r.set(_session_key(session_id), state.model_dump_json(), ex=self.ttl_seconds)
        self.r.sadd(SESSIONS_SET_KEY, session_id)

    def exists(self, session_id: str) -> bool:
        return bool(self.r.exists(_session_key(session_id)))

    def delete(self, session_id: str) -> None:
        self.r.delete(_session_key(session_id))
        self.r.srem(SESSIONS_SET_KEY, session_id)
        logger.info("deleted session %s", session_id)

    def touch(self, session_id: str) -> bool:
        """Refresh the TTL. Returns False if the session no longer exists."""

        return bool(self.r.expire(_session_key(session_id), self.ttl_seconds))

    def list_sessions(self) -> list[GameState]:
        out: list[GameState] = []
        for sid in sorted(self.r.smembers(SESSIONS_SET_KEY)):
            state = self.get(sid)
            if state is None:
                # Snapshot expired; drop the dangling index entry.
                self.r.srem(SESSIONS_SET_KEY, sid)
                continue
            out.append(state)
        out.sort(key=lambda s: s.created_at, reverse=True)
        return out

    def delete_all(self) -> int:
        ids = list(self.r.smembers(SESSIONS_SET_KEY))
        deleted = 0
        for sid in ids:
            deleted += int(self.r.delete(_session_key(sid)))
        self.r.delete(SESSIONS_SET_KEY)
        logger.info("deleted %d session(s)", deleted)
        return deleted


def require_session(*, store: SessionStore, session_id: str) -> GameState:
    state = store.get(session_id)
    if state is None:
        raise SessionNotFound(session_id)
    return state
