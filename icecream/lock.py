from __future__ import annotations

import logging
import uuid
from collections.abc import Iterator
from contextlib import contextmanager

import redis

from icecream.errors import SessionBusy

logger = logging.getLogger(__name__)

LOCK_KEY_PREFIX = "icecream:lock:session:"  # + {session_id}


def _lock_key(session_id: str) -> str:
    return f"{LOCK_KEY_PREFIX}{session_id}"


def _release(r: redis.Redis, key: str, token: str) -> None:
    """Delete `key` only while it still holds our token."""

    with r.pipeline() as pipe:
        try:
            pipe.watch(key)
            if pipe.get(key) != token:
                pipe.unwatch()
                logger.warning("lock %s expired or was taken over before release", key)
                return
            pipe.multi()
            pipe.delete(key)
            pipe.execute()
        except redis.WatchError:
            logger.warning("lock %s changed during release; leaving it alone", key)


@contextmanager
def session_lock(*, r: redis.Redis, session_id: str, ttl_ms: int = 5_000) -> Iterator[str]:
    """Per-session single-writer lock.

    Acquired with SET NX PX and a unique token; raises SessionBusy if another
    writer holds it. The TTL bounds how long a crashed holder can block others.
    """

    key = _lock_key(session_id)
    token = uuid.uuid4().hex
    if not r.set(key, token, nx=True, px=ttl_ms):
        raise SessionBusy(f"Session {session_id} is busy")
    try:
        yield token
    finally:
        _release(r, key, token)
