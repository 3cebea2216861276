from __future__ import annotations

import redis

from icecream.config import get_settings


def get_redis_url() -> str:
    return get_settings().redis_url


def create_redis(url: str | None = None) -> redis.Redis:
    # Snapshots are JSON text, so read them back as str rather than bytes.
    return redis.Redis.from_url(url or get_redis_url(), decode_responses=True)
