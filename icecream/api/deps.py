from __future__ import annotations

from collections.abc import Generator

import redis
from fastapi import Depends, Header, HTTPException, status

from icecream.actions import engine_from_settings
from icecream.config import Settings, get_settings
from icecream.content.registry import ContentRegistry
from icecream.content.singleton import get_content
from icecream.core.turn import TurnEngine
from icecream.infra.redis_client import create_redis
from icecream.session_store import RedisSessionStore


def get_redis() -> Generator[redis.Redis, None, None]:
    client = create_redis()
    try:
        yield client
    finally:
        client.close()


def get_session_store(
    r: redis.Redis = Depends(get_redis),
    settings: Settings = Depends(get_settings),
) -> RedisSessionStore:
    return RedisSessionStore(r, ttl_seconds=settings.session_ttl_seconds)


def get_content_registry() -> ContentRegistry:
    return get_content()


def get_engine(settings: Settings = Depends(get_settings)) -> TurnEngine:
    return engine_from_settings(settings)


def require_admin_key(
    x_api_key: str | None = Header(default=None),
    settings: Settings = Depends(get_settings),
) -> None:
    if not settings.admin_api_key:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin API is disabled")
    if x_api_key != settings.admin_api_key:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid API key")
