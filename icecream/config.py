from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv


DEFAULT_REDIS_URL = "redis://localhost:6379/0"
DEFAULT_SESSION_TTL_SECONDS = 60 * 60 * 24 * 7
DEFAULT_MAX_TURNS = 80
DEFAULT_SKIP_STEP_CAP = 20


@dataclass(frozen=True, slots=True)
class Settings:
    redis_url: str = DEFAULT_REDIS_URL
    session_ttl_seconds: int = DEFAULT_SESSION_TTL_SECONDS
    max_turns: int = DEFAULT_MAX_TURNS
    # Upper bound on phases walked by a single skip request.
    skip_step_cap: int = DEFAULT_SKIP_STEP_CAP
    content_root: Path | None = None
    admin_api_key: str | None = None
    log_level: str = "INFO"
    # Reject locked choices at the API; the engine itself never blocks on them.
    enforce_unlocks: bool = True


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().casefold() in {"1", "true", "yes", "on"}


def project_root() -> Path:
    # icecream/config.py -> icecream/ -> project root
    return Path(__file__).resolve().parents[1]


def load_settings() -> Settings:
    """Build settings from the environment.

    A repo-level `.env` is loaded first (without overriding real env vars), so local
    runs pick up REDIS_URL / ICECREAM_* without exporting them by hand.
    """

    load_dotenv(dotenv_path=project_root() / ".env", override=False)

    content_root = os.environ.get("ICECREAM_CONTENT_ROOT")
    return Settings(
        redis_url=os.environ.get("REDIS_URL", DEFAULT_REDIS_URL),
        session_ttl_seconds=int(os.environ.get("ICECREAM_SESSION_TTL_SECONDS", DEFAULT_SESSION_TTL_SECONDS)),
        max_turns=int(os.environ.get("ICECREAM_MAX_TURNS", DEFAULT_MAX_TURNS)),
        skip_step_cap=int(os.environ.get("ICECREAM_SKIP_STEP_CAP", DEFAULT_SKIP_STEP_CAP)),
        content_root=Path(content_root) if content_root else None,
        admin_api_key=os.environ.get("ICECREAM_ADMIN_API_KEY") or None,
        log_level=os.environ.get("ICECREAM_LOG_LEVEL", "INFO").upper(),
        enforce_unlocks=_env_bool("ICECREAM_ENFORCE_UNLOCKS", True),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()
