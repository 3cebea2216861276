from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Literal

import redis

from icecream.api.models import GamePhase, GameState
from icecream.config import Settings
from icecream.content.registry import ContentRegistry
from icecream.core.turn import TurnEngine, TurnResult
from icecream.errors import InvalidChoice, NoActiveDecision
from icecream.game_setup import new_session
from icecream.lock import session_lock
from icecream.session_store import SessionStore, require_session

logger = logging.getLogger(__name__)

ActionName = Literal["next", "skip", "choose"]


def engine_from_settings(settings: Settings) -> TurnEngine:
    return TurnEngine(enforce_unlocks=settings.enforce_unlocks, skip_step_cap=settings.skip_step_cap)


def create_session(
    *,
    store: SessionStore,
    content: ContentRegistry,
    settings: Settings,
    city_id: str,
    neighborhood_id: str | None = None,
    max_turns: int | None = None,
    seed: int | None = None,
) -> GameState:
    city = content.require_city(city_id)
    state = new_session(
        city=city,
        neighborhood_id=neighborhood_id,
        max_turns=max_turns or settings.max_turns,
        seed=seed,
    )
    store.set(state.session_id, state)
    logger.info("created session %s in %s (%s)", state.session_id, city.id, state.city.current_neighborhood_id)
    return state


def _run(
    *,
    engine: TurnEngine,
    state: GameState,
    content: ContentRegistry,
    action: ActionName,
    choice_ids: Sequence[str] | None,
) -> TurnResult:
    context = content.turn_context_for(state.city.id, state.city.current_neighborhood_id)

    if action == "next":
        return engine.advance(state, context)
    if action == "skip":
        return engine.skip_to_next_decision(state, context)
    if action == "choose":
        # Ended sessions answer with the unchanged state.
        if state.ending is None:
            if state.phase != GamePhase.decision or state.current_decision is None:
                raise NoActiveDecision("No decision is pending")
            if not choice_ids:
                raise InvalidChoice("At least one choice id is required")
        return engine.advance(state, context, choice_ids)
    raise ValueError(f"Unknown action: {action}")


def dispatch_action(
    *,
    r: redis.Redis,
    store: SessionStore,
    content: ContentRegistry,
    engine: TurnEngine,
    session_id: str,
    action: ActionName,
    choice_ids: Sequence[str] | None = None,
) -> TurnResult:
    """Load, advance and persist one session under its lock."""

    with session_lock(r=r, session_id=session_id):
        state = require_session(store=store, session_id=session_id)
        result = _run(engine=engine, state=state, content=content, action=action, choice_ids=choice_ids)
        if result.changed:
            store.set(session_id, result.state)
        else:
            store.touch(session_id)
    return result
