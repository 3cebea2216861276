from __future__ import annotations

import redis
from fastapi import APIRouter, Depends, HTTPException, Response, status

from icecream.actions import ActionName, create_session, dispatch_action
from icecream.api.deps import (
    get_content_registry,
    get_engine,
    get_redis,
    get_session_store,
    require_admin_key,
)
from icecream.api.models import (
    ChooseRequest,
    CityListResponse,
    CityProfile,
    CitySummary,
    DecisionResponse,
    DeleteAllResponse,
    GameState,
    NeighborhoodSummary,
    SessionCreateRequest,
    SessionListResponse,
    SessionSummary,
    TurnResponse,
)
from icecream.config import Settings, get_settings
from icecream.content.registry import ContentRegistry
from icecream.core.turn import TurnEngine, TurnResult
from icecream.errors import CityNotFound, SessionBusy, SessionNotFound
from icecream.session_store import RedisSessionStore, require_session

router = APIRouter()


def _http_error(e: ValueError) -> HTTPException:
    if isinstance(e, (SessionNotFound, CityNotFound)):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    if isinstance(e, SessionBusy):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))


def _turn_response(result: TurnResult) -> TurnResponse:
    return TurnResponse(
        state=result.state,
        phase_completed=result.phase_completed,
        new_events=list(result.new_events),
        decision=result.decision,
        effects_applied=result.effects_applied,
        ending=result.ending,
        changed=result.changed,
        steps=result.steps,
    )


def _city_summary(city: CityProfile) -> CitySummary:
    return CitySummary(
        id=city.id,
        name=city.name,
        state=city.state,
        neighborhoods=[NeighborhoodSummary(id=n.id, name=n.name, description=n.description) for n in city.neighborhoods],
    )


def _session_summary(state: GameState) -> SessionSummary:
    return SessionSummary(
        session_id=state.session_id,
        city_id=state.city.id,
        city_name=state.city.name,
        turn=state.turn,
        phase=state.phase,
        ended=state.is_ended,
        updated_at=state.updated_at,
    )


@router.get("/healthcheck")
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/cities", response_model=CityListResponse)
async def list_cities_route(content: ContentRegistry = Depends(get_content_registry)) -> CityListResponse:
    return CityListResponse(cities=[_city_summary(c) for c in content.list_cities()])


@router.get("/cities/{city_id}", response_model=CityProfile)
async def get_city_route(city_id: str, content: ContentRegistry = Depends(get_content_registry)) -> CityProfile:
    try:
        return content.require_city(city_id)
    except CityNotFound as e:
        raise _http_error(e) from e


@router.post("/sessions", response_model=GameState, status_code=status.HTTP_201_CREATED)
async def create_session_route(
    payload: SessionCreateRequest,
    store: RedisSessionStore = Depends(get_session_store),
    content: ContentRegistry = Depends(get_content_registry),
    settings: Settings = Depends(get_settings),
) -> GameState:
    try:
        return create_session(
            store=store,
            content=content,
            settings=settings,
            city_id=payload.city_id,
            neighborhood_id=payload.neighborhood_id,
            max_turns=payload.max_turns,
            seed=payload.seed,
        )
    except ValueError as e:
        raise _http_error(e) from e


@router.get("/sessions", response_model=SessionListResponse)
async def list_sessions_route(store: RedisSessionStore = Depends(get_session_store)) -> SessionListResponse:
    return SessionListResponse(sessions=[_session_summary(s) for s in store.list_sessions()])


@router.get("/sessions/{session_id}", response_model=GameState)
async def get_session_route(session_id: str, store: RedisSessionStore = Depends(get_session_store)) -> GameState:
    try:
        state = require_session(store=store, session_id=session_id)
    except SessionNotFound as e:
        raise _http_error(e) from e
    store.touch(session_id)
    return state


@router.delete("/sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_session_route(session_id: str, store: RedisSessionStore = Depends(get_session_store)) -> Response:
    if not store.exists(session_id):
        raise _http_error(SessionNotFound(session_id))
    store.delete(session_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


def _dispatch(
    *,
    action: ActionName,
    session_id: str,
    r: redis.Redis,
    store: RedisSessionStore,
    content: ContentRegistry,
    engine: TurnEngine,
    choice_ids: list[str] | None = None,
) -> TurnResponse:
    try:
        result = dispatch_action(
            r=r,
            store=store,
            content=content,
            engine=engine,
            session_id=session_id,
            action=action,
            choice_ids=choice_ids,
        )
    except ValueError as e:
        raise _http_error(e) from e
    return _turn_response(result)


@router.post("/sessions/{session_id}/next", response_model=TurnResponse)
async def next_phase_route(
    session_id: str,
    r: redis.Redis = Depends(get_redis),
    store: RedisSessionStore = Depends(get_session_store),
    content: ContentRegistry = Depends(get_content_registry),
    engine: TurnEngine = Depends(get_engine),
) -> TurnResponse:
    return _dispatch(action="next", session_id=session_id, r=r, store=store, content=content, engine=engine)


@router.post("/sessions/{session_id}/skip", response_model=TurnResponse)
async def skip_route(
    session_id: str,
    r: redis.Redis = Depends(get_redis),
    store: RedisSessionStore = Depends(get_session_store),
    content: ContentRegistry = Depends(get_content_registry),
    engine: TurnEngine = Depends(get_engine),
) -> TurnResponse:
    return _dispatch(action="skip", session_id=session_id, r=r, store=store, content=content, engine=engine)


@router.post("/sessions/{session_id}/choose", response_model=TurnResponse)
async def choose_route(
    session_id: str,
    payload: ChooseRequest,
    r: redis.Redis = Depends(get_redis),
    store: RedisSessionStore = Depends(get_session_store),
    content: ContentRegistry = Depends(get_content_registry),
    engine: TurnEngine = Depends(get_engine),
) -> TurnResponse:
    return _dispatch(
        action="choose",
        session_id=session_id,
        r=r,
        store=store,
        content=content,
        engine=engine,
        choice_ids=payload.choice_ids,
    )


@router.get("/sessions/{session_id}/decision", response_model=DecisionResponse)
async def get_decision_route(
    session_id: str,
    store: RedisSessionStore = Depends(get_session_store),
    engine: TurnEngine = Depends(get_engine),
) -> DecisionResponse:
    try:
        state = require_session(store=store, session_id=session_id)
    except SessionNotFound as e:
        raise _http_error(e) from e
    return DecisionResponse(decision=state.current_decision, choices=engine.decisions.choice_statuses(state))


@router.delete("/admin/sessions", response_model=DeleteAllResponse, dependencies=[Depends(require_admin_key)])
async def delete_all_sessions_route(store: RedisSessionStore = Depends(get_session_store)) -> DeleteAllResponse:
    return DeleteAllResponse(deleted=store.delete_all())
