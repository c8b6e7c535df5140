from __future__ import annotations

from typing import Any
from uuid import UUID

import redis
from fastapi import APIRouter, Body, Depends, HTTPException, status

from dealflow.actions import dispatch_action
from dealflow.agents.advisor import consult_advisor
from dealflow.agents.base import Agent
from dealflow.api.deps import get_advisor_agent, get_redis
from dealflow.api.models import (
    ActionResponse,
    AdvisorRequest,
    AdvisorResponse,
    FeedEntry,
    FeedResponse,
    GameCreateRequest,
    GameListResponse,
)
from dealflow.game_store import create_game, get_game, list_games
from dealflow.models import GameSnapshot
from dealflow.settings import settings_from_env
from dealflow.streams import Feed, read_feed

router = APIRouter()


def _value_error(e: ValueError) -> HTTPException:
    if str(e) == "Game not found":
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))


@router.get("/healthcheck")
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.post("/game", response_model=GameSnapshot, status_code=status.HTTP_201_CREATED)
async def create_game_route(payload: GameCreateRequest, r: redis.Redis = Depends(get_redis)) -> GameSnapshot:
    try:
        difficulty = payload.difficulty or settings_from_env(load_env_file=False).default_difficulty
        return create_game(r=r, difficulty=difficulty, seed=payload.seed)
    except ValueError as e:
        raise _value_error(e) from e


@router.get("/game", response_model=GameListResponse)
async def list_games_route(r: redis.Redis = Depends(get_redis)) -> GameListResponse:
    return GameListResponse(games=list_games(r=r))


@router.get("/game/{game_id}", response_model=GameSnapshot)
async def get_game_route(game_id: UUID, r: redis.Redis = Depends(get_redis)) -> GameSnapshot:
    state = get_game(r=r, game_id=game_id)
    if state is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Game not found")
    return state


@router.post("/games/{game_id}/actions/{action}", response_model=ActionResponse)
async def generic_action_route(
    game_id: UUID,
    action: str,
    body: dict[str, Any] | None = Body(default=None),
    r: redis.Redis = Depends(get_redis),
) -> ActionResponse:
    """Run one game action. Rule rejections come back as `accepted=false`, not as HTTP errors."""

    try:
        result = dispatch_action(r=r, game_id=game_id, action=action, payload=body)
    except ValueError as e:
        raise _value_error(e) from e

    return ActionResponse(
        state=result.state,
        accepted=result.accepted,
        reason=result.reason,
        feed_entry_ids=result.feed_entry_ids,
    )


@router.post("/games/{game_id}/advisor", response_model=AdvisorResponse)
async def advisor_route(
    game_id: UUID,
    payload: AdvisorRequest,
    r: redis.Redis = Depends(get_redis),
    agent: Agent = Depends(get_advisor_agent),
) -> AdvisorResponse:
    try:
        outcome = await consult_advisor(
            r=r,
            game_id=game_id,
            query=payload.query,
            recent_dialogue=payload.recent_dialogue,
            agent=agent,
        )
    except ValueError as e:
        raise _value_error(e) from e
    except RuntimeError as e:
        # LLM backend misconfigured or unreachable.
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e)) from e

    return AdvisorResponse(
        text=outcome.text,
        accepted=outcome.accepted,
        reason=outcome.reason,
        effects_applied=outcome.effects_applied,
        state=outcome.state,
    )


@router.get("/games/{game_id}/feed", response_model=FeedResponse)
async def feed_route(game_id: UUID, count: int = 50, r: redis.Redis = Depends(get_redis)) -> FeedResponse:
    """Newest-first entries from the game's event feed stream."""

    if count < 1 or count > 200:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="count must be between 1 and 200")
    if get_game(r=r, game_id=game_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Game not found")

    rows = read_feed(r=r, feed=Feed(game_id=str(game_id)), count=count)
    return FeedResponse(entries=[FeedEntry(id=entry_id, fields=fields) for entry_id, fields in rows])
