"""Goal API endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from fitvibe.auth.dependencies import get_current_user
from fitvibe.database import get_session
from fitvibe.db.models import Goal, User
from fitvibe.goals import service
from fitvibe.goals.schemas import (
    AdaptTargetRequest,
    AddProgressRequest,
    CreateGoalRequest,
    ExtendDeadlineRequest,
    GoalAnalyticsResponse,
    GoalListResponse,
    GoalResponse,
    GoalStatus,
    ProgressEntryResponse,
    ProgressHistoryResponse,
    SetProgressRequest,
    UpdateGoalRequest,
)
from fitvibe.redis_client import get_redis

router = APIRouter(prefix="/api/v1/goals", tags=["Goals"])


def _goal_response(goal: Goal) -> GoalResponse:
    response = GoalResponse.model_validate(goal)
    response.progress_pct = service.progress_pct(goal)
    return response


@router.post("", response_model=GoalResponse, status_code=201)
async def create_goal(
    body: CreateGoalRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> GoalResponse:
    goal = await service.create_goal(db, user.id, **body.model_dump())
    await db.commit()
    return _goal_response(goal)


@router.get("", response_model=GoalListResponse)
async def list_goals(
    status: GoalStatus | None = Query(None),
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    redis: Redis = Depends(get_redis),
) -> GoalListResponse:
    goals, total = await service.list_goals(db, redis, user.id, status, page, per_page)
    await db.commit()
    return GoalListResponse(goals=[_goal_response(g) for g in goals], total=total, page=page, per_page=per_page)


@router.get("/analytics", response_model=GoalAnalyticsResponse)
async def goal_analytics(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> GoalAnalyticsResponse:
    return GoalAnalyticsResponse(**await service.get_analytics(db, user.id))


@router.get("/{goal_id}", response_model=GoalResponse)
async def get_goal(
    goal_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    redis: Redis = Depends(get_redis),
) -> GoalResponse:
    goal = await service.get_goal_refreshed(db, redis, user.id, goal_id)
    await db.commit()
    return _goal_response(goal)


@router.patch("/{goal_id}", response_model=GoalResponse)
async def update_goal(
    goal_id: int,
    body: UpdateGoalRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> GoalResponse:
    goal = await service.update_goal(db, user.id, goal_id, body.model_dump(exclude_unset=True))
    await db.commit()
    return _goal_response(goal)


@router.put("/{goal_id}/progress", response_model=GoalResponse)
async def set_progress(
    goal_id: int,
    body: SetProgressRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    redis: Redis = Depends(get_redis),
) -> GoalResponse:
    goal = await service.set_progress(db, redis, user.id, goal_id, body.value, body.note)
    await db.commit()
    return _goal_response(goal)


@router.post("/{goal_id}/progress", response_model=GoalResponse)
async def add_progress(
    goal_id: int,
    body: AddProgressRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    redis: Redis = Depends(get_redis),
) -> GoalResponse:
    goal = await service.add_progress(db, redis, user.id, goal_id, body.amount, body.note)
    await db.commit()
    return _goal_response(goal)


@router.post("/{goal_id}/pause", response_model=GoalResponse)
async def pause_goal(
    goal_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    redis: Redis = Depends(get_redis),
) -> GoalResponse:
    goal = await service.pause_goal(db, redis, user.id, goal_id)
    await db.commit()
    return _goal_response(goal)


@router.post("/{goal_id}/resume", response_model=GoalResponse)
async def resume_goal(
    goal_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    redis: Redis = Depends(get_redis),
) -> GoalResponse:
    goal = await service.resume_goal(db, redis, user.id, goal_id)
    await db.commit()
    return _goal_response(goal)


@router.post("/{goal_id}/abandon", response_model=GoalResponse)
async def abandon_goal(
    goal_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> GoalResponse:
    goal = await service.abandon_goal(db, user.id, goal_id)
    await db.commit()
    return _goal_response(goal)


@router.post("/{goal_id}/extend", response_model=GoalResponse)
async def extend_deadline(
    goal_id: int,
    body: ExtendDeadlineRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    redis: Redis = Depends(get_redis),
) -> GoalResponse:
    goal = await service.extend_deadline(db, redis, user.id, goal_id, body.end_date)
    await db.commit()
    return _goal_response(goal)


@router.post("/{goal_id}/adapt", response_model=GoalResponse)
async def adapt_target(
    goal_id: int,
    body: AdaptTargetRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    redis: Redis = Depends(get_redis),
) -> GoalResponse:
    goal = await service.adapt_target(db, redis, user.id, goal_id, body.target_value)
    await db.commit()
    return _goal_response(goal)


@router.get("/{goal_id}/history", response_model=ProgressHistoryResponse)
async def progress_history(
    goal_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> ProgressHistoryResponse:
    entries = await service.get_progress_history(db, user.id, goal_id)
    return ProgressHistoryResponse(
        goal_id=goal_id, entries=[ProgressEntryResponse.model_validate(e) for e in entries]
    )


@router.delete("/{goal_id}", status_code=204)
async def delete_goal(
    goal_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> None:
    await service.delete_goal(db, user.id, goal_id)
    await db.commit()
