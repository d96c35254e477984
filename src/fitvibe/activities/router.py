"""Activity API endpoints: templates, session lifecycle and routes."""

from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, Depends, Query
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from fitvibe.activities import service
from fitvibe.activities.completion import ShareRequest, process_completed_session
from fitvibe.activities.schemas import (
    ActivitySummaryResponse,
    ActivityTemplateResponse,
    ActivityType,
    CompleteSessionRequest,
    CompleteSessionResponse,
    CreateTemplateRequest,
    LiveSessionResponse,
    RoutePointOut,
    RoutePointsRequest,
    RoutePointsResponse,
    RouteResponse,
    RouteStatsResponse,
    SessionListResponse,
    SessionResponse,
    StartSessionRequest,
    StreakInfo,
    TemplateListResponse,
)
from fitvibe.activities.state_machine import allowed_actions
from fitvibe.auth.dependencies import get_current_user
from fitvibe.database import get_session
from fitvibe.db.models import ActivitySession, User
from fitvibe.redis_client import get_redis

router = APIRouter(prefix="/api/v1/activities", tags=["Activities"])


def _session_response(s: ActivitySession) -> SessionResponse:
    response = SessionResponse.model_validate(s)
    response.allowed_actions = allowed_actions(s.status)
    return response


# ── Templates ──


@router.get("/templates", response_model=TemplateListResponse)
async def list_templates(
    activity_type: ActivityType | None = Query(None),
    db: AsyncSession = Depends(get_session),
) -> TemplateListResponse:
    templates = await service.list_templates(db, activity_type)
    return TemplateListResponse(templates=[ActivityTemplateResponse.model_validate(t) for t in templates])


@router.get("/templates/{template_id}", response_model=ActivityTemplateResponse)
async def get_template(template_id: int, db: AsyncSession = Depends(get_session)) -> ActivityTemplateResponse:
    return ActivityTemplateResponse.model_validate(await service.get_template(db, template_id))


@router.post("/templates", response_model=ActivityTemplateResponse, status_code=201)
async def create_template(
    body: CreateTemplateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> ActivityTemplateResponse:
    template = await service.create_template(
        db,
        user.id,
        name=body.name,
        activity_type=body.activity_type,
        calories_per_hour=body.calories_per_hour,
        default_duration_minutes=body.default_duration_minutes,
        difficulty=body.difficulty,
        description=body.description,
        tracks_route=body.tracks_route,
        slug=body.slug,
    )
    await db.commit()
    return ActivityTemplateResponse.model_validate(template)


# ── Sessions ──


@router.post("/sessions", response_model=SessionResponse, status_code=201)
async def start_session(
    body: StartSessionRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> SessionResponse:
    session = await service.start_session(
        db,
        user.id,
        template_id=body.template_id,
        activity_type=body.activity_type,
        title=body.title,
        started_at=body.started_at,
    )
    await db.commit()
    return _session_response(session)


@router.get("/sessions", response_model=SessionListResponse)
async def list_sessions(
    status: str | None = Query(None, pattern="^(active|paused|completed|cancelled)$"),
    activity_type: ActivityType | None = Query(None),
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> SessionListResponse:
    sessions, total = await service.list_sessions(db, user.id, status, activity_type, page, per_page)
    return SessionListResponse(
        sessions=[_session_response(s) for s in sessions],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.get("/sessions/current", response_model=SessionResponse | None)
async def get_current_session(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> SessionResponse | None:
    """The user's active or paused session, or null."""
    session = await service.get_open_session(db, user.id)
    return _session_response(session) if session else None


@router.get("/summary", response_model=ActivitySummaryResponse)
async def get_summary(
    days: int = Query(30, ge=1, le=365),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> ActivitySummaryResponse:
    return ActivitySummaryResponse(**await service.get_summary(db, user.id, days))


@router.get("/sessions/{session_id}", response_model=SessionResponse)
async def get_session_detail(
    session_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> SessionResponse:
    return _session_response(await service.get_owned_session(db, user.id, session_id))


@router.get("/sessions/{session_id}/live", response_model=LiveSessionResponse)
async def get_live_session(
    session_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> LiveSessionResponse:
    """Elapsed and active time, distance, pace and calories so far."""
    return LiveSessionResponse(**await service.get_live_snapshot(db, user.id, session_id))


async def _transition(db: AsyncSession, user: User, session_id: int, action: str) -> SessionResponse:
    session = await service.transition_session(db, user.id, session_id, action)
    await db.commit()
    return _session_response(session)


@router.post("/sessions/{session_id}/pause", response_model=SessionResponse)
async def pause_session(
    session_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> SessionResponse:
    return await _transition(db, user, session_id, "pause")


@router.post("/sessions/{session_id}/resume", response_model=SessionResponse)
async def resume_session(
    session_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> SessionResponse:
    return await _transition(db, user, session_id, "resume")


@router.post("/sessions/{session_id}/cancel", response_model=SessionResponse)
async def cancel_session(
    session_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> SessionResponse:
    return await _transition(db, user, session_id, "cancel")


@router.post("/sessions/{session_id}/complete", response_model=CompleteSessionResponse)
async def complete_session(
    session_id: int,
    body: CompleteSessionRequest | None = None,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    redis: Redis = Depends(get_redis),
) -> CompleteSessionResponse:
    """Complete a session and run XP, streak, badge, goal and challenge updates."""
    body = body or CompleteSessionRequest()
    session = await service.finish_session(
        db,
        user.id,
        session_id,
        distance_m=body.distance_m,
        calories=body.calories,
        avg_heart_rate=body.avg_heart_rate,
        rating=body.rating,
        notes=body.notes,
    )
    share = ShareRequest(caption=body.share.caption, privacy=body.share.privacy) if body.share else None
    result = await process_completed_session(db, redis, user, session, share)
    await db.commit()
    return CompleteSessionResponse(
        session=_session_response(result.session),
        xp_awarded=result.xp_awarded,
        level=result.level,
        leveled_up=result.leveled_up,
        streak=StreakInfo(current=result.streak.current, longest=result.streak.longest),
        badges_awarded=result.badges_awarded,
        goals_completed=result.goals_completed,
        challenges_completed=result.challenges_completed,
        share_id=result.share_id,
    )


@router.delete("/sessions/{session_id}", status_code=204)
async def delete_session(
    session_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> None:
    await service.delete_session(db, user.id, session_id)
    await db.commit()


# ── Routes ──


@router.post("/sessions/{session_id}/route", response_model=RoutePointsResponse, status_code=201)
async def add_route_points(
    session_id: int,
    body: RoutePointsRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> RoutePointsResponse:
    count = await service.add_route_points(db, user.id, session_id, [p.model_dump() for p in body.points])
    await db.commit()
    return RoutePointsResponse(session_id=session_id, point_count=count)


@router.get("/sessions/{session_id}/route", response_model=RouteResponse)
async def get_route(
    session_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> RouteResponse:
    points, stats = await service.get_route(db, user.id, session_id)
    return RouteResponse(
        session_id=session_id,
        points=[RoutePointOut.model_validate(p) for p in points],
        stats=RouteStatsResponse(**asdict(stats)),
    )
