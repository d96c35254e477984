"""Challenge API endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from fitvibe.auth.dependencies import get_current_user
from fitvibe.challenges import service
from fitvibe.challenges.schemas import (
    ChallengeLeaderboardEntry,
    ChallengeLeaderboardResponse,
    ChallengeListResponse,
    ChallengeResponse,
    ChallengeType,
    CreateChallengeRequest,
    MyChallengeResponse,
    MyChallengesResponse,
    ParticipationResponse,
    ReportProgressRequest,
)
from fitvibe.database import get_session
from fitvibe.db.models import Challenge, ChallengeParticipant, User
from fitvibe.redis_client import get_redis

router = APIRouter(prefix="/api/v1/challenges", tags=["Challenges"])


def _participation(p: ChallengeParticipant, challenge: Challenge) -> ParticipationResponse:
    pct = min(100.0, 100.0 * p.progress / challenge.target_value) if challenge.target_value else 0.0
    return ParticipationResponse(
        challenge_id=challenge.id,
        progress=p.progress,
        progress_pct=round(pct, 1),
        is_completed=p.is_completed,
        completed_at=p.completed_at,
        joined_at=p.joined_at,
    )


@router.post("", response_model=ChallengeResponse, status_code=201)
async def create_challenge(
    body: CreateChallengeRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> ChallengeResponse:
    challenge = await service.create_challenge(db, user.id, **body.model_dump())
    await db.commit()
    return ChallengeResponse.model_validate(challenge)


@router.get("", response_model=ChallengeListResponse)
async def list_challenges(
    active_only: bool = Query(True),
    challenge_type: ChallengeType | None = Query(None),
    q: str | None = Query(None, max_length=100),
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_session),
) -> ChallengeListResponse:
    challenges, total = await service.list_challenges(db, active_only, challenge_type, q, page, per_page)
    return ChallengeListResponse(
        challenges=[ChallengeResponse.model_validate(c) for c in challenges],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.get("/mine", response_model=MyChallengesResponse)
async def my_challenges(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> MyChallengesResponse:
    rows = await service.get_user_challenges(db, user.id)
    return MyChallengesResponse(
        challenges=[
            MyChallengeResponse(challenge=ChallengeResponse.model_validate(c), participation=_participation(p, c))
            for p, c in rows
        ]
    )


@router.get("/{challenge_id}", response_model=ChallengeResponse)
async def get_challenge(challenge_id: int, db: AsyncSession = Depends(get_session)) -> ChallengeResponse:
    return ChallengeResponse.model_validate(await service.get_challenge(db, challenge_id))


@router.post("/{challenge_id}/activate", response_model=ChallengeResponse)
async def activate_challenge(
    challenge_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> ChallengeResponse:
    challenge = await service.activate_challenge(db, user.id, challenge_id)
    await db.commit()
    return ChallengeResponse.model_validate(challenge)


@router.post("/{challenge_id}/join", response_model=ParticipationResponse, status_code=201)
async def join_challenge(
    challenge_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    redis: Redis = Depends(get_redis),
) -> ParticipationResponse:
    participant = await service.join_challenge(db, redis, user.id, challenge_id)
    challenge = await service.get_challenge(db, challenge_id)
    await db.commit()
    return _participation(participant, challenge)


@router.post("/{challenge_id}/leave", status_code=204)
async def leave_challenge(
    challenge_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> None:
    await service.leave_challenge(db, user.id, challenge_id)
    await db.commit()


@router.post("/{challenge_id}/progress", response_model=ParticipationResponse)
async def report_progress(
    challenge_id: int,
    body: ReportProgressRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    redis: Redis = Depends(get_redis),
) -> ParticipationResponse:
    participant = await service.report_progress(db, redis, user.id, challenge_id, body.value)
    challenge = await service.get_challenge(db, challenge_id)
    await db.commit()
    return _participation(participant, challenge)


@router.get("/{challenge_id}/leaderboard", response_model=ChallengeLeaderboardResponse)
async def challenge_leaderboard(
    challenge_id: int,
    limit: int = Query(50, ge=1, le=100),
    db: AsyncSession = Depends(get_session),
) -> ChallengeLeaderboardResponse:
    rows = await service.get_leaderboard(db, challenge_id, limit)
    return ChallengeLeaderboardResponse(
        challenge_id=challenge_id,
        entries=[
            ChallengeLeaderboardEntry(
                rank=i,
                user_id=u.id,
                display_name=u.display_name,
                avatar_url=u.avatar_url,
                progress=p.progress,
                is_completed=p.is_completed,
                completed_at=p.completed_at,
            )
            for i, (p, u) in enumerate(rows, start=1)
        ],
    )
