"""Gamification API endpoints: levels, badges, XP, streaks and leaderboards."""

from __future__ import annotations

from datetime import date, datetime, timedelta

from fastapi import APIRouter, Depends, Query
from redis.asyncio import Redis
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from fitvibe.auth.dependencies import get_current_user
from fitvibe.config import get_settings
from fitvibe.database import get_session
from fitvibe.db.models import BadgeDefinition, User, UserGamification
from fitvibe.exceptions import DomainValidationError, NotFoundError
from fitvibe.gamification import badge_service, leaderboard
from fitvibe.gamification.levels import compute_level, level_table
from fitvibe.gamification.schemas import (
    ActivityTotals,
    AllBadgesResponse,
    AllLevelsResponse,
    BadgeDefinitionResponse,
    BadgeDetailResponse,
    EarnedBadgeResponse,
    GamificationSummaryResponse,
    LeaderboardEntry,
    LeaderboardRankResponse,
    LeaderboardResponse,
    LevelEntry,
    RecentEarner,
    StreakCalendarResponse,
    StreakDay,
    StreakResponse,
    UserBadgesResponse,
    XPHistoryEntry,
    XPHistoryResponse,
    XPResponse,
)
from fitvibe.gamification.streak_service import completion_timestamps, get_user_streak, resolve_timezone
from fitvibe.gamification.streaks import StreakSummary, activity_calendar
from fitvibe.gamification.xp_service import get_or_create_gamification, get_xp_history
from fitvibe.redis_client import get_redis

router = APIRouter(prefix="/api/v1", tags=["Gamification"])

_MAX_CALENDAR_DAYS = 366


def _xp_response(gam: UserGamification) -> XPResponse:
    info = compute_level(gam.total_xp)
    return XPResponse(
        total_xp=gam.total_xp,
        level=info["level"],
        level_title=info["title"],
        xp_into_level=info["xp_into_level"],
        xp_for_level=info["xp_for_level"],
        xp_to_next=info["xp_to_next"],
        progress_pct=info["progress_pct"],
        next_level=info["next_level"],
        next_title=info["next_title"],
    )


def _streak_response(summary: StreakSummary, today: date) -> StreakResponse:
    return StreakResponse(
        current_streak=summary.current,
        longest_streak=summary.longest,
        last_active_date=summary.last_active_date,
        active_today=summary.last_active_date == today,
        active_days=summary.active_days,
    )


def _user_today(user: User) -> date:
    return datetime.now(resolve_timezone(user.timezone)).date()


# ── Public endpoints ──


@router.get("/gamification/levels", response_model=AllLevelsResponse)
async def list_levels(max_level: int = Query(50, ge=1, le=200)) -> AllLevelsResponse:
    return AllLevelsResponse(levels=[LevelEntry(**row) for row in level_table(max_level)])


@router.get("/badges", response_model=AllBadgesResponse)
async def list_badges(db: AsyncSession = Depends(get_session)) -> AllBadgesResponse:
    """All active badge definitions with earn counts."""
    rows = await badge_service.list_badges(db)
    return AllBadgesResponse(
        badges=[
            BadgeDefinitionResponse(
                slug=b.slug,
                name=b.name,
                description=b.description,
                category=b.category,
                rarity=b.rarity,
                xp_reward=b.xp_reward,
                total_earned=count,
            )
            for b, count in rows
        ]
    )


@router.get("/badges/{slug}", response_model=BadgeDetailResponse)
async def get_badge(slug: str, db: AsyncSession = Depends(get_session)) -> BadgeDetailResponse:
    badge = await badge_service.get_badge_by_slug(db, slug)
    if badge is None or not badge.is_active:
        raise NotFoundError("Badge", slug)
    earners = await badge_service.recent_earners(db, badge.id)
    total = await badge_service.count_earners(db, badge.id)
    return BadgeDetailResponse(
        slug=badge.slug,
        name=badge.name,
        description=badge.description,
        category=badge.category,
        rarity=badge.rarity,
        xp_reward=badge.xp_reward,
        total_earned=total,
        trigger_type=badge.trigger_type,
        recent_earners=[RecentEarner(**e) for e in earners],
    )


@router.get("/leaderboards/{metric}", response_model=LeaderboardResponse)
async def get_leaderboard(
    metric: str,
    period: str = Query("weekly"),
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_session),
    redis: Redis = Depends(get_redis),
) -> LeaderboardResponse:
    cap = get_settings().leaderboard_max_entries
    entries, total = await leaderboard.get_leaderboard(redis, db, metric, period, page, per_page)
    entries = [e for e in entries if e["rank"] <= cap]
    return LeaderboardResponse(
        metric=metric,
        period=period,
        entries=[LeaderboardEntry(**e) for e in entries],
        total=min(total, cap),
        page=page,
        per_page=per_page,
    )


# ── Authenticated endpoints ──


@router.get("/leaderboards/{metric}/me", response_model=LeaderboardRankResponse)
async def get_my_rank(
    metric: str,
    period: str = Query("weekly"),
    user: User = Depends(get_current_user),
    redis: Redis = Depends(get_redis),
) -> LeaderboardRankResponse:
    rank, score = await leaderboard.get_user_rank(redis, metric, period, user.id)
    return LeaderboardRankResponse(metric=metric, period=period, rank=rank, score=score)


@router.get("/users/me/badges", response_model=UserBadgesResponse)
async def get_my_badges(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> UserBadgesResponse:
    earned = await badge_service.get_user_badges(db, user.id)
    total_available = await db.execute(
        select(func.count()).select_from(BadgeDefinition).where(BadgeDefinition.is_active.is_(True))
    )
    return UserBadgesResponse(
        earned=[
            EarnedBadgeResponse(
                slug=bd.slug,
                name=bd.name,
                rarity=bd.rarity,
                earned_at=ub.earned_at,
                metadata=ub.badge_metadata or {},
            )
            for ub, bd in earned
        ],
        total_available=total_available.scalar_one(),
        total_earned=len(earned),
    )


@router.get("/users/me/xp", response_model=XPResponse)
async def get_my_xp(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> XPResponse:
    gam = await get_or_create_gamification(db, user.id)
    await db.commit()
    return _xp_response(gam)


@router.get("/users/me/xp/history", response_model=XPHistoryResponse)
async def get_my_xp_history(
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=100),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> XPHistoryResponse:
    entries, total = await get_xp_history(db, user.id, page, per_page)
    return XPHistoryResponse(
        entries=[
            XPHistoryEntry(
                amount=e.amount,
                source=e.source,
                source_id=e.source_id,
                description=e.description,
                created_at=e.created_at,
            )
            for e in entries
        ],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.get("/users/me/streak", response_model=StreakResponse)
async def get_my_streak(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> StreakResponse:
    """Current streak recomputed from completed sessions in the user's timezone."""
    today = _user_today(user)
    summary = await get_user_streak(db, user, today=today)
    return _streak_response(summary, today)


@router.get("/users/me/streak/calendar", response_model=StreakCalendarResponse)
async def get_streak_calendar(
    start: date | None = Query(None),
    end: date | None = Query(None),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> StreakCalendarResponse:
    """Per-day session counts; defaults to the last 30 days."""
    end = end or _user_today(user)
    start = start or end - timedelta(days=29)
    if end < start:
        raise DomainValidationError("end must not be before start")
    if (end - start).days + 1 > _MAX_CALENDAR_DAYS:
        raise DomainValidationError(f"Calendar range is limited to {_MAX_CALENDAR_DAYS} days")

    tz = resolve_timezone(user.timezone)
    # One day of slack either side covers any UTC offset
    since = datetime.combine(start - timedelta(days=1), datetime.min.time()).replace(tzinfo=tz)
    timestamps = await completion_timestamps(db, user.id, since=since)
    days = activity_calendar(timestamps, start, end, tz)
    return StreakCalendarResponse(
        start=start,
        end=end,
        days=[StreakDay(date=d, sessions=count) for d, count in days],
    )


@router.get("/users/me/gamification", response_model=GamificationSummaryResponse)
async def get_gamification_summary(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> GamificationSummaryResponse:
    gam = await get_or_create_gamification(db, user.id)
    today = _user_today(user)
    summary = await get_user_streak(db, user, today=today)
    total_badges = await db.execute(
        select(func.count()).select_from(BadgeDefinition).where(BadgeDefinition.is_active.is_(True))
    )
    await db.commit()
    return GamificationSummaryResponse(
        xp=_xp_response(gam),
        streak=_streak_response(summary, today),
        badges={"earned": gam.badges_earned, "total": total_badges.scalar_one()},
        totals=ActivityTotals(
            total_sessions=gam.total_sessions,
            total_active_seconds=gam.total_active_seconds,
            total_distance_m=gam.total_distance_m,
            total_calories=gam.total_calories,
            goals_completed=gam.goals_completed,
            challenges_completed=gam.challenges_completed,
        ),
    )
