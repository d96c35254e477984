"""Daily activity streaks backed by completed sessions.

The denormalized counters on ``UserGamification`` are a snapshot refreshed
whenever a session completes; reads recompute from the session history so a
missed day shows up without waiting for the next completion.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fitvibe.db.models import ActivitySession, User
from fitvibe.gamification.streaks import StreakSummary, compute_streaks, reached_milestone
from fitvibe.gamification.xp_service import get_or_create_gamification
from fitvibe.notifications.service import create_notification

logger = logging.getLogger(__name__)


def resolve_timezone(name: str | None) -> tzinfo:
    """ZoneInfo for ``name``; unknown or empty names fall back to UTC."""
    if not name:
        return timezone.utc
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown timezone %r, using UTC", name)
        return timezone.utc


async def completion_timestamps(
    db: AsyncSession,
    user_id: int,
    since: datetime | None = None,
) -> list[datetime]:
    query = select(ActivitySession.ended_at).where(
        ActivitySession.user_id == user_id,
        ActivitySession.status == "completed",
        ActivitySession.ended_at.is_not(None),
    )
    if since is not None:
        query = query.where(ActivitySession.ended_at >= since)
    result = await db.execute(query)
    return [row[0] for row in result]


async def get_user_streak(db: AsyncSession, user: User, today: date | None = None) -> StreakSummary:
    tz = resolve_timezone(user.timezone)
    return compute_streaks(await completion_timestamps(db, user.id), today=today, tz=tz)


async def refresh_streak_snapshot(db: AsyncSession, redis: object, user: User) -> StreakSummary:
    """Recompute the streak, store it on the gamification row and notify milestones."""
    summary = await get_user_streak(db, user)
    gam = await get_or_create_gamification(db, user.id)
    previous = gam.current_streak

    gam.current_streak = summary.current
    gam.longest_streak = max(gam.longest_streak, summary.longest)
    gam.last_active_date = summary.last_active_date
    gam.updated_at = datetime.now(timezone.utc)
    await db.flush()

    milestone = reached_milestone(previous, summary.current)
    if milestone is not None:
        logger.info("User %d reached a %d-day streak", user.id, milestone)
        await create_notification(
            db,
            user.id,
            "gamification",
            "streak_milestone",
            title=f"{milestone}-day streak!",
            description=f"You have been active {milestone} days in a row.",
            link="/profile/streak",
            metadata={"streak": summary.current, "milestone": milestone},
            redis=redis,
        )
    return summary
