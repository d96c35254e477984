"""Leaderboards on Redis sorted sets.

One sorted set per (metric, period); members are user ids, scores are the
metric totals for that period. Completed sessions and XP grants increment
every period bucket at once.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from functools import partial
from typing import Any

from redis.exceptions import RedisError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fitvibe.database import after_commit
from fitvibe.db.models import User, UserGamification
from fitvibe.exceptions import DomainValidationError

logger = logging.getLogger(__name__)

METRICS = ("xp", "sessions", "distance", "calories", "duration")
PERIODS = ("alltime", "weekly", "monthly")

_PERIOD_TTL_SECONDS = {
    "weekly": 60 * 60 * 24 * 7 * 8,
    "monthly": 60 * 60 * 24 * 400,
}


def build_leaderboard_key(metric: str, period: str, when: datetime | None = None) -> str:
    """Redis key for a metric/period bucket containing ``when`` (default now)."""
    if metric not in METRICS:
        msg = f"Unknown leaderboard metric: {metric}"
        raise DomainValidationError(msg)
    when = when or datetime.now(timezone.utc)
    if period == "alltime":
        return f"leaderboard:{metric}:alltime"
    if period == "weekly":
        iso = when.isocalendar()
        return f"leaderboard:{metric}:weekly:{iso.year}-W{iso.week:02d}"
    if period == "monthly":
        return f"leaderboard:{metric}:monthly:{when:%Y-%m}"
    msg = f"Unknown leaderboard period: {period}"
    raise DomainValidationError(msg)


async def increment_scores(
    redis: Any,
    user_id: int,
    increments: dict[str, float],
    when: datetime | None = None,
) -> None:
    """Add to the user's score in every period for each metric.

    Leaderboards are derived data; Redis failures are logged and skipped.
    """
    if redis is None:
        return
    try:
        pipe = redis.pipeline()
        for metric, amount in increments.items():
            if amount <= 0:
                continue
            for period in PERIODS:
                key = build_leaderboard_key(metric, period, when)
                pipe.zincrby(key, amount, str(user_id))
                if period in _PERIOD_TTL_SECONDS:
                    pipe.expire(key, _PERIOD_TTL_SECONDS[period])
        await pipe.execute()
    except RedisError:
        logger.warning("Failed to update leaderboards for user %d", user_id, exc_info=True)


def queue_scores(
    db: AsyncSession,
    redis: Any,
    user_id: int,
    increments: dict[str, float],
    when: datetime | None = None,
) -> None:
    """Apply ``increment_scores`` once ``db``'s transaction commits."""
    after_commit(db, partial(increment_scores, redis, user_id, dict(increments), when))


async def _load_profiles(db: AsyncSession, user_ids: list[int]) -> dict[int, dict]:
    if not user_ids:
        return {}
    result = await db.execute(
        select(User, UserGamification)
        .outerjoin(UserGamification, UserGamification.user_id == User.id)
        .where(User.id.in_(user_ids))
    )
    return {
        user.id: {
            "display_name": user.display_name,
            "avatar_url": user.avatar_url,
            "level": gam.level if gam else 1,
        }
        for user, gam in result
    }


async def get_leaderboard(
    redis: Any,
    db: AsyncSession,
    metric: str,
    period: str = "weekly",
    page: int = 1,
    per_page: int = 20,
) -> tuple[list[dict], int]:
    """One page of the leaderboard, highest score first, with profile data."""
    key = build_leaderboard_key(metric, period)
    start = (page - 1) * per_page
    rows = await redis.zrevrange(key, start, start + per_page - 1, withscores=True)
    total = await redis.zcard(key)

    user_ids = [int(member) for member, _ in rows]
    profiles = await _load_profiles(db, user_ids)

    entries = []
    for offset, (member, score) in enumerate(rows):
        uid = int(member)
        profile = profiles.get(uid, {"display_name": "Unknown", "avatar_url": None, "level": 1})
        entries.append({"rank": start + offset + 1, "user_id": uid, "score": float(score), **profile})
    return entries, int(total)


async def get_user_rank(redis: Any, metric: str, period: str, user_id: int) -> tuple[int | None, float]:
    """1-based rank and score; rank is None if the user has no score yet."""
    key = build_leaderboard_key(metric, period)
    rank = await redis.zrevrank(key, str(user_id))
    if rank is None:
        return None, 0.0
    score = await redis.zscore(key, str(user_id))
    return int(rank) + 1, float(score or 0)
