"""XP grants with idempotency and level-up detection."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from fitvibe.config import get_settings
from fitvibe.db.models import UserGamification, XPLedger
from fitvibe.gamification.leaderboard import queue_scores
from fitvibe.gamification.levels import compute_level
from fitvibe.notifications.service import create_notification
from fitvibe.redis_client import publish_json

logger = logging.getLogger(__name__)

# Bonus XP per minute on top of the base, by template difficulty
INTENSITY_MULTIPLIER = {"easy": 1.0, "moderate": 1.25, "hard": 1.5, "extreme": 2.0}


async def get_or_create_gamification(db: AsyncSession, user_id: int) -> UserGamification:
    """Get or create the denormalized gamification row for a user."""
    result = await db.execute(select(UserGamification).where(UserGamification.user_id == user_id))
    gam = result.scalar_one_or_none()
    if gam is None:
        gam = UserGamification(
            user_id=user_id,
            total_xp=0,
            level=1,
            level_title=compute_level(0)["title"],
            updated_at=datetime.now(timezone.utc),
        )
        db.add(gam)
        await db.flush()
    return gam


def session_xp(active_seconds: int, difficulty: str = "moderate") -> int:
    """XP for a completed session: a flat base plus capped, intensity-scaled minutes."""
    settings = get_settings()
    minutes = min(active_seconds // 60, settings.xp_session_max_minutes)
    multiplier = INTENSITY_MULTIPLIER.get(difficulty, 1.0)
    return settings.xp_session_base + int(minutes * multiplier)


async def grant_xp(
    db: AsyncSession,
    redis: object,
    user_id: int,
    amount: int,
    source: str,
    source_id: str,
    description: str,
    idempotency_key: str,
) -> bool:
    """Grant XP to a user. Returns True if granted, False if already granted.

    The ledger row, the denormalized total and the derived level are written
    in the caller's transaction. A level change emits a level_up notification.
    """
    if amount <= 0:
        return False

    existing = await db.execute(select(XPLedger.id).where(XPLedger.idempotency_key == idempotency_key))
    if existing.first() is not None:
        return False

    now = datetime.now(timezone.utc)
    db.add(
        XPLedger(
            user_id=user_id,
            amount=amount,
            source=source,
            source_id=source_id,
            description=description,
            idempotency_key=idempotency_key,
            created_at=now,
        )
    )

    gam = await get_or_create_gamification(db, user_id)
    old_level = gam.level
    gam.total_xp += amount

    level_info = compute_level(gam.total_xp)
    gam.level = level_info["level"]
    gam.level_title = level_info["title"]
    gam.updated_at = now
    await db.flush()

    queue_scores(db, redis, user_id, {"xp": amount}, now)

    if gam.level > old_level:
        logger.info("User %d levelled up %d -> %d", user_id, old_level, gam.level)
        await _emit_level_up(db, redis, user_id, old_level, gam.level, level_info["title"])

    return True


async def _emit_level_up(
    db: AsyncSession,
    redis: object,
    user_id: int,
    old_level: int,
    new_level: int,
    title: str,
) -> None:
    await create_notification(
        db,
        user_id,
        "gamification",
        "level_up",
        title="Level Up!",
        description=f"You reached level {new_level}: {title}",
        link="/profile/level",
        metadata={"old_level": old_level, "new_level": new_level, "title": title},
        redis=redis,
    )
    await publish_json(
        redis,
        "pubsub:level_up",
        {"user_id": user_id, "old_level": old_level, "new_level": new_level, "title": title},
    )


async def get_xp_history(
    db: AsyncSession,
    user_id: int,
    page: int = 1,
    per_page: int = 20,
) -> tuple[list[XPLedger], int]:
    total = (
        await db.execute(select(func.count()).select_from(XPLedger).where(XPLedger.user_id == user_id))
    ).scalar_one()
    result = await db.execute(
        select(XPLedger)
        .where(XPLedger.user_id == user_id)
        .order_by(XPLedger.created_at.desc(), XPLedger.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
    )
    return list(result.scalars().all()), total
