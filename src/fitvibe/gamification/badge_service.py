"""Badge lookup and awarding."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from fitvibe.db.models import BadgeDefinition, User, UserBadge
from fitvibe.gamification.xp_service import get_or_create_gamification, grant_xp
from fitvibe.notifications.service import create_notification
from fitvibe.redis_client import publish_json

logger = logging.getLogger(__name__)


async def get_badge_by_slug(db: AsyncSession, slug: str) -> BadgeDefinition | None:
    result = await db.execute(select(BadgeDefinition).where(BadgeDefinition.slug == slug))
    return result.scalar_one_or_none()


async def has_badge(db: AsyncSession, user_id: int, badge_id: int) -> bool:
    result = await db.execute(
        select(UserBadge.id).where(UserBadge.user_id == user_id, UserBadge.badge_id == badge_id)
    )
    return result.first() is not None


async def list_badges(db: AsyncSession) -> list[tuple[BadgeDefinition, int]]:
    """Active badge definitions with how many users earned each."""
    earned = (
        select(UserBadge.badge_id, func.count(UserBadge.id).label("cnt"))
        .group_by(UserBadge.badge_id)
        .subquery()
    )
    result = await db.execute(
        select(BadgeDefinition, func.coalesce(earned.c.cnt, 0))
        .outerjoin(earned, earned.c.badge_id == BadgeDefinition.id)
        .where(BadgeDefinition.is_active.is_(True))
        .order_by(BadgeDefinition.sort_order, BadgeDefinition.id)
    )
    return [(badge, int(count)) for badge, count in result]


async def recent_earners(db: AsyncSession, badge_id: int, limit: int = 10) -> list[dict]:
    result = await db.execute(
        select(UserBadge.earned_at, User.id, User.display_name)
        .join(User, UserBadge.user_id == User.id)
        .where(UserBadge.badge_id == badge_id)
        .order_by(UserBadge.earned_at.desc())
        .limit(limit)
    )
    return [
        {"user_id": user_id, "display_name": name, "earned_at": earned_at}
        for earned_at, user_id, name in result
    ]


async def get_user_badges(db: AsyncSession, user_id: int) -> list[tuple[UserBadge, BadgeDefinition]]:
    result = await db.execute(
        select(UserBadge, BadgeDefinition)
        .join(BadgeDefinition, UserBadge.badge_id == BadgeDefinition.id)
        .where(UserBadge.user_id == user_id)
        .order_by(UserBadge.earned_at.desc())
    )
    return [(ub, bd) for ub, bd in result]


async def award_badge(
    db: AsyncSession,
    redis: object,
    user_id: int,
    badge_slug: str,
    metadata: dict | None = None,
) -> bool:
    """Award a badge. Returns False if unknown, inactive or already earned.

    Grants the badge's XP (idempotent per user and badge), bumps the
    denormalized badge count and notifies the user.
    """
    badge = await get_badge_by_slug(db, badge_slug)
    if badge is None or not badge.is_active:
        logger.warning("Badge not found or inactive: %s", badge_slug)
        return False

    if await has_badge(db, user_id, badge.id):
        return False

    now = datetime.now(timezone.utc)
    try:
        async with db.begin_nested():
            db.add(UserBadge(user_id=user_id, badge_id=badge.id, earned_at=now, badge_metadata=metadata or {}))
    except IntegrityError:
        # Awarded concurrently by another request
        return False

    await grant_xp(
        db=db,
        redis=redis,
        user_id=user_id,
        amount=badge.xp_reward,
        source="badge",
        source_id=badge_slug,
        description=f'Earned badge: "{badge.name}"',
        idempotency_key=f"badge:{badge_slug}:{user_id}",
    )

    gam = await get_or_create_gamification(db, user_id)
    gam.badges_earned += 1
    gam.updated_at = now
    await db.flush()

    await create_notification(
        db,
        user_id,
        "gamification",
        "badge_earned",
        title=f'Badge earned: "{badge.name}"',
        description=f"+{badge.xp_reward} XP. {badge.description}",
        link=f"/badges/{badge.slug}",
        metadata={"badge_slug": badge.slug, "rarity": badge.rarity},
        redis=redis,
    )
    await publish_json(
        redis,
        "pubsub:badge_earned",
        {"user_id": user_id, "badge_slug": badge.slug, "rarity": badge.rarity, "xp_reward": badge.xp_reward},
    )
    logger.info("Awarded badge %s to user %d", badge_slug, user_id)
    return True


async def count_earners(db: AsyncSession, badge_id: int) -> int:
    result = await db.execute(select(func.count(UserBadge.id)).where(UserBadge.badge_id == badge_id))
    return int(result.scalar_one())
