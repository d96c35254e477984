"""Notification creation, delivery and inbox management.

A notification is persisted, then published to the user's ``ws:user:{id}``
channel for any connected client. Delivery is gated by the user's
per-subtype preferences stored in ``user_settings.notifications``.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from fitvibe.db.models import Notification, UserSettings
from fitvibe.exceptions import DomainValidationError, NotFoundError
from fitvibe.redis_client import publish_json, user_channel

logger = logging.getLogger(__name__)

VALID_TYPES = frozenset({"activity", "gamification", "social", "challenge", "goal", "system"})

DEFAULT_PREFERENCES: dict[str, bool] = {
    "inApp": True,
    "sessionCompleted": True,
    "levelUp": True,
    "badgeEarned": True,
    "streakMilestone": True,
    "newFollower": True,
    "shareLiked": True,
    "shareCommented": True,
    "cheers": True,
    "clubActivity": False,
    "challengeUpdates": True,
    "goalUpdates": True,
    "emailDigest": False,
}

# (type, subtype) -> preference key; unmatched subtypes are always delivered
PREFERENCE_MAP: dict[tuple[str, str], str] = {
    ("activity", "session_completed"): "sessionCompleted",
    ("gamification", "level_up"): "levelUp",
    ("gamification", "badge_earned"): "badgeEarned",
    ("gamification", "streak_milestone"): "streakMilestone",
    ("social", "new_follower"): "newFollower",
    ("social", "share_liked"): "shareLiked",
    ("social", "share_commented"): "shareCommented",
    ("social", "cheer_received"): "cheers",
    ("social", "club_member_joined"): "clubActivity",
    ("challenge", "challenge_joined"): "challengeUpdates",
    ("challenge", "challenge_completed"): "challengeUpdates",
    ("goal", "goal_completed"): "goalUpdates",
    ("goal", "goal_failed"): "goalUpdates",
}


def should_deliver(preferences: dict[str, Any], type_: str, subtype: str) -> bool:
    if type_ == "system":
        return True
    if not preferences.get("inApp", True):
        return False
    pref_key = PREFERENCE_MAP.get((type_, subtype))
    if pref_key is None:
        return True
    return bool(preferences.get(pref_key, DEFAULT_PREFERENCES.get(pref_key, True)))


async def get_preferences(db: AsyncSession, user_id: int) -> dict[str, bool]:
    """Return the user's preferences merged over the defaults."""
    result = await db.execute(select(UserSettings).where(UserSettings.user_id == user_id))
    settings = result.scalar_one_or_none()
    merged = dict(DEFAULT_PREFERENCES)
    if settings is not None and settings.notifications:
        merged.update({k: bool(v) for k, v in settings.notifications.items() if k in DEFAULT_PREFERENCES})
    return merged


async def update_preferences(db: AsyncSession, user_id: int, changes: dict[str, bool]) -> dict[str, bool]:
    unknown = set(changes) - set(DEFAULT_PREFERENCES)
    if unknown:
        msg = f"Unknown notification preferences: {', '.join(sorted(unknown))}"
        raise DomainValidationError(msg)

    result = await db.execute(select(UserSettings).where(UserSettings.user_id == user_id))
    settings = result.scalar_one_or_none()
    if settings is None:
        settings = UserSettings(user_id=user_id, notifications={}, privacy={}, display={})
        db.add(settings)
    # Reassign so the JSON column is flagged dirty
    settings.notifications = {**(settings.notifications or {}), **changes}
    settings.updated_at = datetime.now(timezone.utc)
    await db.flush()
    return await get_preferences(db, user_id)


def to_payload(notification: Notification) -> dict[str, Any]:
    return {
        "id": notification.id,
        "type": notification.type,
        "subtype": notification.subtype,
        "title": notification.title,
        "description": notification.description,
        "link": notification.link,
        "metadata": notification.notification_metadata or {},
        "read": notification.read,
        "created_at": notification.created_at.isoformat() if notification.created_at else None,
    }


async def create_notification(
    db: AsyncSession,
    user_id: int,
    type_: str,
    subtype: str,
    title: str,
    description: str | None = None,
    link: str | None = None,
    metadata: dict[str, Any] | None = None,
    redis: Any | None = None,
) -> Notification | None:
    """Persist and publish a notification. Returns None when preferences mute it."""
    if type_ not in VALID_TYPES:
        msg = f"Invalid notification type: {type_}"
        raise ValueError(msg)

    preferences = await get_preferences(db, user_id)
    if not should_deliver(preferences, type_, subtype):
        logger.debug("Notification %s/%s muted for user %d", type_, subtype, user_id)
        return None

    notification = Notification(
        user_id=user_id,
        type=type_,
        subtype=subtype,
        title=title,
        description=description,
        link=link,
        notification_metadata=metadata or {},
        read=False,
        created_at=datetime.now(timezone.utc),
    )
    db.add(notification)
    await db.flush()

    await publish_json(redis, user_channel(user_id), {"event": "notification", "data": to_payload(notification)})
    return notification


async def notify_many(
    db: AsyncSession,
    user_ids: Iterable[int],
    type_: str,
    subtype: str,
    title: str,
    description: str | None = None,
    link: str | None = None,
    metadata: dict[str, Any] | None = None,
    exclude_user_id: int | None = None,
    redis: Any | None = None,
) -> int:
    sent = 0
    for uid in user_ids:
        if uid == exclude_user_id:
            continue
        if await create_notification(db, uid, type_, subtype, title, description, link, metadata, redis=redis):
            sent += 1
    return sent


async def get_notifications(
    db: AsyncSession,
    user_id: int,
    page: int = 1,
    per_page: int = 20,
    unread_only: bool = False,
    type_: str | None = None,
) -> tuple[list[Notification], int]:
    """Most recent first, paginated."""
    filters = [Notification.user_id == user_id]
    if unread_only:
        filters.append(Notification.read.is_(False))
    if type_ is not None:
        filters.append(Notification.type == type_)

    total = (await db.execute(select(func.count()).select_from(Notification).where(*filters))).scalar_one()
    result = await db.execute(
        select(Notification)
        .where(*filters)
        .order_by(Notification.created_at.desc(), Notification.id)
        .offset((page - 1) * per_page)
        .limit(per_page)
    )
    return list(result.scalars().all()), total


async def mark_as_read(db: AsyncSession, user_id: int, notification_id: str) -> None:
    result = await db.execute(
        update(Notification)
        .where(Notification.id == notification_id, Notification.user_id == user_id)
        .values(read=True)
    )
    if not result.rowcount:
        raise NotFoundError("Notification", notification_id)
    await db.flush()


async def mark_many_as_read(db: AsyncSession, user_id: int, notification_ids: list[str]) -> int:
    if not notification_ids:
        return 0
    result = await db.execute(
        update(Notification)
        .where(
            Notification.user_id == user_id,
            Notification.id.in_(notification_ids),
            Notification.read.is_(False),
        )
        .values(read=True)
    )
    await db.flush()
    return result.rowcount or 0


async def mark_all_as_read(db: AsyncSession, user_id: int) -> int:
    result = await db.execute(
        update(Notification)
        .where(Notification.user_id == user_id, Notification.read.is_(False))
        .values(read=True)
    )
    await db.flush()
    return result.rowcount or 0


async def delete_notification(db: AsyncSession, user_id: int, notification_id: str) -> None:
    result = await db.execute(
        delete(Notification).where(Notification.id == notification_id, Notification.user_id == user_id)
    )
    if not result.rowcount:
        raise NotFoundError("Notification", notification_id)
    await db.flush()


async def get_counts(db: AsyncSession, user_id: int) -> dict[str, Any]:
    """Total and unread counts, plus unread per type."""
    total = (
        await db.execute(select(func.count()).select_from(Notification).where(Notification.user_id == user_id))
    ).scalar_one()
    rows = await db.execute(
        select(Notification.type, func.count())
        .where(Notification.user_id == user_id, Notification.read.is_(False))
        .group_by(Notification.type)
    )
    by_type = {type_: count for type_, count in rows}
    return {"total": total, "unread": sum(by_type.values()), "unread_by_type": by_type}
