"""User profile and settings business logic."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import structlog
from sqlalchemy import select

from fitvibe.auth.schemas import UserResponse
from fitvibe.auth.service import display_name_taken, normalize_display_name
from fitvibe.db.models import User, UserGamification, UserSettings
from fitvibe.exceptions import ConflictError, DomainValidationError, NotFoundError
from fitvibe.notifications.service import DEFAULT_PREFERENCES

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = structlog.get_logger()

DEFAULT_PRIVACY: dict[str, bool] = {
    "showStats": True,
    "showBadges": True,
    "showInLeaderboards": True,
    "allowCheers": True,
}

DEFAULT_DISPLAY: dict[str, Any] = {
    "theme": "system",
    "weekStartsOn": "monday",
}


def validate_timezone(name: str) -> str:
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise DomainValidationError(f"Unknown timezone: {name}") from e
    return name


async def update_profile(
    db: AsyncSession,
    user: User,
    changes: dict[str, Any],
) -> User:
    """
    Apply profile changes. Keys absent from ``changes`` are left alone.

    Raises:
        ConflictError: If the new display name is taken (case-insensitive).
        DomainValidationError: If the timezone is not a known IANA zone.
    """
    display_name = changes.get("display_name")
    if display_name is not None:
        if await display_name_taken(db, display_name, exclude_user_id=user.id):
            raise ConflictError("Display name already taken")
        user.display_name = display_name
        user.display_name_normalized = normalize_display_name(display_name)

    if changes.get("timezone") is not None:
        user.timezone = validate_timezone(changes["timezone"])

    for field in ("avatar_url", "bio", "fitness_level", "primary_goal", "units"):
        if changes.get(field) is not None:
            setattr(user, field, changes[field])

    await db.flush()
    logger.info("profile_updated", user_id=user.id, fields=sorted(k for k, v in changes.items() if v is not None))
    return user


async def get_user_settings(db: AsyncSession, user_id: int) -> UserSettings:
    """Get user settings, creating defaults if they don't exist."""
    result = await db.execute(select(UserSettings).where(UserSettings.user_id == user_id))
    settings = result.scalar_one_or_none()

    if settings is None:
        settings = UserSettings(
            user_id=user_id,
            notifications={},
            privacy={},
            display={},
            updated_at=datetime.now(timezone.utc),
        )
        db.add(settings)
        await db.flush()

    return settings


async def update_user_settings(
    db: AsyncSession,
    user_id: int,
    notifications: dict[str, Any] | None = None,
    privacy: dict[str, Any] | None = None,
    display: dict[str, Any] | None = None,
) -> UserSettings:
    """
    Merge-update user settings.

    Only the provided keys are updated; others remain unchanged.
    """
    settings = await get_user_settings(db, user_id)

    if notifications is not None:
        unknown = set(notifications) - set(DEFAULT_PREFERENCES)
        if unknown:
            raise DomainValidationError(f"Unknown notification preferences: {', '.join(sorted(unknown))}")
        settings.notifications = {**(settings.notifications or {}), **notifications}
    if privacy is not None:
        unknown = set(privacy) - set(DEFAULT_PRIVACY)
        if unknown:
            raise DomainValidationError(f"Unknown privacy settings: {', '.join(sorted(unknown))}")
        settings.privacy = {**(settings.privacy or {}), **privacy}
    if display is not None:
        settings.display = {**(settings.display or {}), **display}

    settings.updated_at = datetime.now(timezone.utc)
    await db.flush()
    return settings


def effective_privacy(settings: UserSettings | None) -> dict[str, bool]:
    merged = dict(DEFAULT_PRIVACY)
    if settings is not None and settings.privacy:
        merged.update({k: bool(v) for k, v in settings.privacy.items() if k in DEFAULT_PRIVACY})
    return merged


async def get_public_user(db: AsyncSession, user_id: int) -> User:
    user = await db.get(User, user_id)
    if user is None or not user.is_active or user.is_banned:
        raise NotFoundError("User", user_id)
    return user


async def build_user_response(db: AsyncSession, user: User) -> UserResponse:
    gam = await db.get(UserGamification, user.id)
    return UserResponse(
        id=user.id,
        email=user.email,
        email_verified=user.email_verified,
        display_name=user.display_name,
        avatar_url=user.avatar_url,
        bio=user.bio,
        fitness_level=user.fitness_level,
        primary_goal=user.primary_goal,
        units=user.units,
        timezone=user.timezone,
        level=gam.level if gam else 1,
        total_xp=gam.total_xp if gam else 0,
        created_at=user.created_at,
        last_login=user.last_login,
        login_count=user.login_count,
    )
