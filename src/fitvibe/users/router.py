"""User management router: all /api/v1/users/* profile and settings endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from fitvibe.auth.dependencies import get_current_user
from fitvibe.database import get_session
from fitvibe.db.models import User, UserGamification, UserSettings
from fitvibe.notifications.service import DEFAULT_PREFERENCES
from fitvibe.social.service import connection_counts, is_following
from fitvibe.users.schemas import (
    ProfileUpdateRequest,
    PublicUserResponse,
    SettingsResponse,
    SettingsUpdateRequest,
    UserResponse,
)
from fitvibe.users.service import (
    DEFAULT_DISPLAY,
    build_user_response,
    effective_privacy,
    get_public_user,
    get_user_settings,
    update_profile,
    update_user_settings,
)

router = APIRouter(prefix="/api/v1/users", tags=["Users"])


def _settings_response(settings: UserSettings) -> SettingsResponse:
    return SettingsResponse(
        notifications={**DEFAULT_PREFERENCES, **(settings.notifications or {})},
        privacy=effective_privacy(settings),
        display={**DEFAULT_DISPLAY, **(settings.display or {})},
    )


# ---------------------------------------------------------------------------
# Profile
# ---------------------------------------------------------------------------


@router.get("/me", response_model=UserResponse)
async def get_profile(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> UserResponse:
    """Get own full profile."""
    return await build_user_response(db, user)


@router.patch("/me", response_model=UserResponse)
async def update_my_profile(
    body: ProfileUpdateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> UserResponse:
    user = await update_profile(db, user, body.model_dump(exclude_unset=True))
    await db.commit()
    return await build_user_response(db, user)


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


@router.get("/me/settings", response_model=SettingsResponse)
async def get_settings_endpoint(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> SettingsResponse:
    settings = await get_user_settings(db, user.id)
    await db.commit()
    return _settings_response(settings)


@router.patch("/me/settings", response_model=SettingsResponse)
async def update_settings_endpoint(
    body: SettingsUpdateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> SettingsResponse:
    """Merge-update settings."""
    settings = await update_user_settings(
        db,
        user.id,
        notifications=body.notifications,
        privacy=body.privacy,
        display=body.display,
    )
    await db.commit()
    return _settings_response(settings)


# ---------------------------------------------------------------------------
# Public profile
# ---------------------------------------------------------------------------


@router.get("/{user_id}", response_model=PublicUserResponse)
async def get_public_profile(
    user_id: int,
    viewer: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> PublicUserResponse:
    """Public profile. Stats and badge counts respect the owner's privacy settings."""
    user = await get_public_user(db, user_id)
    privacy = effective_privacy(await db.get(UserSettings, user.id))
    if viewer.id == user.id:
        privacy = {k: True for k in privacy}
    gam = await db.get(UserGamification, user.id)
    followers, following = await connection_counts(db, user.id)

    show_stats = privacy["showStats"]
    return PublicUserResponse(
        id=user.id,
        display_name=user.display_name,
        avatar_url=user.avatar_url,
        bio=user.bio,
        fitness_level=user.fitness_level,
        level=(gam.level if gam else 1) if show_stats else None,
        level_title=(gam.level_title if gam else None) if show_stats else None,
        total_sessions=(gam.total_sessions if gam else 0) if show_stats else None,
        badges_earned=(gam.badges_earned if gam else 0) if privacy["showBadges"] else None,
        followers=followers,
        following=following,
        is_following=await is_following(db, viewer.id, user.id),
        created_at=user.created_at,
    )
