"""Notification inbox and preference endpoints."""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from fitvibe.auth.dependencies import get_current_user
from fitvibe.database import get_session
from fitvibe.db.models import Notification, User
from fitvibe.notifications import service
from fitvibe.notifications.schemas import (
    MarkReadRequest,
    MarkReadResponse,
    NotificationCountsResponse,
    NotificationListResponse,
    NotificationPreferences,
    NotificationPreferencesUpdate,
    NotificationResponse,
)

router = APIRouter(prefix="/api/v1/notifications", tags=["Notifications"])


def _to_response(n: Notification) -> NotificationResponse:
    return NotificationResponse(
        id=str(n.id),
        type=n.type,
        subtype=n.subtype,
        title=n.title,
        description=n.description,
        link=n.link,
        metadata=n.notification_metadata or {},
        read=n.read,
        created_at=n.created_at,
    )


@router.get("", response_model=NotificationListResponse)
async def list_notifications(
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    unread_only: bool = Query(False),
    type: str | None = Query(None),  # noqa: A002
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> NotificationListResponse:
    notifications, total = await service.get_notifications(
        db, user.id, page, per_page, unread_only=unread_only, type_=type
    )
    return NotificationListResponse(
        notifications=[_to_response(n) for n in notifications],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.get("/counts", response_model=NotificationCountsResponse)
async def notification_counts(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> NotificationCountsResponse:
    return NotificationCountsResponse(**await service.get_counts(db, user.id))


@router.get("/preferences", response_model=NotificationPreferences)
async def get_preferences(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> NotificationPreferences:
    return NotificationPreferences(preferences=await service.get_preferences(db, user.id))


@router.put("/preferences", response_model=NotificationPreferences)
async def update_preferences(
    body: NotificationPreferencesUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> NotificationPreferences:
    prefs = await service.update_preferences(db, user.id, body.preferences)
    await db.commit()
    return NotificationPreferences(preferences=prefs)


@router.post("/read-all", response_model=MarkReadResponse)
async def mark_all_read(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> MarkReadResponse:
    count = await service.mark_all_as_read(db, user.id)
    await db.commit()
    return MarkReadResponse(updated=count)


@router.post("/read", response_model=MarkReadResponse)
async def mark_read_bulk(
    body: MarkReadRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> MarkReadResponse:
    count = await service.mark_many_as_read(db, user.id, [str(i) for i in body.notification_ids])
    await db.commit()
    return MarkReadResponse(updated=count)


@router.post("/{notification_id}/read", response_model=MarkReadResponse)
async def mark_notification_read(
    notification_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> MarkReadResponse:
    await service.mark_as_read(db, user.id, str(notification_id))
    await db.commit()
    return MarkReadResponse(updated=1)


@router.delete("/{notification_id}", status_code=204)
async def delete_notification(
    notification_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> None:
    await service.delete_notification(db, user.id, str(notification_id))
    await db.commit()
