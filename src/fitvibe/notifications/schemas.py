"""Pydantic models for notification endpoints."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class NotificationResponse(BaseModel):
    id: str
    type: str
    subtype: str
    title: str
    description: str | None = None
    link: str | None = None
    metadata: dict[str, Any] = {}
    read: bool
    created_at: datetime


class NotificationListResponse(BaseModel):
    notifications: list[NotificationResponse]
    total: int
    page: int
    per_page: int


class NotificationCountsResponse(BaseModel):
    total: int
    unread: int
    unread_by_type: dict[str, int] = {}


class MarkReadRequest(BaseModel):
    notification_ids: list[uuid.UUID] = Field(..., min_length=1, max_length=200)


class MarkReadResponse(BaseModel):
    updated: int


class NotificationPreferences(BaseModel):
    preferences: dict[str, bool]


class NotificationPreferencesUpdate(BaseModel):
    preferences: dict[str, bool] = Field(..., min_length=1)
