"""Request/response schemas for user endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

from fitvibe.auth.schemas import FitnessLevel, PrimaryGoal, UserResponse

__all__ = [
    "ProfileUpdateRequest",
    "PublicUserResponse",
    "SettingsResponse",
    "SettingsUpdateRequest",
    "UserResponse",
]


class ProfileUpdateRequest(BaseModel):
    display_name: str | None = Field(None, min_length=3, max_length=64)
    avatar_url: str | None = Field(None, max_length=2048)
    bio: str | None = Field(None, max_length=280)
    fitness_level: FitnessLevel | None = None
    primary_goal: PrimaryGoal | None = None
    units: Literal["metric", "imperial"] | None = None
    timezone: str | None = Field(None, max_length=64)

    @field_validator("display_name")
    @classmethod
    def strip_display_name(cls, v: str | None) -> str | None:
        if v is None:
            return v
        v = v.strip()
        if len(v) < 3:
            msg = "Display name must be at least 3 characters"
            raise ValueError(msg)
        return v


class SettingsResponse(BaseModel):
    notifications: dict[str, Any]
    privacy: dict[str, Any]
    display: dict[str, Any]


class SettingsUpdateRequest(BaseModel):
    notifications: dict[str, bool] | None = None
    privacy: dict[str, bool] | None = None
    display: dict[str, Any] | None = None


class PublicUserResponse(BaseModel):
    id: int
    display_name: str
    avatar_url: str | None = None
    bio: str | None = None
    fitness_level: str
    level: int | None = None
    level_title: str | None = None
    total_sessions: int | None = None
    badges_earned: int | None = None
    followers: int
    following: int
    is_following: bool
    created_at: datetime
