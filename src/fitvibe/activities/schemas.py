"""Pydantic models for activity endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field

ActivityType = Literal[
    "running", "cycling", "walking", "hiking", "swimming", "rowing", "strength", "yoga", "hiit", "dance", "other"
]


class ActivityTemplateResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    slug: str
    name: str
    activity_type: str
    description: str
    difficulty: str
    calories_per_hour: int
    default_duration_minutes: int
    tracks_route: bool


class TemplateListResponse(BaseModel):
    templates: list[ActivityTemplateResponse]


class StartSessionRequest(BaseModel):
    template_id: int | None = None
    activity_type: ActivityType | None = None
    title: str | None = Field(None, max_length=128)
    started_at: AwareDatetime | None = None


class ShareOptions(BaseModel):
    caption: str | None = Field(None, max_length=500)
    privacy: Literal["public", "followers_only", "private"] = "public"


class CompleteSessionRequest(BaseModel):
    distance_m: float | None = Field(None, ge=0, le=1_000_000)
    calories: int | None = Field(None, ge=0, le=20_000)
    avg_heart_rate: int | None = Field(None, ge=25, le=250)
    rating: int | None = Field(None, ge=1, le=5)
    notes: str | None = Field(None, max_length=2000)
    share: ShareOptions | None = None


class SessionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    template_id: int | None = None
    activity_type: str
    title: str | None = None
    status: str
    started_at: datetime
    ended_at: datetime | None = None
    paused_at: datetime | None = None
    paused_seconds: int
    duration_seconds: int
    distance_m: float
    calories: int
    avg_heart_rate: int | None = None
    rating: int | None = None
    notes: str | None = None
    xp_awarded: int
    allowed_actions: list[str] = []


class SessionListResponse(BaseModel):
    sessions: list[SessionResponse]
    total: int
    page: int
    per_page: int


class StreakInfo(BaseModel):
    current: int
    longest: int


class CompleteSessionResponse(BaseModel):
    session: SessionResponse
    xp_awarded: int
    level: int
    leveled_up: bool
    streak: StreakInfo
    badges_awarded: list[str]
    goals_completed: list[int]
    challenges_completed: list[int]
    share_id: int | None = None


class RoutePointIn(BaseModel):
    latitude: float
    longitude: float
    elevation_m: float | None = None
    recorded_at: AwareDatetime


class RoutePointsRequest(BaseModel):
    points: list[RoutePointIn] = Field(..., min_length=1, max_length=1000)


class RoutePointsResponse(BaseModel):
    session_id: int
    point_count: int


class RoutePointOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    sequence: int
    latitude: float
    longitude: float
    elevation_m: float | None = None
    recorded_at: datetime


class RouteStatsResponse(BaseModel):
    point_count: int
    distance_m: float
    elapsed_seconds: int
    avg_speed_mps: float
    max_speed_mps: float
    elevation_gain_m: float
    elevation_loss_m: float
    min_elevation_m: float | None = None
    max_elevation_m: float | None = None


class RouteResponse(BaseModel):
    session_id: int
    points: list[RoutePointOut]
    stats: RouteStatsResponse


class ActivityTotalsResponse(BaseModel):
    sessions: int
    duration_seconds: int
    distance_m: float
    calories: int


class ActivitySummaryResponse(BaseModel):
    days: int
    since: datetime
    totals: ActivityTotalsResponse
    by_type: dict[str, ActivityTotalsResponse]


class CreateTemplateRequest(BaseModel):
    name: str = Field(..., min_length=3, max_length=128)
    activity_type: ActivityType
    difficulty: Literal["easy", "moderate", "hard", "extreme"] = "moderate"
    calories_per_hour: int = Field(..., ge=50, le=2000)
    default_duration_minutes: int = Field(30, ge=1, le=600)
    description: str = Field("", max_length=2000)
    tracks_route: bool = False
    slug: str | None = Field(None, min_length=3, max_length=64, pattern=r"^[a-z0-9]+(?:-[a-z0-9]+)*$")


class LiveSessionResponse(BaseModel):
    session_id: int
    activity_type: str
    status: str
    started_at: datetime
    elapsed_seconds: int
    active_seconds: int
    paused_seconds: int
    is_paused: bool
    distance_m: float
    pace_seconds_per_km: float | None = None
    calories: int
    intensity: str
    planned_duration_minutes: int | None = None
    duration_progress_pct: float | None = None
    route_point_count: int
    cheer_count: int
    as_of: datetime
