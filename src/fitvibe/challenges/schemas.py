"""Pydantic models for challenge endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field

ChallengeType = Literal[
    "distance", "calories", "activity_count", "duration", "milestone", "streak", "improvement", "custom"
]


class CreateChallengeRequest(BaseModel):
    title: str = Field(..., min_length=3, max_length=128)
    description: str | None = Field(None, max_length=2000)
    challenge_type: ChallengeType
    target_value: float = Field(..., gt=0)
    unit: str = Field(..., min_length=1, max_length=16)
    activity_type: str | None = Field(None, max_length=32)
    start_date: AwareDatetime
    end_date: AwareDatetime
    is_public: bool = True
    xp_reward: int | None = Field(None, ge=0, le=5000)
    max_participants: int | None = Field(None, ge=2, le=100_000)


class ChallengeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    creator_id: int
    title: str
    description: str | None = None
    challenge_type: str
    target_value: float
    unit: str
    activity_type: str | None = None
    start_date: datetime
    end_date: datetime
    is_active: bool
    is_public: bool
    xp_reward: int
    max_participants: int | None = None
    participant_count: int


class ChallengeListResponse(BaseModel):
    challenges: list[ChallengeResponse]
    total: int
    page: int
    per_page: int


class ParticipationResponse(BaseModel):
    challenge_id: int
    progress: float
    progress_pct: float
    is_completed: bool
    completed_at: datetime | None = None
    joined_at: datetime


class MyChallengeResponse(BaseModel):
    challenge: ChallengeResponse
    participation: ParticipationResponse


class MyChallengesResponse(BaseModel):
    challenges: list[MyChallengeResponse]


class ChallengeLeaderboardEntry(BaseModel):
    rank: int
    user_id: int
    display_name: str
    avatar_url: str | None = None
    progress: float
    is_completed: bool
    completed_at: datetime | None = None


class ChallengeLeaderboardResponse(BaseModel):
    challenge_id: int
    entries: list[ChallengeLeaderboardEntry]


class ReportProgressRequest(BaseModel):
    value: float = Field(..., ge=0)
