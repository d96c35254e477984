"""Pydantic models for goal endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field, field_validator

GoalType = Literal["distance", "duration", "frequency", "numeric", "completion"]
GoalFrequency = Literal["daily", "weekly", "monthly", "one_time", "custom"]
GoalStatus = Literal["pending", "active", "completed", "abandoned", "failed", "paused"]


class CreateGoalRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=128)
    description: str | None = Field(None, max_length=2000)
    goal_type: GoalType
    frequency: GoalFrequency = "one_time"
    target_value: float = Field(..., gt=0)
    unit: str = Field(..., min_length=1, max_length=16)
    activity_type: str | None = Field(None, max_length=32)
    is_adaptive: bool = False
    start_date: AwareDatetime | None = None
    end_date: AwareDatetime | None = None

    @field_validator("title")
    @classmethod
    def strip_title(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Title cannot be blank")
        return v


class UpdateGoalRequest(BaseModel):
    title: str | None = Field(None, min_length=1, max_length=128)
    description: str | None = Field(None, max_length=2000)
    activity_type: str | None = Field(None, max_length=32)
    is_adaptive: bool | None = None


class SetProgressRequest(BaseModel):
    value: float
    note: str | None = Field(None, max_length=256)


class AddProgressRequest(BaseModel):
    amount: float
    note: str | None = Field(None, max_length=256)


class ExtendDeadlineRequest(BaseModel):
    end_date: AwareDatetime


class AdaptTargetRequest(BaseModel):
    target_value: float


class GoalResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    description: str | None = None
    goal_type: str
    frequency: str
    status: str
    target_value: float
    current_value: float
    unit: str
    activity_type: str | None = None
    is_adaptive: bool
    start_date: datetime
    end_date: datetime
    completed_at: datetime | None = None
    created_at: datetime
    progress_pct: float = 0.0


class GoalListResponse(BaseModel):
    goals: list[GoalResponse]
    total: int
    page: int
    per_page: int


class ProgressEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    value: float
    delta: float
    source: str
    note: str | None = None
    recorded_at: datetime


class ProgressHistoryResponse(BaseModel):
    goal_id: int
    entries: list[ProgressEntryResponse]


class GoalAnalyticsResponse(BaseModel):
    total: int
    by_status: dict[str, int]
    by_type: dict[str, int]
    completion_rate: float
    average_active_progress: float
