"""Pydantic models for health data endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field

Provider = Literal["apple_health", "google_fit", "fitbit", "garmin", "strava", "manual"]


class SourceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    provider: str
    external_account_id: str | None = None
    is_connected: bool
    connected_at: datetime
    disconnected_at: datetime | None = None
    last_synced_at: datetime | None = None


class SourceListResponse(BaseModel):
    sources: list[SourceResponse]


class ConnectSourceRequest(BaseModel):
    external_account_id: str | None = Field(None, max_length=128)


class CreateEntryRequest(BaseModel):
    data_type: str = Field(..., min_length=1, max_length=32)
    value: float
    unit: str | None = Field(None, max_length=16)
    recorded_at: AwareDatetime
    notes: str | None = Field(None, max_length=500)
    metadata: dict[str, Any] | None = None


class EntryResponse(BaseModel):
    id: int
    provider: str
    data_type: str
    value: float
    unit: str
    recorded_at: datetime
    notes: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class EntryListResponse(BaseModel):
    entries: list[EntryResponse]
    total: int
    page: int
    per_page: int


class MetricSummary(BaseModel):
    unit: str
    count: int
    min: float
    max: float
    avg: float
    latest: float
    latest_at: datetime


class HealthSummaryResponse(BaseModel):
    metrics: dict[str, MetricSummary]
