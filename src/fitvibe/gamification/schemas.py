"""Pydantic response models for gamification endpoints."""

from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel

# --- Badge ---


class BadgeDefinitionResponse(BaseModel):
    slug: str
    name: str
    description: str
    category: str
    rarity: str
    xp_reward: int
    total_earned: int = 0


class RecentEarner(BaseModel):
    user_id: int
    display_name: str
    earned_at: datetime


class BadgeDetailResponse(BadgeDefinitionResponse):
    trigger_type: str
    recent_earners: list[RecentEarner] = []


class AllBadgesResponse(BaseModel):
    badges: list[BadgeDefinitionResponse]


class EarnedBadgeResponse(BaseModel):
    slug: str
    name: str
    rarity: str
    earned_at: datetime
    metadata: dict = {}


class UserBadgesResponse(BaseModel):
    earned: list[EarnedBadgeResponse]
    total_available: int
    total_earned: int


# --- Levels & XP ---


class LevelEntry(BaseModel):
    level: int
    title: str
    xp_required: int
    cumulative: int


class AllLevelsResponse(BaseModel):
    levels: list[LevelEntry]


class XPResponse(BaseModel):
    total_xp: int
    level: int
    level_title: str
    xp_into_level: int
    xp_for_level: int
    xp_to_next: int
    progress_pct: float
    next_level: int
    next_title: str


class XPHistoryEntry(BaseModel):
    amount: int
    source: str
    source_id: str | None = None
    description: str | None = None
    created_at: datetime


class XPHistoryResponse(BaseModel):
    entries: list[XPHistoryEntry]
    total: int
    page: int
    per_page: int


# --- Streak ---


class StreakResponse(BaseModel):
    current_streak: int
    longest_streak: int
    last_active_date: date | None = None
    active_today: bool
    active_days: int


class StreakDay(BaseModel):
    date: date
    sessions: int


class StreakCalendarResponse(BaseModel):
    start: date
    end: date
    days: list[StreakDay]


# --- Summary ---


class ActivityTotals(BaseModel):
    total_sessions: int
    total_active_seconds: int
    total_distance_m: float
    total_calories: int
    goals_completed: int
    challenges_completed: int


class GamificationSummaryResponse(BaseModel):
    xp: XPResponse
    streak: StreakResponse
    badges: dict
    totals: ActivityTotals


# --- Leaderboards ---


class LeaderboardEntry(BaseModel):
    rank: int
    user_id: int
    display_name: str
    avatar_url: str | None = None
    level: int
    score: float


class LeaderboardResponse(BaseModel):
    metric: str
    period: str
    entries: list[LeaderboardEntry]
    total: int
    page: int
    per_page: int


class LeaderboardRankResponse(BaseModel):
    metric: str
    period: str
    rank: int | None = None
    score: float
