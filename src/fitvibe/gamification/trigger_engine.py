"""Badge trigger engine: evaluates badge criteria after gamified events."""

from __future__ import annotations

import logging
from datetime import timezone, tzinfo
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from fitvibe.db.models import ActivitySession, BadgeDefinition
from fitvibe.gamification.badge_service import award_badge, has_badge
from fitvibe.gamification.xp_service import get_or_create_gamification

logger = logging.getLogger(__name__)

# Compared against trigger_config["threshold"] using the context value of the same name
THRESHOLD_TRIGGERS = frozenset(
    {
        "session_count",
        "distance_total",
        "streak",
        "level",
        "session_distance",
        "session_duration",
        "activity_variety",
    }
)


class TriggerEngine:
    """Evaluates badge triggers for one request's unit of work."""

    def __init__(self, db: AsyncSession, redis: object) -> None:
        self.db = db
        self.redis = redis
        self._badge_cache: dict[str, BadgeDefinition] | None = None

    async def _load_badges(self) -> dict[str, BadgeDefinition]:
        if self._badge_cache is None:
            result = await self.db.execute(
                select(BadgeDefinition)
                .where(BadgeDefinition.is_active.is_(True))
                .order_by(BadgeDefinition.sort_order)
            )
            self._badge_cache = {b.slug: b for b in result.scalars()}
        return self._badge_cache

    async def _distinct_activity_types(self, user_id: int) -> int:
        result = await self.db.execute(
            select(func.count(func.distinct(ActivitySession.activity_type))).where(
                ActivitySession.user_id == user_id,
                ActivitySession.status == "completed",
            )
        )
        return int(result.scalar_one())

    @staticmethod
    def _time_of_day_matches(config: dict[str, Any], hour: int) -> bool:
        if "before_hour" in config and hour < int(config["before_hour"]):
            return True
        return "from_hour" in config and hour >= int(config["from_hour"])

    async def _award_matching(self, user_id: int, context: dict[str, Any], types: set[str]) -> list[str]:
        badges = await self._load_badges()
        awarded: list[str] = []
        for slug, badge in badges.items():
            if badge.trigger_type not in types:
                continue
            config = badge.trigger_config or {}
            if badge.trigger_type == "time_of_day":
                hit = "hour" in context and self._time_of_day_matches(config, context["hour"])
            else:
                value = context.get(badge.trigger_type)
                hit = value is not None and value >= config.get("threshold", float("inf"))
            if not hit or await has_badge(self.db, user_id, badge.id):
                continue
            if await award_badge(self.db, self.redis, user_id, slug, metadata={"trigger": badge.trigger_type}):
                awarded.append(slug)
        return awarded

    async def evaluate_session(self, session: ActivitySession, tz: tzinfo = timezone.utc) -> list[str]:
        """Check every session-related trigger after ``session`` was completed.

        The gamification counters must already include the session. Time-of-day
        badges use the hour in ``tz``.
        Returns the slugs awarded (may be empty).
        """
        gam = await get_or_create_gamification(self.db, session.user_id)
        context = {
            "session_count": gam.total_sessions,
            "distance_total": gam.total_distance_m,
            "streak": gam.current_streak,
            "session_distance": session.distance_m,
            "session_duration": session.duration_seconds,
            "activity_variety": await self._distinct_activity_types(session.user_id),
            "hour": session.started_at.astimezone(tz).hour,
        }
        awarded = await self._award_matching(
            session.user_id, context, (THRESHOLD_TRIGGERS - {"level"}) | {"time_of_day"}
        )
        # Badge XP may have pushed the level over a milestone
        awarded += await self.evaluate_level(session.user_id)
        return awarded

    async def evaluate_level(self, user_id: int) -> list[str]:
        gam = await get_or_create_gamification(self.db, user_id)
        return await self._award_matching(user_id, {"level": gam.level}, {"level"})

    async def check_event_trigger(self, user_id: int, event_type: str) -> list[str]:
        """Award badges whose trigger is the named feature event (e.g. ``club_created``)."""
        badges = await self._load_badges()
        awarded: list[str] = []
        for slug, badge in badges.items():
            if badge.trigger_type != "event":
                continue
            if (badge.trigger_config or {}).get("event") != event_type:
                continue
            if await award_badge(self.db, self.redis, user_id, slug, metadata={"event": event_type}):
                awarded.append(slug)
        if awarded:
            awarded += await self.evaluate_level(user_id)
        return awarded
