"""Badge definitions seeded at startup."""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from fitvibe.db.models import BadgeDefinition
from fitvibe.db.seeding import upsert_by_slug

logger = logging.getLogger(__name__)


def _badge(
    slug: str,
    name: str,
    description: str,
    category: str,
    rarity: str,
    xp_reward: int,
    trigger_type: str,
    trigger_config: dict,
    sort_order: int,
) -> dict:
    return {
        "slug": slug,
        "name": name,
        "description": description,
        "category": category,
        "rarity": rarity,
        "xp_reward": xp_reward,
        "trigger_type": trigger_type,
        "trigger_config": trigger_config,
        "sort_order": sort_order,
        "is_active": True,
    }


BADGE_SEED_DATA: list[dict] = [
    # Consistency
    _badge("first_workout", "First Step", "Complete your very first workout", "milestones", "common",
           50, "session_count", {"threshold": 1}, 1),
    _badge("workouts_10", "Getting Into It", "Complete 10 workouts", "milestones", "common",
           100, "session_count", {"threshold": 10}, 2),
    _badge("workouts_50", "Habit Formed", "Complete 50 workouts", "milestones", "rare",
           250, "session_count", {"threshold": 50}, 3),
    _badge("workouts_100", "Centurion", "Complete 100 workouts", "milestones", "epic",
           500, "session_count", {"threshold": 100}, 4),
    # Streaks
    _badge("streak_3", "Warming Up", "Work out 3 days in a row", "streaks", "common",
           50, "streak", {"threshold": 3}, 10),
    _badge("streak_7", "Week Warrior", "Work out 7 days in a row", "streaks", "rare",
           150, "streak", {"threshold": 7}, 11),
    _badge("streak_30", "Unstoppable", "Work out 30 days in a row", "streaks", "legendary",
           750, "streak", {"threshold": 30}, 12),
    # Distance
    _badge("distance_10k", "10K Club", "Cover 10 km in total", "distance", "common",
           75, "distance_total", {"threshold": 10_000}, 20),
    _badge("distance_100k", "Road Runner", "Cover 100 km in total", "distance", "rare",
           300, "distance_total", {"threshold": 100_000}, 21),
    _badge("half_marathon", "Half Way There", "Cover 21.1 km in a single session", "distance", "rare",
           250, "session_distance", {"threshold": 21_097}, 22),
    _badge("marathon", "Marathoner", "Cover 42.2 km in a single session", "distance", "epic",
           500, "session_distance", {"threshold": 42_195}, 23),
    # Time
    _badge("endurance_hour", "Hour of Power", "Stay active for 60 minutes in one session", "endurance",
           "common", 75, "session_duration", {"threshold": 3600}, 30),
    _badge("early_bird", "Early Bird", "Start a workout before 7 am", "lifestyle", "common",
           50, "time_of_day", {"before_hour": 7}, 31),
    _badge("night_owl", "Night Owl", "Start a workout after 9 pm", "lifestyle", "common",
           50, "time_of_day", {"from_hour": 21}, 32),
    _badge("explorer", "Explorer", "Try 5 different activity types", "lifestyle", "rare",
           200, "activity_variety", {"threshold": 5}, 33),
    # Levels
    _badge("level_5", "Rising Star", "Reach level 5", "levels", "common",
           0, "level", {"threshold": 5}, 40),
    _badge("level_10", "Seasoned", "Reach level 10", "levels", "rare",
           0, "level", {"threshold": 10}, 41),
    _badge("level_25", "Elite", "Reach level 25", "levels", "epic",
           0, "level", {"threshold": 25}, 42),
    # Events
    _badge("goal_getter", "Goal Getter", "Complete your first goal", "goals", "common",
           100, "event", {"event": "goal_completed"}, 50),
    _badge("challenge_champion", "Challenge Champion", "Complete a challenge", "challenges", "rare",
           200, "event", {"event": "challenge_completed"}, 51),
    _badge("show_off", "Show Off", "Share a workout with the community", "social", "common",
           25, "event", {"event": "session_shared"}, 60),
    _badge("club_founder", "Club Founder", "Create a club", "social", "common",
           50, "event", {"event": "club_created"}, 61),
    _badge("connector", "Connector", "Follow another athlete", "social", "common",
           25, "event", {"event": "user_followed"}, 62),
]


async def seed_badges(db: AsyncSession) -> int:
    """Upsert every badge definition. Returns the number seeded."""
    seeded = await upsert_by_slug(db, BadgeDefinition, BADGE_SEED_DATA)
    await db.commit()
    logger.info("Seeded %d badge definitions", seeded)
    return seeded
