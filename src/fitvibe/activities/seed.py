"""Activity templates seeded at startup."""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from fitvibe.db.models import ActivityTemplate
from fitvibe.db.seeding import upsert_by_slug

logger = logging.getLogger(__name__)

# (slug, name, activity_type, difficulty, kcal/hour, default minutes, tracks_route, description)
_TEMPLATES = [
    ("easy-run", "Easy Run", "running", "moderate", 600, 30, True, "Conversational-pace run"),
    ("tempo-run", "Tempo Run", "running", "hard", 750, 40, True, "Sustained comfortably-hard effort"),
    ("road-ride", "Road Ride", "cycling", "moderate", 550, 60, True, "Outdoor ride at a steady pace"),
    ("indoor-cycling", "Indoor Cycling", "cycling", "hard", 620, 45, False, "Spin class or trainer session"),
    ("brisk-walk", "Brisk Walk", "walking", "easy", 280, 30, True, "Walk at a pace that raises your heart rate"),
    ("trail-hike", "Trail Hike", "hiking", "moderate", 430, 90, True, "Hike with some elevation"),
    ("lap-swim", "Lap Swim", "swimming", "moderate", 500, 45, False, "Continuous pool laps"),
    ("rowing-intervals", "Rowing Intervals", "rowing", "hard", 600, 30, False, "Erg intervals"),
    ("full-body-strength", "Full Body Strength", "strength", "moderate", 380, 45, False, "Compound lifts"),
    ("vinyasa-yoga", "Vinyasa Yoga", "yoga", "easy", 240, 60, False, "Flow-based yoga class"),
    ("hiit-circuit", "HIIT Circuit", "hiit", "extreme", 750, 20, False, "High-intensity intervals"),
    ("dance-cardio", "Dance Cardio", "dance", "moderate", 420, 40, False, "Choreographed cardio"),
]

ACTIVITY_TEMPLATE_SEED_DATA: list[dict] = [
    {
        "slug": slug,
        "name": name,
        "activity_type": activity_type,
        "difficulty": difficulty,
        "calories_per_hour": kcal,
        "default_duration_minutes": minutes,
        "tracks_route": tracks_route,
        "description": description,
        "sort_order": i,
        "is_active": True,
    }
    for i, (slug, name, activity_type, difficulty, kcal, minutes, tracks_route, description) in enumerate(
        _TEMPLATES, start=1
    )
]


async def seed_activity_templates(db: AsyncSession) -> int:
    seeded = await upsert_by_slug(db, ActivityTemplate, ACTIVITY_TEMPLATE_SEED_DATA)
    await db.commit()
    logger.info("Seeded %d activity templates", seeded)
    return seeded
