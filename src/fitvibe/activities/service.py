"""Activity templates, session lifecycle and route recording."""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from fitvibe.activities.metrics import (
    ACTIVITY_TYPES,
    RouteStats,
    estimate_calories,
    pace_seconds_per_km,
    route_distance_m,
    route_stats,
    validate_route_point,
)
from fitvibe.activities.state_machine import OPEN_STATUSES, SessionStatus, active_seconds, apply_transition
from fitvibe.db.models import ActivitySession, ActivityTemplate, Cheer, RoutePoint
from fitvibe.exceptions import (
    ConflictError,
    DomainValidationError,
    InvalidTransitionError,
    NotFoundError,
    PermissionDeniedError,
)

logger = logging.getLogger(__name__)

MAX_POINTS_PER_BATCH = 1000
MAX_SLUG_LENGTH = 64
DIFFICULTIES = ("easy", "moderate", "hard", "extreme")

_SLUG_STRIP = re.compile(r"[^a-z0-9]+")


# ── Templates ──


async def list_templates(db: AsyncSession, activity_type: str | None = None) -> list[ActivityTemplate]:
    query = select(ActivityTemplate).where(ActivityTemplate.is_active.is_(True))
    if activity_type is not None:
        query = query.where(ActivityTemplate.activity_type == activity_type)
    result = await db.execute(query.order_by(ActivityTemplate.sort_order, ActivityTemplate.id))
    return list(result.scalars().all())


async def get_template(db: AsyncSession, template_id: int) -> ActivityTemplate:
    template = await db.get(ActivityTemplate, template_id)
    if template is None or not template.is_active:
        raise NotFoundError("Activity template", template_id)
    return template


def slugify(name: str) -> str:
    slug = _SLUG_STRIP.sub("-", name.lower()).strip("-")
    return slug[:MAX_SLUG_LENGTH].rstrip("-")


async def _slug_taken(db: AsyncSession, slug: str) -> bool:
    result = await db.execute(select(ActivityTemplate.id).where(ActivityTemplate.slug == slug))
    return result.first() is not None


async def create_template(
    db: AsyncSession,
    user_id: int,
    name: str,
    activity_type: str,
    calories_per_hour: int,
    default_duration_minutes: int,
    difficulty: str = "moderate",
    description: str = "",
    tracks_route: bool = False,
    slug: str | None = None,
) -> ActivityTemplate:
    """Add a template to the catalogue.

    An explicit slug must be free (409 otherwise). Without one the slug is
    derived from the name and suffixed ``-2``, ``-3``... until unique.
    """
    if activity_type not in ACTIVITY_TYPES:
        raise DomainValidationError(f"Unknown activity type: {activity_type}")
    if difficulty not in DIFFICULTIES:
        raise DomainValidationError(f"Unknown difficulty: {difficulty}")

    if slug is not None:
        if await _slug_taken(db, slug):
            raise ConflictError(f"Template slug '{slug}' is already taken")
    else:
        base = slugify(name)
        if not base:
            raise DomainValidationError("Template name must contain letters or digits")
        slug, n = base, 1
        while await _slug_taken(db, slug):
            n += 1
            suffix = f"-{n}"
            slug = base[: MAX_SLUG_LENGTH - len(suffix)] + suffix

    last_order = (await db.execute(select(func.max(ActivityTemplate.sort_order)))).scalar_one()
    template = ActivityTemplate(
        slug=slug,
        name=name.strip(),
        activity_type=activity_type,
        description=description,
        difficulty=difficulty,
        calories_per_hour=calories_per_hour,
        default_duration_minutes=default_duration_minutes,
        tracks_route=tracks_route,
        sort_order=(last_order or 0) + 1,
        is_active=True,
        created_by_id=user_id,
        created_at=datetime.now(timezone.utc),
    )
    db.add(template)
    await db.flush()
    logger.info("Template %s created by user %d", slug, user_id)
    return template


# ── Sessions ──


async def get_owned_session(db: AsyncSession, user_id: int, session_id: int) -> ActivitySession:
    session = await db.get(ActivitySession, session_id)
    if session is None:
        raise NotFoundError("Session", session_id)
    if session.user_id != user_id:
        raise PermissionDeniedError("You do not own this session")
    return session


async def get_open_session(db: AsyncSession, user_id: int) -> ActivitySession | None:
    result = await db.execute(
        select(ActivitySession).where(
            ActivitySession.user_id == user_id,
            ActivitySession.status.in_(tuple(OPEN_STATUSES)),
        )
    )
    return result.scalars().first()


async def start_session(
    db: AsyncSession,
    user_id: int,
    template_id: int | None = None,
    activity_type: str | None = None,
    title: str | None = None,
    started_at: datetime | None = None,
) -> ActivitySession:
    """Open a new session. A user has at most one active or paused session."""
    open_session = await get_open_session(db, user_id)
    if open_session is not None:
        raise ConflictError(f"Session {open_session.id} is still {open_session.status}; finish it first")

    template = await get_template(db, template_id) if template_id is not None else None
    if template is not None:
        activity_type = activity_type or template.activity_type
    if activity_type is None:
        raise DomainValidationError("Either a template or an activity type is required")
    if activity_type not in ACTIVITY_TYPES:
        raise DomainValidationError(f"Unknown activity type: {activity_type}")

    now = datetime.now(timezone.utc)
    started_at = started_at or now
    if started_at > now + timedelta(minutes=5):
        raise DomainValidationError("Start time cannot be in the future")

    session = ActivitySession(
        user_id=user_id,
        template_id=template.id if template else None,
        activity_type=activity_type,
        title=title or (template.name if template else None),
        status=SessionStatus.ACTIVE.value,
        started_at=started_at,
        paused_seconds=0,
        duration_seconds=0,
        distance_m=0.0,
        calories=0,
        xp_awarded=0,
        created_at=now,
    )
    db.add(session)
    await db.flush()
    logger.info("Session %d started by user %d (%s)", session.id, user_id, activity_type)
    return session


async def list_sessions(
    db: AsyncSession,
    user_id: int,
    status: str | None = None,
    activity_type: str | None = None,
    page: int = 1,
    per_page: int = 20,
) -> tuple[list[ActivitySession], int]:
    filters = [ActivitySession.user_id == user_id]
    if status is not None:
        filters.append(ActivitySession.status == status)
    if activity_type is not None:
        filters.append(ActivitySession.activity_type == activity_type)
    total = (await db.execute(select(func.count()).select_from(ActivitySession).where(*filters))).scalar_one()
    result = await db.execute(
        select(ActivitySession)
        .where(*filters)
        .order_by(ActivitySession.started_at.desc(), ActivitySession.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
    )
    return list(result.scalars().all()), total


async def transition_session(db: AsyncSession, user_id: int, session_id: int, action: str) -> ActivitySession:
    """Pause, resume or cancel. Completion goes through ``complete_session``."""
    session = await get_owned_session(db, user_id, session_id)
    apply_transition(session, action)
    await db.flush()
    logger.info("Session %d %s -> %s", session.id, action, session.status)
    return session


async def _load_route(db: AsyncSession, session_id: int) -> list[RoutePoint]:
    result = await db.execute(
        select(RoutePoint).where(RoutePoint.session_id == session_id).order_by(RoutePoint.sequence)
    )
    return list(result.scalars().all())


async def finish_session(
    db: AsyncSession,
    user_id: int,
    session_id: int,
    distance_m: float | None = None,
    calories: int | None = None,
    avg_heart_rate: int | None = None,
    rating: int | None = None,
    notes: str | None = None,
) -> ActivitySession:
    """Move a session to completed and fill in its final metrics.

    Distance falls back to the recorded route; calories to the template's
    (or the activity type's) hourly rate over the active time.
    """
    session = await get_owned_session(db, user_id, session_id)
    apply_transition(session, "complete")

    if distance_m is None:
        distance_m = route_distance_m(await _load_route(db, session.id))
    if calories is None:
        rate = None
        if session.template_id is not None:
            template = await db.get(ActivityTemplate, session.template_id)
            rate = template.calories_per_hour if template else None
        calories = estimate_calories(session.activity_type, session.duration_seconds, rate)

    session.distance_m = round(distance_m, 1)
    session.calories = calories
    session.avg_heart_rate = avg_heart_rate
    session.rating = rating
    if notes is not None:
        session.notes = notes
    await db.flush()
    logger.info(
        "Session %d completed: %ds, %.0fm, %dkcal", session.id, session.duration_seconds, session.distance_m, calories
    )
    return session


async def add_route_points(
    db: AsyncSession,
    user_id: int,
    session_id: int,
    points: Sequence[dict[str, Any]],
) -> int:
    """Append GPS points to an open session. Returns the session's point count."""
    session = await get_owned_session(db, user_id, session_id)
    if session.status not in OPEN_STATUSES:
        raise InvalidTransitionError(session.status, "record a route for")
    if not points:
        raise DomainValidationError("At least one route point is required")
    if len(points) > MAX_POINTS_PER_BATCH:
        raise DomainValidationError(f"At most {MAX_POINTS_PER_BATCH} points per request")

    now = datetime.now(timezone.utc)
    for p in points:
        validate_route_point(p["latitude"], p["longitude"], p.get("elevation_m"), p["recorded_at"], now)

    last = (
        await db.execute(select(func.max(RoutePoint.sequence)).where(RoutePoint.session_id == session.id))
    ).scalar_one()
    sequence = (last or 0) + 1
    for p in sorted(points, key=lambda p: p["recorded_at"]):
        db.add(
            RoutePoint(
                session_id=session.id,
                sequence=sequence,
                latitude=p["latitude"],
                longitude=p["longitude"],
                elevation_m=p.get("elevation_m"),
                recorded_at=p["recorded_at"],
            )
        )
        sequence += 1
    await db.flush()
    return sequence - 1


async def get_route(db: AsyncSession, user_id: int, session_id: int) -> tuple[list[RoutePoint], RouteStats]:
    await get_owned_session(db, user_id, session_id)
    points = await _load_route(db, session_id)
    return points, route_stats(points)


async def get_live_snapshot(
    db: AsyncSession,
    user_id: int,
    session_id: int,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Figures for a session as they stand right now.

    Open sessions are measured from the clock and the recorded route;
    finished ones report their stored totals.
    """
    session = await get_owned_session(db, user_id, session_id)
    now = now or datetime.now(timezone.utc)
    template = await db.get(ActivityTemplate, session.template_id) if session.template_id is not None else None
    points = await _load_route(db, session.id)

    active = active_seconds(session, now)
    elapsed = max(0, int(((session.ended_at or now) - session.started_at).total_seconds()))
    if session.status in OPEN_STATUSES:
        distance = route_distance_m(points)
        calories = estimate_calories(
            session.activity_type, active, template.calories_per_hour if template else None
        )
    else:
        distance = session.distance_m
        calories = session.calories

    planned = template.default_duration_minutes if template else None
    progress = round(min(100.0, active / (planned * 60) * 100), 1) if planned else None
    cheers = (
        await db.execute(select(func.count()).select_from(Cheer).where(Cheer.session_id == session.id))
    ).scalar_one()

    return {
        "session_id": session.id,
        "activity_type": session.activity_type,
        "status": session.status,
        "started_at": session.started_at,
        "elapsed_seconds": elapsed,
        "active_seconds": active,
        "paused_seconds": max(0, elapsed - active),
        "is_paused": session.status == SessionStatus.PAUSED.value,
        "distance_m": round(distance, 1),
        "pace_seconds_per_km": pace_seconds_per_km(distance, active),
        "calories": calories,
        "intensity": template.difficulty if template else "moderate",
        "planned_duration_minutes": planned,
        "duration_progress_pct": progress,
        "route_point_count": len(points),
        "cheer_count": cheers,
        "as_of": now,
    }


async def delete_session(db: AsyncSession, user_id: int, session_id: int) -> None:
    """Delete a finished session. XP already granted for it is kept."""
    session = await get_owned_session(db, user_id, session_id)
    if session.status in OPEN_STATUSES:
        raise ConflictError("Cancel or complete the session before deleting it")
    await db.delete(session)
    await db.flush()


async def get_summary(db: AsyncSession, user_id: int, days: int = 30) -> dict[str, Any]:
    """Totals of completed sessions over the last ``days`` days, overall and by type."""
    since = datetime.now(timezone.utc) - timedelta(days=days)
    result = await db.execute(
        select(
            ActivitySession.activity_type,
            func.count(ActivitySession.id),
            func.coalesce(func.sum(ActivitySession.duration_seconds), 0),
            func.coalesce(func.sum(ActivitySession.distance_m), 0.0),
            func.coalesce(func.sum(ActivitySession.calories), 0),
        )
        .where(
            ActivitySession.user_id == user_id,
            ActivitySession.status == SessionStatus.COMPLETED.value,
            ActivitySession.ended_at >= since,
        )
        .group_by(ActivitySession.activity_type)
    )
    by_type = {
        activity_type: {
            "sessions": int(count),
            "duration_seconds": int(duration),
            "distance_m": round(float(distance), 1),
            "calories": int(calories),
        }
        for activity_type, count, duration, distance, calories in result.all()
    }
    totals = {
        key: sum(row[key] for row in by_type.values())
        for key in ("sessions", "duration_seconds", "distance_m", "calories")
    }
    totals["distance_m"] = round(totals["distance_m"], 1)
    return {"days": days, "since": since, "totals": totals, "by_type": by_type}
