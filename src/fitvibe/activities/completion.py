"""Everything that happens after a session is completed.

Runs inside the request's transaction, after ``finish_session``:

1. Lifetime counters on the gamification row
2. Session XP (idempotent per session)
3. Streak snapshot and milestone notification
4. Leaderboard increments
5. Goal and challenge progress
6. Badge triggers
7. Optional share to the feed
8. The session-completed notification
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy.ext.asyncio import AsyncSession

from fitvibe.challenges import service as challenge_service
from fitvibe.db.models import ActivitySession, ActivityTemplate, User
from fitvibe.gamification.leaderboard import queue_scores
from fitvibe.gamification.streak_service import refresh_streak_snapshot, resolve_timezone
from fitvibe.gamification.streaks import StreakSummary
from fitvibe.gamification.trigger_engine import TriggerEngine
from fitvibe.gamification.xp_service import get_or_create_gamification, grant_xp, session_xp
from fitvibe.goals import service as goal_service
from fitvibe.notifications.service import create_notification
from fitvibe.social import service as social_service

logger = logging.getLogger(__name__)


@dataclass
class ShareRequest:
    caption: str | None = None
    privacy: str = "public"


@dataclass
class CompletionResult:
    session: ActivitySession
    xp_awarded: int
    level: int
    leveled_up: bool
    streak: StreakSummary
    badges_awarded: list[str] = field(default_factory=list)
    goals_completed: list[int] = field(default_factory=list)
    challenges_completed: list[int] = field(default_factory=list)
    share_id: int | None = None


async def process_completed_session(
    db: AsyncSession,
    redis: object,
    user: User,
    session: ActivitySession,
    share: ShareRequest | None = None,
) -> CompletionResult:
    gam = await get_or_create_gamification(db, user.id)
    starting_level = gam.level
    gam.total_sessions += 1
    gam.total_active_seconds += session.duration_seconds
    gam.total_distance_m += session.distance_m
    gam.total_calories += session.calories
    gam.updated_at = datetime.now(timezone.utc)
    await db.flush()

    difficulty = "moderate"
    if session.template_id is not None:
        template = await db.get(ActivityTemplate, session.template_id)
        if template is not None:
            difficulty = template.difficulty
    xp = session_xp(session.duration_seconds, difficulty)
    granted = await grant_xp(
        db=db,
        redis=redis,
        user_id=user.id,
        amount=xp,
        source="session",
        source_id=str(session.id),
        description=f"Completed {session.title or session.activity_type}",
        idempotency_key=f"session:{session.id}",
    )
    session.xp_awarded = xp if granted else 0

    streak = await refresh_streak_snapshot(db, redis, user)

    queue_scores(
        db,
        redis,
        user.id,
        {
            "sessions": 1,
            "distance": round(session.distance_m / 1000, 3),
            "calories": session.calories,
            "duration": round(session.duration_seconds / 60, 1),
        },
        session.ended_at,
    )

    goals_completed = await goal_service.apply_session(db, redis, session)
    challenges_completed = await challenge_service.apply_session(db, redis, session)

    badges = await TriggerEngine(db, redis).evaluate_session(session, tz=resolve_timezone(user.timezone))

    share_id = None
    if share is not None:
        created = await social_service.share_session(db, redis, user.id, session, share.caption, share.privacy)
        share_id = created.id

    await create_notification(
        db,
        user.id,
        "activity",
        "session_completed",
        title="Workout complete!",
        description=f"+{session.xp_awarded} XP for {session.duration_seconds // 60} active minutes",
        link=f"/activities/sessions/{session.id}",
        metadata={"session_id": session.id, "xp": session.xp_awarded, "badges": badges},
        redis=redis,
    )
    await db.flush()

    logger.info(
        "Session %d processed for user %d: +%d XP, %d badge(s), %d goal(s), %d challenge(s)",
        session.id,
        user.id,
        session.xp_awarded,
        len(badges),
        len(goals_completed),
        len(challenges_completed),
    )
    return CompletionResult(
        session=session,
        xp_awarded=session.xp_awarded,
        level=gam.level,
        leveled_up=gam.level > starting_level,
        streak=streak,
        badges_awarded=badges,
        goals_completed=goals_completed,
        challenges_completed=challenges_completed,
        share_id=share_id,
    )
