"""Goal business logic.

Rules:
- Target must be positive and the end must be after the start
- Status is derived: abandoned, paused and completed stick; reaching the
  target completes; passing the end date without reaching it fails
- Progress can only be recorded while a goal is active
- Extending the deadline of a failed goal revives it
- Only adaptive goals may have their target changed after creation
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from fitvibe.config import get_settings
from fitvibe.db.models import ActivitySession, Goal, GoalProgressEntry
from fitvibe.exceptions import DomainValidationError, InvalidTransitionError, NotFoundError, PermissionDeniedError
from fitvibe.gamification.trigger_engine import TriggerEngine
from fitvibe.gamification.xp_service import get_or_create_gamification, grant_xp
from fitvibe.notifications.service import create_notification

logger = logging.getLogger(__name__)

GOAL_TYPES = ("distance", "duration", "frequency", "numeric", "completion")
FREQUENCIES = ("daily", "weekly", "monthly", "one_time", "custom")
STATUSES = ("pending", "active", "completed", "abandoned", "failed", "paused")

STICKY_STATUSES = frozenset({"completed", "abandoned", "paused"})

_DEFAULT_SPAN = {
    "daily": timedelta(days=1),
    "weekly": timedelta(days=7),
    "monthly": timedelta(days=30),
    "one_time": timedelta(days=30),
}

_METRES_PER_UNIT = {"m": 1.0, "km": 1000.0, "mi": 1609.344}
_SECONDS_PER_UNIT = {"s": 1.0, "min": 60.0, "minutes": 60.0, "h": 3600.0, "hours": 3600.0}


def derive_status(goal: Goal, now: datetime | None = None) -> str:
    """Status implied by the goal's progress and window."""
    if goal.status in STICKY_STATUSES:
        return goal.status
    now = now or datetime.now(timezone.utc)
    if goal.current_value >= goal.target_value:
        return "completed"
    if now > goal.end_date:
        return "failed"
    if now < goal.start_date:
        return "pending"
    return "active"


def progress_pct(goal: Goal) -> float:
    if goal.target_value <= 0:
        return 0.0
    return round(min(100.0, 100.0 * goal.current_value / goal.target_value), 1)


def session_contribution(goal: Goal, session: ActivitySession) -> float:
    """How much a completed session adds to ``goal``, in the goal's unit."""
    if goal.activity_type and goal.activity_type != session.activity_type:
        return 0.0
    if goal.goal_type == "distance":
        return session.distance_m / _METRES_PER_UNIT.get(goal.unit, 1000.0)
    if goal.goal_type == "duration":
        return session.duration_seconds / _SECONDS_PER_UNIT.get(goal.unit, 60.0)
    if goal.goal_type == "frequency":
        return 1.0
    if goal.goal_type == "numeric" and goal.unit == "kcal":
        return float(session.calories)
    return 0.0


async def _sync_status(db: AsyncSession, redis: object, goal: Goal, now: datetime | None = None) -> str:
    """Apply the derived status and fire completion / failure side effects."""
    now = now or datetime.now(timezone.utc)
    previous = goal.status
    status = derive_status(goal, now)
    if status == previous:
        return status

    goal.status = status
    goal.updated_at = now
    if status == "completed":
        goal.completed_at = now
        await _on_completed(db, redis, goal)
    elif status == "failed":
        await create_notification(
            db,
            goal.user_id,
            "goal",
            "goal_failed",
            title=f'Goal missed: "{goal.title}"',
            description="The deadline passed before the target was reached. Extend it to keep going.",
            link=f"/goals/{goal.id}",
            metadata={"goal_id": goal.id},
            redis=redis,
        )
    await db.flush()
    return status


async def _on_completed(db: AsyncSession, redis: object, goal: Goal) -> None:
    settings = get_settings()
    await grant_xp(
        db=db,
        redis=redis,
        user_id=goal.user_id,
        amount=settings.xp_goal_completed,
        source="goal",
        source_id=str(goal.id),
        description=f'Completed goal: "{goal.title}"',
        idempotency_key=f"goal:{goal.id}",
    )
    gam = await get_or_create_gamification(db, goal.user_id)
    gam.goals_completed += 1
    await create_notification(
        db,
        goal.user_id,
        "goal",
        "goal_completed",
        title=f'Goal completed: "{goal.title}"',
        description=f"+{settings.xp_goal_completed} XP",
        link=f"/goals/{goal.id}",
        metadata={"goal_id": goal.id},
        redis=redis,
    )
    await TriggerEngine(db, redis).check_event_trigger(goal.user_id, "goal_completed")
    logger.info("Goal %d completed by user %d", goal.id, goal.user_id)


async def get_goal(db: AsyncSession, user_id: int, goal_id: int) -> Goal:
    goal = await db.get(Goal, goal_id)
    if goal is None:
        raise NotFoundError("Goal", goal_id)
    if goal.user_id != user_id:
        raise PermissionDeniedError("You do not own this goal")
    return goal


async def create_goal(
    db: AsyncSession,
    user_id: int,
    title: str,
    goal_type: str,
    target_value: float,
    unit: str,
    frequency: str = "one_time",
    description: str | None = None,
    activity_type: str | None = None,
    is_adaptive: bool = False,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
) -> Goal:
    if goal_type not in GOAL_TYPES:
        raise DomainValidationError(f"Unknown goal type: {goal_type}")
    if frequency not in FREQUENCIES:
        raise DomainValidationError(f"Unknown goal frequency: {frequency}")
    if target_value <= 0:
        raise DomainValidationError("Target value must be greater than zero")

    now = datetime.now(timezone.utc)
    start = start_date or now
    if end_date is None:
        if frequency == "custom":
            raise DomainValidationError("Custom goals need an end date")
        end_date = start + _DEFAULT_SPAN[frequency]
    if end_date <= start:
        raise DomainValidationError("End date must be after the start date")

    goal = Goal(
        user_id=user_id,
        title=title,
        description=description,
        goal_type=goal_type,
        frequency=frequency,
        status="pending" if start > now else "active",
        target_value=target_value,
        current_value=0.0,
        unit=unit,
        activity_type=activity_type,
        is_adaptive=is_adaptive,
        start_date=start,
        end_date=end_date,
        created_at=now,
    )
    db.add(goal)
    await db.flush()
    logger.info("Goal created: %s (id=%d, user=%d)", title, goal.id, user_id)
    return goal


async def list_goals(
    db: AsyncSession,
    redis: object,
    user_id: int,
    status: str | None = None,
    page: int = 1,
    per_page: int = 20,
) -> tuple[list[Goal], int]:
    """Goals newest first. Statuses are refreshed before filtering."""
    result = await db.execute(
        select(Goal).where(Goal.user_id == user_id, Goal.status.not_in(tuple(STICKY_STATUSES)))
    )
    for goal in result.scalars().all():
        await _sync_status(db, redis, goal)

    query = select(Goal).where(Goal.user_id == user_id)
    if status is not None:
        query = query.where(Goal.status == status)
    total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar_one()
    result = await db.execute(
        query.order_by(Goal.created_at.desc(), Goal.id.desc()).offset((page - 1) * per_page).limit(per_page)
    )
    return list(result.scalars().all()), total


async def get_goal_refreshed(db: AsyncSession, redis: object, user_id: int, goal_id: int) -> Goal:
    goal = await get_goal(db, user_id, goal_id)
    await _sync_status(db, redis, goal)
    return goal


async def update_goal(db: AsyncSession, user_id: int, goal_id: int, changes: dict[str, Any]) -> Goal:
    """Edit descriptive fields. Target and deadline have their own operations."""
    goal = await get_goal(db, user_id, goal_id)
    if goal.status in ("completed", "abandoned"):
        raise InvalidTransitionError(goal.status, "edit", "goal")
    for field in ("title", "description", "activity_type", "is_adaptive"):
        if field in changes:
            setattr(goal, field, changes[field])
    goal.updated_at = datetime.now(timezone.utc)
    await db.flush()
    return goal


async def _record_progress(
    db: AsyncSession,
    redis: object,
    goal: Goal,
    new_value: float,
    source: str,
    note: str | None = None,
) -> Goal:
    now = datetime.now(timezone.utc)
    delta = new_value - goal.current_value
    goal.current_value = new_value
    goal.updated_at = now
    db.add(GoalProgressEntry(goal_id=goal.id, value=new_value, delta=delta, source=source, note=note, recorded_at=now))
    await db.flush()
    await _sync_status(db, redis, goal, now)
    return goal


async def _require_active(db: AsyncSession, redis: object, goal: Goal) -> None:
    if await _sync_status(db, redis, goal) != "active":
        raise InvalidTransitionError(goal.status, "record progress on", "goal")


async def set_progress(
    db: AsyncSession, redis: object, user_id: int, goal_id: int, value: float, note: str | None = None
) -> Goal:
    if value < 0:
        raise DomainValidationError("Progress cannot be negative")
    goal = await get_goal(db, user_id, goal_id)
    await _require_active(db, redis, goal)
    return await _record_progress(db, redis, goal, value, "manual", note)


async def add_progress(
    db: AsyncSession, redis: object, user_id: int, goal_id: int, amount: float, note: str | None = None
) -> Goal:
    if amount <= 0:
        raise DomainValidationError("Progress increment must be greater than zero")
    goal = await get_goal(db, user_id, goal_id)
    await _require_active(db, redis, goal)
    return await _record_progress(db, redis, goal, goal.current_value + amount, "manual", note)


async def pause_goal(db: AsyncSession, redis: object, user_id: int, goal_id: int) -> Goal:
    goal = await get_goal(db, user_id, goal_id)
    if await _sync_status(db, redis, goal) != "active":
        raise InvalidTransitionError(goal.status, "pause", "goal")
    goal.status = "paused"
    goal.updated_at = datetime.now(timezone.utc)
    await db.flush()
    return goal


async def resume_goal(db: AsyncSession, redis: object, user_id: int, goal_id: int) -> Goal:
    goal = await get_goal(db, user_id, goal_id)
    if goal.status != "paused":
        raise InvalidTransitionError(goal.status, "resume", "goal")
    goal.status = "active"
    await _sync_status(db, redis, goal)
    await db.flush()
    return goal


async def abandon_goal(db: AsyncSession, user_id: int, goal_id: int) -> Goal:
    goal = await get_goal(db, user_id, goal_id)
    if goal.status in ("completed", "abandoned"):
        raise InvalidTransitionError(goal.status, "abandon", "goal")
    goal.status = "abandoned"
    goal.updated_at = datetime.now(timezone.utc)
    await db.flush()
    logger.info("Goal %d abandoned by user %d", goal.id, user_id)
    return goal


async def extend_deadline(db: AsyncSession, redis: object, user_id: int, goal_id: int, new_end: datetime) -> Goal:
    goal = await get_goal(db, user_id, goal_id)
    if goal.status in ("completed", "abandoned"):
        raise InvalidTransitionError(goal.status, "extend", "goal")
    if new_end <= goal.end_date:
        raise DomainValidationError("New deadline must be later than the current one")
    if new_end <= datetime.now(timezone.utc):
        raise DomainValidationError("New deadline must be in the future")
    goal.end_date = new_end
    if goal.status == "failed":
        goal.status = "active"
    await _sync_status(db, redis, goal)
    await db.flush()
    return goal


async def adapt_target(db: AsyncSession, redis: object, user_id: int, goal_id: int, new_target: float) -> Goal:
    goal = await get_goal(db, user_id, goal_id)
    if not goal.is_adaptive:
        raise DomainValidationError("Only adaptive goals can change their target")
    if goal.status in ("completed", "abandoned"):
        raise InvalidTransitionError(goal.status, "adapt", "goal")
    if new_target <= 0:
        raise DomainValidationError("Target value must be greater than zero")
    goal.target_value = new_target
    await _sync_status(db, redis, goal)
    await db.flush()
    return goal


async def get_progress_history(db: AsyncSession, user_id: int, goal_id: int) -> list[GoalProgressEntry]:
    await get_goal(db, user_id, goal_id)
    result = await db.execute(
        select(GoalProgressEntry)
        .where(GoalProgressEntry.goal_id == goal_id)
        .order_by(GoalProgressEntry.recorded_at.desc(), GoalProgressEntry.id.desc())
    )
    return list(result.scalars().all())


async def delete_goal(db: AsyncSession, user_id: int, goal_id: int) -> None:
    goal = await get_goal(db, user_id, goal_id)
    await db.delete(goal)
    await db.flush()


async def get_analytics(db: AsyncSession, user_id: int) -> dict[str, Any]:
    """Counts by status and type plus completion rate over finished goals."""
    result = await db.execute(
        select(Goal.status, Goal.goal_type, func.count()).where(Goal.user_id == user_id).group_by(
            Goal.status, Goal.goal_type
        )
    )
    by_status = dict.fromkeys(STATUSES, 0)
    by_type: dict[str, int] = {}
    for status, goal_type, count in result:
        by_status[status] = by_status.get(status, 0) + count
        by_type[goal_type] = by_type.get(goal_type, 0) + count

    finished = by_status["completed"] + by_status["failed"] + by_status["abandoned"]
    active = await db.execute(select(Goal).where(Goal.user_id == user_id, Goal.status == "active"))
    active_goals = list(active.scalars())
    return {
        "total": sum(by_status.values()),
        "by_status": by_status,
        "by_type": by_type,
        "completion_rate": round(100.0 * by_status["completed"] / finished, 1) if finished else 0.0,
        "average_active_progress": (
            round(sum(progress_pct(g) for g in active_goals) / len(active_goals), 1) if active_goals else 0.0
        ),
    }


async def apply_session(db: AsyncSession, redis: object, session: ActivitySession) -> list[int]:
    """Credit a completed session to the owner's matching active goals.

    Returns the ids of goals the session completed.
    """
    ended = session.ended_at or datetime.now(timezone.utc)
    result = await db.execute(
        select(Goal).where(
            Goal.user_id == session.user_id,
            Goal.status.in_(("active", "pending")),
            Goal.start_date <= ended,
            Goal.end_date >= ended,
        )
    )
    completed: list[int] = []
    for goal in result.scalars().all():
        if await _sync_status(db, redis, goal) != "active":
            continue
        delta = session_contribution(goal, session)
        if delta <= 0:
            continue
        await _record_progress(db, redis, goal, goal.current_value + delta, "session", f"session:{session.id}")
        if goal.status == "completed":
            completed.append(goal.id)
    return completed
