"""Challenge business logic.

Rules:
- A challenge is created inactive; its creator activates it inside its window
- Users join active challenges that have not ended, once each, up to the
  participant limit
- Participant progress never decreases and freezes once completed
- Reaching the target completes the participant and grants the challenge XP
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from fitvibe.config import get_settings
from fitvibe.db.models import ActivitySession, Challenge, ChallengeParticipant, User
from fitvibe.exceptions import ConflictError, DomainValidationError, NotFoundError, PermissionDeniedError
from fitvibe.gamification.trigger_engine import TriggerEngine
from fitvibe.gamification.xp_service import get_or_create_gamification, grant_xp
from fitvibe.notifications.service import create_notification

logger = logging.getLogger(__name__)

CHALLENGE_TYPES = (
    "distance",
    "calories",
    "activity_count",
    "duration",
    "milestone",
    "streak",
    "improvement",
    "custom",
)

# Types whose progress is reported by the participant rather than derived from sessions
MANUAL_TYPES = frozenset({"milestone", "improvement", "custom"})

_METRES_PER_UNIT = {"m": 1.0, "km": 1000.0, "mi": 1609.344}


def advance_progress(participant: ChallengeParticipant, target: float, value: float, now: datetime) -> bool:
    """Raise ``participant``'s progress to ``value``. Returns True if this completed it.

    Raises:
        ConflictError: The participant has already completed the challenge.
        DomainValidationError: ``value`` is lower than the current progress.
    """
    if participant.is_completed:
        raise ConflictError("Challenge already completed")
    if value < participant.progress:
        raise DomainValidationError("Progress cannot decrease")
    participant.progress = value
    if value >= target:
        participant.is_completed = True
        participant.completed_at = now
        return True
    return False


def session_value(challenge: Challenge, session: ActivitySession) -> float:
    """Increment a completed session contributes, in the challenge's unit."""
    if challenge.activity_type and challenge.activity_type != session.activity_type:
        return 0.0
    kind = challenge.challenge_type
    if kind == "distance":
        return session.distance_m / _METRES_PER_UNIT.get(challenge.unit, 1000.0)
    if kind == "calories":
        return float(session.calories)
    if kind == "activity_count":
        return 1.0
    if kind == "duration":
        return session.duration_seconds / 60.0
    return 0.0


async def get_challenge(db: AsyncSession, challenge_id: int) -> Challenge:
    challenge = await db.get(Challenge, challenge_id)
    if challenge is None:
        raise NotFoundError("Challenge", challenge_id)
    return challenge


async def get_participation(db: AsyncSession, challenge_id: int, user_id: int) -> ChallengeParticipant | None:
    result = await db.execute(
        select(ChallengeParticipant).where(
            ChallengeParticipant.challenge_id == challenge_id,
            ChallengeParticipant.user_id == user_id,
        )
    )
    return result.scalar_one_or_none()


async def create_challenge(
    db: AsyncSession,
    creator_id: int,
    title: str,
    challenge_type: str,
    target_value: float,
    unit: str,
    start_date: datetime,
    end_date: datetime,
    description: str | None = None,
    activity_type: str | None = None,
    is_public: bool = True,
    xp_reward: int | None = None,
    max_participants: int | None = None,
) -> Challenge:
    if challenge_type not in CHALLENGE_TYPES:
        raise DomainValidationError(f"Unknown challenge type: {challenge_type}")
    if target_value <= 0:
        raise DomainValidationError("Target value must be greater than zero")
    if end_date <= start_date:
        raise DomainValidationError("End date must be after the start date")
    if end_date <= datetime.now(timezone.utc):
        raise DomainValidationError("End date must be in the future")

    challenge = Challenge(
        creator_id=creator_id,
        title=title,
        description=description,
        challenge_type=challenge_type,
        target_value=target_value,
        unit=unit,
        activity_type=activity_type,
        start_date=start_date,
        end_date=end_date,
        is_active=False,
        is_public=is_public,
        xp_reward=get_settings().xp_challenge_completed if xp_reward is None else xp_reward,
        max_participants=max_participants,
        participant_count=0,
        created_at=datetime.now(timezone.utc),
    )
    db.add(challenge)
    await db.flush()
    logger.info("Challenge created: %s (id=%d, creator=%d)", title, challenge.id, creator_id)
    return challenge


async def activate_challenge(db: AsyncSession, user_id: int, challenge_id: int) -> Challenge:
    challenge = await get_challenge(db, challenge_id)
    if challenge.creator_id != user_id:
        raise PermissionDeniedError("Only the challenge creator can activate it")
    if challenge.is_active:
        raise ConflictError("Challenge is already active")
    now = datetime.now(timezone.utc)
    if now < challenge.start_date:
        raise DomainValidationError("Challenge has not started yet")
    if now > challenge.end_date:
        raise DomainValidationError("Challenge has already ended")
    challenge.is_active = True
    await db.flush()
    return challenge


async def list_challenges(
    db: AsyncSession,
    active_only: bool = True,
    challenge_type: str | None = None,
    search: str | None = None,
    page: int = 1,
    per_page: int = 20,
) -> tuple[list[Challenge], int]:
    """Public challenges, soonest ending first."""
    query = select(Challenge).where(Challenge.is_public.is_(True))
    if active_only:
        query = query.where(Challenge.is_active.is_(True), Challenge.end_date >= datetime.now(timezone.utc))
    if challenge_type is not None:
        query = query.where(Challenge.challenge_type == challenge_type)
    if search:
        pattern = f"%{search.lower()}%"
        query = query.where(
            or_(func.lower(Challenge.title).like(pattern), func.lower(Challenge.description).like(pattern))
        )
    total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar_one()
    result = await db.execute(
        query.order_by(Challenge.end_date.asc(), Challenge.id.asc()).offset((page - 1) * per_page).limit(per_page)
    )
    return list(result.scalars().all()), total


async def join_challenge(db: AsyncSession, redis: object, user_id: int, challenge_id: int) -> ChallengeParticipant:
    challenge = await get_challenge(db, challenge_id)
    if not challenge.is_active:
        raise ConflictError("Challenge is not active")
    if datetime.now(timezone.utc) > challenge.end_date:
        raise ConflictError("Challenge has already ended")
    if await get_participation(db, challenge_id, user_id) is not None:
        raise ConflictError("Already joined this challenge")
    if challenge.max_participants is not None and challenge.participant_count >= challenge.max_participants:
        raise ConflictError(f"This challenge is full ({challenge.max_participants} participants maximum)")

    participant = ChallengeParticipant(
        challenge_id=challenge_id,
        user_id=user_id,
        progress=0.0,
        is_completed=False,
        joined_at=datetime.now(timezone.utc),
    )
    db.add(participant)
    challenge.participant_count += 1
    await db.flush()

    if challenge.challenge_type == "streak":
        gam = await get_or_create_gamification(db, user_id)
        if gam.current_streak > 0:
            await _advance(db, redis, challenge, participant, float(gam.current_streak))

    await create_notification(
        db,
        user_id,
        "challenge",
        "challenge_joined",
        title=f'Joined "{challenge.title}"',
        description=f"Reach {challenge.target_value:g} {challenge.unit} before the end.",
        link=f"/challenges/{challenge.id}",
        metadata={"challenge_id": challenge.id},
        redis=redis,
    )
    logger.info("User %d joined challenge %d", user_id, challenge_id)
    return participant


async def leave_challenge(db: AsyncSession, user_id: int, challenge_id: int) -> None:
    challenge = await get_challenge(db, challenge_id)
    participant = await get_participation(db, challenge_id, user_id)
    if participant is None:
        raise NotFoundError("Challenge participation")
    if participant.is_completed:
        raise ConflictError("Completed challenges cannot be left")
    await db.delete(participant)
    challenge.participant_count = max(0, challenge.participant_count - 1)
    await db.flush()


async def _advance(
    db: AsyncSession,
    redis: object,
    challenge: Challenge,
    participant: ChallengeParticipant,
    value: float,
) -> bool:
    now = datetime.now(timezone.utc)
    if not advance_progress(participant, challenge.target_value, value, now):
        await db.flush()
        return False

    await db.flush()
    await grant_xp(
        db=db,
        redis=redis,
        user_id=participant.user_id,
        amount=challenge.xp_reward,
        source="challenge",
        source_id=str(challenge.id),
        description=f'Completed challenge: "{challenge.title}"',
        idempotency_key=f"challenge:{challenge.id}:{participant.user_id}",
    )
    gam = await get_or_create_gamification(db, participant.user_id)
    gam.challenges_completed += 1
    await create_notification(
        db,
        participant.user_id,
        "challenge",
        "challenge_completed",
        title=f'Challenge completed: "{challenge.title}"',
        description=f"+{challenge.xp_reward} XP",
        link=f"/challenges/{challenge.id}",
        metadata={"challenge_id": challenge.id},
        redis=redis,
    )
    await TriggerEngine(db, redis).check_event_trigger(participant.user_id, "challenge_completed")
    logger.info("User %d completed challenge %d", participant.user_id, challenge.id)
    return True


async def report_progress(
    db: AsyncSession,
    redis: object,
    user_id: int,
    challenge_id: int,
    value: float,
) -> ChallengeParticipant:
    """Set the participant's absolute progress for self-reported challenge types."""
    challenge = await get_challenge(db, challenge_id)
    participant = await get_participation(db, challenge_id, user_id)
    if participant is None:
        raise NotFoundError("Challenge participation")
    if challenge.challenge_type not in MANUAL_TYPES:
        raise DomainValidationError(f"Progress for {challenge.challenge_type} challenges is tracked from sessions")
    if not challenge.is_active or datetime.now(timezone.utc) > challenge.end_date:
        raise ConflictError("Challenge is not running")
    await _advance(db, redis, challenge, participant, value)
    return participant


async def get_leaderboard(
    db: AsyncSession,
    challenge_id: int,
    limit: int = 50,
) -> list[tuple[ChallengeParticipant, User]]:
    """Participants by progress; ties go to whoever finished first."""
    await get_challenge(db, challenge_id)
    result = await db.execute(
        select(ChallengeParticipant, User)
        .join(User, ChallengeParticipant.user_id == User.id)
        .where(ChallengeParticipant.challenge_id == challenge_id)
        .order_by(
            ChallengeParticipant.progress.desc(),
            ChallengeParticipant.completed_at.asc().nulls_last(),
            ChallengeParticipant.joined_at.asc(),
        )
        .limit(limit)
    )
    return [(p, u) for p, u in result]


async def get_user_challenges(db: AsyncSession, user_id: int) -> list[tuple[ChallengeParticipant, Challenge]]:
    result = await db.execute(
        select(ChallengeParticipant, Challenge)
        .join(Challenge, ChallengeParticipant.challenge_id == Challenge.id)
        .where(ChallengeParticipant.user_id == user_id)
        .order_by(Challenge.end_date.desc())
    )
    return [(p, c) for p, c in result]


async def apply_session(db: AsyncSession, redis: object, session: ActivitySession) -> list[int]:
    """Credit a completed session to the owner's running challenges.

    Streak challenges take the user's current streak instead of an increment.
    Returns the ids of challenges the session completed.
    """
    ended = session.ended_at or datetime.now(timezone.utc)
    result = await db.execute(
        select(ChallengeParticipant, Challenge)
        .join(Challenge, ChallengeParticipant.challenge_id == Challenge.id)
        .where(
            ChallengeParticipant.user_id == session.user_id,
            ChallengeParticipant.is_completed.is_(False),
            Challenge.is_active.is_(True),
            Challenge.start_date <= ended,
            Challenge.end_date >= ended,
        )
    )
    completed: list[int] = []
    for participant, challenge in result.all():
        if challenge.challenge_type == "streak":
            gam = await get_or_create_gamification(db, session.user_id)
            value = float(gam.current_streak)
            if value <= participant.progress:
                continue
        else:
            increment = session_value(challenge, session)
            if increment <= 0:
                continue
            value = participant.progress + increment
        if await _advance(db, redis, challenge, participant, value):
            completed.append(challenge.id)
    return completed
