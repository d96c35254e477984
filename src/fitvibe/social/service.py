"""Follows, session shares, likes, comments and cheers.

Share visibility:
- ``public``: everyone
- ``followers_only``: the owner and users following the owner
- ``private``: the owner only

A share the viewer cannot see behaves as if it did not exist.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timedelta, timezone

from sqlalchemy import and_, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from fitvibe.activities.state_machine import OPEN_STATUSES
from fitvibe.db.models import (
    ActivitySession,
    ActivityShare,
    Cheer,
    ShareComment,
    ShareLike,
    User,
    UserConnection,
    UserSettings,
)
from fitvibe.exceptions import (
    ConflictError,
    DomainValidationError,
    NotFoundError,
    PermissionDeniedError,
    RateLimitedError,
)
from fitvibe.gamification.trigger_engine import TriggerEngine
from fitvibe.gamification.xp_service import grant_xp
from fitvibe.notifications.service import create_notification
from fitvibe.users.service import effective_privacy, get_public_user

logger = logging.getLogger(__name__)

PRIVACY_LEVELS = ("public", "followers_only", "private")
MAX_COMMENT_LENGTH = 1000

CHEER_TYPES = ("text", "emoji", "audio", "power_up")
MAX_CHEER_MESSAGE_LENGTH = 280
MAX_POWER_UP_XP = 100
CHEERS_PER_MINUTE = 5

_EMOJI_CODE = re.compile(r"^(U\+[0-9A-Fa-f]{4,6}|:[a-z0-9_+-]{1,62}:)$")
_AUDIO_URL = re.compile(r"^https?://\S+$")


# ── Follows ──


async def is_following(db: AsyncSession, follower_id: int, followed_id: int) -> bool:
    result = await db.execute(
        select(UserConnection.id).where(
            UserConnection.follower_id == follower_id, UserConnection.followed_id == followed_id
        )
    )
    return result.first() is not None


async def follow_user(db: AsyncSession, redis: object, follower: User, followed_id: int) -> UserConnection:
    if follower.id == followed_id:
        raise DomainValidationError("You cannot follow yourself")
    target = await db.get(User, followed_id)
    if target is None or not target.is_active:
        raise NotFoundError("User", followed_id)
    if await is_following(db, follower.id, followed_id):
        raise ConflictError("Already following this user")

    connection = UserConnection(
        follower_id=follower.id, followed_id=followed_id, created_at=datetime.now(timezone.utc)
    )
    try:
        async with db.begin_nested():
            db.add(connection)
    except IntegrityError as e:
        raise ConflictError("Already following this user") from e

    await create_notification(
        db,
        followed_id,
        "social",
        "new_follower",
        title=f"{follower.display_name} started following you",
        link=f"/users/{follower.id}",
        metadata={"follower_id": follower.id},
        redis=redis,
    )
    await TriggerEngine(db, redis).check_event_trigger(follower.id, "user_followed")
    return connection


async def unfollow_user(db: AsyncSession, follower_id: int, followed_id: int) -> None:
    result = await db.execute(
        select(UserConnection).where(
            UserConnection.follower_id == follower_id, UserConnection.followed_id == followed_id
        )
    )
    connection = result.scalar_one_or_none()
    if connection is None:
        raise NotFoundError("Follow")
    await db.delete(connection)
    await db.flush()


async def _connections(
    db: AsyncSession,
    user_id: int,
    followers: bool,
    page: int,
    per_page: int,
) -> tuple[list[tuple[User, datetime]], int]:
    if followers:
        match, other = UserConnection.followed_id, UserConnection.follower_id
    else:
        match, other = UserConnection.follower_id, UserConnection.followed_id
    total = (
        await db.execute(select(func.count()).select_from(UserConnection).where(match == user_id))
    ).scalar_one()
    result = await db.execute(
        select(User, UserConnection.created_at)
        .join(UserConnection, other == User.id)
        .where(match == user_id)
        .order_by(UserConnection.created_at.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
    )
    return [(u, since) for u, since in result], total


async def get_followers(db: AsyncSession, user_id: int, page: int = 1, per_page: int = 20):
    return await _connections(db, user_id, True, page, per_page)


async def get_following(db: AsyncSession, user_id: int, page: int = 1, per_page: int = 20):
    return await _connections(db, user_id, False, page, per_page)


async def connection_counts(db: AsyncSession, user_id: int) -> tuple[int, int]:
    """(followers, following)"""
    followers = await db.execute(
        select(func.count()).select_from(UserConnection).where(UserConnection.followed_id == user_id)
    )
    following = await db.execute(
        select(func.count()).select_from(UserConnection).where(UserConnection.follower_id == user_id)
    )
    return followers.scalar_one(), following.scalar_one()


# ── Shares ──


def _visible_to(viewer_id: int):
    """SQL filter for shares ``viewer_id`` may see."""
    follows_owner = select(UserConnection.id).where(
        UserConnection.follower_id == viewer_id, UserConnection.followed_id == ActivityShare.user_id
    )
    return or_(
        ActivityShare.user_id == viewer_id,
        ActivityShare.privacy == "public",
        and_(ActivityShare.privacy == "followers_only", follows_owner.exists()),
    )


async def share_session(
    db: AsyncSession,
    redis: object,
    user_id: int,
    session: ActivitySession,
    caption: str | None = None,
    privacy: str = "public",
) -> ActivityShare:
    if privacy not in PRIVACY_LEVELS:
        raise DomainValidationError(f"Unknown privacy level: {privacy}")
    if session.user_id != user_id:
        raise PermissionDeniedError("You can only share your own sessions")
    if session.status != "completed":
        raise ConflictError("Only completed sessions can be shared")
    existing = await db.execute(select(ActivityShare.id).where(ActivityShare.session_id == session.id))
    if existing.first() is not None:
        raise ConflictError("This session has already been shared")

    share = ActivityShare(
        user_id=user_id,
        session_id=session.id,
        caption=caption.strip() if caption else None,
        privacy=privacy,
        created_at=datetime.now(timezone.utc),
    )
    db.add(share)
    await db.flush()
    await TriggerEngine(db, redis).check_event_trigger(user_id, "session_shared")
    logger.info("Session %d shared by user %d (%s)", session.id, user_id, privacy)
    return share


async def share_session_by_id(
    db: AsyncSession,
    redis: object,
    user_id: int,
    session_id: int,
    caption: str | None = None,
    privacy: str = "public",
) -> ActivityShare:
    session = await db.get(ActivitySession, session_id)
    if session is None:
        raise NotFoundError("Session", session_id)
    return await share_session(db, redis, user_id, session, caption, privacy)


async def get_visible_share(db: AsyncSession, viewer_id: int, share_id: int) -> ActivityShare:
    result = await db.execute(select(ActivityShare).where(ActivityShare.id == share_id, _visible_to(viewer_id)))
    share = result.scalar_one_or_none()
    if share is None:
        raise NotFoundError("Share", share_id)
    return share


async def get_feed(
    db: AsyncSession,
    viewer_id: int,
    page: int = 1,
    per_page: int = 20,
) -> tuple[list[ActivityShare], int]:
    """Shares by the viewer and the people they follow, newest first."""
    followed = select(UserConnection.followed_id).where(UserConnection.follower_id == viewer_id)
    query = select(ActivityShare).where(
        or_(ActivityShare.user_id == viewer_id, ActivityShare.user_id.in_(followed)),
        _visible_to(viewer_id),
    )
    total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar_one()
    result = await db.execute(
        query.order_by(ActivityShare.created_at.desc(), ActivityShare.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
    )
    return list(result.scalars().all()), total


async def get_user_shares(
    db: AsyncSession,
    viewer_id: int,
    owner_id: int,
    page: int = 1,
    per_page: int = 20,
) -> tuple[list[ActivityShare], int]:
    query = select(ActivityShare).where(ActivityShare.user_id == owner_id, _visible_to(viewer_id))
    total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar_one()
    result = await db.execute(
        query.order_by(ActivityShare.created_at.desc(), ActivityShare.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
    )
    return list(result.scalars().all()), total


async def delete_share(db: AsyncSession, user_id: int, share_id: int) -> None:
    share = await db.get(ActivityShare, share_id)
    if share is None:
        raise NotFoundError("Share", share_id)
    if share.user_id != user_id:
        raise PermissionDeniedError("You can only delete your own shares")
    await db.delete(share)
    await db.flush()


async def liked_share_ids(db: AsyncSession, user_id: int, share_ids: list[int]) -> set[int]:
    if not share_ids:
        return set()
    result = await db.execute(
        select(ShareLike.share_id).where(ShareLike.user_id == user_id, ShareLike.share_id.in_(share_ids))
    )
    return {row[0] for row in result}


# ── Likes & comments ──


async def like_share(db: AsyncSession, redis: object, user: User, share_id: int) -> ActivityShare:
    share = await get_visible_share(db, user.id, share_id)
    if await liked_share_ids(db, user.id, [share_id]):
        raise ConflictError("Already liked")
    try:
        async with db.begin_nested():
            db.add(ShareLike(share_id=share_id, user_id=user.id, created_at=datetime.now(timezone.utc)))
    except IntegrityError as e:
        raise ConflictError("Already liked") from e
    share.like_count += 1
    await db.flush()

    if share.user_id != user.id:
        await create_notification(
            db,
            share.user_id,
            "social",
            "share_liked",
            title=f"{user.display_name} liked your activity",
            link=f"/shares/{share.id}",
            metadata={"share_id": share.id, "user_id": user.id},
            redis=redis,
        )
    return share


async def unlike_share(db: AsyncSession, user_id: int, share_id: int) -> ActivityShare:
    share = await get_visible_share(db, user_id, share_id)
    result = await db.execute(select(ShareLike).where(ShareLike.share_id == share_id, ShareLike.user_id == user_id))
    like = result.scalar_one_or_none()
    if like is None:
        raise NotFoundError("Like")
    await db.delete(like)
    share.like_count = max(0, share.like_count - 1)
    await db.flush()
    return share


async def add_comment(db: AsyncSession, redis: object, user: User, share_id: int, body: str) -> ShareComment:
    text = (body or "").strip()
    if not text:
        raise DomainValidationError("Comment cannot be empty")
    if len(text) > MAX_COMMENT_LENGTH:
        raise DomainValidationError(f"Comment must not exceed {MAX_COMMENT_LENGTH} characters")

    share = await get_visible_share(db, user.id, share_id)
    comment = ShareComment(share_id=share_id, user_id=user.id, body=text, created_at=datetime.now(timezone.utc))
    db.add(comment)
    share.comment_count += 1
    await db.flush()

    if share.user_id != user.id:
        await create_notification(
            db,
            share.user_id,
            "social",
            "share_commented",
            title=f"{user.display_name} commented on your activity",
            description=text[:140],
            link=f"/shares/{share.id}",
            metadata={"share_id": share.id, "comment_id": comment.id},
            redis=redis,
        )
    return comment


async def get_comments(
    db: AsyncSession,
    viewer_id: int,
    share_id: int,
    page: int = 1,
    per_page: int = 50,
) -> tuple[list[tuple[ShareComment, User]], int]:
    await get_visible_share(db, viewer_id, share_id)
    total = (
        await db.execute(select(func.count()).select_from(ShareComment).where(ShareComment.share_id == share_id))
    ).scalar_one()
    result = await db.execute(
        select(ShareComment, User)
        .join(User, ShareComment.user_id == User.id)
        .where(ShareComment.share_id == share_id)
        .order_by(ShareComment.created_at.asc(), ShareComment.id.asc())
        .offset((page - 1) * per_page)
        .limit(per_page)
    )
    return [(c, u) for c, u in result], total


async def delete_comment(db: AsyncSession, user_id: int, comment_id: int) -> None:
    comment = await db.get(ShareComment, comment_id)
    if comment is None:
        raise NotFoundError("Comment", comment_id)
    share = await db.get(ActivityShare, comment.share_id)
    # Share owners may moderate comments on their own shares
    if comment.user_id != user_id and (share is None or share.user_id != user_id):
        raise PermissionDeniedError("You can only delete your own comments")
    await db.delete(comment)
    if share is not None:
        share.comment_count = max(0, share.comment_count - 1)
    await db.flush()


async def share_context(
    db: AsyncSession, viewer_id: int, shares: list[ActivityShare]
) -> tuple[dict[int, User], dict[int, ActivitySession], set[int]]:
    """Authors, sessions and the viewer's likes for a page of shares."""
    if not shares:
        return {}, {}, set()
    user_ids = {s.user_id for s in shares}
    session_ids = {s.session_id for s in shares}
    users = (await db.execute(select(User).where(User.id.in_(user_ids)))).scalars().all()
    sessions = (await db.execute(select(ActivitySession).where(ActivitySession.id.in_(session_ids)))).scalars().all()
    liked = await liked_share_ids(db, viewer_id, [s.id for s in shares])
    return {u.id: u for u in users}, {s.id: s for s in sessions}, liked


# ── Cheers ──


def _validate_cheer(
    cheer_type: str,
    message: str | None,
    emoji_code: str | None,
    audio_url: str | None,
    power_up_xp: int,
) -> str | None:
    """Check the payload a cheer type needs. Returns the cleaned message."""
    if cheer_type not in CHEER_TYPES:
        raise DomainValidationError(f"Unknown cheer type: {cheer_type}")
    text = (message or "").strip() or None
    if text is not None and len(text) > MAX_CHEER_MESSAGE_LENGTH:
        raise DomainValidationError(f"Cheer messages are limited to {MAX_CHEER_MESSAGE_LENGTH} characters")

    if cheer_type == "text" and text is None:
        raise DomainValidationError("A text cheer needs a message")
    if cheer_type == "emoji" and not (emoji_code and _EMOJI_CODE.match(emoji_code)):
        raise DomainValidationError("An emoji cheer needs a code like U+1F525 or :fire:")
    if cheer_type == "audio" and not (audio_url and _AUDIO_URL.match(audio_url)):
        raise DomainValidationError("An audio cheer needs an http(s) audio URL")
    if cheer_type == "power_up":
        if not 1 <= power_up_xp <= MAX_POWER_UP_XP:
            raise DomainValidationError(f"Power-ups carry between 1 and {MAX_POWER_UP_XP} XP")
    elif power_up_xp:
        raise DomainValidationError("Only power-up cheers carry XP")
    return text


async def _can_cheer(db: AsyncSession, sender_id: int, recipient_id: int) -> bool:
    privacy = effective_privacy(await db.get(UserSettings, recipient_id))
    if privacy["allowCheers"]:
        return True
    # Closed to everyone except people the recipient follows
    return await is_following(db, recipient_id, sender_id)


async def send_cheer(
    db: AsyncSession,
    redis: object,
    sender: User,
    recipient_id: int,
    cheer_type: str,
    message: str | None = None,
    emoji_code: str | None = None,
    audio_url: str | None = None,
    power_up_xp: int = 0,
    session_id: int | None = None,
) -> tuple[Cheer, bool]:
    """Send a cheer. Returns the cheer and whether the recipient was notified.

    A cheer may point at one of the recipient's sessions; it is ``live`` when
    that session is still running. Power-ups grant their XP to the recipient.
    """
    if sender.id == recipient_id:
        raise DomainValidationError("You cannot cheer yourself")
    recipient = await get_public_user(db, recipient_id)
    text = _validate_cheer(cheer_type, message, emoji_code, audio_url, power_up_xp)
    if not await _can_cheer(db, sender.id, recipient.id):
        raise PermissionDeniedError(f"{recipient.display_name} only accepts cheers from people they follow")

    is_live = False
    if session_id is not None:
        session = await db.get(ActivitySession, session_id)
        if session is None:
            raise NotFoundError("Session", session_id)
        if session.user_id != recipient.id:
            raise DomainValidationError("That session belongs to someone else")
        is_live = session.status in OPEN_STATUSES

    now = datetime.now(timezone.utc)
    recent = (
        await db.execute(
            select(func.count())
            .select_from(Cheer)
            .where(Cheer.sender_id == sender.id, Cheer.created_at >= now - timedelta(minutes=1))
        )
    ).scalar_one()
    if recent >= CHEERS_PER_MINUTE:
        raise RateLimitedError("Too many cheers, try again in a minute", retry_after=60)

    cheer = Cheer(
        sender_id=sender.id,
        recipient_id=recipient.id,
        session_id=session_id,
        cheer_type=cheer_type,
        message=text,
        emoji_code=emoji_code if cheer_type == "emoji" else None,
        audio_url=audio_url if cheer_type == "audio" else None,
        power_up_xp=power_up_xp,
        is_live=is_live,
        created_at=now,
    )
    db.add(cheer)
    await db.flush()

    if cheer_type == "power_up":
        await grant_xp(
            db=db,
            redis=redis,
            user_id=recipient.id,
            amount=power_up_xp,
            source="cheer",
            source_id=str(cheer.id),
            description=f"Power-up from {sender.display_name}",
            idempotency_key=f"cheer:{cheer.id}",
        )

    notification = await create_notification(
        db,
        recipient.id,
        "social",
        "cheer_received",
        title=f"{sender.display_name} cheered you on",
        description=text,
        link=f"/activities/sessions/{session_id}" if session_id is not None else f"/users/{sender.id}",
        metadata={"cheer_id": cheer.id, "cheer_type": cheer_type, "sender_id": sender.id, "is_live": is_live},
        redis=redis,
    )
    logger.info("User %d sent a %s cheer to user %d", sender.id, cheer_type, recipient.id)
    return cheer, notification is not None


async def get_received_cheers(
    db: AsyncSession,
    user_id: int,
    page: int = 1,
    per_page: int = 20,
) -> tuple[list[tuple[Cheer, User]], int]:
    total = (
        await db.execute(select(func.count()).select_from(Cheer).where(Cheer.recipient_id == user_id))
    ).scalar_one()
    result = await db.execute(
        select(Cheer, User)
        .join(User, Cheer.sender_id == User.id)
        .where(Cheer.recipient_id == user_id)
        .order_by(Cheer.created_at.desc(), Cheer.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
    )
    return [(c, u) for c, u in result], total
