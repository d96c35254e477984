"""Club business logic.

Rules:
- The creator becomes the club's admin
- Public clubs are joined directly; private and invite-only clubs need the
  current invite code
- Membership is capped at the club's ``max_members``
- An admin leaving hands the role to the longest-serving member; the last
  member leaving dissolves the club
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from fitvibe.clubs.invite_codes import generate_unique_invite_code, normalize_invite_code
from fitvibe.config import get_settings
from fitvibe.db.models import ActivityShare, Club, ClubMember, User
from fitvibe.exceptions import ConflictError, DomainValidationError, NotFoundError, PermissionDeniedError
from fitvibe.gamification.trigger_engine import TriggerEngine
from fitvibe.notifications.service import notify_many

logger = logging.getLogger(__name__)

CLUB_TYPES = ("public", "private", "invite_only")
ROLES = ("admin", "moderator", "member")


async def get_club(db: AsyncSession, club_id: int) -> Club:
    club = await db.get(Club, club_id)
    if club is None or not club.is_active:
        raise NotFoundError("Club", club_id)
    return club


async def get_membership(db: AsyncSession, club_id: int, user_id: int) -> ClubMember | None:
    result = await db.execute(
        select(ClubMember).where(ClubMember.club_id == club_id, ClubMember.user_id == user_id)
    )
    return result.scalar_one_or_none()


async def _require_admin(db: AsyncSession, club_id: int, user_id: int) -> ClubMember:
    membership = await get_membership(db, club_id, user_id)
    if membership is None or membership.role != "admin":
        raise PermissionDeniedError("Only club admins can do this")
    return membership


async def _name_taken(db: AsyncSession, name: str, exclude_id: int | None = None) -> bool:
    query = select(Club.id).where(func.lower(Club.name) == name.lower(), Club.is_active.is_(True))
    if exclude_id is not None:
        query = query.where(Club.id != exclude_id)
    return (await db.execute(query)).first() is not None


async def create_club(
    db: AsyncSession,
    redis: object,
    owner_id: int,
    name: str,
    club_type: str = "public",
    description: str | None = None,
    category: str = "general",
    location: str | None = None,
    tags: list[str] | None = None,
    welcome_message: str | None = None,
    max_members: int | None = None,
) -> Club:
    if club_type not in CLUB_TYPES:
        raise DomainValidationError(f"Unknown club type: {club_type}")
    limit = get_settings().club_max_members
    if max_members is not None and not 2 <= max_members <= limit:
        raise DomainValidationError(f"Member limit must be between 2 and {limit}")
    if await _name_taken(db, name):
        raise ConflictError("A club with this name already exists")

    now = datetime.now(timezone.utc)
    club = Club(
        name=name,
        description=description,
        category=category,
        club_type=club_type,
        location=location,
        tags=sorted({t.strip().lower() for t in tags or [] if t.strip()}),
        welcome_message=welcome_message,
        invite_code=await generate_unique_invite_code(db),
        owner_user_id=owner_id,
        member_count=1,
        max_members=max_members or limit,
        is_active=True,
        created_at=now,
    )
    db.add(club)
    await db.flush()

    db.add(ClubMember(club_id=club.id, user_id=owner_id, role="admin", joined_at=now))
    await db.flush()

    await TriggerEngine(db, redis).check_event_trigger(owner_id, "club_created")
    logger.info("Club created: %s (id=%d, owner=%d)", name, club.id, owner_id)
    return club


async def discover_clubs(
    db: AsyncSession,
    search: str | None = None,
    category: str | None = None,
    page: int = 1,
    per_page: int = 20,
) -> tuple[list[Club], int]:
    """Active non-private clubs, largest first."""
    query = select(Club).where(Club.is_active.is_(True), Club.club_type != "private")
    if category:
        query = query.where(Club.category == category)
    if search:
        pattern = f"%{search.lower()}%"
        query = query.where(
            or_(
                func.lower(Club.name).like(pattern),
                func.lower(Club.description).like(pattern),
                func.lower(Club.location).like(pattern),
            )
        )
    total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar_one()
    result = await db.execute(
        query.order_by(Club.member_count.desc(), Club.id.asc()).offset((page - 1) * per_page).limit(per_page)
    )
    return list(result.scalars().all()), total


async def get_user_clubs(db: AsyncSession, user_id: int) -> list[tuple[ClubMember, Club]]:
    result = await db.execute(
        select(ClubMember, Club)
        .join(Club, ClubMember.club_id == Club.id)
        .where(ClubMember.user_id == user_id, Club.is_active.is_(True))
        .order_by(ClubMember.joined_at.asc())
    )
    return [(m, c) for m, c in result]


async def update_club(db: AsyncSession, user_id: int, club_id: int, changes: dict[str, Any]) -> Club:
    club = await get_club(db, club_id)
    await _require_admin(db, club_id, user_id)

    if "name" in changes and changes["name"] is not None:
        if await _name_taken(db, changes["name"], exclude_id=club_id):
            raise ConflictError("A club with this name already exists")
        club.name = changes["name"]
    if "club_type" in changes and changes["club_type"] is not None:
        if changes["club_type"] not in CLUB_TYPES:
            raise DomainValidationError(f"Unknown club type: {changes['club_type']}")
        club.club_type = changes["club_type"]
    if "max_members" in changes and changes["max_members"] is not None:
        limit = get_settings().club_max_members
        if not max(2, club.member_count) <= changes["max_members"] <= limit:
            raise DomainValidationError(
                f"Member limit must be between {max(2, club.member_count)} and {limit}"
            )
        club.max_members = changes["max_members"]
    if "tags" in changes and changes["tags"] is not None:
        club.tags = sorted({t.strip().lower() for t in changes["tags"] if t.strip()})
    for field in ("description", "category", "location", "welcome_message"):
        if field in changes and changes[field] is not None:
            setattr(club, field, changes[field])

    club.updated_at = datetime.now(timezone.utc)
    await db.flush()
    return club


async def join_club(
    db: AsyncSession,
    redis: object,
    user_id: int,
    club_id: int,
    invite_code: str | None = None,
) -> ClubMember:
    club = await get_club(db, club_id)
    if club.club_type != "public":
        if not invite_code or normalize_invite_code(invite_code) != club.invite_code:
            raise PermissionDeniedError("A valid invite code is required to join this club")
    if await get_membership(db, club_id, user_id) is not None:
        raise ConflictError("Already a member of this club")
    if club.member_count >= club.max_members:
        raise ConflictError(f"This club is full ({club.max_members} members maximum)")

    member = ClubMember(club_id=club.id, user_id=user_id, role="member", joined_at=datetime.now(timezone.utc))
    db.add(member)
    club.member_count += 1
    club.updated_at = datetime.now(timezone.utc)
    await db.flush()

    newcomer = await db.get(User, user_id)
    admins = await db.execute(
        select(ClubMember.user_id).where(ClubMember.club_id == club.id, ClubMember.role == "admin")
    )
    await notify_many(
        db,
        [row[0] for row in admins],
        "social",
        "club_member_joined",
        title=f"{newcomer.display_name if newcomer else 'Someone'} joined {club.name}",
        link=f"/clubs/{club.id}",
        metadata={"club_id": club.id, "user_id": user_id},
        redis=redis,
    )
    logger.info("User %d joined club %d", user_id, club.id)
    return member


async def join_by_code(db: AsyncSession, redis: object, user_id: int, invite_code: str) -> ClubMember:
    result = await db.execute(select(Club).where(Club.invite_code == normalize_invite_code(invite_code)))
    club = result.scalar_one_or_none()
    if club is None or not club.is_active:
        raise NotFoundError("Club for this invite code")
    return await join_club(db, redis, user_id, club.id, invite_code)


async def leave_club(db: AsyncSession, user_id: int, club_id: int) -> None:
    club = await get_club(db, club_id)
    membership = await get_membership(db, club_id, user_id)
    if membership is None:
        raise NotFoundError("Club membership")

    if club.member_count <= 1:
        club.is_active = False
        club.member_count = 0
        logger.info("Club %d dissolved: last member left", club.id)
    else:
        if membership.role == "admin":
            other_admin = await db.execute(
                select(ClubMember.id).where(
                    ClubMember.club_id == club.id,
                    ClubMember.user_id != user_id,
                    ClubMember.role == "admin",
                )
            )
            if other_admin.first() is None:
                successor = (
                    await db.execute(
                        select(ClubMember)
                        .where(ClubMember.club_id == club.id, ClubMember.user_id != user_id)
                        .order_by(ClubMember.joined_at.asc(), ClubMember.id.asc())
                        .limit(1)
                    )
                ).scalar_one()
                successor.role = "admin"
                club.owner_user_id = successor.user_id
                logger.info("Club %d admin passed from %d to %d", club.id, user_id, successor.user_id)
        club.member_count -= 1

    await db.delete(membership)
    club.updated_at = datetime.now(timezone.utc)
    await db.flush()


async def get_members(
    db: AsyncSession,
    club_id: int,
    page: int = 1,
    per_page: int = 50,
) -> tuple[list[tuple[ClubMember, User]], int]:
    await get_club(db, club_id)
    total = (
        await db.execute(select(func.count()).select_from(ClubMember).where(ClubMember.club_id == club_id))
    ).scalar_one()
    result = await db.execute(
        select(ClubMember, User)
        .join(User, ClubMember.user_id == User.id)
        .where(ClubMember.club_id == club_id)
        .order_by(ClubMember.joined_at.asc(), ClubMember.id.asc())
        .offset((page - 1) * per_page)
        .limit(per_page)
    )
    return [(m, u) for m, u in result], total


async def change_role(db: AsyncSession, admin_id: int, club_id: int, target_user_id: int, role: str) -> ClubMember:
    await get_club(db, club_id)
    await _require_admin(db, club_id, admin_id)
    if role not in ROLES:
        raise DomainValidationError(f"Unknown club role: {role}")
    if admin_id == target_user_id:
        raise DomainValidationError("Admins cannot change their own role")
    target = await get_membership(db, club_id, target_user_id)
    if target is None:
        raise NotFoundError("Club member", target_user_id)
    target.role = role
    await db.flush()
    return target


async def remove_member(db: AsyncSession, admin_id: int, club_id: int, target_user_id: int) -> None:
    club = await get_club(db, club_id)
    await _require_admin(db, club_id, admin_id)
    if admin_id == target_user_id:
        raise DomainValidationError("Use the leave endpoint to leave the club")
    target = await get_membership(db, club_id, target_user_id)
    if target is None:
        raise NotFoundError("Club member", target_user_id)
    await db.delete(target)
    club.member_count -= 1
    club.updated_at = datetime.now(timezone.utc)
    await db.flush()
    logger.info("Admin %d removed user %d from club %d", admin_id, target_user_id, club.id)


async def regenerate_invite_code(db: AsyncSession, admin_id: int, club_id: int) -> str:
    club = await get_club(db, club_id)
    await _require_admin(db, club_id, admin_id)
    club.invite_code = await generate_unique_invite_code(db)
    club.updated_at = datetime.now(timezone.utc)
    await db.flush()
    return club.invite_code


async def get_club_feed(
    db: AsyncSession,
    viewer_id: int,
    club_id: int,
    page: int = 1,
    per_page: int = 20,
) -> tuple[list[ActivityShare], int]:
    """Non-private shares by club members, newest first. Members only."""
    club = await get_club(db, club_id)
    if club.club_type != "public" and await get_membership(db, club_id, viewer_id) is None:
        raise PermissionDeniedError("Only members can see this club's activity")

    member_ids = select(ClubMember.user_id).where(ClubMember.club_id == club_id)
    query = select(ActivityShare).where(ActivityShare.user_id.in_(member_ids), ActivityShare.privacy != "private")
    total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar_one()
    result = await db.execute(
        query.order_by(ActivityShare.created_at.desc(), ActivityShare.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
    )
    return list(result.scalars().all()), total
