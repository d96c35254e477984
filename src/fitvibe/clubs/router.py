"""Club API endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from fitvibe.auth.dependencies import get_current_user
from fitvibe.clubs import service
from fitvibe.clubs.schemas import (
    ChangeRoleRequest,
    ClubDetailResponse,
    ClubListResponse,
    ClubResponse,
    CreateClubRequest,
    InviteCodeResponse,
    JoinByCodeRequest,
    JoinClubRequest,
    MemberEntry,
    MemberListResponse,
    MembershipResponse,
    MyClubEntry,
    MyClubsResponse,
    UpdateClubRequest,
)
from fitvibe.database import get_session
from fitvibe.db.models import Club, ClubMember, User
from fitvibe.redis_client import get_redis
from fitvibe.social.router import build_share_responses
from fitvibe.social.schemas import ShareListResponse

router = APIRouter(prefix="/api/v1/clubs", tags=["Clubs"])


def _detail(club: Club, membership: ClubMember | None) -> ClubDetailResponse:
    response = ClubDetailResponse.model_validate(club)
    response.my_role = membership.role if membership else None
    # Only admins see the invite code
    response.invite_code = club.invite_code if membership and membership.role == "admin" else None
    return response


def _membership(member: ClubMember, club: Club) -> MembershipResponse:
    return MembershipResponse(
        club_id=club.id,
        user_id=member.user_id,
        role=member.role,
        joined_at=member.joined_at,
        welcome_message=club.welcome_message,
    )


@router.post("", response_model=ClubDetailResponse, status_code=201)
async def create_club(
    body: CreateClubRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    redis: Redis = Depends(get_redis),
) -> ClubDetailResponse:
    club = await service.create_club(db, redis, user.id, **body.model_dump())
    membership = await service.get_membership(db, club.id, user.id)
    await db.commit()
    return _detail(club, membership)


@router.get("", response_model=ClubListResponse)
async def discover_clubs(
    q: str | None = Query(None, max_length=100),
    category: str | None = Query(None, max_length=32),
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_session),
) -> ClubListResponse:
    clubs, total = await service.discover_clubs(db, q, category, page, per_page)
    return ClubListResponse(
        clubs=[ClubResponse.model_validate(c) for c in clubs], total=total, page=page, per_page=per_page
    )


@router.get("/mine", response_model=MyClubsResponse)
async def my_clubs(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> MyClubsResponse:
    rows = await service.get_user_clubs(db, user.id)
    return MyClubsResponse(
        clubs=[MyClubEntry(club=ClubResponse.model_validate(c), role=m.role, joined_at=m.joined_at) for m, c in rows]
    )


@router.post("/join", response_model=MembershipResponse, status_code=201)
async def join_by_code(
    body: JoinByCodeRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    redis: Redis = Depends(get_redis),
) -> MembershipResponse:
    member = await service.join_by_code(db, redis, user.id, body.invite_code)
    club = await service.get_club(db, member.club_id)
    await db.commit()
    return _membership(member, club)


@router.get("/{club_id}", response_model=ClubDetailResponse)
async def get_club(
    club_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> ClubDetailResponse:
    club = await service.get_club(db, club_id)
    return _detail(club, await service.get_membership(db, club_id, user.id))


@router.patch("/{club_id}", response_model=ClubDetailResponse)
async def update_club(
    club_id: int,
    body: UpdateClubRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> ClubDetailResponse:
    club = await service.update_club(db, user.id, club_id, body.model_dump(exclude_unset=True))
    membership = await service.get_membership(db, club_id, user.id)
    await db.commit()
    return _detail(club, membership)


@router.post("/{club_id}/join", response_model=MembershipResponse, status_code=201)
async def join_club(
    club_id: int,
    body: JoinClubRequest | None = None,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    redis: Redis = Depends(get_redis),
) -> MembershipResponse:
    member = await service.join_club(db, redis, user.id, club_id, body.invite_code if body else None)
    club = await service.get_club(db, club_id)
    await db.commit()
    return _membership(member, club)


@router.post("/{club_id}/leave", status_code=204)
async def leave_club(
    club_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> None:
    await service.leave_club(db, user.id, club_id)
    await db.commit()


@router.get("/{club_id}/members", response_model=MemberListResponse)
async def list_members(
    club_id: int,
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=100),
    _user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> MemberListResponse:
    rows, total = await service.get_members(db, club_id, page, per_page)
    return MemberListResponse(
        members=[
            MemberEntry(
                user_id=u.id, display_name=u.display_name, avatar_url=u.avatar_url, role=m.role, joined_at=m.joined_at
            )
            for m, u in rows
        ],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.put("/{club_id}/members/{member_id}/role", response_model=MembershipResponse)
async def change_role(
    club_id: int,
    member_id: int,
    body: ChangeRoleRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> MembershipResponse:
    member = await service.change_role(db, user.id, club_id, member_id, body.role)
    club = await service.get_club(db, club_id)
    await db.commit()
    return _membership(member, club)


@router.delete("/{club_id}/members/{member_id}", status_code=204)
async def remove_member(
    club_id: int,
    member_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> None:
    await service.remove_member(db, user.id, club_id, member_id)
    await db.commit()


@router.post("/{club_id}/invite-code", response_model=InviteCodeResponse)
async def regenerate_invite_code(
    club_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> InviteCodeResponse:
    code = await service.regenerate_invite_code(db, user.id, club_id)
    await db.commit()
    return InviteCodeResponse(club_id=club_id, invite_code=code)


@router.get("/{club_id}/feed", response_model=ShareListResponse)
async def club_feed(
    club_id: int,
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> ShareListResponse:
    shares, total = await service.get_club_feed(db, user.id, club_id, page, per_page)
    return ShareListResponse(
        shares=await build_share_responses(db, user.id, shares), total=total, page=page, per_page=per_page
    )
