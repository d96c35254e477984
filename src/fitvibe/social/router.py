"""Social API endpoints: follows, shares, likes, comments and cheers."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from fitvibe.auth.dependencies import get_current_user
from fitvibe.database import get_session
from fitvibe.db.models import ActivityShare, User
from fitvibe.redis_client import get_redis
from fitvibe.social import service
from fitvibe.social.schemas import (
    CheerListResponse,
    CheerResponse,
    CommentListResponse,
    CommentResponse,
    ConnectionEntry,
    ConnectionListResponse,
    CreateCommentRequest,
    FollowResponse,
    LikeResponse,
    SendCheerRequest,
    ShareListResponse,
    ShareResponse,
    ShareSessionRequest,
    cheer_response,
    share_response,
    user_summary,
)

router = APIRouter(prefix="/api/v1/social", tags=["Social"])


async def build_share_responses(db: AsyncSession, viewer_id: int, shares: list[ActivityShare]) -> list[ShareResponse]:
    users, sessions, liked = await service.share_context(db, viewer_id, shares)
    return [share_response(s, users[s.user_id], sessions.get(s.session_id), s.id in liked) for s in shares]


# ── Follows ──


@router.post("/follow/{user_id}", response_model=FollowResponse, status_code=201)
async def follow(
    user_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    redis: Redis = Depends(get_redis),
) -> FollowResponse:
    await service.follow_user(db, redis, user, user_id)
    followers, _ = await service.connection_counts(db, user_id)
    await db.commit()
    return FollowResponse(user_id=user_id, following=True, followers=followers)


@router.delete("/follow/{user_id}", response_model=FollowResponse)
async def unfollow(
    user_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> FollowResponse:
    await service.unfollow_user(db, user.id, user_id)
    followers, _ = await service.connection_counts(db, user_id)
    await db.commit()
    return FollowResponse(user_id=user_id, following=False, followers=followers)


def _connection_list(rows: list, total: int, page: int, per_page: int) -> ConnectionListResponse:
    return ConnectionListResponse(
        users=[ConnectionEntry(user=user_summary(u), since=since) for u, since in rows],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.get("/users/{user_id}/followers", response_model=ConnectionListResponse)
async def followers(
    user_id: int,
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    _user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> ConnectionListResponse:
    rows, total = await service.get_followers(db, user_id, page, per_page)
    return _connection_list(rows, total, page, per_page)


@router.get("/users/{user_id}/following", response_model=ConnectionListResponse)
async def following(
    user_id: int,
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    _user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> ConnectionListResponse:
    rows, total = await service.get_following(db, user_id, page, per_page)
    return _connection_list(rows, total, page, per_page)


# ── Shares ──


@router.post("/shares", response_model=ShareResponse, status_code=201)
async def share_session(
    body: ShareSessionRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    redis: Redis = Depends(get_redis),
) -> ShareResponse:
    share = await service.share_session_by_id(db, redis, user.id, body.session_id, body.caption, body.privacy)
    [response] = await build_share_responses(db, user.id, [share])
    await db.commit()
    return response


@router.get("/feed", response_model=ShareListResponse)
async def feed(
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> ShareListResponse:
    shares, total = await service.get_feed(db, user.id, page, per_page)
    return ShareListResponse(
        shares=await build_share_responses(db, user.id, shares), total=total, page=page, per_page=per_page
    )


@router.get("/users/{user_id}/shares", response_model=ShareListResponse)
async def user_shares(
    user_id: int,
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> ShareListResponse:
    shares, total = await service.get_user_shares(db, user.id, user_id, page, per_page)
    return ShareListResponse(
        shares=await build_share_responses(db, user.id, shares), total=total, page=page, per_page=per_page
    )


@router.get("/shares/{share_id}", response_model=ShareResponse)
async def get_share(
    share_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> ShareResponse:
    share = await service.get_visible_share(db, user.id, share_id)
    [response] = await build_share_responses(db, user.id, [share])
    return response


@router.delete("/shares/{share_id}", status_code=204)
async def delete_share(
    share_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> None:
    await service.delete_share(db, user.id, share_id)
    await db.commit()


# ── Likes & comments ──


@router.post("/shares/{share_id}/like", response_model=LikeResponse, status_code=201)
async def like(
    share_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    redis: Redis = Depends(get_redis),
) -> LikeResponse:
    share = await service.like_share(db, redis, user, share_id)
    await db.commit()
    return LikeResponse(share_id=share.id, like_count=share.like_count, liked_by_me=True)


@router.delete("/shares/{share_id}/like", response_model=LikeResponse)
async def unlike(
    share_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> LikeResponse:
    share = await service.unlike_share(db, user.id, share_id)
    await db.commit()
    return LikeResponse(share_id=share.id, like_count=share.like_count, liked_by_me=False)


@router.post("/shares/{share_id}/comments", response_model=CommentResponse, status_code=201)
async def add_comment(
    share_id: int,
    body: CreateCommentRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    redis: Redis = Depends(get_redis),
) -> CommentResponse:
    comment = await service.add_comment(db, redis, user, share_id, body.body)
    await db.commit()
    return CommentResponse(
        id=comment.id,
        share_id=comment.share_id,
        author=user_summary(user),
        body=comment.body,
        created_at=comment.created_at,
    )


@router.get("/shares/{share_id}/comments", response_model=CommentListResponse)
async def list_comments(
    share_id: int,
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=100),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> CommentListResponse:
    rows, total = await service.get_comments(db, user.id, share_id, page, per_page)
    return CommentListResponse(
        comments=[
            CommentResponse(
                id=c.id, share_id=c.share_id, author=user_summary(u), body=c.body, created_at=c.created_at
            )
            for c, u in rows
        ],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.delete("/comments/{comment_id}", status_code=204)
async def delete_comment(
    comment_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> None:
    await service.delete_comment(db, user.id, comment_id)
    await db.commit()


# ── Cheers ──


@router.post("/cheer/{user_id}", response_model=CheerResponse, status_code=201)
async def send_cheer(
    user_id: int,
    body: SendCheerRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    redis: Redis = Depends(get_redis),
) -> CheerResponse:
    cheer, delivered = await service.send_cheer(
        db,
        redis,
        user,
        user_id,
        cheer_type=body.cheer_type,
        message=body.message,
        emoji_code=body.emoji_code,
        audio_url=body.audio_url,
        power_up_xp=body.power_up_xp,
        session_id=body.session_id,
    )
    await db.commit()
    return cheer_response(cheer, user, delivered)


@router.get("/cheers", response_model=CheerListResponse)
async def list_received_cheers(
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> CheerListResponse:
    rows, total = await service.get_received_cheers(db, user.id, page, per_page)
    return CheerListResponse(
        cheers=[cheer_response(c, sender) for c, sender in rows],
        total=total,
        page=page,
        per_page=per_page,
    )
