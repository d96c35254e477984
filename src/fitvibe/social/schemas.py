"""Pydantic models for follows, shares, comments and cheers."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from fitvibe.db.models import ActivitySession, ActivityShare, Cheer, User

Privacy = Literal["public", "followers_only", "private"]


class UserSummary(BaseModel):
    id: int
    display_name: str
    avatar_url: str | None = None


def user_summary(user: User) -> UserSummary:
    return UserSummary(id=user.id, display_name=user.display_name, avatar_url=user.avatar_url)


class ConnectionEntry(BaseModel):
    user: UserSummary
    since: datetime


class ConnectionListResponse(BaseModel):
    users: list[ConnectionEntry]
    total: int
    page: int
    per_page: int


class FollowResponse(BaseModel):
    user_id: int
    following: bool
    followers: int


class ShareSessionRequest(BaseModel):
    session_id: int
    caption: str | None = Field(None, max_length=500)
    privacy: Privacy = "public"


class SharedSessionInfo(BaseModel):
    id: int
    activity_type: str
    title: str | None = None
    duration_seconds: int
    distance_m: float
    calories: int
    ended_at: datetime | None = None


class ShareResponse(BaseModel):
    id: int
    author: UserSummary
    session: SharedSessionInfo | None = None
    caption: str | None = None
    privacy: str
    like_count: int
    comment_count: int
    liked_by_me: bool = False
    created_at: datetime


def share_response(
    share: ActivityShare,
    author: User,
    session: ActivitySession | None,
    liked: bool,
) -> ShareResponse:
    info = None
    if session is not None:
        info = SharedSessionInfo(
            id=session.id,
            activity_type=session.activity_type,
            title=session.title,
            duration_seconds=session.duration_seconds,
            distance_m=session.distance_m,
            calories=session.calories,
            ended_at=session.ended_at,
        )
    return ShareResponse(
        id=share.id,
        author=user_summary(author),
        session=info,
        caption=share.caption,
        privacy=share.privacy,
        like_count=share.like_count,
        comment_count=share.comment_count,
        liked_by_me=liked,
        created_at=share.created_at,
    )


class ShareListResponse(BaseModel):
    shares: list[ShareResponse]
    total: int
    page: int
    per_page: int


class LikeResponse(BaseModel):
    share_id: int
    like_count: int
    liked_by_me: bool


class CreateCommentRequest(BaseModel):
    body: str = Field(..., min_length=1, max_length=1000)


class CommentResponse(BaseModel):
    id: int
    share_id: int
    author: UserSummary
    body: str
    created_at: datetime


class CommentListResponse(BaseModel):
    comments: list[CommentResponse]
    total: int
    page: int
    per_page: int


class SendCheerRequest(BaseModel):
    cheer_type: Literal["text", "emoji", "audio", "power_up"] = "text"
    message: str | None = Field(None, max_length=280)
    emoji_code: str | None = Field(None, max_length=64)
    audio_url: str | None = Field(None, max_length=512)
    power_up_xp: int = Field(0, ge=0, le=100)
    session_id: int | None = None


class CheerResponse(BaseModel):
    id: int
    sender: UserSummary
    recipient_id: int
    session_id: int | None
    cheer_type: str
    message: str | None
    emoji_code: str | None
    audio_url: str | None
    power_up_xp: int
    is_live: bool
    delivered: bool | None = None
    created_at: datetime


def cheer_response(cheer: Cheer, sender: User, delivered: bool | None = None) -> CheerResponse:
    return CheerResponse(
        id=cheer.id,
        sender=user_summary(sender),
        recipient_id=cheer.recipient_id,
        session_id=cheer.session_id,
        cheer_type=cheer.cheer_type,
        message=cheer.message,
        emoji_code=cheer.emoji_code,
        audio_url=cheer.audio_url,
        power_up_xp=cheer.power_up_xp,
        is_live=cheer.is_live,
        delivered=delivered,
        created_at=cheer.created_at,
    )


class CheerListResponse(BaseModel):
    cheers: list[CheerResponse]
    total: int
    page: int
    per_page: int
