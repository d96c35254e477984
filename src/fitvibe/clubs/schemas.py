"""Pydantic models for club endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

ClubType = Literal["public", "private", "invite_only"]
ClubRole = Literal["admin", "moderator", "member"]


class CreateClubRequest(BaseModel):
    name: str = Field(..., min_length=3, max_length=64)
    club_type: ClubType = "public"
    description: str | None = Field(None, max_length=2000)
    category: str = Field("general", min_length=1, max_length=32)
    location: str | None = Field(None, max_length=128)
    tags: list[str] = Field(default_factory=list, max_length=10)
    welcome_message: str | None = Field(None, max_length=512)
    max_members: int | None = None

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if len(v) < 3:
            raise ValueError("Club name must be at least 3 characters")
        return v


class UpdateClubRequest(BaseModel):
    name: str | None = Field(None, min_length=3, max_length=64)
    club_type: ClubType | None = None
    description: str | None = Field(None, max_length=2000)
    category: str | None = Field(None, min_length=1, max_length=32)
    location: str | None = Field(None, max_length=128)
    tags: list[str] | None = Field(None, max_length=10)
    welcome_message: str | None = Field(None, max_length=512)
    max_members: int | None = None


class ClubResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: str | None = None
    category: str
    club_type: str
    location: str | None = None
    tags: list[str]
    welcome_message: str | None = None
    owner_user_id: int
    member_count: int
    max_members: int
    created_at: datetime


class ClubDetailResponse(ClubResponse):
    my_role: str | None = None
    invite_code: str | None = None


class ClubListResponse(BaseModel):
    clubs: list[ClubResponse]
    total: int
    page: int
    per_page: int


class MyClubEntry(BaseModel):
    club: ClubResponse
    role: str
    joined_at: datetime


class MyClubsResponse(BaseModel):
    clubs: list[MyClubEntry]


class JoinClubRequest(BaseModel):
    invite_code: str | None = Field(None, max_length=16)


class JoinByCodeRequest(BaseModel):
    invite_code: str = Field(..., min_length=1, max_length=16)


class MembershipResponse(BaseModel):
    club_id: int
    user_id: int
    role: str
    joined_at: datetime
    welcome_message: str | None = None


class MemberEntry(BaseModel):
    user_id: int
    display_name: str
    avatar_url: str | None = None
    role: str
    joined_at: datetime


class MemberListResponse(BaseModel):
    members: list[MemberEntry]
    total: int
    page: int
    per_page: int


class ChangeRoleRequest(BaseModel):
    role: ClubRole


class InviteCodeResponse(BaseModel):
    club_id: int
    invite_code: str
