"""Request/response schemas for authentication endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, EmailStr, Field, field_validator

FitnessLevel = Literal["beginner", "intermediate", "advanced", "athlete"]
PrimaryGoal = Literal[
    "general_fitness", "weight_loss", "muscle_gain", "endurance", "flexibility", "wellbeing"
]


class _EmailBody(BaseModel):
    email: EmailStr

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.lower().strip()


class RegisterRequest(_EmailBody):
    password: str = Field(..., min_length=1, max_length=128)
    display_name: str = Field(..., min_length=3, max_length=64)
    fitness_level: FitnessLevel = "beginner"
    primary_goal: PrimaryGoal = "general_fitness"

    @field_validator("display_name")
    @classmethod
    def strip_display_name(cls, v: str) -> str:
        v = v.strip()
        if len(v) < 3:
            msg = "Display name must be at least 3 characters"
            raise ValueError(msg)
        return v


class LoginRequest(_EmailBody):
    password: str = Field(..., min_length=1, max_length=128)


class VerifyEmailRequest(BaseModel):
    token: str


class ForgotPasswordRequest(_EmailBody):
    pass


class ResetPasswordRequest(BaseModel):
    token: str
    new_password: str = Field(..., min_length=1, max_length=128)


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(..., min_length=1, max_length=128)
    new_password: str = Field(..., min_length=1, max_length=128)


class PasswordStrengthRequest(BaseModel):
    password: str = Field(..., max_length=256)


class PasswordStrengthResponse(BaseModel):
    score: int
    is_strong: bool
    problems: list[str] = []


class GeneratedPasswordResponse(BaseModel):
    password: str
    score: int


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------


class RefreshRequest(BaseModel):
    refresh_token: str = Field(..., min_length=1)


class LogoutRequest(BaseModel):
    refresh_token: str = Field(..., min_length=1)


class TokenResponse(BaseModel):
    """Returned after register, login and refresh."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int = 3600
    user: UserResponse


class UserResponse(BaseModel):
    """The authenticated user's own profile."""

    id: int
    email: str
    email_verified: bool = False
    display_name: str
    avatar_url: str | None = None
    bio: str | None = None
    fitness_level: str
    primary_goal: str
    units: str = "metric"
    timezone: str = "UTC"
    level: int = 1
    total_xp: int = 0
    created_at: datetime | None = None
    last_login: datetime | None = None
    login_count: int = 0

    model_config = {"from_attributes": True}


TokenResponse.model_rebuild()
