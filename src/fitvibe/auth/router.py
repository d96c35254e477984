"""Authentication router: all /api/v1/auth/* endpoints."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, Request
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from fitvibe.auth.dependencies import get_current_user
from fitvibe.auth.jwt import create_access_token
from fitvibe.auth.password import (
    PasswordStrengthError,
    generate_password,
    password_strength,
    validate_password_strength,
)
from fitvibe.auth.schemas import (
    ChangePasswordRequest,
    ForgotPasswordRequest,
    GeneratedPasswordResponse,
    LoginRequest,
    LogoutRequest,
    PasswordStrengthRequest,
    PasswordStrengthResponse,
    RefreshRequest,
    RegisterRequest,
    ResetPasswordRequest,
    TokenResponse,
    UserResponse,
    VerifyEmailRequest,
)
from fitvibe.auth.service import (
    RefreshTokenReuseError,
    authenticate_user,
    change_password,
    create_reset_token,
    create_verification_token,
    get_user_by_email,
    issue_refresh_token,
    register_user,
    reset_password,
    revoke_all_tokens,
    revoke_refresh_token,
    rotate_refresh_token,
    verify_email_token,
)
from fitvibe.config import get_settings
from fitvibe.database import get_session
from fitvibe.db.models import User
from fitvibe.email.service import get_email_service
from fitvibe.exceptions import DomainValidationError, RateLimitedError
from fitvibe.redis_client import get_redis
from fitvibe.users.service import build_user_response

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1/auth", tags=["Authentication"])

RESEND_COOLDOWN_SECONDS = 300


def _client_ip(request: Request) -> str | None:
    return request.client.host if request.client else None


async def _issue_tokens(db: AsyncSession, user: User, request: Request) -> TokenResponse:
    """Create access + refresh tokens, store the refresh hash and commit."""
    settings = get_settings()
    profile = await build_user_response(db, user)
    issued = await issue_refresh_token(
        db,
        user.id,
        ip_address=_client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
    await db.commit()

    access_token = create_access_token(
        user.id,
        user.email,
        user.display_name,
        level=profile.level,
        xp=profile.total_xp,
        email_verified=user.email_verified,
    )
    return TokenResponse(
        access_token=access_token,
        refresh_token=issued.raw,
        token_type="bearer",
        expires_in=settings.jwt_access_token_expire_minutes * 60,
        user=profile,
    )


async def _send_verification(db: AsyncSession, user: User, template_name: str) -> None:
    raw_token = await create_verification_token(db, user.id)
    verify_url = f"{get_settings().frontend_base_url}/auth/verify-email?token={raw_token}"
    await get_email_service().send_template(
        to=user.email,
        template_name=template_name,
        context={"display_name": user.display_name, "verify_url": verify_url},
    )


# ---------------------------------------------------------------------------
# Registration & login
# ---------------------------------------------------------------------------


@router.post("/register", response_model=TokenResponse, status_code=201)
async def register(
    body: RegisterRequest,
    request: Request,
    db: AsyncSession = Depends(get_session),
) -> TokenResponse:
    """Create an account and sign in. A welcome email carries the verification link."""
    user = await register_user(
        db,
        email=body.email,
        password=body.password,
        display_name=body.display_name,
        fitness_level=body.fitness_level,
        primary_goal=body.primary_goal,
    )
    try:
        await _send_verification(db, user, "welcome")
    except Exception:
        logger.exception("verification_email_failed", user_id=user.id)

    return await _issue_tokens(db, user, request)


@router.post("/login", response_model=TokenResponse)
async def login(
    body: LoginRequest,
    request: Request,
    db: AsyncSession = Depends(get_session),
    redis: Redis = Depends(get_redis),
) -> TokenResponse:
    user = await authenticate_user(db, redis, body.email, body.password)
    logger.info("login_succeeded", user_id=user.id)
    return await _issue_tokens(db, user, request)


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------


@router.post("/refresh", response_model=TokenResponse)
async def refresh(
    body: RefreshRequest,
    request: Request,
    db: AsyncSession = Depends(get_session),
) -> TokenResponse:
    """Rotate a refresh token. Reusing a rotated token signs the user out everywhere."""
    try:
        user, issued = await rotate_refresh_token(
            db,
            body.refresh_token,
            ip_address=_client_ip(request),
            user_agent=request.headers.get("user-agent"),
        )
    except RefreshTokenReuseError:
        # Keep the mass revocation even though the request fails
        await db.commit()
        raise

    settings = get_settings()
    profile = await build_user_response(db, user)
    await db.commit()
    return TokenResponse(
        access_token=create_access_token(
            user.id,
            user.email,
            user.display_name,
            level=profile.level,
            xp=profile.total_xp,
            email_verified=user.email_verified,
        ),
        refresh_token=issued.raw,
        token_type="bearer",
        expires_in=settings.jwt_access_token_expire_minutes * 60,
        user=profile,
    )


@router.post("/logout")
async def logout(
    body: LogoutRequest,
    _user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict[str, str]:
    await revoke_refresh_token(db, body.refresh_token)
    await db.commit()
    return {"status": "logged_out"}


@router.post("/logout-all")
async def logout_all(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict[str, object]:
    """Revoke every refresh token for the current user."""
    revoked = await revoke_all_tokens(db, user.id)
    await db.commit()
    return {"status": "all_sessions_revoked", "revoked": revoked}


# ---------------------------------------------------------------------------
# Email verification
# ---------------------------------------------------------------------------


@router.post("/verify-email")
async def verify_email_endpoint(
    body: VerifyEmailRequest,
    db: AsyncSession = Depends(get_session),
) -> dict[str, str]:
    await verify_email_token(db, body.token)
    await db.commit()
    return {"status": "email_verified"}


@router.post("/resend-verification")
async def resend_verification(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    redis: Redis = Depends(get_redis),
) -> dict[str, str]:
    """Resend the verification email. Limited to one per five minutes."""
    if user.email_verified:
        msg = "Email is already verified"
        raise DomainValidationError(msg)

    cooldown_key = f"resend_cooldown:{user.id}"
    if await redis.get(cooldown_key):
        ttl = await redis.ttl(cooldown_key)
        msg = "Please wait before requesting another verification email"
        raise RateLimitedError(msg, retry_after=max(int(ttl), 1))
    await redis.set(cooldown_key, "1", ex=RESEND_COOLDOWN_SECONDS)

    await _send_verification(db, user, "verify_email")
    await db.commit()
    return {"status": "verification_email_sent"}


# ---------------------------------------------------------------------------
# Passwords
# ---------------------------------------------------------------------------


@router.post("/forgot-password")
async def forgot_password(
    body: ForgotPasswordRequest,
    request: Request,
    db: AsyncSession = Depends(get_session),
) -> dict[str, str]:
    """Request a password reset email. Always returns 200."""
    user = await get_user_by_email(db, body.email)

    if user is not None and user.is_active:
        try:
            raw_token = await create_reset_token(db, user.id, ip_address=_client_ip(request))
            reset_url = f"{get_settings().frontend_base_url}/auth/reset-password?token={raw_token}"
            await get_email_service().send_template(
                to=user.email,
                template_name="password_reset",
                context={"reset_url": reset_url, "display_name": user.display_name},
            )
            await db.commit()
        except Exception:
            logger.exception("password_reset_email_failed", user_id=user.id)

    return {"status": "If that email exists, a reset link has been sent."}


@router.post("/reset-password")
async def reset_password_endpoint(
    body: ResetPasswordRequest,
    db: AsyncSession = Depends(get_session),
) -> dict[str, str]:
    await reset_password(db, body.token, body.new_password)
    await db.commit()
    return {"status": "password_reset_complete"}


@router.post("/change-password")
async def change_password_endpoint(
    body: ChangePasswordRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict[str, str]:
    """Change password. Every refresh token is revoked."""
    await change_password(db, user, body.current_password, body.new_password)
    await db.commit()

    try:
        await get_email_service().send_template(
            to=user.email,
            template_name="password_changed",
            context={"display_name": user.display_name},
        )
    except Exception:
        logger.exception("password_changed_email_failed", user_id=user.id)

    return {"status": "password_changed"}


@router.post("/password-strength", response_model=PasswordStrengthResponse)
async def check_password_strength(body: PasswordStrengthRequest) -> PasswordStrengthResponse:
    try:
        validate_password_strength(body.password)
    except PasswordStrengthError as e:
        return PasswordStrengthResponse(score=password_strength(body.password), is_strong=False, problems=[str(e)])
    return PasswordStrengthResponse(score=password_strength(body.password), is_strong=True)


@router.get("/generate-password", response_model=GeneratedPasswordResponse)
async def generate_password_endpoint() -> GeneratedPasswordResponse:
    password = generate_password()
    return GeneratedPasswordResponse(password=password, score=password_strength(password))


# ---------------------------------------------------------------------------
# Current user
# ---------------------------------------------------------------------------


@router.get("/me", response_model=UserResponse)
async def me(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> UserResponse:
    return await build_user_response(db, user)
