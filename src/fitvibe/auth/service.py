"""
Authentication business logic.

Handles account creation, credential checks with lockout, the refresh-token
lifecycle (store, rotate, revoke, reuse detection) and the single-use email
verification and password reset tokens.
"""

from __future__ import annotations

import hashlib
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

import structlog
from sqlalchemy import func, select, update

from fitvibe.auth.jwt import hash_refresh_token, new_refresh_token
from fitvibe.auth.password import (
    check_needs_rehash,
    hash_password,
    validate_password_strength,
    verify_password,
)
from fitvibe.config import get_settings
from fitvibe.db.models import (
    EmailVerificationToken,
    PasswordResetToken,
    RefreshToken,
    User,
    UserSettings,
)
from fitvibe.exceptions import (
    AuthenticationError,
    ConflictError,
    DomainValidationError,
    PermissionDeniedError,
    RateLimitedError,
)

if TYPE_CHECKING:
    from redis.asyncio import Redis
    from sqlalchemy.ext.asyncio import AsyncSession

logger = structlog.get_logger()


class RefreshTokenReuseError(AuthenticationError):
    """A rotated or revoked refresh token was presented again."""


@dataclass
class IssuedRefreshToken:
    raw: str
    record: RefreshToken


def normalize_display_name(display_name: str) -> str:
    return " ".join(display_name.split()).lower()


# ---------------------------------------------------------------------------
# User queries
# ---------------------------------------------------------------------------


async def get_user_by_id(db: AsyncSession, user_id: int) -> User | None:
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def get_user_by_email(db: AsyncSession, email: str) -> User | None:
    """Fetch a user by email (case-insensitive)."""
    result = await db.execute(select(User).where(func.lower(User.email) == email.lower().strip()))
    return result.scalar_one_or_none()


async def display_name_taken(db: AsyncSession, display_name: str, exclude_user_id: int | None = None) -> bool:
    stmt = select(User.id).where(User.display_name_normalized == normalize_display_name(display_name))
    if exclude_user_id is not None:
        stmt = stmt.where(User.id != exclude_user_id)
    result = await db.execute(stmt)
    return result.first() is not None


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


async def register_user(
    db: AsyncSession,
    email: str,
    password: str,
    display_name: str,
    fitness_level: str = "beginner",
    primary_goal: str = "general_fitness",
) -> User:
    """
    Create a new account.

    Raises:
        PasswordStrengthError: If the password fails the policy.
        ConflictError: If the email or display name is already in use.
    """
    validate_password_strength(password)

    if await get_user_by_email(db, email) is not None:
        msg = "Email already registered"
        raise ConflictError(msg)
    if await display_name_taken(db, display_name):
        msg = "Display name is already taken"
        raise ConflictError(msg)

    now = datetime.now(timezone.utc)
    user = User(
        email=email.lower().strip(),
        password_hash=hash_password(password),
        display_name=display_name,
        display_name_normalized=normalize_display_name(display_name),
        fitness_level=fitness_level,
        primary_goal=primary_goal,
        email_verified=False,
        created_at=now,
        last_login=now,
        login_count=1,
    )
    db.add(user)
    await db.flush()
    db.add(UserSettings(user_id=user.id, notifications={}, privacy={}, display={}))
    await db.flush()
    logger.info("user_created", user_id=user.id)
    return user


# ---------------------------------------------------------------------------
# Login
# ---------------------------------------------------------------------------


async def authenticate_user(
    db: AsyncSession,
    redis: Redis,
    email: str,
    password: str,
) -> User:
    """
    Check email + password.

    Raises:
        AuthenticationError: Unknown email or wrong password.
        RateLimitedError: Too many recent failures for this account.
        PermissionDeniedError: Account banned or deactivated.
    """
    user = await get_user_by_email(db, email)
    if user is None:
        msg = "Invalid email or password"
        raise AuthenticationError(msg)

    if await check_account_lockout(redis, user.id):
        settings = get_settings()
        msg = "Account temporarily locked. Try again later."
        raise RateLimitedError(msg, retry_after=settings.account_lockout_duration_minutes * 60)

    if user.is_banned:
        msg = "Account is banned"
        raise PermissionDeniedError(msg)
    if not user.is_active:
        msg = "Account is deactivated"
        raise PermissionDeniedError(msg)

    if not verify_password(password, user.password_hash):
        attempts = await increment_failed_login(redis, user.id)
        logger.info("login_failed", user_id=user.id, attempts=attempts)
        msg = "Invalid email or password"
        raise AuthenticationError(msg)

    await clear_failed_login(redis, user.id)

    user.last_login = datetime.now(timezone.utc)
    user.login_count = (user.login_count or 0) + 1

    if check_needs_rehash(user.password_hash):
        user.password_hash = hash_password(password)
        logger.info("password_rehashed", user_id=user.id)

    await db.flush()
    return user


# ---------------------------------------------------------------------------
# Account lockout
# ---------------------------------------------------------------------------


def _attempts_key(user_id: int) -> str:
    return f"login_attempts:{user_id}"


async def check_account_lockout(redis: Redis, user_id: int) -> bool:
    settings = get_settings()
    count_str = await redis.get(_attempts_key(user_id))
    if count_str is None:
        return False
    return int(count_str) >= settings.account_lockout_threshold


async def increment_failed_login(redis: Redis, user_id: int) -> int:
    """Bump the failure counter; the window starts at the first failure."""
    settings = get_settings()
    key = _attempts_key(user_id)
    count = await redis.incr(key)
    if count == 1:
        await redis.expire(key, settings.account_lockout_duration_minutes * 60)
    return int(count)


async def clear_failed_login(redis: Redis, user_id: int) -> None:
    await redis.delete(_attempts_key(user_id))


# ---------------------------------------------------------------------------
# Refresh tokens
# ---------------------------------------------------------------------------


async def issue_refresh_token(
    db: AsyncSession,
    user_id: int,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> IssuedRefreshToken:
    """Mint an opaque refresh token and persist its hash."""
    settings = get_settings()
    raw = new_refresh_token()
    now = datetime.now(timezone.utc)
    record = RefreshToken(
        user_id=user_id,
        token_hash=hash_refresh_token(raw),
        issued_at=now,
        expires_at=now + timedelta(days=settings.jwt_refresh_token_expire_days),
        ip_address=ip_address,
        user_agent=user_agent[:512] if user_agent else None,
    )
    db.add(record)
    await db.flush()
    return IssuedRefreshToken(raw=raw, record=record)


async def get_refresh_token(db: AsyncSession, raw_token: str) -> RefreshToken | None:
    result = await db.execute(
        select(RefreshToken).where(RefreshToken.token_hash == hash_refresh_token(raw_token))
    )
    return result.scalar_one_or_none()


async def rotate_refresh_token(
    db: AsyncSession,
    raw_token: str,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> tuple[User, IssuedRefreshToken]:
    """
    Exchange a refresh token for a new one.

    Presenting a token that was already rotated or revoked is treated as
    theft: every outstanding token for the user is revoked and
    RefreshTokenReuseError is raised. The caller must commit before
    propagating it so the revocation sticks.
    """
    old = await get_refresh_token(db, raw_token)
    if old is None:
        msg = "Invalid refresh token"
        raise AuthenticationError(msg)

    if old.is_revoked:
        revoked = await revoke_all_tokens(db, old.user_id)
        logger.warning("refresh_token_reuse", user_id=old.user_id, revoked=revoked)
        msg = "Refresh token has been revoked"
        raise RefreshTokenReuseError(msg)

    now = datetime.now(timezone.utc)
    if old.expires_at <= now:
        msg = "Refresh token has expired"
        raise AuthenticationError(msg)

    user = await get_user_by_id(db, old.user_id)
    if user is None or not user.is_active:
        msg = "User not found"
        raise AuthenticationError(msg)
    if user.is_banned:
        msg = "Account is banned"
        raise PermissionDeniedError(msg)

    issued = await issue_refresh_token(db, user.id, ip_address=ip_address, user_agent=user_agent)
    old.is_revoked = True
    old.revoked_at = now
    old.replaced_by = issued.record.id
    await db.flush()
    return user, issued


async def revoke_refresh_token(db: AsyncSession, raw_token: str) -> bool:
    """Revoke one refresh token. Returns True if it existed and was live."""
    token = await get_refresh_token(db, raw_token)
    if token is None or token.is_revoked:
        return False
    token.is_revoked = True
    token.revoked_at = datetime.now(timezone.utc)
    await db.flush()
    return True


async def revoke_all_tokens(db: AsyncSession, user_id: int) -> int:
    """Revoke every live refresh token for a user. Returns count revoked."""
    result = await db.execute(
        update(RefreshToken)
        .where(RefreshToken.user_id == user_id)
        .where(RefreshToken.is_revoked.is_(False))
        .values(is_revoked=True, revoked_at=datetime.now(timezone.utc))
    )
    await db.flush()
    return result.rowcount or 0


# ---------------------------------------------------------------------------
# Single-use tokens (email verification, password reset)
# ---------------------------------------------------------------------------


def _hash_token(raw_token: str) -> str:
    return hashlib.sha256(raw_token.encode()).hexdigest()


async def create_verification_token(db: AsyncSession, user_id: int) -> str:
    """Create an email verification token, invalidating earlier ones.

    Returns the raw token; only its hash is stored.
    """
    settings = get_settings()
    raw_token = secrets.token_urlsafe(48)
    now = datetime.now(timezone.utc)

    await db.execute(
        update(EmailVerificationToken)
        .where(EmailVerificationToken.user_id == user_id)
        .where(EmailVerificationToken.used_at.is_(None))
        .values(used_at=now)
    )
    db.add(
        EmailVerificationToken(
            user_id=user_id,
            token_hash=_hash_token(raw_token),
            created_at=now,
            expires_at=now + timedelta(hours=settings.email_verification_token_ttl_hours),
        )
    )
    await db.flush()
    return raw_token


async def verify_email_token(db: AsyncSession, raw_token: str) -> int:
    """Consume a verification token and mark the email verified. Returns the user id."""
    result = await db.execute(
        select(EmailVerificationToken).where(EmailVerificationToken.token_hash == _hash_token(raw_token))
    )
    token = result.scalar_one_or_none()
    now = datetime.now(timezone.utc)

    if token is None:
        msg = "Invalid or expired verification token"
        raise DomainValidationError(msg)
    if token.used_at is not None:
        msg = "Token has already been used"
        raise DomainValidationError(msg)
    if token.expires_at < now:
        msg = "Verification token has expired"
        raise DomainValidationError(msg)

    token.used_at = now
    await db.execute(update(User).where(User.id == token.user_id).values(email_verified=True))
    await db.flush()
    logger.info("email_verified", user_id=token.user_id)
    return token.user_id


async def create_reset_token(db: AsyncSession, user_id: int, ip_address: str | None = None) -> str:
    settings = get_settings()
    raw_token = secrets.token_urlsafe(48)
    now = datetime.now(timezone.utc)

    await db.execute(
        update(PasswordResetToken)
        .where(PasswordResetToken.user_id == user_id)
        .where(PasswordResetToken.used_at.is_(None))
        .values(used_at=now)
    )
    db.add(
        PasswordResetToken(
            user_id=user_id,
            token_hash=_hash_token(raw_token),
            created_at=now,
            expires_at=now + timedelta(minutes=settings.password_reset_token_ttl_minutes),
            ip_address=ip_address,
        )
    )
    await db.flush()
    return raw_token


async def reset_password(db: AsyncSession, raw_token: str, new_password: str) -> User:
    """Consume a reset token, set the new password and sign out everywhere."""
    validate_password_strength(new_password)

    result = await db.execute(
        select(PasswordResetToken).where(PasswordResetToken.token_hash == _hash_token(raw_token))
    )
    token = result.scalar_one_or_none()
    now = datetime.now(timezone.utc)

    if token is None:
        msg = "Invalid or expired reset token"
        raise DomainValidationError(msg)
    if token.used_at is not None:
        msg = "Token has already been used"
        raise DomainValidationError(msg)
    if token.expires_at < now:
        msg = "Reset token has expired"
        raise DomainValidationError(msg)

    user = await get_user_by_id(db, token.user_id)
    if user is None:
        msg = "Invalid or expired reset token"
        raise DomainValidationError(msg)

    token.used_at = now
    user.password_hash = hash_password(new_password)
    await revoke_all_tokens(db, user.id)
    logger.info("password_reset", user_id=user.id)
    return user


async def change_password(db: AsyncSession, user: User, current_password: str, new_password: str) -> None:
    """Replace the password after re-checking the current one; revokes refresh tokens."""
    if not verify_password(current_password, user.password_hash):
        msg = "Current password is incorrect"
        raise AuthenticationError(msg)
    if current_password == new_password:
        msg = "New password must differ from the current password"
        raise DomainValidationError(msg)
    validate_password_strength(new_password)

    user.password_hash = hash_password(new_password)
    await revoke_all_tokens(db, user.id)
    logger.info("password_changed", user_id=user.id)
