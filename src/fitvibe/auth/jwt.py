"""
Access-token signing and verification.

Access tokens are short-lived JWTs carrying the user's identity and a snapshot
of their progress (level, XP) so clients can render a header without an extra
round trip. Refresh tokens are opaque random strings; see ``new_refresh_token``.

HMAC algorithms (the default, HS256) sign with ``jwt_secret_key``. RSA
algorithms load a PEM key pair from disk instead.
"""

from __future__ import annotations

import hashlib
import secrets
import uuid
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import jwt

from fitvibe.config import get_settings

_signing_key: str | None = None
_verifying_key: str | None = None


def _load_keys() -> tuple[str, str]:
    """Return (signing, verifying) key material, cached after first call."""
    global _signing_key, _verifying_key  # noqa: PLW0603
    if _signing_key is None or _verifying_key is None:
        settings = get_settings()
        if settings.jwt_algorithm.startswith("HS"):
            _signing_key = _verifying_key = settings.jwt_secret_key
        else:
            _signing_key = Path(settings.jwt_private_key_path).read_text()
            _verifying_key = Path(settings.jwt_public_key_path).read_text()
    return _signing_key, _verifying_key


def reset_keys() -> None:
    """Forget cached key material (settings changed, e.g. in tests)."""
    global _signing_key, _verifying_key  # noqa: PLW0603
    _signing_key = None
    _verifying_key = None


def create_access_token(
    user_id: int,
    email: str,
    display_name: str,
    *,
    level: int = 1,
    xp: int = 0,
    email_verified: bool = False,
) -> str:
    """
    Create a signed access token.

    Args:
        user_id: The user's database ID (``sub``).
        email: Account email.
        display_name: Public display name (``name``).
        level: Current level at issue time.
        xp: Total XP at issue time.
        email_verified: Whether the address has been confirmed.

    Returns:
        Encoded JWT string.
    """
    signing_key, _ = _load_keys()
    settings = get_settings()
    now = datetime.now(timezone.utc)
    payload: dict[str, Any] = {
        "sub": str(user_id),
        "email": email,
        "name": display_name,
        "level": level,
        "xp": xp,
        "email_verified": email_verified,
        "jti": str(uuid.uuid4()),
        "iat": now,
        "exp": now + timedelta(minutes=settings.jwt_access_token_expire_minutes),
        "iss": settings.jwt_issuer,
        "aud": settings.jwt_audience,
        "type": "access",
    }
    return jwt.encode(payload, signing_key, algorithm=settings.jwt_algorithm)


def verify_token(token: str, expected_type: str = "access") -> dict[str, Any]:
    """
    Verify and decode an access token.

    Signature, issuer, audience and expiry are checked with the configured
    clock-skew leeway.

    Raises:
        jwt.InvalidTokenError: If the token is invalid, expired, or of the wrong type.
    """
    _, verifying_key = _load_keys()
    settings = get_settings()
    try:
        payload: dict[str, Any] = jwt.decode(
            token,
            verifying_key,
            algorithms=[settings.jwt_algorithm],
            issuer=settings.jwt_issuer,
            audience=settings.jwt_audience,
            leeway=settings.jwt_leeway_seconds,
            options={"require": ["exp", "iat", "sub", "jti"]},
        )
    except jwt.ExpiredSignatureError:
        msg = "Token has expired"
        raise jwt.InvalidTokenError(msg) from None

    if payload.get("type") != expected_type:
        msg = f"Expected token type '{expected_type}', got '{payload.get('type')}'"
        raise jwt.InvalidTokenError(msg)

    return payload


def new_refresh_token() -> str:
    """Return a fresh opaque refresh token (64 random bytes, URL-safe)."""
    return secrets.token_urlsafe(64)


def hash_refresh_token(raw_token: str) -> str:
    return hashlib.sha256(raw_token.encode()).hexdigest()
