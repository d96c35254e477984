"""
Password hashing, strength scoring and generation.

Hashes use argon2id with fixed parameters. ``check_needs_rehash`` lets the
login flow upgrade stored hashes transparently when the parameters change.
"""

from __future__ import annotations

import re
import secrets
import string

import argon2

from fitvibe.config import get_settings
from fitvibe.exceptions import DomainValidationError

_hasher = argon2.PasswordHasher(
    time_cost=2,
    memory_cost=65536,  # 64 MB
    parallelism=1,
    hash_len=32,
    salt_len=16,
    type=argon2.Type.ID,
)

SPECIAL_CHARACTERS = "!@#$%^&*()-_=+[]{};:,.<>?/|~"

COMMON_PASSWORDS = frozenset(
    {
        "password",
        "123456",
        "password123",
        "admin",
        "qwerty",
        "letmein",
        "welcome",
        "monkey",
        "1234567890",
        "password1",
    }
)

_REPEATED = re.compile(r"(.)\1\1")
_SEQUENCE_SOURCES = (string.ascii_lowercase, string.digits, "qwertyuiopasdfghjklzxcvbnm")


class PasswordStrengthError(DomainValidationError):
    """Raised when a password does not meet strength requirements."""


def hash_password(password: str) -> str:
    """Hash a password using argon2id. Returns the full encoded hash."""
    if not password:
        msg = "Password cannot be empty"
        raise PasswordStrengthError(msg)
    return _hasher.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    """Return True if ``password`` matches ``password_hash``. Never raises."""
    if not password or not password_hash:
        return False
    try:
        return _hasher.verify(password_hash, password)
    except (argon2.exceptions.VerificationError, argon2.exceptions.InvalidHashError):
        return False


def check_needs_rehash(password_hash: str) -> bool:
    return _hasher.check_needs_rehash(password_hash)


def _has_special(password: str) -> bool:
    return any(not c.isalnum() and not c.isspace() for c in password)


def _has_sequence(password: str, run: int = 3) -> bool:
    lowered = password.lower()
    for i in range(len(lowered) - run + 1):
        chunk = lowered[i : i + run]
        for source in _SEQUENCE_SOURCES:
            if chunk in source or chunk[::-1] in source:
                return True
    return False


def password_strength(password: str) -> int:
    """
    Score a password from 0 (trivial) to 100.

    Length contributes up to 40 points, character variety up to 50. Runs of
    three repeated or sequential characters and well-known passwords are
    penalised.
    """
    if not password:
        return 0

    score = 0
    if len(password) >= 8:
        score += 20
    if len(password) >= 12:
        score += 10
    if len(password) >= 16:
        score += 10

    if any(c.islower() for c in password):
        score += 10
    if any(c.isupper() for c in password):
        score += 10
    if any(c.isdigit() for c in password):
        score += 15
    if _has_special(password):
        score += 15

    if _REPEATED.search(password):
        score -= 10
    if _has_sequence(password):
        score -= 10
    if password.lower() in COMMON_PASSWORDS:
        score -= 20

    return max(0, min(100, score))


def validate_password_strength(password: str) -> None:
    """
    Validate the password policy.

    Raises PasswordStrengthError naming the first unmet requirement:
    length bounds from settings, upper, lower, digit and special characters,
    and not a well-known password.
    """
    settings = get_settings()
    if not password or not password.strip():
        msg = "Password cannot be empty"
        raise PasswordStrengthError(msg)
    if len(password) < settings.password_min_length:
        msg = f"Password must be at least {settings.password_min_length} characters"
        raise PasswordStrengthError(msg)
    if len(password) > settings.password_max_length:
        msg = f"Password must not exceed {settings.password_max_length} characters"
        raise PasswordStrengthError(msg)
    if not any(c.isupper() for c in password):
        msg = "Password must contain at least one uppercase letter"
        raise PasswordStrengthError(msg)
    if not any(c.islower() for c in password):
        msg = "Password must contain at least one lowercase letter"
        raise PasswordStrengthError(msg)
    if not any(c.isdigit() for c in password):
        msg = "Password must contain at least one digit"
        raise PasswordStrengthError(msg)
    if not _has_special(password):
        msg = "Password must contain at least one special character"
        raise PasswordStrengthError(msg)
    if password.lower() in COMMON_PASSWORDS:
        msg = "Password is too common"
        raise PasswordStrengthError(msg)


def is_password_strong(password: str) -> bool:
    try:
        validate_password_strength(password)
    except PasswordStrengthError:
        return False
    return True


def generate_password(length: int = 16, *, include_special: bool = True) -> str:
    """Generate a random password containing every required character class."""
    if length < 8:
        msg = "Generated passwords must be at least 8 characters"
        raise DomainValidationError(msg)
    if length > get_settings().password_max_length:
        msg = f"Generated passwords must not exceed {get_settings().password_max_length} characters"
        raise DomainValidationError(msg)

    pools = [string.ascii_lowercase, string.ascii_uppercase, string.digits]
    if include_special:
        pools.append(SPECIAL_CHARACTERS)
    alphabet = "".join(pools)

    rng = secrets.SystemRandom()
    while True:
        chars = [secrets.choice(pool) for pool in pools]
        chars += [secrets.choice(alphabet) for _ in range(length - len(chars))]
        rng.shuffle(chars)
        candidate = "".join(chars)
        if not include_special or is_password_strong(candidate):
            return candidate
