"""Club invite codes.

8 characters from A-Z and 0-9, generated server-side from a cryptographic
random source and matched case-insensitively.
"""

from __future__ import annotations

import secrets
import string

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fitvibe.db.models import Club

INVITE_CHARSET = string.ascii_uppercase + string.digits
INVITE_LENGTH = 8
_MAX_ATTEMPTS = 10


def generate_invite_code() -> str:
    return "".join(secrets.choice(INVITE_CHARSET) for _ in range(INVITE_LENGTH))


def normalize_invite_code(code: str) -> str:
    return code.strip().upper()


async def generate_unique_invite_code(db: AsyncSession) -> str:
    for _ in range(_MAX_ATTEMPTS):
        code = generate_invite_code()
        taken = await db.execute(select(Club.id).where(Club.invite_code == code))
        if taken.first() is None:
            return code
    msg = f"Failed to generate a unique invite code after {_MAX_ATTEMPTS} attempts"
    raise RuntimeError(msg)
