"""
Password reset tokens.

A reset token is a random secret stored on the user record together with
its expiry. It is sent out of band and can be used once.
"""
import secrets
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from shopease.base_microservice import utcnow
from shopease.auth.models import User

RESET_TOKEN_BYTES = 32
RESET_TOKEN_TTL = timedelta(hours=1)


def generate_reset_token() -> str:
    """256 bits of randomness, hex encoded."""
    return secrets.token_hex(RESET_TOKEN_BYTES)


def issue_reset_token(
    user: User,
    ttl: timedelta = RESET_TOKEN_TTL,
    now: Optional[datetime] = None
) -> str:
    """Store a fresh token on the user, replacing any pending one. Caller commits."""
    token = generate_reset_token()
    user.reset_token = token
    user.reset_token_expires = (now or utcnow()) + ttl
    return token


def clear_reset_token(user: User) -> None:
    user.reset_token = None
    user.reset_token_expires = None


async def find_user_by_reset_token(
    db: AsyncSession,
    token: str,
    now: Optional[datetime] = None
) -> Optional[User]:
    """
    Find the user holding `token` while it is still valid, locking the row.

    Unknown and expired tokens both come back as None.
    """
    if not token:
        return None
    result = await db.execute(
        select(User)
        .where(
            User.reset_token == token,
            User.reset_token_expires > (now or utcnow()),
        )
        .with_for_update()
    )
    return result.scalar_one_or_none()
