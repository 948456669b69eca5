"""
JWT token handling for authentication.

This module provides functionality for:
- Creating signed access tokens
- Validating access tokens

Tokens are stateless. There is no server-side session table, so a token
stays valid until it expires; logging out only discards it on the client.
"""
import time
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from jwt.exceptions import ExpiredSignatureError, InvalidSignatureError, PyJWTError
from pydantic import BaseModel

from shopease.config import Settings


class Token(BaseModel):
    """Token response model."""
    access_token: str
    token_type: str = "bearer"
    expires_at: int  # Unix timestamp


class TokenData(BaseModel):
    """Token payload model."""
    user_id: str
    role: str
    email: str
    exp: Optional[int] = None


class TokenError(Exception):
    """Base class for token verification failures."""


class TokenExpiredError(TokenError):
    pass


class MalformedTokenError(TokenError):
    pass


class BadSignatureError(TokenError):
    pass


def create_access_token(
    settings: Settings,
    user_id: str,
    role: str,
    email: str,
    expires_delta: Optional[timedelta] = None
) -> Token:
    """
    Create a signed JWT access token.

    Args:
        settings: Service settings holding the signing key and default TTL
        user_id: Subject of the token
        role: User's role at issuance
        email: User's email
        expires_delta: Custom lifetime, defaults to ACCESS_TOKEN_EXPIRE_MINUTES

    Returns:
        Token with the encoded JWT and its expiry
    """
    lifetime = expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    now = datetime.now(timezone.utc)
    expires = now + lifetime
    to_encode = {
        "sub": str(user_id),
        "role": role,
        "email": email,
        "iat": now,
        "exp": expires,
    }
    encoded_jwt = jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)
    return Token(access_token=encoded_jwt, expires_at=int(expires.timestamp()))


def verify_token(settings: Settings, token: str) -> TokenData:
    """
    Verify a JWT token and return its claims.

    Raises:
        TokenExpiredError: the signature is fine but the token has expired
        BadSignatureError: the token was not signed with our key
        MalformedTokenError: anything else wrong with the token or its claims
    """
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
            options={"require": ["sub", "exp"]},
        )
    except ExpiredSignatureError as exc:
        raise TokenExpiredError("token expired") from exc
    except InvalidSignatureError as exc:
        raise BadSignatureError("bad signature") from exc
    except PyJWTError as exc:
        raise MalformedTokenError(str(exc)) from exc

    try:
        return TokenData(
            user_id=payload["sub"],
            role=payload["role"],
            email=payload["email"],
            exp=payload.get("exp"),
        )
    except (KeyError, ValueError, TypeError) as exc:
        raise MalformedTokenError("missing claims") from exc


def seconds_until_expiry(token_data: TokenData) -> int:
    if token_data.exp is None:
        return 0
    return max(0, token_data.exp - int(time.time()))
