"""
Authentication middleware.

This module provides the single auth gate used by every protected route:
- Bearer token extraction and verification
- Re-resolving the user so tokens of deleted accounts stop working
- Role-based access control
"""
from dataclasses import dataclass
from typing import Optional, Sequence

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from shopease.base_microservice import BaseMicroservice, get_db_session
from shopease.config import Settings
from shopease.auth.exceptions import Forbidden, InvalidToken, TokenExpired, Unauthenticated
from shopease.auth.jwt import TokenData, TokenError, TokenExpiredError, verify_token
from shopease.auth.models import User, UserRole

BEARER_SCHEME = "Bearer"

# Bearer scheme for JWT tokens; missing or malformed headers are reported by the gate itself
bearer_scheme = HTTPBearer(auto_error=False)

gate_service = BaseMicroservice("auth.gate")


@dataclass
class CurrentUser:
    """Identity attached to the request once the gate lets it through."""
    id: str
    role: str
    email: str
    user: User
    token: TokenData


def extract_bearer_token(credentials: Optional[HTTPAuthorizationCredentials]) -> str:
    """Return the token from an `Authorization: Bearer <token>` header."""
    if credentials is None or credentials.scheme != BEARER_SCHEME:
        raise Unauthenticated()
    token = credentials.credentials.strip()
    if not token:
        raise Unauthenticated()
    return token


def decode_bearer_token(settings: Settings, token: str) -> TokenData:
    try:
        return verify_token(settings, token)
    except TokenExpiredError:
        raise TokenExpired()
    except TokenError as e:
        gate_service.log_event("auth.token.rejected", {"reason": e.__class__.__name__})
        raise InvalidToken()


async def resolve_user(db: AsyncSession, token_data: TokenData) -> User:
    result = await db.execute(
        select(User).where(User.id == token_data.user_id)
    )
    user = result.scalar_one_or_none()
    if user is None:
        raise Unauthenticated("User not found or token is invalid.")
    return user


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db_session)
) -> CurrentUser:
    """
    FastAPI dependency authenticating the request.

    Extracts and verifies the bearer token, then loads the account it was
    issued for. The role comes from the stored account, not the token, so a
    role change takes effect immediately.

    Raises:
        Unauthenticated: header missing/malformed, or the account no longer exists
        TokenExpired: token signature is valid but its lifetime is over
        InvalidToken: token is malformed or signed with another key
    """
    settings: Settings = request.app.state.settings
    token = extract_bearer_token(credentials)
    token_data = decode_bearer_token(settings, token)
    user = await resolve_user(db, token_data)

    current = CurrentUser(
        id=user.id,
        role=UserRole(user.role).value,
        email=user.email,
        user=user,
        token=token_data,
    )
    request.state.user = current
    return current


class RBACMiddleware:
    """
    Role-Based Access Control.

    Creates FastAPI dependencies for protecting routes based on:
    - User authentication
    - Role requirements
    - Resource ownership
    """

    @staticmethod
    def has_roles(roles: Sequence[str]):
        """
        Dependency to check if the user has any of the specified roles.

        Args:
            roles: Allowed role names (any match is sufficient)

        Returns:
            Dependency function
        """
        allowed = [UserRole(role).value for role in roles]

        async def verify_roles(current: CurrentUser = Depends(get_current_user)) -> CurrentUser:
            if current.role not in allowed:
                raise Forbidden(f"Role required: {', '.join(allowed)}")
            return current

        return verify_roles

    @staticmethod
    def is_self_or_admin(user_id_param: str = "user_id"):
        """
        Dependency to check if request is for the authenticated user or from an admin.

        Args:
            user_id_param: Name of the path parameter containing the user ID

        Returns:
            Dependency function
        """
        async def verify_self_or_admin(
            request: Request,
            current: CurrentUser = Depends(get_current_user)
        ) -> CurrentUser:
            target_user_id = request.path_params.get(user_id_param)
            if current.role == UserRole.ADMIN.value:
                return current
            if target_user_id is None or str(target_user_id) != current.id:
                raise Forbidden("Permission denied: can only access own resource")
            return current

        return verify_self_or_admin
