"""
User management service.

This module provides functionality for:
- User registration
- User authentication
- Password reset and change
- Profile and address management

Every method that reads and then writes a user locks that user's row for
the rest of the transaction, so concurrent requests for the same account
cannot lose each other's updates.
"""
import secrets
from datetime import timedelta
from functools import lru_cache
from typing import List, Optional, Tuple

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from starlette.concurrency import run_in_threadpool

from shopease.base_microservice import utcnow
from shopease.config import Settings
from shopease.auth.exceptions import (
    Conflict, InvalidCredentials, InvalidOrExpired, NotFound, Unauthenticated
)
from shopease.auth.jwt import Token, create_access_token
from shopease.auth.models import Address, User, UserRole
from shopease.auth.passwords import get_password_hash, verify_password_async
from shopease.auth.reset_tokens import clear_reset_token, find_user_by_reset_token, issue_reset_token
from shopease.auth.schemas import (
    AddressCreate, AddressUpdate, ChangePassword, ProfileUpdate, UserCreate, UserLogin
)

# Checked in this order; the first colliding field names the conflict
UNIQUE_FIELDS = (
    ("phone", "Phone number already registered"),
    ("username", "Username already taken"),
    ("email", "Email already in use"),
)


@lru_cache(maxsize=4)
def _dummy_hash(rounds: int) -> str:
    """Hash compared against when the email is unknown, so both failures cost the same."""
    return get_password_hash(secrets.token_hex(16), rounds)


async def _load_user_for_update(db: AsyncSession, user_id: str) -> User:
    result = await db.execute(
        select(User)
        .where(User.id == user_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    user = result.scalar_one_or_none()
    if user is None:
        raise NotFound("User not found")
    return user


async def _find_conflict(db: AsyncSession, exclude_id: Optional[str] = None, **values: str) -> Optional[str]:
    """Return the conflict message for the first of `values` already taken."""
    clauses = [getattr(User, name) == value for name, value in values.items()]
    query = select(User).where(or_(*clauses))
    if exclude_id is not None:
        query = query.where(User.id != exclude_id)
    result = await db.execute(query)
    existing = result.scalars().all()
    for name, message in UNIQUE_FIELDS:
        if name in values and any(getattr(u, name) == values[name] for u in existing):
            return message
    return None


class UserService:
    """
    Service for account operations.
    """
    @staticmethod
    async def register_user(
        user_data: UserCreate,
        db: AsyncSession,
        settings: Settings
    ) -> User:
        """
        Register a new user.

        Raises:
            Conflict: If username, email or phone already exists
        """
        message = await _find_conflict(
            db,
            username=user_data.username,
            email=user_data.email,
            phone=user_data.phone,
        )
        if message:
            raise Conflict(message)

        new_user = User(
            username=user_data.username,
            email=user_data.email,
            phone=user_data.phone,
            firstname=user_data.firstname,
            lastname=user_data.lastname,
            role=UserRole.USER,
            profile_picture=settings.default_profile_picture,
        )
        await run_in_threadpool(new_user.set_password, user_data.password, settings.bcrypt_rounds)

        db.add(new_user)
        try:
            await db.commit()
        except IntegrityError:
            # lost a race with a concurrent registration
            await db.rollback()
            message = await _find_conflict(
                db,
                username=user_data.username,
                email=user_data.email,
                phone=user_data.phone,
            )
            raise Conflict(message or "User already exists")
        await db.refresh(new_user)
        return new_user

    @staticmethod
    async def authenticate_user(
        login_data: UserLogin,
        db: AsyncSession,
        settings: Settings
    ) -> Tuple[User, Token]:
        """
        Authenticate a user and return a bearer token.

        Raises:
            InvalidCredentials: unknown email or wrong password, deliberately alike
        """
        result = await db.execute(
            select(User).where(User.email == login_data.email)
        )
        user = result.scalar_one_or_none()

        if user is None:
            dummy = await run_in_threadpool(_dummy_hash, settings.bcrypt_rounds)
            await verify_password_async(login_data.password, dummy)
            raise InvalidCredentials()
        if not await verify_password_async(login_data.password, user.password_hash):
            raise InvalidCredentials()

        user = await _load_user_for_update(db, user.id)
        user.last_login = utcnow()
        await db.commit()

        token = create_access_token(
            settings,
            user_id=user.id,
            role=UserRole(user.role).value,
            email=user.email,
        )
        return user, token

    @staticmethod
    async def request_password_reset(
        email: str,
        db: AsyncSession,
        settings: Settings
    ) -> Optional[Tuple[User, str]]:
        """
        Issue a reset token when `email` belongs to an account.

        Returns the user and the token so the caller can send the email, or
        None. The caller must answer the client the same way in both cases.
        """
        result = await db.execute(
            select(User).where(User.email == email).with_for_update()
        )
        user = result.scalar_one_or_none()
        if user is None:
            return None

        token = issue_reset_token(user, ttl=timedelta(minutes=settings.reset_token_expire_minutes))
        await db.commit()
        return user, token

    @staticmethod
    async def reset_password(
        token: str,
        new_password: str,
        db: AsyncSession,
        settings: Settings
    ) -> User:
        """
        Consume a reset token and set the new password in one transaction.

        Raises:
            InvalidOrExpired: token unknown, already used, or expired
        """
        user = await find_user_by_reset_token(db, token)
        if user is None:
            raise InvalidOrExpired()

        await run_in_threadpool(user.set_password, new_password, settings.bcrypt_rounds)
        clear_reset_token(user)
        await db.commit()
        return user

    @staticmethod
    async def change_password(
        user_id: str,
        data: ChangePassword,
        db: AsyncSession,
        settings: Settings
    ) -> User:
        """
        Change the password after checking the current one.

        Raises:
            Unauthenticated: current password is wrong
        """
        user = await _load_user_for_update(db, user_id)
        if not await verify_password_async(data.current_password, user.password_hash):
            raise Unauthenticated("Current password is incorrect")

        await run_in_threadpool(user.set_password, data.new_password, settings.bcrypt_rounds)
        await db.commit()
        return user

    @staticmethod
    async def get_user_by_id(
        user_id: str,
        db: AsyncSession
    ) -> Optional[User]:
        result = await db.execute(
            select(User).where(User.id == user_id)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def list_users(
        db: AsyncSession,
        skip: int = 0,
        limit: int = 50
    ) -> List[User]:
        result = await db.execute(
            select(User).order_by(User.created_at, User.id).offset(skip).limit(limit)
        )
        return list(result.scalars().all())

    @staticmethod
    async def update_profile(
        user_id: str,
        update_data: ProfileUpdate,
        db: AsyncSession
    ) -> User:
        """
        Apply a profile update.

        Raises:
            Conflict: the new phone number belongs to another account
        """
        user = await _load_user_for_update(db, user_id)
        changes = update_data.model_dump(exclude_unset=True)

        if "phone" in changes and changes["phone"] != user.phone:
            message = await _find_conflict(db, exclude_id=user.id, phone=changes["phone"])
            if message:
                raise Conflict(message)

        for field, value in changes.items():
            setattr(user, field, value)

        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            raise Conflict("Phone number already registered")
        await db.refresh(user)
        return user

    @staticmethod
    async def add_address(
        user_id: str,
        address_data: AddressCreate,
        db: AsyncSession,
        settings: Settings
    ) -> Tuple[User, Address]:
        """Add an address. The first address, or one sent with isDefault, becomes the default."""
        user = await _load_user_for_update(db, user_id)

        next_position = max((a.position for a in user.addresses), default=-1) + 1
        address = Address(
            street=address_data.street,
            city=address_data.city,
            state=address_data.state,
            postal_code=address_data.postal_code,
            country=address_data.country or settings.default_country,
            is_default=address_data.is_default,
            position=next_position,
        )
        user.addresses.append(address)
        user.ensure_single_default(preferred=address if address_data.is_default else None)
        user.updated_at = utcnow()

        await db.commit()
        await db.refresh(user)
        return user, address

    @staticmethod
    async def update_address(
        user_id: str,
        address_id: str,
        update_data: AddressUpdate,
        db: AsyncSession
    ) -> Tuple[User, Address]:
        """
        Update an address.

        Setting isDefault makes it the only default; clearing it on the
        current default hands the flag to the first other address.

        Raises:
            NotFound: no such address on this account
        """
        user = await _load_user_for_update(db, user_id)
        address = user.find_address(address_id)
        if address is None:
            raise NotFound("Address not found")

        changes = update_data.model_dump(exclude_unset=True)
        make_default = changes.pop("is_default", None)
        for field, value in changes.items():
            setattr(address, field, value)

        if make_default is True:
            user.ensure_single_default(preferred=address)
        elif make_default is False and address.is_default:
            others = [a for a in user.addresses if a is not address]
            address.is_default = False
            # the only address stays default
            user.ensure_single_default(preferred=others[0] if others else address)
        else:
            user.ensure_single_default()
        user.updated_at = utcnow()

        await db.commit()
        await db.refresh(user)
        return user, address

    @staticmethod
    async def delete_address(
        user_id: str,
        address_id: str,
        db: AsyncSession
    ) -> User:
        """
        Delete an address; if it was the default the first remaining one takes over.

        Raises:
            NotFound: no such address on this account
        """
        user = await _load_user_for_update(db, user_id)
        address = user.find_address(address_id)
        if address is None:
            raise NotFound("Address not found")

        user.addresses.remove(address)
        user.ensure_single_default()
        user.updated_at = utcnow()

        await db.commit()
        await db.refresh(user)
        return user
