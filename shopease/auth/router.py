"""
Authentication router.

This module provides the FastAPI router for the account endpoints:
- Registration and login
- Password reset and change
- Profile management
- Address management
- Account lookup for staff
"""
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, BackgroundTasks, Body, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from shopease.base_microservice import BaseMicroservice, get_db_session, get_settings
from shopease.config import Settings
from shopease.auth.exceptions import Internal, NotFound
from shopease.auth.jwt import seconds_until_expiry
from shopease.auth.mailer import EmailSender, get_email_sender
from shopease.auth.middleware import CurrentUser, RBACMiddleware, get_current_user
from shopease.auth.models import Address, User, UserRole
from shopease.auth.rate_limit import rate_limit
from shopease.auth.schemas import (
    AddressCreate, AddressOut, AddressUpdate, ChangePassword, ForgotPassword,
    ResetPassword, UserCreate, UserLogin, UserOut, parse_profile_update
)
from shopease.auth.users import UserService

FORGOT_PASSWORD_MESSAGE = "If your email is registered, you will receive a password reset link"

# Create router
router = APIRouter(tags=["auth"], dependencies=[Depends(rate_limit)])

# Create service instance
base_service = BaseMicroservice("auth")


def user_out(user: User) -> Dict[str, Any]:
    return UserOut.model_validate(user).model_dump(by_alias=True, mode="json")


def address_out(address: Address) -> Dict[str, Any]:
    return AddressOut.model_validate(address).model_dump(by_alias=True, mode="json")


def addresses_out(user: User) -> Dict[str, Any]:
    return {"id": user.id, "addresses": [address_out(a) for a in user.addresses]}

# --- Basic Auth Endpoints ---

@router.post("/register", status_code=status.HTTP_201_CREATED, response_model=Dict[str, Any])
async def register_user(
    user_data: UserCreate,
    db: AsyncSession = Depends(get_db_session),
    settings: Settings = Depends(get_settings)
):
    """
    Register a new user.

    Returns:
        Dict with the new user's public information
    """
    try:
        user = await UserService.register_user(user_data, db, settings)

        # Log event
        base_service.log_event("user.registered", {
            "id": user.id,
            "username": user.username
        })

        return {
            "status": "ok",
            "message": "Registration successful! Please login to your account.",
            "data": {"user": user_out(user)}
        }
    except HTTPException:
        # Re-raise FastAPI exceptions
        raise
    except Exception as e:
        base_service.log_error(e, context="User registration")
        raise Internal("Registration failed. Please try again later.")

@router.post("/login", response_model=Dict[str, Any])
async def login(
    login_data: UserLogin,
    db: AsyncSession = Depends(get_db_session),
    settings: Settings = Depends(get_settings)
):
    """
    Authenticate a user and return a bearer token.

    Returns:
        Dict with user information and the token
    """
    try:
        user, token = await UserService.authenticate_user(login_data, db, settings)

        # Log event
        base_service.log_event("user.login", {
            "id": user.id
        })

        return {
            "status": "ok",
            "message": "Login successful",
            "data": {
                "user": user_out(user),
                "token": token.access_token,
                "token_type": token.token_type,
                "expires_at": token.expires_at
            }
        }
    except HTTPException as e:
        # Log failed login attempt
        base_service.log_event("user.login.failed", {
            "reason": str(e.detail)
        })
        raise
    except Exception as e:
        base_service.log_error(e, context="User login")
        raise Internal("Login failed. Please try again later.")

@router.post("/forgot-password", response_model=Dict[str, Any])
async def forgot_password(
    payload: ForgotPassword,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db_session),
    settings: Settings = Depends(get_settings),
    email_sender: EmailSender = Depends(get_email_sender)
):
    """
    Start a password reset.

    The answer is the same whether or not the email is registered; the
    reset email goes out after the response has been sent.
    """
    try:
        issued = await UserService.request_password_reset(payload.email, db, settings)

        if issued is not None:
            user, token = issued
            background_tasks.add_task(
                email_sender.send_reset_password_email, user.email, user.get_full_name(), token
            )
            base_service.log_event("user.password.reset_requested", {"id": user.id})

        return {
            "status": "ok",
            "message": FORGOT_PASSWORD_MESSAGE,
            "data": None
        }
    except HTTPException:
        raise
    except Exception as e:
        base_service.log_error(e, context="Forgot password")
        raise Internal("Password reset request failed. Please try again later.")

@router.post("/reset-password/{token}", response_model=Dict[str, Any])
async def reset_password(
    token: str,
    payload: ResetPassword,
    db: AsyncSession = Depends(get_db_session),
    settings: Settings = Depends(get_settings)
):
    """
    Set a new password using a reset token.
    """
    try:
        user = await UserService.reset_password(token, payload.password, db, settings)

        base_service.log_event("user.password.reset", {"id": user.id})

        return {
            "status": "ok",
            "message": "Password reset successful. You can now log in with your new password.",
            "data": None
        }
    except HTTPException:
        raise
    except Exception as e:
        base_service.log_error(e, context="Reset password")
        raise Internal("Password reset failed. Please try again later.")

# --- Protected Endpoints ---

@router.get("/profile", response_model=Dict[str, Any])
async def get_profile(
    current: CurrentUser = Depends(get_current_user)
):
    """
    Get the profile of the authenticated user.
    """
    return {
        "status": "ok",
        "message": "Profile retrieved successfully",
        "data": {"user": user_out(current.user)}
    }

@router.patch("/profile", response_model=Dict[str, Any])
async def update_profile(
    payload: Dict[str, Any] = Body(...),
    current: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session)
):
    """
    Update the profile of the authenticated user.

    Only firstname, lastname, phone and profilePicture can be changed.
    """
    try:
        update_data = parse_profile_update(payload)
        user = await UserService.update_profile(current.id, update_data, db)

        # Log event
        base_service.log_event("user.updated", {
            "id": current.id,
            "fields_updated": sorted(update_data.model_fields_set)
        })

        return {
            "status": "ok",
            "message": "Profile updated successfully",
            "data": {"user": user_out(user)}
        }
    except HTTPException:
        raise
    except Exception as e:
        base_service.log_error(e, context="Update profile")
        raise Internal("Failed to update profile. Please try again later.")

@router.post("/change-password", response_model=Dict[str, Any])
async def change_password(
    payload: ChangePassword,
    current: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    settings: Settings = Depends(get_settings)
):
    """
    Change the password of the authenticated user.
    """
    try:
        await UserService.change_password(current.id, payload, db, settings)

        base_service.log_event("user.password.changed", {"id": current.id})

        return {
            "status": "ok",
            "message": "Password changed successfully",
            "data": None
        }
    except HTTPException:
        raise
    except Exception as e:
        base_service.log_error(e, context="Change password")
        raise Internal("Failed to change password. Please try again later.")

@router.post("/logout", response_model=Dict[str, Any])
async def logout(
    current: CurrentUser = Depends(get_current_user)
):
    """
    Log out.

    Tokens are stateless, so nothing changes on the server: the client has
    to discard its token, which otherwise stays valid until it expires.
    """
    base_service.log_event("user.logout", {
        "id": current.id,
        "token_seconds_left": seconds_until_expiry(current.token)
    })
    return {
        "status": "ok",
        "message": "Logged out successfully",
        "data": None
    }

# --- Address Management ---

@router.post("/address", status_code=status.HTTP_201_CREATED, response_model=Dict[str, Any])
async def add_address(
    payload: AddressCreate,
    current: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    settings: Settings = Depends(get_settings)
):
    """
    Add an address to the authenticated user.
    """
    try:
        user, address = await UserService.add_address(current.id, payload, db, settings)

        base_service.log_event("user.address.added", {"id": current.id, "address_id": address.id})

        return {
            "status": "ok",
            "message": "Address added successfully",
            "data": {
                "address": address_out(address),
                "user": addresses_out(user)
            }
        }
    except HTTPException:
        raise
    except Exception as e:
        base_service.log_error(e, context="Add address")
        raise Internal("Failed to add address. Please try again later.")

@router.patch("/address/{address_id}", response_model=Dict[str, Any])
async def update_address(
    address_id: str,
    payload: AddressUpdate,
    current: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session)
):
    """
    Update one of the authenticated user's addresses.
    """
    try:
        user, address = await UserService.update_address(current.id, address_id, payload, db)

        base_service.log_event("user.address.updated", {"id": current.id, "address_id": address_id})

        return {
            "status": "ok",
            "message": "Address updated successfully",
            "data": {
                "address": address_out(address),
                "user": addresses_out(user)
            }
        }
    except HTTPException:
        raise
    except Exception as e:
        base_service.log_error(e, context="Update address")
        raise Internal("Failed to update address. Please try again later.")

@router.delete("/address/{address_id}", response_model=Dict[str, Any])
async def delete_address(
    address_id: str,
    current: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session)
):
    """
    Delete one of the authenticated user's addresses.
    """
    try:
        user = await UserService.delete_address(current.id, address_id, db)

        base_service.log_event("user.address.deleted", {"id": current.id, "address_id": address_id})

        return {
            "status": "ok",
            "message": "Address deleted successfully",
            "data": {"user": addresses_out(user)}
        }
    except HTTPException:
        raise
    except Exception as e:
        base_service.log_error(e, context="Delete address")
        raise Internal("Failed to delete address. Please try again later.")

# --- Account Lookup ---

@router.get("/users", response_model=Dict[str, Any])
async def list_users(
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    current: CurrentUser = Depends(RBACMiddleware.has_roles([UserRole.ADMIN, UserRole.MANAGER])),
    db: AsyncSession = Depends(get_db_session)
):
    """
    List accounts. Admins and managers only.
    """
    users = await UserService.list_users(db, skip=skip, limit=limit)
    return {
        "status": "ok",
        "message": "Users retrieved successfully",
        "data": [user_out(u) for u in users]
    }

@router.get("/users/{user_id}", response_model=Dict[str, Any])
async def get_user(
    user_id: str,
    current: CurrentUser = Depends(RBACMiddleware.is_self_or_admin("user_id")),
    db: AsyncSession = Depends(get_db_session)
):
    """
    Get one account. Users may read their own, admins any.
    """
    user = await UserService.get_user_by_id(user_id, db)
    if user is None:
        raise NotFound("User not found")
    return {
        "status": "ok",
        "message": "User retrieved successfully",
        "data": {"user": user_out(user)}
    }

# --- Health Check ---

@router.get("/ping", response_model=Dict[str, Any])
async def ping():
    """
    Health check endpoint for the auth service.
    """
    return base_service.mcp_response(
        message="Auth service is alive",
        data={"timestamp": datetime.now(timezone.utc).isoformat()}
    )
