"""
Request and response models for the auth endpoints.

Clients speak camelCase (postalCode, isDefault, profilePicture); the
models accept and emit those names while the code uses snake_case.
"""
import re
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, EmailStr, Field, ValidationError, field_validator, model_validator
from pydantic.alias_generators import to_camel

from shopease.auth.exceptions import InvalidFields, ValidationFailed
from shopease.auth.passwords import MAX_PASSWORD_BYTES

USERNAME_PATTERN = r"^[a-zA-Z0-9]{3,30}$"
PHONE_PATTERN = r"^[0-9+\s()-]{8,15}$"
PASSWORD_MIN_LENGTH = 6


def _check_password(v: str) -> str:
    if len(v) < PASSWORD_MIN_LENGTH:
        raise ValueError(f"Password must be at least {PASSWORD_MIN_LENGTH} characters long")
    if len(v.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValueError(f"Password cannot exceed {MAX_PASSWORD_BYTES} bytes")
    return v


def _check_phone(v: str) -> str:
    if not re.match(PHONE_PATTERN, v):
        raise ValueError("Please provide a valid phone number")
    return v


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class UserCreate(CamelModel):
    """Model for user registration."""
    username: str
    email: EmailStr
    password: str
    firstname: str = Field(..., min_length=2, max_length=50)
    lastname: str = Field(..., min_length=2, max_length=50)
    phone: str

    @field_validator('username')
    @classmethod
    def username_must_be_valid(cls, v):
        if not re.match(USERNAME_PATTERN, v):
            raise ValueError('Username must be 3-30 alphanumeric characters')
        return v

    @field_validator('phone')
    @classmethod
    def phone_must_be_valid(cls, v):
        return _check_phone(v)

    @field_validator('password')
    @classmethod
    def password_must_be_valid(cls, v):
        return _check_password(v)


class UserLogin(CamelModel):
    """Model for user login."""
    email: EmailStr
    password: str = Field(..., min_length=1)


class ForgotPassword(CamelModel):
    email: EmailStr


class ResetPassword(CamelModel):
    password: str

    @field_validator('password')
    @classmethod
    def password_must_be_valid(cls, v):
        return _check_password(v)


class ChangePassword(CamelModel):
    """Model for changing the password of the logged in user."""
    current_password: str = Field(..., min_length=1)
    new_password: str
    confirm_password: Optional[str] = None

    @field_validator('new_password')
    @classmethod
    def password_must_be_valid(cls, v):
        return _check_password(v)

    @model_validator(mode='after')
    def passwords_must_match(self):
        if self.confirm_password is not None and self.confirm_password != self.new_password:
            raise ValueError('Passwords must match')
        return self


class ClosedCamelModel(CamelModel):
    """Request body with a closed field set: only the camelCase names are accepted."""
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=False, extra="forbid"
    )


class ProfileUpdate(ClosedCamelModel):
    """
    The only profile fields a user may change.

    Unknown fields are rejected rather than ignored.
    """
    firstname: Optional[str] = Field(None, min_length=2, max_length=50)
    lastname: Optional[str] = Field(None, min_length=2, max_length=50)
    phone: Optional[str] = None
    profile_picture: Optional[str] = Field(None, min_length=1)

    @field_validator('phone')
    @classmethod
    def phone_must_be_valid(cls, v):
        return _check_phone(v) if v is not None else v

    @model_validator(mode='after')
    def at_least_one_field(self):
        if not self.model_fields_set:
            raise ValueError('At least one field must be provided')
        for name in self.model_fields_set:
            if getattr(self, name) is None:
                raise ValueError(f'{to_camel(name)} cannot be null')
        return self


class AddressCreate(ClosedCamelModel):
    street: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    postal_code: str = Field(..., min_length=1)
    country: Optional[str] = Field(None, min_length=1)
    is_default: bool = False


class AddressUpdate(ClosedCamelModel):
    street: Optional[str] = Field(None, min_length=1)
    city: Optional[str] = Field(None, min_length=1)
    state: Optional[str] = Field(None, min_length=1)
    postal_code: Optional[str] = Field(None, min_length=1)
    country: Optional[str] = Field(None, min_length=1)
    is_default: Optional[bool] = None

    @model_validator(mode='after')
    def no_null_fields(self):
        for name in self.model_fields_set:
            if getattr(self, name) is None:
                raise ValueError(f'{to_camel(name)} cannot be null')
        return self


class AddressOut(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    id: str
    street: str
    city: str
    state: str
    postal_code: str
    country: str
    is_default: bool


class UserOut(CamelModel):
    """Model for user information returned to clients. Never carries secrets."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    id: str
    username: str
    email: str
    firstname: str
    lastname: str
    phone: str
    role: str
    profile_picture: str
    addresses: List[AddressOut] = []
    last_login: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @field_validator('role', mode='before')
    @classmethod
    def role_value(cls, v):
        return getattr(v, "value", v)


def describe_validation_errors(errors: Sequence[Dict[str, Any]]) -> str:
    """Turn pydantic errors into the single message returned to clients."""
    if not errors:
        return "Invalid request data"
    error = errors[0]
    loc = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
    message = str(error.get("msg", "Invalid value"))
    if message.startswith("Value error, "):
        message = message[len("Value error, "):]
    return f"{'.'.join(loc)}: {message}" if loc else message


def parse_profile_update(payload: Any) -> ProfileUpdate:
    """Validate a PATCH /profile body against the closed set of profile fields."""
    try:
        return ProfileUpdate.model_validate(payload)
    except ValidationError as exc:
        errors = exc.errors()
        if any(err["type"] == "extra_forbidden" for err in errors):
            raise InvalidFields()
        raise ValidationFailed(describe_validation_errors(errors))
