"""
Error kinds raised by the auth service.

Each kind is an HTTPException with a fixed status code, so handlers can
re-raise them unchanged and the app-level handler renders them into the
standard response envelope.
"""
from typing import Dict, Optional
from fastapi import HTTPException, status

BEARER_CHALLENGE = {"WWW-Authenticate": "Bearer"}


class AuthError(HTTPException):
    """Base class for recognized auth service errors."""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "Something went wrong. Please try again later."
    headers: Optional[Dict[str, str]] = None

    def __init__(self, detail: Optional[str] = None):
        super().__init__(
            status_code=type(self).status_code,
            detail=detail or self.default_detail,
            headers=type(self).headers,
        )


class ValidationFailed(AuthError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Invalid request data"


class InvalidFields(ValidationFailed):
    default_detail = "Invalid updates. Allowed fields: firstname, lastname, phone, profilePicture"


class Conflict(AuthError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "User already exists"


class Unauthenticated(AuthError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = "Authentication required. Please log in."
    headers = BEARER_CHALLENGE


class TokenExpired(Unauthenticated):
    default_detail = "Token expired. Please log in again."


class InvalidToken(Unauthenticated):
    default_detail = "Invalid token. Please log in again."


class InvalidCredentials(AuthError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = "Invalid email or password"
    headers = BEARER_CHALLENGE


class Forbidden(AuthError):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "You do not have permission to access this resource."


class NotFound(AuthError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Resource not found"


class InvalidOrExpired(AuthError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Invalid or expired reset token"


class RateLimited(AuthError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    default_detail = "Too many requests, please try again later."

    def __init__(self, retry_after: int, detail: Optional[str] = None):
        super().__init__(detail)
        self.headers = {"Retry-After": str(retry_after)}


class Internal(AuthError):
    """Unexpected failure; the detail never carries internal information."""
