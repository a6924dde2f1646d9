"""User model type definitions for database operations."""

from datetime import datetime
from typing import Literal, TypedDict
from uuid import UUID

UserRole = Literal["client", "admin", "pm"]

AuthProvider = Literal["local", "google", "facebook", "github"]

USER_ROLES: tuple[str, ...] = ("client", "admin", "pm")


class User(TypedDict):
    """Users table row representation.

    A locally registered user always has a password hash. OAuth users may
    not.
    """

    id: UUID
    email: str
    password_hash: str | None
    first_name: str | None
    last_name: str | None
    company_name: str | None
    phone: str | None
    profile_image_url: str | None
    role: UserRole
    provider: AuthProvider
    provider_id: str | None
    referral_code: str | None
    referred_by: UUID | None
    created_at: datetime
    updated_at: datetime


class UserCreate(TypedDict, total=False):
    """Data required to create a new user.

    Only email is required; role defaults to client and provider to local.
    """

    email: str
    password_hash: str | None
    first_name: str | None
    last_name: str | None
    company_name: str | None
    phone: str | None
    profile_image_url: str | None
    role: UserRole
    provider: AuthProvider
    provider_id: str | None
    referral_code: str | None
    referred_by: str | None


class PasswordResetToken(TypedDict):
    """Password reset token row. Only the SHA-256 of the emailed token is stored."""

    id: UUID
    user_id: UUID
    token_hash: str
    expires_at: datetime
    used: bool
    used_at: datetime | None
    created_at: datetime
