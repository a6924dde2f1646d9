"""Authentication request and response schemas."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from portal.schemas.common import CamelModel


class UserResponse(BaseModel):
    """Sanitized user record returned to clients (never includes the hash)."""

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(description="User ID")
    email: str = Field(description="Email address")
    first_name: str | None = Field(default=None, description="First name")
    last_name: str | None = Field(default=None, description="Last name")
    company_name: str | None = Field(default=None, description="Company name")
    phone: str | None = Field(default=None, description="Phone number")
    profile_image_url: str | None = Field(default=None, description="Avatar URL")
    role: str = Field(default="client", description="Role (client, admin, pm)")
    provider: str = Field(default="local", description="Sign-in provider")
    referral_code: str | None = Field(default=None, description="User's own referral code")
    created_at: datetime | None = Field(default=None, description="Registration timestamp")

    @classmethod
    def from_row(cls, user: dict[str, Any]) -> "UserResponse":
        """Build a response from a users row, dropping unknown columns."""
        fields = {k: v for k, v in user.items() if k in cls.model_fields}
        fields["id"] = str(user["id"])
        return cls(**fields)


class RegisterRequest(CamelModel):
    """Request schema for local registration.

    Password strength is checked by the service so failures share the
    400 error envelope.
    """

    email: str = Field(..., description="Email address", max_length=255)
    password: str = Field(..., description="Password", max_length=128)
    first_name: str = Field(..., description="First name", min_length=1, max_length=100)
    last_name: str | None = Field(default=None, description="Last name", max_length=100)
    company_name: str | None = Field(default=None, description="Company name", max_length=200)
    phone: str | None = Field(default=None, description="Phone number", max_length=50)
    referral_code: str | None = Field(default=None, description="Referral code of the referring user", max_length=50)


class RegisterResponse(BaseModel):
    """Response schema for registration.

    ``session_established`` is False when the account was created but the
    caller still has to log in.
    """

    user: UserResponse = Field(description="Created user")
    message: str = Field(description="Status message")
    session_established: bool = Field(description="Whether the caller is now logged in")


class LoginRequest(CamelModel):
    """Request schema for local login."""

    email: str = Field(..., description="Email address", max_length=255)
    password: str = Field(..., description="Password", max_length=128)


class LoginResponse(BaseModel):
    """Response schema for a successful login."""

    user: UserResponse = Field(description="Authenticated user")
    message: str = Field(default="Login successful", description="Status message")


class CurrentUserResponse(BaseModel):
    """Response schema for the current-user probe; ``user`` is null when anonymous."""

    user: UserResponse | None = Field(default=None, description="Current user or null")


class ForgotPasswordRequest(CamelModel):
    """Request schema for starting a password reset."""

    email: str = Field(..., description="Account email address", max_length=255)


class ResetPasswordRequest(CamelModel):
    """Request schema for completing a password reset."""

    token: str = Field(..., description="Reset token from the email link", min_length=1, max_length=256)
    password: str = Field(..., description="New password", max_length=128)


class ChangePasswordRequest(CamelModel):
    """Request schema for an authenticated password change."""

    current_password: str = Field(..., description="Current password", max_length=128)
    new_password: str = Field(..., description="New password", max_length=128)


class ProviderStatus(BaseModel):
    """Availability of one OAuth provider."""

    name: str = Field(description="Provider name")
    enabled: bool = Field(description="Whether credentials are configured")
    login_url: str | None = Field(default=None, description="Relative URL that starts the flow")


class ProvidersResponse(BaseModel):
    """Response schema listing OAuth providers."""

    providers: list[ProviderStatus] = Field(description="Known providers")
