"""Session model type definitions for database operations."""

from datetime import datetime
from typing import Literal, TypedDict
from uuid import UUID

AuthMethod = Literal["local", "google", "facebook", "github", "legacy"]


class UserSession(TypedDict):
    """User session table row representation.

    The session token is the opaque value carried by the session cookie.
    ``expires_at`` holds the absolute max-lifetime instant so the expiry
    sweep can delete rows without computing the policy.
    """

    id: UUID
    session_token: str
    user_id: UUID
    auth_method: AuthMethod
    login_at: datetime
    last_activity_at: datetime
    expires_at: datetime
    ip_address: str | None
    user_agent: str | None


class LegacySession(TypedDict):
    """Row of the previous deployment's cookie-session table (read-only)."""

    sid: str
    sess: dict | str
    expire: datetime
