"""User (credential store) business logic service."""

import logging
import secrets
from typing import Any

from postgrest.exceptions import APIError as PostgrestAPIError

from portal.api.middleware.error_handler import NotFoundError, ValidationError
from portal.core.security import normalize_email
from portal.core.supabase import get_supabase_client, is_unique_violation
from portal.core.timestamps import to_iso, utcnow
from portal.models.user import UserCreate

logger = logging.getLogger(__name__)

PUBLIC_USER_FIELDS = (
    "id",
    "email",
    "first_name",
    "last_name",
    "company_name",
    "phone",
    "profile_image_url",
    "role",
    "provider",
    "referral_code",
    "referred_by",
    "created_at",
    "updated_at",
)


def sanitize_user(user: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of a users row without credential columns."""
    return {key: user.get(key) for key in PUBLIC_USER_FIELDS if key in user}


class UserService:
    """Service for reading and writing user records."""

    REFERRAL_CODE_BYTES = 4

    def __init__(self) -> None:
        """Initialize user service with Supabase client."""
        self.client = get_supabase_client()

    def _generate_referral_code(self) -> str:
        return f"REF{secrets.token_hex(self.REFERRAL_CODE_BYTES).upper()}"

    async def get_user_by_id(self, user_id: str) -> dict[str, Any] | None:
        """Get a user by ID.

        Args:
            user_id: The user's ID.

        Returns:
            dict | None: The users row or None if not found.
        """
        response = (
            self.client.table("users")
            .select("*")
            .eq("id", str(user_id))
            .maybe_single()
            .execute()
        )
        return response.data if response and response.data else None

    async def get_user_by_email(self, email: str) -> dict[str, Any] | None:
        """Get a user by email, case-insensitively.

        Args:
            email: Email address in any case.

        Returns:
            dict | None: The users row or None if not found.
        """
        response = (
            self.client.table("users")
            .select("*")
            .eq("email", normalize_email(email))
            .maybe_single()
            .execute()
        )
        return response.data if response and response.data else None

    async def get_user_by_referral_code(self, code: str) -> dict[str, Any] | None:
        """Get the user owning a referral code.

        Args:
            code: Referral code as typed by the referred user.

        Returns:
            dict | None: The referring user or None if the code is unknown.
        """
        response = (
            self.client.table("users")
            .select("*")
            .eq("referral_code", code.strip().upper())
            .maybe_single()
            .execute()
        )
        return response.data if response and response.data else None

    async def create_user(self, data: UserCreate) -> dict[str, Any]:
        """Insert a new user.

        The email is normalized, a referral code is generated and role and
        provider default to ``client`` and ``local``.

        Args:
            data: Column values for the new user.

        Returns:
            dict: The created users row.

        Raises:
            ValidationError: If the email is already registered.
        """
        now = to_iso(utcnow())
        row = {
            "role": "client",
            "provider": "local",
            **data,
            "email": normalize_email(data["email"]),
            "referral_code": self._generate_referral_code(),
            "created_at": now,
            "updated_at": now,
        }

        try:
            response = self.client.table("users").insert(row).execute()
        except PostgrestAPIError as e:
            if is_unique_violation(e):
                raise ValidationError("Email already exists") from e
            raise

        user = response.data[0]
        logger.info("Created user %s (provider=%s)", user["id"], user.get("provider"))
        return user

    async def update_user(self, user_id: str, data: dict[str, Any]) -> dict[str, Any]:
        """Update columns on a user.

        Args:
            user_id: The user's ID.
            data: Columns to change.

        Returns:
            dict: The updated users row.

        Raises:
            NotFoundError: If the user does not exist.
        """
        response = (
            self.client.table("users")
            .update({**data, "updated_at": to_iso(utcnow())})
            .eq("id", str(user_id))
            .execute()
        )
        if not response.data:
            raise NotFoundError("User not found")
        return response.data[0]

    async def update_password(self, user_id: str, password_hash: str) -> dict[str, Any]:
        """Replace a user's password hash."""
        return await self.update_user(user_id, {"password_hash": password_hash})
