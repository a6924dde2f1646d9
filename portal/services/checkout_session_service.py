"""Checkout session service for carts created before login."""

import logging
import secrets
import time
from datetime import timedelta
from typing import Any

from portal.api.middleware.error_handler import GoneError, NotFoundError, ValidationError
from portal.core.supabase import get_supabase_client
from portal.core.timestamps import parse_timestamp, to_iso, utcnow
from portal.services.catalog_service import CatalogService

logger = logging.getLogger(__name__)

CHECKOUT_SESSION_TTL = timedelta(hours=2)

SERVICE_SNAPSHOT_FIELDS = ("id", "name", "description", "price", "category", "duration", "duration_days")


def generate_checkout_token() -> str:
    """Create an opaque checkout token, e.g. ``checkout_1718000000000_9f2c...``."""
    return f"checkout_{int(time.time() * 1000)}_{secrets.token_hex(8)}"


class CheckoutSessionService:
    """Service for short-lived carts handed over from anonymous browsing to login.

    A session expires two hours after creation. Reading an expired session
    deletes it and raises ``GoneError``. Once a session has an owner, every
    other caller, anonymous ones included, is told it does not exist.
    """

    def __init__(self) -> None:
        """Initialize checkout session service with Supabase client."""
        self.client = get_supabase_client()
        self.catalog = CatalogService()

    async def create_session(
        self,
        service_id: str,
        contact_data: dict[str, Any] | None = None,
        selected_add_ons: list[Any] | None = None,
        total_price: float | None = None,
        user_id: str | None = None,
    ) -> dict[str, Any]:
        """Start a checkout session for a service.

        Args:
            service_id: The service being bought.
            contact_data: Contact details entered so far.
            selected_add_ons: Selected add-ons.
            total_price: Cart total; defaults to the service price.
            user_id: Owner if the caller is already logged in.

        Returns:
            dict: The created checkout_sessions row.

        Raises:
            NotFoundError: If the service does not exist.
            ValidationError: If the service is inactive or the price is negative.
        """
        service = await self.catalog.get_service(service_id)
        if not service:
            raise NotFoundError("Service not found")
        if not service.get("is_active", True):
            raise ValidationError("This service is no longer available")

        if total_price is None:
            total_price = float(service.get("price") or 0)
        if total_price < 0:
            raise ValidationError("Total price cannot be negative")

        now = utcnow()
        row = {
            "session_token": generate_checkout_token(),
            "service_id": str(service_id),
            "service_data": {k: service.get(k) for k in SERVICE_SNAPSHOT_FIELDS if k in service},
            "contact_data": contact_data,
            "selected_add_ons": selected_add_ons or [],
            "total_price": total_price,
            "user_id": str(user_id) if user_id else None,
            "expires_at": to_iso(now + CHECKOUT_SESSION_TTL),
            "created_at": to_iso(now),
        }

        response = self.client.table("checkout_sessions").insert(row).execute()
        logger.info("Created checkout session for service %s", service_id)
        return response.data[0]

    async def get_session(self, session_token: str, user_id: str | None = None) -> dict[str, Any]:
        """Get a live checkout session visible to the caller.

        Args:
            session_token: The checkout token.
            user_id: The caller, or None when anonymous.

        Raises:
            NotFoundError: If no session has this token or another user owns it.
            GoneError: If the session has expired (it is deleted).
        """
        response = (
            self.client.table("checkout_sessions")
            .select("*")
            .eq("session_token", session_token)
            .maybe_single()
            .execute()
        )
        session = response.data if response and response.data else None
        if not session:
            raise NotFoundError("Checkout session not found")

        owner = session.get("user_id")
        if owner and str(owner) != str(user_id or ""):
            raise NotFoundError("Checkout session not found")

        expires_at = parse_timestamp(session.get("expires_at"))
        if expires_at is None or expires_at <= utcnow():
            await self.delete_session(session_token)
            raise GoneError("Checkout session has expired")

        return session

    async def update_session(
        self,
        session_token: str,
        changes: dict[str, Any],
        user_id: str | None = None,
    ) -> dict[str, Any]:
        """Update a live session and attach it to the caller once logged in.

        Raises:
            NotFoundError: If no session has this token or another user owns it.
            GoneError: If the session has expired.
            ValidationError: If the price is negative.
        """
        session = await self.get_session(session_token, user_id)

        update = {k: v for k, v in changes.items() if v is not None}
        if update.get("total_price") is not None and update["total_price"] < 0:
            raise ValidationError("Total price cannot be negative")
        if user_id and not session.get("user_id"):
            update["user_id"] = str(user_id)

        if not update:
            return session

        response = (
            self.client.table("checkout_sessions")
            .update(update)
            .eq("session_token", session_token)
            .execute()
        )
        return response.data[0] if response.data else session

    async def delete_session(self, session_token: str) -> None:
        """Delete a checkout session."""
        self.client.table("checkout_sessions").delete().eq("session_token", session_token).execute()

    async def cleanup_expired_sessions(self) -> int:
        """Delete every expired checkout session.

        Returns:
            int: Number of deleted sessions.
        """
        response = (
            self.client.table("checkout_sessions")
            .delete()
            .lt("expires_at", to_iso(utcnow()))
            .execute()
        )
        count = len(response.data or [])
        if count:
            logger.info("Cleaned up %d expired checkout sessions", count)
        return count
