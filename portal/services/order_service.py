"""Order business logic service."""

import json
import logging
from typing import Any

from portal.api.middleware.error_handler import NotFoundError, ValidationError
from portal.core.audit import audit_log
from portal.core.security import is_valid_email, normalize_email, sanitize_input
from portal.core.supabase import get_supabase_client
from portal.core.timestamps import to_iso, utcnow
from portal.models.order import ORDER_STATUSES, PAYABLE_ORDER_STATUSES
from portal.schemas.order import OrderCreateRequest
from portal.services.catalog_service import CatalogService
from portal.services.project_service import decode_custom_request, derive_timeline_days

logger = logging.getLogger(__name__)

MIN_ORDER_AMOUNT = 100
MAX_ORDER_AMOUNT = 10_000_000

STAFF_ROLES = ("admin", "pm")


class OrderService:
    """Service for order creation, access and status changes."""

    def __init__(self) -> None:
        """Initialize order service with Supabase client."""
        self.client = get_supabase_client()
        self.catalog = CatalogService()

    async def create_order(self, user: dict[str, Any], request: OrderCreateRequest) -> dict[str, Any]:
        """Create a pending order.

        Args:
            user: The authenticated users row.
            request: Checkout details.

        Returns:
            dict: The created orders row.

        Raises:
            ValidationError: If the amount or contact details are invalid, or the service is inactive.
            NotFoundError: If the referenced service does not exist.
        """
        amount = float(request.total_amount)
        if amount < MIN_ORDER_AMOUNT or amount > MAX_ORDER_AMOUNT:
            raise ValidationError(
                f"Order amount must be between {MIN_ORDER_AMOUNT:,} and {MAX_ORDER_AMOUNT:,}"
            )

        contact_email = normalize_email(request.contact_info.email)
        if not is_valid_email(contact_email):
            raise ValidationError("Invalid contact email address")

        service = None
        if request.service_id:
            service = await self.catalog.get_service(request.service_id)
            if not service:
                raise NotFoundError("Service not found")
            if not service.get("is_active", True):
                raise ValidationError("This service is no longer available")

        custom_request = {
            "contact_info": {
                "full_name": sanitize_input(request.contact_info.full_name),
                "email": contact_email,
                "phone": sanitize_input(request.contact_info.phone) if request.contact_info.phone else None,
                "company": sanitize_input(request.contact_info.company) if request.contact_info.company else None,
            },
            "project_details": request.project_details,
            "selected_add_ons": request.selected_add_ons,
            "timeline": request.timeline,
            "payment_method": request.payment_method,
        }

        now = to_iso(utcnow())
        order_data = {
            "user_id": str(user["id"]),
            "service_id": str(request.service_id) if request.service_id else None,
            "custom_request": json.dumps(custom_request),
            "total_price": amount,
            "status": "pending",
            "timeline_days": derive_timeline_days(service, request.timeline),
            "created_at": now,
            "updated_at": now,
        }

        response = self.client.table("orders").insert(order_data).execute()
        order = response.data[0]
        audit_log("order_created", str(user["id"]), order_id=str(order["id"]), amount=amount)
        return order

    async def get_order(self, order_id: str) -> dict[str, Any] | None:
        """Get an order by ID."""
        response = (
            self.client.table("orders")
            .select("*")
            .eq("id", str(order_id))
            .maybe_single()
            .execute()
        )
        return response.data if response and response.data else None

    async def get_order_for_user(self, order_id: str, user: dict[str, Any]) -> dict[str, Any]:
        """Get an order the user owns. Staff may read any order.

        Raises:
            NotFoundError: If the order is missing or owned by someone else.
        """
        order = await self.get_order(order_id)
        if not order:
            raise NotFoundError("Order not found")
        if str(order["user_id"]) != str(user["id"]) and user.get("role") not in STAFF_ROLES:
            raise NotFoundError("Order not found")
        return order

    async def list_orders_for_user(self, user_id: str) -> list[dict[str, Any]]:
        """List a user's orders, newest first."""
        response = (
            self.client.table("orders")
            .select("*")
            .eq("user_id", str(user_id))
            .order("created_at", desc=True)
            .execute()
        )
        return response.data or []

    async def list_all_orders(self) -> list[dict[str, Any]]:
        """List every order (staff view)."""
        response = (
            self.client.table("orders")
            .select("*")
            .order("created_at", desc=True)
            .execute()
        )
        return response.data or []

    async def cancel_order(self, order_id: str, user: dict[str, Any]) -> dict[str, Any]:
        """Cancel one of the user's pending orders.

        The update is conditional on the order still being pending, so a
        payment landing at the same moment wins.

        Raises:
            NotFoundError: If the order is missing or owned by someone else.
            ValidationError: If the order is no longer pending.
        """
        order = await self.get_order(order_id)
        if not order or str(order["user_id"]) != str(user["id"]):
            raise NotFoundError("Order not found")

        if order["status"] != "pending":
            raise ValidationError("Only pending orders can be cancelled")

        response = (
            self.client.table("orders")
            .update({"status": "cancelled", "updated_at": to_iso(utcnow())})
            .eq("id", str(order_id))
            .eq("user_id", str(user["id"]))
            .eq("status", "pending")
            .execute()
        )
        if not response.data:
            raise ValidationError("Only pending orders can be cancelled")

        audit_log("order_cancelled", str(user["id"]), order_id=str(order_id))
        return response.data[0]

    async def get_payable_order(self, order_id: str, user: dict[str, Any]) -> dict[str, Any]:
        """Get one of the user's orders that can still be paid.

        Raises:
            NotFoundError: If the order is missing or owned by someone else.
            ValidationError: If the order is not pending.
        """
        order = await self.get_order(order_id)
        if not order or str(order["user_id"]) != str(user["id"]):
            raise NotFoundError("Order not found")
        if order["status"] != "pending":
            raise ValidationError("Only pending orders can be paid")
        return order

    async def mark_paid(self, order_id: str) -> dict[str, Any] | None:
        """Move an order to paid if it is still pending or cancelled.

        Returns:
            dict | None: The updated order, or None if it was already past that point.
        """
        response = (
            self.client.table("orders")
            .update({"status": "paid", "updated_at": to_iso(utcnow())})
            .eq("id", str(order_id))
            .in_("status", list(PAYABLE_ORDER_STATUSES))
            .execute()
        )
        if response.data:
            logger.info("Order %s marked paid", order_id)
            return response.data[0]
        return None

    async def update_status(self, order_id: str, status: str, actor: str | None = None) -> dict[str, Any]:
        """Override an order's status (staff only).

        Raises:
            ValidationError: If the status is unknown.
            NotFoundError: If the order does not exist.
        """
        if status not in ORDER_STATUSES:
            raise ValidationError(f"Unknown order status: {status}")

        response = (
            self.client.table("orders")
            .update({"status": status, "updated_at": to_iso(utcnow())})
            .eq("id", str(order_id))
            .execute()
        )
        if not response.data:
            raise NotFoundError("Order not found")

        audit_log("order_status_changed", actor, order_id=str(order_id), status=status)
        return response.data[0]

    def contact_email(self, order: dict[str, Any], fallback: str | None = None) -> str | None:
        """Email captured at checkout, or the fallback."""
        contact = decode_custom_request(order).get("contact_info") or {}
        return contact.get("email") or fallback
