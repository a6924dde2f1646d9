"""Payment initialization and reconciliation with Paystack."""

import asyncio
import json
import logging
import secrets
import time
from decimal import ROUND_HALF_UP, Decimal
from typing import Any
from urllib.parse import urlencode

from portal.api.middleware.error_handler import (
    ConfigurationError,
    GatewayError,
    ReconciliationError,
    ValidationError,
)
from portal.core.audit import audit_log
from portal.core.config import get_settings
from portal.core.paystack import PaystackClient
from portal.core.supabase import get_supabase_client
from portal.core.timestamps import to_iso, utcnow
from portal.services.catalog_service import CatalogService
from portal.services.email_service import EmailService
from portal.services.order_service import OrderService
from portal.services.project_service import ProjectService
from portal.services.referral_service import ReferralService
from portal.services.user_service import UserService

logger = logging.getLogger(__name__)

REFERENCE_PREFIX = "PSK"


def generate_reference() -> str:
    """Create a unique transaction reference, e.g. ``PSK_1718000000000_a1b2c3d4e5``."""
    return f"{REFERENCE_PREFIX}_{int(time.time() * 1000)}_{secrets.token_hex(5)}"


def to_minor_units(amount: float) -> int:
    """Convert a major-unit amount to the provider's minor unit."""
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _metadata(data: dict[str, Any]) -> dict[str, Any]:
    metadata = data.get("metadata")
    if isinstance(metadata, str):
        try:
            metadata = json.loads(metadata)
        except ValueError:
            return {}
    return metadata if isinstance(metadata, dict) else {}


class PaymentService:
    """Service for Paystack transactions and their effects on orders.

    Applying a successful payment is idempotent: the conditional update on
    ``payments.status`` lets exactly one caller (webhook or callback)
    announce a given reference.
    """

    def __init__(self, paystack: PaystackClient | None = None) -> None:
        """Initialize payment service with its collaborators."""
        self.client = get_supabase_client()
        self.settings = get_settings()
        self.paystack = paystack or PaystackClient()
        self.orders = OrderService()
        self.projects = ProjectService()
        self.referrals = ReferralService()
        self.users = UserService()
        self.catalog = CatalogService()
        self.email = EmailService()

    @property
    def callback_url(self) -> str:
        return f"{self.settings.paystack_callback_base_url.rstrip('/')}/api/payments/callback"

    async def initialize_transaction(
        self,
        order: dict[str, Any],
        email: str,
    ) -> dict[str, Any]:
        """Start a hosted payment for an order.

        The pending payments row is written before the provider is called so
        that a webhook for the new reference always finds it.

        Args:
            order: The pending orders row.
            email: Payer email address.

        Returns:
            dict: ``payment_url`` and ``reference``.

        Raises:
            ConfigurationError: If Paystack is not configured.
            ValidationError: If the amount is not positive or an identifier is missing.
            GatewayError: If the provider call fails.
        """
        if not self.paystack.is_configured:
            raise ConfigurationError("Payment provider is not configured")

        amount = float(order.get("total_price") or 0)
        if amount <= 0 or not order.get("id") or not order.get("user_id") or not email:
            raise ValidationError("Payment requires a positive amount, an order, a user and an email")

        reference = generate_reference()

        self.client.table("payments").insert({
            "user_id": str(order["user_id"]),
            "order_id": str(order["id"]),
            "amount": amount,
            "currency": self.settings.paystack_currency,
            "provider": "paystack",
            "provider_reference": reference,
            "status": "pending",
            "created_at": to_iso(utcnow()),
        }).execute()

        try:
            data = await asyncio.to_thread(
                self.paystack.initialize_transaction,
                email,
                to_minor_units(amount),
                reference,
                self.callback_url,
                {"orderId": str(order["id"]), "userId": str(order["user_id"])},
            )
        except GatewayError:
            self.client.table("payments").update({"status": "failed"}).eq(
                "provider_reference", reference
            ).execute()
            raise

        audit_log("payment_initialized", str(order["user_id"]), order_id=str(order["id"]), reference=reference)
        return {"payment_url": data["authorization_url"], "reference": reference}

    def verify_webhook_signature(self, raw_body: bytes, signature: str | None) -> bool:
        """Check the provider's HMAC-SHA512 signature over the raw body."""
        return self.paystack.verify_signature(raw_body, signature)

    async def apply_successful_payment(self, data: dict[str, Any]) -> dict[str, Any]:
        """Apply a successful charge to its payment, order, project and referral.

        Safe to call any number of times for the same reference. The order,
        project and referral writes are each idempotent, so a delivery that
        crashed halfway is repaired by the next one. Only the call that moves
        the payment to succeeded sends the confirmation.

        Args:
            data: The charge ``data`` object from a webhook or verification.

        Returns:
            dict: ``applied`` flag plus the order and project when applied.

        Raises:
            ReconciliationError: If the payload cannot be matched to a payment.
        """
        if not isinstance(data, dict):
            raise ReconciliationError("Payment notification data is not an object", retryable=False)

        reference = data.get("reference")
        order_id = _metadata(data).get("orderId")
        if not reference or not order_id:
            raise ReconciliationError("Payment notification is missing its reference or order", retryable=False)

        payment = (
            self.client.table("payments")
            .select("*")
            .eq("provider_reference", reference)
            .maybe_single()
            .execute()
        )
        payment = payment.data if payment and payment.data else None
        if not payment:
            logger.warning("No payment found for reference %s", reference)
            raise ReconciliationError(f"Unknown payment reference {reference}", retryable=True)

        if str(payment["order_id"]) != str(order_id):
            logger.error(
                "Payment %s belongs to order %s but notification names %s",
                reference,
                payment["order_id"],
                order_id,
            )
            raise ReconciliationError("Payment notification does not match its order", retryable=False)

        if payment.get("status") == "succeeded":
            logger.info("Payment %s already applied, skipping", reference)
            return {"applied": False, "reference": reference}

        order = await self.orders.mark_paid(order_id)
        if not order:
            order = await self.orders.get_order(order_id)
            if not order:
                raise ReconciliationError(f"Order {order_id} not found", retryable=False)
            logger.info("Order %s already %s, leaving status unchanged", order_id, order["status"])

        # Project and referral writes are guarded by unique constraints
        service = await self.catalog.get_service(order["service_id"]) if order.get("service_id") else None
        project = await self.projects.create_or_activate_project(order, service)
        await self.referrals.credit_commission(order)

        claimed = (
            self.client.table("payments")
            .update({"status": "succeeded", "paid_at": to_iso(utcnow())})
            .eq("provider_reference", reference)
            .neq("status", "succeeded")
            .execute()
        )
        if not claimed.data:
            logger.info("Payment %s applied concurrently, skipping notifications", reference)
            return {"applied": False, "reference": reference}

        audit_log(
            "payment_succeeded",
            str(order["user_id"]),
            order_id=str(order_id),
            reference=reference,
            amount=payment.get("amount"),
        )

        user = await self.users.get_user_by_id(str(order["user_id"]))
        if user:
            await self.email.send_payment_confirmation_email(
                to_email=user["email"],
                order_id=str(order_id),
                amount=float(order.get("total_price") or 0),
                project_name=project.get("project_name"),
            )

        return {"applied": True, "reference": reference, "order": order, "project": project}

    async def handle_callback(self, reference: str | None) -> str:
        """Verify a returning browser's transaction and pick the redirect target.

        The order is only touched when the provider confirms success.

        Args:
            reference: The ``reference`` query parameter.

        Returns:
            str: Frontend URL to redirect to.
        """
        frontend = self.settings.frontend_url.rstrip("/")
        if not reference:
            return f"{frontend}/payment-failed?{urlencode({'reason': 'missing_reference'})}"

        try:
            data = await asyncio.to_thread(self.paystack.verify_transaction, reference)
        except GatewayError as e:
            logger.error("Payment verification failed for %s: %s", reference, e.detail)
            return f"{frontend}/payment-failed?{urlencode({'reference': reference, 'reason': 'verification_failed'})}"
        except ConfigurationError as e:
            logger.error("Cannot verify payment %s: %s", reference, e.message)
            return f"{frontend}/payment-failed?{urlencode({'reference': reference, 'reason': 'verification_failed'})}"

        if data.get("status") != "success":
            logger.info("Payment %s returned with status %s", reference, data.get("status"))
            return f"{frontend}/payment-failed?{urlencode({'reference': reference, 'reason': data.get('status') or 'failed'})}"

        try:
            await self.apply_successful_payment({**data, "reference": data.get("reference") or reference})
        except ReconciliationError as e:
            logger.error("Could not apply verified payment %s: %s", reference, e.message)
            return f"{frontend}/payment-failed?{urlencode({'reference': reference, 'reason': 'reconciliation_failed'})}"

        return f"{frontend}/payment-success?{urlencode({'reference': reference})}"
