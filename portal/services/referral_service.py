"""Referral commission crediting."""

import logging
from typing import Any

from postgrest.exceptions import APIError as PostgrestAPIError

from portal.core.audit import audit_log
from portal.core.config import get_settings
from portal.core.supabase import get_supabase_client, is_unique_violation
from portal.core.timestamps import to_iso, utcnow
from portal.services.user_service import UserService

logger = logging.getLogger(__name__)


class ReferralService:
    """Service for referral commissions on paid orders."""

    def __init__(self) -> None:
        """Initialize referral service with Supabase client."""
        self.client = get_supabase_client()
        self.settings = get_settings()
        self.users = UserService()

    async def credit_commission(self, order: dict[str, Any]) -> dict[str, Any] | None:
        """Credit the payer's referrer once per order.

        Both writes are keyed on ``order_id`` unique constraints, so each is
        a no-op when repeated. A delivery that recorded the referral but
        failed before the earnings row is completed by the next one.

        Args:
            order: The paid orders row.

        Returns:
            dict | None: The referrals row, or None if the order was already
                fully credited or nothing is owed.
        """
        payer = await self.users.get_user_by_id(str(order["user_id"]))
        if not payer or not payer.get("referred_by"):
            return None

        referrer_id = str(payer["referred_by"])
        amount = round(float(order.get("total_price") or 0) * self.settings.referral_commission_rate, 2)
        if amount <= 0:
            return None

        referral = self._record_referral(order, payer, referrer_id, amount)

        try:
            self.client.table("referral_earnings").insert({
                "user_id": str(referral["referrer_id"]),
                "order_id": str(order["id"]),
                "amount": float(referral["commission_amount"]),
                "source": "referral",
                "description": f"Commission for order {order['id']}",
                "created_at": to_iso(utcnow()),
            }).execute()
        except PostgrestAPIError as e:
            if is_unique_violation(e):
                logger.info("Referral commission for order %s already credited", order["id"])
                return None
            raise

        audit_log("referral_commission_credited", referrer_id, order_id=str(order["id"]), amount=amount)
        return referral

    def _record_referral(
        self,
        order: dict[str, Any],
        payer: dict[str, Any],
        referrer_id: str,
        amount: float,
    ) -> dict[str, Any]:
        """Insert the referrals row, or return the one already recorded for the order."""
        try:
            response = self.client.table("referrals").insert({
                "referrer_id": referrer_id,
                "referred_user_id": str(payer["id"]),
                "order_id": str(order["id"]),
                "commission_amount": amount,
                "status": "confirmed",
                "created_at": to_iso(utcnow()),
            }).execute()
            return response.data[0]
        except PostgrestAPIError as e:
            if not is_unique_violation(e):
                raise

        existing = (
            self.client.table("referrals")
            .select("*")
            .eq("order_id", str(order["id"]))
            .maybe_single()
            .execute()
        )
        return existing.data
