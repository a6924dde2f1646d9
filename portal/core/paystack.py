"""Paystack REST client for hosted-payment transactions."""

import hashlib
import hmac
import logging
from typing import Any

import requests

from portal.api.middleware.error_handler import ConfigurationError, GatewayError
from portal.core.config import get_settings

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "x-paystack-signature"


class PaystackClient:
    """Thin wrapper over the Paystack transaction endpoints.

    Every transport or protocol failure is raised as ``GatewayError`` so
    callers can tell provider outages apart from their own errors.
    """

    def __init__(
        self,
        secret_key: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
    ) -> None:
        settings = get_settings()
        self.secret_key = settings.paystack_secret_key if secret_key is None else secret_key
        self.base_url = (base_url or settings.paystack_base_url).rstrip("/")
        self.timeout = timeout or settings.paystack_timeout_seconds

    @property
    def is_configured(self) -> bool:
        """Check whether a secret key is available."""
        return bool(self.secret_key)

    def _headers(self) -> dict[str, str]:
        if not self.secret_key:
            raise ConfigurationError("Payment provider is not configured")
        return {
            "Authorization": f"Bearer {self.secret_key}",
            "Content-Type": "application/json",
        }

    def _parse(self, response: requests.Response, operation: str) -> dict[str, Any]:
        try:
            body = response.json()
        except ValueError as e:
            raise GatewayError(f"{operation}: non-JSON response (HTTP {response.status_code})") from e

        if not response.ok or not body.get("status"):
            raise GatewayError(
                f"{operation}: HTTP {response.status_code} - {body.get('message', 'no message')}"
            )
        return body.get("data") or {}

    def initialize_transaction(
        self,
        email: str,
        amount_minor: int,
        reference: str,
        callback_url: str,
        metadata: dict[str, Any],
        currency: str | None = None,
    ) -> dict[str, Any]:
        """Start a hosted-payment transaction.

        Args:
            email: Payer email address.
            amount_minor: Amount in the currency's minor unit (kobo for NGN).
            reference: Unique transaction reference.
            callback_url: URL the browser returns to after payment.
            metadata: Data echoed back in webhooks and verification.
            currency: ISO currency code (defaults to the configured one).

        Returns:
            dict: Provider ``data`` object with ``authorization_url``.

        Raises:
            ConfigurationError: If no secret key is configured.
            GatewayError: If the provider call fails or omits the hosted URL.
        """
        payload = {
            "email": email,
            "amount": amount_minor,
            "reference": reference,
            "currency": currency or get_settings().paystack_currency,
            "callback_url": callback_url,
            "metadata": metadata,
        }
        headers = self._headers()
        try:
            response = requests.post(
                f"{self.base_url}/transaction/initialize",
                json=payload,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise GatewayError(f"initialize: {e}") from e

        data = self._parse(response, "initialize")
        if not data.get("authorization_url"):
            raise GatewayError("initialize: response missing authorization_url")

        logger.info("Paystack transaction initialized: %s", reference)
        return data

    def verify_transaction(self, reference: str) -> dict[str, Any]:
        """Look up the authoritative status of a transaction.

        Args:
            reference: Transaction reference.

        Returns:
            dict: Provider ``data`` object (``status``, ``metadata``, ``amount``...).

        Raises:
            ConfigurationError: If no secret key is configured.
            GatewayError: If the provider call fails.
        """
        headers = self._headers()
        try:
            response = requests.get(
                f"{self.base_url}/transaction/verify/{reference}",
                headers=headers,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise GatewayError(f"verify: {e}") from e

        return self._parse(response, "verify")

    def compute_signature(self, raw_body: bytes) -> str:
        """HMAC-SHA512 hex digest of a webhook body under the secret key."""
        return hmac.new(self.secret_key.encode("utf-8"), raw_body, hashlib.sha512).hexdigest()

    def verify_signature(self, raw_body: bytes, signature: str | None) -> bool:
        """Check a webhook signature in constant time.

        Never raises: a missing secret, missing header or mismatch all
        return False.
        """
        if not self.secret_key or not signature:
            return False
        try:
            expected = self.compute_signature(raw_body)
            return hmac.compare_digest(expected, signature.strip().lower())
        except (TypeError, ValueError):
            return False
