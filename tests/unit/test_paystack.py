"""Unit tests for the Paystack client."""

import hashlib
import hmac
from unittest.mock import MagicMock, patch

import pytest
import requests

from portal.api.middleware.error_handler import ConfigurationError, GatewayError
from portal.core.paystack import PaystackClient

SECRET = "sk_test_unit"


@pytest.fixture
def paystack() -> PaystackClient:
    return PaystackClient(secret_key=SECRET, base_url="https://api.paystack.test/")


def _response(status_code: int, body: dict | None = None) -> MagicMock:
    response = MagicMock()
    response.status_code = status_code
    response.ok = 200 <= status_code < 300
    if body is None:
        response.json.side_effect = ValueError("not json")
    else:
        response.json.return_value = body
    return response


class TestWebhookSignature:
    """Tests for HMAC-SHA512 signature checks."""

    def test_accepts_valid_signature(self, paystack: PaystackClient) -> None:
        """Test that the provider's signature over the raw body verifies."""
        body = b'{"event":"charge.success"}'
        signature = hmac.new(SECRET.encode(), body, hashlib.sha512).hexdigest()

        assert paystack.verify_signature(body, signature) is True

    def test_accepts_uppercase_hex(self, paystack: PaystackClient) -> None:
        """Test that hex case does not matter."""
        body = b"{}"
        signature = hmac.new(SECRET.encode(), body, hashlib.sha512).hexdigest().upper()

        assert paystack.verify_signature(body, signature) is True

    def test_rejects_tampered_body(self, paystack: PaystackClient) -> None:
        """Test that a signature for another body fails."""
        signature = paystack.compute_signature(b'{"amount":100}')

        assert paystack.verify_signature(b'{"amount":999}', signature) is False

    def test_rejects_missing_signature(self, paystack: PaystackClient) -> None:
        """Test that an absent header fails without raising."""
        assert paystack.verify_signature(b"{}", None) is False
        assert paystack.verify_signature(b"{}", "") is False

    def test_rejects_when_unconfigured(self) -> None:
        """Test that no secret means nothing verifies."""
        client = PaystackClient(secret_key="")

        assert client.verify_signature(b"{}", "abc") is False


class TestInitializeTransaction:
    """Tests for initialize_transaction."""

    @patch("portal.core.paystack.requests.post")
    def test_returns_provider_data(self, mock_post: MagicMock, paystack: PaystackClient) -> None:
        """Test that the data object is returned and the request is well formed."""
        mock_post.return_value = _response(200, {
            "status": True,
            "data": {"authorization_url": "https://checkout.paystack.com/x", "reference": "PSK_1"},
        })

        data = paystack.initialize_transaction(
            "ada@example.com", 25000, "PSK_1", "https://app.test/cb", {"orderId": "o-1"}
        )

        assert data["authorization_url"] == "https://checkout.paystack.com/x"
        args, kwargs = mock_post.call_args
        assert args[0] == "https://api.paystack.test/transaction/initialize"
        assert kwargs["json"]["amount"] == 25000
        assert kwargs["json"]["metadata"] == {"orderId": "o-1"}
        assert kwargs["headers"]["Authorization"] == f"Bearer {SECRET}"

    @patch("portal.core.paystack.requests.post")
    def test_provider_rejection_is_gateway_error(self, mock_post: MagicMock, paystack: PaystackClient) -> None:
        """Test that a status=false body raises GatewayError."""
        mock_post.return_value = _response(400, {"status": False, "message": "Invalid key"})

        with pytest.raises(GatewayError) as exc_info:
            paystack.initialize_transaction("ada@example.com", 100, "PSK_1", "https://cb", {})

        assert "Invalid key" in exc_info.value.detail
        assert exc_info.value.status_code == 502

    @patch("portal.core.paystack.requests.post")
    def test_missing_url_is_gateway_error(self, mock_post: MagicMock, paystack: PaystackClient) -> None:
        """Test that a success without a hosted URL is still an error."""
        mock_post.return_value = _response(200, {"status": True, "data": {}})

        with pytest.raises(GatewayError):
            paystack.initialize_transaction("ada@example.com", 100, "PSK_1", "https://cb", {})

    @patch("portal.core.paystack.requests.post")
    def test_non_json_is_gateway_error(self, mock_post: MagicMock, paystack: PaystackClient) -> None:
        """Test that an HTML error page raises GatewayError."""
        mock_post.return_value = _response(502)

        with pytest.raises(GatewayError):
            paystack.initialize_transaction("ada@example.com", 100, "PSK_1", "https://cb", {})

    @patch("portal.core.paystack.requests.post")
    def test_transport_failure_is_gateway_error(self, mock_post: MagicMock, paystack: PaystackClient) -> None:
        """Test that timeouts raise GatewayError."""
        mock_post.side_effect = requests.Timeout("timed out")

        with pytest.raises(GatewayError):
            paystack.initialize_transaction("ada@example.com", 100, "PSK_1", "https://cb", {})

    def test_unconfigured_is_configuration_error(self) -> None:
        """Test that a missing secret key is reported before any request."""
        with pytest.raises(ConfigurationError):
            PaystackClient(secret_key="").initialize_transaction("ada@example.com", 100, "PSK_1", "https://cb", {})


class TestVerifyTransaction:
    """Tests for verify_transaction."""

    @patch("portal.core.paystack.requests.get")
    def test_returns_status(self, mock_get: MagicMock, paystack: PaystackClient) -> None:
        """Test that the verification data is returned."""
        mock_get.return_value = _response(200, {"status": True, "data": {"status": "success", "reference": "PSK_1"}})

        data = paystack.verify_transaction("PSK_1")

        assert data["status"] == "success"
        assert mock_get.call_args[0][0] == "https://api.paystack.test/transaction/verify/PSK_1"
