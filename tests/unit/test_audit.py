"""Unit tests for the audit trail."""

import logging

import pytest

from portal.core.audit import audit_log, redact_context


class TestRedactContext:
    """Tests for redact_context."""

    def test_drops_credential_keys(self) -> None:
        """Test that password, token, secret and key fields never reach the log."""
        context = redact_context({
            "password": "Str0ng!Pass",
            "session_token": "abc",
            "client_secret": "s",
            "api_key": "k",
            "order_id": "o-1",
        })

        assert context == {"order_id": "o-1"}

    def test_truncates_emails(self) -> None:
        """Test that email values are shortened."""
        assert redact_context({"email": "ada@example.com"}) == {"email": "ada@e***"}


class TestAuditLog:
    """Tests for audit_log."""

    def test_anonymous_actor(self) -> None:
        """Test that a missing actor is recorded as anonymous."""
        record = audit_log("login_failed", None, email="ada@example.com", client_address="10.0.0.1")

        assert record["action"] == "login_failed"
        assert record["actor"] == "anonymous"
        assert record["context"] == {"email": "ada@e***", "client_address": "10.0.0.1"}

    def test_writes_to_audit_logger(self, caplog: pytest.LogCaptureFixture) -> None:
        """Test that records go to the portal.audit logger."""
        with caplog.at_level(logging.INFO, logger="portal.audit"):
            audit_log("logout", "user-1", password="should-not-appear")

        assert "[AUDIT] logout user=user-1" in caplog.text
        assert "should-not-appear" not in caplog.text
