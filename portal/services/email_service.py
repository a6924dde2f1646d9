"""Email service using Resend for transactional emails."""

import logging
from typing import Any

import resend

from portal.core.config import get_settings
from portal.core.security import redact_email

logger = logging.getLogger(__name__)


class EmailService:
    """Service for sending transactional emails via Resend."""

    def __init__(self) -> None:
        """Initialize email service with Resend API key."""
        settings = get_settings()
        resend.api_key = settings.resend_api_key
        self.enabled = bool(settings.resend_api_key)
        self.from_email = settings.email_from_address
        self.frontend_url = settings.frontend_url.rstrip("/")
        self.app_name = settings.app_name

    def _send(self, to_email: str, subject: str, html: str, text: str) -> dict[str, Any]:
        if not self.enabled:
            logger.warning("RESEND_API_KEY not set, skipping email to %s: %s", redact_email(to_email), subject)
            return {"success": False, "error": "email disabled"}

        try:
            response = resend.Emails.send({
                "from": self.from_email,
                "to": [to_email],
                "subject": subject,
                "html": html,
                "text": text,
            })
            logger.info("Email sent to %s, id: %s", redact_email(to_email), response.get("id"))
            return {"success": True, "email_id": response.get("id")}

        except Exception as e:
            logger.error("Failed to send email to %s: %s", redact_email(to_email), str(e))
            return {"success": False, "error": str(e)}

    async def send_password_reset_email(
        self,
        to_email: str,
        token: str,
        first_name: str | None = None,
        expires_minutes: int = 60,
    ) -> dict[str, Any]:
        """Send a password reset link.

        Args:
            to_email: Recipient email address.
            token: Plain reset token (only its hash is stored).
            first_name: Recipient's first name for the greeting.
            expires_minutes: Link lifetime shown in the email.

        Returns:
            dict: ``success`` flag and the Resend email id or error.
        """
        reset_url = f"{self.frontend_url}/reset-password?token={token}"
        greeting = first_name or "there"

        html_content = f"""
<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>Password Reset</title>
</head>
<body style="font-family: 'Segoe UI', Tahoma, Geneva, Verdana, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px;">
    <div style="background: linear-gradient(135deg, #3b82f6, #8b5cf6); padding: 30px; border-radius: 10px 10px 0 0; text-align: center;">
        <h1 style="color: white; margin: 0; font-size: 24px;">Password Reset Request</h1>
    </div>

    <div style="background: #f9fafb; padding: 30px; border: 1px solid #e5e7eb; border-top: none; border-radius: 0 0 10px 10px;">
        <p>Hello {greeting},</p>
        <p>We received a request to reset your password. If you didn't make this request, you can safely ignore this email.</p>

        <div style="text-align: center; margin: 30px 0;">
            <a href="{reset_url}" style="background: linear-gradient(135deg, #3b82f6, #8b5cf6); color: white; padding: 14px 28px; text-decoration: none; border-radius: 8px; font-weight: 600; display: inline-block;">
                Reset Password
            </a>
        </div>

        <p style="font-size: 14px; color: #6b7280;">This link expires in {expires_minutes} minutes and can only be used once.</p>

        <p style="font-size: 12px; color: #9ca3af; text-align: center;">
            If the button doesn't work, copy and paste this link:<br>
            <a href="{reset_url}" style="color: #3b82f6; word-break: break-all;">{reset_url}</a>
        </p>
    </div>
</body>
</html>
"""

        text_content = f"""
Hello {greeting},

We received a request to reset your password. If you didn't make this request, you can safely ignore this email.

Reset your password here:
{reset_url}

This link expires in {expires_minutes} minutes and can only be used once.
"""

        return self._send(to_email, f"Reset your {self.app_name} password", html_content, text_content)

    async def send_payment_confirmation_email(
        self,
        to_email: str,
        order_id: str,
        amount: float,
        project_name: str | None = None,
    ) -> dict[str, Any]:
        """Confirm a successful payment and point the client at their dashboard.

        Args:
            to_email: Recipient email address.
            order_id: Paid order ID.
            amount: Amount paid in major currency units.
            project_name: Name of the project created for the order.

        Returns:
            dict: ``success`` flag and the Resend email id or error.
        """
        dashboard_url = f"{self.frontend_url}/dashboard"
        project_line = f"Your project <strong>{project_name}</strong> is now active." if project_name else ""

        html_content = f"""
<!DOCTYPE html>
<html>
<body style="font-family: 'Segoe UI', Tahoma, Geneva, Verdana, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px;">
    <h1 style="font-size: 22px;">Payment received</h1>
    <p>We received your payment of {amount:,.2f} for order {order_id}.</p>
    <p>{project_line}</p>
    <p><a href="{dashboard_url}" style="color: #3b82f6;">Track progress on your dashboard</a></p>
</body>
</html>
"""

        text_content = f"""
Payment received

We received your payment of {amount:,.2f} for order {order_id}.
Track progress on your dashboard: {dashboard_url}
"""

        return self._send(to_email, "Payment received", html_content, text_content)
