"""Audit trail for security-relevant events."""

import logging
from typing import Any

from portal.core.security import redact_email

audit_logger = logging.getLogger("portal.audit")

SENSITIVE_KEY_FRAGMENTS = ("password", "token", "secret", "key")


def redact_context(details: dict[str, Any]) -> dict[str, Any]:
    """Strip credentials and truncate emails before a context is logged.

    Args:
        details: Raw event context.

    Returns:
        dict: Context safe to write to the audit log.
    """
    redacted: dict[str, Any] = {}
    for key, value in details.items():
        lowered = key.lower()
        if any(fragment in lowered for fragment in SENSITIVE_KEY_FRAGMENTS):
            continue
        if "email" in lowered and isinstance(value, str):
            value = redact_email(value)
        redacted[key] = value
    return redacted


def audit_log(action: str, actor: str | None = None, **details: Any) -> dict[str, Any]:
    """Record a security-relevant event.

    Args:
        action: Event name, e.g. ``login_failed``.
        actor: User id of the caller, or None for anonymous callers.
        **details: Event context. Credential-like keys are dropped and
            email values truncated.

    Returns:
        dict: The record that was written.
    """
    record = {
        "action": action,
        "actor": actor or "anonymous",
        "context": redact_context(details),
    }
    audit_logger.info(
        "[AUDIT] %s user=%s %s",
        record["action"],
        record["actor"],
        record["context"],
        extra={"audit": record},
    )
    return record
