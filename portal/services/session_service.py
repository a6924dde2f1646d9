"""Server-side session store and legacy session lookup."""

import base64
import hashlib
import hmac
import json
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any
from urllib.parse import unquote

from portal.core.config import Settings, get_settings
from portal.core.supabase import get_supabase_client
from portal.core.timestamps import parse_timestamp, to_iso, utcnow

logger = logging.getLogger(__name__)


class SessionService:
    """Service for canonical user sessions.

    A session row is keyed by an opaque random token that the client holds
    in the session cookie. A session is valid while both the inactivity
    timeout (measured from ``last_activity_at``) and the maximum lifetime
    (measured from ``login_at``) have not elapsed.
    """

    TOKEN_LENGTH = 64  # Length of session token in characters

    def __init__(self, settings: Settings | None = None) -> None:
        """Initialize session service with Supabase client."""
        self.client = get_supabase_client()
        self.settings = settings or get_settings()

    @property
    def inactivity_timeout(self) -> timedelta:
        return timedelta(minutes=self.settings.session_inactivity_timeout_minutes)

    @property
    def max_lifetime(self) -> timedelta:
        return timedelta(hours=self.settings.session_max_lifetime_hours)

    def _generate_token(self) -> str:
        """Generate a cryptographically secure session token.

        Returns:
            str: A 64-character hex token.
        """
        return secrets.token_hex(self.TOKEN_LENGTH // 2)

    async def create_session(
        self,
        user_id: str,
        auth_method: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> tuple[dict[str, Any], str]:
        """Create a new session for a user.

        Args:
            user_id: Authenticated user's ID.
            auth_method: How the user authenticated (local, google, ...).
            ip_address: Client address, for auditing.
            user_agent: Client user agent, for auditing.

        Returns:
            tuple: (session_data, session_token)
        """
        token = self._generate_token()
        now = utcnow()

        session_data = {
            "session_token": token,
            "user_id": str(user_id),
            "auth_method": auth_method,
            "login_at": to_iso(now),
            "last_activity_at": to_iso(now),
            "expires_at": to_iso(now + self.max_lifetime),
            "ip_address": ip_address,
            "user_agent": user_agent[:500] if user_agent else None,
        }

        response = self.client.table("user_sessions").insert(session_data).execute()
        logger.info("Session created for user %s via %s", user_id, auth_method)
        return response.data[0], token

    async def get_session_by_token(self, token: str) -> dict[str, Any] | None:
        """Get a session by its token.

        Args:
            token: The session token from cookie.

        Returns:
            dict | None: The session data or None if not found.
        """
        response = (
            self.client.table("user_sessions")
            .select("*")
            .eq("session_token", token)
            .maybe_single()
            .execute()
        )
        return response.data if response and response.data else None

    def is_expired(self, session: dict[str, Any], now: datetime | None = None) -> bool:
        """Apply the validity policy to a session row.

        Args:
            session: The user_sessions row.
            now: Evaluation instant (defaults to the current time).

        Returns:
            bool: True if either the inactivity timeout or the maximum
            lifetime has elapsed.
        """
        now = now or utcnow()
        login_at = parse_timestamp(session.get("login_at"))
        last_activity = parse_timestamp(session.get("last_activity_at")) or login_at
        if login_at is None or last_activity is None:
            return True
        if now - last_activity >= self.inactivity_timeout:
            return True
        return now - login_at >= self.max_lifetime

    async def touch_session(self, session_id: str) -> None:
        """Record activity on a session. Concurrent touches are last-write-wins."""
        (
            self.client.table("user_sessions")
            .update({"last_activity_at": to_iso(utcnow())})
            .eq("id", str(session_id))
            .execute()
        )

    async def destroy_session(self, token: str) -> bool:
        """Delete a session by token.

        Args:
            token: The session token.

        Returns:
            bool: True if a row was deleted.
        """
        response = (
            self.client.table("user_sessions")
            .delete()
            .eq("session_token", token)
            .execute()
        )
        return bool(response.data)

    async def destroy_user_sessions(self, user_id: str) -> int:
        """Delete every session belonging to a user.

        Returns:
            int: Number of deleted sessions.
        """
        response = (
            self.client.table("user_sessions")
            .delete()
            .eq("user_id", str(user_id))
            .execute()
        )
        return len(response.data or [])

    async def cleanup_expired_sessions(self) -> int:
        """Delete sessions past their maximum lifetime or inactivity timeout.

        Returns:
            int: Number of sessions deleted.
        """
        now = utcnow()
        expired = (
            self.client.table("user_sessions")
            .delete()
            .lt("expires_at", to_iso(now))
            .execute()
        )
        idle = (
            self.client.table("user_sessions")
            .delete()
            .lt("last_activity_at", to_iso(now - self.inactivity_timeout))
            .execute()
        )
        removed = len(expired.data or []) + len(idle.data or [])
        if removed:
            logger.info("Cleaned up %d expired sessions", removed)
        return removed


@dataclass
class LegacySessionMatch:
    """A user resolved from the previous deployment's session table."""

    sid: str
    user_id: str


class LegacySessionLookup:
    """Read path for cookies issued by the previous deployment.

    Those cookies are signed session ids (``s:<sid>.<signature>``) pointing
    at rows of the ``sessions`` table, whose JSON blob carries the user id
    either as ``userId`` or under ``passport.user``. This lookup only reads
    and deletes legacy rows; it never writes new ones.
    """

    TABLE = "sessions"

    def __init__(self, settings: Settings | None = None) -> None:
        self.client = get_supabase_client()
        self.settings = settings or get_settings()

    def unsign_cookie(self, cookie_value: str) -> str | None:
        """Verify a signed session cookie and extract the session id.

        Args:
            cookie_value: Raw (possibly URL-encoded) cookie value.

        Returns:
            str | None: The session id, or None if the signature is invalid.
        """
        value = unquote(cookie_value)
        if not value.startswith("s:") or "." not in value:
            return None
        sid, signature = value[2:].rsplit(".", 1)
        digest = hmac.new(self.settings.session_secret.encode("utf-8"), sid.encode("utf-8"), hashlib.sha256).digest()
        expected = base64.b64encode(digest).decode("ascii").rstrip("=")
        if not hmac.compare_digest(expected, signature):
            return None
        return sid

    @staticmethod
    def extract_user_id(blob: dict[str, Any] | str | None) -> str | None:
        """Pull the user id out of a legacy session blob."""
        if isinstance(blob, str):
            try:
                blob = json.loads(blob)
            except ValueError:
                return None
        if not isinstance(blob, dict):
            return None
        if blob.get("userId"):
            return str(blob["userId"])
        passport_user = (blob.get("passport") or {}).get("user")
        if isinstance(passport_user, dict):
            passport_user = passport_user.get("id")
        return str(passport_user) if passport_user else None

    async def resolve(self, cookie_value: str) -> LegacySessionMatch | None:
        """Resolve a legacy cookie to a user id.

        Args:
            cookie_value: Raw legacy cookie value.

        Returns:
            LegacySessionMatch | None: The match, or None if the cookie is
            forged, unknown, expired or carries no user.
        """
        sid = self.unsign_cookie(cookie_value)
        if not sid:
            return None

        response = (
            self.client.table(self.TABLE)
            .select("*")
            .eq("sid", sid)
            .maybe_single()
            .execute()
        )
        row = response.data if response and response.data else None
        if not row:
            return None

        expire = parse_timestamp(row.get("expire"))
        if expire is None or expire <= utcnow():
            return None

        user_id = self.extract_user_id(row.get("sess"))
        if not user_id:
            return None
        return LegacySessionMatch(sid=sid, user_id=user_id)

    async def retire(self, sid: str) -> None:
        """Delete a legacy session row once it has been migrated."""
        self.client.table(self.TABLE).delete().eq("sid", sid).execute()
