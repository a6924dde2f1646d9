"""Authentication business logic: local credentials, OAuth, sessions and password resets."""

import hashlib
import logging
import secrets
from dataclasses import dataclass
from datetime import timedelta
from typing import TYPE_CHECKING, Any

from portal.api.middleware.error_handler import AuthenticationError, ValidationError
from portal.core.audit import audit_log
from portal.core.config import get_settings
from portal.core.security import (
    hash_password,
    is_valid_email,
    normalize_email,
    sanitize_input,
    validate_password_strength,
    verify_password,
)
from portal.core.supabase import get_supabase_client
from portal.core.timestamps import parse_timestamp, to_iso, utcnow
from portal.services.email_service import EmailService
from portal.services.session_service import LegacySessionLookup, SessionService
from portal.services.user_service import UserService, sanitize_user

if TYPE_CHECKING:
    from portal.services.oauth_service import OAuthProfile

logger = logging.getLogger(__name__)

GENERIC_RESET_MESSAGE = "If an account exists with this email, a password reset link has been sent."
INVALID_CREDENTIALS_MESSAGE = "Invalid email or password"
INVALID_RESET_TOKEN_MESSAGE = "Invalid or expired reset token"


@dataclass
class RegistrationResult:
    """Outcome of a registration.

    The user row is committed even when ``session_token`` is None; in that
    case the caller has to log in separately.
    """

    user: dict[str, Any]
    session_token: str | None

    @property
    def session_established(self) -> bool:
        return self.session_token is not None


@dataclass
class ResolvedSession:
    """The caller behind a session cookie.

    ``migrated`` is True when the caller presented a legacy cookie and was
    issued a fresh canonical session token that must be set on the response.
    """

    user: dict[str, Any]
    session_token: str
    migrated: bool = False


def _hash_reset_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class AuthService:
    """Service orchestrating login, registration, OAuth and password resets."""

    RESET_TOKEN_BYTES = 32  # 256 bits of entropy

    def __init__(self) -> None:
        """Initialize auth service with its collaborators."""
        self.client = get_supabase_client()
        self.settings = get_settings()
        self.users = UserService()
        self.sessions = SessionService(self.settings)
        self.email = EmailService()
        self.legacy_lookup = LegacySessionLookup(self.settings) if self.settings.legacy_session_fallback else None

    async def establish_session(
        self,
        user: dict[str, Any],
        auth_method: str,
        previous_token: str | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> str:
        """Issue a fresh session for a user, discarding any token the caller held.

        Args:
            user: The authenticated users row.
            auth_method: How the user authenticated.
            previous_token: Session token presented with the request, if any.
            ip_address: Client address.
            user_agent: Client user agent.

        Returns:
            str: The new session token.
        """
        if previous_token:
            await self.sessions.destroy_session(previous_token)

        _, token = await self.sessions.create_session(
            user_id=user["id"],
            auth_method=auth_method,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        audit_log("session_created", str(user["id"]), auth_method=auth_method, client_address=ip_address)
        return token

    async def register(
        self,
        email: str,
        password: str,
        first_name: str,
        last_name: str | None = None,
        company_name: str | None = None,
        phone: str | None = None,
        referral_code: str | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> RegistrationResult:
        """Register a local account and log the new user in.

        Session creation is best-effort: if it fails the account still
        exists and the result reports ``session_established=False``.

        Args:
            email: Email address.
            password: Plain-text password.
            first_name: First name.
            last_name: Optional last name.
            company_name: Optional company name.
            phone: Optional phone number.
            referral_code: Optional referral code of the referring user.
            ip_address: Client address.
            user_agent: Client user agent.

        Returns:
            RegistrationResult: The sanitized user and the session token (if any).

        Raises:
            ValidationError: If the email is malformed or taken, or the
                password fails the strength policy.
        """
        email = normalize_email(email)
        if not is_valid_email(email):
            audit_log("register_invalid_email", None, email=email, client_address=ip_address)
            raise ValidationError("Invalid email format")

        policy_error = validate_password_strength(password)
        if policy_error:
            audit_log("register_weak_password", None, email=email, client_address=ip_address)
            raise ValidationError(policy_error)

        if await self.users.get_user_by_email(email):
            audit_log("register_email_exists", None, email=email, client_address=ip_address)
            raise ValidationError("Email already exists")

        referred_by = None
        if referral_code and referral_code.strip():
            referrer = await self.users.get_user_by_referral_code(referral_code)
            if referrer:
                referred_by = str(referrer["id"])
            else:
                logger.info("Unknown referral code supplied at registration, continuing without referrer")

        user = await self.users.create_user({
            "email": email,
            "password_hash": await hash_password(password),
            "first_name": sanitize_input(first_name),
            "last_name": sanitize_input(last_name),
            "company_name": sanitize_input(company_name),
            "phone": sanitize_input(phone),
            "provider": "local",
            "referred_by": referred_by,
        })
        audit_log("register_success", str(user["id"]), email=email, client_address=ip_address, referred=bool(referred_by))

        token = None
        try:
            token = await self.establish_session(user, "local", ip_address=ip_address, user_agent=user_agent)
        except Exception as e:
            logger.error("Session creation failed after registering user %s: %s", user["id"], str(e))
            audit_log("register_session_failed", str(user["id"]), client_address=ip_address)

        return RegistrationResult(user=sanitize_user(user), session_token=token)

    async def login(
        self,
        email: str,
        password: str,
        previous_token: str | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> tuple[dict[str, Any], str]:
        """Authenticate with email and password.

        Args:
            email: Email address in any case.
            password: Plain-text password.
            previous_token: Session token presented with the request, replaced on success.
            ip_address: Client address.
            user_agent: Client user agent.

        Returns:
            tuple: (sanitized user, new session token)

        Raises:
            AuthenticationError: With the same message whether the account is
                missing, has no password, or the password is wrong.
        """
        email = normalize_email(email)
        user = await self.users.get_user_by_email(email) if is_valid_email(email) else None

        password_ok = await verify_password(password, user.get("password_hash") if user else None)
        if not user or not password_ok:
            audit_log("login_failed", None, email=email, client_address=ip_address)
            raise AuthenticationError(INVALID_CREDENTIALS_MESSAGE)

        token = await self.establish_session(user, "local", previous_token, ip_address, user_agent)
        audit_log("login_success", str(user["id"]), email=email, client_address=ip_address)
        return sanitize_user(user), token

    async def login_with_oauth(
        self,
        profile: "OAuthProfile",
        previous_token: str | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> tuple[dict[str, Any], str]:
        """Log in (registering on first sight) with a verified provider profile.

        Args:
            profile: Profile fetched from the OAuth provider.
            previous_token: Session token presented with the request, replaced on success.
            ip_address: Client address.
            user_agent: Client user agent.

        Returns:
            tuple: (sanitized user, new session token)

        Raises:
            AuthenticationError: If the provider did not supply an email.
        """
        if not profile.email or not is_valid_email(normalize_email(profile.email)):
            audit_log("oauth_missing_email", None, provider=profile.provider, client_address=ip_address)
            raise AuthenticationError(f"{profile.provider.title()} did not provide an email address")

        user = await self.users.get_user_by_email(profile.email)
        if not user:
            user = await self.users.create_user({
                "email": profile.email,
                "password_hash": None,
                "first_name": sanitize_input(profile.first_name),
                "last_name": sanitize_input(profile.last_name),
                "profile_image_url": profile.picture,
                "provider": profile.provider,
                "provider_id": profile.provider_id,
            })
            audit_log("oauth_register", str(user["id"]), provider=profile.provider, email=profile.email)

        token = await self.establish_session(user, profile.provider, previous_token, ip_address, user_agent)
        audit_log("login_success", str(user["id"]), provider=profile.provider, client_address=ip_address)
        return sanitize_user(user), token

    async def resolve_current_user(
        self,
        session_token: str | None,
        legacy_cookie: str | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> ResolvedSession | None:
        """Find the user behind a session cookie.

        Expired sessions are deleted and resolve to None, as do sessions
        whose user no longer exists. When the legacy fallback is enabled and
        no canonical session matched, a legacy cookie is resolved and
        migrated to a new canonical session.

        Args:
            session_token: Canonical session token, if present.
            legacy_cookie: Cookie value issued by the previous deployment.
            ip_address: Client address.
            user_agent: Client user agent.

        Returns:
            ResolvedSession | None: The caller, or None for anonymous callers.
        """
        if session_token:
            session = await self.sessions.get_session_by_token(session_token)
            if session:
                if self.sessions.is_expired(session):
                    await self.sessions.destroy_session(session_token)
                    audit_log("session_expired", str(session["user_id"]))
                else:
                    user = await self.users.get_user_by_id(session["user_id"])
                    if user:
                        await self.sessions.touch_session(session["id"])
                        return ResolvedSession(user=user, session_token=session_token)
                    await self.sessions.destroy_session(session_token)

        if legacy_cookie and self.legacy_lookup:
            return await self._migrate_legacy_session(legacy_cookie, ip_address, user_agent)

        return None

    async def _migrate_legacy_session(
        self,
        legacy_cookie: str,
        ip_address: str | None,
        user_agent: str | None,
    ) -> ResolvedSession | None:
        match = await self.legacy_lookup.resolve(legacy_cookie)
        if not match:
            return None

        user = await self.users.get_user_by_id(match.user_id)
        if not user:
            return None

        _, token = await self.sessions.create_session(
            user_id=user["id"],
            auth_method="legacy",
            ip_address=ip_address,
            user_agent=user_agent,
        )
        await self.legacy_lookup.retire(match.sid)
        audit_log("session_migrated", str(user["id"]), client_address=ip_address)
        return ResolvedSession(user=user, session_token=token, migrated=True)

    async def logout(self, session_token: str | None, actor: str | None = None) -> dict[str, Any]:
        """Destroy the caller's session. Succeeds for anonymous callers too.

        Args:
            session_token: Session token presented with the request, if any.
            actor: ID of the logged-in user, for the audit trail.

        Returns:
            dict: Status message.
        """
        if session_token:
            destroyed = await self.sessions.destroy_session(session_token)
            if destroyed:
                audit_log("session_destroyed", actor)
        audit_log("logout", actor)
        return {"message": "Logged out successfully"}

    async def request_password_reset(self, email: str, ip_address: str | None = None) -> dict[str, Any]:
        """Start a password reset.

        The response is identical whether or not the account exists. Only
        local accounts receive a token.

        Args:
            email: Account email address.
            ip_address: Client address.

        Returns:
            dict: Generic status message.
        """
        email = normalize_email(email)
        audit_log("password_reset_requested", None, email=email, client_address=ip_address)

        try:
            user = await self.users.get_user_by_email(email) if is_valid_email(email) else None
            if not user or user.get("provider") != "local" or not user.get("password_hash"):
                return {"message": GENERIC_RESET_MESSAGE}

            token = secrets.token_hex(self.RESET_TOKEN_BYTES)
            expires_at = utcnow() + timedelta(minutes=self.settings.password_reset_expiry_minutes)
            self.client.table("password_reset_tokens").insert({
                "user_id": str(user["id"]),
                "token_hash": _hash_reset_token(token),
                "expires_at": to_iso(expires_at),
                "used": False,
                "created_at": to_iso(utcnow()),
            }).execute()

            await self.email.send_password_reset_email(
                to_email=user["email"],
                token=token,
                first_name=user.get("first_name"),
                expires_minutes=self.settings.password_reset_expiry_minutes,
            )
            logger.info("Password reset token issued for user %s", user["id"])

        except Exception as e:
            # Same response either way so failures cannot reveal which emails exist
            logger.error("Password reset request failed: %s", str(e))

        return {"message": GENERIC_RESET_MESSAGE}

    async def complete_password_reset(
        self,
        token: str,
        new_password: str,
        ip_address: str | None = None,
    ) -> dict[str, Any]:
        """Set a new password using a reset token.

        The token is claimed with a conditional update, so it works once
        even under concurrent submissions. All of the user's sessions are
        ended afterwards.

        Args:
            token: Token from the reset email.
            new_password: New plain-text password.
            ip_address: Client address.

        Returns:
            dict: Status message.

        Raises:
            ValidationError: If the password is weak or the token is
                unknown, used or expired.
        """
        policy_error = validate_password_strength(new_password)
        if policy_error:
            audit_log("reset_password_weak_password", None, client_address=ip_address)
            raise ValidationError(policy_error)

        response = (
            self.client.table("password_reset_tokens")
            .select("*")
            .eq("token_hash", _hash_reset_token(token))
            .maybe_single()
            .execute()
        )
        record = response.data if response and response.data else None

        expires_at = parse_timestamp(record.get("expires_at")) if record else None
        if not record or record.get("used") or expires_at is None or expires_at < utcnow():
            audit_log("reset_password_invalid_token", None, client_address=ip_address)
            raise ValidationError(INVALID_RESET_TOKEN_MESSAGE)

        user = await self.users.get_user_by_id(record["user_id"])
        if not user:
            audit_log("reset_password_user_not_found", None, client_address=ip_address)
            raise ValidationError(INVALID_RESET_TOKEN_MESSAGE)

        claimed = (
            self.client.table("password_reset_tokens")
            .update({"used": True, "used_at": to_iso(utcnow())})
            .eq("id", record["id"])
            .eq("used", False)
            .execute()
        )
        if not claimed.data:
            audit_log("reset_password_invalid_token", None, client_address=ip_address)
            raise ValidationError(INVALID_RESET_TOKEN_MESSAGE)

        await self.users.update_password(user["id"], await hash_password(new_password))
        await self.sessions.destroy_user_sessions(user["id"])
        await self.cleanup_expired_reset_tokens()

        audit_log("reset_password_success", str(user["id"]), client_address=ip_address)
        return {"message": "Password has been reset successfully"}

    async def change_password(
        self,
        user: dict[str, Any],
        current_password: str,
        new_password: str,
        ip_address: str | None = None,
    ) -> dict[str, Any]:
        """Change the password of a logged-in local user.

        Args:
            user: The current users row.
            current_password: Password the user has now.
            new_password: Replacement password.
            ip_address: Client address.

        Returns:
            dict: Status message.

        Raises:
            ValidationError: If the account has no password, the current
                password is wrong, or the new one is weak or unchanged.
        """
        stored = await self.users.get_user_by_id(user["id"])
        if not stored or not stored.get("password_hash"):
            raise ValidationError("This account signs in with an external provider")

        if not await verify_password(current_password, stored["password_hash"]):
            audit_log("change_password_failed", str(user["id"]), client_address=ip_address)
            raise ValidationError("Current password is incorrect")

        policy_error = validate_password_strength(new_password)
        if policy_error:
            raise ValidationError(policy_error)
        if new_password == current_password:
            raise ValidationError("New password must be different from current password")

        await self.users.update_password(user["id"], await hash_password(new_password))
        audit_log("change_password_success", str(user["id"]), client_address=ip_address)
        return {"message": "Password changed successfully"}

    async def cleanup_expired_reset_tokens(self) -> int:
        """Delete reset tokens past their expiry.

        Returns:
            int: Number of deleted tokens.
        """
        response = (
            self.client.table("password_reset_tokens")
            .delete()
            .lt("expires_at", to_iso(utcnow()))
            .execute()
        )
        return len(response.data or [])

    async def bootstrap_admin(self) -> dict[str, Any] | None:
        """Create the admin account from ADMIN_EMAIL/ADMIN_PASSWORD if missing.

        Returns:
            dict | None: The created admin, or None if nothing was created.
        """
        if not self.settings.admin_password:
            return None

        email = normalize_email(self.settings.admin_email)
        if await self.users.get_user_by_email(email):
            return None

        policy_error = validate_password_strength(self.settings.admin_password)
        if policy_error:
            logger.error("ADMIN_PASSWORD rejected, admin account not created: %s", policy_error)
            return None

        admin = await self.users.create_user({
            "email": email,
            "password_hash": await hash_password(self.settings.admin_password),
            "first_name": "Admin",
            "role": "admin",
            "provider": "local",
        })
        audit_log("admin_bootstrapped", str(admin["id"]), email=email)
        return sanitize_user(admin)
