"""OAuth 2 authorization-code flow for Google, Facebook and GitHub."""

import asyncio
import logging
import secrets
import time
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlencode

import jwt
import requests

from portal.api.middleware.error_handler import AuthenticationError, ConfigurationError
from portal.core.config import OAUTH_PROVIDERS, get_settings

logger = logging.getLogger(__name__)

STATE_TTL_SECONDS = 600
STATE_ALGORITHM = "HS256"
HTTP_TIMEOUT_SECONDS = 10


@dataclass(frozen=True)
class ProviderEndpoints:
    """Endpoints and scope for one OAuth provider."""

    authorize_url: str
    token_url: str
    profile_url: str
    scope: str


PROVIDER_ENDPOINTS: dict[str, ProviderEndpoints] = {
    "google": ProviderEndpoints(
        authorize_url="https://accounts.google.com/o/oauth2/v2/auth",
        token_url="https://oauth2.googleapis.com/token",
        profile_url="https://openidconnect.googleapis.com/v1/userinfo",
        scope="openid email profile",
    ),
    "facebook": ProviderEndpoints(
        authorize_url="https://www.facebook.com/v19.0/dialog/oauth",
        token_url="https://graph.facebook.com/v19.0/oauth/access_token",
        profile_url="https://graph.facebook.com/me?fields=id,email,first_name,last_name,picture",
        scope="email",
    ),
    "github": ProviderEndpoints(
        authorize_url="https://github.com/login/oauth/authorize",
        token_url="https://github.com/login/oauth/access_token",
        profile_url="https://api.github.com/user",
        scope="read:user user:email",
    ),
}

GITHUB_EMAILS_URL = "https://api.github.com/user/emails"


@dataclass
class OAuthProfile:
    """Identity claims returned by a provider."""

    provider: str
    provider_id: str
    email: str | None
    first_name: str | None = None
    last_name: str | None = None
    picture: str | None = None


def _split_name(full_name: str | None) -> tuple[str | None, str | None]:
    if not full_name:
        return None, None
    first, _, last = full_name.strip().partition(" ")
    return first or None, last or None


class OAuthService:
    """Service driving the OAuth redirect and callback for one provider."""

    def __init__(self, provider: str) -> None:
        """Initialize for a provider.

        Args:
            provider: Provider name.

        Raises:
            ConfigurationError: If the provider is unknown or has no credentials.
        """
        self.settings = get_settings()
        if provider not in OAUTH_PROVIDERS or not self.settings.is_oauth_enabled(provider):
            raise ConfigurationError(f"{provider.title()} sign-in is not configured")
        self.provider = provider
        self.endpoints = PROVIDER_ENDPOINTS[provider]
        self.client_id, self.client_secret = self.settings.oauth_credentials(provider)

    @property
    def redirect_uri(self) -> str:
        base = self.settings.oauth_redirect_base_url.rstrip("/")
        return f"{base}/api/auth/{self.provider}/callback"

    def create_state(self) -> str:
        """Create a signed, short-lived ``state`` value bound to this provider."""
        now = int(time.time())
        payload = {
            "provider": self.provider,
            "nonce": secrets.token_urlsafe(16),
            "iat": now,
            "exp": now + STATE_TTL_SECONDS,
        }
        return jwt.encode(payload, self.settings.session_secret, algorithm=STATE_ALGORITHM)

    def verify_state(self, state: str | None, cookie_state: str | None) -> None:
        """Check the ``state`` echoed by the provider.

        It must match the value stored in the caller's cookie, carry a valid
        signature, be unexpired and name this provider.

        Raises:
            AuthenticationError: If any check fails.
        """
        if not state or not cookie_state or not secrets.compare_digest(state, cookie_state):
            raise AuthenticationError("OAuth state mismatch")
        try:
            payload = jwt.decode(state, self.settings.session_secret, algorithms=[STATE_ALGORITHM])
        except jwt.PyJWTError as e:
            raise AuthenticationError("OAuth state is invalid or expired") from e
        if payload.get("provider") != self.provider:
            raise AuthenticationError("OAuth state mismatch")

    def authorization_url(self, state: str) -> str:
        """Build the provider URL the browser is redirected to."""
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": self.endpoints.scope,
            "state": state,
        }
        return f"{self.endpoints.authorize_url}?{urlencode(params)}"

    def _exchange_code(self, code: str) -> str:
        try:
            response = requests.post(
                self.endpoints.token_url,
                data={
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "code": code,
                    "redirect_uri": self.redirect_uri,
                    "grant_type": "authorization_code",
                },
                headers={"Accept": "application/json"},
                timeout=HTTP_TIMEOUT_SECONDS,
            )
            body = response.json()
        except (requests.RequestException, ValueError) as e:
            raise AuthenticationError(f"{self.provider.title()} sign-in failed") from e

        access_token = body.get("access_token") if response.ok else None
        if not access_token:
            logger.warning("OAuth token exchange failed for %s: HTTP %s", self.provider, response.status_code)
            raise AuthenticationError(f"{self.provider.title()} sign-in failed")
        return access_token

    def _get_json(self, url: str, access_token: str) -> Any:
        try:
            response = requests.get(
                url,
                headers={"Authorization": f"Bearer {access_token}", "Accept": "application/json"},
                timeout=HTTP_TIMEOUT_SECONDS,
            )
            response.raise_for_status()
            return response.json()
        except (requests.RequestException, ValueError) as e:
            raise AuthenticationError(f"{self.provider.title()} sign-in failed") from e

    def _fetch_profile(self, access_token: str) -> OAuthProfile:
        data = self._get_json(self.endpoints.profile_url, access_token)

        if self.provider == "google":
            return OAuthProfile(
                provider="google",
                provider_id=str(data.get("sub", "")),
                email=data.get("email") if data.get("email_verified", True) else None,
                first_name=data.get("given_name"),
                last_name=data.get("family_name"),
                picture=data.get("picture"),
            )

        if self.provider == "facebook":
            picture = ((data.get("picture") or {}).get("data") or {}).get("url")
            return OAuthProfile(
                provider="facebook",
                provider_id=str(data.get("id", "")),
                email=data.get("email"),
                first_name=data.get("first_name"),
                last_name=data.get("last_name"),
                picture=picture,
            )

        # GitHub only returns a public email on /user; fall back to the primary verified one
        email = data.get("email")
        if not email:
            emails = self._get_json(GITHUB_EMAILS_URL, access_token) or []
            primary = next((e for e in emails if e.get("primary") and e.get("verified")), None)
            email = primary.get("email") if primary else None
        first_name, last_name = _split_name(data.get("name") or data.get("login"))
        return OAuthProfile(
            provider="github",
            provider_id=str(data.get("id", "")),
            email=email,
            first_name=first_name,
            last_name=last_name,
            picture=data.get("avatar_url"),
        )

    async def complete(self, code: str) -> OAuthProfile:
        """Exchange an authorization code and fetch the user's profile.

        Args:
            code: Authorization code from the callback query.

        Returns:
            OAuthProfile: The verified identity.

        Raises:
            AuthenticationError: If the provider rejects the code or the profile cannot be read.
        """
        access_token = await asyncio.to_thread(self._exchange_code, code)
        return await asyncio.to_thread(self._fetch_profile, access_token)


def provider_statuses() -> list[dict[str, Any]]:
    """Report which OAuth providers are enabled."""
    settings = get_settings()
    return [
        {
            "name": provider,
            "enabled": settings.is_oauth_enabled(provider),
            "login_url": f"/api/auth/{provider}" if settings.is_oauth_enabled(provider) else None,
        }
        for provider in OAUTH_PROVIDERS
    ]
