"""Application configuration management using Pydantic Settings."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

OAUTH_PROVIDERS = ("google", "facebook", "github")


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All settings can be overridden via environment variables.
    Required settings will raise validation errors if not provided.
    External integrations (OAuth providers, payment gateway, cache) are
    optional: an absent credential disables the integration instead of
    failing startup.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="agency-portal", description="Application name")
    app_env: str = Field(default="development", description="Environment (development/staging/production)")
    debug: bool = Field(default=False, description="Enable debug mode")

    # Server
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8080, description="Server port")
    trust_proxy: bool = Field(default=False, description="Read the client address from X-Forwarded-For")
    max_request_body_size: int = Field(default=10 * 1024 * 1024, description="Maximum request body size in bytes")

    # CORS
    cors_origins: str = Field(
        default="http://localhost:3000,http://localhost:5173",
        description="Comma-separated list of allowed CORS origins",
    )

    # Supabase
    supabase_url: str = Field(..., description="Supabase project URL")
    supabase_secret_key: str = Field(..., description="Supabase secret key for backend operations")

    # Session
    session_secret: str = Field(..., description="Secret used to sign OAuth state and verify legacy cookies")
    session_cookie_name: str = Field(default="portal_session", description="Session cookie name")
    session_cookie_secure: bool = Field(default=True, description="Use secure cookies (HTTPS only)")
    session_cookie_cross_site: bool = Field(
        default=False,
        description="Send the cookie with SameSite=None (requires secure cookies)",
    )
    session_inactivity_timeout_minutes: int = Field(default=24 * 60, description="Idle minutes before a session expires")
    session_max_lifetime_hours: int = Field(default=7 * 24, description="Hours after login before a session expires")
    legacy_session_fallback: bool = Field(
        default=False,
        description="Resolve and migrate cookies issued by the previous deployment",
    )
    legacy_session_cookie_name: str = Field(default="diso.sid", description="Cookie name used by the previous deployment")

    # Passwords
    bcrypt_rounds: int = Field(default=12, description="bcrypt work factor")
    password_reset_expiry_minutes: int = Field(default=60, description="Password reset token lifetime")

    # Admin bootstrap
    admin_email: str = Field(default="admin@localhost", description="Email of the bootstrap admin account")
    admin_password: str = Field(default="", description="Bootstrap admin password (empty disables bootstrap)")

    # OAuth
    oauth_redirect_base_url: str = Field(
        default="http://localhost:8080",
        description="Public base URL used to build OAuth callback URLs",
    )
    google_client_id: str = Field(default="", description="Google OAuth client ID")
    google_client_secret: str = Field(default="", description="Google OAuth client secret")
    facebook_client_id: str = Field(default="", description="Facebook OAuth app ID")
    facebook_client_secret: str = Field(default="", description="Facebook OAuth app secret")
    github_client_id: str = Field(default="", description="GitHub OAuth client ID")
    github_client_secret: str = Field(default="", description="GitHub OAuth client secret")

    # Paystack
    paystack_secret_key: str = Field(default="", description="Paystack secret key")
    paystack_base_url: str = Field(default="https://api.paystack.co", description="Paystack API base URL")
    paystack_callback_base_url: str = Field(
        default="http://localhost:8080",
        description="Public base URL Paystack redirects the browser back to",
    )
    paystack_currency: str = Field(default="NGN", description="Transaction currency")
    paystack_timeout_seconds: float = Field(default=15.0, description="Paystack HTTP timeout")

    # Referrals
    referral_commission_rate: float = Field(default=0.10, description="Share of the order total credited to the referrer")

    # Cache
    cache_url: str = Field(default="", description="Redis URL (empty uses the in-process cache)")
    cache_ttl_seconds: int = Field(default=300, description="Default cache entry lifetime")

    # Rate limiting
    rate_limit_multiplier: float = Field(default=1.0, description="Scales every rate-limit threshold")
    progressive_delay_enabled: bool = Field(default=True, description="Delay repeated login attempts")

    # Email (Resend)
    resend_api_key: str = Field(default="", description="Resend API key for sending emails")
    email_from_address: str = Field(
        default="Agency Portal <noreply@example.com>",
        description="From address for transactional emails",
    )

    # Frontend
    frontend_url: str = Field(
        default="http://localhost:3000",
        description="Frontend application URL for email links and payment redirects",
    )

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins string into a list."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.app_env == "production"

    @property
    def session_cookie_max_age(self) -> int:
        """Cookie lifetime in seconds, matching the session max lifetime."""
        return self.session_max_lifetime_hours * 3600

    @property
    def paystack_configured(self) -> bool:
        """Check if the payment gateway credential is present."""
        return bool(self.paystack_secret_key)

    def oauth_credentials(self, provider: str) -> tuple[str, str]:
        """Get the client id and secret configured for an OAuth provider.

        Args:
            provider: Provider name (google, facebook, github).

        Returns:
            tuple: (client_id, client_secret), empty strings when unset.
        """
        if provider not in OAUTH_PROVIDERS:
            return "", ""
        return getattr(self, f"{provider}_client_id"), getattr(self, f"{provider}_client_secret")

    def is_oauth_enabled(self, provider: str) -> bool:
        """Check whether both OAuth credentials are configured for a provider."""
        client_id, client_secret = self.oauth_credentials(provider)
        return bool(client_id and client_secret)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings singleton.

    Returns:
        Settings: Application settings instance.

    Note:
        Settings are cached using lru_cache for performance.
        Call get_settings.cache_clear() to reload settings.
    """
    return Settings()
