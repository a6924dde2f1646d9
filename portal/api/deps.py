"""FastAPI dependency injection functions."""

from typing import Annotated, Any, Callable

from fastapi import Depends, Request, Response

from portal.api.middleware.error_handler import AuthenticationError, AuthorizationError, RateLimitError
from portal.core.audit import audit_log
from portal.core.config import get_settings
from portal.core.rate_limiter import RateLimiter
from portal.services.auth_service import AuthService, ResolvedSession

STAFF_ROLES = ("admin", "pm")


def get_session_cookie_config() -> dict:
    """Get session cookie configuration from settings."""
    settings = get_settings()
    # SameSite=None is only valid together with Secure
    samesite = "none" if settings.session_cookie_cross_site and settings.session_cookie_secure else "lax"
    return {
        "key": settings.session_cookie_name,
        "max_age": settings.session_cookie_max_age,
        "httponly": True,
        "secure": settings.session_cookie_secure,
        "samesite": samesite,
        "path": "/",
    }


def get_session_token(request: Request) -> str | None:
    """Extract the session token from the session cookie."""
    return request.cookies.get(get_session_cookie_config()["key"])


def get_legacy_cookie(request: Request) -> str | None:
    """Extract the previous deployment's session cookie, if the fallback is on."""
    settings = get_settings()
    if not settings.legacy_session_fallback:
        return None
    return request.cookies.get(settings.legacy_session_cookie_name)


def set_session_cookie(response: Response, token: str) -> None:
    """Set session cookie on response.

    Args:
        response: FastAPI response object.
        token: The session token to set.
    """
    config = get_session_cookie_config()
    response.set_cookie(
        key=config["key"],
        value=token,
        max_age=config["max_age"],
        httponly=config["httponly"],
        secure=config["secure"],
        samesite=config["samesite"],
        path=config["path"],
    )


def clear_session_cookie(response: Response) -> None:
    """Clear the session cookie (and the legacy one) from a response."""
    settings = get_settings()
    config = get_session_cookie_config()
    response.delete_cookie(key=config["key"], path=config["path"])
    if settings.legacy_session_fallback:
        response.delete_cookie(key=settings.legacy_session_cookie_name, path="/")


def client_address(request: Request) -> str:
    """Best-effort client network address.

    ``X-Forwarded-For`` is only honoured when running behind a trusted proxy.
    """
    if get_settings().trust_proxy:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def user_agent(request: Request) -> str | None:
    """Client user agent header."""
    return request.headers.get("user-agent")


# Rate limiting


def get_rate_limiter(request: Request) -> RateLimiter:
    """Get the application's rate limiter."""
    limiter = getattr(request.app.state, "rate_limiter", None)
    if limiter is None:
        limiter = RateLimiter.from_settings()
        request.app.state.rate_limiter = limiter
    return limiter


def RateLimit(action: str) -> Callable[..., Any]:
    """Build a dependency that counts an attempt at ``action`` for the caller.

    Args:
        action: Rate-limit rule name, e.g. ``login``.

    Returns:
        Callable: FastAPI dependency raising ``RateLimitError`` when refused.
    """

    async def check_rate_limit(
        request: Request,
        limiter: Annotated[RateLimiter, Depends(get_rate_limiter)],
    ) -> None:
        address = client_address(request)
        decision = limiter.check_and_consume(action, address)
        if not decision.allowed:
            audit_log("rate_limit_exceeded", None, action=action, client_address=address)
            raise RateLimitError(
                message=decision.message or "Rate limit exceeded",
                retry_after=decision.retry_after,
                limit=decision.limit,
            )

    return check_rate_limit


# Authentication


async def resolve_session(request: Request, response: Response) -> ResolvedSession | None:
    """Resolve the caller's session, migrating a legacy cookie if needed."""
    session_token = get_session_token(request)
    legacy_cookie = get_legacy_cookie(request)
    if not session_token and not legacy_cookie:
        return None

    resolved = await AuthService().resolve_current_user(
        session_token=session_token,
        legacy_cookie=legacy_cookie,
        ip_address=client_address(request),
        user_agent=user_agent(request),
    )
    if resolved and resolved.migrated:
        set_session_cookie(response, resolved.session_token)
        response.delete_cookie(key=get_settings().legacy_session_cookie_name, path="/")
    return resolved


async def get_optional_user(
    resolved: Annotated[ResolvedSession | None, Depends(resolve_session)],
) -> dict[str, Any] | None:
    """Get the current user if a valid session is present.

    Returns:
        dict | None: The users row, or None for anonymous callers.
    """
    return resolved.user if resolved else None


async def get_current_user(
    user: Annotated[dict[str, Any] | None, Depends(get_optional_user)],
) -> dict[str, Any]:
    """Require an authenticated user.

    Raises:
        AuthenticationError: 401 if no valid session is present.
    """
    if not user:
        raise AuthenticationError("Authentication required")
    return user


async def get_admin_user(
    user: Annotated[dict[str, Any], Depends(get_current_user)],
) -> dict[str, Any]:
    """Require an admin.

    Raises:
        AuthorizationError: 403 if the user is not an admin.
    """
    if user.get("role") != "admin":
        raise AuthorizationError("Admin access required")
    return user


async def get_staff_user(
    user: Annotated[dict[str, Any], Depends(get_current_user)],
) -> dict[str, Any]:
    """Require an admin or project manager.

    Raises:
        AuthorizationError: 403 for clients.
    """
    if user.get("role") not in STAFF_ROLES:
        raise AuthorizationError("Staff access required")
    return user


# Type aliases for cleaner dependency injection
CurrentUser = Annotated[dict[str, Any], Depends(get_current_user)]
OptionalUser = Annotated[dict[str, Any] | None, Depends(get_optional_user)]
AdminUser = Annotated[dict[str, Any], Depends(get_admin_user)]
StaffUser = Annotated[dict[str, Any], Depends(get_staff_user)]
CurrentSession = Annotated[ResolvedSession | None, Depends(resolve_session)]
