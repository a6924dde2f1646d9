"""OAuth sign-in routes (Google, Facebook, GitHub)."""

import logging
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import RedirectResponse, Response

from portal.api.deps import (
    RateLimit,
    client_address,
    get_session_token,
    set_session_cookie,
    user_agent,
)
from portal.api.middleware.error_handler import AuthenticationError, create_error_response
from portal.core.audit import audit_log
from portal.core.config import get_settings
from portal.schemas.auth import ProvidersResponse, ProviderStatus
from portal.services.auth_service import AuthService
from portal.services.oauth_service import OAuthService, provider_statuses

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["oauth"])

STATE_COOKIE_NAME = "oauth_state"
STATE_COOKIE_PATH = "/api/auth"


def _not_configured(provider: str) -> Response:
    return create_error_response(
        error_type="not_implemented",
        message=f"{provider.title()} sign-in is not available",
        status_code=status.HTTP_501_NOT_IMPLEMENTED,
    )


def _login_failed_redirect(reason: str) -> RedirectResponse:
    frontend = get_settings().frontend_url.rstrip("/")
    return RedirectResponse(
        url=f"{frontend}/auth?{urlencode({'error': reason})}",
        status_code=status.HTTP_302_FOUND,
    )


@router.get(
    "/providers",
    response_model=ProvidersResponse,
    summary="List OAuth providers",
    description="Report which sign-in providers are configured.",
)
async def list_providers() -> ProvidersResponse:
    """List OAuth providers and whether each is enabled."""
    return ProvidersResponse(providers=[ProviderStatus(**p) for p in provider_statuses()])


@router.get(
    "/{provider}",
    dependencies=[Depends(RateLimit("oauth"))],
    responses={302: {"description": "Redirect to provider"}, 501: {"description": "Provider not configured"}},
    summary="Start OAuth sign-in",
    description="Redirect the browser to the provider's consent page.",
)
async def oauth_start(provider: str) -> Response:
    """Start the authorization-code flow.

    A signed ``state`` value is stored in a short-lived cookie and checked on
    the callback.
    """
    settings = get_settings()
    if not settings.is_oauth_enabled(provider):
        return _not_configured(provider)

    service = OAuthService(provider)
    state = service.create_state()

    response = RedirectResponse(url=service.authorization_url(state), status_code=status.HTTP_302_FOUND)
    response.set_cookie(
        key=STATE_COOKIE_NAME,
        value=state,
        max_age=600,
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite="lax",
        path=STATE_COOKIE_PATH,
    )
    return response


@router.get(
    "/{provider}/callback",
    dependencies=[Depends(RateLimit("oauth"))],
    responses={302: {"description": "Redirect to the frontend"}, 501: {"description": "Provider not configured"}},
    summary="OAuth callback",
    description="Complete sign-in after the provider redirects back.",
)
async def oauth_callback(
    provider: str,
    request: Request,
    code: str | None = Query(default=None),
    state: str | None = Query(default=None),
    error: str | None = Query(default=None),
) -> Response:
    """Finish the authorization-code flow and log the user in.

    Every failure redirects back to the frontend sign-in page.
    """
    settings = get_settings()
    if not settings.is_oauth_enabled(provider):
        return _not_configured(provider)

    address = client_address(request)
    if error or not code:
        audit_log("oauth_denied", None, provider=provider, reason=error or "missing_code", client_address=address)
        return _login_failed_redirect("oauth_denied")

    service = OAuthService(provider)
    try:
        service.verify_state(state, request.cookies.get(STATE_COOKIE_NAME))
        profile = await service.complete(code)
        user, token = await AuthService().login_with_oauth(
            profile,
            previous_token=get_session_token(request),
            ip_address=address,
            user_agent=user_agent(request),
        )
    except AuthenticationError as e:
        logger.warning("OAuth sign-in with %s failed: %s", provider, e.message)
        audit_log("oauth_failed", None, provider=provider, reason=e.message, client_address=address)
        return _login_failed_redirect("oauth_failed")

    response = RedirectResponse(
        url=f"{settings.frontend_url.rstrip('/')}/dashboard",
        status_code=status.HTTP_302_FOUND,
    )
    set_session_cookie(response, token)
    response.delete_cookie(key=STATE_COOKIE_NAME, path=STATE_COOKIE_PATH)
    logger.info("User %s signed in with %s", user["id"], provider)
    return response
