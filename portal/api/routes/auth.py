"""Authentication API routes."""

import asyncio
from typing import Annotated

from fastapi import APIRouter, Depends, Request, Response, status

from portal.api.deps import (
    CurrentSession,
    CurrentUser,
    RateLimit,
    clear_session_cookie,
    client_address,
    get_rate_limiter,
    get_session_token,
    set_session_cookie,
    user_agent,
)
from portal.core.config import get_settings
from portal.core.rate_limiter import RateLimiter
from portal.schemas.auth import (
    ChangePasswordRequest,
    CurrentUserResponse,
    ForgotPasswordRequest,
    LoginRequest,
    LoginResponse,
    RegisterRequest,
    RegisterResponse,
    ResetPasswordRequest,
    UserResponse,
)
from portal.schemas.common import MessageResponse
from portal.services.auth_service import AuthService

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post(
    "/register",
    response_model=RegisterResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(RateLimit("register"))],
    summary="Register a new account",
    description="Create a local account with email and password and log it in.",
)
async def register(data: RegisterRequest, request: Request, response: Response) -> RegisterResponse:
    """Register a new user with email and password.

    The account is created even if the session cannot be established;
    ``session_established`` tells the client whether it is logged in.

    Args:
        data: Registration details.
        request: FastAPI request object.
        response: FastAPI response object for setting cookies.

    Returns:
        RegisterResponse: The new user and session status.

    Raises:
        ValidationError: 400 if the email is invalid or taken, or the password is weak.
        RateLimitError: 429 after too many registrations from this address.
    """
    result = await AuthService().register(
        email=data.email,
        password=data.password,
        first_name=data.first_name,
        last_name=data.last_name,
        company_name=data.company_name,
        phone=data.phone,
        referral_code=data.referral_code,
        ip_address=client_address(request),
        user_agent=user_agent(request),
    )

    if result.session_token:
        set_session_cookie(response, result.session_token)

    return RegisterResponse(
        user=UserResponse.from_row(result.user),
        message="Registration successful" if result.session_established else "Registration successful, please log in",
        session_established=result.session_established,
    )


@router.post(
    "/login",
    response_model=LoginResponse,
    dependencies=[Depends(RateLimit("login"))],
    summary="Log in",
    description="Authenticate with email and password. Sets the session cookie.",
)
async def login(
    data: LoginRequest,
    request: Request,
    response: Response,
    limiter: Annotated[RateLimiter, Depends(get_rate_limiter)],
) -> LoginResponse:
    """Log in with email and password.

    Repeated attempts from one address are slowed down before the
    credentials are checked. A successful login clears the counter.

    Raises:
        AuthenticationError: 401 with the same message for any bad credential.
        RateLimitError: 429 after too many attempts.
    """
    address = client_address(request)

    if get_settings().progressive_delay_enabled:
        delay = limiter.progressive_delay("login", address)
        if delay > 0:
            await asyncio.sleep(delay)

    user, token = await AuthService().login(
        email=data.email,
        password=data.password,
        previous_token=get_session_token(request),
        ip_address=address,
        user_agent=user_agent(request),
    )
    limiter.reset("login", address)
    set_session_cookie(response, token)
    return LoginResponse(user=UserResponse.from_row(user))


@router.get(
    "/user",
    response_model=CurrentUserResponse,
    summary="Get current user",
    description="Return the logged-in user, or null for anonymous callers.",
)
async def current_user(session: CurrentSession) -> CurrentUserResponse:
    """Get the current user, or null when not logged in."""
    if not session:
        return CurrentUserResponse(user=None)
    return CurrentUserResponse(user=UserResponse.from_row(session.user))


@router.post(
    "/logout",
    response_model=MessageResponse,
    dependencies=[Depends(RateLimit("logout"))],
    summary="Log out",
    description="Destroy the current session and clear the cookie.",
)
async def logout(request: Request, response: Response, session: CurrentSession) -> MessageResponse:
    """Log out and clear the session cookie.

    Succeeds for anonymous callers too.
    """
    result = await AuthService().logout(
        get_session_token(request),
        actor=str(session.user["id"]) if session else None,
    )
    clear_session_cookie(response)
    return MessageResponse(**result)


@router.post(
    "/forgot-password",
    response_model=MessageResponse,
    dependencies=[Depends(RateLimit("forgot_password"))],
    summary="Request password reset",
    description="Email a reset link. The response is identical whether or not the account exists.",
)
async def forgot_password(data: ForgotPasswordRequest, request: Request) -> MessageResponse:
    """Request a password reset email."""
    result = await AuthService().request_password_reset(data.email, ip_address=client_address(request))
    return MessageResponse(**result)


@router.post(
    "/reset-password",
    response_model=MessageResponse,
    dependencies=[Depends(RateLimit("reset_password"))],
    summary="Reset password",
    description="Set a new password using a reset token. Logs the account out everywhere.",
)
async def reset_password(data: ResetPasswordRequest, request: Request, response: Response) -> MessageResponse:
    """Complete a password reset.

    Raises:
        ValidationError: 400 if the token is invalid, used or expired, or the password is weak.
    """
    result = await AuthService().complete_password_reset(
        token=data.token,
        new_password=data.password,
        ip_address=client_address(request),
    )
    clear_session_cookie(response)
    return MessageResponse(**result)


@router.post(
    "/change-password",
    response_model=MessageResponse,
    dependencies=[Depends(RateLimit("change_password"))],
    summary="Change password",
    description="Change the password of the logged-in user.",
)
async def change_password(data: ChangePasswordRequest, request: Request, user: CurrentUser) -> MessageResponse:
    """Change the current user's password.

    Raises:
        AuthenticationError: 401 if not logged in.
        ValidationError: 400 if the current password is wrong or the new one is weak.
    """
    result = await AuthService().change_password(
        user=user,
        current_password=data.current_password,
        new_password=data.new_password,
        ip_address=client_address(request),
    )
    return MessageResponse(**result)
