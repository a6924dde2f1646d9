"""Checkout session routes for the pre-login cart handoff."""

from fastapi import APIRouter, Depends, status

from portal.api.deps import OptionalUser, RateLimit
from portal.schemas.checkout import CheckoutSessionCreate, CheckoutSessionResponse, CheckoutSessionUpdate
from portal.services.checkout_session_service import CheckoutSessionService

router = APIRouter(prefix="/checkout-sessions", tags=["checkout"])


@router.post(
    "",
    response_model=CheckoutSessionResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(RateLimit("checkout_session"))],
    summary="Start checkout session",
    description="Store a cart for up to two hours so it survives the login redirect.",
)
async def create_checkout_session(data: CheckoutSessionCreate, user: OptionalUser) -> CheckoutSessionResponse:
    """Create a checkout session.

    Raises:
        NotFoundError: 404 if the service does not exist.
        ValidationError: 400 if the service is inactive.
    """
    session = await CheckoutSessionService().create_session(
        service_id=data.service_id,
        contact_data=data.contact_data,
        selected_add_ons=data.selected_add_ons,
        total_price=data.total_price,
        user_id=user["id"] if user else None,
    )
    return CheckoutSessionResponse.from_row(session)


@router.get(
    "/{session_token}",
    response_model=CheckoutSessionResponse,
    dependencies=[Depends(RateLimit("checkout_session"))],
    summary="Get checkout session",
    description="Fetch a live checkout session by its token.",
)
async def get_checkout_session(session_token: str, user: OptionalUser) -> CheckoutSessionResponse:
    """Get a checkout session.

    Raises:
        NotFoundError: 404 if the token is unknown or another user owns the session.
        GoneError: 410 if the session has expired.
    """
    session = await CheckoutSessionService().get_session(session_token, user["id"] if user else None)
    return CheckoutSessionResponse.from_row(session)


@router.put(
    "/{session_token}",
    response_model=CheckoutSessionResponse,
    dependencies=[Depends(RateLimit("checkout_session"))],
    summary="Update checkout session",
    description="Update cart contents. A logged-in caller becomes the session's owner.",
)
async def update_checkout_session(
    session_token: str,
    data: CheckoutSessionUpdate,
    user: OptionalUser,
) -> CheckoutSessionResponse:
    """Update a checkout session.

    Raises:
        NotFoundError: 404 if the token is unknown or another user owns the session.
        GoneError: 410 if the session has expired.
    """
    session = await CheckoutSessionService().update_session(
        session_token,
        data.model_dump(exclude_none=True),
        user_id=user["id"] if user else None,
    )
    return CheckoutSessionResponse.from_row(session)
